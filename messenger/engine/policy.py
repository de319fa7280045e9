"""
messenger.engine.policy — Moderation Policy Engine
===================================================

Pure decision functions consulted before any messaging mutation.  They
read entities only and never touch persistence.

Message acceptance runs these stages in order; the first one that
objects raises and evaluation stops (no stage is additive):

  1. chat restriction  — sender carries ``CANT_CHAT``       → ChatRestricted
  2. group mute        — mute is indefinite or unexpired    → Muted
  3. geo-bans          — any FULL_CHAT ban for the sender's country first,
                         then the rest in stored order
       FULL_CHAT                                            → RegionChatBanned
       USERNAME targeting the sender                        → RegionUserBanned
       ROLE_INTERACTION vs. peer role (direct chats only)   → RegionRoleBanned
  4. accept

Blocking is not part of acceptance; it is applied where contacts are
listed and where members are added to groups.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from messenger.errors import (
    ChatRestricted,
    Muted,
    NotGroupAdmin,
    NotParticipant,
    RegionChatBanned,
    RegionRoleBanned,
    RegionUserBanned,
)
from messenger.store.entities import BanKind, Conversation, CountryBan, Modifier, User

logger = logging.getLogger(__name__)

# Mute expiry sentinel meaning "until explicitly cleared"
MUTE_FOREVER = -1

UserLookup = Callable[[str], User | None]


# ---------------------------------------------------------------------------
# Individual stages
# ---------------------------------------------------------------------------
def check_chat_restriction(sender: User) -> None:
    if sender.has_modifier(Modifier.CANT_CHAT):
        raise ChatRestricted()


def is_muted(conversation: Conversation, user_id: str, now: int) -> bool:
    """True if *user_id* has an active mute in a group conversation."""
    if not conversation.is_group:
        return False
    expiry = conversation.muted_users.get(user_id)
    if not expiry:
        return False
    return expiry == MUTE_FOREVER or expiry > now


def check_mute(conversation: Conversation, sender: User, now: int) -> None:
    if is_muted(conversation, sender.id, now):
        raise Muted()


def check_geo_bans(
    sender: User,
    conversation: Conversation,
    bans: Sequence[CountryBan],
    lookup_user: UserLookup,
) -> None:
    """Apply geo-bans for the sender's country.

    A ``FULL_CHAT`` ban outranks every other kind; the remaining bans are
    checked in stored order and the first match wins.
    """
    local = [ban for ban in bans if ban.country_code == sender.country]
    if any(ban.kind == BanKind.FULL_CHAT for ban in local):
        raise RegionChatBanned()
    for ban in local:
        if ban.kind == BanKind.USERNAME:
            if ban.target_user_id == sender.id:
                raise RegionUserBanned()
        elif ban.kind == BanKind.ROLE_INTERACTION:
            # Only direct conversations have a single peer to compare against
            if conversation.is_group:
                continue
            peer_id = conversation.other_participant(sender.id)
            peer = lookup_user(peer_id) if peer_id else None
            if peer is not None and peer.role == ban.target_role_id:
                raise RegionRoleBanned()


# ---------------------------------------------------------------------------
# Composite checks
# ---------------------------------------------------------------------------
def evaluate_message(
    sender: User,
    conversation: Conversation,
    bans: Sequence[CountryBan],
    *,
    lookup_user: UserLookup,
    now: int,
) -> None:
    """Raise the first applicable :class:`PolicyRejection`, else return."""
    check_chat_restriction(sender)
    check_mute(conversation, sender, now)
    check_geo_bans(sender, conversation, bans, lookup_user)


def evaluate_reaction(sender: User) -> None:
    """Reactions are refused only for chat-restricted users."""
    check_chat_restriction(sender)


# ---------------------------------------------------------------------------
# Group authority & membership
# ---------------------------------------------------------------------------
def require_participant(conversation: Conversation, user_id: str) -> None:
    if user_id not in conversation.participants:
        raise NotParticipant(user_id, conversation.id)


def require_group_admin(group: Conversation, user_id: str) -> None:
    if user_id not in group.admin_ids:
        raise NotGroupAdmin(user_id, group.id)


# ---------------------------------------------------------------------------
# Consumer-boundary helpers
# ---------------------------------------------------------------------------
def is_blocked_by(viewer_id: str, other: User) -> bool:
    """True if *other* has blocked *viewer_id*."""
    return other.has_blocked(viewer_id)


def can_see_messages(viewer: User) -> bool:
    return not viewer.has_modifier(Modifier.CANT_SEE_MESSAGES)


def shows_ads(viewer: User) -> bool:
    """VIP users get an ad-free sidebar."""
    return not viewer.has_modifier(Modifier.VIP)
