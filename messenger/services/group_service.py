"""
messenger.services.group_service — Group Lifecycle Manager
===========================================================

Builds and mutates group conversations.  Every effective change appends a
``system`` message, so a group's message list doubles as its audit trail.

State machine::

    create ─► Active ─(join | add | kick | leave | promote | mute | rename)─► Active
                 │
                 └─ last participant leaves or is kicked ─► Dissolved (removed)

Admin-only operations (add, kick, promote, mute, settings) check the
acting user against the group's admin set before touching anything.
"""

from __future__ import annotations

import logging

from messenger.constants import SYSTEM_SENDER_ID, new_id
from messenger.engine import policy
from messenger.errors import InvalidMuteDuration, NoValidMembers
from messenger.services.conversation_service import append_system_message
from messenger.store.entities import Conversation, Message, MessageKind
from messenger.store.entity_store import EntityStore

logger = logging.getLogger(__name__)

_MINUTE_MS = 60 * 1000


def _name_of(store: EntityStore, user_id: str) -> str:
    user = store.get_user(user_id)
    return user.username if user is not None else user_id


# ---------------------------------------------------------------------------
# Creation & joining
# ---------------------------------------------------------------------------
def create_group(
    store: EntityStore,
    name: str,
    creator_id: str,
    member_ids: list[str],
    avatar_url: str | None = None,
) -> Conversation:
    """Create a group with the creator as sole admin.

    Every participant starts with one unread message: the creation notice.
    """
    store.require_user(creator_id)
    participants = [creator_id]
    for member_id in member_ids:
        store.require_user(member_id)
        if member_id not in participants:
            participants.append(member_id)

    now = store.now()
    group = Conversation(
        id=new_id("group"),
        name=name,
        participants=participants,
        messages=[
            Message(
                id=new_id("sys"),
                sender_id=SYSTEM_SENDER_ID,
                content=f'Group "{name}" created',
                timestamp=now,
                kind=MessageKind.SYSTEM,
            )
        ],
        unread_count={p: 1 for p in participants},
        last_message_timestamp=now,
        is_group=True,
        admin_ids=[creator_id],
        avatar_url=avatar_url or f"https://picsum.photos/seed/{name}/200/200",
    )
    store.add_conversation(group)
    logger.info(
        "Group %s (%r) created by %s with %d participants",
        group.id, name, creator_id, len(participants),
    )
    return group


def join_group(store: EntityStore, group_id: str, user_id: str) -> Conversation:
    """Join via invite link.  Idempotent for existing participants."""
    group = store.require_group(group_id)
    store.require_user(user_id)
    if user_id in group.participants:
        return group

    group.participants.append(user_id)
    append_system_message(store, group, f"{_name_of(store, user_id)} joined via link")
    return group


def add_members(
    store: EntityStore,
    group_id: str,
    admin_id: str,
    member_ids: list[str],
) -> list[str]:
    """Add members on an admin's behalf.

    Silently skips users already present and users who have blocked the
    admin.  Returns the ids actually added.

    Raises
    ------
    NotGroupAdmin
        *admin_id* is not an admin of the group.
    NoValidMembers
        Nothing was left to add after filtering.
    """
    group = store.require_group(group_id)
    policy.require_group_admin(group, admin_id)

    added: list[str] = []
    for member_id in member_ids:
        user = store.get_user(member_id)
        if user is None:
            continue
        if policy.is_blocked_by(admin_id, user):
            logger.debug("Skipping %s: has blocked admin %s", member_id, admin_id)
            continue
        if member_id in group.participants or member_id in added:
            continue
        added.append(member_id)

    if not added:
        raise NoValidMembers()

    group.participants.extend(added)
    admin = store.get_user(admin_id)
    admin_name = admin.display_name if admin is not None else admin_id
    append_system_message(store, group, f"{admin_name} added {len(added)} members")
    return added


# ---------------------------------------------------------------------------
# Departures
# ---------------------------------------------------------------------------
def _remove_participant(
    store: EntityStore, group: Conversation, user_id: str, notice: str,
) -> Conversation | None:
    group.participants = [p for p in group.participants if p != user_id]
    group.admin_ids = [a for a in group.admin_ids if a != user_id]
    group.muted_users.pop(user_id, None)
    if user_id in group.typing_users:
        group.typing_users.remove(user_id)
    append_system_message(store, group, notice)

    if not group.participants:
        store.remove_conversation(group.id)
        logger.info("Group %s dissolved (no participants left)", group.id)
        return None
    return group


def leave_group(store: EntityStore, group_id: str, user_id: str) -> Conversation | None:
    """Remove *user_id*; returns None when the group dissolved."""
    group = store.require_group(group_id)
    policy.require_participant(group, user_id)
    return _remove_participant(
        store, group, user_id, f"{_name_of(store, user_id)} left the group",
    )


def kick_member(
    store: EntityStore, group_id: str, admin_id: str, user_id: str,
) -> Conversation | None:
    """Admin removes *user_id*; returns None when the group dissolved."""
    group = store.require_group(group_id)
    policy.require_group_admin(group, admin_id)
    policy.require_participant(group, user_id)
    return _remove_participant(
        store, group, user_id, f"{_name_of(store, user_id)} was kicked",
    )


# ---------------------------------------------------------------------------
# Moderation inside the group
# ---------------------------------------------------------------------------
def promote_to_admin(
    store: EntityStore, group_id: str, admin_id: str, user_id: str,
) -> bool:
    """Add *user_id* to the admin set.  Returns False if already an admin."""
    group = store.require_group(group_id)
    policy.require_group_admin(group, admin_id)
    policy.require_participant(group, user_id)
    if user_id in group.admin_ids:
        return False

    group.admin_ids.append(user_id)
    append_system_message(store, group, f"{_name_of(store, user_id)} is now an admin")
    return True


def mute_member(
    store: EntityStore,
    group_id: str,
    admin_id: str,
    user_id: str,
    duration_minutes: int,
) -> int | None:
    """Mute, re-mute or unmute *user_id*.

    ``0`` clears the mute, ``-1`` mutes until cleared, ``N > 0`` mutes for
    N minutes.  Returns the stored expiry (None when cleared).
    """
    group = store.require_group(group_id)
    policy.require_group_admin(group, admin_id)
    policy.require_participant(group, user_id)
    name = _name_of(store, user_id)

    if duration_minutes == 0:
        if group.muted_users.pop(user_id, None) is not None:
            append_system_message(store, group, f"{name} was unmuted")
        return None

    if duration_minutes == policy.MUTE_FOREVER:
        expiry = policy.MUTE_FOREVER
        notice = f"{name} was muted"
    elif duration_minutes > 0:
        expiry = store.now() + duration_minutes * _MINUTE_MS
        notice = f"{name} was muted for {duration_minutes} min"
    else:
        raise InvalidMuteDuration(duration_minutes)

    group.muted_users[user_id] = expiry
    append_system_message(store, group, notice)
    return expiry


def update_settings(
    store: EntityStore,
    group_id: str,
    admin_id: str,
    name: str,
    avatar_url: str,
) -> bool:
    """Rename / re-avatar the group.  Returns False when nothing changed."""
    group = store.require_group(group_id)
    policy.require_group_admin(group, admin_id)
    if group.name == name and group.avatar_url == avatar_url:
        return False

    group.name = name
    group.avatar_url = avatar_url
    append_system_message(store, group, "Group settings updated")
    return True
