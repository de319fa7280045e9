"""
messenger.store.entity_store — In-Memory Entity Store
======================================================

The canonical in-memory view of the shared document.  Every other
component reads and writes through one explicitly constructed
:class:`EntityStore` that is passed to it; there is no module-level
instance.

The store performs no locking: it is only ever touched from the single
event loop of one client.  Persistence is not its concern either; the
:class:`~messenger.engine.sync.SyncController` snapshots it after each
mutation and replaces it wholesale on each successful pull.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from messenger.constants import DEFAULT_ROLE_ID, now_ms
from messenger.errors import (
    AdNotFound,
    BanNotFound,
    ConversationNotFound,
    DuplicateUsername,
    RoleExists,
    RoleNotFound,
    SystemRoleProtected,
    UserNotFound,
)
from messenger.store.entities import (
    Ad,
    Conversation,
    CountryBan,
    Role,
    Snapshot,
    User,
    UserStatus,
)

logger = logging.getLogger(__name__)


class EntityStore:
    """Users, conversations, roles, geo-bans and ads held in memory.

    Read accessors named ``get_*`` return *views*: a user carrying the
    ALWAYS_ONLINE modifier comes back as a copy with status ``online``.
    Mutating code must go through ``require_*`` / ``find_user``, which
    return the stored objects themselves.

    Usage::

        store = EntityStore()
        store.replace_all(snapshot)
        user = store.require_user("user-1")
    """

    def __init__(self, clock: Callable[[], int] = now_ms) -> None:
        self._clock = clock
        self.users: list[User] = []
        self.conversations: list[Conversation] = []
        self.roles: list[Role] = []
        self.country_bans: list[CountryBan] = []
        self.ads: list[Ad] = []

    def now(self) -> int:
        """Current time in epoch milliseconds from the injected clock."""
        return self._clock()

    # -------------------------------------------------------------------
    # Whole-document operations
    # -------------------------------------------------------------------
    def replace_all(self, snapshot: Snapshot) -> None:
        """Swap every collection for the snapshot's (no field-level merge)."""
        snapshot = snapshot.model_copy(deep=True)
        self.users = snapshot.users
        self.conversations = snapshot.conversations
        self.roles = snapshot.roles
        self.country_bans = snapshot.country_bans
        self.ads = snapshot.ads

    def snapshot(self) -> Snapshot:
        """Deep copy of the current state, safe to hand to another thread."""
        return Snapshot(
            users=self.users,
            conversations=self.conversations,
            roles=self.roles,
            country_bans=self.country_bans,
            ads=self.ads,
        ).model_copy(deep=True)

    @property
    def is_empty(self) -> bool:
        return not self.users

    # -------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------
    @staticmethod
    def _view(user: User) -> User:
        if user.effective_status != user.status:
            return user.model_copy(update={"status": UserStatus.ONLINE})
        return user

    def get_user(self, user_id: str) -> User | None:
        user = self.find_user(user_id)
        return self._view(user) if user is not None else None

    def get_users(self) -> list[User]:
        return [self._view(u) for u in self.users]

    def require_user(self, user_id: str) -> User:
        user = self.find_user(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    def find_user_by_username(self, username: str) -> User | None:
        """Case-insensitive lookup of the stored user."""
        wanted = username.strip().lower()
        return next((u for u in self.users if u.username.lower() == wanted), None)

    def find_user(self, user_id: str) -> User | None:
        return next((u for u in self.users if u.id == user_id), None)

    def add_user(self, user: User) -> User:
        if self.find_user_by_username(user.username) is not None:
            raise DuplicateUsername(user.username)
        self.users.append(user)
        return user

    def remove_user(self, user_id: str) -> None:
        """Delete a user and every conversation they participate in."""
        self.require_user(user_id)
        self.users = [u for u in self.users if u.id != user_id]
        before = len(self.conversations)
        self.conversations = [
            c for c in self.conversations if user_id not in c.participants
        ]
        logger.info(
            "Deleted user %s and %d conversation(s)",
            user_id, before - len(self.conversations),
        )

    # -------------------------------------------------------------------
    # Roles
    # -------------------------------------------------------------------
    def get_roles(self) -> list[Role]:
        return list(self.roles)

    def get_role(self, role_id: str) -> Role | None:
        return next((r for r in self.roles if r.id == role_id), None)

    def add_role(self, role: Role) -> Role:
        if self.get_role(role.id) is not None:
            raise RoleExists(role.id)
        self.roles.append(role)
        return role

    def remove_role(self, role_id: str) -> int:
        """Delete a non-system role; holders fall back to the default role.

        Returns the number of users reassigned.
        """
        role = self.get_role(role_id)
        if role is None:
            raise RoleNotFound(role_id)
        if role.is_system:
            raise SystemRoleProtected(role_id)

        reassigned = 0
        for user in self.users:
            if user.role == role_id:
                user.role = DEFAULT_ROLE_ID
                reassigned += 1
        self.roles = [r for r in self.roles if r.id != role_id]
        return reassigned

    # -------------------------------------------------------------------
    # Country bans
    # -------------------------------------------------------------------
    def get_country_bans(self) -> list[CountryBan]:
        return list(self.country_bans)

    def bans_for_country(self, country_code: str) -> list[CountryBan]:
        """Bans matching *country_code*, in stored order."""
        return [b for b in self.country_bans if b.country_code == country_code]

    def add_country_ban(self, ban: CountryBan) -> CountryBan:
        self.country_bans.append(ban)
        return ban

    def remove_country_ban(self, ban_id: str) -> None:
        if not any(b.id == ban_id for b in self.country_bans):
            raise BanNotFound(ban_id)
        self.country_bans = [b for b in self.country_bans if b.id != ban_id]

    # -------------------------------------------------------------------
    # Ads
    # -------------------------------------------------------------------
    def get_ads(self) -> list[Ad]:
        return list(self.ads)

    def add_ad(self, ad: Ad) -> Ad:
        self.ads.append(ad)
        return ad

    def remove_ad(self, ad_id: str) -> None:
        if not any(a.id == ad_id for a in self.ads):
            raise AdNotFound(ad_id)
        self.ads = [a for a in self.ads if a.id != ad_id]

    # -------------------------------------------------------------------
    # Conversations
    # -------------------------------------------------------------------
    def conversations_for(self, user_id: str) -> list[Conversation]:
        """Conversations *user_id* takes part in, most recent activity first."""
        return sorted(
            (c for c in self.conversations if user_id in c.participants),
            key=lambda c: c.last_message_timestamp,
            reverse=True,
        )

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        return next((c for c in self.conversations if c.id == conversation_id), None)

    def require_conversation(self, conversation_id: str) -> Conversation:
        conv = self.get_conversation(conversation_id)
        if conv is None:
            raise ConversationNotFound(conversation_id)
        return conv

    def require_group(self, group_id: str) -> Conversation:
        conv = self.get_conversation(group_id)
        if conv is None or not conv.is_group:
            raise ConversationNotFound(group_id)
        return conv

    def find_direct(self, user_a: str, user_b: str) -> Conversation | None:
        """The direct conversation for the unordered pair, if any."""
        pair = {user_a, user_b}
        return next(
            (
                c for c in self.conversations
                if not c.is_group and set(c.participants) == pair
            ),
            None,
        )

    def add_conversation(self, conversation: Conversation) -> Conversation:
        self.conversations.append(conversation)
        return conversation

    def remove_conversation(self, conversation_id: str) -> None:
        self.conversations = [c for c in self.conversations if c.id != conversation_id]

    # -------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------
    def stats(self) -> dict[str, int]:
        return {
            "totalUsers": len(self.users),
            "totalConversations": len(self.conversations),
            "totalMessages": sum(len(c.messages) for c in self.conversations),
            "activeNow": sum(
                1 for u in self.users if u.effective_status == UserStatus.ONLINE
            ),
        }
