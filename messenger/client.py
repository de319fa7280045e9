"""
messenger.client — Client Façade
=================================

:class:`MessengerClient` is the one object a front end talks to.  Each
mutating method runs the matching service function against the shared
:class:`EntityStore` and then awaits :meth:`SyncController.save`, so a
call that returns has been mirrored locally and (while online) pushed.
Errors from the services propagate unchanged; nothing is saved when an
operation raises.

Usage::

    client = MessengerClient.from_config(load_config())
    await client.initialize()
    token = await client.login("alice", "hunter2")
    conv = await client.open_direct(bob_id)
    await client.send_message(conv.id, "hi")
    client.start_polling()
    ...
    await client.close()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from messenger.config import MessengerConfig, load_admin_password, load_session_secret
from messenger.constants import ADMIN_ROLE_ID, DEFAULT_ROLE_ID
from messenger.engine import policy
from messenger.engine.sync import SyncController
from messenger.engine.transport import HttpSnapshotTransport, SnapshotTransport
from messenger.errors import AdminRequired, NotSignedIn
from messenger.services import (
    admin_service,
    assistant_service,
    conversation_service,
    group_service,
    seed,
    session_service,
    user_service,
)
from messenger.services.assistant_service import TextCompletionService
from messenger.store.engine import create_mirror_engine, init_mirror, run_db
from messenger.store.entities import (
    Ad,
    BanKind,
    Conversation,
    CountryBan,
    Message,
    MessageKind,
    Modifier,
    Role,
    User,
)
from messenger.store.entity_store import EntityStore
from messenger.store.mirror import LocalMirror

logger = logging.getLogger(__name__)


class MessengerClient:
    """Signed-in view of the shared document for one front end."""

    def __init__(
        self,
        store: EntityStore,
        controller: SyncController,
        mirror: LocalMirror,
        *,
        session_secret: str,
        completion: TextCompletionService | None = None,
        admin_password: str | None = None,
        default_country: str = "US",
        session_ttl_days: int = 30,
        assistant_delay: float = 1.5,
    ) -> None:
        self.store = store
        self._sync = controller
        self._mirror = mirror
        self._secret = session_secret
        self._completion = completion
        self._admin_password = admin_password
        self._default_country = default_country
        self._session_ttl_days = session_ttl_days
        self._assistant_delay = assistant_delay

        self._current_user_id: str | None = None
        self._assistant_tasks: set[asyncio.Task] = set()
        self._transport: SnapshotTransport | None = None
        # Latest ``Set-Cookie`` value for the auth cookie (None until sign-in)
        self.auth_cookie: str | None = None
        controller.add_listener(self._repair_after_poll)

    @classmethod
    def from_config(
        cls,
        cfg: MessengerConfig,
        *,
        session_secret: str | None = None,
        completion: TextCompletionService | None = None,
        admin_password: str | None = None,
    ) -> MessengerClient:
        """Wire a client against the HTTP snapshot server in *cfg*.

        Secrets not passed explicitly come from the environment.
        """
        session_secret = session_secret or load_session_secret()
        admin_password = admin_password or load_admin_password()
        engine = create_mirror_engine(cfg.mirror_path)
        init_mirror(engine)
        mirror = LocalMirror(engine)
        store = EntityStore()
        transport = HttpSnapshotTransport(cfg.server_url, timeout=cfg.fetch_timeout_seconds)
        controller = SyncController(
            store,
            transport,
            mirror,
            fetch_timeout=cfg.fetch_timeout_seconds,
            poll_interval=cfg.poll_interval_seconds,
        )
        client = cls(
            store,
            controller,
            mirror,
            session_secret=session_secret,
            completion=completion,
            admin_password=admin_password,
            default_country=cfg.default_country,
            session_ttl_days=cfg.session_ttl_days,
        )
        client._transport = transport
        return client

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    @property
    def is_online(self) -> bool:
        return self._sync.is_online

    async def initialize(self) -> None:
        """Pull (or fall back to the mirror), seed, repair, and save."""
        await self._sync.sync()
        changed = seed.seed_defaults(self.store, self._admin_password)
        changed = seed.ensure_system_consistency(self.store, self._admin_password) > 0 or changed
        if changed:
            await self._sync.save()
        logger.info(
            "Client initialized (%s, %d users)",
            "online" if self.is_online else "offline",
            len(self.store.users),
        )

    async def refresh(self) -> bool:
        """Run one poll cycle now, listeners included."""
        return await self._sync.poll_once()

    async def _repair_after_poll(self, ok: bool) -> None:
        if not ok:
            return
        if seed.ensure_system_consistency(self.store, self._admin_password):
            await self._sync.save()

    def start_polling(self) -> None:
        self._sync.start()

    async def stop_polling(self) -> None:
        await self._sync.stop()

    async def wait_for_assistants(self) -> None:
        """Block until every scheduled assistant reply has finished."""
        while self._assistant_tasks:
            await asyncio.gather(*list(self._assistant_tasks), return_exceptions=True)

    async def close(self) -> None:
        await self._sync.stop()
        for task in list(self._assistant_tasks):
            task.cancel()
        await asyncio.gather(*list(self._assistant_tasks), return_exceptions=True)
        if isinstance(self._transport, HttpSnapshotTransport):
            await self._transport.aclose()

    # -------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------
    @property
    def current_user(self) -> User | None:
        if self._current_user_id is None:
            return None
        return self.store.get_user(self._current_user_id)

    def _require_current(self) -> str:
        if self._current_user_id is None or self.store.find_user(self._current_user_id) is None:
            raise NotSignedIn()
        return self._current_user_id

    def _require_admin(self) -> str:
        user_id = self._require_current()
        if self.store.require_user(user_id).role != ADMIN_ROLE_ID:
            raise AdminRequired(user_id)
        return user_id

    async def _sign_in(self, user: User) -> str:
        self._current_user_id = user.id
        await run_db(self._mirror.set_current_user_id, user.id)
        await self._sync.save()
        token = session_service.issue_token(user, self._secret, self._session_ttl_days)
        self.auth_cookie = session_service.auth_cookie_header(token, self._session_ttl_days)
        return token

    async def register(
        self,
        username: str,
        password: str,
        display_name: str | None = None,
        country: str | None = None,
    ) -> str:
        """Create an account, sign it in and return its session token."""
        user = user_service.register(
            self.store, username, password,
            display_name=display_name,
            country=country or self._default_country,
        )
        return await self._sign_in(user)

    async def login(self, username: str, password: str) -> str:
        user = user_service.login(self.store, username, password)
        return await self._sign_in(user)

    async def restore_session(
        self, token: str | None = None, *, cookie: str | None = None,
    ) -> User | None:
        """Resume from *token*, from a ``Cookie`` header, or from the mirrored
        identity when neither is given.

        A stale identity (deleted or banned account) is cleared.
        """
        if token is None and cookie is not None:
            token = session_service.parse_auth_cookie(cookie) or ""
        if token is not None:
            user = session_service.resolve_token(self.store, token, self._secret)
        else:
            user_id = await run_db(self._mirror.get_current_user_id)
            user = session_service.resolve_user(self.store, user_id)

        if user is None:
            self._current_user_id = None
            self.auth_cookie = session_service.clear_cookie_header()
            await run_db(self._mirror.clear_current_user)
            return None
        self._current_user_id = user.id
        await run_db(self._mirror.set_current_user_id, user.id)
        return self.store.get_user(user.id)

    async def logout(self) -> None:
        if self._current_user_id is None:
            return
        user_service.logout(self.store, self._current_user_id)
        self._current_user_id = None
        self.auth_cookie = session_service.clear_cookie_header()
        await run_db(self._mirror.clear_current_user)
        await self._sync.save()

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def conversations(self) -> list[Conversation]:
        return self.store.conversations_for(self._require_current())

    def contacts(self, search: str = "") -> list[User]:
        return conversation_service.contacts_for(self.store, self._require_current(), search)

    def ads(self) -> list[Ad]:
        """Ads to show the signed-in user (none for VIP accounts)."""
        viewer = self.store.require_user(self._require_current())
        return self.store.get_ads() if policy.shows_ads(viewer) else []

    def render(self, message: Message) -> str | None:
        viewer = self.current_user
        if viewer is None:
            raise NotSignedIn()
        return conversation_service.render_content(viewer, message)

    # -------------------------------------------------------------------
    # Conversations
    # -------------------------------------------------------------------
    async def open_direct(self, other_user_id: str) -> Conversation:
        me = self._require_current()
        existing = self.store.find_direct(me, other_user_id)
        conv = conversation_service.get_or_create_direct(self.store, me, other_user_id)
        if existing is None:
            await self._sync.save()
        return conv

    async def send_message(
        self,
        conversation_id: str,
        content: str,
        kind: MessageKind = MessageKind.TEXT,
        reply_to_id: str | None = None,
    ) -> Message:
        message = conversation_service.send_message(
            self.store, conversation_id, self._require_current(), content, kind, reply_to_id,
        )
        await self._sync.save()
        self._schedule_assistant(conversation_id, message)
        return message

    def _schedule_assistant(self, conversation_id: str, message: Message) -> None:
        conv = self.store.get_conversation(conversation_id)
        if conv is None or assistant_service.assistant_for(conv, message.sender_id) is None:
            return

        async def _reply() -> None:
            await asyncio.sleep(self._assistant_delay)
            await assistant_service.respond(
                self.store, conversation_id, message, self._completion,
                on_change=self._sync.save,
            )

        task = asyncio.get_running_loop().create_task(_reply(), name=f"assistant-{conversation_id}")
        self._assistant_tasks.add(task)
        task.add_done_callback(self._assistant_tasks.discard)

    async def mark_as_read(self, conversation_id: str) -> None:
        conversation_service.mark_as_read(self.store, conversation_id, self._require_current())
        await self._sync.save()

    async def toggle_reaction(self, conversation_id: str, message_id: str, emoji: str) -> Message:
        message = conversation_service.toggle_reaction(
            self.store, conversation_id, message_id, self._require_current(), emoji,
        )
        await self._sync.save()
        return message

    async def set_typing(self, conversation_id: str, typing: bool) -> bool:
        changed = conversation_service.set_typing(
            self.store, conversation_id, self._require_current(), typing,
        )
        if changed:
            await self._sync.save()
        return changed

    # -------------------------------------------------------------------
    # Groups
    # -------------------------------------------------------------------
    async def create_group(
        self, name: str, member_ids: list[str], avatar_url: str | None = None,
    ) -> Conversation:
        group = group_service.create_group(
            self.store, name, self._require_current(), member_ids, avatar_url,
        )
        await self._sync.save()
        return group

    async def join_group(self, group_id: str) -> Conversation:
        group = group_service.join_group(self.store, group_id, self._require_current())
        await self._sync.save()
        return group

    async def add_members(self, group_id: str, member_ids: list[str]) -> list[str]:
        added = group_service.add_members(self.store, group_id, self._require_current(), member_ids)
        await self._sync.save()
        return added

    async def leave_group(self, group_id: str) -> Conversation | None:
        group = group_service.leave_group(self.store, group_id, self._require_current())
        await self._sync.save()
        return group

    async def kick_member(self, group_id: str, user_id: str) -> Conversation | None:
        group = group_service.kick_member(self.store, group_id, self._require_current(), user_id)
        await self._sync.save()
        return group

    async def promote_to_admin(self, group_id: str, user_id: str) -> bool:
        changed = group_service.promote_to_admin(
            self.store, group_id, self._require_current(), user_id,
        )
        if changed:
            await self._sync.save()
        return changed

    async def mute_member(self, group_id: str, user_id: str, duration_minutes: int) -> int | None:
        expiry = group_service.mute_member(
            self.store, group_id, self._require_current(), user_id, duration_minutes,
        )
        await self._sync.save()
        return expiry

    async def update_group_settings(self, group_id: str, name: str, avatar_url: str) -> bool:
        changed = group_service.update_settings(
            self.store, group_id, self._require_current(), name, avatar_url,
        )
        if changed:
            await self._sync.save()
        return changed

    # -------------------------------------------------------------------
    # Own account
    # -------------------------------------------------------------------
    async def update_profile(self, **changes: Any) -> User:
        """Edit the signed-in user's own profile fields."""
        user = user_service.update_profile(self.store, self._require_current(), **changes)
        await self._sync.save()
        return user

    async def toggle_block(self, target_user_id: str) -> User:
        user = user_service.toggle_block(self.store, self._require_current(), target_user_id)
        await self._sync.save()
        return user

    # -------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------
    async def create_user(
        self,
        username: str,
        password: str | None,
        display_name: str | None = None,
        role: str = DEFAULT_ROLE_ID,
        country: str | None = None,
    ) -> User:
        self._require_admin()
        user = user_service.create_user(
            self.store, username, password, display_name, role,
            country or self._default_country,
        )
        await self._sync.save()
        return user

    async def edit_user(self, user_id: str, **changes: Any) -> User:
        self._require_admin()
        user = user_service.edit_user(self.store, user_id, **changes)
        await self._sync.save()
        return user

    async def delete_user(self, user_id: str) -> None:
        self._require_admin()
        user_service.delete_user(self.store, user_id)
        await self._sync.save()

    async def set_banned(self, user_id: str, banned: bool) -> User:
        self._require_admin()
        user = user_service.set_banned(self.store, user_id, banned)
        await self._sync.save()
        return user

    async def set_modifiers(self, user_id: str, modifiers: list[Modifier]) -> User:
        self._require_admin()
        user = user_service.set_modifiers(self.store, user_id, modifiers)
        await self._sync.save()
        return user

    async def assign_role(self, user_id: str, role_id: str) -> None:
        self._require_admin()
        admin_service.assign_role(self.store, user_id, role_id)
        await self._sync.save()

    async def add_role(self, name: str, description: str = "", color: str = "gray") -> Role:
        self._require_admin()
        role = admin_service.add_role(self.store, name, description, color)
        await self._sync.save()
        return role

    async def delete_role(self, role_id: str) -> int:
        self._require_admin()
        reassigned = admin_service.delete_role(self.store, role_id)
        await self._sync.save()
        return reassigned

    async def add_ad(self, name: str, text: str, poster_url: str, link: str | None = None) -> Ad:
        self._require_admin()
        ad = admin_service.add_ad(self.store, name, text, poster_url, link)
        await self._sync.save()
        return ad

    async def delete_ad(self, ad_id: str) -> None:
        self._require_admin()
        admin_service.delete_ad(self.store, ad_id)
        await self._sync.save()

    async def add_country_ban(
        self,
        country_code: str,
        kind: BanKind,
        target_role_id: str | None = None,
        target_user_id: str | None = None,
    ) -> CountryBan:
        self._require_admin()
        ban = admin_service.add_country_ban(
            self.store, country_code, kind, target_role_id, target_user_id,
        )
        await self._sync.save()
        return ban

    async def delete_country_ban(self, ban_id: str) -> None:
        self._require_admin()
        admin_service.delete_country_ban(self.store, ban_id)
        await self._sync.save()

    def stats(self) -> dict[str, int]:
        self._require_admin()
        return admin_service.get_stats(self.store)
