"""
messenger.services.conversation_service — Direct Chats, Messages & Reactions
=============================================================================

Message-level operations on any conversation: lazy direct-chat creation,
sending (gated by the moderation policy), unread tracking, reactions and
typing indicators.  Plus the consumer-boundary helpers that apply blocking
and per-viewer content filtering.

Every function takes the :class:`EntityStore` explicitly and mutates it in
place; persisting the result is the caller's job.
"""

from __future__ import annotations

import logging

from messenger.constants import SYSTEM_SENDER_ID, censor_text, new_id
from messenger.engine import policy
from messenger.errors import MessageNotFound
from messenger.store.entities import (
    Conversation,
    Message,
    MessageKind,
    Reaction,
    User,
)
from messenger.store.entity_store import EntityStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Direct conversations
# ---------------------------------------------------------------------------
def get_or_create_direct(store: EntityStore, user_a: str, user_b: str) -> Conversation:
    """Return the direct conversation for the unordered pair, creating it once."""
    store.require_user(user_a)
    store.require_user(user_b)

    conv = store.find_direct(user_a, user_b)
    if conv is not None:
        return conv

    conv = Conversation(
        id=new_id("conv"),
        participants=[user_a, user_b],
        unread_count={user_a: 0, user_b: 0},
        last_message_timestamp=0,
        is_group=False,
    )
    store.add_conversation(conv)
    logger.info("Created direct conversation %s (%s, %s)", conv.id, user_a, user_b)
    return conv


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------
def send_message(
    store: EntityStore,
    conversation_id: str,
    sender_id: str,
    content: str,
    kind: MessageKind = MessageKind.TEXT,
    reply_to_id: str | None = None,
) -> Message:
    """Validate, run the moderation policy, then record a user message.

    Raises
    ------
    ConversationNotFound, UserNotFound, NotParticipant, MessageNotFound
        Validation failures.
    PolicyRejection
        The first moderation rule that refused the message.
    """
    conv = store.require_conversation(conversation_id)
    sender = store.require_user(sender_id)
    policy.require_participant(conv, sender_id)
    if reply_to_id is not None and conv.find_message(reply_to_id) is None:
        raise MessageNotFound(reply_to_id)

    now = store.now()
    policy.evaluate_message(
        sender,
        conv,
        store.bans_for_country(sender.country),
        lookup_user=store.get_user,
        now=now,
    )

    message = Message(
        id=new_id("msg"),
        sender_id=sender_id,
        content=content,
        timestamp=now,
        kind=kind,
        reply_to_id=reply_to_id,
    )
    conv.messages.append(message)
    conv.last_message_timestamp = message.timestamp
    for participant in conv.participants:
        if participant != sender_id:
            conv.unread_count[participant] = conv.unread_count.get(participant, 0) + 1
    return message


def append_system_message(store: EntityStore, conv: Conversation, content: str) -> Message:
    """Append an audit-trail message authored by the system sentinel."""
    message = Message(
        id=new_id("sys"),
        sender_id=SYSTEM_SENDER_ID,
        content=content,
        timestamp=store.now(),
        kind=MessageKind.SYSTEM,
    )
    conv.messages.append(message)
    return message


def mark_as_read(store: EntityStore, conversation_id: str, user_id: str) -> None:
    conv = store.require_conversation(conversation_id)
    conv.unread_count[user_id] = 0


# ---------------------------------------------------------------------------
# Reactions & typing
# ---------------------------------------------------------------------------
def toggle_reaction(
    store: EntityStore,
    conversation_id: str,
    message_id: str,
    user_id: str,
    emoji: str,
) -> Message:
    """Add the (user, emoji) reaction if absent, remove it if present."""
    conv = store.require_conversation(conversation_id)
    policy.evaluate_reaction(store.require_user(user_id))
    message = conv.find_message(message_id)
    if message is None:
        raise MessageNotFound(message_id)

    for idx, reaction in enumerate(message.reactions):
        if reaction.user_id == user_id and reaction.emoji == emoji:
            del message.reactions[idx]
            return message
    message.reactions.append(Reaction(emoji=emoji, user_id=user_id))
    return message


def set_typing(store: EntityStore, conversation_id: str, user_id: str, typing: bool) -> bool:
    """Add or remove *user_id* from the typing set.

    Returns True only if the set actually changed.  Unknown conversations
    are ignored (the indicator is transient).
    """
    conv = store.get_conversation(conversation_id)
    if conv is None:
        return False
    if typing and user_id not in conv.typing_users:
        conv.typing_users.append(user_id)
        return True
    if not typing and user_id in conv.typing_users:
        conv.typing_users.remove(user_id)
        return True
    return False


# ---------------------------------------------------------------------------
# Consumer-boundary views
# ---------------------------------------------------------------------------
def contacts_for(store: EntityStore, viewer_id: str, search: str = "") -> list[User]:
    """Sidebar users for *viewer_id*.

    With an empty *search*: everyone the viewer shares a conversation with.
    Otherwise: users whose username contains *search* (case-insensitive).
    Users who have blocked the viewer are never listed.
    """
    users = store.get_users()
    term = search.strip().lower()
    if term:
        candidates = [
            u for u in users if u.id != viewer_id and term in u.username.lower()
        ]
    else:
        contact_ids = {
            p
            for conv in store.conversations_for(viewer_id)
            for p in conv.participants
            if p != viewer_id
        }
        candidates = [u for u in users if u.id in contact_ids]
    return [u for u in candidates if not policy.is_blocked_by(viewer_id, u)]


def render_content(viewer: User, message: Message) -> str | None:
    """Text *viewer* should see for *message*.

    None when the viewer may not see messages at all.  The viewer's own
    messages and non-text messages are never filtered.
    """
    if not policy.can_see_messages(viewer):
        return None
    prefs = viewer.preferences
    if (
        message.kind == MessageKind.TEXT
        and prefs.censorship_enabled
        and message.sender_id != viewer.id
    ):
        return censor_text(message.content, prefs.censorship_level)
    return message.content
