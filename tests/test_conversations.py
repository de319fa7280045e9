"""
tests/test_conversations.py — Direct Chats, Messages, Reactions & Typing
=========================================================================
"""

from __future__ import annotations

import pytest

from messenger.errors import (
    ChatRestricted,
    ConversationNotFound,
    MessageNotFound,
    NotParticipant,
    UserNotFound,
)
from messenger.services import conversation_service as cs
from messenger.store.entities import Message, MessageKind, Modifier, UserPreferences


@pytest.fixture
def direct(store, people):
    return cs.get_or_create_direct(store, "u-alice", "u-bob")


class TestDirectConversations:
    def test_created_once_per_pair(self, store, direct):
        again = cs.get_or_create_direct(store, "u-bob", "u-alice")
        assert again is direct
        assert len(store.conversations) == 1
        assert direct.unread_count == {"u-alice": 0, "u-bob": 0}
        assert direct.is_group is False

    def test_unknown_user(self, store, people):
        with pytest.raises(UserNotFound):
            cs.get_or_create_direct(store, "u-alice", "u-ghost")


class TestSendMessage:
    def test_send_updates_unread_and_timestamp(self, store, direct, clock):
        clock.advance(500)
        msg = cs.send_message(store, direct.id, "u-alice", "hi")
        assert msg.timestamp == clock.now
        assert direct.last_message_timestamp == clock.now
        assert direct.unread_count == {"u-alice": 0, "u-bob": 1}

        cs.send_message(store, direct.id, "u-alice", "you there?")
        assert direct.unread_count["u-bob"] == 2

    def test_mark_as_read_resets_only_reader(self, store, direct):
        cs.send_message(store, direct.id, "u-alice", "one")
        cs.send_message(store, direct.id, "u-bob", "two")
        cs.mark_as_read(store, direct.id, "u-bob")
        assert direct.unread_count == {"u-alice": 1, "u-bob": 0}

    def test_reply_must_reference_existing_message(self, store, direct):
        first = cs.send_message(store, direct.id, "u-alice", "question")
        reply = cs.send_message(store, direct.id, "u-bob", "answer", reply_to_id=first.id)
        assert reply.reply_to_id == first.id
        with pytest.raises(MessageNotFound):
            cs.send_message(store, direct.id, "u-bob", "?", reply_to_id="msg-missing")

    def test_outsider_cannot_send(self, store, direct):
        with pytest.raises(NotParticipant):
            cs.send_message(store, direct.id, "u-carol", "let me in")

    def test_unknown_conversation(self, store, people):
        with pytest.raises(ConversationNotFound):
            cs.send_message(store, "conv-nope", "u-alice", "hi")

    def test_image_message_kind(self, store, direct):
        msg = cs.send_message(store, direct.id, "u-alice", "data:image/png;base64,AAA", MessageKind.IMAGE)
        assert msg.kind == MessageKind.IMAGE


class TestReactions:
    def test_double_toggle_restores_state(self, store, direct):
        msg = cs.send_message(store, direct.id, "u-alice", "hi")
        unread_before = dict(direct.unread_count)

        cs.toggle_reaction(store, direct.id, msg.id, "u-bob", "👍")
        assert [(r.user_id, r.emoji) for r in msg.reactions] == [("u-bob", "👍")]
        cs.toggle_reaction(store, direct.id, msg.id, "u-bob", "👍")
        assert msg.reactions == []
        assert direct.unread_count == unread_before

    def test_different_emoji_are_independent(self, store, direct):
        msg = cs.send_message(store, direct.id, "u-alice", "hi")
        cs.toggle_reaction(store, direct.id, msg.id, "u-bob", "👍")
        cs.toggle_reaction(store, direct.id, msg.id, "u-bob", "❤️")
        cs.toggle_reaction(store, direct.id, msg.id, "u-alice", "👍")
        assert len(msg.reactions) == 3

    def test_chat_restricted_cannot_react(self, store, people, direct):
        msg = cs.send_message(store, direct.id, "u-alice", "hi")
        people["bob"].modifiers = [Modifier.CANT_CHAT]
        with pytest.raises(ChatRestricted):
            cs.toggle_reaction(store, direct.id, msg.id, "u-bob", "👍")

    def test_unknown_message(self, store, direct):
        with pytest.raises(MessageNotFound):
            cs.toggle_reaction(store, direct.id, "msg-x", "u-bob", "👍")


class TestTyping:
    def test_reports_only_real_changes(self, store, direct):
        assert cs.set_typing(store, direct.id, "u-alice", True) is True
        assert cs.set_typing(store, direct.id, "u-alice", True) is False
        assert direct.typing_users == ["u-alice"]
        assert cs.set_typing(store, direct.id, "u-alice", False) is True
        assert cs.set_typing(store, direct.id, "u-alice", False) is False

    def test_unknown_conversation_is_ignored(self, store):
        assert cs.set_typing(store, "nope", "u-alice", True) is False


class TestConsumerViews:
    def test_contacts_are_conversation_partners(self, store, direct):
        assert [u.id for u in cs.contacts_for(store, "u-alice")] == ["u-bob"]

    def test_search_excludes_self_and_blockers(self, store, people):
        people["carol"].blocked_user_ids = ["u-alice"]
        found = cs.contacts_for(store, "u-alice", "o")
        assert [u.id for u in found] == ["u-bob"]

    def test_blocked_partner_hidden(self, store, people, direct):
        people["bob"].blocked_user_ids = ["u-alice"]
        assert cs.contacts_for(store, "u-alice") == []
        # History is untouched
        assert store.get_conversation(direct.id) is direct

    def test_render_censors_others_text(self, people):
        viewer = people["alice"]
        viewer.preferences = UserPreferences(censorship_enabled=True, censorship_level="low")
        incoming = Message(id="m1", sender_id="u-bob", content="what the hell", timestamp=1)
        own = Message(id="m2", sender_id="u-alice", content="what the hell", timestamp=2)
        assert cs.render_content(viewer, incoming) == "what the ****"
        assert cs.render_content(viewer, own) == "what the hell"

    def test_render_hidden_for_cant_see_messages(self, people):
        viewer = people["alice"]
        viewer.modifiers = [Modifier.CANT_SEE_MESSAGES]
        msg = Message(id="m1", sender_id="u-bob", content="hi", timestamp=1)
        assert cs.render_content(viewer, msg) is None
