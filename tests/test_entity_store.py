"""
tests/test_entity_store.py — Entities & EntityStore Unit Tests
===============================================================

Covers wire-format round trips, modifier sanitizing, effective status
views, uniqueness, cascading deletes and role reassignment.
"""

from __future__ import annotations

import pytest
from conftest import make_user
from pydantic import ValidationError

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
    BanKind,
    Conversation,
    CountryBan,
    Message,
    MessageKind,
    Modifier,
    Role,
    Snapshot,
    User,
    UserStatus,
)
from messenger.store.entity_store import EntityStore


class TestEntities:
    """Wire format and entity helpers."""

    def test_user_parses_camel_case_document(self):
        user = User.model_validate({
            "id": "u1",
            "username": "alice",
            "displayName": "Alice",
            "avatarUrl": "https://example.com/a.png",
            "blockedUserIds": ["u2"],
            "isBanned": False,
            "somethingNew": 42,
        })
        assert user.display_name == "Alice"
        assert user.blocked_user_ids == ["u2"]
        assert user.has_blocked("u2")

    def test_unknown_modifiers_are_dropped(self):
        user = User(
            id="u1", username="a", display_name="A",
            modifiers=["VIP", "FLYING", "VIP", "CANT_CHAT"],
        )
        assert user.modifiers == [Modifier.VIP, Modifier.CANT_CHAT]

    def test_always_online_overrides_effective_status(self):
        user = User(
            id="u1", username="a", display_name="A",
            status=UserStatus.OFFLINE, modifiers=["ALWAYS_ONLINE"],
        )
        assert user.status == UserStatus.OFFLINE
        assert user.effective_status == UserStatus.ONLINE

    def test_message_kind_uses_type_key(self):
        msg = Message.model_validate({
            "id": "m1", "senderId": "u1", "content": "hi",
            "timestamp": 5, "type": "image",
        })
        assert msg.kind == MessageKind.IMAGE
        dumped = msg.model_dump(mode="json", by_alias=True)
        assert dumped["type"] == "image"
        assert "kind" not in dumped

    def test_snapshot_document_uses_collection_names(self):
        snap = Snapshot(
            country_bans=[CountryBan(id="b1", country_code="US", kind=BanKind.FULL_CHAT)],
        )
        doc = snap.to_document()
        assert set(doc) == {"users", "conversations", "roles", "countryBans", "ads"}
        assert doc["countryBans"][0] == {"id": "b1", "countryCode": "US", "type": "FULL_CHAT"}
        assert Snapshot.from_document(doc) == snap

    def test_other_participant(self):
        conv = Conversation(id="c1", participants=["a", "b"])
        assert conv.other_participant("a") == "b"
        assert conv.other_participant("b") == "a"


class TestIngestion:
    """Bad records in a shared document are repaired or skipped, never fatal."""

    def test_invalid_optional_fields_fall_back_to_defaults(self):
        snap = Snapshot.from_document({
            "users": [
                {"id": "u1", "username": "alice", "displayName": "Alice",
                 "status": "away", "lastSeen": "yesterday", "country": "de"},
                {"id": "u2", "username": "bob", "displayName": "Bob"},
            ],
        })
        alice, bob = snap.users
        assert alice.status == UserStatus.OFFLINE
        assert alice.last_seen == 0
        assert alice.country == "DE"
        assert bob.username == "bob"

    def test_records_missing_required_fields_are_skipped(self):
        snap = Snapshot.from_document({
            "users": [{"id": 1}, {"id": "u2", "username": "bob", "displayName": "Bob"}],
            "countryBans": [{"id": "b1", "countryCode": "US", "type": "EVERYTHING"}],
            "roles": ["USER"],
        })
        assert [u.id for u in snap.users] == ["u2"]
        assert snap.country_bans == []
        assert snap.roles == []

    def test_bad_message_dropped_from_its_conversation(self):
        snap = Snapshot.from_document({
            "conversations": [{
                "id": "c1",
                "participants": ["u1", "u2"],
                "messages": [
                    {"id": "m1", "senderId": "u1", "content": "hi", "timestamp": 1},
                    {"id": "m2", "senderId": "u2", "timestamp": 2},
                ],
            }],
        })
        assert [m.id for m in snap.conversations[0].messages] == ["m1"]

    @pytest.mark.parametrize("raw", [None, [], {"users": "everyone"}])
    def test_malformed_document_still_rejected(self, raw):
        with pytest.raises(ValidationError):
            Snapshot.from_document(raw)

    def test_assignments_are_validated(self):
        user = User(id="u1", username="a", display_name="A")
        with pytest.raises(ValidationError):
            user.status = "away"
        user.country = " fr "
        assert user.country == "FR"


class TestUsers:
    def test_username_unique_case_insensitive(self, store, people):
        with pytest.raises(DuplicateUsername):
            make_user(store, "ALICE", id="u-other")

    def test_find_user_by_username_trims_and_ignores_case(self, store, people):
        assert store.find_user_by_username("  Bob ") is people["bob"]

    def test_get_user_returns_online_view_for_always_online(self, store):
        bot = make_user(store, "bot", modifiers=[Modifier.ALWAYS_ONLINE])
        view = store.get_user(bot.id)
        assert view.status == UserStatus.ONLINE
        # The stored record is untouched
        assert store.find_user(bot.id).status == UserStatus.OFFLINE

    def test_require_user_missing(self, store):
        with pytest.raises(UserNotFound):
            store.require_user("nobody")

    def test_remove_user_cascades_conversations(self, store, people):
        store.add_conversation(Conversation(id="c1", participants=["u-alice", "u-bob"]))
        store.add_conversation(Conversation(id="c2", participants=["u-bob", "u-carol"]))
        store.remove_user("u-alice")
        assert store.find_user("u-alice") is None
        assert [c.id for c in store.conversations] == ["c2"]


class TestRoles:
    def test_system_role_cannot_be_removed(self, store):
        with pytest.raises(SystemRoleProtected):
            store.remove_role("ADMIN")

    def test_remove_role_reassigns_holders(self, store, people):
        store.add_role(Role(id="MOD", name="Moderator"))
        people["alice"].role = "MOD"
        people["bob"].role = "MOD"

        assert store.remove_role("MOD") == 2
        assert people["alice"].role == "USER"
        assert store.get_role("MOD") is None

    def test_duplicate_role(self, store):
        with pytest.raises(RoleExists):
            store.add_role(Role(id="USER", name="Again"))

    def test_remove_unknown_role(self, store):
        with pytest.raises(RoleNotFound):
            store.remove_role("GHOST")


class TestCollections:
    def test_bans_for_country_keeps_order(self, store):
        store.add_country_ban(CountryBan(id="b1", country_code="US", kind=BanKind.USERNAME, target_user_id="x"))
        store.add_country_ban(CountryBan(id="b2", country_code="DE", kind=BanKind.FULL_CHAT))
        store.add_country_ban(CountryBan(id="b3", country_code="US", kind=BanKind.FULL_CHAT))
        assert [b.id for b in store.bans_for_country("US")] == ["b1", "b3"]

    def test_remove_missing_ban_and_ad(self, store):
        with pytest.raises(BanNotFound):
            store.remove_country_ban("nope")
        with pytest.raises(AdNotFound):
            store.remove_ad("nope")

    def test_conversations_sorted_by_last_activity(self, store, people):
        store.add_conversation(Conversation(id="old", participants=["u-alice"], last_message_timestamp=10))
        store.add_conversation(Conversation(id="new", participants=["u-alice"], last_message_timestamp=30))
        store.add_conversation(Conversation(id="mid", participants=["u-alice"], last_message_timestamp=20))
        store.add_conversation(Conversation(id="other", participants=["u-bob"], last_message_timestamp=99))
        assert [c.id for c in store.conversations_for("u-alice")] == ["new", "mid", "old"]

    def test_require_group_rejects_direct(self, store):
        store.add_conversation(Conversation(id="c1", participants=["a", "b"]))
        with pytest.raises(ConversationNotFound):
            store.require_group("c1")

    def test_find_direct_is_unordered(self, store):
        store.add_conversation(Conversation(id="c1", participants=["a", "b"]))
        assert store.find_direct("b", "a").id == "c1"
        assert store.find_direct("a", "c") is None


class TestSnapshot:
    def test_replace_all_is_wholesale_and_detached(self, store, people):
        snap = Snapshot(users=[User(id="z", username="zed", display_name="Zed")])
        store.replace_all(snap)
        assert [u.id for u in store.users] == ["z"]
        assert store.roles == []

        store.users[0].display_name = "Changed"
        assert snap.users[0].display_name == "Zed"

    def test_snapshot_is_a_deep_copy(self, store, people):
        snap = store.snapshot()
        snap.users[0].display_name = "Mutated"
        assert store.users[0].display_name == "Alice"

    def test_stats_counts_effective_online(self, store, people):
        people["alice"].status = UserStatus.ONLINE
        make_user(store, "bot", modifiers=[Modifier.ALWAYS_ONLINE])
        store.add_conversation(Conversation(
            id="c1", participants=["u-alice", "u-bob"],
            messages=[Message(id="m1", sender_id="u-alice", content="hi", timestamp=1)],
        ))
        assert store.stats() == {
            "totalUsers": 4,
            "totalConversations": 1,
            "totalMessages": 1,
            "activeNow": 2,
        }

    def test_is_empty(self):
        assert EntityStore().is_empty
