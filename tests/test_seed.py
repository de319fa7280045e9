"""
tests/test_seed.py — Default Data & System Consistency
=======================================================
"""

from __future__ import annotations

from messenger.services import seed
from messenger.services.user_service import verify_password
from messenger.store.entities import Modifier, Role, User, UserStatus
from messenger.store.entity_store import EntityStore

ASSISTANT_IDS = {"ai-assistant", "deepseek-assistant", "chatgpt-assistant"}


class TestSeedDefaults:
    def test_empty_store_gets_defaults(self, clock):
        store = EntityStore(clock=clock)
        assert seed.seed_defaults(store, "admin-pw") is True

        assert {r.id for r in store.roles} == {"ADMIN", "USER", "AI", "BANNED"}
        assert all(r.is_system for r in store.roles)

        admin = store.find_user_by_username("admin")
        assert admin.role == "ADMIN"
        assert verify_password("admin-pw", admin.password_hash)

        bots = [u for u in store.users if u.role == "AI"]
        assert {u.id for u in bots} == ASSISTANT_IDS
        assert all(u.has_modifier(Modifier.ALWAYS_ONLINE) for u in bots)
        assert all(u.password_hash is None for u in bots)
        assert store.ads

    def test_admin_without_password_cannot_sign_in(self, clock):
        store = EntityStore(clock=clock)
        seed.seed_defaults(store, None)
        assert store.find_user_by_username("admin").password_hash is None

    def test_populated_store_untouched(self, store, people):
        assert seed.seed_defaults(store, "pw") is False
        assert len(store.users) == 3


class TestSystemConsistency:
    def test_missing_records_restored(self, clock):
        store = EntityStore(clock=clock)
        store.roles = [Role(id="CUSTOM", name="Custom")]
        store.users = [User(id="ai-assistant", username="ai-assistant", display_name="Mine")]

        added = seed.ensure_system_consistency(store, "pw")
        # 4 system roles + admin + 2 missing assistants
        assert added == 7
        assert store.find_user("ai-assistant").display_name == "Mine"
        assert store.get_role("CUSTOM") is not None

    def test_consistent_store_reports_nothing(self, clock):
        store = EntityStore(clock=clock)
        seed.seed_defaults(store, "pw")
        assert seed.ensure_system_consistency(store, "pw") == 0

    def test_existing_admin_matched_by_username(self, store):
        store.users.append(User(id="u-root", username="Admin", display_name="Root", status=UserStatus.ONLINE))
        seed.ensure_system_consistency(store)
        assert len([u for u in store.users if u.username.lower() == "admin"]) == 1
