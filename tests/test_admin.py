"""
tests/test_admin.py — Administration Service Unit Tests
========================================================
"""

from __future__ import annotations

import logging

import pytest

from messenger.errors import (
    InvalidBanTarget,
    RoleExists,
    RoleNotFound,
    SystemRoleProtected,
    UserNotFound,
)
from messenger.services import admin_service as admin
from messenger.store.entities import BanKind


class TestRoles:
    def test_role_id_from_name(self):
        assert admin.role_id_for("  Power   User ") == "POWER_USER"

    def test_add_and_delete_role(self, store, people):
        role = admin.add_role(store, "Moderator", "Keeps order", "green")
        assert (role.id, role.is_system) == ("MODERATOR", False)
        admin.assign_role(store, "u-bob", "MODERATOR")

        assert admin.delete_role(store, "MODERATOR") == 1
        assert people["bob"].role == "USER"

    def test_duplicate_role_name(self, store):
        admin.add_role(store, "Moderator")
        with pytest.raises(RoleExists):
            admin.add_role(store, "moderator")

    def test_system_roles_protected(self, store):
        with pytest.raises(SystemRoleProtected):
            admin.delete_role(store, "BANNED")

    def test_assign_unknown_role(self, store, people):
        with pytest.raises(RoleNotFound):
            admin.assign_role(store, "u-bob", "WIZARD")

    def test_actions_are_logged(self, store, caplog):
        with caplog.at_level(logging.INFO, logger="messenger.services.admin_service"):
            admin.add_role(store, "Moderator")
        assert "Admin CREATE on roles: MODERATOR" in caplog.text


class TestAds:
    def test_add_and_delete_ad(self, store):
        ad = admin.add_ad(store, "Sale", "50% off", "https://x/p.png", link="https://shop")
        assert ad.id.startswith("ad-")
        assert store.get_ads() == [ad]
        admin.delete_ad(store, ad.id)
        assert store.get_ads() == []


class TestCountryBans:
    def test_full_chat_ban_normalizes_country(self, store):
        ban = admin.add_country_ban(store, " us ", BanKind.FULL_CHAT, target_role_id="ADMIN")
        assert ban.country_code == "US"
        assert ban.target_role_id is None

    def test_role_interaction_requires_existing_role(self, store):
        with pytest.raises(InvalidBanTarget):
            admin.add_country_ban(store, "US", BanKind.ROLE_INTERACTION)
        with pytest.raises(RoleNotFound):
            admin.add_country_ban(store, "US", BanKind.ROLE_INTERACTION, target_role_id="GHOST")
        ban = admin.add_country_ban(store, "US", "ROLE_INTERACTION", target_role_id="ADMIN")
        assert ban.kind == BanKind.ROLE_INTERACTION

    def test_username_ban_requires_existing_user(self, store, people):
        with pytest.raises(InvalidBanTarget):
            admin.add_country_ban(store, "US", BanKind.USERNAME)
        with pytest.raises(UserNotFound):
            admin.add_country_ban(store, "US", BanKind.USERNAME, target_user_id="u-ghost")
        ban = admin.add_country_ban(store, "US", BanKind.USERNAME, target_user_id="u-bob")
        assert ban.target_user_id == "u-bob"

    def test_bans_append_in_order_and_delete(self, store):
        first = admin.add_country_ban(store, "US", BanKind.FULL_CHAT)
        second = admin.add_country_ban(store, "US", BanKind.ROLE_INTERACTION, target_role_id="AI")
        assert [b.id for b in store.get_country_bans()] == [first.id, second.id]
        admin.delete_country_ban(store, first.id)
        assert [b.id for b in store.get_country_bans()] == [second.id]


def test_stats(store, people):
    assert admin.get_stats(store)["totalUsers"] == 3
