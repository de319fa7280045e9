"""
messenger.services.admin_service — Administration Service Layer
================================================================

Mutations reserved for the administration panel: roles, ads and geo-bans,
plus platform statistics.  Each write is recorded in the log as an
audit line (``action``, ``collection``, ``id``) before the caller
persists the store.
"""

from __future__ import annotations

import logging
import re

from messenger.constants import new_id
from messenger.errors import InvalidBanTarget, RoleNotFound
from messenger.store.entities import Ad, BanKind, CountryBan, Role
from messenger.store.entity_store import EntityStore

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def _log_admin_action(action_type: str, collection: str, target_id: str) -> None:
    logger.info("Admin %s on %s: %s", action_type, collection, target_id)


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------
def role_id_for(name: str) -> str:
    """Derive a role id from its display name: ``"Power User"`` → ``POWER_USER``."""
    return _WHITESPACE.sub("_", name.strip().upper())


def add_role(store: EntityStore, name: str, description: str = "", color: str = "gray") -> Role:
    role = store.add_role(Role(
        id=role_id_for(name),
        name=name.strip(),
        description=description,
        color=color,
        is_system=False,
    ))
    _log_admin_action("CREATE", "roles", role.id)
    return role


def delete_role(store: EntityStore, role_id: str) -> int:
    """Delete a role; returns how many users were moved to the default role."""
    reassigned = store.remove_role(role_id)
    _log_admin_action("DELETE", "roles", role_id)
    return reassigned


def assign_role(store: EntityStore, user_id: str, role_id: str) -> None:
    if store.get_role(role_id) is None:
        raise RoleNotFound(role_id)
    store.require_user(user_id).role = role_id
    _log_admin_action("UPDATE", "users.role", f"{user_id} → {role_id}")


# ---------------------------------------------------------------------------
# Ads
# ---------------------------------------------------------------------------
def add_ad(
    store: EntityStore,
    name: str,
    text: str,
    poster_url: str,
    link: str | None = None,
) -> Ad:
    ad = store.add_ad(Ad(id=new_id("ad"), name=name, text=text, poster_url=poster_url, link=link))
    _log_admin_action("CREATE", "ads", ad.id)
    return ad


def delete_ad(store: EntityStore, ad_id: str) -> None:
    store.remove_ad(ad_id)
    _log_admin_action("DELETE", "ads", ad_id)


# ---------------------------------------------------------------------------
# Geo-bans
# ---------------------------------------------------------------------------
def add_country_ban(
    store: EntityStore,
    country_code: str,
    kind: BanKind,
    target_role_id: str | None = None,
    target_user_id: str | None = None,
) -> CountryBan:
    """Append a geo-ban (evaluated after all existing ones).

    Raises
    ------
    InvalidBanTarget
        ROLE_INTERACTION without a role, or USERNAME without a user.
    RoleNotFound / UserNotFound
        The target does not exist.
    """
    kind = BanKind(kind)
    if kind == BanKind.ROLE_INTERACTION:
        if not target_role_id:
            raise InvalidBanTarget("ROLE_INTERACTION bans require a target role")
        if store.get_role(target_role_id) is None:
            raise RoleNotFound(target_role_id)
    elif kind == BanKind.USERNAME:
        if not target_user_id:
            raise InvalidBanTarget("USERNAME bans require a target user")
        store.require_user(target_user_id)

    ban = store.add_country_ban(CountryBan(
        id=new_id("ban"),
        country_code=country_code.strip().upper(),
        kind=kind,
        target_role_id=target_role_id if kind == BanKind.ROLE_INTERACTION else None,
        target_user_id=target_user_id if kind == BanKind.USERNAME else None,
    ))
    _log_admin_action("CREATE", "countryBans", f"{ban.id} ({ban.country_code} {kind})")
    return ban


def delete_country_ban(store: EntityStore, ban_id: str) -> None:
    store.remove_country_ban(ban_id)
    _log_admin_action("DELETE", "countryBans", ban_id)


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------
def get_stats(store: EntityStore) -> dict[str, int]:
    return store.stats()
