"""
messenger.services.seed — Default Data & System Consistency
=============================================================

Seeds the system roles, the built-in admin account, the AI assistant
accounts and the default ads from YAML fixtures in ``messenger/seeds/``.

:func:`seed_defaults` runs only against an empty store.
:func:`ensure_system_consistency` runs after initialization and after
every successful poll.  It re-adds whatever built-in record a foreign
snapshot is missing and never modifies records that already exist.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from messenger.constants import AI_ROLE_ID
from messenger.services.user_service import hash_password
from messenger.store.entities import Ad, Modifier, Role, User, UserStatus
from messenger.store.entity_store import EntityStore

logger = logging.getLogger(__name__)

_SEEDS_DIR = Path(__file__).resolve().parent.parent / "seeds"


def _load_yaml(filename: str) -> Any:
    """Load a YAML file from the seeds directory."""
    path = _SEEDS_DIR / filename
    if not path.exists():
        logger.warning("Seed file not found: %s", path)
        return {}
    with open(path, encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def default_roles() -> list[Role]:
    return [
        Role(**item, is_system=True)
        for item in _load_yaml("roles.yaml").get("roles", [])
    ]


def default_admin(admin_password: str | None, now: int) -> User | None:
    data = _load_yaml("users.yaml").get("admin")
    if not data:
        return None
    if admin_password is None:
        logger.warning(
            "MESSENGER_ADMIN_PASSWORD is not set — the admin account "
            "is created without a password and cannot sign in."
        )
    return User(
        **data,
        password_hash=hash_password(admin_password) if admin_password else None,
        avatar_url=f"https://picsum.photos/seed/{data['username']}/200/200",
        last_seen=now,
    )


def default_assistants(now: int) -> list[User]:
    return [
        User(
            **item,
            role=AI_ROLE_ID,
            avatar_url=f"https://picsum.photos/seed/{item['id']}/200/200",
            status=UserStatus.ONLINE,
            last_seen=now,
            is_verified=True,
            modifiers=[Modifier.ALWAYS_ONLINE],
        )
        for item in _load_yaml("users.yaml").get("assistants", [])
    ]


def default_ads() -> list[Ad]:
    return [Ad(**item) for item in _load_yaml("ads.yaml").get("ads", [])]


def seed_defaults(store: EntityStore, admin_password: str | None = None) -> bool:
    """Populate an empty store.  Returns False (and does nothing) otherwise."""
    if not store.is_empty:
        logger.info("Store already holds data — skipping seed.")
        return False

    now = store.now()
    store.roles = default_roles()
    admin = default_admin(admin_password, now)
    store.users = ([admin] if admin is not None else []) + default_assistants(now)
    store.conversations = []
    store.country_bans = []
    store.ads = default_ads()
    logger.info(
        "Seeded %d roles, %d users, %d ads.",
        len(store.roles), len(store.users), len(store.ads),
    )
    return True


def ensure_system_consistency(store: EntityStore, admin_password: str | None = None) -> int:
    """Re-add missing system roles, the admin account and assistants.

    The admin is matched by username, assistants by id.  Returns the number
    of records added.
    """
    added = 0
    for role in default_roles():
        if store.get_role(role.id) is None:
            store.roles.append(role)
            added += 1

    now = store.now()
    admin = default_admin(admin_password, now) if store.find_user_by_username("admin") is None else None
    if admin is not None:
        store.users.append(admin)
        added += 1

    for bot in default_assistants(now):
        if store.find_user(bot.id) is None:
            store.users.append(bot)
            added += 1

    if added:
        logger.info("Restored %d missing system record(s).", added)
    return added
