"""
messenger.services.user_service — Accounts, Credentials & Blocking
===================================================================

Registration, login/logout, profile edits and the block list.

Credentials are stored as salted PBKDF2-SHA256 hashes in the form
``pbkdf2_sha256$<iterations>$<salt hex>$<hash hex>``; the raw secret is
never written to the snapshot.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from typing import Any

from pydantic import ValidationError

from messenger.constants import BANNED_ROLE_ID, DEFAULT_ROLE_ID, new_id
from messenger.errors import (
    AccountBanned,
    DuplicateUsername,
    InvalidCredentials,
    InvalidField,
    ProtectedField,
    RoleNotFound,
    UserNotFound,
)
from messenger.store.entities import Modifier, User, UserPreferences, UserStatus
from messenger.store.entity_store import EntityStore

logger = logging.getLogger(__name__)

_HASH_ALGORITHM = "pbkdf2_sha256"
_HASH_ITERATIONS = 240_000

# Fields a user may change on their own account (plus ``password``)
PROFILE_FIELDS = frozenset({"display_name", "avatar_url", "preferences", "auto_message"})

# Fields only an administrator may change
ADMIN_EDIT_FIELDS = PROFILE_FIELDS | {"username", "role", "country", "is_verified", "modifiers"}


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------
def hash_password(password: str, *, iterations: int | None = None) -> str:
    iterations = iterations or _HASH_ITERATIONS
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, iterations)
    return f"{_HASH_ALGORITHM}${iterations}${salt.hex()}${digest.hex()}"


def verify_password(password: str, encoded: str | None) -> bool:
    if not encoded:
        return False
    try:
        algorithm, iterations, salt_hex, digest_hex = encoded.split("$")
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(digest_hex)
        rounds = int(iterations)
    except ValueError:
        logger.warning("Malformed password hash — rejecting login")
        return False
    if algorithm != _HASH_ALGORITHM:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, rounds)
    return hmac.compare_digest(digest, expected)


def is_banned(user: User) -> bool:
    return user.is_banned or user.role == BANNED_ROLE_ID


# ---------------------------------------------------------------------------
# Account creation
# ---------------------------------------------------------------------------
def _new_user(
    store: EntityStore,
    username: str,
    password: str | None,
    *,
    display_name: str | None,
    role: str,
    country: str,
    status: UserStatus,
) -> User:
    username = username.strip()
    if store.find_user_by_username(username) is not None:
        raise DuplicateUsername(username)
    user = User(
        id=new_id("user"),
        username=username,
        display_name=display_name or username,
        password_hash=hash_password(password.strip()) if password else None,
        role=role,
        avatar_url=f"https://picsum.photos/seed/{username}/200/200",
        status=status,
        last_seen=store.now(),
        preferences=UserPreferences(),
        country=country.upper(),
    )
    return store.add_user(user)


def register(
    store: EntityStore,
    username: str,
    password: str,
    display_name: str | None = None,
    country: str = "US",
) -> User:
    """Self-service sign-up.  The new user starts online with role USER."""
    user = _new_user(
        store, username, password,
        display_name=display_name,
        role=DEFAULT_ROLE_ID,
        country=country,
        status=UserStatus.ONLINE,
    )
    logger.info("Registered user %s (%s)", user.username, user.id)
    return user


def create_user(
    store: EntityStore,
    username: str,
    password: str | None,
    display_name: str | None = None,
    role: str = DEFAULT_ROLE_ID,
    country: str = "US",
) -> User:
    """Admin-created account; starts offline with the given role."""
    user = _new_user(
        store, username, password,
        display_name=display_name,
        role=role,
        country=country,
        status=UserStatus.OFFLINE,
    )
    logger.info("Created user %s (%s) with role %s", user.username, user.id, role)
    return user


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------
def login(store: EntityStore, username: str, password: str) -> User:
    """Authenticate and mark the user online.

    Raises
    ------
    UserNotFound
        No account with that username (case-insensitive).
    InvalidCredentials
        Password mismatch.
    AccountBanned
        The account is banned (flag or BANNED role).
    """
    user = store.find_user_by_username(username)
    if user is None:
        raise UserNotFound(username.strip())
    if not verify_password(password.strip(), user.password_hash):
        raise InvalidCredentials()
    if is_banned(user):
        raise AccountBanned(user.username)

    user.status = UserStatus.ONLINE
    user.last_seen = store.now()
    return user


def logout(store: EntityStore, user_id: str) -> None:
    user = store.find_user(user_id)
    if user is None:
        return
    user.status = UserStatus.OFFLINE
    user.last_seen = store.now()


# ---------------------------------------------------------------------------
# Profile & moderation flags
# ---------------------------------------------------------------------------
def _apply_changes(
    store: EntityStore, user: User, changes: dict[str, Any], allowed: frozenset[str],
) -> User:
    """Validate every change against a copy first, then apply them all.

    Raises
    ------
    ProtectedField
        A key outside *allowed* (and not ``password``).
    DuplicateUsername / RoleNotFound
        The new username is taken, or the new role does not exist.
    InvalidField
        A value fails entity validation; nothing is changed.
    """
    for key in changes:
        if key != "password" and key not in allowed:
            raise ProtectedField(key)

    password = changes.pop("password", None)

    if "username" in changes:
        new_username = str(changes["username"]).strip()
        existing = store.find_user_by_username(new_username)
        if existing is not None and existing.id != user.id:
            raise DuplicateUsername(new_username)
        changes["username"] = new_username

    if "role" in changes and store.get_role(changes["role"]) is None:
        raise RoleNotFound(changes["role"])

    if isinstance(changes.get("preferences"), dict):
        changes["preferences"] = {**user.preferences.model_dump(), **changes["preferences"]}

    try:
        updated = User.model_validate({**user.model_dump(), **changes})
    except ValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "profile"
        raise InvalidField(field, error["msg"]) from exc

    for key in changes:
        setattr(user, key, getattr(updated, key))
    if password:
        user.password_hash = hash_password(password.strip())
    return user


def update_profile(store: EntityStore, user_id: str, **changes: Any) -> User:
    """Self-service edit of the caller's own account.

    Only :data:`PROFILE_FIELDS` and ``password`` are accepted; role,
    country, username, ban and verification flags go through
    :func:`edit_user`.
    """
    user = store.require_user(user_id)
    return _apply_changes(store, user, changes, PROFILE_FIELDS)


def edit_user(store: EntityStore, user_id: str, **changes: Any) -> User:
    """Administrator edit of any account (:data:`ADMIN_EDIT_FIELDS`)."""
    user = store.require_user(user_id)
    _apply_changes(store, user, changes, ADMIN_EDIT_FIELDS)
    logger.info("Edited user %s: %s", user.username, ", ".join(sorted(changes)) or "password")
    return user


def set_modifiers(store: EntityStore, user_id: str, modifiers: list[Modifier]) -> User:
    user = store.require_user(user_id)
    user.modifiers = list(dict.fromkeys(Modifier(m) for m in modifiers))
    return user


def set_banned(store: EntityStore, user_id: str, banned: bool) -> User:
    user = store.require_user(user_id)
    user.is_banned = banned
    if banned:
        user.status = UserStatus.OFFLINE
    logger.info("User %s %s", user.username, "banned" if banned else "unbanned")
    return user


def toggle_block(store: EntityStore, user_id: str, target_user_id: str) -> User:
    """Block *target_user_id* if not blocked, unblock otherwise.

    History is untouched; blocking only affects what consumers list.
    """
    me = store.require_user(user_id)
    if target_user_id in me.blocked_user_ids:
        me.blocked_user_ids.remove(target_user_id)
    else:
        me.blocked_user_ids.append(target_user_id)
    return me


def delete_user(store: EntityStore, user_id: str) -> None:
    store.remove_user(user_id)
