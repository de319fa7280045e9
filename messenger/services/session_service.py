"""
messenger.services.session_service — Signed Session Tokens
===========================================================

A session is a PyJWT HS256 token (``sub`` = user id, ``username``,
``exp``).  The auth cookie carries the token itself, so nothing secret
about the account ever leaves the snapshot.

Resolving a token re-checks the store: a deleted or banned account no
longer has a session even while its token is still within its lifetime.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from http.cookies import SimpleCookie

import jwt
from jwt.exceptions import InvalidTokenError

from messenger.constants import AUTH_COOKIE_MAX_AGE_DAYS, AUTH_COOKIE_NAME
from messenger.services.user_service import is_banned
from messenger.store.entities import User
from messenger.store.entity_store import EntityStore

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def issue_token(user: User, secret: str, ttl_days: int = AUTH_COOKIE_MAX_AGE_DAYS) -> str:
    payload = {
        "sub": user.id,
        "username": user.username,
        "exp": datetime.now(UTC) + timedelta(days=ttl_days),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, secret: str) -> dict | None:
    """Return the verified payload, or None if the token is invalid or expired."""
    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        logger.debug("Rejected session token", exc_info=True)
        return None


def resolve_user(store: EntityStore, user_id: str | None) -> User | None:
    """The stored user for *user_id* when it still exists and is not banned."""
    if not user_id:
        return None
    user = store.find_user(user_id)
    if user is None or is_banned(user):
        return None
    return user


def resolve_token(store: EntityStore, token: str | None, secret: str) -> User | None:
    if not token:
        return None
    payload = decode_token(token, secret)
    if payload is None:
        return None
    return resolve_user(store, payload.get("sub"))


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------
def auth_cookie_header(token: str, ttl_days: int = AUTH_COOKIE_MAX_AGE_DAYS) -> str:
    """``Set-Cookie`` value carrying *token*."""
    cookie = SimpleCookie()
    cookie[AUTH_COOKIE_NAME] = token
    morsel = cookie[AUTH_COOKIE_NAME]
    morsel["path"] = "/"
    morsel["max-age"] = ttl_days * 24 * 60 * 60
    morsel["samesite"] = "Lax"
    return morsel.OutputString()


def clear_cookie_header() -> str:
    cookie = SimpleCookie()
    cookie[AUTH_COOKIE_NAME] = ""
    cookie[AUTH_COOKIE_NAME]["path"] = "/"
    cookie[AUTH_COOKIE_NAME]["max-age"] = 0
    return cookie[AUTH_COOKIE_NAME].OutputString()


def parse_auth_cookie(header: str | None) -> str | None:
    """Extract the session token from a ``Cookie`` request header."""
    if not header:
        return None
    cookie = SimpleCookie()
    cookie.load(header)
    morsel = cookie.get(AUTH_COOKIE_NAME)
    if morsel is None or not morsel.value:
        return None
    return morsel.value
