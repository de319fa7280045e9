"""
messenger.constants — Shared Constants & Helpers
=================================================

Single source of truth for storage keys, well-known ids, the wall clock
and the message content filter.  Import from here instead of duplicating
in services, the sync controller and the snapshot server.
"""

from __future__ import annotations

import re
import time
import uuid

# ---------------------------------------------------------------------------
# Local mirror keys (one per snapshot collection + current identity)
# ---------------------------------------------------------------------------
USERS_KEY = "4messenger_users"
CONVERSATIONS_KEY = "4messenger_conversations"
ROLES_KEY = "4messenger_roles"
COUNTRY_BANS_KEY = "4messenger_country_bans"
ADS_KEY = "4messenger_ads"
CURRENT_USER_KEY = "4messenger_current_user"

# Snapshot collection name → mirror key
SNAPSHOT_KEYS: dict[str, str] = {
    "users": USERS_KEY,
    "conversations": CONVERSATIONS_KEY,
    "roles": ROLES_KEY,
    "countryBans": COUNTRY_BANS_KEY,
    "ads": ADS_KEY,
}

# ---------------------------------------------------------------------------
# Well-known ids
# ---------------------------------------------------------------------------
SYSTEM_SENDER_ID = "system"

ADMIN_ROLE_ID = "ADMIN"
DEFAULT_ROLE_ID = "USER"
AI_ROLE_ID = "AI"
BANNED_ROLE_ID = "BANNED"

# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------
AUTH_COOKIE_NAME = "4messenger_auth"
AUTH_COOKIE_MAX_AGE_DAYS = 30


# ---------------------------------------------------------------------------
# Clock & ids
# ---------------------------------------------------------------------------
def now_ms() -> int:
    """Current wall-clock time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def new_id(prefix: str) -> str:
    """Return a collision-resistant id such as ``msg-3f9a1c0d2b7e``."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


# ---------------------------------------------------------------------------
# Content filter (per-viewer moderation filter level)
# ---------------------------------------------------------------------------
_FILTER_LOW: tuple[str, ...] = (
    "fuck", "shit", "bitch", "ass", "dick", "pussy", "whore", "bastard",
    "cunt", "damn", "hell",
)
_FILTER_MEDIUM: tuple[str, ...] = (
    "stupid", "idiot", "moron", "dumb", "loser", "ugly", "fat", "shut up",
    "hate", "crappy",
)
_FILTER_MAX: tuple[str, ...] = (
    "bad", "annoying", "boring", "weird", "mess", "suck", "fail", "trash",
    "lazy", "terrible", "worst",
)

FILTER_WORDS: dict[str, tuple[str, ...]] = {
    "low": _FILTER_LOW,
    "medium": _FILTER_LOW + _FILTER_MEDIUM,
    "max": _FILTER_LOW + _FILTER_MEDIUM + _FILTER_MAX,
}

_FILTER_PATTERNS: dict[str, list[re.Pattern[str]]] = {
    level: [re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE) for word in words]
    for level, words in FILTER_WORDS.items()
}


def censor_text(text: str, level: str) -> str:
    """Mask every filtered word for *level* with asterisks of equal length.

    Unknown levels leave the text unchanged.
    """
    for pattern in _FILTER_PATTERNS.get(level, []):
        text = pattern.sub(lambda m: "*" * len(m.group(0)), text)
    return text
