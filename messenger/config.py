"""
messenger.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for client and snapshot-server settings (server URL,
poll cadence, mirror location).  Secrets never live in YAML: the session
signing secret and the seeded admin password come from the environment
(``.env`` via python-dotenv).

Usage::

    from messenger.config import load_config

    cfg = load_config()             # reads ./config.yaml by default
    print(cfg.server_url)           # "http://localhost:3000"
    print(cfg.poll_interval_seconds)  # 2.0
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

_WEAK_SECRETS = frozenset({
    "replace-with-a-long-random-string-of-at-least-32-chars",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MessengerConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Transport
    server_url: str
    poll_interval_seconds: float = 2.0
    fetch_timeout_seconds: float = 2.0

    # Local mirror (SQLite file path)
    mirror_path: str = ".messenger/mirror.db"

    # Accounts
    default_country: str = "US"
    session_ttl_days: int = 30

    # Snapshot server
    snapshot_file: str = "public/database.json"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> MessengerConfig:
    """Read *path* and return a :class:`MessengerConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return MessengerConfig(
        server_url=str(raw["server_url"]).rstrip("/"),
        poll_interval_seconds=float(raw.get("poll_interval_seconds", 2)),
        fetch_timeout_seconds=float(raw.get("fetch_timeout_seconds", 2)),
        mirror_path=str(raw.get("mirror_path", ".messenger/mirror.db")),
        default_country=str(raw.get("default_country", "US")).upper(),
        session_ttl_days=int(raw.get("session_ttl_days", 30)),
        snapshot_file=str(raw.get("snapshot_file", "public/database.json")),
    )


def load_session_secret() -> str:
    """Load and validate ``MESSENGER_SESSION_SECRET`` from the environment.

    Raises RuntimeError if the secret is missing, a known weak default, or
    shorter than 32 characters.
    """
    secret = os.getenv("MESSENGER_SESSION_SECRET", "")
    if not secret:
        raise RuntimeError(
            "MESSENGER_SESSION_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"MESSENGER_SESSION_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"MESSENGER_SESSION_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


def load_admin_password() -> str | None:
    """Return the seeded admin password, or None when unset."""
    value = os.getenv("MESSENGER_ADMIN_PASSWORD", "").strip()
    return value or None
