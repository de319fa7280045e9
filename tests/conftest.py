"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# A valid session secret must be present before anything loads it.
# ---------------------------------------------------------------------------
_TEST_SESSION_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("MESSENGER_SESSION_SECRET", _TEST_SESSION_SECRET)

import asyncio  # noqa: E402
import copy  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine  # noqa: E402

from messenger.errors import TransportError  # noqa: E402
from messenger.services import user_service  # noqa: E402
from messenger.services.seed import default_roles  # noqa: E402
from messenger.store.engine import create_mirror_engine, init_mirror  # noqa: E402
from messenger.store.entities import User, UserStatus  # noqa: E402
from messenger.store.entity_store import EntityStore  # noqa: E402
from messenger.store.mirror import LocalMirror  # noqa: E402

START_MS = 1_700_000_000_000


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeTransport:
    """In-process stand-in for the snapshot server.

    ``fail`` makes both directions raise :class:`TransportError`;
    ``fetch_delay`` makes ``fetch`` hang for that many seconds.
    """

    def __init__(self, document: dict[str, Any] | None = None) -> None:
        self.document = document if document is not None else {
            "users": [], "conversations": [], "roles": [], "countryBans": [], "ads": [],
        }
        self.fail = False
        self.fail_push = False
        self.fetch_delay = 0.0
        self.fetch_count = 0
        self.pushes: list[dict[str, Any]] = []

    async def fetch(self) -> dict[str, Any]:
        self.fetch_count += 1
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        if self.fail:
            raise TransportError("server down")
        return copy.deepcopy(self.document)

    async def push(self, document: dict[str, Any]) -> None:
        if self.fail or self.fail_push:
            raise TransportError("server down")
        self.pushes.append(copy.deepcopy(document))
        self.document = copy.deepcopy(document)


def make_user(store: EntityStore, username: str, **fields: Any) -> User:
    """Add a user straight to *store* (no password hashing)."""
    data = {
        "id": f"u-{username}",
        "username": username,
        "display_name": username.title(),
        "status": UserStatus.OFFLINE,
    }
    data.update(fields)
    return store.add_user(User(**data))


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    """Keep PBKDF2 cheap in tests."""
    monkeypatch.setattr(user_service, "_HASH_ITERATIONS", 1_000)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> EntityStore:
    """Empty store with the system roles and a controllable clock."""
    s = EntityStore(clock=clock)
    s.roles = default_roles()
    return s


@pytest.fixture
def people(store: EntityStore) -> dict[str, User]:
    """alice, bob and carol, all in country US with role USER."""
    return {name: make_user(store, name) for name in ("alice", "bob", "carol")}


@pytest.fixture
def mirror_engine() -> Engine:
    """In-memory SQLite mirror shared across threads (``StaticPool``)."""
    engine = create_mirror_engine(None)
    init_mirror(engine)
    return engine


@pytest.fixture
def mirror(mirror_engine: Engine) -> LocalMirror:
    return LocalMirror(mirror_engine)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
