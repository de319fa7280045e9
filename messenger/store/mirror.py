"""
messenger.store.mirror — Client-local snapshot mirror
======================================================

A persisted key/value cache of the shared document: one JSON blob per
collection under a fixed key (see :data:`messenger.constants.SNAPSHOT_KEYS`)
plus the current logged-in identity.  The sync controller writes it after
every successful pull and before every push, and reads it back when the
transport is unreachable.

All methods are synchronous; call them through
:func:`messenger.store.engine.run_db` from async code.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy import Engine, delete

from messenger.constants import CURRENT_USER_KEY, SNAPSHOT_KEYS, USERS_KEY
from messenger.store.engine import get_session
from messenger.store.entities import Snapshot
from messenger.store.models import MirrorEntry

logger = logging.getLogger(__name__)


class LocalMirror:
    """Key/value mirror backed by the ``mirror_entries`` table."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    # -------------------------------------------------------------------
    # Raw key access
    # -------------------------------------------------------------------
    def get(self, key: str, default: Any = None) -> Any:
        """Return the parsed JSON value for *key*, or *default*."""
        with get_session(self._engine) as session:
            row = session.get(MirrorEntry, key)
            if row is None:
                return default
            try:
                return json.loads(row.value_json)
            except (json.JSONDecodeError, TypeError):
                logger.warning("Mirror key %s holds invalid JSON — ignoring", key)
                return default

    def set(self, key: str, value: Any) -> None:
        with get_session(self._engine) as session:
            self._put(session, key, value)

    def delete(self, key: str) -> None:
        with get_session(self._engine) as session:
            session.execute(delete(MirrorEntry).where(MirrorEntry.key == key))

    @staticmethod
    def _put(session, key: str, value: Any) -> None:
        raw = json.dumps(value)
        row = session.get(MirrorEntry, key)
        if row is None:
            session.add(MirrorEntry(key=key, value_json=raw))
        else:
            row.value_json = raw

    # -------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------
    def save_snapshot(self, snapshot: Snapshot) -> None:
        """Write all five collections in one transaction."""
        document = snapshot.to_document()
        with get_session(self._engine) as session:
            for collection, key in SNAPSHOT_KEYS.items():
                self._put(session, key, document.get(collection, []))
        logger.debug(
            "Mirror saved: %d users, %d conversations",
            len(snapshot.users), len(snapshot.conversations),
        )

    def load_snapshot(self) -> Snapshot | None:
        """Rebuild the last mirrored snapshot.

        Returns None when nothing has been mirrored yet (no users key) or
        the stored data no longer validates.
        """
        if self.get(USERS_KEY) is None:
            return None
        document = {
            collection: self.get(key, [])
            for collection, key in SNAPSHOT_KEYS.items()
        }
        try:
            return Snapshot.from_document(document)
        except ValidationError:
            logger.exception("Mirrored snapshot failed validation — ignoring")
            return None

    # -------------------------------------------------------------------
    # Current identity
    # -------------------------------------------------------------------
    def get_current_user_id(self) -> str | None:
        value = self.get(CURRENT_USER_KEY)
        return value if isinstance(value, str) else None

    def set_current_user_id(self, user_id: str) -> None:
        self.set(CURRENT_USER_KEY, user_id)

    def clear_current_user(self) -> None:
        self.delete(CURRENT_USER_KEY)
