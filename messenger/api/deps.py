"""
messenger.api.deps — FastAPI dependency injection
===================================================

The snapshot server's only state is one JSON file.  :class:`SnapshotFile`
serializes writes with a lock and replaces the file atomically, so a
concurrent reader sees either the old or the new document.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from functools import lru_cache
from pathlib import Path
from typing import Any

from messenger.config import load_config

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_FILE = "public/database.json"

EMPTY_DOCUMENT: dict[str, list] = {
    "users": [],
    "conversations": [],
    "roles": [],
    "ads": [],
    "countryBans": [],
}


class SnapshotFile:
    """The server-held document on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def ensure_exists(self) -> None:
        """Create the parent directory and an empty document if missing."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.write(EMPTY_DOCUMENT)
            logger.info("Created new snapshot file %s", self.path)

    def read_text(self) -> str:
        return self.path.read_text(encoding="utf-8")

    def write(self, document: dict[str, Any]) -> int:
        """Replace the document; returns the number of bytes written."""
        payload = json.dumps(document, ensure_ascii=False, indent=2)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with self._lock:
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self.path)
        return len(payload.encode("utf-8"))


def resolve_snapshot_path() -> str:
    """``MESSENGER_DB_FILE`` if set, else ``snapshot_file`` from config.yaml."""
    env_path = os.getenv("MESSENGER_DB_FILE", "").strip()
    if env_path:
        return env_path
    try:
        return load_config().snapshot_file
    except (FileNotFoundError, KeyError):
        return DEFAULT_SNAPSHOT_FILE


@lru_cache(maxsize=1)
def get_snapshot_file() -> SnapshotFile:
    return SnapshotFile(resolve_snapshot_path())
