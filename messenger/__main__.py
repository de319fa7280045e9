"""
messenger.__main__ — Entry point for ``python -m messenger``
=============================================================

Starts the snapshot server on ``MESSENGER_HOST:MESSENGER_PORT``
(default ``0.0.0.0:3000``).
"""

from __future__ import annotations

import logging
import os

import uvicorn
from dotenv import load_dotenv

from messenger.api.deps import resolve_snapshot_path

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("messenger")


def main() -> None:
    """Run the snapshot server (blocking)."""
    load_dotenv()

    host = os.getenv("MESSENGER_HOST", "0.0.0.0")
    port = int(os.getenv("MESSENGER_PORT", "3000"))
    logger.info("Database server running at http://%s:%d", host, port)
    logger.info("Database file: %s", resolve_snapshot_path())

    uvicorn.run("messenger.api.main:app", host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
