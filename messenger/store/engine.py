"""
messenger.store.engine — Mirror Engine & Async Helper
======================================================

The local mirror is a small SQLite file accessed through synchronous
SQLAlchemy.  The sync controller runs on an ``asyncio`` event loop, so
every mirror call is shipped to a worker thread with :func:`run_db`
instead of blocking the loop.

Usage::

    from messenger.store.engine import create_mirror_engine, init_mirror, run_db

    engine = create_mirror_engine(".messenger/mirror.db")
    init_mirror(engine)

    snapshot = await run_db(mirror.load_snapshot)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import contextmanager
from pathlib import Path
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from messenger.store.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_mirror_engine(path: str | Path | None = None) -> Engine:
    """Build a SQLite :class:`Engine` for the mirror at *path*.

    ``None`` or ``":memory:"`` gives an in-memory database shared across
    threads (``StaticPool``), which is what tests use.  For a file path the
    parent directory is created on demand.
    """
    if path is None or str(path) == ":memory:":
        engine = create_engine(
            "sqlite://",
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        logger.info("Mirror engine created → in-memory")
        return engine

    db_path = Path(path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(
        f"sqlite:///{db_path}",
        echo=False,
        connect_args={"check_same_thread": False},
    )
    logger.info("Mirror engine created → %s", db_path)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_mirror(engine: Engine) -> None:
    """Create the mirror tables.  Safe to call on every startup."""
    Base.metadata.create_all(engine)
    logger.info("Mirror tables verified / created.")


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that auto-commits on success and rolls back
    on exception.
    """
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** mirror function on a background thread.

    Parameters
    ----------
    func:
        Any sync callable (typically a :class:`LocalMirror` method).
    *args, **kwargs:
        Forwarded to *func*.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
