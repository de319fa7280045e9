"""
messenger.engine.sync — Snapshot Synchronization Controller
============================================================

Keeps one client's :class:`EntityStore` in step with the server-held
document.

* ``sync()`` pulls the snapshot (bounded by ``fetch_timeout``), replaces
  every collection wholesale, marks the controller online and mirrors the
  result locally.  On any failure it marks itself offline and reloads the
  last mirrored snapshot instead, so the client keeps working on stale
  data.
* ``save()`` always writes the mirror first and then, only while online,
  pushes the full snapshot.  A failed push flips to offline until the next
  successful pull.
* ``start()`` schedules ``sync()`` every ``poll_interval`` seconds;
  ``stop()`` cancels the task.

There is no operation log or per-field versioning.  Writes are
last-writer-wins at whole-snapshot granularity: two clients pushing from
different bases silently overwrite each other.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from pydantic import ValidationError

from messenger.engine.transport import SnapshotTransport
from messenger.errors import TransportError
from messenger.store.engine import run_db
from messenger.store.entities import Snapshot
from messenger.store.entity_store import EntityStore
from messenger.store.mirror import LocalMirror

logger = logging.getLogger(__name__)

SyncListener = Callable[[bool], Awaitable[None]]


class SyncController:
    """Pull/push driver between the store, the transport and the mirror.

    Usage::

        controller = SyncController(store, transport, mirror)
        await controller.sync()
        controller.start()
        ...
        await controller.stop()
    """

    def __init__(
        self,
        store: EntityStore,
        transport: SnapshotTransport,
        mirror: LocalMirror,
        *,
        fetch_timeout: float = 2.0,
        poll_interval: float = 2.0,
    ) -> None:
        self._store = store
        self._transport = transport
        self._mirror = mirror
        self.fetch_timeout = fetch_timeout
        self.poll_interval = poll_interval

        # Assume the server is reachable until proven otherwise
        self._online = True
        self._poll_task: asyncio.Task | None = None
        self._listeners: list[SyncListener] = []

    @property
    def is_online(self) -> bool:
        return self._online

    # -------------------------------------------------------------------
    # Pull
    # -------------------------------------------------------------------
    async def sync(self) -> bool:
        """Pull the authoritative snapshot; fall back to the mirror on failure.

        Returns True when the pull succeeded.
        """
        try:
            document = await asyncio.wait_for(
                self._transport.fetch(), timeout=self.fetch_timeout,
            )
            snapshot = Snapshot.from_document(document)
        except (TransportError, TimeoutError, ValidationError) as exc:
            if self._online:
                logger.warning("Server unreachable, using local mirror: %s", exc)
            self._online = False
            await self._reload_from_mirror()
            return False

        self._store.replace_all(snapshot)
        if not self._online:
            logger.info("Server reachable again — back online")
        self._online = True
        await run_db(self._mirror.save_snapshot, snapshot)
        return True

    async def _reload_from_mirror(self) -> None:
        cached = await run_db(self._mirror.load_snapshot)
        if cached is None:
            logger.info("Local mirror is empty — keeping in-memory state")
            return
        self._store.replace_all(cached)

    # -------------------------------------------------------------------
    # Push
    # -------------------------------------------------------------------
    async def save(self) -> None:
        """Mirror the current state, then push it if online."""
        snapshot = self._store.snapshot()
        await run_db(self._mirror.save_snapshot, snapshot)

        if not self._online:
            return
        try:
            await self._transport.push(snapshot.to_document())
        except TransportError as exc:
            logger.error("Failed to save to server, switching to offline: %s", exc)
            self._online = False

    # -------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------
    def add_listener(self, listener: SyncListener) -> None:
        """Register an async callback run after every poll cycle.

        The callback receives True when that cycle's pull succeeded.
        """
        self._listeners.append(listener)

    async def poll_once(self) -> bool:
        ok = await self.sync()
        for listener in list(self._listeners):
            try:
                await listener(ok)
            except Exception:
                logger.exception("Sync listener failed")
        return ok

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def start(self) -> None:
        """Start the background poll task on the running loop."""
        if self.is_polling:
            return

        async def _poll_loop() -> None:
            while True:
                try:
                    await self.poll_once()
                except Exception:
                    logger.exception("Sync poll error")
                await asyncio.sleep(self.poll_interval)

        self._poll_task = asyncio.get_running_loop().create_task(
            _poll_loop(), name="snapshot-poll"
        )
        logger.info("Snapshot polling started (every %.1fs)", self.poll_interval)

    async def stop(self) -> None:
        """Cancel the poll task and wait for it to finish."""
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Snapshot polling stopped")
