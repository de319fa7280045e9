"""
messenger.engine.transport — Snapshot Transport Contract + HTTP Client
=======================================================================

The server holds one JSON document and offers exactly two operations:

* ``fetch()`` — read the full snapshot (``GET /api/database``)
* ``push(document)`` — overwrite it (``POST /api/save``)

Any failure (connection error, timeout, non-2xx status, non-JSON body)
surfaces as :class:`~messenger.errors.TransportError`.  Only the sync
controller catches it.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from messenger.errors import TransportError

logger = logging.getLogger(__name__)

DATABASE_PATH = "/api/database"
SAVE_PATH = "/api/save"


class SnapshotTransport(Protocol):
    """Two-operation contract against the server-held document."""

    async def fetch(self) -> dict[str, Any]: ...

    async def push(self, document: dict[str, Any]) -> None: ...


class HttpSnapshotTransport:
    """httpx implementation of :class:`SnapshotTransport`.

    Parameters
    ----------
    base_url : str
        Root of the snapshot server, e.g. ``http://localhost:3000``.
    timeout : float
        Per-request timeout in seconds.
    client : httpx.AsyncClient, optional
        Injected client (tests pass one built on ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=httpx.AsyncHTTPTransport(retries=1),
        )

    async def fetch(self) -> dict[str, Any]:
        try:
            resp = await self._client.get(
                DATABASE_PATH, headers={"Cache-Control": "no-cache"},
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"Snapshot fetch failed: {exc}") from exc

        if resp.status_code != 200:
            raise TransportError(f"Snapshot fetch returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise TransportError("Snapshot fetch returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise TransportError("Snapshot document is not an object")
        return data

    async def push(self, document: dict[str, Any]) -> None:
        try:
            resp = await self._client.post(SAVE_PATH, json=document)
        except httpx.HTTPError as exc:
            raise TransportError(f"Snapshot push failed: {exc}") from exc

        if resp.status_code != 200:
            raise TransportError(f"Snapshot push returned HTTP {resp.status_code}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
