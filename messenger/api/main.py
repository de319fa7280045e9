"""
messenger.api.main — Snapshot server (FastAPI)
================================================

Serves the shared document every client pulls and pushes wholesale:

* ``GET  /api/database`` → the stored JSON, never cached.
* ``POST /api/save``     → replaces it; ``{"success": true}``.

Run with::

    uvicorn messenger.api.main:app --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Annotated

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

load_dotenv()

from messenger import __version__  # noqa: E402
from messenger.api.deps import SnapshotFile, get_snapshot_file  # noqa: E402

logger = logging.getLogger(__name__)

_NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _cors_origins() -> list[str]:
    """Allowed origins from ``CORS_ALLOW_ORIGINS`` (comma-separated), default ``*``."""
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]
    return ["*"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — make sure the snapshot file exists."""
    snapshot_file = get_snapshot_file()
    snapshot_file.ensure_exists()
    logger.info("Snapshot server started — file %s", snapshot_file.path)
    yield
    logger.info("Snapshot server shutting down")


app = FastAPI(
    title="Messenger Snapshot Server",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

SnapshotDep = Annotated[SnapshotFile, Depends(get_snapshot_file)]


@app.get("/api/health")
def health():
    return {"status": "ok"}


@app.get("/api/database")
async def get_database(snapshot_file: SnapshotDep):
    try:
        data = await asyncio.to_thread(snapshot_file.read_text)
    except OSError:
        logger.exception("Error reading snapshot file %s", snapshot_file.path)
        return JSONResponse({"error": "Failed to read database"}, status_code=500)
    return Response(content=data, media_type="application/json", headers=_NO_CACHE_HEADERS)


@app.post("/api/save")
async def save_database(request: Request, snapshot_file: SnapshotDep):
    body = await request.body()
    try:
        document = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Rejected save: body is not valid JSON")
        return JSONResponse({"error": "Invalid JSON"}, status_code=400)
    if not isinstance(document, dict) or any(document.get(k) is None for k in ("users", "conversations")):
        logger.warning("Rejected save: invalid document structure")
        return JSONResponse({"error": "Invalid JSON"}, status_code=400)

    try:
        size = await asyncio.to_thread(snapshot_file.write, document)
    except OSError:
        logger.exception("Error writing snapshot file %s", snapshot_file.path)
        return JSONResponse({"error": "Failed to write to file"}, status_code=500)
    logger.info("Database saved (%d bytes)", size)
    return {"success": True}
