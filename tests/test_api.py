"""
tests/test_api.py — Snapshot Server Route Tests
================================================

Exercises the FastAPI snapshot server with the TestClient against a
temporary JSON file.
"""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from messenger.api.deps import EMPTY_DOCUMENT, get_snapshot_file


@pytest.fixture
def db_file(tmp_path, monkeypatch):
    path = tmp_path / "public" / "database.json"
    monkeypatch.setenv("MESSENGER_DB_FILE", str(path))
    get_snapshot_file.cache_clear()
    yield path
    get_snapshot_file.cache_clear()


@pytest.fixture
def client(db_file):
    from messenger.api.main import app

    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


class TestDatabaseRoutes:
    def test_startup_creates_empty_document(self, client, db_file):
        assert json.loads(db_file.read_text()) == EMPTY_DOCUMENT

    def test_get_database_is_never_cached(self, client):
        resp = client.get("/api/database")
        assert resp.status_code == 200
        assert resp.json() == EMPTY_DOCUMENT
        assert "no-store" in resp.headers["cache-control"]
        assert resp.headers["pragma"] == "no-cache"
        assert resp.headers["expires"] == "0"

    def test_save_then_read_back(self, client):
        document = {
            "users": [{"id": "u1", "username": "alice", "displayName": "Alice"}],
            "conversations": [],
            "roles": [],
            "countryBans": [],
            "ads": [],
        }
        resp = client.post("/api/save", json=document)
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert client.get("/api/database").json() == document

    def test_save_rejects_non_json(self, client):
        resp = client.post("/api/save", content=b"{broken", headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid JSON"}

    @pytest.mark.parametrize(
        "document",
        [
            {"conversations": []},
            {"users": []},
            {"users": None, "conversations": []},
            ["users", "conversations"],
        ],
    )
    def test_save_rejects_bad_structure(self, client, db_file, document):
        resp = client.post("/api/save", json=document)
        assert resp.status_code == 400
        assert json.loads(db_file.read_text()) == EMPTY_DOCUMENT

    def test_write_failure_is_500(self, client):
        with patch("messenger.api.deps.SnapshotFile.write", side_effect=OSError("disk full")):
            resp = client.post("/api/save", json={"users": [], "conversations": []})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to write to file"}

    def test_read_failure_is_500(self, client, db_file):
        db_file.unlink()
        resp = client.get("/api/database")
        assert resp.status_code == 500


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
