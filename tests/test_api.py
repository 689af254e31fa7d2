"""Tests for the HTTP API."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from storemigrate.api.main import app
from storemigrate.api.storage import migration_storage


@pytest.fixture
def client():
    migration_storage.clear()
    yield TestClient(app)
    migration_storage.clear()


@pytest.fixture
def payload(tmp_path):
    return {
        "name": "api-test",
        "source": {"url": "http://a.test", "email": "a@a.test", "password": "pw"},
        "destination": {"url": "http://b.test", "email": "b@b.test", "password": "pw"},
        "collections": [
            {"name": "statuses"},
            {"name": "categories", "self_reference_field": "parent"},
        ],
        "attachment_fields": {"image": "single"},
        "staging_dir": str(tmp_path / "staging"),
        "batch_size": 10,
    }


@pytest.fixture
def stores(source, destination):
    clients = {"source": source, "destination": destination}
    with patch(
        "storemigrate.orchestrator.PocketBaseClient.from_endpoint",
        side_effect=lambda name, endpoint: clients[name],
    ):
        yield clients


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_cors_allows_local_dashboard(client):
    response = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


class TestStartMigration:

    def test_runs_in_background(self, client, payload, stores):
        source = stores["source"]
        root = source.add_record("categories", {"name": "root", "image": "r.png"}, files={"r.png": b"R"})
        source.add_record("categories", {"name": "leaf", "parent": root})

        response = client.post("/api/migrations", json=payload)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "started"

        run = client.get(f"/api/migrations/{body['migration_id']}").json()
        assert run["name"] == "api-test"
        assert run["status"] == "completed"
        statuses, categories = run["results"]
        assert statuses["links_updated"] is None
        assert categories["succeeded"] == 2
        assert categories["links_updated"] == 1
        assert categories["attachments_uploaded"] == 1
        assert run["total_records_processed"] == 2

    def test_authentication_failure_recorded_on_run(self, client, payload, stores):
        stores["destination"].reject_auth = True

        migration_id = client.post("/api/migrations", json=payload).json()["migration_id"]

        run = client.get(f"/api/migrations/{migration_id}").json()
        assert run["status"] == "failed"
        assert run["errors"][0]["type"] == "AuthenticationError"

    def test_invalid_url_rejected(self, client, payload):
        payload["source"]["url"] = "ftp://a.test"
        response = client.post("/api/migrations", json=payload)
        assert response.status_code == 400
        assert "Invalid source store URL" in response.json()["detail"]
        assert migration_storage.list_all() == []

    def test_duplicate_collection_rejected(self, client, payload):
        payload["collections"].append({"name": "statuses"})
        response = client.post("/api/migrations", json=payload)
        assert response.status_code == 400

    def test_malformed_body(self, client, payload):
        payload["batch_size"] = 0
        assert client.post("/api/migrations", json=payload).status_code == 422

        payload["batch_size"] = 10
        payload["attachment_fields"] = {"image": "several"}
        assert client.post("/api/migrations", json=payload).status_code == 422


class TestListMigrations:

    def test_empty(self, client):
        assert client.get("/api/migrations").json() == {"migrations": [], "total": 0}

    def test_lists_started_runs(self, client, payload, stores):
        client.post("/api/migrations", json=payload)
        client.post("/api/migrations", json=payload)

        body = client.get("/api/migrations").json()

        assert body["total"] == 2
        assert {m["status"] for m in body["migrations"]} == {"completed"}


def test_unknown_migration(client):
    response = client.get("/api/migrations/does-not-exist")
    assert response.status_code == 404
    assert response.json()["detail"] == "Migration not found"
