"""Tests for the sync server."""

import pytest

pytest.importorskip("fastapi")

from fastapi.testclient import TestClient

from logcrdt.config import Config, NodeConfig
from logcrdt.crdt import SharedNumber
from logcrdt.log import LogSet, Operation
from logcrdt.server import create_app
from logcrdt.storage import DirectoryLogStore


def op(author_id, sequence_number, payload):
    return Operation(author_id, sequence_number, payload)


@pytest.fixture
def log_set():
    """LogSet with two authors."""
    return LogSet([
        op("alice", 0, 5),
        op("alice", 1, "-2"),
        op("bob", 0, "+3"),
    ])


@pytest.fixture
def store(tmp_path):
    return DirectoryLogStore(tmp_path, crdt=SharedNumber())


@pytest.fixture
def client(log_set, store):
    """Test client for a server backed by a directory store."""
    config = Config(node=NodeConfig(name="test-sync-node"))
    return TestClient(create_app(log_set, SharedNumber(), store=store, config=config))


class TestStatusEndpoints:
    """Tests for health and state routes."""

    def test_health(self, client):
        """Test the health check."""
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["node_name"] == "test-sync-node"
        assert data["crdt"] == "shared-number"
        assert data["components"]["store"] is True

    def test_state(self, client):
        """Test the materialized state."""
        data = client.get("/api/state").json()

        assert data["value"] == "6"
        assert data["operations"] == 3
        assert data["authors"] == {"alice": 2, "bob": 1}
        assert data["pending"] == {}

    def test_vector(self, client):
        """Test the author vector."""
        assert client.get("/api/sync/vector").json() == {
            "known": {"alice": 2, "bob": 1}
        }


class TestPull:
    """Tests for serving missing operations."""

    def test_pull_everything(self, client):
        """Test an empty vector gets every operation."""
        data = client.post("/api/sync/pull", json={"known": {}}).json()

        assert len(data["operations"]) == 3
        assert data["more"] is False

    def test_pull_after_vector(self, client):
        """Test only operations past the caller's prefixes are sent."""
        data = client.post("/api/sync/pull", json={"known": {"alice": 1, "bob": 1}}).json()

        assert data["operations"] == [
            {"author_id": "alice", "sequence_number": 1, "payload": "-2"}
        ]

    def test_pull_with_limit(self, client):
        """Test batching with a limit."""
        data = client.post("/api/sync/pull", json={"known": {}, "limit": 2}).json()

        assert len(data["operations"]) == 2
        assert data["more"] is True

    def test_pull_exact_limit(self, client):
        """Test no more flag when the batch is exactly full."""
        data = client.post("/api/sync/pull", json={"known": {}, "limit": 3}).json()

        assert len(data["operations"]) == 3
        assert data["more"] is False


class TestPush:
    """Tests for ingesting pushed operations."""

    def test_push_accepted(self, client, log_set, store):
        """Test pushed operations are ingested and persisted."""
        response = client.post("/api/sync/push", json={"operations": [
            {"author_id": "carol", "sequence_number": 0, "payload": 10},
        ]})

        assert response.status_code == 200
        data = response.json()
        assert data["accepted"] == 1
        assert data["known"]["carol"] == 1
        assert ("carol", 0) in log_set
        assert [o.payload for o in store.read_log("carol")] == [10]

    def test_push_duplicates_and_buffered(self, client):
        """Test repeats are ignored and gaps are buffered."""
        data = client.post("/api/sync/push", json={"operations": [
            {"author_id": "alice", "sequence_number": 0, "payload": 5},
            {"author_id": "bob", "sequence_number": 2, "payload": 1},
        ]}).json()

        assert data["accepted"] == 0
        assert data["duplicates"] == 1
        assert data["buffered"] == 1
        assert client.get("/api/state").json()["pending"] == {"bob": 1}

    def test_push_invalid_payload(self, client, log_set):
        """Test a payload outside the schema is refused."""
        response = client.post("/api/sync/push", json={"operations": [
            {"author_id": "carol", "sequence_number": 0, "payload": "ten"},
        ]})

        assert response.status_code == 422
        assert "carol" not in log_set.known_authors()

    def test_push_float_payload(self, client, log_set):
        """Test an integral float amount is refused."""
        response = client.post("/api/sync/push", json={"operations": [
            {"author_id": "carol", "sequence_number": 0, "payload": 5.0},
        ]})

        assert response.status_code == 422
        assert client.get("/api/state").json()["value"] == "6"

    def test_push_malformed_record(self, client):
        """Test a record without an identity is refused."""
        response = client.post("/api/sync/push", json={"operations": [{"payload": 1}]})

        assert response.status_code == 422

    def test_push_conflict(self, client, log_set):
        """Test a reused identity with a new payload is refused."""
        response = client.post("/api/sync/push", json={"operations": [
            {"author_id": "carol", "sequence_number": 0, "payload": 1},
            {"author_id": "alice", "sequence_number": 0, "payload": 99},
        ]})

        assert response.status_code == 409
        assert "carol" not in log_set.known_authors()
