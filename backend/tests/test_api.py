"""Tests for the HTTP API via FastAPI TestClient."""

from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from server_manager import __version__
from server_manager.main import create_app
from server_manager.services import ServerManager


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def client(manager: ServerManager) -> Iterator[TestClient]:
    """Client whose lifespan runs the in-memory manager."""
    with TestClient(create_app(manager)) as test_client:
        yield test_client


def _add_server(client: TestClient, **overrides) -> dict:
    body = {
        "name": "Main",
        "ip_address": "10.0.0.5",
        "rcon_port": 27015,
        "rcon_password": "secret",
        "ftp_host": "10.0.0.5",
        "ftp_username": "admin",
        "ftp_password": "ftp-pass",
    }
    body.update(overrides)
    response = client.post("/servers", json=body)
    assert response.status_code == 200, response.text
    return response.json()


# =============================================================================
# Servers
# =============================================================================


class TestServerRoutes:
    """Tests for server CRUD routes."""

    def test_empty_list(self, client: TestClient) -> None:
        response = client.get("/servers")

        assert response.status_code == 200
        assert response.json() == []

    def test_add_and_list(self, client: TestClient) -> None:
        created = _add_server(client)

        assert created["key"] == "10.0.0.5:27015"
        assert created["has_rcon_password"] is True
        assert "rcon_password" not in created
        assert [s["key"] for s in client.get("/servers").json()] == ["10.0.0.5:27015"]

    def test_add_duplicate_returns_400(self, client: TestClient) -> None:
        _add_server(client)

        response = client.post("/servers", json={"ip_address": "10.0.0.5", "rcon_port": 27015})

        assert response.status_code == 400

    def test_update(self, client: TestClient) -> None:
        _add_server(client)

        response = client.put("/servers/10.0.0.5:27015", json={"name": "Renamed", "rcon_port": 27016})

        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        assert response.json()["key"] == "10.0.0.5:27016"

    def test_update_unknown_returns_404(self, client: TestClient) -> None:
        response = client.put("/servers/10.9.9.9:27015", json={"name": "Renamed"})

        assert response.status_code == 404

    def test_delete(self, client: TestClient) -> None:
        _add_server(client)

        response = client.delete("/servers/10.0.0.5:27015")

        assert response.status_code == 200
        assert client.get("/servers").json() == []

    def test_duplicate(self, client: TestClient) -> None:
        _add_server(client)

        assert client.post("/servers/10.0.0.5:27015/duplicate").status_code == 400

        response = client.post("/servers/10.0.0.5:27015/duplicate", json={"rcon_port": 27016})
        assert response.status_code == 200
        assert response.json()["name"] == "Main (Copy)"
        assert response.json()["has_rcon_password"] is True

    def test_refresh(self, client: TestClient) -> None:
        _add_server(client)

        response = client.post("/servers/refresh")

        assert response.status_code == 200
        status = response.json()[0]["status"]
        assert status["online"] is False
        assert response.json()[0]["player_map_info"] == "0/24 - "

    def test_refresh_one_unknown_returns_404(self, client: TestClient) -> None:
        assert client.post("/servers/10.9.9.9:27015/refresh").status_code == 404


# =============================================================================
# RCON and files
# =============================================================================


class TestOperationRoutes:
    """Tests for RCON and file routes."""

    def test_rcon(self, client: TestClient) -> None:
        _add_server(client)

        response = client.post("/servers/10.0.0.5:27015/rcon", json={"command": "status"})

        assert response.status_code == 200
        assert response.json()["result"].startswith("hostname: Test Server")

    def test_rcon_status(self, client: TestClient) -> None:
        _add_server(client)

        response = client.get("/servers/10.0.0.5:27015/rcon/status")

        assert response.status_code == 200
        assert response.json()["hostname"] == "Test Server"

    def test_rcon_status_failure_returns_502(self, client: TestClient) -> None:
        _add_server(client, rcon_password="wrong")

        response = client.get("/servers/10.0.0.5:27015/rcon/status")

        assert response.status_code == 502
        assert response.json()["detail"].startswith("RCON Error:")

    def test_broadcast(self, client: TestClient) -> None:
        _add_server(client)
        _add_server(client, ip_address="10.0.0.6", rcon_password="wrong")

        response = client.post("/servers/rcon/broadcast", json={"command": "status"})

        results = response.json()["results"]
        assert results["10.0.0.5:27015"].startswith("hostname:")
        assert results["10.0.0.6:27015"].startswith("RCON Error:")

    def test_broadcast_unknown_server_returns_404(self, client: TestClient) -> None:
        response = client.post("/servers/rcon/broadcast", json={"command": "status", "servers": ["10.9.9.9:1"]})

        assert response.status_code == 404

    def test_upload_mkdir_and_browse(self, client: TestClient, tmp_path) -> None:
        _add_server(client)
        source = tmp_path / "motd.txt"
        source.write_text("welcome")

        upload = client.post("/servers/10.0.0.5:27015/files/upload",
                             json={"local_path": str(source), "remote_path": "cfg/motd.txt"})
        mkdir = client.post("/servers/10.0.0.5:27015/files/mkdir", json={"path": "maps"})
        listing = client.get("/servers/10.0.0.5:27015/files", params={"path": "cfg"})

        assert upload.json()["result"] == "File uploaded successfully to cfg/motd.txt"
        assert mkdir.json()["result"] == "Directory created: maps"
        assert listing.json()["result"].splitlines()[1].startswith("[FILE] motd.txt")

    def test_upload_missing_local_path_returns_400(self, client: TestClient, tmp_path) -> None:
        _add_server(client)

        response = client.post("/servers/10.0.0.5:27015/files/upload",
                               json={"local_path": str(tmp_path / "missing"), "remote_path": "x"})

        assert response.status_code == 400

    def test_broadcast_upload(self, client: TestClient, tmp_path) -> None:
        _add_server(client)
        _add_server(client, ip_address="10.0.0.6", ftp_host="10.0.0.6")
        source = tmp_path / "motd.txt"
        source.write_text("welcome")

        response = client.post("/servers/files/upload/broadcast",
                               json={"local_path": str(source), "remote_path": "motd.txt",
                                     "servers": ["10.0.0.6:27015"]})

        assert response.status_code == 200
        assert response.json()["results"] == {"10.0.0.6:27015": "File uploaded successfully to motd.txt"}

    def test_broadcast_upload_missing_local_path_returns_400(self, client: TestClient, tmp_path) -> None:
        _add_server(client)

        response = client.post("/servers/files/upload/broadcast",
                               json={"local_path": str(tmp_path / "missing"), "remote_path": "x"})

        assert response.status_code == 400


# =============================================================================
# Health
# =============================================================================


class TestHealthRoutes:
    """Tests for the health and pool routes."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["version"] == __version__

    def test_pools_status(self, client: TestClient) -> None:
        _add_server(client)
        client.post("/servers/10.0.0.5:27015/rcon", json={"command": "status"})

        pools = client.get("/api/pools/status").json()

        assert pools["RCON"] == {"10.0.0.5:27015": {"alive": True}}
        assert pools["FTP"] == {}

    def test_no_favicon_route(self, client: TestClient) -> None:
        assert client.get("/api/favicon.ico").status_code == 404
        assert "/api/favicon.ico" not in {route.path for route in client.app.routes}


def test_shutdown_closes_sessions(manager: ServerManager) -> None:
    """Leaving the lifespan stops polling and closes every session."""
    with TestClient(create_app(manager)) as client:
        _add_server(client)
        client.post("/servers/10.0.0.5:27015/rcon", json={"command": "status"})
        assert manager.rcon_pool.sessions

    assert all(pool.sessions == {} for pool in manager.pools)
