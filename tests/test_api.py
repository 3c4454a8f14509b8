"""Tests for the REST API and WebSocket surface."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

import main
from api.routes import init_routes
from rendezvous.client import RendezvousTimeout
from session.bridge import SessionBridge
from session.connection import ConnectionStateMachine
from session.manager import SessionManager

from test_connection import HOST_CODE, FakeRoomClient


@pytest.fixture
def bridge():
    bridge = MagicMock(spec=SessionBridge)
    bridge.initialize.return_value = True
    bridge.get_netplay_status.return_value = 3
    return bridge


@pytest.fixture
def rooms():
    return FakeRoomClient(error=RendezvousTimeout("Timed out waiting for host"))


@pytest.fixture
def services(store, stun, lan_ip, bridge, rooms):
    machine = ConnectionStateMachine(store, stun=stun, lan_ip_provider=lan_ip, room_client_factory=rooms)
    manager = SessionManager(bridge, poll_interval=0)
    init_routes(machine, manager, store)
    return machine, manager, store


@pytest.fixture
def client(services):
    return TestClient(main.app)


@pytest.fixture
def rom(tmp_path):
    path = tmp_path / "game.sfc"
    path.write_bytes(b"\x00" * 16)
    return str(path)


class TestConnectionRoutes:
    def test_get_connection(self, client):
        resp = client.get("/api/connection")
        assert resp.status_code == 200
        assert resp.json()["state"] == "idle"

    def test_host(self, client):
        resp = client.post("/api/connection/host", json={"local_port": 7000})
        assert resp.status_code == 200
        body = resp.json()
        assert body["state"] == "host_ready"
        assert body["connection_code"].startswith("SNO2:")
        assert body["invite_link"].startswith("snesonline://join?code=")

    def test_host_without_body(self, client):
        assert client.post("/api/connection/host").status_code == 200

    def test_host_stun_failure_is_bad_gateway(self, client, stun):
        stun.mapped_address.return_value = ""
        resp = client.post("/api/connection/host", json={})
        assert resp.status_code == 502
        assert resp.json()["detail"] == "STUN failed"
        assert client.get("/api/connection").json()["status"] == "Host failed: STUN failed"

    def test_join_flow(self, client):
        assert client.post("/api/connection/join-intent").json()["state"] == "join_input"
        resp = client.post("/api/connection/join", json={"code": HOST_CODE})
        assert resp.status_code == 200
        assert resp.json()["join_target"] == "198.51.100.7:41000"

    def test_join_bad_code(self, client):
        client.post("/api/connection/join-intent")
        resp = client.post("/api/connection/join", json={"code": "not a code"})
        assert resp.status_code == 400

    def test_join_without_intent_conflicts(self, client):
        resp = client.post("/api/connection/join", json={"code": HOST_CODE})
        assert resp.status_code == 409

    def test_invite(self, client):
        uri = f"snesonline://join?code={HOST_CODE}"
        resp = client.post("/api/connection/invite", json={"uri": uri})
        assert resp.status_code == 200
        assert resp.json()["state"] == "join_ready"

    def test_room_timeout(self, client):
        resp = client.post("/api/connection/room", json={"code": "ABCD1234", "password": "pw"})
        assert resp.status_code == 504
        assert client.get("/api/connection").json()["state"] == "join_input"

    def test_cancel(self, client):
        client.post("/api/connection/host", json={})
        resp = client.post("/api/connection/cancel")
        assert resp.status_code == 200
        assert resp.json()["state"] == "idle"
        assert resp.json()["connection_code"] == ""

    def test_netplay_toggle(self, client):
        resp = client.put("/api/netplay", json={"enabled": False})
        assert resp.status_code == 200
        assert resp.json()["netplay_enabled"] is False

    def test_validation_error_is_bad_request(self, client):
        resp = client.post("/api/connection/host", json={"local_port": 0})
        assert resp.status_code == 400


class TestLaunchRoutes:
    def test_refused_without_rom(self, client):
        resp = client.post("/api/launch")
        assert resp.status_code == 409
        assert resp.json()["detail"] == "Pick a ROM first"

    def test_refused_until_host_ready(self, client, rom):
        client.put("/api/settings", json={"rom_path": rom})
        client.put("/api/netplay", json={"enabled": True})
        resp = client.post("/api/launch")
        assert resp.status_code == 409
        assert resp.json()["detail"] == "Press Start connection first"

    def test_launch_join(self, client, rom, bridge):
        client.put("/api/settings", json={"rom_path": rom})
        client.post("/api/connection/join-intent")
        client.post("/api/connection/join", json={"code": HOST_CODE})

        resp = client.post("/api/launch")
        assert resp.status_code == 200
        plan = resp.json()["plan"]
        assert plan["local_player_num"] == 2
        assert plan["remote_port"] == 41000
        bridge.initialize.assert_called_once()

    def test_launch_without_native_library(self, services, rom):
        machine, _, store = services
        init_routes(machine, SessionManager(None), store)
        client = TestClient(main.app)
        client.put("/api/settings", json={"rom_path": rom})
        client.put("/api/netplay", json={"enabled": False})

        resp = client.post("/api/launch")
        assert resp.status_code == 503

    def test_netplay_status(self, client):
        resp = client.get("/api/netplay/status")
        assert resp.status_code == 200
        assert resp.json() == {"status": 0, "message": "", "running": False}


class TestSettingsRoutes:
    def test_get_defaults(self, client):
        body = client.get("/api/settings").json()
        assert body["local_port"] == 7000
        assert body["rom_path"] == ""
        assert "secret" not in body

    def test_update(self, client, rom):
        resp = client.put("/api/settings", json={"rom_path": rom, "local_port": 7100})
        assert resp.status_code == 200
        assert resp.json()["local_port"] == 7100
        assert client.get("/api/settings").json()["rom_path"] == rom

    def test_missing_rom(self, client):
        resp = client.put("/api/settings", json={"rom_path": "/nonexistent/game.sfc"})
        assert resp.status_code == 400


def test_websocket_greets_with_connection_state(client):
    with client.websocket_connect("/ws") as ws:
        message = ws.receive_json()
    assert message["event"] == "connection_state"
    assert "state" in message["data"]
