import asyncio
import json
import socket

import pytest
from fastapi.testclient import TestClient

from flower_bridge.osc_session import BridgeConfig, build_packet
from flower_bridge.ws_server import BridgeEvent, RelayServer

BIND_FAIL_PORT = 9999


class FakeSession:
    """OSC session stand-in; packets sent to /echo come straight back."""

    def __init__(self, config: BridgeConfig, on_message):
        self.config = config
        self.on_message = on_message
        self.sent = []
        self.opened = False
        self.closed = False

    async def open(self):
        if self.config.server_port == BIND_FAIL_PORT:
            raise OSError("address already in use")
        self.opened = True

    def send(self, packet):
        try:
            build_packet(packet)
        except ValueError:
            return False
        self.sent.append(list(packet))
        if packet[0] == "/echo":
            self.on_message(list(packet))
        return True

    async def close(self):
        self.closed = True

    def get_stats(self):
        return {"open": self.opened and not self.closed}


@pytest.fixture
def sessions():
    return []


@pytest.fixture
def relay(sessions):
    def factory(config, on_message):
        session = FakeSession(config, on_message)
        sessions.append(session)
        return session

    return RelayServer(session_factory=factory)


@pytest.fixture
def client(relay):
    return TestClient(relay.app)


def event(name, data=None):
    return json.dumps({"event": name, "data": data})


def config_event(server_port=12000, client_port=8000):
    return event("config", {
        "server": {"host": "127.0.0.1", "port": server_port},
        "client": {"host": "127.0.0.1", "port": client_port},
    })


def test_bridge_event_round_trip():
    ev = BridgeEvent.from_json(BridgeEvent("message", ["/test", 1]).to_json())
    assert ev == BridgeEvent("message", ["/test", 1])


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["connected_clients"] == 0


def test_config_opens_session(client, sessions):
    with client.websocket_connect("/bridge") as ws:
        ws.send_text(config_event())
        assert ws.receive_json() == {"event": "connected", "data": 1}

    assert len(sessions) == 1
    session = sessions[0]
    assert session.config == BridgeConfig("127.0.0.1", 12000, "127.0.0.1", 8000)
    assert session.sent[0] == ["/status", "client_1 connected"]


def test_config_failure_reports_zero(client, sessions):
    with client.websocket_connect("/bridge") as ws:
        ws.send_text(config_event(server_port=BIND_FAIL_PORT))
        assert ws.receive_json() == {"event": "connected", "data": 0}

        ws.send_text(config_event(server_port="bogus"))
        assert ws.receive_json() == {"event": "connected", "data": 0}

        # a later valid config still works
        ws.send_text(config_event())
        assert ws.receive_json() == {"event": "connected", "data": 1}


def test_reconfigure_tears_down_previous(client, sessions, relay):
    with client.websocket_connect("/bridge") as ws:
        ws.send_text(config_event(12000, 8000))
        assert ws.receive_json()["data"] == 1
        ws.send_text(config_event(12001, 8001))
        assert ws.receive_json()["data"] == 1

        assert len(sessions) == 2
        assert sessions[0].closed
        assert not sessions[1].closed
        assert relay.get_session("client_1") is sessions[1]

        ws.send_text(event("osc-send", ["/viz/phase", 2]))
        ws.send_text(event("osc-send", ["/echo"]))
        ws.receive_json()

    assert ["/viz/phase", 2] not in sessions[0].sent
    assert ["/viz/phase", 2] in sessions[1].sent


def test_forwarding_both_directions(client, sessions, relay):
    with client.websocket_connect("/bridge") as ws:
        ws.send_text(config_event())
        ws.receive_json()

        ws.send_text(event("osc-send", ["/hand/pinch", 0.5]))
        ws.send_text(event("message", ["/hand/fingers", 3]))
        ws.send_text(event("osc-send", ["/echo", 1, 2.5]))
        assert ws.receive_json() == {"event": "message", "data": ["/echo", 1, 2.5]}

    assert relay.get_stats()["pending_forwards"] == 0
    assert sessions[0].sent[1:] == [
        ["/hand/pinch", 0.5],
        ["/hand/fingers", 3],
        ["/echo", 1, 2.5],
    ]


def test_malformed_events_are_dropped(client, sessions, relay):
    with client.websocket_connect("/bridge") as ws:
        ws.send_text(config_event())
        ws.receive_json()

        ws.send_text("not json")
        ws.send_text(json.dumps(["osc-send"]))
        ws.send_text(event("osc-send", "not a list"))
        ws.send_text(event("osc-send", []))
        ws.send_text(event("osc-send", [42, "x"]))
        ws.send_text(event("osc-send", ["/hand/pinch", {"bad": 1}]))
        ws.send_text(event("unknown", 1))

        ws.send_text(event("osc-send", ["/echo", 7]))
        assert ws.receive_json() == {"event": "message", "data": ["/echo", 7]}

    assert sessions[0].sent[1:] == [["/echo", 7]]
    stats = relay.get_stats()
    assert stats["invalid_events"] == 3


def test_events_before_config_are_ignored(client, sessions):
    with client.websocket_connect("/bridge") as ws:
        ws.send_text(event("osc-send", ["/viz/phase", 1]))
        ws.send_text(config_event())
        assert ws.receive_json()["data"] == 1

    assert sessions[0].sent == [["/status", "client_1 connected"]]


def test_disconnect_tears_down_session(client, sessions, relay):
    with client.websocket_connect("/bridge") as ws:
        ws.send_text(config_event())
        ws.receive_json()

    assert sessions[0].closed
    assert relay.get_session("client_1") is None
    assert relay.get_stats()["connected_clients"] == 0


def test_connections_have_separate_sessions(client, sessions, relay):
    with client.websocket_connect("/bridge") as ws1:
        ws1.send_text(config_event(12000, 8000))
        ws1.receive_json()
        with client.websocket_connect("/bridge") as ws2:
            ws2.send_text(config_event(12001, 8001))
            ws2.receive_json()

            ws2.send_text(event("osc-send", ["/echo", 2]))
            assert ws2.receive_json()["data"] == ["/echo", 2]

        assert sessions[1].closed
        assert not sessions[0].closed

        ws1.send_text(event("osc-send", ["/echo", 1]))
        assert ws1.receive_json()["data"] == ["/echo", 1]

    assert sessions[0].sent[1:] == [["/echo", 1]]
    assert sessions[1].sent[1:] == [["/echo", 2]]


def _free_udp_port():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


def test_reconfigure_same_port_with_real_sessions():
    relay = RelayServer()
    port = _free_udp_port()

    with TestClient(relay.app).websocket_connect("/bridge") as ws:
        ws.send_text(config_event(server_port=port, client_port=9))
        assert ws.receive_json() == {"event": "connected", "data": 1}

        ws.send_text(config_event(server_port=port, client_port=9))
        assert ws.receive_json() == {"event": "connected", "data": 1}

        session = relay.get_session("client_1")
        assert session is not None
        assert session.is_open

    assert relay.get_session("client_1") is None


class BlockingWebSocket:
    """Websocket stand-in whose sends never complete."""

    def __init__(self):
        self.release = asyncio.Event()

    async def send_text(self, text):
        await self.release.wait()


def test_teardown_cancels_pending_forwards(relay, sessions):
    async def scenario():
        ws = BlockingWebSocket()
        relay._sessions["client_x"] = FakeSession(BridgeConfig(), None)

        relay._forward_to_client(ws, "client_x", ["/in", 1])
        relay._forward_to_client(ws, "client_x", ["/in", 2])
        await asyncio.sleep(0)
        tasks = set(relay._pending["client_x"])
        assert len(tasks) == 2
        assert relay.get_stats()["pending_forwards"] == 2

        await relay._teardown("client_x")
        await asyncio.sleep(0)
        return tasks

    tasks = asyncio.run(scenario())
    assert all(t.cancelled() for t in tasks)
    assert relay.get_stats()["pending_forwards"] == 0
    assert relay.get_stats()["forwarded_to_client"] == 0
