import asyncio
import json
import socket

import pytest
from fastapi.testclient import TestClient

from app import create_app
from tests.conftest import FailingRoomStore, MemoryRoomStore


@pytest.fixture
def app():
    return create_app(store=MemoryRoomStore(), udp_host="127.0.0.1", udp_port=0)


@pytest.fixture
def peer():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2.0)
    yield sock
    sock.close()


def exchange(sock, server_addr, message):
    sock.sendto(json.dumps(message).encode(), server_addr)
    data, _ = sock.recvfrom(65535)
    return json.loads(data)


def test_health_reports_store_and_udp(app):
    with TestClient(app) as client:
        response = client.get("/health")
        assert response.status_code == 200
        payload = response.json()
        assert payload["status"] == "ok"
        assert payload["store"] == "ok"
        assert payload["version"] == "0.1"
        assert payload["udp"].startswith("127.0.0.1:")


def test_health_degraded_without_store():
    app = create_app(store=FailingRoomStore(), udp_host="127.0.0.1", udp_port=0)
    with TestClient(app) as client:
        payload = client.get("/health").json()
        assert payload["status"] == "degraded"
        assert payload["store"] == "unavailable"


def test_create_over_udp_and_stats(app, peer):
    with TestClient(app) as client:
        server_addr = app.state.udp_server.local_address[:2]

        reply = exchange(peer, server_addr, {"protocol": "api", "type": "create", "seq": 1})
        assert reply["type"] == "create-response"
        assert reply["seq"] == 1

        reply = exchange(peer, server_addr, {"protocol": "api", "type": "info", "id": reply["id"], "seq": 2})
        assert reply["type"] == "info"
        assert reply["members"] == []

        stats = client.get("/stats").json()
        assert stats["received"] == 2
        assert stats["replies"] == 2
        assert stats["decode_errors"] == 0


class ClosingRoomStore(MemoryRoomStore):
    def __init__(self):
        super().__init__()
        self.closed = False

    async def close(self):
        self.closed = True


def test_store_closed_when_udp_bind_fails():
    busy = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    busy.bind(("127.0.0.1", 0))
    try:
        store = ClosingRoomStore()
        app = create_app(store=store, udp_host="127.0.0.1", udp_port=busy.getsockname()[1])

        async def run_lifespan():
            async with app.router.lifespan_context(app):
                pass

        with pytest.raises(OSError):
            asyncio.run(run_lifespan())
        assert store.closed is True
    finally:
        busy.close()
