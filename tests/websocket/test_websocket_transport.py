import asyncio
import gzip
import json
from http import HTTPStatus

import pytest
from websockets.asyncio.server import serve

from marketdesk.websocket.diagnostics import DiagnosticsLog
from marketdesk.websocket.gateway_client import GatewayClient, ConnectionState
from marketdesk.websocket.gateway_config import GatewayConfig
from marketdesk.websocket.market_data_store import MarketDataStore
from marketdesk.websocket.timers import AsyncioScheduler, TimerSlot
from marketdesk.websocket.transport import WebSocketConnector


class RecordingClient:
    """Collects connector callbacks in arrival order"""

    def __init__(self, greeting=None):
        self.greeting = greeting
        self.transport = None
        self.messages = []
        self.close_reasons = []
        self.closed = asyncio.Event()

    def handle_open(self, transport):
        self.transport = transport
        if self.greeting is not None:
            transport.send(self.greeting)

    def handle_message(self, raw):
        self.messages.append(raw)

    def handle_close(self, reason):
        self.close_reasons.append(reason)
        self.closed.set()


async def wait_until(predicate, timeout=5.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def port_of(server):
    return list(server.sockets)[0].getsockname()[1]


def frame(api, sn=None, **data):
    message = {"api": api, "data": data}
    if sn is not None:
        message["sn"] = sn
    return gzip.compress(json.dumps(message).encode("utf-8"))


@pytest.mark.asyncio
async def test_connector_delivers_frames_and_reports_server_close():
    received = []

    async def handler(ws):
        received.append(await ws.recv())
        await ws.send('{"api": "sync", "data": {"code": "AAPL.US"}}')
        await ws.send(frame("sync", code="NVDA.US"))
        await ws.close()

    async with serve(handler, "127.0.0.1", 0) as server:
        client = RecordingClient(greeting='{"api": "auth"}')
        connector = WebSocketConnector(f"ws://127.0.0.1:{port_of(server)}", asyncio.get_running_loop())
        connector.open(client)

        await asyncio.wait_for(client.closed.wait(), timeout=5)

    assert received == ['{"api": "auth"}']
    assert isinstance(client.messages[0], str)
    assert isinstance(client.messages[1], bytes)
    assert client.close_reasons == ["closed by gateway"]
    assert not client.transport.is_open


@pytest.mark.asyncio
async def test_cancel_releases_socket_without_close_report():
    server_saw_close = asyncio.Event()

    async def handler(ws):
        await ws.wait_closed()
        server_saw_close.set()

    async with serve(handler, "127.0.0.1", 0) as server:
        client = RecordingClient()
        connector = WebSocketConnector(f"ws://127.0.0.1:{port_of(server)}", asyncio.get_running_loop())
        connector.open(client)
        await wait_until(lambda: client.transport is not None)

        connector.cancel()

        await asyncio.wait_for(server_saw_close.wait(), timeout=5)
        await asyncio.sleep(0.05)

    assert client.close_reasons == []
    assert not client.transport.is_open


@pytest.mark.asyncio
async def test_rejected_handshake_reports_close():
    def reject(connection, request):
        return connection.respond(HTTPStatus.FORBIDDEN, "forbidden\n")

    async def handler(ws):
        await ws.wait_closed()

    async with serve(handler, "127.0.0.1", 0, process_request=reject) as server:
        client = RecordingClient()
        connector = WebSocketConnector(f"ws://127.0.0.1:{port_of(server)}", asyncio.get_running_loop())
        connector.open(client)

        await asyncio.wait_for(client.closed.wait(), timeout=5)

    assert client.transport is None
    assert client.close_reasons[0].startswith("handshake rejected")


@pytest.mark.asyncio
async def test_unreachable_gateway_reports_close():
    async with serve(lambda ws: ws.wait_closed(), "127.0.0.1", 0) as server:
        port = port_of(server)

    client = RecordingClient()
    WebSocketConnector(f"ws://127.0.0.1:{port}", asyncio.get_running_loop()).open(client)

    await asyncio.wait_for(client.closed.wait(), timeout=5)
    assert client.close_reasons[0].startswith("connect error")


@pytest.mark.asyncio
async def test_unexpected_error_is_reported_not_raised():
    client = RecordingClient()
    connector = WebSocketConnector("not-a-websocket-url", asyncio.get_running_loop())
    connector.open(client)
    task = connector._task

    await asyncio.wait_for(client.closed.wait(), timeout=5)
    await asyncio.wait_for(task, timeout=5)

    assert client.close_reasons[0].startswith("unexpected error")
    assert task.exception() is None


@pytest.mark.asyncio
async def test_asyncio_timer_slot_fires_and_cancels():
    scheduler = AsyncioScheduler(asyncio.get_running_loop())
    fired = []

    ticking = TimerSlot(scheduler, "heartbeat")
    ticking.arm(0.01, lambda: fired.append("tick"), repeat=True)
    cancelled = TimerSlot(scheduler, "reconnect")
    cancelled.arm(0.01, lambda: fired.append("reconnect"))
    cancelled.cancel()

    await wait_until(lambda: fired.count("tick") >= 3)
    ticking.cancel()
    count = len(fired)
    await asyncio.sleep(0.05)

    assert len(fired) == count
    assert "reconnect" not in fired


@pytest.mark.asyncio
async def test_client_reconnects_after_server_drop():
    connections = []

    async def handler(ws):
        connections.append(ws)
        auth = json.loads(await ws.recv())
        await ws.send(frame("auth", sn=auth["sn"], rc="000", token=f"T{len(connections)}"))
        if len(connections) == 1:
            await ws.close()
        else:
            await ws.wait_closed()

    async with serve(handler, "127.0.0.1", 0) as server:
        loop = asyncio.get_running_loop()
        config = GatewayConfig(url=f"ws://127.0.0.1:{port_of(server)}", reconnect_delay=0.05)
        client = GatewayClient(
            WebSocketConnector(config.url, loop),
            AsyncioScheduler(loop),
            config=config,
            store=MarketDataStore(),
            diagnostics=DiagnosticsLog()
        )
        client.connect()

        await wait_until(lambda: client.token == "T2")
        assert client.state is ConnectionState.AUTHENTICATED
        assert client.get_health().reconnect_count == 1

        client.close()
        await wait_until(lambda: connections[-1].state.name == "CLOSED")

    assert client.state is ConnectionState.DISCONNECTED
    assert len(connections) == 2
