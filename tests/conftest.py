import gzip
import json
import pytest
from datetime import datetime

from marketdesk.clock import ReplayClock
from marketdesk.websocket.diagnostics import DiagnosticsLog
from marketdesk.websocket.gateway_client import GatewayClient
from marketdesk.websocket.gateway_config import GatewayConfig
from marketdesk.websocket.market_data_store import MarketDataStore
from marketdesk.websocket.timers import ManualScheduler
from marketdesk.websocket.transport import Connector, Transport


class FakeTransport(Transport):
    """Records every packet the client writes"""

    def __init__(self):
        self.open = True
        self.sent = []
        self.close_calls = 0

    @property
    def is_open(self) -> bool:
        return self.open

    def send(self, text: str):
        self.sent.append(text)

    def close(self):
        self.close_calls += 1
        self.open = False

    def packets(self, api=None):
        decoded = [json.loads(text) for text in self.sent]
        if api is not None:
            decoded = [p for p in decoded if p["api"] == api]
        return decoded


class FakeConnector(Connector):
    """Lets a test decide when the socket opens"""

    def __init__(self):
        self.client = None
        self.open_calls = 0
        self.cancel_calls = 0
        self.fail_next = None

    def open(self, client):
        self.open_calls += 1
        self.client = client
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error

    def cancel(self):
        self.cancel_calls += 1

    def accept(self) -> FakeTransport:
        transport = FakeTransport()
        self.client.handle_open(transport)
        return transport


class GatewayHarness:
    """A GatewayClient wired to a fake socket and a manual clock"""

    def __init__(self, clock: ReplayClock):
        self.clock = clock
        self.scheduler = ManualScheduler(clock)
        self.config = GatewayConfig()
        self.store = MarketDataStore()
        self.diagnostics = DiagnosticsLog(self.config.diagnostics_capacity, clock)
        self.connector = FakeConnector()
        self.client = GatewayClient(
            self.connector,
            self.scheduler,
            config=self.config,
            store=self.store,
            diagnostics=self.diagnostics,
            clock=clock
        )
        self.transport = None

    def open(self) -> FakeTransport:
        self.client.connect()
        self.transport = self.connector.accept()
        return self.transport

    def reply(self, api, sn=None, binary=False, **data):
        message = {"api": api, "data": data}
        if sn is not None:
            message["sn"] = sn
        raw = json.dumps(message)
        self.client.handle_message(gzip.compress(raw.encode("utf-8")) if binary else raw)

    def authenticate(self, token="T1") -> FakeTransport:
        transport = self.open()
        self.reply("auth", sn=1, rc="000", token=token)
        return transport

    def entries(self, severity=None):
        return self.diagnostics.entries(severity)


@pytest.fixture
def replay_clock():
    return ReplayClock(datetime(2025, 1, 2, 9, 30))


@pytest.fixture
def harness(replay_clock):
    return GatewayHarness(replay_clock)
