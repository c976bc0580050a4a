# marketdesk/websocket/__init__.py
"""
Quote Gateway Client
====================

Real-time quotes from the vendor gateway over a single WebSocket.

Components:
- GatewayClient: protocol state machine (auth, heartbeat, retry, reconnect)
- PacketCodec: JSON envelope out, JSON or gzip JSON in
- SequenceLedger: per-connection sequence numbers and in-flight requests
- MarketDataStore: latest fields per instrument, merged field by field
- DiagnosticsLog: bounded log of connection events for the dashboard
- FeedManager: runs the client on a background loop for the HTTP layer

Usage:
    from marketdesk.websocket import FeedManager

    manager = FeedManager.get_instance()
    manager.start()
    manager.init_watch(["AAPL.US", "NVDA.US"])

    manager.get_quote("AAPL.US")

Architecture:

    [Quote Gateway]
          │  (text JSON / gzip JSON)
          ▼
    [WebSocketConnector] ──▶ [GatewayClient] ──▶ [MarketDataStore] ──▶ HTTP API
                                   │
                                   └──▶ [DiagnosticsLog]
"""

from .codec import PacketCodec, RequestKind, DecodeError, RC_SUCCESS, RC_TIMEOUT
from .diagnostics import DiagnosticsLog, LogEntry
from .gateway_client import GatewayClient, ConnectionState, GatewayHealth
from .gateway_config import GatewayConfig, DeviceFingerprint
from .ledger import SequenceLedger, PendingRequest
from .manager import FeedManager, FeedStatus
from .market_data_store import MarketDataStore, InstrumentQuote, StoreHealth
from .timers import AsyncioScheduler, ManualScheduler, TimerSlot

__all__ = [
    'PacketCodec',
    'RequestKind',
    'DecodeError',
    'RC_SUCCESS',
    'RC_TIMEOUT',
    'DiagnosticsLog',
    'LogEntry',
    'GatewayClient',
    'ConnectionState',
    'GatewayHealth',
    'GatewayConfig',
    'DeviceFingerprint',
    'SequenceLedger',
    'PendingRequest',
    'FeedManager',
    'FeedStatus',
    'MarketDataStore',
    'InstrumentQuote',
    'StoreHealth',
    'AsyncioScheduler',
    'ManualScheduler',
    'TimerSlot',
]
