# marketdesk/websocket/gateway_client.py
"""
Quote Gateway Client
====================

Owns the single connection to the vendor quote gateway and everything
that happens on it:

- connect / auth handshake / heartbeat / reconnect after a fixed delay
- per-connection sequence numbers and single-shot replay on rc=408
- dispatch of quote, sync and trend fragments into the MarketDataStore
- subscription operations used by the dashboard (subscribe, init_watch)

Every method here runs on one event loop. Transport callbacks, timer
callbacks and façade calls never interleave, so nothing is locked.
FeedManager provides the thread-safe entry points.

States:

    DISCONNECTED -> CONNECTING -> AUTH_PENDING -> AUTHENTICATED
          ^                                            |
          +------ reconnect timer <-- (close/error) ---+

Usage:
    client = GatewayClient(connector, AsyncioScheduler(loop))
    client.connect()
    ...
    client.init_watch(["AAPL.US", "NVDA.US"])
    client.store.get_quote("AAPL.US")
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from marketdesk.clock import Clock, RealTimeClock

from .codec import PacketCodec, RequestKind, DecodeError, RC_SUCCESS, RC_TIMEOUT
from .diagnostics import DiagnosticsLog
from .gateway_config import GatewayConfig
from .ledger import SequenceLedger, PendingRequest
from .market_data_store import MarketDataStore
from .timers import Scheduler, TimerSlot
from .transport import Connector, Transport

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTH_PENDING = "auth_pending"
    AUTHENTICATED = "authenticated"
    CLOSING = "closing"


_ACTIVE_STATES = (
    ConnectionState.CONNECTING,
    ConnectionState.AUTH_PENDING,
    ConnectionState.AUTHENTICATED,
)


@dataclass
class GatewayHealth:
    """Point-in-time view of the gateway connection"""
    state: str = ConnectionState.DISCONNECTED.value
    connected: bool = False
    authenticated: bool = False
    token_present: bool = False
    pending_requests: int = 0
    next_sn: int = 1
    messages_received: int = 0
    connect_attempts: int = 0
    reconnect_count: int = 0
    watched: Dict[str, List[str]] = field(default_factory=dict)


def _unique(codes: Iterable[str]) -> List[str]:
    seen = OrderedDict()
    for code in codes or []:
        if code:
            seen[code] = None
    return list(seen)


class GatewayClient:
    """
    Protocol client for the quote gateway.
    """

    def __init__(
        self,
        connector: Connector,
        scheduler: Scheduler,
        config: Optional[GatewayConfig] = None,
        store: Optional[MarketDataStore] = None,
        diagnostics: Optional[DiagnosticsLog] = None,
        clock: Optional[Clock] = None
    ):
        self.config = config or GatewayConfig()
        self.clock = clock or RealTimeClock(self.config.timezone)
        self.store = store if store is not None else MarketDataStore.get_instance()
        self.diagnostics = (
            diagnostics if diagnostics is not None
            else DiagnosticsLog(self.config.diagnostics_capacity, self.clock)
        )
        self.codec = PacketCodec(self.clock, self.config.fingerprint, self.config.api_version)
        self.ledger = SequenceLedger()

        self._connector = connector
        self._scheduler = scheduler
        self._transport: Optional[Transport] = None
        self._state = ConnectionState.DISCONNECTED
        self._token: Optional[str] = None
        self._stopped = False

        # Timers
        self._heartbeat = TimerSlot(scheduler, "heartbeat")
        self._reconnect = TimerSlot(scheduler, "reconnect")
        self._retries: Dict[int, TimerSlot] = {}

        # Standing push registrations, market -> codes, restored after re-auth
        self._watched: Dict[str, List[str]] = OrderedDict()

        # Statistics
        self._messages_received = 0
        self._connect_attempts = 0
        self._reconnect_count = 0

        # Callbacks
        self.on_state_change: Optional[Callable[[ConnectionState], None]] = None

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self._state is ConnectionState.AUTHENTICATED

    @property
    def is_connected(self) -> bool:
        """Connection-up indicator shown by the dashboard"""
        return self.is_authenticated

    def get_health(self) -> GatewayHealth:
        return GatewayHealth(
            state=self._state.value,
            connected=self._transport is not None and self._transport.is_open,
            authenticated=self.is_authenticated,
            token_present=bool(self._token),
            pending_requests=len(self.ledger),
            next_sn=self.ledger.peek_sn,
            messages_received=self._messages_received,
            connect_attempts=self._connect_attempts,
            reconnect_count=self._reconnect_count,
            watched={market: list(codes) for market, codes in self._watched.items()}
        )

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def connect(self):
        """Open the gateway connection; does nothing if one is already in progress"""
        if self._state in _ACTIVE_STATES:
            logger.debug(f"connect() ignored while {self._state.value}")
            return

        self._stopped = False
        self._reconnect.cancel()
        self._connect_attempts += 1
        self._set_state(ConnectionState.CONNECTING)
        self.diagnostics.info(f"Connecting to gateway (attempt {self._connect_attempts})")

        try:
            self._connector.open(self)
        except Exception as e:
            self.handle_close(f"connect failed: {e}")

    def close(self):
        """Shut down: cancel every timer, release the transport, stop reconnecting"""
        self._stopped = True
        self._reconnect.cancel()
        self._heartbeat.cancel()
        self._cancel_retries()

        if self._state is ConnectionState.DISCONNECTED and self._transport is None:
            return

        self._set_state(ConnectionState.CLOSING)
        transport, self._transport = self._transport, None
        if transport is not None:
            try:
                transport.close()
            except Exception as e:
                logger.warning(f"Error closing transport: {e}")
        self._connector.cancel()

        self._token = None
        self.ledger.reset()
        self._set_state(ConnectionState.DISCONNECTED)
        self.diagnostics.info("Connection closed")

    def handle_open(self, transport: Transport):
        """Transport-open event from the connector"""
        if self._stopped or self._state is not ConnectionState.CONNECTING:
            logger.warning(f"Discarding transport opened while {self._state.value}")
            transport.close()
            return

        self._transport = transport
        self.ledger.reset()
        self._cancel_retries()
        self._set_state(ConnectionState.AUTH_PENDING)
        self.diagnostics.info("Transport open, authenticating")
        self._send_auth()

    def handle_close(self, reason: str = "connection closed"):
        """Transport error/close event from the connector"""
        if self._state is ConnectionState.DISCONNECTED:
            logger.debug(f"Close event ignored, already disconnected ({reason})")
            return

        self._transport = None
        self._token = None
        self._heartbeat.cancel()
        self._cancel_retries()
        self._set_state(ConnectionState.DISCONNECTED)

        if self._stopped:
            self.diagnostics.info(f"Disconnected ({reason})")
            return

        self._reconnect_count += 1
        self.diagnostics.warning(
            f"Disconnected ({reason}); reconnecting in {self.config.reconnect_delay:.0f}s"
        )
        self._reconnect.arm(self.config.reconnect_delay, self.connect)

    def handle_message(self, raw):
        """Inbound frame from the connector"""
        try:
            message = self.codec.decode(raw)
        except DecodeError as e:
            self.diagnostics.error(f"Dropped frame: {e}")
            return

        self._messages_received += 1
        try:
            self._dispatch(message)
        except Exception as e:
            logger.debug("Error dispatching gateway message", exc_info=True)
            self.diagnostics.error(f"Error handling '{message.get('api')}' message: {e}")

    # =========================================================================
    # Sending
    # =========================================================================

    def send(self, kind, params: Optional[Dict[str, Any]] = None,
             extra: Optional[Dict[str, Any]] = None) -> Optional[int]:
        """
        Send one request.

        Args:
            kind: RequestKind or its api name
            params: Fields placed inside the data envelope
            extra: Additional top-level fields

        Returns:
            The sequence number used, or None if nothing was sent
        """
        return self._send(kind, params, extra)

    def _send(self, kind, params=None, extra=None, attempt: int = 0) -> Optional[int]:
        transport = self._transport
        if transport is None or not transport.is_open:
            self.diagnostics.warning(f"Not sent '{getattr(kind, 'value', kind)}': transport not open")
            return None

        try:
            kind = RequestKind(kind)
            sn = self.ledger.next_sn()
            text = self.codec.encode(kind, sn, self._token, params, extra)
        except (ValueError, TypeError) as e:
            self.diagnostics.error(f"Cannot encode '{getattr(kind, 'value', kind)}': {e}")
            return None

        tracked = kind not in (RequestKind.HEARTBEAT, RequestKind.AUTH)
        if tracked:
            self.ledger.record(PendingRequest(
                sn=sn,
                kind=kind.value,
                params=dict(params or {}),
                extra=dict(extra or {}),
                submitted_at=self.clock.monotonic(),
                attempt=attempt
            ))

        try:
            transport.send(text)
        except Exception as e:
            if tracked:
                self.ledger.take(sn)
            self.diagnostics.error(f"Send failed for '{kind.value}' sn={sn}: {e}")
            return None

        logger.debug(f"Sent {kind.value} sn={sn}")
        return sn

    def _send_auth(self):
        params = {"auth_key": self.config.auth_key}
        params.update(self.config.market_permissions)
        self._send(RequestKind.AUTH, params)

    def _send_heartbeat(self):
        self._send(RequestKind.HEARTBEAT)

    # =========================================================================
    # Subscription façade
    # =========================================================================

    def subscribe(self, codes: Iterable[str]) -> List[int]:
        """Add codes to the streaming registration (reset "n", additive)"""
        return self._register("subscribe", codes, reset=False)

    def watch(self, codes: Iterable[str]) -> List[int]:
        return self.subscribe(codes)

    def replace_subscription(self, codes: Iterable[str]) -> List[int]:
        """Replace the registration for each market the codes belong to (reset "y")"""
        return self._register("replace_subscription", codes, reset=True)

    def init_watch(self, codes: Iterable[str]) -> List[int]:
        """
        Fetch a snapshot and a daily trend for each code, then stream them all.

        Returns:
            Sequence numbers of every request sent
        """
        if not self._require_auth("init_watch"):
            return []
        codes = _unique(codes)
        if not codes:
            return []

        sns = []
        for code in codes:
            market = self.market_of(code)
            sns.append(self._send(RequestKind.QUOTE, {"qtype": market, "codes": [code]}))
            sns.append(self._send(RequestKind.TREND, {"qtype": market, "code": code, "type": "d"}))
        sns.extend(self._send_push(codes, reset=False))
        return [sn for sn in sns if sn is not None]

    def market_of(self, code: str) -> str:
        """Market partition from the code suffix, e.g. AAPL.US -> US, 0700.HK -> HK"""
        if "." in code:
            suffix = code.rsplit(".", 1)[1].upper()
            if suffix in self.config.market_permissions:
                return suffix
        return self.config.default_market

    def partition(self, codes: Iterable[str]) -> Dict[str, List[str]]:
        groups: Dict[str, List[str]] = OrderedDict()
        for code in _unique(codes):
            groups.setdefault(self.market_of(code), []).append(code)
        return groups

    def _register(self, operation: str, codes, reset: bool) -> List[int]:
        if not self._require_auth(operation):
            return []
        codes = _unique(codes)
        if not codes:
            return []
        return self._send_push(codes, reset=reset)

    def _send_push(self, codes: List[str], reset: bool) -> List[int]:
        sns = []
        for market, group in self.partition(codes).items():
            sn = self._send(RequestKind.PUSH, {
                "qtype": market,
                "reset": "y" if reset else "n",
                "codes": group
            })
            if sn is None:
                continue
            sns.append(sn)
            if reset:
                self._watched[market] = list(group)
            else:
                self._watched[market] = _unique(self._watched.get(market, []) + group)
        return sns

    def _require_auth(self, operation: str) -> bool:
        if self.is_authenticated:
            return True
        self.diagnostics.warning(f"{operation} skipped: not authenticated ({self._state.value})")
        return False

    # =========================================================================
    # Inbound dispatch
    # =========================================================================

    def _dispatch(self, message: Dict[str, Any]):
        api = message.get("api")
        data = message.get("data")
        if not isinstance(data, dict):
            data = {}

        if api == RequestKind.AUTH.value:
            self._handle_auth(data)
            return

        if not self.is_authenticated:
            self.diagnostics.info(f"Ignored '{api}' message while {self._state.value}")
            return

        pending = None
        rc = data.get("rc")
        sn = self._parse_sn(message.get("sn"))
        if sn is not None and rc is not None:
            pending = self._settle(sn, str(rc), api)
            if str(rc) != RC_SUCCESS:
                return

        if api in (RequestKind.QUOTE.value, RequestKind.SYNC.value):
            self._apply_snapshot(data)
        elif api == RequestKind.TREND.value:
            self._apply_trend(data, pending)
        elif api == RequestKind.HEARTBEAT.value:
            logger.debug("Heartbeat acknowledged")
        elif api == RequestKind.PUSH.value:
            logger.info(f"Push registration acknowledged (sn={sn})")
        else:
            logger.debug(f"Unhandled api '{api}'")

    @staticmethod
    def _parse_sn(value) -> Optional[int]:
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    def _handle_auth(self, data: Dict[str, Any]):
        if self._state is not ConnectionState.AUTH_PENDING:
            self.diagnostics.warning(f"Unexpected auth response while {self._state.value}")
            return

        rc = data.get("rc")
        token = data.get("token")
        if rc != RC_SUCCESS or not token:
            self.diagnostics.error(f"Authentication failed (rc={rc})")
            return

        self._token = token
        self._set_state(ConnectionState.AUTHENTICATED)
        self.diagnostics.info("Authenticated")
        self._heartbeat.arm(self.config.heartbeat_interval, self._send_heartbeat, repeat=True)

        if self._watched:
            restored = [code for codes in self._watched.values() for code in codes]
            self.diagnostics.info(f"Restoring push registration for {len(restored)} codes")
            self._send_push(restored, reset=False)

    def _settle(self, sn: int, rc: str, api) -> Optional[PendingRequest]:
        """Apply a response status to the ledger; returns the settled request on success"""
        if rc == RC_SUCCESS:
            return self.ledger.take(sn)

        if rc == RC_TIMEOUT:
            request = self.ledger.take(sn)
            if request is None:
                self.diagnostics.warning(f"Timeout for untracked sn={sn} ('{api}')")
            elif request.attempt >= 1:
                self.diagnostics.warning(f"Replayed '{request.kind}' timed out again (sn={sn}); giving up")
            else:
                self.diagnostics.warning(
                    f"'{request.kind}' sn={sn} timed out; replaying in {self.config.retry_delay:.0f}s"
                )
                self._schedule_replay(request)
            return None

        request = self.ledger.get(sn)
        kind = request.kind if request else api
        self.diagnostics.warning(f"'{kind}' sn={sn} failed with rc={rc}")
        return None

    def _schedule_replay(self, request: PendingRequest):
        slot = TimerSlot(self._scheduler, f"retry-{request.sn}")
        self._retries[request.sn] = slot

        def replay():
            self._retries.pop(request.sn, None)
            self._send(request.kind, request.params, request.extra or None, attempt=request.attempt + 1)

        slot.arm(self.config.retry_delay, replay)

    def _cancel_retries(self):
        for slot in self._retries.values():
            slot.cancel()
        self._retries.clear()

    def _apply_snapshot(self, data: Dict[str, Any]):
        items = data.get("trendItems")
        if not isinstance(items, list):
            items = [{k: v for k, v in data.items() if k not in ("rc", "time")}]
        for item in items:
            if isinstance(item, dict):
                self.store.merge_snapshot(item)

    def _apply_trend(self, data: Dict[str, Any], pending: Optional[PendingRequest]):
        code = data.get("code")
        if not code and pending is not None:
            code = pending.params.get("code")
        if not code:
            self.diagnostics.warning("Trend response without instrument code dropped")
            return
        items = data.get("trendItems")
        if not isinstance(items, list):
            self.diagnostics.warning(f"Trend response for {code} carried no trendItems; history kept")
            return
        self.store.merge_trend(code, items)

    def _set_state(self, state: ConnectionState):
        if state is self._state:
            return
        logger.debug(f"State {self._state.value} -> {state.value}")
        self._state = state
        if self.on_state_change:
            try:
                self.on_state_change(state)
            except Exception as e:
                logger.error(f"Error in state change callback: {e}")
