# marketdesk/websocket/manager.py
"""
Feed Manager - Runs the Gateway Client for the Rest of the App
==============================================================

The gateway client is single-threaded by construction: every state change
happens on its own asyncio loop. FeedManager owns that loop on a daemon
thread and gives the HTTP layer thread-safe entry points.

Usage:
    from marketdesk.websocket import FeedManager

    manager = FeedManager.get_instance()
    manager.start()

    # Hand AI picks to the gateway (returns immediately)
    manager.init_watch(["AAPL.US", "NVDA.US"])

    # Read what has arrived so far
    quote = manager.get_quote("AAPL.US")
    status = manager.get_status()

    manager.stop()
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from .diagnostics import DiagnosticsLog, LogEntry
from .gateway_client import GatewayClient, GatewayHealth
from .gateway_config import GatewayConfig
from .market_data_store import MarketDataStore, InstrumentQuote, StoreHealth
from .timers import AsyncioScheduler
from .transport import WebSocketConnector

logger = logging.getLogger(__name__)


@dataclass
class FeedStatus:
    """Comprehensive status of the feed"""
    running: bool = False
    connected: bool = False
    state: str = "disconnected"
    started_at: Optional[datetime] = None
    gateway: Optional[GatewayHealth] = None
    store: Optional[StoreHealth] = None
    instruments_with_data: int = 0


class FeedManager:
    """
    High-level owner of the gateway connection.
    """

    # Singleton instance
    _instance: Optional['FeedManager'] = None
    _instance_lock = threading.Lock()

    START_TIMEOUT = 5.0
    STOP_TIMEOUT = 5.0

    @classmethod
    def get_instance(cls) -> 'FeedManager':
        """Get singleton instance of FeedManager"""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
                    logger.info("FeedManager singleton created")
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Reset singleton instance"""
        with cls._instance_lock:
            if cls._instance is not None:
                cls._instance.stop()
                cls._instance = None
                logger.info("FeedManager singleton reset")

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        store: Optional[MarketDataStore] = None
    ):
        self.config = config or GatewayConfig.from_settings()
        self._store = store if store is not None else MarketDataStore.get_instance()
        self.diagnostics = DiagnosticsLog(self.config.diagnostics_capacity)

        self._client: Optional[GatewayClient] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

        self._running = False
        self._started_at: Optional[datetime] = None
        self._lock = threading.RLock()

    @property
    def store(self) -> MarketDataStore:
        return self._store

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        client = self._client
        return client is not None and client.is_connected

    def start(self) -> bool:
        """
        Start the gateway loop on a background thread.

        Returns:
            True if the loop is up (connection continues asynchronously)
        """
        with self._lock:
            if self._running:
                logger.warning("Feed already running")
                return True

            self._ready.clear()
            self._thread = threading.Thread(
                target=self._run_event_loop, name="gateway-feed", daemon=True
            )
            self._running = True
            self._started_at = datetime.now()
            self._thread.start()

        if not self._ready.wait(timeout=self.START_TIMEOUT):
            logger.error("Gateway loop did not start in time")
            return False

        logger.info(f"Feed started against {self.config.url}")
        return True

    def stop(self):
        """Close the connection and stop the loop thread"""
        with self._lock:
            if not self._running:
                return

            logger.info("Stopping feed...")
            loop, client = self._loop, self._client
            if loop is not None and client is not None:
                try:
                    loop.call_soon_threadsafe(client.close)
                    loop.call_soon_threadsafe(loop.stop)
                except RuntimeError as e:
                    logger.warning(f"Feed loop already closed: {e}")

            if self._thread and self._thread.is_alive():
                self._thread.join(timeout=self.STOP_TIMEOUT)

            self._thread = None
            self._client = None
            self._running = False
            self._started_at = None
            logger.info("Feed stopped")

    # =========================================================================
    # Subscription façade (thread-safe, non-blocking)
    # =========================================================================

    def subscribe(self, codes: List[str]) -> bool:
        return self._call("subscribe", list(codes))

    def replace_subscription(self, codes: List[str]) -> bool:
        return self._call("replace_subscription", list(codes))

    def init_watch(self, codes: List[str]) -> bool:
        return self._call("init_watch", list(codes))

    def _call(self, method: str, *args) -> bool:
        loop, client = self._loop, self._client
        if not self._running or loop is None or client is None:
            self.diagnostics.warning(f"{method} skipped: feed not running")
            return False
        try:
            loop.call_soon_threadsafe(getattr(client, method), *args)
        except RuntimeError as e:
            self.diagnostics.error(f"{method} failed: {e}")
            return False
        return True

    # =========================================================================
    # Data access
    # =========================================================================

    def get_quote(self, code: str) -> Optional[InstrumentQuote]:
        return self._store.get_quote(code)

    def get_all_quotes(self) -> Dict[str, InstrumentQuote]:
        return self._store.get_all_quotes()

    def get_logs(self, severity: Optional[str] = None) -> List[LogEntry]:
        return self.diagnostics.entries(severity)

    def get_status(self) -> FeedStatus:
        client = self._client
        health = client.get_health() if client is not None else None
        return FeedStatus(
            running=self._running,
            connected=self.is_connected,
            state=health.state if health else "disconnected",
            started_at=self._started_at,
            gateway=health,
            store=self._store.get_health(),
            instruments_with_data=len(self._store)
        )

    # =========================================================================
    # Loop thread
    # =========================================================================

    def _run_event_loop(self):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop

        connector = WebSocketConnector(self.config.url, loop)
        self._client = GatewayClient(
            connector,
            AsyncioScheduler(loop),
            config=self.config,
            store=self._store,
            diagnostics=self.diagnostics
        )
        loop.call_soon(self._client.connect)
        self._ready.set()

        try:
            loop.run_forever()
        except Exception as e:
            logger.error(f"Feed loop error: {e}")
        finally:
            # Let socket context managers unwind before the loop goes away
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.close()
            self._loop = None


# =========================================================================
# Convenience Functions
# =========================================================================

def get_feed_manager() -> FeedManager:
    """Get the singleton FeedManager instance"""
    return FeedManager.get_instance()


def get_market_data_store() -> MarketDataStore:
    """Get the singleton MarketDataStore instance"""
    return MarketDataStore.get_instance()
