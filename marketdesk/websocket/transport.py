# marketdesk/websocket/transport.py
"""
WebSocket transport for the quote gateway.

The gateway client never touches the socket library directly. It asks a
Connector to open a connection and is then driven by three callbacks:

    client.handle_open(transport)   # socket is up, transport.send() works
    client.handle_message(raw)      # str (plain JSON) or bytes (gzip JSON)
    client.handle_close(reason)     # socket gone, for whatever reason

The socket is held inside `async with websockets.connect(...)`, so it is
released on every exit path: clean close, error, failed handshake, or
cancellation by GatewayClient.close().
"""

import asyncio
import logging
import ssl
from abc import ABC, abstractmethod
from typing import Optional

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake
from websockets.protocol import State

logger = logging.getLogger(__name__)


class Transport(ABC):
    """An open connection the client can write to"""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    @abstractmethod
    def send(self, text: str):
        pass

    @abstractmethod
    def close(self):
        pass


class Connector(ABC):
    """Opens connections on behalf of a GatewayClient"""

    @abstractmethod
    def open(self, client):
        """Start connecting; report back through client.handle_* callbacks"""

    @abstractmethod
    def cancel(self):
        """Abandon the current connection without reporting a close"""


class WebSocketTransport(Transport):
    """Wraps a websockets connection; writes are queued on the owning loop"""

    def __init__(self, ws, loop: asyncio.AbstractEventLoop):
        self._ws = ws
        self._loop = loop

    @property
    def is_open(self) -> bool:
        return self._ws.state is State.OPEN

    def send(self, text: str):
        task = self._loop.create_task(self._ws.send(text))
        task.add_done_callback(self._log_failure)

    def close(self):
        if self._ws.state in (State.OPEN, State.CONNECTING):
            self._loop.create_task(self._ws.close())

    @staticmethod
    def _log_failure(task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"WebSocket write failed: {error}")


class WebSocketConnector(Connector):
    """
    Connector backed by the websockets library.

    Keep-alive is the gateway's own heartbeat packet, so protocol-level
    pings are off by default.
    """

    def __init__(
        self,
        url: str,
        loop: asyncio.AbstractEventLoop,
        open_timeout: float = 10.0,
        close_timeout: float = 5.0,
        ping_interval: Optional[float] = None,
        verify_ssl: bool = True
    ):
        self.url = url
        self._loop = loop
        self.open_timeout = open_timeout
        self.close_timeout = close_timeout
        self.ping_interval = ping_interval
        self.verify_ssl = verify_ssl
        self._task: Optional[asyncio.Task] = None

    def open(self, client):
        self._task = self._loop.create_task(self._run(client))

    def cancel(self):
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _ssl_context(self) -> Optional[ssl.SSLContext]:
        if not self.url.startswith("wss://"):
            return None
        context = ssl.create_default_context()
        if not self.verify_ssl:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    async def _run(self, client):
        reason = "connection closed"
        report = True
        try:
            async with websockets.connect(
                self.url,
                ssl=self._ssl_context(),
                open_timeout=self.open_timeout,
                close_timeout=self.close_timeout,
                ping_interval=self.ping_interval,
                max_size=None
            ) as ws:
                client.handle_open(WebSocketTransport(ws, self._loop))
                async for message in ws:
                    client.handle_message(message)
                reason = "closed by gateway"
        except ConnectionClosed as e:
            reason = f"connection lost: {e}"
        except InvalidHandshake as e:
            reason = f"handshake rejected: {e}"
        except (OSError, asyncio.TimeoutError) as e:
            reason = f"connect error: {e!r}"
        except Exception as e:
            logger.debug("Gateway connection failed", exc_info=True)
            reason = f"unexpected error: {e!r}"
        except asyncio.CancelledError:
            report = False
            raise
        finally:
            if report:
                client.handle_close(reason)
