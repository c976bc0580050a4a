# marketdesk/websocket/timers.py
"""
Cancellable delayed actions
===========================

Heartbeat, retry replay and reconnect backoff all need the same thing:
"run this later unless told otherwise". A Scheduler knows how to run a
callback after a delay; a TimerSlot holds at most one armed callback and
cancels the previous one whenever it is re-armed.

- AsyncioScheduler: backed by loop.call_later, used by the live client
- ManualScheduler: driven by a ReplayClock, used by tests and replays
"""

import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Callable, List, Optional, Tuple

from marketdesk.clock import ReplayClock

logger = logging.getLogger(__name__)


class TimerHandle(ABC):
    """Handle for one scheduled callback"""

    @abstractmethod
    def cancel(self):
        pass

    @abstractmethod
    def cancelled(self) -> bool:
        pass


class Scheduler(ABC):
    """Runs callbacks after a delay on the client's event loop"""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        pass


class _AsyncioHandle(TimerHandle):
    def __init__(self, handle):
        self._handle = handle

    def cancel(self):
        self._handle.cancel()

    def cancelled(self) -> bool:
        return self._handle.cancelled()


class AsyncioScheduler(Scheduler):
    """Scheduler on top of an asyncio event loop"""

    def __init__(self, loop):
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return _AsyncioHandle(self._loop.call_later(delay, callback))


class _ManualHandle(TimerHandle):
    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """
    Deterministic scheduler. Nothing fires until advance() is called.

    Usage:
        scheduler = ManualScheduler(ReplayClock(datetime(2025, 1, 2, 9, 30)))
        scheduler.call_later(3.0, reconnect)
        scheduler.advance(3.0)   # reconnect() runs here
    """

    def __init__(self, clock: ReplayClock):
        self.clock = clock
        self._queue: List[Tuple[float, int, _ManualHandle]] = []
        self._counter = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = _ManualHandle(self.clock.monotonic() + delay, callback)
        heapq.heappush(self._queue, (handle.due, next(self._counter), handle))
        return handle

    def pending(self) -> int:
        """Number of armed, not yet cancelled callbacks"""
        return sum(1 for _, _, h in self._queue if not h.cancelled())

    def advance(self, seconds: float):
        """Step the clock forward, firing everything that falls due on the way"""
        target = self.clock.monotonic() + seconds
        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            if handle.cancelled():
                continue
            self.clock.advance(timedelta(seconds=due - self.clock.monotonic()))
            handle.callback()
        remaining = target - self.clock.monotonic()
        if remaining > 0:
            self.clock.advance(timedelta(seconds=remaining))


class TimerSlot:
    """
    One named slot holding at most one armed callback.

    Arming a slot that is already armed cancels the earlier callback first,
    so a slot can never produce duplicate heartbeats or reconnect attempts.
    """

    def __init__(self, scheduler: Scheduler, name: str):
        self._scheduler = scheduler
        self.name = name
        self._handle: Optional[TimerHandle] = None

    @property
    def armed(self) -> bool:
        return self._handle is not None and not self._handle.cancelled()

    def arm(self, delay: float, callback: Callable[[], None], repeat: bool = False):
        """Schedule callback after delay; with repeat=True it re-arms itself every delay seconds."""
        self.cancel()

        def fire():
            self._handle = None
            if repeat:
                self.arm(delay, callback, repeat=True)
            callback()

        self._handle = self._scheduler.call_later(delay, fire)
        logger.debug(f"Timer '{self.name}' armed for {delay:.1f}s")

    def cancel(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
