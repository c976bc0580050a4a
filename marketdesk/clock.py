"""
Clock - Single Source of Truth for Time
---------------------------------------
Abstracts time so the gateway client can stamp packets and arm timers
against either the wall clock or a manually stepped replay clock.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
import time
import pytz


class Clock(ABC):
    """
    Abstract base class for all clocks.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Returns the current 'system' time."""
        pass

    def monotonic(self) -> float:
        """Seconds on a monotonic scale, used for request ages."""
        return time.monotonic()


class RealTimeClock(Clock):
    """
    Clock implementation for a live gateway session.
    """

    def __init__(self, timezone: str = 'Asia/Taipei'):
        self.tz = pytz.timezone(timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz)


class ReplayClock(Clock):
    """
    Clock implementation for tests and recorded-session replay.
    Time only advances when manually stepped.
    """

    def __init__(self, start_time: datetime):
        self._current_time = start_time
        self._elapsed = 0.0

    def now(self) -> datetime:
        return self._current_time

    def monotonic(self) -> float:
        return self._elapsed

    def set_time(self, dt: datetime):
        """Manually move the clock."""
        self._elapsed += (dt - self._current_time).total_seconds()
        self._current_time = dt

    def advance(self, delta: timedelta):
        """Advance the clock by a duration."""
        self._current_time += delta
        self._elapsed += delta.total_seconds()
