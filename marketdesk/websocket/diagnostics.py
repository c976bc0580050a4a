# marketdesk/websocket/diagnostics.py
"""
Bounded, human-readable record of connection and protocol events.

The dashboard shows these next to the connection indicator; every entry
is also written through the regular logger.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from marketdesk.clock import Clock, RealTimeClock

logger = logging.getLogger(__name__)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    message: str
    severity: str = "info"


class DiagnosticsLog:
    """Ring buffer of LogEntry; oldest entries drop off past capacity"""

    def __init__(self, capacity: int = 50, clock: Optional[Clock] = None):
        self.capacity = capacity
        self._clock = clock or RealTimeClock()
        self._entries = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def add(self, severity: str, message: str) -> LogEntry:
        severity = severity if severity in _LEVELS else "info"
        entry = LogEntry(timestamp=self._clock.now(), message=message, severity=severity)
        with self._lock:
            self._entries.append(entry)
        logger.log(_LEVELS[severity], message)
        return entry

    def info(self, message: str) -> LogEntry:
        return self.add("info", message)

    def warning(self, message: str) -> LogEntry:
        return self.add("warning", message)

    def error(self, message: str) -> LogEntry:
        return self.add("error", message)

    def entries(self, severity: Optional[str] = None) -> List[LogEntry]:
        """Snapshot of entries, oldest first"""
        with self._lock:
            items = list(self._entries)
        if severity:
            items = [e for e in items if e.severity == severity]
        return items

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
