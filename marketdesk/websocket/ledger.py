# marketdesk/websocket/ledger.py
"""
Sequence & Retry Ledger
=======================

Hands out per-connection sequence numbers and remembers every
non-heartbeat request until the gateway acknowledges it, so that a
timeout response can be replayed verbatim.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    """A request awaiting its response"""
    sn: int
    kind: str
    params: Dict[str, Any] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)
    submitted_at: float = 0.0
    attempt: int = 0  # 0 = original send, 1 = the one permitted replay


class SequenceLedger:
    """
    Sequence counter plus in-flight request table for one connection.

    reset() is called on every transport-open, so numbering always starts
    at 1 and no entry survives into the next connection.
    """

    def __init__(self):
        self._next_sn = 1
        self._pending: Dict[int, PendingRequest] = {}

    def next_sn(self) -> int:
        sn = self._next_sn
        self._next_sn += 1
        return sn

    @property
    def peek_sn(self) -> int:
        """Sequence number the next request will get"""
        return self._next_sn

    def record(self, request: PendingRequest):
        if request.sn in self._pending:
            raise ValueError(f"sequence number {request.sn} already pending")
        self._pending[request.sn] = request

    def get(self, sn: int) -> Optional[PendingRequest]:
        return self._pending.get(sn)

    def take(self, sn: int) -> Optional[PendingRequest]:
        """Remove and return the entry for sn, if any"""
        return self._pending.pop(sn, None)

    def pending_sns(self) -> List[int]:
        return sorted(self._pending)

    def reset(self):
        if self._pending:
            logger.debug(f"Abandoning {len(self._pending)} pending requests")
        self._pending.clear()
        self._next_sn = 1

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, sn: int) -> bool:
        return sn in self._pending
