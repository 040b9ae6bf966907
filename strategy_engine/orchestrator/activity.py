from __future__ import annotations

import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

from pydantic import BaseModel, Field

ACTIVITY_SCAN = "scan"
ACTIVITY_CHECK = "check"
ACTIVITY_BUY = "buy"
ACTIVITY_SELL = "sell"
ACTIVITY_ERROR = "error"
ACTIVITY_INFO = "info"
ACTIVITY_TYPES = (ACTIVITY_SCAN, ACTIVITY_CHECK, ACTIVITY_BUY, ACTIVITY_SELL, ACTIVITY_ERROR, ACTIVITY_INFO)

MAX_ACTIVITY_ENTRIES = 50


class ActivityEntry(BaseModel):
    type: str
    message: str
    timestamp: float = Field(default_factory=time.time)
    details: Dict[str, Any] = Field(default_factory=dict)


class ActivityLog:
    """Per-strategy trail, newest first, capped at ``limit`` entries."""

    def __init__(self, limit: int = MAX_ACTIVITY_ENTRIES, clock: Callable[[], float] = time.time) -> None:
        self.limit = limit
        self._clock = clock
        self._entries: Dict[str, Deque[ActivityEntry]] = {}

    def add(
        self, strategy_id: str, kind: str, message: str, details: Optional[Dict[str, Any]] = None
    ) -> ActivityEntry:
        if kind not in ACTIVITY_TYPES:
            raise ValueError(f"Unknown activity type: {kind}")
        entry = ActivityEntry(type=kind, message=message, timestamp=self._clock(), details=details or {})
        trail = self._entries.setdefault(strategy_id, deque(maxlen=self.limit))
        trail.appendleft(entry)
        return entry

    def get(self, strategy_id: str, limit: Optional[int] = None) -> List[ActivityEntry]:
        entries = list(self._entries.get(strategy_id, ()))
        return entries[:limit] if limit else entries

    def latest(self, strategy_id: str) -> Optional[ActivityEntry]:
        trail = self._entries.get(strategy_id)
        return trail[0] if trail else None

    def clear(self, strategy_id: str) -> None:
        self._entries.pop(strategy_id, None)


__all__ = [
    "ACTIVITY_BUY",
    "ACTIVITY_CHECK",
    "ACTIVITY_ERROR",
    "ACTIVITY_INFO",
    "ACTIVITY_SCAN",
    "ACTIVITY_SELL",
    "ACTIVITY_TYPES",
    "ActivityEntry",
    "ActivityLog",
    "MAX_ACTIVITY_ENTRIES",
]
