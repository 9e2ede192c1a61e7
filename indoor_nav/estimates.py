"""Rolling buffer of timestamped floor estimates.

Independent sensor sources report `(method, floor, confidence)` observations
at their own rates, possibly from different threads. The buffer serializes
every access with a lock and evicts entries by age before fusion reads them.
"""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

METHOD_MANUAL = "manual"
METHOD_QRCODE = "qrcode"
METHOD_BAROMETRIC = "barometric"
METHOD_WIFI = "wifi"
METHOD_ACCELEROMETER = "accelerometer"
METHOD_LIGHT = "light"

Clock = Callable[[], float]


@dataclass(frozen=True, slots=True)
class FloorEstimate:
    """One floor observation; `timestamp` is in clock seconds."""

    method: str
    floor: int
    confidence: float
    timestamp: float

    def age(self, now: float) -> float:
        return now - self.timestamp


class EstimateBuffer:
    """Lock-guarded ring buffer with timestamp-based eviction.

    Args:
        retention_seconds: Entries at least this old are dropped by `prune`.
        capacity: Maximum retained entries; the oldest are evicted first.
        clock: Time source used when a report carries no timestamp.
    """

    def __init__(self, retention_seconds: float = 10.0, capacity: int = 512, clock: Clock = time.monotonic) -> None:
        if retention_seconds <= 0:
            raise ValueError("retention_seconds must be > 0")
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.retention_seconds = float(retention_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: deque[FloorEstimate] = deque(maxlen=capacity)

    def report(self, method: str, floor: int, confidence: float, timestamp: float | None = None) -> FloorEstimate:
        """Timestamp and append one estimate.

        Floor plausibility is not checked here; confidence is clamped to [0, 1].

        Raises:
            ValueError: If method is empty or confidence is not a finite number.
        """
        method = str(method).strip().lower()
        if not method:
            raise ValueError("method must be a non-empty string")
        confidence = float(confidence)
        if not math.isfinite(confidence):
            raise ValueError("confidence must be a finite number")

        estimate = FloorEstimate(
            method=method,
            floor=int(floor),
            confidence=min(1.0, max(0.0, confidence)),
            timestamp=float(self._clock() if timestamp is None else timestamp),
        )
        with self._lock:
            self._entries.append(estimate)
        return estimate

    def prune(self, now: float | None = None) -> int:
        """Drop entries older than the retention window; returns how many were dropped."""
        now = self._clock() if now is None else now
        with self._lock:
            kept = [e for e in self._entries if e.age(now) < self.retention_seconds]
            removed = len(self._entries) - len(kept)
            if removed:
                self._entries.clear()
                self._entries.extend(kept)
        return removed

    def snapshot(self) -> list[FloorEstimate]:
        """Consistent copy of the retained estimates in arrival order."""
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
