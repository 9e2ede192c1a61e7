"""Floor fusion: one confident floor decision from heterogeneous estimates.

Decision order on every tick:
1. Manual override younger than the manual window wins with confidence 1.0.
2. QR-derived floor younger than the QR window wins with confidence 0.95.
3. Otherwise a weighted vote: `confidence x method weight` summed per floor.
   The winner is applied only above the confidence threshold (hysteresis).

Score ties are broken deterministically: the floor nearest the current floor
wins, then the lower floor.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any

from indoor_nav.errors import InsufficientEvidence
from indoor_nav.estimates import METHOD_MANUAL, METHOD_QRCODE, Clock, EstimateBuffer, FloorEstimate
from indoor_nav.events import EventBus, FloorChanged
from indoor_nav.settings import FusionSettings

logger = logging.getLogger(__name__)

MANUAL_CONFIDENCE = 1.0
QR_CONFIDENCE = 0.95
METHOD_COMPOSITE = "composite"


@dataclass(frozen=True, slots=True)
class FusionDecision:
    """Outcome of one fusion pass."""

    floor: int
    confidence: float
    method: str
    changed: bool


@dataclass(frozen=True, slots=True)
class _Observation:
    floor: int
    timestamp: float


class FloorFusionEngine:
    """Reduces the rolling estimate buffer to the current floor."""

    def __init__(
        self,
        settings: FusionSettings | None = None,
        events: EventBus | None = None,
        buffer: EstimateBuffer | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.settings = settings or FusionSettings()
        self.events = events or EventBus()
        self._clock = clock
        self.buffer = buffer or EstimateBuffer(
            retention_seconds=self.settings.retention_seconds,
            capacity=self.settings.buffer_capacity,
            clock=clock,
        )
        self._lock = threading.Lock()
        self._floor = self.settings.initial_floor
        self._confidence = 0.0
        self._manual: _Observation | None = None
        self._qr: _Observation | None = None

    @property
    def current_floor(self) -> int:
        with self._lock:
            return self._floor

    @property
    def confidence(self) -> float:
        with self._lock:
            return self._confidence

    def current(self) -> tuple[int, float]:
        with self._lock:
            return self._floor, self._confidence

    def report_estimate(
        self,
        method: str,
        floor: int,
        confidence: float,
        timestamp: float | None = None,
    ) -> FloorEstimate:
        """Append an estimate; QR estimates also refresh the QR trust window."""
        estimate = self.buffer.report(method, floor, confidence, timestamp)
        if estimate.method == METHOD_QRCODE:
            with self._lock:
                if self._qr is None or estimate.timestamp >= self._qr.timestamp:
                    self._qr = _Observation(estimate.floor, estimate.timestamp)
        return estimate

    def set_manual_floor(self, floor: int) -> FusionDecision:
        """Record a manual override and apply it immediately."""
        now = self._clock()
        floor = int(floor)
        logger.info("Manual floor set to %s", floor)
        with self._lock:
            self._manual = _Observation(floor, now)
            decision, event = self._apply(floor, MANUAL_CONFIDENCE, METHOD_MANUAL, now)
        if event is not None:
            self.events.emit(event)
        return decision

    def decide(self, now: float | None = None) -> FusionDecision | None:
        """Run one fusion pass.

        Returns:
            The applied decision, or None when the buffer was empty or the
            composite winner stayed below the confidence threshold.
        """
        now = self._clock() if now is None else now
        self.buffer.prune(now)
        try:
            estimates = self._require_estimates()
        except InsufficientEvidence:
            logger.debug("No retained floor estimates; keeping floor %s", self.current_floor)
            return None

        with self._lock:
            candidate = self._override_candidate(now)
            current_floor = self._floor

        if candidate is None:
            scores = self.score_floors(estimates)
            best = self.select_floor(scores, current_floor)
            if best is None:
                return None
            floor, confidence = best
            if confidence <= self.settings.confidence_threshold:
                logger.debug(
                    "Composite floor %s below threshold (%.2f <= %.2f)",
                    floor,
                    confidence,
                    self.settings.confidence_threshold,
                )
                return None
            candidate = (floor, confidence, METHOD_COMPOSITE)

        with self._lock:
            decision, event = self._apply(*candidate, now)
        if event is not None:
            self.events.emit(event)
        return decision

    def score_floors(self, estimates: list[FloorEstimate]) -> dict[int, float]:
        """Accumulate `confidence x weight` per floor."""
        scores: dict[int, float] = {}
        for estimate in estimates:
            weight = self.settings.weight_for(estimate.method)
            scores[estimate.floor] = scores.get(estimate.floor, 0.0) + estimate.confidence * weight
        return scores

    @staticmethod
    def select_floor(scores: dict[int, float], current_floor: int) -> tuple[int, float] | None:
        """Pick the best-scoring floor, confidence clamped to 1.0."""
        if not scores:
            return None
        floor, score = max(
            scores.items(),
            key=lambda item: (item[1], -abs(item[0] - current_floor), -item[0]),
        )
        if score <= 0.0:
            return None
        return floor, min(score, 1.0)

    def reset(self) -> None:
        """Forget all evidence and return to the initial floor."""
        with self._lock:
            self._floor = self.settings.initial_floor
            self._confidence = 0.0
            self._manual = None
            self._qr = None
        self.buffer.clear()
        logger.info("Floor fusion reset to floor %s", self.settings.initial_floor)

    def sensor_status(self, now: float | None = None) -> dict[str, Any]:
        now = self._clock() if now is None else now
        with self._lock:
            manual = self._manual
            qr = self._qr
            floor, confidence = self._floor, self._confidence
        return {
            "floor": floor,
            "confidence": confidence,
            "estimates": len(self.buffer),
            "manual": None
            if manual is None
            else {
                "floor": manual.floor,
                "age_s": now - manual.timestamp,
                "active": now - manual.timestamp < self.settings.manual_override_seconds,
            },
            "qrcode": None
            if qr is None
            else {
                "floor": qr.floor,
                "age_s": now - qr.timestamp,
                "active": now - qr.timestamp < self.settings.qr_trust_seconds,
            },
        }

    def _require_estimates(self) -> list[FloorEstimate]:
        estimates = self.buffer.snapshot()
        if not estimates:
            raise InsufficientEvidence("estimate buffer is empty")
        return estimates

    def _override_candidate(self, now: float) -> tuple[int, float, str] | None:
        if self._manual is not None and now - self._manual.timestamp < self.settings.manual_override_seconds:
            return self._manual.floor, MANUAL_CONFIDENCE, METHOD_MANUAL
        if self._qr is not None and now - self._qr.timestamp < self.settings.qr_trust_seconds:
            return self._qr.floor, QR_CONFIDENCE, METHOD_QRCODE
        return None

    def _apply(self, floor: int, confidence: float, method: str, now: float) -> tuple[FusionDecision, FloorChanged | None]:
        # Caller holds self._lock.
        old_floor = self._floor
        if floor != old_floor:
            self._floor = floor
            self._confidence = confidence
            logger.info(
                "Floor changed %s -> %s (confidence %.1f%%, method %s)",
                old_floor,
                floor,
                confidence * 100.0,
                method,
            )
            event = FloorChanged(
                old_floor=old_floor,
                new_floor=floor,
                confidence=confidence,
                method=method,
                timestamp=now,
            )
            return FusionDecision(floor, confidence, method, changed=True), event

        self._confidence = max(self._confidence, confidence)
        return FusionDecision(floor, self._confidence, method, changed=False), None
