"""Translate parsed sensor readings into floor estimates.

Each helper turns one kind of scalar reading (QR payload, altitude, network
quality, ambient light, vertical acceleration) into a `(floor, confidence)`
pair, or None when the reading says nothing about the floor. Raw platform
sensor access stays outside this package.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Iterable

import numpy as np

QR_FLOOR_PATTERN = re.compile(r"floor[:\-_](\d+|B\d+)", re.IGNORECASE)

NETWORK_CONFIDENCE = 0.5
LIGHT_CONFIDENCE = 0.3
MOVEMENT_CONFIDENCE = 0.6
GRAVITY = 9.81

FloorReading = tuple[int, float]


def parse_qr_floor(payload: str) -> int | None:
    """Extract the floor tag from a QR payload.

    `floor:2` -> 2, `FLOOR_B1` -> -1. Returns None when no tag is present.
    """
    match = QR_FLOOR_PATTERN.search(payload or "")
    if match is None:
        return None
    tag = match.group(1)
    if tag[0] in "Bb":
        return -int(tag[1:])
    return int(tag)


def altitude_confidence(accuracy: float | None) -> float:
    """Map a reported altitude accuracy (meters) to an estimate confidence."""
    if not accuracy:
        return 0.5
    if accuracy < 5:
        return 0.8
    if accuracy < 10:
        return 0.6
    if accuracy < 20:
        return 0.4
    return 0.2


class AltitudeFloorEstimator:
    """Floor from altitude relative to a baseline measured on `base_floor`.

    Args:
        altitude_per_floor: Vertical spacing between floors in meters.
        base_floor: Floor on which the baseline is calibrated.
    """

    def __init__(self, altitude_per_floor: float = 3.5, base_floor: int = 1) -> None:
        if altitude_per_floor <= 0:
            raise ValueError("altitude_per_floor must be > 0")
        self.altitude_per_floor = float(altitude_per_floor)
        self.base_floor = int(base_floor)
        self.baseline: float | None = None

    def calibrate(self, samples: Iterable[float]) -> float:
        """Set the baseline to the mean of the calibration samples."""
        values = np.asarray([float(s) for s in samples if s is not None], dtype=np.float64)
        if values.size == 0:
            raise ValueError("calibration requires at least one altitude sample")
        self.baseline = float(np.mean(values))
        return self.baseline

    def estimate(self, altitude: float, accuracy: float | None = None) -> FloorReading | None:
        if self.baseline is None:
            return None
        height_diff = float(altitude) - self.baseline
        floor = int(round(height_diff / self.altitude_per_floor)) + self.base_floor
        return floor, altitude_confidence(accuracy)


def floor_from_network_quality(downlink: float, rtt: float) -> FloorReading | None:
    """Coarse floor guess from connection quality (downlink Mbps, round trip ms)."""
    if downlink > 10 and rtt < 50:
        return 1, NETWORK_CONFIDENCE
    if downlink > 5 and rtt < 100:
        return 2, NETWORK_CONFIDENCE
    if downlink < 3 or rtt > 150:
        return -1, NETWORK_CONFIDENCE
    return None


def floor_from_illuminance(lux: float) -> FloorReading:
    """Coarse floor guess from ambient light: basements are dark."""
    if lux < 100:
        return -1, LIGHT_CONFIDENCE
    if lux < 300:
        return 1, LIGHT_CONFIDENCE
    if lux < 500:
        return 2, LIGHT_CONFIDENCE
    return 3, LIGHT_CONFIDENCE


@dataclass(slots=True)
class VerticalMotionIntegrator:
    """Double-integrates vertical acceleration to detect floor transitions.

    `feed` takes acceleration including gravity (m/s^2) sampled every
    `sample_period` seconds and returns the number of floors climbed
    (negative when descending) once the displacement exceeds one floor.
    """

    altitude_per_floor: float = 3.5
    sample_period: float = 0.1
    velocity_decay: float = 0.8
    velocity: float = 0.0
    displacement: float = 0.0

    def feed(self, vertical_acceleration: float) -> int:
        acceleration = float(vertical_acceleration) - GRAVITY
        if not math.isfinite(acceleration):
            raise ValueError("vertical_acceleration must be a finite number")

        self.velocity += acceleration * self.sample_period
        self.displacement += self.velocity * self.sample_period

        if abs(self.displacement) <= self.altitude_per_floor:
            return 0

        floors = int(round(self.displacement / self.altitude_per_floor))
        self.displacement = 0.0
        self.velocity *= self.velocity_decay
        return floors

    def reset(self) -> None:
        self.velocity = 0.0
        self.displacement = 0.0
