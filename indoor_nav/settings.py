"""Tunable thresholds for floor fusion and route tracking.

Defaults reproduce the values the building guide was tuned with. Every field
can be overridden through `INDOOR_NAV_*` environment variables via the
`from_env()` constructors, e.g. `INDOOR_NAV_CONFIDENCE_THRESHOLD=0.8`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

ENV_PREFIX = "INDOOR_NAV_"

DEFAULT_METHOD_WEIGHTS: Mapping[str, float] = MappingProxyType(
    {
        "manual": 1.0,
        "qrcode": 0.9,
        "barometric": 0.4,
        "wifi": 0.3,
        "accelerometer": 0.2,
    }
)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(ENV_PREFIX + name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(ENV_PREFIX + name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(ENV_PREFIX + name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class FusionSettings:
    """Trust windows, weights and hysteresis for the floor fusion engine."""

    confidence_threshold: float = 0.7
    manual_override_seconds: float = 60.0
    qr_trust_seconds: float = 30.0
    retention_seconds: float = 10.0
    buffer_capacity: int = 512
    initial_floor: int = 1
    default_method_weight: float = 0.1
    method_weights: Mapping[str, float] = field(default_factory=lambda: DEFAULT_METHOD_WEIGHTS)
    altitude_per_floor: float = 3.5
    min_plausible_floor: int = -1
    max_plausible_floor: int = 3

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError("confidence_threshold must be within [0, 1]")
        if self.manual_override_seconds <= 0 or self.qr_trust_seconds <= 0:
            raise ValueError("trust windows must be > 0")
        if self.retention_seconds <= 0:
            raise ValueError("retention_seconds must be > 0")
        if self.buffer_capacity <= 0:
            raise ValueError("buffer_capacity must be > 0")
        if self.altitude_per_floor <= 0:
            raise ValueError("altitude_per_floor must be > 0")
        if self.min_plausible_floor > self.max_plausible_floor:
            raise ValueError("min_plausible_floor must be <= max_plausible_floor")

    def weight_for(self, method: str) -> float:
        """Return the vote weight of an estimation method."""
        return float(self.method_weights.get(method, self.default_method_weight))

    def is_plausible(self, floor: int) -> bool:
        return self.min_plausible_floor <= floor <= self.max_plausible_floor

    @classmethod
    def from_env(cls) -> "FusionSettings":
        """Build settings from `INDOOR_NAV_*` environment variables."""
        base = cls()
        return cls(
            confidence_threshold=_env_float("CONFIDENCE_THRESHOLD", base.confidence_threshold),
            manual_override_seconds=_env_float("MANUAL_OVERRIDE_SECONDS", base.manual_override_seconds),
            qr_trust_seconds=_env_float("QR_TRUST_SECONDS", base.qr_trust_seconds),
            retention_seconds=_env_float("ESTIMATE_RETENTION_SECONDS", base.retention_seconds),
            buffer_capacity=_env_int("ESTIMATE_BUFFER_CAPACITY", base.buffer_capacity),
            initial_floor=_env_int("INITIAL_FLOOR", base.initial_floor),
            default_method_weight=_env_float("DEFAULT_METHOD_WEIGHT", base.default_method_weight),
            altitude_per_floor=_env_float("ALTITUDE_PER_FLOOR", base.altitude_per_floor),
            min_plausible_floor=_env_int("MIN_PLAUSIBLE_FLOOR", base.min_plausible_floor),
            max_plausible_floor=_env_int("MAX_PLAUSIBLE_FLOOR", base.max_plausible_floor),
        )


@dataclass(frozen=True, slots=True)
class NavigationSettings:
    """Routing and tracking parameters.

    Distances are in map units (meters in the bundled building), walking speed
    in map units per minute.
    """

    waypoint_arrival_radius: float = 3.0
    route_recalculation_distance: float = 5.0
    walking_speed: float = 60.0
    vertical_wait_minutes: float = 0.5
    wall_buffer: float = 0.5
    search_margin: float = 5.0
    max_search_expansions: int = 50_000
    smooth_paths: bool = True
    step_length: float = 0.7
    tick_interval_seconds: float = 1.0

    def __post_init__(self) -> None:
        if self.waypoint_arrival_radius <= 0:
            raise ValueError("waypoint_arrival_radius must be > 0")
        if self.route_recalculation_distance <= 0:
            raise ValueError("route_recalculation_distance must be > 0")
        if self.walking_speed <= 0:
            raise ValueError("walking_speed must be > 0")
        if self.vertical_wait_minutes < 0:
            raise ValueError("vertical_wait_minutes must be >= 0")
        if self.wall_buffer < 0:
            raise ValueError("wall_buffer must be >= 0")
        if self.search_margin < 0:
            raise ValueError("search_margin must be >= 0")
        if self.max_search_expansions <= 0:
            raise ValueError("max_search_expansions must be > 0")
        if self.step_length <= 0:
            raise ValueError("step_length must be > 0")
        if self.tick_interval_seconds <= 0:
            raise ValueError("tick_interval_seconds must be > 0")

    @classmethod
    def from_env(cls) -> "NavigationSettings":
        """Build settings from `INDOOR_NAV_*` environment variables."""
        base = cls()
        return cls(
            waypoint_arrival_radius=_env_float("WAYPOINT_ARRIVAL_RADIUS", base.waypoint_arrival_radius),
            route_recalculation_distance=_env_float(
                "ROUTE_RECALCULATION_DISTANCE", base.route_recalculation_distance
            ),
            walking_speed=_env_float("WALKING_SPEED", base.walking_speed),
            vertical_wait_minutes=_env_float("VERTICAL_WAIT_MINUTES", base.vertical_wait_minutes),
            wall_buffer=_env_float("WALL_BUFFER", base.wall_buffer),
            search_margin=_env_float("SEARCH_MARGIN", base.search_margin),
            max_search_expansions=_env_int("MAX_SEARCH_EXPANSIONS", base.max_search_expansions),
            smooth_paths=_env_bool("SMOOTH_PATHS", base.smooth_paths),
            step_length=_env_float("STEP_LENGTH", base.step_length),
            tick_interval_seconds=_env_float("TICK_INTERVAL_SECONDS", base.tick_interval_seconds),
        )
