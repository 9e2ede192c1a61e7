"""Step-and-heading dead reckoning for the live planar position.

Heading is a compass bearing in degrees: 0 moves along +y, 90 along +x.
"""

from __future__ import annotations

import math

import numpy as np

from indoor_nav.geometry import Point3D


class StepDeadReckoner:
    """Integrates detected steps into a planar position estimate."""

    def __init__(self, step_length: float = 0.7, x: float = 0.0, y: float = 0.0) -> None:
        if step_length <= 0:
            raise ValueError("step_length must be > 0")
        self.step_length = float(step_length)
        self._xy = np.array([float(x), float(y)], dtype=np.float64)
        self.steps_taken = 0

    @property
    def xy(self) -> tuple[float, float]:
        return float(self._xy[0]), float(self._xy[1])

    def set_position(self, x: float, y: float) -> None:
        """Re-anchor on an absolute fix (QR scan, manual placement, positioning service)."""
        self._xy = np.array([float(x), float(y)], dtype=np.float64)

    def apply_steps(self, step_count: int, heading_deg: float) -> tuple[float, float]:
        """Move `step_count x step_length` along `heading_deg`; returns the new position."""
        if step_count < 0:
            raise ValueError("step_count must be >= 0")
        heading = math.radians(float(heading_deg))
        direction = np.array([math.sin(heading), math.cos(heading)], dtype=np.float64)
        self._xy = self._xy + step_count * self.step_length * direction
        self.steps_taken += int(step_count)
        return self.xy

    def position(self, floor: int, elevation: float) -> Point3D:
        """Current position tagged with `floor` at the floor's `elevation`."""
        x, y = self.xy
        return Point3D(x, y, elevation, floor)
