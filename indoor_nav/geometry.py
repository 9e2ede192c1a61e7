"""Floor plan geometry and walkability queries.

Purpose:
- Describe per-floor walkable space as walls, rooms and doors.
- Answer point walkability queries for routing, one point at a time or
  vectorized over numpy coordinate arrays.

Walkability convention:
- Walls are impassable within `wall_buffer` of the segment.
- Rooms are opaque rectangles (bounds inclusive).
- Everything else is walkable.

Usage example:
    >>> plan = FloorPlan(floor=1, walls=(Segment(0, 0, 30, 0),))
    >>> plan.is_walkable(5.0, 3.0)
    True
    >>> plan.is_walkable(5.0, 0.2)
    False
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

DEFAULT_WALL_BUFFER = 0.5

Point2D = tuple[float, float]
Bounds = tuple[float, float, float, float]  # (min_x, min_y, max_x, max_y)


@dataclass(frozen=True, slots=True)
class Point3D:
    """Location in the building; `floor` is independent from `z`."""

    x: float
    y: float
    z: float = 0.0
    floor: int = 1

    def distance_to(self, other: "Point3D") -> float:
        dx = self.x - other.x
        dy = self.y - other.y
        dz = self.z - other.z
        return math.sqrt(dx * dx + dy * dy + dz * dz)

    def planar_distance_to(self, other: "Point3D") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)


def euclidean(a: Point3D, b: Point3D) -> float:
    """3D Euclidean distance between two points."""
    return a.distance_to(b)


def leg_length(a: Point3D, b: Point3D, floor_height: float) -> float:
    """Travel length between consecutive waypoints.

    Same-floor legs are straight 3D lines. A floor change climbs
    `|delta floor| x floor_height`, combined with any planar offset between
    the boarding and alighting points.
    """
    if a.floor == b.floor:
        return euclidean(a, b)
    return math.hypot(a.planar_distance_to(b), abs(b.floor - a.floor) * floor_height)


@dataclass(frozen=True, slots=True)
class Segment:
    """Wall segment from `(x1, y1)` to `(x2, y2)`."""

    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def length(self) -> float:
        return math.hypot(self.x2 - self.x1, self.y2 - self.y1)


@dataclass(frozen=True, slots=True)
class Room:
    """Axis-aligned rectangular no-walk zone."""

    id: str
    x: float
    y: float
    w: float
    h: float

    def contains(self, x: float, y: float) -> bool:
        return self.x <= x <= self.x + self.w and self.y <= y <= self.y + self.h


def segment_distance(px: float, py: float, ax: float, ay: float, bx: float, by: float) -> float:
    """Distance from `(px, py)` to the closed segment AB (clamped projection)."""
    abx = bx - ax
    aby = by - ay
    len2 = abx * abx + aby * aby
    if len2 == 0.0:
        return math.hypot(px - ax, py - ay)
    t = ((px - ax) * abx + (py - ay) * aby) / len2
    t = max(0.0, min(1.0, t))
    return math.hypot(px - (ax + t * abx), py - (ay + t * aby))


def point_segment_distance(px: float, py: float, segment: Segment) -> float:
    """Distance from a point to a wall segment."""
    return segment_distance(px, py, segment.x1, segment.y1, segment.x2, segment.y2)


def point_on_segment(px: float, py: float, segment: Segment, buffer: float = DEFAULT_WALL_BUFFER) -> bool:
    """Return True when the point lies on the wall, thickened by `buffer`.

    The point must be within `buffer` of the wall's supporting line and its
    projection must fall inside the segment (`0 <= dot <= |AB|^2`).
    """
    abx = segment.x2 - segment.x1
    aby = segment.y2 - segment.y1
    apx = px - segment.x1
    apy = py - segment.y1
    len2 = abx * abx + aby * aby
    if len2 == 0.0:
        return math.hypot(apx, apy) <= buffer

    perpendicular = abs(apy * abx - apx * aby) / math.sqrt(len2)
    if perpendicular > buffer:
        return False

    dot = apx * abx + apy * aby
    return 0.0 <= dot <= len2


@dataclass(frozen=True)
class FloorPlan:
    """Static walkable-space description of one floor."""

    floor: int
    walls: tuple[Segment, ...] = ()
    rooms: tuple[Room, ...] = ()
    doors: tuple[Point2D, ...] = ()
    wall_buffer: float = DEFAULT_WALL_BUFFER
    elevation: float = 0.0
    _wall_array: np.ndarray = field(init=False, repr=False, compare=False)
    _room_array: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.wall_buffer < 0:
            raise ValueError("wall_buffer must be >= 0")
        walls = np.array([(w.x1, w.y1, w.x2, w.y2) for w in self.walls], dtype=np.float64).reshape(-1, 4)
        rooms = np.array([(r.x, r.y, r.w, r.h) for r in self.rooms], dtype=np.float64).reshape(-1, 4)
        walls.setflags(write=False)
        rooms.setflags(write=False)
        object.__setattr__(self, "_wall_array", walls)
        object.__setattr__(self, "_room_array", rooms)

    def is_walkable(self, x: float, y: float) -> bool:
        """Scalar walkability test used at high frequency by routing."""
        for wall in self.walls:
            if point_on_segment(x, y, wall, self.wall_buffer):
                return False
        for room in self.rooms:
            if room.contains(x, y):
                return False
        return True

    def walkable_mask(self, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        """Vectorized `is_walkable` over broadcastable coordinate arrays.

        Args:
            xs: X coordinates, any shape.
            ys: Y coordinates, same shape as `xs`.

        Returns:
            Boolean array of the input shape, True where walkable.
        """
        xs = np.asarray(xs, dtype=np.float64)
        ys = np.asarray(ys, dtype=np.float64)
        if xs.shape != ys.shape:
            raise ValueError("xs and ys must have the same shape")

        mask = np.ones(xs.shape, dtype=bool)
        px = xs[..., None]
        py = ys[..., None]

        if self._wall_array.size:
            ax, ay, bx, by = self._wall_array.T
            abx = bx - ax
            aby = by - ay
            len2 = abx * abx + aby * aby
            apx = px - ax
            apy = py - ay

            length = np.sqrt(len2)
            safe_length = np.where(length > 0.0, length, 1.0)
            perpendicular = np.where(
                length > 0.0,
                np.abs(apy * abx - apx * aby) / safe_length,
                np.hypot(apx, apy),
            )
            dot = apx * abx + apy * aby
            on_wall = (perpendicular <= self.wall_buffer) & (dot >= 0.0) & (dot <= len2)
            mask &= ~on_wall.any(axis=-1)

        if self._room_array.size:
            rx, ry, rw, rh = self._room_array.T
            inside = (px >= rx) & (px <= rx + rw) & (py >= ry) & (py <= ry + rh)
            mask &= ~inside.any(axis=-1)

        return mask

    def bounds(self) -> Bounds | None:
        """Bounding box of walls, rooms and doors, or None for an empty plan."""
        xs: list[float] = []
        ys: list[float] = []
        for wall in self.walls:
            xs.extend((wall.x1, wall.x2))
            ys.extend((wall.y1, wall.y2))
        for room in self.rooms:
            xs.extend((room.x, room.x + room.w))
            ys.extend((room.y, room.y + room.h))
        for door_x, door_y in self.doors:
            xs.append(door_x)
            ys.append(door_y)
        if not xs:
            return None
        return min(xs), min(ys), max(xs), max(ys)

    def room_at(self, x: float, y: float) -> Room | None:
        for room in self.rooms:
            if room.contains(x, y):
                return room
        return None
