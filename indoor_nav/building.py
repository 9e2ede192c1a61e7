"""Building configuration: floor plans, destination catalog and vertical connectors.

The building is loaded once at startup and shared read-only by the
pathfinder, the route tracker and the validators.

Expected JSON schema:
    {
      "floor_height": 3.5,
      "floors": [
        {
          "floor": 1,
          "elevation": 0,
          "walls": [{"x1": -5, "y1": -2, "x2": 40, "y2": -2}],
          "rooms": [{"id": "lounge_room", "x": 13, "y": 11, "w": 6, "h": 4}],
          "doors": [{"x": 0, "y": 0}]
        }
      ],
      "destinations": [
        {"id": "reception", "x": 10, "y": 5, "floor": 1,
         "name": "Reception", "category": "service"}
      ],
      "connectors": [
        {"connector_id": "EV-1-2", "connector_type": "elevator",
         "entry": "elevator_1f", "exit": "elevator_2f"}
      ]
    }

Connector endpoints are destination ids or explicit `{x, y, z, floor}` objects.
A floor without `elevation` sits at `floor x floor_height`; a point without
`z` sits at its floor's elevation.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Mapping

from indoor_nav.errors import DestinationNotFound
from indoor_nav.geometry import DEFAULT_WALL_BUFFER, FloorPlan, Point3D, Room, Segment

CONNECTOR_TYPES = {"elevator", "stairs"}
DEFAULT_CATEGORY = "other"


@dataclass(frozen=True, slots=True)
class Destination:
    """Named point of interest that can be used as a route target."""

    id: str
    x: float
    y: float
    z: float
    floor: int
    display_name: str
    category: str = DEFAULT_CATEGORY

    @property
    def point(self) -> Point3D:
        return Point3D(self.x, self.y, self.z, self.floor)


@dataclass(frozen=True, slots=True)
class VerticalConnector:
    """Elevator or stairs linking `entry.floor` and `exit.floor` (both directions)."""

    connector_id: str
    connector_type: str
    entry: Point3D
    exit: Point3D

    @property
    def floors(self) -> tuple[int, int]:
        return self.entry.floor, self.exit.floor

    def links(self, floor_a: int, floor_b: int) -> bool:
        return {floor_a, floor_b} == {self.entry.floor, self.exit.floor}

    def oriented(self, from_floor: int) -> tuple[Point3D, Point3D]:
        """Return `(boarding, alighting)` points when travelling from `from_floor`."""
        if self.entry.floor == from_floor:
            return self.entry, self.exit
        if self.exit.floor == from_floor:
            return self.exit, self.entry
        raise ValueError(f"Connector {self.connector_id} does not serve floor {from_floor}")


@dataclass(frozen=True)
class Building:
    """Immutable building configuration shared by the routing engine."""

    floor_height: float
    floor_plans: Mapping[int, FloorPlan]
    destinations: Mapping[str, Destination]
    connectors: tuple[VerticalConnector, ...] = ()

    def __post_init__(self) -> None:
        if self.floor_height <= 0:
            raise ValueError("floor_height must be > 0")
        object.__setattr__(self, "floor_plans", MappingProxyType(dict(self.floor_plans)))
        object.__setattr__(self, "destinations", MappingProxyType(dict(self.destinations)))
        object.__setattr__(self, "connectors", tuple(self.connectors))

    @property
    def floors(self) -> list[int]:
        return sorted(self.floor_plans.keys())

    def plan_for(self, floor: int) -> FloorPlan | None:
        return self.floor_plans.get(floor)

    def elevation(self, floor: int) -> float:
        """Height of a floor's walking surface; `floor x floor_height` when the floor has no plan."""
        plan = self.floor_plans.get(floor)
        if plan is None:
            return floor * self.floor_height
        return plan.elevation

    def is_walkable(self, x: float, y: float, floor: int) -> bool:
        """Walkability on a given floor; floors without a plan are not walkable."""
        plan = self.floor_plans.get(floor)
        if plan is None:
            return False
        return plan.is_walkable(x, y)

    def find_destination(self, destination_id: str) -> Destination:
        try:
            return self.destinations[destination_id]
        except KeyError:
            raise DestinationNotFound(destination_id) from None

    def destination_at(self, point: Point3D) -> Destination | None:
        """Reverse lookup of a destination by exact x, y and floor."""
        for destination in self.destinations.values():
            if destination.x == point.x and destination.y == point.y and destination.floor == point.floor:
                return destination
        return None

    def list_destinations(self, floor: int | None = None) -> list[Destination]:
        items = list(self.destinations.values())
        if floor is not None:
            items = [d for d in items if d.floor == floor]
        return items

    def connectors_between(self, floor_a: int, floor_b: int) -> list[VerticalConnector]:
        return [c for c in self.connectors if c.links(floor_a, floor_b)]


def _require(item: dict[str, Any], keys: set[str], label: str) -> None:
    if not isinstance(item, dict):
        raise ValueError(f"{label} must be an object")
    missing = keys - item.keys()
    if missing:
        raise ValueError(f"{label} must include {', '.join(sorted(missing))}")


def _parse_point(raw: Any, label: str, elevation_of: Callable[[int], float]) -> Point3D:
    _require(raw, {"x", "y", "floor"}, label)
    try:
        floor = int(raw["floor"])
        z = float(raw["z"]) if "z" in raw else elevation_of(floor)
        return Point3D(x=float(raw["x"]), y=float(raw["y"]), z=z, floor=floor)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{label} has invalid coordinates") from exc


def _parse_floor_plan(raw: Any, idx: int, wall_buffer: float, floor_height: float) -> FloorPlan:
    label = f"floors[{idx}]"
    _require(raw, {"floor"}, label)
    floor = int(raw["floor"])

    walls: list[Segment] = []
    for w_idx, wall in enumerate(raw.get("walls", [])):
        _require(wall, {"x1", "y1", "x2", "y2"}, f"{label}.walls[{w_idx}]")
        walls.append(Segment(float(wall["x1"]), float(wall["y1"]), float(wall["x2"]), float(wall["y2"])))

    rooms: list[Room] = []
    for r_idx, room in enumerate(raw.get("rooms", [])):
        _require(room, {"id", "x", "y", "w", "h"}, f"{label}.rooms[{r_idx}]")
        if float(room["w"]) < 0 or float(room["h"]) < 0:
            raise ValueError(f"{label}.rooms[{r_idx}] must have non-negative w and h")
        rooms.append(
            Room(str(room["id"]), float(room["x"]), float(room["y"]), float(room["w"]), float(room["h"]))
        )

    doors: list[tuple[float, float]] = []
    for d_idx, door in enumerate(raw.get("doors", [])):
        _require(door, {"x", "y"}, f"{label}.doors[{d_idx}]")
        doors.append((float(door["x"]), float(door["y"])))

    return FloorPlan(
        floor=floor,
        walls=tuple(walls),
        rooms=tuple(rooms),
        doors=tuple(doors),
        wall_buffer=wall_buffer,
        elevation=float(raw.get("elevation", floor * floor_height)),
    )


def _parse_destination(raw: Any, idx: int, elevation_of: Callable[[int], float]) -> Destination:
    label = f"destinations[{idx}]"
    _require(raw, {"id", "x", "y", "floor"}, label)
    point = _parse_point(raw, label, elevation_of)
    destination_id = str(raw["id"])
    return Destination(
        id=destination_id,
        x=point.x,
        y=point.y,
        z=point.z,
        floor=point.floor,
        display_name=str(raw.get("name", destination_id)),
        category=str(raw.get("category", DEFAULT_CATEGORY)),
    )


def _parse_connector(
    raw: Any,
    idx: int,
    destinations: Mapping[str, Destination],
    elevation_of: Callable[[int], float],
) -> VerticalConnector:
    label = f"connectors[{idx}]"
    _require(raw, {"connector_id", "connector_type", "entry", "exit"}, label)

    connector_type = str(raw["connector_type"]).lower()
    if connector_type not in CONNECTOR_TYPES:
        raise ValueError(f"{label}.connector_type must be one of {sorted(CONNECTOR_TYPES)}")

    def endpoint(value: Any, name: str) -> Point3D:
        if isinstance(value, str):
            if value not in destinations:
                raise ValueError(f"{label}.{name} references unknown destination '{value}'")
            return destinations[value].point
        return _parse_point(value, f"{label}.{name}", elevation_of)

    entry = endpoint(raw["entry"], "entry")
    exit_ = endpoint(raw["exit"], "exit")
    if entry.floor == exit_.floor:
        raise ValueError(f"{label} must link two different floors")

    return VerticalConnector(
        connector_id=str(raw["connector_id"]),
        connector_type=connector_type,
        entry=entry,
        exit=exit_,
    )


def building_from_dict(data: dict[str, Any], wall_buffer: float = DEFAULT_WALL_BUFFER) -> Building:
    """Parse a building document into an immutable `Building`.

    Raises:
        ValueError: If the document is malformed; the message names the item.
    """
    if not isinstance(data, dict):
        raise ValueError("building document must be a JSON object")

    try:
        floor_height = float(data.get("floor_height", 3.5))
    except (TypeError, ValueError) as exc:
        raise ValueError("floor_height must be a number") from exc

    floors_raw = data.get("floors")
    if not isinstance(floors_raw, list) or not floors_raw:
        raise ValueError("floors must be a non-empty list")

    floor_plans: dict[int, FloorPlan] = {}
    for idx, raw in enumerate(floors_raw):
        plan = _parse_floor_plan(raw, idx, wall_buffer, floor_height)
        if plan.floor in floor_plans:
            raise ValueError(f"floors[{idx}] duplicates floor {plan.floor}")
        floor_plans[plan.floor] = plan

    def elevation_of(floor: int) -> float:
        plan = floor_plans.get(floor)
        return plan.elevation if plan is not None else floor * floor_height

    destinations: dict[str, Destination] = {}
    for idx, raw in enumerate(data.get("destinations", [])):
        destination = _parse_destination(raw, idx, elevation_of)
        if destination.id in destinations:
            raise ValueError(f"destinations[{idx}] duplicates id '{destination.id}'")
        destinations[destination.id] = destination

    connectors = [
        _parse_connector(raw, idx, destinations, elevation_of) for idx, raw in enumerate(data.get("connectors", []))
    ]

    return Building(
        floor_height=floor_height,
        floor_plans=floor_plans,
        destinations=destinations,
        connectors=tuple(connectors),
    )


def load_building(path: str | Path, wall_buffer: float = DEFAULT_WALL_BUFFER) -> Building:
    """Load and parse a building JSON file."""
    source = Path(path)
    try:
        data = json.loads(source.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{source} is not valid JSON") from exc
    return building_from_dict(data, wall_buffer=wall_buffer)
