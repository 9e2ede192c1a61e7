"""Utility helpers shared across indoor_nav modules.

Purpose:
- Convert points, routes, destinations and events to JSON-safe payloads.
- Format floor numbers for display.
"""

from __future__ import annotations

from dataclasses import fields
from typing import Any

from indoor_nav.building import Destination
from indoor_nav.geometry import Point3D
from indoor_nav.pathfinding import Route


def floor_label(floor: int) -> str:
    """Display label of a floor: `1` -> "1F", `-1` -> "B1"."""
    floor = int(floor)
    if floor < 0:
        return f"B{-floor}"
    return f"{floor}F"


def point_to_dict(point: Point3D) -> dict[str, float | int]:
    return {"x": float(point.x), "y": float(point.y), "z": float(point.z), "floor": int(point.floor)}


def route_to_dict(route: Route) -> dict[str, Any]:
    """Serialize a route with its waypoints as coordinate dictionaries."""
    return {
        "destination_id": route.destination_id,
        "waypoints": [point_to_dict(p) for p in route.waypoints],
        "total_distance": float(route.total_distance),
        "estimated_time_minutes": route.estimated_time_minutes,
        "floors_traversed": list(route.floors_traversed),
        "degraded": route.degraded,
    }


def destination_to_dict(destination: Destination) -> dict[str, Any]:
    return {
        "id": destination.id,
        "name": destination.display_name,
        "category": destination.category,
        "x": float(destination.x),
        "y": float(destination.y),
        "z": float(destination.z),
        "floor": int(destination.floor),
        "floor_label": floor_label(destination.floor),
    }


def _to_json_value(value: Any) -> Any:
    if isinstance(value, Point3D):
        return point_to_dict(value)
    if isinstance(value, Route):
        return route_to_dict(value)
    return value


def event_to_dict(event: Any) -> dict[str, Any]:
    """Serialize a navigation event as `{"type": kind, **fields}`."""
    payload: dict[str, Any] = {"type": event.kind}
    for item in fields(event):
        payload[item.name] = _to_json_value(getattr(event, item.name))
    return payload
