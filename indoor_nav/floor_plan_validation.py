"""Quality gates for a loaded building configuration."""

from __future__ import annotations

from typing import Any

from shapely.geometry import LineString, Point, Polygon, box

from indoor_nav.building import Building
from indoor_nav.geometry import Room, Segment


def _line_from_wall(wall: Segment) -> LineString:
    return LineString([(wall.x1, wall.y1), (wall.x2, wall.y2)])


def _room_polygon(room: Room) -> Polygon:
    return box(room.x, room.y, room.x + room.w, room.y + room.h)


def _endpoint_set(line: LineString, precision: int = 4) -> set[tuple[float, float]]:
    coords = list(line.coords)
    if len(coords) < 2:
        return set()
    a = (round(float(coords[0][0]), precision), round(float(coords[0][1]), precision))
    b = (round(float(coords[-1][0]), precision), round(float(coords[-1][1]), precision))
    return {a, b}


def validate_building(building: Building, door_wall_max_gap: float = 0.45) -> dict[str, Any]:
    """Validate wall topology, door placement, rooms, destinations and connectors.

    Returns:
        Report `{"ok", "summary", "issues"}`; `ok` is False when any issue has
        severity "error".
    """
    issues: list[dict[str, Any]] = []
    wall_checks = 0
    door_checks = 0

    for floor in building.floors:
        plan = building.floor_plans[floor]

        wall_lines: list[tuple[int, LineString]] = []
        for idx, wall in enumerate(plan.walls):
            if wall.length == 0.0:
                issues.append(
                    {
                        "kind": "wall_degenerate",
                        "severity": "warning",
                        "floor": floor,
                        "wall": idx,
                        "message": "Wall has zero length",
                    }
                )
                continue
            wall_lines.append((idx, _line_from_wall(wall)))

        # Wall intersection checks (excluding shared endpoints).
        for i in range(len(wall_lines)):
            id_a, line_a = wall_lines[i]
            for j in range(i + 1, len(wall_lines)):
                id_b, line_b = wall_lines[j]
                wall_checks += 1
                if not line_a.intersects(line_b):
                    continue

                inter = line_a.intersection(line_b)
                if inter.is_empty:
                    continue

                endpoints = _endpoint_set(line_a) | _endpoint_set(line_b)
                if inter.geom_type == "Point":
                    p = (round(float(inter.x), 4), round(float(inter.y), 4))
                    if p in endpoints:
                        continue

                issues.append(
                    {
                        "kind": "wall_intersection",
                        "severity": "warning",
                        "floor": floor,
                        "wall_a": id_a,
                        "wall_b": id_b,
                        "message": "Walls intersect away from shared endpoints",
                    }
                )

        # A door sits in a wall or on a room boundary.
        boundaries = [geom for _, geom in wall_lines] + [_room_polygon(room).exterior for room in plan.rooms]
        for idx, (door_x, door_y) in enumerate(plan.doors):
            door_checks += 1
            door_pt = Point(door_x, door_y)
            if not any(boundary.distance(door_pt) <= door_wall_max_gap for boundary in boundaries):
                issues.append(
                    {
                        "kind": "door_clearance",
                        "severity": "warning",
                        "floor": floor,
                        "door": idx,
                        "message": f"Door is not near any wall or room within {door_wall_max_gap:.2f}",
                    }
                )

        polygons = [(room.id, _room_polygon(room)) for room in plan.rooms]
        for i in range(len(polygons)):
            id_a, poly_a = polygons[i]
            for j in range(i + 1, len(polygons)):
                id_b, poly_b = polygons[j]
                if poly_a.intersection(poly_b).area > 0.0:
                    issues.append(
                        {
                            "kind": "room_overlap",
                            "severity": "warning",
                            "floor": floor,
                            "room_a": id_a,
                            "room_b": id_b,
                            "message": "Rooms overlap",
                        }
                    )

    for destination in building.destinations.values():
        plan = building.plan_for(destination.floor)
        if plan is None:
            issues.append(
                {
                    "kind": "destination_floor_missing",
                    "severity": "error",
                    "floor": destination.floor,
                    "destination": destination.id,
                    "message": f"No floor plan for floor {destination.floor}",
                }
            )
        elif not plan.is_walkable(destination.x, destination.y):
            issues.append(
                {
                    "kind": "destination_unwalkable",
                    "severity": "warning",
                    "floor": destination.floor,
                    "destination": destination.id,
                    "message": "Destination lies inside a wall buffer or room",
                }
            )

    for connector in building.connectors:
        for floor in connector.floors:
            if building.plan_for(floor) is None:
                issues.append(
                    {
                        "kind": "connector_floor_missing",
                        "severity": "error",
                        "floor": floor,
                        "connector": connector.connector_id,
                        "message": f"Connector serves floor {floor} which has no floor plan",
                    }
                )

    error_count = sum(1 for issue in issues if issue.get("severity") == "error")
    warning_count = sum(1 for issue in issues if issue.get("severity") == "warning")

    return {
        "ok": error_count == 0,
        "summary": {
            "floors": len(building.floors),
            "wall_checks": wall_checks,
            "door_checks": door_checks,
            "destinations": len(building.destinations),
            "connectors": len(building.connectors),
            "errors": error_count,
            "warnings": warning_count,
        },
        "issues": issues,
    }
