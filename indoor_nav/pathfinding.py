"""Route computation over the building floor plans.

Purpose:
- Straight-line routes when the direct walk is clear.
- 8-connected grid A* on a unit lattice anchored at the start point when it
  is not, with a straight-line fallback if the search fails.
- Cross-floor routes composed of same-floor legs joined by elevator/stairs
  connectors.

Usage example:
    >>> pathfinder = Pathfinder(load_building("assets/ryokan_building.json"))
    >>> route = pathfinder.route(Point3D(0, 0, 0, 1), "reception")
    >>> route.total_distance
    11.180339887498949
"""

from __future__ import annotations

import heapq
import itertools
import logging
import math
from collections import deque
from dataclasses import dataclass, replace

import numpy as np

from indoor_nav.building import Building
from indoor_nav.errors import NoPathFound
from indoor_nav.geometry import FloorPlan, Point3D, euclidean, leg_length
from indoor_nav.settings import NavigationSettings

logger = logging.getLogger(__name__)

GridPoint = tuple[int, int]  # (row, col)

GOAL_RADIUS = 1.0

_MOVES: tuple[tuple[int, int, float], ...] = (
    (-1, 0, 1.0),
    (1, 0, 1.0),
    (0, -1, 1.0),
    (0, 1, 1.0),
    (-1, -1, math.sqrt(2)),
    (-1, 1, math.sqrt(2)),
    (1, -1, math.sqrt(2)),
    (1, 1, math.sqrt(2)),
)


@dataclass(frozen=True, slots=True)
class Route:
    """Immutable walking route; replaced, never mutated, on recalculation."""

    waypoints: tuple[Point3D, ...]
    total_distance: float
    estimated_time_minutes: float
    floors_traversed: tuple[int, ...]
    destination_id: str | None = None
    degraded: bool = False

    def __post_init__(self) -> None:
        if len(self.waypoints) < 2:
            raise ValueError("Route needs at least two waypoints")

    @property
    def destination(self) -> Point3D:
        return self.waypoints[-1]


@dataclass(frozen=True, slots=True)
class Lattice:
    """Unit-spaced occupancy lattice; cell `(r, c)` sits at `(origin_x + c, origin_y + r)`."""

    grid: np.ndarray
    origin_x: float
    origin_y: float

    def to_world(self, cell: GridPoint) -> tuple[float, float]:
        return self.origin_x + cell[1], self.origin_y + cell[0]


def path_length(points: list[Point3D] | tuple[Point3D, ...], floor_height: float) -> float:
    """Sum of leg lengths along a polyline (see `leg_length`)."""
    return sum(leg_length(a, b, floor_height) for a, b in zip(points, points[1:]))


def build_lattice(plan: FloorPlan | None, start: Point3D, goal: Point3D, margin: float) -> tuple[Lattice, GridPoint]:
    """Rasterize walkability around `start` and `goal` into an occupancy lattice.

    The lattice covers the floor bounds plus `margin`, always includes both
    endpoints, and is anchored so that one cell lands exactly on `start`.

    Returns:
        Tuple `(lattice, start_cell)`; grid values are 0 free / 1 occupied.
    """
    min_x, min_y = min(start.x, goal.x), min(start.y, goal.y)
    max_x, max_y = max(start.x, goal.x), max(start.y, goal.y)
    bounds = plan.bounds() if plan is not None else None
    if bounds is not None:
        min_x, min_y = min(min_x, bounds[0]), min(min_y, bounds[1])
        max_x, max_y = max(max_x, bounds[2]), max(max_y, bounds[3])
    min_x, min_y = min_x - margin, min_y - margin
    max_x, max_y = max_x + margin, max_y + margin

    c0 = int(math.ceil(start.x - min_x))
    r0 = int(math.ceil(start.y - min_y))
    cols = c0 + int(math.ceil(max_x - start.x)) + 1
    rows = r0 + int(math.ceil(max_y - start.y)) + 1
    origin_x = start.x - c0
    origin_y = start.y - r0

    if plan is None:
        grid = np.ones((rows, cols), dtype=np.uint8)
    else:
        xs, ys = np.meshgrid(origin_x + np.arange(cols), origin_y + np.arange(rows))
        grid = (~plan.walkable_mask(xs, ys)).astype(np.uint8)

    return Lattice(grid=grid, origin_x=origin_x, origin_y=origin_y), (r0, c0)


def _neighbors(point: GridPoint, grid: np.ndarray) -> list[tuple[GridPoint, float]]:
    """Return free 8-connected neighbors and their move costs."""
    r, c = point
    rows, cols = grid.shape

    result: list[tuple[GridPoint, float]] = []
    for dr, dc, cost in _MOVES:
        nr, nc = r + dr, c + dc
        if nr < 0 or nr >= rows or nc < 0 or nc >= cols:
            continue
        if grid[nr, nc] == 1:
            continue

        # Prevent diagonal corner cutting through blocked cells.
        if dr != 0 and dc != 0:
            if grid[r + dr, c] == 1 and grid[r, c + dc] == 1:
                continue

        result.append(((nr, nc), cost))

    return result


def astar_lattice(
    lattice: Lattice,
    start: GridPoint,
    goal_xy: tuple[float, float],
    max_expansions: int = 50_000,
) -> list[GridPoint]:
    """A* from `start` until a cell lies within `GOAL_RADIUS` of `goal_xy`.

    The start cell is expanded even when occupied (the walker is already
    there). The open set is a heap keyed by `(f, h, insertion order)`, so
    ties prefer the node closer to the goal, then the earlier one.

    Raises:
        NoPathFound: If the open set or the expansion budget is exhausted.
    """
    gx, gy = goal_xy

    def heuristic(cell: GridPoint) -> float:
        x, y = lattice.to_world(cell)
        return math.hypot(x - gx, y - gy)

    counter = itertools.count()
    h_start = heuristic(start)
    open_heap: list[tuple[float, float, int, GridPoint]] = [(h_start, h_start, next(counter), start)]

    came_from: dict[GridPoint, GridPoint] = {}
    g_score: dict[GridPoint, float] = {start: 0.0}
    closed: set[GridPoint] = set()

    while open_heap:
        _, h_current, _, current = heapq.heappop(open_heap)

        if current in closed:
            continue

        if h_current < GOAL_RADIUS:
            path = [current]
            while current in came_from:
                current = came_from[current]
                path.append(current)
            path.reverse()
            return path

        closed.add(current)
        if len(closed) >= max_expansions:
            raise NoPathFound(f"expansion budget of {max_expansions} nodes exhausted")

        for neighbor, step_cost in _neighbors(current, lattice.grid):
            if neighbor in closed:
                continue

            tentative_g = g_score[current] + step_cost
            if tentative_g < g_score.get(neighbor, float("inf")):
                came_from[neighbor] = current
                g_score[neighbor] = tentative_g
                h = heuristic(neighbor)
                heapq.heappush(open_heap, (tentative_g + h, h, next(counter), neighbor))

    raise NoPathFound("open set exhausted")


class Pathfinder:
    """Computes routes between points of the building.

    Args:
        building: Shared read-only building configuration.
        settings: Walking speed, search bounds and smoothing options.
    """

    def __init__(self, building: Building, settings: NavigationSettings | None = None) -> None:
        self.building = building
        self.settings = settings or NavigationSettings()

    def route(self, start: Point3D, destination_id: str) -> Route:
        """Route from `start` to a catalog destination.

        Raises:
            DestinationNotFound: If `destination_id` is not in the catalog.
        """
        destination = self.building.find_destination(destination_id)
        route = self.route_between(start, destination.point)
        logger.info(
            "Route to %s: %d waypoints, %.2f units, %s min",
            destination_id,
            len(route.waypoints),
            route.total_distance,
            route.estimated_time_minutes,
        )
        return replace(route, destination_id=destination_id)

    def route_between(self, start: Point3D, end: Point3D) -> Route:
        if start.floor == end.floor:
            return self._same_floor_route(start, end)
        return self._multi_floor_route(start, end)

    def is_direct_path_clear(self, start: Point3D, end: Point3D) -> bool:
        """Sample the straight line at about one-unit steps, both ends included."""
        plan = self.building.plan_for(start.floor)
        if plan is None:
            return False
        steps = int(math.ceil(euclidean(start, end)))
        if steps == 0:
            return plan.is_walkable(start.x, start.y)
        t = np.linspace(0.0, 1.0, steps + 1)
        xs = start.x + (end.x - start.x) * t
        ys = start.y + (end.y - start.y) * t
        return bool(plan.walkable_mask(xs, ys).all())

    def smooth_path(self, points: list[Point3D]) -> list[Point3D]:
        """Greedy line-of-sight shortcutting; never lengthens the path."""
        if len(points) <= 2:
            return list(points)

        smoothed = [points[0]]
        anchor = 0
        while anchor < len(points) - 1:
            nxt = anchor + 1
            for candidate in range(len(points) - 1, anchor + 1, -1):
                if self.is_direct_path_clear(points[anchor], points[candidate]):
                    nxt = candidate
                    break
            smoothed.append(points[nxt])
            anchor = nxt
        return smoothed

    def _eta(self, distance: float) -> int:
        return int(math.ceil(distance / self.settings.walking_speed))

    def _straight_route(self, start: Point3D, end: Point3D, degraded: bool = False) -> Route:
        distance = leg_length(start, end, self.building.floor_height)
        floors = (start.floor,) if start.floor == end.floor else (start.floor, end.floor)
        return Route(
            waypoints=(start, end),
            total_distance=distance,
            estimated_time_minutes=self._eta(distance),
            floors_traversed=floors,
            degraded=degraded,
        )

    def _same_floor_route(self, start: Point3D, end: Point3D) -> Route:
        if self.is_direct_path_clear(start, end):
            return self._straight_route(start, end)

        try:
            waypoints = self._search(start, end)
        except NoPathFound as exc:
            logger.warning(
                "No path on floor %s from (%.1f, %.1f) to (%.1f, %.1f): %s; using straight line",
                start.floor,
                start.x,
                start.y,
                end.x,
                end.y,
                exc,
            )
            return self._straight_route(start, end, degraded=True)

        distance = path_length(waypoints, self.building.floor_height)
        return Route(
            waypoints=tuple(waypoints),
            total_distance=distance,
            estimated_time_minutes=self._eta(distance),
            floors_traversed=(start.floor,),
        )

    def _search(self, start: Point3D, end: Point3D) -> list[Point3D]:
        # Lattice nodes share the start's floor plane, so the 3D heuristic reduces to planar distance.
        lattice, start_cell = build_lattice(
            self.building.plan_for(start.floor),
            start,
            end,
            margin=self.settings.search_margin,
        )
        cells = astar_lattice(
            lattice,
            start_cell,
            (end.x, end.y),
            max_expansions=self.settings.max_search_expansions,
        )

        points = [start]
        for cell in cells[1:]:
            x, y = lattice.to_world(cell)
            points.append(Point3D(x, y, start.z, start.floor))
        if len(points) == 1 or points[-1] != end:
            points.append(end)

        if self.settings.smooth_paths:
            points = self.smooth_path(points)
        return points

    def _floor_chain(self, from_floor: int, to_floor: int) -> list[int] | None:
        """Fewest-hop floor sequence through the connector graph (BFS)."""
        if from_floor == to_floor:
            return [from_floor]

        neighbors: dict[int, set[int]] = {}
        for connector in self.building.connectors:
            a, b = connector.floors
            neighbors.setdefault(a, set()).add(b)
            neighbors.setdefault(b, set()).add(a)

        q: deque[int] = deque([from_floor])
        parent: dict[int, int | None] = {from_floor: None}
        while q:
            cur = q.popleft()
            for nxt in sorted(neighbors.get(cur, set())):
                if nxt in parent:
                    continue
                parent[nxt] = cur
                if nxt == to_floor:
                    chain = [to_floor]
                    while parent[chain[-1]] is not None:
                        chain.append(parent[chain[-1]])
                    chain.reverse()
                    return chain
                q.append(nxt)
        return None

    def _best_connector(
        self, current: Point3D, from_floor: int, to_floor: int, goal: Point3D
    ) -> tuple[Point3D, Point3D]:
        """Greedy choice: minimize `distance(current, board) + distance(alight, goal)`."""
        best: tuple[Point3D, Point3D] | None = None
        best_score = float("inf")
        for connector in self.building.connectors_between(from_floor, to_floor):
            board, alight = connector.oriented(from_floor)
            score = euclidean(current, board) + euclidean(alight, goal)
            if score < best_score:
                best_score = score
                best = (board, alight)
        if best is None:
            raise ValueError(f"No connector links floors {from_floor} and {to_floor}")
        return best

    def _multi_floor_route(self, start: Point3D, end: Point3D) -> Route:
        chain = self._floor_chain(start.floor, end.floor)
        if chain is None:
            logger.warning(
                "No vertical connector chain from floor %s to floor %s; using straight line",
                start.floor,
                end.floor,
            )
            return self._straight_route(start, end, degraded=True)

        waypoints: list[Point3D] = []
        distance = 0.0
        wait_minutes = 0.0
        degraded = False
        current = start

        def extend(points: tuple[Point3D, ...] | list[Point3D]) -> None:
            for point in points:
                if not waypoints or waypoints[-1] != point:
                    waypoints.append(point)

        for from_floor, to_floor in zip(chain, chain[1:]):
            board, alight = self._best_connector(current, from_floor, to_floor, end)
            leg = self._same_floor_route(current, board)
            extend(leg.waypoints)
            distance += leg.total_distance
            degraded = degraded or leg.degraded

            extend([alight])
            distance += leg_length(board, alight, self.building.floor_height)
            wait_minutes += abs(to_floor - from_floor) * self.settings.vertical_wait_minutes
            current = alight

        last_leg = self._same_floor_route(current, end)
        extend(last_leg.waypoints)
        distance += last_leg.total_distance
        degraded = degraded or last_leg.degraded

        return Route(
            waypoints=tuple(waypoints),
            total_distance=distance,
            estimated_time_minutes=self._eta(distance) + wait_minutes,
            floors_traversed=tuple(chain),
            degraded=degraded,
        )
