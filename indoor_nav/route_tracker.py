"""Active route ownership: waypoint cursor, arrival, drift and recalculation.

The tracker is driven by `tick(position)` on every position update. Events are
dispatched outside the tracker lock so that listeners may call `stop()` (or
any other tracker method) from inside a tick.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass

from indoor_nav.errors import DestinationNotFound, RecalculationFailed
from indoor_nav.events import (
    DestinationReached,
    EventBus,
    NavigationStarted,
    NavigationStopped,
    NavigationUpdate,
    RecalculationFailed as RecalculationFailedEvent,
    RouteRecalculated,
    WaypointReached,
)
from indoor_nav.geometry import Point3D, Segment, euclidean, leg_length, point_segment_distance
from indoor_nav.pathfinding import Pathfinder, Route
from indoor_nav.settings import NavigationSettings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class NavigationSession:
    """Mutable per-navigation state; `route` is swapped whole on recalculation."""

    route: Route
    destination_id: str | None
    cursor_index: int = 0
    drifting: bool = False

    @property
    def target(self) -> Point3D:
        return self.route.waypoints[min(self.cursor_index, len(self.route.waypoints) - 1)]


def distance_to_route(route: Route, cursor_index: int, position: Point3D) -> float:
    """Planar distance from `position` to the remaining part of the route.

    Remaining segments start at the one leading into the current target
    waypoint. When none remain, the distance to the last waypoint is used.
    """
    waypoints = route.waypoints
    first = max(cursor_index - 1, 0)
    best = math.inf
    for a, b in zip(waypoints[first:], waypoints[first + 1 :]):
        best = min(best, point_segment_distance(position.x, position.y, Segment(a.x, a.y, b.x, b.y)))
    if best == math.inf:
        best = position.planar_distance_to(waypoints[-1])
    return best


def remaining_distance(route: Route, cursor_index: int, position: Point3D, floor_height: float) -> float:
    """Distance to the target waypoint plus the remaining legs, measured like `Route.total_distance`."""
    waypoints = route.waypoints
    if cursor_index >= len(waypoints):
        return 0.0
    distance = leg_length(position, waypoints[cursor_index], floor_height)
    for a, b in zip(waypoints[cursor_index:], waypoints[cursor_index + 1 :]):
        distance += leg_length(a, b, floor_height)
    return distance


class RouteTracker:
    """Owns the active navigation session.

    Args:
        pathfinder: Used to rebuild the route after drift.
        events: Bus receiving navigation events.
        settings: Arrival radius, drift tolerance and walking speed.
    """

    def __init__(
        self,
        pathfinder: Pathfinder,
        events: EventBus | None = None,
        settings: NavigationSettings | None = None,
    ) -> None:
        self.pathfinder = pathfinder
        self.events = events or EventBus()
        self.settings = settings or pathfinder.settings
        self._lock = threading.RLock()
        self._session: NavigationSession | None = None
        self._recalculating = False

    @property
    def session(self) -> NavigationSession | None:
        with self._lock:
            return self._session

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._session is not None

    def start(self, route: Route, destination_id: str | None = None) -> NavigationSession:
        """Activate `route` with the cursor on its first waypoint."""
        session = NavigationSession(route=route, destination_id=destination_id or route.destination_id)
        with self._lock:
            if self._session is not None:
                logger.info("Replacing active navigation to %s", self._session.destination_id)
            self._session = session
        logger.info("Navigation started to %s (%d waypoints)", session.destination_id, len(route.waypoints))
        self.events.emit(NavigationStarted(destination=session.destination_id, route=route))
        return session

    def stop(self) -> bool:
        """Deactivate the session; returns False when nothing was active."""
        with self._lock:
            session = self._session
            self._session = None
        if session is None:
            return False
        logger.info("Navigation stopped")
        self.events.emit(NavigationStopped())
        return True

    def tick(self, position: Point3D) -> None:
        """Advance the cursor, handle drift and publish progress for one position update."""
        with self._lock:
            session = self._session
            if session is None:
                return

            pending: list[object] = []
            waypoints = session.route.waypoints
            target = waypoints[session.cursor_index]
            if euclidean(position, target) < self.settings.waypoint_arrival_radius:
                session.cursor_index += 1
                if session.cursor_index >= len(waypoints):
                    self._session = None
                    pending.append(DestinationReached(destination=waypoints[-1]))
                else:
                    pending.append(
                        WaypointReached(
                            waypoint=target,
                            next=waypoints[session.cursor_index],
                            progress=session.cursor_index / len(waypoints),
                        )
                    )

            arrived = self._session is None
            recalculate = False
            if not arrived:
                drift = distance_to_route(session.route, session.cursor_index, position)
                if drift > self.settings.route_recalculation_distance:
                    if not session.drifting and not self._recalculating:
                        logger.info("Drift of %.2f units detected; recalculating route", drift)
                        session.drifting = True
                        self._recalculating = True
                        recalculate = True
                else:
                    session.drifting = False

        for event in pending:
            self.events.emit(event)

        if arrived:
            logger.info("Destination reached")
            self.events.emit(NavigationStopped())
            return

        if recalculate:
            try:
                if self.session is session:
                    self._recalculate(session, position)
            finally:
                with self._lock:
                    self._recalculating = False

        with self._lock:
            if self._session is not session:
                return
            route, cursor = session.route, session.cursor_index
            distance = remaining_distance(route, cursor, position, self.pathfinder.building.floor_height)
            update = NavigationUpdate(
                current_position=position,
                next_waypoint=route.waypoints[cursor],
                distance_remaining=distance,
                eta_minutes=int(math.ceil(distance / self.settings.walking_speed)),
            )
        self.events.emit(update)

    def _resolve_destination_id(self, route: Route) -> str:
        destination = self.pathfinder.building.destination_at(route.destination)
        if destination is None:
            final = route.destination
            raise RecalculationFailed(
                f"no destination at ({final.x}, {final.y}) on floor {final.floor}"
            )
        return destination.id

    def _recalculate(self, session: NavigationSession, position: Point3D) -> None:
        # Pathfinding runs without the tracker lock held.
        stale_route = session.route
        try:
            destination_id = self._resolve_destination_id(stale_route)
            new_route = self.pathfinder.route(position, destination_id)
        except (RecalculationFailed, DestinationNotFound) as exc:
            logger.warning("Route recalculation abandoned, keeping current route: %s", exc)
            self.events.emit(RecalculationFailedEvent(reason=str(exc), destination=stale_route.destination))
            return

        with self._lock:
            if self._session is not session or session.route is not stale_route:
                return
            session.route = new_route
            session.cursor_index = 0
        logger.info("Route recalculated: %d waypoints", len(new_route.waypoints))
        self.events.emit(RouteRecalculated(new_route=new_route))
