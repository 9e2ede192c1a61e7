"""Navigation events and the observer bus that delivers them.

Presentation collaborators (AR renderer, audio announcer, UI) either register
a typed listener per event class or poll the bus queue:

    >>> bus = EventBus()
    >>> unsubscribe = bus.subscribe(FloorChanged, print)
    >>> bus.drain()
    []
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, TypeVar

from indoor_nav.geometry import Point3D
from indoor_nav.pathfinding import Route

logger = logging.getLogger(__name__)

E = TypeVar("E")
Listener = Callable[[Any], None]


@dataclass(frozen=True, slots=True)
class FloorChanged:
    kind: ClassVar[str] = "floorChanged"

    old_floor: int
    new_floor: int
    confidence: float
    method: str
    timestamp: float


@dataclass(frozen=True, slots=True)
class NavigationStarted:
    kind: ClassVar[str] = "navigationStart"

    destination: str | None
    route: Route


@dataclass(frozen=True, slots=True)
class WaypointReached:
    kind: ClassVar[str] = "waypointReached"

    waypoint: Point3D
    next: Point3D
    progress: float


@dataclass(frozen=True, slots=True)
class DestinationReached:
    kind: ClassVar[str] = "destinationReached"

    destination: Point3D


@dataclass(frozen=True, slots=True)
class RouteRecalculated:
    kind: ClassVar[str] = "routeRecalculated"

    new_route: Route


@dataclass(frozen=True, slots=True)
class RecalculationFailed:
    """Warning event: drift was detected but the route could not be rebuilt."""

    kind: ClassVar[str] = "recalculationFailed"

    reason: str
    destination: Point3D


@dataclass(frozen=True, slots=True)
class NavigationUpdate:
    kind: ClassVar[str] = "navigationUpdate"

    current_position: Point3D
    next_waypoint: Point3D
    distance_remaining: float
    eta_minutes: int


@dataclass(frozen=True, slots=True)
class NavigationStopped:
    kind: ClassVar[str] = "navigationStop"


EVENT_TYPES: tuple[type, ...] = (
    FloorChanged,
    NavigationStarted,
    WaypointReached,
    DestinationReached,
    RouteRecalculated,
    RecalculationFailed,
    NavigationUpdate,
    NavigationStopped,
)


class EventBus:
    """Typed listener registry plus a bounded queue for polling consumers."""

    def __init__(self, history_size: int = 256) -> None:
        if history_size <= 0:
            raise ValueError("history_size must be > 0")
        self._lock = threading.Lock()
        self._listeners: dict[type, list[Listener]] = {}
        self._queue: deque[Any] = deque(maxlen=history_size)

    def subscribe(self, event_type: type[E], listener: Callable[[E], None]) -> Callable[[], None]:
        """Register `listener` for one event class; returns an unsubscribe callable."""
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type!r}")

        with self._lock:
            self._listeners.setdefault(event_type, []).append(listener)

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(event_type, [])
                if listener in listeners:
                    listeners.remove(listener)

        return unsubscribe

    def emit(self, event: Any) -> None:
        """Queue `event` and call its listeners outside the registry lock."""
        with self._lock:
            self._queue.append(event)
            listeners = list(self._listeners.get(type(event), ()))

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Listener %r failed while handling %s", listener, event.kind)

    def drain(self) -> list[Any]:
        """Pop every queued event, oldest first."""
        with self._lock:
            events = list(self._queue)
            self._queue.clear()
        return events
