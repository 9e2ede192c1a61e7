"""In-process facade wiring floor fusion, routing and route tracking together.

Purpose:
- Accept sensor readings and position fixes from the platform layer.
- Keep the live position tagged with the fused floor.
- Start, preview and stop navigation; drive fusion and tracking on `tick()`.

Usage example:
    >>> nav = Navigator(load_building("assets/ryokan_building.json"))
    >>> nav.update_planar_position(0.0, 0.0)
    >>> route = nav.start_navigation("reception")
    >>> nav.tick()
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Any, Iterable

from indoor_nav.building import Building, Destination
from indoor_nav.dead_reckoning import StepDeadReckoner
from indoor_nav.estimates import (
    METHOD_ACCELEROMETER,
    METHOD_BAROMETRIC,
    METHOD_LIGHT,
    METHOD_QRCODE,
    METHOD_WIFI,
    Clock,
    FloorEstimate,
)
from indoor_nav.events import EventBus
from indoor_nav.floor_fusion import QR_CONFIDENCE, FloorFusionEngine, FusionDecision
from indoor_nav.geometry import Point3D
from indoor_nav.pathfinding import Pathfinder, Route
from indoor_nav.route_tracker import RouteTracker
from indoor_nav.sensor_sources import (
    MOVEMENT_CONFIDENCE,
    AltitudeFloorEstimator,
    VerticalMotionIntegrator,
    floor_from_illuminance,
    floor_from_network_quality,
    parse_qr_floor,
)
from indoor_nav.settings import FusionSettings, NavigationSettings

logger = logging.getLogger(__name__)


class Navigator:
    """Single entry point used by the platform layer and the HTTP service.

    Args:
        building: Loaded building configuration.
        fusion_settings: Floor fusion thresholds; defaults when omitted.
        navigation_settings: Routing and tracking parameters; defaults when omitted.
        clock: Monotonic time source shared by every time-dependent component.
        events: Bus receiving floor and navigation events.
    """

    def __init__(
        self,
        building: Building,
        fusion_settings: FusionSettings | None = None,
        navigation_settings: NavigationSettings | None = None,
        clock: Clock = time.monotonic,
        events: EventBus | None = None,
    ) -> None:
        self.building = building
        self.fusion_settings = fusion_settings or FusionSettings()
        self.navigation_settings = navigation_settings or NavigationSettings()
        self.events = events or EventBus()
        self._clock = clock

        self.fusion = FloorFusionEngine(self.fusion_settings, events=self.events, clock=clock)
        self.pathfinder = Pathfinder(building, self.navigation_settings)
        self.tracker = RouteTracker(self.pathfinder, events=self.events, settings=self.navigation_settings)
        self.dead_reckoner = StepDeadReckoner(step_length=self.navigation_settings.step_length)
        self.altimeter = AltitudeFloorEstimator(
            altitude_per_floor=self.fusion_settings.altitude_per_floor,
            base_floor=self.fusion_settings.initial_floor,
        )
        self.motion = VerticalMotionIntegrator(altitude_per_floor=self.fusion_settings.altitude_per_floor)

        self._lock = threading.Lock()
        self._position: Point3D | None = None
        self._destination_id: str | None = None

    # Floor evidence

    def report_floor_estimate(
        self,
        method: str,
        floor: int,
        confidence: float,
        timestamp: float | None = None,
    ) -> FloorEstimate:
        return self.fusion.report_estimate(method, floor, confidence, timestamp)

    def set_manual_floor(self, floor: int) -> FusionDecision:
        decision = self.fusion.set_manual_floor(floor)
        if decision.changed:
            self._follow_floor(decision.floor)
        return decision

    def report_qr_scan(self, payload: str) -> int | None:
        """Report the floor tag of a scanned QR payload; returns the floor or None."""
        floor = parse_qr_floor(payload)
        if floor is None:
            logger.debug("QR payload carries no floor tag: %r", payload)
            return None
        logger.info("QR code reports floor %s", floor)
        self.fusion.report_estimate(METHOD_QRCODE, floor, QR_CONFIDENCE)
        return floor

    def calibrate_altitude(self, samples: Iterable[float]) -> float:
        """Set the barometric baseline on the initial floor; returns the baseline altitude."""
        baseline = self.altimeter.calibrate(samples)
        logger.info("Altitude baseline calibrated at %.2f", baseline)
        return baseline

    def report_altitude(self, altitude: float, accuracy: float | None = None) -> FloorEstimate | None:
        reading = self.altimeter.estimate(altitude, accuracy)
        if reading is None:
            logger.debug("Altitude ignored: no baseline calibrated")
            return None
        floor, confidence = reading
        return self.fusion.report_estimate(METHOD_BAROMETRIC, floor, confidence)

    def report_network_quality(self, downlink: float, rtt: float) -> FloorEstimate | None:
        reading = floor_from_network_quality(downlink, rtt)
        if reading is None:
            return None
        return self.fusion.report_estimate(METHOD_WIFI, *reading)

    def report_illuminance(self, lux: float) -> FloorEstimate:
        return self.fusion.report_estimate(METHOD_LIGHT, *floor_from_illuminance(lux))

    def report_vertical_acceleration(self, vertical_acceleration: float) -> FloorEstimate | None:
        """Feed one accelerometer sample; reports a movement estimate on a detected floor change."""
        change = self.motion.feed(vertical_acceleration)
        if change == 0:
            return None
        floor = self.fusion.current_floor + change
        if not self.fusion_settings.is_plausible(floor):
            logger.debug("Ignoring implausible movement estimate for floor %s", floor)
            return None
        return self.fusion.report_estimate(METHOD_ACCELEROMETER, floor, MOVEMENT_CONFIDENCE)

    def current_floor(self) -> int:
        return self.fusion.current_floor

    # Position

    @property
    def position(self) -> Point3D | None:
        with self._lock:
            return self._position

    def update_position(self, point: Point3D) -> None:
        """Absolute fix including floor; dead reckoning is re-anchored on it."""
        self.dead_reckoner.set_position(point.x, point.y)
        with self._lock:
            self._position = point

    def update_planar_position(self, x: float, y: float) -> Point3D:
        """Planar fix tagged with the fused floor."""
        self.dead_reckoner.set_position(x, y)
        return self._refresh_position()

    def report_steps(self, step_count: int, heading_deg: float) -> Point3D:
        self.dead_reckoner.apply_steps(step_count, heading_deg)
        return self._refresh_position()

    # Navigation

    def list_destinations(self, floor: int | None = None) -> list[Destination]:
        return self.building.list_destinations(floor)

    def set_destination(self, destination_id: str) -> Destination:
        """Select the destination used by `start_navigation()` without an explicit id.

        Raises:
            DestinationNotFound: If the id is not in the catalog.
        """
        destination = self.building.find_destination(destination_id)
        with self._lock:
            self._destination_id = destination.id
        return destination

    def preview_route(self, destination_id: str | None = None, start: Point3D | None = None) -> Route:
        """Compute a route without starting navigation."""
        destination_id, start = self._resolve_request(destination_id, start)
        return self.pathfinder.route(start, destination_id)

    def start_navigation(self, destination_id: str | None = None, start: Point3D | None = None) -> Route:
        """Route from `start` (default: live position) and hand the route to the tracker.

        Raises:
            DestinationNotFound: If the destination id is unknown.
            ValueError: If no destination was given or selected, or the position is unknown.
        """
        destination_id, start = self._resolve_request(destination_id, start)
        route = self.pathfinder.route(start, destination_id)
        with self._lock:
            self._destination_id = destination_id
        self.tracker.start(route, destination_id)
        return route

    def stop_navigation(self) -> bool:
        return self.tracker.stop()

    def tick(self) -> FusionDecision | None:
        """Run one fusion pass, then one tracking step at the live position."""
        decision = self.fusion.decide()
        if decision is not None and decision.changed:
            self._follow_floor(decision.floor)

        position = self.position
        if position is not None and self.tracker.is_active:
            self.tracker.tick(position)
        return decision

    async def run(self, interval: float | None = None, iterations: int | None = None) -> None:
        """Cooperative update loop calling `tick()` every `interval` seconds.

        Runs until cancelled, or for `iterations` ticks when given.
        """
        interval = self.navigation_settings.tick_interval_seconds if interval is None else float(interval)
        if interval <= 0:
            raise ValueError("interval must be > 0")

        count = 0
        while iterations is None or count < iterations:
            self.tick()
            count += 1
            await asyncio.sleep(interval)

    def debug_info(self) -> dict[str, Any]:
        session = self.tracker.session
        position = self.position
        with self._lock:
            destination_id = self._destination_id
        return {
            "floor": self.fusion.sensor_status(),
            "position": None
            if position is None
            else {"x": position.x, "y": position.y, "z": position.z, "floor": position.floor},
            "destination_id": destination_id,
            "navigation": None
            if session is None
            else {
                "destination_id": session.destination_id,
                "cursor_index": session.cursor_index,
                "waypoints": len(session.route.waypoints),
                "drifting": session.drifting,
                "degraded": session.route.degraded,
            },
            "dead_reckoning": {
                "steps_taken": self.dead_reckoner.steps_taken,
                "step_length": self.dead_reckoner.step_length,
            },
            "altitude_baseline": self.altimeter.baseline,
            "floors": self.building.floors,
        }

    def _resolve_request(self, destination_id: str | None, start: Point3D | None) -> tuple[str, Point3D]:
        with self._lock:
            destination_id = destination_id or self._destination_id
            if start is None:
                start = self._position
        if not destination_id:
            raise ValueError("No destination selected")
        if start is None:
            raise ValueError("Current position is unknown")
        return destination_id, start

    def _refresh_position(self) -> Point3D:
        floor = self.fusion.current_floor
        point = self.dead_reckoner.position(floor, self.building.elevation(floor))
        with self._lock:
            self._position = point
        return point

    def _follow_floor(self, floor: int) -> None:
        # Keep the known planar position; move it onto the newly fused floor.
        with self._lock:
            if self._position is None:
                return
            self._position = Point3D(self._position.x, self._position.y, self.building.elevation(floor), floor)
