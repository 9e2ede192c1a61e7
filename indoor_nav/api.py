"""FastAPI routes exposing floor fusion and indoor navigation over HTTP.

The service mirrors the in-process `Navigator` boundary:
- Building loading (`/building`) and destination catalog (`/destinations`).
- Floor evidence (`/floor-estimates`, `/floor/manual`, `/floor/qr`) and the
  fused floor (`/floor`).
- Position fixes (`/position`), route previews (`/route`) and navigation
  lifecycle (`/navigation/*`, `/tick`, `/events`).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from dataclasses import dataclass
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, model_validator

from indoor_nav.building import Building, building_from_dict, load_building
from indoor_nav.errors import DestinationNotFound
from indoor_nav.floor_plan_validation import validate_building
from indoor_nav.geometry import Point3D
from indoor_nav.navigator import Navigator
from indoor_nav.settings import FusionSettings, NavigationSettings
from indoor_nav.utils import destination_to_dict, event_to_dict, floor_label, point_to_dict, route_to_dict

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


@dataclass
class ServiceState:
    """In-memory state for the loaded building and its navigator."""

    navigator: Navigator | None = None
    validation: dict[str, Any] | None = None
    building_source: str | None = None


STATE = ServiceState()


class WorldPoint(BaseModel):
    """Building coordinate; `z` defaults to the floor elevation when omitted."""

    x: float
    y: float
    z: float | None = None
    floor: int


class BuildingRequest(BaseModel):
    """Load a building from a JSON file path or an inline document."""

    path: str | None = None
    building: dict[str, Any] | None = None

    @model_validator(mode="after")
    def validate_source(self) -> "BuildingRequest":
        if (self.path is None) == (self.building is None):
            raise ValueError("Provide exactly one of path or building")
        return self


class FloorEstimateRequest(BaseModel):
    method: str = Field(..., min_length=1)
    floor: int
    confidence: float = Field(..., ge=0.0, le=1.0)


class ManualFloorRequest(BaseModel):
    floor: int


class QrScanRequest(BaseModel):
    payload: str


class PositionRequest(BaseModel):
    """Position update.

    Provide either:
    - x + y (optionally z and floor; without floor the fused floor is used), or
    - steps + heading_deg for a dead-reckoning update.
    """

    x: float | None = None
    y: float | None = None
    z: float | None = None
    floor: int | None = None
    steps: int | None = Field(default=None, ge=0)
    heading_deg: float | None = None

    @model_validator(mode="after")
    def validate_inputs(self) -> "PositionRequest":
        has_fix = self.x is not None and self.y is not None
        has_steps = self.steps is not None and self.heading_deg is not None
        if has_fix == has_steps:
            raise ValueError("Provide either x/y coordinates or steps/heading_deg")
        return self


class RouteRequest(BaseModel):
    destination_id: str | None = None
    start: WorldPoint | None = None


def _navigator_or_400() -> Navigator:
    """Get the active navigator or raise 400."""
    if STATE.navigator is None:
        raise HTTPException(status_code=400, detail="No building loaded yet")
    return STATE.navigator


def _to_point(navigator: Navigator, point: WorldPoint) -> Point3D:
    z = navigator.building.elevation(point.floor) if point.z is None else point.z
    return Point3D(point.x, point.y, z, point.floor)


def install_building(building: Building, source: str) -> Navigator:
    """Replace the served building and start from a fresh navigator."""
    navigator = Navigator(
        building,
        fusion_settings=FusionSettings.from_env(),
        navigation_settings=NavigationSettings.from_env(),
    )
    report = validate_building(building)
    if not report["ok"]:
        logger.warning("Building %s failed validation with %d errors", source, report["summary"]["errors"])

    STATE.navigator = navigator
    STATE.validation = report
    STATE.building_source = source
    logger.info("Loaded building %s: floors %s, %d destinations", source, building.floors, len(building.destinations))
    return navigator


def _navigation_payload(navigator: Navigator) -> dict[str, Any]:
    session = navigator.tracker.session
    position = navigator.position
    payload: dict[str, Any] = {
        "active": session is not None,
        "position": None if position is None else point_to_dict(position),
        "destination_id": None,
        "cursor_index": None,
        "route": None,
    }
    if session is not None:
        payload.update(
            destination_id=session.destination_id,
            cursor_index=session.cursor_index,
            route=route_to_dict(session.route),
        )
    return payload


async def _auto_tick(interval: float) -> None:
    while True:
        navigator = STATE.navigator
        if navigator is not None:
            navigator.tick()
        await asyncio.sleep(interval)


def create_app(building_path: str | None = None, auto_tick: bool = False) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        building_path: Building JSON loaded at startup when given.
        auto_tick: Run fusion and tracking in a background loop instead of
            waiting for `POST /tick`.
    """
    if building_path:
        install_building(
            load_building(building_path, wall_buffer=NavigationSettings.from_env().wall_buffer),
            building_path,
        )

    @contextlib.asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        task: asyncio.Task[None] | None = None
        if auto_tick:
            interval = NavigationSettings.from_env().tick_interval_seconds
            task = asyncio.create_task(_auto_tick(interval))
            logger.info("Auto tick enabled every %.2fs", interval)
        try:
            yield
        finally:
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    app = FastAPI(title="Indoor Navigation API", version=API_VERSION, lifespan=lifespan)

    raw_origins = os.getenv("INDOOR_NAV_CORS_ORIGINS", "*").strip()
    if raw_origins == "*":
        cors_origins = ["*"]
        allow_credentials = False
    else:
        cors_origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]
        allow_credentials = True

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> dict[str, Any]:
        navigator = STATE.navigator
        return {
            "status": "ok",
            "version": app.version,
            "building_loaded": navigator is not None,
            "building_source": STATE.building_source,
            "navigating": navigator is not None and navigator.tracker.is_active,
        }

    @app.post("/building")
    async def post_building(request: BuildingRequest) -> dict[str, Any]:
        """Load a building and reset floor and navigation state."""
        wall_buffer = NavigationSettings.from_env().wall_buffer
        try:
            if request.path is not None:
                building = load_building(request.path, wall_buffer=wall_buffer)
                source = request.path
            else:
                building = building_from_dict(request.building or {}, wall_buffer=wall_buffer)
                source = "inline"
        except FileNotFoundError as exc:
            raise HTTPException(status_code=400, detail=f"Building file not found: {request.path}") from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Building loading failed: {exc}") from exc

        install_building(building, source)
        return {
            "floors": building.floors,
            "destinations": len(building.destinations),
            "connectors": len(building.connectors),
            "validation": STATE.validation,
        }

    @app.get("/destinations")
    async def get_destinations(floor: int | None = Query(default=None)) -> dict[str, Any]:
        navigator = _navigator_or_400()
        return {"destinations": [destination_to_dict(d) for d in navigator.list_destinations(floor)]}

    @app.get("/floor")
    async def get_floor() -> dict[str, Any]:
        """Return the fused floor and the state of the trust windows."""
        navigator = _navigator_or_400()
        floor, confidence = navigator.fusion.current()
        return {
            "floor": floor,
            "label": floor_label(floor),
            "confidence": confidence,
            "status": navigator.fusion.sensor_status(),
        }

    @app.post("/floor-estimates")
    async def post_floor_estimate(request: FloorEstimateRequest) -> dict[str, Any]:
        navigator = _navigator_or_400()
        try:
            estimate = navigator.report_floor_estimate(request.method, request.floor, request.confidence)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Invalid floor estimate: {exc}") from exc
        return {
            "method": estimate.method,
            "floor": estimate.floor,
            "confidence": estimate.confidence,
            "timestamp": estimate.timestamp,
        }

    @app.post("/floor/manual")
    async def post_manual_floor(request: ManualFloorRequest) -> dict[str, Any]:
        navigator = _navigator_or_400()
        decision = navigator.set_manual_floor(request.floor)
        return {
            "floor": decision.floor,
            "label": floor_label(decision.floor),
            "confidence": decision.confidence,
            "method": decision.method,
            "changed": decision.changed,
        }

    @app.post("/floor/qr")
    async def post_qr_scan(request: QrScanRequest) -> dict[str, Any]:
        navigator = _navigator_or_400()
        floor = navigator.report_qr_scan(request.payload)
        return {"accepted": floor is not None, "floor": floor}

    @app.post("/position")
    async def post_position(request: PositionRequest) -> dict[str, Any]:
        navigator = _navigator_or_400()
        try:
            if request.steps is not None and request.heading_deg is not None:
                point = navigator.report_steps(request.steps, request.heading_deg)
            elif request.floor is not None:
                point = _to_point(
                    navigator,
                    WorldPoint(x=request.x, y=request.y, z=request.z, floor=request.floor),
                )
                navigator.update_position(point)
            else:
                point = navigator.update_planar_position(request.x, request.y)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Invalid position: {exc}") from exc
        return {"position": point_to_dict(point)}

    @app.post("/route")
    async def post_route(request: RouteRequest) -> dict[str, Any]:
        """Preview a route without starting navigation."""
        navigator = _navigator_or_400()
        start = None if request.start is None else _to_point(navigator, request.start)
        try:
            route = navigator.preview_route(request.destination_id, start)
        except DestinationNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Invalid route query: {exc}") from exc
        return route_to_dict(route)

    @app.post("/navigation/start")
    async def post_navigation_start(request: RouteRequest) -> dict[str, Any]:
        navigator = _navigator_or_400()
        start = None if request.start is None else _to_point(navigator, request.start)
        try:
            route = navigator.start_navigation(request.destination_id, start)
        except DestinationNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Cannot start navigation: {exc}") from exc
        return route_to_dict(route)

    @app.post("/navigation/stop")
    async def post_navigation_stop() -> dict[str, Any]:
        navigator = _navigator_or_400()
        return {"stopped": navigator.stop_navigation()}

    @app.get("/navigation")
    async def get_navigation() -> dict[str, Any]:
        return _navigation_payload(_navigator_or_400())

    @app.post("/tick")
    async def post_tick() -> dict[str, Any]:
        """Run one fusion and tracking step."""
        navigator = _navigator_or_400()
        decision = navigator.tick()
        floor, confidence = navigator.fusion.current()
        return {
            "floor": floor,
            "confidence": confidence,
            "floor_changed": decision is not None and decision.changed,
            "navigation": _navigation_payload(navigator),
        }

    @app.get("/events")
    async def get_events() -> dict[str, Any]:
        """Drain queued navigation and floor events, oldest first."""
        navigator = _navigator_or_400()
        return {"events": [event_to_dict(event) for event in navigator.events.drain()]}

    return app
