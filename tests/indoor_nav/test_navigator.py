"""Unit tests for indoor_nav.navigator."""

from __future__ import annotations

import asyncio
import math

import pytest

from indoor_nav.building import Building, building_from_dict
from indoor_nav.errors import DestinationNotFound
from indoor_nav.events import (
    DestinationReached,
    FloorChanged,
    NavigationStarted,
    NavigationStopped,
    NavigationUpdate,
    WaypointReached,
)
from indoor_nav.geometry import Point3D
from indoor_nav.navigator import Navigator
from indoor_nav.pathfinding import path_length
from indoor_nav.sensor_sources import GRAVITY


@pytest.fixture()
def nav(ryokan: Building, clock) -> Navigator:
    return Navigator(ryokan, clock=clock)


def test_planar_position_is_tagged_with_fused_floor(nav: Navigator) -> None:
    assert nav.update_planar_position(3.0, 4.0) == Point3D(3.0, 4.0, 0.0, 1)

    nav.set_manual_floor(2)

    assert nav.position == Point3D(3.0, 4.0, 3.5, 2)
    point = nav.report_steps(2, 90.0)
    assert point == nav.position
    assert (point.x, point.y) == pytest.approx((4.4, 4.0))
    assert (point.z, point.floor) == (3.5, 2)


def test_navigation_to_reception_end_to_end(nav: Navigator) -> None:
    """Walk from the entrance to reception and receive the arrival events."""
    nav.update_planar_position(0.0, 0.0)

    route = nav.start_navigation("reception")

    assert route.total_distance == pytest.approx(math.sqrt(125))
    assert route.estimated_time_minutes == 1

    nav.tick()
    nav.update_planar_position(9.0, 4.0)
    nav.tick()

    kinds = [type(e) for e in nav.events.drain()]
    assert kinds[0] is NavigationStarted
    assert kinds.count(DestinationReached) == 1
    assert kinds[-1] is NavigationStopped
    assert not nav.tracker.is_active


def test_start_navigation_validates_inputs(nav: Navigator) -> None:
    with pytest.raises(ValueError, match="No destination selected"):
        nav.start_navigation()
    with pytest.raises(ValueError, match="position is unknown"):
        nav.start_navigation("reception")

    nav.update_planar_position(0.0, 0.0)
    with pytest.raises(DestinationNotFound):
        nav.start_navigation("spa")
    assert not nav.tracker.is_active


def test_selected_destination_is_used_by_default(nav: Navigator) -> None:
    nav.update_position(Point3D(0.0, 0.0, 0.0, 1))

    assert nav.set_destination("lounge").display_name == "Lounge"
    preview = nav.preview_route()

    assert preview.destination_id == "lounge"
    assert not nav.tracker.is_active
    assert nav.start_navigation().destination_id == "lounge"
    assert nav.tracker.is_active
    assert nav.stop_navigation() is True


def test_qr_scan_switches_floor_on_tick(nav: Navigator) -> None:
    nav.update_planar_position(5.0, -10.0)

    assert nav.report_qr_scan("https://ryokan.example/qr?loc=floor_B1") == -1
    assert nav.report_qr_scan("welcome") is None
    decision = nav.tick()

    assert (decision.floor, decision.method) == (-1, "qrcode")
    assert nav.current_floor() == -1
    assert nav.position == Point3D(5.0, -10.0, -3.5, -1)
    assert any(isinstance(e, FloorChanged) for e in nav.events.drain())


def test_barometric_and_network_evidence_feed_fusion(nav: Navigator, clock) -> None:
    assert nav.report_altitude(50.0) is None

    nav.calibrate_altitude([50.0, 50.0])
    for _ in range(2):
        estimate = nav.report_altitude(57.0, accuracy=2.0)
    nav.report_network_quality(6.0, 80.0)

    assert (estimate.method, estimate.floor, estimate.confidence) == ("barometric", 3, 0.8)
    assert nav.report_network_quality(4.0, 120.0) is None
    assert nav.report_illuminance(50.0).floor == -1
    assert nav.tick() is None

    nav.report_altitude(57.0, accuracy=2.0)
    decision = nav.tick()
    assert (decision.floor, decision.method) == (3, "composite")


def test_vertical_motion_reports_plausible_floors_only(nav: Navigator) -> None:
    estimate = nav.report_vertical_acceleration(GRAVITY + 400.0)
    assert (estimate.method, estimate.floor, estimate.confidence) == ("accelerometer", 2, 0.6)

    nav.set_manual_floor(3)
    nav.motion.reset()
    assert nav.report_vertical_acceleration(GRAVITY + 400.0) is None
    assert nav.report_vertical_acceleration(GRAVITY) is None


def test_run_loop_ticks_at_interval(nav: Navigator) -> None:
    for _ in range(3):
        nav.report_floor_estimate("barometric", 2, 1.0)

    asyncio.run(nav.run(interval=0.001, iterations=2))

    assert nav.current_floor() == 2
    with pytest.raises(ValueError, match="interval"):
        asyncio.run(nav.run(interval=0.0, iterations=1))


def test_debug_info_snapshot(nav: Navigator) -> None:
    nav.update_planar_position(0.0, 0.0)
    nav.start_navigation("reception")

    info = nav.debug_info()

    assert info["floor"]["floor"] == 1
    assert info["position"] == {"x": 0.0, "y": 0.0, "z": 0.0, "floor": 1}
    assert info["destination_id"] == "reception"
    assert info["navigation"]["waypoints"] == 2
    assert info["navigation"]["degraded"] is False
    assert info["floors"] == [-1, 1, 2]
    assert info["altitude_baseline"] is None


def test_destinations_without_z_sit_on_floor_elevation(clock) -> None:
    """Default heights put destinations level with the walker, so arrival fires."""
    building = building_from_dict(
        {"floors": [{"floor": 1, "walls": []}], "destinations": [{"id": "desk", "x": 10, "y": 0, "floor": 1}]}
    )
    nav = Navigator(building, clock=clock)
    nav.update_planar_position(0.0, 0.0)

    route = nav.start_navigation("desk")

    assert route.waypoints == (Point3D(0.0, 0.0, 3.5, 1), Point3D(10.0, 0.0, 3.5, 1))
    assert route.total_distance == pytest.approx(10.0)

    nav.tick()
    nav.update_planar_position(10.0, 0.0)
    nav.tick()

    reached = [e for e in nav.events.drain() if isinstance(e, DestinationReached)]
    assert [e.destination for e in reached] == [Point3D(10.0, 0.0, 3.5, 1)]
    assert not nav.tracker.is_active


def test_remaining_distance_matches_cross_floor_route(nav: Navigator, ryokan: Building) -> None:
    """The first update from the start reports the full route length, elevator included."""
    start = Point3D(5.0, -10.0, -3.5, -1)
    nav.update_position(start)

    route = nav.start_navigation("reception")
    nav.tick()

    updates = [e for e in nav.events.drain() if isinstance(e, NavigationUpdate)]
    assert route.floors_traversed == (-1, 1)
    assert route.total_distance == pytest.approx(path_length(route.waypoints, ryokan.floor_height))
    assert updates[0].distance_remaining == pytest.approx(route.total_distance)


def test_walk_through_elevator_to_upper_floor(nav: Navigator, ryokan: Building) -> None:
    """Board on 1F, let the fused floor switch to 2F, then arrive on 2F."""
    nav.update_planar_position(0.0, 0.0)
    nav.start_navigation("onsen_entrance")
    nav.tick()

    nav.update_planar_position(20.0, 2.0)
    nav.tick()
    assert nav.tracker.session.cursor_index == 2

    nav.report_qr_scan("lobby-lift floor_2")
    nav.tick()
    assert nav.position == Point3D(20.0, 2.0, 3.5, 2)
    assert nav.tracker.session.cursor_index == 3

    nav.update_planar_position(29.0, 9.0)
    nav.tick()

    events = nav.events.drain()
    assert sum(isinstance(e, WaypointReached) for e in events) == 3
    assert [(e.old_floor, e.new_floor) for e in events if isinstance(e, FloorChanged)] == [(1, 2)]
    reached = [e for e in events if isinstance(e, DestinationReached)]
    assert [e.destination for e in reached] == [ryokan.find_destination("onsen_entrance").point]
    assert isinstance(events[-1], NavigationStopped)
    assert not nav.tracker.is_active
