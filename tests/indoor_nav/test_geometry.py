"""Unit tests for indoor_nav.geometry."""

from __future__ import annotations

import math

import numpy as np
import pytest

from indoor_nav.geometry import (
    FloorPlan,
    Point3D,
    Room,
    Segment,
    euclidean,
    leg_length,
    point_on_segment,
    point_segment_distance,
    segment_distance,
)


def test_point_distances_use_z_only_in_3d() -> None:
    """3D distance includes elevation, planar distance ignores it."""
    a = Point3D(0.0, 0.0, 0.0, 1)
    b = Point3D(3.0, 4.0, 12.0, 2)

    assert euclidean(a, b) == pytest.approx(13.0)
    assert a.planar_distance_to(b) == pytest.approx(5.0)


def test_point_on_segment_respects_buffer_and_extent() -> None:
    """Points near the wall line count only between the wall endpoints."""
    wall = Segment(0.0, 0.0, 10.0, 0.0)

    assert point_on_segment(5.0, 0.4, wall, buffer=0.5)
    assert point_on_segment(5.0, 0.5, wall, buffer=0.5)
    assert not point_on_segment(5.0, 0.6, wall, buffer=0.5)
    assert not point_on_segment(10.4, 0.0, wall, buffer=0.5)
    assert not point_on_segment(-0.1, 0.0, wall, buffer=0.5)


def test_segment_distance_clamps_to_endpoints() -> None:
    """Projection beyond an endpoint measures to that endpoint."""
    assert segment_distance(5.0, 3.0, 0.0, 0.0, 10.0, 0.0) == pytest.approx(3.0)
    assert segment_distance(13.0, 4.0, 0.0, 0.0, 10.0, 0.0) == pytest.approx(5.0)
    assert segment_distance(1.0, 1.0, 0.0, 0.0, 0.0, 0.0) == pytest.approx(math.sqrt(2))
    assert point_segment_distance(13.0, 4.0, Segment(0.0, 0.0, 10.0, 0.0)) == pytest.approx(5.0)


def test_leg_length_charges_floor_height_per_level() -> None:
    """Same-floor legs are 3D lines; floor changes climb floor_height per level."""
    a = Point3D(0.0, 0.0, 0.0, 1)

    assert leg_length(a, Point3D(3.0, 4.0, 0.0, 1), 3.5) == pytest.approx(5.0)
    assert leg_length(a, Point3D(0.0, 0.0, 3.5, 2), 3.5) == pytest.approx(3.5)
    assert leg_length(Point3D(0.0, 0.0, -3.5, -1), a, 3.5) == pytest.approx(7.0)
    assert leg_length(a, Point3D(5.0, 0.0, 99.0, 2), 12.0) == pytest.approx(13.0)


def test_room_bounds_are_inclusive() -> None:
    room = Room("hall", 2.0, 2.0, 4.0, 3.0)

    assert room.contains(2.0, 2.0)
    assert room.contains(6.0, 5.0)
    assert not room.contains(6.01, 5.0)


def test_floor_plan_walkability() -> None:
    """Walls with buffer and rooms are blocked; open space is walkable."""
    plan = FloorPlan(
        floor=1,
        walls=(Segment(0.0, 0.0, 30.0, 0.0),),
        rooms=(Room("office", 10.0, 5.0, 5.0, 5.0),),
    )

    assert plan.is_walkable(5.0, 3.0)
    assert not plan.is_walkable(5.0, 0.2)
    assert not plan.is_walkable(12.0, 7.0)
    assert plan.is_walkable(12.0, 11.0)


def test_walkable_mask_matches_scalar_queries() -> None:
    """Vectorized mask agrees with point-by-point checks."""
    plan = FloorPlan(
        floor=1,
        walls=(Segment(0.0, 0.0, 10.0, 0.0), Segment(5.0, -5.0, 5.0, 5.0), Segment(2.0, 2.0, 2.0, 2.0)),
        rooms=(Room("box", 6.0, 1.0, 2.0, 2.0),),
    )
    xs, ys = np.meshgrid(np.arange(-2.0, 12.0, 0.5), np.arange(-6.0, 6.0, 0.5))

    mask = plan.walkable_mask(xs, ys)
    expected = np.array(
        [[plan.is_walkable(float(x), float(y)) for x, y in zip(row_x, row_y)] for row_x, row_y in zip(xs, ys)]
    )

    assert mask.shape == xs.shape
    assert np.array_equal(mask, expected)


def test_walkable_mask_rejects_mismatched_shapes() -> None:
    plan = FloorPlan(floor=1)
    with pytest.raises(ValueError, match="same shape"):
        plan.walkable_mask(np.zeros(3), np.zeros(4))


def test_bounds_and_room_lookup() -> None:
    plan = FloorPlan(
        floor=1,
        walls=(Segment(-5.0, -2.0, 40.0, -2.0),),
        rooms=(Room("lounge", 13.0, 11.0, 6.0, 4.0),),
        doors=((0.0, 22.0),),
    )

    assert plan.bounds() == (-5.0, -2.0, 40.0, 22.0)
    assert plan.room_at(14.0, 12.0).id == "lounge"
    assert plan.room_at(0.0, 0.0) is None
    assert FloorPlan(floor=2).bounds() is None


def test_negative_wall_buffer_raises() -> None:
    with pytest.raises(ValueError, match="wall_buffer"):
        FloorPlan(floor=1, wall_buffer=-0.1)
