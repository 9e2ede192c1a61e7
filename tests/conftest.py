"""Pytest global fixtures and test isolation hooks."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from indoor_nav.api import STATE
from indoor_nav.building import Building, building_from_dict, load_building

RYOKAN_PATH = Path(__file__).resolve().parents[1] / "assets" / "ryokan_building.json"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture(autouse=True)
def reset_service_state() -> None:
    """Reset in-memory API state before each test."""
    STATE.navigator = None
    STATE.validation = None
    STATE.building_source = None


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def ryokan_path() -> Path:
    return RYOKAN_PATH


@pytest.fixture()
def ryokan() -> Building:
    """Bundled three-floor sample building."""
    return load_building(RYOKAN_PATH)


def _open_floor_document() -> dict[str, Any]:
    """Single 60x40 floor with only outer walls."""
    return {
        "floor_height": 3.5,
        "floors": [
            {
                "floor": 1,
                "elevation": 0,
                "walls": [
                    {"x1": -10, "y1": -20, "x2": 50, "y2": -20},
                    {"x1": -10, "y1": 20, "x2": 50, "y2": 20},
                    {"x1": -10, "y1": -20, "x2": -10, "y2": 20},
                    {"x1": 50, "y1": -20, "x2": 50, "y2": 20},
                ],
            }
        ],
        "destinations": [{"id": "goal", "x": 30, "y": 0, "z": 0, "floor": 1, "name": "Goal"}],
    }


@pytest.fixture()
def open_floor() -> Building:
    return building_from_dict(_open_floor_document())


@pytest.fixture()
def partition_building() -> Building:
    """One floor split by a wall at x=20 that ends at y=15."""
    return building_from_dict(
        {
            "floor_height": 3.5,
            "floors": [
                {
                    "floor": 1,
                    "elevation": 0,
                    "walls": [
                        {"x1": -5, "y1": -5, "x2": 45, "y2": -5},
                        {"x1": -5, "y1": 25, "x2": 45, "y2": 25},
                        {"x1": -5, "y1": -5, "x2": -5, "y2": 25},
                        {"x1": 45, "y1": -5, "x2": 45, "y2": 25},
                        {"x1": 20, "y1": -5, "x2": 20, "y2": 15},
                    ],
                }
            ],
            "destinations": [
                {"id": "west", "x": 10, "y": 0, "floor": 1},
                {"id": "east", "x": 30, "y": 0, "floor": 1},
            ],
        }
    )
