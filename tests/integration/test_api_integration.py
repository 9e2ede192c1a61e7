"""Integration tests for building loading, floor fusion and navigation endpoints."""

from __future__ import annotations

import math
from pathlib import Path

from fastapi.testclient import TestClient

from indoor_nav.api import STATE, create_app


def _client_with_ryokan(ryokan_path: Path) -> TestClient:
    client = TestClient(create_app())
    res = client.post("/building", json={"path": str(ryokan_path)})
    assert res.status_code == 200
    return client


def test_load_building_and_list_destinations(ryokan_path: Path) -> None:
    """POST /building should report the floors and populate the catalog."""
    client = TestClient(create_app())
    res = client.post("/building", json={"path": str(ryokan_path)})

    assert res.status_code == 200
    body = res.json()
    assert body["floors"] == [-1, 1, 2]
    assert body["destinations"] == 19
    assert body["validation"]["ok"] is True
    assert STATE.navigator is not None

    all_items = client.get("/destinations").json()["destinations"]
    assert len(all_items) == 19
    assert len(client.get("/destinations", params={"floor": 1}).json()["destinations"]) == 8
    assert len(client.get("/destinations", params={"floor": 2}).json()["destinations"]) == 7

    basement = client.get("/destinations", params={"floor": -1}).json()["destinations"]
    assert len(basement) == 4
    assert {item["floor_label"] for item in basement} == {"B1"}

    health = client.get("/health").json()
    assert health["building_loaded"] is True
    assert health["building_source"] == str(ryokan_path)


def test_route_preview_and_unknown_destination(ryokan_path: Path) -> None:
    client = _client_with_ryokan(ryokan_path)

    position = client.post("/position", json={"x": 0.0, "y": 0.0}).json()["position"]
    assert position == {"x": 0.0, "y": 0.0, "z": 0.0, "floor": 1}

    res = client.post("/route", json={"destination_id": "reception"})
    assert res.status_code == 200
    route = res.json()
    assert math.isclose(route["total_distance"], math.sqrt(125), rel_tol=1e-9)
    assert route["estimated_time_minutes"] == 1
    assert route["waypoints"][-1] == {"x": 10.0, "y": 5.0, "z": 0.0, "floor": 1}
    assert route["degraded"] is False

    assert client.post("/route", json={"destination_id": "spa"}).status_code == 404
    assert client.post("/route", json={}).status_code == 400
    assert client.get("/navigation").json()["active"] is False


def test_navigation_lifecycle_emits_events(ryokan_path: Path) -> None:
    """Start navigation, walk to reception and drain the emitted events."""
    client = _client_with_ryokan(ryokan_path)
    client.post("/position", json={"x": 0.0, "y": 0.0})

    start = client.post("/navigation/start", json={"destination_id": "reception"})
    assert start.status_code == 200

    tick = client.post("/tick").json()
    assert tick["floor"] == 1
    assert tick["navigation"]["active"] is True
    assert tick["navigation"]["cursor_index"] == 1

    kinds = [event["type"] for event in client.get("/events").json()["events"]]
    assert kinds == ["navigationStart", "waypointReached", "navigationUpdate"]

    client.post("/position", json={"x": 9.5, "y": 4.5})
    tick = client.post("/tick").json()
    assert tick["navigation"]["active"] is False

    events = client.get("/events").json()["events"]
    assert [event["type"] for event in events] == ["destinationReached", "navigationStop"]
    assert events[0]["destination"] == {"x": 10.0, "y": 5.0, "z": 0.0, "floor": 1}
    assert client.get("/events").json()["events"] == []
    assert client.post("/navigation/stop").json() == {"stopped": False}


def test_floor_endpoints(ryokan_path: Path) -> None:
    client = _client_with_ryokan(ryokan_path)

    manual = client.post("/floor/manual", json={"floor": 2}).json()
    assert manual["label"] == "2F"
    assert manual["method"] == "manual"
    assert manual["changed"] is True
    assert client.get("/floor").json()["floor"] == 2

    assert client.post("/floor-estimates", json={"method": "wifi", "floor": 1, "confidence": 1.5}).status_code == 422
    assert client.post("/floor-estimates", json={"method": "wifi", "floor": 1, "confidence": 0.5}).status_code == 200

    assert client.post("/floor/qr", json={"payload": "welcome to the ryokan"}).json() == {
        "accepted": False,
        "floor": None,
    }
    assert client.post("/floor/qr", json={"payload": "loc=floor-2"}).json() == {"accepted": True, "floor": 2}
