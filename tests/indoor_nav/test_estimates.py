"""Unit tests for indoor_nav.estimates."""

from __future__ import annotations

import math
import threading

import pytest

from indoor_nav.estimates import EstimateBuffer


def test_report_normalizes_method_and_clamps_confidence(clock) -> None:
    """Method names are lowercased and confidence clamped into [0, 1]."""
    buffer = EstimateBuffer(clock=clock)

    high = buffer.report(" WiFi ", 2, 1.7)
    low = buffer.report("light", -1, -0.3)

    assert high.method == "wifi"
    assert high.confidence == 1.0
    assert high.timestamp == clock.now
    assert low.confidence == 0.0
    assert len(buffer) == 2


@pytest.mark.parametrize("confidence", [math.nan, math.inf])
def test_report_rejects_non_finite_confidence(clock, confidence: float) -> None:
    buffer = EstimateBuffer(clock=clock)
    with pytest.raises(ValueError, match="finite"):
        buffer.report("wifi", 1, confidence)


def test_report_rejects_empty_method(clock) -> None:
    buffer = EstimateBuffer(clock=clock)
    with pytest.raises(ValueError, match="non-empty"):
        buffer.report("  ", 1, 0.5)


def test_prune_evicts_entries_at_retention_age(clock) -> None:
    """An estimate exactly `retention_seconds` old is dropped."""
    buffer = EstimateBuffer(retention_seconds=10.0, clock=clock)
    buffer.report("wifi", 1, 0.5)
    clock.advance(5.0)
    buffer.report("wifi", 2, 0.5)

    clock.advance(5.0)
    assert buffer.prune() == 1
    assert [e.floor for e in buffer.snapshot()] == [2]

    clock.advance(4.999)
    assert buffer.prune() == 0
    assert len(buffer) == 1


def test_explicit_timestamp_is_kept(clock) -> None:
    buffer = EstimateBuffer(clock=clock)
    estimate = buffer.report("barometric", 1, 0.8, timestamp=clock.now - 3.0)

    assert estimate.age(clock.now) == pytest.approx(3.0)


def test_capacity_evicts_oldest_first(clock) -> None:
    buffer = EstimateBuffer(capacity=3, clock=clock)
    for floor in range(5):
        buffer.report("wifi", floor, 0.5)

    assert [e.floor for e in buffer.snapshot()] == [2, 3, 4]


def test_concurrent_reports_are_all_retained(clock) -> None:
    """Reports from several threads never lose entries."""
    buffer = EstimateBuffer(capacity=10_000, clock=clock)

    def producer(method: str) -> None:
        for _ in range(500):
            buffer.report(method, 1, 0.5)

    threads = [threading.Thread(target=producer, args=(m,)) for m in ("wifi", "barometric", "light", "manual")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(buffer) == 2000


def test_clear_and_invalid_configuration(clock) -> None:
    buffer = EstimateBuffer(clock=clock)
    buffer.report("wifi", 1, 0.5)
    buffer.clear()
    assert len(buffer) == 0

    with pytest.raises(ValueError, match="retention_seconds"):
        EstimateBuffer(retention_seconds=0)
    with pytest.raises(ValueError, match="capacity"):
        EstimateBuffer(capacity=0)
