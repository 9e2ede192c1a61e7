"""Error kinds of the navigation core.

Only `DestinationNotFound` escapes to callers. The other errors are raised
internally and handled one level up, where they degrade to the best available
result (previous floor, stale route, straight-line path).
"""

from __future__ import annotations


class DestinationNotFound(KeyError):
    """Unknown destination id passed to routing."""

    def __init__(self, destination_id: str) -> None:
        super().__init__(destination_id)
        self.destination_id = destination_id

    def __str__(self) -> str:
        return f"Destination '{self.destination_id}' was not found"


class NoPathFound(RuntimeError):
    """Grid search exhausted without reaching the goal."""


class RecalculationFailed(RuntimeError):
    """Drift recalculation could not resolve the route's destination."""


class InsufficientEvidence(RuntimeError):
    """Floor fusion has no retained estimates to decide on."""
