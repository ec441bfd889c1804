from __future__ import annotations

from typing import Protocol

from sharktrack.services.normalizer import Observation, round_coord


class StoredPosition(Protocol):
    lat: float
    lng: float


def has_moved(observation: Observation, last: StoredPosition | None) -> bool:
    """True when there is no previous fix or either rounded axis differs."""
    if last is None:
        return True
    return round_coord(last.lat) != observation.lat or round_coord(last.lng) != observation.lon
