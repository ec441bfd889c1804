from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sharktrack.core.timeutils import parse_timestamp

COORD_PLACES = 5

IDENTITY_FIELDS = ("id", "slug", "name")
TIMESTAMP_FIELDS = ("last_ping", "last_update", "last_move")


@dataclass(frozen=True)
class Observation:
    external_id: str
    lat: float
    lon: float
    name: str | None = None
    species: str | None = None
    source_timestamp: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def round_coord(value: float, places: int = COORD_PLACES) -> float:
    # Ties round toward +inf.
    scale = 10**places
    return math.floor(float(value) * scale + 0.5) / scale


def _property_resolver(key: str) -> Callable[[Mapping[str, Any]], str | None]:
    def resolve(props: Mapping[str, Any]) -> str | None:
        value = props.get(key)
        if value is None or isinstance(value, bool):
            return None
        text = str(value).strip()
        return text or None

    resolve.__name__ = f"resolve_{key}"
    return resolve


IDENTITY_RESOLVERS: list[Callable[[Mapping[str, Any]], str | None]] = [
    _property_resolver(key) for key in IDENTITY_FIELDS
]


def resolve_identity(props: Mapping[str, Any]) -> str | None:
    for resolver in IDENTITY_RESOLVERS:
        found = resolver(props)
        if found is not None:
            return found
    return None


def resolve_source_timestamp(props: Mapping[str, Any]) -> datetime | None:
    for key in TIMESTAMP_FIELDS:
        ts = parse_timestamp(props.get(key))
        if ts is not None:
            return ts
    return None


def _coordinates(feature: Mapping[str, Any]) -> tuple[float, float] | None:
    geometry = feature.get("geometry") or {}
    coords = geometry.get("coordinates") if isinstance(geometry, Mapping) else None
    if not isinstance(coords, (list, tuple)) or len(coords) < 2:
        return None
    lng_raw, lat_raw = coords[0], coords[1]
    if isinstance(lng_raw, bool) or isinstance(lat_raw, bool):
        return None
    try:
        return float(lat_raw), float(lng_raw)
    except (TypeError, ValueError):
        return None


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_feature(feature: Mapping[str, Any]) -> Observation | None:
    """Turn one GeoJSON feature into an :class:`Observation`.

    Returns ``None`` for features that cannot be placed: no usable identity,
    or no numeric ``[longitude, latitude]`` pair. Skips are expected, not errors.
    """
    props = feature.get("properties") or {}
    if not isinstance(props, Mapping):
        props = {}

    coords = _coordinates(feature)
    if coords is None:
        return None

    external_id = resolve_identity(props)
    if external_id is None:
        return None

    lat_raw, lng_raw = coords
    return Observation(
        external_id=external_id,
        lat=round_coord(lat_raw),
        lon=round_coord(lng_raw),
        name=_optional_text(props.get("name")),
        species=_optional_text(props.get("species")),
        source_timestamp=resolve_source_timestamp(props),
        metadata=dict(props),
    )
