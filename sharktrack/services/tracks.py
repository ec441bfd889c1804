from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from sharktrack.core.config import settings
from sharktrack.core.timeutils import as_utc, isoformat_z, utcnow
from sharktrack.models.position import SharkPosition
from sharktrack.models.shark import Shark
from sharktrack.services import repository


@dataclass(frozen=True)
class TrackPoint:
    lat: float
    lng: float
    time: datetime

    def as_track_item(self) -> dict[str, Any]:
        return {"latitude": self.lat, "longitude": self.lng, "timestamp": isoformat_z(self.time)}

    def as_inline_item(self) -> dict[str, Any]:
        return {"lat": self.lat, "lng": self.lng, "time": isoformat_z(self.time)}


@dataclass
class SharkView:
    internal_id: int
    external_id: str
    name: str
    species: str
    latitude: float
    longitude: float
    last_move: datetime
    last_update: datetime | None
    image_url: str | None
    meta: dict[str, Any] = field(default_factory=dict)
    track: list[TrackPoint] = field(default_factory=list)
    approx_sst: float | None = None

    @property
    def public_id(self) -> int | str:
        return int(self.external_id) if self.external_id.isdigit() else self.external_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.public_id,
            "name": self.name,
            "species": self.species,
            "gender": self.meta.get("gender"),
            "stageOfLife": self.meta.get("stage_of_life"),
            "length": self.meta.get("length"),
            "weight": self.meta.get("weight"),
            "lastMove": isoformat_z(self.last_move),
            "last_update": isoformat_z(self.last_update) if self.last_update else None,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "imageUrl": self.image_url,
            "approxSst": self.approx_sst,
            "track": [p.as_inline_item() for p in self.track],
        }


def effective_time(row: SharkPosition) -> datetime:
    """Upstream observation time when reported, ingestion time otherwise."""
    return as_utc(row.source_timestamp or row.created_at)


def build_track(rows: Iterable[SharkPosition]) -> list[TrackPoint]:
    # sorted() is stable: rows sharing an effective time keep ingestion order.
    ordered = sorted(rows, key=effective_time)
    return [TrackPoint(lat=float(r.lat), lng=float(r.lng), time=effective_time(r)) for r in ordered]


def parse_hours(raw: str | None) -> float | None:
    """``None``/blank means unbounded; junk or non-positive falls back to the default."""
    if raw is None or not str(raw).strip():
        return None
    try:
        hours = float(raw)
    except ValueError:
        return settings.track_default_hours
    if hours != hours or hours <= 0:  # NaN
        return settings.track_default_hours
    return min(hours, settings.track_max_hours)


def parse_days(raw: str | None) -> float:
    if raw is None or not str(raw).strip():
        return float(settings.track_days)
    try:
        days = float(raw)
    except ValueError:
        return float(settings.track_days)
    if days != days or days <= 0:
        return float(settings.track_days)
    return min(days, settings.track_max_hours / 24)


def _view(shark: Shark, track: list[TrackPoint]) -> SharkView:
    meta = shark.meta or {}
    latest = track[-1]
    return SharkView(
        internal_id=shark.id,
        external_id=shark.external_id,
        name=shark.name or "Unnamed shark",
        species=shark.species or "Unknown shark",
        latitude=latest.lat,
        longitude=latest.lng,
        last_move=latest.time,
        last_update=as_utc(shark.updated_at) if shark.updated_at else None,
        image_url=shark.image_url or meta.get("image"),
        meta=meta,
        track=track,
    )


class TrackAggregator:
    """Read-only views over stored positions: latest fix per shark and full tracks."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or utcnow

    def _since(self, *, days: float | None = None, hours: float | None = None) -> datetime | None:
        if days is not None:
            return self._clock() - timedelta(days=days)
        if hours is not None:
            return self._clock() - timedelta(hours=hours)
        return None

    def current(self, days: float | None = None) -> list[SharkView]:
        """Sharks with at least one position in the window, each with its track.

        The window is applied to ``created_at`` (when we learned about a fix),
        not to the effective time used for ordering.
        """
        since = self._since(days=days)
        with self._session_factory() as db:
            sharks = repository.list_sharks(db)
            if not sharks:
                return []
            grouped = repository.positions_for(db, [s.id for s in sharks], since=since)

            out: list[SharkView] = []
            for shark in sharks:
                rows = grouped.get(shark.id)
                if not rows:
                    continue
                out.append(_view(shark, build_track(rows)))
            return out

    def track(self, ident: str, hours: float | None = None) -> list[TrackPoint]:
        """Chronological track for one shark; ``[]`` when ``ident`` resolves to nothing."""
        since = self._since(hours=hours)
        with self._session_factory() as db:
            shark = repository.resolve_shark(db, ident)
            if shark is None:
                return []
            grouped = repository.positions_for(db, [shark.id], since=since)
            return build_track(grouped.get(shark.id, []))
