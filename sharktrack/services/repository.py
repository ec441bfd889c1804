from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable
from datetime import datetime

from sqlalchemy import desc, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sharktrack.models.position import SharkPosition
from sharktrack.models.shark import Shark
from sharktrack.services.normalizer import Observation


def _apply(shark: Shark, observation: Observation, now: datetime) -> None:
    shark.name = observation.name
    shark.species = observation.species
    shark.meta = dict(observation.metadata)
    shark.updated_at = now


def upsert_shark(db: Session, observation: Observation, now: datetime) -> Shark:
    """Insert or update the shark keyed by ``external_id`` and return it flushed."""
    shark = db.scalar(select(Shark).where(Shark.external_id == observation.external_id))
    if shark is None:
        shark = Shark(external_id=observation.external_id, created_at=now)
        _apply(shark, observation, now)
        db.add(shark)
        try:
            db.flush()
        except IntegrityError:
            # Another writer inserted the same external_id first.
            db.rollback()
            shark = db.scalar(select(Shark).where(Shark.external_id == observation.external_id))
            if shark is None:
                raise
            _apply(shark, observation, now)
            db.flush()
        return shark

    _apply(shark, observation, now)
    db.flush()
    return shark


def latest_position(db: Session, shark_id: int) -> SharkPosition | None:
    stmt = (
        select(SharkPosition)
        .where(SharkPosition.shark_id == shark_id)
        .order_by(desc(SharkPosition.created_at), desc(SharkPosition.id))
        .limit(1)
    )
    return db.scalar(stmt)


def insert_position(db: Session, shark_id: int, observation: Observation, now: datetime) -> SharkPosition:
    pos = SharkPosition(
        shark_id=shark_id,
        lat=observation.lat,
        lng=observation.lon,
        source_timestamp=observation.source_timestamp,
        created_at=now,
    )
    db.add(pos)
    db.flush()
    return pos


def list_sharks(db: Session) -> list[Shark]:
    return list(db.scalars(select(Shark).order_by(Shark.id)).all())


def positions_for(
    db: Session,
    shark_ids: Iterable[int],
    since: datetime | None = None,
) -> dict[int, list[SharkPosition]]:
    """Load positions for many sharks in a single query, grouped by shark id.

    Rows come back in ingestion order (``created_at``, then ``id``); callers
    re-sort by effective time.
    """
    ids = list(shark_ids)
    grouped: dict[int, list[SharkPosition]] = defaultdict(list)
    if not ids:
        return grouped

    stmt = select(SharkPosition).where(SharkPosition.shark_id.in_(ids))
    if since is not None:
        stmt = stmt.where(SharkPosition.created_at >= since)
    stmt = stmt.order_by(SharkPosition.created_at.asc(), SharkPosition.id.asc())

    for row in db.scalars(stmt).all():
        grouped[row.shark_id].append(row)
    return grouped


def _by_external_id(db: Session, ident: str) -> Shark | None:
    return db.scalar(select(Shark).where(Shark.external_id == ident))


def _by_surrogate_id(db: Session, ident: str) -> Shark | None:
    if not ident.isdigit():
        return None
    return db.get(Shark, int(ident))


SHARK_RESOLVERS: list[Callable[[Session, str], Shark | None]] = [
    _by_external_id,
    _by_surrogate_id,
]


def resolve_shark(db: Session, ident: str) -> Shark | None:
    ident = (ident or "").strip()
    if not ident:
        return None
    for resolver in SHARK_RESOLVERS:
        shark = resolver(db, ident)
        if shark is not None:
            return shark
    return None
