from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sharktrack.core.timeutils import utcnow
from sharktrack.models.position import SharkPosition
from sharktrack.models.shark import Shark
from sharktrack.services import repository
from sharktrack.services.errors import StorageError
from sharktrack.services.feed import FeedFetcher
from sharktrack.services.movement import has_moved
from sharktrack.services.normalizer import Observation, normalize_feature

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    inserted: int = 0
    seen: int = 0
    skipped: int = 0
    failed: int = 0


@dataclass
class _Step:
    """State threaded through the per-observation steps."""

    db: Session
    observation: Observation
    now: datetime
    shark: Shark | None = None
    last: SharkPosition | None = None
    moved: bool = False
    inserted: bool = False


def _upsert(step: _Step) -> None:
    try:
        step.shark = repository.upsert_shark(step.db, step.observation, step.now)
        step.db.commit()
    except SQLAlchemyError as exc:
        raise StorageError(f"Failed to upsert shark: {exc}", external_id=step.observation.external_id) from exc


def _shark_id(step: _Step) -> int:
    if step.shark is None:
        raise StorageError("No shark row before position step", external_id=step.observation.external_id)
    return step.shark.id


def _load_latest(step: _Step) -> None:
    shark_id = _shark_id(step)
    try:
        step.last = repository.latest_position(step.db, shark_id)
    except SQLAlchemyError as exc:
        raise StorageError(f"Failed to fetch last position: {exc}", external_id=step.observation.external_id) from exc


def _detect(step: _Step) -> None:
    step.moved = has_moved(step.observation, step.last)


def _insert(step: _Step) -> None:
    if not step.moved:
        return
    shark_id = _shark_id(step)
    try:
        repository.insert_position(step.db, shark_id, step.observation, step.now)
        step.db.commit()
    except SQLAlchemyError as exc:
        raise StorageError(f"Failed to insert position: {exc}", external_id=step.observation.external_id) from exc
    step.inserted = True


class SyncOrchestrator:
    """Runs fetch → normalize → detect → persist over the whole feed.

    Observations are handled strictly one after another, each in its own
    session, so "read last position, then maybe insert" never interleaves
    within a pass. Passes themselves are serialized by ``_lock``: a trigger
    that arrives while a pass is running waits for it, then runs its own.
    """

    steps: tuple[Callable[[_Step], None], ...] = (_upsert, _load_latest, _detect, _insert)

    def __init__(
        self,
        fetcher: FeedFetcher,
        session_factory: Callable[[], Session],
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._session_factory = session_factory
        self._clock = clock or utcnow
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run(self) -> SyncResult:
        async with self._lock:
            return await self._run_pass()

    async def _run_pass(self) -> SyncResult:
        # FetchError / FormatError propagate: the pass never starts.
        features = await self._fetcher.fetch()

        result = SyncResult(seen=len(features))
        for feature in features:
            observation = normalize_feature(feature)
            if observation is None:
                result.skipped += 1
                logger.debug("skipping feature without identity or coordinates")
                continue

            try:
                inserted = self._process(observation)
            except StorageError as exc:
                result.failed += 1
                logger.error("sync failed for shark %s: %s", exc.external_id, exc)
                continue
            if inserted:
                result.inserted += 1

        logger.info(
            "refresh shark positions: inserted %d new points (%d features, %d skipped, %d failed)",
            result.inserted,
            result.seen,
            result.skipped,
            result.failed,
        )
        return result

    def _process(self, observation: Observation) -> bool:
        with self._session_factory() as db:
            step = _Step(db=db, observation=observation, now=self._clock())
            try:
                for fn in self.steps:
                    fn(step)
            except StorageError:
                db.rollback()
                raise
            return step.inserted
