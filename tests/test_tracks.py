"""
Tests for the track aggregator.
"""
from datetime import datetime, timedelta, timezone

import pytest

from sharktrack.services import repository
from sharktrack.services.normalizer import Observation
from sharktrack.services.tracks import TrackAggregator, build_track, parse_days, parse_hours

from conftest import FakeClock

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def _obs(ext, lat, lon, source_timestamp=None, **kw):
    return Observation(external_id=ext, lat=lat, lon=lon, source_timestamp=source_timestamp, **kw)


@pytest.fixture
def store(session_factory):
    """Helper that writes a shark and its positions as (lat, lon, created_at, source_ts)."""

    def write(ext, points, **shark_kw):
        with session_factory() as db:
            shark = repository.upsert_shark(db, _obs(ext, 0.0, 0.0, **shark_kw), NOW)
            for lat, lon, created_at, source_ts in points:
                repository.insert_position(db, shark.id, _obs(ext, lat, lon, source_ts), created_at)
            db.commit()
            return shark.id

    return write


@pytest.fixture
def aggregator(session_factory):
    return TrackAggregator(session_factory, clock=FakeClock(NOW))


class TestCurrent:
    def test_latest_is_last_point_of_sorted_track(self, store, aggregator):
        store(
            "42",
            [
                (1.0, 1.0, NOW - timedelta(hours=3), None),
                (2.0, 2.0, NOW - timedelta(hours=2), None),
                (3.0, 3.0, NOW - timedelta(hours=1), None),
            ],
            name="Nukumi",
        )
        (view,) = aggregator.current(days=7)
        assert [p.lat for p in view.track] == [1.0, 2.0, 3.0]
        assert (view.latitude, view.longitude) == (3.0, 3.0)
        assert view.last_move == NOW - timedelta(hours=1)
        assert view.name == "Nukumi"

    def test_sorted_by_effective_time(self, store, aggregator):
        # Second ingested row reports an older upstream time.
        store(
            "42",
            [
                (1.0, 1.0, NOW - timedelta(hours=2), NOW - timedelta(hours=2)),
                (2.0, 2.0, NOW - timedelta(hours=1), NOW - timedelta(hours=5)),
            ],
        )
        (view,) = aggregator.current(days=7)
        times = [p.time for p in view.track]
        assert times == sorted(times)
        assert [p.lat for p in view.track] == [2.0, 1.0]
        assert view.latitude == 1.0

    def test_window_applies_to_created_at(self, store, aggregator):
        # Backfilled upstream time is old, but we learned about it recently.
        store(
            "42",
            [
                (1.0, 1.0, NOW - timedelta(days=30), None),
                (2.0, 2.0, NOW - timedelta(hours=1), NOW - timedelta(days=60)),
            ],
        )
        (view,) = aggregator.current(days=7)
        assert [p.lat for p in view.track] == [2.0]

    def test_unbounded_window(self, store, aggregator):
        store("42", [(1.0, 1.0, NOW - timedelta(days=300), None), (2.0, 2.0, NOW, None)])
        (view,) = aggregator.current()
        assert len(view.track) == 2

    def test_sharks_without_positions_are_excluded(self, store, aggregator):
        store("empty", [])
        store("stale", [(1.0, 1.0, NOW - timedelta(days=30), None)])
        store("live", [(2.0, 2.0, NOW, None)])
        assert [v.external_id for v in aggregator.current(days=7)] == ["live"]

    def test_no_sharks(self, aggregator):
        assert aggregator.current(days=7) == []

    def test_defaults_and_image_fallback(self, store, aggregator):
        store("7", [(2.0, 2.0, NOW, None)], metadata={"image": "https://feed.test/7.jpg", "gender": "male"})
        (view,) = aggregator.current(days=1)
        out = view.to_dict()
        assert out["id"] == 7
        assert out["name"] == "Unnamed shark"
        assert out["species"] == "Unknown shark"
        assert out["imageUrl"] == "https://feed.test/7.jpg"
        assert out["gender"] == "male"
        assert out["approxSst"] is None
        assert out["track"] == [{"lat": 2.0, "lng": 2.0, "time": "2026-10-17T12:00:00Z"}]

    def test_non_numeric_external_id_is_kept_as_text(self, store, aggregator):
        store("nukumi", [(2.0, 2.0, NOW, None)])
        (view,) = aggregator.current(days=1)
        assert view.to_dict()["id"] == "nukumi"


class TestTrack:
    def test_chronological_track(self, store, aggregator):
        store(
            "42",
            [
                (1.0, 1.0, NOW - timedelta(hours=3), None),
                (2.0, 2.0, NOW - timedelta(hours=2), None),
            ],
        )
        items = [p.as_track_item() for p in aggregator.track("42")]
        assert items == [
            {"latitude": 1.0, "longitude": 1.0, "timestamp": "2026-10-17T09:00:00Z"},
            {"latitude": 2.0, "longitude": 2.0, "timestamp": "2026-10-17T10:00:00Z"},
        ]

    def test_hours_window(self, store, aggregator):
        store("42", [(1.0, 1.0, NOW - timedelta(hours=30), None), (2.0, 2.0, NOW - timedelta(hours=1), None)])
        assert [p.lat for p in aggregator.track("42", hours=24)] == [2.0]
        assert [p.lat for p in aggregator.track("42")] == [1.0, 2.0]

    def test_surrogate_id_fallback(self, store, aggregator):
        shark_id = store("nukumi", [(1.0, 1.0, NOW, None)])
        assert len(aggregator.track(str(shark_id))) == 1

    def test_unknown_id_is_empty(self, aggregator):
        assert aggregator.track("does-not-exist") == []


class TestBuildTrack:
    def test_ties_keep_ingestion_order(self, store, session_factory):
        store("42", [(1.0, 1.0, NOW, None), (2.0, 2.0, NOW, None), (3.0, 3.0, NOW, None)])
        with session_factory() as db:
            rows = repository.positions_for(db, [1])[1]
            assert [p.lat for p in build_track(rows)] == [1.0, 2.0, 3.0]


class TestParseWindows:
    @pytest.mark.parametrize("raw", [None, "", "  "])
    def test_hours_omitted_is_unbounded(self, raw):
        assert parse_hours(raw) is None

    @pytest.mark.parametrize("raw", ["abc", "0", "-5", "nan"])
    def test_invalid_hours_default(self, raw):
        assert parse_hours(raw) == 24

    def test_hours_clamped(self):
        assert parse_hours("100000") == 24 * 30
        assert parse_hours("6") == 6

    def test_days(self):
        assert parse_days(None) == 7
        assert parse_days("junk") == 7
        assert parse_days("2") == 2
        assert parse_days("365") == 30
