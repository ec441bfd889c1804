"""
Pytest configuration and fixtures.
"""
import os

# Settings are read once at import time; pin them before sharktrack loads.
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["ENABLE_SST"] = "0"
os.environ["SYNC_INTERVAL_SECONDS"] = "0"
os.environ["AUTO_CREATE_SCHEMA"] = "1"
os.environ.pop("ADMIN_API_KEY", None)

from datetime import datetime, timedelta, timezone  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from sharktrack import models  # noqa: E402,F401
from sharktrack.db.base import Base  # noqa: E402
from sharktrack.services.feed import FeedFetcher  # noqa: E402

FEED_URL = "https://feed.test/api/v1/maps/3413/pois.geojson/"


class FakeClock:
    """Deterministic UTC clock; advance it explicitly."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FeedStub:
    """Serves a mutable GeoJSON feature collection through httpx.MockTransport."""

    def __init__(self):
        self.features: list[dict] = []
        self.status_code = 200
        self.body: object | None = None
        self.calls = 0

    def set_point(self, ident, lng: float, lat: float, **props):
        self.features = [feature(ident, lng, lat, **props)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.status_code >= 400:
            return httpx.Response(self.status_code, text="upstream down")
        if self.body is not None:
            if isinstance(self.body, (bytes, str)):
                return httpx.Response(200, content=self.body)
            return httpx.Response(200, json=self.body)
        return httpx.Response(200, json={"type": "FeatureCollection", "features": self.features})

    def fetcher(self) -> FeedFetcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return FeedFetcher(FEED_URL, client=client)


def feature(ident, lng: float, lat: float, **props) -> dict:
    properties = {"id": ident, **props} if ident is not None else dict(props)
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lng, lat]},
        "properties": properties,
    }


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def feed():
    return FeedStub()
