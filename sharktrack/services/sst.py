"""Sea surface temperature lookups (Open-Meteo marine API) with a TTL cache.

Values are decorative: they are attached to ``/api/sharks`` responses and
never touch storage or movement detection.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

import httpx

from sharktrack.core.config import settings
from sharktrack.core.timeutils import as_utc, utcnow
from sharktrack.services.tracks import SharkView

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    value: float
    expires_at: datetime


class SeaSurfaceTemperatureCache:
    """Per-process cache keyed by ``(lat, lon)`` at 0.01° plus the UTC day.

    Expiry is checked lazily on :meth:`get`; there is no background sweep.
    Only successful lookups are stored.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else settings.sst_cache_ttl_seconds
        self._ttl = timedelta(seconds=ttl)
        self._clock = clock or utcnow
        self._entries: dict[str, CacheEntry] = {}

    def key(self, latitude: float, longitude: float) -> str:
        day = as_utc(self._clock()).date().isoformat()
        return f"{latitude:.2f},{longitude:.2f},{day}"

    def get(self, latitude: float, longitude: float) -> float | None:
        key = self.key(latitude, longitude)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= as_utc(self._clock()):
            del self._entries[key]
            return None
        return entry.value

    def put(self, latitude: float, longitude: float, value: float) -> None:
        key = self.key(latitude, longitude)
        self._entries[key] = CacheEntry(value=value, expires_at=as_utc(self._clock()) + self._ttl)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class SeaSurfaceTemperatureClient:
    def __init__(
        self,
        cache: SeaSurfaceTemperatureCache,
        *,
        url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self._cache = cache
        self._url = url or settings.sst_api_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.sst_timeout_seconds
        )

    @property
    def cache(self) -> SeaSurfaceTemperatureCache:
        return self._cache

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def lookup(self, latitude: float | None, longitude: float | None) -> float | None:
        """Current SST in °C near the point, or ``None`` when unavailable."""
        if latitude is None or longitude is None:
            return None

        cached = self._cache.get(latitude, longitude)
        if cached is not None:
            logger.debug("sst cache hit %s", self._cache.key(latitude, longitude))
            return cached

        params = {
            "latitude": f"{round(latitude, 3)}",
            "longitude": f"{round(longitude, 3)}",
            "current": "sea_surface_temperature",
        }
        try:
            res = await self._client.get(self._url, params=params)
        except httpx.HTTPError as exc:
            logger.warning("sst request failed: %s", exc)
            return None
        if res.status_code >= 400:
            logger.warning("sst upstream error %s %s", res.status_code, res.reason_phrase)
            return None

        try:
            payload = res.json()
        except ValueError:
            logger.warning("sst upstream returned non-JSON body")
            return None

        value = _extract_value(payload)
        if value is None:
            logger.warning("no numeric sea_surface_temperature in response")
            return None

        self._cache.put(latitude, longitude, value)
        return value

    async def enrich(self, views: Iterable[SharkView]) -> None:
        # One request at a time: the upstream rate-limits bursts.
        for view in views:
            view.approx_sst = await self.lookup(view.latitude, view.longitude)


def _extract_value(payload: object) -> float | None:
    if not isinstance(payload, dict):
        return None
    current = payload.get("current")
    if not isinstance(current, dict):
        return None
    value = current.get("sea_surface_temperature")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        celsius = float(value)
    except OverflowError:
        return None
    # JSON responses reject NaN and infinities.
    if not math.isfinite(celsius):
        return None
    return celsius
