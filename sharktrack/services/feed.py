from __future__ import annotations

import logging
from typing import Any

import httpx

from sharktrack.core.config import settings
from sharktrack.services.errors import FetchError, FormatError

logger = logging.getLogger(__name__)


class FeedFetcher:
    """Downloads the upstream POI GeoJSON and returns its features.

    No retries here; a failed fetch fails the whole pass and the caller
    (scheduler or admin trigger) decides whether to try again.
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self._url = url or settings.feed_url
        self._client = client
        self._timeout = timeout if timeout is not None else settings.feed_timeout_seconds

    @property
    def url(self) -> str:
        return self._url

    async def fetch(self) -> list[dict[str, Any]]:
        if self._client is not None:
            res = await self._get(self._client)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                res = await self._get(client)
        return self._features(res)

    async def _get(self, client: httpx.AsyncClient) -> httpx.Response:
        try:
            res = await client.get(self._url)
        except httpx.HTTPError as exc:
            raise FetchError(f"Failed to fetch POIs: {exc}") from exc
        if res.status_code >= 400:
            raise FetchError(f"Failed to fetch POIs: {res.status_code} {res.reason_phrase}")
        return res

    @staticmethod
    def _features(res: httpx.Response) -> list[dict[str, Any]]:
        try:
            document = res.json()
        except ValueError as exc:
            raise FormatError("Unexpected GeoJSON format: body is not JSON") from exc

        features = document.get("features") if isinstance(document, dict) else None
        if not isinstance(features, list):
            raise FormatError("Unexpected GeoJSON format: no features array")

        out = [f for f in features if isinstance(f, dict)]
        logger.debug("feed returned %d features (%d usable dicts)", len(features), len(out))
        return out
