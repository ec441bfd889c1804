from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from sharktrack.core.config import settings
from sharktrack.core.log import configure_logging
from sharktrack.core.startup import on_startup
from sharktrack.services.errors import SyncError
from sharktrack.services.feed import FeedFetcher
from sharktrack.services.sst import SeaSurfaceTemperatureCache, SeaSurfaceTemperatureClient
from sharktrack.services.sync import SyncOrchestrator
from sharktrack.services.tracks import TrackAggregator, parse_days, parse_hours

logger = logging.getLogger(__name__)


def _require_admin_key(request: Request) -> None:
    # If ADMIN_API_KEY is set, require it.
    expected = settings.admin_api_key
    if not expected:
        return
    got = request.headers.get("x-admin-api-key")
    if got != expected:
        raise HTTPException(status_code=401, detail="Invalid admin key")


async def health(_: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def list_sharks(request: Request) -> JSONResponse:
    days = parse_days(request.query_params.get("days"))
    aggregator: TrackAggregator = request.app.state.tracks
    try:
        views = aggregator.current(days=days)
    except SQLAlchemyError:
        logger.exception("failed to load sharks")
        return JSONResponse({"error": "Failed to load sharks"}, status_code=500)

    sst: SeaSurfaceTemperatureClient | None = request.app.state.sst
    if sst is not None:
        await sst.enrich(views)

    return JSONResponse([v.to_dict() for v in views])


async def shark_track(request: Request) -> JSONResponse:
    shark_id = request.path_params.get("shark_id") or ""
    hours = parse_hours(request.query_params.get("hours"))
    aggregator: TrackAggregator = request.app.state.tracks
    try:
        points = aggregator.track(shark_id, hours=hours)
    except SQLAlchemyError:
        logger.exception("failed to load track for %s", shark_id)
        return JSONResponse({"error": "Failed to load positions"}, status_code=500)
    # Unknown ids come back as [] so the map shows "no data" rather than an error.
    return JSONResponse([p.as_track_item() for p in points])


async def refresh_sharks(request: Request) -> JSONResponse:
    _require_admin_key(request)
    orchestrator: SyncOrchestrator = request.app.state.sync
    try:
        await orchestrator.run()
    except SyncError as exc:
        logger.error("refresh-sharks failed: %s", exc)
        return JSONResponse({"ok": False, "error": str(exc) or "Unknown error"}, status_code=500)
    return JSONResponse({"ok": True})


async def _sync_loop(orchestrator: SyncOrchestrator, interval: float) -> None:
    while True:
        try:
            await orchestrator.run()
        except SyncError as exc:
            logger.error("scheduled sync failed: %s", exc)
        except Exception:
            logger.exception("scheduled sync crashed")
        await asyncio.sleep(interval)


routes = [
    Route("/health", endpoint=health, methods=["GET"]),
    Route("/api/sharks", endpoint=list_sharks, methods=["GET"]),
    Route("/api/sharks/{shark_id}/track", endpoint=shark_track, methods=["GET"]),
    Route("/admin/refresh-sharks", endpoint=refresh_sharks, methods=["GET", "POST"]),
]


def create_app(
    *,
    session_factory: Callable[[], Session] | None = None,
    fetcher: FeedFetcher | None = None,
    sst_client: SeaSurfaceTemperatureClient | None = None,
    enable_sst: bool | None = None,
    sync_interval_seconds: int | None = None,
) -> Starlette:
    if session_factory is None:
        from sharktrack.db.session import SessionLocal

        session_factory = SessionLocal
    if enable_sst is None:
        enable_sst = settings.enable_sst
    if sync_interval_seconds is None:
        sync_interval_seconds = settings.sync_interval_seconds

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        configure_logging()
        on_startup(session_factory)

        sst = sst_client
        if sst is None and enable_sst:
            sst = SeaSurfaceTemperatureClient(SeaSurfaceTemperatureCache())

        app.state.tracks = TrackAggregator(session_factory)
        app.state.sync = SyncOrchestrator(fetcher or FeedFetcher(), session_factory)
        app.state.sst = sst

        loop_task: asyncio.Task | None = None
        if sync_interval_seconds > 0:
            loop_task = asyncio.create_task(_sync_loop(app.state.sync, sync_interval_seconds))
            logger.info("scheduled sync every %ds", sync_interval_seconds)
        try:
            yield
        finally:
            if loop_task is not None:
                loop_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await loop_task
            if sst is not None:
                await sst.aclose()
                sst.cache.clear()

    app = Starlette(debug=settings.environment == "dev", routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


app = create_app()
