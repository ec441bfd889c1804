from __future__ import annotations

import json
import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_FEED_URL = "https://www.mapotic.com/api/v1/maps/3413/pois.geojson/?h=10"
DEFAULT_SST_API_URL = "https://marine-api.open-meteo.com/v1/marine"


@dataclass(frozen=True)
class Settings:
    app_name: str
    environment: str
    cors_allow_origins: list[str]
    database_url: str
    log_level: str

    feed_url: str
    feed_timeout_seconds: float
    sync_interval_seconds: int
    admin_api_key: str | None
    auto_create_schema: bool

    # Query windows
    track_days: int
    track_default_hours: float
    track_max_hours: float

    # Sea surface temperature enrichment
    enable_sst: bool
    sst_api_url: str
    sst_timeout_seconds: float
    sst_cache_ttl_seconds: int


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _parse_origins(raw: str | None) -> list[str]:
    origins = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    if raw:
        try:
            origins = list(json.loads(raw))
        except (ValueError, TypeError):
            origins = [x.strip() for x in raw.split(",") if x.strip()]
    return origins


def _load_settings() -> Settings:
    load_dotenv()

    environment = os.getenv("ENVIRONMENT", "dev")

    return Settings(
        app_name=os.getenv("APP_NAME", "Shark Tracker API"),
        environment=environment,
        cors_allow_origins=_parse_origins(os.getenv("CORS_ALLOW_ORIGINS")),
        database_url=os.getenv("DATABASE_URL", "sqlite+pysqlite:///./sharktrack.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        feed_url=os.getenv("FEED_URL", DEFAULT_FEED_URL),
        feed_timeout_seconds=float(os.getenv("FEED_TIMEOUT_SECONDS", "20")),
        sync_interval_seconds=int(os.getenv("SYNC_INTERVAL_SECONDS", "0")),
        admin_api_key=os.getenv("ADMIN_API_KEY") or None,
        auto_create_schema=_env_flag("AUTO_CREATE_SCHEMA", "1" if environment == "dev" else "0"),
        track_days=int(os.getenv("TRACK_DAYS", "7")),
        track_default_hours=float(os.getenv("TRACK_DEFAULT_HOURS", "24")),
        track_max_hours=float(os.getenv("TRACK_MAX_HOURS", str(24 * 30))),
        enable_sst=_env_flag("ENABLE_SST", "1"),
        sst_api_url=os.getenv("SST_API_URL", DEFAULT_SST_API_URL),
        sst_timeout_seconds=float(os.getenv("SST_TIMEOUT_SECONDS", "10")),
        sst_cache_ttl_seconds=int(os.getenv("SST_CACHE_TTL_SECONDS", "3600")),
    )


settings = _load_settings()
