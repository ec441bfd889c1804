from __future__ import annotations

from collections.abc import Callable

from sqlalchemy import text
from sqlalchemy.orm import Session

from sharktrack.core.config import settings
from sharktrack.db.base import Base
from sharktrack import models  # noqa: F401  (registers tables on Base.metadata)


def on_startup(session_factory: Callable[[], Session], *, create_schema: bool | None = None) -> None:
    if create_schema is None:
        create_schema = settings.auto_create_schema

    db = session_factory()
    try:
        db.execute(text("select 1"))
        db.commit()
        if create_schema:
            Base.metadata.create_all(bind=db.get_bind())
    finally:
        db.close()
