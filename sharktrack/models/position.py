from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from sharktrack.db.base import Base


class SharkPosition(Base):
    __tablename__ = "shark_positions"
    __table_args__ = (Index("ix_shark_positions_shark_id_created_at", "shark_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shark_id: Mapped[int] = mapped_column(Integer, ForeignKey("sharks.id"), index=True)

    # Rounded to 5 decimals at ingestion; movement detection compares these values.
    lat: Mapped[float] = mapped_column(Float)
    lng: Mapped[float] = mapped_column(Float)

    source_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True
    )
