"""SQLAlchemy models for the reading cache and user preferences."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from aqi_dashboard.db.base import Base
from aqi_dashboard.utils.datetime import utc_now


class CachedReading(Base):
    __tablename__ = "reading_cache"
    __table_args__ = (UniqueConstraint("cache_key", name="uq_reading_cache_key"),)

    cache_key: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    stored_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Preference(Base):
    __tablename__ = "preferences"
    __table_args__ = (UniqueConstraint("name", name="uq_preferences_name"),)

    name: Mapped[str] = mapped_column(String(64), nullable=False)
    value: Mapped[Any] = mapped_column(JSON)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )


__all__ = ["CachedReading", "Preference"]
