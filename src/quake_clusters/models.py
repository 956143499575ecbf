from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class EarthquakeEventRow(Base):
    __tablename__ = "earthquake_events"

    event_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    place: Mapped[str | None] = mapped_column(String(256), index=True)
    event_type: Mapped[str | None] = mapped_column(String(64), index=True)
    status: Mapped[str | None] = mapped_column(String(32))
    mag: Mapped[float | None] = mapped_column(Float, index=True)
    time_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    time_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)
    updated_utc: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    depth_km: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    url: Mapped[str | None] = mapped_column(Text)
    quality_passed: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    quality_issues: Mapped[str | None] = mapped_column(Text)
    ingested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ClusterDefinition(Base):
    __tablename__ = "cluster_definitions"

    definition_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stable_key: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    slug: Mapped[str] = mapped_column(String(300), unique=True, nullable=False)
    title: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    strongest_quake_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    earthquake_ids: Mapped[str] = mapped_column(Text, nullable=False)
    location_name: Mapped[str | None] = mapped_column(String(256))
    quake_count: Mapped[int] = mapped_column(Integer, nullable=False)
    max_magnitude: Mapped[float | None] = mapped_column(Float, index=True)
    mean_magnitude: Mapped[float | None] = mapped_column(Float)
    min_magnitude: Mapped[float | None] = mapped_column(Float)
    depth_range: Mapped[str | None] = mapped_column(String(64))
    centroid_lat: Mapped[float | None] = mapped_column(Float)
    centroid_lon: Mapped[float | None] = mapped_column(Float)
    radius_km: Mapped[float | None] = mapped_column(Float)
    start_time: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    end_time: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    duration_hours: Mapped[float | None] = mapped_column(Float)
    significance_score: Mapped[float | None] = mapped_column(Float, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)
