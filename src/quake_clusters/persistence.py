from __future__ import annotations

import json
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, sessionmaker

from .logging_utils import get_logger
from .models import ClusterDefinition
from .utils import json_dumps

logger = get_logger("quake_clusters.persistence")

# Columns an overwrite must leave alone.
_INSERT_ONLY_COLUMNS = {"stable_key", "created_at", "version"}


class ClusterDefinitionStore:
    """Upsert-by-stable-key store for significant cluster definitions.

    Writes are last-write-wins: every upsert overwrites the row's content,
    bumps ``version`` and refreshes ``updated_at`` even when nothing changed.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    def upsert(self, stable_key: str, record: dict[str, Any]) -> None:
        now_utc = self._clock()
        values = {
            **record,
            "stable_key": stable_key,
            "earthquake_ids": json_dumps(list(record.get("earthquake_ids") or [])),
            "updated_at": now_utc,
            "created_at": now_utc,
            "version": 1,
        }
        with self._session_factory() as session:
            dialect_name = session.bind.dialect.name if session.bind is not None else ""
            if dialect_name == "sqlite":
                stmt = sqlite_insert(ClusterDefinition).values(values)
                update_map: dict[str, Any] = {
                    name: getattr(stmt.excluded, name)
                    for name in values
                    if name not in _INSERT_ONLY_COLUMNS
                }
                update_map["version"] = ClusterDefinition.version + 1
                stmt = stmt.on_conflict_do_update(
                    index_elements=[ClusterDefinition.stable_key], set_=update_map
                )
                session.execute(stmt)
            else:
                existing = session.scalars(
                    select(ClusterDefinition).where(ClusterDefinition.stable_key == stable_key)
                ).first()
                if existing is None:
                    session.add(ClusterDefinition(**values))
                else:
                    for name, value in values.items():
                        if name not in _INSERT_ONLY_COLUMNS:
                            setattr(existing, name, value)
                    existing.version = (existing.version or 1) + 1
            session.commit()

    def get_by_stable_key(self, stable_key: str) -> ClusterDefinition | None:
        with self._session_factory() as session:
            return session.scalars(
                select(ClusterDefinition).where(ClusterDefinition.stable_key == stable_key)
            ).first()

    def get_by_slug(self, slug: str) -> ClusterDefinition | None:
        with self._session_factory() as session:
            return session.scalars(
                select(ClusterDefinition).where(ClusterDefinition.slug == slug)
            ).first()

    def list_recent(self, limit: int = 50) -> list[ClusterDefinition]:
        with self._session_factory() as session:
            stmt = (
                select(ClusterDefinition)
                .order_by(ClusterDefinition.updated_at.desc(), ClusterDefinition.definition_id.desc())
                .limit(limit)
            )
            return list(session.scalars(stmt).all())


def definition_as_dict(row: ClusterDefinition) -> dict[str, Any]:
    return {
        "stableKey": row.stable_key,
        "slug": row.slug,
        "title": row.title,
        "description": row.description,
        "strongestQuakeId": row.strongest_quake_id,
        "earthquakeIds": json.loads(row.earthquake_ids or "[]"),
        "locationName": row.location_name,
        "quakeCount": row.quake_count,
        "maxMagnitude": row.max_magnitude,
        "meanMagnitude": row.mean_magnitude,
        "minMagnitude": row.min_magnitude,
        "depthRange": row.depth_range,
        "centroidLat": row.centroid_lat,
        "centroidLon": row.centroid_lon,
        "radiusKm": row.radius_km,
        "startTime": row.start_time,
        "endTime": row.end_time,
        "durationHours": row.duration_hours,
        "significanceScore": row.significance_score,
        "version": row.version,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


class BackgroundPersister:
    """Runs store upserts on worker threads; callers never wait on them."""

    def __init__(self, store: ClusterDefinitionStore, *, max_workers: int = 2) -> None:
        self._store = store
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix="cluster-persist"
        )

    @property
    def store(self) -> ClusterDefinitionStore:
        return self._store

    def submit(self, stable_key: str, record: dict[str, Any]) -> Future[bool]:
        return self._executor.submit(self._upsert, stable_key, record)

    def _upsert(self, stable_key: str, record: dict[str, Any]) -> bool:
        try:
            self._store.upsert(stable_key, record)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to store cluster definition stable_key=%s", stable_key)
            return False
        logger.info("Stored cluster definition stable_key=%s slug=%s", stable_key, record.get("slug"))
        return True

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
