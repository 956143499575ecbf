from __future__ import annotations

from datetime import datetime
from typing import Any

import pandas as pd
from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from .models import EarthquakeEventRow

EVENT_FRAME_COLUMNS = [
    EarthquakeEventRow.event_id,
    EarthquakeEventRow.time_ms,
    EarthquakeEventRow.time_utc,
    EarthquakeEventRow.longitude,
    EarthquakeEventRow.latitude,
    EarthquakeEventRow.depth_km,
    EarthquakeEventRow.mag,
    EarthquakeEventRow.place,
    EarthquakeEventRow.event_type,
]


def upsert_events(session: Session, records: list[dict[str, Any]]) -> tuple[int, int]:
    if not records:
        return (0, 0)

    ids = [record["event_id"] for record in records]
    existing_ids = set(
        session.scalars(
            select(EarthquakeEventRow.event_id).where(EarthquakeEventRow.event_id.in_(ids))
        ).all()
    )
    new_count = sum(1 for event_id in ids if event_id not in existing_ids)
    updated_count = len(ids) - new_count

    dialect_name = session.bind.dialect.name if session.bind is not None else ""
    if dialect_name == "sqlite":
        # SQLite caps bound variables per statement, so large batches are chunked.
        columns_per_row = len(EarthquakeEventRow.__table__.columns)
        max_rows_per_chunk = max(1, 900 // max(columns_per_row, 1))
        for i in range(0, len(records), max_rows_per_chunk):
            chunk = records[i : i + max_rows_per_chunk]
            stmt = sqlite_insert(EarthquakeEventRow).values(chunk)
            update_map = {
                col.name: getattr(stmt.excluded, col.name)
                for col in EarthquakeEventRow.__table__.columns
                if col.name != "event_id"
            }
            stmt = stmt.on_conflict_do_update(
                index_elements=[EarthquakeEventRow.event_id], set_=update_map
            )
            session.execute(stmt)
    else:
        for record in records:
            session.merge(EarthquakeEventRow(**record))
    session.commit()
    return (new_count, updated_count)


def load_events_frame(session: Session, *, since_utc: datetime | None = None) -> pd.DataFrame:
    stmt = select(*EVENT_FRAME_COLUMNS).order_by(EarthquakeEventRow.time_ms)
    if since_utc is not None:
        stmt = stmt.where(EarthquakeEventRow.time_utc >= since_utc)
    rows = session.execute(stmt).mappings().all()
    if not rows:
        return pd.DataFrame(columns=[col.key for col in EVENT_FRAME_COLUMNS])
    frame = pd.DataFrame(rows)
    frame["time_utc"] = pd.to_datetime(frame["time_utc"], utc=True)
    return frame


def frame_to_features(frame: pd.DataFrame) -> list[dict[str, Any]]:
    """Render stored events as GeoJSON-style features for the cluster engine."""
    features: list[dict[str, Any]] = []
    for row in frame.itertuples():
        features.append(
            {
                "id": str(row.event_id),
                "properties": {
                    "time": int(row.time_ms),
                    "mag": float(row.mag) if pd.notna(row.mag) else None,
                    "place": row.place if isinstance(row.place, str) else None,
                },
                "geometry": {
                    "type": "Point",
                    "coordinates": [
                        float(row.longitude),
                        float(row.latitude),
                        float(row.depth_km) if pd.notna(row.depth_km) else 0.0,
                    ],
                },
            }
        )
    return features
