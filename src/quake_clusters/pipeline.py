from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from .config import Settings
from .db import build_engine, init_db
from .engine import ClusterEngine
from .ingest import fetch_geojson
from .logging_utils import get_logger
from .metrics import ClusterResult
from .persistence import BackgroundPersister, ClusterDefinitionStore
from .storage import frame_to_features, load_events_frame, upsert_events
from .summary_feed import build_cluster_summary, write_json
from .utils import json_dumps
from .validation import normalize_feature, validate_feed_shape


def run_pipeline(settings: Settings | None = None) -> dict[str, Any]:
    """Fetch the feed, store its events, re-cluster the lookback window."""
    settings = settings or Settings.from_env()
    logger = get_logger("quake_clusters.pipeline")
    run_started_at = datetime.now(tz=UTC)
    logger.info("Pipeline run started at %s", run_started_at.isoformat())

    payload = fetch_geojson(settings.source_url)
    feed_errors = validate_feed_shape(payload)
    if feed_errors:
        raise ValueError(f"Feed validation failed: {feed_errors}")

    session_factory = init_db(build_engine(settings.db_url))
    persister = BackgroundPersister(
        ClusterDefinitionStore(session_factory), max_workers=settings.persistence_workers
    )
    try:
        return _run_pipeline_txn(
            session_factory=session_factory,
            settings=settings,
            engine=ClusterEngine(settings, persister=persister),
            features=payload.get("features", []),
            now_utc=run_started_at,
        )
    finally:
        # A batch run drains its own background writes before exiting.
        persister.shutdown(wait=True)


def _run_pipeline_txn(
    *,
    session_factory: sessionmaker[Session],
    settings: Settings,
    engine: ClusterEngine,
    features: list[dict[str, Any]],
    now_utc: datetime,
) -> dict[str, Any]:
    logger = get_logger("quake_clusters.pipeline")
    accepted_records: list[dict[str, Any]] = []
    rejected: list[dict[str, Any]] = []
    seen_ids: set[str] = set()

    for index, feature in enumerate(features):
        result = normalize_feature(
            feature,
            now_utc=now_utc,
            max_event_age_days=settings.max_event_age_days,
        )
        if result.record is None:
            rejected.append(
                {
                    "index": index,
                    "id": feature.get("id") if isinstance(feature, dict) else None,
                    "errors": result.hard_errors,
                }
            )
            continue

        event_id = result.record["event_id"]
        if event_id in seen_ids:
            rejected.append({"index": index, "id": event_id, "errors": ["duplicate_event_id_within_batch"]})
            continue
        seen_ids.add(event_id)

        result.record["quality_passed"] = len(result.soft_warnings) == 0
        result.record["quality_issues"] = (
            json_dumps(result.soft_warnings) if result.soft_warnings else None
        )
        result.record["ingested_at"] = now_utc
        accepted_records.append(result.record)

    with session_factory() as session:
        new_count, updated_count = upsert_events(session, accepted_records)
        logger.info(
            "Upsert complete: accepted=%s rejected=%s new=%s updated=%s",
            len(accepted_records),
            len(rejected),
            new_count,
            updated_count,
        )
        events = load_events_frame(session, since_utc=now_utc - timedelta(hours=settings.lookback_hours))

    clusters: list[ClusterResult] = []
    if events.empty:
        logger.info("No earthquakes in the lookback window; skipping clustering")
    else:
        clusters = engine.calculate(
            {
                "earthquakes": frame_to_features(events),
                "maxDistanceKm": settings.cluster_max_distance_km,
                "minQuakes": settings.cluster_request_min_quakes,
                "lastFetchTime": now_utc.isoformat(),
                "timeWindowHours": settings.lookback_hours,
            }
        )

    summary = build_cluster_summary(
        now_utc=now_utc,
        source_url=settings.source_url,
        events=events,
        clusters=clusters,
        accepted_count=len(accepted_records),
        rejected_count=len(rejected),
        new_count=new_count,
        updated_count=updated_count,
        max_distance_km=settings.cluster_max_distance_km,
        min_quakes=settings.cluster_request_min_quakes,
    )
    write_json(summary, settings.summary_path)

    return {
        "status": "success",
        "accepted_count": len(accepted_records),
        "rejected_count": len(rejected),
        "new_count": new_count,
        "updated_count": updated_count,
        "cluster_count": len(clusters),
        "significant_cluster_count": sum(1 for cluster in clusters if cluster.is_significant),
        "summary_path": str(settings.summary_path),
        "rejected_examples": rejected[:20],
    }
