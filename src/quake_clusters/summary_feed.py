from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd

from .metrics import ClusterResult


def build_cluster_summary(
    *,
    now_utc: datetime,
    source_url: str,
    events: pd.DataFrame,
    clusters: list[ClusterResult],
    accepted_count: int,
    rejected_count: int,
    new_count: int,
    updated_count: int,
    max_distance_km: float,
    min_quakes: int,
    top_n: int = 10,
) -> dict[str, Any]:
    clustered_ids = {quake_id for cluster in clusters for quake_id in cluster.earthquake_ids}
    top_clusters = sorted(clusters, key=lambda item: item.significance_score, reverse=True)[:top_n]

    daily_counts: list[dict[str, Any]] = []
    if not events.empty:
        frame = events.copy()
        frame["time_utc"] = pd.to_datetime(frame["time_utc"], utc=True)
        frame["clustered"] = frame["event_id"].isin(clustered_ids)
        daily = (
            frame.assign(day_utc=frame["time_utc"].dt.floor("d"))
            .groupby("day_utc")
            .agg(event_count=("event_id", "size"), clustered=("clustered", "sum"))
            .reset_index()
            .tail(31)
        )
        daily_counts = [
            {"day_utc": row.day_utc.isoformat(), "count": int(row.event_count), "clustered": int(row.clustered)}
            for row in daily.itertuples()
        ]

    return {
        "generated_at_utc": now_utc.isoformat(),
        "source_feed_url": source_url,
        "parameters": {"maxDistanceKm": max_distance_km, "minQuakes": min_quakes},
        "quality": {
            "accepted_count": accepted_count,
            "rejected_count": rejected_count,
            "new_count": new_count,
            "updated_count": updated_count,
        },
        "cluster_stats": {
            "window_event_count": int(len(events)),
            "cluster_count": len(clusters),
            "significant_count": sum(1 for cluster in clusters if cluster.is_significant),
            "clustered_event_count": len(clustered_ids),
            "unclustered_event_count": max(int(len(events)) - len(clustered_ids), 0),
        },
        "clusters": [cluster.as_dict() for cluster in top_clusters],
        "trends": {"daily_counts": daily_counts},
    }


def write_json(data: dict[str, Any], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as file:
        json.dump(data, file, indent=2)
