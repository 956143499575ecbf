from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Significance thresholds. These never come from a clustering request.
CLUSTER_MIN_QUAKES = 3
DEFINED_CLUSTER_MIN_MAGNITUDE = 4.5

# Inputs at or above this size use the spatial-grid strategy.
GRID_STRATEGY_MIN_EVENTS = 100

USGS_DAY_FEED_URL = "https://earthquake.usgs.gov/earthquakes/feed/v1.0/summary/all_day.geojson"


@dataclass(frozen=True)
class Settings:
    source_url: str = USGS_DAY_FEED_URL
    db_url: str = "sqlite:///quake_clusters.db"
    summary_path: Path = Path("output/cluster_summary.json")
    refresh_interval_seconds: int = 300
    cluster_max_distance_km: float = 100.0
    cluster_request_min_quakes: int = 3
    cluster_min_quakes: int = CLUSTER_MIN_QUAKES
    defined_cluster_min_magnitude: float = DEFINED_CLUSTER_MIN_MAGNITUDE
    grid_strategy_min_events: int = GRID_STRATEGY_MIN_EVENTS
    lookback_hours: int = 720
    max_event_age_days: int = 45
    persistence_workers: int = 2
    cluster_cache_ttl_seconds: float = 0.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        settings = cls(
            source_url=os.getenv("EARTHQUAKE_SOURCE_URL", USGS_DAY_FEED_URL),
            db_url=os.getenv("QUAKE_CLUSTERS_DB_URL", "sqlite:///quake_clusters.db"),
            summary_path=Path(os.getenv("SUMMARY_PATH", "output/cluster_summary.json")),
            refresh_interval_seconds=int(os.getenv("REFRESH_INTERVAL_SECONDS", "300")),
            cluster_max_distance_km=float(os.getenv("CLUSTER_MAX_DISTANCE_KM", "100")),
            cluster_request_min_quakes=int(os.getenv("CLUSTER_REQUEST_MIN_QUAKES", "3")),
            cluster_min_quakes=int(os.getenv("CLUSTER_MIN_QUAKES", str(CLUSTER_MIN_QUAKES))),
            defined_cluster_min_magnitude=float(
                os.getenv("DEFINED_CLUSTER_MIN_MAGNITUDE", str(DEFINED_CLUSTER_MIN_MAGNITUDE))
            ),
            grid_strategy_min_events=int(
                os.getenv("GRID_STRATEGY_MIN_EVENTS", str(GRID_STRATEGY_MIN_EVENTS))
            ),
            lookback_hours=int(os.getenv("LOOKBACK_HOURS", "720")),
            max_event_age_days=int(os.getenv("MAX_EVENT_AGE_DAYS", "45")),
            persistence_workers=int(os.getenv("PERSISTENCE_WORKERS", "2")),
            cluster_cache_ttl_seconds=float(os.getenv("CLUSTER_CACHE_TTL_SECONDS", "0")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
        settings.summary_path.parent.mkdir(parents=True, exist_ok=True)
        return settings
