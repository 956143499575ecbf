"""Clustering request orchestration.

``ClusterEngine.calculate`` validates a request, clusters its events,
computes per-cluster metrics, flags significant clusters and hands their
definitions to a ``BackgroundPersister`` without waiting on it. Every
cluster that meets the request's ``minQuakes`` is returned, significant or
not.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from .cache import ClusterResultCache, request_fingerprint
from .clustering import find_clusters
from .config import Settings
from .logging_utils import get_logger
from .metrics import ClusterResult, compute_cluster_metrics
from .persistence import BackgroundPersister
from .significance import classify
from .slugs import assign_identifiers, build_cluster_definition
from .validation import ClusterRequest, QuakeEvent, validate_cluster_request

logger = get_logger("quake_clusters.engine")


class ClusterEngineError(RuntimeError):
    """Clustering failed for a reason that is not the caller's fault."""


def drop_duplicate_events(events: list[QuakeEvent]) -> list[QuakeEvent]:
    seen: set[str] = set()
    unique: list[QuakeEvent] = []
    for event in events:
        if event.id in seen:
            continue
        seen.add(event.id)
        unique.append(event)
    if len(unique) != len(events):
        logger.warning("Dropped %s duplicate earthquake ids", len(events) - len(unique))
    return unique


class ClusterEngine:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        persister: BackgroundPersister | None = None,
        cache: ClusterResultCache | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.persister = persister
        if cache is None and self.settings.cluster_cache_ttl_seconds > 0:
            cache = ClusterResultCache(self.settings.cluster_cache_ttl_seconds)
        self.cache = cache

    def calculate(self, payload: Any) -> list[ClusterResult]:
        request = validate_cluster_request(payload)
        return self.calculate_request(request)

    def calculate_request(self, request: ClusterRequest) -> list[ClusterResult]:
        events = drop_duplicate_events(request.events)
        cache_key = None
        if self.cache is not None:
            cache_key = request_fingerprint(
                ClusterRequest(events, request.max_distance_km, request.min_quakes)
            )
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info("Cluster cache hit for %s earthquakes", len(events))
                return cached

        try:
            results = self._compute(events, request.max_distance_km, request.min_quakes)
        except Exception as exc:
            logger.exception("Cluster calculation failed for %s earthquakes", len(events))
            raise ClusterEngineError(f"cluster calculation failed: {exc}") from exc

        self._schedule_persistence(results)
        if self.cache is not None and cache_key is not None:
            self.cache.put(cache_key, results)
        return results

    def _compute(
        self, events: list[QuakeEvent], max_distance_km: float, min_quakes: int
    ) -> list[ClusterResult]:
        groups = find_clusters(
            events,
            max_distance_km,
            min_quakes,
            grid_min_events=self.settings.grid_strategy_min_events,
        )
        results: list[ClusterResult] = []
        for positions in groups:
            result = classify(
                compute_cluster_metrics(events, positions),
                min_quakes=self.settings.cluster_min_quakes,
                min_magnitude=self.settings.defined_cluster_min_magnitude,
            )
            if result.is_significant:
                assign_identifiers(result)
            results.append(result)
        return results

    def _schedule_persistence(self, results: list[ClusterResult]) -> None:
        significant = [result for result in results if result.is_significant]
        logger.info(
            "Calculated %s clusters, %s significant", len(results), len(significant)
        )
        if not significant:
            return
        if self.persister is None:
            logger.debug("No persistence gateway configured; skipping %s definitions", len(significant))
            return
        now_utc = datetime.now(tz=UTC)
        for result in significant:
            record = build_cluster_definition(result, now_utc=now_utc)
            try:
                self.persister.submit(record["stable_key"], record)
            except RuntimeError:
                # Executor already shut down.
                logger.exception("Could not schedule cluster definition %s", record["stable_key"])
