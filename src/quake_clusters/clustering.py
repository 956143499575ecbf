"""Connected-component clustering of earthquakes by great-circle distance.

Two events share an edge when their haversine distance is at most
``max_distance_km``; a cluster is a connected component of that graph.
Edges are discovered either by checking every pair or by checking only
pairs that share a neighbourhood in a ``SpatialGrid``. Both paths feed the
same ``DisjointSet`` and yield the same partition.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from .config import GRID_STRATEGY_MIN_EVENTS
from .logging_utils import get_logger
from .spatial_grid import SpatialGrid
from .utils import haversine_km_to_many
from .validation import QuakeEvent

DIRECT = "direct"
GRID = "grid"

logger = get_logger("quake_clusters.clustering")


class DisjointSet:
    """Union-find over positions ``0..size-1`` (path halving, union by size)."""

    def __init__(self, size: int) -> None:
        self.parent = list(range(size))
        self.size = [1] * size

    def find(self, item: int) -> int:
        parent = self.parent
        while parent[item] != item:
            parent[item] = parent[parent[item]]
            item = parent[item]
        return item

    def union(self, a: int, b: int) -> bool:
        root_a = self.find(a)
        root_b = self.find(b)
        if root_a == root_b:
            return False
        if self.size[root_a] < self.size[root_b]:
            root_a, root_b = root_b, root_a
        self.parent[root_b] = root_a
        self.size[root_a] += self.size[root_b]
        return True

    def groups(self) -> list[list[int]]:
        by_root: dict[int, list[int]] = {}
        for item in range(len(self.parent)):
            by_root.setdefault(self.find(item), []).append(item)
        return list(by_root.values())


def _coordinates(events: Sequence[QuakeEvent]) -> tuple[np.ndarray, np.ndarray]:
    lats = np.fromiter((event.latitude for event in events), dtype=float, count=len(events))
    lons = np.fromiter((event.longitude for event in events), dtype=float, count=len(events))
    return lats, lons


def find_groups_direct(lats: np.ndarray, lons: np.ndarray, max_distance_km: float) -> list[list[int]]:
    n = len(lats)
    components = DisjointSet(n)
    for i in range(n - 1):
        distances = haversine_km_to_many(lats[i], lons[i], lats[i + 1 :], lons[i + 1 :])
        for offset in np.flatnonzero(distances <= max_distance_km):
            components.union(i, i + 1 + int(offset))
    return components.groups()


def find_groups_grid(lats: np.ndarray, lons: np.ndarray, max_distance_km: float) -> list[list[int]]:
    grid = SpatialGrid(lats, lons, max_distance_km)
    logger.debug("Spatial grid built | %s", grid.stats())
    components = DisjointSet(len(lats))
    for i in range(len(lats)):
        candidates = grid.candidates_after(i)
        if candidates.size == 0:
            continue
        distances = haversine_km_to_many(lats[i], lons[i], lats[candidates], lons[candidates])
        for j in candidates[distances <= max_distance_km]:
            components.union(i, int(j))
    return components.groups()


def find_clusters(
    events: Sequence[QuakeEvent],
    max_distance_km: float,
    min_quakes: int,
    *,
    grid_min_events: int = GRID_STRATEGY_MIN_EVENTS,
    strategy: str | None = None,
) -> list[list[int]]:
    """Group event positions into clusters of at least ``min_quakes`` members.

    ``strategy`` forces ``"direct"`` or ``"grid"``; by default the grid is
    used once there are ``grid_min_events`` events. A failing grid run falls
    back to the direct strategy. Groups below ``min_quakes`` are dropped,
    not reported as singletons.
    """
    if not events:
        return []

    lats, lons = _coordinates(events)
    chosen = strategy or (GRID if len(events) >= grid_min_events else DIRECT)
    if chosen not in (DIRECT, GRID):
        raise ValueError(f"unknown clustering strategy: {chosen}")

    if chosen == GRID:
        logger.info("Using spatial grid strategy for %s earthquakes", len(events))
        try:
            groups = find_groups_grid(lats, lons, max_distance_km)
        except Exception:  # noqa: BLE001
            logger.warning(
                "Spatial grid strategy failed, falling back to direct strategy", exc_info=True
            )
            groups = find_groups_direct(lats, lons, max_distance_km)
    else:
        logger.info("Using direct strategy for %s earthquakes", len(events))
        groups = find_groups_direct(lats, lons, max_distance_km)

    kept = [group for group in groups if len(group) >= min_quakes]
    kept.sort(key=lambda group: group[0])
    logger.info(
        "Clustering found %s groups, kept %s with >= %s members",
        len(groups),
        len(kept),
        min_quakes,
    )
    return kept
