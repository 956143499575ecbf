from __future__ import annotations

import math

import numpy as np
import pytest

import quake_clusters.clustering as clustering
from quake_clusters.clustering import DisjointSet, find_clusters, find_groups_direct, find_groups_grid
from quake_clusters.spatial_grid import GridConstructionError
from quake_clusters.utils import EARTH_RADIUS_KM, haversine_km, haversine_km_to_many
from quake_clusters.validation import QuakeEvent


def _event(index: int, lat: float, lon: float, mag: float | None = 3.0) -> QuakeEvent:
    return QuakeEvent(
        id=f"ev{index:04d}",
        time=1_700_000_000_000 + index * 60_000,
        magnitude=mag,
        latitude=lat,
        longitude=lon,
    )


def _events(coords: list[tuple[float, float]]) -> list[QuakeEvent]:
    return [_event(i, lat, lon) for i, (lat, lon) in enumerate(coords)]


def _partition(groups: list[list[int]]) -> list[list[int]]:
    return sorted(sorted(group) for group in groups)


def _assert_same_partition(coords: list[tuple[float, float]], max_distance_km: float) -> None:
    lats = np.array([lat for lat, _ in coords], dtype=float)
    lons = np.array([lon for _, lon in coords], dtype=float)
    direct = find_groups_direct(lats, lons, max_distance_km)
    grid = find_groups_grid(lats, lons, max_distance_km)
    assert _partition(direct) == _partition(grid)


def test_disjoint_set_merges_transitively() -> None:
    components = DisjointSet(5)
    assert components.union(0, 1)
    assert components.union(1, 2)
    assert not components.union(0, 2)
    assert components.find(2) == components.find(0)
    assert _partition(components.groups()) == [[0, 1, 2], [3], [4]]


def test_three_nearby_events_cluster_and_far_event_is_dropped() -> None:
    events = _events([(37.00, -122.00), (37.01, -122.01), (37.02, -122.00), (41.5, -122.0)])
    groups = find_clusters(events, max_distance_km=10, min_quakes=2)
    assert groups == [[0, 1, 2]]


def test_no_events_returns_no_clusters() -> None:
    assert find_clusters([], max_distance_km=10, min_quakes=1) == []


def test_chain_is_one_cluster_even_when_ends_are_far_apart() -> None:
    # 0.4 degrees of latitude is roughly 44.5 km.
    coords = [(10.0 + 0.4 * i, 20.0) for i in range(6)]
    groups = find_clusters(_events(coords), max_distance_km=45, min_quakes=2)
    assert groups == [[0, 1, 2, 3, 4, 5]]
    assert haversine_km(*coords[0], *coords[-1]) > 45


def test_pair_exactly_at_threshold_is_connected() -> None:
    coords = [(0.0, 0.0), (0.0, 1.0)]
    distance = float(haversine_km_to_many(0.0, 0.0, np.array([0.0]), np.array([1.0]))[0])
    groups = find_clusters(_events(coords), max_distance_km=distance, min_quakes=2)
    assert groups == [[0, 1]]


def test_min_quakes_filters_small_groups() -> None:
    coords = [(0.0, 0.0), (0.0, 0.01), (5.0, 5.0), (5.0, 5.01), (5.01, 5.0)]
    assert find_clusters(_events(coords), max_distance_km=5, min_quakes=3) == [[2, 3, 4]]
    assert len(find_clusters(_events(coords), max_distance_km=5, min_quakes=1)) == 2


def test_unknown_strategy_is_rejected() -> None:
    with pytest.raises(ValueError):
        find_clusters(_events([(0.0, 0.0)]), max_distance_km=5, min_quakes=1, strategy="kdtree")


def test_grid_matches_direct_on_random_regional_events() -> None:
    rng = np.random.default_rng(7)
    lats = rng.uniform(30.0, 40.0, size=150)
    lons = rng.uniform(130.0, 145.0, size=150)
    _assert_same_partition(list(zip(lats.tolist(), lons.tolist())), max_distance_km=50)


def test_grid_matches_direct_on_dense_events() -> None:
    rng = np.random.default_rng(11)
    lats = rng.normal(-33.0, 0.8, size=400)
    lons = rng.normal(-71.0, 0.8, size=400)
    _assert_same_partition(list(zip(lats.tolist(), lons.tolist())), max_distance_km=15)


def test_grid_matches_direct_on_collinear_events() -> None:
    coords = [(-5.0 + 0.09 * i, 100.0) for i in range(120)]
    coords += [(12.0, -40.0 + 0.09 * i) for i in range(120)]
    _assert_same_partition(coords, max_distance_km=10)


def test_grid_matches_direct_on_cell_boundaries() -> None:
    # Rows step by exactly the angular threshold, so neighbours sit on edges.
    step = math.degrees(25.0 / EARTH_RADIUS_KM)
    coords = [(step * r, step * c) for r in range(12) for c in range(12)]
    _assert_same_partition(coords, max_distance_km=25)


def test_grid_matches_direct_across_antimeridian() -> None:
    coords = [(51.0 + 0.05 * (i % 4), 179.9 if i % 2 else -179.9) for i in range(120)]
    lats = np.array([lat for lat, _ in coords])
    lons = np.array([lon for _, lon in coords])
    groups = find_groups_grid(lats, lons, 30)
    assert len(groups) == 1
    _assert_same_partition(coords, max_distance_km=30)


def test_grid_matches_direct_near_the_pole() -> None:
    rng = np.random.default_rng(3)
    lats = rng.uniform(87.0, 89.9, size=150)
    lons = rng.uniform(-180.0, 180.0, size=150)
    _assert_same_partition(list(zip(lats.tolist(), lons.tolist())), max_distance_km=40)


def test_global_scatter_grid_matches_direct() -> None:
    rng = np.random.default_rng(19)
    lats = np.degrees(np.arcsin(rng.uniform(-1.0, 1.0, size=300)))
    lons = rng.uniform(-180.0, 180.0, size=300)
    _assert_same_partition(list(zip(lats.tolist(), lons.tolist())), max_distance_km=800)


def test_clusters_are_connected_and_maximal() -> None:
    rng = np.random.default_rng(5)
    coords = list(zip(rng.uniform(0.0, 3.0, 200).tolist(), rng.uniform(0.0, 3.0, 200).tolist()))
    threshold = 20.0
    groups = find_clusters(_events(coords), threshold, min_quakes=1)

    assert sorted(p for group in groups for p in group) == list(range(len(coords)))
    for group in groups:
        reached = {group[0]}
        frontier = [group[0]]
        while frontier:
            current = frontier.pop()
            for other in group:
                if other not in reached and haversine_km(*coords[current], *coords[other]) <= threshold:
                    reached.add(other)
                    frontier.append(other)
        assert reached == set(group)

    label = {p: g for g, group in enumerate(groups) for p in group}
    for i in range(len(coords)):
        for j in range(i + 1, len(coords)):
            if label[i] != label[j]:
                assert haversine_km(*coords[i], *coords[j]) > threshold


def test_grid_failure_falls_back_to_direct(monkeypatch, caplog) -> None:
    class _BrokenGrid:
        def __init__(self, *args, **kwargs) -> None:
            raise GridConstructionError("boom")

    rng = np.random.default_rng(23)
    coords = list(zip(rng.uniform(0.0, 2.0, 120).tolist(), rng.uniform(0.0, 2.0, 120).tolist()))
    events = _events(coords)
    expected = find_clusters(events, 25, min_quakes=2, strategy="direct")

    monkeypatch.setattr(clustering, "SpatialGrid", _BrokenGrid)
    with caplog.at_level("WARNING", logger="quake_clusters.clustering"):
        fallback = find_clusters(events, 25, min_quakes=2)

    assert fallback == expected
    assert "falling back" in caplog.text


def test_default_strategy_depends_on_event_count(caplog) -> None:
    small = _events([(0.0, 0.01 * i) for i in range(5)])
    with caplog.at_level("INFO", logger="quake_clusters.clustering"):
        find_clusters(small, 5, min_quakes=2, grid_min_events=5)
    assert "spatial grid" in caplog.text

    caplog.clear()
    with caplog.at_level("INFO", logger="quake_clusters.clustering"):
        find_clusters(small, 5, min_quakes=2, grid_min_events=6)
    assert "direct strategy" in caplog.text


def test_grid_matches_direct_for_pairs_across_the_pole() -> None:
    rng = np.random.default_rng(29)
    coords = [(89.5, 0.0), (88.0, 180.0)]
    coords += list(zip(rng.uniform(60.0, 70.0, 120).tolist(), rng.uniform(-180.0, 180.0, 120).tolist()))
    lats = np.array([lat for lat, _ in coords])
    lons = np.array([lon for _, lon in coords])
    groups = find_groups_grid(lats, lons, 300)
    assert any(0 in group and 1 in group for group in groups)
    _assert_same_partition(coords, max_distance_km=300)


def test_out_of_range_latitude_falls_back_to_direct() -> None:
    # Only reachable by calling the core directly; requests reject these.
    events = _events([(95.0, 0.0), (80.0, 180.0)])
    direct = find_clusters(events, 600, min_quakes=1, strategy="direct")
    grid = find_clusters(events, 600, min_quakes=1, strategy="grid")
    assert grid == direct == [[0, 1]]
