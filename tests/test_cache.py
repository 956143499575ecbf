from __future__ import annotations

from dataclasses import replace

from quake_clusters.cache import ClusterResultCache, request_fingerprint
from quake_clusters.metrics import compute_cluster_metrics
from quake_clusters.validation import ClusterRequest, QuakeEvent


def _events() -> list[QuakeEvent]:
    return [
        QuakeEvent(id="a", time=1.0, magnitude=3.0, latitude=1.0, longitude=1.0),
        QuakeEvent(id="b", time=2.0, magnitude=None, latitude=1.01, longitude=1.0),
    ]


def test_fingerprint_ignores_event_order_but_not_parameters() -> None:
    events = _events()
    base = request_fingerprint(ClusterRequest(events, 10.0, 2))
    assert request_fingerprint(ClusterRequest(list(reversed(events)), 10.0, 2)) == base
    assert request_fingerprint(ClusterRequest(events, 11.0, 2)) != base
    assert request_fingerprint(ClusterRequest(events, 10.0, 3)) != base


def test_entries_expire_after_ttl() -> None:
    now = [100.0]
    cache = ClusterResultCache(30.0, clock=lambda: now[0])
    results = [compute_cluster_metrics(_events(), [0, 1])]

    cache.put("key", results)
    now[0] = 129.0
    assert cache.get("key")[0].earthquake_ids == ["a", "b"]
    now[0] = 131.0
    assert cache.get("key") is None


def test_cached_results_are_copies() -> None:
    cache = ClusterResultCache(30.0, clock=lambda: 0.0)
    results = [compute_cluster_metrics(_events(), [0, 1])]
    cache.put("key", results)
    results[0].slug = "changed"

    cached = cache.get("key")
    assert cached[0].slug is None
    cached[0].slug = "changed again"
    assert cache.get("key")[0].slug is None

    cache.clear()
    assert cache.get("key") is None


def test_fingerprint_covers_place_and_depth() -> None:
    events = _events()
    base = request_fingerprint(ClusterRequest(events, 10.0, 2))
    moved = [replace(events[0], place="Somewhere Else"), events[1]]
    deeper = [replace(events[0], depth_km=300.0), events[1]]
    assert request_fingerprint(ClusterRequest(moved, 10.0, 2)) != base
    assert request_fingerprint(ClusterRequest(deeper, 10.0, 2)) != base


def test_put_purges_expired_entries() -> None:
    now = [0.0]
    cache = ClusterResultCache(1.0, clock=lambda: now[0])
    for i in range(1000):
        now[0] = i * 10.0
        cache.put(f"key{i}", [])
    assert len(cache) == 1
    assert cache.get("key999") == []


def test_oldest_entries_are_evicted_past_the_cap() -> None:
    cache = ClusterResultCache(60.0, max_entries=3, clock=lambda: 0.0)
    for key in ("a", "b", "c", "d"):
        cache.put(key, [])
    assert len(cache) == 3
    assert cache.get("a") is None
    assert cache.get("d") == []
