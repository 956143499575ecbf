from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from quake_clusters.db import build_engine, init_db
from quake_clusters.persistence import BackgroundPersister, ClusterDefinitionStore, definition_as_dict


class _StepClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + timedelta(minutes=5)
        return current


def _record(**overrides) -> dict:
    record = {
        "slug": "4-quakes-near-somewhere-up-to-m4.8-ci100",
        "title": "Cluster: 4 events near Somewhere, max M4.8",
        "description": "A cluster of 4 earthquakes occurred near Somewhere.",
        "strongest_quake_id": "ci100",
        "earthquake_ids": ["ci100", "ci101", "ci102", "ci103"],
        "location_name": "Somewhere",
        "quake_count": 4,
        "max_magnitude": 4.8,
        "mean_magnitude": 3.6,
        "min_magnitude": 2.9,
        "depth_range": "3.0-9.0km",
        "centroid_lat": 34.0,
        "centroid_lon": -117.0,
        "radius_km": 6.5,
        "start_time": 1_700_000_000_000,
        "end_time": 1_700_003_600_000,
        "duration_hours": 1.0,
        "significance_score": 52.0,
    }
    record.update(overrides)
    return record


@pytest.fixture()
def session_factory(tmp_path):
    return init_db(build_engine(f"sqlite:///{tmp_path / 'clusters.db'}"))


def test_upsert_inserts_then_overwrites_and_bumps_version(session_factory) -> None:
    clock = _StepClock(datetime(2026, 3, 1, 12, 0))
    store = ClusterDefinitionStore(session_factory, clock=clock)
    key = "overview_cluster_ci100_4"

    store.upsert(key, _record())
    first = store.get_by_stable_key(key)
    assert first is not None
    assert first.version == 1
    assert first.created_at == datetime(2026, 3, 1, 12, 0)

    store.upsert(key, _record(significance_score=53.0, earthquake_ids=["ci100", "ci101", "ci102", "ci104"]))
    second = store.get_by_stable_key(key)
    assert second.version == 2
    assert second.significance_score == 53.0
    assert second.created_at == datetime(2026, 3, 1, 12, 0)
    assert second.updated_at == datetime(2026, 3, 1, 12, 5)
    assert definition_as_dict(second)["earthquakeIds"][-1] == "ci104"


def test_identical_upsert_still_refreshes_updated_at(session_factory) -> None:
    store = ClusterDefinitionStore(session_factory, clock=_StepClock(datetime(2026, 3, 1)))
    store.upsert("k", _record())
    store.upsert("k", _record())
    row = store.get_by_stable_key("k")
    assert row.version == 2
    assert row.updated_at > row.created_at


def test_lookup_by_slug_and_recent_listing(session_factory) -> None:
    store = ClusterDefinitionStore(session_factory, clock=_StepClock(datetime(2026, 3, 1)))
    store.upsert("a", _record(slug="slug-a"))
    store.upsert("b", _record(slug="slug-b"))
    assert store.get_by_slug("slug-b").stable_key == "b"
    assert store.get_by_slug("missing") is None
    assert [row.stable_key for row in store.list_recent(limit=5)] == ["b", "a"]


def test_background_persister_writes_off_thread(session_factory) -> None:
    persister = BackgroundPersister(ClusterDefinitionStore(session_factory), max_workers=2)
    future = persister.submit("overview_cluster_ci100_4", _record())
    persister.shutdown(wait=True)
    assert future.result() is True
    assert persister.store.get_by_stable_key("overview_cluster_ci100_4") is not None


def test_background_persister_logs_store_failures(caplog) -> None:
    class _FailingStore:
        def upsert(self, stable_key: str, record: dict) -> None:
            raise RuntimeError("database is locked")

    persister = BackgroundPersister(_FailingStore(), max_workers=1)
    with caplog.at_level("ERROR", logger="quake_clusters.persistence"):
        future = persister.submit("k", _record())
        assert future.result(timeout=5) is False
    persister.shutdown(wait=True)
    assert "Failed to store cluster definition stable_key=k" in caplog.text
