from __future__ import annotations

import quake_clusters.scheduler as scheduler_module
from quake_clusters.config import Settings


def test_build_scheduler_registers_single_interval_job() -> None:
    scheduler = scheduler_module.build_scheduler(Settings(refresh_interval_seconds=120))
    job = scheduler.get_job("cluster_pipeline")
    assert job is not None
    assert job.max_instances == 1
    assert job.coalesce is True
    assert job.trigger.interval.total_seconds() == 120


def test_failed_run_is_logged_not_raised(monkeypatch, caplog) -> None:
    def _fail(settings):
        raise ConnectionError("feed unreachable")

    monkeypatch.setattr(scheduler_module, "run_pipeline", _fail)
    scheduler = scheduler_module.build_scheduler(Settings())
    job = scheduler.get_job("cluster_pipeline")
    with caplog.at_level("ERROR", logger="quake_clusters.scheduler"):
        job.func()
    assert "Scheduled pipeline job failed" in caplog.text
