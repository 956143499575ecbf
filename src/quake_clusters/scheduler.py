from __future__ import annotations

from datetime import UTC, datetime

from apscheduler.schedulers.blocking import BlockingScheduler

from .config import Settings
from .logging_utils import configure_logging, get_logger
from .pipeline import run_pipeline


def build_scheduler(settings: Settings) -> BlockingScheduler:
    logger = get_logger("quake_clusters.scheduler")
    scheduler = BlockingScheduler(timezone="UTC")

    def _job() -> None:
        try:
            result = run_pipeline(settings)
            logger.info(
                "Run completed | accepted=%s rejected=%s clusters=%s significant=%s",
                result["accepted_count"],
                result["rejected_count"],
                result["cluster_count"],
                result["significant_cluster_count"],
            )
        except Exception:  # noqa: BLE001
            logger.exception("Scheduled pipeline job failed")

    scheduler.add_job(
        _job,
        trigger="interval",
        seconds=settings.refresh_interval_seconds,
        next_run_time=datetime.now(tz=UTC),
        max_instances=1,
        coalesce=True,
        id="cluster_pipeline",
    )
    return scheduler


def run_scheduler(settings: Settings | None = None) -> None:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    scheduler = build_scheduler(settings)
    get_logger("quake_clusters.scheduler").info(
        "Scheduler started | refresh interval = %s sec", settings.refresh_interval_seconds
    )
    scheduler.start()
