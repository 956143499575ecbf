from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .config import Settings
from .db import build_engine, init_db
from .engine import ClusterEngine, ClusterEngineError
from .ingest import load_cluster_request
from .logging_utils import configure_logging
from .persistence import BackgroundPersister, ClusterDefinitionStore, definition_as_dict
from .pipeline import run_pipeline
from .scheduler import run_scheduler
from .validation import ClusterRequestError


def run_pipeline_command() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    result = run_pipeline(settings)
    print(json.dumps(result, indent=2))


def run_scheduler_command() -> None:
    run_scheduler(Settings.from_env())


def calculate_command(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Cluster the earthquakes in a JSON request file.")
    parser.add_argument("request", type=Path, help="JSON file with earthquakes, maxDistanceKm, minQuakes")
    parser.add_argument("--no-persist", action="store_true", help="skip storing significant clusters")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    persister = None
    if not args.no_persist:
        session_factory = init_db(build_engine(settings.db_url))
        persister = BackgroundPersister(
            ClusterDefinitionStore(session_factory), max_workers=settings.persistence_workers
        )
    engine = ClusterEngine(settings, persister=persister)
    try:
        clusters = engine.calculate(load_cluster_request(args.request))
    except ClusterRequestError as exc:
        print(json.dumps(exc.as_dict(), indent=2), file=sys.stderr)
        return 2
    except ClusterEngineError as exc:
        print(json.dumps({"error": "Internal server error", "details": str(exc)}), file=sys.stderr)
        return 1
    finally:
        if persister is not None:
            persister.shutdown(wait=True)

    print(json.dumps([cluster.as_dict() for cluster in clusters], indent=2))
    return 0


def show_cluster_command(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Print a stored cluster definition.")
    parser.add_argument("slug", help="cluster slug or stable key")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    store = ClusterDefinitionStore(init_db(build_engine(settings.db_url)))
    row = store.get_by_slug(args.slug) or store.get_by_stable_key(args.slug)
    if row is None:
        print(f"Cluster definition for {args.slug} not found.", file=sys.stderr)
        return 1
    print(json.dumps(definition_as_dict(row), indent=2))
    return 0


def calculate_main() -> None:
    sys.exit(calculate_command())


def show_cluster_main() -> None:
    sys.exit(show_cluster_command())
