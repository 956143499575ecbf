from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from .metrics import ClusterResult

STABLE_KEY_PREFIX = "overview_cluster"
UNKNOWN_LOCATION_SLUG = "unknown-location"
UNKNOWN_LOCATION_NAME = "Unknown Location"
MAX_LOCATION_SLUG_LENGTH = 50

_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")


def normalize_slug_part(text: str | None, max_length: int | None = None) -> str:
    """Lower-case, keep ``[a-z0-9-]``, hyphen-join words, collapse hyphens."""
    value = _DISALLOWED.sub("", (text or "").lower()).strip()
    value = _HYPHENS.sub("-", _WHITESPACE.sub("-", value))
    if max_length is not None:
        value = value[:max_length]
    return value.strip("-")


def stable_cluster_key(strongest_quake_id: str, quake_count: int) -> str:
    return f"{STABLE_KEY_PREFIX}_{strongest_quake_id}_{quake_count}"


def location_slug(location_name: str | None) -> str:
    return normalize_slug_part(location_name, MAX_LOCATION_SLUG_LENGTH) or UNKNOWN_LOCATION_SLUG


def _magnitude_text(max_magnitude: float | None) -> str:
    return f"{max_magnitude:.1f}" if max_magnitude is not None else "unknown"


def cluster_slug(
    quake_count: int,
    location_name: str | None,
    max_magnitude: float | None,
    strongest_quake_id: str,
) -> str:
    # The id goes in verbatim so distinct events never share a slug.
    return (
        f"{quake_count}-quakes-near-{location_slug(location_name)}"
        f"-up-to-m{_magnitude_text(max_magnitude)}-{strongest_quake_id}"
    )


def cluster_title(quake_count: int, location_name: str | None, max_magnitude: float | None) -> str:
    location = location_name or UNKNOWN_LOCATION_NAME
    return f"Cluster: {quake_count} events near {location}, max M{_magnitude_text(max_magnitude)}"


def cluster_description(
    quake_count: int,
    location_name: str | None,
    max_magnitude: float | None,
    duration_hours: float,
) -> str:
    location = location_name or UNKNOWN_LOCATION_NAME
    duration = f"approx {duration_hours:.1f} hours" if duration_hours > 0 else "a short period"
    return (
        f"A cluster of {quake_count} earthquakes occurred near {location}. "
        f"Strongest: M{_magnitude_text(max_magnitude)}. Duration: {duration}."
    )


def assign_identifiers(result: ClusterResult) -> ClusterResult:
    result.stable_key = stable_cluster_key(result.strongest_quake_id, result.quake_count)
    result.slug = cluster_slug(
        result.quake_count,
        result.location_name,
        result.max_magnitude,
        result.strongest_quake_id,
    )
    return result


def build_cluster_definition(result: ClusterResult, *, now_utc: datetime) -> dict[str, Any]:
    """Record handed to the persistence gateway for one significant cluster."""
    if result.stable_key is None or result.slug is None:
        assign_identifiers(result)
    min_depth, max_depth = result.depth_range
    return {
        "stable_key": result.stable_key,
        "slug": result.slug,
        "title": cluster_title(result.quake_count, result.location_name, result.max_magnitude),
        "description": cluster_description(
            result.quake_count,
            result.location_name,
            result.max_magnitude,
            result.duration_hours,
        ),
        "strongest_quake_id": result.strongest_quake_id,
        "earthquake_ids": list(result.earthquake_ids),
        "location_name": result.location_name,
        "quake_count": result.quake_count,
        "max_magnitude": result.max_magnitude,
        "mean_magnitude": result.mean_magnitude,
        "min_magnitude": result.min_magnitude,
        "depth_range": f"{min_depth:.1f}-{max_depth:.1f}km",
        "centroid_lat": result.centroid_lat,
        "centroid_lon": result.centroid_lon,
        "radius_km": result.radius_km,
        "start_time": int(result.start_time),
        "end_time": int(result.end_time),
        "duration_hours": result.duration_hours,
        "significance_score": result.significance_score,
        "updated_at": now_utc,
    }
