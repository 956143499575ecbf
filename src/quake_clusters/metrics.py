from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np

from .utils import MS_PER_HOUR, haversine_km_to_many
from .validation import QuakeEvent


@dataclass
class ClusterResult:
    earthquake_ids: list[str]
    quake_count: int
    max_magnitude: float | None
    mean_magnitude: float | None
    min_magnitude: float | None
    depth_range: tuple[float, float]
    centroid_lat: float
    centroid_lon: float
    radius_km: float
    start_time: float
    end_time: float
    duration_hours: float
    strongest_quake_id: str
    location_name: str | None
    significance_score: float = 0.0
    is_significant: bool = False
    stable_key: str | None = None
    slug: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "earthquakeIds": list(self.earthquake_ids),
            "quakeCount": self.quake_count,
            "maxMagnitude": self.max_magnitude,
            "meanMagnitude": self.mean_magnitude,
            "minMagnitude": self.min_magnitude,
            "depthRange": list(self.depth_range),
            "centroidLat": self.centroid_lat,
            "centroidLon": self.centroid_lon,
            "radiusKm": self.radius_km,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "durationHours": self.duration_hours,
            "strongestQuakeId": self.strongest_quake_id,
            "locationName": self.location_name,
            "significanceScore": self.significance_score,
            "isSignificant": self.is_significant,
            "stableKey": self.stable_key,
            "slug": self.slug,
        }


def _strength_key(event: QuakeEvent) -> tuple[float, float, str]:
    # Highest magnitude first, then earliest time, then lowest id.
    magnitude = event.magnitude if event.magnitude is not None else float("-inf")
    return (-magnitude, event.time, event.id)


def strongest_event(members: Sequence[QuakeEvent]) -> QuakeEvent:
    if not members:
        raise ValueError("cannot pick the strongest event of an empty cluster")
    return min(members, key=_strength_key)


def compute_cluster_metrics(events: Sequence[QuakeEvent], positions: Sequence[int]) -> ClusterResult:
    """Aggregate statistics for the events at ``positions``.

    Magnitude stats skip events without a magnitude and are ``None`` when no
    member has one. The centroid is the plain mean of member coordinates and
    ``radius_km`` the largest centroid-to-member great-circle distance.
    """
    if not positions:
        raise ValueError("cluster group is empty")
    members = [events[position] for position in positions]

    lats = np.array([event.latitude for event in members], dtype=float)
    lons = np.array([event.longitude for event in members], dtype=float)
    depths = np.array([event.depth_km for event in members], dtype=float)
    times = np.array([event.time for event in members], dtype=float)
    mags = np.array(
        [event.magnitude for event in members if event.magnitude is not None], dtype=float
    )

    centroid_lat = float(lats.mean())
    centroid_lon = float(lons.mean())
    radius_km = float(haversine_km_to_many(centroid_lat, centroid_lon, lats, lons).max())

    start_time = float(times.min())
    end_time = float(times.max())
    strongest = strongest_event(members)

    return ClusterResult(
        earthquake_ids=[event.id for event in members],
        quake_count=len(members),
        max_magnitude=float(mags.max()) if mags.size else None,
        mean_magnitude=float(mags.mean()) if mags.size else None,
        min_magnitude=float(mags.min()) if mags.size else None,
        depth_range=(float(depths.min()), float(depths.max())),
        centroid_lat=centroid_lat,
        centroid_lon=centroid_lon,
        radius_km=radius_km,
        start_time=start_time,
        end_time=end_time,
        duration_hours=(end_time - start_time) / MS_PER_HOUR,
        strongest_quake_id=strongest.id,
        location_name=strongest.place,
    )
