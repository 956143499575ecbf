from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from .utils import epoch_ms_to_dt, is_finite_number, to_float


REQUIRED_PROPERTIES = {
    "place",
    "status",
    "time",
    "type",
    "updated",
}


class ClusterRequestError(ValueError):
    """A clustering request the caller got wrong; nothing was computed."""

    def __init__(
        self,
        reason: str,
        message: str,
        *,
        index: int | None = None,
        field: str | None = None,
        event_id: Any = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.index = index
        self.field = field
        self.event_id = event_id

    def as_dict(self) -> dict[str, Any]:
        return {
            "error": str(self),
            "reason": self.reason,
            "index": self.index,
            "field": self.field,
            "eventId": self.event_id,
        }


@dataclass(frozen=True)
class QuakeEvent:
    id: str
    time: float
    magnitude: float | None
    latitude: float
    longitude: float
    depth_km: float = 0.0
    place: str | None = None


@dataclass(frozen=True)
class ClusterRequest:
    events: list[QuakeEvent]
    max_distance_km: float
    min_quakes: int
    last_fetch_time: Any = None
    time_window_hours: Any = None


@dataclass
class NormalizationResult:
    record: dict[str, Any] | None
    hard_errors: list[str]
    soft_warnings: list[str]


def _event_error(reason: str, index: int, field: str, detail: str, event_id: Any = None) -> ClusterRequestError:
    label = f"index {index}" if event_id is None else f"index {index} (id: {event_id})"
    return ClusterRequestError(
        reason,
        f"Invalid earthquake at {label}: {detail}",
        index=index,
        field=field,
        event_id=event_id,
    )


def parse_event(feature: Any, index: int) -> QuakeEvent:
    """Turn one GeoJSON-style feature into a ``QuakeEvent`` or raise."""
    if not isinstance(feature, dict):
        raise _event_error("event_not_object", index, "event", "not an object.")

    event_id = feature.get("id")
    if event_id is None or event_id == "":
        raise _event_error("missing_id", index, "id", "missing 'id' property.")

    geometry = feature.get("geometry")
    if not isinstance(geometry, dict):
        raise _event_error(
            "invalid_geometry", index, "geometry", "missing or invalid 'geometry' object.", event_id
        )
    coords = geometry.get("coordinates")
    if (
        not isinstance(coords, (list, tuple))
        or len(coords) < 2
        or not is_finite_number(coords[0])
        or not is_finite_number(coords[1])
    ):
        raise _event_error(
            "invalid_coordinates",
            index,
            "geometry.coordinates",
            "'geometry.coordinates' must be an array of at least 2 finite numbers.",
            event_id,
        )
    if not (-180 <= coords[0] <= 180 and -90 <= coords[1] <= 90):
        raise _event_error(
            "invalid_coordinates",
            index,
            "geometry.coordinates",
            "longitude must be within [-180, 180] and latitude within [-90, 90].",
            event_id,
        )

    props = feature.get("properties")
    if not isinstance(props, dict):
        raise _event_error(
            "invalid_properties", index, "properties", "missing or invalid 'properties' object.", event_id
        )
    event_time = props.get("time")
    if not is_finite_number(event_time):
        raise _event_error(
            "invalid_time", index, "properties.time", "'properties.time' must be a number.", event_id
        )

    depth = to_float(coords[2]) if len(coords) >= 3 else None
    mag = to_float(props.get("mag"))
    place = props.get("place")
    return QuakeEvent(
        id=str(event_id),
        time=float(event_time),
        magnitude=mag if mag is not None and is_finite_number(mag) else None,
        latitude=float(coords[1]),
        longitude=float(coords[0]),
        depth_km=depth if depth is not None and is_finite_number(depth) else 0.0,
        place=str(place) if place else None,
    )


def validate_cluster_request(payload: Any) -> ClusterRequest:
    """Validate a raw clustering request and fail on the first problem found."""
    if not isinstance(payload, dict):
        raise ClusterRequestError("payload_not_object", "Invalid request payload: not an object.")

    earthquakes = payload.get("earthquakes")
    if not isinstance(earthquakes, list):
        raise ClusterRequestError(
            "earthquakes_not_list",
            "Invalid earthquakes payload: not an array.",
            field="earthquakes",
        )
    if not earthquakes:
        raise ClusterRequestError(
            "earthquakes_empty",
            "Earthquakes array is empty, no clusters to calculate.",
            field="earthquakes",
        )

    events = [parse_event(feature, index) for index, feature in enumerate(earthquakes)]

    max_distance_km = payload.get("maxDistanceKm")
    if not is_finite_number(max_distance_km) or max_distance_km <= 0:
        raise ClusterRequestError(
            "invalid_max_distance_km",
            "Invalid maxDistanceKm: must be a finite number greater than 0.",
            field="maxDistanceKm",
        )

    min_quakes = payload.get("minQuakes")
    if not is_finite_number(min_quakes) or min_quakes < 1 or int(min_quakes) != min_quakes:
        raise ClusterRequestError(
            "invalid_min_quakes",
            "Invalid minQuakes: must be an integer of at least 1.",
            field="minQuakes",
        )

    return ClusterRequest(
        events=events,
        max_distance_km=float(max_distance_km),
        min_quakes=int(min_quakes),
        last_fetch_time=payload.get("lastFetchTime"),
        time_window_hours=payload.get("timeWindowHours"),
    )


def validate_feed_shape(payload: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    if payload.get("type") != "FeatureCollection":
        errors.append("payload.type is not FeatureCollection")
    if not isinstance(payload.get("features"), list):
        errors.append("payload.features is not a list")
    if "metadata" not in payload:
        errors.append("payload.metadata missing")
    return errors


def normalize_feature(
    feature: dict[str, Any],
    *,
    now_utc: datetime | None = None,
    max_event_age_days: int = 45,
) -> NormalizationResult:
    """Normalise one feed feature into an ``earthquake_events`` row."""
    now_utc = now_utc or datetime.now(tz=UTC)
    hard_errors: list[str] = []
    soft_warnings: list[str] = []

    if not isinstance(feature, dict):
        return NormalizationResult(record=None, hard_errors=["feature_not_object"], soft_warnings=[])

    event_id = feature.get("id")
    if not event_id:
        hard_errors.append("missing_event_id")

    props = feature.get("properties")
    if not isinstance(props, dict):
        hard_errors.append("missing_properties")
        props = {}

    missing_props = [key for key in REQUIRED_PROPERTIES if props.get(key) is None]
    if missing_props:
        hard_errors.append(f"missing_required_properties:{','.join(sorted(missing_props))}")

    geom = feature.get("geometry")
    coords: list[Any] = []
    if not isinstance(geom, dict):
        hard_errors.append("missing_geometry")
    else:
        if geom.get("type") != "Point":
            hard_errors.append("geometry_not_point")
        raw_coords = geom.get("coordinates")
        if not isinstance(raw_coords, list) or len(raw_coords) < 2:
            hard_errors.append("invalid_coordinates")
        else:
            coords = raw_coords

    lon = to_float(coords[0]) if len(coords) >= 1 else None
    lat = to_float(coords[1]) if len(coords) >= 2 else None
    depth = to_float(coords[2]) if len(coords) >= 3 else None
    if lon is None or lat is None:
        hard_errors.append("coordinate_type_error")
    else:
        if not (-180 <= lon <= 180):
            hard_errors.append("longitude_out_of_range")
        if not (-90 <= lat <= 90):
            hard_errors.append("latitude_out_of_range")
    if depth is None:
        soft_warnings.append("missing_depth")
    elif not (-20 <= depth <= 800):
        soft_warnings.append("depth_outside_typical_range")

    event_time = epoch_ms_to_dt(props.get("time"))
    updated_time = epoch_ms_to_dt(props.get("updated"))
    if event_time is None:
        hard_errors.append("invalid_event_time")
    else:
        if event_time > now_utc + timedelta(minutes=10):
            hard_errors.append("event_time_far_in_future")
        if event_time < now_utc - timedelta(days=max_event_age_days):
            soft_warnings.append("event_time_older_than_window")
    if updated_time is None:
        hard_errors.append("invalid_updated_time")

    mag = to_float(props.get("mag"))
    if mag is None:
        soft_warnings.append("missing_magnitude")
    elif not (-3.0 <= mag <= 10.0):
        soft_warnings.append("magnitude_outside_expected_range")

    event_type = props.get("type")
    if event_type and event_type != "earthquake":
        soft_warnings.append(f"non_earthquake_event:{event_type}")

    if hard_errors:
        return NormalizationResult(record=None, hard_errors=hard_errors, soft_warnings=soft_warnings)

    record = {
        "event_id": str(event_id),
        "place": str(props.get("place")) if props.get("place") is not None else None,
        "event_type": str(event_type) if event_type is not None else None,
        "status": str(props.get("status")) if props.get("status") is not None else None,
        "mag": mag,
        "time_ms": int(float(props["time"])),
        "time_utc": event_time,
        "updated_utc": updated_time,
        "longitude": lon,
        "latitude": lat,
        "depth_km": depth if depth is not None else 0.0,
        "url": str(props.get("url")) if props.get("url") is not None else None,
    }
    return NormalizationResult(record=record, hard_errors=hard_errors, soft_warnings=soft_warnings)
