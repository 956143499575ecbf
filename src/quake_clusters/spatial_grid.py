from __future__ import annotations

import math
from typing import Any

import numpy as np

from .utils import EARTH_RADIUS_KM

# Widens cells by a hair so pairs sitting exactly on the distance threshold
# never land two cells apart through rounding.
CELL_MARGIN = 1.0 + 1e-9


class GridConstructionError(ValueError):
    pass


class SpatialGrid:
    """Uniform latitude/longitude bucketing of event positions.

    Rows are ``max_distance_km`` tall. Columns are as wide as the largest
    longitude gap two points can have while staying within
    ``max_distance_km`` of each other anywhere inside the input's latitude
    band, which is where the cos(latitude) correction comes in. Columns
    cover the full 360 degrees with equal widths and wrap, so neighbours
    across the antimeridian are still adjacent. With that sizing the 3x3
    block around a point holds every point within the threshold.
    """

    def __init__(self, lats: np.ndarray, lons: np.ndarray, max_distance_km: float) -> None:
        if len(lats) == 0 or len(lats) != len(lons):
            raise GridConstructionError("cannot build a grid without events")
        if not (math.isfinite(max_distance_km) and max_distance_km > 0):
            raise GridConstructionError(f"invalid cell size: {max_distance_km!r} km")

        lat_min = float(np.min(lats))
        lat_max = float(np.max(lats))
        if not (math.isfinite(lat_min) and math.isfinite(lat_max)) or not np.all(np.isfinite(lons)):
            raise GridConstructionError("bounding box is not finite")
        if lat_min < -90.0 or lat_max > 90.0:
            raise GridConstructionError(f"latitude outside [-90, 90]: {lat_min!r}..{lat_max!r}")

        angular = max_distance_km / EARTH_RADIUS_KM
        self.lat_min = lat_min
        self.row_height_deg = math.degrees(angular) * CELL_MARGIN
        self.col_count = self._column_count(angular, max(abs(lat_min), abs(lat_max)))
        self.col_width_deg = 360.0 / self.col_count

        rows = np.floor((lats - lat_min) / self.row_height_deg).astype(np.int64)
        cols = (np.floor(np.mod(lons + 180.0, 360.0) / self.col_width_deg).astype(np.int64)) % self.col_count
        self.rows = rows
        self.cols = cols

        self.cells: dict[tuple[int, int], list[int]] = {}
        for position, key in enumerate(zip(rows.tolist(), cols.tolist())):
            self.cells.setdefault(key, []).append(position)
        self.event_count = len(lats)

    @staticmethod
    def _column_count(angular: float, abs_lat_max: float) -> int:
        cos_lat = math.cos(math.radians(abs_lat_max))
        if cos_lat <= 0.0:
            return 1
        ratio = math.sin(min(angular / 2.0, math.pi / 2.0)) / cos_lat
        if ratio >= 1.0:
            return 1
        lon_span = math.degrees(2.0 * math.asin(ratio)) * CELL_MARGIN
        return max(1, int(360.0 // lon_span))

    def _neighbour_columns(self, col: int) -> set[int]:
        return {(col - 1) % self.col_count, col, (col + 1) % self.col_count}

    def candidates_after(self, position: int) -> np.ndarray:
        """Positions greater than ``position`` in the surrounding 3x3 cells."""
        row = int(self.rows[position])
        found: list[int] = []
        for r in (row - 1, row, row + 1):
            for c in self._neighbour_columns(int(self.cols[position])):
                bucket = self.cells.get((r, c))
                if bucket:
                    found.extend(p for p in bucket if p > position)
        found.sort()
        return np.asarray(found, dtype=np.intp)

    def stats(self) -> dict[str, Any]:
        return {
            "event_count": self.event_count,
            "cell_count": len(self.cells),
            "mean_events_per_cell": self.event_count / max(len(self.cells), 1),
            "row_height_deg": self.row_height_deg,
            "col_width_deg": self.col_width_deg,
        }
