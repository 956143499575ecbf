from __future__ import annotations

from .config import CLUSTER_MIN_QUAKES, DEFINED_CLUSTER_MIN_MAGNITUDE
from .metrics import ClusterResult

SCORE_COUNT_WEIGHT = 1.0
SCORE_MAGNITUDE_WEIGHT = 10.0


def significance_score(quake_count: int, max_magnitude: float | None) -> float:
    """Weighted sum of size and strength; never decreases as either grows."""
    magnitude = max_magnitude if max_magnitude is not None else 0.0
    return SCORE_COUNT_WEIGHT * quake_count + SCORE_MAGNITUDE_WEIGHT * magnitude


def is_significant(
    result: ClusterResult,
    *,
    min_quakes: int = CLUSTER_MIN_QUAKES,
    min_magnitude: float = DEFINED_CLUSTER_MIN_MAGNITUDE,
) -> bool:
    if result.max_magnitude is None:
        return False
    return result.quake_count >= min_quakes and result.max_magnitude >= min_magnitude


def classify(
    result: ClusterResult,
    *,
    min_quakes: int = CLUSTER_MIN_QUAKES,
    min_magnitude: float = DEFINED_CLUSTER_MIN_MAGNITUDE,
) -> ClusterResult:
    result.significance_score = significance_score(result.quake_count, result.max_magnitude)
    result.is_significant = is_significant(
        result, min_quakes=min_quakes, min_magnitude=min_magnitude
    )
    return result
