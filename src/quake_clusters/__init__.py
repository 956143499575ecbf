"""Earthquake spatial clustering engine."""

from .config import Settings
from .engine import ClusterEngine, ClusterEngineError
from .metrics import ClusterResult
from .validation import ClusterRequestError

__all__ = ["ClusterEngine", "ClusterEngineError", "ClusterRequestError", "ClusterResult", "Settings"]
