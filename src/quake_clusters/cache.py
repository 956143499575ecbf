from __future__ import annotations

import copy
import hashlib
import threading
import time
from collections.abc import Callable

from .metrics import ClusterResult
from .utils import json_dumps
from .validation import ClusterRequest

DEFAULT_MAX_ENTRIES = 256


def request_fingerprint(request: ClusterRequest) -> str:
    """Digest of the event set and parameters; event order does not matter."""
    rows = sorted(
        (
            (
                event.id,
                event.time,
                event.latitude,
                event.longitude,
                event.magnitude,
                event.depth_km,
                event.place,
            )
            for event in request.events
        ),
        key=json_dumps,
    )
    payload = json_dumps(
        {"events": rows, "maxDistanceKm": request.max_distance_km, "minQuakes": request.min_quakes}
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ClusterResultCache:
    """In-process TTL cache of clustering results keyed by request fingerprint.

    Expired entries are purged on every ``put``; past ``max_entries`` the
    oldest entries are evicted first.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: dict[str, tuple[float, list[ClusterResult]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> list[ClusterResult] | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, results = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return None
            return copy.deepcopy(results)

    def put(self, key: str, results: list[ClusterResult]) -> None:
        with self._lock:
            now = self._clock()
            expired = [
                k for k, (stored_at, _) in self._entries.items() if now - stored_at > self.ttl_seconds
            ]
            for stale_key in expired:
                del self._entries[stale_key]
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                # insertion order, oldest first
                del self._entries[next(iter(self._entries))]
            self._entries[key] = (now, copy.deepcopy(results))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
