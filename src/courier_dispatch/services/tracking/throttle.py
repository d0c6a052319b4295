"""Rate limit for location broadcasts, per delivery."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime

from ...models.domain import GeoPoint
from ..geospatial import distance_meters


@dataclass(slots=True)
class _LastBroadcast:
    position: GeoPoint
    at: datetime


class BroadcastThrottle:
    """Allows a broadcast once enough time has passed or the courier moved far enough."""

    def __init__(self, min_interval_seconds: float, min_distance_meters: float) -> None:
        self.min_interval_seconds = min_interval_seconds
        self.min_distance_meters = min_distance_meters
        self._last: dict[str, _LastBroadcast] = {}
        self._lock = threading.Lock()

    def should_broadcast(self, delivery_id: str, position: GeoPoint, at: datetime) -> bool:
        """Return True and record the broadcast when one is due."""
        with self._lock:
            last = self._last.get(delivery_id)
            due = (
                last is None
                or (at - last.at).total_seconds() >= self.min_interval_seconds
                or distance_meters(last.position, position) >= self.min_distance_meters
            )
            if due:
                self._last[delivery_id] = _LastBroadcast(position, at)
            return due

    def forget(self, delivery_id: str) -> None:
        with self._lock:
            self._last.pop(delivery_id, None)
