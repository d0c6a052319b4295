"""Realtime event fan-out to subscribers of a business."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..models.domain import BusinessScope

logger = logging.getLogger(__name__)

DELIVERY_CREATED = "delivery:created"
DELIVERY_STATUS_UPDATED = "delivery:status_updated"
DELIVERY_LOCATION_UPDATED = "delivery:location_updated"
DELIVERY_ETA_UPDATED = "delivery:eta_updated"
COURIER_STATUS_CHANGED = "courier:status_changed"


class Broadcaster(Protocol):
    def publish(self, scope: BusinessScope, event: str, payload: dict[str, Any]) -> None: ...


class LoggingBroadcaster:
    """Writes events to the log; the default when no push channel is wired."""

    def publish(self, scope: BusinessScope, event: str, payload: dict[str, Any]) -> None:
        logger.info(f"[{scope.business_id}] {event} {payload}")


@dataclass(slots=True)
class PublishedEvent:
    business_id: str
    event: str
    payload: dict[str, Any]


@dataclass
class RecordingBroadcaster:
    """Keeps every published event in memory."""

    events: list[PublishedEvent] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def publish(self, scope: BusinessScope, event: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self.events.append(PublishedEvent(scope.business_id, event, dict(payload)))

    def of(self, event: str) -> list[PublishedEvent]:
        with self._lock:
            return [item for item in self.events if item.event == event]


def safe_publish(broadcaster: Broadcaster, scope: BusinessScope, event: str, payload: dict[str, Any]) -> None:
    """Publish and log failures; callers never see broadcaster errors."""
    try:
        broadcaster.publish(scope, event, payload)
    except Exception as exc:
        logger.warning(f"Failed to publish {event} for business {scope.business_id}: {exc}")
