"""Courier position ingestion for in-flight deliveries.

Each report is appended to the delivery's bounded history, moves the courier,
may flip the delivery to ``nearby`` and refreshes the ETA. Reports for the same
delivery are processed one at a time; different deliveries run in parallel.
"""

from __future__ import annotations

import logging
import threading
import weakref
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from ...config import settings
from ...errors import InvalidTransition, NotFound
from ...models.domain import (
    BusinessScope,
    Courier,
    Delivery,
    DeliveryStatus,
    GeoPoint,
    LocationPoint,
    VehicleClass,
    utcnow,
)
from ...persistence.store import Store
from ..delivery.state_machine import DeliveryStateMachine, TransitionActor
from ..geospatial import distance_meters
from ..realtime import DELIVERY_ETA_UPDATED, DELIVERY_LOCATION_UPDATED, Broadcaster, LoggingBroadcaster, safe_publish
from ..routing.models import EtaResult
from ..routing.provider import RoutingProvider
from .throttle import BroadcastThrottle

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PositionReport:
    latitude: float
    longitude: float
    heading: Optional[float] = None
    speed: Optional[float] = None
    accuracy: Optional[float] = None

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0 or not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"Position ({self.latitude}, {self.longitude}) is out of range")


@dataclass(slots=True)
class IngestResult:
    accepted: bool
    status: DeliveryStatus
    became_nearby: bool = False
    distance_to_dropoff_meters: Optional[float] = None
    eta: Optional[EtaResult] = None
    broadcast: bool = False


class LocationTracker:
    def __init__(
        self,
        store: Store,
        state_machine: DeliveryStateMachine,
        routing: RoutingProvider,
        broadcaster: Optional[Broadcaster] = None,
        *,
        nearby_radius_meters: Optional[float] = None,
        history_limit: Optional[int] = None,
        eta_timeout_seconds: Optional[float] = None,
        throttle: Optional[BroadcastThrottle] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.state_machine = state_machine
        self.routing = routing
        self.broadcaster = broadcaster or LoggingBroadcaster()
        self.nearby_radius_meters = (
            nearby_radius_meters if nearby_radius_meters is not None else settings.nearby_radius_meters
        )
        self.history_limit = history_limit if history_limit is not None else settings.location_history_limit
        self.eta_timeout_seconds = (
            eta_timeout_seconds if eta_timeout_seconds is not None else settings.eta_timeout_seconds
        )
        self.throttle = throttle or BroadcastThrottle(
            settings.location_min_interval_seconds,
            settings.location_min_distance_meters,
        )
        self.clock = clock
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="eta")
        # Entries vanish once no ingest holds the lock.
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock_for(self, delivery_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(delivery_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[delivery_id] = lock
            return lock

    def forget(self, delivery_id: str) -> None:
        """Drop per-delivery broadcast state once a delivery is finished."""
        self.throttle.forget(delivery_id)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def ingest(self, scope: BusinessScope, delivery_id: str, report: PositionReport) -> IngestResult:
        lock = self._lock_for(delivery_id)
        with lock:
            return self._ingest(scope, delivery_id, report)

    def _ingest(self, scope: BusinessScope, delivery_id: str, report: PositionReport) -> IngestResult:
        delivery = self.store.get_delivery(scope, delivery_id)
        if delivery is None:
            raise NotFound("Delivery", delivery_id)
        if not delivery.is_active:
            logger.debug(f"Ignoring location for delivery {delivery_id} in status {delivery.status.value}")
            self.forget(delivery_id)
            return IngestResult(accepted=False, status=delivery.status)

        now = self.clock()
        position = GeoPoint(report.latitude, report.longitude)
        point = LocationPoint(report.latitude, report.longitude, now, report.accuracy)
        appended = self.store.append_location(scope, delivery_id, point, limit=self.history_limit)
        if appended is None:
            current = self.store.get_delivery(scope, delivery_id)
            status = current.status if current is not None else delivery.status
            logger.debug(f"Delivery {delivery_id} finished before its location was recorded ({status.value})")
            self.forget(delivery_id)
            return IngestResult(accepted=False, status=status)
        delivery = appended

        courier: Optional[Courier] = None
        if delivery.courier_id:
            courier = self.store.update_courier(
                scope,
                delivery.courier_id,
                {"position": position, "last_location_update": now},
            )

        broadcast = self.throttle.should_broadcast(delivery_id, position, now)
        if broadcast:
            safe_publish(
                self.broadcaster,
                scope,
                DELIVERY_LOCATION_UPDATED,
                {
                    "delivery_id": delivery_id,
                    "courier_id": delivery.courier_id,
                    "latitude": report.latitude,
                    "longitude": report.longitude,
                    "heading": report.heading,
                    "speed": report.speed,
                    "accuracy": report.accuracy,
                    "timestamp": now.isoformat(),
                },
            )
        else:
            logger.debug(f"Location broadcast for delivery {delivery_id} throttled")

        result = IngestResult(accepted=True, status=delivery.status, broadcast=broadcast)
        if delivery.dropoff is None:
            return result

        result.distance_to_dropoff_meters = distance_meters(position, delivery.dropoff)
        if result.distance_to_dropoff_meters <= self.nearby_radius_meters and delivery.status == DeliveryStatus.ON_THE_WAY:
            try:
                delivery = self.state_machine.transition(
                    scope, delivery_id, DeliveryStatus.NEARBY, actor=TransitionActor.SYSTEM
                )
                result.became_nearby = True
            except InvalidTransition as exc:
                logger.warning(f"Auto-nearby for delivery {delivery_id} lost a race: {exc}")
                delivery = self.store.get_delivery(scope, delivery_id) or delivery
        result.status = delivery.status

        vehicle = courier.vehicle if courier is not None else VehicleClass.CAR
        result.eta = self._refresh_eta(scope, delivery, position, vehicle, now)
        return result

    def _refresh_eta(
        self,
        scope: BusinessScope,
        delivery: Delivery,
        position: GeoPoint,
        vehicle: VehicleClass,
        now: datetime,
    ) -> Optional[EtaResult]:
        future = self._executor.submit(self.routing.calculate_eta, position, delivery.dropoff, vehicle)
        try:
            eta = future.result(timeout=self.eta_timeout_seconds)
        except FutureTimeout:
            future.cancel()
            logger.warning(
                f"ETA refresh for delivery {delivery.delivery_id} timed out after {self.eta_timeout_seconds}s"
            )
            return None
        except Exception as exc:
            logger.warning(f"ETA refresh for delivery {delivery.delivery_id} failed: {exc}")
            return None

        arrival = now + timedelta(seconds=eta.duration_seconds)
        self.store.update_delivery(
            scope,
            delivery.delivery_id,
            {"estimated_arrival": arrival, "estimated_duration_seconds": eta.duration_seconds},
        )
        safe_publish(
            self.broadcaster,
            scope,
            DELIVERY_ETA_UPDATED,
            {
                "delivery_id": delivery.delivery_id,
                "estimated_arrival": arrival.isoformat(),
                "duration_seconds": eta.duration_seconds,
                "distance_meters": eta.distance_meters,
                "confidence": eta.confidence,
            },
        )
        return eta
