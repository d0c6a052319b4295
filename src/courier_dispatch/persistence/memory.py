"""Thread-safe in-process store used by default and in tests."""

from __future__ import annotations

import copy
import threading
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, TypeVar

from ..errors import AlreadyAssigned, AlreadyRated, DriverUnavailable, DuplicateDelivery, NotFound
from ..models.domain import (
    BusinessScope,
    Courier,
    CourierStatus,
    Delivery,
    DeliveryStatus,
    LocationPoint,
    ServiceZone,
)

T = TypeVar("T")


def _matches(record: Any, expected: Optional[Mapping[str, Any]]) -> bool:
    if not expected:
        return True
    return all(getattr(record, name) == value for name, value in expected.items())


def _apply(record: Any, changes: Mapping[str, Any]) -> None:
    for name, value in changes.items():
        if not hasattr(record, name):
            raise AttributeError(f"{type(record).__name__} has no field '{name}'")
        setattr(record, name, value)


class InMemoryStore:
    """Dictionary-backed store; one lock makes every conditional write atomic."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._couriers: dict[str, Courier] = {}
        self._deliveries: dict[str, Delivery] = {}
        self._zones: dict[str, ServiceZone] = {}

    @staticmethod
    def _copy(record: T) -> T:
        return copy.deepcopy(record)

    @staticmethod
    def _scoped(records: dict[str, T], scope: BusinessScope, record_id: str) -> Optional[T]:
        record = records.get(record_id)
        if record is None or record.business_id != scope.business_id:
            return None
        return record

    # Couriers

    def add_courier(self, courier: Courier) -> Courier:
        with self._lock:
            self._couriers[courier.courier_id] = self._copy(courier)
            return self._copy(courier)

    def get_courier(self, scope: BusinessScope, courier_id: str) -> Optional[Courier]:
        with self._lock:
            courier = self._scoped(self._couriers, scope, courier_id)
            return self._copy(courier) if courier else None

    def list_couriers(
        self,
        scope: BusinessScope,
        *,
        statuses: Optional[Iterable[CourierStatus]] = None,
        enabled_only: bool = False,
    ) -> list[Courier]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            return [
                self._copy(courier)
                for courier in self._couriers.values()
                if courier.business_id == scope.business_id
                and (wanted is None or courier.status in wanted)
                and (not enabled_only or courier.enabled)
            ]

    def update_courier(
        self,
        scope: BusinessScope,
        courier_id: str,
        changes: Mapping[str, Any],
        *,
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Courier]:
        with self._lock:
            courier = self._scoped(self._couriers, scope, courier_id)
            if courier is None or not _matches(courier, expected):
                return None
            _apply(courier, changes)
            return self._copy(courier)

    def delete_courier(self, scope: BusinessScope, courier_id: str) -> bool:
        with self._lock:
            if self._scoped(self._couriers, scope, courier_id) is None:
                return False
            del self._couriers[courier_id]
            return True

    def reset_daily_counts(self, scope: BusinessScope) -> int:
        with self._lock:
            reset = 0
            for courier in self._couriers.values():
                if courier.business_id == scope.business_id:
                    courier.deliveries_today = 0
                    reset += 1
            return reset

    # Deliveries

    def add_delivery(self, delivery: Delivery) -> Delivery:
        with self._lock:
            for existing in self._deliveries.values():
                if existing.business_id == delivery.business_id and existing.order_id == delivery.order_id:
                    raise DuplicateDelivery(delivery.order_id)
            self._deliveries[delivery.delivery_id] = self._copy(delivery)
            return self._copy(delivery)

    def get_delivery(self, scope: BusinessScope, delivery_id: str) -> Optional[Delivery]:
        with self._lock:
            delivery = self._scoped(self._deliveries, scope, delivery_id)
            return self._copy(delivery) if delivery else None

    def get_delivery_by_token(self, tracking_token: str) -> Optional[Delivery]:
        with self._lock:
            for delivery in self._deliveries.values():
                if delivery.tracking_token == tracking_token:
                    return self._copy(delivery)
            return None

    def get_delivery_by_order(self, scope: BusinessScope, order_id: str) -> Optional[Delivery]:
        with self._lock:
            for delivery in self._deliveries.values():
                if delivery.business_id == scope.business_id and delivery.order_id == order_id:
                    return self._copy(delivery)
            return None

    def list_deliveries(
        self,
        scope: BusinessScope,
        *,
        statuses: Optional[Iterable[DeliveryStatus]] = None,
    ) -> list[Delivery]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            matches = [
                self._copy(delivery)
                for delivery in self._deliveries.values()
                if delivery.business_id == scope.business_id and (wanted is None or delivery.status in wanted)
            ]
        return sorted(matches, key=lambda delivery: delivery.created_at)

    def update_delivery(
        self,
        scope: BusinessScope,
        delivery_id: str,
        changes: Mapping[str, Any],
        *,
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Delivery]:
        with self._lock:
            delivery = self._scoped(self._deliveries, scope, delivery_id)
            if delivery is None or not _matches(delivery, expected):
                return None
            _apply(delivery, changes)
            return self._copy(delivery)

    def append_location(
        self,
        scope: BusinessScope,
        delivery_id: str,
        point: LocationPoint,
        *,
        limit: int,
    ) -> Optional[Delivery]:
        with self._lock:
            delivery = self._scoped(self._deliveries, scope, delivery_id)
            if delivery is None or delivery.status.is_terminal:
                return None
            delivery.location_history.append(copy.copy(point))
            overflow = len(delivery.location_history) - limit
            if overflow > 0:
                del delivery.location_history[:overflow]
            return self._copy(delivery)

    def claim_assignment(
        self,
        scope: BusinessScope,
        delivery_id: str,
        courier_id: str,
        *,
        expected_status: DeliveryStatus,
        assigned_at: datetime,
    ) -> Delivery:
        with self._lock:
            delivery = self._scoped(self._deliveries, scope, delivery_id)
            if delivery is None:
                raise NotFound("Delivery", delivery_id)
            courier = self._scoped(self._couriers, scope, courier_id)
            if courier is None:
                raise NotFound("Courier", courier_id)
            if delivery.courier_id is not None or delivery.status != expected_status:
                raise AlreadyAssigned(delivery_id, delivery.courier_id)
            if not courier.is_available or courier.active_delivery_id is not None:
                raise DriverUnavailable(courier_id, courier.status.value)

            delivery.courier_id = courier_id
            delivery.status = DeliveryStatus.ASSIGNED
            delivery.assigned_at = assigned_at
            courier.active_delivery_id = delivery_id
            courier.status = CourierStatus.BUSY
            return self._copy(delivery)

    def release_courier(
        self,
        scope: BusinessScope,
        courier_id: str,
        delivery_id: str,
        *,
        completed: bool,
    ) -> Optional[Courier]:
        with self._lock:
            courier = self._scoped(self._couriers, scope, courier_id)
            if courier is None or courier.active_delivery_id != delivery_id:
                return None
            courier.active_delivery_id = None
            courier.status = CourierStatus.AVAILABLE
            if completed:
                courier.deliveries_today += 1
                courier.total_deliveries += 1
            return self._copy(courier)

    def record_rating(
        self,
        scope: BusinessScope,
        delivery_id: str,
        rating: int,
        feedback: Optional[str],
    ) -> Delivery:
        with self._lock:
            delivery = self._scoped(self._deliveries, scope, delivery_id)
            if delivery is None:
                raise NotFound("Delivery", delivery_id)
            if delivery.customer_rating is not None:
                raise AlreadyRated(delivery_id)
            delivery.customer_rating = rating
            delivery.customer_feedback = feedback
            if delivery.courier_id:
                courier = self._scoped(self._couriers, scope, delivery.courier_id)
                if courier is not None:
                    total = courier.total_ratings + 1
                    courier.average_rating = (courier.average_rating * courier.total_ratings + rating) / total
                    courier.total_ratings = total
            return self._copy(delivery)

    # Zones

    def add_zone(self, zone: ServiceZone) -> ServiceZone:
        with self._lock:
            self._zones[zone.zone_id] = self._copy(zone)
            return self._copy(zone)

    def get_zone(self, scope: BusinessScope, zone_id: str) -> Optional[ServiceZone]:
        with self._lock:
            zone = self._scoped(self._zones, scope, zone_id)
            return self._copy(zone) if zone else None

    def list_zones(self, scope: BusinessScope, *, enabled_only: bool = False) -> list[ServiceZone]:
        with self._lock:
            zones = [
                self._copy(zone)
                for zone in self._zones.values()
                if zone.business_id == scope.business_id and (not enabled_only or zone.enabled)
            ]
        return sorted(zones, key=lambda zone: (-zone.priority, zone.name))

    def update_zone(
        self,
        scope: BusinessScope,
        zone_id: str,
        changes: Mapping[str, Any],
    ) -> Optional[ServiceZone]:
        with self._lock:
            zone = self._scoped(self._zones, scope, zone_id)
            if zone is None:
                return None
            _apply(zone, changes)
            return self._copy(zone)
