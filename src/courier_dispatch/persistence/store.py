"""Persistence contract consumed by the dispatch engine.

Every read and write is scoped by business id. Writers that race on the same
record rely on the conditional primitives below rather than read-then-write:

* ``update_delivery`` / ``update_courier`` with ``expected`` apply the change
  only if every expected field still holds the given value, and return
  ``None`` otherwise.
* ``claim_assignment`` binds a courier to a delivery in one atomic step,
  guarded on the delivery's status and empty courier slot and on the
  courier being available.
* ``record_rating`` sets a rating only while none exists.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Protocol

from ..models.domain import (
    BusinessScope,
    Courier,
    CourierStatus,
    Delivery,
    DeliveryStatus,
    LocationPoint,
    ServiceZone,
)


class Store(Protocol):
    # Couriers
    def add_courier(self, courier: Courier) -> Courier: ...

    def get_courier(self, scope: BusinessScope, courier_id: str) -> Optional[Courier]: ...

    def list_couriers(
        self,
        scope: BusinessScope,
        *,
        statuses: Optional[Iterable[CourierStatus]] = None,
        enabled_only: bool = False,
    ) -> list[Courier]: ...

    def update_courier(
        self,
        scope: BusinessScope,
        courier_id: str,
        changes: Mapping[str, Any],
        *,
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Courier]: ...

    def delete_courier(self, scope: BusinessScope, courier_id: str) -> bool: ...

    def reset_daily_counts(self, scope: BusinessScope) -> int: ...

    # Deliveries
    def add_delivery(self, delivery: Delivery) -> Delivery: ...

    def get_delivery(self, scope: BusinessScope, delivery_id: str) -> Optional[Delivery]: ...

    def get_delivery_by_token(self, tracking_token: str) -> Optional[Delivery]: ...

    def get_delivery_by_order(self, scope: BusinessScope, order_id: str) -> Optional[Delivery]: ...

    def list_deliveries(
        self,
        scope: BusinessScope,
        *,
        statuses: Optional[Iterable[DeliveryStatus]] = None,
    ) -> list[Delivery]: ...

    def update_delivery(
        self,
        scope: BusinessScope,
        delivery_id: str,
        changes: Mapping[str, Any],
        *,
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Delivery]: ...

    def append_location(
        self,
        scope: BusinessScope,
        delivery_id: str,
        point: LocationPoint,
        *,
        limit: int,
    ) -> Optional[Delivery]:
        """Append to the capped history; ``None`` if the delivery is missing or already terminal."""
        ...

    def claim_assignment(
        self,
        scope: BusinessScope,
        delivery_id: str,
        courier_id: str,
        *,
        expected_status: DeliveryStatus,
        assigned_at: datetime,
    ) -> Delivery: ...

    def release_courier(
        self,
        scope: BusinessScope,
        courier_id: str,
        delivery_id: str,
        *,
        completed: bool,
    ) -> Optional[Courier]: ...

    def record_rating(
        self,
        scope: BusinessScope,
        delivery_id: str,
        rating: int,
        feedback: Optional[str],
    ) -> Delivery: ...

    # Zones
    def add_zone(self, zone: ServiceZone) -> ServiceZone: ...

    def get_zone(self, scope: BusinessScope, zone_id: str) -> Optional[ServiceZone]: ...

    def list_zones(self, scope: BusinessScope, *, enabled_only: bool = False) -> list[ServiceZone]: ...

    def update_zone(
        self,
        scope: BusinessScope,
        zone_id: str,
        changes: Mapping[str, Any],
    ) -> Optional[ServiceZone]: ...
