"""Supabase-backed store for couriers, deliveries and service zones.

Tables and the ``claim_delivery_assignment`` function are defined in
``supabase/migrations``. Conditional writes are expressed as PostgREST filters
on the ``update`` call; an empty ``data`` list means the guard did not hold.
"""

from __future__ import annotations

import logging
from dataclasses import fields
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from supabase import Client

from ..errors import AlreadyAssigned, AlreadyRated, DriverUnavailable, DuplicateDelivery, NotFound
from ..models.domain import (
    BusinessScope,
    Courier,
    CourierStatus,
    Delivery,
    DeliveryStatus,
    GeoPoint,
    LocationPoint,
    ServiceZone,
    VehicleClass,
    ZoneShape,
)

logger = logging.getLogger(__name__)

COURIERS_TABLE = "couriers"
DELIVERIES_TABLE = "deliveries"
ZONES_TABLE = "service_zones"

# Domain attribute -> (latitude column, longitude column)
_COURIER_POINTS = {"position": ("current_latitude", "current_longitude")}
_DELIVERY_POINTS = {
    "pickup": ("pickup_latitude", "pickup_longitude"),
    "dropoff": ("dropoff_latitude", "dropoff_longitude"),
}
_ZONE_POINTS = {"center": ("center_latitude", "center_longitude")}

_ID_COLUMNS = {COURIERS_TABLE: "courier_id", DELIVERIES_TABLE: "delivery_id", ZONES_TABLE: "zone_id"}

# Optimistic read-modify-write loops give up after this many lost races.
MAX_WRITE_ATTEMPTS = 5


def _to_column(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, LocationPoint):
        return {
            "lat": value.latitude,
            "lng": value.longitude,
            "timestamp": value.timestamp.isoformat(),
            "accuracy": value.accuracy,
        }
    if isinstance(value, GeoPoint):
        return {"lat": value.latitude, "lng": value.longitude}
    if isinstance(value, list):
        return [_to_column(item) for item in value]
    return value


def _serialize(changes: Mapping[str, Any], points: Mapping[str, tuple[str, str]]) -> dict[str, Any]:
    row: dict[str, Any] = {}
    for name, value in changes.items():
        if name in points:
            lat_column, lon_column = points[name]
            row[lat_column] = value.latitude if value is not None else None
            row[lon_column] = value.longitude if value is not None else None
        else:
            row[name] = _to_column(value)
    return row


def _point(row: Mapping[str, Any], lat_column: str, lon_column: str) -> Optional[GeoPoint]:
    lat, lon = row.get(lat_column), row.get(lon_column)
    if lat is None or lon is None:
        return None
    return GeoPoint(float(lat), float(lon))


def _timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _history(items: Any) -> list[LocationPoint]:
    history: list[LocationPoint] = []
    for item in items or []:
        history.append(
            LocationPoint(
                latitude=float(item["lat"]),
                longitude=float(item["lng"]),
                timestamp=_timestamp(item["timestamp"]),
                accuracy=item.get("accuracy"),
            )
        )
    return history


def courier_from_row(row: Mapping[str, Any]) -> Courier:
    return Courier(
        courier_id=str(row["courier_id"]),
        business_id=str(row["business_id"]),
        name=row.get("name") or "",
        vehicle=VehicleClass(row.get("vehicle") or VehicleClass.CAR.value),
        status=CourierStatus(row.get("status") or CourierStatus.OFFLINE.value),
        position=_point(row, "current_latitude", "current_longitude"),
        last_location_update=_timestamp(row.get("last_location_update")),
        active_delivery_id=row.get("active_delivery_id"),
        deliveries_today=int(row.get("deliveries_today") or 0),
        total_deliveries=int(row.get("total_deliveries") or 0),
        average_rating=float(row.get("average_rating") or 5.0),
        total_ratings=int(row.get("total_ratings") or 0),
        max_concurrent_deliveries=int(row.get("max_concurrent_deliveries") or 1),
        enabled=bool(row.get("enabled", True)),
    )


def delivery_from_row(row: Mapping[str, Any]) -> Delivery:
    pickup = _point(row, "pickup_latitude", "pickup_longitude")
    if pickup is None:
        raise ValueError(f"Delivery row {row.get('delivery_id')} has no pickup coordinates")
    return Delivery(
        delivery_id=str(row["delivery_id"]),
        business_id=str(row["business_id"]),
        order_id=str(row["order_id"]),
        pickup_address=row.get("pickup_address") or "",
        pickup=pickup,
        dropoff_address=row.get("dropoff_address") or "",
        customer_name=row.get("customer_name") or "",
        customer_phone=row.get("customer_phone") or "",
        tracking_token=row["tracking_token"],
        status=DeliveryStatus(row["status"]),
        dropoff=_point(row, "dropoff_latitude", "dropoff_longitude"),
        delivery_instructions=row.get("delivery_instructions"),
        courier_id=row.get("courier_id"),
        distance_meters=row.get("distance_meters"),
        estimated_duration_seconds=row.get("estimated_duration_seconds"),
        estimated_arrival=_timestamp(row.get("estimated_arrival")),
        route_polyline=row.get("route_polyline"),
        delivery_fee=float(row.get("delivery_fee") or 0.0),
        tip_amount=float(row.get("tip_amount") or 0.0),
        created_at=_timestamp(row.get("created_at")),
        accepted_at=_timestamp(row.get("accepted_at")),
        assigned_at=_timestamp(row.get("assigned_at")),
        picked_up_at=_timestamp(row.get("picked_up_at")),
        delivered_at=_timestamp(row.get("delivered_at")),
        cancelled_at=_timestamp(row.get("cancelled_at")),
        failed_at=_timestamp(row.get("failed_at")),
        cancellation_reason=row.get("cancellation_reason"),
        proof_of_delivery=row.get("proof_of_delivery"),
        customer_rating=row.get("customer_rating"),
        customer_feedback=row.get("customer_feedback"),
        location_history=_history(row.get("location_history")),
    )


def zone_from_row(row: Mapping[str, Any]) -> ServiceZone:
    polygon = row.get("polygon_coordinates")
    return ServiceZone(
        zone_id=str(row["zone_id"]),
        business_id=str(row["business_id"]),
        name=row["name"],
        shape=ZoneShape(row["shape"]),
        base_fee=float(row.get("base_fee") or 0.0),
        center=_point(row, "center_latitude", "center_longitude"),
        radius_meters=row.get("radius_meters"),
        polygon=[GeoPoint(float(p["lat"]), float(p["lng"])) for p in polygon] if polygon else None,
        per_km_fee=float(row.get("per_km_fee") or 0.0),
        min_order_amount=float(row.get("min_order_amount") or 0.0),
        free_delivery_threshold=row.get("free_delivery_threshold"),
        estimated_min_minutes=int(row.get("estimated_min_minutes") or 15),
        estimated_max_minutes=int(row.get("estimated_max_minutes") or 45),
        priority=int(row.get("priority") or 0),
        enabled=bool(row.get("enabled", True)),
        color=row.get("color") or "#3B82F6",
    )


def _record_to_row(record: Any, points: Mapping[str, tuple[str, str]]) -> dict[str, Any]:
    values = {item.name: getattr(record, item.name) for item in fields(record)}
    if isinstance(record, ServiceZone):
        values["polygon_coordinates"] = values.pop("polygon")
    return _serialize(values, points)


class SupabaseStore:
    """Store implementation over a Supabase (PostgREST) client."""

    def __init__(self, client: Client) -> None:
        self.client = client

    def _select(self, table: str, scope: BusinessScope, record_id: str) -> Optional[dict]:
        response = (
            self.client.table(table)
            .select("*")
            .eq(_ID_COLUMNS[table], record_id)
            .eq("business_id", scope.business_id)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    def _conditional_update(
        self,
        table: str,
        scope: BusinessScope,
        record_id: str,
        row: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]],
        points: Mapping[str, tuple[str, str]],
    ) -> Optional[dict]:
        query = (
            self.client.table(table)
            .update(dict(row))
            .eq(_ID_COLUMNS[table], record_id)
            .eq("business_id", scope.business_id)
        )
        for column, value in _serialize(expected or {}, points).items():
            query = query.is_(column, "null") if value is None else query.eq(column, value)
        response = query.execute()
        return response.data[0] if response.data else None

    # Couriers

    def add_courier(self, courier: Courier) -> Courier:
        response = self.client.table(COURIERS_TABLE).insert(_record_to_row(courier, _COURIER_POINTS)).execute()
        return courier_from_row(response.data[0])

    def get_courier(self, scope: BusinessScope, courier_id: str) -> Optional[Courier]:
        row = self._select(COURIERS_TABLE, scope, courier_id)
        return courier_from_row(row) if row else None

    def list_couriers(
        self,
        scope: BusinessScope,
        *,
        statuses: Optional[Iterable[CourierStatus]] = None,
        enabled_only: bool = False,
    ) -> list[Courier]:
        query = self.client.table(COURIERS_TABLE).select("*").eq("business_id", scope.business_id)
        if statuses is not None:
            query = query.in_("status", [status.value for status in statuses])
        if enabled_only:
            query = query.eq("enabled", True)
        response = query.execute()
        return [courier_from_row(row) for row in response.data or []]

    def update_courier(
        self,
        scope: BusinessScope,
        courier_id: str,
        changes: Mapping[str, Any],
        *,
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Courier]:
        row = self._conditional_update(
            COURIERS_TABLE,
            scope,
            courier_id,
            _serialize(changes, _COURIER_POINTS),
            expected,
            _COURIER_POINTS,
        )
        return courier_from_row(row) if row else None

    def delete_courier(self, scope: BusinessScope, courier_id: str) -> bool:
        response = (
            self.client.table(COURIERS_TABLE)
            .delete()
            .eq("courier_id", courier_id)
            .eq("business_id", scope.business_id)
            .execute()
        )
        return bool(response.data)

    def reset_daily_counts(self, scope: BusinessScope) -> int:
        response = (
            self.client.table(COURIERS_TABLE)
            .update({"deliveries_today": 0})
            .eq("business_id", scope.business_id)
            .execute()
        )
        return len(response.data or [])

    # Deliveries

    def add_delivery(self, delivery: Delivery) -> Delivery:
        scope = BusinessScope(delivery.business_id)
        if self.get_delivery_by_order(scope, delivery.order_id) is not None:
            raise DuplicateDelivery(delivery.order_id)
        response = self.client.table(DELIVERIES_TABLE).insert(_record_to_row(delivery, _DELIVERY_POINTS)).execute()
        return delivery_from_row(response.data[0])

    def get_delivery(self, scope: BusinessScope, delivery_id: str) -> Optional[Delivery]:
        row = self._select(DELIVERIES_TABLE, scope, delivery_id)
        return delivery_from_row(row) if row else None

    def get_delivery_by_token(self, tracking_token: str) -> Optional[Delivery]:
        response = (
            self.client.table(DELIVERIES_TABLE).select("*").eq("tracking_token", tracking_token).limit(1).execute()
        )
        return delivery_from_row(response.data[0]) if response.data else None

    def get_delivery_by_order(self, scope: BusinessScope, order_id: str) -> Optional[Delivery]:
        response = (
            self.client.table(DELIVERIES_TABLE)
            .select("*")
            .eq("business_id", scope.business_id)
            .eq("order_id", order_id)
            .limit(1)
            .execute()
        )
        return delivery_from_row(response.data[0]) if response.data else None

    def list_deliveries(
        self,
        scope: BusinessScope,
        *,
        statuses: Optional[Iterable[DeliveryStatus]] = None,
    ) -> list[Delivery]:
        query = self.client.table(DELIVERIES_TABLE).select("*").eq("business_id", scope.business_id)
        if statuses is not None:
            query = query.in_("status", [status.value for status in statuses])
        response = query.order("created_at").execute()
        return [delivery_from_row(row) for row in response.data or []]

    def update_delivery(
        self,
        scope: BusinessScope,
        delivery_id: str,
        changes: Mapping[str, Any],
        *,
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Delivery]:
        row = self._conditional_update(
            DELIVERIES_TABLE,
            scope,
            delivery_id,
            _serialize(changes, _DELIVERY_POINTS),
            expected,
            _DELIVERY_POINTS,
        )
        return delivery_from_row(row) if row else None

    def append_location(
        self,
        scope: BusinessScope,
        delivery_id: str,
        point: LocationPoint,
        *,
        limit: int,
    ) -> Optional[Delivery]:
        for _ in range(MAX_WRITE_ATTEMPTS):
            delivery = self.get_delivery(scope, delivery_id)
            if delivery is None or delivery.status.is_terminal:
                return None
            history = [*delivery.location_history, point][-limit:]
            updated = self.update_delivery(
                scope,
                delivery_id,
                {"location_history": history},
                expected={"status": delivery.status},
            )
            if updated is not None:
                return updated
        logger.warning(f"Location for delivery {delivery_id} dropped after repeated conflicts")
        return None

    def claim_assignment(
        self,
        scope: BusinessScope,
        delivery_id: str,
        courier_id: str,
        *,
        expected_status: DeliveryStatus,
        assigned_at: datetime,
    ) -> Delivery:
        response = self.client.rpc(
            "claim_delivery_assignment",
            {
                "p_business_id": scope.business_id,
                "p_delivery_id": delivery_id,
                "p_courier_id": courier_id,
                "p_expected_status": expected_status.value,
                "p_assigned_at": assigned_at.isoformat(),
            },
        ).execute()
        outcome = response.data
        if outcome == "delivery_not_found":
            raise NotFound("Delivery", delivery_id)
        if outcome == "courier_not_found":
            raise NotFound("Courier", courier_id)
        if outcome == "already_assigned":
            raise AlreadyAssigned(delivery_id)
        if outcome == "driver_unavailable":
            raise DriverUnavailable(courier_id)
        if outcome != "ok":
            raise RuntimeError(f"Unexpected claim_delivery_assignment result: {outcome!r}")
        delivery = self.get_delivery(scope, delivery_id)
        if delivery is None:
            raise NotFound("Delivery", delivery_id)
        return delivery

    def release_courier(
        self,
        scope: BusinessScope,
        courier_id: str,
        delivery_id: str,
        *,
        completed: bool,
    ) -> Optional[Courier]:
        for _ in range(MAX_WRITE_ATTEMPTS):
            courier = self.get_courier(scope, courier_id)
            if courier is None or courier.active_delivery_id != delivery_id:
                return None
            changes: dict[str, Any] = {"active_delivery_id": None, "status": CourierStatus.AVAILABLE}
            expected: dict[str, Any] = {"active_delivery_id": delivery_id}
            if completed:
                changes["deliveries_today"] = courier.deliveries_today + 1
                changes["total_deliveries"] = courier.total_deliveries + 1
                expected["deliveries_today"] = courier.deliveries_today
                expected["total_deliveries"] = courier.total_deliveries
            updated = self.update_courier(scope, courier_id, changes, expected=expected)
            if updated is not None:
                return updated
        logger.warning(f"Gave up releasing courier {courier_id} from delivery {delivery_id} after repeated conflicts")
        return None

    def record_rating(
        self,
        scope: BusinessScope,
        delivery_id: str,
        rating: int,
        feedback: Optional[str],
    ) -> Delivery:
        delivery = self.update_delivery(
            scope,
            delivery_id,
            {"customer_rating": rating, "customer_feedback": feedback},
            expected={"customer_rating": None},
        )
        if delivery is None:
            if self.get_delivery(scope, delivery_id) is None:
                raise NotFound("Delivery", delivery_id)
            raise AlreadyRated(delivery_id)

        if delivery.courier_id:
            for _ in range(MAX_WRITE_ATTEMPTS):
                courier = self.get_courier(scope, delivery.courier_id)
                if courier is None:
                    break
                total = courier.total_ratings + 1
                average = (courier.average_rating * courier.total_ratings + rating) / total
                updated = self.update_courier(
                    scope,
                    courier.courier_id,
                    {"average_rating": average, "total_ratings": total},
                    expected={"total_ratings": courier.total_ratings},
                )
                if updated is not None:
                    break
            else:
                logger.warning(f"Courier rating for delivery {delivery_id} not applied after repeated conflicts")
        return delivery

    # Zones

    def add_zone(self, zone: ServiceZone) -> ServiceZone:
        response = self.client.table(ZONES_TABLE).insert(_record_to_row(zone, _ZONE_POINTS)).execute()
        return zone_from_row(response.data[0])

    def get_zone(self, scope: BusinessScope, zone_id: str) -> Optional[ServiceZone]:
        row = self._select(ZONES_TABLE, scope, zone_id)
        return zone_from_row(row) if row else None

    def list_zones(self, scope: BusinessScope, *, enabled_only: bool = False) -> list[ServiceZone]:
        query = self.client.table(ZONES_TABLE).select("*").eq("business_id", scope.business_id)
        if enabled_only:
            query = query.eq("enabled", True)
        response = query.order("priority", desc=True).execute()
        return [zone_from_row(row) for row in response.data or []]

    def update_zone(
        self,
        scope: BusinessScope,
        zone_id: str,
        changes: Mapping[str, Any],
    ) -> Optional[ServiceZone]:
        values = dict(changes)
        if "polygon" in values:
            values["polygon_coordinates"] = values.pop("polygon")
        row = self._conditional_update(
            ZONES_TABLE,
            scope,
            zone_id,
            _serialize(values, _ZONE_POINTS),
            None,
            _ZONE_POINTS,
        )
        return zone_from_row(row) if row else None
