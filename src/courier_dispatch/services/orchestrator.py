"""Dispatch façade: the operations the HTTP layer calls.

Every method takes an explicit :class:`BusinessScope`; entities are always
loaded through that scope, so a record owned by another business is reported
as ``NotFound``.
"""

from __future__ import annotations

import dataclasses
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from ..config import settings
from ..errors import (
    AlreadyAssigned,
    CourierBusy,
    DriverUnavailable,
    InvalidRatingRange,
    MissingCoordinates,
    NegativeAmount,
    NotFound,
    NotYetDelivered,
    RoutingError,
)
from ..models.domain import (
    BusinessScope,
    Courier,
    CourierStatus,
    Delivery,
    DeliveryStatus,
    GeoPoint,
    ServiceZone,
    VehicleClass,
    ZoneShape,
)
from ..persistence.store import Store
from . import geofence
from .assignment.scorer import ScoredCandidate, suggest
from .delivery.state_machine import DeliveryStateMachine, TransitionActor
from .geospatial import distance_meters
from .realtime import COURIER_STATUS_CHANGED, DELIVERY_CREATED, Broadcaster, LoggingBroadcaster, safe_publish
from .routing.provider import RoutingProvider, StraightLineRoutingProvider
from .tracking.tracker import IngestResult, LocationTracker, PositionReport

logger = logging.getLogger(__name__)

REASON_NO_AVAILABLE_COURIERS = "NoAvailableCouriers"
REASON_MISSING_COORDINATES = "MissingCoordinates"
REASON_ALREADY_ASSIGNED = "AlreadyAssigned"
REASON_DRIVER_UNAVAILABLE = "DriverUnavailable"

STATUS_TEXT = {
    DeliveryStatus.PENDING: "Order received",
    DeliveryStatus.ACCEPTED: "Store is preparing your order",
    DeliveryStatus.ASSIGNED: "Courier assigned",
    DeliveryStatus.PICKING_UP: "Courier is at the store",
    DeliveryStatus.PICKED_UP: "Courier picked up your order",
    DeliveryStatus.ON_THE_WAY: "On the way to you",
    DeliveryStatus.NEARBY: "Courier is nearby",
    DeliveryStatus.DELIVERED: "Delivered",
    DeliveryStatus.CANCELLED: "Cancelled",
    DeliveryStatus.FAILED: "Delivery failed",
}

# Public tracking exposes the courier position and the route only in these states.
POSITION_VISIBLE_STATUSES = frozenset(
    {
        DeliveryStatus.ASSIGNED,
        DeliveryStatus.PICKING_UP,
        DeliveryStatus.PICKED_UP,
        DeliveryStatus.ON_THE_WAY,
        DeliveryStatus.NEARBY,
    }
)
ROUTE_VISIBLE_STATUSES = frozenset({DeliveryStatus.PICKED_UP, DeliveryStatus.ON_THE_WAY, DeliveryStatus.NEARBY})

REQUESTABLE_COURIER_STATUSES = frozenset({CourierStatus.OFFLINE, CourierStatus.AVAILABLE, CourierStatus.ON_BREAK})


@dataclass(slots=True)
class NewDelivery:
    order_id: str
    pickup_address: str
    pickup: GeoPoint
    dropoff_address: str
    customer_name: str
    customer_phone: str
    dropoff: Optional[GeoPoint] = None
    delivery_instructions: Optional[str] = None
    delivery_fee: Optional[float] = None
    order_amount: Optional[float] = None
    tip_amount: float = 0.0


@dataclass(slots=True)
class AutoAssignOutcome:
    assigned: bool
    courier_id: Optional[str] = None
    courier_name: Optional[str] = None
    reason: Optional[str] = None
    delivery: Optional[Delivery] = None


@dataclass(slots=True)
class TrackingInfo:
    delivery_id: str
    status: DeliveryStatus
    status_text: str
    dropoff_address: str
    estimated_arrival: Optional[datetime]
    courier_name: Optional[str]
    courier_vehicle: Optional[VehicleClass]
    courier_rating: Optional[float]
    courier_position: Optional[GeoPoint]
    route_polyline: Optional[str]
    timestamps: dict[str, Optional[datetime]]
    delivery_fee: float
    tip_amount: float
    can_rate: bool


@dataclass(slots=True)
class DeliveryStats:
    total: int
    completed: int
    cancelled: int
    in_progress: int
    average_delivery_minutes: float
    average_rating: float


def _check_point(point: Optional[GeoPoint], label: str) -> None:
    if point is None:
        return
    if not -90.0 <= point.latitude <= 90.0 or not -180.0 <= point.longitude <= 180.0:
        raise ValueError(f"{label} ({point.latitude}, {point.longitude}) is out of range")


class AssignmentOrchestrator:
    def __init__(
        self,
        store: Store,
        broadcaster: Optional[Broadcaster] = None,
        routing: Optional[RoutingProvider] = None,
        state_machine: Optional[DeliveryStateMachine] = None,
        tracker: Optional[LocationTracker] = None,
        suggestion_limit: Optional[int] = None,
    ) -> None:
        self.store = store
        self.broadcaster = broadcaster or LoggingBroadcaster()
        self.routing = routing or StraightLineRoutingProvider()
        self.state_machine = state_machine or DeliveryStateMachine(store, self.broadcaster)
        self.tracker = tracker or LocationTracker(store, self.state_machine, self.routing, self.broadcaster)
        self.suggestion_limit = suggestion_limit if suggestion_limit is not None else settings.default_suggestion_limit

    # Lookups

    def get_delivery(self, scope: BusinessScope, delivery_id: str) -> Delivery:
        delivery = self.store.get_delivery(scope, delivery_id)
        if delivery is None:
            raise NotFound("Delivery", delivery_id)
        return delivery

    def list_deliveries(self, scope: BusinessScope, *, active_only: bool = False) -> list[Delivery]:
        if active_only:
            statuses = [status for status in DeliveryStatus if not status.is_terminal]
            return self.store.list_deliveries(scope, statuses=statuses)
        return self.store.list_deliveries(scope)

    def get_courier(self, scope: BusinessScope, courier_id: str) -> Courier:
        courier = self.store.get_courier(scope, courier_id)
        if courier is None:
            raise NotFound("Courier", courier_id)
        return courier

    def list_couriers(self, scope: BusinessScope, status: Optional[CourierStatus] = None) -> list[Courier]:
        return self.store.list_couriers(scope, statuses=[status] if status else None)

    # Deliveries

    def create_delivery(self, scope: BusinessScope, request: NewDelivery) -> Delivery:
        _check_point(request.pickup, "Pickup")
        _check_point(request.dropoff, "Drop-off")
        if request.tip_amount < 0:
            raise NegativeAmount("tip_amount", request.tip_amount)
        if request.delivery_fee is not None and request.delivery_fee < 0:
            raise NegativeAmount("delivery_fee", request.delivery_fee)
        if request.order_amount is not None and request.order_amount < 0:
            raise NegativeAmount("order_amount", request.order_amount)

        fee = request.delivery_fee
        if fee is None and request.dropoff is not None and request.order_amount is not None:
            quote = self.quote_delivery(scope, request.dropoff, request.order_amount, store_location=request.pickup)
            fee = quote.delivery_fee if quote.deliverable else 0.0

        delivery = Delivery(
            delivery_id=str(uuid.uuid4()),
            business_id=scope.business_id,
            order_id=request.order_id,
            pickup_address=request.pickup_address,
            pickup=request.pickup,
            dropoff_address=request.dropoff_address,
            customer_name=request.customer_name,
            customer_phone=request.customer_phone,
            tracking_token=self._new_tracking_token(),
            dropoff=request.dropoff,
            delivery_instructions=request.delivery_instructions,
            delivery_fee=fee or 0.0,
            tip_amount=request.tip_amount,
        )
        if delivery.dropoff is not None:
            try:
                route = self.routing.calculate_route(delivery.pickup, delivery.dropoff, VehicleClass.CAR)
                delivery.distance_meters = route.distance_meters
                delivery.estimated_duration_seconds = int(route.duration_seconds)
                delivery.route_polyline = route.polyline
            except RoutingError as exc:
                logger.warning(f"Route estimate for order {request.order_id} unavailable: {exc}")

        created = self.store.add_delivery(delivery)
        logger.info(f"Created delivery {created.delivery_id} for order {created.order_id}")
        safe_publish(
            self.broadcaster,
            scope,
            DELIVERY_CREATED,
            {
                "delivery_id": created.delivery_id,
                "order_id": created.order_id,
                "status": created.status.value,
                "tracking_token": created.tracking_token,
            },
        )
        return created

    def _new_tracking_token(self) -> str:
        while True:
            token = secrets.token_urlsafe(16)
            if self.store.get_delivery_by_token(token) is None:
                return token

    def get_suggestions(
        self,
        scope: BusinessScope,
        delivery_id: str,
        limit: Optional[int] = None,
    ) -> list[ScoredCandidate]:
        """Rank enabled couriers that are available or busy for a delivery."""
        delivery = self.get_delivery(scope, delivery_id)
        if delivery.dropoff is None:
            raise MissingCoordinates(delivery_id)
        candidates = self.store.list_couriers(
            scope,
            statuses=[CourierStatus.AVAILABLE, CourierStatus.BUSY],
            enabled_only=True,
        )
        trip_km = distance_meters(delivery.pickup, delivery.dropoff) / 1000.0
        return suggest(candidates, delivery.pickup, trip_km, limit or self.suggestion_limit)

    def auto_assign(self, scope: BusinessScope, delivery_id: str) -> AutoAssignOutcome:
        delivery = self.get_delivery(scope, delivery_id)
        if delivery.courier_id is not None:
            return AutoAssignOutcome(assigned=False, courier_id=delivery.courier_id, reason=REASON_ALREADY_ASSIGNED)
        if delivery.dropoff is None:
            return AutoAssignOutcome(assigned=False, reason=REASON_MISSING_COORDINATES)

        candidates = [
            courier
            for courier in self.store.list_couriers(scope, statuses=[CourierStatus.AVAILABLE], enabled_only=True)
            if not courier.has_active_delivery
        ]
        trip_km = distance_meters(delivery.pickup, delivery.dropoff) / 1000.0
        ranked = suggest(candidates, delivery.pickup, trip_km, 1)
        if not ranked:
            logger.info(f"No available couriers for delivery {delivery_id}")
            return AutoAssignOutcome(assigned=False, reason=REASON_NO_AVAILABLE_COURIERS)

        best = ranked[0]
        try:
            assigned = self.state_machine.transition(
                scope,
                delivery_id,
                DeliveryStatus.ASSIGNED,
                courier_id=best.courier_id,
                actor=TransitionActor.SYSTEM,
            )
        except AlreadyAssigned as exc:
            logger.info(f"Auto-assign for delivery {delivery_id} lost a race: {exc}")
            return AutoAssignOutcome(assigned=False, courier_id=exc.courier_id, reason=REASON_ALREADY_ASSIGNED)
        except DriverUnavailable as exc:
            logger.info(f"Auto-assign for delivery {delivery_id} lost a race: {exc}")
            return AutoAssignOutcome(assigned=False, courier_id=best.courier_id, reason=REASON_DRIVER_UNAVAILABLE)

        return AutoAssignOutcome(
            assigned=True,
            courier_id=best.courier_id,
            courier_name=best.courier_name,
            delivery=assigned,
        )

    def manual_assign(self, scope: BusinessScope, delivery_id: str, courier_id: str) -> Delivery:
        return self.state_machine.transition(
            scope,
            delivery_id,
            DeliveryStatus.ASSIGNED,
            courier_id=courier_id,
            actor=TransitionActor.OPERATOR,
        )

    def update_status(
        self,
        scope: BusinessScope,
        delivery_id: str,
        target: DeliveryStatus,
        *,
        reason: Optional[str] = None,
        courier_id: Optional[str] = None,
        actor: TransitionActor = TransitionActor.OPERATOR,
    ) -> Delivery:
        delivery = self.state_machine.transition(
            scope,
            delivery_id,
            target,
            courier_id=courier_id,
            reason=reason,
            actor=actor,
        )
        if delivery.status.is_terminal:
            self.tracker.forget(delivery_id)
        return delivery

    def complete_with_proof(
        self,
        scope: BusinessScope,
        delivery_id: str,
        proof_of_delivery: Optional[str] = None,
        actor: TransitionActor = TransitionActor.COURIER,
    ) -> Delivery:
        delivery = self.state_machine.transition(
            scope,
            delivery_id,
            DeliveryStatus.DELIVERED,
            proof_of_delivery=proof_of_delivery,
            actor=actor,
        )
        self.tracker.forget(delivery_id)
        return delivery

    def rate_delivery(
        self,
        scope: BusinessScope,
        delivery_id: str,
        rating: int,
        feedback: Optional[str] = None,
    ) -> Delivery:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise InvalidRatingRange(rating)
        delivery = self.get_delivery(scope, delivery_id)
        if delivery.status != DeliveryStatus.DELIVERED:
            raise NotYetDelivered(delivery_id, delivery.status.value)
        rated = self.store.record_rating(scope, delivery_id, rating, feedback)
        logger.info(f"Delivery {delivery_id} rated {rating}")
        return rated

    def rate_delivery_by_token(self, tracking_token: str, rating: int, feedback: Optional[str] = None) -> Delivery:
        delivery = self.store.get_delivery_by_token(tracking_token)
        if delivery is None:
            raise NotFound("Delivery", tracking_token)
        return self.rate_delivery(BusinessScope(delivery.business_id), delivery.delivery_id, rating, feedback)

    def update_tip(self, scope: BusinessScope, delivery_id: str, amount: float) -> Delivery:
        if amount < 0:
            raise NegativeAmount("tip_amount", amount)
        updated = self.store.update_delivery(scope, delivery_id, {"tip_amount": round(amount, 2)})
        if updated is None:
            raise NotFound("Delivery", delivery_id)
        return updated

    def ingest_location(self, scope: BusinessScope, delivery_id: str, report: PositionReport) -> IngestResult:
        return self.tracker.ingest(scope, delivery_id, report)

    def get_tracking_info(self, tracking_token: str) -> TrackingInfo:
        delivery = self.store.get_delivery_by_token(tracking_token)
        if delivery is None:
            raise NotFound("Delivery", tracking_token)

        courier = None
        if delivery.courier_id:
            courier = self.store.get_courier(BusinessScope(delivery.business_id), delivery.courier_id)

        position = None
        if courier is not None and delivery.status in POSITION_VISIBLE_STATUSES:
            position = courier.position
        return TrackingInfo(
            delivery_id=delivery.delivery_id,
            status=delivery.status,
            status_text=STATUS_TEXT[delivery.status],
            dropoff_address=delivery.dropoff_address,
            estimated_arrival=delivery.estimated_arrival,
            courier_name=(courier.name or "Your courier") if courier else None,
            courier_vehicle=courier.vehicle if courier else None,
            courier_rating=courier.average_rating if courier else None,
            courier_position=position,
            route_polyline=delivery.route_polyline if delivery.status in ROUTE_VISIBLE_STATUSES else None,
            timestamps={
                "created": delivery.created_at,
                "accepted": delivery.accepted_at,
                "assigned": delivery.assigned_at,
                "picked_up": delivery.picked_up_at,
                "delivered": delivery.delivered_at,
            },
            delivery_fee=delivery.delivery_fee,
            tip_amount=delivery.tip_amount,
            can_rate=delivery.status == DeliveryStatus.DELIVERED and delivery.customer_rating is None,
        )

    def delivery_stats(self, scope: BusinessScope) -> DeliveryStats:
        deliveries = self.store.list_deliveries(scope)
        completed = [d for d in deliveries if d.status == DeliveryStatus.DELIVERED]
        cancelled = [d for d in deliveries if d.status in (DeliveryStatus.CANCELLED, DeliveryStatus.FAILED)]
        in_progress = [d for d in deliveries if d.is_active]

        durations = [
            (d.delivered_at - d.accepted_at).total_seconds() / 60.0
            for d in completed
            if d.accepted_at and d.delivered_at
        ]
        ratings = [d.customer_rating for d in completed if d.customer_rating]
        return DeliveryStats(
            total=len(deliveries),
            completed=len(completed),
            cancelled=len(cancelled),
            in_progress=len(in_progress),
            average_delivery_minutes=sum(durations) / len(durations) if durations else 0.0,
            average_rating=sum(ratings) / len(ratings) if ratings else 0.0,
        )

    # Couriers

    def register_courier(
        self,
        scope: BusinessScope,
        name: str,
        vehicle: VehicleClass = VehicleClass.CAR,
        *,
        courier_id: Optional[str] = None,
        max_concurrent_deliveries: int = 1,
    ) -> Courier:
        if not name or not name.strip():
            raise ValueError("Courier name is required")
        if max_concurrent_deliveries < 1:
            raise ValueError("max_concurrent_deliveries must be >= 1")
        courier = Courier(
            courier_id=courier_id or str(uuid.uuid4()),
            business_id=scope.business_id,
            name=name.strip(),
            vehicle=VehicleClass(vehicle),
            max_concurrent_deliveries=max_concurrent_deliveries,
        )
        created = self.store.add_courier(courier)
        logger.info(f"Registered courier {created.courier_id} ({created.vehicle.value})")
        return created

    def update_courier_status(self, scope: BusinessScope, courier_id: str, status: CourierStatus) -> Courier:
        status = CourierStatus(status)
        if status not in REQUESTABLE_COURIER_STATUSES:
            raise ValueError(f"Courier status '{status.value}' cannot be requested directly")
        courier = self.get_courier(scope, courier_id)
        if status == CourierStatus.AVAILABLE and not courier.enabled:
            raise DriverUnavailable(courier_id, "disabled")
        updated = self.store.update_courier(
            scope,
            courier_id,
            {"status": status},
            expected={"active_delivery_id": None},
        )
        if updated is None:
            raise CourierBusy(f"Courier '{courier_id}' has an active delivery")
        self._publish_courier(scope, updated)
        return updated

    def set_courier_enabled(self, scope: BusinessScope, courier_id: str, enabled: bool) -> Courier:
        self.get_courier(scope, courier_id)
        changes: dict[str, Any] = {"enabled": enabled}
        if not enabled:
            changes["status"] = CourierStatus.OFFLINE
        updated = self.store.update_courier(scope, courier_id, changes, expected={"active_delivery_id": None})
        if updated is None:
            raise CourierBusy(f"Courier '{courier_id}' has an active delivery")
        self._publish_courier(scope, updated)
        return updated

    def delete_courier(self, scope: BusinessScope, courier_id: str) -> None:
        courier = self.get_courier(scope, courier_id)
        if courier.has_active_delivery:
            raise CourierBusy(f"Courier '{courier_id}' has an active delivery")
        self.store.delete_courier(scope, courier_id)
        logger.info(f"Deleted courier {courier_id}")

    def reset_daily_counts(self, scope: BusinessScope) -> int:
        reset = self.store.reset_daily_counts(scope)
        logger.info(f"Reset daily delivery counts for {reset} couriers of business {scope.business_id}")
        return reset

    def _publish_courier(self, scope: BusinessScope, courier: Courier) -> None:
        safe_publish(
            self.broadcaster,
            scope,
            COURIER_STATUS_CHANGED,
            {"courier_id": courier.courier_id, "status": courier.status.value, "delivery_id": courier.active_delivery_id},
        )

    # Zones

    def create_zone(
        self,
        scope: BusinessScope,
        name: str,
        shape: ZoneShape,
        base_fee: float,
        **options: Any,
    ) -> ServiceZone:
        zone = ServiceZone(
            zone_id=options.pop("zone_id", None) or str(uuid.uuid4()),
            business_id=scope.business_id,
            name=name,
            shape=ZoneShape(shape),
            base_fee=base_fee,
            **options,
        )
        geofence.validate_zone(zone)
        created = self.store.add_zone(zone)
        logger.info(f"Created {created.shape.value} zone '{created.name}' for business {scope.business_id}")
        return created

    def update_zone(self, scope: BusinessScope, zone_id: str, changes: Mapping[str, Any]) -> ServiceZone:
        zone = self.store.get_zone(scope, zone_id)
        if zone is None:
            raise NotFound("ServiceZone", zone_id)
        protected = {"zone_id", "business_id"} & set(changes)
        if protected:
            raise ValueError(f"Cannot change {', '.join(sorted(protected))}")
        geofence.validate_zone(dataclasses.replace(zone, **changes))
        updated = self.store.update_zone(scope, zone_id, changes)
        if updated is None:
            raise NotFound("ServiceZone", zone_id)
        return updated

    def list_zones(self, scope: BusinessScope, *, enabled_only: bool = False) -> list[ServiceZone]:
        return self.store.list_zones(scope, enabled_only=enabled_only)

    def quote_delivery(
        self,
        scope: BusinessScope,
        point: GeoPoint,
        order_amount: float,
        store_location: Optional[GeoPoint] = None,
    ) -> geofence.DeliveryQuote:
        _check_point(point, "Drop-off")
        if order_amount < 0:
            raise NegativeAmount("order_amount", order_amount)
        zones = self.store.list_zones(scope, enabled_only=True)
        return geofence.quote(zones, point, order_amount, store=store_location)
