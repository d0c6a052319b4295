"""Delivery lifecycle: allowed transitions and their side effects."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from ...errors import AlreadyAssigned, DriverUnavailable, InvalidTransition, MissingCourier, NotFound
from ...models.domain import BusinessScope, Delivery, DeliveryStatus, utcnow
from ...persistence.store import Store
from ..realtime import COURIER_STATUS_CHANGED, DELIVERY_STATUS_UPDATED, Broadcaster, LoggingBroadcaster, safe_publish

logger = logging.getLogger(__name__)

S = DeliveryStatus

ALLOWED_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    S.PENDING: frozenset({S.ACCEPTED, S.CANCELLED}),
    S.ACCEPTED: frozenset({S.ASSIGNED, S.CANCELLED}),
    S.ASSIGNED: frozenset({S.PICKING_UP, S.CANCELLED}),
    S.PICKING_UP: frozenset({S.PICKED_UP, S.CANCELLED}),
    S.PICKED_UP: frozenset({S.ON_THE_WAY, S.CANCELLED}),
    S.ON_THE_WAY: frozenset({S.NEARBY, S.DELIVERED, S.FAILED}),
    S.NEARBY: frozenset({S.DELIVERED, S.FAILED}),
    S.DELIVERED: frozenset(),
    S.CANCELLED: frozenset(),
    S.FAILED: frozenset(),
}

STAMP_FIELDS = {
    S.ACCEPTED: "accepted_at",
    S.ASSIGNED: "assigned_at",
    S.PICKED_UP: "picked_up_at",
    S.DELIVERED: "delivered_at",
    S.CANCELLED: "cancelled_at",
    S.FAILED: "failed_at",
}

# Lost races on a conditional update are retried against the fresh status this many times.
MAX_APPLY_ATTEMPTS = 3


class TransitionActor(str, Enum):
    OPERATOR = "operator"
    COURIER = "courier"
    SYSTEM = "system"


def can_transition(source: DeliveryStatus, target: DeliveryStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(source, frozenset())


def validate_transition(source: DeliveryStatus, target: DeliveryStatus) -> None:
    if not can_transition(source, target):
        raise InvalidTransition(source.value, target.value)


class DeliveryStateMachine:
    """Single entry point for every delivery status change.

    Operators, couriers and the location tracker all go through
    :meth:`transition`; the change is validated against
    ``ALLOWED_TRANSITIONS`` before anything is written.
    """

    def __init__(
        self,
        store: Store,
        broadcaster: Optional[Broadcaster] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.broadcaster = broadcaster or LoggingBroadcaster()
        self.clock = clock

    def _load(self, scope: BusinessScope, delivery_id: str) -> Delivery:
        delivery = self.store.get_delivery(scope, delivery_id)
        if delivery is None:
            raise NotFound("Delivery", delivery_id)
        return delivery

    def _stamp(self, delivery: Delivery) -> datetime:
        # Lifecycle stamps never go backwards, even if the clock does.
        return max(self.clock(), delivery.latest_lifecycle_stamp())

    def transition(
        self,
        scope: BusinessScope,
        delivery_id: str,
        target: DeliveryStatus,
        *,
        courier_id: Optional[str] = None,
        reason: Optional[str] = None,
        proof_of_delivery: Optional[str] = None,
        actor: TransitionActor = TransitionActor.OPERATOR,
    ) -> Delivery:
        target = DeliveryStatus(target)
        delivery = self._load(scope, delivery_id)
        if target == S.ASSIGNED and delivery.courier_id is not None:
            raise AlreadyAssigned(delivery_id, delivery.courier_id)
        validate_transition(delivery.status, target)

        if target == S.ASSIGNED:
            return self._assign(scope, delivery, courier_id, actor)

        for _ in range(MAX_APPLY_ATTEMPTS):
            previous = delivery.status
            changes: dict[str, Any] = {"status": target}
            stamp_field = STAMP_FIELDS.get(target)
            if stamp_field and getattr(delivery, stamp_field) is None:
                changes[stamp_field] = self._stamp(delivery)
            if target in (S.CANCELLED, S.FAILED) and reason:
                changes["cancellation_reason"] = reason
            if target == S.DELIVERED and proof_of_delivery:
                changes["proof_of_delivery"] = proof_of_delivery

            updated = self.store.update_delivery(scope, delivery_id, changes, expected={"status": previous})
            if updated is not None:
                break
            delivery = self._load(scope, delivery_id)
            validate_transition(delivery.status, target)
        else:
            raise InvalidTransition(delivery.status.value, target.value)

        logger.info(f"Delivery {delivery_id} {previous.value} -> {target.value} by {actor.value}")
        self._publish_status(scope, updated, previous, actor)

        if target.is_terminal and updated.courier_id:
            courier = self.store.release_courier(
                scope, updated.courier_id, delivery_id, completed=target == S.DELIVERED
            )
            if courier is not None:
                safe_publish(
                    self.broadcaster,
                    scope,
                    COURIER_STATUS_CHANGED,
                    {"courier_id": courier.courier_id, "status": courier.status.value, "delivery_id": None},
                )
        return updated

    def _assign(
        self,
        scope: BusinessScope,
        delivery: Delivery,
        courier_id: Optional[str],
        actor: TransitionActor,
    ) -> Delivery:
        if not courier_id:
            raise MissingCourier()
        courier = self.store.get_courier(scope, courier_id)
        if courier is None:
            raise NotFound("Courier", courier_id)
        if not courier.is_available or courier.has_active_delivery:
            raise DriverUnavailable(courier_id, courier.status.value)

        previous = delivery.status
        updated = self.store.claim_assignment(
            scope,
            delivery.delivery_id,
            courier_id,
            expected_status=previous,
            assigned_at=self._stamp(delivery),
        )
        logger.info(f"Delivery {delivery.delivery_id} assigned to courier {courier_id} by {actor.value}")
        self._publish_status(scope, updated, previous, actor)
        safe_publish(
            self.broadcaster,
            scope,
            COURIER_STATUS_CHANGED,
            {"courier_id": courier_id, "status": "busy", "delivery_id": delivery.delivery_id},
        )
        return updated

    def _publish_status(
        self,
        scope: BusinessScope,
        delivery: Delivery,
        previous: DeliveryStatus,
        actor: TransitionActor,
    ) -> None:
        safe_publish(
            self.broadcaster,
            scope,
            DELIVERY_STATUS_UPDATED,
            {
                "delivery_id": delivery.delivery_id,
                "order_id": delivery.order_id,
                "previous_status": previous.value,
                "status": delivery.status.value,
                "courier_id": delivery.courier_id,
                "actor": actor.value,
            },
        )
