from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from courier_dispatch.models.domain import (
    BusinessScope,
    Courier,
    CourierStatus,
    Delivery,
    DeliveryStatus,
    GeoPoint,
    VehicleClass,
)
from courier_dispatch.persistence.memory import InMemoryStore
from courier_dispatch.services.delivery.state_machine import DeliveryStateMachine
from courier_dispatch.services.orchestrator import AssignmentOrchestrator
from courier_dispatch.services.realtime import RecordingBroadcaster
from courier_dispatch.services.routing.models import EtaResult, RouteResult
from courier_dispatch.services.tracking.throttle import BroadcastThrottle
from courier_dispatch.services.tracking.tracker import LocationTracker

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = BASE_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class DummyRouting:
    """Routing provider answering with a fixed duration."""

    def __init__(self, duration_seconds: int = 300, error: Optional[Exception] = None) -> None:
        self.duration_seconds = duration_seconds
        self.error = error
        self.calls = []

    def calculate_route(self, origin, destination, vehicle):
        if self.error:
            raise self.error
        return RouteResult(distance_meters=1200.0, duration_seconds=float(self.duration_seconds), polyline="abc")

    def calculate_eta(self, origin, destination, vehicle):
        self.calls.append((origin, destination, vehicle))
        if self.error:
            raise self.error
        return EtaResult(
            estimated_arrival=BASE_TIME + timedelta(seconds=self.duration_seconds),
            duration_seconds=self.duration_seconds,
            distance_meters=1200.0,
            confidence="high",
        )


@pytest.fixture
def scope() -> BusinessScope:
    return BusinessScope("biz-1")


@pytest.fixture
def other_scope() -> BusinessScope:
    return BusinessScope("biz-2")


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def routing() -> DummyRouting:
    return DummyRouting()


@pytest.fixture
def state_machine(store, broadcaster, clock) -> DeliveryStateMachine:
    return DeliveryStateMachine(store, broadcaster, clock=clock)


@pytest.fixture
def tracker(store, state_machine, routing, broadcaster, clock) -> LocationTracker:
    tracker = LocationTracker(
        store,
        state_machine,
        routing,
        broadcaster,
        nearby_radius_meters=200.0,
        history_limit=100,
        eta_timeout_seconds=1.0,
        throttle=BroadcastThrottle(min_interval_seconds=3.0, min_distance_meters=10.0),
        clock=clock,
    )
    yield tracker
    tracker.shutdown()


@pytest.fixture
def engine(store, broadcaster, routing, state_machine, tracker) -> AssignmentOrchestrator:
    return AssignmentOrchestrator(
        store,
        broadcaster=broadcaster,
        routing=routing,
        state_machine=state_machine,
        tracker=tracker,
        suggestion_limit=5,
    )


def make_courier(
    courier_id: str,
    business_id: str = "biz-1",
    *,
    status: CourierStatus = CourierStatus.AVAILABLE,
    vehicle: VehicleClass = VehicleClass.CAR,
    position: Optional[GeoPoint] = None,
    deliveries_today: int = 0,
    average_rating: float = 5.0,
    active_delivery_id: Optional[str] = None,
    enabled: bool = True,
) -> Courier:
    return Courier(
        courier_id=courier_id,
        business_id=business_id,
        name=f"Courier {courier_id}",
        vehicle=vehicle,
        status=status,
        position=position,
        deliveries_today=deliveries_today,
        average_rating=average_rating,
        active_delivery_id=active_delivery_id,
        enabled=enabled,
    )


def make_delivery(
    delivery_id: str,
    business_id: str = "biz-1",
    *,
    status: DeliveryStatus = DeliveryStatus.PENDING,
    pickup: GeoPoint = GeoPoint(10.0, 10.01),
    dropoff: Optional[GeoPoint] = GeoPoint(10.0, 10.0),
    courier_id: Optional[str] = None,
    created_at: datetime = BASE_TIME - timedelta(minutes=30),
) -> Delivery:
    return Delivery(
        delivery_id=delivery_id,
        business_id=business_id,
        order_id=f"order-{delivery_id}",
        pickup_address="1 Store Street",
        pickup=pickup,
        dropoff_address="9 Customer Road",
        customer_name="Sam",
        customer_phone="+100000000",
        tracking_token=f"token-{delivery_id}",
        status=status,
        dropoff=dropoff,
        courier_id=courier_id,
        created_at=created_at,
    )
