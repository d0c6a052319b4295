"""Domain models for couriers, deliveries and service zones."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CourierStatus(str, Enum):
    OFFLINE = "offline"
    AVAILABLE = "available"
    BUSY = "busy"
    ON_BREAK = "on_break"


class VehicleClass(str, Enum):
    WALKING = "walking"
    BICYCLE = "bicycle"
    E_SCOOTER = "e_scooter"
    MOTORCYCLE = "motorcycle"
    CAR = "car"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    ASSIGNED = "assigned"
    PICKING_UP = "picking_up"
    PICKED_UP = "picked_up"
    ON_THE_WAY = "on_the_way"
    NEARBY = "nearby"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED, DeliveryStatus.FAILED})


class ZoneShape(str, Enum):
    RADIUS = "radius"
    POLYGON = "polygon"


@dataclass(frozen=True, slots=True)
class BusinessScope:
    """Tenant context passed explicitly to every engine operation."""

    business_id: str


@dataclass(frozen=True, slots=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass(slots=True)
class LocationPoint:
    latitude: float
    longitude: float
    timestamp: datetime
    accuracy: Optional[float] = None


@dataclass(slots=True)
class Courier:
    """A delivery agent belonging to one business."""

    courier_id: str
    business_id: str
    name: str
    vehicle: VehicleClass = VehicleClass.CAR
    status: CourierStatus = CourierStatus.OFFLINE
    position: Optional[GeoPoint] = None
    last_location_update: Optional[datetime] = None
    active_delivery_id: Optional[str] = None
    deliveries_today: int = 0
    total_deliveries: int = 0
    average_rating: float = 5.0
    total_ratings: int = 0
    max_concurrent_deliveries: int = 1
    enabled: bool = True

    @property
    def is_available(self) -> bool:
        return self.status == CourierStatus.AVAILABLE and self.enabled

    @property
    def has_active_delivery(self) -> bool:
        return self.active_delivery_id is not None


@dataclass(slots=True)
class Delivery:
    """One delivery per order, moved through its lifecycle by the state machine."""

    delivery_id: str
    business_id: str
    order_id: str
    pickup_address: str
    pickup: GeoPoint
    dropoff_address: str
    customer_name: str
    customer_phone: str
    tracking_token: str
    status: DeliveryStatus = DeliveryStatus.PENDING
    dropoff: Optional[GeoPoint] = None
    delivery_instructions: Optional[str] = None
    courier_id: Optional[str] = None
    distance_meters: Optional[float] = None
    estimated_duration_seconds: Optional[int] = None
    estimated_arrival: Optional[datetime] = None
    route_polyline: Optional[str] = None
    delivery_fee: float = 0.0
    tip_amount: float = 0.0
    created_at: datetime = field(default_factory=utcnow)
    accepted_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    proof_of_delivery: Optional[str] = None
    customer_rating: Optional[int] = None
    customer_feedback: Optional[str] = None
    location_history: list[LocationPoint] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    def latest_lifecycle_stamp(self) -> datetime:
        stamps = [
            self.created_at,
            self.accepted_at,
            self.assigned_at,
            self.picked_up_at,
            self.delivered_at,
            self.cancelled_at,
            self.failed_at,
        ]
        return max(stamp for stamp in stamps if stamp is not None)


@dataclass(slots=True)
class ServiceZone:
    """A named service area with pricing, shaped as a circle or a polygon."""

    zone_id: str
    business_id: str
    name: str
    shape: ZoneShape
    base_fee: float
    center: Optional[GeoPoint] = None
    radius_meters: Optional[float] = None
    polygon: Optional[list[GeoPoint]] = None
    per_km_fee: float = 0.0
    min_order_amount: float = 0.0
    free_delivery_threshold: Optional[float] = None
    estimated_min_minutes: int = 15
    estimated_max_minutes: int = 45
    priority: int = 0
    enabled: bool = True
    color: str = "#3B82F6"

    @property
    def estimated_time_range(self) -> str:
        return f"{self.estimated_min_minutes}-{self.estimated_max_minutes} min"
