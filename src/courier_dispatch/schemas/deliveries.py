"""Pydantic request/response models for delivery endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..models.domain import Delivery, DeliveryStatus, VehicleClass
from ..services.assignment.scorer import ScoredCandidate
from ..services.orchestrator import AutoAssignOutcome, DeliveryStats, NewDelivery
from .common import Coordinates


class DeliveryCreateRequest(BaseModel):
    order_id: str = Field(..., min_length=1)
    pickup_address: str
    pickup: Coordinates
    dropoff_address: str
    dropoff: Optional[Coordinates] = Field(default=None, description="Unset when the address is not geocoded yet.")
    delivery_instructions: Optional[str] = None
    customer_name: str
    customer_phone: str
    delivery_fee: Optional[float] = Field(default=None, ge=0.0)
    order_amount: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Used to price the delivery from service zones when no fee is given.",
    )
    tip_amount: float = Field(default=0.0, ge=0.0)

    def to_new_delivery(self) -> NewDelivery:
        return NewDelivery(
            order_id=self.order_id,
            pickup_address=self.pickup_address,
            pickup=self.pickup.to_point(),
            dropoff_address=self.dropoff_address,
            customer_name=self.customer_name,
            customer_phone=self.customer_phone,
            dropoff=self.dropoff.to_point() if self.dropoff else None,
            delivery_instructions=self.delivery_instructions,
            delivery_fee=self.delivery_fee,
            order_amount=self.order_amount,
            tip_amount=self.tip_amount,
        )


class AssignRequest(BaseModel):
    courier_id: str = Field(..., min_length=1)


class StatusUpdateRequest(BaseModel):
    status: DeliveryStatus
    reason: Optional[str] = None
    courier_id: Optional[str] = Field(default=None, description="Required when the target status is 'assigned'.")


class CompleteRequest(BaseModel):
    proof_of_delivery: Optional[str] = Field(default=None, description="Reference to a photo or signature.")


class RatingRequest(BaseModel):
    # Range is checked by the engine so out-of-range values map to a dispatch error.
    rating: int
    feedback: Optional[str] = None


class TipRequest(BaseModel):
    amount: float


class LocationReportRequest(BaseModel):
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    heading: Optional[float] = Field(default=None, ge=0.0, lt=360.0)
    speed: Optional[float] = Field(default=None, ge=0.0)
    accuracy: Optional[float] = Field(default=None, ge=0.0)


class LocationPointModel(BaseModel):
    latitude: float
    longitude: float
    timestamp: datetime
    accuracy: Optional[float] = None


class DeliveryModel(BaseModel):
    delivery_id: str
    order_id: str
    status: DeliveryStatus
    pickup_address: str
    pickup: Coordinates
    dropoff_address: str
    dropoff: Optional[Coordinates] = None
    delivery_instructions: Optional[str] = None
    customer_name: str
    customer_phone: str
    courier_id: Optional[str] = None
    tracking_token: str
    distance_meters: Optional[float] = None
    estimated_duration_seconds: Optional[int] = None
    estimated_arrival: Optional[datetime] = None
    delivery_fee: float
    tip_amount: float
    created_at: datetime
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
    location_history: list[LocationPointModel] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, delivery: Delivery) -> "DeliveryModel":
        return cls(
            delivery_id=delivery.delivery_id,
            order_id=delivery.order_id,
            status=delivery.status,
            pickup_address=delivery.pickup_address,
            pickup=Coordinates.from_point(delivery.pickup),
            dropoff_address=delivery.dropoff_address,
            dropoff=Coordinates.from_point(delivery.dropoff),
            delivery_instructions=delivery.delivery_instructions,
            customer_name=delivery.customer_name,
            customer_phone=delivery.customer_phone,
            courier_id=delivery.courier_id,
            tracking_token=delivery.tracking_token,
            distance_meters=delivery.distance_meters,
            estimated_duration_seconds=delivery.estimated_duration_seconds,
            estimated_arrival=delivery.estimated_arrival,
            delivery_fee=delivery.delivery_fee,
            tip_amount=delivery.tip_amount,
            created_at=delivery.created_at,
            accepted_at=delivery.accepted_at,
            assigned_at=delivery.assigned_at,
            picked_up_at=delivery.picked_up_at,
            delivered_at=delivery.delivered_at,
            cancelled_at=delivery.cancelled_at,
            failed_at=delivery.failed_at,
            cancellation_reason=delivery.cancellation_reason,
            proof_of_delivery=delivery.proof_of_delivery,
            customer_rating=delivery.customer_rating,
            customer_feedback=delivery.customer_feedback,
            location_history=[
                LocationPointModel(
                    latitude=point.latitude,
                    longitude=point.longitude,
                    timestamp=point.timestamp,
                    accuracy=point.accuracy,
                )
                for point in delivery.location_history
            ],
        )


class ScoreBreakdownModel(BaseModel):
    load_balancing: int
    proximity: int
    vehicle_suitability: int
    rating: int
    concurrent_penalty: int


class SuggestionModel(BaseModel):
    courier_id: str
    courier_name: str
    total_score: int
    breakdown: ScoreBreakdownModel
    distance_to_pickup_meters: Optional[int] = None
    vehicle: VehicleClass
    deliveries_today: int
    average_rating: float
    has_active_delivery: bool

    @classmethod
    def from_domain(cls, candidate: ScoredCandidate) -> "SuggestionModel":
        breakdown = candidate.breakdown
        return cls(
            courier_id=candidate.courier_id,
            courier_name=candidate.courier_name,
            total_score=candidate.total_score,
            breakdown=ScoreBreakdownModel(
                load_balancing=breakdown.load_balancing,
                proximity=breakdown.proximity,
                vehicle_suitability=breakdown.vehicle_suitability,
                rating=breakdown.rating,
                concurrent_penalty=breakdown.concurrent_penalty,
            ),
            distance_to_pickup_meters=candidate.distance_to_pickup_meters,
            vehicle=candidate.vehicle,
            deliveries_today=candidate.deliveries_today,
            average_rating=candidate.average_rating,
            has_active_delivery=candidate.has_active_delivery,
        )


class AutoAssignResponse(BaseModel):
    assigned: bool
    courier_id: Optional[str] = None
    courier_name: Optional[str] = None
    reason: Optional[str] = None
    delivery: Optional[DeliveryModel] = None

    @classmethod
    def from_domain(cls, outcome: AutoAssignOutcome) -> "AutoAssignResponse":
        return cls(
            assigned=outcome.assigned,
            courier_id=outcome.courier_id,
            courier_name=outcome.courier_name,
            reason=outcome.reason,
            delivery=DeliveryModel.from_domain(outcome.delivery) if outcome.delivery else None,
        )


class IngestResponse(BaseModel):
    accepted: bool
    status: DeliveryStatus
    became_nearby: bool
    distance_to_dropoff_meters: Optional[float] = None
    estimated_arrival: Optional[datetime] = None
    duration_seconds: Optional[int] = None


class DeliveryStatsModel(BaseModel):
    total: int
    completed: int
    cancelled: int
    in_progress: int
    average_delivery_minutes: float
    average_rating: float

    @classmethod
    def from_domain(cls, stats: DeliveryStats) -> "DeliveryStatsModel":
        return cls(
            total=stats.total,
            completed=stats.completed,
            cancelled=stats.cancelled,
            in_progress=stats.in_progress,
            average_delivery_minutes=round(stats.average_delivery_minutes, 1),
            average_rating=round(stats.average_rating, 2),
        )
