"""Pydantic models for the public tracking page."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..models.domain import DeliveryStatus, VehicleClass
from ..services.orchestrator import TrackingInfo
from .common import Coordinates


class TrackingCourierModel(BaseModel):
    name: str
    vehicle: VehicleClass
    rating: float


class TrackingResponse(BaseModel):
    delivery_id: str
    status: DeliveryStatus
    status_text: str
    dropoff_address: str
    estimated_arrival: Optional[datetime] = None
    courier: Optional[TrackingCourierModel] = None
    current_location: Optional[Coordinates] = None
    route_polyline: Optional[str] = None
    timestamps: dict[str, Optional[datetime]]
    delivery_fee: float
    tip_amount: float
    can_rate: bool

    @classmethod
    def from_domain(cls, info: TrackingInfo) -> "TrackingResponse":
        courier = None
        if info.courier_name is not None:
            courier = TrackingCourierModel(
                name=info.courier_name,
                vehicle=info.courier_vehicle,
                rating=round(info.courier_rating, 1),
            )
        return cls(
            delivery_id=info.delivery_id,
            status=info.status,
            status_text=info.status_text,
            dropoff_address=info.dropoff_address,
            estimated_arrival=info.estimated_arrival,
            courier=courier,
            current_location=Coordinates.from_point(info.courier_position),
            route_polyline=info.route_polyline,
            timestamps=info.timestamps,
            delivery_fee=info.delivery_fee,
            tip_amount=info.tip_amount,
            can_rate=info.can_rate,
        )


class PublicRatingRequest(BaseModel):
    rating: int
    feedback: Optional[str] = Field(default=None, max_length=1000)


class RatingResponse(BaseModel):
    delivery_id: str
    rating: int
    feedback: Optional[str] = None
