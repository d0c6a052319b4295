"""Pydantic request/response models for courier endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..models.domain import Courier, CourierStatus, VehicleClass
from .common import Coordinates


class CourierCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    vehicle: VehicleClass = VehicleClass.CAR
    courier_id: Optional[str] = Field(default=None, description="Optional external identifier.")
    max_concurrent_deliveries: int = Field(default=1, ge=1)


class CourierStatusRequest(BaseModel):
    status: CourierStatus


class CourierEnabledRequest(BaseModel):
    enabled: bool


class CourierModel(BaseModel):
    courier_id: str
    name: str
    vehicle: VehicleClass
    status: CourierStatus
    position: Optional[Coordinates] = None
    last_location_update: Optional[datetime] = None
    active_delivery_id: Optional[str] = None
    deliveries_today: int
    total_deliveries: int
    average_rating: float
    total_ratings: int
    max_concurrent_deliveries: int
    enabled: bool

    @classmethod
    def from_domain(cls, courier: Courier) -> "CourierModel":
        return cls(
            courier_id=courier.courier_id,
            name=courier.name,
            vehicle=courier.vehicle,
            status=courier.status,
            position=Coordinates.from_point(courier.position),
            last_location_update=courier.last_location_update,
            active_delivery_id=courier.active_delivery_id,
            deliveries_today=courier.deliveries_today,
            total_deliveries=courier.total_deliveries,
            average_rating=round(courier.average_rating, 2),
            total_ratings=courier.total_ratings,
            max_concurrent_deliveries=courier.max_concurrent_deliveries,
            enabled=courier.enabled,
        )


class ResetCountsResponse(BaseModel):
    reset: int
