"""Pydantic request/response models for service-zone endpoints."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from ..models.domain import GeoPoint, ServiceZone, ZoneShape
from ..services.geofence import DeliveryQuote
from .common import Coordinates


class ZoneCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    shape: ZoneShape
    base_fee: float = Field(..., ge=0.0)
    center: Optional[Coordinates] = None
    radius_meters: Optional[float] = Field(default=None, description="Required for radius zones.")
    polygon: Optional[list[Coordinates]] = Field(default=None, description="Ordered ring, at least 3 points.")
    per_km_fee: float = Field(default=0.0, ge=0.0)
    min_order_amount: float = Field(default=0.0, ge=0.0)
    free_delivery_threshold: Optional[float] = Field(default=None, ge=0.0)
    estimated_min_minutes: int = Field(default=15, ge=0)
    estimated_max_minutes: int = Field(default=45, ge=0)
    priority: int = 0
    enabled: bool = True
    color: str = "#3B82F6"

    def zone_options(self) -> dict[str, Any]:
        options = self.model_dump(exclude={"name", "shape", "base_fee", "center", "polygon"})
        options["center"] = self.center.to_point() if self.center else None
        options["polygon"] = [point.to_point() for point in self.polygon] if self.polygon else None
        return options


class ZoneUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    base_fee: Optional[float] = Field(default=None, ge=0.0)
    center: Optional[Coordinates] = None
    radius_meters: Optional[float] = None
    polygon: Optional[list[Coordinates]] = None
    per_km_fee: Optional[float] = Field(default=None, ge=0.0)
    min_order_amount: Optional[float] = Field(default=None, ge=0.0)
    free_delivery_threshold: Optional[float] = Field(default=None, ge=0.0)
    estimated_min_minutes: Optional[int] = Field(default=None, ge=0)
    estimated_max_minutes: Optional[int] = Field(default=None, ge=0)
    priority: Optional[int] = None
    enabled: Optional[bool] = None
    color: Optional[str] = None

    def changes(self) -> dict[str, Any]:
        changes: dict[str, Any] = self.model_dump(exclude_unset=True, exclude={"center", "polygon"})
        if "center" in self.model_fields_set:
            changes["center"] = self.center.to_point() if self.center else None
        if "polygon" in self.model_fields_set:
            changes["polygon"] = [point.to_point() for point in self.polygon] if self.polygon else None
        return changes


class ZoneModel(BaseModel):
    zone_id: str
    name: str
    shape: ZoneShape
    color: str
    center: Optional[Coordinates] = None
    radius_meters: Optional[float] = None
    polygon: Optional[list[Coordinates]] = None
    base_fee: float
    per_km_fee: float
    min_order_amount: float
    free_delivery_threshold: Optional[float] = None
    estimated_time_range: str
    priority: int
    enabled: bool

    @classmethod
    def from_domain(cls, zone: ServiceZone) -> "ZoneModel":
        return cls(
            zone_id=zone.zone_id,
            name=zone.name,
            shape=zone.shape,
            color=zone.color,
            center=Coordinates.from_point(zone.center),
            radius_meters=zone.radius_meters,
            polygon=[Coordinates.from_point(point) for point in zone.polygon] if zone.polygon else None,
            base_fee=zone.base_fee,
            per_km_fee=zone.per_km_fee,
            min_order_amount=zone.min_order_amount,
            free_delivery_threshold=zone.free_delivery_threshold,
            estimated_time_range=zone.estimated_time_range,
            priority=zone.priority,
            enabled=zone.enabled,
        )


class ZoneCheckRequest(BaseModel):
    point: Coordinates
    order_amount: float = Field(default=0.0, ge=0.0)
    store: Optional[Coordinates] = Field(default=None, description="Store location, used for per-km pricing.")

    def store_point(self) -> Optional[GeoPoint]:
        return self.store.to_point() if self.store else None


class ZoneCheckResponse(BaseModel):
    deliverable: bool
    delivery_fee: float
    estimated_time_range: str
    zone: Optional[ZoneModel] = None
    distance_km: Optional[float] = None
    reason: Optional[str] = None

    @classmethod
    def from_domain(cls, quote: DeliveryQuote) -> "ZoneCheckResponse":
        return cls(
            deliverable=quote.deliverable,
            delivery_fee=quote.delivery_fee,
            estimated_time_range=quote.estimated_time_range,
            zone=ZoneModel.from_domain(quote.zone) if quote.zone else None,
            distance_km=round(quote.distance_km, 2) if quote.distance_km is not None else None,
            reason=quote.reason,
        )
