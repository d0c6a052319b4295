"""Shared pydantic models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ..models.domain import GeoPoint


class Coordinates(BaseModel):
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    def to_point(self) -> GeoPoint:
        return GeoPoint(self.latitude, self.longitude)

    @classmethod
    def from_point(cls, point: GeoPoint | None) -> "Coordinates | None":
        if point is None:
            return None
        return cls(latitude=point.latitude, longitude=point.longitude)
