"""Service-zone containment, validation and delivery pricing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from shapely.geometry import Polygon

from ..errors import MalformedZone
from ..models.domain import GeoPoint, ServiceZone, ZoneShape
from .geospatial import distance_meters, point_in_polygon

logger = logging.getLogger(__name__)

REASON_NO_ZONES = "no_zones_configured"
REASON_BELOW_MINIMUM = "below_minimum_order"
REASON_OUTSIDE_AREA = "outside_delivery_area"


@dataclass(slots=True)
class DeliveryQuote:
    deliverable: bool
    delivery_fee: float
    estimated_time_range: str
    zone: Optional[ServiceZone] = None
    distance_km: Optional[float] = None
    reason: Optional[str] = None


def _check_coordinate(point: GeoPoint, label: str) -> None:
    if not -90.0 <= point.latitude <= 90.0 or not -180.0 <= point.longitude <= 180.0:
        raise MalformedZone(f"{label} ({point.latitude}, {point.longitude}) is out of range")


def validate_zone(zone: ServiceZone) -> ServiceZone:
    """Fail fast on zones that containment or pricing could not handle."""

    if not zone.name or not zone.name.strip():
        raise MalformedZone("Zone name is required")
    if zone.shape == ZoneShape.RADIUS:
        if zone.center is None or zone.radius_meters is None:
            raise MalformedZone("Radius zone requires a center and radius_meters")
        if zone.radius_meters <= 0:
            raise MalformedZone(f"Radius must be positive, got {zone.radius_meters}")
        _check_coordinate(zone.center, "Zone center")
    elif zone.shape == ZoneShape.POLYGON:
        ring = zone.polygon or []
        if len(ring) < 3:
            raise MalformedZone("Polygon zone requires at least 3 coordinates")
        for index, point in enumerate(ring):
            _check_coordinate(point, f"Polygon point {index}")
        polygon = Polygon([(point.longitude, point.latitude) for point in ring])
        if polygon.area == 0:
            raise MalformedZone("Polygon zone is degenerate (zero area)")
        if not polygon.is_valid:
            raise MalformedZone("Polygon zone ring must not self-intersect")
    else:
        raise MalformedZone(f"Unknown zone shape '{zone.shape}'")

    for field_name in ("base_fee", "per_km_fee", "min_order_amount"):
        if getattr(zone, field_name) < 0:
            raise MalformedZone(f"{field_name} must be >= 0")
    if zone.free_delivery_threshold is not None and zone.free_delivery_threshold < 0:
        raise MalformedZone("free_delivery_threshold must be >= 0")
    if zone.estimated_min_minutes > zone.estimated_max_minutes:
        raise MalformedZone("estimated_min_minutes must not exceed estimated_max_minutes")
    return zone


def contains(zone: ServiceZone, point: GeoPoint) -> bool:
    """Return True when the point lies inside a validated zone."""

    if zone.shape == ZoneShape.RADIUS:
        return distance_meters(zone.center, point) <= zone.radius_meters
    return point_in_polygon(point, zone.polygon)


def delivery_fee(zone: ServiceZone, distance_km: float, order_amount: float) -> float:
    if zone.free_delivery_threshold is not None and order_amount >= zone.free_delivery_threshold:
        return 0.0
    fee = zone.base_fee + zone.per_km_fee * max(0.0, distance_km)
    return round(max(0.0, fee), 2)


def _by_priority(zones: Iterable[ServiceZone]) -> list[ServiceZone]:
    return sorted(
        (zone for zone in zones if zone.enabled),
        key=lambda zone: (-zone.priority, zone.name, zone.zone_id),
    )


def find_zone_for_point(zones: Sequence[ServiceZone], point: GeoPoint) -> Optional[ServiceZone]:
    """Highest-priority enabled zone containing the point, if any."""

    for zone in _by_priority(zones):
        if contains(zone, point):
            return zone
    return None


def quote(
    zones: Sequence[ServiceZone],
    point: GeoPoint,
    order_amount: float,
    store: Optional[GeoPoint] = None,
) -> DeliveryQuote:
    """Check deliverability of a drop-off point and price it."""

    candidates = _by_priority(zones)
    if not candidates:
        return DeliveryQuote(deliverable=False, delivery_fee=0.0, estimated_time_range="", reason=REASON_NO_ZONES)

    for zone in candidates:
        if not contains(zone, point):
            continue
        if order_amount < zone.min_order_amount:
            return DeliveryQuote(
                deliverable=False,
                delivery_fee=0.0,
                estimated_time_range=zone.estimated_time_range,
                zone=zone,
                reason=REASON_BELOW_MINIMUM,
            )
        distance_km: Optional[float] = None
        if store is not None:
            distance_km = distance_meters(store, point) / 1000.0
        fee = delivery_fee(zone, distance_km or 0.0, order_amount)
        logger.debug(f"Point ({point.latitude}, {point.longitude}) matched zone '{zone.name}' fee={fee}")
        return DeliveryQuote(
            deliverable=True,
            delivery_fee=fee,
            estimated_time_range=zone.estimated_time_range,
            zone=zone,
            distance_km=distance_km,
        )

    return DeliveryQuote(deliverable=False, delivery_fee=0.0, estimated_time_range="", reason=REASON_OUTSIDE_AREA)
