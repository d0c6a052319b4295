"""Routing providers used for delivery ETAs.

``OSRMRoutingProvider`` asks an OSRM server for the street route;
``StraightLineRoutingProvider`` estimates from great-circle distance when no
server is configured. Both raise :class:`RoutingError` on failure.
"""

from __future__ import annotations

import logging
import math
from datetime import timedelta
from typing import Optional, Protocol

import httpx

from ...config import settings
from ...errors import RoutingError
from ...models.domain import GeoPoint, VehicleClass, utcnow
from ..geospatial import distance_meters
from .models import EtaResult, RouteResult, RouteStep
from .osrm_client import OSRMClient

logger = logging.getLogger(__name__)

OSRM_PROFILES = {
    VehicleClass.WALKING: "foot",
    VehicleClass.BICYCLE: "cycling",
    VehicleClass.E_SCOOTER: "cycling",
    VehicleClass.MOTORCYCLE: "driving",
    VehicleClass.CAR: "driving",
}

# metres per second
AVERAGE_SPEEDS = {
    VehicleClass.WALKING: 1.4,
    VehicleClass.BICYCLE: 4.2,
    VehicleClass.E_SCOOTER: 5.6,
    VehicleClass.MOTORCYCLE: 8.3,
    VehicleClass.CAR: 8.3,
}

# Roads run roughly 1.3x longer than the straight line.
ROAD_FACTOR = 1.3


class RoutingProvider(Protocol):
    def calculate_route(self, origin: GeoPoint, destination: GeoPoint, vehicle: VehicleClass) -> RouteResult: ...

    def calculate_eta(self, origin: GeoPoint, destination: GeoPoint, vehicle: VehicleClass) -> EtaResult: ...


def _eta_from_route(route: RouteResult, confidence: str) -> EtaResult:
    duration = int(math.ceil(route.duration_seconds))
    return EtaResult(
        estimated_arrival=utcnow() + timedelta(seconds=duration),
        duration_seconds=duration,
        distance_meters=route.distance_meters,
        confidence=confidence,
    )


class StraightLineRoutingProvider:
    """Haversine distance stretched by a road factor over the vehicle's average speed."""

    def calculate_route(self, origin: GeoPoint, destination: GeoPoint, vehicle: VehicleClass) -> RouteResult:
        road_distance = distance_meters(origin, destination) * ROAD_FACTOR
        duration = math.ceil(road_distance / AVERAGE_SPEEDS[vehicle])
        return RouteResult(
            distance_meters=round(road_distance),
            duration_seconds=duration,
            steps=[RouteStep(instruction="Head to destination", distance_meters=round(road_distance), duration_seconds=duration)],
        )

    def calculate_eta(self, origin: GeoPoint, destination: GeoPoint, vehicle: VehicleClass) -> EtaResult:
        return _eta_from_route(self.calculate_route(origin, destination, vehicle), confidence="low")


class OSRMRoutingProvider:
    def __init__(self, client: Optional[OSRMClient] = None) -> None:
        self.client = client or OSRMClient()

    def calculate_route(self, origin: GeoPoint, destination: GeoPoint, vehicle: VehicleClass) -> RouteResult:
        try:
            data = self.client.route(
                [(origin.latitude, origin.longitude), (destination.latitude, destination.longitude)],
                profile=OSRM_PROFILES[vehicle],
            )
        except (httpx.HTTPError, ConnectionError, ValueError) as exc:
            raise RoutingError(f"OSRM route failed: {exc}") from exc

        route = data["routes"][0]
        steps = [
            RouteStep(
                instruction=_describe_step(step),
                distance_meters=float(step.get("distance", 0.0)),
                duration_seconds=float(step.get("duration", 0.0)),
            )
            for leg in route.get("legs", [])
            for step in leg.get("steps", [])
        ]
        return RouteResult(
            distance_meters=float(route["distance"]),
            duration_seconds=float(route["duration"]),
            polyline=route.get("geometry"),
            steps=steps,
        )

    def calculate_eta(self, origin: GeoPoint, destination: GeoPoint, vehicle: VehicleClass) -> EtaResult:
        return _eta_from_route(self.calculate_route(origin, destination, vehicle), confidence="high")


def _describe_step(step: dict) -> str:
    maneuver = step.get("maneuver", {})
    parts = [maneuver.get("type", "continue"), maneuver.get("modifier")]
    text = " ".join(part for part in parts if part)
    name = step.get("name")
    return f"{text} onto {name}" if name else text


def build_routing_provider() -> RoutingProvider:
    if settings.osrm_base_url:
        logger.info(f"Using OSRM routing at {settings.osrm_base_url}")
        return OSRMRoutingProvider()
    logger.info("OSRM not configured; using straight-line ETA estimates")
    return StraightLineRoutingProvider()
