"""Weighted multi-factor ranking of couriers for a delivery."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from ...models.domain import Courier, GeoPoint, VehicleClass
from ..geospatial import distance_meters

LOAD_BALANCING_WEIGHT = 20
PROXIMITY_WEIGHT = 30
RATING_WEIGHT = 10
CONCURRENT_PENALTY = -50
PROXIMITY_RANGE_METERS = 5000.0
UNKNOWN_POSITION_FACTOR = 0.5

# Upper bounds (km, inclusive) of the first four trip-distance buckets; anything longer
# falls in the last one.
DISTANCE_BUCKETS_KM = (1.0, 3.0, 5.0, 10.0)

VEHICLE_SUITABILITY: dict[VehicleClass, tuple[int, int, int, int, int]] = {
    VehicleClass.WALKING: (20, 10, -20, -50, -100),
    VehicleClass.BICYCLE: (15, 20, 10, -10, -30),
    VehicleClass.E_SCOOTER: (10, 15, 20, 15, 0),
    VehicleClass.MOTORCYCLE: (0, 10, 15, 20, 15),
    VehicleClass.CAR: (-10, 0, 10, 15, 20),
}


@dataclass(slots=True)
class ScoreBreakdown:
    load_balancing: int
    proximity: int
    vehicle_suitability: int
    rating: int
    concurrent_penalty: int

    @property
    def total(self) -> int:
        return (
            self.load_balancing
            + self.proximity
            + self.vehicle_suitability
            + self.rating
            + self.concurrent_penalty
        )


@dataclass(slots=True)
class ScoredCandidate:
    courier_id: str
    courier_name: str
    total_score: int
    breakdown: ScoreBreakdown
    distance_to_pickup_meters: Optional[int]
    vehicle: VehicleClass
    deliveries_today: int
    average_rating: float
    has_active_delivery: bool


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def distance_bucket(distance_km: float) -> int:
    for index, upper_bound in enumerate(DISTANCE_BUCKETS_KM):
        if distance_km <= upper_bound:
            return index
    return len(DISTANCE_BUCKETS_KM)


def vehicle_suitability(vehicle: VehicleClass, trip_distance_km: float) -> int:
    return VEHICLE_SUITABILITY[vehicle][distance_bucket(trip_distance_km)]


def score_courier(
    courier: Courier,
    pickup: GeoPoint,
    trip_distance_km: float,
    max_deliveries_today: int,
) -> ScoredCandidate:
    """Score a single courier; ``max_deliveries_today`` must be at least 1."""

    load_balancing = _round_half_up(
        LOAD_BALANCING_WEIGHT * (1 - courier.deliveries_today / max_deliveries_today)
    )

    distance_to_pickup: Optional[float] = None
    if courier.position is not None:
        distance_to_pickup = distance_meters(courier.position, pickup)
        closeness = max(0.0, 1 - distance_to_pickup / PROXIMITY_RANGE_METERS)
        proximity = _round_half_up(PROXIMITY_WEIGHT * closeness)
    else:
        proximity = _round_half_up(PROXIMITY_WEIGHT * UNKNOWN_POSITION_FACTOR)

    rating = _round_half_up(RATING_WEIGHT * (courier.average_rating - 1) / 4)
    penalty = CONCURRENT_PENALTY if courier.has_active_delivery else 0

    breakdown = ScoreBreakdown(
        load_balancing=load_balancing,
        proximity=proximity,
        vehicle_suitability=vehicle_suitability(courier.vehicle, trip_distance_km),
        rating=rating,
        concurrent_penalty=penalty,
    )
    return ScoredCandidate(
        courier_id=courier.courier_id,
        courier_name=courier.name,
        total_score=breakdown.total,
        breakdown=breakdown,
        distance_to_pickup_meters=_round_half_up(distance_to_pickup) if distance_to_pickup is not None else None,
        vehicle=courier.vehicle,
        deliveries_today=courier.deliveries_today,
        average_rating=courier.average_rating,
        has_active_delivery=courier.has_active_delivery,
    )


def suggest(
    candidates: Sequence[Courier],
    pickup: GeoPoint,
    total_trip_distance_km: float,
    limit: int,
) -> list[ScoredCandidate]:
    """Rank candidates by total score, best first.

    Ties are broken by fewer deliveries today, then by courier id, so the
    ordering is deterministic for identical scores.
    """

    if limit < 1:
        raise ValueError("limit must be >= 1")
    if not candidates:
        return []

    max_deliveries_today = max(max(courier.deliveries_today for courier in candidates), 1)
    scored = [
        score_courier(courier, pickup, total_trip_distance_km, max_deliveries_today)
        for courier in candidates
    ]
    scored.sort(key=lambda item: (-item.total_score, item.deliveries_today, item.courier_id))
    return scored[:limit]


def scoring_config() -> dict:
    return {
        "weights": {
            "load_balancing": LOAD_BALANCING_WEIGHT,
            "proximity": PROXIMITY_WEIGHT,
            "driver_rating": RATING_WEIGHT,
            "concurrent_penalty": CONCURRENT_PENALTY,
        },
        "proximity_range_meters": PROXIMITY_RANGE_METERS,
        "distance_buckets_km": list(DISTANCE_BUCKETS_KM),
        "vehicle_suitability": {vehicle.value: list(row) for vehicle, row in VEHICLE_SUITABILITY.items()},
    }
