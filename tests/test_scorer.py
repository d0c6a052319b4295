import pytest

from courier_dispatch.models.domain import CourierStatus, GeoPoint, VehicleClass
from courier_dispatch.services.assignment import scorer

from conftest import make_courier

PICKUP = GeoPoint(10.0, 10.0)


def test_ranking_and_breakdown():
    couriers = [
        make_courier("b", vehicle=VehicleClass.BICYCLE, position=GeoPoint(10.5, 10.5), deliveries_today=2, average_rating=3.0),
        make_courier("c", vehicle=VehicleClass.WALKING, deliveries_today=1, average_rating=4.2),
        make_courier("a", vehicle=VehicleClass.CAR, position=PICKUP, deliveries_today=0, average_rating=5.0),
    ]

    ranked = scorer.suggest(couriers, PICKUP, total_trip_distance_km=4.0, limit=5)

    assert [c.courier_id for c in ranked] == ["a", "b", "c"]
    top = ranked[0]
    assert top.breakdown.load_balancing == 20
    assert top.breakdown.proximity == 30
    assert top.breakdown.vehicle_suitability == 10
    assert top.breakdown.rating == 10
    assert top.breakdown.concurrent_penalty == 0
    assert top.total_score == 70
    assert top.distance_to_pickup_meters == 0

    # b is far beyond the proximity range
    assert ranked[1].breakdown.proximity == 0
    assert ranked[1].breakdown.load_balancing == 0
    assert ranked[1].total_score == 0 + 0 + 10 + 5

    walker = ranked[2]
    assert walker.distance_to_pickup_meters is None
    assert walker.breakdown.proximity == 15
    assert walker.breakdown.vehicle_suitability == -20
    assert walker.breakdown.rating == 8
    assert walker.total_score == 10 + 15 - 20 + 8


def test_concurrent_penalty_applies_to_busy_courier():
    busy = make_courier("busy", status=CourierStatus.BUSY, active_delivery_id="d-9")
    free = make_courier("free")
    ranked = scorer.suggest([busy, free], PICKUP, 2.0, 5)
    assert ranked[0].courier_id == "free"
    assert ranked[1].breakdown.concurrent_penalty == -50
    assert ranked[0].total_score - ranked[1].total_score == 50


def test_ties_break_on_deliveries_today_then_id():
    # x: load 10 + rating 10, y: load 20 + rating 0; z sets the max of 2
    x = make_courier("x", deliveries_today=1, average_rating=5.0)
    y = make_courier("y", deliveries_today=0, average_rating=1.0)
    z = make_courier("z", deliveries_today=2, average_rating=1.0)
    ranked = scorer.suggest([x, y, z], PICKUP, 2.0, 5)
    assert ranked[0].total_score == ranked[1].total_score
    assert [c.courier_id for c in ranked[:2]] == ["y", "x"]

    twins = [make_courier("m"), make_courier("k")]
    assert [c.courier_id for c in scorer.suggest(twins, PICKUP, 2.0, 5)] == ["k", "m"]


def test_components_round_half_up():
    # rating 2.0 -> 2.5 -> 3; load 20 * (1 - 3/8) = 12.5 -> 13
    low = make_courier("low", deliveries_today=3, average_rating=2.0)
    top = make_courier("top", deliveries_today=8)
    ranked = {c.courier_id: c for c in scorer.suggest([low, top], PICKUP, 2.0, 5)}
    assert ranked["low"].breakdown.rating == 3
    assert ranked["low"].breakdown.load_balancing == 13
    assert ranked["top"].breakdown.load_balancing == 0


def test_all_zero_deliveries_gives_full_load_score():
    ranked = scorer.suggest([make_courier("a"), make_courier("b")], PICKUP, 2.0, 5)
    assert all(c.breakdown.load_balancing == 20 for c in ranked)


@pytest.mark.parametrize(
    "distance_km, bucket",
    [(0.2, 0), (1.0, 0), (1.01, 1), (3.0, 1), (4.9, 2), (5.0, 2), (10.0, 3), (10.5, 4), (40.0, 4)],
)
def test_distance_bucket_bounds_are_inclusive(distance_km, bucket):
    assert scorer.distance_bucket(distance_km) == bucket


def test_vehicle_matrix_extremes():
    assert scorer.vehicle_suitability(VehicleClass.WALKING, 12.0) == -100
    assert scorer.vehicle_suitability(VehicleClass.CAR, 0.5) == -10
    assert scorer.vehicle_suitability(VehicleClass.CAR, 12.0) == 20
    assert scorer.vehicle_suitability(VehicleClass.E_SCOOTER, 4.0) == 20


def test_limit_and_empty_input():
    couriers = [make_courier(str(i)) for i in range(4)]
    assert len(scorer.suggest(couriers, PICKUP, 1.0, 2)) == 2
    assert scorer.suggest([], PICKUP, 1.0, 5) == []
    with pytest.raises(ValueError):
        scorer.suggest(couriers, PICKUP, 1.0, 0)


def test_scoring_config_exposes_weights_and_matrix():
    config = scorer.scoring_config()
    assert config["weights"]["proximity"] == 30
    assert config["vehicle_suitability"]["walking"] == [20, 10, -20, -50, -100]
    assert config["distance_buckets_km"] == [1.0, 3.0, 5.0, 10.0]
