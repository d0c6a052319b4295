import pytest

from courier_dispatch.errors import MalformedZone
from courier_dispatch.models.domain import GeoPoint, ServiceZone, ZoneShape
from courier_dispatch.services import geofence
from courier_dispatch.services.geospatial import distance_meters, point_in_polygon

# 1 degree of latitude on a 6,371 km sphere.
METERS_PER_DEGREE = 111_194.93


def _radius_zone(**overrides) -> ServiceZone:
    values = dict(
        zone_id="z-radius",
        business_id="biz-1",
        name="Downtown",
        shape=ZoneShape.RADIUS,
        base_fee=2.0,
        center=GeoPoint(10.0, 10.0),
        radius_meters=1000.0,
    )
    values.update(overrides)
    return ServiceZone(**values)


def _square(**overrides) -> ServiceZone:
    values = dict(
        zone_id="z-square",
        business_id="biz-1",
        name="Square",
        shape=ZoneShape.POLYGON,
        base_fee=3.0,
        polygon=[GeoPoint(0.0, 0.0), GeoPoint(1.0, 0.0), GeoPoint(1.0, 1.0), GeoPoint(0.0, 1.0)],
    )
    values.update(overrides)
    return ServiceZone(**values)


def test_distance_is_zero_for_same_point_and_symmetric():
    a = GeoPoint(24.7136, 46.6753)
    b = GeoPoint(24.7743, 46.7386)
    assert distance_meters(a, a) == 0
    assert distance_meters(a, b) == pytest.approx(distance_meters(b, a))


def test_distance_along_meridian_matches_earth_radius():
    assert distance_meters(GeoPoint(0.0, 0.0), GeoPoint(1.0, 0.0)) == pytest.approx(METERS_PER_DEGREE, rel=1e-6)


def test_radius_contains_boundary_and_rejects_outside():
    zone = _radius_zone()
    inside = GeoPoint(10.0 + 999 / METERS_PER_DEGREE, 10.0)
    outside = GeoPoint(10.0 + 1001 / METERS_PER_DEGREE, 10.0)
    assert geofence.contains(zone, zone.center)
    assert geofence.contains(zone, inside)
    assert not geofence.contains(zone, outside)


def test_polygon_contains_interior_point():
    zone = _square()
    assert geofence.contains(zone, GeoPoint(0.5, 0.5))
    assert not geofence.contains(zone, GeoPoint(1.5, 0.5))
    assert not geofence.contains(zone, GeoPoint(-0.1, 0.5))


def test_polygon_edge_convention_is_half_open():
    ring = _square().polygon
    # left and bottom edges inside, right and top edges outside
    assert point_in_polygon(GeoPoint(0.5, 0.0), ring)
    assert point_in_polygon(GeoPoint(0.0, 0.5), ring)
    assert not point_in_polygon(GeoPoint(0.5, 1.0), ring)
    assert not point_in_polygon(GeoPoint(1.0, 0.5), ring)


def test_concave_polygon():
    # U shape opening to the north
    ring = [
        GeoPoint(0, 0),
        GeoPoint(0, 3),
        GeoPoint(3, 3),
        GeoPoint(3, 2),
        GeoPoint(1, 2),
        GeoPoint(1, 1),
        GeoPoint(3, 1),
        GeoPoint(3, 0),
    ]
    assert point_in_polygon(GeoPoint(0.5, 1.5), ring)
    assert not point_in_polygon(GeoPoint(2.0, 1.5), ring)
    assert point_in_polygon(GeoPoint(2.0, 2.5), ring)


def test_delivery_fee_examples():
    zone = _radius_zone(base_fee=2.0, per_km_fee=0.5, free_delivery_threshold=30.0)
    assert geofence.delivery_fee(zone, 4.0, 35.0) == 0
    assert geofence.delivery_fee(zone, 4.0, 20.0) == pytest.approx(4.0)


def test_delivery_fee_without_threshold_is_never_negative():
    zone = _radius_zone(base_fee=0.0, per_km_fee=0.0)
    assert geofence.delivery_fee(zone, -5.0, 10.0) == 0.0


@pytest.mark.parametrize(
    "overrides",
    [
        {"center": None},
        {"radius_meters": None},
        {"radius_meters": 0},
        {"radius_meters": -10.0},
        {"center": GeoPoint(95.0, 10.0)},
        {"base_fee": -1.0},
        {"estimated_min_minutes": 50, "estimated_max_minutes": 40},
    ],
)
def test_validate_zone_rejects_malformed_radius(overrides):
    with pytest.raises(MalformedZone):
        geofence.validate_zone(_radius_zone(**overrides))


def test_validate_zone_rejects_degenerate_polygons():
    with pytest.raises(MalformedZone):
        geofence.validate_zone(_square(polygon=[GeoPoint(0, 0), GeoPoint(1, 1)]))
    with pytest.raises(MalformedZone):
        geofence.validate_zone(_square(polygon=[GeoPoint(0, 0), GeoPoint(1, 1), GeoPoint(2, 2)]))
    # bow tie
    with pytest.raises(MalformedZone):
        geofence.validate_zone(
            _square(polygon=[GeoPoint(0, 0), GeoPoint(1, 1), GeoPoint(1, 0), GeoPoint(0, 1)])
        )


def test_validate_zone_accepts_valid_shapes():
    assert geofence.validate_zone(_radius_zone()).zone_id == "z-radius"
    assert geofence.validate_zone(_square()).zone_id == "z-square"


def test_find_zone_prefers_priority_and_skips_disabled():
    low = _radius_zone(zone_id="low", name="Low", priority=1)
    high = _radius_zone(zone_id="high", name="High", priority=5)
    disabled = _radius_zone(zone_id="off", name="Off", priority=10, enabled=False)
    found = geofence.find_zone_for_point([low, disabled, high], GeoPoint(10.0, 10.0))
    assert found.zone_id == "high"


def test_quote_reasons():
    point = GeoPoint(10.0, 10.0)
    assert geofence.quote([], point, 10.0).reason == geofence.REASON_NO_ZONES

    zone = _radius_zone(min_order_amount=15.0)
    below = geofence.quote([zone], point, 10.0)
    assert not below.deliverable
    assert below.reason == geofence.REASON_BELOW_MINIMUM

    far = geofence.quote([zone], GeoPoint(11.0, 10.0), 20.0)
    assert far.reason == geofence.REASON_OUTSIDE_AREA


def test_quote_prices_by_store_distance():
    zone = _radius_zone(radius_meters=5000.0, base_fee=2.0, per_km_fee=1.0)
    store = GeoPoint(10.0, 10.0)
    point = GeoPoint(10.0 + 2000 / METERS_PER_DEGREE, 10.0)
    result = geofence.quote([zone], point, 25.0, store=store)
    assert result.deliverable
    assert result.distance_km == pytest.approx(2.0, rel=1e-3)
    assert result.delivery_fee == pytest.approx(4.0)
    assert result.estimated_time_range == "15-45 min"

    without_store = geofence.quote([zone], point, 25.0)
    assert without_store.delivery_fee == pytest.approx(2.0)
    assert without_store.distance_km is None
