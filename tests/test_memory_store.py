import threading

import pytest

from courier_dispatch.errors import AlreadyAssigned, AlreadyRated, DriverUnavailable, DuplicateDelivery
from courier_dispatch.models.domain import CourierStatus, DeliveryStatus, GeoPoint, LocationPoint, ServiceZone, ZoneShape

from conftest import BASE_TIME, make_courier, make_delivery


def test_reads_return_copies(store, scope):
    store.add_courier(make_courier("c1"))
    courier = store.get_courier(scope, "c1")
    courier.status = CourierStatus.OFFLINE
    assert store.get_courier(scope, "c1").status == CourierStatus.AVAILABLE


def test_records_are_invisible_to_other_businesses(store, scope, other_scope):
    store.add_courier(make_courier("c1"))
    store.add_delivery(make_delivery("d1"))

    assert store.get_courier(other_scope, "c1") is None
    assert store.get_delivery(other_scope, "d1") is None
    assert store.list_deliveries(other_scope) == []
    assert store.update_delivery(other_scope, "d1", {"tip_amount": 1.0}) is None
    assert store.get_delivery(scope, "d1").tip_amount == 0.0


def test_order_ids_are_unique_per_business(store):
    store.add_delivery(make_delivery("d1"))
    store.add_delivery(make_delivery("d1-other", business_id="biz-2"))
    duplicate = make_delivery("d2")
    duplicate.order_id = "order-d1"
    with pytest.raises(DuplicateDelivery):
        store.add_delivery(duplicate)


def test_conditional_update_checks_expected_fields(store, scope):
    store.add_delivery(make_delivery("d1"))
    assert (
        store.update_delivery(scope, "d1", {"status": DeliveryStatus.CANCELLED}, expected={"status": DeliveryStatus.ACCEPTED})
        is None
    )
    updated = store.update_delivery(
        scope, "d1", {"status": DeliveryStatus.ACCEPTED}, expected={"status": DeliveryStatus.PENDING}
    )
    assert updated.status == DeliveryStatus.ACCEPTED


def test_unknown_fields_are_rejected(store, scope):
    store.add_courier(make_courier("c1"))
    with pytest.raises(AttributeError):
        store.update_courier(scope, "c1", {"nickname": "speedy"})


def test_append_location_keeps_newest_points(store, scope):
    store.add_delivery(make_delivery("d1", status=DeliveryStatus.ON_THE_WAY))
    for i in range(5):
        store.append_location(scope, "d1", LocationPoint(10.0, 10.0 + i / 1000, BASE_TIME), limit=3)
    history = store.get_delivery(scope, "d1").location_history
    assert [round(p.longitude, 3) for p in history] == [10.002, 10.003, 10.004]


def test_claim_assignment_guards(store, scope):
    store.add_courier(make_courier("c1"))
    store.add_courier(make_courier("c2", status=CourierStatus.ON_BREAK))
    store.add_delivery(make_delivery("d1", status=DeliveryStatus.ACCEPTED))
    store.add_delivery(make_delivery("d2", status=DeliveryStatus.ACCEPTED))

    with pytest.raises(DriverUnavailable):
        store.claim_assignment(scope, "d1", "c2", expected_status=DeliveryStatus.ACCEPTED, assigned_at=BASE_TIME)

    claimed = store.claim_assignment(scope, "d1", "c1", expected_status=DeliveryStatus.ACCEPTED, assigned_at=BASE_TIME)
    assert claimed.courier_id == "c1"
    assert claimed.assigned_at == BASE_TIME

    with pytest.raises(AlreadyAssigned):
        store.claim_assignment(scope, "d1", "c1", expected_status=DeliveryStatus.ACCEPTED, assigned_at=BASE_TIME)
    with pytest.raises(DriverUnavailable):
        store.claim_assignment(scope, "d2", "c1", expected_status=DeliveryStatus.ACCEPTED, assigned_at=BASE_TIME)


def test_release_only_for_the_bound_delivery(store, scope):
    store.add_courier(make_courier("c1", status=CourierStatus.BUSY, active_delivery_id="d1"))
    assert store.release_courier(scope, "c1", "d9", completed=True) is None

    released = store.release_courier(scope, "c1", "d1", completed=True)
    assert released.status == CourierStatus.AVAILABLE
    assert released.active_delivery_id is None
    assert released.deliveries_today == 1


def test_concurrent_ratings_keep_one(store, scope):
    store.add_courier(make_courier("c1"))
    store.add_delivery(make_delivery("d1", status=DeliveryStatus.DELIVERED, courier_id="c1"))

    outcomes = []

    def rate(value):
        try:
            store.record_rating(scope, "d1", value, None)
            outcomes.append(value)
        except AlreadyRated:
            outcomes.append(None)

    threads = [threading.Thread(target=rate, args=(1 + i % 5,)) for i in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    winners = [value for value in outcomes if value is not None]
    assert len(winners) == 1
    assert store.get_delivery(scope, "d1").customer_rating == winners[0]
    assert store.get_courier(scope, "c1").total_ratings == 1


def test_zones_sorted_by_priority(store, scope):
    for zone_id, priority in (("low", 0), ("high", 5)):
        store.add_zone(
            ServiceZone(
                zone_id=zone_id,
                business_id="biz-1",
                name=zone_id,
                shape=ZoneShape.RADIUS,
                base_fee=1.0,
                center=GeoPoint(0.0, 0.0),
                radius_meters=100.0,
                priority=priority,
            )
        )
    assert [zone.zone_id for zone in store.list_zones(scope)] == ["high", "low"]


def test_append_location_refuses_terminal_delivery(store, scope):
    store.add_delivery(make_delivery("d1", status=DeliveryStatus.CANCELLED))
    assert store.append_location(scope, "d1", LocationPoint(10.0, 10.0, BASE_TIME), limit=3) is None
    assert store.get_delivery(scope, "d1").location_history == []
