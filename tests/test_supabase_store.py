from types import SimpleNamespace

import pytest

from courier_dispatch.errors import AlreadyAssigned, AlreadyRated, DriverUnavailable, DuplicateDelivery, NotFound
from courier_dispatch.models.domain import CourierStatus, DeliveryStatus, GeoPoint, LocationPoint, ZoneShape
from courier_dispatch.persistence.database import (
    SupabaseStore,
    courier_from_row,
    delivery_from_row,
    zone_from_row,
)

from conftest import BASE_TIME, make_courier, make_delivery


class FakeQuery:
    """Just enough of the PostgREST builder to run the store against dict rows."""

    def __init__(self, rows: list[dict]) -> None:
        self.rows = rows
        self.filters = []
        self.action = ("select", None)
        self.max_rows = None

    def select(self, columns):
        return self

    def insert(self, row):
        self.action = ("insert", row)
        return self

    def update(self, row):
        self.action = ("update", row)
        return self

    def delete(self):
        self.action = ("delete", None)
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def is_(self, column, value):
        assert value == "null"
        self.filters.append(lambda row: row.get(column) is None)
        return self

    def in_(self, column, values):
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def limit(self, count):
        self.max_rows = count
        return self

    def order(self, column, desc=False):
        return self

    def execute(self):
        kind, payload = self.action
        if kind == "insert":
            self.rows.append(dict(payload))
            return SimpleNamespace(data=[dict(payload)])
        matched = [row for row in self.rows if all(check(row) for check in self.filters)]
        if kind == "update":
            for row in matched:
                row.update(payload)
        elif kind == "delete":
            for row in matched:
                self.rows.remove(row)
        if self.max_rows is not None:
            matched = matched[: self.max_rows]
        return SimpleNamespace(data=[dict(row) for row in matched])


class FakeClient:
    def __init__(self) -> None:
        self.tables: dict[str, list[dict]] = {}
        self.rpc_result = "ok"
        self.rpc_calls = []

    def table(self, name):
        return FakeQuery(self.tables.setdefault(name, []))

    def rpc(self, name, params):
        self.rpc_calls.append((name, params))
        return SimpleNamespace(execute=lambda: SimpleNamespace(data=self.rpc_result))


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def db(client) -> SupabaseStore:
    return SupabaseStore(client)


def test_delivery_row_round_trip_flattens_points(db, client, scope):
    delivery = make_delivery("d1")
    delivery.location_history = [LocationPoint(10.0, 10.0, BASE_TIME, 5.0)]
    db.add_delivery(delivery)

    row = client.tables["deliveries"][0]
    assert row["pickup_latitude"] == 10.0 and row["pickup_longitude"] == 10.01
    assert row["status"] == "pending"
    assert row["location_history"][0]["lat"] == 10.0

    loaded = db.get_delivery(scope, "d1")
    assert loaded.pickup == GeoPoint(10.0, 10.01)
    assert loaded.created_at == delivery.created_at
    assert loaded.location_history[0].timestamp == BASE_TIME


def test_row_mappers_apply_defaults():
    courier = courier_from_row({"courier_id": 7, "business_id": "b", "name": "Ana"})
    assert courier.courier_id == "7"
    assert courier.status == CourierStatus.OFFLINE
    assert courier.position is None

    zone = zone_from_row(
        {
            "zone_id": "z",
            "business_id": "b",
            "name": "Core",
            "shape": "polygon",
            "polygon_coordinates": [{"lat": 0, "lng": 0}, {"lat": 0, "lng": 1}, {"lat": 1, "lng": 1}],
        }
    )
    assert zone.shape == ZoneShape.POLYGON
    assert zone.polygon[2] == GeoPoint(1.0, 1.0)

    row = {
        "delivery_id": "d",
        "business_id": "b",
        "order_id": "o",
        "tracking_token": "t",
        "status": "on_the_way",
        "pickup_latitude": 1,
        "pickup_longitude": 2,
        "created_at": "2026-03-01T12:00:00Z",
    }
    delivery = delivery_from_row(row)
    assert delivery.dropoff is None
    assert delivery.created_at == BASE_TIME
    with pytest.raises(ValueError):
        delivery_from_row({**row, "pickup_latitude": None})


def test_duplicate_order_rejected(db):
    db.add_delivery(make_delivery("d1"))
    duplicate = make_delivery("d2")
    duplicate.order_id = "order-d1"
    with pytest.raises(DuplicateDelivery):
        db.add_delivery(duplicate)


def test_conditional_update_uses_expected_values(db, scope):
    db.add_courier(make_courier("c1", status=CourierStatus.BUSY, active_delivery_id="d1"))
    assert db.update_courier(scope, "c1", {"status": CourierStatus.OFFLINE}, expected={"active_delivery_id": None}) is None

    released = db.release_courier(scope, "c1", "d1", completed=True)
    assert released.status == CourierStatus.AVAILABLE
    assert released.deliveries_today == 1
    assert db.update_courier(scope, "c1", {"status": CourierStatus.OFFLINE}, expected={"active_delivery_id": None})


@pytest.mark.parametrize(
    "outcome, error",
    [
        ("delivery_not_found", NotFound),
        ("courier_not_found", NotFound),
        ("already_assigned", AlreadyAssigned),
        ("driver_unavailable", DriverUnavailable),
        ("surprise", RuntimeError),
    ],
)
def test_claim_outcomes_map_to_errors(db, client, scope, outcome, error):
    client.rpc_result = outcome
    with pytest.raises(error):
        db.claim_assignment(scope, "d1", "c1", expected_status=DeliveryStatus.ACCEPTED, assigned_at=BASE_TIME)


def test_claim_success_returns_fresh_delivery(db, client, scope):
    db.add_delivery(make_delivery("d1", status=DeliveryStatus.ASSIGNED, courier_id="c1"))
    claimed = db.claim_assignment(scope, "d1", "c1", expected_status=DeliveryStatus.ACCEPTED, assigned_at=BASE_TIME)

    assert claimed.courier_id == "c1"
    name, params = client.rpc_calls[0]
    assert name == "claim_delivery_assignment"
    assert params["p_expected_status"] == "accepted"
    assert params["p_business_id"] == "biz-1"


def test_rating_recorded_once_and_averaged(db, scope):
    db.add_courier(make_courier("c1"))
    db.add_delivery(make_delivery("d1", status=DeliveryStatus.DELIVERED, courier_id="c1"))

    db.record_rating(scope, "d1", 4, "good")
    with pytest.raises(AlreadyRated):
        db.record_rating(scope, "d1", 2, None)
    with pytest.raises(NotFound):
        db.record_rating(scope, "missing", 2, None)

    courier = db.get_courier(scope, "c1")
    assert courier.total_ratings == 1
    assert courier.average_rating == 4.0


def test_append_location_trims_history(db, scope):
    db.add_delivery(make_delivery("d1", status=DeliveryStatus.ON_THE_WAY))
    for i in range(4):
        db.append_location(scope, "d1", LocationPoint(10.0, 10.0, BASE_TIME, float(i)), limit=2)
    assert [p.accuracy for p in db.get_delivery(scope, "d1").location_history] == [2.0, 3.0]


def test_scope_filters_every_lookup(db, other_scope):
    db.add_courier(make_courier("c1"))
    assert db.get_courier(other_scope, "c1") is None
    assert db.list_couriers(other_scope) == []
    assert not db.delete_courier(other_scope, "c1")


def test_append_location_refuses_terminal_delivery(db, scope):
    db.add_delivery(make_delivery("d1", status=DeliveryStatus.DELIVERED))
    assert db.append_location(scope, "d1", LocationPoint(10.0, 10.0, BASE_TIME), limit=2) is None
    assert db.get_delivery(scope, "d1").location_history == []
