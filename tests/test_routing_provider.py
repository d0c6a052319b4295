import math

import httpx
import pytest

from courier_dispatch.errors import RoutingError
from courier_dispatch.models.domain import GeoPoint, VehicleClass
from courier_dispatch.services.geospatial import distance_meters
from courier_dispatch.services.routing.osrm_client import OSRMClient, check_health
from courier_dispatch.services.routing.provider import (
    AVERAGE_SPEEDS,
    ROAD_FACTOR,
    OSRMRoutingProvider,
    StraightLineRoutingProvider,
)

ORIGIN = GeoPoint(21.5, 39.2)
DESTINATION = GeoPoint(21.51, 39.21)

ROUTE_BODY = {
    "code": "Ok",
    "routes": [
        {
            "distance": 1834.2,
            "duration": 301.4,
            "geometry": "_p~iF~ps|U_ulLnnqC_mqNvxq`@",
            "legs": [
                {
                    "steps": [
                        {"distance": 1200.0, "duration": 200.0, "name": "King Road", "maneuver": {"type": "depart"}},
                        {
                            "distance": 634.2,
                            "duration": 101.4,
                            "name": "",
                            "maneuver": {"type": "turn", "modifier": "left"},
                        },
                    ]
                }
            ],
        }
    ],
}


def _client(handler, **kwargs) -> OSRMClient:
    kwargs.setdefault("max_retries", 0)
    kwargs.setdefault("backoff_seconds", 0.0)
    return OSRMClient(base_url="http://osrm.test/", transport=httpx.MockTransport(handler), **kwargs)


def test_osrm_route_parses_distance_duration_and_steps():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        return httpx.Response(200, json=ROUTE_BODY)

    provider = OSRMRoutingProvider(_client(handler))
    route = provider.calculate_route(ORIGIN, DESTINATION, VehicleClass.BICYCLE)

    assert route.distance_meters == 1834.2
    assert route.duration_seconds == 301.4
    assert route.polyline == ROUTE_BODY["routes"][0]["geometry"]
    assert [step.instruction for step in route.steps] == ["depart onto King Road", "turn left"]
    # OSRM takes lon,lat pairs
    assert seen[0].path == "/route/v1/cycling/39.2,21.5;39.21,21.51"
    assert seen[0].params["steps"] == "true"


def test_osrm_eta_is_rounded_up_with_high_confidence():
    provider = OSRMRoutingProvider(_client(lambda request: httpx.Response(200, json=ROUTE_BODY)))
    eta = provider.calculate_eta(ORIGIN, DESTINATION, VehicleClass.CAR)
    assert eta.duration_seconds == 302
    assert eta.confidence == "high"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, json={"code": "NoRoute", "message": "Impossible route"}),
    ],
)
def test_osrm_failures_become_routing_errors(response):
    provider = OSRMRoutingProvider(_client(lambda request: response))
    with pytest.raises(RoutingError):
        provider.calculate_route(ORIGIN, DESTINATION, VehicleClass.CAR)


def test_osrm_connection_errors_are_retried_then_reported():
    attempts = []

    def handler(request):
        attempts.append(request)
        raise httpx.ConnectError("refused", request=request)

    provider = OSRMRoutingProvider(_client(handler, max_retries=2))
    with pytest.raises(RoutingError):
        provider.calculate_route(ORIGIN, DESTINATION, VehicleClass.WALKING)
    assert len(attempts) == 3


def test_osrm_client_requires_a_base_url(monkeypatch):
    from courier_dispatch.config import settings

    monkeypatch.setattr(settings, "osrm_base_url", None)
    with pytest.raises(ValueError):
        OSRMClient()


def test_check_health():
    ok = httpx.MockTransport(lambda request: httpx.Response(200, json={"code": "Ok"}))
    down = httpx.MockTransport(lambda request: httpx.Response(503))
    assert check_health("http://osrm.test", transport=ok)
    assert not check_health("http://osrm.test", transport=down)


def test_straight_line_estimate_uses_vehicle_speed():
    provider = StraightLineRoutingProvider()
    expected_distance = distance_meters(ORIGIN, DESTINATION) * ROAD_FACTOR

    walk = provider.calculate_eta(ORIGIN, DESTINATION, VehicleClass.WALKING)
    car = provider.calculate_eta(ORIGIN, DESTINATION, VehicleClass.CAR)

    assert walk.duration_seconds == math.ceil(expected_distance / AVERAGE_SPEEDS[VehicleClass.WALKING])
    assert car.duration_seconds == math.ceil(expected_distance / AVERAGE_SPEEDS[VehicleClass.CAR])
    assert walk.duration_seconds > car.duration_seconds
    assert car.confidence == "low"

