"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Sequence

from ..models.domain import GeoPoint

EARTH_RADIUS_M = 6_371_000.0


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def distance_meters(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in metres. All distance math in the engine goes through here."""

    return haversine_meters(a.latitude, a.longitude, b.latitude, b.longitude)


def point_in_polygon(point: GeoPoint, ring: Sequence[GeoPoint]) -> bool:
    """Return True if the point lies inside the ring (even-odd ray casting).

    Longitude is the x axis and latitude the y axis. The crossing test is
    half-open: an edge counts when ``(yi > y) != (yj > y)`` and the crossing
    lies strictly to the right of the point. As a consequence points on a
    left or bottom edge are inside and points on a right or top edge are
    outside. The ring may be open or closed.
    """

    inside = False
    x, y = point.longitude, point.latitude
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i].longitude, ring[i].latitude
        xj, yj = ring[j].longitude, ring[j].latitude
        if (yi > y) != (yj > y):
            crossing_x = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < crossing_x:
                inside = not inside
        j = i
    return inside
