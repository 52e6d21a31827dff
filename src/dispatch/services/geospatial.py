"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Sequence

from shapely.geometry import Point, Polygon

from ..config import settings
from ..errors import ValidationError
from ..models.domain import Coordinates

EARTH_RADIUS_KM = 6371.0

MOROCCO_BOUNDS = {"min_lat": 27.6, "max_lat": 35.9, "min_lng": -13.2, "max_lng": -1.0}


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def haversine_distance(a: Coordinates, b: Coordinates) -> float:
    return haversine_km(a.lat, a.lng, b.lat, b.lng)


def bearing_degrees(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate the initial bearing from (lat1, lon1) to (lat2, lon2)."""

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_lambda = math.radians(lon2 - lon1)
    y = math.sin(delta_lambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda)
    bearing = math.degrees(math.atan2(y, x))
    return (bearing + 360) % 360


def calculate_bearing(a: Coordinates, b: Coordinates) -> float:
    return bearing_degrees(a.lat, a.lng, b.lat, b.lng)


def road_distance_km(a: Coordinates, b: Coordinates, *, winding_factor: float | None = None) -> float:
    """Approximate street distance as straight-line distance times the winding factor."""

    factor = settings.road_winding_factor if winding_factor is None else winding_factor
    return haversine_distance(a, b) * factor


def is_point_in_geofence(point: Coordinates, center: Coordinates, radius_km: float) -> bool:
    return haversine_distance(point, center) <= radius_km


def point_in_polygon(
    lat: float,
    lon: float,
    polygon_coords: Sequence[tuple[float, float]],
    *,
    inclusive: bool = False,
) -> bool:
    """Return True if the point is inside the polygon denoted by (lat, lon) pairs.

    With ``inclusive`` the boundary counts as inside.
    """

    polygon = Polygon([(lng, lat) for lat, lng in polygon_coords])
    point = Point(lon, lat)
    return polygon.covers(point) if inclusive else polygon.contains(point)


def is_valid_coordinates(lat: float, lng: float) -> bool:
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return -90 <= lat <= 90 and -180 <= lng <= 180


def validate_coordinates(point: Coordinates) -> Coordinates:
    if not is_valid_coordinates(point.lat, point.lng):
        raise ValidationError(f"Coordinates out of range: lat={point.lat}, lng={point.lng}")
    return point


def is_in_morocco(point: Coordinates) -> bool:
    return (
        MOROCCO_BOUNDS["min_lat"] <= point.lat <= MOROCCO_BOUNDS["max_lat"]
        and MOROCCO_BOUNDS["min_lng"] <= point.lng <= MOROCCO_BOUNDS["max_lng"]
    )


def interpolate_coordinates(start: Coordinates, end: Coordinates, fraction: float) -> Coordinates:
    """Linear interpolation between two points; ``fraction`` is clamped to [0, 1]."""

    t = max(0.0, min(1.0, fraction))
    return Coordinates(
        lat=start.lat + (end.lat - start.lat) * t,
        lng=start.lng + (end.lng - start.lng) * t,
    )


def calculate_path_distance(points: Sequence[Coordinates]) -> float:
    total = 0.0
    for previous, current in zip(points, points[1:]):
        total += haversine_distance(previous, current)
    return total
