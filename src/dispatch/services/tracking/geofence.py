"""Geofence membership tests for pickup, dropoff, city and medina zones."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Mapping, Optional, Sequence

from ...events import log_event
from ...models.domain import Coordinates, utc_now
from ..geospatial import haversine_distance, is_point_in_geofence, point_in_polygon

COMPONENT = "geofence"

PICKUP_RADIUS_KM = 0.15
DROPOFF_RADIUS_KM = 0.2
CITY_DETECTION_RADIUS_KM = 30.0


class ZoneKind(str, Enum):
    RESTAURANT = "restaurant"
    DROPOFF = "dropoff"
    CITY = "city"
    MEDINA = "medina"
    ZONE = "zone"


@dataclass(frozen=True, slots=True)
class GeofenceZone:
    id: str
    name: str
    center: Coordinates
    radius_km: float
    kind: ZoneKind = ZoneKind.ZONE

    def contains(self, point: Coordinates) -> bool:
        return is_point_in_geofence(point, self.center, self.radius_km)


@dataclass(frozen=True, slots=True)
class GeofenceEvent:
    type: str
    zone_id: str
    driver_id: str
    location: Coordinates
    timestamp: datetime


CITY_CENTERS: Mapping[str, Coordinates] = {
    "casablanca": Coordinates(33.5731, -7.5898),
    "rabat": Coordinates(34.0209, -6.8417),
    "marrakech": Coordinates(31.6295, -7.9811),
    "fes": Coordinates(34.0346, -5.0145),
    "tangier": Coordinates(35.7673, -5.7998),
    "agadir": Coordinates(30.4278, -9.5981),
    "meknes": Coordinates(33.8935, -5.5473),
    "oujda": Coordinates(34.6814, -1.9086),
    "kenitra": Coordinates(34.2610, -6.5802),
}

# Simplified old-town outlines: (min_lat, max_lat, min_lng, max_lng).
_MEDINA_BOXES: Mapping[str, tuple[float, float, float, float]] = {
    "fes": (34.059, 34.072, -4.985, -4.965),
    "marrakech": (31.625, 31.640, -7.995, -7.975),
    "casablanca": (33.597, 33.605, -7.617, -7.607),
    "rabat": (34.020, 34.030, -6.845, -6.830),
    "tangier": (35.783, 35.790, -5.815, -5.805),
    "meknes": (33.888, 33.898, -5.575, -5.560),
}


def _box_ring(box: tuple[float, float, float, float]) -> list[tuple[float, float]]:
    min_lat, max_lat, min_lng, max_lng = box
    return [(min_lat, min_lng), (min_lat, max_lng), (max_lat, max_lng), (max_lat, min_lng)]


MEDINA_POLYGONS: Mapping[str, list[tuple[float, float]]] = {
    city: _box_ring(box) for city, box in _MEDINA_BOXES.items()
}


def create_delivery_geofences(
    delivery_id: str,
    pickup_location: Coordinates,
    dropoff_location: Coordinates,
) -> List[GeofenceZone]:
    return [
        GeofenceZone(
            id=f"{delivery_id}-pickup",
            name="Restaurant Pickup Zone",
            center=pickup_location,
            radius_km=PICKUP_RADIUS_KM,
            kind=ZoneKind.RESTAURANT,
        ),
        GeofenceZone(
            id=f"{delivery_id}-dropoff",
            name="Customer Dropoff Zone",
            center=dropoff_location,
            radius_km=DROPOFF_RADIUS_KM,
            kind=ZoneKind.DROPOFF,
        ),
    ]


def check_geofences(
    location: Coordinates,
    zones: Iterable[GeofenceZone],
    driver_id: str,
    *,
    now: Optional[datetime] = None,
) -> List[GeofenceEvent]:
    """Return an ``enter`` event for every zone containing ``location``."""

    now = now or utc_now()
    events: list[GeofenceEvent] = []
    for zone in zones:
        if not zone.contains(location):
            continue
        events.append(GeofenceEvent(type="enter", zone_id=zone.id, driver_id=driver_id, location=location, timestamp=now))
        log_event(f"Driver {driver_id} entered geofence {zone.name}", component=COMPONENT, zone_id=zone.id)
    return events


def is_in_medina_zone(point: Coordinates, polygons: Optional[Mapping[str, Sequence[tuple[float, float]]]] = None) -> bool:
    rings = MEDINA_POLYGONS if polygons is None else polygons
    return any(point_in_polygon(point.lat, point.lng, ring, inclusive=True) for ring in rings.values())


def detect_city(point: Coordinates, centers: Optional[Mapping[str, Coordinates]] = None) -> Optional[str]:
    """Nearest known city within ``CITY_DETECTION_RADIUS_KM``, else ``None``."""

    candidates = CITY_CENTERS if centers is None else centers
    nearest: Optional[str] = None
    nearest_distance = float("inf")
    for city, center in candidates.items():
        distance = haversine_distance(point, center)
        if distance < nearest_distance:
            nearest, nearest_distance = city, distance
    if nearest_distance <= CITY_DETECTION_RADIUS_KM:
        return nearest
    return None


def city_geofences(radius_km: float = CITY_DETECTION_RADIUS_KM) -> List[GeofenceZone]:
    return [
        GeofenceZone(id=f"city-{city}", name=city.title(), center=center, radius_km=radius_km, kind=ZoneKind.CITY)
        for city, center in CITY_CENTERS.items()
    ]
