"""Driver location stream processing."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ...events import log_event
from ...models.domain import Coordinates
from ..geospatial import EARTH_RADIUS_KM, calculate_path_distance, haversine_distance
from .models import LocationUpdate

COMPONENT = "locations"

STATIONARY_THRESHOLD_KM = 0.05
DEFAULT_STATIONARY_MINUTES = 5.0
MAX_PLAUSIBLE_SPEED_KMH = 150.0
SIMULTANEOUS_JUMP_KM = 0.01
BATTERY_CRITICAL = 10
BATTERY_WARNING = 20


def _hours_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 3600


def batch_update_locations(updates: Iterable[LocationUpdate]) -> Dict[str, LocationUpdate]:
    """Keep the newest update per driver.

    Duplicates and out-of-order deliveries collapse to the same result, so the
    batch can be replayed safely.
    """

    latest: dict[str, LocationUpdate] = {}
    count = 0
    for update in updates:
        count += 1
        existing = latest.get(update.driver_id)
        if existing is None or update.timestamp > existing.timestamp:
            latest[update.driver_id] = update
    log_event(f"Processed {count} location updates for {len(latest)} drivers", component=COMPONENT)
    return latest


def calculate_speed_kmh(history: Sequence[LocationUpdate]) -> float:
    if len(history) < 2:
        return 0.0
    ordered = sorted(history, key=lambda update: update.timestamp)
    hours = _hours_between(ordered[0].timestamp, ordered[-1].timestamp)
    if hours <= 0:
        return 0.0
    return calculate_path_distance([update.location for update in ordered]) / hours


def detect_stationary_driver(
    history: Sequence[LocationUpdate],
    threshold_minutes: float = DEFAULT_STATIONARY_MINUTES,
) -> bool:
    if len(history) < 2:
        return False
    ordered = sorted(history, key=lambda update: update.timestamp)
    minutes = _hours_between(ordered[0].timestamp, ordered[-1].timestamp) * 60
    if minutes < threshold_minutes:
        return False
    movement = calculate_path_distance([update.location for update in ordered])
    stationary = movement < STATIONARY_THRESHOLD_KM
    if stationary:
        log_event(
            f"Driver {ordered[-1].driver_id} stationary for {minutes:.0f} min",
            component=COMPONENT,
            level=logging.WARNING,
            movement_km=round(movement, 3),
        )
    return stationary


def smooth_location(history: Sequence[LocationUpdate], window: int = 3) -> Optional[Coordinates]:
    recent = list(history)[-window:] if window > 0 else []
    if not recent:
        return None
    return Coordinates(
        lat=sum(update.location.lat for update in recent) / len(recent),
        lng=sum(update.location.lng for update in recent) / len(recent),
    )


def filter_by_accuracy(updates: Iterable[LocationUpdate], max_accuracy_m: float = 100.0) -> List[LocationUpdate]:
    return [update for update in updates if update.accuracy_m <= max_accuracy_m]


def detect_suspicious_movement(previous: LocationUpdate, current: LocationUpdate) -> bool:
    distance = haversine_distance(previous.location, current.location)
    hours = _hours_between(previous.timestamp, current.timestamp)
    if hours <= 0:
        return distance > SIMULTANEOUS_JUMP_KM
    return distance / hours > MAX_PLAUSIBLE_SPEED_KMH


def check_battery_level(update: LocationUpdate) -> str:
    if update.battery_level < BATTERY_CRITICAL:
        log_event(
            f"Driver {update.driver_id} battery critical: {update.battery_level:g}%",
            component=COMPONENT,
            level=logging.WARNING,
        )
        return "critical"
    if update.battery_level < BATTERY_WARNING:
        return "warning"
    return "normal"


@dataclass(slots=True)
class NearbyDriver:
    driver_id: str
    distance_km: float
    update: LocationUpdate


def find_nearby_drivers(
    target: Coordinates,
    drivers: Mapping[str, LocationUpdate],
    radius_km: float = 5.0,
) -> List[NearbyDriver]:
    nearby: list[NearbyDriver] = []
    for driver_id, update in drivers.items():
        distance = haversine_distance(target, update.location)
        if distance <= radius_km:
            nearby.append(NearbyDriver(driver_id=driver_id, distance_km=round(distance, 2), update=update))
    nearby.sort(key=lambda item: item.distance_km)
    return nearby


def predict_driver_position(current: LocationUpdate, at: datetime) -> Coordinates:
    """Dead-reckon the driver's position at ``at`` from speed and heading."""

    hours = _hours_between(current.timestamp, at)
    if hours <= 0 or current.speed_kmh <= 0:
        return current.location

    heading = math.radians(current.heading)
    angular = math.degrees(current.speed_kmh * hours / EARTH_RADIUS_KM)
    lat_delta = angular * math.cos(heading)
    lng_delta = angular * math.sin(heading) / math.cos(math.radians(current.location.lat))
    return Coordinates(lat=current.location.lat + lat_delta, lng=current.location.lng + lng_delta)
