"""Travel speed profiles and ETA prediction."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Mapping, Optional

from ...config import settings
from ...events import log_event
from ...models.domain import Coordinates, utc_now
from ..geospatial import calculate_bearing, haversine_distance
from .geofence import is_in_medina_zone
from .models import DeliveryStatus, DeliveryTracking, ETAPrediction, LocationUpdate, TERMINAL_STATUSES

COMPONENT = "eta"

MIN_ETA_MINUTES = 1.0
BASE_ETA_CONFIDENCE = 0.95
MIN_CONFIDENCE = 0.3
CONFIDENCE_DISTANCE_DECAY = 0.02
UNKNOWN_LOCATION_PICKUP_MINUTES = 10.0
UNKNOWN_LOCATION_PENALTY = 0.2
HANDOFF_MINUTES = 1.0

PEAK_WINDOWS: tuple[tuple[time, time], ...] = (
    (time(7, 30), time(9, 30)),
    (time(12, 0), time(14, 0)),
    (time(17, 30), time(20, 0)),
)


@dataclass(frozen=True, slots=True)
class CitySpeedProfile:
    average_kmh: float
    peak_multiplier: float
    medina_multiplier: float


def _default_city_profiles() -> dict[str, CitySpeedProfile]:
    return {
        "casablanca": CitySpeedProfile(25, 0.6, 0.3),
        "rabat": CitySpeedProfile(22, 0.65, 0.35),
        "marrakech": CitySpeedProfile(20, 0.55, 0.25),
        "fes": CitySpeedProfile(18, 0.6, 0.2),
        "tangier": CitySpeedProfile(23, 0.65, 0.3),
        "agadir": CitySpeedProfile(28, 0.7, 0.4),
        "meknes": CitySpeedProfile(22, 0.65, 0.3),
        "oujda": CitySpeedProfile(25, 0.7, 0.35),
        "kenitra": CitySpeedProfile(24, 0.65, 0.35),
    }


@dataclass(frozen=True, slots=True)
class SpeedProfiles:
    cities: Mapping[str, CitySpeedProfile] = field(default_factory=_default_city_profiles)
    default_kmh: float = field(default_factory=lambda: settings.default_speed_kmh)
    winding_factor: float = field(default_factory=lambda: settings.road_winding_factor)
    prep_buffer_minutes: float = field(default_factory=lambda: settings.restaurant_prep_buffer_minutes)


def get_city_speed(
    city: str,
    *,
    is_peak: bool = False,
    in_medina: bool = False,
    config: Optional[SpeedProfiles] = None,
) -> float:
    """Effective km/h for a city; peak and medina slowdowns compound."""

    config = config or SpeedProfiles()
    profile = config.cities.get(city.lower())
    if profile is None:
        log_event(
            f"No speed profile for city {city!r}, using default {config.default_kmh} km/h",
            component=COMPONENT,
            level=logging.WARNING,
        )
        return config.default_kmh

    speed = profile.average_kmh
    if is_peak:
        speed *= profile.peak_multiplier
    if in_medina:
        speed *= profile.medina_multiplier
    return max(speed, 1.0)


def estimate_eta(
    distance_km: float,
    speed_kmh: Optional[float] = None,
    *,
    config: Optional[SpeedProfiles] = None,
) -> float:
    """Minutes to cover a straight-line distance on winding streets, at least one."""

    config = config or SpeedProfiles()
    speed = speed_kmh if speed_kmh and speed_kmh > 0 else config.default_kmh
    return max(distance_km * config.winding_factor / speed * 60, MIN_ETA_MINUTES)


def estimate_travel_eta(
    origin: Coordinates,
    destination: Coordinates,
    *,
    city: Optional[str] = None,
    is_peak: bool = False,
    in_medina: bool = False,
    config: Optional[SpeedProfiles] = None,
) -> float:
    config = config or SpeedProfiles()
    speed = (
        get_city_speed(city, is_peak=is_peak, in_medina=in_medina, config=config)
        if city
        else config.default_kmh
    )
    return estimate_eta(haversine_distance(origin, destination), speed, config=config)


def predict_delivery_eta(
    tracking: DeliveryTracking,
    *,
    driver_speed_kmh: Optional[float] = None,
    city: Optional[str] = None,
    is_peak: bool = False,
    in_medina: bool = False,
    now: Optional[datetime] = None,
    config: Optional[SpeedProfiles] = None,
) -> ETAPrediction:
    """Predict the remaining pickup and delivery legs for a delivery.

    The branches follow the lifecycle: statuses before pickup pay for the
    pickup leg plus the restaurant buffer, ``at_restaurant`` pays only the
    buffer, and every non-terminal status before ``at_dropoff`` pays for the
    delivery leg. Confidence starts at 0.95 and decays 0.02 per remaining km.
    """

    config = config or SpeedProfiles()
    now = now or utc_now()
    status = tracking.status
    if status in TERMINAL_STATUSES:
        return ETAPrediction(0.0, 0.0, 0.0, 1.0, ["Delivery completed or terminated"], estimated_arrival=now)

    adjustments: list[str] = []
    pickup_minutes = 0.0
    delivery_minutes = 0.0
    confidence = BASE_ETA_CONFIDENCE
    live_speed = driver_speed_kmh if driver_speed_kmh and driver_speed_kmh > 0 else None
    leg_speed = live_speed or config.default_kmh

    if status in (DeliveryStatus.PENDING, DeliveryStatus.ASSIGNED, DeliveryStatus.PICKING_UP):
        if tracking.driver_location is not None:
            pickup_km = haversine_distance(tracking.driver_location, tracking.pickup_location)
            pickup_minutes = pickup_km * config.winding_factor / leg_speed * 60
            if live_speed:
                adjustments.append(f"Using real-time driver speed: {live_speed:.1f} km/h")
            confidence -= pickup_km * CONFIDENCE_DISTANCE_DECAY
        else:
            pickup_minutes = UNKNOWN_LOCATION_PICKUP_MINUTES
            confidence -= UNKNOWN_LOCATION_PENALTY
            adjustments.append("Driver location unknown, using default pickup estimate")
        pickup_minutes += config.prep_buffer_minutes
        adjustments.append(f"Added {config.prep_buffer_minutes:g} min restaurant prep buffer")
    elif status is DeliveryStatus.AT_RESTAURANT:
        pickup_minutes = config.prep_buffer_minutes
        adjustments.append("Driver at restaurant, waiting for food prep")

    if status is DeliveryStatus.AT_DROPOFF:
        pickup_minutes = 0.0
        delivery_minutes = HANDOFF_MINUTES
        confidence = BASE_ETA_CONFIDENCE
        adjustments.append("Driver at dropoff, completing handoff")
    elif status is DeliveryStatus.DELIVERING and tracking.driver_location is not None:
        remaining_km = haversine_distance(tracking.driver_location, tracking.dropoff_location)
        delivery_minutes = remaining_km * config.winding_factor / leg_speed * 60
        if live_speed:
            adjustments.append(f"Delivery leg using driver speed: {live_speed:.1f} km/h")
        confidence -= remaining_km * CONFIDENCE_DISTANCE_DECAY
    else:
        leg_km = haversine_distance(tracking.pickup_location, tracking.dropoff_location)
        if city:
            speed = get_city_speed(city, is_peak=is_peak, in_medina=in_medina, config=config)
            adjustments.append(f"Using {city} speed profile: {speed:.1f} km/h")
        else:
            speed = config.default_kmh
        delivery_minutes = leg_km * config.winding_factor / speed * 60
        confidence -= leg_km * CONFIDENCE_DISTANCE_DECAY

    total_minutes = max(pickup_minutes + delivery_minutes, MIN_ETA_MINUTES)
    confidence = max(min(confidence, 1.0), MIN_CONFIDENCE)

    log_event(
        f"ETA prediction for {tracking.delivery_id}: {total_minutes:.1f} min",
        component=COMPONENT,
        confidence=round(confidence, 2),
    )
    return ETAPrediction(
        pickup_minutes=round(pickup_minutes, 1),
        delivery_minutes=round(delivery_minutes, 1),
        total_minutes=round(total_minutes, 1),
        confidence=round(confidence, 2),
        adjustments=adjustments,
        estimated_arrival=now + timedelta(minutes=total_minutes),
    )


def format_eta(minutes: float) -> str:
    if minutes < 0:
        return "0 min"
    rounded = int(round(minutes))
    if rounded < 60:
        return f"{rounded} min"
    hours, remainder = divmod(rounded, 60)
    return f"{hours}h {remainder}min"


def is_peak_hour(moment: datetime) -> bool:
    clock = time(moment.hour, moment.minute)
    return any(start <= clock <= end for start, end in PEAK_WINDOWS)


def get_time_of_day_speed_factor(hour: int) -> float:
    if hour >= 23 or hour < 5:
        return 1.3
    if hour < 7:
        return 1.2
    if hour < 9:
        return 0.7
    if hour < 12:
        return 1.0
    if hour < 14:
        return 0.8
    if hour < 17:
        return 1.0
    if hour < 20:
        return 0.7
    return 1.1


def estimate_driver_arrival(
    driver: LocationUpdate,
    destination: Coordinates,
    *,
    city: Optional[str] = None,
    config: Optional[SpeedProfiles] = None,
) -> float:
    """Minutes until a moving driver reaches ``destination``.

    The live speed is trusted only when the driver is heading roughly toward
    the destination; a sideways heading blends it with the default speed.
    """

    config = config or SpeedProfiles()
    road_km = haversine_distance(driver.location, destination) * config.winding_factor
    average = get_city_speed(city, config=config) if city else config.default_kmh

    speed = average
    if 0 < driver.speed_kmh < 120:
        diff = abs(calculate_bearing(driver.location, destination) - driver.heading)
        diff = 360 - diff if diff > 180 else diff
        if diff < 45:
            speed = driver.speed_kmh
        elif diff < 90:
            speed = (driver.speed_kmh + config.default_kmh) / 2
    return max(road_km / speed * 60, MIN_ETA_MINUTES)


@dataclass(slots=True)
class FullDeliveryEstimate:
    pickup_leg_minutes: float
    prep_minutes: float
    delivery_leg_minutes: float
    total_minutes: float


def estimate_full_delivery_time(
    driver_location: Coordinates,
    pickup_location: Coordinates,
    dropoff_location: Coordinates,
    *,
    prep_minutes: Optional[float] = None,
    city: Optional[str] = None,
    config: Optional[SpeedProfiles] = None,
) -> FullDeliveryEstimate:
    config = config or SpeedProfiles()
    prep = config.prep_buffer_minutes if prep_minutes is None else prep_minutes
    pickup_leg = estimate_travel_eta(
        driver_location, pickup_location, city=city, in_medina=is_in_medina_zone(pickup_location), config=config
    )
    delivery_leg = estimate_travel_eta(
        pickup_location, dropoff_location, city=city, in_medina=is_in_medina_zone(dropoff_location), config=config
    )
    return FullDeliveryEstimate(
        pickup_leg_minutes=pickup_leg,
        prep_minutes=prep,
        delivery_leg_minutes=delivery_leg,
        total_minutes=pickup_leg + prep + delivery_leg,
    )
