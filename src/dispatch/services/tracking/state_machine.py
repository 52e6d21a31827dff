"""Delivery lifecycle state machine."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Mapping, Optional

from ...config import settings
from ...errors import StateError
from ...events import log_event
from ...models.domain import Coordinates, utc_now
from ..geospatial import haversine_distance, validate_coordinates
from .models import DeliveryStatus, DeliveryTracking, StatusTransition

COMPONENT = "tracking"

# Every status maps to its complete successor set; terminal statuses map to nothing.
VALID_TRANSITIONS: Mapping[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.PENDING: frozenset({DeliveryStatus.ASSIGNED, DeliveryStatus.CANCELLED}),
    DeliveryStatus.ASSIGNED: frozenset({DeliveryStatus.PICKING_UP, DeliveryStatus.CANCELLED}),
    DeliveryStatus.PICKING_UP: frozenset({DeliveryStatus.AT_RESTAURANT, DeliveryStatus.CANCELLED}),
    DeliveryStatus.AT_RESTAURANT: frozenset({DeliveryStatus.PICKED_UP, DeliveryStatus.CANCELLED}),
    DeliveryStatus.PICKED_UP: frozenset({DeliveryStatus.DELIVERING, DeliveryStatus.CANCELLED}),
    DeliveryStatus.DELIVERING: frozenset({DeliveryStatus.AT_DROPOFF, DeliveryStatus.CANCELLED}),
    DeliveryStatus.AT_DROPOFF: frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.FAILED}),
    DeliveryStatus.DELIVERED: frozenset(),
    DeliveryStatus.CANCELLED: frozenset(),
    DeliveryStatus.FAILED: frozenset(),
}

STATUS_PROGRESS: Mapping[DeliveryStatus, int] = {
    DeliveryStatus.PENDING: 0,
    DeliveryStatus.ASSIGNED: 10,
    DeliveryStatus.PICKING_UP: 25,
    DeliveryStatus.AT_RESTAURANT: 40,
    DeliveryStatus.PICKED_UP: 50,
    DeliveryStatus.DELIVERING: 65,
    DeliveryStatus.AT_DROPOFF: 90,
    DeliveryStatus.DELIVERED: 100,
    DeliveryStatus.CANCELLED: 0,
    DeliveryStatus.FAILED: 0,
}

STATUS_MESSAGES: Mapping[DeliveryStatus, tuple[str, str]] = {
    DeliveryStatus.PENDING: ("Looking for a driver for your order...", "search"),
    DeliveryStatus.ASSIGNED: ("A driver has been assigned to your order!", "user-check"),
    DeliveryStatus.PICKING_UP: ("Your driver is heading to the restaurant.", "navigation"),
    DeliveryStatus.AT_RESTAURANT: ("Your driver is at the restaurant, picking up your order.", "store"),
    DeliveryStatus.PICKED_UP: ("Your order has been picked up!", "package"),
    DeliveryStatus.DELIVERING: ("Your driver is on the way to you!", "truck"),
    DeliveryStatus.AT_DROPOFF: ("Your driver has arrived! Please come collect your order.", "map-pin"),
    DeliveryStatus.DELIVERED: ("Your order has been delivered. Enjoy your meal!", "check-circle"),
    DeliveryStatus.CANCELLED: ("This order has been cancelled.", "x-circle"),
    DeliveryStatus.FAILED: ("Delivery could not be completed. Please contact support.", "alert-triangle"),
}

DEFAULT_PICKUP_ESTIMATE_MINUTES = 10.0
MIN_ETA_MINUTES = 1.0
NEAR_RESTAURANT_KM = 0.2


def valid_next_statuses(status: DeliveryStatus | str) -> frozenset[DeliveryStatus]:
    return VALID_TRANSITIONS[DeliveryStatus(status)]


def can_transition(from_status: DeliveryStatus | str, to_status: DeliveryStatus | str) -> bool:
    return DeliveryStatus(to_status) in valid_next_statuses(from_status)


def create_delivery_tracking(
    delivery_id: str,
    pickup_location: Coordinates,
    dropoff_location: Coordinates,
    *,
    now: Optional[datetime] = None,
) -> DeliveryTracking:
    """Open tracking for an accepted order in the ``pending`` state."""

    validate_coordinates(pickup_location)
    validate_coordinates(dropoff_location)
    now = now or utc_now()

    distance = haversine_distance(pickup_location, dropoff_location)
    delivery_minutes = max(
        distance * settings.road_winding_factor / settings.default_speed_kmh * 60,
        MIN_ETA_MINUTES,
    )
    pickup_minutes = DEFAULT_PICKUP_ESTIMATE_MINUTES + settings.restaurant_prep_buffer_minutes

    tracking = DeliveryTracking(
        delivery_id=delivery_id,
        status=DeliveryStatus.PENDING,
        pickup_location=pickup_location,
        dropoff_location=dropoff_location,
        estimated_pickup_time=now + timedelta(minutes=pickup_minutes),
        estimated_delivery_time=now + timedelta(minutes=pickup_minutes + delivery_minutes),
        last_update=now,
    )
    log_event(
        f"Created delivery tracking {delivery_id}",
        component=COMPONENT,
        delivery_id=delivery_id,
        estimated_delivery_minutes=round(delivery_minutes, 1),
    )
    return tracking


def transition_status(
    tracking: DeliveryTracking,
    new_status: DeliveryStatus | str,
    reason: str,
    *,
    now: Optional[datetime] = None,
) -> DeliveryTracking:
    """Apply one lifecycle edge and return the resulting tracking snapshot.

    Raises ``StateError`` for any edge missing from ``VALID_TRANSITIONS``. The
    input snapshot is left untouched.
    """

    target = DeliveryStatus(new_status)
    if not can_transition(tracking.status, target):
        error = StateError(tracking.status.value, target.value, tracking.delivery_id)
        log_event(str(error), component=COMPONENT, level=logging.WARNING, delivery_id=tracking.delivery_id)
        raise error

    now = now or utc_now()
    transition = StatusTransition(
        from_status=tracking.status,
        to_status=target,
        timestamp=now,
        reason=reason,
    )
    updated = replace(
        tracking,
        status=target,
        status_history=tracking.status_history + (transition,),
        last_update=now,
        actual_pickup_time=now if target is DeliveryStatus.PICKED_UP else tracking.actual_pickup_time,
        actual_delivery_time=now if target is DeliveryStatus.DELIVERED else tracking.actual_delivery_time,
    )
    log_event(
        f"Delivery {tracking.delivery_id} transitioned: {tracking.status.value} -> {target.value}",
        component=COMPONENT,
        delivery_id=tracking.delivery_id,
        reason=reason,
    )
    return updated


def update_driver_location(
    tracking: DeliveryTracking,
    location: Coordinates,
    *,
    now: Optional[datetime] = None,
) -> DeliveryTracking:
    validate_coordinates(location)
    return replace(tracking, driver_location=location, last_update=now or utc_now())


def get_delivery_duration(tracking: DeliveryTracking) -> Optional[float]:
    """Minutes from driver assignment (or the first transition) to handoff."""

    if tracking.actual_delivery_time is None:
        return None
    start = next(
        (t.timestamp for t in tracking.status_history if t.to_status is DeliveryStatus.ASSIGNED),
        None,
    )
    if start is None:
        if not tracking.status_history:
            return None
        start = tracking.status_history[0].timestamp
    return (tracking.actual_delivery_time - start).total_seconds() / 60


def calculate_delivery_progress(tracking: DeliveryTracking) -> int:
    if tracking.status is DeliveryStatus.DELIVERING and tracking.driver_location is not None:
        total = haversine_distance(tracking.pickup_location, tracking.dropoff_location)
        if total > 0:
            remaining = haversine_distance(tracking.driver_location, tracking.dropoff_location)
            leg = max(0.0, min(1.0, 1 - remaining / total))
            return round(65 + leg * 25)

    if tracking.status is DeliveryStatus.PICKING_UP and tracking.driver_location is not None:
        if haversine_distance(tracking.driver_location, tracking.pickup_location) < NEAR_RESTAURANT_KM:
            return 35

    return STATUS_PROGRESS[tracking.status]


def get_status_message(status: DeliveryStatus | str) -> dict[str, str]:
    message, icon = STATUS_MESSAGES[DeliveryStatus(status)]
    return {"message": message, "icon": icon}
