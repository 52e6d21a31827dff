from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from src.dispatch.errors import StateError, ValidationError
from src.dispatch.models.domain import Coordinates
from src.dispatch.services.geospatial import interpolate_coordinates
from src.dispatch.services.tracking.models import DeliveryStatus
from src.dispatch.services.tracking.state_machine import (
    VALID_TRANSITIONS,
    calculate_delivery_progress,
    can_transition,
    create_delivery_tracking,
    get_delivery_duration,
    get_status_message,
    transition_status,
    update_driver_location,
)

T0 = datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc)
PICKUP = Coordinates(33.5731, -7.5898)
DROPOFF = Coordinates(33.5950, -7.6200)

HAPPY_PATH = (
    DeliveryStatus.ASSIGNED,
    DeliveryStatus.PICKING_UP,
    DeliveryStatus.AT_RESTAURANT,
    DeliveryStatus.PICKED_UP,
    DeliveryStatus.DELIVERING,
    DeliveryStatus.AT_DROPOFF,
    DeliveryStatus.DELIVERED,
)


def _tracking(delivery_id: str = "D1"):
    return create_delivery_tracking(delivery_id, PICKUP, DROPOFF, now=T0)


def _advance(tracking, statuses, step_minutes: int = 5):
    moment = tracking.last_update
    for status in statuses:
        moment = moment + timedelta(minutes=step_minutes)
        tracking = transition_status(tracking, status, "", now=moment)
    return tracking


def test_create_tracking_starts_pending():
    tracking = _tracking()
    assert tracking.status is DeliveryStatus.PENDING
    assert tracking.status_history == ()
    assert tracking.last_update == T0
    assert T0 < tracking.estimated_pickup_time < tracking.estimated_delivery_time


def test_create_tracking_rejects_bad_coordinates():
    with pytest.raises(ValidationError):
        create_delivery_tracking("D1", Coordinates(95, 0), DROPOFF, now=T0)


def test_happy_path_records_history_and_times():
    tracking = _advance(_tracking(), HAPPY_PATH)

    assert tracking.status is DeliveryStatus.DELIVERED
    assert tracking.is_terminal
    assert [t.to_status for t in tracking.status_history] == list(HAPPY_PATH)
    assert tracking.actual_pickup_time == T0 + timedelta(minutes=20)
    assert tracking.actual_delivery_time == T0 + timedelta(minutes=35)
    assert get_delivery_duration(tracking) == pytest.approx(30.0)


def test_transition_does_not_mutate_input():
    original = _tracking()
    updated = transition_status(original, DeliveryStatus.ASSIGNED, "driver accepted", now=T0)
    assert original.status is DeliveryStatus.PENDING
    assert updated.status_history[-1].reason == "driver accepted"


def test_invalid_transition_raises_state_error():
    delivered = _advance(_tracking(), HAPPY_PATH)
    with pytest.raises(StateError) as excinfo:
        transition_status(delivered, DeliveryStatus.PICKING_UP, "")
    assert "delivered -> picking_up" in str(excinfo.value)
    assert excinfo.value.delivery_id == "D1"


def test_terminal_statuses_have_no_successors():
    for status in (DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED, DeliveryStatus.FAILED):
        assert VALID_TRANSITIONS[status] == frozenset()
    assert can_transition("pending", "cancelled")
    assert not can_transition("at_dropoff", "cancelled")
    assert can_transition(DeliveryStatus.AT_DROPOFF, DeliveryStatus.FAILED)


def test_progress_interpolates_while_delivering():
    tracking = _advance(_tracking(), HAPPY_PATH[:5])
    assert calculate_delivery_progress(tracking) == 65

    halfway = update_driver_location(tracking, interpolate_coordinates(PICKUP, DROPOFF, 0.5), now=T0)
    assert 70 <= calculate_delivery_progress(halfway) <= 85

    at_door = update_driver_location(tracking, DROPOFF, now=T0)
    assert calculate_delivery_progress(at_door) == 90


def test_progress_near_restaurant_while_picking_up():
    tracking = _advance(_tracking(), HAPPY_PATH[:2])
    assert calculate_delivery_progress(tracking) == 25
    nearby = update_driver_location(tracking, PICKUP, now=T0)
    assert calculate_delivery_progress(nearby) == 35


def test_status_message_has_icon():
    message = get_status_message("delivered")
    assert message["icon"] == "check-circle"
    assert "delivered" in message["message"]


def test_duration_missing_until_delivered():
    assert get_delivery_duration(_tracking()) is None


@pytest.mark.parametrize(
    "from_status, to_status",
    [(source, target) for source in DeliveryStatus for target in DeliveryStatus],
)
def test_transition_allowed_only_along_table(from_status, to_status):
    tracking = replace(_tracking(), status=from_status)
    later = T0 + timedelta(minutes=1)
    if to_status in VALID_TRANSITIONS[from_status]:
        assert transition_status(tracking, to_status, "table check", now=later).status is to_status
    else:
        with pytest.raises(StateError):
            transition_status(tracking, to_status, "table check", now=later)
