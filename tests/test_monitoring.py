from datetime import datetime, timedelta, timezone

from src.dispatch.models.domain import Coordinates
from src.dispatch.services.tracking.models import DeliveryStatus, ETAPrediction, LocationUpdate
from src.dispatch.services.tracking.monitoring import (
    assess_delivery_risk,
    batch_update_etas,
    calculate_route_efficiency,
    calculate_tracking_stats,
    get_at_risk_deliveries,
)
from src.dispatch.services.tracking.state_machine import create_delivery_tracking, transition_status

T0 = datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc)
PICKUP = Coordinates(33.5731, -7.5898)
DROPOFF = Coordinates(33.5950, -7.6200)


def _tracking(delivery_id: str = "D1"):
    return create_delivery_tracking(delivery_id, PICKUP, DROPOFF, now=T0)


def _eta(total: float, confidence: float = 0.9) -> ETAPrediction:
    return ETAPrediction(0.0, total, total, confidence, [])


def test_on_schedule_delivery_is_not_at_risk():
    risk = assess_delivery_risk(_tracking(), _eta(10), now=T0)
    assert not risk.is_at_risk
    assert risk.risk_level == "none"


def test_late_stuck_delivery_is_high_risk():
    tracking = transition_status(_tracking(), DeliveryStatus.ASSIGNED, "", now=T0)
    risk = assess_delivery_risk(tracking, _eta(20, confidence=0.4), now=T0 + timedelta(minutes=60))
    assert risk.is_at_risk
    assert risk.risk_level == "high"
    assert risk.score == 6
    assert len(risk.reasons) == 3


def test_at_risk_listing_skips_terminal_deliveries():
    late = _tracking("late")
    cancelled = transition_status(_tracking("gone"), DeliveryStatus.CANCELLED, "", now=T0)
    found = get_at_risk_deliveries([late, cancelled], now=T0 + timedelta(hours=2))
    assert [item.tracking.delivery_id for item in found] == ["late"]


def test_batch_eta_uses_latest_driver_position():
    tracking = _tracking()
    update = LocationUpdate("drv-1", PICKUP, T0, speed_kmh=20)
    predictions = batch_update_etas([tracking], {"drv-1": update}, driver_assignments={"D1": "drv-1"})
    assert predictions["D1"].pickup_minutes == 5.0


def test_tracking_stats():
    delivered = _tracking("ok")
    for minutes, status in enumerate(
        (
            DeliveryStatus.ASSIGNED,
            DeliveryStatus.PICKING_UP,
            DeliveryStatus.AT_RESTAURANT,
            DeliveryStatus.PICKED_UP,
            DeliveryStatus.DELIVERING,
            DeliveryStatus.AT_DROPOFF,
            DeliveryStatus.DELIVERED,
        ),
        start=1,
    ):
        delivered = transition_status(delivered, status, "", now=T0 + timedelta(minutes=minutes))
    cancelled = transition_status(_tracking("c"), DeliveryStatus.CANCELLED, "", now=T0)

    stats = calculate_tracking_stats([delivered, cancelled, _tracking("p")])
    assert stats.total_deliveries == 3
    assert stats.completed_deliveries == 1
    assert stats.cancelled_deliveries == 1
    assert stats.average_duration_minutes == 6.0
    assert stats.on_time_percentage == 100.0


def test_route_efficiency():
    assert calculate_route_efficiency(PICKUP, DROPOFF, []) == 1.0
    detour = Coordinates(33.70, -7.50)
    assert calculate_route_efficiency(PICKUP, DROPOFF, [detour]) < 0.5
