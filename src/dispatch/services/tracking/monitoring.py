"""Delivery risk assessment and fleet tracking statistics."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from statistics import median
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ...events import log_event
from ...models.domain import Coordinates, utc_now
from ..geospatial import calculate_path_distance, haversine_distance
from .eta import SpeedProfiles, predict_delivery_eta
from .models import DeliveryStatus, DeliveryTracking, ETAPrediction, LocationUpdate
from .state_machine import get_delivery_duration, update_driver_location

COMPONENT = "monitoring"

MAX_STATUS_MINUTES: Mapping[DeliveryStatus, float] = {
    DeliveryStatus.ASSIGNED: 10,
    DeliveryStatus.PICKING_UP: 20,
    DeliveryStatus.AT_RESTAURANT: 15,
    DeliveryStatus.DELIVERING: 45,
}

RISK_ORDER = {"high": 0, "medium": 1, "low": 2, "none": 3}


@dataclass(slots=True)
class RiskAssessment:
    is_at_risk: bool
    risk_level: str
    score: int
    reasons: List[str]


@dataclass(slots=True)
class AtRiskDelivery:
    tracking: DeliveryTracking
    risk: RiskAssessment
    eta: ETAPrediction


@dataclass(slots=True)
class TrackingStats:
    total_deliveries: int
    completed_deliveries: int
    failed_deliveries: int
    cancelled_deliveries: int
    average_duration_minutes: float
    median_duration_minutes: float
    on_time_percentage: float


def assess_delivery_risk(
    tracking: DeliveryTracking,
    eta: ETAPrediction,
    *,
    now: Optional[datetime] = None,
) -> RiskAssessment:
    now = now or utc_now()
    reasons: list[str] = []
    score = 0

    projected = now + timedelta(minutes=eta.total_minutes)
    delay = (projected - tracking.estimated_delivery_time).total_seconds() / 60
    if delay > 30:
        score += 3
        reasons.append(f"Running {round(delay)} minutes behind schedule")
    elif delay > 15:
        score += 2
        reasons.append(f"Running {round(delay)} minutes behind schedule")
    elif delay > 5:
        score += 1
        reasons.append(f"Slightly behind schedule by {round(delay)} minutes")

    if tracking.status_history:
        in_status = (now - tracking.status_history[-1].timestamp).total_seconds() / 60
        limit = MAX_STATUS_MINUTES.get(tracking.status)
        if limit is not None and in_status > limit:
            score += 2
            reasons.append(
                f"In {tracking.status.value!r} status for {round(in_status)} min (expected <{limit:g} min)"
            )

    if eta.confidence < 0.5:
        score += 1
        reasons.append(f"Low ETA confidence: {eta.confidence * 100:.0f}%")

    if score >= 4:
        level = "high"
    elif score >= 2:
        level = "medium"
    elif score >= 1:
        level = "low"
    else:
        level = "none"
    return RiskAssessment(is_at_risk=score >= 2, risk_level=level, score=score, reasons=reasons)


def batch_update_etas(
    deliveries: Iterable[DeliveryTracking],
    driver_locations: Optional[Mapping[str, LocationUpdate]] = None,
    *,
    driver_assignments: Optional[Mapping[str, str]] = None,
    city: Optional[str] = None,
    now: Optional[datetime] = None,
    config: Optional[SpeedProfiles] = None,
) -> Dict[str, ETAPrediction]:
    """Recompute ETAs, refreshing driver positions from the latest updates.

    ``driver_assignments`` maps delivery id to driver id.
    """

    locations = driver_locations or {}
    assignments = driver_assignments or {}
    predictions: dict[str, ETAPrediction] = {}
    for tracking in deliveries:
        update = locations.get(assignments.get(tracking.delivery_id, ""))
        speed = None
        if update is not None:
            tracking = update_driver_location(tracking, update.location, now=update.timestamp)
            speed = update.speed_kmh
        predictions[tracking.delivery_id] = predict_delivery_eta(
            tracking, driver_speed_kmh=speed, city=city, now=now, config=config
        )
    log_event(f"Batch ETA update: {len(predictions)} deliveries recalculated", component=COMPONENT)
    return predictions


def get_at_risk_deliveries(
    deliveries: Iterable[DeliveryTracking],
    *,
    city: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[AtRiskDelivery]:
    at_risk: list[AtRiskDelivery] = []
    for tracking in deliveries:
        if tracking.is_terminal:
            continue
        eta = predict_delivery_eta(tracking, city=city, now=now)
        risk = assess_delivery_risk(tracking, eta, now=now)
        if risk.is_at_risk:
            at_risk.append(AtRiskDelivery(tracking=tracking, risk=risk, eta=eta))
    at_risk.sort(key=lambda item: (RISK_ORDER[item.risk.risk_level], -item.risk.score))
    return at_risk


def calculate_tracking_stats(deliveries: Sequence[DeliveryTracking]) -> TrackingStats:
    completed = [d for d in deliveries if d.status is DeliveryStatus.DELIVERED]
    durations = [duration for duration in (get_delivery_duration(d) for d in completed) if duration is not None]
    on_time = sum(
        1
        for d in completed
        if d.actual_delivery_time is not None and d.actual_delivery_time <= d.estimated_delivery_time
    )
    return TrackingStats(
        total_deliveries=len(deliveries),
        completed_deliveries=len(completed),
        failed_deliveries=sum(1 for d in deliveries if d.status is DeliveryStatus.FAILED),
        cancelled_deliveries=sum(1 for d in deliveries if d.status is DeliveryStatus.CANCELLED),
        average_duration_minutes=round(sum(durations) / len(durations), 1) if durations else 0.0,
        median_duration_minutes=round(median(durations), 1) if durations else 0.0,
        on_time_percentage=round(on_time / len(completed) * 100, 1) if completed else 0.0,
    )


def calculate_route_efficiency(start: Coordinates, end: Coordinates, actual_path: Sequence[Coordinates]) -> float:
    """Straight-line distance over travelled distance, capped at 1."""

    straight = haversine_distance(start, end)
    if straight == 0:
        return 1.0
    travelled = calculate_path_distance([start, *actual_path, end])
    if travelled == 0:
        return 0.0
    return min(straight / travelled, 1.0)
