"""Tracking domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from ...models.domain import Coordinates


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    PICKING_UP = "picking_up"
    AT_RESTAURANT = "at_restaurant"
    PICKED_UP = "picked_up"
    DELIVERING = "delivering"
    AT_DROPOFF = "at_dropoff"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED, DeliveryStatus.FAILED})


@dataclass(frozen=True, slots=True)
class StatusTransition:
    from_status: DeliveryStatus
    to_status: DeliveryStatus
    timestamp: datetime
    reason: str


@dataclass(frozen=True, slots=True)
class DeliveryTracking:
    """Snapshot of one delivery; replaced, never mutated, on every change."""

    delivery_id: str
    status: DeliveryStatus
    pickup_location: Coordinates
    dropoff_location: Coordinates
    estimated_pickup_time: datetime
    estimated_delivery_time: datetime
    last_update: datetime
    driver_location: Optional[Coordinates] = None
    actual_pickup_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    status_history: tuple[StatusTransition, ...] = field(default_factory=tuple)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True, slots=True)
class LocationUpdate:
    driver_id: str
    location: Coordinates
    timestamp: datetime
    speed_kmh: float = 0.0
    heading: float = 0.0
    accuracy_m: float = 10.0
    battery_level: float = 100.0


@dataclass(slots=True)
class ETAPrediction:
    pickup_minutes: float
    delivery_minutes: float
    total_minutes: float
    confidence: float
    adjustments: list[str]
    estimated_arrival: Optional[datetime] = None
