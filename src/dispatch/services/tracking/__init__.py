"""Delivery tracking helpers."""

from .eta import format_eta, predict_delivery_eta
from .geofence import check_geofences, create_delivery_geofences
from .state_machine import (
    calculate_delivery_progress,
    can_transition,
    create_delivery_tracking,
    transition_status,
)

__all__ = [
    "create_delivery_tracking",
    "transition_status",
    "can_transition",
    "calculate_delivery_progress",
    "predict_delivery_eta",
    "format_eta",
    "create_delivery_geofences",
    "check_geofences",
]
