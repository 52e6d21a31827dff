"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from ...config import settings
from ...models.domain import Coordinates


class StopType(str, Enum):
    PICKUP = "pickup"
    DROPOFF = "dropoff"


class ConstraintType(str, Enum):
    PICKUP_BEFORE_DROPOFF = "pickup_before_dropoff"
    TIME_WINDOW = "time_window"
    MAX_DISTANCE = "max_distance"


@dataclass(frozen=True, slots=True)
class RouteStop:
    id: str
    location: Coordinates
    type: StopType
    order_id: str
    time_window_start: Optional[datetime] = None
    time_window_end: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class OptimizedRoute:
    stops: tuple[RouteStop, ...]
    total_distance_km: float
    estimated_minutes: float
    savings_km: float = 0.0
    savings_minutes: float = 0.0


@dataclass(frozen=True, slots=True)
class RouteConstraint:
    type: ConstraintType
    order_id: Optional[str] = None
    max_value: Optional[float] = None


@dataclass(slots=True)
class ConstraintReport:
    valid: bool
    violations: List[str]


@dataclass(slots=True)
class InsertionResult:
    route: List[RouteStop]
    insert_index: int
    additional_distance_km: float
    is_valid: bool


@dataclass(slots=True)
class MultiRoutePlan:
    routes: List[OptimizedRoute]
    unassigned_stops: List[RouteStop]
    total_distance_km: float
    total_minutes: float


@dataclass(slots=True)
class RouteMetrics:
    total_distance_km: float
    total_time_minutes: float
    number_of_stops: int
    average_stop_distance_km: float
    longest_leg_km: float


@dataclass(frozen=True, slots=True)
class RouteOptimizerConfig:
    winding_factor: float = field(default_factory=lambda: settings.road_winding_factor)
    speed_kmh: float = field(default_factory=lambda: settings.default_speed_kmh)
    max_iterations: int = field(default_factory=lambda: settings.two_opt_max_iterations)
    min_improvement_km: float = field(default_factory=lambda: settings.two_opt_min_improvement_km)
    max_stops_per_route: int = field(default_factory=lambda: settings.max_stops_per_route)
    service_minutes: float = field(default_factory=lambda: settings.service_time_per_stop_minutes)
    max_repair_passes: int = 100
