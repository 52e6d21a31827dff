"""Demand level classification, surge multipliers and delivery fees.

All monetary amounts are integer centimes.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional, Sequence

from ...config import settings
from ...events import log_event
from ...models.domain import round_half_up

COMPONENT = "surge"


class DemandLevel(str, Enum):
    VERY_LOW = "very_low"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    VERY_HIGH = "very_high"
    EXTREME = "extreme"


# Upper bounds (exclusive); ratios at or above the last bound are extreme.
DEMAND_THRESHOLDS: Sequence[tuple[float, DemandLevel]] = (
    (0.2, DemandLevel.VERY_LOW),
    (0.5, DemandLevel.LOW),
    (0.8, DemandLevel.MODERATE),
    (1.2, DemandLevel.HIGH),
    (2.0, DemandLevel.VERY_HIGH),
)

# Excess ratio above the threshold at which surge reaches the maximum.
FULL_SURGE_EXCESS = 2.0


@dataclass(frozen=True, slots=True)
class SurgeConfig:
    base_multiplier: float = field(default_factory=lambda: settings.surge_base_multiplier)
    max_multiplier: float = field(default_factory=lambda: settings.surge_max_multiplier)
    demand_threshold: float = field(default_factory=lambda: settings.surge_demand_threshold)
    supply_threshold: float = field(default_factory=lambda: settings.surge_supply_threshold)


@dataclass(frozen=True, slots=True)
class FeeSchedule:
    base_fee: int = field(default_factory=lambda: settings.base_delivery_fee)
    per_km_fee: int = field(default_factory=lambda: settings.per_km_fee)
    min_fee: int = field(default_factory=lambda: settings.min_delivery_fee)
    max_fee: int = field(default_factory=lambda: settings.max_delivery_fee)
    peak_multiplier: float = field(default_factory=lambda: settings.peak_fee_multiplier)
    currency: str = field(default_factory=lambda: settings.currency)


@dataclass(slots=True)
class SurgeResult:
    multiplier: float
    reason: str
    demand_level: DemandLevel


@dataclass(slots=True)
class DeliveryFeeResult:
    base_fee: int
    distance_fee: int
    surge_fee: int
    total_fee: int
    currency: str


@dataclass(frozen=True, slots=True)
class WeatherImpact:
    condition: str
    demand_multiplier: float
    supply_multiplier: float


WEATHER_IMPACTS: Mapping[str, tuple[float, float]] = {
    "clear": (1.0, 1.0),
    "cloudy": (1.05, 0.95),
    "rain": (1.4, 0.6),
    "heavy_rain": (1.6, 0.3),
    "hot": (1.2, 0.7),
    "extreme_heat": (1.3, 0.4),
    "sandstorm": (0.5, 0.1),
    "windy": (1.1, 0.8),
    "fog": (1.1, 0.7),
}


def get_demand_level(ratio: float) -> DemandLevel:
    for bound, level in DEMAND_THRESHOLDS:
        if ratio < bound:
            return level
    return DemandLevel.EXTREME


def calculate_demand_supply_ratio(active_orders: int, available_drivers: int) -> float:
    """Orders per available driver; ``inf`` when orders wait and nobody is free."""

    if active_orders == 0:
        return 0.0
    if available_drivers == 0:
        return math.inf
    return active_orders / available_drivers


def calculate_surge_multiplier(ratio: float, config: Optional[SurgeConfig] = None) -> SurgeResult:
    """Linear surge above the demand threshold, reaching the cap at +2.0 excess ratio."""

    config = config or SurgeConfig()
    level = get_demand_level(ratio)
    if ratio <= config.demand_threshold:
        return SurgeResult(multiplier=config.base_multiplier, reason="Normal demand levels", demand_level=level)

    progress = min((ratio - config.demand_threshold) / FULL_SURGE_EXCESS, 1.0)
    multiplier = config.base_multiplier + (config.max_multiplier - config.base_multiplier) * progress
    multiplier = round(min(multiplier, config.max_multiplier), 2)

    if level is DemandLevel.EXTREME:
        reason = f"Extreme demand: {ratio:.1f} orders per driver"
    elif level is DemandLevel.VERY_HIGH:
        reason = f"Very high demand: {ratio:.1f} orders per driver"
    else:
        reason = f"High demand: {ratio:.1f} orders per driver"

    log_event(
        f"Surge calculated: {multiplier}x",
        component=COMPONENT,
        ratio=f"{ratio:.2f}",
        demand_level=level.value,
    )
    return SurgeResult(multiplier=multiplier, reason=reason, demand_level=level)


def calculate_delivery_fee(
    distance_km: float,
    surge_multiplier: float = 1.0,
    is_peak: bool = False,
    schedule: Optional[FeeSchedule] = None,
) -> DeliveryFeeResult:
    """Base plus distance fee, surged as a whole, then clamped to the fee band.

    The peak multiplier only boosts the distance component.
    """

    schedule = schedule or FeeSchedule()
    distance_fee = round_half_up(distance_km * schedule.per_km_fee)
    if is_peak:
        distance_fee = round_half_up(distance_fee * schedule.peak_multiplier)

    subtotal = schedule.base_fee + distance_fee
    surged = round_half_up(subtotal * surge_multiplier)
    total = max(schedule.min_fee, min(surged, schedule.max_fee))

    log_event(
        f"Delivery fee: {total} centimes",
        component=COMPONENT,
        base=schedule.base_fee,
        distance=distance_fee,
        surge=surged - subtotal,
    )
    return DeliveryFeeResult(
        base_fee=schedule.base_fee,
        distance_fee=distance_fee,
        surge_fee=max(surged - subtotal, 0),
        total_fee=total,
        currency=schedule.currency,
    )


def calculate_weather_impact(condition: str) -> WeatherImpact:
    normalized = "_".join(condition.lower().split())
    impact = WEATHER_IMPACTS.get(normalized)
    if impact is None:
        log_event(
            f"Unknown weather condition {condition!r}, using clear defaults",
            component=COMPONENT,
            level=logging.WARNING,
        )
        return WeatherImpact(condition=condition, demand_multiplier=1.0, supply_multiplier=1.0)
    demand, supply = impact
    return WeatherImpact(condition=condition, demand_multiplier=demand, supply_multiplier=supply)
