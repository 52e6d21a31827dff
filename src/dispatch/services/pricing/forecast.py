"""Hourly demand forecasting, capacity planning and demand-driven incentives.

Historical data is a list of days, oldest first, each holding 24 hourly order
counts.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Mapping, Sequence

from ...events import log_event
from ...models.domain import round_half_up
from .calendar import TimePeriod
from .surge import DemandLevel, calculate_delivery_fee, calculate_demand_supply_ratio

COMPONENT = "forecast"

HistoricalData = Sequence[Sequence[float]]

FULL_CONFIDENCE_DAYS = 14
PEAK_HOUR_SHARE = 0.2
DRIVER_EARNINGS_SHARE = 0.8
PEAK_REVENUE_SURGE = 1.3
AVERAGE_DELIVERY_MINUTES = 35
TREND_THRESHOLD_PERCENT = 5.0

PEAK_HOUR_BONUS_RATES: Mapping[TimePeriod, float] = {
    TimePeriod.EVENING_RUSH: 0.5,
    TimePeriod.MIDDAY: 0.3,
    TimePeriod.RAMADAN_IFTAR: 0.75,
    TimePeriod.FRIDAY_PRAYER: 0.0,
    TimePeriod.MORNING_RUSH: 0.2,
    TimePeriod.AFTERNOON: 0.0,
    TimePeriod.NIGHT: 0.25,
}

MIN_ORDER_ADJUSTMENTS: Mapping[DemandLevel, float] = {
    DemandLevel.VERY_LOW: 1.5,
    DemandLevel.LOW: 1.2,
    DemandLevel.MODERATE: 1.0,
    DemandLevel.HIGH: 0.9,
    DemandLevel.VERY_HIGH: 0.8,
    DemandLevel.EXTREME: 0.7,
}

HIGH_DEMAND_LEVELS = frozenset({DemandLevel.HIGH, DemandLevel.VERY_HIGH, DemandLevel.EXTREME})


@dataclass(slots=True)
class HourlyDemand:
    hour: int
    expected_orders: int
    confidence: float


@dataclass(slots=True)
class DemandForecast:
    zone_id: str
    date: str
    hourly_demand: List[HourlyDemand]
    peak_hours: List[int]
    total_expected: int


@dataclass(slots=True)
class ZoneStats:
    zone_id: str
    active_orders: int
    available_drivers: int
    average_wait_minutes: float
    demand_level: DemandLevel


@dataclass(slots=True)
class IncentiveSuggestion:
    type: str
    amount: int
    reason: str
    eligible_drivers: int


@dataclass(slots=True)
class DemandTrend:
    direction: str
    percent_change: float
    recent_avg: float
    historical_avg: float


@dataclass(slots=True)
class ZoneDemandSummary:
    total_orders: int
    total_drivers: int
    avg_wait: float
    critical_zones: List[str]


@dataclass(slots=True)
class PromotionDecision:
    activate: bool
    reason: str


def forecast_hourly_demand(history: HistoricalData, hour: int) -> HourlyDemand:
    """Recency-weighted average for one hour of the day.

    The i-th day (oldest first) carries weight ``i + 1``. Confidence blends
    sample size (full at two weeks) at 40% with consistency (1 minus the
    coefficient of variation) at 60%.
    """

    values = [day[hour] for day in history if hour < len(day) and day[hour] >= 0]
    if not values:
        return HourlyDemand(hour=hour, expected_orders=0, confidence=0.0)

    weights = range(1, len(values) + 1)
    expected = round_half_up(sum(v * w for v, w in zip(values, weights)) / sum(weights))

    mean = sum(values) / len(values)
    std_dev = math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))
    variation = std_dev / mean if mean > 0 else 1.0
    data_confidence = min(len(values) / FULL_CONFIDENCE_DAYS, 1.0)
    consistency = max(1 - variation, 0.0)
    confidence = round(data_confidence * 0.4 + consistency * 0.6, 2)
    return HourlyDemand(hour=hour, expected_orders=expected, confidence=max(min(confidence, 1.0), 0.0))


def generate_daily_forecast(zone_id: str, history: HistoricalData, date: str) -> DemandForecast:
    hourly = [forecast_hourly_demand(history, hour) for hour in range(24)]
    total = sum(h.expected_orders for h in hourly)

    busy = sorted((h for h in hourly if h.expected_orders > 0), key=lambda h: h.expected_orders, reverse=True)
    peak_count = max(math.ceil(len(busy) * PEAK_HOUR_SHARE), 1)
    peak_hours = sorted(h.hour for h in busy[:peak_count])

    log_event(
        f"Forecast for zone {zone_id} on {date}: {total} total orders",
        component=COMPONENT,
        peaks=",".join(str(h) for h in peak_hours),
    )
    return DemandForecast(zone_id=zone_id, date=date, hourly_demand=hourly, peak_hours=peak_hours, total_expected=total)


def detect_weekly_pattern(history: HistoricalData) -> List[float]:
    """Per-weekday multipliers from the first seven days; neutral with less than a week."""

    neutral = [1.0] * 7
    if len(history) < 7:
        return neutral
    totals = [sum(day) for day in history]
    average = sum(totals) / len(totals)
    if average == 0:
        return neutral
    return [total / average for total in totals[:7]]


def analyze_demand_trend(history: HistoricalData) -> DemandTrend:
    """Compare the latest quarter of days with the earlier three quarters."""

    if len(history) < 4:
        return DemandTrend(direction="stable", percent_change=0.0, recent_avg=0.0, historical_avg=0.0)

    split = int(len(history) * 0.75)

    def daily_average(days: HistoricalData) -> float:
        return sum(sum(day) for day in days) / len(days) if days else 0.0

    historical = daily_average(history[:split])
    recent = daily_average(history[split:])
    if historical == 0:
        return DemandTrend(
            direction="growing" if recent > 0 else "stable",
            percent_change=100.0 if recent > 0 else 0.0,
            recent_avg=recent,
            historical_avg=historical,
        )

    change = (recent - historical) / historical * 100
    if change > TREND_THRESHOLD_PERCENT:
        direction = "growing"
    elif change < -TREND_THRESHOLD_PERCENT:
        direction = "declining"
    else:
        direction = "stable"
    return DemandTrend(
        direction=direction,
        percent_change=round(change, 1),
        recent_avg=round(recent, 1),
        historical_avg=round(historical, 1),
    )


def estimate_drivers_needed(
    current_orders: int,
    current_drivers: int,
    current_wait_minutes: float,
    target_wait_minutes: float,
) -> int:
    """Additional drivers to bring the wait time down to the target."""

    if current_wait_minutes <= target_wait_minutes or current_orders == 0:
        return 0
    if current_drivers <= 0:
        return math.ceil(current_orders * 0.5)
    throughput = current_orders / (current_drivers * current_wait_minutes)
    required = current_orders / (throughput * target_wait_minutes)
    return max(math.ceil(required - current_drivers), 0)


def calculate_optimal_driver_count(expected_orders: float, target_wait_minutes: float = 15) -> int:
    if expected_orders <= 0:
        return 0
    per_driver_hour = 60 / AVERAGE_DELIVERY_MINUTES
    for_throughput = math.ceil(expected_orders / per_driver_hour)
    buffer = 1.3 if target_wait_minutes < 15 else 1.1
    return max(math.ceil(for_throughput * buffer), 1)


def generate_driver_schedule(forecast: DemandForecast, target_wait_minutes: float = 15) -> List[int]:
    return [calculate_optimal_driver_count(h.expected_orders, target_wait_minutes) for h in forecast.hourly_demand]


def suggest_incentives(zone: ZoneStats, period: TimePeriod) -> List[IncentiveSuggestion]:
    """Driver incentives for a zone; none while supply keeps up (ratio below 0.8)."""

    ratio = calculate_demand_supply_ratio(zone.active_orders, zone.available_drivers)
    suggestions: list[IncentiveSuggestion] = []
    if ratio < 0.8:
        return suggestions

    if ratio > 1.0 and period in (TimePeriod.EVENING_RUSH, TimePeriod.MIDDAY):
        suggestions.append(
            IncentiveSuggestion(
                type="peak_hour_bonus",
                amount=2000 if ratio > 2.0 else 1000,
                reason=f"High demand during {period.value.replace('_', ' ')} in zone {zone.zone_id}",
                eligible_drivers=max(zone.active_orders - zone.available_drivers, 1),
            )
        )

    if zone.average_wait_minutes > 20:
        suggestions.append(
            IncentiveSuggestion(
                type="zone_bonus",
                amount=1500,
                reason=f"Long wait times ({round(zone.average_wait_minutes)} min) in zone {zone.zone_id}",
                eligible_drivers=max(math.ceil(zone.active_orders * 0.5), 1),
            )
        )

    if zone.demand_level in (DemandLevel.EXTREME, DemandLevel.VERY_HIGH):
        suggestions.append(
            IncentiveSuggestion(
                type="streak_bonus",
                amount=3000,
                reason=f"{zone.demand_level.value} demand requires sustained driver engagement",
                eligible_drivers=zone.available_drivers,
            )
        )

    if period is TimePeriod.RAMADAN_IFTAR:
        suggestions.append(
            IncentiveSuggestion(
                type="ramadan_bonus",
                amount=2500,
                reason="Ramadan iftar surge requires maximum driver availability",
                eligible_drivers=max(math.ceil(zone.active_orders * 0.75), 1),
            )
        )

    if ratio > 1.5 and zone.available_drivers < 5:
        suggestions.append(
            IncentiveSuggestion(
                type="minimum_guarantee",
                amount=8000,
                reason=(
                    f"Critical driver shortage ({zone.available_drivers} available) "
                    f"with {zone.active_orders} orders"
                ),
                eligible_drivers=max(zone.active_orders - zone.available_drivers + 2, 3),
            )
        )

    log_event(
        f"Suggested {len(suggestions)} incentives for zone {zone.zone_id}",
        component=COMPONENT,
        ratio=f"{ratio:.2f}",
    )
    return suggestions


def get_zone_demand_summary(zones: Sequence[ZoneStats]) -> ZoneDemandSummary:
    """Totals plus an order-weighted average wait; very high, extreme or >25 min zones are critical."""

    total_orders = sum(zone.active_orders for zone in zones)
    weighted_wait = sum(zone.average_wait_minutes * zone.active_orders for zone in zones)
    critical = [
        zone.zone_id
        for zone in zones
        if zone.demand_level in (DemandLevel.EXTREME, DemandLevel.VERY_HIGH) or zone.average_wait_minutes > 25
    ]
    return ZoneDemandSummary(
        total_orders=total_orders,
        total_drivers=sum(zone.available_drivers for zone in zones),
        avg_wait=round(weighted_wait / total_orders, 1) if total_orders else 0.0,
        critical_zones=critical,
    )


def calculate_peak_hour_bonus(base_earnings: int, period: TimePeriod) -> int:
    return round_half_up(base_earnings * PEAK_HOUR_BONUS_RATES[TimePeriod(period)])


def estimate_driver_earnings(deliveries: int, avg_distance_km: float, avg_surge: float) -> int:
    """Driver share (80%) of the fees for ``deliveries`` identical trips."""

    if deliveries <= 0:
        return 0
    fee = calculate_delivery_fee(avg_distance_km, avg_surge, False).total_fee
    earnings = round_half_up(fee * deliveries * DRIVER_EARNINGS_SHARE)
    log_event(
        f"Estimated driver earnings: {earnings} centimes for {deliveries} deliveries",
        component=COMPONENT,
        avg_km=avg_distance_km,
        surge=avg_surge,
    )
    return earnings


def estimate_period_revenue(forecast: DemandForecast, avg_distance_km: float) -> int:
    revenue = 0
    for hourly in forecast.hourly_demand:
        peak = hourly.hour in forecast.peak_hours
        fee = calculate_delivery_fee(avg_distance_km, PEAK_REVENUE_SURGE if peak else 1.0, peak)
        revenue += fee.total_fee * hourly.expected_orders
    return revenue


def calculate_dynamic_min_order(base_minimum: int, level: DemandLevel) -> int:
    return round_half_up(base_minimum * MIN_ORDER_ADJUSTMENTS[DemandLevel(level)])


def should_activate_promotion(level: DemandLevel, period: TimePeriod) -> PromotionDecision:
    if level in HIGH_DEMAND_LEVELS:
        return PromotionDecision(False, f"Demand already {level.value}, promotions not needed")
    if period is TimePeriod.FRIDAY_PRAYER:
        return PromotionDecision(False, "Friday prayer period, market is inactive")
    if period is TimePeriod.AFTERNOON and level in (DemandLevel.VERY_LOW, DemandLevel.LOW):
        return PromotionDecision(True, "Afternoon lull with low demand, promotion can drive orders")
    if period is TimePeriod.NIGHT and level is DemandLevel.VERY_LOW:
        return PromotionDecision(True, "Late night low demand, promotion can attract late-night orders")
    if level is DemandLevel.VERY_LOW:
        return PromotionDecision(True, "Very low demand, promotion recommended to stimulate orders")
    return PromotionDecision(False, "Current conditions do not warrant promotions")
