"""Driver incentives: time, weather, streak and zone bonuses, quests and campaign budgets."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Iterable, List, Mapping, Optional, Sequence

from ...config import settings
from ...errors import ValidationError
from ...events import log_event
from ...models.domain import round_half_up, utc_now

COMPONENT = "incentives"


class IncentiveType(str, Enum):
    QUEST = "quest"
    PEAK_HOUR = "peak_hour"
    WEATHER = "weather"
    STREAK = "streak"
    ZONE = "zone"
    RAMADAN = "ramadan"
    REFERRAL = "referral"
    MILESTONE = "milestone"
    FIRST_DELIVERY = "first_delivery"
    COMEBACK = "comeback"


class QuestStatus(str, Enum):
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CLAIMED = "claimed"


class WeatherCondition(str, Enum):
    CLEAR = "clear"
    CLOUDY = "cloudy"
    LIGHT_RAIN = "light_rain"
    HEAVY_RAIN = "heavy_rain"
    SANDSTORM = "sandstorm"
    EXTREME_HEAT = "extreme_heat"


@dataclass(frozen=True, slots=True)
class HourlyBonusWindow:
    """Applies for ``start_hour <= hour < end_hour``."""

    start_hour: int
    end_hour: int
    multiplier: float
    bonus: int

    def covers(self, hour: int) -> bool:
        return self.start_hour <= hour < self.end_hour


@dataclass(frozen=True, slots=True)
class WeatherBonus:
    condition: WeatherCondition
    bonus: int
    multiplier: float
    active: bool


@dataclass(frozen=True, slots=True)
class Milestone:
    count: int
    reward: int
    title: str


PEAK_HOURS: Sequence[HourlyBonusWindow] = (
    HourlyBonusWindow(11, 14, 1.3, 300),
    HourlyBonusWindow(18, 22, 1.5, 500),
)
RAMADAN_IFTAR = HourlyBonusWindow(17, 21, 1.6, 800)

WEATHER_BONUSES: Mapping[WeatherCondition, WeatherBonus] = {
    WeatherCondition.CLEAR: WeatherBonus(WeatherCondition.CLEAR, 0, 1.0, False),
    WeatherCondition.CLOUDY: WeatherBonus(WeatherCondition.CLOUDY, 0, 1.0, False),
    WeatherCondition.LIGHT_RAIN: WeatherBonus(WeatherCondition.LIGHT_RAIN, 300, 1.2, True),
    WeatherCondition.HEAVY_RAIN: WeatherBonus(WeatherCondition.HEAVY_RAIN, 700, 1.5, True),
    WeatherCondition.SANDSTORM: WeatherBonus(WeatherCondition.SANDSTORM, 1000, 1.8, True),
    WeatherCondition.EXTREME_HEAT: WeatherBonus(WeatherCondition.EXTREME_HEAT, 500, 1.3, True),
}

STREAK_MILESTONES: Sequence[Milestone] = (
    Milestone(5, 500, "5 in a row"),
    Milestone(10, 1500, "10 streak"),
    Milestone(20, 4000, "20 streak"),
    Milestone(50, 15000, "50 marathon"),
    Milestone(100, 50000, "Century"),
)

DELIVERY_MILESTONES: Sequence[Milestone] = (
    Milestone(10, 2000, "First 10 Deliveries"),
    Milestone(50, 5000, "Half Century"),
    Milestone(100, 10000, "Century Mark"),
    Milestone(500, 30000, "500 Club"),
    Milestone(1000, 75000, "1000 Legend"),
    Milestone(5000, 250000, "Elite 5000"),
)

FIRST_DELIVERY_BONUS = 2000
COMEBACK_BONUS = 1500
COMEBACK_MIN_DAYS = 7
REFERRAL_BONUS = 5000
STREAK_MAX_GAP = timedelta(hours=12)
ZONE_INCENTIVE_VALIDITY = timedelta(minutes=30)


@dataclass(slots=True)
class IncentiveResult:
    type: IncentiveType
    amount: int
    reason: str


@dataclass(slots=True)
class BonusResult:
    bonus: int
    multiplier: float
    is_active: bool


@dataclass(slots=True)
class StreakBonus:
    current_streak: int
    bonus: int
    multiplier: float
    next_milestone: int
    next_milestone_bonus: int


@dataclass(frozen=True, slots=True)
class ZoneIncentive:
    zone_id: str
    zone_name: str
    bonus: int
    multiplier: float
    reason: str
    valid_until: datetime


@dataclass(frozen=True, slots=True)
class ZoneDemand:
    zone_id: str
    zone_name: str
    demand_level: str
    driver_count: int


@dataclass(frozen=True, slots=True)
class QuestCondition:
    type: str
    value: object


@dataclass(frozen=True, slots=True)
class Quest:
    id: str
    type: IncentiveType
    title: str
    description: str
    target_count: int
    current_count: int
    reward: int
    expires_at: datetime
    status: QuestStatus
    conditions: tuple[QuestCondition, ...] = ()


@dataclass(slots=True)
class QuestClaim:
    success: bool
    reward: int
    message: str
    quest: Quest


@dataclass(slots=True)
class IncentiveBudget:
    daily_budget: int
    spent_today: int
    remaining: int
    utilization_percent: float
    is_exhausted: bool


@dataclass(slots=True)
class BudgetCap:
    capped_amount: int
    was_capped: bool


@dataclass(frozen=True, slots=True)
class IncentiveCampaign:
    id: str
    name: str
    type: IncentiveType
    start: datetime
    end: datetime
    budget: int
    spent: int = 0
    is_active: bool = True
    target_zones: tuple[str, ...] = ()


@dataclass(slots=True)
class DeliveryIncentives:
    incentives: List[IncentiveResult]
    total_bonus: int
    effective_multiplier: float


@dataclass(slots=True)
class DriverIncentiveSummary:
    driver_id: str
    active_quests: List[Quest]
    current_streak: int
    today_earnings: int
    today_bonuses: int
    available_incentives: List[IncentiveResult] = field(default_factory=list)
    total_incentives_claimed: int = 0


def _window_bonus(base_pay: int, window: HourlyBonusWindow) -> int:
    return window.bonus + round_half_up(base_pay * (window.multiplier - 1))


def get_peak_hour_bonus(hour: int) -> Optional[HourlyBonusWindow]:
    return next((window for window in PEAK_HOURS if window.covers(hour)), None)


def calculate_peak_bonus(base_pay: int, hour: int) -> BonusResult:
    peak = get_peak_hour_bonus(hour)
    if peak is None:
        return BonusResult(bonus=0, multiplier=1.0, is_active=False)
    return BonusResult(bonus=_window_bonus(base_pay, peak), multiplier=peak.multiplier, is_active=True)


def get_weather_bonus(condition: WeatherCondition | str) -> WeatherBonus:
    """Unknown conditions fall back to clear weather."""

    try:
        return WEATHER_BONUSES[WeatherCondition(condition)]
    except ValueError:
        return WEATHER_BONUSES[WeatherCondition.CLEAR]


def calculate_weather_bonus(base_pay: int, condition: WeatherCondition | str) -> BonusResult:
    weather = get_weather_bonus(condition)
    if not weather.active:
        return BonusResult(bonus=0, multiplier=1.0, is_active=False)
    bonus = weather.bonus + round_half_up(base_pay * (weather.multiplier - 1))
    return BonusResult(bonus=bonus, multiplier=weather.multiplier, is_active=True)


def calculate_streak_bonus(consecutive_deliveries: int) -> StreakBonus:
    """Bonus of the highest streak milestone reached; multiplier adds 1% per milestone delivery."""

    reached = [m for m in STREAK_MILESTONES if consecutive_deliveries >= m.count]
    upcoming = next((m for m in STREAK_MILESTONES if m.count > consecutive_deliveries), None)
    current = reached[-1] if reached else None
    return StreakBonus(
        current_streak=consecutive_deliveries,
        bonus=current.reward if current else 0,
        multiplier=round(1 + current.count * 0.01, 2) if current else 1.0,
        next_milestone=upcoming.count if upcoming else 0,
        next_milestone_bonus=upcoming.reward if upcoming else 0,
    )


def is_streak_broken(
    last_delivery: datetime,
    max_gap: timedelta = STREAK_MAX_GAP,
    *,
    now: Optional[datetime] = None,
) -> bool:
    return (now or utc_now()) - last_delivery > max_gap


def generate_zone_incentives(
    zones: Iterable[ZoneDemand],
    valid_for: timedelta = ZONE_INCENTIVE_VALIDITY,
    *,
    now: Optional[datetime] = None,
) -> List[ZoneIncentive]:
    """Incentives for ``high`` and ``critical`` zones only."""

    now = now or utc_now()
    incentives: list[ZoneIncentive] = []
    for zone in zones:
        if zone.demand_level not in ("high", "critical"):
            continue
        critical = zone.demand_level == "critical"
        incentives.append(
            ZoneIncentive(
                zone_id=zone.zone_id,
                zone_name=zone.zone_name,
                bonus=1000 if critical else 500,
                multiplier=1.5 if critical else 1.2,
                reason=f"{zone.demand_level} demand in {zone.zone_name} ({zone.driver_count} drivers available)",
                valid_until=now + valid_for,
            )
        )
    return incentives


def is_zone_incentive_valid(incentive: ZoneIncentive, *, now: Optional[datetime] = None) -> bool:
    return (now or utc_now()) < incentive.valid_until


def is_ramadan_iftar_active(hour: int, is_ramadan: bool) -> bool:
    return is_ramadan and RAMADAN_IFTAR.covers(hour)


def calculate_ramadan_bonus(base_pay: int, hour: int, is_ramadan: bool) -> BonusResult:
    if not is_ramadan_iftar_active(hour, is_ramadan):
        return BonusResult(bonus=0, multiplier=1.0, is_active=False)
    return BonusResult(bonus=_window_bonus(base_pay, RAMADAN_IFTAR), multiplier=RAMADAN_IFTAR.multiplier, is_active=True)


def create_quest(
    id: str,
    type: IncentiveType,
    title: str,
    description: str,
    target_count: int,
    reward: int,
    duration: timedelta,
    conditions: Sequence[QuestCondition] = (),
    *,
    now: Optional[datetime] = None,
) -> Quest:
    if target_count < 1:
        raise ValidationError(f"Quest target must be at least 1, got {target_count}")
    if reward < 0:
        raise ValidationError(f"Quest reward must be non-negative, got {reward}")
    return Quest(
        id=id,
        type=IncentiveType(type),
        title=title,
        description=description,
        target_count=target_count,
        current_count=0,
        reward=reward,
        expires_at=(now or utc_now()) + duration,
        status=QuestStatus.AVAILABLE,
        conditions=tuple(conditions),
    )


def update_quest_progress(quest: Quest, increment: int = 1, *, now: Optional[datetime] = None) -> Quest:
    """Advance a quest; finished quests are returned unchanged and late ones expire."""

    if quest.status in (QuestStatus.COMPLETED, QuestStatus.EXPIRED, QuestStatus.CLAIMED):
        return quest
    if (now or utc_now()) > quest.expires_at:
        return replace(quest, status=QuestStatus.EXPIRED)
    count = min(quest.target_count, quest.current_count + increment)
    status = QuestStatus.COMPLETED if count >= quest.target_count else QuestStatus.IN_PROGRESS
    return replace(quest, current_count=count, status=status)


def claim_quest_reward(quest: Quest) -> QuestClaim:
    if quest.status is not QuestStatus.COMPLETED:
        return QuestClaim(
            success=False,
            reward=0,
            message=f"Quest is {quest.status.value}, not completed",
            quest=quest,
        )
    log_event(f"Quest {quest.id} claimed for {quest.reward} centimes", component=COMPONENT)
    return QuestClaim(
        success=True,
        reward=quest.reward,
        message=f"Claimed {quest.reward} centimes for {quest.title!r}",
        quest=replace(quest, status=QuestStatus.CLAIMED),
    )


def generate_daily_quests(driver_id: str, total_deliveries: int, *, now: Optional[datetime] = None) -> List[Quest]:
    """Quests expiring at the next local midnight; rating quests need 20 deliveries of history."""

    now = now or utc_now()
    until_midnight = datetime.combine(now.date() + timedelta(days=1), time(0), tzinfo=now.tzinfo) - now
    day = now.date().isoformat()

    quests = [
        create_quest(
            f"daily-{driver_id}-deliveries-{day}",
            IncentiveType.QUEST,
            "Daily Deliveries",
            "Complete 5 deliveries today",
            5,
            1500,
            until_midnight,
            [QuestCondition("min_deliveries", 5)],
            now=now,
        ),
        create_quest(
            f"daily-{driver_id}-peak-{day}",
            IncentiveType.PEAK_HOUR,
            "Peak Performer",
            "Complete 3 deliveries during peak hours",
            3,
            2000,
            until_midnight,
            [QuestCondition("time_window", "peak")],
            now=now,
        ),
    ]
    if total_deliveries >= 20:
        quests.append(
            create_quest(
                f"daily-{driver_id}-rating-{day}",
                IncentiveType.QUEST,
                "5-Star Sprint",
                "Get 3 five-star ratings today",
                3,
                2500,
                until_midnight,
                [QuestCondition("min_rating", 5)],
                now=now,
            )
        )
    return quests


def check_milestones(total_deliveries: int, claimed: Iterable[int]) -> List[Milestone]:
    """Reached delivery milestones that have not been claimed yet."""

    already = set(claimed)
    return [m for m in DELIVERY_MILESTONES if total_deliveries >= m.count and m.count not in already]


def check_budget(spent: int, daily_budget: Optional[int] = None) -> IncentiveBudget:
    budget = settings.daily_incentive_budget if daily_budget is None else daily_budget
    remaining = max(0, budget - spent)
    return IncentiveBudget(
        daily_budget=budget,
        spent_today=spent,
        remaining=remaining,
        utilization_percent=round(spent / budget * 100, 2) if budget > 0 else 0.0,
        is_exhausted=remaining <= 0,
    )


def apply_budget_cap(amount: int, budget: IncentiveBudget) -> BudgetCap:
    """Reduce ``amount`` to what the budget has left; never negative."""

    if budget.is_exhausted:
        if amount > 0:
            log_event("Incentive budget exhausted, bonus withheld", component=COMPONENT, requested=amount)
        return BudgetCap(capped_amount=0, was_capped=amount > 0)
    if amount > budget.remaining:
        log_event(
            f"Incentive capped at remaining budget {budget.remaining}",
            component=COMPONENT,
            requested=amount,
        )
        return BudgetCap(capped_amount=budget.remaining, was_capped=True)
    return BudgetCap(capped_amount=max(amount, 0), was_capped=False)


def calculate_delivery_incentives(
    base_pay: int,
    hour: int,
    weather: WeatherCondition | str = WeatherCondition.CLEAR,
    consecutive_deliveries: int = 0,
    is_ramadan: bool = False,
    zone_incentive: Optional[ZoneIncentive] = None,
) -> DeliveryIncentives:
    incentives: list[IncentiveResult] = []

    peak = calculate_peak_bonus(base_pay, hour)
    if peak.is_active:
        incentives.append(IncentiveResult(IncentiveType.PEAK_HOUR, peak.bonus, f"Peak hour bonus ({peak.multiplier}x)"))

    weather_bonus = calculate_weather_bonus(base_pay, weather)
    if weather_bonus.bonus > 0:
        label = get_weather_bonus(weather).condition.value
        incentives.append(
            IncentiveResult(
                IncentiveType.WEATHER,
                weather_bonus.bonus,
                f"Weather bonus for {label} ({weather_bonus.multiplier}x)",
            )
        )

    streak = calculate_streak_bonus(consecutive_deliveries)
    if streak.bonus > 0:
        incentives.append(
            IncentiveResult(IncentiveType.STREAK, streak.bonus, f"{consecutive_deliveries}-delivery streak bonus")
        )

    ramadan = calculate_ramadan_bonus(base_pay, hour, is_ramadan)
    if ramadan.is_active:
        incentives.append(
            IncentiveResult(IncentiveType.RAMADAN, ramadan.bonus, f"Ramadan iftar rush bonus ({ramadan.multiplier}x)")
        )

    if zone_incentive is not None:
        incentives.append(IncentiveResult(IncentiveType.ZONE, zone_incentive.bonus, zone_incentive.reason))

    total = sum(item.amount for item in incentives)
    multiplier = round((base_pay + total) / base_pay, 2) if base_pay > 0 else 1.0
    return DeliveryIncentives(incentives=incentives, total_bonus=total, effective_multiplier=multiplier)


def get_first_delivery_bonus() -> IncentiveResult:
    return IncentiveResult(IncentiveType.FIRST_DELIVERY, FIRST_DELIVERY_BONUS, "Welcome bonus for your first delivery")


def get_comeback_bonus(
    last_active: datetime,
    min_days_away: int = COMEBACK_MIN_DAYS,
    *,
    now: Optional[datetime] = None,
) -> Optional[IncentiveResult]:
    days_away = ((now or utc_now()) - last_active) / timedelta(days=1)
    if days_away < min_days_away:
        return None
    return IncentiveResult(
        IncentiveType.COMEBACK,
        COMEBACK_BONUS,
        f"Welcome back, bonus for returning after {int(days_away)} days",
    )


def get_referral_bonus() -> IncentiveResult:
    return IncentiveResult(IncentiveType.REFERRAL, REFERRAL_BONUS, "Referral bonus for bringing a new driver to the platform")


def create_campaign(
    id: str,
    name: str,
    type: IncentiveType,
    budget: int,
    start: datetime,
    end: datetime,
    target_zones: Sequence[str] = (),
) -> IncentiveCampaign:
    return IncentiveCampaign(
        id=id,
        name=name,
        type=IncentiveType(type),
        start=start,
        end=end,
        budget=budget,
        target_zones=tuple(target_zones),
    )


def is_campaign_active(campaign: IncentiveCampaign, *, now: Optional[datetime] = None) -> bool:
    now = now or utc_now()
    return campaign.is_active and campaign.start <= now <= campaign.end and campaign.spent < campaign.budget


def record_campaign_spend(campaign: IncentiveCampaign, amount: int) -> IncentiveCampaign:
    """Add spend; the campaign deactivates once spend reaches its budget."""

    spent = campaign.spent + amount
    still_active = spent < campaign.budget
    if campaign.is_active and not still_active:
        log_event(f"Campaign {campaign.id} reached its budget and was deactivated", component=COMPONENT, spent=spent)
    return replace(campaign, spent=spent, is_active=still_active)


def generate_driver_incentive_summary(
    driver_id: str,
    quests: Sequence[Quest],
    consecutive_deliveries: int,
    today_earnings: int,
    today_bonuses: int,
    total_claimed: int,
    hour: int,
    weather: WeatherCondition | str = WeatherCondition.CLEAR,
    is_ramadan: bool = False,
) -> DriverIncentiveSummary:
    available: list[IncentiveResult] = []

    peak = get_peak_hour_bonus(hour)
    if peak is not None:
        available.append(
            IncentiveResult(
                IncentiveType.PEAK_HOUR,
                peak.bonus,
                f"Peak hour active ({peak.start_hour}:00-{peak.end_hour}:00)",
            )
        )

    weather_bonus = get_weather_bonus(weather)
    if weather_bonus.active:
        available.append(
            IncentiveResult(IncentiveType.WEATHER, weather_bonus.bonus, f"{weather_bonus.condition.value} weather bonus")
        )

    if is_ramadan_iftar_active(hour, is_ramadan):
        available.append(IncentiveResult(IncentiveType.RAMADAN, RAMADAN_IFTAR.bonus, "Ramadan iftar rush bonus"))

    return DriverIncentiveSummary(
        driver_id=driver_id,
        active_quests=[q for q in quests if q.status in (QuestStatus.AVAILABLE, QuestStatus.IN_PROGRESS)],
        current_streak=consecutive_deliveries,
        today_earnings=today_earnings,
        today_bonuses=today_bonuses,
        available_incentives=available,
        total_incentives_claimed=total_claimed,
    )
