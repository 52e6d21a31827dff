"""Local calendar classification used by demand and incentive pricing.

Ramadan detection is an approximation: it treats all of March and April as
Ramadan instead of converting to the Hijri calendar. Callers that need exact
dates should pass their own period rather than rely on ``classify_time_period``.
"""

from __future__ import annotations

from datetime import date, datetime, time
from enum import Enum
from typing import Mapping, NamedTuple, Sequence


class TimePeriod(str, Enum):
    MORNING_RUSH = "morning_rush"
    MIDDAY = "midday"
    AFTERNOON = "afternoon"
    EVENING_RUSH = "evening_rush"
    NIGHT = "night"
    FRIDAY_PRAYER = "friday_prayer"
    RAMADAN_IFTAR = "ramadan_iftar"


class Holiday(NamedTuple):
    month: int
    day: int
    name: str


MOROCCO_HOLIDAYS: Sequence[Holiday] = (
    Holiday(1, 1, "New Year"),
    Holiday(5, 1, "Labour Day"),
    Holiday(7, 30, "Throne Day"),
    Holiday(8, 21, "Youth Day"),
    Holiday(11, 6, "Green March"),
    Holiday(11, 18, "Independence Day"),
)

# Approximate Ramadan months; see module docstring.
RAMADAN_MONTHS = frozenset({3, 4})
FRIDAY = 4

IFTAR_WINDOW = (time(18, 0), time(20, 0))
FRIDAY_PRAYER_WINDOW = (time(12, 0), time(14, 0))

# Half-open [start, end) windows checked in order; anything else is night.
DAILY_PERIODS: Sequence[tuple[time, time, TimePeriod]] = (
    (time(7, 0), time(10, 0), TimePeriod.MORNING_RUSH),
    (time(11, 0), time(14, 0), TimePeriod.MIDDAY),
    (time(14, 0), time(17, 0), TimePeriod.AFTERNOON),
    (time(18, 0), time(22, 0), TimePeriod.EVENING_RUSH),
)

TIME_PERIOD_MULTIPLIERS: Mapping[TimePeriod, float] = {
    TimePeriod.MORNING_RUSH: 0.8,
    TimePeriod.MIDDAY: 1.2,
    TimePeriod.AFTERNOON: 0.6,
    TimePeriod.EVENING_RUSH: 1.5,
    TimePeriod.NIGHT: 0.4,
    TimePeriod.FRIDAY_PRAYER: 0.3,
    TimePeriod.RAMADAN_IFTAR: 2.5,
}


def _within(moment: datetime, window: tuple[time, time]) -> bool:
    start, end = window
    return start <= moment.time() < end


def is_ramadan(moment: date) -> bool:
    return moment.month in RAMADAN_MONTHS


def is_friday_prayer(moment: datetime) -> bool:
    return moment.weekday() == FRIDAY and _within(moment, FRIDAY_PRAYER_WINDOW)


def is_moroccan_holiday(moment: date) -> bool:
    return any(h.month == moment.month and h.day == moment.day for h in MOROCCO_HOLIDAYS)


def classify_time_period(moment: datetime) -> TimePeriod:
    """Classify a local wall-clock time.

    Iftar wins over Friday prayer, which wins over the daily windows.
    """

    if is_ramadan(moment) and _within(moment, IFTAR_WINDOW):
        return TimePeriod.RAMADAN_IFTAR
    if is_friday_prayer(moment):
        return TimePeriod.FRIDAY_PRAYER
    for start, end, period in DAILY_PERIODS:
        if _within(moment, (start, end)):
            return period
    return TimePeriod.NIGHT


def get_time_period_multiplier(period: TimePeriod) -> float:
    return TIME_PERIOD_MULTIPLIERS[TimePeriod(period)]
