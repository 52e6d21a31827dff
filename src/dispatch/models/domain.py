"""Core value types shared across the dispatch services."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def round_half_up(value: float) -> int:
    """Nearest whole centime; halves always round up."""
    return math.floor(value + 0.5)


@dataclass(frozen=True, slots=True)
class Coordinates:
    """WGS84 position in signed decimal degrees."""

    lat: float
    lng: float

    def as_tuple(self) -> tuple[float, float]:
        return (self.lat, self.lng)


class PaymentMethod(str, Enum):
    COD = "cod"
    CARD = "card"
    MOBILE_WALLET = "mobile_wallet"
    BANK_TRANSFER = "bank_transfer"


class VehicleType(str, Enum):
    MOTORCYCLE = "motorcycle"
    CAR = "car"
