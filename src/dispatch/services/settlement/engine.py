"""Order settlement: commission tiers, driver pay, ledger entries and payouts.

Amounts are integer centimes. Ledger entries are signed shares of the
customer's payment credited to one party each, so the entries of one order
always sum to order amount plus delivery fee, plus the tip when one was paid.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from ...config import settings
from ...errors import ValidationError
from ...events import log_event
from ...models.domain import PaymentMethod, round_half_up, utc_now

COMPONENT = "settlement"
PLATFORM_ENTITY_ID = "platform"


class LedgerEntryType(str, Enum):
    ORDER_PAYMENT = "order_payment"
    COMMISSION = "commission"
    DRIVER_PAYOUT = "driver_payout"
    PLATFORM_FEE = "platform_fee"
    REFUND = "refund"
    ADJUSTMENT = "adjustment"
    TIP = "tip"
    BONUS = "bonus"
    PENALTY = "penalty"


class EntityType(str, Enum):
    DRIVER = "driver"
    RESTAURANT = "restaurant"
    PLATFORM = "platform"


class PayoutStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class CommissionTier:
    name: str
    rate: float
    min_monthly_orders: int


@dataclass(frozen=True, slots=True)
class DriverPayConfig:
    base_pay: int = 1000
    per_km_rate: int = 300
    peak_multiplier: float = 1.5
    weather_bonus: int = 500
    max_distance_bonus: int = 5000
    min_guaranteed_pay: int = 800


DEFAULT_COMMISSION_TIERS: tuple[CommissionTier, ...] = (
    CommissionTier("standard", 0.18, 0),
    CommissionTier("premium", 0.15, 100),
    CommissionTier("enterprise", 0.12, 500),
)


@dataclass(frozen=True, slots=True)
class SettlementConfig:
    commission_tiers: tuple[CommissionTier, ...] = DEFAULT_COMMISSION_TIERS
    driver_pay: DriverPayConfig = field(default_factory=DriverPayConfig)
    platform_fee: int = field(default_factory=lambda: settings.platform_fee)
    vat_rate: float = field(default_factory=lambda: settings.vat_rate)
    currency: str = field(default_factory=lambda: settings.currency)


@dataclass(slots=True)
class Commission:
    amount: int
    rate: float
    tier_name: str


@dataclass(slots=True)
class DriverPay:
    base_pay: int
    distance_bonus: int
    peak_bonus: int
    weather_bonus: int
    tip_amount: int
    total_pay: int
    deductions: int
    net_pay: int


@dataclass(frozen=True, slots=True)
class OrderSettlement:
    order_id: str
    order_amount: int
    delivery_fee: int
    tip_amount: int
    commission_amount: int
    platform_fee: int
    driver_pay: int
    restaurant_payout: int
    payment_method: PaymentMethod


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    id: str
    type: LedgerEntryType
    amount: int
    currency: str
    entity_id: str
    entity_type: EntityType
    description: str
    timestamp: datetime
    reference_id: str


@dataclass(slots=True)
class VatBreakdown:
    before_vat: int
    vat_amount: int
    after_vat: int


@dataclass(slots=True)
class SettlementSummary:
    total_orders: int
    total_revenue: int
    total_commissions: int
    total_driver_payouts: int
    total_platform_fees: int
    total_restaurant_payouts: int
    average_order_value: int
    cod_percentage: int


@dataclass(frozen=True, slots=True)
class PayoutSchedule:
    driver_id: str
    amount: int
    method: PaymentMethod
    scheduled_date: str
    status: PayoutStatus = PayoutStatus.PENDING


@dataclass(frozen=True, slots=True)
class PayoutRequest:
    driver_id: str
    amount: int
    method: PaymentMethod


def get_commission_tier(monthly_orders: int, config: Optional[SettlementConfig] = None) -> CommissionTier:
    """Highest tier whose threshold the monthly volume reaches."""

    config = config or SettlementConfig()
    tiers = sorted(config.commission_tiers, key=lambda tier: tier.min_monthly_orders)
    selected = tiers[0]
    for tier in tiers:
        if monthly_orders >= tier.min_monthly_orders:
            selected = tier
    return selected


def calculate_commission(
    order_amount: int,
    monthly_orders: int,
    config: Optional[SettlementConfig] = None,
) -> Commission:
    tier = get_commission_tier(monthly_orders, config)
    return Commission(amount=round_half_up(order_amount * tier.rate), rate=tier.rate, tier_name=tier.name)


def calculate_driver_pay(
    distance_km: float,
    is_peak: bool = False,
    is_raining: bool = False,
    tip: int = 0,
    penalty: int = 0,
    config: Optional[DriverPayConfig] = None,
) -> DriverPay:
    """Base plus capped distance, peak and weather bonuses plus tip, less penalties.

    Net pay never drops below the guaranteed minimum.
    """

    config = config or DriverPayConfig()
    distance_bonus = min(config.max_distance_bonus, round_half_up(distance_km * config.per_km_rate))
    peak_bonus = round_half_up(config.base_pay * (config.peak_multiplier - 1)) if is_peak else 0
    weather_bonus = config.weather_bonus if is_raining else 0
    gross = config.base_pay + distance_bonus + peak_bonus + weather_bonus + tip
    return DriverPay(
        base_pay=config.base_pay,
        distance_bonus=distance_bonus,
        peak_bonus=peak_bonus,
        weather_bonus=weather_bonus,
        tip_amount=tip,
        total_pay=gross,
        deductions=penalty,
        net_pay=max(config.min_guaranteed_pay, gross - penalty),
    )


def settle_order(
    order_id: str,
    order_amount: int,
    delivery_fee: int,
    *,
    tip: int = 0,
    distance_km: float,
    is_peak: bool = False,
    is_raining: bool = False,
    payment_method: PaymentMethod = PaymentMethod.COD,
    monthly_orders: int = 0,
    config: Optional[SettlementConfig] = None,
) -> OrderSettlement:
    config = config or SettlementConfig()
    for name, value in (("order_amount", order_amount), ("delivery_fee", delivery_fee), ("tip", tip)):
        if value < 0:
            raise ValidationError(f"{name} must be non-negative, got {value}")
    if distance_km < 0:
        raise ValidationError(f"distance_km must be non-negative, got {distance_km}")

    commission = calculate_commission(order_amount, monthly_orders, config)
    pay = calculate_driver_pay(distance_km, is_peak, is_raining, tip, config=config.driver_pay)
    restaurant_payout = max(0, order_amount - commission.amount - config.platform_fee)

    settlement = OrderSettlement(
        order_id=order_id,
        order_amount=order_amount,
        delivery_fee=delivery_fee,
        tip_amount=tip,
        commission_amount=commission.amount,
        platform_fee=config.platform_fee,
        driver_pay=pay.net_pay,
        restaurant_payout=restaurant_payout,
        payment_method=PaymentMethod(payment_method),
    )
    log_event(
        f"Settled order {order_id}: restaurant {restaurant_payout}, driver {pay.net_pay}",
        component=COMPONENT,
        commission=commission.amount,
        tier=commission.tier_name,
        method=settlement.payment_method.value,
    )
    return settlement


def generate_ledger_entries(
    settlement: OrderSettlement,
    timestamp: Optional[datetime] = None,
    currency: Optional[str] = None,
    *,
    driver_id: Optional[str] = None,
    restaurant_id: Optional[str] = None,
) -> List[LedgerEntry]:
    """One signed entry per party share of the customer's payment.

    The platform's delivery margin absorbs whatever the other entries leave
    over: the delivery fee less the driver payout, less any amount the
    restaurant payout floor could not cover. It is negative when the platform
    subsidizes the trip.

    ``entity_id`` names the restaurant, the driver or the platform; the order id
    stands in for a party whose id is not given.
    """

    timestamp = timestamp or utc_now()
    currency = currency or settings.currency
    order_id = settlement.order_id
    prefix = f"order-{order_id}"
    driver_payout = settlement.driver_pay - settlement.tip_amount
    allocated = (
        settlement.restaurant_payout + settlement.commission_amount + settlement.platform_fee + driver_payout
    )
    margin = settlement.order_amount + settlement.delivery_fee - allocated
    entity_ids = {
        EntityType.RESTAURANT: restaurant_id or order_id,
        EntityType.DRIVER: driver_id or order_id,
        EntityType.PLATFORM: PLATFORM_ENTITY_ID,
    }

    def entry(suffix: str, kind: LedgerEntryType, amount: int, entity: EntityType, description: str) -> LedgerEntry:
        return LedgerEntry(
            id=f"{prefix}-{suffix}",
            type=kind,
            amount=amount,
            currency=currency,
            entity_id=entity_ids[entity],
            entity_type=entity,
            description=description,
            timestamp=timestamp,
            reference_id=order_id,
        )

    entries = [
        entry(
            "restaurant",
            LedgerEntryType.ORDER_PAYMENT,
            settlement.restaurant_payout,
            EntityType.RESTAURANT,
            f"Restaurant payout for order {order_id}",
        ),
        entry(
            "commission",
            LedgerEntryType.COMMISSION,
            settlement.commission_amount,
            EntityType.PLATFORM,
            f"Commission on order {order_id}",
        ),
        entry(
            "platform",
            LedgerEntryType.PLATFORM_FEE,
            settlement.platform_fee,
            EntityType.PLATFORM,
            f"Platform fee for order {order_id}",
        ),
        entry(
            "driver",
            LedgerEntryType.DRIVER_PAYOUT,
            driver_payout,
            EntityType.DRIVER,
            f"Driver payout for order {order_id}",
        ),
        entry(
            "delivery-margin",
            LedgerEntryType.ADJUSTMENT,
            margin,
            EntityType.PLATFORM,
            f"Platform delivery margin for order {order_id}",
        ),
    ]
    if settlement.tip_amount > 0:
        entries.append(
            entry(
                "tip",
                LedgerEntryType.TIP,
                settlement.tip_amount,
                EntityType.DRIVER,
                f"Tip for driver on order {order_id}",
            )
        )
    return entries


def calculate_vat(amount: int, rate: Optional[float] = None) -> VatBreakdown:
    vat_rate = settings.vat_rate if rate is None else rate
    vat = round_half_up(amount * vat_rate)
    return VatBreakdown(before_vat=amount, vat_amount=vat, after_vat=amount + vat)


def generate_settlement_summary(settlements: Sequence[OrderSettlement]) -> SettlementSummary:
    if not settlements:
        return SettlementSummary(0, 0, 0, 0, 0, 0, 0, 0)

    count = len(settlements)
    revenue = sum(s.order_amount + s.delivery_fee for s in settlements)
    cod = sum(1 for s in settlements if s.payment_method is PaymentMethod.COD)
    return SettlementSummary(
        total_orders=count,
        total_revenue=revenue,
        total_commissions=sum(s.commission_amount for s in settlements),
        total_driver_payouts=sum(s.driver_pay for s in settlements),
        total_platform_fees=sum(s.platform_fee for s in settlements),
        total_restaurant_payouts=sum(s.restaurant_payout for s in settlements),
        average_order_value=round_half_up(revenue / count),
        cod_percentage=round_half_up(cod / count * 100),
    )


def create_payout_schedule(
    driver_id: str,
    amount: int,
    method: PaymentMethod,
    scheduled_date: str,
) -> PayoutSchedule:
    return PayoutSchedule(driver_id=driver_id, amount=amount, method=PaymentMethod(method), scheduled_date=scheduled_date)


def batch_create_payouts(requests: Iterable[PayoutRequest], scheduled_date: str) -> List[PayoutSchedule]:
    """Schedule every request with a positive amount; the rest are skipped."""

    payouts = [
        create_payout_schedule(request.driver_id, request.amount, request.method, scheduled_date)
        for request in requests
        if request.amount > 0
    ]
    log_event(f"Scheduled {len(payouts)} driver payouts for {scheduled_date}", component=COMPONENT)
    return payouts
