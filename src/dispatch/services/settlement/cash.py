"""Driver-held cash (COD) floats, trust limits and reconciliation.

Functions never mutate a ``CashFloat``; each returns an updated copy. Callers
serialize updates per driver.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Mapping, Optional, Sequence

from ...errors import ReconciliationAlert, ValidationError
from ...events import log_event
from ...models.domain import PaymentMethod, utc_now
from .engine import OrderSettlement

COMPONENT = "cash"


@dataclass(frozen=True, slots=True)
class TrustLevel:
    name: str
    limit: int
    min_deliveries: int
    min_reconciliation_rate: float


TRUST_LEVELS: Mapping[str, TrustLevel] = {
    "new": TrustLevel("new", 50_000, 0, 0.0),
    "basic": TrustLevel("basic", 100_000, 20, 93.0),
    "trusted": TrustLevel("trusted", 200_000, 100, 96.0),
    "veteran": TrustLevel("veteran", 500_000, 500, 98.0),
}


@dataclass(frozen=True, slots=True)
class TrustPolicy:
    levels: Mapping[str, TrustLevel] = field(default_factory=lambda: dict(TRUST_LEVELS))
    downgrade_reconciliation_rate: float = 90.0

    @property
    def entry_level(self) -> TrustLevel:
        return min(self.levels.values(), key=lambda item: item.limit)


@dataclass(frozen=True, slots=True)
class CashThresholds:
    max_float_without_remittance: int = 200_000
    remittance_deadline: timedelta = timedelta(hours=24)
    critical_utilization_percent: float = 90.0
    urgent_utilization_percent: float = 75.0
    max_discrepancy: int = 500
    min_reconciliation_rate: float = 95.0
    critical_deposit_deadline: timedelta = timedelta(hours=4)
    urgent_deposit_deadline: timedelta = timedelta(hours=12)

    def deposit_deadline(self, urgency: str) -> timedelta:
        if urgency == "critical":
            return self.critical_deposit_deadline
        if urgency == "urgent":
            return self.urgent_deposit_deadline
        return self.remittance_deadline


class CashTransactionType(str, Enum):
    COLLECTION = "collection"
    REMITTANCE = "remittance"
    ADJUSTMENT = "adjustment"


@dataclass(frozen=True, slots=True)
class CashFloat:
    driver_id: str
    current_balance: int
    trust_limit: int
    total_collected: int
    total_remitted: int
    pending_remittance: int
    last_reconciliation: datetime
    transaction_count: int = 0
    pending_since: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class CashTransaction:
    id: str
    driver_id: str
    type: CashTransactionType
    amount: int
    order_id: Optional[str]
    timestamp: datetime
    note: str


@dataclass(slots=True)
class CollectionResult:
    cash_float: CashFloat
    transaction: CashTransaction
    over_limit: bool


@dataclass(slots=True)
class RemittanceResult:
    cash_float: CashFloat
    transaction: CashTransaction


@dataclass(slots=True)
class ReconciliationResult:
    driver_id: str
    expected_balance: int
    actual_balance: int
    discrepancy: int
    is_clean: bool
    alerts: List[ReconciliationAlert]
    reconciliation_rate: float
    cash_float: CashFloat


@dataclass(slots=True)
class TrustLevelResult:
    driver_id: str
    current_limit: int
    new_limit: int
    level: str
    reason: str
    trust_score: int


@dataclass(slots=True)
class DepositRequest:
    driver_id: str
    amount: int
    method: str
    deadline: datetime
    urgency: str


@dataclass(slots=True)
class CashFlowSummary:
    total_collected: int
    total_remitted: int
    outstanding: int
    overdue_drivers: List[str]
    average_minutes_since_reconciliation: float


def _stamp(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def create_cash_float(
    driver_id: str,
    *,
    now: Optional[datetime] = None,
    config: Optional[TrustPolicy] = None,
) -> CashFloat:
    policy = config or TrustPolicy()
    return CashFloat(
        driver_id=driver_id,
        current_balance=0,
        trust_limit=policy.entry_level.limit,
        total_collected=0,
        total_remitted=0,
        pending_remittance=0,
        last_reconciliation=now or utc_now(),
    )


def record_collection(
    cash_float: CashFloat,
    amount: int,
    order_id: str,
    *,
    now: Optional[datetime] = None,
) -> CollectionResult:
    """Add a COD collection; ``over_limit`` flags a balance above the trust limit.

    The collection is recorded even when over the limit; blocking further
    assignments is the dispatcher's decision.
    """

    if amount < 0:
        raise ValidationError(f"Collection amount must be non-negative, got {amount}")
    now = now or utc_now()
    balance = cash_float.current_balance + amount
    over_limit = balance > cash_float.trust_limit
    if over_limit:
        log_event(
            f"Driver {cash_float.driver_id} cash balance {balance} exceeds trust limit {cash_float.trust_limit}",
            component=COMPONENT,
            level=logging.WARNING,
            order_id=order_id,
        )

    updated = replace(
        cash_float,
        current_balance=balance,
        total_collected=cash_float.total_collected + amount,
        pending_remittance=cash_float.pending_remittance + amount,
        transaction_count=cash_float.transaction_count + 1,
        pending_since=cash_float.pending_since or (now if amount > 0 else None),
    )
    transaction = CashTransaction(
        id=f"col-{order_id}-{_stamp(now)}",
        driver_id=cash_float.driver_id,
        type=CashTransactionType.COLLECTION,
        amount=amount,
        order_id=order_id,
        timestamp=now,
        note=f"COD collection for order {order_id}",
    )
    return CollectionResult(cash_float=updated, transaction=transaction, over_limit=over_limit)


def record_remittance(
    cash_float: CashFloat,
    amount: int,
    *,
    now: Optional[datetime] = None,
) -> RemittanceResult:
    """Subtract a remittance; balance and pending amount clamp at zero.

    The remittance stamps ``last_reconciliation``. ``pending_since`` clears
    once nothing is left pending.
    """

    if amount < 0:
        raise ValidationError(f"Remittance amount must be non-negative, got {amount}")
    now = now or utc_now()
    pending = max(0, cash_float.pending_remittance - amount)
    updated = replace(
        cash_float,
        current_balance=max(0, cash_float.current_balance - amount),
        total_remitted=cash_float.total_remitted + amount,
        pending_remittance=pending,
        last_reconciliation=now,
        pending_since=cash_float.pending_since if pending else None,
    )
    transaction = CashTransaction(
        id=f"rem-{cash_float.driver_id}-{_stamp(now)}",
        driver_id=cash_float.driver_id,
        type=CashTransactionType.REMITTANCE,
        amount=-amount,
        order_id=None,
        timestamp=now,
        note=f"Cash remittance of {amount} centimes",
    )
    log_event(f"Driver {cash_float.driver_id} remitted {amount} centimes", component=COMPONENT)
    return RemittanceResult(cash_float=updated, transaction=transaction)


def reconcile_cash_float(
    cash_float: CashFloat,
    reported_balance: int,
    *,
    now: Optional[datetime] = None,
    config: Optional[CashThresholds] = None,
) -> ReconciliationResult:
    """Compare the reported balance with collected minus remitted.

    Findings come back as alerts for ops review; balances are never corrected
    here. The returned float only has ``last_reconciliation`` moved to ``now``.
    """

    thresholds = config or CashThresholds()
    driver_id = cash_float.driver_id
    expected = cash_float.total_collected - cash_float.total_remitted
    discrepancy = reported_balance - expected
    alerts: list[ReconciliationAlert] = []

    if abs(discrepancy) > thresholds.max_discrepancy:
        alerts.append(
            ReconciliationAlert(
                driver_id=driver_id,
                kind="discrepancy",
                message=f"Cash discrepancy: {discrepancy:+} centimes",
                amount=discrepancy,
            )
        )

    rate = min(100.0, (1 - abs(discrepancy) / expected) * 100) if expected > 0 else 100.0
    if rate < thresholds.min_reconciliation_rate:
        alerts.append(
            ReconciliationAlert(
                driver_id=driver_id,
                kind="low_reconciliation_rate",
                message=f"Reconciliation rate {rate:.1f}% below {thresholds.min_reconciliation_rate:g}%",
                amount=rate,
            )
        )

    if cash_float.pending_remittance > thresholds.max_float_without_remittance:
        alerts.append(
            ReconciliationAlert(
                driver_id=driver_id,
                kind="pending_over_limit",
                message=(
                    f"Pending remittance {cash_float.pending_remittance} "
                    f"exceeds max {thresholds.max_float_without_remittance}"
                ),
                amount=cash_float.pending_remittance,
            )
        )

    for alert in alerts:
        log_event(alert.message, component=COMPONENT, level=logging.WARNING, driver_id=driver_id, kind=alert.kind)

    return ReconciliationResult(
        driver_id=driver_id,
        expected_balance=expected,
        actual_balance=reported_balance,
        discrepancy=discrepancy,
        is_clean=not alerts,
        alerts=alerts,
        reconciliation_rate=round(rate, 2),
        cash_float=replace(cash_float, last_reconciliation=now or utc_now()),
    )


def calculate_trust_level(
    driver_id: str,
    total_deliveries: int,
    reconciliation_rate: float,
    current_limit: int,
    *,
    config: Optional[TrustPolicy] = None,
) -> TrustLevelResult:
    """Pick the highest level the volume and reconciliation history support.

    A driver holding a raised limit whose reconciliation rate falls below the
    downgrade rate (90% by default) is dropped back to the entry level
    whatever the volume.
    """

    policy = config or TrustPolicy()
    entry = policy.entry_level
    target = entry
    reason = "New driver, default trust level"
    for level in sorted(policy.levels.values(), key=lambda item: item.limit, reverse=True):
        if level is entry:
            continue
        if total_deliveries >= level.min_deliveries and reconciliation_rate >= level.min_reconciliation_rate:
            target = level
            reason = (
                f"{level.name.capitalize()} driver: {total_deliveries} deliveries, "
                f"{reconciliation_rate:g}% reconciliation"
            )
            break

    if reconciliation_rate < policy.downgrade_reconciliation_rate and current_limit > entry.limit:
        target = entry
        reason = f"Trust downgraded due to low reconciliation rate ({reconciliation_rate:g}%)"

    score = min(100, round(total_deliveries / 500 * 50 + reconciliation_rate / 100 * 50))
    if target.limit != current_limit:
        log_event(
            f"Driver {driver_id} trust limit {current_limit} -> {target.limit}",
            component=COMPONENT,
            level_name=target.name,
        )
    return TrustLevelResult(
        driver_id=driver_id,
        current_limit=current_limit,
        new_limit=target.limit,
        level=target.name,
        reason=reason,
        trust_score=score,
    )


def generate_deposit_request(
    cash_float: CashFloat,
    *,
    now: Optional[datetime] = None,
    config: Optional[CashThresholds] = None,
) -> Optional[DepositRequest]:
    if cash_float.pending_remittance <= 0:
        return None
    thresholds = config or CashThresholds()
    now = now or utc_now()
    utilization = cash_float.current_balance / cash_float.trust_limit * 100 if cash_float.trust_limit else 100.0
    if utilization >= thresholds.critical_utilization_percent:
        urgency = "critical"
    elif utilization >= thresholds.urgent_utilization_percent:
        urgency = "urgent"
    else:
        urgency = "normal"
    return DepositRequest(
        driver_id=cash_float.driver_id,
        amount=cash_float.pending_remittance,
        method="agent_collection" if urgency == "critical" else "bank_deposit",
        deadline=now + thresholds.deposit_deadline(urgency),
        urgency=urgency,
    )


def generate_cash_flow_summary(
    floats: Sequence[CashFloat],
    overdue_after: Optional[timedelta] = None,
    *,
    now: Optional[datetime] = None,
    config: Optional[CashThresholds] = None,
) -> CashFlowSummary:
    """Drivers are overdue once cash has been pending longer than ``overdue_after``."""

    if overdue_after is None:
        overdue_after = (config or CashThresholds()).remittance_deadline
    now = now or utc_now()
    overdue = [
        f.driver_id
        for f in floats
        if f.pending_remittance > 0 and now - (f.pending_since or f.last_reconciliation) > overdue_after
    ]
    remitting = [f for f in floats if f.total_remitted > 0]
    average_minutes = (
        sum((now - f.last_reconciliation).total_seconds() / 60 for f in remitting) / len(remitting)
        if remitting
        else 0.0
    )
    return CashFlowSummary(
        total_collected=sum(f.total_collected for f in floats),
        total_remitted=sum(f.total_remitted for f in floats),
        outstanding=sum(f.pending_remittance for f in floats),
        overdue_drivers=overdue,
        average_minutes_since_reconciliation=round(average_minutes, 1),
    )


def apply_settlement_to_float(
    cash_float: CashFloat,
    settlement: OrderSettlement,
    *,
    now: Optional[datetime] = None,
) -> Optional[CollectionResult]:
    """Record the cash a driver collected for a COD order; other methods return ``None``."""

    if settlement.payment_method is not PaymentMethod.COD:
        return None
    collected = settlement.order_amount + settlement.delivery_fee + settlement.tip_amount
    return record_collection(cash_float, collected, settlement.order_id, now=now)
