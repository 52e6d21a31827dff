from datetime import datetime, timedelta, timezone

import pytest

from src.dispatch.errors import ValidationError
from src.dispatch.models.domain import PaymentMethod
from src.dispatch.services.settlement.cash import (
    TRUST_LEVELS,
    CashThresholds,
    TrustLevel,
    TrustPolicy,
    apply_settlement_to_float,
    calculate_trust_level,
    create_cash_float,
    generate_cash_flow_summary,
    generate_deposit_request,
    reconcile_cash_float,
    record_collection,
    record_remittance,
)
from src.dispatch.services.settlement.engine import settle_order

T0 = datetime(2024, 6, 3, 8, 0, tzinfo=timezone.utc)


def _float_with(collected: int, driver_id: str = "drv-1"):
    cash_float = create_cash_float(driver_id, now=T0)
    if collected:
        cash_float = record_collection(cash_float, collected, "O1", now=T0).cash_float
    return cash_float


def test_new_float_starts_empty():
    cash_float = create_cash_float("drv-1", now=T0)
    assert cash_float.current_balance == 0
    assert cash_float.trust_limit == TRUST_LEVELS["new"].limit
    assert cash_float.last_reconciliation == T0


def test_collection_updates_balances_without_mutating():
    original = create_cash_float("drv-1", now=T0)
    result = record_collection(original, 12000, "O1", now=T0)
    assert original.current_balance == 0
    assert result.cash_float.current_balance == 12000
    assert result.cash_float.pending_remittance == 12000
    assert result.cash_float.transaction_count == 1
    assert result.transaction.id.startswith("col-O1-")
    assert not result.over_limit


def test_collection_over_limit_is_flagged_not_blocked():
    result = record_collection(_float_with(45_000), 10_000, "O2", now=T0)
    assert result.over_limit
    assert result.cash_float.current_balance == 55_000


def test_negative_amounts_rejected():
    with pytest.raises(ValidationError):
        record_collection(_float_with(0), -1, "O1")
    with pytest.raises(ValidationError):
        record_remittance(_float_with(0), -1)


def test_remittance_clamps_at_zero():
    result = record_remittance(_float_with(10_000), 15_000, now=T0)
    assert result.cash_float.current_balance == 0
    assert result.cash_float.pending_remittance == 0
    assert result.cash_float.total_remitted == 15_000
    assert result.transaction.amount == -15_000


def test_clean_reconciliation():
    result = reconcile_cash_float(_float_with(10_000), 10_000)
    assert result.is_clean
    assert result.discrepancy == 0
    assert result.reconciliation_rate == 100.0


def test_reconciliation_alerts():
    result = reconcile_cash_float(_float_with(10_000), 8_000)
    assert not result.is_clean
    assert result.discrepancy == -2_000
    assert [alert.kind for alert in result.alerts] == ["discrepancy", "low_reconciliation_rate"]
    assert "-2000" in str(result.alerts[0])
    assert result.reconciliation_rate == 80.0

    loaded = reconcile_cash_float(_float_with(250_000), 250_000)
    assert [alert.kind for alert in loaded.alerts] == ["pending_over_limit"]


def test_trust_levels():
    assert calculate_trust_level("d", 0, 100, 50_000).level == "new"
    assert calculate_trust_level("d", 150, 97, 50_000).new_limit == TRUST_LEVELS["trusted"].limit
    assert calculate_trust_level("d", 600, 99, 50_000).level == "veteran"
    downgraded = calculate_trust_level("d", 600, 85, 500_000)
    assert downgraded.level == "new"
    assert "downgraded" in downgraded.reason
    assert calculate_trust_level("d", 1000, 100, 0).trust_score == 100


def test_reconciliation_with_relaxed_thresholds():
    relaxed = CashThresholds(max_discrepancy=3_000, min_reconciliation_rate=75.0)
    result = reconcile_cash_float(_float_with(10_000), 8_000, config=relaxed)
    assert result.is_clean
    assert result.reconciliation_rate == 80.0


def test_trust_policy_injection():
    policy = TrustPolicy(
        levels={
            "starter": TrustLevel("starter", 20_000, 0, 0.0),
            "pro": TrustLevel("pro", 80_000, 10, 90.0),
        }
    )
    assert create_cash_float("drv-1", now=T0, config=policy).trust_limit == 20_000
    assert calculate_trust_level("d", 15, 95, 20_000, config=policy).level == "pro"
    assert calculate_trust_level("d", 15, 85, 80_000, config=policy).level == "starter"


def test_deposit_request_urgency():
    assert generate_deposit_request(_float_with(0)) is None

    normal = generate_deposit_request(_float_with(10_000), now=T0)
    assert normal.urgency == "normal"
    assert normal.deadline == T0 + timedelta(hours=24)

    critical = generate_deposit_request(_float_with(48_000), now=T0)
    assert critical.urgency == "critical"
    assert critical.method == "agent_collection"
    assert critical.deadline == T0 + timedelta(hours=4)

    assert generate_deposit_request(_float_with(40_000), now=T0).urgency == "urgent"


def test_cash_flow_summary():
    stale = _float_with(10_000, "stale")
    remitted = record_remittance(_float_with(20_000, "paid"), 5_000, now=T0).cash_float
    summary = generate_cash_flow_summary([stale, remitted], now=T0 + timedelta(hours=30))
    assert summary.total_collected == 30_000
    assert summary.total_remitted == 5_000
    assert summary.outstanding == 25_000
    assert summary.overdue_drivers == ["stale", "paid"]
    assert summary.average_minutes_since_reconciliation == 1800.0


def test_overdue_measured_from_first_pending_collection():
    fresh = create_cash_float("drv", now=T0)
    fresh = record_collection(fresh, 10_000, "O1", now=T0 + timedelta(hours=30)).cash_float
    summary = generate_cash_flow_summary([fresh], now=T0 + timedelta(hours=30, minutes=1))
    assert summary.overdue_drivers == []

    later = generate_cash_flow_summary([fresh], now=T0 + timedelta(hours=55))
    assert later.overdue_drivers == ["drv"]


def test_remittance_and_reconciliation_advance_last_reconciliation():
    cash_float = _float_with(10_000)
    remitted = record_remittance(cash_float, 10_000, now=T0 + timedelta(hours=5)).cash_float
    assert remitted.last_reconciliation == T0 + timedelta(hours=5)
    assert remitted.pending_since is None

    partial = record_remittance(cash_float, 4_000, now=T0 + timedelta(hours=5)).cash_float
    assert partial.pending_since == T0

    result = reconcile_cash_float(cash_float, 10_000, now=T0 + timedelta(hours=6))
    assert result.cash_float.last_reconciliation == T0 + timedelta(hours=6)
    assert result.cash_float.current_balance == cash_float.current_balance


@pytest.mark.parametrize(
    "operations",
    [
        [("collect", 5_000), ("collect", 7_000), ("remit", 4_000)],
        [("collect", 12_000), ("remit", 12_000), ("collect", 3_000)],
        [("remit", 0), ("collect", 1), ("collect", 99_999), ("remit", 50_000), ("collect", 250)],
    ],
)
def test_balance_equals_collected_minus_remitted(operations):
    cash_float = create_cash_float("drv", now=T0)
    for step, (kind, amount) in enumerate(operations):
        moment = T0 + timedelta(minutes=step)
        if kind == "collect":
            cash_float = record_collection(cash_float, amount, f"O{step}", now=moment).cash_float
        else:
            cash_float = record_remittance(cash_float, amount, now=moment).cash_float
    assert cash_float.current_balance == cash_float.total_collected - cash_float.total_remitted
    assert cash_float.pending_remittance == cash_float.current_balance
    assert reconcile_cash_float(cash_float, cash_float.current_balance).discrepancy == 0


def test_apply_settlement_only_for_cod():
    cod = settle_order("O1", 10000, 2500, tip=500, distance_km=5)
    result = apply_settlement_to_float(_float_with(0), cod, now=T0)
    assert result.cash_float.current_balance == 13000

    card = settle_order("O2", 10000, 2500, distance_km=5, payment_method=PaymentMethod.CARD)
    assert apply_settlement_to_float(_float_with(0), card, now=T0) is None
