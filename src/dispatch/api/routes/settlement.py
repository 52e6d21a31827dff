"""Settlement endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from ...errors import ValidationError
from ...schemas.settlement import LedgerEntryModel, OrderSettlementModel, SettleOrderRequest, SettleOrderResponse
from ...services.settlement.engine import generate_ledger_entries, settle_order

router = APIRouter(prefix="/settlement", tags=["settlement"])


@router.post("/settle", response_model=SettleOrderResponse, status_code=status.HTTP_200_OK)
def settle(payload: SettleOrderRequest) -> SettleOrderResponse:
    """Compute the money split for a delivered order and its ledger entries."""
    try:
        settlement = settle_order(
            payload.order_id,
            payload.order_amount,
            payload.delivery_fee,
            tip=payload.tip,
            distance_km=payload.distance_km,
            is_peak=payload.is_peak,
            is_raining=payload.is_raining,
            payment_method=payload.payment_method,
            monthly_orders=payload.monthly_orders,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    entries = generate_ledger_entries(
        settlement, driver_id=payload.driver_id, restaurant_id=payload.restaurant_id
    )
    return SettleOrderResponse(
        settlement=OrderSettlementModel.model_validate(settlement, from_attributes=True),
        ledger_entries=[LedgerEntryModel.model_validate(entry, from_attributes=True) for entry in entries],
        ledger_total=sum(entry.amount for entry in entries),
    )
