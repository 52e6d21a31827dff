"""Settlement request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.domain import PaymentMethod
from ..services.settlement.engine import EntityType, LedgerEntryType


class SettleOrderRequest(BaseModel):
    order_id: str = Field(..., min_length=1)
    order_amount: int = Field(..., ge=0, description="Order subtotal in centimes.")
    delivery_fee: int = Field(..., ge=0)
    tip: int = Field(default=0, ge=0)
    distance_km: float = Field(..., ge=0.0)
    is_peak: bool = False
    is_raining: bool = False
    payment_method: PaymentMethod = PaymentMethod.COD
    monthly_orders: int = Field(default=0, ge=0)
    driver_id: Optional[str] = None
    restaurant_id: Optional[str] = None


class OrderSettlementModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_id: str
    order_amount: int
    delivery_fee: int
    tip_amount: int
    commission_amount: int
    platform_fee: int
    driver_pay: int
    restaurant_payout: int
    payment_method: PaymentMethod


class LedgerEntryModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: LedgerEntryType
    amount: int
    currency: str
    entity_id: str
    entity_type: EntityType
    description: str
    timestamp: datetime
    reference_id: str


class SettleOrderResponse(BaseModel):
    settlement: OrderSettlementModel
    ledger_entries: List[LedgerEntryModel]
    ledger_total: int
