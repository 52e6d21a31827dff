"""Pricing request/response schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..services.pricing.surge import DemandLevel


class DeliveryFeeRequest(BaseModel):
    distance_km: float = Field(..., ge=0.0)
    surge_multiplier: float = Field(default=1.0, ge=1.0)
    is_peak: bool = False


class DeliveryFeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    base_fee: int
    distance_fee: int
    surge_fee: int
    total_fee: int
    currency: str


class SurgeRequest(BaseModel):
    active_orders: int = Field(..., ge=0)
    available_drivers: int = Field(..., ge=0)


class SurgeResponse(BaseModel):
    ratio: Optional[float] = Field(
        default=None,
        description="Orders per available driver; null when orders are waiting and no driver is available.",
    )
    multiplier: float
    reason: str
    demand_level: DemandLevel
