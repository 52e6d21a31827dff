"""Pricing endpoints."""

from __future__ import annotations

import math

from fastapi import APIRouter, status

from ...schemas.pricing import DeliveryFeeRequest, DeliveryFeeResponse, SurgeRequest, SurgeResponse
from ...services.pricing.surge import (
    calculate_delivery_fee,
    calculate_demand_supply_ratio,
    calculate_surge_multiplier,
)

router = APIRouter(prefix="/pricing", tags=["pricing"])


@router.post("/fee", response_model=DeliveryFeeResponse, status_code=status.HTTP_200_OK)
def delivery_fee(payload: DeliveryFeeRequest) -> DeliveryFeeResponse:
    fee = calculate_delivery_fee(payload.distance_km, payload.surge_multiplier, payload.is_peak)
    return DeliveryFeeResponse.model_validate(fee, from_attributes=True)


@router.post("/surge", response_model=SurgeResponse, status_code=status.HTTP_200_OK)
def surge(payload: SurgeRequest) -> SurgeResponse:
    ratio = calculate_demand_supply_ratio(payload.active_orders, payload.available_drivers)
    result = calculate_surge_multiplier(ratio)
    return SurgeResponse(
        ratio=None if math.isinf(ratio) else round(ratio, 2),
        multiplier=result.multiplier,
        reason=result.reason,
        demand_level=result.demand_level,
    )
