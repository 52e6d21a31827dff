"""Delivery tracking endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from ...errors import StateError, ValidationError
from ...schemas.tracking import (
    CreateTrackingRequest,
    DeliveryTrackingModel,
    ETARequest,
    ETAResponse,
    TransitionRequest,
    TransitionResponse,
)
from ...services.tracking.eta import format_eta, predict_delivery_eta
from ...services.tracking.state_machine import (
    calculate_delivery_progress,
    create_delivery_tracking,
    get_status_message,
    transition_status,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tracking", tags=["tracking"])


@router.post("/create", response_model=DeliveryTrackingModel, status_code=status.HTTP_201_CREATED)
def create(payload: CreateTrackingRequest) -> DeliveryTrackingModel:
    try:
        tracking = create_delivery_tracking(
            payload.delivery_id,
            payload.pickup_location.to_domain(),
            payload.dropoff_location.to_domain(),
        )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return DeliveryTrackingModel.model_validate(tracking, from_attributes=True)


@router.post("/transition", response_model=TransitionResponse, status_code=status.HTTP_200_OK)
def transition(payload: TransitionRequest) -> TransitionResponse:
    """Apply one status change to the supplied tracking snapshot."""
    try:
        updated = transition_status(payload.tracking.to_domain(), payload.new_status, payload.reason)
    except StateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return TransitionResponse(
        tracking=DeliveryTrackingModel.model_validate(updated, from_attributes=True),
        progress=calculate_delivery_progress(updated),
        message=get_status_message(updated.status)["message"],
    )


@router.post("/eta", response_model=ETAResponse, status_code=status.HTTP_200_OK)
def eta(payload: ETARequest) -> ETAResponse:
    try:
        prediction = predict_delivery_eta(
            payload.tracking.to_domain(),
            driver_speed_kmh=payload.driver_speed_kmh,
            city=payload.city,
            is_peak=payload.is_peak,
            in_medina=payload.in_medina,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Error predicting ETA for %s", payload.tracking.delivery_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to predict ETA: {exc}",
        ) from exc

    response = ETAResponse.model_validate(prediction, from_attributes=True)
    response.formatted = format_eta(prediction.total_minutes)
    return response
