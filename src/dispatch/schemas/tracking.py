"""Pydantic request/response models for delivery tracking endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.domain import Coordinates
from ..services.tracking.models import DeliveryStatus, DeliveryTracking, StatusTransition


class CoordinatesModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)

    def to_domain(self) -> Coordinates:
        return Coordinates(lat=self.lat, lng=self.lng)


class StatusTransitionModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_status: DeliveryStatus
    to_status: DeliveryStatus
    timestamp: datetime
    reason: str = ""


class DeliveryTrackingModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    delivery_id: str
    status: DeliveryStatus
    pickup_location: CoordinatesModel
    dropoff_location: CoordinatesModel
    estimated_pickup_time: datetime
    estimated_delivery_time: datetime
    last_update: datetime
    driver_location: Optional[CoordinatesModel] = None
    actual_pickup_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    status_history: List[StatusTransitionModel] = Field(default_factory=list)

    def to_domain(self) -> DeliveryTracking:
        return DeliveryTracking(
            delivery_id=self.delivery_id,
            status=self.status,
            pickup_location=self.pickup_location.to_domain(),
            dropoff_location=self.dropoff_location.to_domain(),
            estimated_pickup_time=self.estimated_pickup_time,
            estimated_delivery_time=self.estimated_delivery_time,
            last_update=self.last_update,
            driver_location=self.driver_location.to_domain() if self.driver_location else None,
            actual_pickup_time=self.actual_pickup_time,
            actual_delivery_time=self.actual_delivery_time,
            status_history=tuple(
                StatusTransition(
                    from_status=item.from_status,
                    to_status=item.to_status,
                    timestamp=item.timestamp,
                    reason=item.reason,
                )
                for item in self.status_history
            ),
        )


class CreateTrackingRequest(BaseModel):
    delivery_id: str = Field(..., min_length=1)
    pickup_location: CoordinatesModel
    dropoff_location: CoordinatesModel


class TransitionRequest(BaseModel):
    tracking: DeliveryTrackingModel
    new_status: DeliveryStatus
    reason: str = Field(default="", description="Free-form reason recorded in the status history.")


class TransitionResponse(BaseModel):
    tracking: DeliveryTrackingModel
    progress: int
    message: str


class ETARequest(BaseModel):
    tracking: DeliveryTrackingModel
    driver_speed_kmh: Optional[float] = Field(default=None, ge=0.0)
    city: Optional[str] = Field(default=None, description="City whose speed profile applies to the delivery leg.")
    is_peak: bool = False
    in_medina: bool = False


class ETAResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    pickup_minutes: float
    delivery_minutes: float
    total_minutes: float
    confidence: float
    adjustments: List[str]
    estimated_arrival: Optional[datetime] = None
    formatted: str = ""
