"""Routing request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..services.routing.models import ConstraintType, RouteConstraint, RouteStop, StopType
from .tracking import CoordinatesModel


class RouteStopModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    location: CoordinatesModel
    type: StopType
    order_id: str
    time_window_start: Optional[datetime] = None
    time_window_end: Optional[datetime] = None

    def to_domain(self) -> RouteStop:
        return RouteStop(
            id=self.id,
            location=self.location.to_domain(),
            type=self.type,
            order_id=self.order_id,
            time_window_start=self.time_window_start,
            time_window_end=self.time_window_end,
        )


class RouteConstraintModel(BaseModel):
    type: ConstraintType
    order_id: Optional[str] = None
    max_value: Optional[float] = Field(default=None, ge=0)

    def to_domain(self) -> RouteConstraint:
        return RouteConstraint(type=self.type, order_id=self.order_id, max_value=self.max_value)


class RouteOptimizationRequest(BaseModel):
    start: CoordinatesModel
    stops: List[RouteStopModel]
    constraints: Optional[List[RouteConstraintModel]] = Field(
        default=None,
        description="When omitted, pickups are kept ahead of their dropoffs whenever both are present.",
    )
    enforce: bool = Field(default=False, description="Reject the request when the final route breaks a constraint.")

    @field_validator("stops")
    @classmethod
    def validate_unique_stop_ids(cls, value: List[RouteStopModel]) -> List[RouteStopModel]:
        ids = [stop.id for stop in value]
        if len(ids) != len(set(ids)):
            raise ValueError("stop ids must be unique")
        return value


class OptimizedRouteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stops: List[RouteStopModel]
    total_distance_km: float
    estimated_minutes: float
    savings_km: float
    savings_minutes: float
    violations: List[str] = Field(default_factory=list)
