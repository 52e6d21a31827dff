"""Routing endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from ...errors import ConstraintViolation, ValidationError
from ...schemas.routing import OptimizedRouteResponse, RouteOptimizationRequest, RouteStopModel
from ...services.geospatial import validate_coordinates
from ...services.routing.optimizer import enforce_route_constraints, optimize_route, validate_route_constraints

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/routing", tags=["routing"])


@router.post("/optimize", response_model=OptimizedRouteResponse, status_code=status.HTTP_200_OK)
def optimize(payload: RouteOptimizationRequest) -> OptimizedRouteResponse:
    start = payload.start.to_domain()
    stops = [stop.to_domain() for stop in payload.stops]
    constraints = [c.to_domain() for c in payload.constraints] if payload.constraints is not None else None

    try:
        validate_coordinates(start)
        route = optimize_route(start, stops, constraints)
        check = enforce_route_constraints if payload.enforce else validate_route_constraints
        report = check(list(route.stops), constraints or [], start=start)
    except ConstraintViolation as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Route violates constraints", "violations": exc.violations},
        ) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Error optimizing route with %d stops", len(stops))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to optimize route: {exc}",
        ) from exc

    return OptimizedRouteResponse(
        stops=[RouteStopModel.model_validate(stop, from_attributes=True) for stop in route.stops],
        total_distance_km=route.total_distance_km,
        estimated_minutes=route.estimated_minutes,
        savings_km=route.savings_km,
        savings_minutes=route.savings_minutes,
        violations=report.violations,
    )
