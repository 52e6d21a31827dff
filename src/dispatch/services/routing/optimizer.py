"""Multi-stop route construction and improvement.

Routes are built with a nearest-neighbor pass from the driver's position and
then improved with 2-opt. Every comparison inside the search uses raw
great-circle distance; reported distances apply the road winding factor.
Pickups always precede the dropoff of the same order.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from ...errors import ConstraintViolation
from ...events import log_event
from ...models.domain import Coordinates, as_utc, utc_now
from ..geospatial import haversine_distance
from .models import (
    ConstraintReport,
    ConstraintType,
    InsertionResult,
    MultiRoutePlan,
    OptimizedRoute,
    RouteConstraint,
    RouteOptimizerConfig,
    RouteStop,
    StopType,
)

COMPONENT = "routing"


def raw_route_distance(stops: Sequence[RouteStop]) -> float:
    total = 0.0
    for previous, current in zip(stops, stops[1:]):
        total += haversine_distance(previous.location, current.location)
    return total


def road_route_distance(stops: Sequence[RouteStop], config: Optional[RouteOptimizerConfig] = None) -> float:
    config = config or RouteOptimizerConfig()
    return raw_route_distance(stops) * config.winding_factor


def total_route_distance_from_start(
    start: Coordinates,
    stops: Sequence[RouteStop],
    config: Optional[RouteOptimizerConfig] = None,
) -> float:
    if not stops:
        return 0.0
    config = config or RouteOptimizerConfig()
    raw = haversine_distance(start, stops[0].location) + raw_route_distance(stops)
    return raw * config.winding_factor


def reverse_segment(stops: Sequence[RouteStop], i: int, j: int) -> List[RouteStop]:
    """Return a copy with positions ``min(i, j)..max(i, j)`` reversed."""

    left, right = min(i, j), max(i, j)
    route = list(stops)
    route[left : right + 1] = route[left : right + 1][::-1]
    return route


def _summarize(
    start: Coordinates,
    stops: Sequence[RouteStop],
    baseline_km: float,
    config: RouteOptimizerConfig,
) -> OptimizedRoute:
    distance = total_route_distance_from_start(start, stops, config)
    minutes = distance / config.speed_kmh * 60 + len(stops) * config.service_minutes
    saved_km = max(baseline_km - distance, 0.0)
    return OptimizedRoute(
        stops=tuple(stops),
        total_distance_km=round(distance, 2),
        estimated_minutes=round(minutes, 1),
        savings_km=round(saved_km, 2),
        savings_minutes=round(saved_km / config.speed_kmh * 60, 1),
    )


def nearest_neighbor_route(
    start: Coordinates,
    stops: Sequence[RouteStop],
    config: Optional[RouteOptimizerConfig] = None,
) -> OptimizedRoute:
    """Greedy construction: always drive to the closest unvisited stop."""

    config = config or RouteOptimizerConfig()
    if not stops:
        return OptimizedRoute(stops=(), total_distance_km=0.0, estimated_minutes=0.0)

    baseline = total_route_distance_from_start(start, stops, config)
    remaining = list(stops)
    ordered: list[RouteStop] = []
    current = start
    while remaining:
        nearest_index = min(
            range(len(remaining)),
            key=lambda idx: haversine_distance(current, remaining[idx].location),
        )
        nearest = remaining.pop(nearest_index)
        ordered.append(nearest)
        current = nearest.location

    route = _summarize(start, ordered, baseline, config)
    log_event(
        f"Nearest neighbor: {len(ordered)} stops, {route.total_distance_km:.2f}km",
        component=COMPONENT,
        saved_km=route.savings_km,
    )
    return route


def two_opt_improve(
    stops: Sequence[RouteStop],
    max_iterations: Optional[int] = None,
    config: Optional[RouteOptimizerConfig] = None,
) -> List[RouteStop]:
    """Reverse sub-segments ``[i+1..j]`` while raw distance keeps dropping.

    The first stop is never moved, so the leg from the driver's position is
    unchanged and the total distance from the start cannot increase.
    """

    config = config or RouteOptimizerConfig()
    limit = config.max_iterations if max_iterations is None else max_iterations
    if len(stops) < 3:
        return list(stops)

    best = list(stops)
    best_distance = raw_route_distance(best)
    improved = True
    iterations = 0
    while improved and iterations < limit:
        improved = False
        iterations += 1
        for i in range(len(best) - 1):
            for j in range(i + 2, len(best)):
                candidate = reverse_segment(best, i + 1, j)
                candidate_distance = raw_route_distance(candidate)
                if best_distance - candidate_distance > config.min_improvement_km:
                    best, best_distance = candidate, candidate_distance
                    improved = True

    if iterations > 1:
        log_event(f"2-opt improved route in {iterations} iterations", component=COMPONENT)
    return best


def _orders_with_both_ends(stops: Iterable[RouteStop]) -> set[str]:
    pickups = {stop.order_id for stop in stops if stop.type is StopType.PICKUP}
    dropoffs = {stop.order_id for stop in stops if stop.type is StopType.DROPOFF}
    return pickups & dropoffs


def satisfies_pickup_before_dropoff(stops: Sequence[RouteStop]) -> bool:
    paired = _orders_with_both_ends(stops)
    seen_pickups: set[str] = set()
    for stop in stops:
        if stop.order_id not in paired:
            continue
        if stop.type is StopType.PICKUP:
            seen_pickups.add(stop.order_id)
        elif stop.order_id not in seen_pickups:
            return False
    return True


def repair_pickup_before_dropoff(
    stops: Sequence[RouteStop],
    config: Optional[RouteOptimizerConfig] = None,
) -> List[RouteStop]:
    """Move each late pickup to just before its dropoff, rescanning after every move."""

    config = config or RouteOptimizerConfig()
    route = list(stops)
    for _ in range(config.max_repair_passes):
        moved = False
        for i, stop in enumerate(route):
            if stop.type is not StopType.DROPOFF:
                continue
            late_pickup = next(
                (
                    idx
                    for idx in range(i + 1, len(route))
                    if route[idx].order_id == stop.order_id and route[idx].type is StopType.PICKUP
                ),
                None,
            )
            if late_pickup is not None:
                route.insert(i, route.pop(late_pickup))
                moved = True
                break
        if not moved:
            break
    return route


def validate_route_constraints(
    stops: Sequence[RouteStop],
    constraints: Iterable[RouteConstraint],
    *,
    start: Optional[Coordinates] = None,
    now: Optional[datetime] = None,
    config: Optional[RouteOptimizerConfig] = None,
) -> ConstraintReport:
    """Report every violated constraint; nothing is corrected here."""

    config = config or RouteOptimizerConfig()
    violations: list[str] = []

    for constraint in constraints:
        if constraint.type is ConstraintType.PICKUP_BEFORE_DROPOFF:
            order_ids = [constraint.order_id] if constraint.order_id else list(dict.fromkeys(s.order_id for s in stops))
            for order_id in order_ids:
                pickup = next(
                    (idx for idx, s in enumerate(stops) if s.order_id == order_id and s.type is StopType.PICKUP), None
                )
                dropoff = next(
                    (idx for idx, s in enumerate(stops) if s.order_id == order_id and s.type is StopType.DROPOFF), None
                )
                if pickup is not None and dropoff is not None and pickup > dropoff:
                    violations.append(
                        f"Order {order_id}: dropoff (position {dropoff}) before pickup (position {pickup})"
                    )

        elif constraint.type is ConstraintType.TIME_WINDOW:
            clock = as_utc(now or utc_now())
            elapsed = 0.0
            previous = start
            for idx, stop in enumerate(stops):
                if previous is not None:
                    leg_km = haversine_distance(previous, stop.location) * config.winding_factor
                    elapsed += leg_km / config.speed_kmh * 60
                if idx > 0:
                    elapsed += config.service_minutes
                previous = stop.location
                arrival = clock + timedelta(minutes=elapsed)
                if stop.time_window_end is not None and arrival > as_utc(stop.time_window_end):
                    violations.append(f"Stop {stop.id}: estimated arrival exceeds time window end")

        elif constraint.type is ConstraintType.MAX_DISTANCE and constraint.max_value is not None:
            distance = road_route_distance(stops, config)
            if distance > constraint.max_value:
                violations.append(
                    f"Route distance ({distance:.2f}km) exceeds maximum ({constraint.max_value:g}km)"
                )

    return ConstraintReport(valid=not violations, violations=violations)


def enforce_route_constraints(
    stops: Sequence[RouteStop],
    constraints: Iterable[RouteConstraint],
    **kwargs,
) -> ConstraintReport:
    report = validate_route_constraints(stops, constraints, **kwargs)
    if not report.valid:
        raise ConstraintViolation(report.violations)
    return report


def optimize_route(
    start: Coordinates,
    stops: Sequence[RouteStop],
    constraints: Optional[Sequence[RouteConstraint]] = None,
    *,
    now: Optional[datetime] = None,
    config: Optional[RouteOptimizerConfig] = None,
) -> OptimizedRoute:
    """Nearest neighbor, then 2-opt, then precedence repair and validation.

    Precedence is always repaired for orders with both a pickup and a dropoff
    on the route; ``constraints`` only selects what gets validated. Other
    violations are logged and left in place.
    """

    config = config or RouteOptimizerConfig()
    if not stops:
        return OptimizedRoute(stops=(), total_distance_km=0.0, estimated_minutes=0.0)

    baseline = total_route_distance_from_start(start, stops, config)
    constructed = nearest_neighbor_route(start, stops, config)
    ordered = two_opt_improve(constructed.stops, config=config)

    if not satisfies_pickup_before_dropoff(ordered):
        ordered = repair_pickup_before_dropoff(ordered, config)
        log_event("Applied pickup-before-dropoff repair after 2-opt", component=COMPONENT)

    if constraints:
        report = validate_route_constraints(ordered, constraints, start=start, now=now, config=config)
        if not report.valid:
            log_event(
                f"Route has {len(report.violations)} constraint violations after optimization",
                component=COMPONENT,
                level=logging.WARNING,
                violations="; ".join(report.violations),
            )

    route = _summarize(start, ordered, baseline, config)
    log_event(
        f"Route optimized: {len(ordered)} stops, {route.total_distance_km:.2f}km",
        component=COMPONENT,
        saved_km=route.savings_km,
    )
    return route


def find_best_insertion(
    route: Sequence[RouteStop],
    new_stop: RouteStop,
    *,
    start: Optional[Coordinates] = None,
    config: Optional[RouteOptimizerConfig] = None,
) -> InsertionResult:
    """Insert ``new_stop`` where it adds the least distance.

    Only positions that keep the order's pickup ahead of its dropoff are
    tried. When ``start`` is given the leg from the driver counts too.
    """

    config = config or RouteOptimizerConfig()
    if not route:
        return InsertionResult(route=[new_stop], insert_index=0, additional_distance_km=0.0, is_valid=True)

    low, high = 0, len(route)
    if new_stop.type is StopType.DROPOFF:
        pickup = next(
            (idx for idx, s in enumerate(route) if s.order_id == new_stop.order_id and s.type is StopType.PICKUP), None
        )
        if pickup is not None:
            low = pickup + 1
    else:
        dropoff = next(
            (idx for idx, s in enumerate(route) if s.order_id == new_stop.order_id and s.type is StopType.DROPOFF), None
        )
        if dropoff is not None:
            high = dropoff

    def added_distance(index: int) -> float:
        previous = route[index - 1].location if index > 0 else start
        following = route[index].location if index < len(route) else None
        added = 0.0
        if previous is not None:
            added += haversine_distance(previous, new_stop.location)
        if following is not None:
            added += haversine_distance(new_stop.location, following)
        if previous is not None and following is not None:
            added -= haversine_distance(previous, following)
        return added

    best_index = min(range(low, high + 1), key=added_distance)
    candidate = list(route)
    candidate.insert(best_index, new_stop)
    return InsertionResult(
        route=candidate,
        insert_index=best_index,
        additional_distance_km=round(max(added_distance(best_index), 0.0) * config.winding_factor, 2),
        is_valid=satisfies_pickup_before_dropoff(candidate),
    )


def plan_multi_stop_route(
    start: Coordinates,
    stops: Sequence[RouteStop],
    max_stops_per_route: Optional[int] = None,
    *,
    config: Optional[RouteOptimizerConfig] = None,
) -> MultiRoutePlan:
    """Split stops into routes of at most ``max_stops_per_route`` stops.

    Stops of one order always travel together. Orders are packed nearest
    pickup first; an order with more stops than the limit is left unassigned.
    """

    config = config or RouteOptimizerConfig()
    max_stops = max_stops_per_route or config.max_stops_per_route
    precedence = [RouteConstraint(type=ConstraintType.PICKUP_BEFORE_DROPOFF)]
    if not stops:
        return MultiRoutePlan(routes=[], unassigned_stops=[], total_distance_km=0.0, total_minutes=0.0)

    if len(stops) <= max_stops:
        route = optimize_route(start, stops, precedence, config=config)
        return MultiRoutePlan(
            routes=[route],
            unassigned_stops=[],
            total_distance_km=route.total_distance_km,
            total_minutes=route.estimated_minutes,
        )

    groups: Dict[str, List[RouteStop]] = {}
    for stop in stops:
        groups.setdefault(stop.order_id, []).append(stop)

    def group_distance(group: List[RouteStop]) -> float:
        pickup = next((s for s in group if s.type is StopType.PICKUP), None)
        return haversine_distance(start, pickup.location) if pickup else float("inf")

    buckets: list[list[RouteStop]] = [[]]
    unassigned: list[RouteStop] = []
    for group in sorted(groups.values(), key=group_distance):
        if len(group) > max_stops:
            unassigned.extend(group)
            continue
        if len(buckets[-1]) + len(group) > max_stops:
            buckets.append([])
        buckets[-1].extend(group)

    routes = [optimize_route(start, bucket, precedence, config=config) for bucket in buckets if bucket]
    total_distance = sum(route.total_distance_km for route in routes)
    total_minutes = sum(route.estimated_minutes for route in routes)
    log_event(
        f"Multi-stop plan: {len(stops)} stops split into {len(routes)} routes",
        component=COMPONENT,
        total_km=round(total_distance, 2),
        unassigned=len(unassigned),
    )
    return MultiRoutePlan(
        routes=routes,
        unassigned_stops=unassigned,
        total_distance_km=round(total_distance, 2),
        total_minutes=round(total_minutes, 1),
    )
