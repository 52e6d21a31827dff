"""Route metrics, comparisons and alternative constructions."""

from __future__ import annotations

import math
from typing import List, Optional, Sequence

from ...models.domain import Coordinates, VehicleType
from ..geospatial import haversine_distance
from .models import OptimizedRoute, RouteMetrics, RouteOptimizerConfig, RouteStop
from .optimizer import (
    find_best_insertion,
    optimize_route,
    repair_pickup_before_dropoff,
    satisfies_pickup_before_dropoff,
    total_route_distance_from_start,
    two_opt_improve,
)

# Litres per 100 km and centimes per litre.
FUEL_RATES = {
    VehicleType.MOTORCYCLE: (3.0, 1400),
    VehicleType.CAR: (7.0, 1200),
}

ROUTE_TIE_THRESHOLD = 0.01


def calculate_route_metrics(
    stops: Sequence[RouteStop],
    config: Optional[RouteOptimizerConfig] = None,
) -> RouteMetrics:
    config = config or RouteOptimizerConfig()
    if not stops:
        return RouteMetrics(0.0, 0.0, 0, 0.0, 0.0)

    legs = [
        haversine_distance(previous.location, current.location) * config.winding_factor
        for previous, current in zip(stops, stops[1:])
    ]
    total = sum(legs)
    minutes = total / config.speed_kmh * 60 + len(stops) * config.service_minutes
    return RouteMetrics(
        total_distance_km=round(total, 2),
        total_time_minutes=round(minutes, 1),
        number_of_stops=len(stops),
        average_stop_distance_km=round(total / len(legs), 2) if legs else 0.0,
        longest_leg_km=round(max(legs), 2) if legs else 0.0,
    )


def estimate_route_time(
    stops: Sequence[RouteStop],
    average_speed_kmh: Optional[float] = None,
    config: Optional[RouteOptimizerConfig] = None,
) -> float:
    """Travel time between consecutive stops plus service time at each stop."""

    config = config or RouteOptimizerConfig()
    if not stops:
        return 0.0
    speed = average_speed_kmh or config.speed_kmh
    travel_km = sum(
        haversine_distance(previous.location, current.location) * config.winding_factor
        for previous, current in zip(stops, stops[1:])
    )
    return round(travel_km / speed * 60 + len(stops) * config.service_minutes, 1)


def cluster_stops(stops: Sequence[RouteStop], num_clusters: int) -> List[List[RouteStop]]:
    """Split stops into balanced groups by their angle around the centroid."""

    if not stops:
        return []
    if num_clusters <= 1 or len(stops) <= num_clusters:
        return [list(stops)]

    center_lat = sum(stop.location.lat for stop in stops) / len(stops)
    center_lng = sum(stop.location.lng for stop in stops) / len(stops)
    by_angle = sorted(
        stops,
        key=lambda stop: math.atan2(stop.location.lng - center_lng, stop.location.lat - center_lat),
    )
    clusters: list[list[RouteStop]] = [[] for _ in range(num_clusters)]
    for index, stop in enumerate(by_angle):
        clusters[index % num_clusters].append(stop)
    return [cluster for cluster in clusters if cluster]


def calculate_detour_ratio(
    current_route: Sequence[RouteStop],
    new_stop: RouteStop,
    start: Coordinates,
    config: Optional[RouteOptimizerConfig] = None,
) -> float:
    """New route length over current length after the cheapest insertion; 1.0 means no detour."""

    current = total_route_distance_from_start(start, current_route, config)
    if current == 0:
        return 1.0
    insertion = find_best_insertion(current_route, new_stop, start=start, config=config)
    return total_route_distance_from_start(start, insertion.route, config) / current


def estimate_fuel_cost(distance_km: float, vehicle: VehicleType = VehicleType.MOTORCYCLE) -> int:
    consumption, price_per_litre = FUEL_RATES[VehicleType(vehicle)]
    return round(distance_km * consumption / 100 * price_per_litre)


def compare_routes(route_a: OptimizedRoute, route_b: OptimizedRoute, distance_weight: float = 0.6) -> str:
    """Return ``"A"``, ``"B"`` or ``"equal"`` on a normalized distance/time score."""

    time_weight = 1 - distance_weight
    max_distance = max(route_a.total_distance_km, route_b.total_distance_km, 1.0)
    max_time = max(route_a.estimated_minutes, route_b.estimated_minutes, 1.0)

    def score(route: OptimizedRoute) -> float:
        return (
            route.total_distance_km / max_distance * distance_weight
            + route.estimated_minutes / max_time * time_weight
        )

    score_a, score_b = score(route_a), score(route_b)
    if abs(score_a - score_b) < ROUTE_TIE_THRESHOLD:
        return "equal"
    return "A" if score_a < score_b else "B"


def _candidate(
    start: Coordinates,
    seed: Sequence[RouteStop],
    config: RouteOptimizerConfig,
) -> OptimizedRoute:
    ordered = two_opt_improve(seed, config=config)
    if not satisfies_pickup_before_dropoff(ordered):
        ordered = repair_pickup_before_dropoff(ordered, config)
    distance = total_route_distance_from_start(start, ordered, config)
    minutes = distance / config.speed_kmh * 60 + len(ordered) * config.service_minutes
    return OptimizedRoute(
        stops=tuple(ordered),
        total_distance_km=round(distance, 2),
        estimated_minutes=round(minutes, 1),
    )


def generate_route_alternatives(
    start: Coordinates,
    stops: Sequence[RouteStop],
    num_alternatives: int = 3,
    config: Optional[RouteOptimizerConfig] = None,
) -> OptimizedRoute:
    """Best of nearest-first, farthest-first and reversed-input seeds after 2-opt.

    Every candidate keeps pickups ahead of their dropoffs.
    """

    config = config or RouteOptimizerConfig()
    best = optimize_route(start, stops, config=config)
    if len(stops) <= 2:
        return best

    seeds: list[list[RouteStop]] = []
    if num_alternatives >= 2:
        seeds.append(sorted(stops, key=lambda stop: haversine_distance(start, stop.location), reverse=True))
    if num_alternatives >= 3:
        seeds.append(list(reversed(stops)))

    for seed in seeds:
        candidate = _candidate(start, seed, config)
        if candidate.total_distance_km < best.total_distance_km:
            best = candidate
    return best
