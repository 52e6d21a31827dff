"""Multi-stop route planning."""

from .analysis import calculate_route_metrics, generate_route_alternatives
from .optimizer import find_best_insertion, optimize_route, plan_multi_stop_route

__all__ = [
    "optimize_route",
    "find_best_insertion",
    "plan_multi_stop_route",
    "calculate_route_metrics",
    "generate_route_alternatives",
]
