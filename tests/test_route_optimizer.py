from datetime import datetime, timedelta, timezone
import random

import pytest

from src.dispatch.errors import ConstraintViolation
from src.dispatch.models.domain import Coordinates
from src.dispatch.services.routing.models import ConstraintType, RouteConstraint, RouteStop, StopType
from src.dispatch.services.routing.optimizer import (
    enforce_route_constraints,
    find_best_insertion,
    nearest_neighbor_route,
    optimize_route,
    plan_multi_stop_route,
    raw_route_distance,
    repair_pickup_before_dropoff,
    reverse_segment,
    satisfies_pickup_before_dropoff,
    total_route_distance_from_start,
    two_opt_improve,
    validate_route_constraints,
)

NOW = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)
START = Coordinates(33.50, -7.60)


def _stop(stop_id: str, lat_offset: float, stop_type: StopType = StopType.PICKUP, order_id: str | None = None, **kwargs) -> RouteStop:
    return RouteStop(
        id=stop_id,
        location=Coordinates(START.lat + lat_offset, START.lng),
        type=stop_type,
        order_id=order_id or stop_id,
        **kwargs,
    )


def _ids(stops) -> list[str]:
    return [stop.id for stop in stops]


def test_nearest_neighbor_orders_by_proximity():
    stops = [_stop("c", 0.03), _stop("a", 0.01), _stop("b", 0.02)]
    route = nearest_neighbor_route(START, stops)
    assert _ids(route.stops) == ["a", "b", "c"]
    assert route.savings_km > 0
    assert route.total_distance_km == pytest.approx(total_route_distance_from_start(START, route.stops), abs=0.01)


def test_empty_route():
    route = optimize_route(START, [])
    assert route.stops == ()
    assert route.total_distance_km == 0


def test_reverse_segment_is_a_copy():
    stops = [_stop("a", 0.01), _stop("b", 0.02), _stop("c", 0.03)]
    assert _ids(reverse_segment(stops, 2, 0)) == ["c", "b", "a"]
    assert _ids(stops) == ["a", "b", "c"]


def test_two_opt_untangles_and_keeps_first_stop():
    stops = [_stop("a", 0.0), _stop("d", 0.03), _stop("b", 0.01), _stop("c", 0.02)]
    improved = two_opt_improve(stops)
    assert _ids(improved) == ["a", "b", "c", "d"]
    assert raw_route_distance(improved) < raw_route_distance(stops)
    assert two_opt_improve(stops, max_iterations=0) == stops


@pytest.mark.parametrize("seed", range(8))
def test_two_opt_never_lengthens_a_route(seed):
    rng = random.Random(seed)
    stops = [
        RouteStop(
            id=f"s{index}",
            location=Coordinates(START.lat + rng.uniform(-0.05, 0.05), START.lng + rng.uniform(-0.05, 0.05)),
            type=StopType.PICKUP,
            order_id=f"s{index}",
        )
        for index in range(rng.randint(3, 9))
    ]
    improved = two_opt_improve(stops)
    assert sorted(_ids(improved)) == sorted(_ids(stops))
    assert improved[0] == stops[0]
    assert total_route_distance_from_start(START, improved) <= total_route_distance_from_start(START, stops) + 1e-9


def test_precedence_repair_for_three_stops():
    stops = [
        _stop("drop-a", 0.005, StopType.DROPOFF, "A"),
        _stop("pick-a", 0.02, StopType.PICKUP, "A"),
        _stop("pick-b", 0.03, StopType.PICKUP, "B"),
    ]
    route = optimize_route(START, stops)
    assert satisfies_pickup_before_dropoff(route.stops)
    assert sorted(_ids(route.stops)) == sorted(_ids(stops))
    assert _ids(route.stops).index("pick-a") < _ids(route.stops).index("drop-a")


def test_lone_dropoff_counts_as_food_on_board():
    stops = [_stop("drop-a", 0.01, StopType.DROPOFF, "A"), _stop("pick-b", 0.02, StopType.PICKUP, "B")]
    assert satisfies_pickup_before_dropoff(stops)


def test_repair_moves_pickup_ahead_of_dropoff():
    stops = [
        _stop("drop-a", 0.01, StopType.DROPOFF, "A"),
        _stop("drop-b", 0.02, StopType.DROPOFF, "B"),
        _stop("pick-b", 0.03, StopType.PICKUP, "B"),
        _stop("pick-a", 0.04, StopType.PICKUP, "A"),
    ]
    repaired = repair_pickup_before_dropoff(stops)
    assert satisfies_pickup_before_dropoff(repaired)
    assert _ids(repaired) == ["pick-a", "drop-a", "pick-b", "drop-b"]


def test_validate_reports_each_violation():
    stops = [
        _stop("drop-a", 0.01, StopType.DROPOFF, "A", time_window_end=NOW),
        _stop("pick-a", 0.05, StopType.PICKUP, "A"),
    ]
    constraints = [
        RouteConstraint(ConstraintType.PICKUP_BEFORE_DROPOFF),
        RouteConstraint(ConstraintType.TIME_WINDOW),
        RouteConstraint(ConstraintType.MAX_DISTANCE, max_value=1.0),
    ]
    report = validate_route_constraints(stops, constraints, start=START, now=NOW)
    assert not report.valid
    assert len(report.violations) == 3
    assert "Order A" in report.violations[0]

    relaxed = [RouteConstraint(ConstraintType.MAX_DISTANCE, max_value=100.0)]
    assert validate_route_constraints(stops, relaxed).valid


def test_time_window_met_when_generous():
    stops = [_stop("a", 0.01, time_window_end=NOW + timedelta(hours=1))]
    report = validate_route_constraints(stops, [RouteConstraint(ConstraintType.TIME_WINDOW)], start=START, now=NOW)
    assert report.valid


def test_enforce_raises_constraint_violation():
    stops = [_stop("a", 0.0), _stop("b", 0.2)]
    with pytest.raises(ConstraintViolation) as excinfo:
        enforce_route_constraints(stops, [RouteConstraint(ConstraintType.MAX_DISTANCE, max_value=1.0)])
    assert len(excinfo.value.violations) == 1


def test_optimize_route_with_explicit_precedence():
    stops = [
        _stop("drop-a", 0.01, StopType.DROPOFF, "A"),
        _stop("pick-a", 0.03, StopType.PICKUP, "A"),
    ]
    route = optimize_route(START, stops, [RouteConstraint(ConstraintType.PICKUP_BEFORE_DROPOFF)], now=NOW)
    assert _ids(route.stops) == ["pick-a", "drop-a"]
    assert route.estimated_minutes > 0


def test_precedence_repaired_when_only_other_constraints_given():
    stops = [
        _stop("drop-a", 0.005, StopType.DROPOFF, "A"),
        _stop("pick-a", 0.02, StopType.PICKUP, "A"),
        _stop("pick-b", 0.03, StopType.PICKUP, "B"),
    ]
    route = optimize_route(START, stops, [RouteConstraint(ConstraintType.TIME_WINDOW)], now=NOW)
    assert satisfies_pickup_before_dropoff(route.stops)
    assert _ids(route.stops).index("pick-a") < _ids(route.stops).index("drop-a")

    unconstrained = optimize_route(START, stops, [], now=NOW)
    assert satisfies_pickup_before_dropoff(unconstrained.stops)


def test_naive_time_window_read_as_utc():
    naive_now = NOW.replace(tzinfo=None)
    late = [_stop("a", 0.01, time_window_end=naive_now)]
    report = validate_route_constraints(late, [RouteConstraint(ConstraintType.TIME_WINDOW)], start=START, now=NOW)
    assert not report.valid

    on_time = [_stop("a", 0.01, time_window_end=naive_now + timedelta(hours=1))]
    report = validate_route_constraints(on_time, [RouteConstraint(ConstraintType.TIME_WINDOW)], start=START, now=naive_now)
    assert report.valid


def test_best_insertion_between_neighbours():
    route = [_stop("a", 0.01), _stop("c", 0.03)]
    result = find_best_insertion(route, _stop("b", 0.02), start=START)
    assert result.insert_index == 1
    assert result.additional_distance_km == pytest.approx(0.0, abs=0.01)
    assert result.is_valid


def test_best_insertion_respects_pickup():
    route = [_stop("pick-a", 0.03, StopType.PICKUP, "A")]
    result = find_best_insertion(route, _stop("drop-a", 0.0, StopType.DROPOFF, "A"), start=START)
    assert result.insert_index == 1
    assert result.is_valid
    assert find_best_insertion([], _stop("x", 0.01)).route[0].id == "x"


def test_multi_route_plan_keeps_orders_together():
    stops = []
    for n in range(3):
        order = f"O{n}"
        stops.append(_stop(f"pick-{n}", 0.01 * (n + 1), StopType.PICKUP, order))
        stops.append(_stop(f"drop-{n}", 0.01 * (n + 1) + 0.005, StopType.DROPOFF, order))

    plan = plan_multi_stop_route(START, stops, max_stops_per_route=4)
    assert len(plan.routes) == 2
    assert plan.unassigned_stops == []
    for route in plan.routes:
        assert len(route.stops) <= 4
        assert satisfies_pickup_before_dropoff(route.stops)
        orders = {stop.order_id for stop in route.stops}
        assert all(sum(1 for s in route.stops if s.order_id == order) == 2 for order in orders)
    assert plan.total_distance_km == pytest.approx(sum(r.total_distance_km for r in plan.routes), abs=0.01)


def test_multi_route_plan_single_route_when_small():
    stops = [_stop("a", 0.01), _stop("b", 0.02)]
    plan = plan_multi_stop_route(START, stops)
    assert len(plan.routes) == 1


def test_oversized_order_left_unassigned():
    stops = [
        _stop("pick-a", 0.01, StopType.PICKUP, "A"),
        _stop("drop-a", 0.02, StopType.DROPOFF, "A"),
        _stop("pick-b", 0.03, StopType.PICKUP, "B"),
        _stop("drop-b", 0.04, StopType.DROPOFF, "B"),
    ]
    plan = plan_multi_stop_route(START, stops, max_stops_per_route=1)
    assert plan.routes == []
    assert len(plan.unassigned_stops) == 4
