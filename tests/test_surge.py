import math

import pytest

from src.dispatch.services.pricing.surge import (
    DemandLevel,
    FeeSchedule,
    SurgeConfig,
    calculate_delivery_fee,
    calculate_demand_supply_ratio,
    calculate_surge_multiplier,
    calculate_weather_impact,
    get_demand_level,
)


def test_demand_levels():
    assert get_demand_level(0.1) is DemandLevel.VERY_LOW
    assert get_demand_level(0.5) is DemandLevel.MODERATE
    assert get_demand_level(1.0) is DemandLevel.HIGH
    assert get_demand_level(2.0) is DemandLevel.EXTREME
    assert get_demand_level(math.inf) is DemandLevel.EXTREME


def test_demand_supply_ratio():
    assert calculate_demand_supply_ratio(10, 4) == 2.5
    assert calculate_demand_supply_ratio(0, 0) == 0.0
    assert math.isinf(calculate_demand_supply_ratio(5, 0))


def test_no_surge_below_threshold():
    result = calculate_surge_multiplier(0.5)
    assert result.multiplier == 1.0
    assert result.reason == "Normal demand levels"


def test_surge_scales_linearly():
    result = calculate_surge_multiplier(2.5)
    assert 1.0 < result.multiplier <= 3.0
    assert result.multiplier == pytest.approx(2.7)
    assert result.demand_level is DemandLevel.EXTREME
    assert result.reason.startswith("Extreme demand")

    moderate = calculate_surge_multiplier(1.0)
    assert moderate.multiplier == pytest.approx(1.2)
    assert moderate.reason.startswith("High demand")


def test_surge_capped_when_no_drivers():
    assert calculate_surge_multiplier(math.inf).multiplier == 3.0
    capped = calculate_surge_multiplier(10, SurgeConfig(base_multiplier=1.0, max_multiplier=2.0))
    assert capped.multiplier == 2.0


def test_delivery_fee_components():
    fee = calculate_delivery_fee(5)
    assert (fee.base_fee, fee.distance_fee, fee.surge_fee, fee.total_fee) == (1000, 1500, 0, 2500)
    assert fee.currency == "MAD"

    peak = calculate_delivery_fee(5, is_peak=True)
    assert peak.distance_fee == 1875
    assert peak.total_fee == 2875


def test_delivery_fee_clamped_to_band():
    surged = calculate_delivery_fee(10, surge_multiplier=3.0)
    assert surged.surge_fee == 8000
    assert surged.total_fee == 5000
    assert calculate_delivery_fee(0, schedule=FeeSchedule(base_fee=500)).total_fee == 1000


def test_weather_impact():
    rain = calculate_weather_impact("Heavy Rain")
    assert (rain.demand_multiplier, rain.supply_multiplier) == (1.6, 0.3)
    unknown = calculate_weather_impact("meteor shower")
    assert (unknown.demand_multiplier, unknown.supply_multiplier) == (1.0, 1.0)


@pytest.mark.parametrize("ratio", [0.0, 0.5, 0.8, 0.81, 1.0, 1.5, 2.5, 2.8, 5.0, 100.0, math.inf])
def test_surge_stays_within_bounds(ratio):
    config = SurgeConfig()
    result = calculate_surge_multiplier(ratio, config)
    assert config.base_multiplier <= result.multiplier <= config.max_multiplier


@pytest.mark.parametrize("distance_km", [0.0, 0.4, 3.3, 12.0, 60.0])
@pytest.mark.parametrize("surge", [1.0, 1.37, 2.0, 3.0])
@pytest.mark.parametrize("is_peak", [False, True])
def test_fee_stays_within_band(distance_km, surge, is_peak):
    schedule = FeeSchedule()
    fee = calculate_delivery_fee(distance_km, surge, is_peak, schedule)
    assert schedule.min_fee <= fee.total_fee <= schedule.max_fee


def test_fee_rounds_half_centimes_up():
    schedule = FeeSchedule(base_fee=1003, per_km_fee=0)
    assert calculate_delivery_fee(0, 1.5, schedule=schedule).total_fee == 1505
