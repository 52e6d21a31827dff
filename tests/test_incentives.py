from datetime import datetime, timedelta, timezone

import pytest

from src.dispatch.errors import ValidationError
from src.dispatch.services.settlement.incentives import (
    IncentiveType,
    QuestCondition,
    QuestStatus,
    WeatherCondition,
    ZoneDemand,
    apply_budget_cap,
    calculate_delivery_incentives,
    calculate_peak_bonus,
    calculate_ramadan_bonus,
    calculate_streak_bonus,
    calculate_weather_bonus,
    check_budget,
    check_milestones,
    claim_quest_reward,
    create_campaign,
    create_quest,
    generate_daily_quests,
    generate_driver_incentive_summary,
    generate_zone_incentives,
    get_comeback_bonus,
    get_first_delivery_bonus,
    get_referral_bonus,
    is_campaign_active,
    is_streak_broken,
    is_zone_incentive_valid,
    record_campaign_spend,
    update_quest_progress,
)

T0 = datetime(2024, 6, 3, 8, 0, tzinfo=timezone.utc)


def _quest(target: int = 3):
    return create_quest(
        "q1",
        IncentiveType.QUEST,
        "Lunch rush",
        "Deliver 3 orders",
        target,
        1500,
        timedelta(hours=2),
        [QuestCondition("min_deliveries", target)],
        now=T0,
    )


def test_peak_bonus():
    evening = calculate_peak_bonus(1000, 19)
    assert (evening.bonus, evening.multiplier, evening.is_active) == (1000, 1.5, True)
    assert not calculate_peak_bonus(1000, 22).is_active
    assert calculate_peak_bonus(1000, 15).bonus == 0


def test_weather_bonus():
    assert calculate_weather_bonus(1000, WeatherCondition.HEAVY_RAIN).bonus == 1200
    assert calculate_weather_bonus(1000, "light_rain").bonus == 500
    assert not calculate_weather_bonus(1000, "cloudy").is_active
    assert not calculate_weather_bonus(1000, "tornado").is_active


def test_streak_milestones():
    streak = calculate_streak_bonus(12)
    assert streak.bonus == 1500
    assert streak.multiplier == 1.1
    assert (streak.next_milestone, streak.next_milestone_bonus) == (20, 4000)

    fresh = calculate_streak_bonus(0)
    assert (fresh.bonus, fresh.multiplier, fresh.next_milestone) == (0, 1.0, 5)
    assert calculate_streak_bonus(150).next_milestone == 0


def test_streak_gap():
    assert is_streak_broken(T0, now=T0 + timedelta(hours=13))
    assert not is_streak_broken(T0, now=T0 + timedelta(hours=2))


def test_zone_incentives_only_for_busy_zones():
    zones = [
        ZoneDemand("z1", "Maarif", "critical", 2),
        ZoneDemand("z2", "Anfa", "high", 5),
        ZoneDemand("z3", "Ain Diab", "low", 9),
    ]
    incentives = generate_zone_incentives(zones, now=T0)
    assert [(i.zone_id, i.bonus, i.multiplier) for i in incentives] == [("z1", 1000, 1.5), ("z2", 500, 1.2)]
    assert is_zone_incentive_valid(incentives[0], now=T0 + timedelta(minutes=29))
    assert not is_zone_incentive_valid(incentives[0], now=T0 + timedelta(minutes=30))


def test_ramadan_bonus():
    assert calculate_ramadan_bonus(1000, 19, True).bonus == 1400
    assert not calculate_ramadan_bonus(1000, 19, False).is_active
    assert not calculate_ramadan_bonus(1000, 21, True).is_active


def test_quest_lifecycle():
    quest = _quest()
    assert quest.status is QuestStatus.AVAILABLE
    assert quest.expires_at == T0 + timedelta(hours=2)

    progressing = update_quest_progress(quest, 2, now=T0)
    assert (progressing.current_count, progressing.status) == (2, QuestStatus.IN_PROGRESS)
    assert not claim_quest_reward(progressing).success

    done = update_quest_progress(progressing, 5, now=T0)
    assert (done.current_count, done.status) == (3, QuestStatus.COMPLETED)
    assert update_quest_progress(done, now=T0) is done

    claim = claim_quest_reward(done)
    assert claim.success
    assert claim.reward == 1500
    assert claim.quest.status is QuestStatus.CLAIMED
    assert not claim_quest_reward(claim.quest).success


def test_quest_expires():
    expired = update_quest_progress(_quest(), now=T0 + timedelta(hours=3))
    assert expired.status is QuestStatus.EXPIRED
    assert expired.current_count == 0


@pytest.mark.parametrize("target, reward", [(0, 1500), (-2, 1500), (3, -1)])
def test_quest_rejects_bad_target_or_reward(target, reward):
    with pytest.raises(ValidationError):
        create_quest("q1", IncentiveType.QUEST, "Bad", "Bad quest", target, reward, timedelta(hours=1), now=T0)


def test_daily_quests_expire_at_midnight():
    quests = generate_daily_quests("drv-1", 10, now=T0)
    assert len(quests) == 2
    assert all(q.expires_at == datetime(2024, 6, 4, tzinfo=timezone.utc) for q in quests)
    assert len(generate_daily_quests("drv-1", 25, now=T0)) == 3


def test_milestones():
    assert [m.count for m in check_milestones(60, [10])] == [50]
    assert check_milestones(5, []) == []


def test_budget_caps():
    budget = check_budget(4000, 5000)
    assert (budget.remaining, budget.utilization_percent, budget.is_exhausted) == (1000, 80.0, False)
    cap = apply_budget_cap(1500, budget)
    assert (cap.capped_amount, cap.was_capped) == (1000, True)
    assert apply_budget_cap(500, budget).was_capped is False

    exhausted = check_budget(6000, 5000)
    assert exhausted.is_exhausted
    assert apply_budget_cap(100, exhausted).capped_amount == 0


def test_delivery_incentives_stack():
    result = calculate_delivery_incentives(1000, 19, WeatherCondition.HEAVY_RAIN, 5, is_ramadan=True)
    assert [i.type for i in result.incentives] == [
        IncentiveType.PEAK_HOUR,
        IncentiveType.WEATHER,
        IncentiveType.STREAK,
        IncentiveType.RAMADAN,
    ]
    assert result.total_bonus == 1000 + 1200 + 500 + 1400
    assert result.effective_multiplier == 5.1

    quiet = calculate_delivery_incentives(1000, 15)
    assert quiet.incentives == []
    assert quiet.effective_multiplier == 1.0


def test_one_off_bonuses():
    assert get_first_delivery_bonus().amount == 2000
    assert get_referral_bonus().type is IncentiveType.REFERRAL
    comeback = get_comeback_bonus(T0 - timedelta(days=10), now=T0)
    assert comeback is not None and "10 days" in comeback.reason
    assert get_comeback_bonus(T0 - timedelta(days=3), now=T0) is None


def test_campaign_budget():
    campaign = create_campaign("c1", "Summer", IncentiveType.ZONE, 10_000, T0, T0 + timedelta(days=7), ["z1"])
    assert is_campaign_active(campaign, now=T0 + timedelta(days=1))
    assert not is_campaign_active(campaign, now=T0 - timedelta(days=1))

    partly = record_campaign_spend(campaign, 4000)
    assert partly.is_active
    spent = record_campaign_spend(partly, 6000)
    assert not spent.is_active
    assert not is_campaign_active(spent, now=T0 + timedelta(days=1))


def test_driver_summary():
    quests = [_quest(), claim_quest_reward(update_quest_progress(_quest(), 3, now=T0)).quest]
    summary = generate_driver_incentive_summary("drv-1", quests, 4, 12000, 1500, 3000, 12, "sandstorm")
    assert len(summary.active_quests) == 1
    assert [i.type for i in summary.available_incentives] == [IncentiveType.PEAK_HOUR, IncentiveType.WEATHER]
    assert summary.available_incentives[0].amount == 300
