from datetime import date, timedelta

import pytest

from medtrack.schemas.models import DoseEntry
from medtrack.services.adherence import (
    AdherenceAggregator,
    adherence_rate,
    consistency_for,
    rating_for,
    stddev,
)

from conftest import NOW

TODAY = NOW.date()


def _add(store, statuses, day=TODAY, medication_id=1, time="08:00", start_id=None):
    next_id = start_id or len(store.get_schedule()) + 1
    for i, status in enumerate(statuses):
        store.add_entry(DoseEntry(id=next_id + i, medication_id=medication_id, date=day,
                                  time=time, status=status))


def test_rate_scenario(store, aggregator):
    _add(store, ["taken"] * 6 + ["missed"] * 2 + ["skipped"] + ["pending"])
    stats = aggregator.get_adherence_stats(TODAY, TODAY)
    assert (stats.total, stats.taken, stats.missed, stats.skipped, stats.pending) == (10, 6, 2, 1, 1)
    assert stats.adherence_rate == 67


def test_all_pending_is_zero_not_nan(store, aggregator):
    _add(store, ["pending"] * 4)
    stats = aggregator.get_adherence_stats(TODAY, TODAY)
    assert stats.total == 4
    assert stats.adherence_rate == 0


def test_empty_range_is_zero(aggregator):
    stats = aggregator.get_adherence_stats(date(2020, 1, 1), date(2020, 1, 31))
    assert stats.total == 0
    assert stats.adherence_rate == 0


@pytest.mark.parametrize("taken,missed,skipped,pending", [
    (0, 0, 0, 0), (1, 0, 0, 0), (0, 5, 0, 0), (3, 1, 1, 10), (0, 0, 0, 7), (99, 1, 0, 0),
])
def test_rate_is_bounded(taken, missed, skipped, pending):
    total = taken + missed + skipped + pending
    assert 0 <= adherence_rate(taken, total, pending) <= 100


def test_range_is_inclusive(store, aggregator):
    _add(store, ["taken"], day=date(2024, 1, 1))
    _add(store, ["missed"], day=date(2024, 1, 5))
    _add(store, ["taken"], day=date(2024, 1, 6))
    stats = aggregator.get_adherence_stats("2024-01-01", "2024-01-05")
    assert stats.total == 2
    assert stats.adherence_rate == 50


def test_weekly_and_monthly_windows(store, aggregator):
    _add(store, ["taken"], day=TODAY - timedelta(days=7))
    _add(store, ["missed"], day=TODAY - timedelta(days=8))
    _add(store, ["missed"], day=TODAY - timedelta(days=30))
    _add(store, ["missed"], day=TODAY - timedelta(days=31))

    assert aggregator.get_weekly_adherence().total == 1
    monthly = aggregator.get_monthly_adherence()
    assert monthly.total == 3
    assert monthly.adherence_rate == 33


def test_overdue_pending_can_count_as_missed(store, clock):
    _add(store, ["taken"], day=TODAY - timedelta(days=1))
    _add(store, ["pending"], day=TODAY - timedelta(days=1))
    _add(store, ["pending"], day=TODAY)
    start, end = TODAY - timedelta(days=1), TODAY

    assert AdherenceAggregator(store, clock).get_adherence_stats(start, end).adherence_rate == 100
    strict = AdherenceAggregator(store, clock, treat_overdue_as_missed=True).get_adherence_stats(start, end)
    assert (strict.missed, strict.pending, strict.adherence_rate) == (1, 1, 50)


def test_series_shapes(store, aggregator):
    _add(store, ["taken", "missed"], day=TODAY)
    weekly = aggregator.weekly_series()
    assert len(weekly) == 7
    assert weekly[-1].start == TODAY
    assert weekly[-1].label == "Wed"
    assert weekly[-1].pct == 50
    assert all(p.pct == 0 for p in weekly[:-1])

    assert len(aggregator.trend_series()) == 14

    monthly = aggregator.monthly_series()
    assert len(monthly) == 10
    assert monthly[0].start == TODAY - timedelta(days=27)
    assert monthly[-1].start == TODAY
    assert monthly[-1].end == TODAY + timedelta(days=2)
    assert monthly[-1].pct == 50


def test_trend_delta(store, aggregator):
    for i in range(7, 14):
        _add(store, ["missed"], day=TODAY - timedelta(days=i))
    for i in range(0, 7):
        _add(store, ["taken"], day=TODAY - timedelta(days=i))
    assert aggregator.trend_delta(aggregator.trend_series()) == 100
    assert aggregator.trend_delta(aggregator.weekly_series()) == 0


def test_streak_counts_back_from_today(store, aggregator):
    for i in range(3):
        _add(store, ["taken", "taken"], day=TODAY - timedelta(days=i))
    _add(store, ["taken", "skipped"], day=TODAY - timedelta(days=3))
    _add(store, ["taken"], day=TODAY - timedelta(days=4))
    assert aggregator.streak_days(store.get_schedule()) == 3


def test_streak_stops_on_empty_or_undecided_day(store, aggregator):
    _add(store, ["taken"], day=TODAY - timedelta(days=1))
    assert aggregator.streak_days(store.get_schedule()) == 0  # nothing today

    _add(store, ["pending"], day=TODAY)
    assert aggregator.streak_days(store.get_schedule()) == 0


def test_insights(store, aggregator):
    morning = store.save_medication({"name": "Metformin", "times": ["08:00 AM"], "start_date": date(2024, 1, 1)})
    evening = store.save_medication({"name": "Atorvastatin", "times": ["8:00 PM"], "start_date": date(2024, 1, 1)})
    for i in range(1, 6):
        day = TODAY - timedelta(days=i)
        _add(store, ["taken"], day=day, medication_id=morning.id, time="08:00 AM", start_id=100 + i)
        _add(store, ["missed"], day=day, medication_id=evening.id, time="8:00 PM", start_id=200 + i)

    insights = aggregator.get_insights()

    assert insights.best_window == "6-9 AM (100%)"
    assert insights.struggle_window == "6-9 PM (0%)"
    assert insights.top_miss_medication == "Atorvastatin"
    assert insights.streak_days == 0
    assert insights.consistency in ("High", "Medium", "Low")
    assert any("Shift doses in 6-9 PM toward 6-9 AM" in r for r in insights.recommendations)
    assert any("breakfast" in r for r in insights.recommendations)
    assert len(insights.recommendations) <= 5


def test_insights_without_data(aggregator):
    insights = aggregator.get_insights()
    assert insights.recommendations == []
    assert insights.streak_days == 0


def test_helpers():
    assert stddev([]) == 0
    assert stddev([50, 50, 50]) == 0
    assert stddev([0, 100]) == 50
    assert consistency_for(5) == "High"
    assert consistency_for(15) == "Medium"
    assert consistency_for(25) == "Low"
    assert rating_for(95) == "Excellent"
    assert rating_for(85) == "Good"
    assert rating_for(72) == "Fair"
    assert rating_for(10) == "Needs Improvement"


def test_insights_follow_overdue_setting(store, clock):
    morning = store.save_medication({"name": "Metformin", "times": ["08:00 AM"], "start_date": date(2024, 1, 1)})
    evening = store.save_medication({"name": "Atorvastatin", "times": ["8:00 PM"], "start_date": date(2024, 1, 1)})
    for i in range(1, 4):
        day = TODAY - timedelta(days=i)
        _add(store, ["taken"], day=day, medication_id=morning.id, time="08:00 AM", start_id=100 + i)
        _add(store, ["pending"], day=day, medication_id=evening.id, time="8:00 PM", start_id=200 + i)

    lenient = AdherenceAggregator(store, clock).get_insights()
    assert lenient.struggle_window == "6-9 AM (100%)"

    strict = AdherenceAggregator(store, clock, treat_overdue_as_missed=True).get_insights()
    assert strict.struggle_window == "6-9 PM (0%)"
    assert strict.top_miss_medication == "Atorvastatin"
    assert all(e.status == "pending" for e in store.get_entries_for_medication(evening.id))
