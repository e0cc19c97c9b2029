"""
Streak tests.

Streaks are always recomputed from the per-day completion history and the
evaluation clock; nothing is incremented.
"""

from datetime import date, timedelta

import pytest

from core.models import Pillar
from core.scoring import DailyScoreAggregator
from core.streaks import (
    STREAK_MILESTONES, StreakPillar, StreakTracker, ember_intensity,
    new_milestones, reached_milestones
)
from utils.datetime_utils import EvaluationClock


DAY_1 = date(2026, 10, 1)


def history_for(days, pillars=(Pillar.BODY, Pillar.MIND)):
    """Qualifying history for the given dates."""
    return {
        day: {pillar: pillar in pillars for pillar in Pillar}
        for day in days
    }


def consecutive(start, count):
    return [start + timedelta(days=i) for i in range(count)]


@pytest.fixture
def tracker():
    return StreakTracker(warning_window_hours=6)


class TestCurrentStreak:

    def test_five_days_then_a_miss(self, tracker, make_clock):
        history = history_for(consecutive(DAY_1, 5))

        day_5 = make_clock(2026, 10, 5, 20, 0)
        day_7 = make_clock(2026, 10, 7, 9, 0)

        assert tracker.evaluate(history, StreakPillar.BODY, day_5).current_streak_days == 5
        assert tracker.evaluate(history, StreakPillar.BODY, day_7).current_streak_days == 0

    def test_today_not_done_counts_until_yesterday(self, tracker, make_clock):
        history = history_for(consecutive(DAY_1, 5))
        day_6 = make_clock(2026, 10, 6, 10, 0)

        state = tracker.evaluate(history, StreakPillar.BODY, day_6)

        assert state.current_streak_days == 5
        assert state.at_risk is False

    def test_today_done_is_included(self, tracker, make_clock):
        history = history_for(consecutive(DAY_1, 6))
        state = tracker.evaluate(history, StreakPillar.MIND, make_clock(2026, 10, 6, 8, 0))
        assert state.current_streak_days == 6

    def test_gap_ends_the_walk(self, tracker, make_clock):
        days = consecutive(DAY_1, 3) + consecutive(DAY_1 + timedelta(days=4), 2)
        state = tracker.evaluate(history_for(days), StreakPillar.BODY, make_clock(2026, 10, 6, 12, 0))

        assert state.current_streak_days == 2
        assert state.longest_streak_days == 3

    def test_empty_history(self, tracker, clock):
        state = tracker.evaluate({}, StreakPillar.OVERALL, clock)

        assert state.current_streak_days == 0
        assert state.longest_streak_days == 0
        assert state.last_qualifying_date is None
        assert state.at_risk is False

    def test_future_days_are_ignored(self, tracker, make_clock):
        history = history_for(consecutive(DAY_1, 10))
        state = tracker.evaluate(history, StreakPillar.BODY, make_clock(2026, 10, 3, 12, 0))

        assert state.current_streak_days == 3
        assert state.last_qualifying_date == date(2026, 10, 3)

    def test_non_qualifying_day_in_history(self, tracker, make_clock):
        history = history_for(consecutive(DAY_1, 3))
        history[date(2026, 10, 3)] = {Pillar.BODY: False, Pillar.MIND: False}

        state = tracker.evaluate(history, StreakPillar.BODY, make_clock(2026, 10, 4, 12, 0))
        assert state.current_streak_days == 0


class TestPillarKeys:

    def test_overall_needs_both_pillars(self, tracker, make_clock):
        history = history_for(consecutive(DAY_1, 3))
        history[date(2026, 10, 3)] = {Pillar.BODY: True, Pillar.MIND: False}
        clock = make_clock(2026, 10, 3, 23, 0)

        states = tracker.evaluate_all(history, clock)

        assert states[StreakPillar.BODY].current_streak_days == 3
        assert states[StreakPillar.MIND].current_streak_days == 2
        assert states[StreakPillar.OVERALL].current_streak_days == 2
        assert states[StreakPillar.OVERALL].at_risk is True

    def test_history_from_logs(self, tracker, make_clock, qualifying_day_logs):
        start = make_clock(2026, 10, 1, 9, 0)
        logs = qualifying_day_logs(start, 4, pillars=(Pillar.BODY,))
        clock = make_clock(2026, 10, 4, 21, 0)

        history = DailyScoreAggregator().completion_history(logs, clock)
        states = tracker.evaluate_all(history, clock)

        assert states[StreakPillar.BODY].current_streak_days == 4
        assert states[StreakPillar.MIND].current_streak_days == 0


class TestAtRisk:

    @pytest.mark.parametrize("hour,minute,expected", [
        (12, 0, False),   # 12h left
        (17, 59, False),  # 6h01m left
        (18, 0, True),    # exactly 6h
        (23, 30, True),
    ])
    def test_warning_window(self, tracker, make_clock, hour, minute, expected):
        history = history_for(consecutive(DAY_1, 3))
        clock = make_clock(2026, 10, 4, hour, minute)

        assert tracker.evaluate(history, StreakPillar.BODY, clock).at_risk is expected

    def test_not_at_risk_when_today_done(self, tracker, make_clock):
        history = history_for(consecutive(DAY_1, 4))
        clock = make_clock(2026, 10, 4, 23, 0)
        assert tracker.evaluate(history, StreakPillar.BODY, clock).at_risk is False

    def test_not_at_risk_without_streak(self, tracker, make_clock):
        clock = make_clock(2026, 10, 4, 23, 0)
        assert tracker.evaluate({}, StreakPillar.BODY, clock).at_risk is False

    def test_hours_remaining_is_unrounded(self, tracker, make_clock):
        clock = make_clock(2026, 10, 4, 21, 20)
        state = tracker.evaluate({}, StreakPillar.BODY, clock)

        assert state.hours_remaining == pytest.approx(2 + 40 / 60)
        assert state.display_hours == 2.7

    def test_hours_remaining_in_local_zone(self, tracker):
        clock = EvaluationClock.at(date(2026, 10, 4), "Asia/Tokyo")
        state = tracker.evaluate({}, StreakPillar.BODY, clock)
        assert state.hours_remaining == pytest.approx(12.0)


class TestMilestones:

    def test_reached(self):
        assert reached_milestones(0) == []
        assert reached_milestones(7) == [3, 7]
        assert reached_milestones(400) == list(STREAK_MILESTONES)

    def test_new_only_on_crossing(self):
        assert new_milestones(2, 3) == [3]
        assert new_milestones(3, 4) == []
        assert new_milestones(6, 14) == [7, 14]

    @pytest.mark.parametrize("days,level,particles", [
        (0, "dim", False),
        (3, "dim", False),
        (4, "steady", False),
        (7, "bright", False),
        (13, "bright", False),
        (14, "golden", True),
    ])
    def test_ember_intensity(self, days, level, particles):
        assert ember_intensity(days) == {"level": level, "has_particles": particles}
