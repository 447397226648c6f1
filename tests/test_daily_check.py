"""Tests for the once-a-day calorie goal check."""

from __future__ import annotations

from datetime import date

import pytest

from services.daily_check import (
    ALREADY_CHECKED,
    EXCEEDED_GOAL,
    MET_GOAL,
    NO_GOAL,
    NO_MEALS,
    classify_day,
    run_daily_check,
)
from services.errors import ProfileNotFound, TransactionConflictExhausted

USER_ID = "user-1"
TODAY = date(2026, 10, 19)
YESTERDAY = "2026-10-18"


@pytest.mark.parametrize(
    ("total", "goal", "expected"),
    [
        (1800, 2000, (MET_GOAL, 25)),
        (2000, 2000, (MET_GOAL, 25)),
        (2000.5, 2000, (EXCEEDED_GOAL, -10)),
        (0, 2000, (NO_MEALS, 0)),
        (1800, 0, (NO_GOAL, 0)),
        (1800, None, (NO_GOAL, 0)),
        (1800, -5, (NO_GOAL, 0)),
    ],
)
def test_classify_day(total, goal, expected) -> None:
    assert classify_day(total, goal) == expected


class TestRunDailyCheck:
    def test_met_goal_awards_xp_then_marks_day(self, temp_db, profile, add_meal) -> None:
        add_meal(YESTERDAY, 1000)
        add_meal(YESTERDAY, 800)

        result = run_daily_check(temp_db, USER_ID, TODAY)

        assert result.status == MET_GOAL
        assert result.total_calories == 1800
        assert result.xp_change == 25
        assert result.xp.new_xp == 25
        stored = temp_db.get_profile(USER_ID)
        assert stored["xp"] == 25
        assert stored["last_daily_xp_check"] == "2026-10-19"

    def test_second_run_same_day_is_noop(self, temp_db, profile, add_meal) -> None:
        add_meal(YESTERDAY, 1800)
        run_daily_check(temp_db, USER_ID, TODAY)

        again = run_daily_check(temp_db, USER_ID, TODAY)

        assert again.status == ALREADY_CHECKED
        assert again.xp_change == 0
        assert temp_db.get_profile(USER_ID)["xp"] == 25

    def test_next_day_runs_again(self, temp_db, profile, add_meal) -> None:
        add_meal(YESTERDAY, 1800)
        add_meal("2026-10-19", 2500)
        run_daily_check(temp_db, USER_ID, TODAY)

        result = run_daily_check(temp_db, USER_ID, date(2026, 10, 20))

        assert result.status == EXCEEDED_GOAL
        assert temp_db.get_profile(USER_ID)["xp"] == 15

    def test_exceeded_goal_penalizes(self, temp_db, profile, add_meal, set_xp) -> None:
        set_xp(30, 2)
        add_meal(YESTERDAY, 2600)

        result = run_daily_check(temp_db, USER_ID, TODAY)

        assert result.status == EXCEEDED_GOAL
        assert result.xp_change == -10
        stored = temp_db.get_profile(USER_ID)
        assert (stored["xp"], stored["level"]) == (20, 2)

    def test_penalty_never_costs_a_level(self, temp_db, profile, add_meal, set_xp) -> None:
        set_xp(5, 4)
        add_meal(YESTERDAY, 3000)

        run_daily_check(temp_db, USER_ID, TODAY)

        stored = temp_db.get_profile(USER_ID)
        assert (stored["xp"], stored["level"]) == (0, 4)

    def test_no_meals_still_marks_day(self, temp_db, profile) -> None:
        result = run_daily_check(temp_db, USER_ID, TODAY)

        assert result.status == NO_MEALS
        assert result.xp is None
        stored = temp_db.get_profile(USER_ID)
        assert stored["xp"] == 0
        assert stored["last_daily_xp_check"] == "2026-10-19"
        assert temp_db.get_xp_events(USER_ID) == []

    def test_no_goal_still_marks_day(self, temp_db, add_meal) -> None:
        temp_db.create_profile(USER_ID, name="No goal")
        add_meal(YESTERDAY, 1800)

        result = run_daily_check(temp_db, USER_ID, TODAY)

        assert result.status == NO_GOAL
        assert temp_db.get_profile(USER_ID)["last_daily_xp_check"] == "2026-10-19"

    def test_only_yesterday_counts(self, temp_db, profile, add_meal) -> None:
        add_meal("2026-10-17", 5000)
        add_meal("2026-10-19", 5000)
        add_meal(YESTERDAY, 1500)

        assert run_daily_check(temp_db, USER_ID, TODAY).status == MET_GOAL

    def test_meeting_goal_unlocks_achievement_once(self, temp_db, profile, add_meal) -> None:
        add_meal(YESTERDAY, 1500)
        add_meal("2026-10-19", 1500)

        first = run_daily_check(temp_db, USER_ID, TODAY)
        second = run_daily_check(temp_db, USER_ID, date(2026, 10, 20))

        assert first.achievements == ["calorie-goal"]
        assert second.status == MET_GOAL
        assert second.achievements == []

    def test_missing_profile(self, temp_db) -> None:
        with pytest.raises(ProfileNotFound):
            run_daily_check(temp_db, "ghost", TODAY)

    def test_failed_xp_change_does_not_mark_day(self, temp_db, profile, add_meal, monkeypatch) -> None:
        add_meal(YESTERDAY, 1800)
        monkeypatch.setattr(temp_db, "_commit", lambda tx: False)

        with pytest.raises(TransactionConflictExhausted):
            run_daily_check(temp_db, USER_ID, TODAY)

        monkeypatch.undo()
        stored = temp_db.get_profile(USER_ID)
        assert stored["last_daily_xp_check"] is None
        assert stored["xp"] == 0

        # Safe to retry: the reward is applied exactly once
        assert run_daily_check(temp_db, USER_ID, TODAY).status == MET_GOAL
        assert temp_db.get_profile(USER_ID)["xp"] == 25

    def test_concurrent_first_runs_apply_once(self, temp_db, profile, add_meal, monkeypatch) -> None:
        add_meal(YESTERDAY, 1800)
        original_totals = temp_db.get_day_totals
        state = {"raced": False}

        def racing_totals(user_id, day):
            # Another session completes its check after ours read the stale marker
            if not state["raced"]:
                state["raced"] = True
                run_daily_check(temp_db, USER_ID, TODAY)
            return original_totals(user_id, day)

        monkeypatch.setattr(temp_db, "get_day_totals", racing_totals)

        result = run_daily_check(temp_db, USER_ID, TODAY)

        assert result.status == ALREADY_CHECKED
        assert temp_db.get_profile(USER_ID)["xp"] == 25
        assert len(temp_db.get_xp_events(USER_ID)) == 1

    def test_earlier_day_after_check_is_noop(self, temp_db, profile, add_meal) -> None:
        add_meal("2026-10-17", 1800)
        add_meal(YESTERDAY, 1800)
        earlier = date(2026, 10, 18)

        statuses = [run_daily_check(temp_db, USER_ID, day).status for day in (TODAY, earlier, TODAY, earlier)]

        assert statuses == [MET_GOAL, ALREADY_CHECKED, ALREADY_CHECKED, ALREADY_CHECKED]
        stored = temp_db.get_profile(USER_ID)
        assert stored["xp"] == 25
        assert stored["last_daily_xp_check"] == "2026-10-19"
        assert len(temp_db.get_xp_events(USER_ID)) == 1

    def test_later_check_wins_over_earlier_in_flight(self, temp_db, profile, add_meal, monkeypatch) -> None:
        add_meal("2026-10-17", 1800)
        add_meal(YESTERDAY, 1800)
        original_totals = temp_db.get_day_totals
        state = {"raced": False}

        def racing_totals(user_id, day):
            # A session a day ahead checks while ours still holds the old marker
            if not state["raced"]:
                state["raced"] = True
                run_daily_check(temp_db, USER_ID, TODAY)
            return original_totals(user_id, day)

        monkeypatch.setattr(temp_db, "get_day_totals", racing_totals)

        result = run_daily_check(temp_db, USER_ID, date(2026, 10, 18))

        assert result.status == ALREADY_CHECKED
        assert temp_db.get_profile(USER_ID)["last_daily_xp_check"] == "2026-10-19"
        assert temp_db.get_xp_events(USER_ID)[0]["reason"] == "daily_check:met_goal"
        assert len(temp_db.get_xp_events(USER_ID)) == 1
