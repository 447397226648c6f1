"""Tests for the SQLite store and its optimistic profile transactions."""

from __future__ import annotations

import threading

import pytest

import config
import database
from services.errors import (
    MealNotFound,
    ProfileNotFound,
    TransactionConflictExhausted,
    WeightMeasurementNotFound,
)
from services.game_mechanics import apply_xp_change, apply_xp_in_transaction

USER_ID = "user-1"


class TestProfiles:
    def test_create_defaults(self, temp_db) -> None:
        profile = temp_db.create_profile("u2", name="Bo")
        assert profile["xp"] == 0
        assert profile["level"] == 1
        assert profile["version"] == 0
        assert profile["last_daily_xp_check"] is None

    def test_update_bumps_version(self, temp_db, profile) -> None:
        updated = temp_db.update_profile(USER_ID, weight_goal=70)
        assert updated["weight_goal"] == 70
        assert updated["version"] == profile["version"] + 1

    def test_update_refuses_xp_fields(self, temp_db, profile) -> None:
        with pytest.raises(ValueError):
            temp_db.update_profile(USER_ID, xp=50)
        with pytest.raises(ValueError):
            temp_db.create_profile("u2", level=9)

    def test_update_missing_profile(self, temp_db) -> None:
        with pytest.raises(ProfileNotFound):
            temp_db.update_profile("ghost", name="x")


class TestRunTransaction:
    def test_commits_buffered_writes(self, temp_db, profile) -> None:
        def fn(tx):
            assert tx.read()["xp"] == 0
            tx.update(xp=30)
            assert tx.read()["xp"] == 30
            return "done"

        assert temp_db.run_transaction(USER_ID, fn) == "done"
        assert temp_db.get_profile(USER_ID)["xp"] == 30

    def test_unknown_field_rejected(self, temp_db, profile) -> None:
        with pytest.raises(ValueError):
            temp_db.run_transaction(USER_ID, lambda tx: tx.update(version=99))

    def test_missing_profile(self, temp_db) -> None:
        with pytest.raises(ProfileNotFound):
            temp_db.run_transaction("ghost", lambda tx: None)

    def test_retries_after_concurrent_write(self, temp_db, profile) -> None:
        calls = []

        def fn(tx):
            calls.append(tx.version)
            if len(calls) == 1:
                # Another session edits the profile between read and commit
                temp_db.update_profile(USER_ID, name="Renamed")
            return apply_xp_in_transaction(tx, 10)

        result = temp_db.run_transaction(USER_ID, fn)

        assert len(calls) == 2
        assert calls[1] == calls[0] + 1
        assert result.new_xp == 10
        stored = temp_db.get_profile(USER_ID)
        assert stored["xp"] == 10
        assert stored["name"] == "Renamed"
        assert len(temp_db.get_xp_events(USER_ID)) == 1

    def test_gives_up_after_bounded_attempts(self, temp_db, profile) -> None:
        attempts = []

        def fn(tx):
            attempts.append(1)
            temp_db.update_profile(USER_ID, name=f"n{len(attempts)}")
            return apply_xp_in_transaction(tx, 25)

        with pytest.raises(TransactionConflictExhausted) as exc_info:
            temp_db.run_transaction(USER_ID, fn, max_attempts=3)

        assert exc_info.value.attempts == 3
        assert len(attempts) == 3
        stored = temp_db.get_profile(USER_ID)
        assert (stored["xp"], stored["level"]) == (0, 1)
        assert temp_db.get_xp_events(USER_ID) == []

    def test_concurrent_appliers_lose_no_update(self, temp_db, profile, monkeypatch) -> None:
        monkeypatch.setattr(database, "MAX_TRANSACTION_ATTEMPTS", 100)
        errors = []

        def worker():
            try:
                for _ in range(5):
                    apply_xp_change(temp_db, USER_ID, 5)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        stored = temp_db.get_profile(USER_ID)
        # 40 changes of +5 XP = 200 XP = two level-ups
        assert (stored["xp"], stored["level"]) == (0, 3)
        assert len(temp_db.get_xp_events(USER_ID)) == 40


class TestMealsAndWeights:
    def test_day_totals(self, temp_db, profile, add_meal) -> None:
        add_meal("2026-10-18", 500)
        add_meal("2026-10-18", 700)
        add_meal("2026-10-17", 300)

        totals = temp_db.get_day_totals(USER_ID, "2026-10-18")
        assert totals["calories"] == 1200
        assert totals["protein"] == 20
        assert temp_db.get_day_totals(USER_ID, "2026-10-16")["calories"] == 0

    def test_meal_dates_distinct_newest_first(self, temp_db, profile, add_meal) -> None:
        add_meal("2026-10-17", 300)
        add_meal("2026-10-18", 500)
        add_meal("2026-10-18", 700)
        assert temp_db.get_meal_dates(USER_ID) == ["2026-10-18", "2026-10-17"]

    def test_delete_meal_is_scoped_to_owner(self, temp_db, profile, add_meal) -> None:
        meal_id = add_meal("2026-10-18", 500)
        with pytest.raises(MealNotFound):
            temp_db.delete_meal("someone-else", meal_id)
        temp_db.delete_meal(USER_ID, meal_id)
        assert temp_db.get_meals(USER_ID, "2026-10-18") == []

    def test_weight_history(self, temp_db, profile) -> None:
        first = temp_db.save_weight_measurement(USER_ID, "2026-10-01", 85)
        temp_db.save_weight_measurement(USER_ID, "2026-10-08", 84.2)

        history = temp_db.get_weight_measurements(USER_ID)
        assert [m["weight"] for m in history] == [84.2, 85]

        assert temp_db.update_weight_measurement(USER_ID, first, 85.5)["weight"] == 85.5
        temp_db.delete_weight_measurement(USER_ID, first)
        with pytest.raises(WeightMeasurementNotFound):
            temp_db.delete_weight_measurement(USER_ID, first)


def test_unlock_achievement_is_idempotent(temp_db, profile) -> None:
    assert temp_db.unlock_achievement(USER_ID, "first-log") is True
    assert temp_db.unlock_achievement(USER_ID, "first-log") is False
    assert list(temp_db.get_unlocked_achievements(USER_ID)) == ["first-log"]


def test_get_database_initializes_once(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(database, "DATABASE_PATH", str(tmp_path / "lazy.db"))
    monkeypatch.setattr(database, "_database", None)

    first = database.get_database()
    assert first is database.get_database()
    assert first.path == str(tmp_path / "lazy.db")
    assert first.get_profile("nobody") is None


def test_path_comes_from_config() -> None:
    assert database.DATABASE_PATH == config.DATABASE_PATH
