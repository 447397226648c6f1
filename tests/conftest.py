"""Pytest fixtures for NutriQuest tests."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

import config
from database import Database, get_database
from main import app

USER_ID = "user-1"


@pytest.fixture(autouse=True)
def no_llm_keys(monkeypatch):
    """Never hit a real LLM provider from tests."""
    monkeypatch.setattr(config, "GROQ_API_KEY", "")
    monkeypatch.setattr(config, "OPENROUTER_API_KEY", "")


@pytest.fixture
def temp_db(tmp_path):
    """Fresh database with schema."""
    db = Database(str(tmp_path / "test.db"))
    db.init_database()
    return db


@pytest.fixture
def profile(temp_db):
    """A seeded profile: 85 -> 75 kg, 2000 kcal goal."""
    return temp_db.create_profile(
        USER_ID,
        name="Ana",
        daily_calorie_goal=2000,
        current_weight=85,
        weight_goal=75,
        height=180,
        age=30,
        gender="male",
        activity_level="lightly active",
    )


@pytest.fixture
def set_xp(temp_db):
    """Force XP state on a profile through a transaction."""
    def _set(xp: int, level: int, user_id: str = USER_ID):
        temp_db.run_transaction(user_id, lambda tx: tx.update(xp=xp, level=level))
    return _set


@pytest.fixture
def add_meal(temp_db):
    def _add(day: str, calories: float, name: str = "Meal", user_id: str = USER_ID) -> int:
        return temp_db.save_meal({
            "user_id": user_id,
            "date": day,
            "name": name,
            "calories": calories,
            "protein": 10,
            "carbohydrates": 20,
            "fat": 5,
        })
    return _add


@pytest.fixture
def client(temp_db):
    """API client bound to the temporary database."""
    app.dependency_overrides[get_database] = lambda: temp_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    return {"X-User-Id": USER_ID}
