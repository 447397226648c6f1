"""Meal, weight and profile flows that grant XP and achievements."""

from __future__ import annotations

from datetime import date, datetime

from logger import logger
from services.achievements import check_streak_achievements, check_weight_goal, unlock
from services.errors import MealDayClosed, ProfileNotFound
from services.game_mechanics import award_event
from services.llm import parse_meal


def _require_profile(db, user_id: str) -> dict:
    profile = db.get_profile(user_id)
    if profile is None:
        raise ProfileNotFound(user_id)
    return profile


def save_profile(db, user_id: str, fields: dict) -> dict:
    """Create or update a profile from validated form fields."""
    if db.get_profile(user_id) is None:
        profile = db.create_profile(user_id, **fields)
    else:
        profile = db.update_profile(user_id, **fields)
    achievements = ["first-log"] if unlock(db, user_id, "first-log") else []
    return {"profile": profile, "achievements": achievements}


def log_meal(db, user_id: str, description: str, day: date | None = None) -> dict:
    """
    Analyze a meal description with the LLM, store it and award LOG_MEAL XP.

    Raises:
        ProfileNotFound: before any LLM call is made
        MealDayClosed: the daily check has already scored that day
        LLMUnavailableError: the description could not be analyzed
    """
    profile = _require_profile(db, user_id)
    day = day or date.today()
    # A check on day D scores D-1, so every day before the marker is closed
    if day.isoformat() < (profile.get("last_daily_xp_check") or ""):
        raise MealDayClosed(day.isoformat())

    parsed = parse_meal(description)
    meal = {
        "user_id": user_id,
        "date": day.isoformat(),
        "time": datetime.now().strftime("%H:%M"),
        "description": description,
        **parsed.model_dump(),
    }
    meal["id"] = db.save_meal(meal)
    logger.info(f"Logged meal {meal['name']!r} ({parsed.calories:.0f} kcal) for {user_id}")

    xp = award_event(db, user_id, "LOG_MEAL")
    achievements = check_streak_achievements(db, user_id, day)
    return {"meal": meal, "xp": xp.to_dict(), "achievements": achievements}


def log_weight(db, user_id: str, weight: float, day: date | None = None) -> dict:
    """Store a weight measurement, make it the current weight and award LOG_WEIGHT XP."""
    _require_profile(db, user_id)
    day = day or date.today()

    measurement_id = db.save_weight_measurement(user_id, day.isoformat(), weight)
    profile = db.update_profile(user_id, current_weight=weight)
    logger.info(f"Logged weight {weight} kg for {user_id}")

    xp = award_event(db, user_id, "LOG_WEIGHT")
    achievements = check_weight_goal(db, user_id, profile)
    return {
        "measurement": {"id": measurement_id, "date": day.isoformat(), "weight": weight},
        "xp": xp.to_dict(),
        "achievements": achievements,
    }


def day_summary(db, user_id: str, day: date) -> dict:
    """Meals and nutrient totals for one calendar day."""
    _require_profile(db, user_id)
    return {
        "date": day.isoformat(),
        "meals": db.get_meals(user_id, day.isoformat()),
        "totals": db.get_day_totals(user_id, day.isoformat()),
    }
