"""Achievement catalogue and unlock triggers."""

from __future__ import annotations

from datetime import date, timedelta

from logger import logger


ACHIEVEMENTS = [
    {
        "id": "first-log",
        "name": "First Entry",
        "description": "Fill in your profile for the first time.",
    },
    {
        "id": "ai-genius",
        "name": "AI Genius",
        "description": "Use the goal projection to build a weight-loss plan.",
    },
    {
        "id": "calorie-goal",
        "name": "Calorie Goal",
        "description": "Stay within your daily calorie goal for the first time.",
    },
    {
        "id": "consistent-week",
        "name": "Consistent Week",
        "description": "Log meals for 7 consecutive days.",
    },
    {
        "id": "weight-loss-milestone",
        "name": "Milestone Reached",
        "description": "Reach your weight goal.",
    },
    {
        "id": "monthly-marathon",
        "name": "Monthly Marathon",
        "description": "Log meals for 30 consecutive days.",
    },
]

ACHIEVEMENT_IDS = {a["id"] for a in ACHIEVEMENTS}

# consecutive logged days -> achievement
STREAK_ACHIEVEMENTS = {7: "consistent-week", 30: "monthly-marathon"}


def unlock(db, user_id: str, achievement_id: str) -> bool:
    """Unlock an achievement; True only the first time."""
    if achievement_id not in ACHIEVEMENT_IDS:
        raise ValueError(f"Unknown achievement: {achievement_id}")
    newly = db.unlock_achievement(user_id, achievement_id)
    if newly:
        logger.info(f"User {user_id} unlocked achievement {achievement_id}")
    return newly


def logging_streak(meal_dates: list[str], today: date) -> int:
    """Consecutive days with meals, counting back from today."""
    logged = set(meal_dates)
    streak = 0
    day = today
    while day.isoformat() in logged:
        streak += 1
        day -= timedelta(days=1)
    return streak


def check_streak_achievements(db, user_id: str, today: date) -> list[str]:
    streak = logging_streak(db.get_meal_dates(user_id), today)
    return [
        achievement_id
        for days, achievement_id in STREAK_ACHIEVEMENTS.items()
        if streak >= days and unlock(db, user_id, achievement_id)
    ]


def check_weight_goal(db, user_id: str, profile: dict) -> list[str]:
    current = profile.get("current_weight")
    goal = profile.get("weight_goal")
    if current and goal and current <= goal:
        if unlock(db, user_id, "weight-loss-milestone"):
            return ["weight-loss-milestone"]
    return []


def list_achievements(db, user_id: str) -> list[dict]:
    unlocked = db.get_unlocked_achievements(user_id)
    return [
        {**a, "unlocked": a["id"] in unlocked, "unlocked_at": unlocked.get(a["id"])}
        for a in ACHIEVEMENTS
    ]
