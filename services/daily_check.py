"""Once-a-day calorie goal check.

On the first run of a calendar day the previous day's logged calories are
compared against the user's daily goal: staying within it earns XP, going
over costs XP, and a day with nothing logged (or no goal set) changes
nothing. `last_daily_xp_check` records the day so later runs are no-ops.

The XP change and the marker are committed in the same profile
transaction, which re-reads the marker. A failed XP change therefore never
advances the marker, and two sessions racing on the first run of a day
cannot both apply the reward.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta

from config import XP_EVENTS
from logger import logger
from services.achievements import unlock
from services.errors import ProfileNotFound
from services.game_mechanics import XpChangeResult, apply_xp_in_transaction


ALREADY_CHECKED = "already_checked"
NO_GOAL = "no_goal"
NO_MEALS = "no_meals"
MET_GOAL = "met_goal"
EXCEEDED_GOAL = "exceeded_goal"


@dataclass
class DailyCheckResult:
    status: str
    day: str
    total_calories: float = 0.0
    calorie_goal: float = 0.0
    xp_change: int = 0
    xp: XpChangeResult | None = None
    achievements: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "day": self.day,
            "total_calories": self.total_calories,
            "calorie_goal": self.calorie_goal,
            "xp_change": self.xp_change,
            "xp": self.xp.to_dict() if self.xp else None,
            "achievements": self.achievements,
        }


def classify_day(total_calories: float, calorie_goal: float) -> tuple[str, int]:
    """Map yesterday's intake against the goal to (status, xp_change)."""
    if not calorie_goal or calorie_goal <= 0:
        return NO_GOAL, 0
    if total_calories <= 0:
        return NO_MEALS, 0
    if total_calories <= calorie_goal:
        return MET_GOAL, XP_EVENTS["MET_DAILY_CALORIE_GOAL"]
    return EXCEEDED_GOAL, XP_EVENTS["EXCEEDED_DAILY_CALORIE_GOAL"]


def _already_checked(profile: dict, today_str: str) -> bool:
    # The marker only moves forward; ISO dates order as strings.
    return (profile.get("last_daily_xp_check") or "") >= today_str


def run_daily_check(db, user_id: str, today: date | None = None) -> DailyCheckResult:
    """
    Run the daily goal check for a user. Safe to call on every session start.

    Args:
        db: Database
        user_id: Profile owner
        today: The user's local calendar day (defaults to the server's)

    Raises:
        ProfileNotFound, TransactionConflictExhausted
    """
    today = today or date.today()
    today_str = today.isoformat()

    profile = db.get_profile(user_id)
    if profile is None:
        raise ProfileNotFound(user_id)
    if _already_checked(profile, today_str):
        return DailyCheckResult(status=ALREADY_CHECKED, day=today_str)

    yesterday = (today - timedelta(days=1)).isoformat()
    total_calories = float(db.get_day_totals(user_id, yesterday)["calories"] or 0)

    def check(tx):
        current = tx.read()
        if _already_checked(current, today_str):
            return DailyCheckResult(status=ALREADY_CHECKED, day=today_str)
        goal = float(current.get("daily_calorie_goal") or 0)
        status, xp_change = classify_day(total_calories, goal)
        xp = None
        if xp_change:
            xp = apply_xp_in_transaction(tx, xp_change, reason=f"daily_check:{status}")
        tx.update(last_daily_xp_check=today_str)
        return DailyCheckResult(
            status=status,
            day=today_str,
            total_calories=total_calories,
            calorie_goal=goal,
            xp_change=xp_change,
            xp=xp,
        )

    result = db.run_transaction(user_id, check)

    if result.status == MET_GOAL and unlock(db, user_id, "calorie-goal"):
        result.achievements.append("calorie-goal")

    if result.status != ALREADY_CHECKED:
        logger.info(
            f"Daily check for {user_id} on {today_str}: {result.status} "
            f"({total_calories:.0f}/{result.calorie_goal:.0f} kcal yesterday, XP {result.xp_change:+d})"
        )
    return result
