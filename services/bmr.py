"""BMR, TDEE and goal projection calculations."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass

from config import KCAL_PER_KG_FAT, OTHER_GENDER_BMR_OFFSET
from services.errors import InvalidGoalError


GENDER_BMR_OFFSETS = {
    "male": 5.0,
    "female": -161.0,
    "other": OTHER_GENDER_BMR_OFFSET,
}

ACTIVITY_FACTORS = {
    "sedentary": 1.2,
    "lightly active": 1.375,
    "moderately active": 1.55,
    "very active": 1.725,
    "extra active": 1.9,
}


@dataclass(frozen=True)
class GoalProjection:
    bmr: float
    tdee: float
    total_deficit: float
    required_weekly_deficit: float
    daily_deficit: float
    recommended_daily_calories: float

    def rounded(self) -> dict:
        """Presentation values: kcal rounded to one decimal."""
        return {k: round(v, 1) for k, v in asdict(self).items()}


def normalize_activity_level(activity_level: str) -> str:
    return " ".join(activity_level.lower().replace("_", " ").replace("-", " ").split())


def calculate_bmr(weight, height, age, gender):
    """
    Calculate Basal Metabolic Rate using Mifflin-St Jeor Equation.

    Args:
        weight: Weight in kg
        height: Height in cm
        age: Age in years
        gender: 'male', 'female' or 'other'

    Returns:
        BMR in calories/day
    """
    offset = GENDER_BMR_OFFSETS[gender.lower()]
    return (10 * weight) + (6.25 * height) - (5 * age) + offset


def calculate_tdee(bmr, activity_level):
    """
    Calculate Total Daily Energy Expenditure.

    Args:
        bmr: Basal Metabolic Rate
        activity_level: One of ACTIVITY_FACTORS (case, '_' and '-' tolerant)

    Returns:
        TDEE in calories/day
    """
    return bmr * ACTIVITY_FACTORS[normalize_activity_level(activity_level)]


def calculate_bmi(weight, height):
    """BMI rounded to one decimal, or None when either value is missing."""
    if not weight or not height:
        return None
    height_m = height / 100
    return round(weight / (height_m * height_m), 1)


def _validate(current_weight, goal_weight, height, age, gender, activity_level, goal_timeline_weeks):
    errors = {}
    for name, value in (
        ("current_weight", current_weight),
        ("goal_weight", goal_weight),
        ("height", height),
        ("age", age),
    ):
        if value is None or not math.isfinite(value) or value <= 0:
            errors[name] = "must be greater than 0"
    if goal_timeline_weeks is None or goal_timeline_weeks < 1:
        errors["goal_timeline_weeks"] = "must be at least 1 week"
    if (gender or "").lower() not in GENDER_BMR_OFFSETS:
        errors["gender"] = f"must be one of {', '.join(GENDER_BMR_OFFSETS)}"
    if normalize_activity_level(activity_level or "") not in ACTIVITY_FACTORS:
        errors["activity_level"] = f"must be one of {', '.join(ACTIVITY_FACTORS)}"
    if "current_weight" not in errors and "goal_weight" not in errors and current_weight <= goal_weight:
        errors["goal_weight"] = "must be lower than the current weight"
    if errors:
        raise InvalidGoalError(errors)


def project_goal(current_weight, goal_weight, height, age, gender, activity_level, goal_timeline_weeks):
    """
    Daily calorie target that reaches goal_weight in goal_timeline_weeks.

    Uses a linear model where every kg of fat lost is KCAL_PER_KG_FAT of
    cumulative deficit below TDEE. Nothing is rounded here.

    Raises:
        InvalidGoalError: non-positive or non-finite input, unknown gender or activity
            level, or no weight to lose
    """
    _validate(current_weight, goal_weight, height, age, gender, activity_level, goal_timeline_weeks)

    bmr = calculate_bmr(current_weight, height, age, gender)
    tdee = calculate_tdee(bmr, activity_level)
    total_deficit = (current_weight - goal_weight) * KCAL_PER_KG_FAT
    weekly_deficit = total_deficit / goal_timeline_weeks
    daily_deficit = weekly_deficit / 7

    return GoalProjection(
        bmr=bmr,
        tdee=tdee,
        total_deficit=total_deficit,
        required_weekly_deficit=weekly_deficit,
        daily_deficit=daily_deficit,
        recommended_daily_calories=tdee - daily_deficit,
    )


def projected_timeline_weeks(current_weight, goal_weight, weekly_calorie_deficit):
    """Weeks needed to reach goal_weight at a steady weekly deficit."""
    errors = {}
    deficit = weekly_calorie_deficit
    if deficit is None or not math.isfinite(deficit) or deficit <= 0:
        errors["weekly_calorie_deficit"] = "must be greater than 0"
    if current_weight <= goal_weight:
        errors["goal_weight"] = "must be lower than the current weight"
    if errors:
        raise InvalidGoalError(errors)
    return (current_weight - goal_weight) * KCAL_PER_KG_FAT / weekly_calorie_deficit
