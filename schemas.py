"""
Request and response schemas for NutriQuest

Every payload is validated here before it reaches the services.
- ProfileUpdate -> user_profiles (editable fields only; never xp/level)
- MealLogRequest / ParsedMeal -> meals
- WeightLogRequest / WeightUpdateRequest -> weight_measurements
Client-supplied days must sit within a day of the server's date, which
covers users a timezone ahead or behind.
"""

import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator


Gender = Literal["male", "female", "other"]
ActivityLevel = Literal[
    "sedentary", "lightly active", "moderately active", "very active", "extra active"
]


def _near_server_day(value: Optional[dt.date]) -> Optional[dt.date]:
    if value is not None and abs((value - dt.date.today()).days) > 1:
        raise ValueError("must be within one day of today")
    return value


class ProfileUpdate(BaseModel):
    """
    Profile edit form
    Collection: user_profiles
    """
    name: Optional[str] = Field(None, description="Display name")
    email: Optional[str] = Field(None, description="Contact email from the identity provider")
    daily_calorie_goal: Optional[float] = Field(None, gt=0, allow_inf_nan=False, description="kcal per day")
    current_weight: Optional[float] = Field(None, gt=0, allow_inf_nan=False, description="kg")
    weight_goal: Optional[float] = Field(None, gt=0, allow_inf_nan=False, description="kg")
    height: Optional[float] = Field(None, gt=0, allow_inf_nan=False, description="cm")
    age: Optional[int] = Field(None, gt=0, le=120, description="years")
    gender: Optional[Gender] = None
    activity_level: Optional[ActivityLevel] = None
    dietary_preferences: Optional[str] = Field(None, description="e.g. vegetarian, keto")


class ParsedMeal(BaseModel):
    """Nutrition facts the LLM returns for a meal description."""
    name: str = Field(..., min_length=1)
    calories: float = Field(..., ge=0, allow_inf_nan=False)
    protein: float = Field(0, ge=0, allow_inf_nan=False, description="grams")
    carbohydrates: float = Field(0, ge=0, allow_inf_nan=False, description="grams")
    fat: float = Field(0, ge=0, allow_inf_nan=False, description="grams")
    fiber: float = Field(0, ge=0, allow_inf_nan=False, description="grams")


class MealLogRequest(BaseModel):
    description: str = Field(..., min_length=3, description='e.g. "2 eggs and 1 slice of bacon"')
    date: Optional[dt.date] = Field(None, description="User's local day; defaults to today")

    check_date = field_validator("date")(_near_server_day)


class WeightLogRequest(BaseModel):
    weight: float = Field(..., gt=0, allow_inf_nan=False, description="kg")
    date: Optional[dt.date] = None


class WeightUpdateRequest(BaseModel):
    weight: float = Field(..., gt=0, allow_inf_nan=False, description="kg")


class DailyCheckRequest(BaseModel):
    today: Optional[dt.date] = Field(None, description="User's local calendar day")

    check_today = field_validator("today")(_near_server_day)


class GoalProjectionRequest(BaseModel):
    """Positivity and weight ordering are checked by services.bmr.project_goal."""
    current_weight: float = Field(..., allow_inf_nan=False)
    goal_weight: float = Field(..., allow_inf_nan=False)
    height: float = Field(..., allow_inf_nan=False)
    age: float = Field(..., allow_inf_nan=False)
    gender: Gender
    activity_level: ActivityLevel
    goal_timeline_weeks: int
    weekly_calorie_deficit: Optional[float] = Field(None, allow_inf_nan=False)
    dietary_preferences: Optional[str] = None
    apply_to_profile: bool = False
