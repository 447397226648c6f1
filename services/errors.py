"""Error types raised by the NutriQuest services.

The API layer (main.py) maps each of these onto an HTTP status.
"""

from __future__ import annotations


class NutriQuestError(Exception):
    """Base class for all domain errors."""


class ProfileNotFound(NutriQuestError):
    def __init__(self, user_id: str):
        super().__init__(f"User profile {user_id!r} does not exist")
        self.user_id = user_id


class TransactionConflictExhausted(NutriQuestError):
    """Concurrent writers kept winning; the caller may retry later."""

    def __init__(self, user_id: str, attempts: int):
        super().__init__(
            f"Profile {user_id!r} kept changing underneath the transaction; "
            f"gave up after {attempts} attempts"
        )
        self.user_id = user_id
        self.attempts = attempts


class InvalidGoalError(NutriQuestError):
    """Goal projection input failed validation.

    `errors` maps the offending field name to a human readable message.
    """

    def __init__(self, errors: dict[str, str]):
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()))
        self.errors = errors


class MealNotFound(NutriQuestError):
    def __init__(self, meal_id: int):
        super().__init__(f"Meal {meal_id} not found")
        self.meal_id = meal_id


class WeightMeasurementNotFound(NutriQuestError):
    def __init__(self, measurement_id: int):
        super().__init__(f"Weight measurement {measurement_id} not found")
        self.measurement_id = measurement_id


class LLMUnavailableError(NutriQuestError):
    """No LLM provider returned a usable answer."""


class MealDayClosed(NutriQuestError):
    """The day was already scored by the daily check."""

    def __init__(self, day: str):
        super().__init__(f"Meals for {day} can no longer be changed; that day has been scored")
        self.day = day
