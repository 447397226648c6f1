"""Main FastAPI application for NutriQuest.

JSON API behind the dashboard:
 - Profile + goals, BMI
 - Meal logging (LLM-parsed descriptions) and weight tracking, both earning XP
 - Once-a-day calorie goal check (XP reward / penalty)
 - Goal projection (Mifflin-St Jeor BMR/TDEE + linear calorie deficit)
 - Achievements and daily tips

Identity comes from the upstream identity provider: the gateway forwards the
signed-in user's id in the X-User-Id header.
"""

from datetime import date
from typing import Optional

import uvicorn
import os
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load .env early so database + AI keys are available everywhere.
load_dotenv()

from database import Database, get_database
from logger import logger
from schemas import (
    DailyCheckRequest,
    GoalProjectionRequest,
    MealLogRequest,
    ProfileUpdate,
    WeightLogRequest,
    WeightUpdateRequest,
)
from services.achievements import list_achievements, unlock
from services.bmr import calculate_bmi, project_goal, projected_timeline_weeks
from services.daily_check import run_daily_check
from services.errors import (
    InvalidGoalError,
    LLMUnavailableError,
    MealDayClosed,
    MealNotFound,
    ProfileNotFound,
    TransactionConflictExhausted,
    WeightMeasurementNotFound,
)
from services.game_mechanics import xp_progress
from services.llm import generate_daily_tip, projection_tips
from services.tracking import day_summary, log_meal, log_weight, save_profile

# Initialize FastAPI app
app = FastAPI(title="NutriQuest", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _uid(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="not_authenticated")
    return x_user_id


def _profile_or_404(db: Database, uid: str) -> dict:
    profile = db.get_profile(uid)
    if not profile:
        raise ProfileNotFound(uid)
    return profile


# ---- Error mapping ----

@app.exception_handler(ProfileNotFound)
async def profile_not_found_handler(request: Request, exc: ProfileNotFound):
    return JSONResponse({"error": "profile_not_found", "detail": str(exc)}, status_code=404)


@app.exception_handler(MealNotFound)
@app.exception_handler(WeightMeasurementNotFound)
async def entry_not_found_handler(request: Request, exc: Exception):
    return JSONResponse({"error": "not_found", "detail": str(exc)}, status_code=404)


@app.exception_handler(TransactionConflictExhausted)
async def conflict_handler(request: Request, exc: TransactionConflictExhausted):
    logger.error(str(exc))
    return JSONResponse({"error": "conflict", "detail": "Please try again."}, status_code=409)


@app.exception_handler(MealDayClosed)
async def meal_day_closed_handler(request: Request, exc: MealDayClosed):
    return JSONResponse({"error": "meal_day_closed", "detail": str(exc)}, status_code=409)


@app.exception_handler(InvalidGoalError)
async def invalid_goal_handler(request: Request, exc: InvalidGoalError):
    return JSONResponse({"error": "invalid_goal", "errors": exc.errors}, status_code=422)


@app.exception_handler(LLMUnavailableError)
async def llm_unavailable_handler(request: Request, exc: LLMUnavailableError):
    return JSONResponse({"error": "llm_unavailable", "detail": str(exc)}, status_code=502)


# ---- Routes ----

@app.get("/")
def root():
    return {"message": "NutriQuest API is running"}


@app.get("/api/profile")
def get_profile(uid: str = Depends(_uid), db: Database = Depends(get_database)):
    profile = _profile_or_404(db, uid)
    return {
        "profile": profile,
        "bmi": calculate_bmi(profile.get("current_weight"), profile.get("height")),
        "xp": xp_progress(profile),
    }


@app.put("/api/profile")
def put_profile(payload: ProfileUpdate, uid: str = Depends(_uid), db: Database = Depends(get_database)):
    """Create or update the profile. XP and level are never writable here."""
    return save_profile(db, uid, payload.model_dump(exclude_unset=True))


@app.get("/api/xp")
def get_xp(uid: str = Depends(_uid), db: Database = Depends(get_database)):
    return xp_progress(_profile_or_404(db, uid))


@app.get("/api/xp/history")
def get_xp_history(limit: int = 50, uid: str = Depends(_uid), db: Database = Depends(get_database)):
    _profile_or_404(db, uid)
    return {"events": db.get_xp_events(uid, limit)}


@app.post("/api/daily-check")
def daily_check(
    payload: Optional[DailyCheckRequest] = None,
    uid: str = Depends(_uid),
    db: Database = Depends(get_database),
):
    """Called by the app shell on every session start; no-op after the first run of the day."""
    today = payload.today if payload else None
    return run_daily_check(db, uid, today).to_dict()


@app.post("/api/meals")
def add_meal(payload: MealLogRequest, uid: str = Depends(_uid), db: Database = Depends(get_database)):
    return log_meal(db, uid, payload.description, payload.date)


@app.get("/api/meals")
def get_meals(day: Optional[date] = None, uid: str = Depends(_uid), db: Database = Depends(get_database)):
    return day_summary(db, uid, day or date.today())


@app.delete("/api/meals/{meal_id}")
def delete_meal(meal_id: int, uid: str = Depends(_uid), db: Database = Depends(get_database)):
    db.delete_meal(uid, meal_id)
    return {"status": "deleted"}


@app.post("/api/weight")
def add_weight(payload: WeightLogRequest, uid: str = Depends(_uid), db: Database = Depends(get_database)):
    return log_weight(db, uid, payload.weight, payload.date)


@app.get("/api/weight")
def get_weight_history(uid: str = Depends(_uid), db: Database = Depends(get_database)):
    _profile_or_404(db, uid)
    return {"measurements": db.get_weight_measurements(uid)}


@app.patch("/api/weight/{measurement_id}")
def edit_weight(
    measurement_id: int,
    payload: WeightUpdateRequest,
    uid: str = Depends(_uid),
    db: Database = Depends(get_database),
):
    return db.update_weight_measurement(uid, measurement_id, payload.weight)


@app.delete("/api/weight/{measurement_id}")
def delete_weight(measurement_id: int, uid: str = Depends(_uid), db: Database = Depends(get_database)):
    db.delete_weight_measurement(uid, measurement_id)
    return {"status": "deleted"}


@app.post("/api/goal-projection")
def goal_projection(payload: GoalProjectionRequest, uid: str = Depends(_uid), db: Database = Depends(get_database)):
    """Deterministic calorie plan for a goal weight and timeline, plus optional AI tips."""
    projection = project_goal(
        payload.current_weight,
        payload.goal_weight,
        payload.height,
        payload.age,
        payload.gender,
        payload.activity_level,
        payload.goal_timeline_weeks,
    )
    result = projection.rounded()
    if payload.weekly_calorie_deficit is not None:
        weeks = projected_timeline_weeks(payload.current_weight, payload.goal_weight, payload.weekly_calorie_deficit)
        result["projected_timeline_weeks"] = round(weeks, 1)

    profile = db.get_profile(uid)
    achievements = []
    if payload.apply_to_profile:
        if profile is None:
            raise ProfileNotFound(uid)
        db.update_profile(uid, daily_calorie_goal=round(projection.recommended_daily_calories))
    if profile is not None and unlock(db, uid, "ai-genius"):
        achievements.append("ai-genius")

    tips = projection_tips(payload.model_dump(), result, payload.goal_timeline_weeks)
    return {"projection": result, "personalized_tips": tips, "achievements": achievements}


@app.get("/api/tip")
def daily_tip(uid: str = Depends(_uid), db: Database = Depends(get_database)):
    return {"tip": generate_daily_tip(_profile_or_404(db, uid))}


@app.get("/api/achievements")
def achievements(uid: str = Depends(_uid), db: Database = Depends(get_database)):
    return {"achievements": list_achievements(db, uid)}


# Health check
@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "NutriQuest"}

if __name__ == "__main__":
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
