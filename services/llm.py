"""LLM wrapper.

Primary: Groq (OpenAI-compatible) if GROQ_API_KEY is set.
Fallback: OpenRouter if OPENROUTER_API_KEY is set.

Used for meal parsing, daily tips and projection coaching text. Meal parsing
has no sensible offline answer, so it raises LLMUnavailableError; the text
helpers fall back to rule-based copy.
"""

from __future__ import annotations

import json
import re

import requests
from pydantic import ValidationError

import config
from logger import logger
from schemas import ParsedMeal
from services.errors import LLMUnavailableError


def openrouter_chat(messages: list[dict], *, model: str | None = None, max_tokens: int = 350) -> str | None:
    key = config.OPENROUTER_API_KEY
    if not key:
        return None
    url = "https://openrouter.ai/api/v1/chat/completions"
    payload = {
        "model": model or config.OPENROUTER_MODEL,
        "messages": messages,
        "temperature": 0.2,
        "max_tokens": max_tokens,
    }
    headers = {
        "Authorization": f"Bearer {key}",
        "Content-Type": "application/json",
        # optional but recommended by OpenRouter
        "HTTP-Referer": config.OPENROUTER_SITE,
        "X-Title": config.OPENROUTER_APP,
    }
    try:
        r = requests.post(url, headers=headers, data=json.dumps(payload), timeout=25)
        r.raise_for_status()
        data = r.json() or {}
        return (((data.get("choices") or [{}])[0]).get("message") or {}).get("content")
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"OpenRouter request failed: {e}")
        return None


def groq_chat(messages: list[dict], *, model: str | None = None, max_tokens: int = 350) -> str | None:
    key = config.GROQ_API_KEY
    if not key:
        return None
    url = "https://api.groq.com/openai/v1/chat/completions"
    payload = {
        "model": model or config.GROQ_MODEL,
        "messages": messages,
        "temperature": 0.2,
        "max_tokens": max_tokens,
    }
    try:
        r = requests.post(url, headers={"Authorization": f"Bearer {key}", "Content-Type": "application/json"}, data=json.dumps(payload), timeout=20)
        r.raise_for_status()
        data = r.json() or {}
        return (((data.get("choices") or [{}])[0]).get("message") or {}).get("content")
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"Groq request failed: {e}")
        return None


def answer(prompt: str, *, system: str = "You are a careful, encouraging diet and fitness coach.") -> str | None:
    msg = [
        {"role": "system", "content": system},
        {"role": "user", "content": prompt},
    ]
    g = groq_chat(msg)
    if g:
        return g.strip()
    o = openrouter_chat(msg)
    if o:
        return o.strip()
    return None


def extract_json(text: str) -> dict:
    """Pull the first JSON object out of a model reply (tolerates ``` fences)."""
    match = re.search(r"\{.*\}", text, re.DOTALL)
    if not match:
        raise ValueError("no JSON object in reply")
    return json.loads(match.group(0))


def parse_meal(description: str) -> ParsedMeal:
    """
    Turn a free-text meal description into nutrition facts.

    Raises:
        LLMUnavailableError: no provider answered, or the answer did not
            match the nutrition schema
    """
    prompt = f"""Analyze the following food description and estimate its nutritional information.

Food description: {description}

Return ONLY a JSON object with these keys:
  "name": short name of the meal,
  "calories": total kcal,
  "protein": total protein in grams,
  "carbohydrates": total carbohydrates in grams,
  "fat": total fat in grams,
  "fiber": total fiber in grams"""
    reply = answer(prompt, system="You are an expert nutritionist. Reply with JSON only.")
    if not reply:
        raise LLMUnavailableError("No LLM provider is available to analyze the meal")
    try:
        return ParsedMeal(**extract_json(reply))
    except (ValueError, TypeError, ValidationError) as e:
        logger.warning(f"Unusable meal analysis from LLM: {e}")
        raise LLMUnavailableError("The AI could not analyze this meal; try describing it in more detail") from e


def _fallback_tip(profile: dict) -> str:
    name = profile.get("name")
    greeting = f"Hi {name}! " if name else ""
    current = profile.get("current_weight")
    goal = profile.get("weight_goal")
    if current and goal and current > goal:
        return f"{greeting}Every logged meal brings you closer to {goal:g} kg. Keep a glass of water next to you today."
    if (profile.get("activity_level") or "").lower() in ("sedentary", "lightly active"):
        return f"{greeting}How about a 10 minute walk today? Small steps lead to big results."
    return f"{greeting}Log your meals as you go today. Consistency beats perfection."


def generate_daily_tip(profile: dict) -> str:
    """Short motivational tip; rule-based when AI tips are off or unavailable."""
    if not config.ENABLE_AI_TIPS:
        return _fallback_tip(profile)
    prompt = f"""Write one short, motivating, personalized daily tip for this user.
Name: {profile.get('name') or 'unknown'}
Current weight: {profile.get('current_weight') or 'unknown'} kg
Goal weight: {profile.get('weight_goal') or 'unknown'} kg
Activity level: {profile.get('activity_level') or 'unknown'}
Dietary preferences: {profile.get('dietary_preferences') or 'none'}

Reply with the tip only, at most two sentences."""
    return answer(prompt) or _fallback_tip(profile)


def projection_tips(profile: dict, projection: dict, timeline_weeks: float) -> str | None:
    """Coaching text for a goal projection, or None without an LLM."""
    if not config.ENABLE_AI_TIPS:
        return None
    prompt = f"""The user wants to go from {profile.get('current_weight')} kg to {profile.get('goal_weight')} kg in {timeline_weeks:g} weeks.
Activity level: {profile.get('activity_level')}
Dietary preferences: {profile.get('dietary_preferences') or 'none'}
Estimated TDEE: {projection['tdee']} kcal/day
Recommended intake: {projection['recommended_daily_calories']} kcal/day

Give 3 short, practical tips for reaching the goal. If the recommended intake is below 1200 kcal/day, say the timeline is too aggressive."""
    return answer(prompt)
