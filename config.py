import os
from dotenv import load_dotenv

# Load .env from project root (same folder as main.py)
load_dotenv()

ENV = os.getenv("ENV", "development")
DEBUG = os.getenv("DEBUG", "False").lower() == "true"

# DATABASE_PATH wins; otherwise a sqlite:/// URL is turned into a file path
DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("DATABASE_URI") or "sqlite:///./nutriquest.db"
DATABASE_PATH = os.getenv("DATABASE_PATH") or (
    DATABASE_URL.replace("sqlite:///", "", 1) if DATABASE_URL.startswith("sqlite:///") else "nutriquest.db"
)

# Optimistic transactions on user_profiles give up after this many attempts
MAX_TRANSACTION_ATTEMPTS = int(os.getenv("MAX_TRANSACTION_ATTEMPTS", "5"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.getenv("LOG_DIR", "")

# API Keys
GROQ_API_KEY = os.getenv("GROQ_API_KEY", "")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.1-8b-instant")

OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")
OPENROUTER_MODEL = os.getenv("OPENROUTER_MODEL", "google/gemma-2-9b-it")
OPENROUTER_SITE = os.getenv("OPENROUTER_SITE", "http://localhost")
OPENROUTER_APP = os.getenv("OPENROUTER_APP", "NutriQuest")

# Game mechanics
XP_PER_LEVEL = 100
XP_EVENTS = {
    "LOG_MEAL": 10,
    "LOG_WEIGHT": 15,
    "MET_DAILY_CALORIE_GOAL": 25,
    "EXCEEDED_DAILY_CALORIE_GOAL": -10,
}

# Goal projection
KCAL_PER_KG_FAT = 7700
# No published Mifflin-St Jeor constant exists for "other"; default is the
# midpoint of the male (+5) and female (-161) offsets.
OTHER_GENDER_BMR_OFFSET = float(os.getenv("OTHER_GENDER_BMR_OFFSET", "-78"))

# Feature flags
ENABLE_AI_TIPS = os.getenv("ENABLE_AI_TIPS", "True").lower() == "true"
