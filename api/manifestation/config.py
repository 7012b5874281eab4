import os
from pathlib import Path

_default_questions = Path(__file__).resolve().parent / "data" / "questions.json"
QUESTIONS_PATH = Path(os.getenv("QUESTIONS_PATH", str(_default_questions)))
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///manifestation.db")
MIGRATIONS_DIR = os.getenv("MIGRATIONS_DIR", "").strip()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

SESSION_TIMEOUT_DAYS = int(os.getenv("SESSION_TIMEOUT_DAYS", "30"))
DEFAULT_PREFILL_FROM_LAST_SESSION = os.getenv("DEFAULT_PREFILL_FROM_LAST_SESSION", "true").lower() == "true"

PEER_PUBLISH_URL = os.getenv("PEER_PUBLISH_URL", "").strip()
PUBLISH_TIMEOUT_SECONDS = float(os.getenv("PUBLISH_TIMEOUT_SECONDS", "10"))

MIN_RATING = 1
MAX_RATING = 10

# settings table keys
SETTING_SESSION_ID = "session_id"
SETTING_PREFILL = "prefill_from_last_session"
SETTING_NETWORK_SHARING = "network_sharing"
SETTING_GOAL_SCORE = "goal_score"
LAST_ACTIVE_PREFIX = "last_active_"


def last_active_key(session_id: str) -> str:
    return f"{LAST_ACTIVE_PREFIX}{session_id}"
