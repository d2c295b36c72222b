import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# A quiz is always exactly this many questions; start, validation and scoring all rely on it.
QUIZ_QUESTION_COUNT = 25
CHOICE_LABELS = ("A", "B", "C", "D")


def _get_env(name: str, default: Optional[str] = None) -> str:
    val = os.getenv(name, default)
    if val is None or val.strip() == "":
        raise RuntimeError(f"Missing required environment variable: {name}")
    return val.strip()


def _parse_origins(raw: str) -> list[str]:
    raw = (raw or "").strip()
    if not raw or raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


DATABASE_URL = _get_env("DATABASE_URL", "sqlite:///./quiz.db")
AUTH_SERVICE_URL = _get_env("AUTH_SERVICE_URL", "http://auth-service:8001").rstrip("/")
AUTH_TIMEOUT_SECONDS = float(os.getenv("AUTH_TIMEOUT_SECONDS", "5.0"))
CORS_ORIGINS = _parse_origins(os.getenv("CORS_ORIGINS", "*"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", "8004"))
