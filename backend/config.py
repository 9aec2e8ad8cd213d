import os

from dotenv import load_dotenv

load_dotenv()


def _csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")

# Models
DEFAULT_MODEL = os.getenv("AGENT_MODEL", "claude-sonnet-4-5")
FALLBACK_MODELS = _csv(os.getenv("AGENT_FALLBACK_MODELS", ""))
# Models whose name contains this marker reject a sampling temperature
NO_TEMPERATURE_MARKER = os.getenv("AGENT_NO_TEMPERATURE_MARKER", "nano")

# Local rate limiting: RATE_LIMIT_MAX attempts per key per rolling window
RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", "2"))
RATE_LIMIT_WINDOW_SECONDS = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

# Provider retries on rate-limit responses
PROVIDER_MAX_RETRIES = int(os.getenv("PROVIDER_MAX_RETRIES", "1"))
PROVIDER_MAX_WAIT_SECONDS = float(os.getenv("PROVIDER_MAX_WAIT_SECONDS", "8"))

# Due dates older than this (relative to confirmation) are dropped
DUE_DATE_GRACE_SECONDS = int(os.getenv("DUE_DATE_GRACE_SECONDS", "60"))

SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "1") == "1"
SCHEDULER_INTERVAL_SECONDS = float(os.getenv("SCHEDULER_INTERVAL_SECONDS", "60"))

DATABASE_PATH = os.getenv("DATABASE_PATH", "tasks.db")

CORS_ALLOW_ORIGINS = _csv(os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:5173"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
