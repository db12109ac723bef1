"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. Keeps the rest of the app decoupled from how config is sourced.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


# Chat persistence (SQLite, relative to project root)
CHAT_DB_NAME: str = "data/chats.db"

# CORE API (paper search + work detail)
CORE_API_URL: str = os.getenv("CORE_API_URL", "https://api.core.ac.uk/v3").strip().rstrip("/")
CORE_API_KEY: str = os.getenv("CORE_API_KEY", "").strip()
SEARCH_LIMIT: int = _env_int("SEARCH_LIMIT", 15)
SEARCH_FIELDS: tuple[str, ...] = ("id", "title", "abstract", "downloadUrl")

# Hugging Face (fallback generation provider)
HF_API_KEY: str = os.getenv("HF_API_KEY", "").strip()
HF_CHAT_URL: str = "https://router.huggingface.co/v1/chat/completions"
HF_LLM_MODEL: str = (
    os.getenv("HF_LLM_MODEL", "meta-llama/Llama-3.2-3B-Instruct").strip()
    or "meta-llama/Llama-3.2-3B-Instruct"
)

# OpenAI (primary generation provider). When set, OpenAI is used instead of Hugging Face.
OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "").strip()
OPENAI_LLM_MODEL: str = (
    os.getenv("OPENAI_LLM_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini"
)
LLM_TEMPERATURE: float = _env_float("LLM_TEMPERATURE", 0.7)

# Token budgets per call class
CLASSIFY_MAX_TOKENS: int = 64
QUERY_MAX_TOKENS: int = 100
GENERATE_MAX_TOKENS: int = 4096

# API timeouts (seconds)
LLM_API_TIMEOUT: float = 60.0
SEARCH_API_TIMEOUT: float = 30.0
FULL_TEXT_TIMEOUT: float = 30.0

# Rate limiting: one bucket for classification calls, one for generation calls.
# Both refill to capacity every RESERVOIR_REFRESH_SECONDS (15 RPM free tier).
CLASSIFY_RESERVOIR: int = _env_int("CLASSIFY_RESERVOIR", 15)
GENERATE_RESERVOIR: int = _env_int("GENERATE_RESERVOIR", 15)
RESERVOIR_REFRESH_SECONDS: float = _env_float("RESERVOIR_REFRESH_SECONDS", 60.0)
MAX_CONCURRENT: int = _env_int("MAX_CONCURRENT", 1)
MIN_TIME_SECONDS: float = _env_float("MIN_TIME_SECONDS", 4.0)

# Daily quota is provider-wide. SHARED_DAILY_QUOTA=false gives each scheduler its own counter.
DAILY_QUOTA_LIMIT: int = _env_int("DAILY_QUOTA_LIMIT", 1500)
SHARED_DAILY_QUOTA: bool = _env_bool("SHARED_DAILY_QUOTA", True)
QUOTA_AUTO_RESET: bool = _env_bool("QUOTA_AUTO_RESET", True)

# Backoff (transient provider errors only)
BACKOFF_RETRIES: int = _env_int("BACKOFF_RETRIES", 3)
BACKOFF_INITIAL_DELAY: float = _env_float("BACKOFF_INITIAL_DELAY", 1.0)

# Optional wall-clock limit around each scheduled call (unset = no limit)
SCHEDULER_CALL_TIMEOUT: float | None = _env_float("SCHEDULER_CALL_TIMEOUT", None)

# Prompt context sizes
HISTORY_MAX_MESSAGES: int = 6
SECTION_MAX_CHARS: int = 6000
ABSTRACT_MAX_CHARS: int = 1500
