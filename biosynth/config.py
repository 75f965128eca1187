"""Centralized configuration for the BioSynth automation backend.

Re-exports everything from biosynth.infrastructure.settings, then adds typed
constants for the database, LLM, automation pipeline, scheduler, and API.
Environment variable overrides use safe defaults so the app starts without
extra env configuration.

Env vars use BIOSYNTH_* as primary with the bare name as fallback.
"""

from __future__ import annotations

import os

from biosynth.infrastructure.settings import *  # noqa: F401, F403  - re-export existing


def _env(new_key: str, old_key: str, default: str) -> str:
    """Read env var with BIOSYNTH_* primary and bare-name fallback."""
    return os.getenv(new_key, os.getenv(old_key, default))


def _env_bool(new_key: str, old_key: str, default: str) -> bool:
    return _env(new_key, old_key, default).strip().lower() in ("1", "true", "yes", "on")


# --- App ---
APP_VERSION: str = "1.0.0"

# --- Database ---
DB_POOL_SIZE: int = int(_env("BIOSYNTH_DB_POOL_SIZE", "DB_POOL_SIZE", "5"))
DB_POOL_TIMEOUT: float = float(_env("BIOSYNTH_DB_POOL_TIMEOUT", "DB_POOL_TIMEOUT", "5.0"))
DB_CONNECT_TIMEOUT: float = float(
    _env("BIOSYNTH_DB_CONNECT_TIMEOUT", "DB_CONNECT_TIMEOUT", "30.0")
)
DB_TEMP_CONN_MAX: int = int(_env("BIOSYNTH_DB_TEMP_CONN_MAX", "DB_TEMP_CONN_MAX", "10"))
DB_RETRY_MAX: int = int(_env("BIOSYNTH_DB_RETRY_MAX", "DB_RETRY_MAX", "5"))
DB_RETRY_BASE_DELAY: float = 0.1
DB_RETRY_MAX_DELAY: float = 2.0
DB_RETRY_JITTER: float = 0.1

# --- LLM ---
LLM_MAX_RETRIES: int = int(_env("BIOSYNTH_LLM_MAX_RETRIES", "LLM_MAX_RETRIES", "2"))
LLM_STATUS_BACKOFF_SECONDS: float = 2.0
LLM_RAW_TEXT_PREVIEW_CHARS: int = 500

# Words that mark a brace as part of a status/error message rather than the payload.
# Comma-separated override, e.g. BIOSYNTH_PARSER_STATUS_KEYWORDS="loading,error,warming up"
PARSER_STATUS_KEYWORDS: tuple[str, ...] = tuple(
    word.strip().lower()
    for word in _env(
        "BIOSYNTH_PARSER_STATUS_KEYWORDS",
        "PARSER_STATUS_KEYWORDS",
        "initialization,loading,error,processing",
    ).split(",")
    if word.strip()
)
PARSER_LOOKBACK_CHARS: int = 50

# --- Automation Pipeline ---
DAILY_ALGORITHMS_MIN: int = int(_env("BIOSYNTH_DAILY_ALGORITHMS_MIN", "DAILY_ALGORITHMS_MIN", "3"))
DAILY_ALGORITHMS_MAX: int = int(_env("BIOSYNTH_DAILY_ALGORITHMS_MAX", "DAILY_ALGORITHMS_MAX", "5"))
DAILY_SYNTHESES_MIN: int = int(_env("BIOSYNTH_DAILY_SYNTHESES_MIN", "DAILY_SYNTHESES_MIN", "2"))
DAILY_SYNTHESES_MAX: int = int(_env("BIOSYNTH_DAILY_SYNTHESES_MAX", "DAILY_SYNTHESES_MAX", "4"))
TOP_ALGORITHMS_FOR_SYNTHESIS: int = int(
    _env("BIOSYNTH_TOP_ALGORITHMS_FOR_SYNTHESIS", "TOP_ALGORITHMS_FOR_SYNTHESIS", "15")
)
UNANALYZED_ALGORITHMS_LIMIT: int = int(
    _env("BIOSYNTH_UNANALYZED_ALGORITHMS_LIMIT", "UNANALYZED_ALGORITHMS_LIMIT", "5")
)
ANALYSIS_INTERVAL_DAYS: int = int(
    _env("BIOSYNTH_ANALYSIS_INTERVAL_DAYS", "ANALYSIS_INTERVAL_DAYS", "7")
)
PROBLEM_CANDIDATE_LIMIT: int = 10
EXISTING_PROBLEM_PROBABILITY: float = 0.7
GENERATE_DELAY_SECONDS: float = 2.0
SYNTHESIZE_DELAY_SECONDS: float = 3.0
IMPROVE_DELAY_SECONDS: float = 2.0

# --- System user that owns automated content ---
SYSTEM_USER_EMAIL: str = "system@biosynth.ai"
SYSTEM_USER_NAME: str = "BioSynth System"
SYSTEM_USER_ROLE: str = "admin"

# --- Scheduler ---
SCHEDULER_ENABLED: bool = _env_bool("BIOSYNTH_SCHEDULER_ENABLED", "SCHEDULER_ENABLED", "true")
AUTOMATION_CRON: str = os.getenv("AUTOMATION_CRON", "0 2 * * *")
GENERATION_CRON: str = os.getenv("GENERATION_CRON", "0 * * * *")
SYNTHESIS_CRON: str = os.getenv("SYNTHESIS_CRON", "0 4 * * *")

# --- API ---
API_LOG_LIMIT_DEFAULT: int = 50
API_ALGORITHM_LIMIT_DEFAULT: int = 20
API_LIST_LIMIT_MAX: int = 500
API_STATUS_WINDOW_DAYS: int = 30
API_STATUS_RECENT_LIMIT: int = 20
API_SYSTEM_ALGORITHM_WINDOW_DAYS: int = 7
