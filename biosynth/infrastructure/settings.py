"""
Application-wide settings and environment configuration
"""

import os
from pathlib import Path

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent.parent
BIOSYNTH_ROOT = Path(__file__).parent.parent

# Environment
ENV = os.getenv("BIOSYNTH_ENV", "development")
DEBUG = ENV == "development"

# API Configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Google Cloud / Gemini
GOOGLE_CLOUD_PROJECT = os.getenv("GOOGLE_CLOUD_PROJECT")
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_LOCATION = os.getenv("GEMINI_LOCATION", "us-central1")
GEMINI_MAX_TOKENS = int(os.getenv("GEMINI_MAX_TOKENS", "8192"))
GEMINI_TEMPERATURE = float(os.getenv("GEMINI_TEMPERATURE", "1.0"))

# Scheduler timezone (crontab expressions are evaluated in this zone)
SCHEDULER_TIMEZONE = os.getenv("TZ", "UTC")

# Database
DB_PATH = BIOSYNTH_ROOT / "data" / "biosynth.db"


def is_development() -> bool:
    """Check if running in development"""
    return ENV == "development"
