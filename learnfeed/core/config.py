"""
Configuration constants for the application.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).resolve().parent.parent.parent / '.env'
load_dotenv(dotenv_path=env_path)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


# Frame rate assumed when a reflection is pinned by frame number instead of seconds.
VIDEO_FPS = _int_env("VIDEO_FPS", 30)

# A single video counts as watched at or above this percent.
VIDEO_COMPLETED_PERCENT = _int_env("VIDEO_COMPLETED_PERCENT", 95)

# An enrollment counts as completed at or above this percent.
COURSE_COMPLETION_PERCENT = _int_env("COURSE_COMPLETION_PERCENT", 100)

# Feed preview lengths (characters)
PREVIEW_LENGTH = _int_env("ACTIVITY_PREVIEW_LENGTH", 200)
PREFIXED_PREVIEW_LENGTH = _int_env("ACTIVITY_PREFIXED_PREVIEW_LENGTH", 100)
AI_CHAT_PREVIEW_LENGTH = _int_env("ACTIVITY_AI_CHAT_PREVIEW_LENGTH", 150)

# Day boundaries for "activities by day" views.
ACTIVITY_TIMEZONE = os.getenv("ACTIVITY_TIMEZONE", "America/New_York")

# JWT signing secret. Falls back to a development key when unset.
SECRET_KEY = os.getenv("SECRET_KEY", os.getenv("JWT_SECRET_KEY", ""))
