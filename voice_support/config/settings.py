"""
Environment-driven settings.

Values are read once at import time, after a ``.env`` file in the working
directory (if present) has been loaded, so local overrides apply.
"""

import os
from pathlib import Path

import dotenv

from voice_support.config.constants import (
    DEFAULT_REALTIME_MODEL,
    DEFAULT_REALTIME_URL,
    DEFAULT_VOICE,
)

# Load environment variables from .env file if it exists
env_path = Path(".") / ".env"
if env_path.exists():
    dotenv.load_dotenv(env_path)

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_REALTIME_MODEL = os.getenv("OPENAI_REALTIME_MODEL", DEFAULT_REALTIME_MODEL)
OPENAI_REALTIME_URL = os.getenv("OPENAI_REALTIME_URL", DEFAULT_REALTIME_URL)
REALTIME_VOICE = os.getenv("REALTIME_VOICE", DEFAULT_VOICE)

# Commerce backend; the in-memory connector is used when no URL is configured
COMMERCE_API_URL = os.getenv("COMMERCE_API_URL", "")
COMMERCE_API_KEY = os.getenv("COMMERCE_API_KEY", "")
COMMERCE_TIMEOUT = float(os.getenv("COMMERCE_TIMEOUT", "10"))

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
