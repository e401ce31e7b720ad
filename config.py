"""
Dearly Configuration

Environment-driven settings for the Dearly backend and the client-side
game/reward logic. Values are read once at import time; a local .env file
is honoured through python-dotenv.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# Service
PORT = int(os.getenv("PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("DEARLY_CORS_ORIGINS", "*").split(",")
    if origin.strip()
]

# Client
BACKEND_URL = os.getenv("DEARLY_BACKEND_URL", "http://localhost:5000").rstrip("/")
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", 8))

# Notifications re-fetch after mark-as-read / clear
NOTIFICATION_REFRESH_ATTEMPTS = int(os.getenv("NOTIFICATION_REFRESH_ATTEMPTS", 3))
NOTIFICATION_REFRESH_BASE_DELAY = float(os.getenv("NOTIFICATION_REFRESH_BASE_DELAY", 0.5))

# Audio proxy
AUDIO_STORAGE_BASE_URL = os.getenv("AUDIO_STORAGE_BASE_URL", "").rstrip("/")
AUDIO_CACHE_TTL_DAYS = int(os.getenv("AUDIO_CACHE_TTL_DAYS", 30))

# Games
GAME_TYPES = ["quiz", "memory-match"]
GAME_TYPE_LABELS = {
    "quiz": "Quiz Game",
    "memory-match": "Memory Match",
}
MEMORY_MATCH_TITLE = "Memory Match"
REWARD_SLOTS = 3


def get_api_url(path: str, base_url: str = None) -> str:
    """Join an API path onto the backend URL without doubling slashes."""
    base = (base_url if base_url is not None else BACKEND_URL).rstrip("/")
    clean_path = path if path.startswith("/") else f"/{path}"
    return f"{base}{clean_path}"
