"""Environment-driven settings for the Tunetrails API."""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///tunetrails.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer tokens expire after a day unless overridden
    TOKEN_MAX_AGE = int(os.getenv("TOKEN_MAX_AGE", "86400"))

    CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",")]

    # Zoom server-to-server OAuth app
    ZOOM_ACCOUNT_ID = os.getenv("ZOOM_ACCOUNT_ID")
    ZOOM_CLIENT_ID = os.getenv("ZOOM_CLIENT_ID")
    ZOOM_CLIENT_SECRET = os.getenv("ZOOM_CLIENT_SECRET")
    ZOOM_TIMEOUT = int(os.getenv("ZOOM_TIMEOUT", "15"))

    AVATAR_BUCKET = os.getenv("AVATAR_BUCKET")

    # Lesson times are wall-clock times in this zone
    TIMEZONE = os.getenv("TIMEZONE", "Africa/Nairobi")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
