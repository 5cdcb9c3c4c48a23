"""
Shift Tasks Notifier — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str
    TELEGRAM_MODE: str = "polling"     # "polling" | "webhook"
    WEBHOOK_URL: str = ""              # public base URL, e.g. https://example.com
    WEBHOOK_PATH: str = "/api/telegram/webhook"
    PORT: int = 3001

    # SQLite
    DATABASE_PATH: str = "data/tasks.db"

    # Scheduling
    TIMEZONE: str = "Asia/Jerusalem"
    TICK_SECONDS: int = 60
    SEND_TIMEOUT_SECONDS: float = 10.0

    # Free-text "done N" commands close tasks of this role
    DONE_COMMAND_ROLE: str = "Management"

    # Security: empty means anyone can register
    ALLOWED_USER_IDS: list[int] = []

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("TELEGRAM_MODE", mode="before")
    @classmethod
    def parse_mode(cls, v: str) -> str:
        mode = (v or "polling").strip().lower()
        if mode not in ("polling", "webhook"):
            raise ValueError(f"TELEGRAM_MODE must be 'polling' or 'webhook', got {v!r}")
        return mode


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        TELEGRAM_MODE=os.getenv("TELEGRAM_MODE", "polling"),
        WEBHOOK_URL=os.getenv("WEBHOOK_URL", ""),
        WEBHOOK_PATH=os.getenv("WEBHOOK_PATH", "/api/telegram/webhook"),
        PORT=os.getenv("PORT", "3001"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/tasks.db"),
        TIMEZONE=os.getenv("TIMEZONE", "Asia/Jerusalem"),
        TICK_SECONDS=os.getenv("TICK_SECONDS", "60"),
        SEND_TIMEOUT_SECONDS=os.getenv("SEND_TIMEOUT_SECONDS", "10"),
        DONE_COMMAND_ROLE=os.getenv("DONE_COMMAND_ROLE", "Management"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
    )


# Singleton — imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
