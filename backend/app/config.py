"""
backend/app/config.py

Purpose:
    Central settings loading for backend services, including the fixed
    wager economics (cost, payout, starting balance).

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    MONGO_URI: str
    MONGO_DB: str = "courtside"
    # Requires a replica set; without it placement/settlement fall back to ordered writes
    MONGO_TRANSACTIONS: bool = False
    JWT_SECRET: str
    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"
    COOKIE_SECURE: bool = False  # Set True in production (HTTPS)
    LOG_LEVEL: str = "INFO"

    # JWT settings
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # The Odds API
    ODDSAPIKEY: str = ""
    THEODDSAPI_BASE_URL: str = "https://api.the-odds-api.com/v4"
    ODDS_SPORT_KEY: str = "basketball_nba"
    TRACKED_TEAM: str = "Cleveland Cavaliers"

    # Wager economics (process-wide, never per request)
    WAGER_COST: int = 100
    WAGER_PAYOUT: int = 200  # includes the original stake
    STARTING_POINTS: int = 1000

    # Seed admin user (leave empty to skip seeding)
    SEED_ADMIN_EMAIL: str = ""
    SEED_ADMIN_PASSWORD: str = ""

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _check_economics(self) -> "Settings":
        if self.WAGER_COST <= 0:
            raise ValueError("WAGER_COST must be positive.")
        if self.WAGER_PAYOUT <= self.WAGER_COST:
            raise ValueError("WAGER_PAYOUT must exceed WAGER_COST.")
        return self


settings = Settings()
