"""
Application settings (Pydantic Settings).
"""
from pathlib import Path
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent

# .env next to backend/ (parent of volunteer_scheduler/)
_env_path = BASE_DIR.parent / ".env"


class Settings(BaseSettings):
    database_url: str = f"sqlite:///{BASE_DIR / 'scheduler.db'}"
    # Every wall-clock time in a weekly template is read in this zone
    timezone: str = "America/New_York"
    horizon_weeks: int = 12
    min_range_minutes: int = 60
    # Length of a visit booked at a requested start time inside a slot
    visit_minutes: int = 60
    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_", env_file=_env_path, extra="ignore")

    @field_validator("timezone", mode="after")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        v = (v or "").strip()
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown time zone: {v!r}") from exc
        return v

    @field_validator("horizon_weeks", "min_range_minutes", "visit_minutes", mode="after")
    @classmethod
    def positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v


settings = Settings()
