"""Application configuration via environment variables."""

from pathlib import Path
from pydantic import model_validator
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    database_url: str = "sqlite:///./chartwatch.db"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000"]
    app_url: str = "http://localhost:3000"  # used for "View Full Analysis" links

    # Auth
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440  # 24 hours

    # Telegram
    telegram_bot_token: str = ""
    notify_timeout_seconds: float = 30.0

    # Analysis provider
    analysis_api_url: str = "http://localhost:3000/api/analyze"
    analysis_api_key: str = ""
    analysis_timeout_seconds: float = 120.0

    # Scheduler
    scheduler_enabled: bool = True
    scheduler_tick_seconds: int = 60
    scheduler_max_concurrent_runs: int = 3  # bounded by the analysis API rate limit
    lease_timeout_seconds: int = 900  # must exceed analysis + notify timeouts

    model_config = {"env_prefix": "CW_", "env_file": ".env"}

    @model_validator(mode="after")
    def _lease_outlives_run(self):
        run_budget = self.analysis_timeout_seconds + self.notify_timeout_seconds
        if self.lease_timeout_seconds <= run_budget:
            raise ValueError(
                f"lease_timeout_seconds ({self.lease_timeout_seconds}) must exceed analysis plus "
                f"notify timeouts ({run_budget:g}s), or live runs lose their lease"
            )
        return self


settings = Settings()
