"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Dreamplan Backend"
    debug: bool = False
    log_level: str = "INFO"
    scheduling_log_level: str | None = None
    database_url: str = "postgresql+psycopg2://dreamplan@localhost:5432/dreamplan"
    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "dreamplan"

    # Scheduling defaults; weekdays are 0=Monday .. 6=Sunday.
    schedule_global_daily_cap: int = 5
    schedule_per_goal_daily_cap: int = 1
    schedule_per_goal_cap_ceiling: int = 3
    schedule_target_per_week: int = 3
    schedule_rest_days: list[int] = [6]
    schedule_min_seed_gap_days: int = 1
    schedule_max_search_days: int = 365
    schedule_default_timezone: str = "UTC"

    scheduler_enabled: bool = False
    scheduler_timezone: str = "UTC"
    nightly_job_hour: int = 2
    nightly_job_minute: int = 0
    jobs_run_on_startup: bool = False


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
