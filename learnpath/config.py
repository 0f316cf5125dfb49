"""
Application configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./learnpath.db"

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    # API Settings
    api_v1_prefix: str = "/api/v1"
    project_name: str = "Learning Progression Engine"
    version: str = "0.3.0"

    # Heart economy
    max_hearts: int = 5
    heart_refill_minutes: int = 20
    recovery_pass_score: int = 50  # percent

    # Quiz sizes
    quiz_question_count: int = 10
    recovery_question_count: int = 5

    # Rewards
    daily_goal_xp: int = 30

    # Optional JSON catalog (skill tree, exercises, questions); built-in sample if unset
    catalog_path: Optional[str] = None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
