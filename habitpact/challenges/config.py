"""Configuration for the challenge lifecycle core."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class ChallengeSettings(BaseSettings):
    """Challenge core settings."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="CHALLENGE_", extra="ignore")

    # Upper bound for lock wait + transaction of a single operation
    storage_timeout_seconds: float = 5.0

    # Automatic completion of challenges past their end date
    auto_complete_enabled: bool = True
    auto_complete_interval_seconds: float = 300.0

    # Read queries
    default_page_size: int = 50
    max_page_size: int = 200


@lru_cache
def get_challenge_settings() -> ChallengeSettings:
    """Get cached challenge settings instance."""
    return ChallengeSettings()
