"""Configuration management for World Evolver."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Run-level settings, loaded from environment and .env file.

    These are defaults only. Values given explicitly in a system or domain
    configuration always win.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="WEV_",
    )

    # Run
    seed: int = Field(default=42, description="Seed for the run's random generator")
    ticks: int = Field(default=100, description="Ticks simulated by the CLI")
    log_level: str = Field(default="WARNING")

    # Relationship lifecycle
    maintenance_frequency: int = Field(default=5, description="Sweep every N ticks")
    cull_threshold: float = Field(default=0.15)
    grace_period: int = Field(default=20, description="Ticks before a relationship can decay")
    reinforcement_bonus: float = Field(default=0.02)
    max_strength: float = Field(default=1.0)

    # Rule evaluation
    prominence_multiplier: float = Field(
        default=6.0, description="Multiplier for prominence-scaled thresholds"
    )
    default_strength: float = Field(
        default=0.5, description="Strength assumed for relationships that carry none"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
