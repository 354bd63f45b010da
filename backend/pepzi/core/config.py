"""
Application configuration using Pydantic Settings.

Infrastructure switching (auth, plan provider) is controlled by environment variables.
"""

from functools import lru_cache
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ===========================================
    # Environment
    # ===========================================
    ENVIRONMENT: Literal["local", "test"] = "local"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # ===========================================
    # Database
    # ===========================================
    DATABASE_URL: str = "sqlite+aiosqlite:///./pepzi.db"

    # Upper bound for a single persistence call made by the scheduling engine
    PERSISTENCE_TIMEOUT_SECONDS: float = 5.0

    # ===========================================
    # Auth (JWT issued by the identity provider)
    # ===========================================
    AUTH_PROVIDER: Literal["mock", "jwt"] = "mock"
    JWT_SECRET: str = ""
    JWT_AUDIENCE: str = ""
    JWT_ISSUER: str = ""

    # ===========================================
    # Plan generation
    # ===========================================
    # "fixture": deterministic plans, no network
    # "litellm": external text-generation model via LiteLLM
    PLAN_PROVIDER: Literal["fixture", "litellm"] = "fixture"
    LITELLM_MODEL: str = "openai/gpt-4o-mini"
    LITELLM_API_BASE: str = ""
    LITELLM_API_KEY: str = ""

    # ===========================================
    # Scheduling engine
    # ===========================================
    DEFAULT_TIMEZONE: str = "UTC"
    DEFAULT_HORIZON_WEEKS: int = 3
    MAX_HORIZON_WEEKS: int = 12
    MIN_SESSION_MINUTES: int = 30
    MAX_SESSION_MINUTES: int = 120
    # Gap kept free after every placed session
    SESSION_BUFFER_MINUTES: int = 0

    # ===========================================
    # Rolling allocation (background job)
    # ===========================================
    ROLLING_ALLOCATION_ENABLED: bool = False
    ROLLING_ALLOCATION_DAY: str = "sun"
    ROLLING_ALLOCATION_HOUR: int = 18

    # ===========================================
    # Server
    # ===========================================
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    ALLOWED_ORIGINS: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"]
    )

    @property
    def is_local(self) -> bool:
        """Check if running in local environment."""
        return self.ENVIRONMENT == "local"

    @property
    def is_test(self) -> bool:
        return self.ENVIRONMENT == "test"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures settings are loaded only once.
    """
    return Settings()
