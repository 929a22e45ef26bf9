"""
Application Settings for Tafawoq

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    External collaborators:
    - Supabase: auth (JWT) and the user_profiles table
    - Stripe: premium checkout and subscription lifecycle webhooks
    - Gemini: exam and practice question generation
    """

    # Supabase Configuration
    supabase_url: str
    supabase_service_role_key: str
    supabase_jwt_secret: Optional[str] = None

    # Google AI Configuration (accepts GOOGLE_API_KEY or GEMINI_API_KEY)
    google_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"

    # Stripe Configuration
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_premium_price_id: Optional[str] = None
    stripe_api_version: str = "2023-10-16"
    stripe_webhook_tolerance_seconds: int = 300
    checkout_timeout_seconds: float = 20.0

    # Content Generation
    exam_question_count: int = 40
    exam_generation_timeout_seconds: float = 30.0
    practice_generation_timeout_seconds: float = 15.0

    # Post-checkout activation polling (seconds to wait before each re-read)
    activation_poll_delays: list[float] = Field(default_factory=lambda: [1.0, 2.0, 3.0])

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # CORS Configuration
    allowed_origins: list[str] = [
        "http://localhost:8081",
        "http://localhost:19006",
        "http://127.0.0.1:8081",
    ]

    # Database Configuration (SQLModel/SQLAlchemy)
    supabase_password: Optional[str] = None
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Normalize API key aliases and sanity-check numeric knobs."""
        # Normalize gemini_api_key to google_api_key
        if not self.google_api_key and self.gemini_api_key:
            self.google_api_key = self.gemini_api_key

        if self.exam_question_count < 1:
            raise ValueError("EXAM_QUESTION_COUNT must be at least 1")

        if any(delay < 0 for delay in self.activation_poll_delays):
            raise ValueError("ACTIVATION_POLL_DELAYS must be non-negative")

        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def stripe_configured(self) -> bool:
        """Whether checkout and webhook verification can run."""
        return bool(self.stripe_secret_key and self.stripe_webhook_secret)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
