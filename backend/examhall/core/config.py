"""
Application configuration settings.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Self


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Exam Hall API"
    APP_VERSION: str = "0.1.0"
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API
    API_V1_PREFIX: str = "/v1"

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:8080",
    ]

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Security
    # Tokens are issued by the authentication service; this service only
    # verifies them, so only the verification key is required.
    JWT_SECRET_KEY: str = Field(..., description="JWT signing secret key (required)")
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Stale attempt sweep (scripts/sweep_expired_attempts.py)
    STALE_ATTEMPT_SWEEP_BATCH_SIZE: int = Field(
        default=200,
        ge=1,
        description="Maximum number of expired attempts finalized per sweep run",
    )

    # Results pagination
    DEFAULT_RESULTS_PAGE_SIZE: int = Field(default=50, ge=1)
    MAX_RESULTS_PAGE_SIZE: int = Field(default=100, ge=1)

    # Sentry Error Tracking
    SENTRY_DSN: str = Field(
        default="",
        description="Sentry DSN for error tracking (leave empty to disable)",
    )
    SENTRY_TRACES_SAMPLE_RATE: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sentry traces sample rate (0.0-1.0, 0.1 = 10% of transactions)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields from .env not defined in Settings
    )

    @model_validator(mode="after")
    def validate_results_page_sizes(self) -> Self:
        """The default results page size must not exceed the maximum."""
        if self.DEFAULT_RESULTS_PAGE_SIZE > self.MAX_RESULTS_PAGE_SIZE:
            raise ValueError(
                f"DEFAULT_RESULTS_PAGE_SIZE ({self.DEFAULT_RESULTS_PAGE_SIZE}) must be "
                f"<= MAX_RESULTS_PAGE_SIZE ({self.MAX_RESULTS_PAGE_SIZE})"
            )
        return self


# mypy doesn't understand that pydantic_settings loads required fields from env vars
settings = Settings()  # type: ignore[call-arg]
