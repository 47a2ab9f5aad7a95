"""
Application settings configuration for spacecal.

Centralized settings loaded from environment variables.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from backend.src.utils.timezone import get_zone


class AppSettings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment Variables:
        SPACECAL_TIMEZONE: IANA timezone used for occurrence date keys and
            wall-clock recurrence evaluation (default: "Europe/Berlin")
        SPACECAL_MAX_EXPANSION_YEARS: Ceiling on the length of any expansion
            window, in years (default: 10)
        SPACECAL_UPCOMING_MONTHS: Look-ahead of the upcoming summary view,
            in months (default: 6)
    """

    # Application timezone
    # Occurrence date keys (YYYY-MM-DD) are always expressed in this timezone.
    # Changing it on a live database re-keys every occurrence, so treat it as
    # fixed per deployment.
    app_timezone: str = Field(
        default="Europe/Berlin",
        validation_alias="SPACECAL_TIMEZONE",
        description="IANA timezone identifier for occurrence date keys",
    )

    # Expansion ceiling
    # Open-ended rules are never evaluated past window_start + this many years.
    max_expansion_years: int = Field(
        default=10,
        validation_alias="SPACECAL_MAX_EXPANSION_YEARS",
        ge=1,
        le=50,
    )

    upcoming_months: int = Field(
        default=6,
        validation_alias="SPACECAL_UPCOMING_MONTHS",
        ge=1,
        le=24,
    )

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True

    @field_validator("app_timezone")
    @classmethod
    def validate_app_timezone(cls, v: str) -> str:
        """Validate that the timezone is a known IANA identifier.

        Raises ConfigurationError directly so an invalid deployment fails at
        settings load rather than on the first request.
        """
        get_zone(v)
        return v


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get cached application settings instance.

    Returns:
        AppSettings: Configured application settings from environment
    """
    return AppSettings()
