"""
Subscription Configuration
==========================

Centralized configuration using Pydantic Settings.
Loads from environment variables with validation.

``Settings`` holds process-wide values read from the environment;
``SubscriptionConfiguration`` is the construction input handed to
``SubscriptionUseCase``.
"""

from functools import lru_cache
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


CustomAttributesSetter = Callable[[str], Awaitable[None]]

DEFAULT_ENTITLEMENT_ID = "premium"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: str = Field(default="development")
    LOG_LEVEL: str = Field(default="INFO")

    # RevenueCat
    REVENUECAT_API_KEY: str = Field(default="")
    REVENUECAT_ENTITLEMENT_ID: str = Field(default=DEFAULT_ENTITLEMENT_ID)
    REVENUECAT_BASE_URL: str = Field(default="https://api.revenuecat.com/v1")
    REVENUECAT_PLATFORM: str = Field(
        default="ios",
        description="Value sent in the X-Platform header (ios, android, amazon, stripe)",
    )
    REVENUECAT_TIMEOUT_SECONDS: float = Field(default=10.0)
    REVENUECAT_WEBHOOK_SECRET: str = Field(default="")

    # Formatting
    PRICE_LOCALE: str = Field(default="en_US")

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.ENVIRONMENT.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()


# Export a default settings instance
settings = get_settings()


class SubscriptionConfiguration(BaseModel):
    """
    Settings needed to construct the subscription use case.

    An empty ``api_key`` leaves the purchase provider unconfigured: every
    provider-backed operation then fails with ``NotConfiguredError``.
    ``custom_attributes_setter`` is awaited once per ``sync_user`` call,
    after the provider login succeeds.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    api_key: str
    entitlement_id: str = DEFAULT_ENTITLEMENT_ID
    custom_attributes_setter: Optional[CustomAttributesSetter] = None

    @classmethod
    def from_settings(
        cls,
        app_settings: Optional[Settings] = None,
        custom_attributes_setter: Optional[CustomAttributesSetter] = None,
    ) -> "SubscriptionConfiguration":
        """Build a configuration from environment settings."""
        app_settings = app_settings or get_settings()
        return cls(
            api_key=app_settings.REVENUECAT_API_KEY,
            entitlement_id=app_settings.REVENUECAT_ENTITLEMENT_ID,
            custom_attributes_setter=custom_attributes_setter,
        )
