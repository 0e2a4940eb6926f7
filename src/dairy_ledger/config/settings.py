"""Configuration settings for the dairy back office."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Flat settings read from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Record store
    store_url: str = Field(
        default="http://localhost:54321", validation_alias="STORE_URL"
    )
    store_api_key: SecretStr = Field(..., validation_alias="STORE_API_KEY")
    store_access_token: SecretStr | None = Field(
        default=None, validation_alias="STORE_ACCESS_TOKEN"
    )
    store_timeout: float = Field(default=30.0, validation_alias="STORE_TIMEOUT")
    store_page_size: int = Field(
        default=1000, ge=1, validation_alias="STORE_PAGE_SIZE"
    )

    # Billing
    billing_epsilon: float = Field(default=0.001, validation_alias="BILLING_EPSILON")

    # Bill statements
    business_name: str = Field(default="ssfarmorganic", validation_alias="BUSINESS_NAME")
    business_contact: str = Field(default="", validation_alias="BUSINESS_CONTACT")
    upi_payee: str = Field(default="", validation_alias="UPI_PAYEE")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
