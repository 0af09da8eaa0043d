"""Handler settings using pydantic-settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Handler settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # AWS configuration
    aws_region: str = "us-west-2"
    secret_name_prefix: str = ""
    kms_key_id: str = ""

    # Certificate profile
    default_validity_days: int = Field(default=1095, ge=1)
    max_validity_days: int = Field(default=3650, ge=1)
    passphrase_length: int = Field(default=32, ge=20)
    pkcs12_legacy_encryption: bool = False

    # Retry policy for transient store errors
    store_max_attempts: int = Field(default=3, ge=1)
    store_retry_delay: float = Field(default=1.0, ge=0)

    # Response delivery
    response_timeout_buffer_ms: int = Field(default=5000, ge=0)
    response_max_attempts: int = Field(default=3, ge=1)

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
