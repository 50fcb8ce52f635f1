"""Configuration settings from environment variables."""

import os
from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from simple_logger.logger import get_logger

logger = get_logger(name=__name__, level=os.environ.get("LOG_LEVEL", "INFO"))


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Optional bootstrap connection, seeded into the store on startup
    jenkins_url: str | None = None
    jenkins_user: str | None = None
    jenkins_token: SecretStr | None = None
    jenkins_name: str = "Default Jenkins"

    jenkins_ssl_verify: bool = True

    # Per-request timeout in seconds
    request_timeout: float = Field(default=30.0, gt=0)

    @property
    def bootstrap_enabled(self) -> bool:
        """Check if a bootstrap connection is configured with usable credentials."""
        if not self.jenkins_url:
            return False
        if not self.jenkins_token:
            logger.warning("JENKINS_URL is set but JENKINS_TOKEN is not configured")
            return False
        return True


@lru_cache
def get_settings() -> Settings:
    """Get application settings instance."""
    return Settings()
