"""
Configuration settings for the preference synchronization service
"""
from enum import Enum
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class PersistenceBackend(str, Enum):
    MEMORY = "memory"
    FILE = "file"
    REDIS = "redis"


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_prefix="PREFSYNC_",
        env_file=".env",
        extra="ignore"
    )

    # Service configuration
    service_name: str = Field(default="prefsync")
    environment: Environment = Field(default=Environment.DEVELOPMENT)
    log_level: LogLevel = Field(default=LogLevel.INFO)

    # API configuration
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    allowed_origins: List[str] = Field(
        default=["http://localhost:3000"]
    )

    # Remote authority
    upstream_api_url: str = Field(default="https://frontendapi.primemarket-terminal.com/")
    update_preferences_path: str = Field(default="updateUserPreferences")
    get_preferences_path: str = Field(default="getUserPreferences")
    request_timeout_seconds: float = Field(default=10.0, gt=0)

    # Durable local fallback
    persistence_backend: PersistenceBackend = Field(default=PersistenceBackend.FILE)
    persistence_path: str = Field(default=".prefsync")
    redis_url: Optional[str] = Field(default=None)
    redis_key_prefix: str = Field(default="user-preferences")
    persistence_ttl_seconds: int = Field(default=60 * 60 * 24 * 30, gt=0)  # 30 days

    # Reject out-of-order completions of same-field updates
    enable_sequence_guard: bool = Field(default=False)

    @field_validator("upstream_api_url")
    @classmethod
    def ensure_trailing_slash(cls, v: str) -> str:
        return v if v.endswith("/") else v + "/"

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance"""
    return Settings()
