"""Application Configuration"""

from pydantic_settings import BaseSettings
from pydantic import ConfigDict, field_validator
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = ConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application
    APP_NAME: str = "Action Execution Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"  # development, staging, production

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./action_engine.db"
    DATABASE_ECHO: bool = False

    # Redis (optional auth config cache)
    REDIS_URL: Optional[str] = None
    AUTH_CONFIG_CACHE_TTL_SECONDS: int = 600

    # Execution
    EXECUTION_TIMEOUT_MS: int = 30000
    SANDBOX_MAX_TIMEOUT_MS: int = 300000
    EXECUTION_LIST_DEFAULT_LIMIT: int = 100
    EXECUTION_LIST_MAX_LIMIT: int = 1000

    # OAuth2 token refresh
    OAUTH_REFRESH_BUFFER_SECONDS: int = 300
    OAUTH_REFRESH_TIMEOUT_SECONDS: float = 30.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    @field_validator('EXECUTION_TIMEOUT_MS', 'SANDBOX_MAX_TIMEOUT_MS', 'AUTH_CONFIG_CACHE_TTL_SECONDS')
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        """Validate that durations are strictly positive"""
        if v <= 0:
            raise ValueError(f'{info.field_name} must be positive, got {v}')
        return v

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log level is one of the standard Python logging levels"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f'LOG_LEVEL must be one of {valid_levels}, got {v}')
        return v.upper()

    @field_validator('LOG_FORMAT')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v.lower() not in ("json", "text"):
            raise ValueError(f'LOG_FORMAT must be json or text, got {v}')
        return v.lower()


settings = Settings()
