from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from functools import lru_cache
from typing import Literal


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/ratepro"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_SLOW_QUERY_MS: int = 500

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if v and v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    # CORS
    FRONTEND_URL: str = "http://localhost:5173"

    # Insight provider (external text completion)
    INSIGHT_PROVIDER_URL: str = "https://api.anthropic.com/v1/messages"
    INSIGHT_PROVIDER_API_KEY: str | None = None
    INSIGHT_MODEL: str = "claude-haiku-4-5"
    INSIGHT_TIMEOUT_SECONDS: float = 30.0
    INSIGHT_MAX_TOKENS: int = 400

    # Feedback pipeline
    PIPELINE_REPEAT_MODE: Literal["skip", "dry_run"] = "skip"
    PIPELINE_CLAIM_TTL_SECONDS: float = 300.0
    DEFAULT_RATING_SCALE: int = 5

    # Observability
    SENTRY_DSN: str | None = None
    VERSION: str = "2.0.0"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    DOCS_ENABLED: bool = True

    @model_validator(mode="after")
    def check_production(self) -> "Settings":
        """Production runs without debug output and needs an insight provider key."""
        if self.is_production:
            self.DEBUG = False
            if not self.INSIGHT_PROVIDER_API_KEY:
                raise ValueError("INSIGHT_PROVIDER_API_KEY is required in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def sqlalchemy_echo(self) -> bool:
        """SQL echo leaks bound parameters, so it is never enabled in production."""
        return self.DEBUG and not self.is_production

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
