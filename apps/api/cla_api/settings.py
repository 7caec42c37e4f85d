"""Application settings and configuration."""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class AuthorizationMode(str, Enum):
    """How strictly missing credentials and identifiers are treated."""

    STRICT = "strict"
    PERMISSIVE = "permissive"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = None
    postgres_user: str = "clabot"
    postgres_password: str = "clabot_dev_password"
    postgres_db: str = "clabot"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    # Redis (Celery broker + result backend)
    redis_url: str = "redis://localhost:6379/0"

    # API
    environment: str = "development"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    app_base_url: str = "https://cla.fiveonefour.com"
    secret_key: str = "dev-secret-key-change-in-production"  # keys the signer IP hash
    service_api_key: Optional[str] = None  # shared with the frontend for admin/sign routes

    # Strict mode fails closed on missing secrets, delivery ids and installation ids.
    # Unset means: strict in production, permissive elsewhere.
    authorization_mode: Optional[AuthorizationMode] = None

    # GitHub App
    github_webhook_secret: Optional[str] = None
    github_app_id: Optional[str] = None
    github_private_key: Optional[str] = None
    github_api_url: str = "https://api.github.com"
    github_timeout_seconds: int = 10

    # CLA policy
    max_bypass_accounts: int = 50
    recheck_error_detail_limit: int = 20

    # Logging
    log_level: str = "INFO"

    # Celery task limits for bulk rechecks
    recheck_task_time_limit: int = 30 * 60
    recheck_task_soft_time_limit: int = 25 * 60

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def resolved_authorization_mode(self) -> AuthorizationMode:
        """Explicit authorization mode, or the environment default."""
        if self.authorization_mode is not None:
            return self.authorization_mode
        return AuthorizationMode.STRICT if self.is_production else AuthorizationMode.PERMISSIVE

    @property
    def is_strict(self) -> bool:
        return self.resolved_authorization_mode == AuthorizationMode.STRICT

    @property
    def has_github_app_credentials(self) -> bool:
        return bool(self.github_app_id and self.github_private_key)

    @property
    def normalized_webhook_secret(self) -> Optional[str]:
        """Webhook secret with whitespace and wrapping quotes removed."""
        if not self.github_webhook_secret:
            return None
        secret = self.github_webhook_secret.strip()
        if len(secret) >= 2 and secret[0] == secret[-1] and secret[0] in ("'", '"'):
            secret = secret[1:-1]
        return secret or None

    def validate_production_settings(self):
        """Validate settings for strict mode."""
        if not self.is_strict:
            return
        if not self.normalized_webhook_secret:
            raise ValueError(
                "GITHUB_WEBHOOK_SECRET is required in strict mode. "
                "Webhook signatures cannot be verified without it."
            )
        if not self.has_github_app_credentials:
            raise ValueError(
                "GITHUB_APP_ID and GITHUB_PRIVATE_KEY are required in strict mode."
            )
        if not self.service_api_key:
            raise ValueError(
                "SERVICE_API_KEY is required in strict mode. "
                "Admin and signing routes would otherwise be unauthenticated."
            )
        if self.secret_key == "dev-secret-key-change-in-production":
            raise ValueError("SECRET_KEY must be changed from the development default.")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
