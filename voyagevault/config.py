from __future__ import annotations

import os
import secrets
from enum import Enum
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from voyagevault.logging import get_logger

logger = get_logger(__name__)


class AppEnv(str, Enum):
    """Deployment environment; production turns on secure cookies."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the identity service."""

    app_env: AppEnv = env_field(AppEnv.DEVELOPMENT, "APP_ENV")
    database_url: str = env_field(
        "postgresql://localhost:5432/voyage_vault", "DATABASE_URL"
    )
    db_pool_min_size: int = env_field(1, "DB_POOL_MIN_SIZE")
    db_pool_max_size: int = env_field(10, "DB_POOL_MAX_SIZE")
    use_memory_store: bool = env_field(False, "USE_MEMORY_STORE")
    test_mode: bool = env_field(
        False,
        "TEST_MODE",
        description="Deterministic testing behaviors; allows an ephemeral JWT secret.",
    )
    # Token settings
    jwt_secret: str | None = env_field(None, "JWT_SECRET")
    jwt_issuer: str = env_field("voyagevault", "JWT_ISSUER")
    access_token_ttl_minutes: int = env_field(15, "ACCESS_TOKEN_TTL_MINUTES")
    refresh_token_ttl_days: int = env_field(7, "REFRESH_TOKEN_TTL_DAYS")
    # One-time codes and account cleanup
    code_ttl_minutes: int = env_field(10, "CODE_TTL_MINUTES")
    unverified_account_max_age_hours: int = env_field(
        24, "UNVERIFIED_ACCOUNT_MAX_AGE_HOURS"
    )
    cleanup_enabled: bool = env_field(True, "CLEANUP_ENABLED")
    cleanup_interval_hours: float = env_field(24, "CLEANUP_INTERVAL_HOURS")
    # Google identity
    google_client_id: str | None = env_field(None, "GOOGLE_CLIENT_ID")
    google_client_secret: str | None = env_field(None, "GOOGLE_CLIENT_SECRET")
    google_redirect_uri: str | None = env_field(None, "GOOGLE_REDIRECT_URI")
    frontend_url: str = env_field("http://localhost:5173", "FRONTEND_URL")
    # Email
    smtp_host: str | None = env_field(None, "SMTP_HOST")
    smtp_port: int = env_field(587, "SMTP_PORT")
    smtp_user: str | None = env_field(None, "SMTP_USER")
    smtp_password: str | None = env_field(None, "SMTP_PASSWORD")
    smtp_use_tls: bool = env_field(True, "SMTP_USE_TLS")
    email_from_address: str | None = env_field(None, "EMAIL_FROM_ADDRESS")
    email_from_name: str = env_field("VoyageVault", "EMAIL_FROM_NAME")
    support_email: str = env_field("support@voyagevault.com", "SUPPORT_EMAIL")
    cors_allow_origins: list[str] = env_field([], "CORS_ALLOW_ORIGINS")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("app_env", mode="before")
    @classmethod
    def _validate_app_env(cls, value: Any) -> AppEnv:
        if isinstance(value, str):
            return AppEnv(value.strip().lower())
        return AppEnv(value)

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return list(value)

    @field_validator(
        "access_token_ttl_minutes",
        "refresh_token_ttl_days",
        "code_ttl_minutes",
        "unverified_account_max_age_hours",
        "cleanup_interval_hours",
    )
    @classmethod
    def _positive_ttl(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("TTL and interval values must be positive")
        return value

    @model_validator(mode="after")
    def _ensure_jwt_secret(self) -> "Settings":
        if self.jwt_secret:
            return self
        if not self.test_mode:
            raise ValueError("JWT_SECRET must be set outside TEST_MODE")
        logger.warning("jwt_secret_ephemeral", message="Generated a per-process JWT secret")
        self.jwt_secret = secrets.token_urlsafe(64)
        return self

    @property
    def cookie_secure(self) -> bool:
        return self.app_env == AppEnv.PRODUCTION


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
