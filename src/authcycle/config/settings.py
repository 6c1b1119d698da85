"""
authcycle configuration settings using Pydantic.

This module provides type-safe configuration management with validation,
environment variable support, and nested configuration structures.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from authcycle.auth.credentials import ProviderId


class CacheConfig(BaseModel):
    """Local credential cache configuration."""

    enabled: bool = Field(
        default=True,
        description="Read and write cached credentials",
    )
    directory: Path = Field(
        default_factory=lambda: Path.cwd() / "Cache",
        description="Directory holding one JSON record per identity",
    )

    @model_validator(mode="after")
    def resolve_directory(self) -> "CacheConfig":
        """Ensure the cache directory is an absolute path."""
        if not self.directory.is_absolute():
            object.__setattr__(self, "directory", Path.cwd() / self.directory)
        return self


class RefreshConfig(BaseModel):
    """Credential refresh and validity configuration."""

    max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Refresh attempts before giving up",
    )
    backoff_step_seconds: float = Field(
        default=5.0,
        ge=0.0,
        le=60.0,
        description="Backoff added after each failed attempt",
    )
    backoff_cap_seconds: float = Field(
        default=60.0,
        ge=0.0,
        le=600.0,
        description="Maximum backoff between attempts",
    )
    ticket_skew_minutes: float = Field(
        default=10.0,
        ge=0.0,
        le=120.0,
        description="Session tickets expiring sooner than this are discarded",
    )
    http_timeout: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Login request timeout in seconds",
    )


class AuthcycleSettings(BaseSettings):
    """
    Main authcycle configuration.

    Settings are loaded from environment variables with the AUTHCYCLE_ prefix,
    or from a .env file in the current directory. Nested values use a double
    underscore, e.g. AUTHCYCLE_REFRESH__MAX_ATTEMPTS=3.
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTHCYCLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    auth_type: ProviderId = Field(
        default=ProviderId.GOOGLE,
        description="Identity provider used to log in",
    )

    # Google account
    google_username: str | None = Field(default=None, description="Google account email")
    google_password: SecretStr | None = Field(default=None, description="Google account password")
    google_token_url: str = Field(
        default="https://android.clients.google.com/auth",
        description="Google token endpoint",
    )

    # Pokemon Trainer Club account
    ptc_username: str | None = Field(default=None, description="PTC username")
    ptc_password: SecretStr | None = Field(default=None, description="PTC password")
    ptc_token_url: str = Field(
        default="https://sso.pokemon.com/sso/oauth2.0/accessToken",
        description="PTC token endpoint",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    json_logs: bool = Field(
        default=False,
        description="Render logs as JSON instead of console output",
    )

    # Nested configurations
    cache: CacheConfig = Field(default_factory=CacheConfig)
    refresh: RefreshConfig = Field(default_factory=RefreshConfig)


@lru_cache(maxsize=1)
def get_settings() -> AuthcycleSettings:
    """Get the settings loaded from the environment."""
    return AuthcycleSettings()


def reset_settings() -> None:
    """Forget the cached settings so the next call reloads them."""
    get_settings.cache_clear()
