"""Configuration module for the Forecourt application."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

from dotenv import load_dotenv

from forecourt.core.exceptions import ConfigurationError

load_dotenv()


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    """Runtime configuration with validation."""

    APP_NAME: str
    APP_VERSION: str
    ENV: str
    DEBUG: bool
    DATABASE_URL: str
    DB_CONNECTIVITY_REQUIRED: bool
    API_PREFIX: str
    LOG_LEVEL: str
    LOG_FILE: str
    PUBLIC_BASE_URL: str
    ASSET_BASE_URL: str
    ASSET_SIGNING_SECRET: str | None
    LOGO_URL_TTL_SECONDS: int
    SHARE_TOKEN_TTL_DAYS: int

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"


def _build_config(env: str | None = None) -> Config:
    resolved_env = (env or os.getenv("ENV", "development")).strip().lower()
    debug = _as_bool(os.getenv("DEBUG"), default=False)

    config = Config(
        APP_NAME="Forecourt",
        APP_VERSION=os.getenv("APP_VERSION", "1.0.0"),
        ENV=resolved_env,
        DEBUG=debug if resolved_env != "production" else False,
        DATABASE_URL=os.getenv("DATABASE_URL", "sqlite:///./forecourt.db"),
        DB_CONNECTIVITY_REQUIRED=_as_bool(
            os.getenv("DB_CONNECTIVITY_REQUIRED"), default=(resolved_env == "production")
        ),
        API_PREFIX=os.getenv("API_PREFIX", "/api/v1"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        LOG_FILE=os.getenv("LOG_FILE", ""),
        PUBLIC_BASE_URL=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
        ASSET_BASE_URL=os.getenv("ASSET_BASE_URL", "http://localhost:8000/assets").rstrip("/"),
        ASSET_SIGNING_SECRET=os.getenv("ASSET_SIGNING_SECRET"),
        LOGO_URL_TTL_SECONDS=int(os.getenv("LOGO_URL_TTL_SECONDS", str(7 * 24 * 60 * 60))),
        SHARE_TOKEN_TTL_DAYS=int(os.getenv("SHARE_TOKEN_TTL_DAYS", "30")),
    )
    _validate_config(config)
    return config


def _validate_database_url(database_url: str) -> None:
    parsed = urlparse(database_url)
    if parsed.scheme not in {"sqlite", "postgresql", "postgresql+psycopg2"}:
        raise ConfigurationError(
            "DATABASE_URL must use sqlite:// or postgresql:// style URL."
        )
    if parsed.scheme.startswith("postgresql") and not parsed.hostname:
        raise ConfigurationError("PostgreSQL DATABASE_URL is missing hostname.")


def _validate_config(config: Config) -> None:
    _validate_database_url(config.DATABASE_URL)

    if config.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigurationError("LOG_LEVEL must be one of DEBUG/INFO/WARNING/ERROR/CRITICAL.")
    # S3-style presigned URLs cap out at seven days.
    if not 60 <= config.LOGO_URL_TTL_SECONDS <= 7 * 24 * 60 * 60:
        raise ConfigurationError("LOGO_URL_TTL_SECONDS must be between 60 and 604800.")
    if config.SHARE_TOKEN_TTL_DAYS < 1:
        raise ConfigurationError("SHARE_TOKEN_TTL_DAYS must be >= 1.")
    if config.is_production and not config.ASSET_SIGNING_SECRET:
        raise ConfigurationError("ASSET_SIGNING_SECRET is required in production.")


@lru_cache(maxsize=8)
def get_config(env: str | None = None) -> Config:
    """Get validated configuration for the requested environment."""
    return _build_config(env)
