"""
Configuration Module for the SourSop wallet bot

Configuration management using Pydantic v2 BaseSettings. All settings are
loaded once from environment variables (or a ``.env`` file) with validation
and type safety. A missing required value is a fatal startup error.

Usage:
    from soursop.config import get_settings
    settings = get_settings()
    print(settings.rpc_url)
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from pydantic import (
    Field,
    SecretStr,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


# =============================================================================
# ENUMS
# =============================================================================

class Environment(str, Enum):
    """Application environment types."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# =============================================================================
# BASE CONFIGURATION
# =============================================================================

class BaseConfig(BaseSettings):
    """Base configuration with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )


# =============================================================================
# TELEGRAM CONFIGURATION
# =============================================================================

class TelegramSettings(BaseConfig):
    """Telegram bot configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="TELEGRAM_",
        env_file=".env",
        extra="ignore",
    )

    bot_token: Optional[SecretStr] = Field(
        default=None,
        description="Telegram bot token from @BotFather",
    )


# =============================================================================
# DATABASE CONFIGURATION
# =============================================================================

class DatabaseSettings(BaseConfig):
    """Wallet record store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        env_file=".env",
        extra="ignore",
    )

    path: Path = Field(
        default=Path("data/soursop.db"),
        description="SQLite database file",
    )

    query_timeout: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Query timeout in seconds",
    )

    enable_wal: bool = Field(
        default=True,
        description="Use SQLite write-ahead logging",
    )


# =============================================================================
# JUPITER CONFIGURATION
# =============================================================================

class JupiterSettings(BaseConfig):
    """Jupiter aggregator API configuration."""

    model_config = SettingsConfigDict(
        env_prefix="JUPITER_",
        env_file=".env",
        extra="ignore",
    )

    api_url: str = Field(
        default="https://quote-api.jup.ag/v6",
        description="Jupiter API base URL",
    )

    slippage_bps: int = Field(
        default=50,
        ge=1,
        le=5000,
        description="Default slippage tolerance in basis points",
    )

    timeout: int = Field(
        default=30,
        ge=5,
        le=120,
        description="API request timeout in seconds",
    )

    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per request on connection errors",
    )


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

class LoggingSettings(BaseConfig):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )

    format: str = Field(
        default="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        description="Log message format",
    )

    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Log date format",
    )

    file_enabled: bool = Field(
        default=True,
        description="Enable file logging",
    )

    file_path: Path = Field(
        default=Path("logs/bot.log"),
        description="Log file path",
    )

    file_max_bytes: int = Field(
        default=10 * 1024 * 1024,  # 10 MB
        ge=1024,
        description="Max log file size in bytes",
    )

    file_backup_count: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Number of backup log files",
    )


# =============================================================================
# APPLICATION SETTINGS (MAIN)
# =============================================================================

class Settings(BaseConfig):
    """
    Main application settings aggregating all configuration sections.

    ``PASSWORD`` and ``RPC_URL`` are required; everything else has a default.
    """

    app_name: str = Field(
        default="SourSop",
        description="Application name",
    )

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )

    password: SecretStr = Field(
        ...,
        description="Password protecting every stored private key and mnemonic",
    )

    rpc_url: str = Field(
        ...,
        description="Solana RPC endpoint (scheme optional)",
    )

    commitment: str = Field(
        default="confirmed",
        pattern="^(processed|confirmed|finalized)$",
        description="RPC commitment level",
    )

    # Sub-configurations
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    jupiter: JupiterSettings = Field(default_factory=JupiterSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("rpc_url", mode="before")
    @classmethod
    def normalize_rpc_url(cls, v: Any) -> Any:
        """Accept a bare host (``my-node.example.com``) as well as a full URL."""
        if isinstance(v, str):
            v = v.strip()
            if v and "://" not in v:
                return f"https://{v}"
        return v

    @model_validator(mode="after")
    def validate_password(self) -> "Settings":
        if not self.password.get_secret_value():
            raise ValueError("password must not be empty")
        return self

    def to_safe_dict(self) -> dict[str, Any]:
        """Export settings without any secret values."""
        def remove_secrets(d: dict) -> dict:
            result = {}
            for k, v in d.items():
                if isinstance(v, dict):
                    result[k] = remove_secrets(v)
                elif not any(secret in k.lower() for secret in
                             ["key", "token", "secret", "password"]):
                    result[k] = v
                else:
                    result[k] = "[REDACTED]"
            return result

        return remove_secrets(self.model_dump())


# =============================================================================
# SINGLETON & CACHING
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Raises:
        ConfigurationError: if a required value is missing or invalid
    """
    try:
        return Settings()
    except PydanticValidationError as exc:
        missing = [
            ".".join(str(part) for part in err["loc"]).upper()
            for err in exc.errors()
        ]
        raise ConfigurationError(
            f"Invalid configuration: {', '.join(missing)}",
            missing_keys=missing,
        ) from exc


def reload_settings() -> Settings:
    """Clear settings cache and reload from environment."""
    get_settings.cache_clear()
    return get_settings()


__all__ = [
    "Settings",
    "TelegramSettings",
    "DatabaseSettings",
    "JupiterSettings",
    "LoggingSettings",
    "Environment",
    "LogLevel",
    "get_settings",
    "reload_settings",
]
