"""
Settings Module for the Uptime Engine

Configuration management using Pydantic Settings.
Supports environment variables, .env files, and runtime configuration.
Includes validation, type checking, and sensible defaults.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import AliasChoices, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment enumeration."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseType(str, Enum):
    """Supported database types."""
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"


class BaseSettingsConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True,
        populate_by_name=True,
    )


class DatabaseSettings(BaseSettingsConfig):
    """
    Database Configuration Settings

    Supports PostgreSQL (production) and SQLite (development).
    The server roster, uptime history, and site settings all live here.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    type: DatabaseType = Field(
        default=DatabaseType.SQLITE,
        description="Database type: postgresql or sqlite"
    )

    # PostgreSQL settings
    host: str = Field(
        default="localhost",
        description="Database host address"
    )
    port: int = Field(
        default=5432,
        ge=1,
        le=65535,
        description="Database port number"
    )
    name: str = Field(
        default="uptime_engine",
        min_length=1,
        max_length=64,
        description="Database name"
    )
    user: str = Field(
        default="postgres",
        min_length=1,
        max_length=64,
        description="Database username"
    )
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Database password"
    )

    # SQLite settings
    sqlite_path: Path = Field(
        default=Path("data/uptime_engine.db"),
        description="Path to SQLite database file"
    )

    # Connection pool settings (ignored for SQLite)
    pool_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Connection pool size"
    )
    max_overflow: int = Field(
        default=20,
        ge=0,
        le=100,
        description="Maximum overflow connections"
    )
    pool_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Pool connection timeout in seconds"
    )
    pool_recycle: int = Field(
        default=1800,
        ge=60,
        le=7200,
        description="Connection recycle time in seconds"
    )

    echo: bool = Field(
        default=False,
        description="Echo SQL queries (debug mode)"
    )

    @property
    def url(self) -> str:
        """Generate database URL based on configuration."""
        if self.type == DatabaseType.SQLITE:
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite+aiosqlite:///{self.sqlite_path}"

        password = self.password.get_secret_value()
        return (
            f"postgresql+asyncpg://{self.user}:{password}"
            f"@{self.host}:{self.port}/{self.name}"
        )


class MonitoringSettings(BaseSettingsConfig):
    """
    Monitoring Engine Configuration Settings

    Controls probe timeouts, retry/fallback policy, concurrency,
    failure threshold, and history retention.
    """

    model_config = SettingsConfigDict(
        env_prefix="MONITOR_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # Failure tracking
    failure_threshold: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Consecutive offline verdicts before escalation"
    )

    # Retry / fallback policy
    native_retries: int = Field(
        default=2,
        ge=1,
        le=10,
        description="Native probe attempts per check"
    )
    remote_retries: int = Field(
        default=2,
        ge=1,
        le=10,
        description="Remote API probe attempts per check"
    )
    retry_backoff: float = Field(
        default=1.0,
        ge=0.0,
        le=30.0,
        description="Fixed delay between attempts in seconds"
    )
    remote_fallback_enabled: bool = Field(
        default=True,
        description="Fall back to the remote status API when native probing fails"
    )

    # Timeouts
    native_timeout: float = Field(
        default=5.0,
        gt=0,
        le=60.0,
        description="Timeout of a single native probe in seconds"
    )
    remote_timeout: float = Field(
        default=10.0,
        gt=0,
        le=60.0,
        description="Timeout of a single remote API probe in seconds"
    )

    # Remote status API
    remote_api_url: str = Field(
        default="https://api.mcstatus.io/v2/status",
        description="Base URL of the remote status API"
    )
    user_agent: str = Field(
        default="UptimeEngine/1.0",
        description="User-Agent sent to the remote status API"
    )

    # Native protocol options
    srv_lookup_enabled: bool = Field(
        default=True,
        description="Resolve _minecraft._tcp SRV records before Java probes"
    )

    # Fleet scanning
    max_concurrent_checks: int = Field(
        default=50,
        ge=0,
        le=1000,
        description="Maximum servers probed at once (0 = unbounded)"
    )

    # History
    history_retention_days: int = Field(
        default=90,
        ge=1,
        le=3650,
        description="Days of uptime history to keep"
    )

    @field_validator("remote_api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class EscalationSettings(BaseSettingsConfig):
    """
    Escalation Configuration Settings

    Discord credentials used to alert the operator role. Values stored in
    the ``site_settings`` table take precedence over these.
    """

    model_config = SettingsConfigDict(
        env_prefix="ESCALATION_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    enabled: bool = Field(
        default=True,
        description="Send escalation alerts when the threshold is crossed"
    )
    discord_api_url: str = Field(
        default="https://discord.com/api/v10",
        description="Discord REST API base URL"
    )
    discord_bot_token: Optional[SecretStr] = Field(
        default=None,
        description="Discord bot token"
    )
    discord_guild_id: Optional[str] = Field(
        default=None,
        description="Guild whose members are alerted"
    )
    discord_role_id: Optional[str] = Field(
        default=None,
        description="Role identifying the operator audience"
    )
    send_delay: float = Field(
        default=1.0,
        ge=0.0,
        le=30.0,
        description="Delay between direct messages in seconds"
    )
    request_timeout: float = Field(
        default=10.0,
        gt=0,
        le=60.0,
        description="Timeout of a single Discord API request"
    )
    member_page_size: int = Field(
        default=1000,
        ge=1,
        le=1000,
        description="Members fetched per guild member page"
    )

    @field_validator("discord_api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class TriggerSettings(BaseSettingsConfig):
    """
    Trigger Endpoint Configuration Settings

    The HTTP endpoint an external scheduler calls every cycle, plus the
    optional in-process scheduler for deployments without one.
    """

    model_config = SettingsConfigDict(
        env_prefix="TRIGGER_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    host: str = Field(
        default="0.0.0.0",
        description="Web server host"
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        validation_alias=AliasChoices("TRIGGER_PORT", "PORT"),
        description="Web server port"
    )
    path: str = Field(
        default="/api/cron/uptime",
        description="Path of the uptime trigger endpoint"
    )
    cron_secret: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("CRON_SECRET", "TRIGGER_CRON_SECRET"),
        description="Shared secret expected from the external scheduler"
    )
    scheduler_header: str = Field(
        default="x-vercel-cron",
        description="Header set by the scheduler platform that bypasses the secret"
    )

    # In-process scheduler
    scheduler_enabled: bool = Field(
        default=False,
        description="Run uptime cycles from an in-process scheduler"
    )
    scheduler_interval: int = Field(
        default=60,
        ge=10,
        le=86400,
        description="Seconds between in-process uptime cycles"
    )

    @field_validator("path")
    @classmethod
    def ensure_leading_slash(cls, v: str) -> str:
        return v if v.startswith("/") else f"/{v}"


class LoggingSettings(BaseSettingsConfig):
    """
    Logging Configuration Settings

    Console and rotating file sinks for loguru.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Minimum logging level"
    )
    console_enabled: bool = Field(
        default=True,
        description="Enable console logging"
    )
    colorize: bool = Field(
        default=True,
        description="Enable colored console output"
    )
    file_enabled: bool = Field(
        default=False,
        description="Enable file logging"
    )
    file_path: Path = Field(
        default=Path("logs/uptime_engine.log"),
        description="Log file path"
    )
    file_rotation: str = Field(
        default="10 MB",
        description="Log rotation size (e.g., '10 MB', '1 day')"
    )
    file_retention: str = Field(
        default="30 days",
        description="Log retention period"
    )
    serialize: bool = Field(
        default=False,
        description="Write JSON lines to the log file"
    )

    @property
    def logs_dir(self) -> Path:
        return self.file_path.parent


class Settings(BaseSettingsConfig):
    """
    Main Settings Class

    Aggregates all settings sections and provides the main
    configuration interface for the application.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment"
    )
    app_name: str = Field(
        default="Uptime Engine",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    # Nested settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    escalation: EscalationSettings = Field(default_factory=EscalationSettings)
    trigger: TriggerSettings = Field(default_factory=TriggerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    @model_validator(mode="after")
    def configure_for_environment(self) -> "Settings":
        """Apply environment-specific configuration."""
        if self.is_production:
            self.database.echo = False
        elif self.is_development and self.logging.level == LogLevel.INFO:
            self.logging.level = LogLevel.DEBUG
        return self

    def to_dict(self, *, exclude_secrets: bool = True) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        data = self.model_dump(mode="json")

        if exclude_secrets:
            def remove_secrets(obj: Any) -> Any:
                if isinstance(obj, dict):
                    return {
                        k: remove_secrets(v)
                        for k, v in obj.items()
                        if "password" not in k.lower()
                        and "secret" not in k.lower()
                        and "token" not in k.lower()
                    }
                if isinstance(obj, list):
                    return [remove_secrets(item) for item in obj]
                return obj

            data = remove_secrets(data)

        return data


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure a single settings instance
    is used throughout the application lifecycle.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
