"""
Configuration Package for the Uptime Engine

This package contains all configuration-related modules including:
- Settings management with environment variable support
- Constants and enums used throughout the application
"""

from config.settings import (
    Settings,
    DatabaseSettings,
    MonitoringSettings,
    EscalationSettings,
    TriggerSettings,
    LoggingSettings,
    get_settings,
)

from config.constants import (
    GameType,
    ServerStatus,
    ProbeMethod,
    ProbeVerdict,
    FailureState,
    SiteSettingKeys,
    MessageTemplates,
    ErrorCodes,
)

__all__ = [
    # Settings
    "Settings",
    "DatabaseSettings",
    "MonitoringSettings",
    "EscalationSettings",
    "TriggerSettings",
    "LoggingSettings",
    "get_settings",

    # Constants
    "GameType",
    "ServerStatus",
    "ProbeMethod",
    "ProbeVerdict",
    "FailureState",
    "SiteSettingKeys",
    "MessageTemplates",
    "ErrorCodes",
]
