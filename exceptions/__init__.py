"""
Exceptions Package for the Uptime Engine

Provides the exception hierarchy used for error handling
throughout the application.
"""

from exceptions.base import (
    UptimeEngineException,
    ConfigurationError,
    InitializationError,
)

from exceptions.database import (
    DatabaseException,
    DatabaseConnectionError,
    DatabaseQueryError,
)

from exceptions.monitoring import (
    MonitoringException,
    ProbeError,
    ProbeTimeoutError,
    ProbeConnectionError,
    ProbeProtocolError,
    EscalationError,
    CycleInProgressError,
)

__all__ = [
    # Base exceptions
    "UptimeEngineException",
    "ConfigurationError",
    "InitializationError",

    # Database exceptions
    "DatabaseException",
    "DatabaseConnectionError",
    "DatabaseQueryError",

    # Monitoring exceptions
    "MonitoringException",
    "ProbeError",
    "ProbeTimeoutError",
    "ProbeConnectionError",
    "ProbeProtocolError",
    "EscalationError",
    "CycleInProgressError",
]
