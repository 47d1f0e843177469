"""
Monitoring Exception Classes for the Uptime Engine

Probe errors are raised inside the protocol codecs and probers and are
converted into ``ProbeOutcome.failed`` at the prober boundary; they never
reach the caller of an uptime cycle.
"""

from __future__ import annotations

from typing import Any, Optional

from config.constants import ErrorCodes
from exceptions.base import UptimeEngineException


class MonitoringException(UptimeEngineException):
    """Base class for monitoring-related errors."""

    default_error_code = ErrorCodes.PROBE_ERROR


class ProbeError(MonitoringException):
    """
    Probe Error

    A single probe attempt could not produce a verdict.
    """

    default_error_code = ErrorCodes.PROBE_ERROR

    def __init__(
        self,
        message: str = "Probe failed",
        address: Optional[str] = None,
        port: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if address:
            self.details["address"] = address

        if port:
            self.details["port"] = port


class ProbeTimeoutError(ProbeError):
    """The target did not answer within the probe timeout."""

    default_error_code = ErrorCodes.PROBE_TIMEOUT


class ProbeConnectionError(ProbeError):
    """The connection was refused, reset, or could not be opened."""

    default_error_code = ErrorCodes.PROBE_CONNECTION_ERROR


class ProbeProtocolError(ProbeError):
    """The target answered with a malformed or unexpected reply."""

    default_error_code = ErrorCodes.PROBE_PROTOCOL_ERROR


class EscalationError(MonitoringException):
    """
    Escalation Error

    A single Discord API call made by the escalation dispatcher failed.
    """

    default_error_code = ErrorCodes.ESCALATION_ERROR

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code

        if status_code is not None:
            self.details["status_code"] = status_code


class CycleInProgressError(MonitoringException):
    """
    Cycle In Progress Error

    Raised when an uptime cycle is requested while the previous one is
    still running. The request is skipped, not queued.
    """

    default_error_code = ErrorCodes.CYCLE_IN_PROGRESS

    def __init__(self, message: str = "An uptime cycle is already running", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
