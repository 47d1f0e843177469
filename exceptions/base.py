"""
Base Exception Classes for the Uptime Engine

Every error the engine raises on purpose derives from
``UptimeEngineException`` and renders as ``[code] message``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class UptimeEngineException(Exception):
    """
    Root of the engine's exception hierarchy.

    Attributes:
        message: Text without the code prefix
        error_code: Numeric category, see ``config.constants.ErrorCodes``
        details: Structured context for log lines
        cause: The lower-level exception being wrapped, if any
        recoverable: False when the current cycle cannot continue
    """

    default_error_code: int = 1000
    default_recoverable: bool = True

    def __init__(
        self,
        message: str = "An error occurred",
        error_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        recoverable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.cause = cause
        self.recoverable = self.default_recoverable if recoverable is None else recoverable

    def log_format(self) -> str:
        """Single-line rendering with class, code, details and cause."""
        line = f"{self.__class__.__name__} [{self.error_code}] {self.message}"
        if self.details:
            line += f" | details={self.details}"
        if self.cause:
            line += f" | cause={self.cause!r}"
        return line

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, error_code={self.error_code})"


class ConfigurationError(UptimeEngineException):
    """An environment variable or stored setting holds an unusable value."""

    default_error_code = 1100

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        if config_key:
            self.details["config_key"] = config_key


class InitializationError(UptimeEngineException):
    """A subsystem could not be brought up during startup."""

    default_error_code = 1200
    default_recoverable = False

    def __init__(self, message: str, component: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        if component:
            self.details["component"] = component
