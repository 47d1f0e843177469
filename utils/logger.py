"""
============================================================================
UPTIME ENGINE - LOGGING UTILITY
============================================================================
loguru-based logging with a console sink, an optional rotating file sink,
and a separate error file.

Modules obtain a named logger via ``get_logger("Name")``; the name is
bound into every record so the console format can show which component
emitted it.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import sys
from typing import Optional

from loguru import logger

from config.settings import LoggingSettings, get_settings


_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | "
    "{extra[name]}:{function}:{line} - {message}"
)

# Records emitted through the bare ``logger`` carry no bound name
logger.configure(extra={"name": "root"})


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

def setup_logging(log_settings: Optional[LoggingSettings] = None) -> None:
    """
    Configure the loguru sinks.

    Removes loguru's default handler, then installs console, file, and
    error-file sinks according to *log_settings* (defaults to the cached
    application settings).
    """
    log_settings = log_settings or get_settings().logging

    logger.remove()

    log_level = log_settings.level.value

    # Console Handler
    if log_settings.console_enabled:
        logger.add(
            sys.stdout,
            format=_CONSOLE_FORMAT,
            level=log_level,
            colorize=log_settings.colorize,
            backtrace=True,
            diagnose=False,
        )

    # File Handler
    if log_settings.file_enabled:
        log_settings.logs_dir.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_settings.file_path,
            format=_FILE_FORMAT,
            level=log_level,
            rotation=log_settings.file_rotation,
            retention=log_settings.file_retention,
            compression="zip",
            serialize=log_settings.serialize,
            backtrace=True,
            diagnose=False,
            enqueue=True,
        )

        # Error log file (separate file for errors)
        logger.add(
            log_settings.logs_dir / "errors.log",
            format=_FILE_FORMAT,
            level="ERROR",
            rotation="1 day",
            retention="7 days",
            compression="zip",
            backtrace=True,
            diagnose=False,
            enqueue=True,
        )

    logger.bind(name="Logging").info(
        f"Logging system initialized: level={log_level}, "
        f"console={log_settings.console_enabled}, file={log_settings.file_enabled}"
    )


def get_logger(name: Optional[str] = None):
    """
    Get logger instance with optional name.

    Args:
        name: Logger name (component name or __name__)

    Returns:
        Bound loguru logger
    """
    if name:
        return logger.bind(name=name)
    return logger


# ============================================================================
# SPECIALIZED LOGGERS
# ============================================================================

class MonitorLogger:
    """
    Specialized logger for uptime check outcomes.
    """

    def __init__(self):
        self.logger = get_logger("Monitor")

    def log_check(self, server_name: str, online: bool, method: str, latency_ms: Optional[int] = None):
        """Log the verdict of a check."""
        if online:
            latency = f"{latency_ms}ms" if latency_ms is not None else "n/a"
            self.logger.debug(f"✓ {server_name} ONLINE via {method} ({latency})")
        else:
            self.logger.info(f"✗ {server_name} OFFLINE (method={method})")

    def log_downtime(self, server_name: str, failures: int, threshold: int):
        """Log an outage that reached the escalation threshold."""
        self.logger.warning(
            f"Outage detected for {server_name}: {failures} consecutive failures "
            f"(threshold {threshold})"
        )

    def log_recovery(self, server_name: str, failures: int):
        """Log recovery after a failure streak."""
        self.logger.info(
            f"Recovery detected for {server_name} after {failures} consecutive failures"
        )
