"""
Utility Package for the Uptime Engine

Logging setup and small shared helpers.
"""

from utils.logger import setup_logging, get_logger, MonitorLogger
from utils.helpers import TimeHelper, StringHelper

__all__ = [
    "setup_logging",
    "get_logger",
    "MonitorLogger",
    "TimeHelper",
    "StringHelper",
]
