"""
============================================================================
UPTIME ENGINE - HELPERS UTILITY
============================================================================
Small time and string helpers shared across the engine.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Optional


# ============================================================================
# TIME UTILITIES
# ============================================================================

class TimeHelper:
    """
    Time and date manipulation utilities.
    """

    @staticmethod
    def get_utc_now() -> datetime:
        """Get current UTC datetime (timezone-aware)."""
        return datetime.now(timezone.utc)

    @staticmethod
    def days_ago(days: int, now: Optional[datetime] = None) -> datetime:
        """Return the instant *days* days before *now* (defaults to the current time)."""
        return (now or TimeHelper.get_utc_now()) - timedelta(days=days)

    @staticmethod
    def elapsed_ms(start: float) -> int:
        """Milliseconds elapsed since a ``time.perf_counter()`` reading."""
        return int(round((time.perf_counter() - start) * 1000))

    @staticmethod
    def format_datetime(dt: datetime, fmt: str = "%Y-%m-%d %H:%M:%S UTC") -> str:
        """
        Format datetime to string.

        Args:
            dt: Datetime to format
            fmt: Format string

        Returns:
            Formatted string
        """
        return dt.strftime(fmt)

    @staticmethod
    def seconds_to_human_readable(seconds: int) -> str:
        """
        Convert seconds to human-readable format.

        Args:
            seconds: Number of seconds

        Returns:
            Human-readable string (e.g., "2h 30m 15s")
        """
        if seconds < 0:
            return "0s"

        days, remainder = divmod(seconds, 86400)
        hours, remainder = divmod(remainder, 3600)
        minutes, secs = divmod(remainder, 60)

        parts = []
        if days > 0:
            parts.append(f"{days}d")
        if hours > 0:
            parts.append(f"{hours}h")
        if minutes > 0:
            parts.append(f"{minutes}m")
        if secs > 0 or not parts:
            parts.append(f"{secs}s")

        return " ".join(parts)


# ============================================================================
# STRING UTILITIES
# ============================================================================

class StringHelper:
    """
    String manipulation utilities.
    """

    @staticmethod
    def truncate(text: str, max_length: int = 200, suffix: str = "...") -> str:
        """Truncate *text* to *max_length* characters, appending *suffix* when cut."""
        if len(text) <= max_length:
            return text
        return text[:max_length - len(suffix)] + suffix

    @staticmethod
    def mask_secret(value: Optional[str], visible: int = 4) -> str:
        """Mask all but the last *visible* characters of a secret for logging."""
        if not value:
            return "<unset>"
        if len(value) <= visible:
            return "*" * len(value)
        return "*" * (len(value) - visible) + value[-visible:]
