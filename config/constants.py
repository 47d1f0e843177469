"""
Constants Module for the Uptime Engine

Contains enumerations, templates, and static values shared by the
monitoring engine, the persistence layer, and the trigger endpoint.
"""

from __future__ import annotations

from enum import Enum
from typing import Final


class GameType(str, Enum):
    """
    Game / Protocol Type Enumeration

    Selects which native prober is used for a server. Values match the
    ``game_type`` column written by the admin surface.
    """

    MINECRAFT = "minecraft"
    MINECRAFT_BEDROCK = "minecraft_bedrock"
    HYTALE = "hytale"
    TCP = "tcp"

    @classmethod
    def parse(cls, value: "str | GameType | None") -> "GameType":
        """Coerce a stored value to a GameType, defaulting to Java Minecraft."""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.MINECRAFT
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.MINECRAFT

    @property
    def default_port(self) -> int:
        return _DEFAULT_PORTS[self]


_DEFAULT_PORTS = {
    GameType.MINECRAFT: 25565,
    GameType.MINECRAFT_BEDROCK: 19132,
    GameType.HYTALE: 5520,
    GameType.TCP: 80,
}


class ServerStatus(str, Enum):
    """Aggregate status persisted on the server row."""

    ONLINE = "online"
    OFFLINE = "offline"


class ProbeMethod(str, Enum):
    """
    Probe Method Enumeration

    Records which method produced the authoritative verdict for a check.
    ``NONE`` means every attempt across every method failed.
    """

    NATIVE = "native"
    REMOTE_API = "remote-api"
    NONE = "none"


class ProbeVerdict(str, Enum):
    """Outcome of a single probe attempt."""

    ONLINE = "online"
    OFFLINE = "offline"
    FAILED = "failed"

    @property
    def is_definitive(self) -> bool:
        return self is not ProbeVerdict.FAILED


class FailureState(str, Enum):
    """
    Failure Tracker States

    HEALTHY   counter == 0
    DEGRADED  1 <= counter < threshold
    ALERTING  counter >= threshold, escalation not yet sent
    NOTIFIED  counter >= threshold, escalation already sent
    """

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    ALERTING = "alerting"
    NOTIFIED = "notified"

    @classmethod
    def classify(cls, failures: int, notified: bool, threshold: int) -> "FailureState":
        if failures <= 0:
            return cls.HEALTHY
        if failures < threshold:
            return cls.DEGRADED
        return cls.NOTIFIED if notified else cls.ALERTING


class SiteSettingKeys:
    """Keys of values stored in the ``site_settings`` table."""

    CRON_SECRET: Final[str] = "cron_secret"
    DISCORD_BOT_TOKEN: Final[str] = "discord_bot_token"
    DISCORD_GUILD_ID: Final[str] = "discord_guild_id"
    DISCORD_ALERT_ROLE_ID: Final[str] = "discord_alert_role_id"


class MessageTemplates:
    """
    Message Templates for Escalation Alerts

    Rendered into a Discord embed by the escalation dispatcher.
    """

    ALERT_TITLE: Final[str] = "🔴 Server Offline: {server_name}"

    ALERT_DESCRIPTION: Final[str] = (
        "**{server_name}** has failed **{failure_count}** consecutive "
        "uptime checks and is considered down.\n\n"
        "Please investigate the server as soon as possible."
    )

    ALERT_FOOTER: Final[str] = "Uptime Engine • alert sent once per outage"

    # Discord embed colour (red)
    ALERT_COLOR: Final[int] = 0xE74C3C


class ErrorCodes:
    """Application error codes."""

    # General errors (1xxx)
    UNKNOWN_ERROR: Final[int] = 1000
    CONFIGURATION_ERROR: Final[int] = 1002
    INITIALIZATION_ERROR: Final[int] = 1003

    # Database errors (2xxx)
    DB_CONNECTION_ERROR: Final[int] = 2000
    DB_QUERY_ERROR: Final[int] = 2001

    # Monitoring errors (5xxx)
    PROBE_ERROR: Final[int] = 5000
    PROBE_TIMEOUT: Final[int] = 5001
    PROBE_CONNECTION_ERROR: Final[int] = 5002
    PROBE_PROTOCOL_ERROR: Final[int] = 5003
    ESCALATION_ERROR: Final[int] = 5100
    CYCLE_IN_PROGRESS: Final[int] = 5200
