"""Shared pytest fixtures for the uptime engine tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from config.settings import (
    DatabaseSettings,
    EscalationSettings,
    LoggingSettings,
    MonitoringSettings,
    Settings,
    TriggerSettings,
)
from database.manager import DatabaseManager



@pytest.fixture
def monitoring_settings() -> MonitoringSettings:
    """Default retry policy without real backoff or DNS lookups."""
    return MonitoringSettings(
        failure_threshold=5,
        native_retries=2,
        remote_retries=2,
        retry_backoff=1.0,
        srv_lookup_enabled=False,
        native_timeout=1.0,
        remote_timeout=1.0,
    )


@pytest.fixture
def escalation_settings() -> EscalationSettings:
    return EscalationSettings(
        enabled=True,
        discord_api_url="https://discord.test/api/v10",
        discord_bot_token=None,
        discord_guild_id=None,
        discord_role_id=None,
        send_delay=1.0,
        member_page_size=1000,
    )


@pytest.fixture
def settings(monitoring_settings, escalation_settings, tmp_path: Path) -> Settings:
    return Settings(
        database=DatabaseSettings(sqlite_path=tmp_path / "uptime.db"),
        monitoring=monitoring_settings,
        escalation=escalation_settings,
        trigger=TriggerSettings(cron_secret=None, scheduler_enabled=False),
        logging=LoggingSettings(console_enabled=False, file_enabled=False),
    )


@pytest.fixture
async def db_manager(tmp_path: Path):
    manager = DatabaseManager(
        DatabaseSettings(),
        url=f"sqlite+aiosqlite:///{tmp_path / 'uptime.db'}",
    )
    await manager.initialize()
    try:
        yield manager
    finally:
        await manager.close()

