"""Startup and shutdown of the whole application."""

from __future__ import annotations

import socket

import httpx
import pytest

from config.settings import TriggerSettings
from main import UptimeEngineApplication


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def app_settings(settings):
    trigger = TriggerSettings(host="127.0.0.1", port=free_port(), cron_secret=None)
    return settings.model_copy(update={"trigger": trigger})


class TestUptimeEngineApplication:
    @pytest.mark.asyncio
    async def test_serves_trigger_with_empty_roster(self, app_settings) -> None:
        app = UptimeEngineApplication(app_settings)
        assert await app.startup()
        try:
            base = f"http://127.0.0.1:{app_settings.trigger.port}"
            async with httpx.AsyncClient(base_url=base) as client:
                response = await client.get(app_settings.trigger.path)
                health = await client.get("/health")
        finally:
            await app.shutdown()

        assert response.status_code == 200
        assert response.json()["checked"] == 0
        assert health.json()["engine"]["cycles"] == 1
        assert health.json()["scheduler"] is None
        assert app.scheduler is None

    @pytest.mark.asyncio
    async def test_scheduler_registered_when_enabled(self, app_settings) -> None:
        trigger = app_settings.trigger.model_copy(update={"scheduler_enabled": True, "scheduler_interval": 3600})
        settings = app_settings.model_copy(update={"trigger": trigger})

        app = UptimeEngineApplication(settings)
        assert await app.startup()
        try:
            stats = app.scheduler.get_job_stats()
        finally:
            await app.shutdown()

        assert [job["name"] for job in stats] == ["uptime_cycle"]
        assert stats[0]["interval_seconds"] == 3600
        assert not app.scheduler.is_running

    @pytest.mark.asyncio
    async def test_port_in_use_fails_startup(self, app_settings) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", app_settings.trigger.port))
            blocker.listen()

            app = UptimeEngineApplication(app_settings)
            try:
                assert await app.startup() is False
            finally:
                await app.shutdown()

        assert app.trigger_server is None
