"""Tests for the fleet scanner."""

from __future__ import annotations

import pytest

from config.constants import ProbeMethod
from monitoring.scanner import FleetScanner, ScanReport

from tests.mocks import StubOrchestrator, make_server


def roster():
    return [
        make_server(1, "Survival"),
        make_server(2, "Creative"),
        make_server(3, "Skyblock", maintenance_mode=True),
        make_server(4, "Lobby"),
    ]


class TestFleetScanner:
    def test_partition_preserves_order(self) -> None:
        active, maintenance = FleetScanner.partition(roster())
        assert [s.name for s in active] == ["Survival", "Creative", "Lobby"]
        assert [s.name for s in maintenance] == ["Skyblock"]

    @pytest.mark.asyncio
    async def test_maintenance_servers_are_never_probed(self) -> None:
        orchestrator = StubOrchestrator({"Survival": True, "Lobby": True})
        report = await FleetScanner(orchestrator).scan(roster())

        assert "Skyblock" not in orchestrator.checked
        assert report.maintenance == ["Skyblock"]
        assert [r.server_name for r in report.results] == ["Survival", "Creative", "Lobby"]
        assert (report.checked, report.online, report.offline, report.skipped) == (3, 2, 1, 1)

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_offline_result(self) -> None:
        orchestrator = StubOrchestrator({"Survival": True, "Creative": RuntimeError("boom")})
        report = await FleetScanner(orchestrator).scan(roster())

        creative = next(r for r in report.results if r.server_name == "Creative")
        assert not creative.online
        assert creative.method is ProbeMethod.NONE
        assert "boom" in creative.error
        # The rest of the scan still completed
        assert report.checked == 3

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self) -> None:
        servers = [make_server(i, f"srv-{i}") for i in range(1, 7)]
        orchestrator = StubOrchestrator(delay=0.02)

        await FleetScanner(orchestrator, max_concurrent=2).scan(servers)

        assert len(orchestrator.checked) == 6
        assert orchestrator.peak_in_flight <= 2

    @pytest.mark.asyncio
    async def test_unbounded_runs_everything_at_once(self) -> None:
        servers = [make_server(i, f"srv-{i}") for i in range(1, 6)]
        orchestrator = StubOrchestrator(delay=0.02)

        await FleetScanner(orchestrator, max_concurrent=0).scan(servers)

        assert orchestrator.peak_in_flight == 5

    @pytest.mark.asyncio
    async def test_empty_roster(self) -> None:
        report = await FleetScanner(StubOrchestrator()).scan([])
        assert report.checked == 0
        assert report.results == []


class TestScanReport:
    @pytest.mark.asyncio
    async def test_method_counts_cover_every_method(self) -> None:
        orchestrator = StubOrchestrator({"Survival": True})
        report = await FleetScanner(orchestrator).scan(roster())

        assert report.method_counts() == {"native": 1, "remote-api": 0, "none": 2}

    def test_empty_report(self) -> None:
        report = ScanReport()
        assert (report.checked, report.online, report.offline, report.skipped) == (0, 0, 0, 0)
