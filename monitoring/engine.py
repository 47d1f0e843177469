"""
============================================================================
UPTIME ENGINE - CYCLE COORDINATOR
============================================================================
Runs one uptime cycle end to end:

    load roster ─▶ scan ─▶ [tracker + history in one transaction] ─▶ escalate

Only one cycle runs at a time. A cycle requested while another is in
progress is skipped with ``CycleInProgressError``; it is never queued.

Persistence errors propagate out of ``run_cycle`` unchanged. Escalation
runs after the state transaction commits, so a crash mid-dispatch can
lose an alert but never sends a duplicate.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from config.settings import Settings
from database.manager import DatabaseManager, ServerRepository, SiteSettingRepository
from exceptions import CycleInProgressError
from monitoring.alerts import (
    EscalationConfig,
    EscalationDispatcher,
    EscalationReport,
    EscalationRequest,
)
from monitoring.history import HistoryStore
from monitoring.orchestrator import RetryFallbackOrchestrator
from monitoring.prober import NativeProber, RemoteApiProber
from monitoring.scanner import FleetScanner, ScanReport
from monitoring.tracker import FailureTracker, Transition
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger("UptimeEngine")


# ============================================================================
# CYCLE SUMMARY
# ============================================================================

@dataclass
class CycleSummary:
    """Everything one cycle did, as reported to the trigger caller."""
    started_at: datetime
    finished_at: datetime
    threshold: int
    report: ScanReport
    transitions: List[Transition] = field(default_factory=list)
    escalations: List[EscalationReport] = field(default_factory=list)
    records_written: int = 0
    records_pruned: int = 0

    @property
    def duration_ms(self) -> int:
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def to_response(self) -> Dict[str, Any]:
        report = self.report
        return {
            "success": True,
            "message": (
                f"Checked {report.checked} servers: {report.online} online, "
                f"{report.offline} offline, {report.skipped} in maintenance"
            ),
            "checked": report.checked,
            "online": report.online,
            "offline": report.offline,
            "skipped": report.skipped,
            "threshold": self.threshold,
            "methods": report.method_counts(),
            "maintenance": list(report.maintenance),
            "escalations": len(self.escalations),
            "results": [result.to_response() for result in report.results],
        }

    def to_dict(self) -> Dict[str, Any]:
        """Compact form for the health endpoint."""
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_ms": self.duration_ms,
            "checked": self.report.checked,
            "online": self.report.online,
            "offline": self.report.offline,
            "skipped": self.report.skipped,
            "escalations": [e.to_dict() for e in self.escalations],
            "records_written": self.records_written,
            "records_pruned": self.records_pruned,
        }


# ============================================================================
# UPTIME ENGINE
# ============================================================================

class UptimeEngine:
    """
    Wires the scanner, tracker, history store and escalation dispatcher
    around the database, and guards against overlapping cycles.
    """

    def __init__(
        self,
        settings: Settings,
        db_manager: DatabaseManager,
        scanner: Optional[FleetScanner] = None,
        tracker: Optional[FailureTracker] = None,
        history: Optional[HistoryStore] = None,
        dispatcher: Optional[EscalationDispatcher] = None,
    ):
        monitoring = settings.monitoring

        self.settings = settings
        self.db_manager = db_manager

        if scanner is None:
            orchestrator = RetryFallbackOrchestrator(
                monitoring,
                native=NativeProber(monitoring),
                remote=RemoteApiProber(monitoring),
            )
            scanner = FleetScanner(orchestrator, max_concurrent=monitoring.max_concurrent_checks)

        self.scanner = scanner
        self.tracker = tracker or FailureTracker(monitoring.failure_threshold)
        self.history = history or HistoryStore(monitoring.history_retention_days)
        self.dispatcher = dispatcher or EscalationDispatcher(settings.escalation)

        self._lock = asyncio.Lock()
        self._cycle_count = 0
        self._skipped_count = 0
        self.last_summary: Optional[CycleSummary] = None

        logger.info(
            f"UptimeEngine created: threshold={self.tracker.threshold}, "
            f"native_retries={monitoring.native_retries}, "
            f"remote_retries={monitoring.remote_retries}, "
            f"max_concurrent={monitoring.max_concurrent_checks}"
        )

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run_cycle(self) -> CycleSummary:
        """
        Run one uptime cycle.

        Raises:
            CycleInProgressError: If a cycle is already running
            DatabaseException: If the roster or state cannot be read or written
        """
        if self._lock.locked():
            self._skipped_count += 1
            logger.warning("[Engine] Cycle requested while another is running; skipping")
            raise CycleInProgressError()

        async with self._lock:
            summary = await self._run_cycle()
            self._cycle_count += 1
            self.last_summary = summary
            return summary

    async def _run_cycle(self) -> CycleSummary:
        started_at = TimeHelper.get_utc_now()

        # --- roster & credentials ---
        async with self.db_manager.session() as session:
            servers = await ServerRepository(session).list_all()
            escalation_config = await EscalationConfig.resolve(
                self.settings.escalation, SiteSettingRepository(session)
            )

        logger.info(f"[Engine] Cycle started for {len(servers)} servers")

        # --- probe ---
        report = await self.scanner.scan(servers)

        # --- state & history, committed together ---
        transitions: List[Transition] = []
        requests: List[EscalationRequest] = []
        async with self.db_manager.session() as session:
            repo = ServerRepository(session)
            persisted = []
            for result in report.results:
                server = await repo.get(result.server_id)
                if server is None:
                    logger.warning(f"[Engine] {result.server_name} was removed during the cycle")
                    continue

                transition = self.tracker.advance(server, result, started_at)
                transitions.append(transition)
                persisted.append(result)

                if transition.escalate:
                    requests.append(EscalationRequest(
                        server_id=server.id,
                        server_name=server.name,
                        failure_count=transition.failures,
                        detected_at=started_at,
                    ))

            written = await self.history.append(session, persisted, started_at)
            pruned = await self.history.prune(session, started_at)

        # --- escalate after commit ---
        escalations = await self.dispatcher.dispatch_all(requests, escalation_config)

        summary = CycleSummary(
            started_at=started_at,
            finished_at=TimeHelper.get_utc_now(),
            threshold=self.tracker.threshold,
            report=report,
            transitions=transitions,
            escalations=escalations,
            records_written=written,
            records_pruned=pruned,
        )
        logger.info(
            f"✓ [Engine] Cycle finished in {summary.duration_ms}ms: "
            f"{report.online}/{report.checked} online, {len(escalations)} escalations"
        )
        return summary

    def get_stats(self) -> Dict[str, Any]:
        """Return engine counters for diagnostics."""
        return {
            "is_running": self.is_running,
            "cycles": self._cycle_count,
            "skipped_overlaps": self._skipped_count,
            "last_cycle": self.last_summary.to_dict() if self.last_summary else None,
            "escalation": self.dispatcher.get_stats(),
        }
