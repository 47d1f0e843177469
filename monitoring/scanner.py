"""
============================================================================
UPTIME ENGINE - FLEET SCANNER
============================================================================
Partitions the roster into active and maintenance servers and runs the
retry/fallback orchestrator over every active server concurrently.

Maintenance servers are reported by name only: no probe, no history
record, no failure-state change.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

from config.constants import ProbeMethod
from monitoring.orchestrator import CheckResult, RetryFallbackOrchestrator
from utils.helpers import StringHelper
from utils.logger import MonitorLogger, get_logger


logger = get_logger("FleetScanner")


# ============================================================================
# SCAN REPORT
# ============================================================================

@dataclass
class ScanReport:
    """Outcome of one scan over the roster."""
    results: List[CheckResult] = field(default_factory=list)
    maintenance: List[str] = field(default_factory=list)

    @property
    def checked(self) -> int:
        return len(self.results)

    @property
    def online(self) -> int:
        return sum(1 for r in self.results if r.online)

    @property
    def offline(self) -> int:
        return self.checked - self.online

    @property
    def skipped(self) -> int:
        return len(self.maintenance)

    def method_counts(self) -> Dict[str, int]:
        counts = {method.value: 0 for method in ProbeMethod}
        for result in self.results:
            counts[result.method.value] += 1
        return counts


# ============================================================================
# FLEET SCANNER
# ============================================================================

class FleetScanner:
    """
    Concurrent roster scan.

    Concurrency across servers is bounded by ``max_concurrent`` (0 means
    unbounded). A failure local to one server is folded into an offline
    result for that server and never aborts the scan.
    """

    def __init__(self, orchestrator: RetryFallbackOrchestrator, max_concurrent: int = 0):
        self.orchestrator = orchestrator
        self.max_concurrent = max_concurrent
        self.monitor_logger = MonitorLogger()

    @staticmethod
    def partition(servers: Sequence[Any]) -> Tuple[List[Any], List[Any]]:
        """Split *servers* into ``(active, maintenance)``, preserving order."""
        active = [s for s in servers if not s.maintenance_mode]
        maintenance = [s for s in servers if s.maintenance_mode]
        return active, maintenance

    async def _check_guarded(self, server: Any, semaphore) -> CheckResult:
        async with semaphore:
            try:
                result = await self.orchestrator.check(server)
            except Exception as e:
                logger.opt(exception=True).error(
                    f"[Scanner] Unexpected error checking {server.name} (id={server.id}): {e}"
                )
                result = CheckResult.unreachable(
                    server.id,
                    server.name,
                    error=StringHelper.truncate(f"Internal error: {e}"),
                )

        self.monitor_logger.log_check(server.name, result.online, result.method.value, result.latency_ms)
        return result

    async def scan(self, servers: Sequence[Any]) -> ScanReport:
        """
        Check every active server once.

        Args:
            servers: Full roster, maintenance servers included

        Returns:
            ScanReport with one result per active server, in roster order
        """
        active, maintenance = self.partition(servers)

        for server in maintenance:
            logger.debug(f"[Scanner] Skipping {server.name}: maintenance mode")

        semaphore = asyncio.Semaphore(self.max_concurrent) if self.max_concurrent > 0 else nullcontext()

        results = await asyncio.gather(
            *(self._check_guarded(server, semaphore) for server in active)
        )

        report = ScanReport(results=list(results), maintenance=[s.name for s in maintenance])
        logger.info(
            f"[Scanner] Scan complete: {report.checked} checked, {report.online} online, "
            f"{report.offline} offline, {report.skipped} in maintenance"
        )
        return report
