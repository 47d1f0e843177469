"""
============================================================================
UPTIME ENGINE - FAILURE TRACKER
============================================================================
Per-server consecutive-failure state machine.

    HEALTHY ──offline──▶ DEGRADED ──offline (n = T)──▶ ALERTING ──▶ NOTIFIED
       ▲                     │                                        │
       └─────────────────────┴────────────── online ──────────────────┘

The counter and the notified flag are fields of the ``servers`` row. The
tracker mutates the row in memory; the caller persists it in the same
transaction as the history records so the flag is durable before any
alert is sent.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from config.constants import FailureState, ServerStatus
from exceptions import ConfigurationError
from monitoring.orchestrator import CheckResult
from utils.helpers import TimeHelper
from utils.logger import MonitorLogger, get_logger


logger = get_logger("FailureTracker")


@dataclass(frozen=True)
class Transition:
    """What one verdict did to a server's failure state."""
    server_id: int
    server_name: str
    previous_state: FailureState
    new_state: FailureState
    previous_failures: int
    failures: int
    escalate: bool = False
    recovered: bool = False


class FailureTracker:
    """
    Applies verdicts to server rows.

    An escalation is requested when the counter is at or above the
    threshold and the server has not been notified for the current outage.
    The notified flag is set in the same step, so later failures of the
    same outage never request another one.
    """

    def __init__(self, threshold: int):
        if threshold < 1:
            raise ConfigurationError(
                "Failure threshold must be at least 1", config_key="MONITOR_FAILURE_THRESHOLD"
            )
        self.threshold = threshold
        self.monitor_logger = MonitorLogger()

    def state_of(self, server: Any) -> FailureState:
        return FailureState.classify(
            server.consecutive_failures or 0,
            bool(server.offline_notified),
            self.threshold,
        )

    def advance(self, server: Any, result: CheckResult, now: Optional[datetime] = None) -> Transition:
        """
        Apply *result* to *server* in place.

        Args:
            server: Server row (mutated)
            result: Authoritative verdict for this cycle
            now: Check timestamp, defaults to the current UTC time

        Returns:
            Transition describing the change
        """
        now = now or TimeHelper.get_utc_now()
        previous_state = self.state_of(server)
        previous_failures = server.consecutive_failures or 0

        server.last_checked_at = now

        if result.online:
            server.status = ServerStatus.ONLINE.value
            server.players_online = result.players_online
            server.players_max = result.players_max
            server.consecutive_failures = 0
            server.offline_notified = False

            recovered = previous_failures > 0
            if recovered:
                self.monitor_logger.log_recovery(server.name, previous_failures)

            return Transition(
                server_id=server.id,
                server_name=server.name,
                previous_state=previous_state,
                new_state=FailureState.HEALTHY,
                previous_failures=previous_failures,
                failures=0,
                recovered=recovered,
            )

        failures = previous_failures + 1
        server.status = ServerStatus.OFFLINE.value
        server.players_online = 0
        server.consecutive_failures = failures

        escalate = failures >= self.threshold and not server.offline_notified
        if escalate:
            server.offline_notified = True
            self.monitor_logger.log_downtime(server.name, failures, self.threshold)
        else:
            logger.debug(f"[Tracker] {server.name}: {failures} consecutive failures")

        return Transition(
            server_id=server.id,
            server_name=server.name,
            previous_state=previous_state,
            new_state=self.state_of(server),
            previous_failures=previous_failures,
            failures=failures,
            escalate=escalate,
        )
