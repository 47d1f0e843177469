"""
============================================================================
UPTIME ENGINE - MONITORING PACKAGE
============================================================================
Runtime monitoring infrastructure:
    • Probers            - native game-protocol and remote-API status checks
    • Orchestrator       - retry / fallback chain producing one verdict
    • FleetScanner       - concurrent roster scan, maintenance exclusion
    • FailureTracker     - consecutive-failure state machine
    • EscalationDispatcher - Discord DM alerts to the operator role
    • HistoryStore       - append-only uptime records with retention
    • UptimeEngine       - one guarded cycle end to end
    • TriggerServer      - aiohttp endpoint the external cron calls
    • Scheduler          - optional in-process periodic runner

File layout
-----------
monitoring/
├── __init__.py          ← this file
├── protocols.py         ← VarInt / Server List Ping / RakNet codecs
├── prober.py            ← NativeProber + RemoteApiProber
├── orchestrator.py      ← RetryFallbackOrchestrator + CheckResult
├── scanner.py           ← FleetScanner + ScanReport
├── tracker.py           ← FailureTracker + Transition
├── alerts.py            ← EscalationDispatcher
├── history.py           ← HistoryStore
├── engine.py            ← UptimeEngine + CycleSummary
├── trigger.py           ← TriggerServer
└── scheduler.py         ← Scheduler

============================================================================
"""

from monitoring.prober import (
    ProbeOutcome,
    NativeProber,
    RemoteApiProber,
    JavaEditionProber,
    BedrockEditionProber,
    HytaleProber,
    TcpConnectProber,
)
from monitoring.orchestrator import RetryFallbackOrchestrator, CheckResult
from monitoring.scanner import FleetScanner, ScanReport
from monitoring.tracker import FailureTracker, Transition
from monitoring.alerts import (
    EscalationDispatcher,
    EscalationConfig,
    EscalationRequest,
    EscalationReport,
)
from monitoring.history import HistoryStore
from monitoring.engine import UptimeEngine, CycleSummary
from monitoring.trigger import TriggerServer, is_authorized
from monitoring.scheduler import Scheduler, ScheduledJob

__all__ = [
    # Probers
    "ProbeOutcome",
    "NativeProber",
    "RemoteApiProber",
    "JavaEditionProber",
    "BedrockEditionProber",
    "HytaleProber",
    "TcpConnectProber",

    # Verdicts
    "RetryFallbackOrchestrator",
    "CheckResult",
    "FleetScanner",
    "ScanReport",

    # State & escalation
    "FailureTracker",
    "Transition",
    "EscalationDispatcher",
    "EscalationConfig",
    "EscalationRequest",
    "EscalationReport",

    # History
    "HistoryStore",

    # Engine & surfaces
    "UptimeEngine",
    "CycleSummary",
    "TriggerServer",
    "is_authorized",
    "Scheduler",
    "ScheduledJob",
]
