"""
============================================================================
UPTIME ENGINE - RETRY / FALLBACK ORCHESTRATOR
============================================================================
Turns a chain of fallible probe attempts into one authoritative
``CheckResult`` per server.

    native × R  ──(no definitive verdict)──▶  remote-api × R  ──▶  none

* Each method is retried up to R times with a fixed backoff between its
  own attempts, stopping at the first definitive verdict.
* A definitive verdict from any method is authoritative, including a
  remote ``offline``.
* When every attempt failed, the server is offline with method ``none``.
* A method that does not support the server's game type is skipped and
  costs no attempts.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from config.constants import GameType, ProbeMethod
from config.settings import MonitoringSettings
from monitoring.prober import NativeProber, ProbeOutcome, RemoteApiProber
from utils.logger import get_logger


logger = get_logger("Orchestrator")

SleepFunc = Callable[[float], Awaitable[Any]]
Prober = Union[NativeProber, RemoteApiProber]


# ============================================================================
# CHECK RESULT
# ============================================================================

@dataclass
class CheckResult:
    """
    Authoritative verdict for one server in one cycle.

    ``latency_ms`` is ``None`` when nothing answered.
    """
    server_id: int
    server_name: str
    online: bool
    players_online: int = 0
    players_max: int = 0
    latency_ms: Optional[int] = None
    method: ProbeMethod = ProbeMethod.NONE
    attempts: int = 0
    error: Optional[str] = None

    @classmethod
    def unreachable(cls, server_id: int, server_name: str, attempts: int = 0, error: Optional[str] = None) -> "CheckResult":
        """Offline verdict for a server no method could reach."""
        return cls(
            server_id=server_id,
            server_name=server_name,
            online=False,
            method=ProbeMethod.NONE,
            attempts=attempts,
            error=error,
        )

    def to_response(self) -> Dict[str, Any]:
        return {
            "name": self.server_name,
            "online": self.online,
            "playerCount": self.players_online,
            "methodUsed": self.method.value,
        }


# ============================================================================
# ORCHESTRATOR
# ============================================================================

class RetryFallbackOrchestrator:
    """
    Runs the native → remote → none fallback chain for a single server.

    Attempts for one server are strictly sequential; concurrency across
    servers is the fleet scanner's concern.
    """

    def __init__(
        self,
        settings: MonitoringSettings,
        native: NativeProber,
        remote: Optional[RemoteApiProber] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        Args:
            settings: Monitoring settings (retry counts and backoff)
            native: Native protocol prober
            remote: Remote API prober, or None to disable the fallback
            sleep: Awaitable used for backoff (replaceable in tests)
        """
        self.settings = settings
        self.native = native
        self.remote = remote if settings.remote_fallback_enabled else None
        self._sleep = sleep

    def _chain(self) -> List[Tuple[Prober, int]]:
        chain: List[Tuple[Prober, int]] = [(self.native, self.settings.native_retries)]
        if self.remote is not None:
            chain.append((self.remote, self.settings.remote_retries))
        return chain

    async def _run_method(
        self,
        prober: Prober,
        retries: int,
        address: str,
        port: int,
        game_type: GameType,
        label: str,
    ) -> Tuple[Optional[ProbeOutcome], int, Optional[str]]:
        """
        Probe with one method until a definitive verdict or *retries* runs out.

        Returns:
            ``(definitive outcome or None, attempts made, last error)``
        """
        last_error: Optional[str] = None
        for attempt in range(1, retries + 1):
            outcome = await prober.probe(address, port, game_type)
            if outcome.is_definitive:
                return outcome, attempt, None

            last_error = outcome.error
            logger.debug(
                f"[{label}] {prober.method.value} attempt {attempt}/{retries} failed: {last_error}"
            )
            if attempt < retries:
                await self._sleep(self.settings.retry_backoff)

        return None, retries, last_error

    async def check(self, server: Any) -> CheckResult:
        """
        Produce the authoritative verdict for *server*.

        Args:
            server: Roster entry with ``id``, ``name``, ``address``,
                ``port`` and ``game_type``

        Returns:
            CheckResult carrying the method that decided and the total
            number of probe calls made
        """
        game_type = GameType.parse(server.game_type)
        port = server.port or game_type.default_port
        label = server.name

        attempts = 0
        errors: List[str] = []

        for prober, retries in self._chain():
            if retries <= 0 or not prober.supports(game_type):
                continue

            outcome, used, last_error = await self._run_method(
                prober, retries, server.address, port, game_type, label
            )
            attempts += used

            if outcome is not None:
                return CheckResult(
                    server_id=server.id,
                    server_name=server.name,
                    online=outcome.is_online,
                    players_online=outcome.players_online if outcome.is_online else 0,
                    players_max=outcome.players_max if outcome.is_online else 0,
                    latency_ms=outcome.latency_ms,
                    method=prober.method,
                    attempts=attempts,
                    error=outcome.error,
                )

            if last_error:
                errors.append(f"{prober.method.value}: {last_error}")

        logger.debug(f"[{label}] all {attempts} attempts failed")
        return CheckResult.unreachable(
            server.id,
            server.name,
            attempts=attempts,
            error="; ".join(errors) or "No probe method available",
        )
