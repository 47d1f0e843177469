"""
============================================================================
UPTIME ENGINE - PROTOCOL PROBERS
============================================================================
A prober performs exactly one liveness attempt against a server and
returns a ``ProbeOutcome``. Transport problems (timeouts, refused
connections, malformed replies, HTTP errors) become ``failed`` outcomes;
they are never raised to the caller.

Architecture
------------
NativeProber              ← dispatch table keyed by GameType
├── JavaEditionProber     ← Server List Ping over TCP, optional SRV lookup
├── BedrockEditionProber  ← RakNet unconnected ping over UDP
├── HytaleProber          ← placeholder, always a transport failure
└── TcpConnectProber      ← bare TCP connect reachability
RemoteApiProber           ← mcstatus.io HTTP status API (Java, Bedrock)

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import ipaddress
import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import dns.asyncresolver
import dns.exception
import httpx

from config.constants import GameType, ProbeMethod, ProbeVerdict
from config.settings import MonitoringSettings
from exceptions import (
    ProbeConnectionError,
    ProbeError,
    ProbeProtocolError,
    ProbeTimeoutError,
)
from monitoring.protocols import query_bedrock_status, query_java_status
from utils.helpers import StringHelper, TimeHelper
from utils.logger import get_logger


logger = get_logger("Prober")


# ============================================================================
# PROBE OUTCOME
# ============================================================================

@dataclass(frozen=True)
class ProbeOutcome:
    """
    Result of one probe attempt.

    ``online`` and ``offline`` are definitive verdicts; ``failed`` means
    the attempt could not decide and may be retried.
    """
    verdict: ProbeVerdict
    players_online: int = 0
    players_max: int = 0
    latency_ms: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def online(cls, players_online: int = 0, players_max: int = 0, latency_ms: Optional[int] = None) -> "ProbeOutcome":
        return cls(
            verdict=ProbeVerdict.ONLINE,
            players_online=max(0, players_online),
            players_max=max(0, players_max),
            latency_ms=latency_ms,
        )

    @classmethod
    def offline(cls, latency_ms: Optional[int] = None, error: Optional[str] = None) -> "ProbeOutcome":
        return cls(verdict=ProbeVerdict.OFFLINE, latency_ms=latency_ms, error=error)

    @classmethod
    def failed(cls, error: str) -> "ProbeOutcome":
        return cls(verdict=ProbeVerdict.FAILED, error=StringHelper.truncate(error))

    @property
    def is_definitive(self) -> bool:
        return self.verdict.is_definitive

    @property
    def is_online(self) -> bool:
        return self.verdict is ProbeVerdict.ONLINE


# ============================================================================
# NATIVE PROTOCOL PROBERS
# ============================================================================

class ProtocolProber:
    """
    Base class for a single-protocol native prober.

    Subclasses implement ``_query`` and raise ``ProbeError`` subclasses on
    transport failure; ``probe`` turns those into ``failed`` outcomes.
    """

    game_type: GameType

    def __init__(self, timeout: float):
        self.timeout = timeout

    async def probe(self, address: str, port: int) -> ProbeOutcome:
        try:
            return await self._query(address, port)
        except ProbeError as e:
            logger.debug(f"[{self.game_type.value}] {address}:{port} → {e.message}")
            return ProbeOutcome.failed(e.message)
        except Exception as e:
            logger.opt(exception=True).warning(
                f"[{self.game_type.value}] {address}:{port} → unexpected {type(e).__name__}: {e}"
            )
            return ProbeOutcome.failed(f"Unexpected {type(e).__name__} while probing: {e}")

    async def _query(self, address: str, port: int) -> ProbeOutcome:
        raise NotImplementedError


class JavaEditionProber(ProtocolProber):
    """
    Java Edition Server List Ping.

    Hostnames on the default port are first looked up as
    ``_minecraft._tcp.<host>`` SRV records, the way the game client does.
    A failed lookup falls back to the address as given.
    """

    game_type = GameType.MINECRAFT

    def __init__(self, timeout: float, srv_lookup_enabled: bool = True):
        super().__init__(timeout)
        self.srv_lookup_enabled = srv_lookup_enabled

    @staticmethod
    def _is_ip_address(address: str) -> bool:
        try:
            ipaddress.ip_address(address)
            return True
        except ValueError:
            return False

    async def resolve_srv(self, address: str, port: int) -> Tuple[str, int]:
        """
        Resolve the connection target for ``address:port``.

        Returns:
            ``(host, port)`` from the best SRV record, or the input unchanged
        """
        if (
            not self.srv_lookup_enabled
            or port != GameType.MINECRAFT.default_port
            or self._is_ip_address(address)
        ):
            return address, port

        try:
            answers = await dns.asyncresolver.resolve(
                f"_minecraft._tcp.{address}", "SRV", lifetime=self.srv_timeout
            )
        except dns.exception.DNSException as e:
            logger.debug(f"[SRV] No record for {address}: {type(e).__name__}")
            return address, port

        # Lowest priority wins, then highest weight
        records = sorted(answers, key=lambda r: (r.priority, -r.weight))
        if not records:
            return address, port

        target = str(records[0].target).rstrip(".")
        logger.debug(f"[SRV] {address} → {target}:{records[0].port}")
        return target or address, records[0].port

    @property
    def srv_timeout(self) -> float:
        """SRV lookups get half the attempt budget; the ping gets the rest."""
        return self.timeout / 2

    async def _query(self, address: str, port: int) -> ProbeOutcome:
        deadline = time.monotonic() + self.timeout
        host, target_port = await self.resolve_srv(address, port)

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ProbeTimeoutError(
                f"SRV lookup used the whole {self.timeout}s budget", address=address, port=port
            )
        status = await query_java_status(host, target_port, remaining, handshake_host=address)
        return ProbeOutcome.online(status.players_online, status.players_max, status.latency_ms)


class BedrockEditionProber(ProtocolProber):
    """Bedrock Edition RakNet unconnected ping."""

    game_type = GameType.MINECRAFT_BEDROCK

    async def _query(self, address: str, port: int) -> ProbeOutcome:
        status = await query_bedrock_status(address, port, self.timeout)
        return ProbeOutcome.online(status.players_online, status.players_max, status.latency_ms)


class HytaleProber(ProtocolProber):
    """
    Hytale has no published status protocol yet. Every attempt is a
    transport failure so the remote and final fallbacks decide.
    """

    game_type = GameType.HYTALE

    async def _query(self, address: str, port: int) -> ProbeOutcome:
        raise ProbeProtocolError("Hytale status protocol not implemented", address=address, port=port)


class TcpConnectProber(ProtocolProber):
    """
    Bare TCP connect check for servers without a known status protocol.
    A completed handshake counts as online with no player information.
    """

    game_type = GameType.TCP

    async def _query(self, address: str, port: int) -> ProbeOutcome:
        start = time.perf_counter()
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(address, port),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProbeTimeoutError(
                f"TCP connection to {address}:{port} timed out", address=address, port=port, cause=e
            ) from e
        except OSError as e:
            raise ProbeConnectionError(
                f"TCP connection refused or failed: {e}", address=address, port=port, cause=e
            ) from e

        latency_ms = TimeHelper.elapsed_ms(start)

        # Only connectivity matters
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass

        logger.debug(f"[TCP] {address}:{port} → connected in {latency_ms}ms")
        return ProbeOutcome.online(latency_ms=latency_ms)


class NativeProber:
    """
    Dispatches a probe to the protocol prober registered for a game type.
    """

    method = ProbeMethod.NATIVE

    def __init__(self, settings: MonitoringSettings, probers: Optional[Dict[GameType, ProtocolProber]] = None):
        self.settings = settings
        if probers is None:
            timeout = settings.native_timeout
            probers = {
                GameType.MINECRAFT: JavaEditionProber(timeout, settings.srv_lookup_enabled),
                GameType.MINECRAFT_BEDROCK: BedrockEditionProber(timeout),
                GameType.HYTALE: HytaleProber(timeout),
                GameType.TCP: TcpConnectProber(timeout),
            }
        self._probers: Dict[GameType, ProtocolProber] = probers

    def supports(self, game_type: GameType) -> bool:
        return game_type in self._probers

    async def probe(self, address: str, port: int, game_type: GameType) -> ProbeOutcome:
        prober = self._probers.get(game_type)
        if prober is None:
            return ProbeOutcome.failed(f"No native prober for game type {game_type.value}")
        return await prober.probe(address, port)


# ============================================================================
# REMOTE STATUS API PROBER
# ============================================================================

class RemoteApiProber:
    """
    Probes a server through the mcstatus.io HTTP API.

    ``GET {base}/{java|bedrock}/{address}:{port}``. A 2xx JSON body is
    definitive: its ``online`` field decides. Anything else (non-2xx,
    timeout, connection error, undecodable body) is a failed attempt.
    Responses are never cached.
    """

    method = ProbeMethod.REMOTE_API

    EDITIONS: Dict[GameType, str] = {
        GameType.MINECRAFT: "java",
        GameType.MINECRAFT_BEDROCK: "bedrock",
    }

    def __init__(self, settings: MonitoringSettings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.timeout = settings.remote_timeout
        self._client = client

    def supports(self, game_type: GameType) -> bool:
        return game_type in self.EDITIONS

    def build_url(self, address: str, port: int, game_type: GameType) -> str:
        return f"{self.settings.remote_api_url}/{self.EDITIONS[game_type]}/{address}:{port}"

    async def _get(self, url: str) -> httpx.Response:
        headers = {"User-Agent": self.settings.user_agent, "Accept": "application/json"}
        if self._client is not None:
            return await self._client.get(url, headers=headers, timeout=self.timeout)

        async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
            return await client.get(url, headers=headers)

    async def probe(self, address: str, port: int, game_type: GameType) -> ProbeOutcome:
        """
        Run one remote status lookup.

        Parameters
        ----------
        address, port : str, int
            Server endpoint as stored on the roster.
        game_type : GameType
            Selects the API edition path.

        Returns
        -------
        ProbeOutcome
            ``online`` / ``offline`` from a 2xx body, ``failed`` otherwise.
        """
        if not self.supports(game_type):
            return ProbeOutcome.failed(f"Remote API does not support {game_type.value}")

        url = self.build_url(address, port, game_type)
        start = time.perf_counter()

        try:
            response = await self._get(url)
        except httpx.TimeoutException:
            logger.debug(f"[RemoteAPI] {address}:{port} → timed out after {self.timeout}s")
            return ProbeOutcome.failed(f"Remote API timed out after {self.timeout}s")
        except httpx.HTTPError as e:
            logger.debug(f"[RemoteAPI] {address}:{port} → {type(e).__name__}: {e}")
            return ProbeOutcome.failed(f"Remote API request failed: {e}")

        latency_ms = TimeHelper.elapsed_ms(start)

        if not response.is_success:
            logger.debug(f"[RemoteAPI] {address}:{port} → HTTP {response.status_code}")
            return ProbeOutcome.failed(f"Remote API returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            return ProbeOutcome.failed(f"Remote API returned invalid JSON: {e}")

        if not isinstance(data, dict) or "online" not in data:
            return ProbeOutcome.failed("Remote API response has no 'online' field")

        if not data.get("online"):
            logger.debug(f"[RemoteAPI] {address}:{port} → reported offline")
            return ProbeOutcome.offline(latency_ms=latency_ms)

        players = data.get("players")
        if not isinstance(players, dict):
            players = {}
        try:
            players_online = int(players.get("online") or 0)
            players_max = int(players.get("max") or 0)
        except (TypeError, ValueError):
            players_online, players_max = 0, 0

        logger.debug(f"[RemoteAPI] {address}:{port} → online {players_online}/{players_max}")
        return ProbeOutcome.online(players_online, players_max, latency_ms)
