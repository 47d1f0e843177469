"""Tests for native and remote probers."""

from __future__ import annotations

import asyncio
import json
import socket
from types import SimpleNamespace

import dns.asyncresolver
import dns.resolver
import httpx
import pytest

from config.constants import GameType, ProbeMethod, ProbeVerdict
from monitoring.prober import (
    HytaleProber,
    JavaEditionProber,
    NativeProber,
    ProbeOutcome,
    ProtocolProber,
    RemoteApiProber,
    TcpConnectProber,
)
from monitoring.protocols import encode_varint, frame_packet, read_varint


def closed_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def remote_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestProbeOutcome:
    def test_online_is_definitive(self) -> None:
        outcome = ProbeOutcome.online(5, 20, 33)
        assert outcome.verdict is ProbeVerdict.ONLINE
        assert outcome.is_definitive and outcome.is_online
        assert (outcome.players_online, outcome.players_max, outcome.latency_ms) == (5, 20, 33)

    def test_offline_is_definitive(self) -> None:
        outcome = ProbeOutcome.offline()
        assert outcome.is_definitive
        assert not outcome.is_online

    def test_failed_is_not_definitive_and_truncates_error(self) -> None:
        outcome = ProbeOutcome.failed("x" * 500)
        assert not outcome.is_definitive
        assert len(outcome.error) == 200

    def test_negative_player_counts_clamped(self) -> None:
        outcome = ProbeOutcome.online(-1, -5)
        assert (outcome.players_online, outcome.players_max) == (0, 0)


class _FixedProber(ProtocolProber):
    game_type = GameType.MINECRAFT

    def __init__(self, outcome: ProbeOutcome) -> None:
        super().__init__(timeout=1.0)
        self.outcome = outcome
        self.calls: list[tuple[str, int]] = []

    async def _query(self, address: str, port: int) -> ProbeOutcome:
        self.calls.append((address, port))
        return self.outcome


class TestNativeProber:
    def test_default_table_covers_every_game_type(self, monitoring_settings) -> None:
        prober = NativeProber(monitoring_settings)
        assert all(prober.supports(game_type) for game_type in GameType)
        assert prober.method is ProbeMethod.NATIVE

    @pytest.mark.asyncio
    async def test_dispatches_by_game_type(self, monitoring_settings) -> None:
        java = _FixedProber(ProbeOutcome.online(1, 10))
        prober = NativeProber(monitoring_settings, probers={GameType.MINECRAFT: java})

        outcome = await prober.probe("mc.example.net", 25565, GameType.MINECRAFT)

        assert outcome.is_online
        assert java.calls == [("mc.example.net", 25565)]

    @pytest.mark.asyncio
    async def test_unregistered_game_type_fails(self, monitoring_settings) -> None:
        prober = NativeProber(monitoring_settings, probers={})
        assert not prober.supports(GameType.TCP)
        outcome = await prober.probe("host", 80, GameType.TCP)
        assert outcome.verdict is ProbeVerdict.FAILED

    @pytest.mark.asyncio
    async def test_hytale_reports_transport_failure(self) -> None:
        outcome = await HytaleProber(timeout=1.0).probe("hytale.example.net", 5520)
        assert outcome.verdict is ProbeVerdict.FAILED
        assert "not implemented" in outcome.error


class TestTcpConnectProber:
    @pytest.mark.asyncio
    async def test_open_port_is_online(self) -> None:
        async def handle(reader, writer) -> None:
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            outcome = await TcpConnectProber(timeout=2.0).probe("127.0.0.1", port)
        finally:
            server.close()
            await server.wait_closed()

        assert outcome.is_online
        assert (outcome.players_online, outcome.players_max) == (0, 0)
        assert outcome.latency_ms is not None

    @pytest.mark.asyncio
    async def test_closed_port_fails(self) -> None:
        outcome = await TcpConnectProber(timeout=2.0).probe("127.0.0.1", closed_port())
        assert outcome.verdict is ProbeVerdict.FAILED
        assert "refused" in outcome.error or "failed" in outcome.error


class TestJavaEditionProber:
    @pytest.mark.asyncio
    async def test_probe_reads_player_counts(self) -> None:
        async def handle(reader, writer) -> None:
            for _ in range(2):
                await reader.readexactly(await read_varint(reader))
            body = json.dumps({"players": {"online": 9, "max": 60}}).encode()
            writer.write(frame_packet(encode_varint(0) + encode_varint(len(body)) + body))
            await writer.drain()
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            outcome = await JavaEditionProber(timeout=2.0, srv_lookup_enabled=False).probe("127.0.0.1", port)
        finally:
            server.close()
            await server.wait_closed()

        assert outcome.is_online
        assert (outcome.players_online, outcome.players_max) == (9, 60)

    @pytest.mark.asyncio
    async def test_wrong_shaped_reply_is_failed_outcome(self) -> None:
        async def handle(reader, writer) -> None:
            for _ in range(2):
                await reader.readexactly(await read_varint(reader))
            body = json.dumps({"version": "1.20.1", "players": {"online": 3, "max": 20}}).encode()
            writer.write(frame_packet(encode_varint(0) + encode_varint(len(body)) + body))
            await writer.drain()
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            outcome = await JavaEditionProber(timeout=2.0, srv_lookup_enabled=False).probe("127.0.0.1", port)
        finally:
            server.close()
            await server.wait_closed()

        assert outcome.verdict is ProbeVerdict.FAILED
        assert "'version'" in outcome.error

    @pytest.mark.asyncio
    async def test_srv_and_ping_share_one_budget(self, monkeypatch) -> None:
        lifetimes: list[float] = []
        budgets: list[float] = []

        async def slow_resolve(qname, rdtype, lifetime=None):
            lifetimes.append(lifetime)
            await asyncio.sleep(0.3)
            raise dns.resolver.NXDOMAIN()

        async def fake_query(host, port, timeout, handshake_host=None):
            budgets.append(timeout)
            return SimpleNamespace(players_online=1, players_max=10, latency_ms=5)

        monkeypatch.setattr(dns.asyncresolver, "resolve", slow_resolve)
        monkeypatch.setattr("monitoring.prober.query_java_status", fake_query)

        outcome = await JavaEditionProber(timeout=1.0, srv_lookup_enabled=True).probe("example.net", 25565)

        assert outcome.is_online
        assert lifetimes == [0.5]
        assert 0 < budgets[0] <= 0.75

    @pytest.mark.asyncio
    async def test_unexpected_error_is_failed_outcome(self, monkeypatch) -> None:
        async def broken_query(host, port, timeout, handshake_host=None):
            raise KeyError("players")

        monkeypatch.setattr("monitoring.prober.query_java_status", broken_query)

        outcome = await JavaEditionProber(timeout=1.0, srv_lookup_enabled=False).probe("127.0.0.1", 25565)

        assert outcome.verdict is ProbeVerdict.FAILED
        assert "KeyError" in outcome.error

    @pytest.mark.asyncio
    async def test_refused_connection_is_failed_outcome(self) -> None:
        outcome = await JavaEditionProber(timeout=2.0, srv_lookup_enabled=False).probe("127.0.0.1", closed_port())
        assert outcome.verdict is ProbeVerdict.FAILED

    @pytest.mark.asyncio
    async def test_srv_record_redirects_default_port(self, monkeypatch) -> None:
        queried: list[str] = []

        async def fake_resolve(qname, rdtype, lifetime=None):
            queried.append(qname)
            return [
                SimpleNamespace(priority=10, weight=5, port=25570, target="backup.example.net."),
                SimpleNamespace(priority=5, weight=1, port=25580, target="primary.example.net."),
            ]

        monkeypatch.setattr(dns.asyncresolver, "resolve", fake_resolve)
        prober = JavaEditionProber(timeout=1.0, srv_lookup_enabled=True)

        assert await prober.resolve_srv("example.net", 25565) == ("primary.example.net", 25580)
        assert queried == ["_minecraft._tcp.example.net"]

    @pytest.mark.asyncio
    async def test_srv_skipped_for_ip_custom_port_or_disabled(self, monkeypatch) -> None:
        async def fail_resolve(*args, **kwargs):
            raise AssertionError("SRV lookup should not run")

        monkeypatch.setattr(dns.asyncresolver, "resolve", fail_resolve)

        enabled = JavaEditionProber(timeout=1.0, srv_lookup_enabled=True)
        assert await enabled.resolve_srv("10.0.0.5", 25565) == ("10.0.0.5", 25565)
        assert await enabled.resolve_srv("example.net", 25570) == ("example.net", 25570)

        disabled = JavaEditionProber(timeout=1.0, srv_lookup_enabled=False)
        assert await disabled.resolve_srv("example.net", 25565) == ("example.net", 25565)

    @pytest.mark.asyncio
    async def test_srv_lookup_failure_keeps_address(self, monkeypatch) -> None:
        async def nxdomain(*args, **kwargs):
            raise dns.resolver.NXDOMAIN()

        monkeypatch.setattr(dns.asyncresolver, "resolve", nxdomain)
        prober = JavaEditionProber(timeout=1.0, srv_lookup_enabled=True)

        assert await prober.resolve_srv("example.net", 25565) == ("example.net", 25565)


class TestRemoteApiProber:
    def test_supports_java_and_bedrock_only(self, monitoring_settings) -> None:
        prober = RemoteApiProber(monitoring_settings)
        assert prober.supports(GameType.MINECRAFT)
        assert prober.supports(GameType.MINECRAFT_BEDROCK)
        assert not prober.supports(GameType.HYTALE)
        assert not prober.supports(GameType.TCP)

    def test_build_url(self, monitoring_settings) -> None:
        prober = RemoteApiProber(monitoring_settings)
        assert prober.build_url("play.example.net", 25565, GameType.MINECRAFT) == (
            "https://api.mcstatus.io/v2/status/java/play.example.net:25565"
        )
        assert prober.build_url("pe.example.net", 19132, GameType.MINECRAFT_BEDROCK) == (
            "https://api.mcstatus.io/v2/status/bedrock/pe.example.net:19132"
        )

    @pytest.mark.asyncio
    async def test_online_response(self, monitoring_settings) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"online": True, "players": {"online": 14, "max": 200}})

        async with remote_client(handler) as client:
            outcome = await RemoteApiProber(monitoring_settings, client).probe(
                "play.example.net", 25565, GameType.MINECRAFT
            )

        assert outcome.is_online
        assert (outcome.players_online, outcome.players_max) == (14, 200)
        assert seen[0].url.path == "/v2/status/java/play.example.net:25565"
        assert seen[0].headers["User-Agent"] == monitoring_settings.user_agent

    @pytest.mark.asyncio
    async def test_offline_response_is_definitive(self, monitoring_settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"online": False, "host": "play.example.net"})

        async with remote_client(handler) as client:
            outcome = await RemoteApiProber(monitoring_settings, client).probe(
                "play.example.net", 25565, GameType.MINECRAFT
            )

        assert outcome.verdict is ProbeVerdict.OFFLINE

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(503, text="Service Unavailable"),
            httpx.Response(200, text="<html>not json</html>"),
            httpx.Response(200, json={"status": "ok"}),
        ],
    )
    async def test_unusable_responses_fail(self, monitoring_settings, response) -> None:
        async with remote_client(lambda request: response) as client:
            outcome = await RemoteApiProber(monitoring_settings, client).probe(
                "play.example.net", 25565, GameType.MINECRAFT
            )

        assert outcome.verdict is ProbeVerdict.FAILED

    @pytest.mark.asyncio
    async def test_timeout_fails(self, monitoring_settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with remote_client(handler) as client:
            outcome = await RemoteApiProber(monitoring_settings, client).probe(
                "play.example.net", 25565, GameType.MINECRAFT
            )

        assert outcome.verdict is ProbeVerdict.FAILED
        assert "timed out" in outcome.error

    @pytest.mark.asyncio
    async def test_unsupported_game_type_makes_no_request(self, monitoring_settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with remote_client(handler) as client:
            outcome = await RemoteApiProber(monitoring_settings, client).probe(
                "hytale.example.net", 5520, GameType.HYTALE
            )

        assert outcome.verdict is ProbeVerdict.FAILED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("players", [5, "many", ["alice"], None])
    async def test_online_with_unusable_players_reports_zero(self, monitoring_settings, players) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"online": True, "players": players})

        async with remote_client(handler) as client:
            outcome = await RemoteApiProber(monitoring_settings, client).probe(
                "play.example.net", 25565, GameType.MINECRAFT
            )

        assert outcome.is_online
        assert (outcome.players_online, outcome.players_max) == (0, 0)
