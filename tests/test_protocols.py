"""Tests for the Java and Bedrock wire codecs."""

from __future__ import annotations

import asyncio
import json
import socket
import struct

import pytest

from exceptions import ProbeConnectionError, ProbeProtocolError, ProbeTimeoutError
from monitoring.protocols import (
    RAKNET_MAGIC,
    build_handshake_packet,
    build_status_request_packet,
    build_unconnected_ping,
    decode_varint,
    encode_varint,
    frame_packet,
    parse_java_status,
    parse_unconnected_pong,
    query_bedrock_status,
    query_java_status,
    read_varint,
)


BEDROCK_STATUS = "MCPE;Dedicated Server;390;1.14.60;3;10;13253860892328930865;Bedrock level;Survival;1;19132;19133;"


def status_payload(data) -> bytes:
    body = json.dumps(data).encode("utf-8") if not isinstance(data, bytes) else data
    return encode_varint(0x00) + encode_varint(len(body)) + body


def build_pong(status: str, packet_id: int = 0x1C, magic: bytes = RAKNET_MAGIC) -> bytes:
    encoded = status.encode("utf-8")
    return (
        bytes([packet_id])
        + struct.pack(">q", 1)
        + struct.pack(">q", 42)
        + magic
        + struct.pack(">H", len(encoded))
        + encoded
    )


def closed_port() -> int:
    """A loopback port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestVarInt:
    @pytest.mark.parametrize(
        ("value", "encoded"),
        [
            (0, "00"),
            (1, "01"),
            (127, "7f"),
            (128, "8001"),
            (255, "ff01"),
            (25565, "ddc701"),
            (2097151, "ffff7f"),
            (2147483647, "ffffffff07"),
            (-1, "ffffffff0f"),
            (-2147483648, "8080808008"),
        ],
    )
    def test_encode_known_values(self, value: int, encoded: str) -> None:
        assert encode_varint(value) == bytes.fromhex(encoded)

    def test_decode_negative_and_offset(self) -> None:
        data = b"\xaa" + bytes.fromhex("ffffffff0f") + b"\x05"
        value, offset = decode_varint(data, 1)
        assert value == -1
        assert offset == 6
        assert decode_varint(data, offset) == (5, 7)

    def test_decode_truncated_raises(self) -> None:
        with pytest.raises(ProbeProtocolError):
            decode_varint(b"\x80\x80")

    def test_decode_too_long_raises(self) -> None:
        with pytest.raises(ProbeProtocolError):
            decode_varint(b"\xff\xff\xff\xff\xff\x01")

    @pytest.mark.asyncio
    async def test_read_varint_from_stream(self) -> None:
        reader = asyncio.StreamReader()
        reader.feed_data(bytes.fromhex("ddc701") + b"rest")
        assert await read_varint(reader) == 25565
        assert await reader.readexactly(4) == b"rest"


class TestJavaStatusCodec:
    def test_handshake_packet_layout(self) -> None:
        # len | id | proto -1 | "a" | port 25565 | next state 1
        assert build_handshake_packet("a", 25565) == bytes.fromhex("0b00ffffffff0f016163dd01")

    def test_status_request_packet(self) -> None:
        assert build_status_request_packet() == b"\x01\x00"

    def test_parse_status_reply(self) -> None:
        payload = status_payload({
            "version": {"name": "Paper 1.20.4", "protocol": 765},
            "players": {"online": 12, "max": 100},
            "description": {"text": "Welcome ", "extra": [{"text": "home"}]},
        })

        status = parse_java_status(payload)

        assert status.players_online == 12
        assert status.players_max == 100
        assert status.version == "Paper 1.20.4"
        assert status.protocol == 765
        assert status.motd == "Welcome home"

    def test_parse_status_without_players_defaults_to_zero(self) -> None:
        status = parse_java_status(status_payload({"description": "A server"}))
        assert (status.players_online, status.players_max) == (0, 0)
        assert status.motd == "A server"

    def test_parse_rejects_wrong_packet_id(self) -> None:
        with pytest.raises(ProbeProtocolError, match="packet id"):
            parse_java_status(encode_varint(0x01) + encode_varint(2) + b"{}")

    def test_parse_rejects_invalid_json(self) -> None:
        with pytest.raises(ProbeProtocolError, match="JSON"):
            parse_java_status(status_payload(b"{not json"))

    def test_parse_rejects_truncated_string(self) -> None:
        with pytest.raises(ProbeProtocolError, match="Truncated"):
            parse_java_status(encode_varint(0x00) + encode_varint(50) + b"{}")

    @pytest.mark.parametrize(
        "body, field",
        [
            ({"version": "1.20.1", "players": {"online": 1, "max": 10}}, "version"),
            ({"players": 5}, "players"),
            ({"players": ["alice", "bob"]}, "players"),
        ],
    )
    def test_parse_rejects_non_object_sections(self, body, field) -> None:
        with pytest.raises(ProbeProtocolError, match=f"'{field}'"):
            parse_java_status(status_payload(body))

    def test_parse_tolerates_odd_motd_extra(self) -> None:
        status = parse_java_status(status_payload({"description": {"text": "Hub", "extra": 3}}))
        assert status.motd == "Hub"


class TestJavaStatusQuery:
    @pytest.mark.asyncio
    async def test_query_against_loopback_server(self) -> None:
        received: list[bytes] = []

        async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            for _ in range(2):
                length = await read_varint(reader)
                received.append(await reader.readexactly(length))
            writer.write(frame_packet(status_payload({"players": {"online": 7, "max": 40}})))
            await writer.drain()
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            status = await query_java_status("127.0.0.1", port, timeout=2.0, handshake_host="mc.example.net")
        finally:
            server.close()
            await server.wait_closed()

        assert (status.players_online, status.players_max) == (7, 40)
        assert status.latency_ms is not None
        # Handshake announced the original hostname and asked for status state
        assert b"mc.example.net" in received[0]
        assert received[0][-1] == 1
        assert received[1] == b"\x00"

    @pytest.mark.asyncio
    async def test_truncated_reply_is_protocol_error(self) -> None:
        async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            for _ in range(2):
                length = await read_varint(reader)
                await reader.readexactly(length)
            # Announces 50 bytes, sends 3
            writer.write(encode_varint(50) + b"\x00\x01{")
            await writer.drain()
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            with pytest.raises(ProbeProtocolError):
                await query_java_status("127.0.0.1", port, timeout=2.0)
        finally:
            server.close()
            await server.wait_closed()

    @pytest.mark.asyncio
    async def test_silent_server_times_out(self) -> None:
        release = asyncio.Event()

        async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            await release.wait()
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            with pytest.raises(ProbeTimeoutError):
                await query_java_status("127.0.0.1", port, timeout=0.2)
        finally:
            release.set()
            server.close()
            await server.wait_closed()

    @pytest.mark.asyncio
    async def test_refused_connection(self) -> None:
        with pytest.raises(ProbeConnectionError):
            await query_java_status("127.0.0.1", closed_port(), timeout=2.0)


class TestBedrockCodec:
    def test_unconnected_ping_layout(self) -> None:
        packet = build_unconnected_ping(1234, 99)
        assert len(packet) == 33
        assert packet[0] == 0x01
        assert struct.unpack_from(">q", packet, 1)[0] == 1234
        assert packet[9:25] == RAKNET_MAGIC
        assert struct.unpack_from(">q", packet, 25)[0] == 99

    def test_parse_pong(self) -> None:
        status = parse_unconnected_pong(build_pong(BEDROCK_STATUS))
        assert status.edition == "MCPE"
        assert status.motd == "Dedicated Server"
        assert status.protocol == 390
        assert status.version == "1.14.60"
        assert (status.players_online, status.players_max) == (3, 10)

    def test_parse_rejects_wrong_packet_id(self) -> None:
        with pytest.raises(ProbeProtocolError):
            parse_unconnected_pong(build_pong(BEDROCK_STATUS, packet_id=0x01))

    def test_parse_rejects_bad_magic(self) -> None:
        with pytest.raises(ProbeProtocolError, match="magic"):
            parse_unconnected_pong(build_pong(BEDROCK_STATUS, magic=b"\x00" * 16))

    def test_parse_rejects_short_status(self) -> None:
        with pytest.raises(ProbeProtocolError, match="fields"):
            parse_unconnected_pong(build_pong("MCPE;motd;390"))

    def test_parse_rejects_non_numeric_players(self) -> None:
        with pytest.raises(ProbeProtocolError):
            parse_unconnected_pong(build_pong("MCPE;motd;390;1.20;lots;10"))


class _PongServer(asyncio.DatagramProtocol):
    def __init__(self, reply: bool = True) -> None:
        self.reply = reply
        self.pings: list[bytes] = []
        self.transport = None

    def connection_made(self, transport) -> None:
        self.transport = transport

    def datagram_received(self, data: bytes, addr) -> None:
        self.pings.append(data)
        if self.reply:
            self.transport.sendto(build_pong(BEDROCK_STATUS), addr)


class TestBedrockStatusQuery:
    @pytest.mark.asyncio
    async def test_query_against_loopback_server(self) -> None:
        loop = asyncio.get_running_loop()
        transport, protocol = await loop.create_datagram_endpoint(
            _PongServer, local_addr=("127.0.0.1", 0)
        )
        port = transport.get_extra_info("sockname")[1]
        try:
            status = await query_bedrock_status("127.0.0.1", port, timeout=2.0)
        finally:
            transport.close()

        assert (status.players_online, status.players_max) == (3, 10)
        assert protocol.pings and protocol.pings[0][0] == 0x01

    @pytest.mark.asyncio
    async def test_no_pong_times_out(self) -> None:
        loop = asyncio.get_running_loop()
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _PongServer(reply=False), local_addr=("127.0.0.1", 0)
        )
        port = transport.get_extra_info("sockname")[1]
        try:
            with pytest.raises(ProbeTimeoutError):
                await query_bedrock_status("127.0.0.1", port, timeout=0.2)
        finally:
            transport.close()
