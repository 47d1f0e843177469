"""
============================================================================
UPTIME ENGINE - GAME PROTOCOL CODECS
============================================================================
Wire-level status queries for the game protocols the engine can probe
natively.

Java Edition Server List Ping (TCP)
-----------------------------------
    C→S  Handshake      [len][0x00][proto=-1][host][port u16][next=1]
    C→S  Status Request [len][0x00]
    S→C  Status Reply   [len][0x00][json string]

Every integer marked ``len`` / ``proto`` / ``next`` is a protocol VarInt
(little-endian base-128, at most 5 bytes for a 32-bit value).

Bedrock Edition RakNet Unconnected Ping (UDP)
---------------------------------------------
    C→S  0x01 [time i64][MAGIC 16B][client guid i64]
    S→C  0x1c [time i64][server guid i64][MAGIC 16B][len u16][status string]

The status string is ``;`` separated:
    edition;motd;protocol;version;players_online;players_max;...

Functions here raise ``ProbeError`` subclasses; converting them into probe
outcomes is the prober's job.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import json
import random
import struct
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from exceptions import ProbeConnectionError, ProbeProtocolError, ProbeTimeoutError
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger("Protocols")


# ============================================================================
# CONSTANTS
# ============================================================================

# Protocol version -1 asks the server for its status without committing
# to a particular client version
STATUS_PROTOCOL_VERSION = -1
STATUS_NEXT_STATE = 1

# A status reply larger than this is treated as garbage
MAX_PACKET_LENGTH = 2 ** 21

RAKNET_UNCONNECTED_PING = 0x01
RAKNET_UNCONNECTED_PONG = 0x1C
RAKNET_MAGIC = bytes.fromhex("00ffff00fefefefefdfdfdfd12345678")

# id(1) + time(8) + server guid(8) + magic(16)
_PONG_HEADER_LENGTH = 33


# ============================================================================
# STATUS VALUE OBJECTS
# ============================================================================

@dataclass
class JavaStatus:
    """Decoded Java Edition status reply."""
    players_online: int
    players_max: int
    version: Optional[str] = None
    protocol: Optional[int] = None
    motd: Optional[str] = None
    latency_ms: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class BedrockStatus:
    """Decoded Bedrock Edition unconnected pong."""
    players_online: int
    players_max: int
    edition: Optional[str] = None
    motd: Optional[str] = None
    protocol: Optional[int] = None
    version: Optional[str] = None
    latency_ms: Optional[int] = None


# ============================================================================
# VARINT CODEC
# ============================================================================

def encode_varint(value: int) -> bytes:
    """
    Encode a 32-bit signed integer as a protocol VarInt.

    Negative numbers are encoded from their two's complement form, so
    ``-1`` takes the full five bytes.
    """
    value &= 0xFFFFFFFF
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """
    Decode a VarInt from *data* starting at *offset*.

    Returns:
        ``(value, next_offset)``

    Raises:
        ProbeProtocolError: If the buffer ends early or the VarInt is longer
            than five bytes
    """
    result = 0
    for index in range(5):
        if offset + index >= len(data):
            raise ProbeProtocolError("Truncated VarInt")
        byte = data[offset + index]
        result |= (byte & 0x7F) << (7 * index)
        if not byte & 0x80:
            if result & (1 << 31):
                result -= 1 << 32
            return result, offset + index + 1
    raise ProbeProtocolError("VarInt is too long")


async def read_varint(reader: asyncio.StreamReader) -> int:
    """Read a single VarInt from a stream, one byte at a time."""
    buffer = bytearray()
    for _ in range(5):
        buffer += await reader.readexactly(1)
        if not buffer[-1] & 0x80:
            value, _ = decode_varint(bytes(buffer))
            return value
    raise ProbeProtocolError("VarInt is too long")


def pack_string(text: str) -> bytes:
    encoded = text.encode("utf-8")
    return encode_varint(len(encoded)) + encoded


def frame_packet(body: bytes) -> bytes:
    """Prefix a packet body with its VarInt length."""
    return encode_varint(len(body)) + body


# ============================================================================
# JAVA EDITION SERVER LIST PING
# ============================================================================

def build_handshake_packet(host: str, port: int, protocol_version: int = STATUS_PROTOCOL_VERSION) -> bytes:
    """Build the framed handshake packet that switches the connection to status state."""
    body = (
        encode_varint(0x00)
        + encode_varint(protocol_version)
        + pack_string(host)
        + struct.pack(">H", port)
        + encode_varint(STATUS_NEXT_STATE)
    )
    return frame_packet(body)


def build_status_request_packet() -> bytes:
    return frame_packet(encode_varint(0x00))


def _describe_motd(description: Any) -> Optional[str]:
    """Flatten a chat component (string or ``{"text", "extra"}`` tree) to plain text."""
    if description is None:
        return None
    if isinstance(description, str):
        return description
    if isinstance(description, dict):
        text = str(description.get("text", ""))
        extra = description.get("extra")
        for part in extra if isinstance(extra, list) else []:
            text += _describe_motd(part) or ""
        return text
    if isinstance(description, list):
        return "".join(_describe_motd(part) or "" for part in description)
    return str(description)


def parse_java_status(payload: bytes) -> JavaStatus:
    """
    Decode the body of a status reply packet (everything after the length).

    Raises:
        ProbeProtocolError: For a wrong packet id, truncated string, a
            body that is not a JSON object, or non-object players/version
    """
    packet_id, offset = decode_varint(payload)
    if packet_id != 0x00:
        raise ProbeProtocolError(f"Unexpected status packet id 0x{packet_id & 0xFF:02x}")

    length, offset = decode_varint(payload, offset)
    raw = payload[offset:offset + length]
    if length < 0 or len(raw) < length:
        raise ProbeProtocolError("Truncated status JSON")

    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ProbeProtocolError(f"Status reply is not valid JSON: {e}", cause=e) from e

    if not isinstance(data, dict):
        raise ProbeProtocolError("Status reply is not a JSON object")

    players = data.get("players") or {}
    version = data.get("version") or {}
    if not isinstance(players, dict):
        raise ProbeProtocolError(f"Status reply 'players' is a {type(players).__name__}, not an object")
    if not isinstance(version, dict):
        raise ProbeProtocolError(f"Status reply 'version' is a {type(version).__name__}, not an object")

    try:
        players_online = int(players.get("online", 0))
        players_max = int(players.get("max", 0))
    except (TypeError, ValueError) as e:
        raise ProbeProtocolError(f"Invalid player counts in status reply: {e}", cause=e) from e

    protocol = version.get("protocol")
    return JavaStatus(
        players_online=players_online,
        players_max=players_max,
        version=version.get("name"),
        protocol=int(protocol) if isinstance(protocol, int) else None,
        motd=_describe_motd(data.get("description")),
        raw=data,
    )


async def _read_packet(reader: asyncio.StreamReader) -> bytes:
    length = await read_varint(reader)
    if length <= 0 or length > MAX_PACKET_LENGTH:
        raise ProbeProtocolError(f"Invalid status packet length {length}")
    return await reader.readexactly(length)


async def _java_exchange(host: str, port: int, handshake_host: str) -> bytes:
    try:
        reader, writer = await asyncio.open_connection(host, port)
    except OSError as e:
        raise ProbeConnectionError(f"Connection failed: {e}", address=host, port=port, cause=e) from e

    try:
        writer.write(build_handshake_packet(handshake_host, port) + build_status_request_packet())
        await writer.drain()
        return await _read_packet(reader)
    except asyncio.IncompleteReadError as e:
        raise ProbeProtocolError("Connection closed before a full status reply", address=host, port=port, cause=e) from e
    except OSError as e:
        raise ProbeConnectionError(f"Connection lost: {e}", address=host, port=port, cause=e) from e
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass  # peer already gone


async def query_java_status(
    host: str,
    port: int,
    timeout: float,
    handshake_host: Optional[str] = None,
) -> JavaStatus:
    """
    Run one Server List Ping exchange against ``host:port``.

    Args:
        host: Address to connect to
        port: TCP port
        timeout: Seconds allowed for the whole exchange
        handshake_host: Hostname to announce in the handshake (the
            pre-SRV name, when SRV resolution redirected the connection)

    Raises:
        ProbeTimeoutError, ProbeConnectionError, ProbeProtocolError
    """
    start = time.perf_counter()
    try:
        payload = await asyncio.wait_for(
            _java_exchange(host, port, handshake_host or host),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise ProbeTimeoutError(f"No status reply within {timeout}s", address=host, port=port, cause=e) from e

    status = parse_java_status(payload)
    status.latency_ms = TimeHelper.elapsed_ms(start)
    logger.debug(f"[SLP] {host}:{port} → {status.players_online}/{status.players_max} in {status.latency_ms}ms")
    return status


# ============================================================================
# BEDROCK EDITION UNCONNECTED PING
# ============================================================================

def build_unconnected_ping(timestamp_ms: int, client_guid: int) -> bytes:
    return (
        bytes([RAKNET_UNCONNECTED_PING])
        + struct.pack(">q", timestamp_ms)
        + RAKNET_MAGIC
        + struct.pack(">q", client_guid)
    )


def parse_unconnected_pong(data: bytes) -> BedrockStatus:
    """
    Decode a RakNet unconnected pong datagram.

    Raises:
        ProbeProtocolError: For a wrong packet id, bad magic, truncated
            status string, or missing player counts
    """
    if len(data) < _PONG_HEADER_LENGTH + 2 or data[0] != RAKNET_UNCONNECTED_PONG:
        raise ProbeProtocolError("Not a RakNet unconnected pong")
    if data[17:_PONG_HEADER_LENGTH] != RAKNET_MAGIC:
        raise ProbeProtocolError("RakNet magic mismatch")

    (length,) = struct.unpack_from(">H", data, _PONG_HEADER_LENGTH)
    start = _PONG_HEADER_LENGTH + 2
    raw = data[start:start + length]
    if len(raw) < length:
        raise ProbeProtocolError("Truncated Bedrock status string")

    parts = raw.decode("utf-8", errors="replace").split(";")
    if len(parts) < 6:
        raise ProbeProtocolError(f"Bedrock status string has {len(parts)} fields, expected at least 6")

    try:
        players_online = int(parts[4])
        players_max = int(parts[5])
    except ValueError as e:
        raise ProbeProtocolError(f"Invalid player counts in Bedrock status: {e}", cause=e) from e

    return BedrockStatus(
        players_online=players_online,
        players_max=players_max,
        edition=parts[0] or None,
        motd=parts[1] or None,
        protocol=int(parts[2]) if parts[2].isdigit() else None,
        version=parts[3] or None,
    )


class _UnconnectedPongProtocol(asyncio.DatagramProtocol):
    """Resolves *future* with the first pong datagram received."""

    def __init__(self, future: asyncio.Future):
        self.future = future

    def datagram_received(self, data: bytes, addr) -> None:
        if not self.future.done() and data[:1] == bytes([RAKNET_UNCONNECTED_PONG]):
            self.future.set_result(data)

    def error_received(self, exc: Exception) -> None:
        if not self.future.done():
            self.future.set_exception(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc is not None and not self.future.done():
            self.future.set_exception(exc)


async def _bedrock_exchange(host: str, port: int) -> bytes:
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    try:
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _UnconnectedPongProtocol(future),
            remote_addr=(host, port),
        )
    except OSError as e:
        raise ProbeConnectionError(f"Cannot open UDP socket: {e}", address=host, port=port, cause=e) from e

    try:
        transport.sendto(build_unconnected_ping(int(time.time() * 1000), random.getrandbits(63)))
        return await future
    except OSError as e:
        raise ProbeConnectionError(f"UDP ping rejected: {e}", address=host, port=port, cause=e) from e
    finally:
        transport.close()


async def query_bedrock_status(host: str, port: int, timeout: float) -> BedrockStatus:
    """
    Send one unconnected ping to ``host:port`` and decode the pong.

    Raises:
        ProbeTimeoutError, ProbeConnectionError, ProbeProtocolError
    """
    start = time.perf_counter()
    try:
        data = await asyncio.wait_for(_bedrock_exchange(host, port), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise ProbeTimeoutError(f"No pong within {timeout}s", address=host, port=port, cause=e) from e

    status = parse_unconnected_pong(data)
    status.latency_ms = TimeHelper.elapsed_ms(start)
    logger.debug(f"[RakNet] {host}:{port} → {status.players_online}/{status.players_max} in {status.latency_ms}ms")
    return status
