"""Framing of relay packets: a fixed 44-byte header followed by a payload."""

from __future__ import annotations

import socket
import struct
from dataclasses import dataclass

from .constants import MAGIC, VERSION, MsgType
from .net import recv_exact

EPH_PUB_LEN = 32
_HEADER = struct.Struct(">4sBB2xI32s")
HDR_LEN = _HEADER.size


class ProtocolError(Exception):
    """Raised when a packet header is malformed."""


@dataclass(frozen=True)
class Packet:
    """A received packet; msg_type is a MsgType when known, else the raw byte."""

    msg_type: int
    eph_pub: bytes
    payload: bytes


def _as_msg_type(value: int) -> int:
    try:
        return MsgType(value)
    except ValueError:
        return value


def encode_packet(msg_type: int, eph_pub: bytes | None, payload: bytes | None) -> bytes:
    """Return the header and payload as bytes; a missing eph_pub is sent as zeros."""
    msg_type = int(msg_type)
    if not 0 <= msg_type <= 0xFF:
        raise ValueError("packet type must fit in one byte")
    eph = bytes(EPH_PUB_LEN) if eph_pub is None else bytes(eph_pub)
    if len(eph) != EPH_PUB_LEN:
        raise ValueError(f"ephemeral key must be {EPH_PUB_LEN} bytes")
    body = bytes(payload or b"")
    if len(body) > 0xFFFFFFFF:
        raise ValueError("payload too large")
    return _HEADER.pack(MAGIC, VERSION, msg_type, len(body), eph) + body


def send_packet(
    sock: socket.socket, msg_type: int, eph_pub: bytes | None, payload: bytes | None
) -> None:
    """Write one packet to a socket."""
    sock.sendall(encode_packet(msg_type, eph_pub, payload))


def recv_packet(sock: socket.socket) -> Packet:
    """Read one packet; raises ProtocolError or ConnectionError."""
    magic, version, msg_type, length, eph_pub = _HEADER.unpack(recv_exact(sock, HDR_LEN))
    if magic != MAGIC:
        raise ProtocolError("bad magic")
    if version != VERSION:
        raise ProtocolError(f"unsupported version {version}")
    payload = recv_exact(sock, length) if length else b""
    return Packet(_as_msg_type(msg_type), eph_pub, payload)