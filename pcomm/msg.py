"""Plaintext message formats carried inside sealed boxes."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable

FORMAT_VERSION = 2
LEGACY_VERSION = 1

MAX_SENDER_LEN = 90
MAX_UUID_LEN = 63
MAX_TITLE_LEN = 1024
MAX_MEMBER_LEN = 90

SENDER_CAP = 96
UUID_CAP = 64


class PlainKind(IntEnum):
    """Kinds of plaintext message."""

    DIRECT_TEXT = 1
    GROUP_INVITE = 2
    GROUP_TEXT = 3


class MessageError(ValueError):
    """Raised when a message cannot be packed or parsed."""


@dataclass(frozen=True)
class PlainMessage:
    """A decoded plaintext message; fields not used by its kind keep their defaults."""

    kind: PlainKind
    ts_unix: int
    sender_id: str
    text: str | None = None
    group_uuid: str = ""
    title: str | None = None
    members: tuple[str, ...] = ()


def _utf8(value: str, what: str, limit: int | None = None) -> bytes:
    data = value.encode("utf-8")
    if limit is not None and len(data) > limit:
        raise MessageError(f"{what} longer than {limit} bytes")
    return data


def _header(kind: PlainKind, ts_unix: int, sender_id: str) -> bytes:
    sender = _utf8(sender_id, "sender id", MAX_SENDER_LEN)
    return struct.pack(">BBIH", FORMAT_VERSION, kind, ts_unix & 0xFFFFFFFF, len(sender)) + sender


def _uuid_field(group_uuid: str) -> bytes:
    uuid = _utf8(group_uuid, "group uuid", MAX_UUID_LEN)
    return bytes([len(uuid)]) + uuid


def _long_text(text: str) -> bytes:
    data = _utf8(text, "text")
    if len(data) > 0xFFFFFFFF:
        raise MessageError("text too long")
    return struct.pack(">I", len(data)) + data


def pack_direct_text(ts_unix: int, sender_id: str, text: str) -> bytes:
    """Encode a direct text message."""
    return _header(PlainKind.DIRECT_TEXT, ts_unix, sender_id) + _long_text(text)


def pack_group_invite(
    ts_unix: int,
    sender_id: str,
    group_uuid: str,
    title: str | None,
    members: Iterable[str],
) -> bytes:
    """Encode an invitation to a group with its title and member list."""
    head = _header(PlainKind.GROUP_INVITE, ts_unix, sender_id)
    uuid = _uuid_field(group_uuid)
    title_bytes = _utf8(title or "", "title", MAX_TITLE_LEN)
    member_bytes = [_utf8(m, "member id", MAX_MEMBER_LEN) for m in members]
    if len(member_bytes) > 0xFFFF:
        raise MessageError("too many members")
    parts = [
        head,
        uuid,
        struct.pack(">H", len(title_bytes)),
        title_bytes,
        struct.pack(">H", len(member_bytes)),
    ]
    for member in member_bytes:
        parts.append(struct.pack(">H", len(member)))
        parts.append(member)
    return b"".join(parts)


def pack_group_text(ts_unix: int, sender_id: str, group_uuid: str, text: str) -> bytes:
    """Encode a text message addressed to a group."""
    return (
        _header(PlainKind.GROUP_TEXT, ts_unix, sender_id)
        + _uuid_field(group_uuid)
        + _long_text(text)
    )


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._off = 0

    def take(self, n: int) -> bytes:
        end = self._off + n
        if end > len(self._data):
            raise MessageError("truncated message")
        chunk = self._data[self._off:end]
        self._off = end
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u16(self) -> int:
        return struct.unpack(">H", self.take(2))[0]

    def u32(self) -> int:
        return struct.unpack(">I", self.take(4))[0]

    def text(self, n: int) -> str:
        return self.take(n).decode("utf-8", errors="replace")

    def sender(self) -> str:
        n = self.u16()
        if n >= SENDER_CAP:
            raise MessageError("sender id too long")
        return self.text(n)

    def uuid(self) -> str:
        n = self.u8()
        if n >= UUID_CAP:
            raise MessageError("group uuid too long")
        return self.text(n)


def unpack_any(data: bytes) -> PlainMessage:
    """Decode a message of either format version."""
    if not data:
        raise MessageError("empty message")
    reader = _Reader(data)
    version = reader.u8()

    if version == LEGACY_VERSION:
        ts = reader.u32()
        sender = reader.sender()
        text = reader.text(reader.u32())
        return PlainMessage(PlainKind.DIRECT_TEXT, ts, sender, text=text)

    if version != FORMAT_VERSION:
        raise MessageError(f"unknown message version {version}")

    kind_byte = reader.u8()
    ts = reader.u32()
    sender = reader.sender()
    try:
        kind = PlainKind(kind_byte)
    except ValueError:
        raise MessageError(f"unknown message kind {kind_byte}") from None

    if kind is PlainKind.DIRECT_TEXT:
        return PlainMessage(kind, ts, sender, text=reader.text(reader.u32()))

    uuid = reader.uuid()
    if kind is PlainKind.GROUP_TEXT:
        return PlainMessage(kind, ts, sender, text=reader.text(reader.u32()), group_uuid=uuid)

    title = reader.text(reader.u16())
    count = reader.u16()
    members = tuple(reader.text(reader.u16()) for _ in range(count))
    return PlainMessage(kind, ts, sender, group_uuid=uuid, title=title, members=members)