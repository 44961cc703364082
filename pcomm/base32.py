"""Unpadded RFC 4648 base32 encoding and a lenient decoder."""

from __future__ import annotations

_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
_VALUES = {ch: i for i, ch in enumerate(_ALPHABET)}


class Base32Error(ValueError):
    """Raised when text holds a character outside the base32 alphabet."""


def encode_no_pad(data: bytes) -> str:
    """Encode bytes as upper-case base32 without '=' padding."""
    out = []
    buffer = 0
    bits = 0
    for byte in data:
        buffer = (buffer << 8) | byte
        bits += 8
        while bits >= 5:
            bits -= 5
            out.append(_ALPHABET[(buffer >> bits) & 0x1F])
        buffer &= (1 << bits) - 1
    if bits:
        out.append(_ALPHABET[(buffer << (5 - bits)) & 0x1F])
    return "".join(out)


def decode_no_pad(text: str) -> bytes:
    """Decode base32, ignoring case, '=' and whitespace; trailing bits are dropped."""
    out = bytearray()
    buffer = 0
    bits = 0
    for ch in text:
        if ch == "=" or ch.isspace():
            continue
        value = _VALUES.get(ch.upper())
        if value is None:
            raise Base32Error(f"invalid base32 character: {ch!r}")
        buffer = (buffer << 5) | value
        bits += 5
        if bits >= 8:
            bits -= 8
            out.append((buffer >> bits) & 0xFF)
        buffer &= (1 << bits) - 1
    return bytes(out)