"""Layered onion encryption of relay instructions."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterable

from .constants import Inst, MsgType, Peer
from .crypto import (
    CryptoError,
    NONCE_LEN,
    TAG_LEN,
    aead_decrypt,
    aead_encrypt,
    hkdf_sha256,
    random_bytes,
    x25519_derive,
    x25519_keygen,
)

ONION_INFO = b"pcomm-onion-v1"
MAX_HOST_LEN = 63
HOST_CAP = 128
FLAG_ROUNDTRIP = 0x01
_KEY_LEN = 32


class OnionError(Exception):
    """Raised when an onion cannot be built or a layer cannot be unwrapped."""


@dataclass(frozen=True)
class ForwardInstruction:
    """A layer telling the relay to pass the inner payload to the next hop."""

    inst: Inst
    next_host: str
    next_port: int
    payload: bytes

    @property
    def roundtrip(self) -> bool:
        """True if the relay should wait for a reply and pass it back."""
        return self.inst is Inst.FORWARD_RR


@dataclass(frozen=True)
class DeliverInstruction:
    """The innermost layer: deliver a packet of some type to a destination."""

    dest_host: str
    dest_port: int
    deliver_type: int
    flags: int
    payload: bytes

    @property
    def inst(self) -> Inst:
        return Inst.DELIVER

    @property
    def roundtrip(self) -> bool:
        """True if the relay should wait for a reply and pass it back."""
        return bool(self.flags & FLAG_ROUNDTRIP)


def _hop_key(priv: bytes, pub: bytes) -> bytes:
    return hkdf_sha256(x25519_derive(priv, pub), None, ONION_INFO, _KEY_LEN)


def _seal_layer(key: bytes, plaintext: bytes) -> bytes:
    nonce = random_bytes(NONCE_LEN)
    return nonce + aead_encrypt(key, nonce, None, plaintext)


def _host_bytes(host: str) -> bytes:
    data = host.encode("utf-8")
    if len(data) > MAX_HOST_LEN:
        raise OnionError(f"host name longer than {MAX_HOST_LEN} bytes: {host!r}")
    return data


def _check_port(port: int) -> int:
    port = int(port)
    if not 0 <= port <= 0xFFFF:
        raise OnionError(f"port out of range: {port}")
    return port


def _as_msg_type(value: int) -> int:
    try:
        return MsgType(value)
    except ValueError:
        return value


def build_v1(
    path: Iterable[Peer],
    dest_host: str,
    dest_port: int,
    deliver_type: int,
    deliver_payload: bytes,
    roundtrip: bool,
) -> tuple[bytes, bytes]:
    """Wrap a delivery in one layer per relay of path.

    Returns (ephemeral public key, onion payload). The payload is sent to
    path[0]; the last relay of the path performs the delivery.
    """
    hops = list(path)
    if not hops:
        raise OnionError("onion path is empty")
    dest = _host_bytes(dest_host)
    port = _check_port(dest_port)
    dtype = int(deliver_type)
    if not 0 <= dtype <= 0xFF:
        raise OnionError(f"delivery type out of range: {dtype}")
    body = bytes(deliver_payload)
    if len(body) > 0xFFFFFFFF:
        raise OnionError("delivery payload too large")

    try:
        eph_priv, eph_pub = x25519_keygen()
        flags = FLAG_ROUNDTRIP if roundtrip else 0
        plaintext = (
            struct.pack(">BBB", Inst.DELIVER, flags, len(dest))
            + dest
            + struct.pack(">HBI", port, dtype, len(body))
            + body
        )
        blob = _seal_layer(_hop_key(eph_priv, hops[-1].pubkey), plaintext)

        inst = Inst.FORWARD_RR if roundtrip else Inst.FORWARD
        for hop, nxt in zip(reversed(hops[:-1]), reversed(hops[1:])):
            host = _host_bytes(nxt.host)
            plaintext = (
                struct.pack(">BB", inst, len(host))
                + host
                + struct.pack(">HI", _check_port(nxt.port), len(blob))
                + blob
            )
            blob = _seal_layer(_hop_key(eph_priv, hop.pubkey), plaintext)
    except CryptoError as exc:
        raise OnionError(str(exc)) from exc
    return eph_pub, blob


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._off = 0

    def take(self, n: int) -> bytes:
        end = self._off + n
        if end > len(self._data):
            raise OnionError("truncated onion layer")
        chunk = self._data[self._off:end]
        self._off = end
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u16(self) -> int:
        return struct.unpack(">H", self.take(2))[0]

    def u32(self) -> int:
        return struct.unpack(">I", self.take(4))[0]

    def host(self) -> str:
        n = self.u8()
        if n >= HOST_CAP:
            raise OnionError("host name too long")
        return self.take(n).decode("utf-8", errors="replace")


def unwrap_v1(
    relay_priv: bytes, eph_pub: bytes, payload: bytes
) -> ForwardInstruction | DeliverInstruction:
    """Decrypt one layer with the relay's private key and parse its instruction."""
    payload = bytes(payload)
    if len(payload) < NONCE_LEN + TAG_LEN:
        raise OnionError("onion payload too short")
    nonce, ciphertext = payload[:NONCE_LEN], payload[NONCE_LEN:]
    try:
        plaintext = aead_decrypt(_hop_key(relay_priv, eph_pub), nonce, None, ciphertext)
    except CryptoError as exc:
        raise OnionError(f"cannot open onion layer: {exc}") from exc

    reader = _Reader(plaintext)
    inst = reader.u8()

    if inst in (Inst.FORWARD, Inst.FORWARD_RR):
        host = reader.host()
        port = reader.u16()
        inner = reader.take(reader.u32())
        return ForwardInstruction(Inst(inst), host, port, inner)

    if inst == Inst.DELIVER:
        flags = reader.u8()
        host = reader.host()
        port = reader.u16()
        dtype = reader.u8()
        body = reader.take(reader.u32())
        return DeliverInstruction(host, port, _as_msg_type(dtype), flags, body)

    raise OnionError(f"unknown onion instruction {inst}")