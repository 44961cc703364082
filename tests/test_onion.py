import struct

import pytest

from pcomm.constants import Inst, MsgType, Peer
from pcomm.crypto import aead_decrypt, aead_encrypt, hkdf_sha256, x25519_derive, x25519_keygen
from pcomm.onion import (
    DeliverInstruction,
    ForwardInstruction,
    OnionError,
    build_v1,
    unwrap_v1,
)


def _relay(name, port):
    priv, pub = x25519_keygen()
    return priv, Peer(user_id=name, pubkey=pub, host=f"{name}.example.com", port=port)


def _layer_key(priv, eph_pub):
    return hkdf_sha256(x25519_derive(priv, eph_pub), None, b"pcomm-onion-v1", 32)


def test_single_hop_delivers():
    priv, peer = _relay("relay-a", 9001)
    eph_pub, onion = build_v1([peer], "dest.example.com", 9100, MsgType.DELIVER, b"sealed", False)
    assert len(eph_pub) == 32
    result = unwrap_v1(priv, eph_pub, onion)
    assert isinstance(result, DeliverInstruction)
    assert result.dest_host == "dest.example.com"
    assert result.dest_port == 9100
    assert result.deliver_type is MsgType.DELIVER
    assert result.payload == b"sealed"
    assert result.flags == 0
    assert result.roundtrip is False
    assert result.inst is Inst.DELIVER


def test_single_hop_layer_wire_format():
    priv, peer = _relay("relay-a", 9001)
    eph_pub, onion = build_v1([peer], "h", 258, MsgType.CTRL, b"xy", True)
    plaintext = aead_decrypt(_layer_key(priv, eph_pub), onion[:12], None, onion[12:])
    assert plaintext == b"\x02\x01\x01h\x01\x02\x03\x00\x00\x00\x02xy"


def test_three_hops_peel_in_order():
    relays = [_relay(name, 9001 + i) for i, name in enumerate(["a", "b", "c"])]
    path = [peer for _, peer in relays]
    eph_pub, onion = build_v1(path, "dest.example.com", 7000, MsgType.CTRL, b"hello", False)

    first = unwrap_v1(relays[0][0], eph_pub, onion)
    assert isinstance(first, ForwardInstruction)
    assert first.inst is Inst.FORWARD
    assert (first.next_host, first.next_port) == (path[1].host, path[1].port)
    assert first.roundtrip is False

    second = unwrap_v1(relays[1][0], eph_pub, first.payload)
    assert isinstance(second, ForwardInstruction)
    assert (second.next_host, second.next_port) == (path[2].host, path[2].port)

    last = unwrap_v1(relays[2][0], eph_pub, second.payload)
    assert isinstance(last, DeliverInstruction)
    assert last.payload == b"hello"
    assert last.deliver_type is MsgType.CTRL


def test_roundtrip_uses_forward_rr_and_flag():
    relays = [_relay(name, 9001 + i) for i, name in enumerate(["a", "b"])]
    path = [peer for _, peer in relays]
    eph_pub, onion = build_v1(path, "d.example.com", 1, MsgType.CTRL, b"q", True)
    first = unwrap_v1(relays[0][0], eph_pub, onion)
    assert first.inst is Inst.FORWARD_RR
    assert first.roundtrip is True
    last = unwrap_v1(relays[1][0], eph_pub, first.payload)
    assert last.roundtrip is True
    assert last.flags == 1


def test_wrong_relay_key_fails():
    _, peer = _relay("a", 9001)
    other_priv, _ = x25519_keygen()
    eph_pub, onion = build_v1([peer], "d", 1, MsgType.DELIVER, b"x", False)
    with pytest.raises(OnionError):
        unwrap_v1(other_priv, eph_pub, onion)


def test_tampered_payload_fails():
    priv, peer = _relay("a", 9001)
    eph_pub, onion = build_v1([peer], "d", 1, MsgType.DELIVER, b"x", False)
    tampered = onion[:-1] + bytes([onion[-1] ^ 1])
    with pytest.raises(OnionError):
        unwrap_v1(priv, eph_pub, tampered)


def test_short_payload_rejected():
    priv, _ = x25519_keygen()
    _, pub = x25519_keygen()
    with pytest.raises(OnionError):
        unwrap_v1(priv, pub, bytes(27))


def test_empty_path_rejected():
    with pytest.raises(OnionError):
        build_v1([], "d", 1, MsgType.DELIVER, b"x", False)


def test_long_destination_host_rejected():
    _, peer = _relay("a", 9001)
    with pytest.raises(OnionError):
        build_v1([peer], "h" * 64, 1, MsgType.DELIVER, b"x", False)


def test_long_hop_host_rejected():
    _, first = _relay("a", 9001)
    _, pub = x25519_keygen()
    far = Peer(user_id="b", pubkey=pub, host="h" * 64, port=9002)
    with pytest.raises(OnionError):
        build_v1([first, far], "d", 1, MsgType.DELIVER, b"x", False)


def test_unknown_instruction_rejected():
    relay_priv, relay_pub = x25519_keygen()
    eph_priv, eph_pub = x25519_keygen()
    key = hkdf_sha256(x25519_derive(eph_priv, relay_pub), None, b"pcomm-onion-v1", 32)
    nonce = bytes(12)
    onion = nonce + aead_encrypt(key, nonce, None, b"\x09rest")
    with pytest.raises(OnionError):
        unwrap_v1(relay_priv, eph_pub, onion)


def test_truncated_deliver_layer_rejected():
    relay_priv, relay_pub = x25519_keygen()
    eph_priv, eph_pub = x25519_keygen()
    key = hkdf_sha256(x25519_derive(eph_priv, relay_pub), None, b"pcomm-onion-v1", 32)
    nonce = bytes(12)
    body = b"\x02\x00\x01h" + struct.pack(">HBI", 1, 2, 10) + b"short"
    onion = nonce + aead_encrypt(key, nonce, None, body)
    with pytest.raises(OnionError):
        unwrap_v1(relay_priv, eph_pub, onion)