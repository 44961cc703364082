"""X25519 key agreement, HKDF-SHA256, ChaCha20-Poly1305 and sealed boxes."""

from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

KEY_LEN = 32
NONCE_LEN = 12
TAG_LEN = 16
SEAL_INFO = b"pcomm-seal-v1"
SEAL_OVERHEAD = KEY_LEN + NONCE_LEN + TAG_LEN


class CryptoError(Exception):
    """Raised when a cryptographic operation fails."""


def random_bytes(n: int) -> bytes:
    """Return n bytes from the system's secure random source."""
    return os.urandom(n)


def _raw_private(key: X25519PrivateKey) -> bytes:
    return key.private_bytes(
        serialization.Encoding.Raw,
        serialization.PrivateFormat.Raw,
        serialization.NoEncryption(),
    )


def _raw_public(key: X25519PublicKey) -> bytes:
    return key.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)


def x25519_keygen() -> tuple[bytes, bytes]:
    """Generate a fresh X25519 key pair as (private, public) raw bytes."""
    key = X25519PrivateKey.generate()
    return _raw_private(key), _raw_public(key.public_key())


def x25519_public_from_private(priv: bytes) -> bytes:
    """Return the raw public key for a raw private key."""
    try:
        key = X25519PrivateKey.from_private_bytes(bytes(priv))
    except ValueError as exc:
        raise CryptoError(f"bad private key: {exc}") from exc
    return _raw_public(key.public_key())


def x25519_derive(priv: bytes, pub: bytes) -> bytes:
    """Compute the 32-byte X25519 shared secret."""
    try:
        key = X25519PrivateKey.from_private_bytes(bytes(priv))
        peer = X25519PublicKey.from_public_bytes(bytes(pub))
        return key.exchange(peer)
    except ValueError as exc:
        raise CryptoError(f"x25519 derivation failed: {exc}") from exc


def hkdf_sha256(ikm: bytes, salt: bytes | None, info: bytes | None, length: int) -> bytes:
    """Derive length bytes with HKDF-SHA256; empty salt or info count as absent."""
    try:
        kdf = HKDF(
            algorithm=hashes.SHA256(),
            length=length,
            salt=salt or None,
            info=info or None,
        )
        return kdf.derive(bytes(ikm))
    except ValueError as exc:
        raise CryptoError(f"hkdf failed: {exc}") from exc


def _cipher(key: bytes, nonce: bytes) -> ChaCha20Poly1305:
    if len(key) != KEY_LEN:
        raise CryptoError("key must be 32 bytes")
    if len(nonce) != NONCE_LEN:
        raise CryptoError("nonce must be 12 bytes")
    return ChaCha20Poly1305(bytes(key))


def aead_encrypt(key: bytes, nonce: bytes, aad: bytes | None, plaintext: bytes) -> bytes:
    """Encrypt with ChaCha20-Poly1305; the 16-byte tag is appended."""
    return _cipher(key, nonce).encrypt(bytes(nonce), bytes(plaintext), aad or None)


def aead_decrypt(key: bytes, nonce: bytes, aad: bytes | None, ciphertext: bytes) -> bytes:
    """Verify and decrypt ciphertext with its trailing tag."""
    if len(ciphertext) < TAG_LEN:
        raise CryptoError("ciphertext shorter than tag")
    cipher = _cipher(key, nonce)
    try:
        return cipher.decrypt(bytes(nonce), bytes(ciphertext), aad or None)
    except InvalidTag as exc:
        raise CryptoError("authentication failed") from exc


def _seal_key(shared: bytes) -> bytes:
    return hkdf_sha256(shared, None, SEAL_INFO, KEY_LEN)


def seal_for_recipient(recipient_pub: bytes, msg: bytes) -> bytes:
    """Encrypt msg to a public key: ephemeral_pub || nonce || ciphertext+tag."""
    eph_priv, eph_pub = x25519_keygen()
    key = _seal_key(x25519_derive(eph_priv, recipient_pub))
    nonce = random_bytes(NONCE_LEN)
    return eph_pub + nonce + aead_encrypt(key, nonce, None, msg)


def open_seal(recipient_priv: bytes, sealed: bytes) -> bytes:
    """Open a sealed box produced by seal_for_recipient."""
    if len(sealed) < SEAL_OVERHEAD:
        raise CryptoError("sealed message too short")
    eph_pub = sealed[:KEY_LEN]
    nonce = sealed[KEY_LEN:KEY_LEN + NONCE_LEN]
    ciphertext = sealed[KEY_LEN + NONCE_LEN:]
    key = _seal_key(x25519_derive(recipient_priv, eph_pub))
    return aead_decrypt(key, nonce, None, ciphertext)