"""Wire-level constants and shared record types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

MAGIC = b"PCOM"
VERSION = 1


class MsgType(IntEnum):
    """Packet types carried in the relay header."""

    ONION = 1
    DELIVER = 2
    CTRL = 3


class Inst(IntEnum):
    """Instructions found inside a decrypted onion layer."""

    FORWARD = 1
    DELIVER = 2
    FORWARD_RR = 3


class CtrlCmd(IntEnum):
    """Commands carried by control packets."""

    HELLO = 1
    PEERS_REQ = 2
    PEERS_RESP = 3
    DESC_PUT = 4
    DESC_GET = 5
    DESC_RESP = 6
    MB_PUT = 7
    MB_GET = 8
    MB_RESP = 9
    NOOP = 10


@dataclass(frozen=True)
class Peer:
    """A relay reachable at host:port, identified by its public key."""

    user_id: str
    pubkey: bytes
    host: str
    port: int