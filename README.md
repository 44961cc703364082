# pcomm

Building blocks of a small peer-to-peer messenger node: X25519 sealed boxes,
layered onion encryption for routing through relays, the binary framing of
relay packets, the plaintext message formats, and a SQLite store for
contacts, conversations, messages, mailboxes and descriptors.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

| Module | Contents |
| --- | --- |
| `pcomm.base32` | `encode_no_pad`, `decode_no_pad` (case-insensitive, skips `=` and whitespace), `Base32Error` |
| `pcomm.config` | `Config` with the node's defaults, `parse_args`, `parse_hostport`, `usage`, `ConfigError`, `HelpRequested` |
| `pcomm.constants` | `MsgType`, `Inst`, `CtrlCmd`, the `Peer` record, `MAGIC` and `VERSION` |
| `pcomm.crypto` | X25519 key generation and agreement, `hkdf_sha256`, ChaCha20-Poly1305 `aead_encrypt`/`aead_decrypt`, `seal_for_recipient`/`open_seal`, `CryptoError` |
| `pcomm.msg` | `pack_direct_text`, `pack_group_invite`, `pack_group_text`, `unpack_any` returning a `PlainMessage`, `MessageError` |
| `pcomm.onion` | `build_v1` and `unwrap_v1`, with `ForwardInstruction` and `DeliverInstruction` results, `OnionError` |
| `pcomm.proto` | `encode_packet`, `send_packet`, `recv_packet` returning a `Packet`, `ProtocolError` |
| `pcomm.net` | `listen_tcp`, `connect_tcp`, `recv_exact` |
| `pcomm.db` | `Database` (a context manager) and the `Contact` record, `DatabaseError` |
| `pcomm.http_util` | `url_decode`, `form_get_field`, `json_escape` |

### Configuration

`pcomm.config.parse_args` takes the arguments without the program name and
returns a `Config`:

| Option | Default |
| --- | --- |
| `--data-dir PATH` | `./pcomm_data` |
| `--ui-dir PATH` | `./ui` |
| `--relay HOST:PORT` | `0.0.0.0:9001` |
| `--http HOST:PORT` | `127.0.0.1:8080` |
| `--advertise HOST:PORT` | none |
| `--peers PATH` | `./peers.txt` |

`--help` or `-h` raises `HelpRequested` whose message is the usage text; an
unknown option or a bad address raises `ConfigError`.

## Examples

Sealing a message for a public key:

```python
from pcomm import crypto

priv, pub = crypto.x25519_keygen()
sealed = crypto.seal_for_recipient(pub, b"hello")
assert crypto.open_seal(priv, sealed) == b"hello"
```

Packing and parsing a message body:

```python
from pcomm import msg

data = msg.pack_direct_text(1700000000, "alice", "hi")
message = msg.unpack_any(data)
assert message.kind is msg.PlainKind.DIRECT_TEXT
assert message.text == "hi"
```

Wrapping a delivery in two onion layers and peeling the first:

```python
from pcomm import crypto, onion
from pcomm.constants import MsgType, Peer

priv_a, pub_a = crypto.x25519_keygen()
priv_b, pub_b = crypto.x25519_keygen()
path = [Peer("relay-a", pub_a, "10.0.0.1", 9001), Peer("relay-b", pub_b, "10.0.0.2", 9001)]

eph_pub, blob = onion.build_v1(path, "10.0.0.3", 9001, MsgType.DELIVER, b"payload", False)
layer = onion.unwrap_v1(priv_a, eph_pub, blob)
assert (layer.next_host, layer.next_port) == ("10.0.0.2", 9001)
```

Using the store (the data directory must exist):

```python
from pcomm.db import Database

with Database("./pcomm_data") as db:
    db.init_schema()
    conv_id = db.get_or_create_group_conv("0123abcd", "friends")
    db.add_participant(conv_id, "alice")
    assert db.list_group_participants(conv_id) == ["alice"]
```

## What this package does not do

It has no command to start a node and runs no servers: nothing here listens
for relay connections and handles them, and nothing serves the web UI or its
JSON API, although `Database` provides the queries such a UI would list. It
does not create or load a node's identity key from disk, does not turn public
keys into user IDs, and does not read a peers file. The pieces above are the
formats, cryptography and storage such a node is built from.