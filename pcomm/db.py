"""SQLite storage for contacts, conversations, messages, mailboxes and descriptors."""

from __future__ import annotations

import sqlite3
import struct
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from .constants import Peer

DB_FILE = "pcomm.sqlite"
MAILBOX_BATCH = 100
_KEY_LEN = 32

_SCHEMA = """
CREATE TABLE IF NOT EXISTS contacts(
 user_id TEXT PRIMARY KEY,
 host TEXT NOT NULL,
 port INTEGER NOT NULL,
 pubkey BLOB NOT NULL,
 is_relay INTEGER NOT NULL DEFAULT 0,
 added_at INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS conversations(
 id INTEGER PRIMARY KEY AUTOINCREMENT,
 uuid TEXT,
 type TEXT NOT NULL,
 title TEXT,
 created_at INTEGER NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_conversations_uuid ON conversations(uuid);
CREATE TABLE IF NOT EXISTS participants(
 conversation_id INTEGER NOT NULL,
 user_id TEXT NOT NULL,
 role TEXT NOT NULL DEFAULT 'member',
 PRIMARY KEY(conversation_id, user_id),
 FOREIGN KEY(conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
);
CREATE TABLE IF NOT EXISTS messages(
 id INTEGER PRIMARY KEY AUTOINCREMENT,
 conversation_id INTEGER NOT NULL,
 direction INTEGER NOT NULL,
 peer_user_id TEXT NOT NULL,
 sender_user_id TEXT NOT NULL,
 body TEXT NOT NULL,
 ciphertext BLOB NOT NULL,
 ts_unix INTEGER NOT NULL,
 status INTEGER NOT NULL DEFAULT 0,
 FOREIGN KEY(conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_messages_conv_ts ON messages(conversation_id, ts_unix);
"""

_SCHEMA_STORE = """
CREATE TABLE IF NOT EXISTS mailbox_items(
 id INTEGER PRIMARY KEY AUTOINCREMENT,
 mkey BLOB NOT NULL,
 ts_unix INTEGER NOT NULL,
 blob BLOB NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_mailbox_key_id ON mailbox_items(mkey, id);
CREATE TABLE IF NOT EXISTS descriptors(
 dkey BLOB PRIMARY KEY,
 ts_unix INTEGER NOT NULL,
 expires_unix INTEGER NOT NULL,
 blob BLOB NOT NULL
);
"""

_CONVERSATIONS_SQL = (
    "SELECT c.id, IFNULL(c.uuid,''), c.type, IFNULL(c.title,''), "
    "CASE WHEN c.type='direct' THEN IFNULL((SELECT user_id FROM participants p "
    "WHERE p.conversation_id=c.id LIMIT 1), '') ELSE '' END AS peer, "
    "IFNULL((SELECT body FROM messages m WHERE m.conversation_id=c.id "
    "ORDER BY ts_unix DESC, id DESC LIMIT 1), '') AS last_body, "
    "IFNULL((SELECT ts_unix FROM messages m WHERE m.conversation_id=c.id "
    "ORDER BY ts_unix DESC, id DESC LIMIT 1), 0) AS last_ts "
    "FROM conversations c ORDER BY last_ts DESC LIMIT ?;"
)


class DatabaseError(Exception):
    """Raised when the database cannot be opened or a statement fails."""


@dataclass(frozen=True)
class Contact:
    user_id: str
    host: str
    port: int
    pubkey: bytes
    is_relay: bool


def _check_key(key: bytes, what: str) -> bytes:
    key = bytes(key)
    if len(key) != _KEY_LEN:
        raise ValueError(f"{what} must be {_KEY_LEN} bytes")
    return key


class Database:
    """A thread-safe handle on the node's SQLite database."""

    def __init__(self, data_dir) -> None:
        path = Path(data_dir) / DB_FILE
        try:
            self._conn: sqlite3.Connection | None = sqlite3.connect(
                str(path), timeout=2.0, isolation_level=None, check_same_thread=False
            )
            self._conn.execute("PRAGMA foreign_keys=ON;")
        except sqlite3.Error as exc:
            raise DatabaseError(f"failed to open sqlite db {path}: {exc}") from exc
        self._lock = threading.RLock()

    def close(self) -> None:
        """Close the connection; further use raises DatabaseError."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            if self._conn is None:
                raise DatabaseError("database is closed")
            try:
                yield self._conn
            except sqlite3.Error as exc:
                raise DatabaseError(str(exc)) from exc

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._connection() as conn:
            conn.execute("BEGIN;")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK;")
                raise
            conn.execute("COMMIT;")

    @staticmethod
    def _now(conn: sqlite3.Connection) -> int:
        row = conn.execute("SELECT strftime('%s','now');").fetchone()
        return int(row[0]) if row and row[0] is not None else 0

    def init_schema(self) -> None:
        """Create tables and indexes, upgrading older layouts."""
        with self._connection() as conn:
            conn.executescript(_SCHEMA)
            columns = {row[1] for row in conn.execute("PRAGMA table_info(conversations);")}
            if "uuid" not in columns:
                conn.execute("ALTER TABLE conversations ADD COLUMN uuid TEXT;")
                conn.execute(
                    "CREATE UNIQUE INDEX IF NOT EXISTS idx_conversations_uuid "
                    "ON conversations(uuid);"
                )
            conn.executescript(_SCHEMA_STORE)

    def upsert_contact(self, user_id: str, host: str, port: int, pubkey: bytes, is_relay) -> None:
        """Insert a contact or update its address, key and relay flag."""
        pubkey = _check_key(pubkey, "public key")
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO contacts(user_id,host,port,pubkey,is_relay,added_at) "
                "VALUES(?,?,?,?,?,strftime('%s','now')) "
                "ON CONFLICT(user_id) DO UPDATE SET host=excluded.host, port=excluded.port, "
                "pubkey=excluded.pubkey, is_relay=excluded.is_relay;",
                (user_id, host, int(port), pubkey, 1 if is_relay else 0),
            )

    def get_contact(self, user_id: str) -> Contact | None:
        """Return the contact, or None if unknown or its stored key is malformed."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT host, port, pubkey, is_relay FROM contacts WHERE user_id=?;",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        host, port, pubkey, is_relay = row
        if host is None or pubkey is None or len(pubkey) != _KEY_LEN:
            return None
        return Contact(user_id, host, int(port) & 0xFFFF, bytes(pubkey), bool(is_relay))

    def list_contacts(self, limit: int) -> list[Contact]:
        """Return the most recently added contacts."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT user_id, host, port, pubkey, is_relay FROM contacts "
                "ORDER BY added_at DESC LIMIT ?;",
                (int(limit),),
            ).fetchall()
        return [
            Contact(uid, host, int(port), bytes(pk or b""), bool(is_relay))
            for uid, host, port, pk, is_relay in rows
            if uid is not None and host is not None
        ]

    def list_relay_peers(self, limit: int) -> list[Peer]:
        """Return usable relay contacts, newest first."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT user_id, host, port, pubkey FROM contacts "
                "WHERE is_relay=1 AND host!='' AND port>0 ORDER BY added_at DESC LIMIT ?;",
                (int(limit),),
            ).fetchall()
        return [
            Peer(user_id=uid, pubkey=bytes(pk), host=host, port=int(port))
            for uid, host, port, pk in rows
            if uid is not None
            and host is not None
            and pk is not None
            and len(pk) == _KEY_LEN
            and 0 < int(port) <= 65535
            and len(uid.encode()) <= 95
            and len(host.encode()) <= 63
        ]

    def get_or_create_direct_conv(self, peer_user_id: str) -> int:
        """Return the direct conversation with a peer, creating it if needed."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT c.id FROM conversations c "
                "JOIN participants p ON p.conversation_id=c.id "
                "WHERE c.type='direct' AND p.user_id=? LIMIT 1;",
                (peer_user_id,),
            ).fetchone()
            if row is not None:
                return int(row[0])
            with self._transaction() as tx:
                cur = tx.execute(
                    "INSERT INTO conversations(uuid,type,title,created_at) "
                    "VALUES(?, 'direct', NULL, ?);",
                    (f"direct:{peer_user_id}", self._now(tx)),
                )
                conv_id = int(cur.lastrowid)
                tx.execute(
                    "INSERT INTO participants(conversation_id,user_id,role) "
                    "VALUES(?,?, 'member');",
                    (conv_id, peer_user_id),
                )
            return conv_id

    def insert_message(
        self,
        conv_id: int,
        direction: int,
        peer_user_id: str,
        sender_user_id: str,
        body: str,
        ciphertext: bytes,
        ts_unix: int,
    ) -> None:
        """Store a message in a conversation."""
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO messages(conversation_id,direction,peer_user_id,sender_user_id,"
                "body,ciphertext,ts_unix,status) VALUES(?,?,?,?,?,?,?,0);",
                (
                    int(conv_id),
                    int(direction),
                    peer_user_id,
                    sender_user_id,
                    body,
                    bytes(ciphertext),
                    int(ts_unix),
                ),
            )

    def add_participant(self, conv_id: int, user_id: str) -> None:
        """Add a member to a conversation; adding twice is harmless."""
        with self._connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO participants(conversation_id,user_id,role) "
                "VALUES(?,?,'member');",
                (int(conv_id), user_id),
            )

    def get_or_create_group_conv(self, uuid: str, title: str | None) -> int:
        """Return the group conversation with this uuid, creating it if needed."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT id FROM conversations WHERE type='group' AND uuid=? LIMIT 1;",
                (uuid,),
            ).fetchone()
            if row is not None:
                return int(row[0])
            with self._transaction() as tx:
                cur = tx.execute(
                    "INSERT INTO conversations(uuid,type,title,created_at) "
                    "VALUES(?, 'group', ?, ?);",
                    (uuid, title or "", self._now(tx)),
                )
                conv_id = int(cur.lastrowid)
            return conv_id

    def get_conversation_uuid(self, conv_id: int) -> tuple[str, str] | None:
        """Return (uuid, type) of a conversation, or None if it does not exist."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT IFNULL(uuid,''), type FROM conversations WHERE id=?;",
                (int(conv_id),),
            ).fetchone()
        if row is None:
            return None
        return row[0] or "", row[1] or ""

    def list_group_participants(self, conv_id: int) -> list[str]:
        """Return member ids of a conversation in ascending order."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT user_id FROM participants WHERE conversation_id=? ORDER BY user_id ASC;",
                (int(conv_id),),
            ).fetchall()
        return [uid for (uid,) in rows if uid is not None]

    def list_conversations(self, limit: int) -> list[dict]:
        """Return conversation summaries, most recently active first."""
        with self._connection() as conn:
            rows = conn.execute(_CONVERSATIONS_SQL, (int(limit),)).fetchall()
        return [
            {
                "id": int(cid),
                "uuid": uuid or "",
                "type": ctype or "",
                "title": title or "",
                "peer": peer or "",
                "last_ts": int(last_ts or 0),
                "last_body": last_body or "",
            }
            for cid, uuid, ctype, title, peer, last_body, last_ts in rows
        ]

    def list_messages(self, conv_id: int, limit: int) -> list[dict]:
        """Return messages of a conversation, oldest first."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT direction, sender_user_id, body, ts_unix FROM messages "
                "WHERE conversation_id=? ORDER BY ts_unix ASC, id ASC LIMIT ?;",
                (int(conv_id), int(limit)),
            ).fetchall()
        return [
            {"dir": int(direction), "sender": sender or "", "ts": int(ts), "body": body or ""}
            for direction, sender, body, ts in rows
        ]

    def mailbox_put(self, key: bytes, blob: bytes, ts_unix: int) -> None:
        """Queue a blob under a 32-byte mailbox key."""
        key = _check_key(key, "mailbox key")
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO mailbox_items(mkey,ts_unix,blob) VALUES(?,?,?);",
                (key, int(ts_unix), bytes(blob)),
            )

    def mailbox_get_and_delete(self, key: bytes) -> bytes:
        """Take up to 100 queued items and return them encoded.

        The result is a big-endian u16 count followed, per item, by
        u64 id, u32 timestamp, u32 length and the blob itself.
        """
        key = _check_key(key, "mailbox key")
        with self._transaction() as tx:
            rows = tx.execute(
                "SELECT id, ts_unix, blob FROM mailbox_items WHERE mkey=? "
                "ORDER BY id ASC LIMIT ?;",
                (key, MAILBOX_BATCH),
            ).fetchall()
            items = [(int(i), int(ts), bytes(b)) for i, ts, b in rows if b]
            if items:
                tx.execute(
                    "DELETE FROM mailbox_items WHERE mkey=? AND id<=?;",
                    (key, items[-1][0]),
                )
        parts = [struct.pack(">H", len(items))]
        for item_id, ts, blob in items:
            parts.append(struct.pack(">QII", item_id, ts & 0xFFFFFFFF, len(blob)))
            parts.append(blob)
        return b"".join(parts)

    def desc_put(self, key: bytes, blob: bytes, expires_unix: int, ts_unix: int) -> None:
        """Store or replace the descriptor under a 32-byte key."""
        key = _check_key(key, "descriptor key")
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO descriptors(dkey,ts_unix,expires_unix,blob) VALUES(?,?,?,?) "
                "ON CONFLICT(dkey) DO UPDATE SET ts_unix=excluded.ts_unix, "
                "expires_unix=excluded.expires_unix, blob=excluded.blob;",
                (key, int(ts_unix), int(expires_unix), bytes(blob)),
            )

    def desc_get(self, key: bytes) -> bytes | None:
        """Return the descriptor blob, or None if absent, empty or expired."""
        key = _check_key(key, "descriptor key")
        with self._connection() as conn:
            row = conn.execute(
                "SELECT blob, expires_unix FROM descriptors WHERE dkey=?;", (key,)
            ).fetchone()
            if row is None:
                return None
            blob, expires = row
            if not blob or int(expires) < self._now(conn):
                return None
            return bytes(blob)