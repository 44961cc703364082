"""TCP helpers."""

from __future__ import annotations

import socket


def listen_tcp(host: str | None, port: int, backlog: int) -> socket.socket:
    """Bind a listening TCP socket to host:port; an empty host means any address."""
    infos = socket.getaddrinfo(
        host or None, port, socket.AF_UNSPEC, socket.SOCK_STREAM, 0, socket.AI_PASSIVE
    )
    if not infos:
        raise OSError(f"cannot resolve {host}:{port}")
    family, socktype, proto, _, addr = infos[0]
    sock = socket.socket(family, socktype, proto)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(addr)
        sock.listen(backlog)
    except OSError:
        sock.close()
        raise
    return sock


def connect_tcp(host: str, port: int) -> socket.socket:
    """Connect to host:port, trying each resolved address in turn."""
    return socket.create_connection((host, port))


def recv_exact(sock: socket.socket, n: int) -> bytes:
    """Read exactly n bytes, raising ConnectionError if the peer closes first."""
    chunks = []
    remaining = n
    while remaining > 0:
        chunk = sock.recv(remaining)
        if not chunk:
            raise ConnectionError(f"connection closed with {remaining} of {n} bytes unread")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)