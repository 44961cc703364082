import socket

import pytest

from pcomm.net import connect_tcp, listen_tcp, recv_exact


def test_listen_connect_and_transfer():
    server = listen_tcp("127.0.0.1", 0, 4)
    try:
        port = server.getsockname()[1]
        client = connect_tcp("127.0.0.1", port)
        conn, _ = server.accept()
        with client, conn:
            client.sendall(b"hello world")
            assert recv_exact(conn, 11) == b"hello world"
    finally:
        server.close()


def test_listen_sets_reuseaddr():
    server = listen_tcp("127.0.0.1", 0, 1)
    with server:
        assert server.getsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR) != 0
        assert server.getsockname()[0] == "127.0.0.1"


def test_recv_exact_joins_chunks():
    a, b = socket.socketpair()
    with a, b:
        a.sendall(b"abc")
        a.sendall(b"defg")
        assert recv_exact(b, 5) == b"abcde"
        assert recv_exact(b, 2) == b"fg"


def test_recv_exact_zero_bytes():
    a, b = socket.socketpair()
    with a, b:
        assert recv_exact(b, 0) == b""


def test_recv_exact_eof_raises():
    a, b = socket.socketpair()
    with b:
        a.sendall(b"ab")
        a.close()
        with pytest.raises(ConnectionError):
            recv_exact(b, 5)


def test_connect_refused_raises():
    holder = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    with holder:
        holder.bind(("127.0.0.1", 0))
        port = holder.getsockname()[1]
        with pytest.raises(OSError):
            connect_tcp("127.0.0.1", port)