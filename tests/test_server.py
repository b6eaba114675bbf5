import errno
import socket
import threading

import pytest

from netbench.protocol import encode_request, recv_exact
from netbench.server import TransferServer


def _connect(server):
    sock = socket.create_connection(("127.0.0.1", server.port), timeout=5.0)
    return sock


def _assert_closed(sock):
    sock.settimeout(5.0)
    assert sock.recv(1) == b""


def test_returns_exactly_requested_bytes(server):
    with _connect(server) as sock:
        sock.sendall(encode_request(4096))
        payload = recv_exact(sock, 4096)
        assert payload == bytes(4096)

        # Nothing beyond the requested count is written
        sock.settimeout(0.2)
        with pytest.raises(socket.timeout):
            sock.recv(1)


def test_serves_repeated_requests_on_one_connection(server):
    with _connect(server) as sock:
        for size in (1, 1000, 3 * 1024 * 1024 + 7):
            sock.sendall(encode_request(size))
            assert len(recv_exact(sock, size)) == size


def test_concurrent_connections_are_independent(server):
    sizes = {"a": 1024, "b": 2048}
    received = {}
    barrier = threading.Barrier(len(sizes))

    def _client(name, size):
        with _connect(server) as sock:
            barrier.wait(timeout=5.0)
            for _ in range(20):
                sock.sendall(encode_request(size))
                data = recv_exact(sock, size)
                received.setdefault(name, []).append(len(data))
            sock.settimeout(0.2)
            try:
                extra = sock.recv(1)
            except socket.timeout:
                extra = b""
            received[name + "_extra"] = extra

    threads = [threading.Thread(target=_client, args=item) for item in sizes.items()]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10.0)

    assert received["a"] == [1024] * 20
    assert received["b"] == [2048] * 20
    assert received["a_extra"] == b""
    assert received["b_extra"] == b""


def test_zero_request_closes_connection(server):
    with _connect(server) as sock:
        sock.sendall(bytes(8))
        _assert_closed(sock)


def test_oversized_request_closes_connection(make_server):
    server = make_server(max_request_size=1024)
    with _connect(server) as sock:
        sock.sendall(encode_request(4096))
        _assert_closed(sock)


def test_bad_connection_does_not_affect_others(server):
    with _connect(server) as good, _connect(server) as bad:
        bad.sendall(bytes(8))
        _assert_closed(bad)

        good.sendall(encode_request(512))
        assert len(recv_exact(good, 512)) == 512


def test_max_requests_closes_after_n_exchanges(make_server):
    server = make_server(max_requests=2)
    with _connect(server) as sock:
        for _ in range(2):
            sock.sendall(encode_request(100))
            recv_exact(sock, 100)
        _assert_closed(sock)


def _serve(server):
    ready = threading.Event()
    thread = threading.Thread(target=server.start, args=(ready,), daemon=True)
    thread.start()
    assert ready.wait(5.0)
    return thread


def test_max_connections_stops_accept_loop():
    server = TransferServer(host="127.0.0.1", port=0, max_connections=1)
    thread = _serve(server)

    with _connect(server) as sock:
        sock.sendall(encode_request(64))
        assert len(recv_exact(sock, 64)) == 64

    thread.join(timeout=5.0)
    assert not thread.is_alive()


def test_shutdown_stops_server(make_server):
    server = make_server()
    assert server.is_running
    server.shutdown()
    assert not server.is_running


def test_send_buffer_option_accepted(make_server):
    server = make_server(send_buffer_size=1_000_000)
    with _connect(server) as sock:
        sock.sendall(encode_request(1_000_000))
        assert len(recv_exact(sock, 1_000_000)) == 1_000_000


def test_setup_failure_closes_only_that_connection(monkeypatch, make_server):
    real_configure = TransferServer._configure
    calls = []

    def _flaky_configure(self, conn):
        calls.append(conn)
        if len(calls) == 1:
            raise OSError(errno.EINVAL, "Invalid argument")
        real_configure(self, conn)

    monkeypatch.setattr(TransferServer, "_configure", _flaky_configure)
    server = make_server()

    with _connect(server) as first:
        _assert_closed(first)

    with _connect(server) as second:
        second.sendall(encode_request(256))
        assert len(recv_exact(second, 256)) == 256
    assert server.is_running


def test_aborted_accept_keeps_accept_loop_running():
    server = TransferServer(host="127.0.0.1", port=0)
    real_accept = server._accept
    aborted = []

    def _flaky_accept():
        if not aborted:
            aborted.append(True)
            raise ConnectionAbortedError(errno.ECONNABORTED, "Software caused connection abort")
        return real_accept()

    server._accept = _flaky_accept
    thread = _serve(server)
    try:
        with _connect(server) as sock:
            sock.sendall(encode_request(128))
            assert len(recv_exact(sock, 128)) == 128
        assert aborted
        assert thread.is_alive()
    finally:
        server.shutdown()
        thread.join(timeout=5.0)


def test_banner_shows_bound_port(make_server, capsys):
    server = make_server()
    out = capsys.readouterr().out
    assert server.port != 0
    assert f"listening on 127.0.0.1:{server.port}" in out
