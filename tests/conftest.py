import socket
import threading

import pytest

from netbench.server import TransferServer


@pytest.fixture
def make_server():
    """Start TransferServers on ephemeral loopback ports; shut them down afterwards."""
    started = []

    def _start(**kwargs):
        server = TransferServer(host="127.0.0.1", port=0, **kwargs)
        ready = threading.Event()
        thread = threading.Thread(target=server.start, args=(ready,), daemon=True)
        thread.start()
        assert ready.wait(5.0), "server did not start"
        started.append((server, thread))
        return server

    yield _start

    for server, thread in started:
        server.shutdown()
        thread.join(timeout=5.0)


@pytest.fixture
def server(make_server):
    return make_server()


@pytest.fixture
def unused_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
