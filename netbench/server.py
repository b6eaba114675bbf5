"""
netbench/server.py

netbench transfer SERVER.

Responsibilities:
  - Listen on a TCP port for client connections
  - Per connection: read a size request, write back exactly that many
    zero bytes, repeat until the client closes
  - Reject zero-byte and oversized requests by closing the connection

Architecture:
  - One accept-loop thread
  - One handler thread per accepted connection
  - No state shared between handlers; the zero payload block is
    allocated once and only ever read
"""

import socket
import threading
import logging
import signal
import sys
from typing import Optional

from netbench.protocol import (
    DEFAULT_PORT,
    MAX_REQUEST_SIZE,
    REQUEST_SIZE,
    ProtocolError,
    decode_request,
    recv_exact,
)

logger = logging.getLogger(__name__)

# How long a connection may sit idle waiting for the next request
STREAM_TIMEOUT = 120.0

# Size of the shared zero block that payloads are sliced from
PAYLOAD_BLOCK_SIZE = 1024 * 1024

_ZERO_BLOCK = memoryview(bytes(PAYLOAD_BLOCK_SIZE))


def send_payload(conn: socket.socket, size: int) -> None:
    """Write exactly `size` zero bytes to conn."""
    remaining = size
    while remaining > 0:
        n = min(remaining, PAYLOAD_BLOCK_SIZE)
        conn.sendall(_ZERO_BLOCK[:n])
        remaining -= n


# ---------------------------------------------------------------------------
# ConnectionHandler — serves one client connection
# ---------------------------------------------------------------------------

class ConnectionHandler:
    """
    Handles a single client connection.

    Processes: (size request → payload)* until the peer closes, an I/O
    error occurs, or max_requests exchanges have been served.
    """

    def __init__(
        self,
        conn: socket.socket,
        addr: tuple,
        max_request_size: int = MAX_REQUEST_SIZE,
        max_requests: Optional[int] = None,
        timeout: float = STREAM_TIMEOUT,
    ) -> None:
        self._conn             = conn
        self._addr             = addr
        self._max_request_size = max_request_size
        self._max_requests     = max_requests
        self._timeout          = timeout
        self.requests_served   = 0
        self.bytes_sent        = 0

    def handle(self) -> None:
        """Main handler loop for one connection."""
        peer = "%s:%d" % self._addr[:2]
        try:
            self._conn.settimeout(self._timeout)
            self._run()
        except ProtocolError as exc:
            logger.warning("%s: rejected request: %s", peer, exc)
        except ConnectionError as exc:
            logger.info("%s: connection closed: %s", peer, exc)
        except socket.timeout:
            logger.info("%s: idle for %.0fs, closing", peer, self._timeout)
        except OSError as exc:
            logger.error("%s: I/O error: %s", peer, exc)
        except Exception as exc:
            logger.error("%s: handler error: %s", peer, exc, exc_info=True)
        finally:
            try:
                self._conn.close()
            except OSError:
                pass
            logger.info(
                "%s: served %d request(s), %d bytes",
                peer, self.requests_served, self.bytes_sent,
            )

    def _run(self) -> None:
        while self._max_requests is None or self.requests_served < self._max_requests:
            try:
                raw = recv_exact(self._conn, REQUEST_SIZE)
            except ConnectionError:
                # Clean close between requests ends the session normally
                if self.requests_served > 0:
                    logger.debug("Peer %s:%d finished", *self._addr[:2])
                    return
                raise

            size = decode_request(raw, max_size=self._max_request_size)
            send_payload(self._conn, size)

            self.requests_served += 1
            self.bytes_sent += size
            logger.debug("Sent %d bytes to %s:%d", size, *self._addr[:2])


# ---------------------------------------------------------------------------
# TransferServer — main server class
# ---------------------------------------------------------------------------

class TransferServer:
    """
    TCP server answering size requests with zero-filled payloads.

    Usage:
        server = TransferServer(host="0.0.0.0", port=7878)
        server.start()          # blocks (runs the accept loop)

    Programmatic / test usage:
        ready = threading.Event()
        threading.Thread(target=server.start, args=(ready,), daemon=True).start()
        ready.wait()
        ... connect to server.port ...
        server.shutdown()
    """

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = DEFAULT_PORT,
        max_request_size: int = MAX_REQUEST_SIZE,
        max_requests: Optional[int] = None,
        max_connections: Optional[int] = None,
        send_buffer_size: Optional[int] = None,
        timeout: float = STREAM_TIMEOUT,
        backlog: int = 16,
    ) -> None:
        self.host             = host
        self.port             = port
        self.max_request_size = max_request_size
        self.max_requests     = max_requests
        self.max_connections  = max_connections
        self.send_buffer_size = send_buffer_size
        self.timeout          = timeout
        self.backlog          = backlog

        self._shutdown = threading.Event()
        self._sock: Optional[socket.socket] = None
        self._handler_threads: list[threading.Thread] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, ready_event: Optional[threading.Event] = None) -> None:
        """
        Start listening. Blocks until shutdown() is called, a signal is
        received, or max_connections connections have been served.

        Args:
            ready_event: If provided, set() once the socket is bound and
                         listening (useful for tests / programmatic callers).
        """
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind((self.host, self.port))
        self._sock.listen(self.backlog)
        self._sock.settimeout(1.0)  # so accept() can be interrupted

        # Port 0 binds an ephemeral port; expose the real one
        self.port = self._sock.getsockname()[1]

        # Install signal handlers only when running on the main thread
        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGINT,  self._on_signal)
            signal.signal(signal.SIGTERM, self._on_signal)

        print(f"\n  netbench server listening on {self.host}:{self.port}")
        print(f"  Max request      : {self.max_request_size / 1e6:.1f} MB")
        print(f"  Press Ctrl-C to stop\n")
        logger.info("Server started on %s:%d", self.host, self.port)

        if ready_event is not None:
            ready_event.set()

        try:
            self._accept_loop()
        finally:
            self._close_listener()

    def shutdown(self) -> None:
        """Stop accepting connections; start() returns within a second."""
        self._shutdown.set()

    @property
    def is_running(self) -> bool:
        return self._sock is not None and not self._shutdown.is_set()

    def _accept_loop(self) -> None:
        accepted = 0
        while not self._shutdown.is_set():
            if self.max_connections is not None and accepted >= self.max_connections:
                break
            try:
                conn, addr = self._accept()
            except socket.timeout:
                continue
            except (ConnectionAbortedError, ConnectionResetError) as exc:
                # Peer gave up before accept(); only that connection is lost
                logger.warning("Accept aborted: %s", exc)
                continue
            except OSError:
                break

            accepted += 1
            logger.info("New connection from %s:%d", *addr[:2])
            try:
                self._configure(conn)
            except OSError as exc:
                logger.warning("%s:%d: setup failed, closing: %s", addr[0], addr[1], exc)
                conn.close()
                continue

            handler = ConnectionHandler(
                conn=conn,
                addr=addr,
                max_request_size=self.max_request_size,
                max_requests=self.max_requests,
                timeout=self.timeout,
            )
            t = threading.Thread(
                target=handler.handle,
                name=f"handler-{addr[0]}-{addr[1]}",
                daemon=True,
            )
            t.start()
            if self.max_connections is not None:
                self._handler_threads.append(t)

        if self.max_connections is not None:
            for t in self._handler_threads:
                t.join()

        logger.info("Accept loop exited")

    def _accept(self) -> tuple:
        return self._sock.accept()

    def _configure(self, conn: socket.socket) -> None:
        conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        if self.send_buffer_size:
            try:
                conn.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, self.send_buffer_size)
            except OSError as exc:
                logger.warning("Could not set send buffer to %d: %s", self.send_buffer_size, exc)

    def _close_listener(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass

    def _on_signal(self, signum, frame) -> None:
        print("\n  Shutting down server...")
        self._shutdown.set()
        self._close_listener()
        sys.exit(0)
