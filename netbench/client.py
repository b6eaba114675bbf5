"""
netbench/client.py

TransferClient — drives one measurement run on the client side.

Responsibilities:
  - Open a single TCP connection to the server
  - For each iteration: send a size request, read the full payload,
    time the round trip and emit a MeasurementRecord
  - Stop at the first transport failure and hand back everything
    recorded before it

Iterations are strictly sequential on the one connection: the next request
is written only after the previous payload has been read in full, so each
record times exactly one round trip.

Per-iteration states:
    IDLE → REQUEST_SENT → RECEIVING → RECORDED → IDLE ...
                                   ↘ FAILED (terminal)
"""

import socket
import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from netbench.metrics import MeasurementRecord
from netbench.protocol import (
    CHUNK_SIZE,
    DEFAULT_PORT,
    TransportError,
    encode_request,
    recv_exact_into,
)

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10.0      # seconds

# Upper bound on one request/response exchange
ITERATION_TIMEOUT = 30.0    # seconds

DEFAULT_ITERATIONS = 100


class ClientState(Enum):
    IDLE         = "idle"
    REQUEST_SENT = "request_sent"
    RECEIVING    = "receiving"
    RECORDED     = "recorded"
    FAILED       = "failed"


@dataclass
class TransferRun:
    """Records produced by one run, and the error that ended it early (if any)."""
    records: list = field(default_factory=list)
    error: Optional[TransportError] = None

    @property
    def completed(self) -> bool:
        return self.error is None


class TransferClient:
    """
    Runs `iterations` timed request/response exchanges against a server.

    Usage:
        client = TransferClient("127.0.0.1", 7878, chunk_size=1_000_000, iterations=100)
        run = client.run()
        if run.error:
            ...  # run.records still holds the completed iterations

    Args:
        host:       Server hostname / IP
        port:       Server port
        chunk_size: Bytes requested per iteration
        iterations: Number of exchanges
        timeout:    Deadline for one iteration, in seconds
        on_record:  Called with each MeasurementRecord as soon as it exists
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        chunk_size: int = CHUNK_SIZE,
        iterations: int = DEFAULT_ITERATIONS,
        timeout: float = ITERATION_TIMEOUT,
        on_record: Optional[Callable[[MeasurementRecord], None]] = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be > 0, got {chunk_size}")
        if iterations <= 0:
            raise ValueError(f"iterations must be > 0, got {iterations}")
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout}")

        # Raises ProtocolError (a ValueError) if chunk_size overflows the size field
        self._request = encode_request(chunk_size)

        self.host       = host
        self.port       = port
        self.chunk_size = chunk_size
        self.iterations = iterations
        self.timeout    = timeout
        self._on_record = on_record

        self.state = ClientState.IDLE

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def run(self) -> TransferRun:
        """
        Connect and perform all iterations.

        Returns:
            TransferRun with one record per completed iteration; its error
            is set if a transport failure ended the run early.

        Raises:
            ConnectionError: the connection could not be established
        """
        view = memoryview(bytearray(self.chunk_size))
        sock = self._connect()
        result = TransferRun()

        try:
            for seq in range(self.iterations):
                try:
                    record = self._iterate(sock, seq, self._request, view)
                except OSError as exc:
                    self.state = ClientState.FAILED
                    result.error = TransportError(
                        f"Iteration {seq} failed: {exc}",
                        last_sequence=seq - 1,
                    )
                    logger.error("%s", result.error)
                    break

                result.records.append(record)
                if self._on_record is not None:
                    self._on_record(record)
                self.state = ClientState.IDLE
        finally:
            try:
                sock.close()
            except OSError:
                pass

        logger.info(
            "Run against %s:%d finished: %d/%d iterations",
            self.host, self.port, len(result.records), self.iterations,
        )
        return result

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _connect(self) -> socket.socket:
        try:
            sock = socket.create_connection(
                (self.host, self.port), timeout=CONNECT_TIMEOUT
            )
        except OSError as exc:
            self.state = ClientState.FAILED
            raise ConnectionError(
                f"Could not connect to {self.host}:{self.port}: {exc}"
            ) from exc

        try:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError as exc:
            sock.close()
            self.state = ClientState.FAILED
            raise ConnectionError(
                f"Could not configure connection to {self.host}:{self.port}: {exc}"
            ) from exc
        logger.info("Connected to %s:%d", self.host, self.port)
        return sock

    def _iterate(
        self,
        sock: socket.socket,
        seq: int,
        request: bytes,
        view: memoryview,
    ) -> MeasurementRecord:
        deadline = time.monotonic() + self.timeout
        sock.settimeout(self.timeout)

        start = time.perf_counter()
        sock.sendall(request)
        self.state = ClientState.REQUEST_SENT

        self.state = ClientState.RECEIVING
        recv_exact_into(sock, view, deadline=deadline)
        elapsed = time.perf_counter() - start

        record = MeasurementRecord.from_transfer(seq, self.chunk_size, elapsed)
        self.state = ClientState.RECORDED
        logger.debug(
            "Chunk %d: %.6f s, %.2f bps",
            seq, record.elapsed_time_seconds, record.effective_rate_bps,
        )
        return record
