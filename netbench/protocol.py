"""
netbench/protocol.py

Wire protocol for netbench transfers.

Request layout (big-endian):
┌──────────────┬───────┬───────────────────────────────────────────────────┐
│ Field        │ Bytes │ Description                                       │
├──────────────┼───────┼───────────────────────────────────────────────────┤
│ size_bytes   │   8   │ Number of payload bytes the client wants back     │
└──────────────┴───────┴───────────────────────────────────────────────────┘

Response:
    exactly size_bytes of raw payload, no header and no trailer.

The client sends the next request only after the whole response has been
read, so the byte count is all the framing the stream needs. Either side
may close the connection to end the session.

Errors raised by this layer:
  ProtocolError  — size field is zero or above the server's limit
  TransportError — read/write failure or deadline expiry during a run
"""

import socket
import struct
import time
from dataclasses import dataclass
from typing import Optional

# ------------------------------------------------------------------
# Constants
# ------------------------------------------------------------------
REQUEST_FORMAT = "!Q"                          # size_bytes(Q)
REQUEST_SIZE = struct.calcsize(REQUEST_FORMAT)  # 8 bytes

DEFAULT_PORT = 7878
CHUNK_SIZE = 1_000_000               # default payload per iteration
MAX_REQUEST_SIZE = 256 * 1024 * 1024  # largest request a server will honour
RECV_BUFFER = 65536                  # socket recv slice


# ------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------

class ProtocolError(ValueError):
    """A size request that is malformed or outside the accepted range."""


class TransportError(OSError):
    """
    A read, write or deadline failure in the middle of a run.

    Attributes:
        last_sequence: sequence number of the last iteration that completed
                       before the failure (-1 if none did)
    """

    def __init__(self, message: str, last_sequence: int = -1) -> None:
        super().__init__(message)
        self.last_sequence = last_sequence

    def __str__(self) -> str:
        return f"{self.args[0]} (last completed sequence: {self.last_sequence})"


# ------------------------------------------------------------------
# Request encode / decode
# ------------------------------------------------------------------

@dataclass(frozen=True)
class TransferRequest:
    size_bytes: int

    def encode(self) -> bytes:
        return encode_request(self.size_bytes)

    @classmethod
    def decode(cls, raw: bytes, max_size: int = MAX_REQUEST_SIZE) -> "TransferRequest":
        return cls(decode_request(raw, max_size=max_size))


def encode_request(size_bytes: int) -> bytes:
    """
    Pack a size request.

    Raises:
        ProtocolError: if size_bytes does not fit the size field or is zero
    """
    if size_bytes <= 0:
        raise ProtocolError(f"Request size must be positive, got {size_bytes}")
    try:
        return struct.pack(REQUEST_FORMAT, size_bytes)
    except struct.error as exc:
        raise ProtocolError(f"Request size {size_bytes} does not fit the size field") from exc


def decode_request(raw: bytes, max_size: int = MAX_REQUEST_SIZE) -> int:
    """
    Unpack and validate a size request.

    Raises:
        ProtocolError: truncated field, zero size, or size above max_size
    """
    if len(raw) != REQUEST_SIZE:
        raise ProtocolError(f"Size field must be {REQUEST_SIZE} bytes, got {len(raw)}")

    (size_bytes,) = struct.unpack(REQUEST_FORMAT, raw)

    if size_bytes == 0:
        raise ProtocolError("Zero-byte request")
    if size_bytes > max_size:
        raise ProtocolError(f"Request for {size_bytes} bytes exceeds limit of {max_size}")
    return size_bytes


# ------------------------------------------------------------------
# Exact reads
# ------------------------------------------------------------------

def recv_exact(sock: socket.socket, n: int) -> bytes:
    """
    Read exactly n bytes from sock.

    Raises:
        ConnectionError: if the socket closes before n bytes are read
    """
    buf = bytearray()
    while len(buf) < n:
        chunk = sock.recv(min(n - len(buf), RECV_BUFFER))
        if not chunk:
            raise ConnectionError(f"Socket closed after {len(buf)}/{n} bytes")
        buf.extend(chunk)
    return bytes(buf)


def recv_exact_into(
    sock: socket.socket,
    view: memoryview,
    deadline: Optional[float] = None,
) -> int:
    """
    Fill view completely from sock.

    Args:
        sock:     connected socket
        view:     writable memoryview to fill
        deadline: time.monotonic() value after which the read is abandoned

    Returns:
        int: number of bytes read (always len(view))

    Raises:
        ConnectionError: socket closed before the view was filled
        socket.timeout:  deadline passed before the view was filled
    """
    n = len(view)
    got = 0
    while got < n:
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise socket.timeout(f"Deadline expired after {got}/{n} bytes")
            sock.settimeout(remaining)
        read = sock.recv_into(view[got:], min(n - got, RECV_BUFFER))
        if read == 0:
            raise ConnectionError(f"Socket closed after {got}/{n} bytes")
        got += read
    return got
