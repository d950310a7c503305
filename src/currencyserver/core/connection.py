"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one accepted client socket with the small API the
sessions need: read a chunk, write a buffer, arm a deadline, close.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

    Client sends:
        send("GET USD\n")
        send("GET EUR\n")

    Server might receive ANY of these:
        recv() → "GET USD\nGET EUR\n"   (both combined)
        recv() → "GE"                   (partial)
        recv() → "T USD\nGET"           (rest of first + part of second)

So a Connection never claims to return "a request". It returns whatever
bytes the kernel handed over, and the protocol layer (FrameReader for the
text protocol, JSONStreamDecoder for the JSON protocol) decides where one
request ends.

=============================================================================
DEADLINES
=============================================================================

A deadline is an ABSOLUTE point in time, not a per-call timeout:

    conn.set_deadline(45.0)     deadline = now + 45s
        recv()  ← 10s later     socket timeout = 35s
        recv()  ← 20s later     socket timeout = 15s
        recv()  ← 15s later     TIMEOUT

Each blocking call gets the time that is LEFT until the deadline. A
client cannot keep a session alive by dribbling one byte every 44
seconds.

=============================================================================
"""

import socket
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional

from .errors import ConnectionIOError, IOErrorKind


logger = logging.getLogger(__name__)

# Upper bounds on reading leftover client bytes while closing.
DRAIN_TIMEOUT = 0.5
DRAIN_LIMIT = 64 * 1024


class ConnectionState(Enum):
    """Where the connection is in its lifecycle (for logging)."""
    NEW = "new"
    READING = "reading"
    WRITING = "writing"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    Represents a client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. CHUNKED READING                                                  │
    │     └── recv_chunk() returns at most chunk_size bytes                │
    │     └── end-of-stream raises ConnectionIOError(CLOSED)               │
    │                                                                      │
    │  2. DEADLINES                                                        │
    │     └── set_deadline() arms an absolute deadline                     │
    │     └── applies to reads AND writes until cleared                    │
    │                                                                      │
    │  3. ERROR CLASSIFICATION                                             │
    │     └── every OSError becomes ConnectionIOError with a kind          │
    │                                                                      │
    │  4. GRACEFUL CLOSE                                                   │
    │     └── shutdown, drain, close; safe to call twice                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Unique connection identifier (for logging).
        state: Current connection state.
        requests_handled: Number of requests answered on this connection.
        bytes_received: Total bytes read.
        bytes_sent: Total bytes written.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    requests_handled: int = 0
    bytes_received: int = 0
    bytes_sent: int = 0

    chunk_size: int = 4096

    _deadline: Optional[float] = field(default=None, repr=False)

    def __post_init__(self):
        # Blocking socket; timeouts come only from the deadline.
        self.socket.settimeout(None)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def peer(self) -> str:
        """Printable client address, "ip:port"."""
        if isinstance(self.address, tuple) and len(self.address) >= 2:
            return f"{self.address[0]}:{self.address[1]}"
        return str(self.address)

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # DEADLINES
    # =========================================================================

    def set_deadline(self, seconds: Optional[float]):
        """
        Arm a deadline `seconds` from now. None clears it.

        Re-arming replaces the previous deadline.
        """
        if seconds is None:
            self._deadline = None
        else:
            self._deadline = time.monotonic() + seconds

    def clear_deadline(self):
        self._deadline = None

    @property
    def deadline_remaining(self) -> Optional[float]:
        """Seconds left until the deadline, or None if no deadline is set."""
        if self._deadline is None:
            return None
        return self._deadline - time.monotonic()

    def _apply_deadline(self, action: str):
        remaining = self.deadline_remaining
        if remaining is None:
            self.socket.settimeout(None)
            return
        if remaining <= 0:
            raise ConnectionIOError(IOErrorKind.TIMEOUT, f"{action} failed: deadline exceeded")
        self.socket.settimeout(remaining)

    # =========================================================================
    # READING
    # =========================================================================

    def recv_chunk(self) -> bytes:
        """
        Read at most chunk_size bytes.

        Returns:
            A non-empty bytes object.

        Raises:
            ConnectionIOError: kind CLOSED on end-of-stream, TIMEOUT when the
                deadline fires, anything else as classified.
        """
        self.state = ConnectionState.READING
        self._apply_deadline("read")
        try:
            data = self.socket.recv(self.chunk_size)
        except OSError as e:
            raise ConnectionIOError.from_os_error(e, "read") from e

        if not data:
            raise ConnectionIOError(IOErrorKind.CLOSED, "read failed: peer closed the connection")

        self.bytes_received += len(data)
        return data

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes):
        """
        Write all of `data` to the client.

        sendall() blocks until everything is in the kernel's send buffer,
        or the deadline (if any) fires.

        Raises:
            ConnectionIOError: if the write fails.
        """
        self.state = ConnectionState.WRITING
        self._apply_deadline("write")
        try:
            self.socket.sendall(data)
        except OSError as e:
            raise ConnectionIOError.from_os_error(e, "write") from e

        self.bytes_sent += len(data)

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self, drain: bool = True):
        """
        Close the connection gracefully.

        1. shutdown(SHUT_WR): send FIN so the client sees end-of-stream
        2. drain whatever the client still had in flight, for at most
           DRAIN_TIMEOUT seconds in total (skipped with drain=False)
        3. close(): release the file descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        if drain:
            self._drain()

        try:
            self.socket.close()
        except OSError as e:
            logger.warning(f"[{self.id}] Error closing connection: {e}")

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def _drain(self):
        deadline = time.monotonic() + DRAIN_TIMEOUT
        drained = 0
        try:
            while drained < DRAIN_LIMIT:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                chunk = self.socket.recv(1024)
                if not chunk:
                    break
                drained += len(chunk)
        except OSError:
            pass

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensure connection is closed."""
        self.close()
        return False
