"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every socket operation in the server can fail in one of four ways. The
kind is decided ONCE, right where the OSError is caught, and everything
above the connection layer only ever looks at the kind:

    ┌──────────────┬──────────────────────────────┬──────────────────────┐
    │ Kind         │ Typical cause                │ Who reacts, and how  │
    ├──────────────┼──────────────────────────────┼──────────────────────┤
    │ TRANSIENT    │ EMFILE, ENOBUFS, ECONNABORTED│ listener: back off   │
    │ TIMEOUT      │ deadline expired             │ session: close clean │
    │ CLOSED       │ EOF, reset, broken pipe      │ session: close clean │
    │ FATAL        │ anything else                │ session: close error │
    └──────────────┴──────────────────────────────┴──────────────────────┘

Protocol errors (a malformed request) are a different family: they never
come from the socket and are reported to the client in-band.

=============================================================================
"""

import errno
import socket
from enum import Enum
from typing import Optional


class IOErrorKind(Enum):
    """Classification of a failed socket operation."""
    TRANSIENT = "transient"
    TIMEOUT = "timeout"
    CLOSED = "closed"
    FATAL = "fatal"


# Resource exhaustion and per-connection aborts: retrying later may work.
TRANSIENT_ERRNOS = frozenset(
    code for code in (
        getattr(errno, "EAGAIN", None),
        getattr(errno, "EWOULDBLOCK", None),
        getattr(errno, "EINTR", None),
        getattr(errno, "EMFILE", None),
        getattr(errno, "ENFILE", None),
        getattr(errno, "ENOBUFS", None),
        getattr(errno, "ENOMEM", None),
        getattr(errno, "ECONNABORTED", None),
        getattr(errno, "EPROTO", None),
    )
    if code is not None
)

# The peer (or we) already tore the stream down.
CLOSED_ERRNOS = frozenset(
    code for code in (
        getattr(errno, "ECONNRESET", None),
        getattr(errno, "EPIPE", None),
        getattr(errno, "ESHUTDOWN", None),
        getattr(errno, "ENOTCONN", None),
        getattr(errno, "EBADF", None),
    )
    if code is not None
)


def classify_os_error(exc: BaseException) -> IOErrorKind:
    """
    Map an exception raised by a socket call to an IOErrorKind.

    Order matters: socket.timeout is a subclass of OSError (and an alias
    of TimeoutError on 3.10+), and the connection errors are OSError
    subclasses too.
    """
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return IOErrorKind.TIMEOUT
    if isinstance(exc, (ConnectionResetError, BrokenPipeError)):
        return IOErrorKind.CLOSED
    if isinstance(exc, OSError):
        # ECONNABORTED (ConnectionAbortedError) lands here: on accept() it
        # means the client gave up while queued, so it is transient.
        if exc.errno in TRANSIENT_ERRNOS:
            return IOErrorKind.TRANSIENT
        if exc.errno in CLOSED_ERRNOS:
            return IOErrorKind.CLOSED
    return IOErrorKind.FATAL


class ConnectionIOError(Exception):
    """
    A read or write on a connection failed.

    Attributes:
        kind: What kind of failure this is (see IOErrorKind).
        cause: The underlying exception, if any. A clean end-of-stream
               has no cause.
    """

    def __init__(self, kind: IOErrorKind, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.kind = kind
        self.cause = cause

    @classmethod
    def from_os_error(cls, exc: BaseException, action: str) -> "ConnectionIOError":
        """Build from a caught socket exception, e.g. action="read"."""
        kind = classify_os_error(exc)
        return cls(kind, f"{action} failed ({kind.value}): {exc}", cause=exc)

    @property
    def is_clean_close(self) -> bool:
        """True for conditions that end a session without an error."""
        return self.kind in (IOErrorKind.CLOSED, IOErrorKind.TIMEOUT)


class ProtocolError(Exception):
    """A request could not be decoded. Reported to the client in-band."""


class FrameTooLargeError(ProtocolError):
    """A text frame grew past the configured limit without a newline."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"Frame too large: {size} bytes (limit {limit})")
        self.size = size
        self.limit = limit


class AcceptRetryExhausted(Exception):
    """The listener hit too many consecutive transient accept failures."""

    def __init__(self, attempts: int, cause: BaseException):
        super().__init__(
            f"Can not establish connection after {attempts} attempts: {cause}"
        )
        self.attempts = attempts
        self.cause = cause
