"""
=============================================================================
CORE NETWORKING
=============================================================================

    socket_server   listening socket, accept loop, accept backoff
    connection      one client socket: chunked reads, deadlines, close
    thread_pool     worker threads that run sessions
    errors          IOErrorKind and the exception types built on it

Thread-per-session: each accepted connection is served start to finish
by one worker thread. Sessions share nothing except the read-only
currency table.

=============================================================================
"""

from .socket_server import SocketServer, AcceptBackoff
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool
from .errors import (
    IOErrorKind,
    ConnectionIOError,
    ProtocolError,
    FrameTooLargeError,
    AcceptRetryExhausted,
    classify_os_error,
)

__all__ = [
    "SocketServer",
    "AcceptBackoff",
    "Connection",
    "ConnectionState",
    "ThreadPool",
    "IOErrorKind",
    "ConnectionIOError",
    "ProtocolError",
    "FrameTooLargeError",
    "AcceptRetryExhausted",
    "classify_os_error",
]
