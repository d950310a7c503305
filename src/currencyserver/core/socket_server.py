"""
=============================================================================
TCP LISTENER
=============================================================================

The listener owns the listening socket and runs the accept loop:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Accept Loop                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   while running:                                                     │
    │       accept()                                                       │
    │         │                                                            │
    │         ├── ok ─────────► backoff.reset()                           │
    │         │                 wrap in Connection                         │
    │         │                 handler(conn)   ← returns immediately      │
    │         │                                                            │
    │         ├── socket.timeout ► poll the running flag, loop             │
    │         │                                                            │
    │         ├── TRANSIENT ──► sleep(backoff.next_delay())               │
    │         │                 10ms, 20ms, 40ms, 80ms, 160ms, then FATAL  │
    │         │                                                            │
    │         └── other ──────► log, keep accepting (no retry counted)     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
TRANSIENT ACCEPT FAILURES
=============================================================================

accept() can fail for reasons that have nothing to do with the listener
itself. The classic one is EMFILE: the process ran out of file
descriptors because too many sessions are open. Retrying immediately
just spins the CPU, so we sleep, doubling the delay each time. A
successful accept proves the pressure is gone and resets the delay.

If the failures keep coming past the retry budget, something is badly
wrong and AcceptRetryExhausted is raised out of start(). The CLI turns
that into a non-zero exit.

=============================================================================
SIGNALS
=============================================================================

SIGINT (Ctrl+C) and SIGTERM (docker stop, systemd) stop the loop. Python
only lets the main thread install signal handlers, so a listener running
in a background thread (tests, embedding) skips that step.

=============================================================================
"""

import errno
import socket
import signal
import logging
import threading
import time
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection
from .errors import AcceptRetryExhausted, IOErrorKind, classify_os_error


logger = logging.getLogger(__name__)

# accept() on a listener that was closed or never listened.
LISTENER_GONE_ERRNOS = frozenset((errno.EBADF, errno.EINVAL, errno.ENOTSOCK))


class AcceptBackoff:
    """
    Exponential backoff for consecutive transient accept failures.

        backoff = AcceptBackoff(base_delay=0.01, max_retries=5)
        backoff.next_delay()   # 0.01
        backoff.next_delay()   # 0.02
        ...
        backoff.next_delay()   # 6th in a row → raises AcceptRetryExhausted
        backoff.reset()        # after a successful accept
    """

    def __init__(self, base_delay: float = 0.01, max_retries: int = 5):
        self.base_delay = base_delay
        self.max_retries = max_retries
        self.failures = 0
        self.delay = base_delay

    def next_delay(self, cause: Optional[BaseException] = None) -> float:
        """
        Record one more transient failure and return how long to sleep.

        Raises:
            AcceptRetryExhausted: once max_retries failures have already
                been absorbed.
        """
        if self.failures >= self.max_retries:
            raise AcceptRetryExhausted(self.failures + 1, cause)

        if self.failures == 0:
            self.delay = self.base_delay
        else:
            self.delay *= 2
        self.failures += 1
        return self.delay

    def reset(self):
        self.failures = 0
        self.delay = self.base_delay


class SocketServer:
    """
    Low-level TCP listener.

    Usage:
        def handle_connection(conn: Connection):
            pool.submit(Session(conn, table).run)   # must not block

        server = SocketServer(config)
        server.start(handle_connection)   # blocks until shutdown()
    """

    def __init__(self, config: ServerConfig, sleep: Callable[[float], None] = time.sleep):
        """
        Args:
            config: Server configuration (endpoint, backlog, backoff).
            sleep: Used for accept backoff. Swappable in tests.
        """
        self.config = config
        self._sleep = sleep

        self._socket: Optional[socket.socket] = None
        self._running = False

        self._ready_event = threading.Event()

        self._original_handlers: dict = {}

        self.backoff = AcceptBackoff(
            base_delay=config.accept_backoff,
            max_retries=config.accept_max_retries,
        )

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (ip, port). With port 0 this is the port the OS picked."""
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Restart without waiting out TIME_WAIT.
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Responses are small; send them right away.
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up every second so shutdown() is noticed.
        sock.settimeout(1.0)

        return sock

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Bind, listen and accept connections. Blocks until shutdown().

        Raises:
            OSError: If the endpoint cannot be bound.
            AcceptRetryExhausted: If transient accept failures exceed the
                retry budget.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
            self._socket.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._running = True
        self._setup_signals()

        host, port = self.address
        logger.info(f"Service started: (tcp) {host}:{port}")
        self._ready_event.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._running:
                    break  # Listening socket closed by shutdown()
                if not self._handle_accept_error(e):
                    break
                continue

            self.backoff.reset()

            conn = Connection(
                socket=client_socket,
                address=client_address,
                chunk_size=self.config.chunk_size,
            )
            logger.info(f"[{conn.id}] Connected to {conn.peer}")

            try:
                connection_handler(conn)
            except Exception as e:
                logger.exception(f"[{conn.id}] Failed to start session: {e}")
                conn.close(drain=False)

    def _handle_accept_error(self, error: OSError) -> bool:
        """
        React to a failed accept().

        Returns:
            False if the listening socket itself is gone and the loop
            must stop, True to keep accepting.
        """
        kind = classify_os_error(error)

        if kind == IOErrorKind.TRANSIENT:
            try:
                delay = self.backoff.next_delay(error)
            except AcceptRetryExhausted as fatal:
                logger.critical(str(fatal))
                raise
            logger.warning(
                f"Accept error (attempt {self.backoff.failures}/{self.backoff.max_retries}): "
                f"{error}; retrying in {delay * 1000:.0f}ms"
            )
            self._sleep(delay)
            return True

        if error.errno in LISTENER_GONE_ERRNOS:
            logger.error(f"Listening socket unusable: {error}")
            return False

        # Nothing was accepted, so there is no client handle to close here.
        logger.error(f"Accept error: {error}")
        return True

    def shutdown(self):
        """Stop the accept loop. Safe to call more than once, from any thread."""
        if self._running:
            logger.info("Shutting down listener...")
        self._running = False

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._running = False
        self._ready_event.clear()
        logger.info("Listener stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening."""
        return self._ready_event.wait(timeout)
