"""
=============================================================================
CURRENCY SERVER
=============================================================================

Ties the pieces together:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   load_table()  ──►  LookupTable (read-only, built once)            │
    │                                                                      │
    │   SocketServer.start(_handle_connection)                             │
    │        │                                                             │
    │        └── per accepted Connection:                                  │
    │              session = TextSession | JSONSession(conn, table)       │
    │              ThreadPool.submit(session.run)   ← never blocks         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Only two things can stop the process: the endpoint cannot be bound, or
accept() keeps failing past the retry budget. Anything that goes wrong
inside a session stays inside that session.

=============================================================================
"""

import logging
from typing import Optional

from .config import ServerConfig
from .core import SocketServer, Connection, ThreadPool
from .currency.table import LookupTable, load_table
from .log import configure_logging
from .session import create_session


logger = logging.getLogger(__name__)


class CurrencyServer:
    """
    Currency lookup service.

        server = CurrencyServer(ServerConfig(protocol="json"))
        server.run()              # blocks until SIGINT/SIGTERM or stop()

    Args:
        config: Server configuration. Defaults to ServerConfig().
        table: Pre-loaded table. If None, config.data_file (or the bundled
               dataset) is loaded when run() starts.
    """

    def __init__(self, config: Optional[ServerConfig] = None, table: Optional[LookupTable] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self.table = table

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )

        self._running = False

    @property
    def address(self):
        """The bound (host, port) once listening."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self, setup_logging: bool = True):
        """
        Start serving (blocking).

        Raises:
            DatasetError: If the dataset cannot be loaded.
            OSError: If the endpoint cannot be bound.
            AcceptRetryExhausted: If accept() keeps failing.
        """
        if setup_logging:
            configure_logging(self.config.log_level)

        if self.table is None:
            self.table = load_table(self.config.data_file)

        logger.info("*** Global Currency Service ***")
        logger.info(f"Protocol: {self.config.protocol}, {len(self.table)} currencies loaded")

        self._running = True
        self._thread_pool.start()

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def stop(self):
        """Ask the accept loop to stop. run() returns shortly after."""
        self._socket_server.shutdown()

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(wait=False)
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """
        Hand an accepted connection to a new session on the pool.

        Called from the accept loop, so it must return right away.
        """
        session = create_session(self.config.protocol, conn, self.table, self.config)

        submitted = self._thread_pool.submit(session.run, name=conn.id)
        if not submitted:
            logger.warning(f"[{conn.id}] Session pool full, rejecting connection from {conn.peer}")
            conn.close(drain=False)


def create_server(config: Optional[ServerConfig] = None, table: Optional[LookupTable] = None) -> CurrencyServer:
    """Factory for CurrencyServer instances."""
    return CurrencyServer(config, table)
