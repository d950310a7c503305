"""
=============================================================================
SESSION STATE MACHINE
=============================================================================

A session is the lifetime of one accepted connection:

    ┌──────────────────┐  request decoded   ┌─────────────┐
    │ AWAITING_REQUEST │ ─────────────────► │ DISPATCHING │
    └──────────────────┘                    └──────┬──────┘
             ▲                                     │ find(table, query)
             │ response written             ┌──────▼──────┐
             └───────────────────────────── │ RESPONDING  │
                                            └─────────────┘

    any state ── EOF / reset / deadline ──► CLOSED_CLEAN
    any state ── other I/O failure ───────► CLOSED_ERROR

Requests on one connection are handled strictly one after another: the
next request is not read until the previous response has been written.

The lookup runs synchronously against the shared LookupTable. It is a
pure in-memory scan, so it is never a suspension point.

Subclasses implement serve(). run() owns everything around it: turning
exceptions into a terminal state, closing the socket on every path, and
writing the session log line.

=============================================================================
"""

import logging
import time
from enum import Enum
from typing import Callable, List, Optional

from ..config import ServerConfig
from ..core.connection import Connection
from ..core.errors import ConnectionIOError, FrameTooLargeError, IOErrorKind
from ..currency.model import Currency
from ..currency.table import LookupTable, find
from ..log import SessionLog, log_session


logger = logging.getLogger(__name__)


class SessionState(Enum):
    AWAITING_REQUEST = "awaiting_request"
    DISPATCHING = "dispatching"
    RESPONDING = "responding"
    CLOSED_CLEAN = "closed_clean"
    CLOSED_ERROR = "closed_error"


TERMINAL_STATES = frozenset((SessionState.CLOSED_CLEAN, SessionState.CLOSED_ERROR))


class SessionError(Exception):
    """The session cannot continue; it ends in CLOSED_ERROR."""


Finder = Callable[[LookupTable, str], List[Currency]]


class Session:
    """
    Base class for one connection's request/response loop.

    Args:
        conn: The accepted connection. The session owns it and closes it.
        table: Read-only currency table shared with every other session.
        config: Server configuration (frame limits, idle timeout, log format).
        finder: Search function, find(table, query) by default.
    """

    protocol = "base"

    def __init__(
        self,
        conn: Connection,
        table: LookupTable,
        config: Optional[ServerConfig] = None,
        finder: Finder = find,
    ):
        self.conn = conn
        self.table = table
        self.config = config or ServerConfig()
        self._finder = finder

        self.state = SessionState.AWAITING_REQUEST
        self.close_reason = ""

    @property
    def id(self) -> str:
        return self.conn.id

    @property
    def is_closed(self) -> bool:
        return self.state in TERMINAL_STATES

    def serve(self):
        """The request/response loop. Returns when the client is done."""
        raise NotImplementedError

    def run(self) -> SessionState:
        """
        Serve the connection to completion. Never raises.

        Returns:
            The terminal state, CLOSED_CLEAN or CLOSED_ERROR.
        """
        started = time.time()

        with self.conn:
            try:
                self.serve()
                self._close(SessionState.CLOSED_CLEAN, "client disconnected")
            except ConnectionIOError as e:
                if e.kind == IOErrorKind.TIMEOUT:
                    logger.info(f"[{self.id}] Deadline reached, disconnecting...")
                    self._close(SessionState.CLOSED_CLEAN, "deadline reached")
                elif e.kind == IOErrorKind.CLOSED:
                    logger.debug(f"[{self.id}] Closing connection: {e}")
                    self._close(SessionState.CLOSED_CLEAN, "client disconnected")
                else:
                    logger.warning(f"[{self.id}] {e}")
                    self._close(SessionState.CLOSED_ERROR, str(e))
            except (FrameTooLargeError, SessionError) as e:
                logger.warning(f"[{self.id}] {e}")
                self._close(SessionState.CLOSED_ERROR, str(e))
            except Exception as e:
                logger.exception(f"[{self.id}] Session error: {e}")
                self._close(SessionState.CLOSED_ERROR, str(e))

        log_session(
            SessionLog(
                session_id=self.id,
                peer=self.conn.peer,
                protocol=self.protocol,
                requests=self.conn.requests_handled,
                bytes_in=self.conn.bytes_received,
                bytes_out=self.conn.bytes_sent,
                duration_ms=(time.time() - started) * 1000,
                state=self.state.value,
            ),
            self.config.log_format,
        )
        return self.state

    def _close(self, state: SessionState, reason: str):
        self.state = state
        self.close_reason = reason

    # =========================================================================
    # HELPERS FOR SUBCLASSES
    # =========================================================================

    def lookup(self, query: str) -> List[Currency]:
        """AWAITING_REQUEST → DISPATCHING: run the search."""
        self.state = SessionState.DISPATCHING
        results = self._finder(self.table, query)
        logger.debug(f"[{self.id}] {query!r} matched {len(results)} currencies")
        return results

    def respond(self, payload: bytes):
        """
        DISPATCHING → RESPONDING → AWAITING_REQUEST.

        A failed write raises ConnectionIOError and ends the session; the
        remaining lines of a response are never silently dropped.
        """
        self.state = SessionState.RESPONDING
        self.conn.send(payload)
        self.conn.requests_handled += 1
        self.state = SessionState.AWAITING_REQUEST
