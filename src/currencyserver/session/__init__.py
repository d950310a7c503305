"""
Per-connection sessions, one class per wire protocol.
"""

from typing import Optional

from ..config import ServerConfig
from ..core.connection import Connection
from ..currency.table import LookupTable
from .base import Session, SessionState, SessionError, TERMINAL_STATES
from .text import TextSession
from .json_session import JSONSession


SESSION_TYPES = {
    TextSession.protocol: TextSession,
    JSONSession.protocol: JSONSession,
}


def create_session(
    protocol: str,
    conn: Connection,
    table: LookupTable,
    config: Optional[ServerConfig] = None,
) -> Session:
    """
    Build the session for `protocol` ("text" or "json").

    Raises:
        ValueError: If the protocol is unknown.
    """
    try:
        session_type = SESSION_TYPES[protocol]
    except KeyError:
        raise ValueError(f"Unknown protocol: {protocol!r}") from None
    return session_type(conn, table, config)


__all__ = [
    "Session",
    "SessionState",
    "SessionError",
    "TERMINAL_STATES",
    "TextSession",
    "JSONSession",
    "SESSION_TYPES",
    "create_session",
]
