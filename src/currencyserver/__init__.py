"""
=============================================================================
CURRENCYSERVER - GLOBAL CURRENCY LOOKUP SERVICE
=============================================================================

A TCP service that answers currency lookups over a persistent connection,
in one of two wire encodings:

    TEXT                                 JSON
    ────                                 ────
    > GET "Costa Rica"                   > {"Get":"usd"}
    < Costa Rican Colon CRC 188 ...      < [{"Name":"US Dollar",...}]
    > GET zzz                            > {"Get":"zzz"}
    < Nothing found                      < []
    > HELLO                              > {"Get":
    < Invalid command                    <   (waits for the rest)

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          PACKAGE LAYOUT                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   currencyserver/                                                    │
    │   ├── server.py        CurrencyServer: table + listener + pool      │
    │   ├── config.py        ServerConfig, endpoint parsing               │
    │   ├── log.py           logging setup, per-session log records       │
    │   ├── client.py        JSON protocol client + interactive prompt    │
    │   ├── core/            listener, connection, thread pool, errors    │
    │   ├── protocol/        frame reader, text codec, JSON codec         │
    │   ├── session/         per-connection state machines                │
    │   └── currency/        Currency records, LookupTable, find()        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

QUICK START:

    from currencyserver import CurrencyServer, ServerConfig

    CurrencyServer(ServerConfig(port=4040, protocol="json")).run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig, ConfigError, parse_endpoint
from .server import CurrencyServer, create_server
from .currency import Currency, CurrencyRequest, CurrencyError, LookupTable, DatasetError, find, load_table
from .session import Session, SessionState, TextSession, JSONSession, create_session

__all__ = [
    "__version__",
    "ServerConfig",
    "ConfigError",
    "parse_endpoint",
    "CurrencyServer",
    "create_server",
    "Currency",
    "CurrencyRequest",
    "CurrencyError",
    "LookupTable",
    "DatasetError",
    "find",
    "load_table",
    "Session",
    "SessionState",
    "TextSession",
    "JSONSession",
    "create_session",
]
