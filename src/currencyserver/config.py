"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the currency service.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m currencyserver -e :5050 --json                   │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── CURRENCY_ENDPOINT=:5050 python -m currencyserver           │
    │                                                                      │
    │   3. Default values (in this dataclass)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Configuration is validated once, at startup, before anything is bound.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional, Tuple


DEFAULT_ENDPOINT = ":4040"

PROTOCOLS = ("text", "json")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


class ConfigError(ValueError):
    """Invalid configuration value."""


def parse_endpoint(endpoint: str) -> Tuple[str, int]:
    """
    Split "host:port" into (host, port).

    An empty host means every interface:

        parse_endpoint(":4040")          → ("0.0.0.0", 4040)
        parse_endpoint("localhost:4040") → ("localhost", 4040)

    Raises:
        ConfigError: If there is no port or it is not a number.
    """
    host, sep, port = endpoint.strip().rpartition(":")
    if not sep:
        raise ConfigError(f"Invalid endpoint {endpoint!r}: expected host:port")
    try:
        port_number = int(port)
    except ValueError:
        raise ConfigError(f"Invalid endpoint {endpoint!r}: port must be a number") from None
    return (host or "0.0.0.0", port_number)


@dataclass
class ServerConfig:
    """
    Configuration for the currency server.

    NETWORK
    - host, port, backlog, chunk_size

    PROTOCOL
    - protocol ("text" or "json"), max_frame_size, idle_timeout

    LISTENER
    - accept_backoff, accept_max_retries

    THREADING
    - min_workers, max_workers, queue_size

    DATA
    - data_file (None = the dataset bundled with the package)

    LOGGING
    - log_level, log_format
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    port: int = 4040

    backlog: int = 128

    chunk_size: int = 4096
    """Bytes requested from the socket per read."""

    # ─────────────────────────────────────────────────────────────────────
    # PROTOCOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    protocol: str = "text"

    max_frame_size: int = 64 * 1024
    """
    Longest text line (or JSON value) accepted before the session is
    dropped. A client that never sends a newline would otherwise grow the
    buffer forever.
    """

    idle_timeout: float = 45.0
    """
    JSON protocol only: seconds allowed between the end of one exchange
    and the arrival of the next complete request.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LISTENER SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    accept_backoff: float = 0.010
    """First sleep after a transient accept failure; doubles each time."""

    accept_max_retries: int = 5

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 256
    """Upper bound on concurrently served sessions."""

    queue_size: int = 100
    """Tasks waiting for a worker while the pool grows."""

    # ─────────────────────────────────────────────────────────────────────
    # DATA
    # ─────────────────────────────────────────────────────────────────────

    data_file: Optional[str] = None

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "text"

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        CURRENCY_ENDPOINT      host:port (default :4040)
        CURRENCY_PROTOCOL      text or json (default text)
        CURRENCY_DATA          dataset CSV path (default: bundled)
        CURRENCY_IDLE_TIMEOUT  JSON idle timeout in seconds (default 45)
        CURRENCY_LOG_LEVEL     logging level (default INFO)
        CURRENCY_LOG_FORMAT    text or json (default text)
        """
        host, port = parse_endpoint(os.getenv("CURRENCY_ENDPOINT", DEFAULT_ENDPOINT))
        try:
            idle_timeout = float(os.getenv("CURRENCY_IDLE_TIMEOUT", "45"))
        except ValueError:
            raise ConfigError("CURRENCY_IDLE_TIMEOUT must be a number") from None
        return cls(
            host=host,
            port=port,
            protocol=os.getenv("CURRENCY_PROTOCOL", "text").lower(),
            data_file=os.getenv("CURRENCY_DATA") or None,
            idle_timeout=idle_timeout,
            log_level=os.getenv("CURRENCY_LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("CURRENCY_LOG_FORMAT", "text").lower(),
        )

    def validate(self) -> None:
        """
        Validate configuration values. Fail fast, before binding.

        Raises:
            ConfigError: On the first invalid value.
        """
        if not 0 <= self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.protocol not in PROTOCOLS:
            raise ConfigError(f"protocol must be one of {', '.join(PROTOCOLS)}")

        if self.chunk_size < 1:
            raise ConfigError("chunk_size must be >= 1")

        if self.max_frame_size < 1:
            raise ConfigError("max_frame_size must be >= 1")

        if self.idle_timeout <= 0:
            raise ConfigError("idle_timeout must be > 0")

        if self.accept_backoff <= 0:
            raise ConfigError("accept_backoff must be > 0")

        if self.accept_max_retries < 0:
            raise ConfigError("accept_max_retries must be >= 0")

        if self.min_workers < 1:
            raise ConfigError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ConfigError("max_workers must be >= min_workers")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}")

        if self.log_format not in LOG_FORMATS:
            raise ConfigError(f"log_format must be one of {', '.join(LOG_FORMATS)}")
