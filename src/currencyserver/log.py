"""
=============================================================================
LOGGING
=============================================================================

Two kinds of log output:

1. Operational logs. Every module has `logger = logging.getLogger(__name__)`
   and configure_logging() sets them all up once at startup.

2. Session logs. One record per finished session on the
   "currencyserver.sessions" logger, either as a single text line:

       127.0.0.1:51324 [3f2a9c1e] json 4 req 22B in 310B out 12.41s closed_clean

   or as one JSON object per line for log aggregators:

       {"session_id": "3f2a9c1e", "peer": "127.0.0.1:51324", ...}

=============================================================================
"""

import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone


session_logger = logging.getLogger("currencyserver.sessions")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO"):
    """Configure the root logger and the currencyserver logger level."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )

    logging.getLogger("currencyserver").setLevel(numeric_level)


@dataclass
class SessionLog:
    """Summary of one finished session."""

    session_id: str
    peer: str
    protocol: str
    requests: int
    bytes_in: int
    bytes_out: int
    duration_ms: float
    state: str
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        return (
            f"{self.peer} [{self.session_id}] {self.protocol} "
            f"{self.requests} req {self.bytes_in}B in {self.bytes_out}B out "
            f"{self.duration_ms / 1000:.2f}s {self.state}"
        )


def log_session(entry: SessionLog, log_format: str = "text"):
    """Emit a session summary in the configured format."""
    if log_format == "json":
        session_logger.info(json.dumps(entry.to_dict()))
    else:
        session_logger.info(entry.to_text())
