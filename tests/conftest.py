"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from typing import Generator, List, Optional

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from currencyserver import CurrencyServer, ServerConfig
from currencyserver.core import Connection, ConnectionIOError, IOErrorKind
from currencyserver.currency import Currency, LookupTable


@pytest.fixture
def usd() -> Currency:
    return Currency("US Dollar", "USD", "840", "United States")


@pytest.fixture
def sample_table(usd: Currency) -> LookupTable:
    """Small table with one record per interesting case."""
    return LookupTable([
        usd,
        Currency("Euro", "EUR", "978", "Germany"),
        Currency("Costa Rican Colon", "CRC", "188", "Costa Rica"),
        Currency("Yen", "JPY", "392", "Japan"),
        Currency("Canadian Dollar", "CAD", "124", "Canada"),
    ])


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class ChunkedSource:
    """
    Stand-in for a Connection: hands out pre-cut chunks, then reports
    end-of-stream the way Connection does.
    """

    def __init__(self, data: bytes = b"", chunk_size: int = 4096, chunks: Optional[List[bytes]] = None):
        if chunks is None:
            chunks = [data[i:i + chunk_size] for i in range(0, len(data), chunk_size)]
        self.chunks = list(chunks)
        self.reads = 0

    def recv_chunk(self) -> bytes:
        self.reads += 1
        if not self.chunks:
            raise ConnectionIOError(IOErrorKind.CLOSED, "read failed: peer closed the connection")
        return self.chunks.pop(0)


@pytest.fixture
def chunked_source():
    """Factory for ChunkedSource."""
    return ChunkedSource


class SessionHarness:
    """
    Runs one session on the server half of a socketpair, in a thread, and
    gives the test the client half.
    """

    def __init__(self, session_cls, table: LookupTable, config: ServerConfig, **session_kwargs):
        self.client, server_sock = socket.socketpair()
        self.client.settimeout(5.0)
        self.conn = Connection(socket=server_sock, address=("127.0.0.1", 50000), chunk_size=config.chunk_size)
        self.session = session_cls(self.conn, table, config, **session_kwargs)
        self.result = None
        self._buffer = b""
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self):
        self.result = self.session.run()

    def send(self, data: bytes):
        self.client.sendall(data)

    def read_line(self) -> bytes:
        """Next line from the server, without the newline. b"" at EOF."""
        while b"\n" not in self._buffer:
            chunk = self.client.recv(4096)
            if not chunk:
                line, self._buffer = self._buffer, b""
                return line
            self._buffer += chunk
        line, self._buffer = self._buffer.split(b"\n", 1)
        return line

    def read_all(self) -> bytes:
        """Everything until the server closes."""
        data, self._buffer = self._buffer, b""
        while True:
            chunk = self.client.recv(4096)
            if not chunk:
                return data
            data += chunk

    def close_client(self):
        self.client.close()

    def wait(self, timeout: float = 5.0):
        self._thread.join(timeout)
        assert not self._thread.is_alive(), "session did not finish"
        return self.result


@pytest.fixture
def session_harness(sample_table: LookupTable) -> Generator:
    """Factory: session_harness(TextSession, config=..., finder=...)."""
    harnesses = []

    def factory(session_cls, config: Optional[ServerConfig] = None, table: Optional[LookupTable] = None, **session_kwargs):
        harness = SessionHarness(
            session_cls,
            table if table is not None else sample_table,
            config or ServerConfig(),
            **session_kwargs,
        )
        harnesses.append(harness)
        return harness

    yield factory

    for harness in harnesses:
        harness.client.close()


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False

    def __init__(self, server: CurrencyServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self):
        return self.server.address

    def start(self):
        self._thread = threading.Thread(
            target=self.server.run,
            kwargs={"setup_logging": False},
            daemon=True,
        )
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def connect(self) -> socket.socket:
        sock = socket.create_connection(self.address, timeout=5.0)
        return sock

    def stop(self):
        self.server.stop()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


def _running_server(protocol: str, table: LookupTable, port: int) -> TestServer:
    server = CurrencyServer(
        ServerConfig(
            host="127.0.0.1",
            port=port,
            protocol=protocol,
            min_workers=2,
            max_workers=8,
            idle_timeout=5.0,
            log_level="WARNING",
        ),
        table=table,
    )
    test_srv = TestServer(server)
    test_srv.start()
    return test_srv


@pytest.fixture
def text_server(sample_table: LookupTable, free_port: int) -> Generator[TestServer, None, None]:
    test_srv = _running_server("text", sample_table, free_port)
    yield test_srv
    test_srv.stop()


@pytest.fixture
def json_server(sample_table: LookupTable, free_port: int) -> Generator[TestServer, None, None]:
    test_srv = _running_server("json", sample_table, free_port)
    yield test_srv
    test_srv.stop()


def recv_until(sock: socket.socket, marker: bytes, timeout: float = 5.0) -> bytes:
    """Read from sock until `marker` has been seen (or EOF)."""
    deadline = time.time() + timeout
    data = b""
    while marker not in data and time.time() < deadline:
        chunk = sock.recv(4096)
        if not chunk:
            break
        data += chunk
    return data


@pytest.fixture
def read_until():
    return recv_until
