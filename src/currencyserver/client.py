"""
JSON protocol client.

    with CurrencyClient("localhost:4040") as client:
        client.lookup("usd")     # [Currency(name='US Dollar', ...), ...]
        client.lookup("*")       # everything

Run as a program for an interactive prompt:

    currency-client -e localhost:4040
    currency> euro
"""

import argparse
import logging
import socket
import sys
import time
from typing import Callable, List, Optional

from .config import ConfigError, parse_endpoint
from .core.connection import Connection
from .core.errors import ConnectionIOError, IOErrorKind, ProtocolError, classify_os_error
from .currency.model import Currency
from .protocol.json_codec import JSONStreamDecoder, decode_results, encode_request


logger = logging.getLogger(__name__)


class ServerError(Exception):
    """The server answered with {"Error": ...}."""


class CurrencyClient:
    """
    One persistent connection to a JSON-protocol currency server.

    Args:
        endpoint: "host:port".
        timeout: Connect and per-response timeout in seconds.
        max_retries: Connect attempts on transient failures.
        retry_delay: Sleep between connect attempts.
    """

    def __init__(
        self,
        endpoint: str = "localhost:4040",
        timeout: Optional[float] = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.host, self.port = parse_endpoint(endpoint)
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep

        self._conn: Optional[Connection] = None
        self._decoder: Optional[JSONStreamDecoder] = None

    @property
    def connected(self) -> bool:
        return self._conn is not None and not self._conn.is_closed

    def connect(self):
        """
        Open the connection, retrying transient failures.

        Raises:
            OSError: If every attempt failed, or on a non-transient error.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
                break
            except OSError as e:
                kind = classify_os_error(e)
                retryable = kind in (IOErrorKind.TRANSIENT, IOErrorKind.TIMEOUT) or isinstance(
                    e, ConnectionRefusedError
                )
                if not retryable or attempt >= self.max_retries:
                    raise
                logger.info(f"Failed to connect to {self.host}:{self.port}, trying again in {self.retry_delay}s")
                self._sleep(self.retry_delay)

        self._conn = Connection(socket=sock, address=(self.host, self.port))
        self._decoder = JSONStreamDecoder(self._conn)
        logger.debug(f"Connected to currency service {self.host}:{self.port}")

    def lookup(self, query: str) -> List[Currency]:
        """
        Send {"Get": query} and wait for the answer.

        Raises:
            ServerError: The server reported an error for this request.
            ProtocolError: The response was not a currency array.
            ConnectionIOError: The connection failed or was closed.
        """
        if not self.connected:
            self.connect()

        self._conn.set_deadline(self.timeout)
        self._conn.send(encode_request(query))
        response = self._decoder.decode()

        if isinstance(response, dict) and "Error" in response:
            raise ServerError(str(response["Error"]))
        return decode_results(response)

    def close(self):
        if self._conn is not None:
            self._conn.close()
        self._conn = None
        self._decoder = None

    def __enter__(self):
        if not self.connected:
            self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def format_currency(cur: Currency) -> str:
    return f"{cur.code:<4} {cur.number:>4}  {cur.name}, {cur.country}"


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="currency-client", description="Currency lookup client (JSON protocol)")
    parser.add_argument("-e", "--endpoint", default="localhost:4040", help="service endpoint host:port")
    args = parser.parse_args(argv)

    try:
        client = CurrencyClient(args.endpoint)
        client.connect()
    except (ConfigError, OSError) as e:
        print(f"failed to connect to {args.endpoint}: {e}", file=sys.stderr)
        return 1

    print(f"connected to currency service: {args.endpoint}")
    with client:
        while True:
            try:
                query = input("currency> ").strip()
            except (EOFError, KeyboardInterrupt):
                print()
                return 0

            if not query:
                print("Usage: <search string or *>")
                continue

            try:
                results = client.lookup(query)
            except ServerError as e:
                print(f"server error: {e}")
                continue
            except ProtocolError as e:
                print(f"failed to decode response: {e}")
                continue
            except ConnectionIOError as e:
                if e.kind == IOErrorKind.CLOSED:
                    print("server closed the connection", file=sys.stderr)
                else:
                    print(f"failed to receive response: {e}", file=sys.stderr)
                return 1

            if not results:
                print("Nothing found")
            for cur in results:
                print(format_currency(cur))


if __name__ == "__main__":
    sys.exit(main())
