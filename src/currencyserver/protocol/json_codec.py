"""
=============================================================================
JSON PROTOCOL CODEC
=============================================================================

The JSON protocol has no delimiter. A request is simply the next complete
JSON value on the stream:

    {"Get":"usd"}{"Get": "euro"}
    {
      "Get": "*"
    }

JSONStreamDecoder finds where one value ends by scanning the buffered
bytes, tracking strings (and their escapes) and bracket depth:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  first non-space byte     value ends                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │  { or [                   at the bracket that brings depth to 0      │
    │  "                        at the closing unescaped quote             │
    │  anything else            before the next space or structural byte   │
    └─────────────────────────────────────────────────────────────────────┘

Only then are the bytes handed to json.loads(). If that fails, the bad
value has still been consumed, so the next decode() starts cleanly after
it and the session can carry on.

Responses are written as one compact JSON value followed by "\n":

    [{"Name":"US Dollar","Code":"USD","Number":"840","Country":"United States"}]
    []
    {"Error":"request is missing the \\"Get\\" field"}

=============================================================================
"""

import json
from typing import Any, Iterable, Optional

from ..core.errors import FrameTooLargeError, ProtocolError
from ..currency.model import Currency, CurrencyError, CurrencyRequest
from .framing import ChunkSource


_WHITESPACE = b" \t\r\n"
_OPENERS = b"{["
_CLOSERS = b"}]"
_STRUCTURAL = b'{}[],:"'
_QUOTE = 0x22
_BACKSLASH = 0x5C
_BOM = b"\xef\xbb\xbf"


def find_value_end(buf: bytes, start: int) -> Optional[int]:
    """
    Index just past the JSON value that starts at buf[start].

    Returns None if the value is not complete yet. The bytes are not
    validated here; a complete-looking value may still fail json.loads().
    """
    first = buf[start]

    if first in _OPENERS:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(buf)):
            byte = buf[i]
            if in_string:
                if escaped:
                    escaped = False
                elif byte == _BACKSLASH:
                    escaped = True
                elif byte == _QUOTE:
                    in_string = False
                continue
            if byte == _QUOTE:
                in_string = True
            elif byte in _OPENERS:
                depth += 1
            elif byte in _CLOSERS:
                depth -= 1
                if depth == 0:
                    return i + 1
        return None

    if first == _QUOTE:
        escaped = False
        for i in range(start + 1, len(buf)):
            byte = buf[i]
            if escaped:
                escaped = False
            elif byte == _BACKSLASH:
                escaped = True
            elif byte == _QUOTE:
                return i + 1
        return None

    # Stray closer or separator: a one-byte (invalid) value.
    if first in _STRUCTURAL:
        return start + 1

    # Number, true/false/null, or junk: runs to the next delimiter.
    for i in range(start + 1, len(buf)):
        if buf[i] in _WHITESPACE or buf[i] in _STRUCTURAL:
            return i
    return None


class JSONStreamDecoder:
    """
    Decode one JSON value per call from a ChunkSource.

        decoder = JSONStreamDecoder(conn)
        request = decoder.decode_request()   # CurrencyRequest

    Errors:
        ProtocolError       the value was not valid JSON, or not a request
        FrameTooLargeError  max_value_size bytes without a complete value
        ConnectionIOError   from the source (CLOSED, TIMEOUT, ...)
    """

    def __init__(self, source: ChunkSource, max_value_size: int = 64 * 1024):
        self.source = source
        self.max_value_size = max_value_size
        self._buffer = bytearray()

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def decode(self) -> Any:
        """Read and return the next JSON value from the stream."""
        while True:
            raw = self._take_value()
            if raw is not None:
                return self._loads(raw)

            if len(self._buffer) > self.max_value_size:
                size = len(self._buffer)
                self._buffer.clear()
                raise FrameTooLargeError(size, self.max_value_size)

            self._buffer += self.source.recv_chunk()

    def decode_request(self) -> CurrencyRequest:
        value = self.decode()
        try:
            return CurrencyRequest.from_dict(value)
        except ValueError as e:
            raise ProtocolError(str(e)) from e

    def _take_value(self) -> Optional[bytes]:
        start = 0
        if self._buffer.startswith(_BOM):
            start = len(_BOM)
        while start < len(self._buffer) and self._buffer[start] in _WHITESPACE:
            start += 1

        if start:
            del self._buffer[:start]
        if not self._buffer:
            return None

        end = find_value_end(self._buffer, 0)
        if end is None:
            return None

        raw = bytes(self._buffer[:end])
        del self._buffer[:end]
        return raw

    @staticmethod
    def _loads(raw: bytes) -> Any:
        try:
            return json.loads(raw.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise ProtocolError(f"invalid UTF-8 in request: {e}") from e
        except ValueError as e:
            raise ProtocolError(f"invalid JSON: {e}") from e
        except RecursionError as e:
            raise ProtocolError("invalid JSON: exceeded max depth") from e


def encode_value(value: Any) -> bytes:
    """
    Serialize one response value.

    Raises:
        TypeError, ValueError: If the value is not JSON serializable.
    """
    text = json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    return (text + "\n").encode("utf-8")


def encode_results(results: Iterable[Currency]) -> bytes:
    """A result set, possibly empty, as a JSON array."""
    return encode_value([cur.to_dict() for cur in results])


def encode_error(message: str) -> bytes:
    return encode_value(CurrencyError(message).to_dict())


def encode_request(query: str) -> bytes:
    return encode_value(CurrencyRequest(query).to_dict())


def decode_results(value: Any) -> list:
    """
    Client side: turn a decoded response into Currency records.

    Raises:
        ProtocolError: If the value is neither an array of currencies nor
            an error object (the caller checks for errors first).
    """
    if not isinstance(value, list):
        raise ProtocolError("response must be a JSON array")
    try:
        return [Currency.from_dict(item) for item in value]
    except ValueError as e:
        raise ProtocolError(str(e)) from e
