"""
=============================================================================
FRAME READER (text protocol)
=============================================================================

Turns the chunked byte stream of a connection into newline-terminated
frames, whatever the chunk sizes happen to be:

    chunks from recv():   "GE" "T U" "SD\nGET E" "UR\n"
                            │
                            ▼
    buffer:               "GET USD\nGET E"
                                   ▲
                          first "\n" → frame "GET USD"
                          leftover  "GET E" stays in the buffer
                            │
                            ▼
    next read_frame():    "GET EUR"  (after "UR\n" arrives)

The delimiter is consumed and never part of the frame. Bytes that arrive
after the delimiter in the same chunk are KEPT and become the start of the
next frame; nothing a client sends is thrown away.

End of stream:

    "GET US" then EOF  → Frame(b"GET US", eof=True)   partial, not a command
    EOF on empty buffer → Frame(b"", eof=True)

=============================================================================
"""

from dataclasses import dataclass
from typing import Protocol

from ..core.errors import ConnectionIOError, FrameTooLargeError, IOErrorKind


class ChunkSource(Protocol):
    """Anything that hands out byte chunks, Connection being the real one."""

    def recv_chunk(self) -> bytes:
        ...


@dataclass(frozen=True)
class Frame:
    """
    One unit read off the stream.

    Attributes:
        data: Frame bytes without the delimiter.
        eof: True when the stream ended before a delimiter was seen; `data`
             then holds whatever partial bytes had been accumulated.
    """
    data: bytes
    eof: bool = False

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


class FrameReader:
    """
    Newline framing over a ChunkSource.

        reader = FrameReader(conn)
        while True:
            frame = reader.read_frame()
            if frame.eof:
                break
            handle(frame.text)
    """

    def __init__(self, source: ChunkSource, delimiter: bytes = b"\n", max_frame_size: int = 64 * 1024):
        if not delimiter:
            raise ValueError("delimiter must not be empty")
        self.source = source
        self.delimiter = delimiter
        self.max_frame_size = max_frame_size

        self._buffer = bytearray()
        # Bytes already searched for the delimiter, so each byte is
        # scanned once even when a frame spans many chunks.
        self._scanned = 0

    @property
    def buffered(self) -> int:
        """Bytes received but not yet returned in a frame."""
        return len(self._buffer)

    def read_frame(self) -> Frame:
        """
        Return the next complete frame, reading from the source as needed.

        Raises:
            FrameTooLargeError: If more than max_frame_size bytes pile up
                without a delimiter.
            ConnectionIOError: Any read failure other than end-of-stream.
        """
        while True:
            frame = self._take_frame()
            if frame is not None:
                return frame

            if len(self._buffer) > self.max_frame_size:
                size = len(self._buffer)
                self._buffer.clear()
                self._scanned = 0
                raise FrameTooLargeError(size, self.max_frame_size)

            try:
                chunk = self.source.recv_chunk()
            except ConnectionIOError as e:
                if e.kind != IOErrorKind.CLOSED:
                    raise
                partial = bytes(self._buffer)
                self._buffer.clear()
                self._scanned = 0
                return Frame(partial, eof=True)

            self._buffer += chunk

    def _take_frame(self):
        start = max(0, self._scanned - len(self.delimiter) + 1)
        index = self._buffer.find(self.delimiter, start)
        if index < 0:
            self._scanned = len(self._buffer)
            return None

        data = bytes(self._buffer[:index])
        del self._buffer[:index + len(self.delimiter)]
        self._scanned = 0
        return Frame(data)
