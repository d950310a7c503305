"""
Wire protocols.

    framing      newline framing over a chunked byte stream
    text         GET <param> requests, one line per result
    json_codec   one JSON value per request, JSON array responses
"""

from .framing import Frame, FrameReader
from .text import (
    BANNER,
    INVALID_COMMAND,
    NOTHING_FOUND,
    Command,
    parse_command_line,
    respond_to_line,
)
from .json_codec import (
    JSONStreamDecoder,
    encode_error,
    encode_request,
    encode_results,
)

__all__ = [
    "Frame",
    "FrameReader",
    "BANNER",
    "INVALID_COMMAND",
    "NOTHING_FOUND",
    "Command",
    "parse_command_line",
    "respond_to_line",
    "JSONStreamDecoder",
    "encode_error",
    "encode_request",
    "encode_results",
]
