"""
=============================================================================
TEXT PROTOCOL CODEC
=============================================================================

Request line (one frame):

    GET <currency, country, or code>
    GET "Costa Rica"            ← quotes allow spaces
    get 'costa rica'            ← command is case-insensitive

Responses:

    US Dollar USD 840 United States\n     one line per match
    Nothing found\n                      zero matches
    Invalid command\n                    anything that is not GET <param>

Tokenizing follows one rule: a quoted span ('...' or "...") is one token,
everything else splits on whitespace. A request line must come out as
exactly two tokens.

=============================================================================
"""

import re
from dataclasses import dataclass
from typing import Callable, Iterable, List

from ..currency.model import Currency


BANNER = b"Connected...\nUsage: GET <currency, country, or code>\n"
INVALID_COMMAND = b"Invalid command\n"
NOTHING_FOUND = b"Nothing found\n"

GET = "GET"

# Quoted spans are greedy: everything between the first and the last quote
# of the same kind is one token. Only ASCII whitespace separates tokens.
_TOKEN_RE = re.compile(r"""'.+'|".+"|\S+""", re.ASCII)

_QUOTES = ("'", '"')


@dataclass(frozen=True)
class Command:
    """
    A parsed request line. An empty name means the line was not a command.
    """
    name: str = ""
    param: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.name


EMPTY_COMMAND = Command()


def tokenize(line: str) -> List[str]:
    return _TOKEN_RE.findall(line)


def strip_quotes(token: str) -> str:
    """Remove ONE matching pair of surrounding quotes, if present."""
    if len(token) >= 2 and token[0] in _QUOTES and token[-1] == token[0]:
        return token[1:-1]
    return token


def parse_command_line(line: str) -> Command:
    """
    Split a request line into (command, parameter).

    Never raises: a line that does not tokenize into exactly two tokens
    gives EMPTY_COMMAND.
    """
    tokens = tokenize(line)
    if len(tokens) != 2:
        return EMPTY_COMMAND
    return Command(name=tokens[0].strip(), param=strip_quotes(tokens[1].strip()))


def format_currency(currency: Currency) -> bytes:
    return (currency.to_line() + "\n").encode("utf-8")


def format_results(results: Iterable[Currency]) -> bytes:
    """All matches, one line each, or the "Nothing found" line."""
    payload = b"".join(format_currency(cur) for cur in results)
    return payload or NOTHING_FOUND


def respond_to_line(line: str, lookup: Callable[[str], List[Currency]]) -> bytes:
    """
    Produce the full response for one request line.

    Args:
        line: The decoded frame.
        lookup: Search function, called only for a valid GET.
    """
    command = parse_command_line(line)
    if command.is_empty or command.name.upper() != GET:
        return INVALID_COMMAND
    return format_results(lookup(command.param))
