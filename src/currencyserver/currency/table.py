"""
=============================================================================
LOOKUP TABLE
=============================================================================

The currency table is loaded ONCE, before the listener starts, and is never
written again. Every session reads it concurrently without a lock. That
only works because LookupTable is a thin wrapper around a tuple of frozen
Currency records: there is nothing to mutate.

The table is handed to each session when it is built. Nothing in the
server reaches for a module-level global.

=============================================================================
DATASET FORMAT
=============================================================================

    Name,Code,Number,Country               ← optional header row
    US Dollar,USD,840,United States
    Euro,EUR,978,Germany
    Won,KRW,410,"Korea, Republic of"       ← standard CSV quoting

Blank lines are skipped. Any other row that does not have exactly four
fields makes the load fail with DatasetError.

=============================================================================
"""

import csv
import logging
from pathlib import Path
from collections.abc import Sequence
from typing import Iterable, Iterator, List, Optional, Union

from .model import Currency


logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = Path(__file__).resolve().parent.parent / "data" / "currencies.csv"

HEADER = ("name", "code", "number", "country")

WILDCARD = "*"


class DatasetError(Exception):
    """The dataset file is missing or malformed."""


class LookupTable(Sequence):
    """Read-only, ordered sequence of Currency records."""

    def __init__(self, records: Iterable[Currency] = ()):
        self._records = tuple(records)

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, index):
        return self._records[index]

    def __iter__(self) -> Iterator[Currency]:
        return iter(self._records)

    def __repr__(self) -> str:
        return f"LookupTable({len(self._records)} currencies)"

    def find(self, query: str) -> List[Currency]:
        return find(self, query)


def find(table: Iterable[Currency], query: str) -> List[Currency]:
    """
    Search the table.

    "*" or an empty query returns every record. Otherwise a record matches
    when the query is a case-insensitive substring of its name, code or
    country. Table order is preserved.

    Pure function: no I/O, safe to call from any number of threads.
    """
    needle = query.strip().lower()
    if not needle or needle == WILDCARD:
        return list(table)

    return [
        cur for cur in table
        if needle in cur.name.lower()
        or needle in cur.code.lower()
        or needle in cur.country.lower()
    ]


def parse_rows(rows: Iterable[List[str]], source: str = "<data>") -> LookupTable:
    """
    Build a table from already-split CSV rows.

    Raises:
        DatasetError: If a non-blank row does not have four fields.
    """
    records = []
    for line_number, row in enumerate(rows, start=1):
        fields = [value.strip() for value in row]
        if not any(fields):
            continue
        if len(fields) != 4:
            raise DatasetError(
                f"{source}:{line_number}: expected 4 fields (name, code, number, country), "
                f"got {len(fields)}"
            )
        if not records and tuple(value.lower() for value in fields) == HEADER:
            continue
        records.append(Currency(*fields))
    return LookupTable(records)


def load_table(path: Optional[Union[str, Path]] = None) -> LookupTable:
    """
    Load a dataset file. With no path, load the bundled dataset.

    Raises:
        DatasetError: If the file cannot be read or is malformed.
    """
    data_path = Path(path) if path else DEFAULT_DATA_FILE

    try:
        with data_path.open(newline="", encoding="utf-8") as f:
            table = parse_rows(csv.reader(f), source=str(data_path))
    except OSError as e:
        raise DatasetError(f"Can not read dataset {data_path}: {e}") from e
    except csv.Error as e:
        raise DatasetError(f"{data_path}: {e}") from e

    logger.info(f"Loaded {len(table)} currencies from {data_path}")
    return table
