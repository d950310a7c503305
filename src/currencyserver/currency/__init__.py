"""
Currency records, the read-only lookup table and the search over it.
"""

from .model import Currency, CurrencyRequest, CurrencyError
from .table import LookupTable, DatasetError, find, load_table, parse_rows

__all__ = [
    "Currency",
    "CurrencyRequest",
    "CurrencyError",
    "LookupTable",
    "DatasetError",
    "find",
    "load_table",
    "parse_rows",
]
