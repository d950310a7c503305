"""
Currency data model and the JSON wire shapes built on it.

    Currency        {"Name": ..., "Code": ..., "Number": ..., "Country": ...}
    CurrencyRequest {"Get": "<query>"}
    CurrencyError   {"Error": "<message>"}
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Currency:
    """
    One ISO 4217 currency entry. Immutable; shared by every session.

    Attributes:
        name: Currency name, e.g. "US Dollar".
        code: Alphabetic code, e.g. "USD".
        number: Numeric code kept as text, e.g. "840" or "008".
        country: Country or entity using the currency.
    """
    name: str
    code: str
    number: str
    country: str

    def to_dict(self) -> dict:
        return {
            "Name": self.name,
            "Code": self.code,
            "Number": self.number,
            "Country": self.country,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Currency":
        """
        Build from a wire object.

        Raises:
            ValueError: If a field is missing or not a string.
        """
        if not isinstance(data, dict):
            raise ValueError(f"currency must be an object, got {type(data).__name__}")
        values = []
        for key in ("Name", "Code", "Number", "Country"):
            value = data.get(key)
            if not isinstance(value, str):
                raise ValueError(f"currency field {key!r} must be a string")
            values.append(value)
        return cls(*values)

    def to_line(self) -> str:
        """Text protocol rendering: "<Name> <Code> <Number> <Country>"."""
        return f"{self.name} {self.code} {self.number} {self.country}"


@dataclass(frozen=True)
class CurrencyRequest:
    """A single search; `get` may be "*" (everything) or empty."""
    get: str

    def to_dict(self) -> dict:
        return {"Get": self.get}

    @classmethod
    def from_dict(cls, data: Any) -> "CurrencyRequest":
        """
        Raises:
            ValueError: If `data` is not {"Get": <string>}.
        """
        if not isinstance(data, dict):
            raise ValueError(f"request must be a JSON object, got {_json_type(data)}")
        if "Get" not in data:
            raise ValueError('request is missing the "Get" field')
        query = data["Get"]
        if not isinstance(query, str):
            raise ValueError(f'"Get" must be a string, got {_json_type(query)}')
        return cls(query)


@dataclass(frozen=True)
class CurrencyError:
    """In-band error for the JSON protocol."""
    error: str

    def to_dict(self) -> dict:
        return {"Error": self.error}


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"
