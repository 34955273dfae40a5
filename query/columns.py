"""
Column Domains

A domain describes the semantic type and legal values of one table column and
parses raw request values (query-string text or JSON body values) into typed
values. Parsing never coerces silently: a value that does not fit the domain
is reported as a failure.
"""

import re
from dataclasses import dataclass
from datetime import date as date_type
from typing import Any, Iterable, Optional

from errors import InvalidValue

_INT_RE = re.compile(r"^[+-]?\d+$")
_DATE_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2})(?:T\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?$"
)


@dataclass(frozen=True)
class ParseResult:
    """Outcome of parsing one raw value against a domain."""
    ok: bool
    value: Any = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: Any) -> "ParseResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "ParseResult":
        return cls(ok=False, error=error)


class ColumnDomain:
    """Base domain: subclasses implement `_convert`."""

    type = "string"

    def check(self, raw: Any) -> ParseResult:
        """Parse `raw`, returning a tagged success/failure result. None is always accepted."""
        if raw is None:
            return ParseResult.success(None)
        return self._convert(raw)

    def parse(self, raw: Any, field: Optional[str] = None) -> Any:
        """Parse `raw` or raise InvalidValue."""
        result = self.check(raw)
        if not result.ok:
            raise InvalidValue(result.error, field=field)
        return result.value

    def describe(self) -> dict:
        """Metadata used by clients to build form fields."""
        return {"type": self.type}

    def _convert(self, raw: Any) -> ParseResult:
        raise NotImplementedError


class TextDomain(ColumnDomain):
    type = "string"

    def _convert(self, raw: Any) -> ParseResult:
        if isinstance(raw, str):
            return ParseResult.success(raw)
        return ParseResult.failure(f"Expected text, got {type(raw).__name__}")


class IntegerDomain(ColumnDomain):
    type = "integer"

    def _convert(self, raw: Any) -> ParseResult:
        # bool is an int subclass but never a valid integer value here
        if isinstance(raw, bool):
            return ParseResult.failure(f"Expected an integer, got {raw!r}")
        if isinstance(raw, int):
            return ParseResult.success(raw)
        if isinstance(raw, str) and _INT_RE.match(raw.strip()):
            return ParseResult.success(int(raw.strip()))
        return ParseResult.failure(f"Expected an integer, got {raw!r}")


class NumberDomain(ColumnDomain):
    type = "number"

    def _convert(self, raw: Any) -> ParseResult:
        if isinstance(raw, bool):
            return ParseResult.failure(f"Expected a number, got {raw!r}")
        if isinstance(raw, (int, float)):
            return ParseResult.success(float(raw))
        if isinstance(raw, str):
            try:
                return ParseResult.success(float(raw.strip()))
            except ValueError:
                pass
        return ParseResult.failure(f"Expected a number, got {raw!r}")


class BooleanDomain(ColumnDomain):
    type = "boolean"

    _TRUE = {"true", "1", "yes"}
    _FALSE = {"false", "0", "no"}

    def _convert(self, raw: Any) -> ParseResult:
        if isinstance(raw, bool):
            return ParseResult.success(raw)
        if isinstance(raw, str):
            lowered = raw.strip().lower()
            if lowered in self._TRUE:
                return ParseResult.success(True)
            if lowered in self._FALSE:
                return ParseResult.success(False)
        return ParseResult.failure(f"Expected a boolean, got {raw!r}")


class DateDomain(ColumnDomain):
    """ISO dates (YYYY-MM-DD); asyncpg needs date objects for date columns."""

    type = "date"

    def _convert(self, raw: Any) -> ParseResult:
        if isinstance(raw, date_type):
            return ParseResult.success(raw)
        if isinstance(raw, str):
            # A timestamp ("2026-09-22T00:00:00.000Z") keeps only its date part
            match = _DATE_RE.match(raw.strip())
            if match:
                try:
                    return ParseResult.success(date_type.fromisoformat(match.group(1)))
                except ValueError:
                    pass
        return ParseResult.failure(f"Expected a date (YYYY-MM-DD), got {raw!r}")


class EnumColumnDomain(ColumnDomain):
    """A text domain restricted to a fixed set of legal values."""

    type = "enum"

    def __init__(self, values: Iterable[str]):
        self.values = tuple(values)
        assert self.values, "enum domain needs at least one value"
        assert len(set(self.values)) == len(self.values), "duplicate enum values"

    def _convert(self, raw: Any) -> ParseResult:
        if isinstance(raw, str) and raw in self.values:
            return ParseResult.success(raw)
        return ParseResult.failure(
            f"Invalid value {raw!r}. Valid values: {', '.join(self.values)}"
        )

    def describe(self) -> dict:
        return {"type": self.type, "values": list(self.values)}


# Shared stateless instances
TEXT = TextDomain()
INTEGER = IntegerDomain()
NUMBER = NumberDomain()
BOOLEAN = BooleanDomain()
DATE = DateDomain()
