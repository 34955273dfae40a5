"""
Query options, query results and flags

QueryOptions bound a page and choose its ordering; QueryResult carries the
page plus (only when requested) the total number of matching rows.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, Mapping, Optional, TypeVar

from errors import InvalidValue
from .columns import BOOLEAN, INTEGER

T = TypeVar("T")
U = TypeVar("U")

DEFAULT_LIMIT = 100
MAX_LIMIT = 1000

LOGICAL_OPS = ("and", "or")


@dataclass
class QueryOptions:
    """Paging, ordering and counting for one read."""
    offset: int = 0
    limit: int = DEFAULT_LIMIT
    order: Optional[str] = None  # Field name, "-" prefix for descending
    return_count: bool = False

    def __post_init__(self):
        if self.offset < 0:
            raise InvalidValue("offset must not be negative", field="offset")
        if self.limit < 1:
            raise InvalidValue("limit must be a positive integer", field="limit")

    @property
    def order_field(self) -> Optional[str]:
        if not self.order:
            return None
        return self.order[1:] if self.order.startswith("-") else self.order

    @property
    def descending(self) -> bool:
        return bool(self.order) and self.order.startswith("-")

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, Any],
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
    ) -> "QueryOptions":
        """
        Build options from request parameters:
        offset, limit, returnCount and _order (or order).
        """
        def given(name):
            # Empty values mean "not given", as for filters
            value = params.get(name)
            return None if value == "" else value

        offset = INTEGER.parse(given("offset"), field="offset")
        limit = INTEGER.parse(given("limit"), field="limit")
        return_count = BOOLEAN.parse(given("returnCount"), field="returnCount")
        order = params.get("_order") or params.get("order") or None
        if order is not None and not isinstance(order, str):
            raise InvalidValue("order must be a field name", field="order")
        return cls(
            offset=0 if offset is None else offset,
            limit=default_limit if limit is None else min(limit, max_limit),
            order=order,
            return_count=bool(return_count),
        )


@dataclass
class QueryResult(Generic[T]):
    """One page of rows, with the total count when it was requested."""
    rows: list[T] = field(default_factory=list)
    count: Optional[int] = None

    def map(self, fn: Callable[[T], U]) -> "QueryResult[U]":
        return QueryResult(rows=[fn(row) for row in self.rows], count=self.count)

    def to_dict(self, dump: Callable[[T], Any] = lambda row: row) -> dict:
        result: dict[str, Any] = {"rows": [dump(row) for row in self.rows]}
        if self.count is not None:
            result["count"] = self.count
        return result


def parse_op(raw: Optional[str]) -> str:
    """The logical operator combining all criteria (default 'and')."""
    if raw is None or raw == "":
        return "and"
    op = raw.lower()
    if op not in LOGICAL_OPS:
        raise InvalidValue(f"Invalid operator '{raw}'. Valid operators: and, or", field="op")
    return op


def parse_flags(raw: Optional[str], allowed: Iterable[str]) -> dict[str, bool]:
    """
    Parse a comma-separated flag list ("items,fees") into a dict holding every
    declared flag. Names outside the declared set are dropped.
    """
    allowed = tuple(allowed)
    requested = {name.strip() for name in (raw or "").split(",") if name.strip()}
    return {name: name in requested for name in allowed}
