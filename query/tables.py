"""
Table Schemas

Each entity declares its table once: an ordered set of typed columns, the
query operator used when a column is filtered on, and the natural key used to
resolve REST path parameters. Tables are built at import time and not
modified afterwards.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Union

from errors import InvalidKey, UnknownField
from .columns import ColumnDomain, EnumColumnDomain, TEXT, TextDomain

EQUALS = "equals"
CONTAINS = "contains"
QUERY_OPS = (EQUALS, CONTAINS)


@dataclass(frozen=True)
class Column:
    """One column of an entity table."""
    name: str
    label: Optional[str] = None
    query_op: str = EQUALS
    domain: ColumnDomain = TEXT
    required: bool = False
    internal: bool = False  # Hidden from field metadata, still filterable
    generated: bool = False  # Assigned by the store when not supplied

    def __post_init__(self):
        assert self.name.isidentifier(), f"invalid column name {self.name!r}"
        assert self.query_op in QUERY_OPS, f"unknown query op {self.query_op!r} on {self.name}"
        if self.query_op == CONTAINS:
            assert isinstance(self.domain, TextDomain), f"'contains' needs a text column ({self.name})"
        if self.label is None:
            object.__setattr__(self, "label", self.name)

    @property
    def is_enum(self) -> bool:
        return isinstance(self.domain, EnumColumnDomain)

    def metadata(self) -> dict:
        meta = {"name": self.name, "label": self.label, "required": self.required}
        meta.update(self.domain.describe())
        return meta


class EntityTable:
    """Schema of one entity table."""

    def __init__(
        self,
        name: str,
        natural_key: str,
        columns: Iterable[Column] = (),
        id_column: str = "id",
    ):
        assert name.isidentifier(), f"invalid table name {name!r}"
        self.name = name
        self.natural_key = natural_key
        self.id_column = id_column
        self._columns: dict[str, Column] = {}
        self._frozen = False
        for column in columns:
            self.add_column(column)
        assert natural_key in self._columns, f"natural key {natural_key!r} is not a column of {name}"
        assert id_column in self._columns, f"id column {id_column!r} is not a column of {name}"
        self._frozen = True

    def add_column(self, column: Union[Column, None] = None, **attrs: Any) -> Column:
        """Register a column, given as a Column or as Column keyword arguments."""
        assert not self._frozen, f"table {self.name} is already built"
        if column is None:
            column = Column(**attrs)
        assert column.name not in self._columns, f"duplicate column {column.name!r} in {self.name}"
        self._columns[column.name] = column
        return column

    @property
    def columns(self) -> tuple[Column, ...]:
        return tuple(self._columns.values())

    @property
    def column_names(self) -> list[str]:
        return list(self._columns)

    def has_column(self, name: str) -> bool:
        return name in self._columns

    def column(self, name: str) -> Column:
        try:
            return self._columns[name]
        except KeyError:
            raise UnknownField(
                f"Unknown field '{name}' on entity '{self.name}'",
                validFields=self.column_names,
            ) from None

    def fields_metadata(self) -> list[dict]:
        """Ordered metadata of the non-internal columns, for client-side forms."""
        return [c.metadata() for c in self._columns.values() if not c.internal]

    def resolve_natural_key(self, raw_key: Any) -> dict:
        """Convert a path parameter into the filter identifying exactly one row."""
        column = self._columns[self.natural_key]
        result = column.domain.check(raw_key)
        if not result.ok or result.value is None:
            raise InvalidKey(
                f"Invalid {self.natural_key} '{raw_key}' for entity '{self.name}'",
                field=self.natural_key,
            )
        return {self.natural_key: result.value}

    def parse_criteria(self, raw_query: Mapping[str, Any]) -> dict:
        """
        Parse loosely-typed request parameters into typed criteria.

        Keys that are not columns (paging, flags, unknown filters) are ignored.
        Empty strings mean "no filter". Lists are kept as lists of typed values.
        Raises InvalidValue when a value does not fit its column's domain.
        """
        criteria: dict[str, Any] = {}
        for key, raw in raw_query.items():
            column = self._columns.get(key)
            if column is None:
                continue
            if isinstance(raw, (list, tuple)):
                values = [column.domain.parse(v, field=key) for v in raw if v != ""]
                if values:
                    criteria[key] = values if len(values) > 1 else values[0]
            elif raw != "":
                criteria[key] = column.domain.parse(raw, field=key)
        return criteria

    def __repr__(self) -> str:
        return f"EntityTable({self.name!r}, natural_key={self.natural_key!r}, columns={self.column_names})"
