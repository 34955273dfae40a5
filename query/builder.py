"""
Query Builder

Translates criteria into parameterized SQL for one entity table.
All values are passed as asyncpg positional parameters ($1, $2, ...), never
interpolated. Only column names validated against the table schema appear as
identifiers in the generated SQL.

Supports:
- equals columns (col = $n), contains columns (col ILIKE $n with %value%)
- membership tests for enum columns and list values (col IN ($n, $m))
- a single logical operator (AND / OR) across all criteria
- ORDER BY a schema field or a joined column ("-field" for descending), natural key by default
- LIMIT / OFFSET on every SELECT, plus a matching COUNT query
- INSERT / UPDATE / DELETE ... RETURNING for single-row writes
"""

import logging
from typing import Any, Iterable, Mapping, Optional

from errors import InvalidValue
from .result import QueryOptions, LOGICAL_OPS
from .tables import Column, EntityTable, CONTAINS

logger = logging.getLogger(__name__)


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input only matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _normalize(sql: str) -> str:
    return " ".join(sql.split())


class QueryBuilder:
    """Builds parameterized SQL from criteria and query options."""

    def _col(self, column: Column, alias: Optional[str]) -> str:
        return f"{alias}.{column.name}" if alias else column.name

    def _bind(self, params: list, value: Any) -> str:
        params.append(value)
        return f"${len(params)}"

    def _build_predicate(self, column: Column, value: Any, params: list, alias: Optional[str]) -> str:
        """Build the predicate for one (column, value) pair."""
        col = self._col(column, alias)

        if value is None:
            return f"{col} IS NULL"

        if column.query_op == CONTAINS:
            values = value if isinstance(value, list) else [value]
            if not values:
                return "FALSE"
            likes = [f"{col} ILIKE {self._bind(params, f'%{_escape_like(v)}%')}" for v in values]
            return likes[0] if len(likes) == 1 else f"({' OR '.join(likes)})"

        if isinstance(value, list) or column.is_enum:
            values = value if isinstance(value, list) else [value]
            if not values:
                return "FALSE"
            placeholders = ", ".join(self._bind(params, v) for v in values)
            return f"{col} IN ({placeholders})"

        return f"{col} = {self._bind(params, value)}"

    def build_conditions(
        self,
        table: EntityTable,
        criteria: Optional[Mapping[str, Any]],
        op: str = "and",
        params: Optional[list] = None,
        alias: Optional[str] = None,
    ) -> str:
        """
        Build the WHERE clause (including the keyword) for `criteria`.
        Returns "" when there are no criteria. Appends values to `params`.
        """
        if params is None:
            params = []
        if op not in LOGICAL_OPS:
            raise InvalidValue(f"Invalid operator '{op}'", field="op")
        if not criteria:
            return ""

        predicates = []
        for field_name, value in criteria.items():
            column = table.column(field_name)
            predicates.append(self._build_predicate(column, value, params, alias))

        return f"WHERE {f' {op.upper()} '.join(predicates)}"

    def build_order(
        self,
        table: EntityTable,
        options: Optional[QueryOptions],
        alias: Optional[str] = None,
        joined: Iterable[str] = (),
        joined_alias: str = "j",
    ) -> str:
        """
        ORDER BY the requested field, falling back to the natural key; id breaks ties.
        Names in `joined` are columns of a joined table and render as `joined_alias.name`.
        """
        field_name = options.order_field if options else None
        direction = "DESC" if options and options.descending else "ASC"
        id_order = f"{self._col(table.column(table.id_column), alias)} {direction}"

        if field_name and field_name in tuple(joined):
            return f"ORDER BY {joined_alias}.{field_name} {direction}, {id_order}"

        column = table.column(field_name) if field_name else table.column(table.natural_key)
        order = [f"{self._col(column, alias)} {direction}"]
        if column.name != table.id_column:
            order.append(id_order)
        return f"ORDER BY {', '.join(order)}"

    def build_paging(self, options: Optional[QueryOptions], params: list) -> str:
        options = options or QueryOptions()
        limit = self._bind(params, options.limit)
        offset = self._bind(params, options.offset)
        return f"LIMIT {limit} OFFSET {offset}"

    def select_list(self, table: EntityTable, alias: Optional[str] = None) -> str:
        return ", ".join(self._col(c, alias) for c in table.columns)

    def build_select(
        self,
        table: EntityTable,
        criteria: Optional[Mapping[str, Any]] = None,
        op: str = "and",
        options: Optional[QueryOptions] = None,
    ) -> tuple[str, list]:
        """
        Build a paged SELECT for a table.
        Returns (sql, params).
        """
        params: list = []
        where_clause = self.build_conditions(table, criteria, op, params)
        order_clause = self.build_order(table, options)
        paging_clause = self.build_paging(options, params)

        sql = f"SELECT {self.select_list(table)} FROM {table.name} {where_clause} {order_clause} {paging_clause}"
        sql = _normalize(sql)
        logger.debug(f"select {table.name}: {sql} {params}")
        return sql, params

    def build_count(
        self,
        table: EntityTable,
        criteria: Optional[Mapping[str, Any]] = None,
        op: str = "and",
    ) -> tuple[str, list]:
        """
        Build a COUNT query for a table (same filters, no pagination).
        Returns (sql, params).
        """
        params: list = []
        where_clause = self.build_conditions(table, criteria, op, params)
        sql = _normalize(f"SELECT COUNT(*) AS count FROM {table.name} {where_clause}")
        return sql, params

    def build_find(self, table: EntityTable, fields: Mapping[str, Any]) -> tuple[str, list]:
        """SELECT the single row matching all `fields` exactly."""
        params: list = []
        predicates = [
            f"{table.column(name).name} = {self._bind(params, value)}"
            for name, value in fields.items()
        ]
        assert predicates, "find needs at least one field"
        sql = f"SELECT {self.select_list(table)} FROM {table.name} WHERE {' AND '.join(predicates)} LIMIT 1"
        return sql, params

    def build_insert(self, table: EntityTable, values: Mapping[str, Any]) -> tuple[str, list]:
        """INSERT one row and return it with server-assigned values."""
        params: list = []
        names = [table.column(name).name for name in values]
        placeholders = [self._bind(params, value) for value in values.values()]
        if names:
            sql = (
                f"INSERT INTO {table.name} ({', '.join(names)}) "
                f"VALUES ({', '.join(placeholders)}) RETURNING {self.select_list(table)}"
            )
        else:
            sql = f"INSERT INTO {table.name} DEFAULT VALUES RETURNING {self.select_list(table)}"
        return sql, params

    def build_update(
        self,
        table: EntityTable,
        key_fields: Mapping[str, Any],
        changes: Mapping[str, Any],
    ) -> tuple[str, list]:
        """UPDATE the columns in `changes` on the row identified by `key_fields`."""
        assert changes, "update needs at least one change"
        params: list = []
        assignments = [
            f"{table.column(name).name} = {self._bind(params, value)}"
            for name, value in changes.items()
        ]
        keys = [
            f"{table.column(name).name} = {self._bind(params, value)}"
            for name, value in key_fields.items()
        ]
        sql = (
            f"UPDATE {table.name} SET {', '.join(assignments)} "
            f"WHERE {' AND '.join(keys)} RETURNING {self.select_list(table)}"
        )
        return sql, params

    def build_delete(self, table: EntityTable, key_fields: Mapping[str, Any]) -> tuple[str, list]:
        params: list = []
        keys = [
            f"{table.column(name).name} = {self._bind(params, value)}"
            for name, value in key_fields.items()
        ]
        sql = f"DELETE FROM {table.name} WHERE {' AND '.join(keys)} RETURNING {table.id_column}"
        return sql, params
