"""
Entity Base

Generic CRUD over one entity table. Subclasses declare:
- table: the EntityTable
- model: the Pydantic record class rows are loaded into
- flags: names of optional sub-resources; each flag `x` needs a `load_x(record)` coroutine
- extra_methods: wire name -> method name of custom POST operations
- soft_delete: state transition applied by remove() instead of a physical delete
- method_actions: wire name -> Action guarding a custom operation, when it is
  not the default `entity:method`

Every mutation is one SQL statement; consistency across rows or tables is the
store's business (or computed when reading).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel

from auth import Action
from config import ServerConfig
from database import DatabaseConnection
from errors import EntityNotFound, ValidationError, field_error
from query import Column, EntityTable, QueryBuilder, QueryOptions, QueryResult, TextDomain

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


async def gather_all(*aws) -> list:
    """Run awaitables concurrently; once all have settled, re-raise the first failure."""
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


@dataclass(frozen=True)
class SoftDelete:
    """Delete policy: set `column` to `value` instead of deleting the row."""
    column: str
    value: Any


class BaseEntity(Generic[T]):
    """Generic CRUD contract for one entity."""

    table: ClassVar[EntityTable]
    model: ClassVar[Type[BaseModel]]
    flags: ClassVar[tuple[str, ...]] = ()
    extra_methods: ClassVar[dict[str, str]] = {}
    soft_delete: ClassVar[Optional[SoftDelete]] = None
    method_actions: ClassVar[dict[str, Action]] = {}

    def __init__(
        self,
        db: DatabaseConnection,
        config: Optional[ServerConfig] = None,
        builder: Optional[QueryBuilder] = None,
    ):
        self.db = db
        self.config = config or ServerConfig()
        self.builder = builder or QueryBuilder()

        missing = [f for f in self.flags if not callable(getattr(self, f"load_{f}", None))]
        assert not missing, f"{type(self).__name__} has no loader for flags {missing}"
        unknown = [m for m in self.extra_methods.values() if not callable(getattr(self, m, None))]
        assert not unknown, f"{type(self).__name__} has no methods {unknown}"
        assert set(self.method_actions) <= set(self.extra_methods), "actions for undeclared methods"
        if self.soft_delete:
            assert self.table.has_column(self.soft_delete.column)

    @property
    def name(self) -> str:
        return self.table.name

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def to_record(self, row: Any) -> T:
        return self.model.model_validate(dict(row))

    def to_key_fields(self, key: Any) -> dict:
        """Filter identifying the entity addressed by a path key."""
        return self.table.resolve_natural_key(key)

    def not_found(self, key: Any) -> EntityNotFound:
        return EntityNotFound(
            f"{self.name} {key} not found", entity=self.name, key=str(key)
        )

    def default_options(self, **overrides: Any) -> QueryOptions:
        values = {"limit": self.config.default_limit}
        values.update(overrides)
        return QueryOptions(**values)

    def fields(self) -> list[dict]:
        """Metadata of the exposed columns (for client-side forms)."""
        return self.table.fields_metadata()

    async def find(self, fields: Mapping[str, Any]) -> Optional[T]:
        """The single row whose columns equal `fields`, or None."""
        sql, params = self.builder.build_find(self.table, fields)
        row = await self.db.fetchrow(sql, *params)
        return self.to_record(row) if row is not None else None

    async def expand(self, record: T, flags: Optional[Mapping[str, bool]]) -> T:
        """Run the sub-loader of every truthy flag concurrently and attach the results."""
        requested = [name for name in self.flags if flags and flags.get(name)]
        if requested:
            results = await gather_all(
                *(getattr(self, f"load_{name}")(record) for name in requested)
            )
            for name, value in zip(requested, results):
                setattr(record, name, value)
        return record

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def get(self, key: Any, flags: Optional[Mapping[str, bool]] = None) -> T:
        """
        Get one entity by natural key, with the requested sub-resources.

        Raises:
            InvalidKey: the key does not fit the natural key's domain
            EntityNotFound: no row has this key
        """
        record = await self.find(self.to_key_fields(key))
        if record is None:
            raise self.not_found(key)
        return await self.expand(record, flags)

    async def read(
        self,
        raw_query: Mapping[str, Any],
        op: str = "and",
        options: Optional[QueryOptions] = None,
    ) -> QueryResult[T]:
        """
        List entities matching the loosely-typed request parameters.
        Parameters that are not columns are ignored.
        """
        criteria = self.table.parse_criteria(raw_query)
        return await self.query(criteria, op, options)

    async def query(
        self,
        criteria: Mapping[str, Any],
        op: str = "and",
        options: Optional[QueryOptions] = None,
    ) -> QueryResult[T]:
        """List entities matching typed criteria; counts concurrently when asked to."""
        options = options or self.default_options()
        sql, params = self.builder.build_select(self.table, criteria, op, options)

        if options.return_count:
            count_sql, count_params = self.builder.build_count(self.table, criteria, op)
            rows, count = await gather_all(
                self.db.fetch(sql, *params),
                self.db.fetchval(count_sql, *count_params),
            )
        else:
            rows = await self.db.fetch(sql, *params)
            count = None

        return QueryResult(rows=[self.to_record(r) for r in rows], count=count)

    async def create(self, body: Any) -> T:
        """
        Insert a new entity and return it with its server-assigned values.

        Raises:
            ValidationError: required fields missing or values outside their domain
        """
        values = self.validate_new(body)
        sql, params = self.builder.build_insert(self.table, values)
        row = await self.db.fetchrow(sql, *params)
        record = self.to_record(row)
        logger.info(f"Created {self.name} {getattr(record, self.table.natural_key, None)}")
        return record

    async def update(self, body: Any) -> T:
        """
        Partial update: only the fields present in `body` change.
        The row is addressed by its surrogate id or, failing that, its natural key.
        """
        body = self._require_mapping(body)
        key_fields = self._update_key(body)
        changes = self.validate_changes(body, exclude=key_fields.keys())

        if changes:
            sql, params = self.builder.build_update(self.table, key_fields, changes)
            row = await self.db.fetchrow(sql, *params)
            record = self.to_record(row) if row is not None else None
        else:
            record = await self.find(key_fields)

        if record is None:
            raise self.not_found(next(iter(key_fields.values())))
        if changes:
            logger.info(f"Updated {self.name} {getattr(record, self.table.natural_key, None)}: {sorted(changes)}")
        return record

    async def remove(self, key: Any) -> None:
        """Delete the entity (or apply the entity's soft-delete transition)."""
        key_fields = self.to_key_fields(key)
        if self.soft_delete:
            sql, params = self.builder.build_update(
                self.table, key_fields, {self.soft_delete.column: self.soft_delete.value}
            )
        else:
            sql, params = self.builder.build_delete(self.table, key_fields)

        row = await self.db.fetchrow(sql, *params)
        if row is None:
            raise self.not_found(key)
        logger.info(f"Removed {self.name} {key}" + (" (soft)" if self.soft_delete else ""))

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _require_mapping(self, body: Any) -> Mapping[str, Any]:
        if not isinstance(body, Mapping):
            raise ValidationError(
                [field_error("body", "INVALID_BODY", "Request body must be a JSON object")]
            )
        return body

    def _blank(self, column: Column, raw: Any) -> bool:
        # "" is a legitimate value only for optional text columns
        if raw is None:
            return True
        return raw == "" and (column.required or not isinstance(column.domain, TextDomain))

    def validate_new(self, body: Any) -> dict:
        """Typed column values for an insert; raises ValidationError listing every bad field."""
        body = self._require_mapping(body)
        errors, values = [], {}
        for column in self.table.columns:
            if column.name == self.table.id_column:
                continue
            raw = body.get(column.name)
            if raw is None or raw == "":
                if column.required and not column.generated:
                    errors.append(field_error(column.name, "REQUIRED", f"{column.label} is required"))
                continue
            result = column.domain.check(raw)
            if not result.ok:
                errors.append(field_error(column.name, "INVALID_VALUE", result.error))
            else:
                values[column.name] = result.value
        if errors:
            raise ValidationError(errors)
        return values

    def validate_changes(self, body: Mapping[str, Any], exclude=()) -> dict:
        """Typed values of the columns present in `body`, except the key columns."""
        errors, changes = [], {}
        for name, raw in body.items():
            if name in exclude or name == self.table.id_column or not self.table.has_column(name):
                continue
            column = self.table.column(name)
            if self._blank(column, raw):
                if column.required:
                    errors.append(field_error(name, "REQUIRED", f"{column.label} is required"))
                else:
                    changes[name] = None
                continue
            result = column.domain.check(raw)
            if not result.ok:
                errors.append(field_error(name, "INVALID_VALUE", result.error))
            else:
                changes[name] = result.value
        if errors:
            raise ValidationError(errors)
        return changes

    def _update_key(self, body: Mapping[str, Any]) -> dict:
        """{id: ...} when the body carries the surrogate id, else {natural_key: ...}."""
        for name in (self.table.id_column, self.table.natural_key):
            raw = body.get(name)
            if raw is None or raw == "":
                continue
            result = self.table.column(name).domain.check(raw)
            if not result.ok:
                raise ValidationError([field_error(name, "INVALID_VALUE", result.error)])
            return {name: result.value}
        raise ValidationError([
            field_error(
                self.table.natural_key, "REQUIRED",
                f"{self.table.id_column} or {self.table.natural_key} is required to update {self.name}",
            )
        ])

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def init_routes(self, registrar) -> None:
        """Hook for entity-specific routes; called before the standard CRUD routes."""
