"""
Table descriptor: per-entity schema metadata, built once at registration.

Manifesto:
    An entity type describes itself exactly once. ``describe()`` walks the
    dataclass fields, builds a :class:`ColumnDescriptor` per persisted field,
    merges the declared keys, and freezes the result. Everything downstream
    (statement compiler, predicate builder, coordinator) reads this metadata
    and never inspects the entity class again.

Architecture:
    ::

        @table(...) @dataclass Entity
              │
              ▼  describe(entity_type, prefix, dialect, database)
        ┌──────────────────────────────────────────────────────┐
        │ TableDescriptor                                      │
        │   name            prefix + snake_case(ClassName)     │
        │   columns         declaration order                  │
        │   identity        ≤ 1 AUTO_INCREMENT column          │
        │   version         ≤ 1 optimistic-lock counter        │
        │   keys            name → KeyDescriptor (ordered)     │
        └──────────────────────────────────────────────────────┘
              │
              ├── create_table_statement(s)()
              ├── add_column_statement() / probe_statement()
              ├── compiler → StatementCompiler
              └── load_row() / load_by_id() / assign_generated_keys()

    Keys are merged by name from three sources, in this order:

        1. column(unique=True)                → UNIQUE KEY `col`
        2. @table(keys=[UniqueKey(..), Key(..)])
        3. column(unique_key="k") / column(keyed="k")

    A later source may add columns to an existing key of the same kind;
    redeclaring a name with different uniqueness is a ConfigurationError.

Examples:
    >>> t = describe(Log, prefix="app_")
    >>> t.name
    'app_log'
    >>> [k.name for k in t.keys.values()]
    ['player_uuid']

Guardrails:
    ❌ DON'T: Mutate a descriptor after describe() returns
    ✅ DO: Re-register the entity with a new Database for different settings

Tags:
    schema, table, ddl, keys, orm, table-spine
"""

from __future__ import annotations

import dataclasses
import typing
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from functools import cached_property
from typing import TYPE_CHECKING, Any

from tablespine.core.dialect import Dialect, MySQLDialect, quote_identifier
from tablespine.core.errors import (
    ConfigurationError,
    GeneratedKeyError,
    UnknownColumnError,
)
from tablespine.core.logging import get_logger
from tablespine.core.naming import snake_case
from tablespine.orm.column import ColumnDescriptor
from tablespine.orm.schema import column_options, table_options
from tablespine.orm.types import is_collection_type

if TYPE_CHECKING:
    from tablespine.database import Database
    from tablespine.orm.statements import Statement, StatementCompiler

logger = get_logger(__name__)

_REFERENCE_DIALECT = MySQLDialect()


@dataclass(frozen=True)
class KeyDescriptor:
    """A named unique or non-unique key over ordered columns."""

    name: str
    unique: bool
    columns: tuple[ColumnDescriptor, ...]

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]


class TableDescriptor:
    """Immutable schema metadata for one entity type."""

    def __init__(
        self,
        entity_type: type,
        name: str,
        columns: Sequence[ColumnDescriptor],
        *,
        prefix: str = "",
        dialect: Dialect | None = None,
        database: Database | None = None,
    ) -> None:
        self.entity_type = entity_type
        self.name = name
        self.prefix = prefix
        self.dialect: Dialect = dialect or _REFERENCE_DIALECT
        self.database = database
        self.columns: tuple[ColumnDescriptor, ...] = tuple(columns)
        self.keys: dict[str, KeyDescriptor] = {}
        self._by_field = {c.field_name: c for c in self.columns}
        self._by_name = {c.name: c for c in self.columns}
        self._references: dict[type, TableDescriptor] = {}

        identities = [c for c in self.columns if c.identity]
        if len(identities) > 1:
            raise ConfigurationError(
                f"{entity_type.__qualname__} declares more than one identity column: "
                + ", ".join(c.field_name for c in identities)
            )
        versions = [c for c in self.columns if c.version]
        if len(versions) > 1:
            raise ConfigurationError(
                f"{entity_type.__qualname__} declares more than one version column"
            )
        self.identity: ColumnDescriptor | None = identities[0] if identities else None
        self.version: ColumnDescriptor | None = versions[0] if versions else None

        for col in self.columns:
            col.table = self

    # -- lookup ------------------------------------------------------------

    @property
    def quoted(self) -> str:
        return quote_identifier(self.name)

    def column(self, label: str) -> ColumnDescriptor:
        """Resolve a column by field name or storage name (exact match)."""
        col = self._by_field.get(label) or self._by_name.get(label)
        if col is None:
            raise UnknownColumnError(
                f"No column '{label}' in table `{self.name}`", field=label
            ).with_context(table=self.name, column=label, entity=self.entity_type.__qualname__)
        return col

    def has_column(self, label: str) -> bool:
        return label in self._by_field or label in self._by_name

    def columns_for(self, labels: Iterable[str]) -> list[ColumnDescriptor]:
        result: list[ColumnDescriptor] = []
        for label in labels:
            col = self.column(label)
            if col not in result:
                result.append(col)
        return result

    @property
    def unique_keys(self) -> list[KeyDescriptor]:
        return [k for k in self.keys.values() if k.unique]

    def identity_value(self, row: Any) -> int | None:
        if self.identity is None:
            return None
        return self.identity.get(row)

    def resolve_reference(self, entity_type: type) -> TableDescriptor:
        """Descriptor for a referenced entity type."""
        if entity_type is self.entity_type:
            return self
        if self.database is not None:
            return self.database.table_for(entity_type)
        if entity_type not in self._references:
            self._references[entity_type] = describe(
                entity_type, prefix=self.prefix, dialect=self.dialect
            )
        return self._references[entity_type]

    @cached_property
    def compiler(self) -> StatementCompiler:
        from tablespine.orm.statements import StatementCompiler

        return StatementCompiler(self)

    # -- keys --------------------------------------------------------------

    def _add_key(self, name: str, unique: bool, columns: Sequence[ColumnDescriptor]) -> None:
        existing = self.keys.get(name)
        if existing is None:
            self.keys[name] = KeyDescriptor(name, unique, tuple(columns))
            return
        if existing.unique != unique:
            raise ConfigurationError(
                f"Key '{name}' on `{self.name}` is declared both unique and non-unique"
            )
        merged = list(existing.columns)
        for col in columns:
            if col not in merged:
                merged.append(col)
        self.keys[name] = KeyDescriptor(name, unique, tuple(merged))

    # -- DDL ---------------------------------------------------------------

    def create_table_statement(self) -> str:
        """``CREATE TABLE IF NOT EXISTS`` for this table (inline keys only)."""
        d = self.dialect
        parts = [c.ddl_fragment(d) for c in self.columns]
        if self.identity is not None and not d.inline_primary_key:
            parts.append(f"PRIMARY KEY ({self.identity.quoted})")
        for key in self.keys.values():
            clause = d.key_clause(key.name, key.unique, key.column_names)
            if clause is not None:
                parts.append(clause)
        body = ",\n  ".join(parts)
        return f"CREATE TABLE IF NOT EXISTS {self.quoted} (\n  {body}\n)"

    def create_table_statements(self) -> list[str]:
        """Every statement needed to create the table and its keys."""
        statements = [self.create_table_statement()]
        for key in self.keys.values():
            if key.unique:
                continue
            index = self.dialect.index_statement(self.name, key.name, key.column_names)
            if index is not None:
                statements.append(index)
        return statements

    def probe_statement(self, label: str) -> str:
        """Cheap query that fails if the column does not exist."""
        return f"SELECT {self.column(label).quoted} FROM {self.quoted} LIMIT 1"

    def add_column_statement(self, label: str) -> str:
        """``ALTER TABLE ... ADD COLUMN`` placing the column after its predecessor."""
        col = self.column(label)
        index = self.columns.index(col)
        previous = self.columns[index - 1].name if index > 0 else None
        position = self.dialect.add_column_position(previous)
        return f"ALTER TABLE {self.quoted} ADD COLUMN {col.ddl_fragment(self.dialect)}{position}"

    # -- rows --------------------------------------------------------------

    def new_row(self) -> Any:
        return self.entity_type()

    def load_row(
        self,
        result: dict[str, Any],
        connection: Any = None,
        columns: Sequence[ColumnDescriptor] | None = None,
    ) -> Any:
        """Materialize an entity from a result row (projection-aware)."""
        row = self.new_row()
        for col in columns or self.columns:
            if col.name in result:
                col.load(row, result, connection)
        return row

    def load_by_id(self, connection: Any, ident: int) -> Any:
        """Fetch one row by identity on ``connection`` (None if absent)."""
        stmt = self.compiler.build_find_by_id(ident)
        self._execute(connection, stmt)
        result = connection.fetchone()
        if result is None:
            return None
        return self.load_row(result, connection)

    def _execute(self, connection: Any, stmt: Statement) -> Any:
        if self.database is not None:
            self.database.log_sql(stmt.sql)
        return connection.execute(stmt.sql, stmt.params)

    def assign_generated_keys(
        self,
        rows: Sequence[Any],
        keys: Sequence[int],
        *,
        ignore_duplicates: bool,
    ) -> None:
        """Write generated identities back into rows whose identity was None.

        ``keys`` are in statement order. One key per row maps positionally;
        otherwise keys already held by rows in the batch are dropped and the
        rest are handed to the pending rows in order.
        """
        ident = self.identity
        if ident is None:
            return
        pending = [row for row in rows if ident.get(row) is None]
        if not pending:
            return
        if len(keys) == len(rows):
            for row, key in zip(rows, keys):
                if ident.get(row) is None:
                    ident.set(row, key)
            return
        known = {ident.get(row) for row in rows} - {None}
        fresh = [key for key in keys if key not in known]
        for row, key in zip(pending, fresh):
            ident.set(row, key)
        missing = len(pending) - len(fresh)
        if missing > 0 and not ignore_duplicates:
            raise GeneratedKeyError(
                f"Expected {len(pending)} generated keys for `{self.name}`, got {len(fresh)}"
            ).with_context(table=self.name)

    def __repr__(self) -> str:
        return f"TableDescriptor({self.entity_type.__qualname__} -> {self.name!r})"


def describe(
    entity_type: type,
    prefix: str = "",
    dialect: Dialect | None = None,
    database: Database | None = None,
) -> TableDescriptor:
    """Build the :class:`TableDescriptor` for a dataclass entity type.

    Raises:
        ConfigurationError: The type is not a dataclass, a field has no
            default, a type is unsupported, storage names collide, or keys
            conflict.
    """
    if not (isinstance(entity_type, type) and dataclasses.is_dataclass(entity_type)):
        raise ConfigurationError(f"{entity_type!r} is not a dataclass type")
    qualname = entity_type.__qualname__
    options = table_options(entity_type)

    try:
        hints = typing.get_type_hints(entity_type)
    except (NameError, TypeError) as e:
        raise ConfigurationError(
            f"Cannot resolve annotations of {qualname}: {e}", cause=e
        ).with_context(entity=qualname) from e

    columns: list[ColumnDescriptor] = []
    seen: dict[str, str] = {}
    for dc_field in dataclasses.fields(entity_type):
        if (
            dc_field.init
            and dc_field.default is dataclasses.MISSING
            and dc_field.default_factory is dataclasses.MISSING
        ):
            raise ConfigurationError(
                f"{qualname}.{dc_field.name} has no default; entity rows must be "
                "constructible without arguments"
            ).with_context(entity=qualname, column=dc_field.name)
        field_options = column_options(dc_field)
        if field_options.transient:
            continue
        declared = hints.get(dc_field.name, dc_field.type)
        if is_collection_type(declared):
            continue
        try:
            col = ColumnDescriptor.from_field(
                dc_field, declared, field_options, not_null_default=options.not_null
            )
        except ConfigurationError as e:
            raise e.with_context(entity=qualname, column=dc_field.name)
        if col.name in seen:
            raise ConfigurationError(
                f"{qualname}.{dc_field.name} and {qualname}.{seen[col.name]} "
                f"both map to column `{col.name}`"
            ).with_context(entity=qualname, column=col.name)
        seen[col.name] = dc_field.name
        columns.append(col)

    if not columns:
        raise ConfigurationError(f"{qualname} has no persisted columns").with_context(entity=qualname)

    name = prefix + (options.name or snake_case(entity_type.__name__))
    table = TableDescriptor(
        entity_type, name, columns, prefix=prefix, dialect=dialect, database=database
    )

    # 1. singleton unique columns
    for col in table.columns:
        if col.unique and not col.identity:
            table._add_key(col.name, True, [col])

    # 2. table-level declarations
    for key in options.keys:
        try:
            key_columns = [table.column(label) for label in key.columns]
        except UnknownColumnError as e:
            raise ConfigurationError(
                f"{qualname} key {key!r} names an unknown column", cause=e
            ).with_context(entity=qualname) from e
        key_name = key.name or "_".join(c.name for c in key_columns).lower()
        table._add_key(key_name, key.unique, key_columns)

    # 3. per-column key tags
    for col in table.columns:
        for tag in col.unique_key_tags:
            table._add_key(tag or col.name, True, [col])
        for tag in col.key_tags:
            table._add_key(tag or col.name, False, [col])

    logger.debug(
        "table_described",
        entity=qualname,
        table=table.name,
        columns=len(table.columns),
        keys=list(table.keys),
    )
    return table


__all__ = ["KeyDescriptor", "TableDescriptor", "describe"]
