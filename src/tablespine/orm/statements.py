"""Statement compiler: DDL-free SQL for one table.

Every builder returns a :class:`Statement` (SQL text plus positional
parameters). Identifiers are always backtick-quoted. Values are always bound
as parameters, with two exceptions that only ever carry driver-typed
integers: the identity list of :meth:`StatementCompiler.build_delete` and the
literal of ``Predicate.id_eq``.

Examples::

    compiler = table.compiler
    stmt = compiler.build_upsert([row], ignore_duplicates=False, update_on_conflict=True)
    # INSERT INTO `log` (`id`, `time`, `player_uuid`, `player_name`)
    #   VALUES (NULL, %s, %s, %s)
    #   ON DUPLICATE KEY UPDATE `time`=VALUES(`time`), ...

    compiler.build_delete([3, 5])
    # DELETE FROM `log` WHERE `id` IN (3, 5)
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from tablespine.core.errors import (
    ConfigurationError,
    InvalidValueError,
    MissingIdentityError,
    PersistenceError,
    QueryBuilderError,
)
from tablespine.orm.column import ColumnDescriptor

if TYPE_CHECKING:
    from tablespine.orm.table import TableDescriptor


@dataclass(frozen=True)
class Statement:
    """Compiled SQL text and its positional parameters."""

    sql: str
    params: tuple[Any, ...] = ()
    columns: tuple[ColumnDescriptor, ...] = field(default=(), compare=False, repr=False)

    def __str__(self) -> str:
        return self.sql


@dataclass(frozen=True)
class OrderTerm:
    label: str
    descending: bool = False


class StatementCompiler:
    """Builds SQL for one :class:`TableDescriptor` in its dialect."""

    def __init__(self, table: TableDescriptor) -> None:
        self.table = table
        self.dialect = table.dialect

    # -- INSERT / upsert ---------------------------------------------------

    def save_columns(
        self,
        columns: Sequence[str] | None,
        include_identity: bool,
    ) -> tuple[list[ColumnDescriptor], list[ColumnDescriptor]]:
        """Return ``(insert_columns, update_columns)`` for a save.

        Without an explicit subset every column is written (the identity only
        if ``include_identity``) and every non-identity column is updated on
        conflict. With a subset, the written columns are the identity (if
        included), every column backing a unique key, every column without a
        DDL default, and the requested columns; only the requested columns
        are updated.
        """
        table = self.table
        if columns is None:
            insert_cols = [c for c in table.columns if include_identity or not c.identity]
            update_cols = [c for c in insert_cols if not c.identity]
            return insert_cols, update_cols

        requested = table.columns_for(columns)
        chosen: set[int] = set()
        if include_identity and table.identity is not None:
            chosen.add(id(table.identity))
        for key in table.unique_keys:
            chosen.update(id(c) for c in key.columns)
        for col in table.columns:
            if not col.identity and not col.has_default_value:
                chosen.add(id(col))
        chosen.update(id(c) for c in requested)
        insert_cols = [c for c in table.columns if id(c) in chosen]
        update_cols = [c for c in requested if not c.identity]
        return insert_cols, update_cols

    def build_upsert(
        self,
        rows: Sequence[Any],
        *,
        ignore_duplicates: bool = False,
        update_on_conflict: bool = True,
        columns: Sequence[str] | None = None,
        include_identity: bool | None = None,
    ) -> Statement:
        """Multi-row ``INSERT`` with optional ignore / on-conflict update."""
        if not rows:
            raise PersistenceError(f"Nothing to save into `{self.table.name}`")
        if include_identity is None:
            include_identity = update_on_conflict
        insert_cols, update_cols = self.save_columns(columns, include_identity)
        if not insert_cols:
            raise PersistenceError(f"No columns to save into `{self.table.name}`")

        d = self.dialect
        # an upsert with nothing to update degrades to insert-or-skip
        upsert = update_on_conflict and bool(update_cols)
        ignore = ignore_duplicates or (update_on_conflict and not update_cols)

        params: list[Any] = []
        tuples = []
        for row in rows:
            values = [c.save_fragment(row, params, d) for c in insert_cols]
            tuples.append("(" + ", ".join(values) + ")")

        names = ", ".join(c.quoted for c in insert_cols)
        sql = f"{d.insert_prefix(ignore)} {self.table.quoted} ({names}) VALUES {', '.join(tuples)}"
        if upsert:
            sql += d.upsert_clause([c.name for c in update_cols])
        if self.table.identity is not None:
            sql += d.returning_clause(self.table.identity.name)
        return Statement(sql, tuple(params), tuple(insert_cols))

    # -- UPDATE ------------------------------------------------------------

    def _require_identity(self) -> ColumnDescriptor:
        ident = self.table.identity
        if ident is None:
            raise ConfigurationError(
                f"Table `{self.table.name}` has no identity column"
            ).with_context(table=self.table.name)
        return ident

    def _identity_of(self, row: Any) -> int:
        ident = self._require_identity()
        value = ident.get(row)
        if value is None:
            raise MissingIdentityError(
                f"Row of `{self.table.name}` has no identity; save it first"
            ).with_context(table=self.table.name)
        return value

    def build_targeted_update(self, row: Any, columns: Sequence[str] | None = None) -> Statement:
        """``UPDATE ... SET ... WHERE `id` = ?`` for one row.

        With a version column, the counter is bumped and the ``WHERE`` clause
        also matches the row's current version.
        """
        ident = self._require_identity()
        ident_value = self._identity_of(row)
        version = self.table.version
        if columns is None:
            targets = [c for c in self.table.columns if not c.identity and c is not version]
        else:
            targets = [c for c in self.table.columns_for(columns) if not c.identity and c is not version]
        if not targets and version is None:
            raise QueryBuilderError(f"Nothing to update in `{self.table.name}`")

        d = self.dialect
        params: list[Any] = []
        sets = [f"{c.quoted} = {c.save_fragment(row, params, d)}" for c in targets]
        if version is not None:
            sets.append(f"{version.quoted} = COALESCE({version.quoted}, 0) + 1")

        params.append(ident_value)
        where = f" WHERE {ident.quoted} = {d.placeholder(len(params) - 1)}"
        if version is not None:
            current = version.get(row)
            if current is None:
                where += f" AND {version.quoted} IS NULL"
            else:
                params.append(current)
                where += f" AND {version.quoted} = {d.placeholder(len(params) - 1)}"
        sql = f"UPDATE {self.table.quoted} SET {', '.join(sets)}{where}"
        return Statement(sql, tuple(params), tuple(targets))

    def build_update(
        self,
        assignments: Sequence[str],
        assignment_params: Sequence[Any],
        where: str = "",
        where_params: Sequence[Any] = (),
    ) -> Statement:
        """``UPDATE`` with pre-rendered ``SET`` terms and a compiled predicate."""
        if not assignments:
            raise QueryBuilderError(f"Nothing to update in `{self.table.name}`")
        sql = f"UPDATE {self.table.quoted} SET {', '.join(assignments)}{where}"
        return Statement(sql, tuple(assignment_params) + tuple(where_params))

    # -- DELETE ------------------------------------------------------------

    def build_delete(self, ids: Iterable[Any]) -> str | None:
        """``DELETE ... WHERE `id` IN (...)``; None for an empty collection."""
        ident = self._require_identity()
        values = list(ids)
        if not values:
            return None
        literals = []
        for value in values:
            if value is None:
                raise MissingIdentityError(
                    f"Cannot delete a row of `{self.table.name}` without an identity"
                )
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidValueError(
                    f"Identity values must be integers, got {value!r}", value=value
                )
            literals.append(str(int(value)))
        return f"DELETE FROM {self.table.quoted} WHERE {ident.quoted} IN ({', '.join(literals)})"

    def build_delete_where(
        self,
        where: str = "",
        params: Sequence[Any] = (),
        limit: int = -1,
    ) -> Statement:
        """``DELETE`` by predicate, optionally limited."""
        sql = f"DELETE FROM {self.table.quoted}{where}"
        if limit > 0:
            if self.dialect.supports_delete_limit:
                sql += f" LIMIT {int(limit)}"
            else:
                ident = self._require_identity()
                sql = (
                    f"DELETE FROM {self.table.quoted} WHERE {ident.quoted} IN "
                    f"(SELECT {ident.quoted} FROM {self.table.quoted}{where} LIMIT {int(limit)})"
                )
        return Statement(sql, tuple(params))

    # -- SELECT ------------------------------------------------------------

    def build_select(
        self,
        where: str = "",
        params: Sequence[Any] = (),
        *,
        projection: Sequence[str] | None = None,
        order_by: Sequence[OrderTerm] = (),
        limit: int = -1,
        offset: int = -1,
    ) -> Statement:
        """``SELECT`` with projection, ``ORDER BY`` and paging."""
        if projection:
            selected = self.table.columns_for(projection)
            columns = ", ".join(c.quoted for c in selected)
        else:
            selected = list(self.table.columns)
            columns = "*"
        sql = f"SELECT {columns} FROM {self.table.quoted}{where}"
        if order_by:
            terms = [
                f"{self.table.column(t.label).quoted} {'DESC' if t.descending else 'ASC'}"
                for t in order_by
            ]
            sql += " ORDER BY " + ", ".join(terms)
        if limit > 0:
            sql += f" LIMIT {int(limit)}"
            if offset >= 0:
                sql += f" OFFSET {int(offset)}"
        return Statement(sql, tuple(params), tuple(selected))

    def build_count(self, where: str = "", params: Sequence[Any] = ()) -> Statement:
        return Statement(f"SELECT count(*) `row_count` FROM {self.table.quoted}{where}", tuple(params))

    def build_find_by_id(self, ident: int) -> Statement:
        col = self._require_identity()
        sql = f"SELECT * FROM {self.table.quoted} WHERE {col.quoted} = {self.dialect.placeholder(0)}"
        return Statement(sql, (ident,))


__all__ = ["OrderTerm", "Statement", "StatementCompiler"]
