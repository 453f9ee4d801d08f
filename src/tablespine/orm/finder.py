"""Finder: a predicate plus projection, ordering and paging, bound to a database.

    players = db.find(Player).eq("team", "red").or_().gt("score", 90)
    top = players.order_by_descending("score").limit(10).find_list()

Every result method has an ``*_async`` twin that runs the same query on the
database's async worker and hands the result to a callback.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from tablespine.core.errors import QueryBuilderError
from tablespine.orm.predicate import Predicate
from tablespine.orm.statements import OrderTerm, Statement

if TYPE_CHECKING:
    from tablespine.core.protocols import Connection
    from tablespine.database import Database, ExecutionContext
    from tablespine.orm.table import TableDescriptor

E = TypeVar("E")


class Finder(Predicate, Generic[E]):
    """Query builder for one registered entity type."""

    def __init__(
        self,
        database: Database,
        table: TableDescriptor,
        context: ExecutionContext | None = None,
    ) -> None:
        super().__init__(table)
        self.database = database
        self.context = context
        self._projection: list[str] | None = None
        self._order: list[OrderTerm] = []
        self._limit = -1
        self._offset = -1

    # -- shaping -----------------------------------------------------------

    def where(self) -> Finder[E]:
        return self

    def select(self, *labels: str) -> Finder[E]:
        """Restrict the selected columns; unselected fields keep their defaults."""
        if not labels:
            raise QueryBuilderError("select() needs at least one column")
        self.table.columns_for(labels)
        self._projection = list(labels)
        return self

    def order_by_ascending(self, label: str) -> Finder[E]:
        self.table.column(label)
        self._order.append(OrderTerm(label))
        return self

    def order_by_descending(self, label: str) -> Finder[E]:
        self.table.column(label)
        self._order.append(OrderTerm(label, descending=True))
        return self

    def limit(self, limit: int) -> Finder[E]:
        self._limit = limit
        return self

    def offset(self, offset: int) -> Finder[E]:
        self._offset = offset
        return self

    # -- statements --------------------------------------------------------

    def select_statement(
        self, projection: list[str] | None = None, limit: int | None = None
    ) -> Statement:
        where, params = self.compile()
        return self.table.compiler.build_select(
            where,
            params,
            projection=projection if projection is not None else self._projection,
            order_by=self._order,
            limit=self._limit if limit is None else limit,
            offset=self._offset,
        )

    def _execute(self, connection: Connection, stmt: Statement) -> None:
        self.database.log_sql(stmt.sql, stmt.params)
        connection.execute(stmt.sql, stmt.params)

    def _connection(self) -> Connection:
        return self.database.connection(self.context)

    # -- results -----------------------------------------------------------

    def _find_list(self, connection: Connection, limit: int | None = None) -> list[E]:
        stmt = self.select_statement(limit=limit)
        self._execute(connection, stmt)
        return [
            self.table.load_row(result, connection, stmt.columns)
            for result in connection.fetchall()
        ]

    def _find_unique(self, connection: Connection) -> E | None:
        rows = self._find_list(connection, limit=1)
        return rows[0] if rows else None

    def _find_values(
        self, connection: Connection, label: str, of_type: type | None
    ) -> list[Any]:
        col = self.table.column(label)
        stmt = self.select_statement(projection=[label])
        self._execute(connection, stmt)
        values = [col.from_db(result.get(col.name), connection) for result in connection.fetchall()]
        if of_type is not None:
            values = [v for v in values if isinstance(v, of_type)]
        return values

    def _count(self, connection: Connection) -> int:
        where, params = self.compile()
        stmt = self.table.compiler.build_count(where, params)
        self._execute(connection, stmt)
        result = connection.fetchone()
        return int(result["row_count"]) if result else 0

    def _delete(self, connection: Connection) -> int:
        where, params = self.compile()
        stmt = self.table.compiler.build_delete_where(where, params, self._limit)
        self._execute(connection, stmt)
        return connection.rowcount

    def find_list(self) -> list[E]:
        return self._find_list(self._connection())

    def find_unique(self) -> E | None:
        """First matching row (``LIMIT 1``), or None."""
        return self._find_unique(self._connection())

    def find_values(self, label: str, of_type: type | None = None) -> list[Any]:
        """Values of one column, optionally filtered to instances of ``of_type``."""
        return self._find_values(self._connection(), label, of_type)

    def count(self) -> int:
        return self._count(self._connection())

    def delete(self) -> int:
        """Delete matching rows (honoring ``limit``); returns the affected count."""
        return self._delete(self._connection())

    # -- async -------------------------------------------------------------

    def find_list_async(self, callback: Callable[[list[E]], Any] | None) -> None:
        self.database.run_async(self._find_list, callback)

    def find_unique_async(self, callback: Callable[[E | None], Any] | None) -> None:
        self.database.run_async(self._find_unique, callback)

    def find_values_async(
        self,
        label: str,
        callback: Callable[[list[Any]], Any] | None,
        of_type: type | None = None,
    ) -> None:
        self.table.column(label)
        self.database.run_async(lambda conn: self._find_values(conn, label, of_type), callback)

    def count_async(self, callback: Callable[[int], Any] | None) -> None:
        self.database.run_async(self._count, callback)

    def delete_async(self, callback: Callable[[int], Any] | None = None) -> None:
        self.database.run_async(self._delete, callback)


__all__ = ["Finder"]
