"""Updater: column assignments against a row or an arbitrary predicate.

    db.updater(Account).row(account).add("balance", 25).sync()
    db.updater(Account).set("frozen", True).where(lambda p: p.lt("balance", 0)).sync()

``atomic(col, value)`` is a compare-and-set: the statement only matches if the
column still holds the row's current in-memory value. After a successful
``sync()`` the attached row receives the ``set``/``atomic`` values; arithmetic
results are computed by the server and are not mirrored back.
"""

from __future__ import annotations

import numbers
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar, overload

from tablespine.core.errors import InvalidValueError, MissingIdentityError, QueryBuilderError
from tablespine.orm.column import ColumnDescriptor
from tablespine.orm.predicate import Predicate

if TYPE_CHECKING:
    from tablespine.core.protocols import Connection
    from tablespine.database import Database, ExecutionContext
    from tablespine.orm.statements import Statement
    from tablespine.orm.table import TableDescriptor

E = TypeVar("E")


class Operation(str, Enum):
    SET = "="
    SET_ATOMIC = "=="
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    UPDATE = "!"

    @property
    def is_arithmetic(self) -> bool:
        return self in (Operation.ADD, Operation.SUBTRACT, Operation.MULTIPLY, Operation.DIVIDE)


@dataclass(frozen=True)
class Assignment:
    column: ColumnDescriptor
    operation: Operation
    value: Any = None


class Updater(Generic[E]):
    """Builds and runs one ``UPDATE`` statement."""

    def __init__(
        self,
        database: Database,
        table: TableDescriptor,
        context: ExecutionContext | None = None,
    ) -> None:
        self.database = database
        self.table = table
        self.context = context
        self.instance: E | None = None
        self.assignments: list[Assignment] = []
        self._where: Predicate | None = None

    def row(self, instance: E) -> Updater[E]:
        self.instance = instance
        return self

    def _assign(self, label: str, operation: Operation, value: Any = None) -> Updater[E]:
        self.assignments.append(Assignment(self.table.column(label), operation, value))
        return self

    def set(self, label: str, value: Any) -> Updater[E]:
        return self._assign(label, Operation.SET, value)

    def atomic(self, label: str, value: Any) -> Updater[E]:
        """Set ``label`` only where it still holds the attached row's current value."""
        return self._assign(label, Operation.SET_ATOMIC, value)

    def _arithmetic(self, label: str, operation: Operation, value: Any) -> Updater[E]:
        if isinstance(value, bool) or not isinstance(value, numbers.Number):
            raise InvalidValueError(
                f"{operation.name.lower()}() expects a number, got {value!r}",
                field=label,
                value=value,
            )
        col = self.table.column(label)
        if not col.kind.is_numeric:
            raise QueryBuilderError(
                f"Column `{col.name}` is not numeric ({col.kind.value})", field=label
            )
        return self._assign(label, operation, value)

    def add(self, label: str, value: Any) -> Updater[E]:
        return self._arithmetic(label, Operation.ADD, value)

    def subtract(self, label: str, value: Any) -> Updater[E]:
        return self._arithmetic(label, Operation.SUBTRACT, value)

    def multiply(self, label: str, value: Any) -> Updater[E]:
        return self._arithmetic(label, Operation.MULTIPLY, value)

    def divide(self, label: str, value: Any) -> Updater[E]:
        return self._arithmetic(label, Operation.DIVIDE, value)

    def update(self, *labels: str) -> Updater[E]:
        """Copy the attached row's current values of ``labels``."""
        for label in labels:
            self._assign(label, Operation.UPDATE)
        return self

    @overload
    def where(self) -> Predicate: ...

    @overload
    def where(self, build: Callable[[Predicate], Any]) -> Updater[E]: ...

    def where(self, build: Callable[[Predicate], Any] | None = None) -> Predicate | Updater[E]:
        """The extra filter; with ``build``, apply it and return the updater."""
        if self._where is None:
            self._where = Predicate(self.table)
        if build is None:
            return self._where
        build(self._where)
        return self

    # -- compilation -------------------------------------------------------

    def statement(self) -> Statement:
        if not self.assignments:
            raise QueryBuilderError(f"Updater on `{self.table.name}` has no values to set")
        dialect = self.table.dialect
        instance = self.instance

        sets: list[str] = []
        params: list[Any] = []
        for a in self.assignments:
            name = a.column.quoted
            if a.operation is Operation.UPDATE:
                if instance is None:
                    raise QueryBuilderError(
                        f"update('{a.column.field_name}') needs a row; call row() first"
                    )
                sets.append(f"{name} = {a.column.save_fragment(instance, params, dialect)}")
            elif a.operation.is_arithmetic:
                params.append(a.value)
                sets.append(f"{name} = {name} {a.operation.value} {dialect.placeholder(len(params) - 1)}")
            else:
                sets.append(f"{name} = {a.column.set_fragment(a.value, params, dialect)}")

        conditions = Predicate(self.table)
        if instance is not None:
            ident = self.table.compiler._require_identity()
            ident_value = ident.get(instance)
            if ident_value is None:
                raise MissingIdentityError(
                    f"Row of `{self.table.name}` has no identity; save it first"
                ).with_context(table=self.table.name)
            conditions.eq(ident.field_name, ident_value)
        for a in self.assignments:
            if a.operation is Operation.SET_ATOMIC:
                if instance is None:
                    raise QueryBuilderError(
                        f"atomic('{a.column.field_name}') needs a row; call row() first"
                    )
                conditions.eq(a.column.field_name, a.column.get(instance))
        if self._where is not None:
            conditions.include(self._where)

        where, where_params = conditions.compile()
        return self.table.compiler.build_update(sets, params, where, where_params)

    # -- execution ---------------------------------------------------------

    def _sync(self, connection: Connection) -> bool:
        stmt = self.statement()
        self.database.log_sql(stmt.sql, stmt.params)
        connection.execute(stmt.sql, stmt.params)
        if connection.rowcount <= 0:
            return False
        if self.instance is not None:
            for a in self.assignments:
                if a.operation in (Operation.SET, Operation.SET_ATOMIC):
                    a.column.set(self.instance, a.value)
        return True

    def sync(self) -> bool:
        """Run the update; True if at least one row matched."""
        return self._sync(self.database.connection(self.context))

    def run_async(self, callback: Callable[[bool], Any] | None = None) -> None:
        self.database.run_async(self._sync, callback)


__all__ = ["Assignment", "Operation", "Updater"]
