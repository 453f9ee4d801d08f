"""
Predicate builder: a mutable condition tree compiled to a WHERE clause.

Manifesto:
    Dynamic filters are built term by term and compiled once into SQL text
    plus a positional parameter list. Values are always bound, never
    interpolated; entity references are bound as their identity.

Architecture:
    ::

        Predicate(table)
          .eq("name", "Ann")            Comparison(`name` = ?)
          .and_().gt("age", 30)         Comparison(`age` > ?)
          .or_().group(lambda p: ...)   ConditionList(...)
              │
              ▼ compile()
        (" WHERE `name` = ? AND `age` > ? OR (...)", ["Ann", 30, ...])

    Each nesting level keeps its own current conjunction. It starts as AND;
    ``or_()`` switches it for every term added afterwards at that level until
    ``and_()`` switches it back. Closing a group restores the enclosing
    level's conjunction. Terms are joined left to right, so standard SQL
    precedence (AND before OR) applies to the result; use groups to be
    explicit.

Examples:
    >>> p = Predicate(players).eq("name", "Ann").and_().gt("age", 30)
    >>> p.compile()
    (' WHERE `name` = ? AND `age` > ?', ['Ann', 30])
    >>> Predicate(players).in_("id", []).compile()
    (' WHERE `id` != `id`', [])

Guardrails:
    ❌ DON'T: Add terms after compile()
    ✅ DO: Build a new Predicate (or Finder) per query

Tags:
    predicate, where-clause, query-builder, orm, table-spine
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from tablespine.core.dialect import Dialect
from tablespine.core.errors import InvalidValueError, QueryBuilderError
from tablespine.orm.column import ColumnDescriptor

if TYPE_CHECKING:
    from tablespine.orm.table import TableDescriptor

P = TypeVar("P", bound="Predicate")


class Operator(str, Enum):
    """Comparison operators."""

    EQ = "="
    NEQ = "!="
    LT = "<"
    GT = ">"
    LTE = "<="
    GTE = ">="
    LIKE = "LIKE"
    BETWEEN = "BETWEEN"
    IN = "IN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"


class Conjunction(str, Enum):
    AND = "AND"
    OR = "OR"


@dataclass
class Comparison:
    """One comparison against a column; values are already driver-ready."""

    column: ColumnDescriptor
    operator: Operator
    value: Any = None
    upper: Any = None
    literal: bool = False

    def compile(self, dialect: Dialect, params: list[Any]) -> str:
        name = self.column.quoted
        op = self.operator
        if op in (Operator.IS_NULL, Operator.IS_NOT_NULL):
            return f"{name} {op.value}"
        if self.literal:
            return f"{name} {op.value} {int(self.value)}"
        if op is Operator.IN:
            if not self.value:
                return f"{name} != {name}"
            holders = []
            for item in self.value:
                params.append(item)
                holders.append(dialect.placeholder(len(params) - 1))
            return f"{name} IN ({', '.join(holders)})"
        if op is Operator.BETWEEN:
            params.append(self.value)
            low = dialect.placeholder(len(params) - 1)
            params.append(self.upper)
            high = dialect.placeholder(len(params) - 1)
            return f"{name} BETWEEN {low} AND {high}"
        params.append(self.value)
        return f"{name} {op.value} {dialect.placeholder(len(params) - 1)}"


@dataclass
class ConditionList:
    """Ordered children, each joined to its predecessor by a conjunction."""

    children: list[tuple[Conjunction, Comparison | ConditionList]] = field(default_factory=list)

    def is_empty(self) -> bool:
        return all(
            isinstance(node, ConditionList) and node.is_empty() for _, node in self.children
        )

    def compile(self, dialect: Dialect, params: list[Any]) -> str:
        parts: list[str] = []
        for conjunction, node in self.children:
            if isinstance(node, ConditionList):
                if node.is_empty():
                    continue
                text = node.compile(dialect, params)
                if node.effective_size() > 1:
                    text = f"({text})"
            else:
                text = node.compile(dialect, params)
            if parts:
                parts.append(conjunction.value)
            parts.append(text)
        return " ".join(parts)

    def effective_size(self) -> int:
        return sum(
            1
            for _, node in self.children
            if not (isinstance(node, ConditionList) and node.is_empty())
        )


class Predicate:
    """Fluent builder for a table's WHERE clause.

    Column labels are field names or storage names (exact match); anything
    else raises :class:`~tablespine.core.errors.UnknownColumnError`.
    """

    def __init__(self, table: TableDescriptor) -> None:
        self.table = table
        self._root = ConditionList()
        self._levels: list[ConditionList] = [self._root]
        self._conjunctions: list[Conjunction] = [Conjunction.AND]
        self._compiled: tuple[str, list[Any]] | None = None

    # -- structure ---------------------------------------------------------

    def _check_mutable(self) -> None:
        if self._compiled is not None:
            raise QueryBuilderError(
                f"Predicate on `{self.table.name}` was already compiled; build a new one"
            )

    def _add(self: P, node: Comparison | ConditionList) -> P:
        self._check_mutable()
        self._levels[-1].children.append((self._conjunctions[-1], node))
        return self

    def and_(self: P) -> P:
        """Join subsequent terms at this level with AND (the default)."""
        self._check_mutable()
        self._conjunctions[-1] = Conjunction.AND
        return self

    def or_(self: P) -> P:
        """Join subsequent terms at this level with OR."""
        self._check_mutable()
        self._conjunctions[-1] = Conjunction.OR
        return self

    def open_paren(self: P) -> P:
        group = ConditionList()
        self._add(group)
        self._levels.append(group)
        self._conjunctions.append(Conjunction.AND)
        return self

    def close_paren(self: P) -> P:
        self._check_mutable()
        if len(self._levels) == 1:
            raise QueryBuilderError("close_paren() without a matching open_paren()")
        self._levels.pop()
        self._conjunctions.pop()
        return self

    def group(self: P, build: Callable[[P], Any]) -> P:
        """Add a parenthesized group built by ``build(self)``."""
        self.open_paren()
        build(self)
        return self.close_paren()

    def include(self: P, other: Predicate) -> P:
        """Add every term of ``other`` as one group at the current level."""
        if other.table is not self.table:
            raise QueryBuilderError(
                f"Cannot combine predicates on `{other.table.name}` and `{self.table.name}`"
            )
        if len(other._levels) > 1:
            raise QueryBuilderError("Included predicate has unclosed open_paren() calls")
        return self._add(other._root)

    # -- comparisons -------------------------------------------------------

    def _bind(self, col: ColumnDescriptor, value: Any) -> Any:
        return col.to_db(value, self.table.dialect)

    def _compare(self: P, label: str, operator: Operator, value: Any) -> P:
        col = self.table.column(label)
        if value is None:
            raise QueryBuilderError(
                f"Cannot compare `{col.name}` {operator.value} NULL; use is_null()/is_not_null()",
                field=label,
            )
        return self._add(Comparison(col, operator, self._bind(col, value)))

    def eq(self: P, label: str, value: Any) -> P:
        if value is None:
            return self.is_null(label)
        return self._compare(label, Operator.EQ, value)

    def neq(self: P, label: str, value: Any) -> P:
        if value is None:
            return self.is_not_null(label)
        return self._compare(label, Operator.NEQ, value)

    def lt(self: P, label: str, value: Any) -> P:
        return self._compare(label, Operator.LT, value)

    def gt(self: P, label: str, value: Any) -> P:
        return self._compare(label, Operator.GT, value)

    def lte(self: P, label: str, value: Any) -> P:
        return self._compare(label, Operator.LTE, value)

    def gte(self: P, label: str, value: Any) -> P:
        return self._compare(label, Operator.GTE, value)

    def like(self: P, label: str, pattern: str) -> P:
        if not isinstance(pattern, str):
            raise InvalidValueError(f"like() expects a string pattern, got {pattern!r}", field=label, value=pattern)
        col = self.table.column(label)
        return self._add(Comparison(col, Operator.LIKE, pattern))

    def between(self: P, label: str, low: Any, high: Any) -> P:
        col = self.table.column(label)
        if low is None or high is None:
            raise QueryBuilderError(f"between() bounds for `{col.name}` cannot be None", field=label)
        return self._add(Comparison(col, Operator.BETWEEN, self._bind(col, low), self._bind(col, high)))

    def in_(self: P, label: str, values: Iterable[Any]) -> P:
        col = self.table.column(label)
        bound = []
        for value in values:
            if value is None:
                raise QueryBuilderError(f"in_() values for `{col.name}` cannot contain None", field=label)
            bound.append(self._bind(col, value))
        return self._add(Comparison(col, Operator.IN, bound))

    def is_null(self: P, label: str) -> P:
        return self._add(Comparison(self.table.column(label), Operator.IS_NULL))

    def is_not_null(self: P, label: str) -> P:
        return self._add(Comparison(self.table.column(label), Operator.IS_NOT_NULL))

    def id_eq(self: P, ident: int) -> P:
        """Match the identity column against an integer literal."""
        col = self.table.compiler._require_identity()
        if isinstance(ident, bool) or not isinstance(ident, int):
            raise InvalidValueError(f"id_eq() expects an int, got {ident!r}", value=ident)
        return self._add(Comparison(col, Operator.EQ, ident, literal=True))

    # -- compilation -------------------------------------------------------

    @property
    def is_empty(self) -> bool:
        return self._root.is_empty()

    def compile(self) -> tuple[str, list[Any]]:
        """Return ``(" WHERE ...", params)``, or ``("", [])`` with no terms."""
        if self._compiled is not None:
            text, params = self._compiled
            return text, list(params)
        if len(self._levels) > 1:
            raise QueryBuilderError(f"{len(self._levels) - 1} unclosed open_paren() call(s)")
        params: list[Any] = []
        text = self._root.compile(self.table.dialect, params)
        where = f" WHERE {text}" if text else ""
        self._compiled = (where, params)
        return where, list(params)


__all__ = ["Comparison", "ConditionList", "Conjunction", "Operator", "Predicate"]
