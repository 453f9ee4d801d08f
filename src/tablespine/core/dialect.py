"""SQL dialect abstraction for the table-spine statement compiler.

The compiler builds every statement from the same column/table metadata and
asks a ``Dialect`` for the handful of fragments that differ between backends:
placeholders, insert-or-ignore prefixes, upsert clauses, identity DDL, key
clauses and generated-key retrieval.

Manifesto:
    MySQL is the reference backend: its ``ON DUPLICATE KEY UPDATE`` upsert and
    ``AUTO_INCREMENT`` identity shape the statements. SQLite is supported for
    embedded use and tests with the closest equivalent syntax.

    - **One interface:** Dialect protocol for every backend-specific fragment
    - **Zero coupling:** The compiler never imports a database driver
    - **Same quoting:** Both backends accept backtick-quoted identifiers

Architecture::

    StatementCompiler / TableDescriptor
              │  placeholder(), insert_prefix(), upsert_clause(), ...
              ▼
    ┌─────────────────────────────┐ ┌──────────────────────────────────┐
    │ MySQLDialect                │ │ SQLiteDialect                    │
    │ %s                          │ │ ?                                │
    │ INSERT IGNORE               │ │ INSERT OR IGNORE                 │
    │ ON DUPLICATE KEY UPDATE     │ │ ON CONFLICT DO UPDATE SET        │
    │ AUTO_INCREMENT + PRIMARY KEY│ │ INTEGER PRIMARY KEY AUTOINCREMENT│
    │ keys from lastrowid         │ │ keys from RETURNING              │
    └─────────────────────────────┘ └──────────────────────────────────┘

Examples:
    >>> d = get_dialect("mysql")
    >>> d.upsert_clause(["name", "age"])
    ' ON DUPLICATE KEY UPDATE `name`=VALUES(`name`), `age`=VALUES(`age`)'
    >>> get_dialect("sqlite").insert_prefix(ignore=True)
    'INSERT OR IGNORE INTO'

Tags:
    dialect, sql, abstraction, portability, mysql, sqlite, table-spine

Doc-Types:
    - API Reference
    - Database Portability Guide
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from typing import Any, Protocol, runtime_checkable

from tablespine.core.errors import ConfigurationError


def quote_identifier(name: str) -> str:
    """Backtick-quote a table or column name."""
    return "`" + name.replace("`", "``") + "`"


@runtime_checkable
class Dialect(Protocol):
    """SQL dialect contract.

    Methods return SQL fragments (strings) that the compiler splices into its
    statement templates, or ``None`` where a backend has no equivalent.
    """

    @property
    def name(self) -> str:
        """Dialect name (``'mysql'``, ``'sqlite'``)."""
        ...

    @property
    def inline_primary_key(self) -> bool:
        """True if the identity column's DDL already declares the primary key."""
        ...

    @property
    def supports_delete_limit(self) -> bool:
        """True if ``DELETE ... LIMIT n`` is valid."""
        ...

    # -- Placeholders / quoting --------------------------------------------

    def placeholder(self, index: int) -> str:
        """Single positional placeholder (0-based index)."""
        ...

    def quote(self, name: str) -> str:
        """Quote an identifier."""
        ...

    # -- DML ---------------------------------------------------------------

    def insert_prefix(self, ignore: bool) -> str:
        """``INSERT INTO`` or the backend's insert-or-skip form."""
        ...

    def upsert_clause(self, columns: Sequence[str]) -> str:
        """Conflict clause updating ``columns`` from the incoming row."""
        ...

    def returning_clause(self, identity: str) -> str:
        """Clause returning generated identities, or ``''``."""
        ...

    def generated_keys(self, conn: Any, identity: str, pending: int) -> list[int]:
        """Read generated identities after an insert, in statement order."""
        ...

    def adapt(self, value: Any) -> Any:
        """Convert a bound parameter to something the driver accepts."""
        ...

    # -- DDL ---------------------------------------------------------------

    def identity_definition(self, sql_type: str) -> str:
        """Column definition (after the name) for an identity column."""
        ...

    def key_clause(self, name: str, unique: bool, columns: Sequence[str]) -> str | None:
        """Inline ``CREATE TABLE`` clause for a key, or None if emitted separately."""
        ...

    def index_statement(self, table: str, name: str, columns: Sequence[str]) -> str | None:
        """Separate ``CREATE INDEX`` statement for a non-unique key, if needed."""
        ...

    def add_column_position(self, previous: str | None) -> str:
        """Positioning suffix for ``ALTER TABLE ... ADD COLUMN``."""
        ...


# =========================================================================
# Concrete Dialect Implementations
# =========================================================================


class MySQLDialect:
    """MySQL dialect: ``%s`` placeholders, ``ON DUPLICATE KEY UPDATE``.

    Matches ``mysql.connector`` (``format`` paramstyle).
    """

    @property
    def name(self) -> str:
        return "mysql"

    @property
    def inline_primary_key(self) -> bool:
        return False

    @property
    def supports_delete_limit(self) -> bool:
        return True

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def quote(self, name: str) -> str:
        return quote_identifier(name)

    def insert_prefix(self, ignore: bool) -> str:
        return "INSERT IGNORE INTO" if ignore else "INSERT INTO"

    def upsert_clause(self, columns: Sequence[str]) -> str:
        updates = ", ".join(f"{self.quote(c)}=VALUES({self.quote(c)})" for c in columns)
        return f" ON DUPLICATE KEY UPDATE {updates}"

    def returning_clause(self, identity: str) -> str:  # noqa: ARG002
        return ""

    def generated_keys(self, conn: Any, identity: str, pending: int) -> list[int]:  # noqa: ARG002
        # LAST_INSERT_ID() is the first id of a multi-row insert; the rest are
        # consecutive under the default auto-increment lock mode.
        first = conn.lastrowid
        if not first or pending <= 0:
            return []
        count = pending
        if conn.rowcount is not None and 0 <= conn.rowcount < pending:
            count = conn.rowcount
        return [first + i for i in range(count)]

    def adapt(self, value: Any) -> Any:
        return value

    def identity_definition(self, sql_type: str) -> str:
        return f"{sql_type} NOT NULL AUTO_INCREMENT"

    def key_clause(self, name: str, unique: bool, columns: Sequence[str]) -> str | None:
        cols = ", ".join(self.quote(c) for c in columns)
        kind = "UNIQUE KEY" if unique else "KEY"
        return f"{kind} {self.quote(name)} ({cols})"

    def index_statement(self, table: str, name: str, columns: Sequence[str]) -> str | None:  # noqa: ARG002
        return None

    def add_column_position(self, previous: str | None) -> str:
        if previous is None:
            return " FIRST"
        return f" AFTER {self.quote(previous)}"


class SQLiteDialect:
    """SQLite dialect: ``?`` placeholders, ``ON CONFLICT DO UPDATE``, ``RETURNING``.

    Needs SQLite 3.35+ (upsert without a conflict target, ``RETURNING``).
    """

    @property
    def name(self) -> str:
        return "sqlite"

    @property
    def inline_primary_key(self) -> bool:
        return True

    @property
    def supports_delete_limit(self) -> bool:
        return False

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def quote(self, name: str) -> str:
        return quote_identifier(name)

    def insert_prefix(self, ignore: bool) -> str:
        return "INSERT OR IGNORE INTO" if ignore else "INSERT INTO"

    def upsert_clause(self, columns: Sequence[str]) -> str:
        updates = ", ".join(f"{self.quote(c)}=excluded.{self.quote(c)}" for c in columns)
        return f" ON CONFLICT DO UPDATE SET {updates}"

    def returning_clause(self, identity: str) -> str:
        return f" RETURNING {self.quote(identity)}"

    def generated_keys(self, conn: Any, identity: str, pending: int) -> list[int]:  # noqa: ARG002
        return [row[identity] for row in conn.fetchall()]

    def adapt(self, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat(sep=" ")
        if isinstance(value, date):
            return value.isoformat()
        return value

    def identity_definition(self, sql_type: str) -> str:  # noqa: ARG002
        return "INTEGER PRIMARY KEY AUTOINCREMENT"

    def key_clause(self, name: str, unique: bool, columns: Sequence[str]) -> str | None:
        if not unique:
            return None
        cols = ", ".join(self.quote(c) for c in columns)
        return f"CONSTRAINT {self.quote(name)} UNIQUE ({cols})"

    def index_statement(self, table: str, name: str, columns: Sequence[str]) -> str | None:
        cols = ", ".join(self.quote(c) for c in columns)
        # index names share one namespace per SQLite database
        index_name = self.quote(f"{table}_{name}")
        return f"CREATE INDEX IF NOT EXISTS {index_name} ON {self.quote(table)} ({cols})"

    def add_column_position(self, previous: str | None) -> str:  # noqa: ARG002
        return ""


# =========================================================================
# Registry / Factory
# =========================================================================

_DIALECTS: dict[str, Dialect] = {
    "mysql": MySQLDialect(),
    "sqlite": SQLiteDialect(),
}


def get_dialect(db_type: str) -> Dialect:
    """Get a dialect by backend name.

    Raises:
        ConfigurationError: If ``db_type`` is not registered.
    """
    key = db_type.lower()
    if key not in _DIALECTS:
        raise ConfigurationError(
            f"Unknown dialect '{db_type}'. Supported: {sorted(_DIALECTS)}"
        )
    return _DIALECTS[key]


def register_dialect(name: str, dialect: Dialect) -> None:
    """Register a custom dialect implementation (lookup key is lower-cased)."""
    _DIALECTS[name.lower()] = dialect


__all__ = [
    "Dialect",
    "MySQLDialect",
    "SQLiteDialect",
    "get_dialect",
    "register_dialect",
    "quote_identifier",
]
