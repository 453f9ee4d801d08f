"""
Connection protocol for table-spine.

The ORM core never touches a DB-API driver directly. Every adapter
(``SqliteConnection``, ``MySQLConnection``) satisfies this structural
protocol, and the coordinator hands one of them to the compiler's callers.

Architecture:
    ::

        Connection Protocol:
        ┌────────────────────────────────────────────────────────┐
        │ execute(sql, params)   → Execute single statement      │
        │ fetchone()             → One row as a dict (or None)   │
        │ fetchall()             → All rows as dicts             │
        │ rowcount / lastrowid   → Result of the last statement  │
        │ is_valid(timeout)      → Cheap liveness probe          │
        │ commit() / close()                                     │
        └────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Share one Connection between two threads
    ✅ DO: Let the Database coordinator pin one per thread role

Tags:
    protocol, connection, database, table-spine
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """Minimal synchronous connection used by the ORM core.

    Adapters run in autocommit mode; each statement is its own transaction.
    Rows come back as ``dict`` keyed by column label.
    """

    def execute(self, sql: str, params: tuple | list = ()) -> Any:
        """Execute one SQL statement with positional parameters."""
        ...

    def fetchone(self) -> dict[str, Any] | None:
        """Fetch one row from the last query."""
        ...

    def fetchall(self) -> list[dict[str, Any]]:
        """Fetch all remaining rows from the last query."""
        ...

    @property
    def rowcount(self) -> int:
        """Rows affected by the last statement (-1 if unknown)."""
        ...

    @property
    def lastrowid(self) -> int | None:
        """Identity generated by the last single-row insert."""
        ...

    def is_valid(self, timeout: float = 1.0) -> bool:
        """Return True if the connection is still usable."""
        ...

    def commit(self) -> None:
        """Commit (no-op for autocommit adapters)."""
        ...

    def close(self) -> None:
        """Close the underlying driver connection."""
        ...


__all__ = ["Connection"]
