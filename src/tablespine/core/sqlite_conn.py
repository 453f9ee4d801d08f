"""SQLite connection adapter.

Wraps a raw :class:`sqlite3.Connection` to satisfy the
:class:`~tablespine.core.protocols.Connection` protocol.

The adapter runs in autocommit mode (``isolation_level=None``) so every
statement is its own transaction, returns rows as plain dicts, and turns
``sqlite3.Error`` into :class:`~tablespine.core.errors.PersistenceError`
carrying the failed SQL.

Usage::

    from tablespine.core.sqlite_conn import SqliteConnection

    conn = SqliteConnection(":memory:")
    conn.execute("CREATE TABLE t (id INTEGER)")
    conn.execute("INSERT INTO t VALUES (?)", (1,))
    conn.execute("SELECT * FROM t")
    conn.fetchone()                # {'id': 1}
    conn.close()
"""

from __future__ import annotations

import sqlite3
from collections import deque
from typing import Any

from tablespine.core.errors import DatabaseConnectionError, ErrorContext, PersistenceError


class SqliteConnection:
    """Adapter: ``sqlite3.Connection`` → ``Connection`` protocol.

    Result rows are read eagerly by ``execute``, so no statement stays open
    (and holds a read lock) between calls; ``fetchone`` / ``fetchall``
    consume that buffer.
    """

    def __init__(self, path: str = ":memory:", *, uri: bool = False, timeout: float = 30.0) -> None:
        try:
            self._conn = sqlite3.connect(
                path,
                check_same_thread=False,
                isolation_level=None,
                timeout=timeout,
                uri=uri,
            )
        except sqlite3.Error as e:
            raise DatabaseConnectionError(
                f"Cannot open SQLite database {path!r}: {e}",
                context=ErrorContext(database=path),
                cause=e,
            ) from e
        self._conn.row_factory = sqlite3.Row
        self._cursor = self._conn.cursor()
        self._rows: deque[dict[str, Any]] = deque()
        self._path = path

    # -- Connection protocol -----------------------------------------------

    def execute(self, sql: str, params: tuple | list = ()) -> Any:
        self._rows.clear()
        try:
            self._cursor.execute(sql, tuple(params))
            rows = self._cursor.fetchall() if self._cursor.description is not None else []
        except sqlite3.Error as e:
            raise PersistenceError(
                str(e),
                context=ErrorContext(sql=sql, database=self._path),
                cause=e,
            ) from e
        self._rows.extend(dict(row) for row in rows)
        return self._cursor

    def fetchone(self) -> dict[str, Any] | None:
        return self._rows.popleft() if self._rows else None

    def fetchall(self) -> list[dict[str, Any]]:
        rows = list(self._rows)
        self._rows.clear()
        return rows

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount

    @property
    def lastrowid(self) -> int | None:
        return self._cursor.lastrowid

    def is_valid(self, timeout: float = 1.0) -> bool:  # noqa: ARG002
        try:
            self._conn.execute("SELECT 1").fetchone()
        except sqlite3.Error:
            return False
        return True

    def commit(self) -> None:
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # -- convenience -------------------------------------------------------

    @property
    def raw(self) -> sqlite3.Connection:
        """Access the underlying ``sqlite3.Connection`` (e.g. for pragmas)."""
        return self._conn

    def __repr__(self) -> str:
        return f"SqliteConnection({self._path!r})"
