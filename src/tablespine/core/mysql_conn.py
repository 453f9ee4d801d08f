"""MySQL connection adapter built on ``mysql-connector-python``.

The driver is imported when the first MySQL connection is opened, so
SQLite-only deployments never need it. Install with
``pip install table-spine[mysql]``.

MySQL uses **format** (``%s``) placeholder style.
"""

from __future__ import annotations

from typing import Any

from tablespine.core.errors import (
    ConfigurationError,
    DatabaseConnectionError,
    ErrorContext,
    PersistenceError,
)

# CR_CONN_HOST_ERROR, CR_SERVER_GONE_ERROR, CR_SERVER_LOST, ER_CON_COUNT_ERROR
CONNECTION_LOST_CODES = frozenset({2003, 2006, 2013, 1040})


class MySQLConnection:
    """Adapter: ``mysql.connector`` connection → ``Connection`` protocol.

    Autocommit is on; the cursor is buffered and returns dict rows.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int,
        user: str,
        password: str,
        database: str,
        timeout: float = 10.0,
    ) -> None:
        try:
            import mysql.connector
            from mysql.connector.constants import ClientFlag
        except ImportError:
            raise ConfigurationError(
                "mysql-connector-python is required for MySQL. "
                "Install with: pip install table-spine[mysql]"
            ) from None

        self._driver = mysql.connector
        self._database = database
        try:
            self._conn = mysql.connector.connect(
                host=host,
                port=port,
                user=user,
                password=password,
                database=database,
                autocommit=True,
                charset="utf8mb4",
                connection_timeout=max(1, int(timeout)),
                # rowcount reports matched rows, not only changed ones
                client_flags=[ClientFlag.FOUND_ROWS],
            )
        except mysql.connector.Error as e:
            raise DatabaseConnectionError(
                f"Cannot connect to MySQL at {host}:{port}/{database}: {e}",
                context=ErrorContext(database=database),
                cause=e,
            ) from e
        self._cursor = self._conn.cursor(dictionary=True, buffered=True)

    # -- Connection protocol -----------------------------------------------

    def execute(self, sql: str, params: tuple | list = ()) -> Any:
        # no params: skip %-interpolation so literal '%' in raw SQL survives
        args = tuple(params) if params else None
        try:
            self._cursor.execute(sql, args)
        except self._driver.Error as e:
            error_class = PersistenceError
            if e.errno in CONNECTION_LOST_CODES:
                error_class = DatabaseConnectionError
            raise error_class(
                str(e), context=ErrorContext(sql=sql, database=self._database), cause=e
            ) from e
        return self._cursor

    def fetchone(self) -> dict[str, Any] | None:
        if not self._cursor.with_rows:
            return None
        return self._cursor.fetchone()

    def fetchall(self) -> list[dict[str, Any]]:
        if not self._cursor.with_rows:
            return []
        return list(self._cursor.fetchall())

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount

    @property
    def lastrowid(self) -> int | None:
        return self._cursor.lastrowid

    def is_valid(self, timeout: float = 1.0) -> bool:  # noqa: ARG002
        try:
            return self._conn.is_connected()
        except self._driver.Error:
            return False

    def commit(self) -> None:
        self._conn.commit()

    def close(self) -> None:
        if self._conn.is_connected():
            self._cursor.close()
            self._conn.close()

    def __repr__(self) -> str:
        return f"MySQLConnection(database={self._database!r})"
