"""Connection factory: create database connections from URL strings.

This is the single entry point the coordinator uses to open (and re-open)
its pinned connections.

Supported URL schemes
---------------------
==========================  ==============================================  ============
Scheme                      Example                                         Backend
==========================  ==============================================  ============
``memory``                  ``memory`` or ``:memory:`` or ``None``          SQLite RAM
``sqlite``                  ``sqlite:///path/to/file.db``                   SQLite file
``sqlite`` (URI)            ``sqlite:///file:x?mode=memory&cache=shared``   SQLite URI
``(file path)``             ``./data/my.db``                                SQLite file
``mysql``                   ``mysql://user:pw@host:3306/db``                MySQL
``mysql+mysqlconnector``    ``mysql+mysqlconnector://user:pw@host/db``      MySQL
==========================  ==============================================  ============

Unknown schemes are a configuration error; there is no silent fallback.

Usage
-----
::

    from tablespine.core.connection import create_connection

    conn, info = create_connection("sqlite:///players.db")
    print(info)
    # ConnectionInfo(backend='sqlite', persistent=True, path='/srv/players.db')
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlsplit

from tablespine.core.dialect import Dialect, get_dialect
from tablespine.core.errors import ConfigurationError
from tablespine.core.logging import get_logger

logger = get_logger(__name__)


# ── ConnectionInfo ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class ConnectionInfo:
    """Metadata about a database connection."""

    backend: str
    """Backend identifier: ``"sqlite"`` or ``"mysql"``."""

    persistent: bool
    """Whether data survives process exit."""

    url: str
    """The original URL or path used to create the connection."""

    resolved_path: str | None = None
    """For file-based SQLite, the resolved absolute path."""

    def __repr__(self) -> str:
        parts = [f"backend={self.backend!r}", f"persistent={self.persistent}"]
        if self.resolved_path:
            parts.append(f"path={self.resolved_path!r}")
        else:
            parts.append(f"url={self.url!r}")
        return f"ConnectionInfo({', '.join(parts)})"

    @property
    def is_sqlite(self) -> bool:
        return self.backend == "sqlite"

    @property
    def is_mysql(self) -> bool:
        return self.backend == "mysql"

    @property
    def dialect(self) -> Dialect:
        return get_dialect(self.backend)


# ── Backends ─────────────────────────────────────────────────────────────


def _create_sqlite_memory(timeout: float) -> tuple[Any, ConnectionInfo]:
    from tablespine.core.sqlite_conn import SqliteConnection

    conn = SqliteConnection(":memory:", timeout=timeout)
    return conn, ConnectionInfo(backend="sqlite", persistent=False, url=":memory:")


def _create_sqlite_uri(uri: str, timeout: float) -> tuple[Any, ConnectionInfo]:
    from tablespine.core.sqlite_conn import SqliteConnection

    conn = SqliteConnection(uri, uri=True, timeout=timeout)
    persistent = "mode=memory" not in uri
    return conn, ConnectionInfo(backend="sqlite", persistent=persistent, url=uri)


def _create_sqlite_file(path_str: str, timeout: float) -> tuple[Any, ConnectionInfo]:
    from tablespine.core.sqlite_conn import SqliteConnection

    path = Path(path_str)
    path.parent.mkdir(parents=True, exist_ok=True)
    resolved = str(path.resolve())

    conn = SqliteConnection(resolved, timeout=timeout)
    info = ConnectionInfo(
        backend="sqlite",
        persistent=True,
        url=path_str,
        resolved_path=resolved,
    )
    return conn, info


def _create_mysql(url: str, timeout: float) -> tuple[Any, ConnectionInfo]:
    from tablespine.core.mysql_conn import MySQLConnection

    parts = urlsplit(url)
    database = parts.path.lstrip("/")
    if not database:
        raise ConfigurationError(f"MySQL URL has no database name: {url!r}")
    conn = MySQLConnection(
        host=parts.hostname or "127.0.0.1",
        port=parts.port or 3306,
        user=unquote(parts.username or ""),
        password=unquote(parts.password or ""),
        database=database,
        timeout=timeout,
    )
    return conn, ConnectionInfo(backend="mysql", persistent=True, url=url)


# ── URL parsing ──────────────────────────────────────────────────────────


def _parse_url(db: str | None) -> tuple[str, str]:
    """Parse a database URL into (scheme, target).

    ``scheme`` is one of ``"memory"``, ``"sqlite"``, ``"sqlite-uri"``,
    ``"mysql"`` or ``"file"``.
    """
    if db is None or db in ("", "memory", ":memory:"):
        return "memory", ":memory:"

    for prefix in ("sqlite:///", "sqlite://"):
        if db.startswith(prefix):
            path = db[len(prefix):]
            if not path or path == ":memory:":
                return "memory", ":memory:"
            if path.startswith("file:"):
                return "sqlite-uri", path
            return "sqlite", path

    if db.startswith(("mysql://", "mysql+mysqlconnector://")):
        return "mysql", "mysql://" + db.split("://", 1)[1]

    if "://" in db:
        raise ConfigurationError(f"Unsupported database URL scheme: {db.split('://', 1)[0]!r}")

    return "file", db


def is_memory_url(db: str | None) -> bool:
    """True if the URL opens a private, per-connection in-memory SQLite database."""
    return _parse_url(db)[0] == "memory"


def backend_of(db: str | None) -> str:
    """Backend name (``"sqlite"``/``"mysql"``) a URL would open, without connecting."""
    scheme, _ = _parse_url(db)
    return "mysql" if scheme == "mysql" else "sqlite"


def shared_memory_url(name: str = "tablespine") -> str:
    """A private shared-cache in-memory SQLite URI.

    Every connection opened on the returned URL sees the same database for as
    long as at least one of them stays open.
    """
    return f"sqlite:///file:{name}-{uuid.uuid4().hex}?mode=memory&cache=shared"


# ── Main factory ─────────────────────────────────────────────────────────


def create_connection(
    db: str | None = None,
    *,
    timeout: float = 30.0,
) -> tuple[Any, ConnectionInfo]:
    """Create a database connection from a URL, path, or keyword.

    Parameters
    ----------
    db:
        Database URL, file path, or keyword (see the module docstring).
    timeout:
        Driver connect/busy timeout in seconds.

    Returns
    -------
    tuple[Connection, ConnectionInfo]
        The connection object (satisfies ``Connection`` protocol)
        and metadata about the connection.

    Raises
    ------
    ConfigurationError
        For an unsupported URL scheme.
    DatabaseConnectionError
        If the driver cannot connect.
    """
    scheme, target = _parse_url(db)

    if scheme == "memory":
        conn, info = _create_sqlite_memory(timeout)
    elif scheme == "sqlite-uri":
        conn, info = _create_sqlite_uri(target, timeout)
    elif scheme in ("sqlite", "file"):
        conn, info = _create_sqlite_file(target, timeout)
    else:
        conn, info = _create_mysql(target, timeout)

    logger.debug("connection_opened", backend=info.backend, persistent=info.persistent)
    return conn, info


__all__ = [
    "ConnectionInfo",
    "backend_of",
    "create_connection",
    "is_memory_url",
    "shared_memory_url",
]
