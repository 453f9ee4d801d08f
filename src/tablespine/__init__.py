"""
table-spine: a lightweight ORM for dataclass entities.

Declare rows once as dataclasses and get schema DDL, parameterized CRUD, a
fluent predicate query builder and an asynchronous write path with backlog
warnings, on MySQL or SQLite.

Example:
    >>> from dataclasses import dataclass
    >>> from tablespine import Database, DatabaseConfig, column, table
    >>>
    >>> @table
    ... @dataclass
    ... class Player:
    ...     id: int | None = column(identity=True)
    ...     name: str | None = column(length=16, unique=True)
    >>>
    >>> db = Database(DatabaseConfig(url="sqlite:///players.db"))
    >>> db.register_table(Player)
    >>> db.create_all_tables()
    True
"""

__version__ = "0.1.0"

from tablespine.core.errors import (
    ConfigurationError,
    GeneratedKeyError,
    InvalidValueError,
    MissingIdentityError,
    OptimisticConflictError,
    PersistenceError,
    QueryBuilderError,
    TableSpineError,
    UnknownColumnError,
    UnsupportedTypeError,
)
from tablespine.core.settings import DatabaseConfig
from tablespine.database import ConnectionState, Database, ExecutionContext, SaveOptions
from tablespine.orm import (
    Finder,
    Key,
    Predicate,
    SqlType,
    TypeKind,
    UniqueKey,
    Updater,
    column,
    describe,
    table,
    transient,
)

__all__ = [
    "__version__",
    # Database
    "ConnectionState",
    "Database",
    "DatabaseConfig",
    "ExecutionContext",
    "SaveOptions",
    # Declaration
    "Key",
    "SqlType",
    "TypeKind",
    "UniqueKey",
    "column",
    "describe",
    "table",
    "transient",
    # Queries
    "Finder",
    "Predicate",
    "Updater",
    # Errors
    "ConfigurationError",
    "GeneratedKeyError",
    "InvalidValueError",
    "MissingIdentityError",
    "OptimisticConflictError",
    "PersistenceError",
    "QueryBuilderError",
    "TableSpineError",
    "UnknownColumnError",
    "UnsupportedTypeError",
]
