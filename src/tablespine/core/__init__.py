"""
Core primitives for table-spine: errors, logging, settings, dialects and
connections. Nothing in here knows about entity types; the ORM layer in
``tablespine.orm`` builds on top of it.
"""

from tablespine.core.connection import ConnectionInfo, create_connection
from tablespine.core.dialect import Dialect, MySQLDialect, SQLiteDialect, get_dialect, register_dialect
from tablespine.core.errors import (
    ConfigurationError,
    DatabaseConnectionError,
    ErrorCategory,
    ErrorContext,
    GeneratedKeyError,
    InvalidValueError,
    MissingIdentityError,
    OptimisticConflictError,
    PersistenceError,
    QueryBuilderError,
    TableSpineError,
    UnknownColumnError,
    UnsupportedTypeError,
    ValidationError,
)
from tablespine.core.logging import LogContext, configure_logging, get_logger
from tablespine.core.protocols import Connection
from tablespine.core.settings import DatabaseConfig

__all__ = [
    # Connections
    "Connection",
    "ConnectionInfo",
    "create_connection",
    # Dialects
    "Dialect",
    "MySQLDialect",
    "SQLiteDialect",
    "get_dialect",
    "register_dialect",
    # Errors
    "ConfigurationError",
    "DatabaseConnectionError",
    "ErrorCategory",
    "ErrorContext",
    "GeneratedKeyError",
    "InvalidValueError",
    "MissingIdentityError",
    "OptimisticConflictError",
    "PersistenceError",
    "QueryBuilderError",
    "TableSpineError",
    "UnknownColumnError",
    "UnsupportedTypeError",
    "ValidationError",
    # Logging
    "LogContext",
    "configure_logging",
    "get_logger",
    # Settings
    "DatabaseConfig",
]
