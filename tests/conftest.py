"""
Shared pytest fixtures for table-spine tests.

This module provides:
- Dialect fixtures for statement-level tests
- Table descriptors for the sample entities
- File-backed SQLite ``Database`` handles with the sample tables created

Usage:
    def test_round_trip(db):
        db.save(Player(name="Ann"))
"""

from __future__ import annotations

import sys
from collections.abc import Generator
from pathlib import Path

import pytest
import structlog

# Ensure tablespine and the test support package are importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from _support.entities import Account, Home, Log, Player, Team  # noqa: E402

from tablespine import Database, DatabaseConfig, describe  # noqa: E402
from tablespine.core.dialect import MySQLDialect, SQLiteDialect  # noqa: E402
from tablespine.orm.table import TableDescriptor  # noqa: E402

ALL_ENTITIES = (Team, Player, Log, Home, Account)


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Undo any configure_logging() a test (or CLI run) performed."""
    yield
    structlog.reset_defaults()


# =============================================================================
# Dialects
# =============================================================================


@pytest.fixture
def mysql() -> MySQLDialect:
    return MySQLDialect()


@pytest.fixture
def sqlite() -> SQLiteDialect:
    return SQLiteDialect()


# =============================================================================
# Descriptors
# =============================================================================


@pytest.fixture
def log_table(mysql: MySQLDialect) -> TableDescriptor:
    return describe(Log, dialect=mysql)


@pytest.fixture
def player_table(sqlite: SQLiteDialect) -> TableDescriptor:
    """Player described for SQLite (``?`` placeholders)."""
    return describe(Player, dialect=sqlite)


@pytest.fixture
def account_table(mysql: MySQLDialect) -> TableDescriptor:
    return describe(Account, dialect=mysql)


# =============================================================================
# Databases
# =============================================================================


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'tablespine.db'}"


@pytest.fixture
def db(db_url: str) -> Generator[Database, None, None]:
    """File-backed SQLite handle with every sample table created."""
    database = Database(DatabaseConfig(url=db_url), name="test")
    database.register_tables(*ALL_ENTITIES)
    assert database.create_all_tables()
    yield database
    database.close()


@pytest.fixture
def memory_db() -> Generator[Database, None, None]:
    """In-memory handle (shared between the primary and async slots)."""
    database = Database(DatabaseConfig(url="memory"), name="memtest")
    database.register_tables(*ALL_ENTITIES)
    assert database.create_all_tables()
    yield database
    database.close()
