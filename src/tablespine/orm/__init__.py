"""
Metadata-driven ORM: entity declaration, schema descriptors, statement
compilation and the predicate/finder/updater query surface.
"""

from tablespine.orm.column import ColumnDescriptor
from tablespine.orm.finder import Finder
from tablespine.orm.predicate import Conjunction, Operator, Predicate
from tablespine.orm.statements import OrderTerm, Statement, StatementCompiler
from tablespine.orm.table import KeyDescriptor, TableDescriptor, describe

# after the table submodule import, which would otherwise shadow the decorator
from tablespine.orm.schema import Key, UniqueKey, column, table, transient  # noqa: E402, I001
from tablespine.orm.types import SqlType, TypeKind, kind_of
from tablespine.orm.updater import Updater

__all__ = [
    # Declaration
    "Key",
    "UniqueKey",
    "column",
    "table",
    "transient",
    # Types
    "SqlType",
    "TypeKind",
    "kind_of",
    # Descriptors
    "ColumnDescriptor",
    "KeyDescriptor",
    "TableDescriptor",
    "describe",
    # Statements
    "OrderTerm",
    "Statement",
    "StatementCompiler",
    # Queries
    "Conjunction",
    "Finder",
    "Operator",
    "Predicate",
    "Updater",
]
