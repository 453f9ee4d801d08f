"""
Type catalog: the closed set of column kinds and their default DDL.

Every persisted field maps to exactly one :class:`TypeKind`, inferred from
its Python annotation or forced with an explicit ``kind=`` override. A kind
gives a default SQL type fragment; a :class:`SqlType` override (``char(n)``,
``varchar(n)``, ``tinyint``, ``mediumtext``, ...) replaces it.

Architecture:
    ::

        annotation ──► unwrap Optional ──► kind_of() ──► TypeKind
                                                           │
                               SqlType override? ──────────┤
                                                           ▼
                                              default_definition(kind, length)

        bool → BOOLEAN     int → INT          float → DOUBLE
        str → STRING       UUID → UUID        datetime/date → TIMESTAMP
        Enum → ENUM        bytes → BYTE_ARRAY memoryview → BLOB
        @dataclass → REFERENCE

Examples:
    >>> kind_of(int)
    <TypeKind.INT: 'int'>
    >>> kind_of(int, TypeKind.LONG)
    <TypeKind.LONG: 'long'>
    >>> default_definition(TypeKind.STRING, length=70000)
    'mediumtext'
    >>> SqlType.parse("varchar(16)").definition
    'varchar(16)'

Tags:
    types, ddl, schema, orm, table-spine
"""

from __future__ import annotations

import dataclasses
import re
import types
import typing
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from tablespine.core.errors import ConfigurationError, UnsupportedTypeError

DEFAULT_STRING_LENGTH = 255

VARCHAR_MAX = 1024
TEXT_MAX = 65535
MEDIUMTEXT_MAX = 16777215


class TypeKind(str, Enum):
    """Representable column value kinds."""

    INT = "int"
    LONG = "long"
    FLOAT = "float"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    STRING = "string"
    TIMESTAMP = "timestamp"
    UUID = "uuid"
    ENUM = "enum"
    BYTE_ARRAY = "byte_array"
    BLOB = "blob"
    REFERENCE = "reference"

    @property
    def is_integral(self) -> bool:
        return self in (TypeKind.INT, TypeKind.LONG)

    @property
    def is_numeric(self) -> bool:
        return self in (TypeKind.INT, TypeKind.LONG, TypeKind.FLOAT, TypeKind.DOUBLE)


# kinds an explicit override may choose, per inferred kind
_COMPATIBLE_OVERRIDES: dict[TypeKind, frozenset[TypeKind]] = {
    TypeKind.INT: frozenset({TypeKind.INT, TypeKind.LONG}),
    TypeKind.DOUBLE: frozenset({TypeKind.FLOAT, TypeKind.DOUBLE}),
    TypeKind.BYTE_ARRAY: frozenset({TypeKind.BYTE_ARRAY, TypeKind.BLOB}),
    TypeKind.BLOB: frozenset({TypeKind.BYTE_ARRAY, TypeKind.BLOB}),
}

_COLLECTION_TYPES = (list, tuple, set, frozenset, dict)


# =============================================================================
# SQL type overrides
# =============================================================================


_WIDTH_REQUIRED = frozenset({"char", "varchar", "binary", "varbinary"})
_WIDTH_OPTIONAL = frozenset({"tinyint", "smallint", "mediumint", "int", "bigint"})
_WIDTH_FORBIDDEN = frozenset({"text", "mediumtext", "longtext", "mediumblob", "longblob"})
_SQL_TYPE_PATTERN = re.compile(r"^\s*([a-zA-Z]+)\s*(?:\(\s*(\d+)\s*\))?\s*$")


@dataclass(frozen=True)
class SqlType:
    """An explicit SQL column type from the fixed override set."""

    name: str
    width: int | None = None

    def __post_init__(self) -> None:
        name = self.name.lower()
        object.__setattr__(self, "name", name)
        if name in _WIDTH_REQUIRED:
            if self.width is None or self.width <= 0:
                raise ConfigurationError(f"SQL type {name} requires a positive width")
        elif name in _WIDTH_OPTIONAL:
            if self.width is not None and self.width <= 0:
                raise ConfigurationError(f"SQL type {name} width must be positive")
        elif name in _WIDTH_FORBIDDEN:
            if self.width is not None:
                raise ConfigurationError(f"SQL type {name} does not take a width")
        else:
            raise ConfigurationError(f"Unsupported SQL type override: {self.name!r}")

    @property
    def definition(self) -> str:
        if self.width is None:
            return self.name
        return f"{self.name}({self.width})"

    @property
    def is_character(self) -> bool:
        return self.name in ("char", "varchar", "text", "mediumtext", "longtext")

    @classmethod
    def parse(cls, value: str | SqlType) -> SqlType:
        """Parse ``"varchar(16)"``-style text into an override."""
        if isinstance(value, SqlType):
            return value
        match = _SQL_TYPE_PATTERN.match(value)
        if match is None:
            raise ConfigurationError(f"Cannot parse SQL type override: {value!r}")
        width = match.group(2)
        return cls(match.group(1), int(width) if width is not None else None)

    def __str__(self) -> str:
        return self.definition


def char(width: int) -> SqlType:
    return SqlType("char", width)


def varchar(width: int) -> SqlType:
    return SqlType("varchar", width)


def binary(width: int) -> SqlType:
    return SqlType("binary", width)


def varbinary(width: int) -> SqlType:
    return SqlType("varbinary", width)


TINYINT = SqlType("tinyint")
SMALLINT = SqlType("smallint")
MEDIUMINT = SqlType("mediumint")
INT = SqlType("int")
BIGINT = SqlType("bigint")
TEXT = SqlType("text")
MEDIUMTEXT = SqlType("mediumtext")
LONGTEXT = SqlType("longtext")
MEDIUMBLOB = SqlType("mediumblob")
LONGBLOB = SqlType("longblob")


# =============================================================================
# Annotation inspection
# =============================================================================


def unwrap_optional(declared_type: Any) -> tuple[Any, bool]:
    """Strip ``Optional[X]`` / ``X | None``; return ``(X, was_optional)``."""
    origin = typing.get_origin(declared_type)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(declared_type) if a is not type(None)]
        optional = len(args) < len(typing.get_args(declared_type))
        if len(args) == 1:
            return args[0], optional
        raise UnsupportedTypeError(declared_type, f"Union column types are not supported: {declared_type!r}")
    return declared_type, False


def is_collection_type(declared_type: Any) -> bool:
    """True for list/tuple/set/dict annotations, which are never columns."""
    if _is_union(declared_type):
        return any(
            is_collection_type(arg) for arg in typing.get_args(declared_type) if arg is not type(None)
        )
    origin = typing.get_origin(declared_type) or declared_type
    return isinstance(origin, type) and issubclass(origin, _COLLECTION_TYPES)


def _is_union(declared_type: Any) -> bool:
    origin = typing.get_origin(declared_type)
    return origin is typing.Union or origin is types.UnionType


def _infer(tp: Any) -> TypeKind | None:
    if not isinstance(tp, type):
        return None
    if issubclass(tp, bool):
        return TypeKind.BOOLEAN
    if issubclass(tp, Enum):
        return TypeKind.ENUM
    if issubclass(tp, int):
        return TypeKind.INT
    if issubclass(tp, float):
        return TypeKind.DOUBLE
    if issubclass(tp, str):
        return TypeKind.STRING
    if issubclass(tp, uuid.UUID):
        return TypeKind.UUID
    if issubclass(tp, (datetime, date)):
        return TypeKind.TIMESTAMP
    if issubclass(tp, (bytes, bytearray)):
        return TypeKind.BYTE_ARRAY
    if issubclass(tp, memoryview):
        return TypeKind.BLOB
    if dataclasses.is_dataclass(tp):
        return TypeKind.REFERENCE
    return None


def kind_of(declared_type: Any, override: TypeKind | str | None = None) -> TypeKind:
    """Map a declared field type (plus optional override) to a :class:`TypeKind`.

    Raises:
        UnsupportedTypeError: No kind exists for the type, or the override is
            incompatible with it.
    """
    tp, _ = unwrap_optional(declared_type)
    inferred = _infer(tp)
    if inferred is None:
        raise UnsupportedTypeError(declared_type)
    if override is None:
        return inferred
    try:
        forced = TypeKind(override)
    except ValueError as e:
        raise UnsupportedTypeError(declared_type, f"Unknown column kind: {override!r}", cause=e) from e
    if forced == inferred or forced in _COMPATIBLE_OVERRIDES.get(inferred, frozenset()):
        return forced
    raise UnsupportedTypeError(
        declared_type,
        f"Column kind {forced.value} is not compatible with {getattr(tp, '__name__', tp)!r}",
    )


# =============================================================================
# Default DDL fragments
# =============================================================================


def string_definition(length: int) -> str:
    """Pick the string column type by length tier."""
    if length <= VARCHAR_MAX:
        return f"varchar({length})"
    if length <= TEXT_MAX:
        return "text"
    if length <= MEDIUMTEXT_MAX:
        return "mediumtext"
    return "longtext"


def default_definition(kind: TypeKind, length: int | None = None, precision: int | None = None) -> str:
    """Default SQL type fragment for a column kind."""
    if kind is TypeKind.INT:
        return f"int({precision})" if precision else "int"
    if kind is TypeKind.LONG:
        return f"bigint({precision})" if precision else "bigint"
    if kind is TypeKind.STRING:
        return string_definition(length or DEFAULT_STRING_LENGTH)
    if kind is TypeKind.UUID:
        return "varchar(40)"
    if kind is TypeKind.FLOAT:
        return "float"
    if kind is TypeKind.DOUBLE:
        return "double"
    if kind is TypeKind.TIMESTAMP:
        return "datetime"
    if kind is TypeKind.BOOLEAN:
        return "tinyint"
    if kind is TypeKind.ENUM:
        return "int"
    if kind is TypeKind.REFERENCE:
        return "int"
    if kind is TypeKind.BYTE_ARRAY:
        return f"binary({length or DEFAULT_STRING_LENGTH})"
    return "blob"


__all__ = [
    "TypeKind",
    "SqlType",
    "char",
    "varchar",
    "binary",
    "varbinary",
    "TINYINT",
    "SMALLINT",
    "MEDIUMINT",
    "INT",
    "BIGINT",
    "TEXT",
    "MEDIUMTEXT",
    "LONGTEXT",
    "MEDIUMBLOB",
    "LONGBLOB",
    "DEFAULT_STRING_LENGTH",
    "kind_of",
    "unwrap_optional",
    "is_collection_type",
    "string_definition",
    "default_definition",
]
