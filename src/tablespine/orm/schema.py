"""Declaration surface for entity types.

Entities are plain dataclasses. Per-field options go through :func:`column`
(a drop-in for :func:`dataclasses.field`), per-table options through the
:func:`table` decorator::

    @table(keys=[UniqueKey("owner", "name")])
    @dataclass
    class Home:
        id: int | None = column(identity=True)
        owner: uuid.UUID | None = column(nullable=False)
        name: str | None = column(length=32)
        world: str = column(default="world", keyed=True)
        cached_score: float = transient(default=0.0)

Options are read once, when the entity is registered with a database.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from tablespine.core.errors import ConfigurationError
from tablespine.orm.types import SqlType, TypeKind

METADATA_KEY = "tablespine"
TABLE_OPTIONS_ATTR = "__tablespine__"

KeyTags = str | bool | Sequence[str] | None


@dataclass(frozen=True)
class ColumnOptions:
    """Options recorded by :func:`column` in a field's metadata.

    An empty string in ``unique_key``/``keyed`` stands for "a key named after
    this column".
    """

    name: str | None = None
    nullable: bool | None = None
    length: int | None = None
    precision: int | None = None
    sql_default: str | None = None
    unique: bool = False
    unique_key: tuple[str, ...] = ()
    keyed: tuple[str, ...] = ()
    identity: bool = False
    version: bool = False
    kind: TypeKind | None = None
    sql_type: SqlType | None = None
    definition: str | None = None
    transient: bool = False


class Key:
    """A table-level non-unique key (secondary index) over one or more columns."""

    unique = False

    def __init__(self, *columns: str, name: str | None = None) -> None:
        if not columns:
            raise ConfigurationError(f"{type(self).__name__} needs at least one column")
        self.columns = tuple(columns)
        self.name = name

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Key):
            return NotImplemented
        return (self.unique, self.columns, self.name) == (other.unique, other.columns, other.name)

    def __hash__(self) -> int:
        return hash((self.unique, self.columns, self.name))

    def __repr__(self) -> str:
        cols = ", ".join(repr(c) for c in self.columns)
        suffix = f", name={self.name!r}" if self.name else ""
        return f"{type(self).__name__}({cols}{suffix})"


class UniqueKey(Key):
    """A table-level unique constraint over one or more columns."""

    unique = True


@dataclass(frozen=True)
class TableOptions:
    """Options recorded by the :func:`table` decorator."""

    name: str | None = None
    not_null: bool = False
    keys: tuple[Key, ...] = ()


def _key_tags(value: KeyTags) -> tuple[str, ...]:
    if value is None or value is False:
        return ()
    if value is True:
        return ("",)
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def column(
    default: Any = None,
    *,
    default_factory: Any = dataclasses.MISSING,
    name: str | None = None,
    nullable: bool | None = None,
    length: int | None = None,
    precision: int | None = None,
    sql_default: str | None = None,
    unique: bool = False,
    unique_key: KeyTags = None,
    keyed: KeyTags = None,
    identity: bool = False,
    version: bool = False,
    kind: TypeKind | str | None = None,
    sql_type: SqlType | str | None = None,
    definition: str | None = None,
    repr: bool = True,
    compare: bool = True,
) -> Any:
    """Declare a persisted field.

    Args:
        default: Python-side default (``None`` unless given).
        default_factory: Python-side default factory, as for ``dataclasses.field``.
        name: Storage name; defaults to snake_case of the field name.
        nullable: Force nullability; defaults to the table's ``not_null`` setting.
        length: String/binary length (picks the varchar/text tier).
        precision: Display width for integer columns.
        sql_default: Literal emitted as ``DEFAULT <literal>`` in DDL.
        unique: Singleton unique key named after the column.
        unique_key: Name(s) of composite unique keys this column belongs to
            (``True`` means a key named after the column).
        keyed: Name(s) of non-unique keys this column belongs to.
        identity: Auto-increment primary key.
        version: Optimistic-lock counter bumped by targeted updates.
        kind: Force a compatible :class:`TypeKind` (e.g. ``"long"`` for an int).
        sql_type: Explicit SQL type from the override set.
        definition: Full column definition after the name, verbatim.
    """
    options = ColumnOptions(
        name=name,
        nullable=nullable,
        length=length,
        precision=precision,
        sql_default=sql_default,
        unique=unique,
        unique_key=_key_tags(unique_key),
        keyed=_key_tags(keyed),
        identity=identity,
        version=version,
        kind=TypeKind(kind) if kind is not None else None,
        sql_type=SqlType.parse(sql_type) if sql_type is not None else None,
        definition=definition,
    )
    if default_factory is not dataclasses.MISSING:
        return dataclasses.field(
            default_factory=default_factory,
            repr=repr,
            compare=compare,
            metadata={METADATA_KEY: options},
        )
    return dataclasses.field(
        default=default, repr=repr, compare=compare, metadata={METADATA_KEY: options}
    )


def transient(default: Any = None, *, default_factory: Any = dataclasses.MISSING) -> Any:
    """Declare a field that is never persisted."""
    metadata = {METADATA_KEY: ColumnOptions(transient=True)}
    if default_factory is not dataclasses.MISSING:
        return dataclasses.field(default_factory=default_factory, compare=False, metadata=metadata)
    return dataclasses.field(default=default, compare=False, metadata=metadata)


def table(
    cls: type | None = None,
    /,
    *,
    name: str | None = None,
    not_null: bool = False,
    keys: Sequence[Key] = (),
) -> Any:
    """Class decorator recording table-level options.

    Usable bare (``@table``) or with arguments; apply it above ``@dataclass``.
    """
    options = TableOptions(name=name, not_null=not_null, keys=tuple(keys))

    def decorate(entity_type: type) -> type:
        setattr(entity_type, TABLE_OPTIONS_ATTR, options)
        return entity_type

    if cls is not None:
        return decorate(cls)
    return decorate


def column_options(field: dataclasses.Field) -> ColumnOptions:
    """Options for a dataclass field (defaults when declared without :func:`column`)."""
    options = field.metadata.get(METADATA_KEY)
    if options is None:
        return ColumnOptions()
    return options


def table_options(entity_type: type) -> TableOptions:
    """Table options declared on ``entity_type`` itself (not inherited)."""
    options = entity_type.__dict__.get(TABLE_OPTIONS_ATTR)
    if options is None:
        return TableOptions()
    return options


__all__ = [
    "ColumnOptions",
    "Key",
    "TableOptions",
    "UniqueKey",
    "column",
    "column_options",
    "table",
    "table_options",
    "transient",
]
