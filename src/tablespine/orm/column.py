"""Column descriptor: per-field metadata, DDL fragment and value conversion.

A :class:`ColumnDescriptor` is built once per persisted dataclass field when
its entity type is registered. It knows the column's storage name, kind,
nullability, key membership and SQL definition, and converts values both
ways:

* ``to_db`` / ``save_fragment`` / ``set_fragment`` turn a field value into a
  bound parameter (or a bare ``NULL``). Enums bind their ordinal (or name for
  character columns), UUIDs their text form, references the referenced row's
  identity.
* ``from_db`` / ``load`` turn a raw driver value back into the field's Python
  type. Unparseable enum/UUID values degrade to ``None`` with a warning;
  references are materialized by an identity lookup on the same connection.
"""

from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from tablespine.core.dialect import Dialect, quote_identifier
from tablespine.core.errors import ConfigurationError, InvalidValueError, MissingIdentityError
from tablespine.core.logging import get_logger
from tablespine.core.naming import snake_case
from tablespine.orm.schema import ColumnOptions
from tablespine.orm.types import SqlType, TypeKind, default_definition, kind_of, unwrap_optional

if TYPE_CHECKING:
    from tablespine.orm.table import TableDescriptor

logger = get_logger(__name__)

NULL = "NULL"


@dataclass(eq=False)
class ColumnDescriptor:
    """Metadata for one persisted field."""

    field_name: str
    name: str
    python_type: Any
    kind: TypeKind
    nullable: bool
    length: int | None
    precision: int | None
    default_literal: str | None
    identity: bool
    unique: bool
    version: bool
    unique_key_tags: tuple[str, ...]
    key_tags: tuple[str, ...]
    sql_type: str
    definition: str
    explicit_definition: bool = False
    character_storage: bool = False
    table: TableDescriptor | None = field(default=None, repr=False)

    # -- construction ------------------------------------------------------

    @classmethod
    def from_field(
        cls,
        dc_field: dataclasses.Field,
        declared_type: Any,
        options: ColumnOptions,
        *,
        not_null_default: bool = False,
    ) -> ColumnDescriptor:
        """Build a descriptor from a dataclass field and its resolved annotation."""
        python_type, _ = unwrap_optional(declared_type)
        kind = kind_of(declared_type, options.kind)

        identity = options.identity
        if identity and not kind.is_integral:
            raise ConfigurationError(
                f"Identity column '{dc_field.name}' must be an int, not {kind.value}"
            )
        if options.version and not kind.is_integral:
            raise ConfigurationError(
                f"Version column '{dc_field.name}' must be an int, not {kind.value}"
            )

        nullable = not not_null_default if options.nullable is None else options.nullable
        if identity:
            nullable = False

        length = options.length
        sql_override: SqlType | None = options.sql_type
        if sql_override is not None and sql_override.width is not None and kind in (
            TypeKind.STRING,
            TypeKind.BYTE_ARRAY,
        ):
            length = sql_override.width

        if options.name:
            name = options.name
        elif kind is TypeKind.REFERENCE:
            name = snake_case(dc_field.name) + "_id"
        else:
            name = snake_case(dc_field.name)

        if sql_override is not None:
            sql_type = sql_override.definition
        else:
            sql_type = default_definition(kind, length, options.precision)

        if options.definition:
            definition = options.definition
        else:
            parts = [sql_type]
            if not nullable or identity:
                parts.append("NOT NULL")
            if identity:
                parts.append("AUTO_INCREMENT")
            if options.sql_default:
                parts.append(f"DEFAULT {options.sql_default}")
            elif nullable and not identity:
                parts.append("DEFAULT NULL")
            definition = " ".join(parts)

        return cls(
            field_name=dc_field.name,
            name=name,
            python_type=python_type,
            kind=kind,
            nullable=nullable,
            length=length,
            precision=options.precision,
            default_literal=options.sql_default or None,
            identity=identity,
            unique=options.unique or identity,
            version=options.version,
            unique_key_tags=options.unique_key,
            key_tags=options.keyed,
            sql_type=sql_type,
            definition=definition,
            explicit_definition=bool(options.definition),
            character_storage=sql_override is not None and sql_override.is_character,
        )

    # -- DDL ---------------------------------------------------------------

    @property
    def quoted(self) -> str:
        return quote_identifier(self.name)

    @property
    def has_default_value(self) -> bool:
        """True if the DDL gives this column a default literal."""
        return self.default_literal is not None

    def ddl_fragment(self, dialect: Dialect | None = None) -> str:
        """`` `name` <definition> `` for ``CREATE TABLE`` / ``ADD COLUMN``."""
        if self.identity and not self.explicit_definition and dialect is not None:
            return f"{self.quoted} {dialect.identity_definition(self.sql_type)}"
        return f"{self.quoted} {self.definition}"

    # -- row access --------------------------------------------------------

    def get(self, row: Any) -> Any:
        return getattr(row, self.field_name)

    def set(self, row: Any, value: Any) -> None:
        setattr(row, self.field_name, value)

    # -- Python → database -------------------------------------------------

    def to_db(self, value: Any, dialect: Dialect | None = None) -> Any:
        """Convert a non-None field value into a bound parameter."""
        kind = self.kind
        if kind is TypeKind.REFERENCE:
            return self.reference_identity(value)
        if kind is TypeKind.ENUM:
            if not isinstance(value, self.python_type):
                raise InvalidValueError(
                    f"Column `{self.name}` expects {self.python_type.__name__}, got {value!r}",
                    field=self.field_name,
                    value=value,
                )
            if self.character_storage:
                return value.name
            return list(self.python_type).index(value)
        if kind is TypeKind.UUID:
            if isinstance(value, uuid.UUID):
                return str(value)
            try:
                return str(uuid.UUID(str(value)))
            except ValueError as e:
                raise InvalidValueError(
                    f"Column `{self.name}` expects a UUID, got {value!r}",
                    field=self.field_name,
                    value=value,
                    cause=e,
                ) from e
        if kind is TypeKind.BOOLEAN:
            return 1 if value else 0
        if kind in (TypeKind.BYTE_ARRAY, TypeKind.BLOB) and not isinstance(value, bytes):
            return bytes(value)
        if dialect is not None:
            return dialect.adapt(value)
        return value

    def reference_identity(self, value: Any) -> int:
        """Identity of a referenced row (or a bare int id)."""
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if not isinstance(value, self.python_type):
            raise InvalidValueError(
                f"Column `{self.name}` references {self.python_type.__name__}, got {value!r}",
                field=self.field_name,
                value=value,
            )
        ref_table = self.referenced_table()
        ident = ref_table.identity_value(value)
        if ident is None:
            raise MissingIdentityError(
                f"Referenced {self.python_type.__name__} has no identity; save it before "
                f"linking it from `{self.name}`",
                field=self.field_name,
            ).with_context(table=self.table.name if self.table else None, column=self.name)
        return ident

    def referenced_table(self) -> TableDescriptor:
        if self.table is None:
            raise ConfigurationError(f"Column `{self.name}` is not attached to a table")
        return self.table.resolve_reference(self.python_type)

    def save_fragment(self, row: Any, params: list[Any], dialect: Dialect) -> str:
        """Placeholder (appending the parameter) or ``NULL`` for this row's value."""
        return self.set_fragment(self.get(row), params, dialect)

    def set_fragment(self, value: Any, params: list[Any], dialect: Dialect) -> str:
        if value is None:
            return NULL
        params.append(self.to_db(value, dialect))
        return dialect.placeholder(len(params) - 1)

    # -- database → Python -------------------------------------------------

    def from_db(self, raw: Any, connection: Any = None) -> Any:
        """Convert a raw driver value into the field's Python representation."""
        if raw is None:
            return None
        kind = self.kind
        if kind is TypeKind.UUID:
            try:
                return uuid.UUID(raw.decode() if isinstance(raw, bytes) else str(raw))
            except ValueError:
                self._warn_unloadable(raw)
                return None
        if kind is TypeKind.ENUM:
            return self._load_enum(raw)
        if kind is TypeKind.TIMESTAMP:
            return self._load_timestamp(raw)
        if kind is TypeKind.BOOLEAN:
            return bool(raw)
        if kind.is_integral:
            return int(raw)
        if kind in (TypeKind.FLOAT, TypeKind.DOUBLE):
            return float(raw)
        if kind in (TypeKind.BYTE_ARRAY, TypeKind.BLOB):
            if self.python_type is memoryview:
                return memoryview(bytes(raw))
            if self.python_type is bytearray:
                return bytearray(raw)
            return bytes(raw)
        if kind is TypeKind.REFERENCE:
            return self.referenced_table().load_by_id(connection, int(raw))
        if isinstance(raw, bytes):
            return raw.decode("utf-8")
        return raw

    def load(self, row: Any, result: dict[str, Any], connection: Any = None) -> None:
        """Set this column's field on ``row`` from a result row."""
        self.set(row, self.from_db(result.get(self.name), connection))

    def _load_enum(self, raw: Any) -> Enum | None:
        members = list(self.python_type)
        try:
            if isinstance(raw, str) and not raw.isdigit():
                return self.python_type[raw]
            index = int(raw)
            if index < 0:
                raise IndexError(index)
            return members[index]
        except (KeyError, IndexError, ValueError):
            self._warn_unloadable(raw)
            return None

    def _load_timestamp(self, raw: Any) -> datetime | date | None:
        value = raw
        if isinstance(raw, (str, bytes)):
            text = raw.decode() if isinstance(raw, bytes) else raw
            try:
                value = datetime.fromisoformat(text)
            except ValueError:
                self._warn_unloadable(raw)
                return None
        if isinstance(value, datetime) and self.python_type is date:
            return value.date()
        if type(value) is date and self.python_type is datetime:
            return datetime(value.year, value.month, value.day)
        return value

    def _warn_unloadable(self, raw: Any) -> None:
        logger.warning(
            "column_value_unloadable",
            table=self.table.name if self.table else None,
            column=self.name,
            kind=self.kind.value,
            value=repr(raw),
        )


__all__ = ["ColumnDescriptor", "NULL"]
