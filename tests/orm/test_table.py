"""Tests for table descriptors: registration rules, keys and DDL."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest
from _support.entities import Account, Home, Log, Player, Team

from tablespine import Key, UniqueKey, column, describe, table, transient
from tablespine.core.dialect import MySQLDialect, SQLiteDialect
from tablespine.core.errors import (
    ConfigurationError,
    GeneratedKeyError,
    UnknownColumnError,
    UnsupportedTypeError,
)

LOG_MYSQL = (
    "CREATE TABLE IF NOT EXISTS `log` (\n"
    "  `id` int NOT NULL AUTO_INCREMENT,\n"
    "  `time` datetime DEFAULT CURRENT_TIMESTAMP,\n"
    "  `player_uuid` varchar(40) DEFAULT NULL,\n"
    "  `player_name` varchar(16) DEFAULT NULL,\n"
    "  PRIMARY KEY (`id`),\n"
    "  UNIQUE KEY `player_uuid` (`player_uuid`)\n"
    ")"
)

LOG_SQLITE = (
    "CREATE TABLE IF NOT EXISTS `log` (\n"
    "  `id` INTEGER PRIMARY KEY AUTOINCREMENT,\n"
    "  `time` datetime DEFAULT CURRENT_TIMESTAMP,\n"
    "  `player_uuid` varchar(40) DEFAULT NULL,\n"
    "  `player_name` varchar(16) DEFAULT NULL,\n"
    "  CONSTRAINT `player_uuid` UNIQUE (`player_uuid`)\n"
    ")"
)


# =============================================================================
# Invalid declarations
# =============================================================================


class NotAnEntity:
    id: int | None = None


@dataclass
class NoDefault:
    name: str
    id: int | None = column(identity=True)


@dataclass
class TwoIdentities:
    a: int | None = column(identity=True)
    b: int | None = column(identity=True)


@dataclass
class SameStorageName:
    a: int | None = column(name="x")
    b: int | None = column(name="x")


@dataclass
class UnsupportedField:
    id: int | None = column(identity=True)
    c: complex = 0j


@dataclass
class MixedKeyKinds:
    a: int | None = column(unique_key="k")
    b: int | None = column(keyed="k")


@table(keys=[Key("missing")])
@dataclass
class KeyOnMissingColumn:
    a: int | None = None


@dataclass
class NothingPersisted:
    tags: list[str] = field(default_factory=list)
    cache: dict = transient(default_factory=dict)


@dataclass
class Unresolvable:
    other: Missing | None = None  # noqa: F821


@table(keys=[UniqueKey("a", name="k")])
@dataclass
class MergedKey:
    a: int | None = None
    b: int | None = column(unique_key="k")


class TestRegistrationErrors:
    @pytest.mark.parametrize(
        "entity, message",
        [
            (NotAnEntity, "not a dataclass"),
            (NoDefault, "has no default"),
            (TwoIdentities, "more than one identity"),
            (SameStorageName, "both map to column `x`"),
            (MixedKeyKinds, "both unique and non-unique"),
            (KeyOnMissingColumn, "unknown column"),
            (NothingPersisted, "no persisted columns"),
            (Unresolvable, "Cannot resolve annotations"),
        ],
    )
    def test_rejected(self, entity, message):
        with pytest.raises(ConfigurationError, match=message):
            describe(entity)

    def test_unsupported_field_type_carries_context(self):
        with pytest.raises(UnsupportedTypeError) as exc_info:
            describe(UnsupportedField)
        assert exc_info.value.context.entity == "UnsupportedField"
        assert exc_info.value.context.column == "c"


# =============================================================================
# Columns and names
# =============================================================================


class TestPackageExports:
    def test_table_decorator_is_exported(self):
        import tablespine
        import tablespine.orm
        from tablespine.orm import schema

        assert tablespine.table is schema.table
        assert tablespine.orm.table is schema.table
        assert callable(tablespine.table)


class TestDescribe:
    def test_table_name(self):
        assert describe(Log).name == "log"
        assert describe(Log, prefix="app_").name == "app_log"
        assert describe(Team, prefix="app_").name == "app_teams"

    def test_columns_in_declaration_order(self):
        players = describe(Player)
        assert [c.name for c in players.columns] == [
            "id", "name", "age", "score", "rank", "active", "team_id",
        ]

    def test_collections_and_transients_are_skipped(self):
        players = describe(Player)
        assert not players.has_column("tags")
        assert not players.has_column("note")

    def test_lookup_by_field_or_storage_name(self):
        players = describe(Player)
        assert players.column("team") is players.column("team_id")

    def test_unknown_column(self):
        with pytest.raises(UnknownColumnError) as exc_info:
            describe(Player).column("nmae")
        assert exc_info.value.context.table == "player"

    def test_identity_and_version(self):
        accounts = describe(Account)
        assert accounts.identity is accounts.column("id")
        assert accounts.version is accounts.column("version")
        assert describe(Log).version is None

    def test_describe_is_deterministic(self):
        assert describe(Log).create_table_statement() == describe(Log).create_table_statement()


# =============================================================================
# Keys
# =============================================================================


class TestKeys:
    def test_singleton_unique(self):
        keys = describe(Log).keys
        assert list(keys) == ["player_uuid"]
        assert keys["player_uuid"].unique

    def test_table_level_keys(self):
        keys = describe(Player).keys
        assert list(keys) == ["team_score"]
        assert keys["team_score"].column_names == ["team_id", "score"]
        assert not keys["team_score"].unique

    def test_composite_and_keyed(self):
        keys = describe(Home).keys
        assert list(keys) == ["owner_name", "world"]
        assert keys["owner_name"].unique
        assert keys["owner_name"].column_names == ["owner", "name"]
        assert not keys["world"].unique

    def test_unique_key_tags(self):
        keys = describe(Account).keys
        assert keys["owner_label"].column_names == ["owner", "label"]
        assert keys["owner_label"].unique

    def test_same_name_merges(self):
        assert describe(MergedKey).keys["k"].column_names == ["a", "b"]


# =============================================================================
# DDL
# =============================================================================


class TestDDL:
    def test_mysql_create_table(self, mysql: MySQLDialect):
        assert describe(Log, dialect=mysql).create_table_statement() == LOG_MYSQL

    def test_sqlite_create_table(self, sqlite: SQLiteDialect):
        assert describe(Log, dialect=sqlite).create_table_statement() == LOG_SQLITE

    def test_mysql_inline_keys(self, mysql: MySQLDialect):
        statements = describe(Player, dialect=mysql).create_table_statements()
        assert len(statements) == 1
        assert "  KEY `team_score` (`team_id`, `score`)\n" in statements[0]

    def test_sqlite_separate_indexes(self, sqlite: SQLiteDialect):
        statements = describe(Home, dialect=sqlite).create_table_statements()
        assert "CONSTRAINT `owner_name` UNIQUE (`owner`, `name`)" in statements[0]
        assert statements[1:] == ["CREATE INDEX IF NOT EXISTS `home_world` ON `home` (`world`)"]

    def test_add_column_after_predecessor(self, mysql: MySQLDialect):
        players = describe(Player, dialect=mysql)
        assert players.add_column_statement("age") == (
            "ALTER TABLE `player` ADD COLUMN `age` int DEFAULT NULL AFTER `name`"
        )
        assert players.add_column_statement("id") == (
            "ALTER TABLE `player` ADD COLUMN `id` int NOT NULL AUTO_INCREMENT FIRST"
        )

    def test_add_column_sqlite(self, sqlite: SQLiteDialect):
        assert describe(Player, dialect=sqlite).add_column_statement("age") == (
            "ALTER TABLE `player` ADD COLUMN `age` int DEFAULT NULL"
        )

    def test_probe(self):
        assert describe(Player).probe_statement("age") == "SELECT `age` FROM `player` LIMIT 1"


# =============================================================================
# Rows
# =============================================================================


class TestRows:
    def test_load_row_sets_present_columns(self):
        row = describe(Log).load_row({"id": 3, "player_name": "Ann"})
        assert row == Log(id=3, player_name="Ann")

    def test_positional_key_assignment(self):
        rows = [Log(), Log(id=5), Log()]
        describe(Log).assign_generated_keys(rows, [1, 5, 2], ignore_duplicates=False)
        assert [r.id for r in rows] == [1, 5, 2]

    def test_known_keys_are_filtered(self):
        rows = [Log(), Log(id=5), Log()]
        describe(Log).assign_generated_keys(rows, [5, 8], ignore_duplicates=True)
        assert [r.id for r in rows] == [8, 5, None]

    def test_missing_keys(self):
        rows = [Log(), Log()]
        with pytest.raises(GeneratedKeyError):
            describe(Log).assign_generated_keys(rows, [1], ignore_duplicates=False)
        assert rows[0].id == 1

    def test_missing_keys_tolerated_when_ignoring(self):
        rows = [Log(), Log()]
        describe(Log).assign_generated_keys(rows, [1], ignore_duplicates=True)
        assert [r.id for r in rows] == [1, None]
