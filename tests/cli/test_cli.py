"""Tests for tablespine.cli: command smoke tests via CliRunner.

Commands run against real file-backed SQLite databases created by the
``db`` fixture; entity types come from the ``_support.entities`` module.
"""

from __future__ import annotations

import json
from pathlib import Path

from _support.entities import Player, Team
from typer.testing import CliRunner

from tablespine import Database, DatabaseConfig
from tablespine.cli.app import app

runner = CliRunner()


def seed(db: Database) -> None:
    red, blue = Team(name="red"), Team(name="blue")
    db.save([red, blue])
    db.save([Player(name="Ann", team=red), Player(name="Bob", team=blue), Player(name="Cid")])


# ─── Root ────────────────────────────────────────────────────────────────


class TestRootCLI:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "table-spine" in result.output

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "schema" in result.output


# ─── schema ──────────────────────────────────────────────────────────────


class TestSchemaCLI:
    def test_single_entity_mysql(self):
        result = runner.invoke(app, ["schema", "_support.entities:Log"])
        assert result.exit_code == 0
        assert "CREATE TABLE IF NOT EXISTS `log` (" in result.output
        assert "`id` int NOT NULL AUTO_INCREMENT," in result.output
        assert "UNIQUE KEY `player_uuid` (`player_uuid`)" in result.output
        assert result.output.rstrip().endswith(");")

    def test_module_sqlite_with_prefix(self):
        result = runner.invoke(
            app, ["schema", "_support.entities", "--dialect", "sqlite", "--prefix", "app_"]
        )
        assert result.exit_code == 0
        for name in ("app_teams", "app_player", "app_log", "app_home", "app_account"):
            assert f"CREATE TABLE IF NOT EXISTS `{name}`" in result.output
        assert "CREATE INDEX IF NOT EXISTS `app_home_world`" in result.output

    def test_unknown_module(self):
        result = runner.invoke(app, ["schema", "no_such_module:Thing"])
        assert result.exit_code == 1
        assert "Cannot import module" in result.output

    def test_not_an_entity(self):
        result = runner.invoke(app, ["schema", "_support.entities:Rank"])
        assert result.exit_code == 1
        assert "not a dataclass entity" in result.output

    def test_unknown_dialect(self):
        result = runner.invoke(app, ["schema", "_support.entities:Log", "--dialect", "oracle"])
        assert result.exit_code == 1


# ─── tables / query / update ─────────────────────────────────────────────


class TestDatabaseCLI:
    def test_tables(self, db: Database, db_url: str):
        seed(db)
        result = runner.invoke(app, ["tables", "_support.entities:Team", "-d", db_url])
        assert result.exit_code == 0
        assert "teams" in result.output
        assert "2" in result.output

    def test_query_json(self, db: Database, db_url: str):
        seed(db)
        result = runner.invoke(
            app, ["query", "SELECT name FROM teams ORDER BY name", "-d", db_url, "--json"]
        )
        assert result.exit_code == 0
        assert json.loads(result.output) == [{"name": "blue"}, {"name": "red"}]

    def test_query_table(self, db: Database, db_url: str):
        seed(db)
        result = runner.invoke(app, ["query", "SELECT name FROM player", "-d", db_url])
        assert result.exit_code == 0
        assert "Ann" in result.output
        assert "3 result(s)" in result.output

    def test_query_error(self, db: Database, db_url: str):
        result = runner.invoke(app, ["query", "SELECT * FROM missing", "-d", db_url])
        assert result.exit_code == 1
        assert "no such table" in result.output

    def test_update(self, db: Database, db_url: str):
        seed(db)
        result = runner.invoke(app, ["update", "DELETE FROM player", "-d", db_url])
        assert result.exit_code == 0
        assert "Update result 3: DELETE FROM player" in result.output
        assert db.find(Player).count() == 0

    def test_config_file(self, db: Database, db_url: str, tmp_path: Path):
        seed(db)
        config = tmp_path / "tablespine.yml"
        config.write_text(f"database:\n  url: '{db_url}'\n")
        result = runner.invoke(app, ["query", "SELECT count(*) AS n FROM teams", "-c", str(config), "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output) == [{"n": 2}]


# ─── copy ────────────────────────────────────────────────────────────────


class TestCopyCLI:
    def test_copy_between_databases(self, db: Database, db_url: str, tmp_path: Path):
        seed(db)
        dest_url = f"sqlite:///{tmp_path / 'copy.db'}"
        result = runner.invoke(
            app,
            [
                "copy",
                "_support.entities:Team",
                "_support.entities:Player",
                "--source", db_url,
                "--dest", dest_url,
                "--dest-prefix", "bak_",
                "--batch-size", "2",
            ],
        )
        assert result.exit_code == 0
        assert "2 row(s): teams -> bak_teams" in result.output
        assert "3 row(s): player -> bak_player" in result.output

        with Database(DatabaseConfig(url=dest_url, prefix="bak_")) as dest:
            dest.register_tables(Team, Player)
            copied = dest.find(Player).order_by_ascending("name").find_list()
            assert copied == db.find(Player).order_by_ascending("name").find_list()
