"""Tests for DatabaseConfig."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from tablespine.core.errors import ConfigurationError
from tablespine.core.naming import snake_case
from tablespine.core.settings import DatabaseConfig


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Isolate from real TABLESPINE_DB_* variables and .env files."""
    for key in ("URL", "HOST", "PORT", "DATABASE", "USER", "PASSWORD", "PREFIX", "DEBUG"):
        monkeypatch.delenv(f"TABLESPINE_DB_{key}", raising=False)
    monkeypatch.chdir(tmp_path)


# =============================================================================
# Defaults and environment
# =============================================================================


class TestDefaults:
    def test_defaults(self):
        cfg = DatabaseConfig()
        assert cfg.url is None
        assert cfg.port == 3306
        assert cfg.prefix == ""
        assert cfg.backlog_threshold == 1000
        assert cfg.poll_interval == 0.05
        assert cfg.debug is False

    def test_environment(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TABLESPINE_DB_URL", "sqlite:///env.db")
        monkeypatch.setenv("TABLESPINE_DB_PREFIX", "env_")
        cfg = DatabaseConfig()
        assert cfg.effective_url() == "sqlite:///env.db"
        assert cfg.prefix == "env_"

    def test_validation(self):
        with pytest.raises(ValidationError):
            DatabaseConfig(backlog_threshold=-1)
        with pytest.raises(ValidationError):
            DatabaseConfig(poll_interval=0)


# =============================================================================
# URLs
# =============================================================================


class TestEffectiveUrl:
    def test_url_wins(self):
        cfg = DatabaseConfig(url="memory", database="ignored")
        assert cfg.effective_url() == "memory"

    def test_mysql_from_parts(self):
        cfg = DatabaseConfig(host="db", port=3307, database="app", user="me", password="p@ss")
        assert cfg.effective_url() == "mysql://me:p%40ss@db:3307/app"
        assert cfg.redacted_url() == "mysql://me:***@db:3307/app"

    def test_mysql_without_credentials(self):
        cfg = DatabaseConfig(database="app")
        assert cfg.effective_url() == "mysql://127.0.0.1:3306/app"

    def test_nothing_configured(self):
        with pytest.raises(ConfigurationError):
            DatabaseConfig().effective_url()


# =============================================================================
# Overlays
# =============================================================================


class TestLoad:
    def test_name_templating(self):
        cfg = DatabaseConfig.load("PlayerLog", {"database": "{NAME}", "prefix": "{NAME}_"})
        assert cfg.database == "PlayerLog"
        assert cfg.prefix == "player_log_"

    def test_later_sections_win_and_empty_strings_do_not_override(self):
        cfg = DatabaseConfig.load(
            "x",
            {"host": "first", "user": "root", "port": 3310},
            {"host": "second", "user": ""},
        )
        assert cfg.host == "second"
        assert cfg.user == "root"
        assert cfg.port == 3310

    def test_backlog_threshold_spellings(self):
        assert DatabaseConfig.load("x", {"backlogThreshold": 5}).backlog_threshold == 5
        assert DatabaseConfig.load("x", {"backlog_threshold": 7}).backlog_threshold == 7

    def test_base_is_kept(self):
        base = DatabaseConfig(url="memory", debug=True)
        cfg = DatabaseConfig.load("x", {"prefix": "p_"}, base=base)
        assert cfg.url == "memory"
        assert cfg.debug is True
        assert cfg.prefix == "p_"


class TestFromYaml:
    def test_section_and_override_order(self, tmp_path: Path):
        first = tmp_path / "defaults.yml"
        first.write_text("database:\n  url: sqlite:///a.db\n  prefix: '{NAME}_'\n")
        second = tmp_path / "local.yml"
        second.write_text("url: sqlite:///b.db\ndebug: true\n")
        cfg = DatabaseConfig.from_yaml(first, second, tmp_path / "missing.yml", name="HomeBase")
        assert cfg.url == "sqlite:///b.db"
        assert cfg.prefix == "home_base_"
        assert cfg.debug is True

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "bad.yml"
        path.write_text("database: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            DatabaseConfig.from_yaml(path)

    def test_non_mapping(self, tmp_path: Path):
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="Expected a mapping"):
            DatabaseConfig.from_yaml(path)


# =============================================================================
# Naming
# =============================================================================


class TestSnakeCase:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("PlayerLog", "player_log"),
            ("playerUUIDString", "player_uuid_string"),
            ("HTTPServer", "http_server"),
            ("already_snake", "already_snake"),
            ("ABC", "abc"),
        ],
    )
    def test_snake_case(self, name, expected):
        assert snake_case(name) == expected
