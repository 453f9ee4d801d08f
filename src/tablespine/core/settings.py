"""Database configuration for table-spine.

A :class:`DatabaseConfig` value is passed explicitly to each
:class:`~tablespine.database.Database`; there is no process-wide config
singleton. Values come from (lowest to highest precedence) field defaults,
``TABLESPINE_DB_*`` environment variables and ``.env`` files, and finally
mapping/YAML overlays applied with :meth:`DatabaseConfig.load`.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not at first query
    - **Environment-driven:** Reads from env vars and .env files
    - **Per-handle templating:** ``{NAME}`` in ``database``/``prefix`` is
      filled in with the owning component's name

Examples:
    >>> cfg = DatabaseConfig(url="sqlite:///data/app.db", prefix="app_")
    >>> cfg.effective_url()
    'sqlite:///data/app.db'

    >>> cfg = DatabaseConfig.load("PlayerLog", {"database": "{NAME}", "prefix": "{NAME}_"})
    >>> (cfg.database, cfg.prefix)
    ('PlayerLog', 'player_log_')

Tags:
    settings, configuration, pydantic, environment, table-spine

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any
from urllib.parse import quote

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from tablespine.core.errors import ConfigurationError
from tablespine.core.logging import get_logger
from tablespine.core.naming import snake_case

logger = get_logger(__name__)

NAME_PLACEHOLDER = "{NAME}"


class DatabaseConfig(BaseSettings):
    """Connection and coordinator settings for one database handle.

    Fields
    ──────
    url                   : Full database URL; overrides host/port/database
    host, port, database  : MySQL coordinates used when ``url`` is unset
    user, password        : MySQL credentials
    prefix                : Table-name prefix applied to every entity
    debug                 : Log every SQL statement at info level
    backlog_threshold     : Async batch size above which a warning is logged
    health_check_timeout  : Seconds allowed for the liveness probe
    poll_interval         : Async worker wait timeout in seconds
    """

    model_config = SettingsConfigDict(
        env_prefix="TABLESPINE_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Target ───────────────────────────────────────────────────
    url: str | None = Field(default=None, description="Database URL (sqlite:///, mysql://, memory)")
    host: str = "127.0.0.1"
    port: int = 3306
    database: str = ""
    user: str = ""
    password: SecretStr = SecretStr("")

    # ── Schema ───────────────────────────────────────────────────
    prefix: str = ""

    # ── Observability ────────────────────────────────────────────
    debug: bool = False

    # ── Async coordinator ────────────────────────────────────────
    backlog_threshold: int = Field(default=1000, ge=0)
    health_check_timeout: float = Field(default=1.0, gt=0)
    poll_interval: float = Field(default=0.05, gt=0)

    def effective_url(self) -> str:
        """Return the URL the connection factory should open."""
        if self.url:
            return self.url
        if not self.database:
            raise ConfigurationError("No database url or database name configured")
        credentials = ""
        if self.user:
            credentials = quote(self.user, safe="")
            secret = self.password.get_secret_value()
            if secret:
                credentials += ":" + quote(secret, safe="")
            credentials += "@"
        return f"mysql://{credentials}{self.host}:{self.port}/{self.database}"

    def redacted_url(self) -> str:
        """``effective_url()`` with the password masked, for logging."""
        url = self.effective_url()
        secret = self.password.get_secret_value()
        if secret:
            url = url.replace(":" + quote(secret, safe="") + "@", ":***@")
        return url

    @classmethod
    def load(
        cls,
        name: str,
        *sections: Mapping[str, Any],
        base: DatabaseConfig | None = None,
    ) -> DatabaseConfig:
        """Overlay configuration sections, in order, onto ``base``.

        Empty strings never override a value. ``{NAME}`` in ``database`` is
        replaced by ``name``; in ``prefix`` by ``snake_case(name)``. The
        camelCase key ``backlogThreshold`` is accepted alongside
        ``backlog_threshold``.
        """
        values: dict[str, Any] = dict((base or cls()).model_dump())
        for section in sections:
            for key in ("url", "host", "port", "user", "password"):
                raw = section.get(key)
                if raw is not None and raw != "":
                    values[key] = raw
            database = section.get("database")
            if database:
                values["database"] = str(database).replace(NAME_PLACEHOLDER, name)
            prefix = section.get("prefix")
            if prefix is not None:
                values["prefix"] = str(prefix).replace(NAME_PLACEHOLDER, snake_case(name))
            if "debug" in section:
                values["debug"] = section["debug"]
            for key in ("backlogThreshold", "backlog_threshold"):
                if key in section:
                    values["backlog_threshold"] = section[key]
            for key in ("health_check_timeout", "poll_interval"):
                if key in section:
                    values[key] = section[key]
        return cls(**values)

    @classmethod
    def from_yaml(
        cls,
        *paths: str | Path,
        name: str = "",
        section: str = "database",
    ) -> DatabaseConfig:
        """Load configuration from YAML files, later files overriding earlier ones.

        Each file may hold the settings at top level or under ``section``.
        Missing files are skipped.
        """
        import yaml

        sections: list[Mapping[str, Any]] = []
        for path in paths:
            path = Path(path)
            if not path.exists():
                logger.debug("config_file_missing", path=str(path))
                continue
            try:
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path}: {e}", cause=e) from e
            if not isinstance(data, Mapping):
                raise ConfigurationError(f"Expected a mapping in {path}")
            block = data.get(section, data)
            if not isinstance(block, Mapping):
                raise ConfigurationError(f"Section '{section}' in {path} is not a mapping")
            sections.append(block)
        return cls.load(name, *sections)


__all__ = ["DatabaseConfig", "NAME_PLACEHOLDER"]
