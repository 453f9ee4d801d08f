"""
CLI utility helpers: entity loading, database handles and output formatting.
"""

from __future__ import annotations

import dataclasses
import importlib
import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from tablespine.core.errors import ConfigurationError
from tablespine.core.settings import DatabaseConfig
from tablespine.database import Database
from tablespine.orm.schema import TABLE_OPTIONS_ATTR

console = Console()
err_console = Console(stderr=True)


# ── Entities ─────────────────────────────────────────────────────────────


def load_entity(spec: str) -> list[type]:
    """Resolve ``module:Class`` (one entity) or ``module`` (every ``@table`` entity in it)."""
    module_name, _, attr = spec.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import module '{module_name}': {e}", cause=e) from e
    if attr:
        entity = getattr(module, attr, None)
        if not (isinstance(entity, type) and dataclasses.is_dataclass(entity)):
            raise ConfigurationError(f"'{spec}' is not a dataclass entity type")
        return [entity]
    found = [
        obj
        for obj in vars(module).values()
        if isinstance(obj, type)
        and dataclasses.is_dataclass(obj)
        and obj.__module__ == module.__name__
        and TABLE_OPTIONS_ATTR in obj.__dict__
    ]
    if not found:
        raise ConfigurationError(f"Module '{module_name}' declares no @table entities")
    return found


def load_entities(specs: Sequence[str]) -> list[type]:
    entities: list[type] = []
    for spec in specs:
        for entity in load_entity(spec):
            if entity not in entities:
                entities.append(entity)
    return entities


# ── Database helper ──────────────────────────────────────────────────────


def open_database(
    url: str | None = None,
    *,
    config_file: Path | None = None,
    prefix: str | None = None,
    name: str = "cli",
    debug: bool = False,
) -> Database:
    """Open a database handle from a URL and/or a YAML config file.

    Without either, ``TABLESPINE_DB_*`` environment variables apply.
    """
    config = DatabaseConfig.from_yaml(config_file, name=name) if config_file else DatabaseConfig()
    overrides: dict[str, Any] = {}
    if url:
        overrides["url"] = url
    if prefix is not None:
        overrides["prefix"] = prefix
    if debug:
        overrides["debug"] = True
    if overrides:
        config = config.model_copy(update=overrides)
    return Database(config, name=name)


# ── Output helpers ───────────────────────────────────────────────────────


def print_rows(rows: list[dict[str, Any]], *, as_json: bool = False, title: str = "") -> None:
    """Render query rows as a rich table, or JSON."""
    if as_json:
        console.print_json(json.dumps(rows, default=str))
        return
    if not rows:
        console.print("[dim]No rows.[/dim]")
        return
    table = Table(title=title or None, show_header=True, header_style="bold")
    for key in rows[0]:
        table.add_column(str(key))
    for row in rows:
        table.add_row(*("NULL" if v is None else str(v) for v in row.values()))
    console.print(table)


def fail(message: str) -> None:
    """Print an error and exit with status 1."""
    err_console.print(f"[bold red]Error[/bold red]: {message}")
    raise typer.Exit(code=1)
