"""
Root Typer application for the table-spine CLI.

Commands::

    tablespine schema myapp.models:Player --dialect sqlite
    tablespine tables myapp.models -d sqlite:///app.db
    tablespine query "SELECT * FROM player" -d sqlite:///app.db --json
    tablespine update "DELETE FROM player WHERE score < 0" -d sqlite:///app.db
    tablespine copy myapp.models --source mysql://u:pw@db/app --dest sqlite:///copy.db
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from pathlib import Path

import typer
from rich.table import Table

from tablespine.cli.utils import console, fail, load_entities, open_database, print_rows
from tablespine.core.dialect import get_dialect
from tablespine.core.errors import PersistenceError, TableSpineError
from tablespine.core.logging import LogContext, configure_logging
from tablespine.orm.table import describe

app = typer.Typer(
    name="tablespine",
    help="table-spine: schema, query and copy tools for registered entities.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

DatabaseOption = typer.Option(None, "--database", "-d", help="Database URL or SQLite path")
ConfigOption = typer.Option(None, "--config", "-c", help="YAML config file")
PrefixOption = typer.Option(None, "--prefix", help="Table-name prefix")


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("table-spine")
        except PackageNotFoundError:
            from tablespine import __version__ as v
        typer.echo(f"table-spine {v}")
        raise typer.Exit()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log connections and SQL to stderr."),
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """table-spine CLI: inspect and administer entity tables."""
    configure_logging(level="INFO" if verbose else "WARNING", stream="stderr")


# ── Commands ─────────────────────────────────────────────────────────────


@app.command()
def schema(
    entities: list[str] = typer.Argument(..., help="module:Class or module"),
    dialect: str = typer.Option("mysql", "--dialect", help="mysql or sqlite"),
    prefix: str = typer.Option("", "--prefix", help="Table-name prefix"),
) -> None:
    """Print CREATE TABLE statements for entity types."""
    try:
        target = get_dialect(dialect)
        for entity in load_entities(entities):
            table = describe(entity, prefix=prefix, dialect=target)
            for sql in table.create_table_statements():
                console.print(f"{sql};\n", markup=False, highlight=False, soft_wrap=True)
    except TableSpineError as e:
        fail(e.message)


@app.command()
def tables(
    entities: list[str] = typer.Argument(..., help="module:Class or module"),
    database: str | None = DatabaseOption,
    config: Path | None = ConfigOption,
    prefix: str | None = PrefixOption,
) -> None:
    """Show row counts for entity tables."""
    try:
        db = open_database(database, config_file=config, prefix=prefix)
        with db:
            db.register_tables(*load_entities(entities))
            out = Table(title=f"Tables ({db.dialect.name})", header_style="bold")
            out.add_column("Entity")
            out.add_column("Table")
            out.add_column("Rows", justify="right")
            for table in db.tables:
                try:
                    rows = str(db.find(table.entity_type).count())
                except PersistenceError as e:
                    rows = f"[red]{e.message}[/red]"
                out.add_row(table.entity_type.__qualname__, table.name, rows)
            console.print(out)
    except TableSpineError as e:
        fail(e.message)


@app.command()
def query(
    sql: str = typer.Argument(..., help="SQL query"),
    database: str | None = DatabaseOption,
    config: Path | None = ConfigOption,
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Run a raw SQL query and print the rows."""
    try:
        with open_database(database, config_file=config) as db:
            rows = db.execute_query(sql)
    except TableSpineError as e:
        fail(e.message)
        return
    print_rows(rows, as_json=json_out, title=sql)
    if not json_out:
        console.print(f"[yellow]{len(rows)} result(s)[/yellow]")


@app.command()
def update(
    sql: str = typer.Argument(..., help="SQL statement"),
    database: str | None = DatabaseOption,
    config: Path | None = ConfigOption,
) -> None:
    """Run a raw SQL update and print the affected row count."""
    try:
        with open_database(database, config_file=config) as db:
            count = db.execute_update(sql)
    except TableSpineError as e:
        fail(e.message)
        return
    console.print(f"[yellow]Update result {count}[/yellow]: {sql}")


@app.command()
def copy(
    entities: list[str] = typer.Argument(..., help="module:Class or module (referenced types first)"),
    source: str = typer.Option(..., "--source", help="Source database URL"),
    dest: str = typer.Option(..., "--dest", help="Destination database URL"),
    source_prefix: str | None = typer.Option(None, "--source-prefix"),
    dest_prefix: str | None = typer.Option(None, "--dest-prefix"),
    batch_size: int = typer.Option(500, "--batch-size", min=1),
) -> None:
    """Copy entity rows between two databases, creating destination tables."""
    try:
        types = load_entities(entities)
        with open_database(source, prefix=source_prefix, name="source") as src, open_database(
            dest, prefix=dest_prefix, name="dest"
        ) as dst:
            src.register_tables(*types)
            dst.register_tables(*types)
            if not dst.create_all_tables():
                fail("Could not create destination tables")
            for entity in types:
                with LogContext(table=src.get_table(entity).name):
                    rows = src.find(entity).find_list()
                    for start in range(0, len(rows), batch_size):
                        dst.save(rows[start : start + batch_size])
                console.print(
                    f"[cyan]{len(rows)}[/cyan] row(s): "
                    f"{src.get_table(entity).name} -> {dst.get_table(entity).name}"
                )
    except TableSpineError as e:
        fail(e.message)


if __name__ == "__main__":
    app()
