"""
Root Typer application for the polydb CLI.

Every command takes the same connection options, builds a
``PluginConfig`` and dispatches through the default engine registry::

    polydb rows users -t sqlite -d app.db --where '{"Type": "Atomic", "Atomic": {"Key": "name", "Operator": "=", "Value": "Bob"}}'
"""

from __future__ import annotations

import json

import typer
from typer import Typer

from polydb.cli.utils import (
    cli_errors,
    console,
    get_adapter,
    make_config,
    output_graph,
    output_names,
    output_rows,
    output_units,
    print_json,
)
from polydb.core.adapters import default_registry
from polydb.core.errors import MalformedFilterError
from polydb.core.filters import from_dict
from polydb.core.logging import configure_logging
from polydb.core.settings import get_settings

app = Typer(
    name="polydb",
    help="polydb -- browse and edit relational, document, key-value and search databases.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Shared options ───────────────────────────────────────────────────────

TYPE = typer.Option(..., "--type", "-t", help="Engine: postgresql, mysql, mariadb, sqlite, oracle, mongodb, redis, elasticsearch.")
HOST = typer.Option("", "--host", "-h", help="Server host name.")
PORT = typer.Option(None, "--port", help="Server port (engine default when omitted).")
USER = typer.Option("", "--user", "-u", help="User name.")
PASSWORD = typer.Option("", "--password", "-p", envvar="POLYDB_PASSWORD", help="Password (or POLYDB_PASSWORD).")
DATABASE = typer.Option("", "--database", "-d", help="Database name, file path or index.")
ADVANCED = typer.Option(None, "--advanced", "-a", help="Advanced option KEY=VALUE (repeatable).")
TIMEOUT = typer.Option(None, "--timeout", help="Per-call timeout in seconds.")
SCHEMA = typer.Option("", "--schema", "-s", help="Schema (ignored by engines without schemas).")
JSON_OUT = typer.Option(False, "--json", help="Print JSON instead of tables.")


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("polydb-core")
        except PackageNotFoundError:
            from polydb import __version__ as v
        typer.echo(f"polydb {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override POLYDB_LOG_LEVEL."),
) -> None:
    """polydb CLI -- one command set for eight database engines."""
    settings = get_settings()
    configure_logging(
        level=log_level or settings.log_level,
        json_format=settings.log_json,
        service=settings.service_name,
    )


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("engines")
def engines(json_out: bool = JSON_OUT) -> None:
    """List registered engines and their filter operators."""
    registry = default_registry()
    entries = [
        {
            "engine": db_type.value,
            "relational": db_type.is_relational,
            "operators": sorted(registry.choose(db_type).get_supported_operators()),
        }
        for db_type in registry.engines()
    ]
    if json_out:
        print_json(entries)
        return
    for entry in entries:
        kind = "sql" if entry["relational"] else "nosql"
        console.print(f"[bold]{entry['engine']}[/bold] [dim]({kind})[/dim]  {', '.join(entry['operators'])}")


@app.command("ping")
def ping(
    db_type: str = TYPE,
    host: str = HOST,
    port: int | None = PORT,
    user: str = USER,
    password: str = PASSWORD,
    database: str = DATABASE,
    advanced: list[str] | None = ADVANCED,
    timeout: float | None = TIMEOUT,
) -> None:
    """Check that the engine is reachable."""
    with cli_errors():
        adapter = get_adapter(db_type)
        config = make_config(db_type, host=host, port=port, user=user, password=password, database=database, advanced=advanced, timeout=timeout)
    if adapter.is_available(config):
        console.print(f"[green]✓[/green] {adapter.name} is reachable")
        return
    console.print(f"[red]✗[/red] {adapter.name} is not reachable")
    raise typer.Exit(code=1)


@app.command("databases")
def databases(
    db_type: str = TYPE,
    host: str = HOST,
    port: int | None = PORT,
    user: str = USER,
    password: str = PASSWORD,
    database: str = DATABASE,
    advanced: list[str] | None = ADVANCED,
    timeout: float | None = TIMEOUT,
    json_out: bool = JSON_OUT,
) -> None:
    """List databases."""
    with cli_errors():
        config = make_config(db_type, host=host, port=port, user=user, password=password, database=database, advanced=advanced, timeout=timeout)
        names = get_adapter(db_type).get_databases(config)
    output_names(names, as_json=json_out, title="Databases")


@app.command("schemas")
def schemas(
    db_type: str = TYPE,
    host: str = HOST,
    port: int | None = PORT,
    user: str = USER,
    password: str = PASSWORD,
    database: str = DATABASE,
    advanced: list[str] | None = ADVANCED,
    timeout: float | None = TIMEOUT,
    json_out: bool = JSON_OUT,
) -> None:
    """List schemas."""
    with cli_errors():
        config = make_config(db_type, host=host, port=port, user=user, password=password, database=database, advanced=advanced, timeout=timeout)
        names = get_adapter(db_type).get_all_schemas(config)
    output_names(names, as_json=json_out, title="Schemas")


@app.command("units")
def units(
    db_type: str = TYPE,
    schema: str = SCHEMA,
    host: str = HOST,
    port: int | None = PORT,
    user: str = USER,
    password: str = PASSWORD,
    database: str = DATABASE,
    advanced: list[str] | None = ADVANCED,
    timeout: float | None = TIMEOUT,
    json_out: bool = JSON_OUT,
) -> None:
    """List storage units (tables, collections, keys, indices)."""
    with cli_errors():
        config = make_config(db_type, host=host, port=port, user=user, password=password, database=database, advanced=advanced, timeout=timeout)
        result = get_adapter(db_type).get_storage_units(config, schema)
    output_units(result, as_json=json_out, title="Storage units")


@app.command("rows")
def rows(
    storage_unit: str = typer.Argument(..., help="Table, collection, key or index."),
    db_type: str = TYPE,
    schema: str = SCHEMA,
    where: str | None = typer.Option(None, "--where", "-w", help="Filter tree as JSON."),
    page_size: int = typer.Option(100, "--page-size", "-n"),
    offset: int = typer.Option(0, "--offset", "-o"),
    host: str = HOST,
    port: int | None = PORT,
    user: str = USER,
    password: str = PASSWORD,
    database: str = DATABASE,
    advanced: list[str] | None = ADVANCED,
    timeout: float | None = TIMEOUT,
    json_out: bool = JSON_OUT,
) -> None:
    """Show one filtered page of rows."""
    with cli_errors():
        condition = None
        if where:
            try:
                condition = from_dict(json.loads(where))
            except json.JSONDecodeError as exc:
                raise MalformedFilterError(f"--where is not valid JSON: {exc.msg}", field="where", cause=exc) from exc
        config = make_config(db_type, host=host, port=port, user=user, password=password, database=database, advanced=advanced, timeout=timeout)
        result = get_adapter(db_type).get_rows(
            config, schema, storage_unit, where=condition, page_size=page_size, page_offset=offset
        )
    output_rows(result, as_json=json_out, title=storage_unit)


@app.command("query")
def query(
    statement: str = typer.Argument(..., help="Native query text (SQL, Elasticsearch SQL)."),
    db_type: str = TYPE,
    host: str = HOST,
    port: int | None = PORT,
    user: str = USER,
    password: str = PASSWORD,
    database: str = DATABASE,
    advanced: list[str] | None = ADVANCED,
    timeout: float | None = TIMEOUT,
    json_out: bool = JSON_OUT,
) -> None:
    """Run a raw query in a single transaction."""
    with cli_errors():
        config = make_config(db_type, host=host, port=port, user=user, password=password, database=database, advanced=advanced, timeout=timeout)
        result = get_adapter(db_type).raw_execute(config, statement)
    output_rows(result, as_json=json_out)


@app.command("graph")
def graph(
    db_type: str = TYPE,
    schema: str = SCHEMA,
    host: str = HOST,
    port: int | None = PORT,
    user: str = USER,
    password: str = PASSWORD,
    database: str = DATABASE,
    advanced: list[str] | None = ADVANCED,
    timeout: float | None = TIMEOUT,
    json_out: bool = JSON_OUT,
) -> None:
    """Show relationships between storage units."""
    with cli_errors():
        config = make_config(db_type, host=host, port=port, user=user, password=password, database=database, advanced=advanced, timeout=timeout)
        result = get_adapter(db_type).get_graph(config, schema)
    output_graph(result, as_json=json_out)
