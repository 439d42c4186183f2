"""
CLI utility helpers -- connection options, output formatting, error exit.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from polydb.core.adapters import DatabaseAdapter, default_registry
from polydb.core.errors import MalformedInputError, PolyDBError
from polydb.core.models import (
    Credentials,
    GraphUnit,
    PluginConfig,
    Record,
    RowsResult,
    StorageUnit,
    to_plain,
)

console = Console()
err_console = Console(stderr=True)


# ── Connection helpers ───────────────────────────────────────────────────


def parse_advanced(pairs: list[str] | None) -> tuple[Record, ...]:
    """``["Port=5433", "SSL Mode=require"]`` → advanced ``Record`` tuple."""
    records = []
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise MalformedInputError(f"Advanced option must be KEY=VALUE, got {pair!r}", field="advanced")
        records.append(Record(key=key.strip(), value=value.strip()))
    return tuple(records)


def make_config(
    db_type: str,
    *,
    host: str = "",
    port: int | None = None,
    user: str = "",
    password: str = "",
    database: str = "",
    advanced: list[str] | None = None,
    timeout: float | None = None,
) -> PluginConfig:
    credentials = Credentials(
        type=db_type,
        hostname=host or "",
        username=user or "",
        password=password or "",
        database=database or "",
        port=port,
        advanced=parse_advanced(advanced),
    )
    return PluginConfig(credentials=credentials, timeout=timeout)


def get_adapter(db_type: str) -> DatabaseAdapter:
    return default_registry().choose(db_type)


@contextmanager
def cli_errors() -> Iterator[None]:
    """Print a ``PolyDBError`` with its category and context, then exit 1."""
    try:
        yield
    except PolyDBError as exc:
        err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {escape(exc.message)}")
        for key, value in exc.context.to_dict().items():
            err_console.print(f"  [dim]{key}:[/dim] {escape(str(value))}")
        raise typer.Exit(code=1) from None


# ── Output helpers ───────────────────────────────────────────────────────


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(to_plain(payload), default=str))


def output_names(names: list[str], *, as_json: bool = False, title: str = "") -> None:
    """Render a plain list of names."""
    if as_json:
        print_json(names)
        return
    if not names:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, pad_edge=False)
    table.add_column("name", overflow="fold")
    for name in names:
        table.add_row(name)
    console.print(table)


def output_units(units: list[StorageUnit], *, as_json: bool = False, title: str = "") -> None:
    """Render storage units: labelled attributes as columns, fields counted."""
    if as_json:
        print_json(units)
        return
    if not units:
        console.print("[dim]No storage units.[/dim]")
        return
    labels: list[str] = []
    for unit in units:
        for record in unit.attributes:
            if not record.get_extra("kind") and record.key not in labels:
                labels.append(record.key)

    table = Table(title=title or None, pad_edge=False)
    table.add_column("name", overflow="fold")
    for label in labels:
        table.add_column(label, overflow="fold")
    table.add_column("fields", justify="right")
    for unit in units:
        fields = [r for r in unit.attributes if r.get_extra("kind")]
        table.add_row(unit.name, *(unit.attribute(label) or "" for label in labels), str(len(fields)))
    console.print(table)


def output_rows(result: RowsResult, *, as_json: bool = False, title: str = "") -> None:
    """Render a ``RowsResult`` as a table (``NULL`` shown dimmed)."""
    if as_json:
        print_json(
            {
                "columns": result.columns,
                "rows": result.rows,
                "disable_update": result.disable_update,
            }
        )
        return
    table = Table(title=title or None, pad_edge=False)
    for column in result.columns:
        header = f"{column.name}\n[dim]{column.type}[/dim]" if column.type else column.name
        table.add_column(header, overflow="fold")
    for row in result.rows:
        table.add_row(*(escape(value) if value != "" else "[dim]NULL[/dim]" for value in row))
    console.print(table)
    console.print(f"[dim]{len(result.rows)} row(s)[/dim]")


def output_graph(graph: list[GraphUnit], *, as_json: bool = False) -> None:
    """Render relationship edges, one line per edge."""
    if as_json:
        print_json(graph)
        return
    if not graph:
        console.print("[dim]No storage units.[/dim]")
        return
    table = Table(pad_edge=False)
    table.add_column("unit", overflow="fold")
    table.add_column("relationship")
    table.add_column("target", overflow="fold")
    for node in graph:
        if not node.relations:
            table.add_row(node.unit.name, "[dim]-[/dim]", "")
        for relation in node.relations:
            table.add_row(node.unit.name, relation.relationship_type.value, relation.name)
    console.print(table)


__all__ = [
    "console",
    "err_console",
    "parse_advanced",
    "make_config",
    "get_adapter",
    "cli_errors",
    "print_json",
    "output_names",
    "output_units",
    "output_rows",
    "output_graph",
]
