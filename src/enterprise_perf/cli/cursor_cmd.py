"""CLI commands for inspecting pagination cursors.

Usage:
    enterprise-perf cursor decode eyJ2IjoiMjAyNi0wMS0wMVQwMDowMDowMCswMDowMCIs...
    enterprise-perf cursor encode 2026-01-01T00:00:00+00:00 a0042 --datetime
"""

from __future__ import annotations

from datetime import datetime

import orjson
import typer
from rich.console import Console

from enterprise_perf.errors import InvalidCursorError
from enterprise_perf.pagination.cursor import decode_cursor, encode_cursor

app = typer.Typer(help="Inspect pagination cursors")


@app.command("decode")
def decode(
    cursor: str = typer.Argument(..., help="Cursor token from a page's nextCursor"),
) -> None:
    """Show the sort value and id a cursor points after."""
    console = Console()
    try:
        position = decode_cursor(cursor)
    except InvalidCursorError as e:
        console.print(f"[red]Invalid cursor:[/red] {e}")
        raise typer.Exit(code=1) from e

    value = position.value
    kind = "datetime" if isinstance(value, datetime) else type(value).__name__
    console.print(f"[bold]Sort value:[/bold] {value} ({kind})")
    console.print(f"[bold]Id:[/bold] {position.id}")


@app.command("encode")
def encode(
    value: str = typer.Argument(..., help="Sort value of the last row"),
    entity_id: str = typer.Argument(..., help="Id of the last row"),
    as_datetime: bool = typer.Option(
        False,
        "--datetime",
        "-d",
        help="Parse the sort value as an ISO 8601 datetime",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Parse the sort value as a JSON literal (numbers, booleans)",
    ),
) -> None:
    """Build a cursor positioned after (value, id)."""
    sort_value: object = value
    try:
        if as_datetime:
            sort_value = datetime.fromisoformat(value)
        elif as_json:
            sort_value = orjson.loads(value)
    except ValueError as e:
        raise typer.BadParameter(f"Cannot parse sort value {value!r}: {e}") from e

    typer.echo(encode_cursor(sort_value, entity_id))
