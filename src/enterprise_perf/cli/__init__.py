"""CLI commands for enterprise-perf.

Provides command-line interface using Typer:
- enterprise-perf cache: Check, invalidate and flush the shared cache
- enterprise-perf cursor: Inspect pagination cursors
- enterprise-perf serve: Run the health and metrics API

Usage:
    enterprise-perf --help
    enterprise-perf cache health
    enterprise-perf cache invalidate clinic c1 --tenant o1
    enterprise-perf cursor decode eyJ2Ijo...
    enterprise-perf serve --port 8080
"""

import typer

from enterprise_perf.cli.cache_cmd import app as cache_app
from enterprise_perf.cli.cursor_cmd import app as cursor_app
from enterprise_perf.cli.serve import app as serve_app

app = typer.Typer(
    name="enterprise-perf",
    help="Caching, batch loading and pagination for enterprise services",
    no_args_is_help=True,
)

app.add_typer(cache_app, name="cache")
app.add_typer(cursor_app, name="cursor")
app.add_typer(serve_app, name="serve")


@app.callback()
def callback() -> None:
    """enterprise-perf: caching, batch loading and pagination."""


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
