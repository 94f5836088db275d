"""CLI command for running the API server.

The default application exposes the cache health and metrics routes over a
Redis-backed context. Host services pass their own factory with --app.

Usage:
    enterprise-perf serve
    enterprise-perf serve --port 8080 --host 0.0.0.0
    enterprise-perf serve --app myservice.main:create_app --reload
"""

from __future__ import annotations

import typer

DEFAULT_APP = "enterprise_perf.api.app:create_default_app"

app = typer.Typer(help="Run the enterprise-perf API server")


@app.callback(invoke_without_command=True)
def serve(
    host: str = typer.Option(
        "0.0.0.0",  # nosec B104 - intentional for container deployments
        "--host",
        "-h",
        help="Host to bind to",
    ),
    port: int = typer.Option(
        8080,
        "--port",
        "-p",
        help="Port to listen on",
    ),
    factory: str = typer.Option(
        DEFAULT_APP,
        "--app",
        "-a",
        help="Application factory as module:callable",
    ),
    reload: bool = typer.Option(
        False,
        "--reload",
        "-r",
        help="Enable auto-reload for development",
    ),
    workers: int = typer.Option(
        1,
        "--workers",
        "-w",
        help="Number of worker processes",
    ),
    log_level: str = typer.Option(
        "info",
        "--log-level",
        "-l",
        help="Log level: debug, info, warning, error",
    ),
) -> None:
    """Run the API server with uvicorn."""
    import uvicorn

    workers_effective = workers if not reload else 1  # Reload requires single worker

    typer.echo("Starting enterprise-perf server...")
    typer.echo(f"  App: {factory}")
    typer.echo(f"  Host: {host}")
    typer.echo(f"  Port: {port}")
    typer.echo(f"  Workers: {workers_effective}")
    if reload:
        typer.echo("  Reload: enabled")
    typer.echo()

    uvicorn.run(
        app=factory,
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=workers_effective,
        log_level=log_level.lower(),
    )
