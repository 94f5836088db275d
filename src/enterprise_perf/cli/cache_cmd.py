"""CLI commands for operating the shared cache.

Every command connects with the same Settings the services use (REDIS_URL,
CACHE_KEY_PREFIX, ...), so keys are resolved in the same namespace.

Usage:
    enterprise-perf cache health
    enterprise-perf cache invalidate clinic c1
    enterprise-perf cache invalidate clinic c1 --tenant o1
    enterprise-perf cache invalidate-list assignment
    enterprise-perf cache flush --yes
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from rich.console import Console
from rich.table import Table

from enterprise_perf.cache.keys import CacheKeys
from enterprise_perf.cache.read_through import CacheHealth, HealthStatus
from enterprise_perf.config import Settings
from enterprise_perf.context import PerformanceContext
from enterprise_perf.errors import CacheBackendError

T = TypeVar("T")

app = typer.Typer(help="Check, invalidate and flush the shared cache")


def _run(action: Callable[[PerformanceContext], Awaitable[T]]) -> T:
    async def runner() -> T:
        perf = PerformanceContext.from_settings(Settings())
        try:
            return await action(perf)
        finally:
            await perf.close()

    return asyncio.run(runner())


@app.command("health")
def health() -> None:
    """Round-trip the cache backend and report its latency."""
    console = Console()

    async def check(perf: PerformanceContext) -> tuple[CacheHealth, dict[str, str]]:
        return await perf.cache.health_check(), {
            "Backend": type(perf.backend).__name__,
            "Prefix": perf.settings.cache_key_prefix,
        }

    result, details = _run(check)

    table = Table(title="Cache health")
    table.add_column("Check")
    table.add_column("Value")
    for name, value in details.items():
        table.add_row(name, value)
    status_color = "green" if result.status is HealthStatus.OK else "red"
    table.add_row("Status", f"[{status_color}]{result.status.value}[/{status_color}]")
    if result.latency_ms is not None:
        table.add_row("Latency", f"{result.latency_ms:.2f} ms")
    if result.message:
        table.add_row("Message", result.message)
    console.print(table)

    if result.status is not HealthStatus.OK:
        raise typer.Exit(code=1)


@app.command("invalidate")
def invalidate(
    resource_type: str = typer.Argument(..., help="Resource type, e.g. clinic"),
    entity_id: str = typer.Argument(..., help="Entity id"),
    tenant: str | None = typer.Option(
        None,
        "--tenant",
        "-t",
        help="Owning tenant id; also drops list pages and the tenant collection",
    ),
    tenant_type: str = typer.Option(
        "organization",
        "--tenant-type",
        help="Tenant resource type",
    ),
) -> None:
    """Drop an entity and the keys derived from it."""
    console = Console()

    async def drop(perf: PerformanceContext) -> None:
        if tenant:
            await perf.cache.invalidate_scoped(resource_type, entity_id, tenant, tenant_type)
        else:
            await perf.cache.invalidate(resource_type, entity_id)

    _run(drop)
    scope = f" (scoped to {tenant_type} {tenant})" if tenant else ""
    console.print(f"[green]Invalidated[/green] {resource_type}:{entity_id}{scope}")


@app.command("invalidate-list")
def invalidate_list(
    resource_type: str = typer.Argument(..., help="Resource type, e.g. assignment"),
) -> None:
    """Drop every cached list page of a resource type."""
    console = Console()

    async def drop(perf: PerformanceContext) -> int:
        return await perf.cache.delete_pattern(CacheKeys.list_pattern(resource_type))

    deleted = _run(drop)
    console.print(f"[green]Invalidated[/green] {deleted} {resource_type} list page(s)")


@app.command("flush")
def flush(
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Do not ask for confirmation",
    ),
) -> None:
    """Remove every key in the configured namespace."""
    console = Console()
    if not yes:
        typer.confirm("Remove every cached entry in this namespace?", abort=True)

    async def drop(perf: PerformanceContext) -> None:
        await perf.backend.flush()

    try:
        _run(drop)
    except CacheBackendError as e:
        console.print(f"[red]Flush failed:[/red] {e}")
        raise typer.Exit(code=1) from e
    console.print("[yellow]Cache namespace flushed[/yellow]")
