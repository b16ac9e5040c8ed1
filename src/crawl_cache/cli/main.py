"""CLI for crawl-cache: inspect and maintain a resource cache.

Only the filesystem backend outlives a single command, so most commands
are meant for ``--backend filesystem`` (the default whenever ``--root``
is given).
"""

from __future__ import annotations

import asyncio
import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from crawl_cache.core.config import AppSettings, StorageConfig
from crawl_cache.core.logging_config import bind_log_context, setup_logging
from crawl_cache.core.startup_checks import validate_settings
from crawl_cache.exceptions import CrawlCacheError
from crawl_cache.resources.factory import create_resource_storage
from crawl_cache.resources.models import StoredResource
from crawl_cache.resources.protocols import IResourceStorage

app = typer.Typer(name="crawl-cache", help="Inspect and maintain the crawl resource cache")
console = Console()

T = TypeVar("T")

BackendOption = typer.Option(None, "--backend", "-b", help="memory or filesystem (default: MCP_RESOURCE_STORAGE)")
RootOption = typer.Option(None, "--root", help="Filesystem backend root directory")
VerboseOption = typer.Option(False, "--verbose", "-v")


def _build_settings(backend: Optional[str], root: Optional[Path], verbose: bool) -> AppSettings:
    """Build settings, overriding env defaults with CLI flags."""
    overrides: dict[str, Any] = {}
    if root is not None:
        overrides["filesystem_root"] = root
        overrides["storage"] = "filesystem"
    if backend:
        overrides["storage"] = backend
    storage = StorageConfig(**overrides)

    settings = AppSettings(storage=storage)
    if verbose:
        settings.observability.log_level = "DEBUG"
    return settings


def _run(
    backend: Optional[str],
    root: Optional[Path],
    verbose: bool,
    action: Callable[[IResourceStorage], Awaitable[T]],
) -> T:
    try:
        settings = _build_settings(backend, root, verbose)
    except ValidationError as e:
        raise typer.BadParameter(str(e)) from e
    setup_logging(settings.observability)
    bind_log_context(backend=settings.storage.storage)
    try:
        validate_settings(settings)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e

    async def _main() -> T:
        storage = await create_resource_storage(settings.storage)
        return await action(storage)

    try:
        return asyncio.run(_main())
    except CrawlCacheError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from e


def _format_ms(epoch_ms: int) -> str:
    dt = datetime.datetime.fromtimestamp(epoch_ms / 1000, tz=datetime.timezone.utc)
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def _resource_table(title: str, resources: list[StoredResource]) -> Table:
    table = Table(title=title)
    table.add_column("Tier", style="cyan")
    table.add_column("URL", style="green")
    table.add_column("Created")
    table.add_column("Chars", justify="right")
    table.add_column("URI", overflow="fold")
    for resource in resources:
        table.add_row(
            resource.metadata.resource_type,
            resource.metadata.url,
            resource.metadata.timestamp,
            str(len(resource.text)),
            resource.uri,
        )
    return table


@app.command()
def stats(
    backend: Optional[str] = BackendOption,
    root: Optional[Path] = RootOption,
    verbose: bool = VerboseOption,
) -> None:
    """Show item count, size and limits."""

    async def _action(storage: IResourceStorage):
        return await storage.get_stats()

    result = _run(backend, root, verbose, _action)

    console.print(f"[bold]Items:[/bold] {result.item_count} / {result.max_items}")
    console.print(f"[bold]Size:[/bold] {result.total_size_bytes:,} / {result.max_size_bytes:,} bytes")
    ttl = "never expires" if result.default_ttl == 0 else f"{result.default_ttl // 1000}s"
    console.print(f"[bold]Default TTL:[/bold] {ttl}\n")

    table = Table(title="Resources (least recently used first)")
    table.add_column("Tier", style="cyan")
    table.add_column("URL", style="green")
    table.add_column("Bytes", justify="right")
    table.add_column("Last access")
    table.add_column("TTL", justify="right")
    for summary in sorted(result.resources, key=lambda s: s.last_access_time):
        table.add_row(
            summary.resource_type,
            summary.url,
            f"{summary.size_bytes:,}",
            _format_ms(summary.last_access_time),
            "∞" if summary.ttl == 0 else f"{summary.ttl // 1000}s",
        )
    console.print(table)


@app.command("list")
def list_command(
    backend: Optional[str] = BackendOption,
    root: Optional[Path] = RootOption,
    verbose: bool = VerboseOption,
) -> None:
    """List every live resource."""

    async def _action(storage: IResourceStorage):
        return await storage.list()

    resources = _run(backend, root, verbose, _action)
    console.print(_resource_table("Cached Resources", resources))
    console.print(f"\nTotal: {len(resources)}")


@app.command()
def find(
    url: str = typer.Argument(..., help="Source URL"),
    extract: Optional[str] = typer.Option(None, "--extract", "-e", help="Extraction prompt to match exactly"),
    backend: Optional[str] = BackendOption,
    root: Optional[Path] = RootOption,
    verbose: bool = VerboseOption,
) -> None:
    """Find cached resources for a URL, newest first."""

    async def _action(storage: IResourceStorage):
        if extract is None:
            return await storage.find_by_url(url)
        return await storage.find_by_url_and_extract(url, extract)

    resources = _run(backend, root, verbose, _action)
    if not resources:
        console.print(f"[yellow]No cached resources for {url}[/yellow]")
        raise typer.Exit(code=1)
    console.print(_resource_table(f"Resources for {url}", resources))


@app.command()
def read(
    uri: str = typer.Argument(..., help="Resource URI"),
    backend: Optional[str] = BackendOption,
    root: Optional[Path] = RootOption,
    verbose: bool = VerboseOption,
) -> None:
    """Print a resource's content."""

    async def _action(storage: IResourceStorage):
        return await storage.read(uri)

    resource = _run(backend, root, verbose, _action)
    console.print(f"[bold]{resource.name}[/bold] ({resource.metadata.resource_type}, {resource.mime_type})")
    console.print(resource.text, markup=False, highlight=False)


@app.command()
def delete(
    uri: str = typer.Argument(..., help="Resource URI"),
    backend: Optional[str] = BackendOption,
    root: Optional[Path] = RootOption,
    verbose: bool = VerboseOption,
) -> None:
    """Delete a resource."""

    async def _action(storage: IResourceStorage):
        await storage.delete(uri)

    _run(backend, root, verbose, _action)
    console.print(f"[green]Deleted {uri}[/green]")


@app.command()
def cleanup(
    backend: Optional[str] = BackendOption,
    root: Optional[Path] = RootOption,
    verbose: bool = VerboseOption,
) -> None:
    """Drop expired resources and enforce size/count limits once."""

    async def _action(storage: IResourceStorage):
        await storage.cleanup()
        return await storage.get_stats()

    after = _run(backend, root, verbose, _action)
    console.print(
        f"[green]Cleanup done: {after.item_count} resource(s), "
        f"{after.total_size_bytes:,} bytes[/green]"
    )


if __name__ == "__main__":
    app()
