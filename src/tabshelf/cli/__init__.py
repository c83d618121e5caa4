"""
CLI for tabshelf.

Provides command-line interface for syncing, browsing and watching a tab library.
"""

import os
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from tabshelf.core import SyncStrategy, configure_logging, load_config
from tabshelf.services import ServicesContainer, create_services

load_dotenv()

# Initialize Rich Console
console = Console()

app = typer.Typer(
    name="tabshelf",
    help="tabshelf - Sheet music and tablature library",
    add_completion=False,
)


class ConsoleEmitter:
    """NotificationEmitter that forwards events to a replaceable listener."""

    def __init__(self):
        self.listener: Optional[Callable[[str, Any], None]] = None

    def emit(self, event_name: str, payload: Any = None) -> None:
        if self.listener is not None:
            self.listener(event_name, payload)


def get_services(emitter: Optional[ConsoleEmitter] = None) -> ServicesContainer:
    """
    Initialize services from .env and an optional TABSHELF_CONFIG file.

    Returns:
        ServicesContainer; callers close it when done
    """
    cfg = load_config(os.environ.get("TABSHELF_CONFIG") or None)
    configure_logging(cfg.logging)
    return create_services(config=cfg, emitter=emitter or ConsoleEmitter())


def _format_time(timestamp: int) -> str:
    if not timestamp:
        return "never"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M")


@app.command()
def sync():
    """Scan the sync paths and add new tabs to the library."""
    emitter = ConsoleEmitter()
    try:
        services = get_services(emitter)
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    try:
        if not services.store.settings.sync_paths:
            console.print(
                "[yellow]No sync paths configured.[/yellow] Add one with 'tabshelf add-path'."
            )
            return

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Scanning...", total=None)

            def on_event(event_name: str, payload: Any) -> None:
                if event_name == "sync-progress":
                    progress.update(task, description=payload["message"])

            emitter.listener = on_event
            result = services.sync_engine.sync()
            emitter.listener = None

        summary = Table.grid(padding=1)
        summary.add_column(style="bold")
        summary.add_column()
        summary.add_row("Files Seen:", str(result.total))
        summary.add_row("Added:", f"[green]{result.added}[/green]")
        summary.add_row("Skipped:", str(result.skipped))
        if result.errors:
            summary.add_row("Errors:", f"[red]{result.errors}[/red]")

        console.print(
            Panel(
                summary,
                title="[bold green]Sync Complete[/bold green]",
                border_style="green",
                expand=False,
            )
        )
        if result.added:
            console.print("[dim]Waiting for cover downloads...[/dim]")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    finally:
        services.close()


@app.command("list")
def list_tabs(
    search: str = typer.Option("", "--search", "-s", help="Prefix search query"),
    fields: Optional[list[str]] = typer.Option(
        None,
        "--field",
        "-f",
        help="Field to search (title, artist, album, tag). Can be specified multiple times.",
    ),
    category: Optional[str] = typer.Option(
        None, "--category", "-c", help="Only list tabs in this category id"
    ),
    page: int = typer.Option(1, "--page", "-p", help="Page number"),
    page_size: int = typer.Option(50, "--page-size", "-n", help="Tabs per page"),
    sort: Optional[str] = typer.Option(
        None, "--sort", help="Sort by title, added_at, last_opened or relevance"
    ),
    desc: bool = typer.Option(False, "--desc", help="Reverse the sort order"),
):
    """List or search tabs in the library."""
    valid_sorts = {"title", "added_at", "last_opened", "relevance"}
    if sort is not None and sort not in valid_sorts:
        console.print(
            f"[bold red]Error:[/bold red] Invalid sort: {sort}. "
            f"Valid values: {', '.join(sorted(valid_sorts))}"
        )
        raise typer.Exit(1)

    try:
        services = get_services()
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    try:
        result = services.store.get_tabs_paginated(
            category_id=category or "",
            page=page,
            page_size=page_size,
            search_query=search,
            search_fields=fields or [],
            is_global=category is None,
            sort_by=sort,
            sort_desc=desc,
        )

        if not result.tabs:
            console.print("[yellow]No tabs found.[/yellow]")
            return

        table = Table(title=f"Tabs ({result.total} total)")
        table.add_column("Title", style="cyan")
        table.add_column("Artist")
        table.add_column("Album")
        table.add_column("Type", style="dim")
        table.add_column("Id", style="dim")
        for tab in result.tabs:
            table.add_row(tab.title, tab.artist, tab.album, tab.type.value, tab.id)
        console.print(table)

        if result.has_more:
            console.print(f"[dim]More results on page {page + 1}[/dim]")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    finally:
        services.close()


@app.command()
def status():
    """Show library statistics and settings."""
    try:
        services = get_services()
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    try:
        store = services.store
        settings = store.settings
        total = store.get_tabs_paginated(page_size=1).total

        grid = Table.grid(padding=1)
        grid.add_column(style="bold")
        grid.add_column()
        grid.add_row("Total Tabs:", str(total))
        grid.add_row("Categories:", str(len(store.get_categories())))
        grid.add_row("Last Sync:", _format_time(settings.last_sync_time))
        console.print(Panel(grid, title="Library Statistics", border_style="blue", expand=False))

        paths = "\n".join(settings.sync_paths) or "(none)"
        settings_summary = f"""Sync Paths: {paths}
Sync Strategy: {settings.sync_strategy.value}
Auto Sync: {'on' if settings.auto_sync_enabled else 'off'} ({settings.auto_sync_frequency.value})
Database: {store.db_path}"""

        console.print(Panel(settings_summary, title="Settings", border_style="dim", expand=False))
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    finally:
        services.close()


@app.command("add-path")
def add_path(
    path: Path = typer.Argument(..., help="Directory to sync"),
):
    """Add a directory to the sync paths."""
    if not path.is_dir():
        console.print(f"[bold red]Error:[/bold red] Not a directory: {path}")
        raise typer.Exit(1)

    try:
        services = get_services()
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    try:
        resolved = str(path.resolve())
        settings = services.store.settings
        if resolved in settings.sync_paths:
            console.print(f"[yellow]Already syncing:[/yellow] {resolved}")
            return
        services.watch_service.update_settings(
            settings.with_changes(sync_paths=list(settings.sync_paths) + [resolved])
        )
        console.print(f"[green]Added sync path:[/green] {resolved}")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    finally:
        services.close()


@app.command("remove-path")
def remove_path(
    path: str = typer.Argument(..., help="Sync path to remove"),
):
    """Remove a directory from the sync paths. Tracked tabs are kept."""
    try:
        services = get_services()
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    try:
        settings = services.store.settings
        candidates = {path, str(Path(path).expanduser().resolve())}
        remaining = [p for p in settings.sync_paths if p not in candidates]
        if len(remaining) == len(settings.sync_paths):
            console.print(f"[bold red]Error:[/bold red] Not a sync path: {path}")
            raise typer.Exit(1)
        services.watch_service.update_settings(settings.with_changes(sync_paths=remaining))
        console.print(f"[green]Removed sync path:[/green] {path}")
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    finally:
        services.close()


@app.command()
def strategy(
    value: str = typer.Argument(..., help="Title conflict strategy: skip or overwrite"),
):
    """Set how sync handles a new file whose title is already in the library."""
    try:
        new_strategy = SyncStrategy(value.lower())
    except ValueError:
        console.print(
            f"[bold red]Error:[/bold red] Invalid strategy: {value}. Valid values: overwrite, skip"
        )
        raise typer.Exit(1)

    try:
        services = get_services()
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    try:
        services.store.update_settings(
            services.store.settings.with_changes(sync_strategy=new_strategy)
        )
        console.print(f"[green]Sync strategy set to[/green] {new_strategy.value}")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    finally:
        services.close()


@app.command()
def categories():
    """List categories."""
    try:
        services = get_services()
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    try:
        items = services.store.get_categories()
        if not items:
            console.print("[yellow]No categories.[/yellow]")
            return

        names = {c.id: c.name for c in items}
        table = Table(title="Categories")
        table.add_column("Name", style="cyan")
        table.add_column("Parent")
        table.add_column("Id", style="dim")
        for category in items:
            table.add_row(category.name, names.get(category.parent_id, ""), category.id)
        console.print(table)
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    finally:
        services.close()


@app.command()
def watch():
    """Watch the sync paths and sync whenever tab files change."""
    emitter = ConsoleEmitter()

    def on_event(event_name: str, payload: Any) -> None:
        if event_name == "file-changes-detected":
            count = len(payload["changes"]["paths"])
            console.print(f"[blue]Changes detected[/blue] in {count} files")
        elif event_name == "sync-completed":
            console.print(
                f"[green]Sync complete[/green]: {payload['added']} added, "
                f"{payload['skipped']} skipped, {payload['errors']} errors"
            )
        elif event_name == "tab-updated":
            console.print(f"[dim]Cover saved for {payload['tab']['title']}[/dim]")

    emitter.listener = on_event
    try:
        services = get_services(emitter)
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    try:
        settings = services.store.settings
        if not settings.sync_paths:
            console.print(
                "[yellow]No sync paths configured.[/yellow] Add one with 'tabshelf add-path'."
            )
            return

        services.watch_service.start()
        console.print(
            Panel(
                "\n".join(settings.sync_paths),
                title="[bold green]Watching[/bold green]",
                subtitle="Ctrl+C to stop",
                border_style="green",
                expand=False,
            )
        )
        while services.watch_service.is_running():
            time.sleep(0.5)
    except KeyboardInterrupt:
        console.print("\n[cyan]Stopping...[/cyan]")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    finally:
        services.close()


if __name__ == "__main__":
    app()
