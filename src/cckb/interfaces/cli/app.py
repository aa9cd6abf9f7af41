"""CLI application for cckb using Rich and Typer."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cckb.core.compaction import CompactionEngine
from cckb.core.config import setup_logging
from cckb.core.discovery import AutoDiscover, DiscoveryResult
from cckb.core.sessions import SessionStore
from cckb.core.settings import ConfigError, load_config
from cckb.core.types import ProgressEvent
from cckb.interfaces.hooks import run_hook
from cckb.vault.layout import ensure_kb_structure, get_kb_root, is_installed
from cckb.vault.store import VaultStore

app = typer.Typer(
    name="cckb",
    help="cckb - build a project knowledge base from sessions and source",
    no_args_is_help=True,
)

console = Console()


def _project_path(path: Optional[Path]) -> Path:
    return (path or Path.cwd()).resolve()


def print_progress(event: ProgressEvent) -> None:
    """Render analyzer progress events."""
    elapsed = f"{event.elapsed:.0f}s"
    match event.type:
        case "heartbeat":
            console.print(f"[dim]      {elapsed} - Still processing...[/dim]")
        case "stdout":
            console.print(
                f"[dim]      {elapsed} - Receiving data "
                f"({event.bytes_received} bytes)[/dim]"
            )
        case "complete":
            console.print(f"[dim]      {elapsed} - Analysis complete[/dim]")
        case "error":
            console.print(f"[red]      ERROR: {event.message}[/red]")


def print_discovery_summary(result: DiscoveryResult) -> None:
    """Summary table for a discovery run."""
    counts = result.result.counts()
    table = Table(title="Discovery", show_header=True, header_style="bold cyan")
    table.add_column("Item", style="green")
    table.add_column("Count", justify="right")

    table.add_row("Files analyzed", str(result.files_analyzed))
    table.add_row("Batches processed", str(result.batches_processed))
    table.add_row("Entities", str(counts["entities"]))
    table.add_row("Patterns", str(counts["architecture"]))
    table.add_row("Services", str(counts["services"]))
    table.add_row("Knowledge items", str(counts["knowledge"]))

    console.print(table)
    mode = " (fallback)" if result.used_fallback else ""
    status = "[green]integrated[/green]" if result.integrated else "[red]not integrated[/red]"
    console.print(f"Vault {status}{mode} in {result.duration:.1f}s")


@app.command()
def discover(
    path: Optional[Path] = typer.Argument(None, help="Project root (default: cwd)"),
    max_files: Optional[int] = typer.Option(
        None, "--max-files", help="Maximum number of files to analyze"
    ),
    max_batch_size: Optional[int] = typer.Option(
        None, "--max-batch-size", help="Maximum characters per analyzer batch"
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print warnings"),
):
    """Analyze the project's source tree and populate the vault."""
    project = _project_path(path)
    ensure_kb_structure(project)

    if not quiet:
        console.print(Panel.fit(f"[bold blue]Discovering[/bold blue] {project}"))

    discoverer = AutoDiscover(
        project,
        on_progress=None if quiet else print_progress,
        on_message=None if quiet else (lambda m: console.print(m)),
    )
    result = asyncio.run(discoverer.discover(max_files, max_batch_size))

    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    if not quiet:
        print_discovery_summary(result)

    raise typer.Exit(0 if result.integrated else 1)


@app.command()
def compact(
    project: Path = typer.Option(..., "--project", help="Project root"),
    session: str = typer.Option(..., "--session", help="Session ID to compact"),
):
    """Compact a session log into the vault."""
    engine = CompactionEngine(project.resolve())
    result = asyncio.run(engine.compact(session))

    if result is None:
        console.print("[dim]Session too short, nothing to compact.[/dim]")
        return

    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    if result.error:
        console.print(f"[red]Vault integration failed:[/red] {result.error}")
        raise typer.Exit(1)

    counts = result.result.counts()
    console.print(
        f"Compacted {session}: {counts['entities']} entities, "
        f"{counts['architecture']} patterns, {counts['services']} services, "
        f"{counts['knowledge']} knowledge items"
    )


@app.command()
def hook(name: str = typer.Argument(..., help="Hook event name")):
    """Handle an agent hook event: JSON payload on stdin, JSON reply on stdout."""
    raw = sys.stdin.read() if not sys.stdin.isatty() else ""
    try:
        payload = json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    typer.echo(json.dumps(run_hook(name, payload)))


@app.command()
def status(path: Optional[Path] = typer.Argument(None, help="Project root (default: cwd)")):
    """Show the knowledge base state of a project."""
    project = _project_path(path)
    if not is_installed(project):
        console.print(f"[yellow]No knowledge base at {get_kb_root(project)}[/yellow]")
        raise typer.Exit(1)

    table = Table(title="Knowledge Base", show_header=True)
    table.add_column("Component", style="cyan")
    table.add_column("Status")

    try:
        config = load_config(project)
        table.add_row("Config", f"trigger={config.compaction.trigger}")
    except ConfigError as e:
        table.add_row("Config", f"[red]{e}[/red]")

    vault = VaultStore.for_project(project)
    overview = vault.overview()
    table.add_row(
        "Vault",
        ", ".join(overview) if overview else "[dim]empty[/dim]",
    )
    table.add_row("Entities", str(len(vault.list_entities())))

    active = SessionStore(project).get_active()
    table.add_row("Active session", active or "[dim]none[/dim]")

    console.print(table)


@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """cckb - project knowledge base builder."""
    setup_logging("DEBUG" if debug else None)


def run_cli():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run_cli()
