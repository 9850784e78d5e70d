"""
scribepoint.cli - Typer CLI entry point.

Provides the dictation commands and configuration helpers.
"""

from __future__ import annotations

import signal
import sys
import threading
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from scribepoint import __version__
from scribepoint.config import (
    ScribeConfig,
    create_default_config,
    default_config_path,
    load_config,
    write_config,
)
from scribepoint.document import FileDocument, parse_position
from scribepoint.exceptions import ScribepointError
from scribepoint.logging import configure_logging
from scribepoint.pipeline import Dictation
from scribepoint.session import SessionState
from scribepoint.status import StatusReporter
from scribepoint.validation import validate_config

app = typer.Typer(
    name="scribepoint",
    help="Offline dictation into text files.\n\n"
    "Records from the microphone until you press Enter, transcribes with "
    "whisper.cpp and inserts the text where the cursor was.",
    add_completion=False,
)
console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"scribepoint {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    config: Path | None = typer.Option(
        None, "--config", "-c", help="Config file (default: ~/.config/scribepoint/scribepoint.yaml)"
    ),
    log_file: Path | None = typer.Option(None, "--log-file", help="Also write logs to this file"),
) -> None:
    """Scribepoint - offline dictation into text files."""
    configure_logging(verbose=verbose, log_file=log_file)
    ctx.obj = {"config_path": config}


def _load(ctx: typer.Context) -> ScribeConfig:
    config_path = (ctx.obj or {}).get("config_path")
    try:
        return load_config(config_path)
    except ScribepointError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def _stop_on_enter(cancel: threading.Event) -> None:
    """Set `cancel` once a line (or EOF) arrives on stdin."""

    def read() -> None:
        try:
            sys.stdin.readline()
        except (OSError, ValueError):
            return
        cancel.set()

    threading.Thread(target=read, name="stop-on-enter", daemon=True).start()


def _dictate(ctx: typer.Context, variant: str, file: Path, at: str | None) -> None:
    config = _load(ctx)
    document = FileDocument(file.expanduser())

    if not document.exists():
        console.print(f"[red]Error: File not found: {file}[/red]")
        raise typer.Exit(1)

    try:
        position = parse_position(document.read(), at)
    except ScribepointError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    dictation = Dictation(config, status=StatusReporter(console))
    cancel = threading.Event()
    _stop_on_enter(cancel)

    previous = signal.signal(signal.SIGINT, lambda signum, frame: cancel.set())
    try:
        session = dictation.run(variant, document, position, cancel)
    except ScribepointError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    finally:
        signal.signal(signal.SIGINT, previous)

    try:
        dictation.wait()
    except KeyboardInterrupt:
        console.print("[yellow]Cancelled, stopping transcription[/yellow]")
        dictation.cancel()
        dictation.wait(timeout=5)
        raise typer.Exit(130)

    if session.state == SessionState.INSERTED:
        console.print(f"[dim]  Inserted into {document.path}[/dim]")
    if session.state == SessionState.FAILED:
        raise typer.Exit(1)


@app.command("fast")
def fast(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="Text file to insert the transcript into"),
    at: str | None = typer.Option(
        None, "--at", "-a", help="Insertion point: offset or LINE:COL (default: end of file)"
    ),
) -> None:
    """Dictate with the fast (smaller) model."""
    _dictate(ctx, "fast", file, at)


@app.command("accurate")
def accurate(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="Text file to insert the transcript into"),
    at: str | None = typer.Option(
        None, "--at", "-a", help="Insertion point: offset or LINE:COL (default: end of file)"
    ),
) -> None:
    """Dictate with the accurate (larger) model."""
    _dictate(ctx, "accurate", file, at)


@app.command("check")
def check(ctx: typer.Context) -> None:
    """Check the recorder, engine, models and vocabulary file."""
    config = _load(ctx)
    rows = validate_config(config)

    table = Table(title="Scribepoint Setup")
    table.add_column("Check", style="cyan")
    table.add_column("Status")
    table.add_column("Detail", style="dim")

    for name, ok, detail in rows:
        status = "[green]✓ OK[/green]" if ok else "[red]✗ Failed[/red]"
        table.add_row(name, status, detail)

    console.print(table)

    if not all(ok for _, ok, _ in rows):
        raise typer.Exit(1)


@app.command("init-config")
def init_config(
    path: Path | None = typer.Option(None, "--path", "-p", help="Where to write the config"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """Write a starter configuration file."""
    target = path or default_config_path()

    if target.exists() and not force:
        console.print(f"[red]Error: '{target}' already exists (use --force to overwrite)[/red]")
        raise typer.Exit(1)

    write_config(create_default_config(), target)
    console.print(f"[green]✓[/green] Wrote config to {target}")
    console.print("\nNext steps:")
    console.print("  Edit engine_path and the model paths")
    console.print("  scribepoint check")
