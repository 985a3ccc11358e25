"""Command-line interface for session replay."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .config import CompressionSettings, ReplaySettings
from .errors import MalformedEditError
from .paths import resolve_log_dir
from .server_runner import run_dashboard

app = typer.Typer(help="Replay and analyse recorded coding sessions.")


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _load_session(
    log_dir: Optional[Path],
    compress: bool,
    gap_minutes: float,
    buffer_seconds: float,
    file: Optional[str] = None,
):
    from .session import ReplaySession

    settings = ReplaySettings(
        compression=CompressionSettings.from_values(
            gap_minutes=gap_minutes,
            buffer_seconds=buffer_seconds,
            enabled=compress,
            file=file,
        )
    )
    directory = resolve_log_dir(log_dir)
    if not directory.is_dir():
        typer.echo(f"Error: Log directory does not exist: {directory}", err=True)
        raise typer.Exit(code=1)
    try:
        return ReplaySession.from_directory(directory, settings)
    except ValueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def serve(
    log_dir: Optional[Path] = typer.Argument(
        None, help="Session log directory (defaults to ./logs)."
    ),
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the viewer."),
    port: Optional[int] = typer.Option(
        None,
        "--port",
        min=1,
        max=65535,
        help="TCP port; by default the first free port from 3001 is used.",
    ),
    compress: bool = typer.Option(
        False, "--compress/--no-compress", help="Start with idle gaps compressed."
    ),
    gap_minutes: float = typer.Option(
        3.0, "--gap-threshold", min=0.0, help="Minutes of inactivity that count as a gap."
    ),
    buffer_seconds: float = typer.Option(
        3.0, "--buffer", min=0.0, help="Seconds kept on each side of a removed gap."
    ),
    open_browser: bool = typer.Option(
        True,
        "--open-browser/--no-open-browser",
        help="Automatically launch the viewer in your default browser.",
    ),
) -> None:
    """Start the local replay viewer for a session directory."""
    settings = ReplaySettings(
        compression=CompressionSettings.from_values(
            gap_minutes=gap_minutes, buffer_seconds=buffer_seconds, enabled=compress
        )
    )
    try:
        run_dashboard(
            log_dir=resolve_log_dir(log_dir),
            host=host,
            port=port,
            settings=settings,
            open_browser=open_browser,
        )
    except (FileNotFoundError, RuntimeError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def summary(
    log_dir: Optional[Path] = typer.Argument(None, help="Session log directory."),
    compress: bool = typer.Option(
        True, "--compress/--no-compress", help="Include compression statistics."
    ),
    gap_minutes: float = typer.Option(3.0, "--gap-threshold", min=0.0),
    buffer_seconds: float = typer.Option(3.0, "--buffer", min=0.0),
) -> None:
    """Print a high-level summary of a recorded session."""
    from .reporting import SessionSummaryPrinter

    session = _load_session(log_dir, compress, gap_minutes, buffer_seconds)
    SessionSummaryPrinter(session).print_summary()


@app.command()
def gaps(
    log_dir: Optional[Path] = typer.Argument(None, help="Session log directory."),
    gap_minutes: float = typer.Option(3.0, "--gap-threshold", min=0.0),
    buffer_seconds: float = typer.Option(3.0, "--buffer", min=0.0),
    file: Optional[str] = typer.Option(
        None, "--file", help="Only consider time spent on this file."
    ),
) -> None:
    """List the inactivity gaps that compression would remove."""
    from .reporting import SessionSummaryPrinter

    session = _load_session(log_dir, True, gap_minutes, buffer_seconds, file)
    SessionSummaryPrinter(session).print_gaps()


@app.command()
def reconstruct(
    log_dir: Optional[Path] = typer.Argument(None, help="Session log directory."),
    file: str = typer.Option(..., "--file", "-f", help="File to rebuild."),
    index: Optional[int] = typer.Option(
        None,
        "--index",
        "-i",
        help="Session keystroke index to stop at (defaults to the last one).",
    ),
) -> None:
    """Print a file's contents as of a given keystroke."""
    session = _load_session(log_dir, False, 3.0, 3.0)
    try:
        text = session.document_at(file, index)
    except KeyError as exc:
        typer.echo(f"Error: no keystrokes recorded for {file}", err=True)
        raise typer.Exit(code=1) from exc
    except MalformedEditError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    typer.echo(text, nl=False)
