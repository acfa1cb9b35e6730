"""
tofuworkspace CLI - operator tools for the workspace provider.

Usage:
    tofuworkspace check              Verify tofu is installed and tf_dir is writable
    tofuworkspace checksum DIR       Print the checksum of a working directory
    tofuworkspace explain [FILE]     Classify tofu stderr from a file or stdin
    tofuworkspace gc ROOT --live UID Remove orphaned working directories under ROOT
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional

import typer

from .config import Settings
from .controller.gc import GarbageCollector
from .core.checksum import hash_dir
from .core.classify import classify
from .errors import GarbageCollectionError, ProviderError
from .utils import check_environment, setup_logging

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="tofuworkspace",
    help="Operator tools for the OpenTofu workspace provider.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON settings file"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """Load settings and configure logging."""
    settings = Settings(str(config) if config else None)
    if debug:
        settings.set("debug", True)
    setup_logging(
        log_level="DEBUG" if settings.get("debug") else "WARNING",
        log_file=bool(settings.get("log_file")),
    )
    ctx.obj = settings


@app.command()
def check(ctx: typer.Context):
    """Verify that tofu is installed and the working directory root is writable."""
    settings: Settings = ctx.obj
    try:
        version = check_environment(settings)
    except ProviderError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(version)
    typer.echo(f"tf_dir: {settings.tf_dir}")


@app.command()
def checksum(directory: Path = typer.Argument(..., help="Working directory")):
    """Print the checksum a working directory would be recorded with."""
    try:
        typer.echo(hash_dir(str(directory)))
    except (OSError, ValueError) as e:
        typer.echo(f"Error: cannot calculate workspace checksum: {e}", err=True)
        raise typer.Exit(code=1)


@app.command()
def explain(
    file: Optional[Path] = typer.Argument(None, help="File holding tofu stderr (default: stdin)"),
):
    """Print the error message a reconcile pass would record for tofu stderr."""
    if file is None:
        text = sys.stdin.read()
    else:
        try:
            text = file.read_text()
        except OSError as e:
            typer.echo(f"Error: cannot read {file}: {e}", err=True)
            raise typer.Exit(code=1)

    error = classify(text, fallback="no error output")
    typer.echo(error.message)
    if error.summary:
        typer.echo(f"Summary: {error.summary}")


@app.command()
def gc(
    root: Path = typer.Argument(..., help="Directory holding working directories"),
    live: List[str] = typer.Option([], "--live", "-l", help="UID of a Workspace that still exists"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only list what would be removed"),
):
    """Remove working directories whose Workspace no longer exists."""
    collector = GarbageCollector(kube=None, parent_dir=str(root))
    try:
        removed = collector.collect_orphans(live, dry_run=dry_run)
    except GarbageCollectionError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    verb = "Would remove" if dry_run else "Removed"
    for path in removed:
        typer.echo(f"{verb} {path}")
    if not removed:
        typer.echo("Nothing to collect")


if __name__ == "__main__":
    app()
