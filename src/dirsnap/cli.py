"""CLI for dirsnap."""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import load_config
from .constants import DEFAULT_TARGET_NAME
from .engine import SnapshotResult, run_snapshot
from .errors import SnapshotError
from .fingerprint import Strategy
from .writer import WritePolicy, WriteStatus, read_snapshot, verify_snapshot


app = typer.Typer(help="""\
Directory snapshots. Fingerprint every file under a root and keep a
digest-verified manifest.json in each directory, so later runs can tell
what changed.""")

console = Console()

STATUS_STYLES = {
    WriteStatus.WRITTEN: "[green]written[/green]",
    WriteStatus.SKIPPED: "[dim]skipped[/dim]",
    WriteStatus.FAILED: "[red]failed[/red]",
}


def setup_logging(verbose: bool) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _relative(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def _format_millis(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def display_result(result: SnapshotResult) -> None:
    """Print per-target outcomes and any recorded problems."""
    table = Table(title=f"Snapshots under {result.root}")
    table.add_column("Target", style="cyan")
    table.add_column("Files", justify="right")
    table.add_column("Status")
    table.add_column("Digest", style="dim")

    for outcome in sorted(result.outcomes, key=lambda o: str(o.target)):
        digest = outcome.digest[:19] + "..." if outcome.digest else ""
        table.add_row(
            _relative(outcome.target, result.root),
            str(outcome.files),
            STATUS_STYLES[outcome.status],
            digest,
        )
    console.print(table)

    if result.walk_errors:
        console.print(f"[yellow]⚠ {len(result.walk_errors)} entries could not be read:[/yellow]")
        for error in result.walk_errors:
            console.print(f"  • {error.path}: {error.message}")
    if result.unfingerprinted:
        console.print(f"[yellow]⚠ {len(result.unfingerprinted)} files recorded without identity:[/yellow]")
        for path in result.unfingerprinted[:10]:
            console.print(f"  • {path}")
        if len(result.unfingerprinted) > 10:
            console.print(f"  ... and {len(result.unfingerprinted) - 10} more")
    for outcome in result.failed:
        console.print(f"[red]✗[/red] {outcome.error}")


@app.command()
def snapshot(
    root: Path = typer.Argument(Path("."), help="Directory to snapshot (default: current directory)"),
    ignore: Optional[List[str]] = typer.Option(None, "--ignore", "-i", help="Path prefix or glob to skip (repeatable)"),
    cutoff: Optional[int] = typer.Option(None, "--cutoff", help="Leading directory segments stripped from keys"),
    extension: Optional[str] = typer.Option(None, "--extension", "-x", help="Only include files ending with this suffix"),
    space: Optional[int] = typer.Option(None, "--space", help="JSON indentation (0 for compact)"),
    strategy: Optional[Strategy] = typer.Option(None, "--strategy", "-s", help="Fingerprint strategy"),
    if_exists: Optional[bool] = typer.Option(None, "--if-exists/--always", help="Only overwrite snapshots that already exist"),
    target: Optional[str] = typer.Option(None, "--target", "-t", help=f"Snapshot file name (default: {DEFAULT_TARGET_NAME})"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Concurrent filesystem workers"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Fingerprint ROOT and write a manifest into every directory.

    Options not given on the command line fall back to .dirsnap.yaml and
    [tool.dirsnap] in pyproject.toml under ROOT.

    Example:
        dirsnap snapshot . --ignore .git --ignore node_modules --strategy content
    """
    setup_logging(verbose)

    write_policy = None
    if if_exists is not None:
        write_policy = WritePolicy.IF_EXISTS if if_exists else WritePolicy.ALWAYS

    try:
        config = load_config(
            root,
            ignore=ignore or None,
            cutoff=cutoff,
            extension=extension,
            space=space,
            strategy=strategy,
            write_policy=write_policy,
            target_name=target,
            max_workers=workers,
        )
        result = run_snapshot(config)
    except SnapshotError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)

    display_result(result)
    if not result.ok:
        raise typer.Exit(1)


@app.command()
def verify(
    targets: List[Path] = typer.Argument(..., help="Snapshot files to check"),
):
    """Check that snapshot files still match their stored digest."""
    failures = 0
    for target in targets:
        try:
            manifest = verify_snapshot(target)
        except SnapshotError as e:
            console.print(f"[red]✗[/red] {e}")
            failures += 1
            continue
        console.print(f"[green]✓[/green] {target} ({len(manifest)} files)")

    if failures:
        raise typer.Exit(1)


@app.command()
def show(
    target: Path = typer.Argument(..., help="Snapshot file to display"),
):
    """Print the records of a snapshot file."""
    try:
        manifest = read_snapshot(target)
    except SnapshotError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)

    table = Table(title=str(target))
    table.add_column("Path", style="cyan")
    table.add_column("Identity")
    table.add_column("Created (UTC)", style="dim")
    for path in sorted(manifest.files):
        record = manifest.files[path]
        identity = "[red]none[/red]" if record.identity is None else str(record.identity)
        table.add_row(path, identity, _format_millis(record.created_at))
    console.print(table)

    if manifest.verify_digest():
        console.print(f"[green]✓[/green] digest {manifest.digest}")
    else:
        console.print("[yellow]⚠ stored digest does not match content[/yellow]")


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
