"""CLI for obs-checkout."""

from pathlib import Path
from typing import List, Optional
import logging

import typer
from rich.console import Console
from rich.table import Table

from .config import CheckoutOptions, load_client_config
from .core import FileState, PackageIdentity, WorkingCopy
from .errors import ObsCheckoutError
from .ops import (
    add_and_delete_files,
    checkout_package,
    commit as ops_commit,
    undo_file_deletion,
    untrack_files,
)
from .working_state import read_working_copy, summarize

app = typer.Typer(help="""\
Work with Open Build Service package checkouts: check out a package,
stage additions and deletions, and commit them back to the server.""")

console = Console()

_STATE_STYLES = {
    FileState.MODIFIED: "[yellow]M[/yellow] modified",
    FileState.TO_BE_ADDED: "[green]A[/green] added",
    FileState.TO_BE_DELETED: "[red]D[/red] deleted",
    FileState.MISSING: "[red]![/red] missing",
    FileState.UNTRACKED: "[dim]?[/dim] untracked",
    FileState.UNMODIFIED: "unmodified",
}


def humanize_size(size: float) -> str:
    """Convert bytes to human-readable format."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024.:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


@app.callback()
def callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


def _fail(e: Exception) -> None:
    console.print(f"[red]✗[/red] {e}")
    raise typer.Exit(1)


def require_working_copy() -> WorkingCopy:
    """Reconcile the checkout containing the current directory.

    Raises:
        typer.Exit: If not inside a valid checkout
    """
    try:
        return read_working_copy()
    except ObsCheckoutError as e:
        _fail(e)


def _to_names(wc: WorkingCopy, files: List[Path]) -> List[str]:
    """Map command line paths onto file names of the checkout."""
    names = []
    for file in files:
        path = Path(file).resolve()
        if path.parent != wc.path:
            console.print(f"[red]✗[/red] {file} is not a file of the checkout at {wc.path}")
            raise typer.Exit(1)
        names.append(path.name)
    return names


@app.command()
def checkout(
    project: str = typer.Argument(..., help="Project name"),
    package: str = typer.Argument(..., help="Package name"),
    directory: Optional[Path] = typer.Option(None, "--dir", "-d", help="Target directory (default: ./PACKAGE)"),
    revision: Optional[str] = typer.Option(None, "--revision", "-r", help="Revision to check out"),
    no_expand: bool = typer.Option(False, "--no-expand", help="Do not expand package links"),
    api_url: Optional[str] = typer.Option(None, "--api-url", "-A", help="API URL (default: from config)"),
):
    """Check out a package into a new directory.

    Examples:
        obs-checkout checkout openSUSE:Factory gcc
        obs-checkout checkout home:me foo --dir ~/src/foo --revision 3
    """
    identity = PackageIdentity(
        api_url=api_url or load_client_config().api_url,
        project=project,
        name=package,
    )
    options = CheckoutOptions(expand_links=not no_expand, revision=revision)
    try:
        wc = checkout_package(identity, directory, options=options)
    except ObsCheckoutError as e:
        _fail(e)

    console.print(f"[green]✓[/green] Checked out {identity} into {wc.path}")
    console.print(f"Revision: [cyan]{wc.revision}[/cyan]  Files: {len(wc.files_at_head)}")


@app.command()
def status(
    all_files: bool = typer.Option(False, "--all", "-a", help="Also list unmodified files"),
):
    """Show the state of the files in the checkout."""
    wc = require_working_copy()
    summary = summarize(wc)

    console.print(f"[bold]{wc.identity}[/bold] at revision [cyan]{wc.revision}[/cyan]")
    if wc.is_link:
        console.print(f"Link to {wc.link_info.project}/{wc.link_info.package}")

    rows = [f for f in wc.files_in_workdir
            if all_files or f.state != FileState.UNMODIFIED]
    if rows:
        table = Table(title="File Status")
        table.add_column("File", style="cyan")
        table.add_column("Status")
        table.add_column("Size", justify="right")
        for f in rows:
            table.add_row(f.name, _STATE_STYLES[f.state], humanize_size(f.size))
        console.print(table)

    if summary.is_clean:
        console.print("[green]✓[/green] Working directory clean")
    else:
        console.print(
            f"{summary.modified} modified, {summary.to_be_added} added, "
            f"{summary.to_be_deleted} deleted, {summary.missing} missing, "
            f"{summary.untracked} untracked"
        )


@app.command()
def add(
    files: List[Path] = typer.Argument(..., help="Files to add"),
):
    """Stage untracked files for addition on the next commit."""
    wc = require_working_copy()
    names = _to_names(wc, files)
    try:
        add_and_delete_files(wc, files_to_add=names)
    except ObsCheckoutError as e:
        _fail(e)
    for name in names:
        console.print(f"[green]✓[/green] Added {name}")


@app.command()
def rm(
    files: List[Path] = typer.Argument(..., help="Files to delete"),
):
    """Delete tracked files and stage their removal."""
    wc = require_working_copy()
    names = _to_names(wc, files)
    try:
        add_and_delete_files(wc, files_to_delete=names)
    except ObsCheckoutError as e:
        _fail(e)
    for name in names:
        console.print(f"[green]✓[/green] Deleted {name}")


@app.command()
def untrack(
    files: List[Path] = typer.Argument(..., help="Files to untrack"),
):
    """Undo the addition of files, keeping them on disk."""
    wc = require_working_copy()
    names = _to_names(wc, files)
    try:
        untrack_files(wc, names)
    except ObsCheckoutError as e:
        _fail(e)
    for name in names:
        console.print(f"[green]✓[/green] Untracked {name}")


@app.command()
def restore(
    files: List[Path] = typer.Argument(..., help="Files to restore"),
):
    """Restore deleted or missing files from the checkout's backup copies."""
    wc = require_working_copy()
    names = _to_names(wc, files)
    try:
        undo_file_deletion(wc, names)
    except ObsCheckoutError as e:
        _fail(e)
    for name in names:
        console.print(f"[green]✓[/green] Restored {name}")


@app.command()
def commit(
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Commit message"),
):
    """Upload modified and added files and commit all staged changes."""
    wc = require_working_copy()
    if not wc.has_changes:
        console.print("Nothing to commit")
        return

    try:
        new_wc = ops_commit(wc, message)
    except ObsCheckoutError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Committed revision [cyan]{new_wc.revision}[/cyan] of {new_wc.identity}")


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
