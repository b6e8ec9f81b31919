"""``permavault hash PATH`` — compute the archive digest of a folder."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.progress import BarColumn, DownloadColumn, Progress, TextColumn
from rich.table import Table

from permavault.config import config
from permavault.core.collector import collect_path
from permavault.core.hasher import HashProgress, archive_digest
from permavault.errors import VaultBuildError

console = Console()


def hash_cmd(
    path: Path = typer.Argument(..., help="Folder or file to hash."),
    include_root: bool = typer.Option(
        True,
        "--include-root/--no-include-root",
        help="Prefix relative paths with the folder's own name.",
    ),
    files: bool = typer.Option(False, "--files", help="List per-file SHA-256 digests."),
) -> None:
    """Hash every file under PATH in canonical order."""
    try:
        collected = collect_path(path, include_root=include_root)
    except VaultBuildError as exc:
        console.print(f"[bold red]Cannot collect files:[/bold red] {exc}")
        raise typer.Exit(code=1)

    total = sum(f.size_bytes for f in collected)
    with Progress(
        TextColumn("[cyan]Hashing"),
        BarColumn(),
        DownloadColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("hash", total=total or None)

        def on_progress(event: HashProgress) -> None:
            progress.update(task, completed=event.bytes_hashed)

        try:
            digest = archive_digest(
                collected, chunk_size=config.hash_chunk_size, on_progress=on_progress
            )
        except (OSError, VaultBuildError) as exc:
            console.print(f"[bold red]Hashing failed:[/bold red] {exc}")
            raise typer.Exit(code=1)

    console.print(f"[bold]Archive digest:[/bold] {digest.digest}", soft_wrap=True)
    console.print(f"[bold]Files:[/bold]          {digest.file_count}")
    console.print(f"[bold]Total bytes:[/bold]    {digest.total_bytes}")

    if files:
        table = Table(title="Files")
        table.add_column("Path", style="cyan")
        table.add_column("Bytes", justify="right")
        table.add_column("SHA-256", style="dim")
        for file in sorted(collected, key=lambda f: f.relative_path):
            table.add_row(
                file.relative_path, str(file.size_bytes), digest.file_digests[file.relative_path]
            )
        console.print(table)
