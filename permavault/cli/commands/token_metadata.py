"""``permavault token-metadata MANIFEST`` — export ERC-721 style metadata."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console

from permavault.cli.commands.verify import load_manifest
from permavault.core.manifest import build_token_metadata, token_metadata_filename

console = Console()


def token_metadata_cmd(
    manifest_path: Path = typer.Argument(..., help="Path to a manifest JSON file."),
    output: Path = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file or directory.  Prints to stdout when omitted.",
    ),
) -> None:
    """Write the token metadata document for a manifest."""
    manifest = load_manifest(manifest_path)
    document = json.dumps(build_token_metadata(manifest), indent=2, ensure_ascii=False)
    if output is None:
        typer.echo(document)
        return
    target = output / token_metadata_filename(manifest) if output.is_dir() else output
    target.write_text(document + "\n", encoding="utf-8")
    console.print(f"[green]Token metadata written to[/green] {target}", soft_wrap=True)
