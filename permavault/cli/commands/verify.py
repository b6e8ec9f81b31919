"""``permavault verify MANIFEST`` — check a manifest's signature.

Exit code 0 when the signature is valid, 1 otherwise.
"""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError as ModelValidationError
from rich.console import Console
from rich.table import Table

from permavault.bridge.crypto_bridge import key_fingerprint
from permavault.core.manifest import manifest_hash, verify_manifest
from permavault.models.manifest import Manifest

console = Console()


def load_manifest(path: Path) -> Manifest:
    """Read a manifest JSON document, exiting with a message on failure."""
    try:
        return Manifest.model_validate_json(path.read_text(encoding="utf-8"))
    except OSError as exc:
        console.print(f"[bold red]Cannot read manifest:[/bold red] {exc}")
        raise typer.Exit(code=1)
    except ModelValidationError as exc:
        console.print(f"[bold red]Not a valid manifest:[/bold red] {path}\n{exc}")
        raise typer.Exit(code=1)


def verify_cmd(
    manifest_path: Path = typer.Argument(..., help="Path to a manifest JSON file."),
    public_key: str = typer.Option(
        "", "--public-key", help="Require this hex signer key instead of trusting the embedded one."
    ),
) -> None:
    """Verify the Ed25519 signature of a manifest."""
    manifest = load_manifest(manifest_path)
    valid = verify_manifest(manifest, expected_public_key=public_key)

    table = Table(title=f"Manifest {manifest.archive_id}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Name", manifest.name)
    table.add_row("Revision", str(manifest.revision))
    table.add_row("Files", str(manifest.archive.file_count))
    table.add_row("Archive digest", manifest.archive.digest)
    table.add_row("Plan", manifest.storage_policy.plan.value)
    table.add_row("Signer", key_fingerprint(manifest.signer_public_key) or "(none)")
    if manifest.token is not None:
        table.add_row("Token", f"{manifest.token.network}:{manifest.token.token_id}")
    table.add_row("Content address", manifest_hash(manifest))
    console.print(table)

    if not valid:
        console.print("[bold red]Signature INVALID[/bold red]")
        raise typer.Exit(code=1)
    console.print("[bold green]Signature valid[/bold green]")
