"""``permavault build PATH`` — run a complete vault build.

Collects PATH, optionally uploads it through presigned grants, prices it
under the chosen plan, locks the endowment, writes a signed manifest and
(unless ``--no-mint``) mints a token referencing it.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, DownloadColumn, Progress, TextColumn

from permavault.bridge.exporters import LocalManifestExporter
from permavault.config import config
from permavault.core.builder import VaultBuilder
from permavault.core.manifest import build_token_metadata, token_metadata_filename
from permavault.errors import MintingError, UploadFailed, VaultBuildError
from permavault.models.manifest import HeritagePolicy, Visibility
from permavault.models.sessions import UploadProgress

console = Console()


def build_cmd(
    path: Path = typer.Argument(..., help="Folder or file to vault."),
    name: str = typer.Option(..., "--name", "-n", help="Vault name."),
    plan: str = typer.Option("Permanence", "--plan", "-p", help="Permanence, Permanence+ or Heirloom."),
    escrow_years: int = typer.Option(None, "--escrow-years", help="Permanence+ only: 3, 5 or 10."),
    visibility: Visibility = typer.Option(Visibility.PRIVATE, "--visibility", case_sensitive=False),
    statement: str = typer.Option("", "--statement", help="Free-text manifest statement."),
    owner: str = typer.Option(None, "--owner", help="Owner identifier recorded in the manifest."),
    endowment: str = typer.Option("", "--endowment", help="Endowment in USD (optional)."),
    heartbeat_months: int = typer.Option(12, "--heartbeat-months", min=1),
    ttl_years: int = typer.Option(100, "--ttl-years", min=1),
    upload: bool = typer.Option(
        None,
        "--upload/--no-upload",
        help="Upload to object storage.  Defaults to on when a bucket is configured.",
    ),
    session_id: str = typer.Option(None, "--session-id", help="Reuse a session id."),
    mint: bool = typer.Option(True, "--mint/--no-mint", help="Mint a token for the manifest."),
    destination: str = typer.Option(None, "--to", help="Token destination address."),
    manifest_dir: Path = typer.Option(None, "--manifest-dir", help="Where manifests are written."),
) -> None:
    """Build a vault from PATH."""
    out_dir = manifest_dir or config.manifest_dir
    exporter = LocalManifestExporter(out_dir)
    do_upload = bool(config.storage_bucket) if upload is None else upload

    try:
        builder = VaultBuilder.from_config(config, exporter=exporter)
        builder.select_plan(plan, escrow_years=escrow_years)
        files = builder.collect(path)
        console.print(f"[bold]Collected[/bold] {len(files)} files ({builder.total_bytes} bytes)")

        if do_upload:
            _upload(builder, session_id)

        quote = builder.quote()
        console.print(
            f"[bold]{quote.plan.value}:[/bold] ${quote.display_subtotal:.2f} "
            f"for {quote.billed_gb} GB  [dim]{quote.notes}[/dim]"
        )
        digest = builder.accept_pricing(endowment)
        console.print(f"[bold]Archive digest:[/bold] {digest.digest}", soft_wrap=True)
        if builder.endowment is not None:
            lock = builder.endowment
            console.print(
                f"[bold]Endowment locked:[/bold] ${lock.usd:.2f} = "
                f"{lock.derived_units:.6f} {lock.unit} at ${lock.usd_per_unit:.2f}/{lock.unit}"
            )

        manifest = builder.write_manifest(
            name,
            visibility,
            statement=statement,
            owner=owner,
            heritage_policy=HeritagePolicy(ttl_years=ttl_years, heartbeat_months=heartbeat_months),
        )
        console.print(f"[bold]Manifest written:[/bold] {builder.manifest_ref}", soft_wrap=True)

        if mint:
            try:
                manifest = builder.mint(destination)
            except MintingError as exc:
                console.print(f"[bold yellow]Minting failed, manifest kept:[/bold yellow] {exc}")
                manifest = builder.complete()
        else:
            manifest = builder.complete()
    except UploadFailed as exc:
        console.print(f"[bold red]Upload failed:[/bold red] {exc}")
        if exc.status_code is not None:
            console.print(f"  status={exc.status_code} reason={exc.reason}")
        console.print(f"  destination={exc.destination}", soft_wrap=True)
        if exc.body:
            console.print(f"  body={exc.body[:500]}", soft_wrap=True)
        raise typer.Exit(code=1)
    except (ValueError, OSError, VaultBuildError) as exc:
        console.print(f"[bold red]Build failed:[/bold red] {exc}")
        raise typer.Exit(code=1)

    metadata_path = exporter.write_json(
        token_metadata_filename(manifest), build_token_metadata(manifest)
    )
    lines = [
        "[bold green]Vault sealed![/bold green]",
        "",
        f"[bold]Archive ID:[/bold]  {manifest.archive_id}",
        f"[bold]Revision:[/bold]    {manifest.revision}",
        f"[bold]Manifest:[/bold]    {builder.manifest_ref}",
        f"[bold]Metadata:[/bold]    {metadata_path}",
    ]
    if manifest.token is not None:
        lines.append(f"[bold]Token:[/bold]       {manifest.token.token_id}")
    console.print(Panel("\n".join(lines), title="[bold]PermaVault[/bold]", border_style="green"))


def _upload(builder: VaultBuilder, session_id: str | None) -> None:
    with Progress(
        TextColumn("[cyan]Uploading"),
        BarColumn(),
        DownloadColumn(),
        TextColumn("{task.fields[path]}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("upload", total=builder.total_bytes or None, path="")

        def on_progress(event: UploadProgress) -> None:
            progress.update(task, completed=event.bytes_sent, path=event.relative_path)

        result = builder.upload(session_id, on_progress)
    console.print(
        f"[bold]Uploaded[/bold] {len(result.completed)} files to session {result.session_id}"
    )
