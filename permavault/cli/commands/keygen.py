"""``permavault keygen`` — generate an Ed25519 key pair for manifest signing."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel

from permavault.bridge.crypto_bridge import generate_keypair, key_fingerprint

console = Console()


def keygen_cmd() -> None:
    """Print a fresh signing key.  Store the private key as PERMAVAULT_SIGNING_KEY."""
    private_key, public_key = generate_keypair()
    console.print(
        Panel(
            "\n".join([
                f"[bold]Private key:[/bold] {private_key}",
                f"[bold]Public key:[/bold]  {public_key}",
                f"[bold]Fingerprint:[/bold] {key_fingerprint(public_key)}",
                "",
                "[dim]export PERMAVAULT_SIGNING_KEY=<private key>[/dim]",
            ]),
            title="[bold]Manifest signing key[/bold]",
            border_style="green",
        )
    )
