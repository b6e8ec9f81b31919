"""``permavault quote`` — price a folder or a byte total under a plan."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from permavault.config import config
from permavault.core.collector import collect_path
from permavault.core.pricing import calculate_quote, load_pricing
from permavault.errors import VaultBuildError
from permavault.models.pricing import Plan

console = Console()


def quote_cmd(
    plan: str = typer.Option("Permanence", "--plan", "-p", help="Permanence, Permanence+ or Heirloom."),
    path: Path = typer.Option(None, "--path", help="Folder or file to price."),
    size: int = typer.Option(None, "--bytes", help="Byte total to price instead of a path."),
    escrow_years: int = typer.Option(None, "--escrow-years", help="Permanence+ only: 3, 5 or 10."),
) -> None:
    """Show the tokenization and storage fees for a plan."""
    if (path is None) == (size is None):
        console.print("[bold red]Give exactly one of --path or --bytes.[/bold red]")
        raise typer.Exit(code=2)

    try:
        chosen = Plan.parse(plan)
        total = size if size is not None else sum(
            f.size_bytes for f in collect_path(path)
        )
        quote = calculate_quote(
            chosen,
            total,
            escrow_years=escrow_years,
            pricing=load_pricing(config.pricing_path),
        )
    except (ValueError, VaultBuildError) as exc:
        console.print(f"[bold red]Cannot quote:[/bold red] {exc}")
        raise typer.Exit(code=1)

    title = chosen.value
    if quote.escrow_years is not None:
        title += f" ({quote.escrow_years}-year escrow)"
    table = Table(title=title)
    table.add_column("Item", style="cyan")
    table.add_column("USD", justify="right", style="green")
    table.add_row(f"Tokenization ({quote.billed_gb} GB)", f"${quote.display_tokenization_fee:.2f}")
    table.add_row("Storage", f"${quote.display_storage_fee:.2f}")
    table.add_row("[bold]Subtotal[/bold]", f"[bold]${quote.display_subtotal:.2f}[/bold]")
    console.print(table)
    console.print(f"[dim]{quote.notes}[/dim]")
