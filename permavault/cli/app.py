"""Main Typer application — imports and registers all CLI commands.

Entry point: ``permavault`` (configured via pyproject.toml project.scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from permavault.cli.commands.build import build_cmd
from permavault.cli.commands.hash_cmd import hash_cmd
from permavault.cli.commands.keygen import keygen_cmd
from permavault.cli.commands.quote import quote_cmd
from permavault.cli.commands.token_metadata import token_metadata_cmd
from permavault.cli.commands.verify import verify_cmd
from permavault.config import config

app = typer.Typer(
    name="permavault",
    help="PermaVault: bundle, upload and seal folders as signed vaults.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None, "--log-level", help="Logging level (defaults to PERMAVAULT_LOG_LEVEL)."
    ),
) -> None:
    """Configure logging for every subcommand."""
    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=config.debug, show_path=False)],
        force=True,
    )


# Register subcommands
app.command(name="hash", help="Compute the archive digest of a folder.")(hash_cmd)
app.command(name="quote", help="Price a folder or byte total under a plan.")(quote_cmd)
app.command(name="build", help="Build a vault: upload, price, sign and mint.")(build_cmd)
app.command(name="verify", help="Verify a manifest signature.")(verify_cmd)
app.command(name="token-metadata", help="Export token metadata for a manifest.")(
    token_metadata_cmd
)
app.command(name="keygen", help="Generate an Ed25519 manifest signing key.")(keygen_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
