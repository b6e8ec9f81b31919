"""PermaVault CLI — Typer-based command-line interface.

Provides the ``permavault`` command with subcommands for hashing folders,
quoting plans, building vaults, verifying manifests and exporting token
metadata.

All output uses Rich for formatted terminal display.
"""
