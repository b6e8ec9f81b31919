"""Unit tests for the CLI — Typer command registration and basic behavior.

Exercises every registered command via typer.testing.CliRunner against a
temporary folder.
"""

from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from permavault.bridge.crypto_bridge import generate_keypair
from permavault.cli.app import app
from permavault.core.collector import collect_path
from permavault.core.hasher import archive_digest
from permavault.models.manifest import Manifest

runner = CliRunner()


def _build(vault_dir: Path, out_dir: Path, *extra: str):
    return runner.invoke(
        app,
        [
            "build",
            str(vault_dir),
            "--name",
            "Family Album",
            "--no-upload",
            "--manifest-dir",
            str(out_dir),
            *extra,
        ],
    )


def _manifests(out_dir: Path) -> list[Path]:
    return sorted(out_dir.glob("*.manifest.json"))


# ---------------------------------------------------------------------------
# Test: CLI help and registration
# ---------------------------------------------------------------------------


class TestCliApp:
    """The CLI must register all expected commands and show help."""

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert result.exit_code in (0, 2)
        assert "usage" in result.output.lower()

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("hash", "quote", "build", "verify", "token-metadata", "keygen"):
            assert command in result.output


# ---------------------------------------------------------------------------
# Test: hash and quote
# ---------------------------------------------------------------------------


class TestHashCommand:
    def test_prints_archive_digest(self, vault_dir: Path):
        result = runner.invoke(app, ["hash", str(vault_dir)])
        assert result.exit_code == 0
        assert archive_digest(collect_path(vault_dir)).digest in result.output

    def test_missing_path(self, tmp_path: Path):
        result = runner.invoke(app, ["hash", str(tmp_path / "nope")])
        assert result.exit_code == 1


class TestQuoteCommand:
    def test_bytes(self):
        result = runner.invoke(app, ["quote", "--plan", "Heirloom", "--bytes", "1000"])
        assert result.exit_code == 0
        assert "Heirloom" in result.output
        assert "Subtotal" in result.output

    def test_requires_exactly_one_source(self, vault_dir: Path):
        assert runner.invoke(app, ["quote"]).exit_code == 2
        result = runner.invoke(app, ["quote", "--bytes", "1", "--path", str(vault_dir)])
        assert result.exit_code == 2

    def test_unknown_plan(self):
        result = runner.invoke(app, ["quote", "--plan", "Forever", "--bytes", "1"])
        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# Test: build, verify, token-metadata
# ---------------------------------------------------------------------------


class TestBuildCommand:
    def test_build_and_mint(self, vault_dir: Path, tmp_path: Path):
        out_dir = tmp_path / "out"
        result = _build(vault_dir, out_dir, "--endowment", "100")
        assert result.exit_code == 0, result.output
        assert "Vault sealed!" in result.output

        manifests = _manifests(out_dir)
        assert len(manifests) == 2
        revision = next(p for p in manifests if ".r2." in p.name)
        manifest = Manifest.model_validate_json(revision.read_text(encoding="utf-8"))
        assert manifest.token is not None
        assert manifest.endowment is not None
        assert list(out_dir.glob("*.token-metadata.json"))

    def test_build_without_mint(self, vault_dir: Path, tmp_path: Path):
        out_dir = tmp_path / "out"
        result = _build(vault_dir, out_dir, "--no-mint", "--visibility", "public")
        assert result.exit_code == 0, result.output
        manifests = _manifests(out_dir)
        assert len(manifests) == 1
        manifest = Manifest.model_validate_json(manifests[0].read_text(encoding="utf-8"))
        assert manifest.token is None
        assert manifest.visibility.value == "PUBLIC"

    def test_bad_escrow_years(self, vault_dir: Path, tmp_path: Path):
        result = _build(vault_dir, tmp_path / "out", "--plan", "Permanence+", "--escrow-years", "7")
        assert result.exit_code == 1
        assert "escrow_years" in result.output
        assert _manifests(tmp_path / "out") == []

    def test_unwritable_manifest_dir_exits_cleanly(self, vault_dir: Path, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        result = _build(vault_dir, blocker / "out", "--no-mint")
        assert result.exit_code == 1
        assert "Build failed" in result.output
        assert not isinstance(result.exception, OSError)


class TestVerifyCommand:
    def test_valid_then_tampered(self, vault_dir: Path, tmp_path: Path):
        out_dir = tmp_path / "out"
        assert _build(vault_dir, out_dir, "--no-mint").exit_code == 0
        path = _manifests(out_dir)[0]

        result = runner.invoke(app, ["verify", str(path)])
        assert result.exit_code == 0
        assert "Signature valid" in result.output

        document = json.loads(path.read_text(encoding="utf-8"))
        document["name"] = "Someone Else's Album"
        path.write_text(json.dumps(document), encoding="utf-8")
        result = runner.invoke(app, ["verify", str(path)])
        assert result.exit_code == 1
        assert "INVALID" in result.output

    def test_wrong_expected_key(self, vault_dir: Path, tmp_path: Path):
        out_dir = tmp_path / "out"
        assert _build(vault_dir, out_dir, "--no-mint").exit_code == 0
        _, other = generate_keypair()
        result = runner.invoke(app, ["verify", str(_manifests(out_dir)[0]), "--public-key", other])
        assert result.exit_code == 1

    def test_not_a_manifest(self, tmp_path: Path):
        junk = tmp_path / "junk.json"
        junk.write_text('{"hello": "world"}', encoding="utf-8")
        assert runner.invoke(app, ["verify", str(junk)]).exit_code == 1


class TestTokenMetadataCommand:
    def test_stdout(self, vault_dir: Path, tmp_path: Path):
        out_dir = tmp_path / "out"
        assert _build(vault_dir, out_dir, "--no-mint").exit_code == 0
        result = runner.invoke(app, ["token-metadata", str(_manifests(out_dir)[0])])
        assert result.exit_code == 0
        document = json.loads(result.stdout)
        assert document["name"].endswith("Family Album")
        traits = {a["trait_type"] for a in document["attributes"]}
        assert {"Archive Size", "Plan", "Heartbeat (months)"} <= traits

    def test_output_directory(self, vault_dir: Path, tmp_path: Path):
        out_dir = tmp_path / "out"
        assert _build(vault_dir, out_dir, "--no-mint").exit_code == 0
        target = tmp_path / "meta"
        target.mkdir()
        result = runner.invoke(
            app, ["token-metadata", str(_manifests(out_dir)[0]), "--output", str(target)]
        )
        assert result.exit_code == 0
        assert len(list(target.glob("*.token-metadata.json"))) == 1


class TestKeygenCommand:
    def test_prints_keys(self):
        result = runner.invoke(app, ["keygen"])
        assert result.exit_code == 0
        assert "Private key" in result.output
        assert "Fingerprint" in result.output
