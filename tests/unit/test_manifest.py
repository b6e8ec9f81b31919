"""Tests for manifest assembly, signing, revisions and token metadata."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from permavault.bridge.crypto_bridge import ManifestSigner
from permavault.bridge.exporters import LocalManifestExporter
from permavault.core.hasher import archive_digest
from permavault.core.manifest import (
    ManifestAssembler,
    build_token_metadata,
    format_bytes,
    manifest_hash,
    token_metadata_filename,
    verify_manifest,
)
from permavault.core.pricing import StaticRateSource, calculate_quote, lock_endowment
from permavault.core.session_manager import UploadSessionManager
from permavault.errors import InvalidInput, ValidationError
from permavault.models.files import LogicalFile
from permavault.models.manifest import (
    HeritagePolicy,
    Manifest,
    TokenReference,
    Visibility,
    add_months,
)
from permavault.models.pricing import Plan


@pytest.fixture
def assembler(signer: ManifestSigner) -> ManifestAssembler:
    return ManifestAssembler(signer, rate_source=StaticRateSource(2500.0))


@pytest.fixture
def manifest(assembler: ManifestAssembler, logical_files: list[LogicalFile]) -> Manifest:
    digest = archive_digest(logical_files)
    quote = calculate_quote(Plan.HEIRLOOM, digest.total_bytes)
    return assembler.assemble(
        logical_files,
        digest,
        quote,
        lock_endowment(100.0, StaticRateSource(2500.0)),
        name="Family Album",
        visibility=Visibility.PRIVATE,
        accepted_pricing=True,
        statement="For the grandchildren.",
        created_at=datetime(2024, 1, 31, 12, 0, tzinfo=timezone.utc),
    )


def _token(ref: str = "/tmp/m.json") -> TokenReference:
    return TokenReference(
        network="sepolia",
        contract="0x" + "ab" * 20,
        token_id="0x" + "01" * 32,
        transaction_reference="0x" + "02" * 32,
        manifest_ref=ref,
    )


# ---------------------------------------------------------------------------
# Test: assembly
# ---------------------------------------------------------------------------


class TestAssemble:
    def test_fields(self, manifest: Manifest, logical_files: list[LogicalFile]):
        assert manifest.revision == 1
        assert manifest.previous_manifest_hash is None
        assert manifest.name == "Family Album"
        assert manifest.visibility is Visibility.PRIVATE
        assert manifest.archive.file_count == len(logical_files)
        assert manifest.storage_policy.plan is Plan.HEIRLOOM
        assert manifest.storage_policy.retention_years == 100
        assert manifest.endowment is not None
        assert manifest.endowment.derived_units == pytest.approx(0.04)
        assert manifest.token is None
        assert manifest.token_descriptor.symbol == "PV-ARCH"

    def test_files_sorted_with_digests(self, manifest: Manifest):
        paths = [entry.path for entry in manifest.files]
        assert paths == sorted(paths)
        assert all(len(entry.sha256) == 64 for entry in manifest.files)
        assert all(entry.object_key is None for entry in manifest.files)

    def test_next_heartbeat(self, manifest: Manifest):
        # Jan 31 + 12 months
        assert manifest.next_heartbeat == datetime(2025, 1, 31, 12, 0, tzinfo=timezone.utc)

    def test_all_missing_fields_reported_together(self, assembler: ManifestAssembler):
        with pytest.raises(ValidationError) as excinfo:
            assembler.assemble(
                [], None, None, name="  ", visibility=None, accepted_pricing=False
            )
        problems = "\n".join(excinfo.value.problems)
        for expected in ("name", "visibility", "accepted", "file", "digest"):
            assert expected in problems
        assert len(excinfo.value.problems) >= 5

    def test_bad_visibility(self, assembler: ManifestAssembler, logical_files: list[LogicalFile]):
        digest = archive_digest(logical_files)
        with pytest.raises(ValidationError, match="PUBLIC or PRIVATE"):
            assembler.assemble(
                logical_files,
                digest,
                calculate_quote(Plan.PERMANENCE, digest.total_bytes),
                name="x",
                visibility="friends-only",
                accepted_pricing=True,
            )

    def test_visibility_string_accepted(
        self, assembler: ManifestAssembler, logical_files: list[LogicalFile]
    ):
        digest = archive_digest(logical_files)
        result = assembler.assemble(
            logical_files,
            digest,
            calculate_quote(Plan.PERMANENCE, digest.total_bytes),
            name="x",
            visibility="public",
            accepted_pricing=True,
        )
        assert result.visibility is Visibility.PUBLIC

    def test_digest_must_cover_files(
        self, assembler: ManifestAssembler, logical_files: list[LogicalFile]
    ):
        digest = archive_digest(logical_files[:1])
        with pytest.raises(ValidationError, match="archive digest"):
            assembler.assemble(
                logical_files,
                digest,
                calculate_quote(Plan.PERMANENCE, digest.total_bytes),
                name="x",
                visibility=Visibility.PUBLIC,
                accepted_pricing=True,
            )

    def test_raw_endowment_locked_with_rate_source(
        self, assembler: ManifestAssembler, logical_files: list[LogicalFile]
    ):
        digest = archive_digest(logical_files)
        result = assembler.assemble(
            logical_files,
            digest,
            calculate_quote(Plan.PERMANENCE, digest.total_bytes),
            "250",
            name="x",
            visibility=Visibility.PUBLIC,
            accepted_pricing=True,
        )
        assert result.endowment is not None
        assert result.endowment.derived_units == pytest.approx(0.1)

    def test_invalid_endowment(self, assembler: ManifestAssembler, logical_files: list[LogicalFile]):
        digest = archive_digest(logical_files)
        with pytest.raises(InvalidInput):
            assembler.assemble(
                logical_files,
                digest,
                calculate_quote(Plan.PERMANENCE, digest.total_bytes),
                "-3",
                name="x",
                visibility=Visibility.PUBLIC,
                accepted_pricing=True,
            )

    def test_session_grants_recorded(
        self,
        assembler: ManifestAssembler,
        logical_files: list[LogicalFile],
        session_manager: UploadSessionManager,
    ):
        session = session_manager.start_session(
            "session-m1", [f.to_request() for f in logical_files]
        )
        digest = archive_digest(logical_files)
        result = assembler.assemble(
            logical_files,
            digest,
            calculate_quote(Plan.PERMANENCE, digest.total_bytes),
            name="x",
            visibility=Visibility.PUBLIC,
            accepted_pricing=True,
            session=session,
            bucket="test-bucket",
            namespace="vaults",
        )
        assert result.storage_policy.session_id == "session-m1"
        assert result.storage_policy.key_prefix == "vaults/session-m1/"
        for entry in result.files:
            assert entry.object_key == f"vaults/session-m1/{entry.path}"
            assert entry.storage_uri == f"s3://test-bucket/vaults/session-m1/{entry.path}"


# ---------------------------------------------------------------------------
# Test: signatures and revisions
# ---------------------------------------------------------------------------


class TestSignatures:
    def test_signed_and_verifies(self, manifest: Manifest, signer: ManifestSigner):
        assert manifest.signature
        assert manifest.signer_public_key == signer.public_key
        assert verify_manifest(manifest)
        assert verify_manifest(manifest, expected_public_key=signer.public_key)

    def test_unexpected_signer_rejected(self, manifest: Manifest):
        other = ManifestSigner()
        assert not verify_manifest(manifest, expected_public_key=other.public_key)

    def test_survives_json_round_trip(self, manifest: Manifest, tmp_path: Path):
        ref = LocalManifestExporter(tmp_path).export(manifest)
        loaded = Manifest.model_validate_json(Path(ref).read_text())
        assert loaded == manifest
        assert verify_manifest(loaded)
        assert manifest_hash(loaded) == manifest_hash(manifest)

    def test_attach_token_creates_revision(self, assembler: ManifestAssembler, manifest: Manifest):
        revision = assembler.attach_token(manifest, _token())
        assert revision.revision == 2
        assert revision.archive_id == manifest.archive_id
        assert revision.previous_manifest_hash == manifest_hash(manifest)
        assert revision.token is not None
        assert verify_manifest(revision)
        # the first revision is untouched
        assert manifest.token is None
        assert verify_manifest(manifest)

    def test_attach_token_to_tampered_manifest_refused(
        self, assembler: ManifestAssembler, manifest: Manifest
    ):
        tampered = manifest.model_copy(update={"name": "Someone else's album"})
        with pytest.raises(ValidationError):
            assembler.attach_token(tampered, _token())


# ---------------------------------------------------------------------------
# Test: token metadata
# ---------------------------------------------------------------------------


class TestTokenMetadata:
    def test_document(self, manifest: Manifest):
        meta = build_token_metadata(manifest)
        assert meta["symbol"] == "PV-ARCH"
        assert "Family Album" in meta["name"]
        traits = {a["trait_type"]: a["value"] for a in meta["attributes"]}
        assert traits["Plan"] == "Heirloom"
        assert traits["Hash"] == manifest.archive.digest[:16] + "…"
        assert traits["Heirloom TTL (yrs)"] == 100
        assert traits["Heartbeat (months)"] == 12
        assert traits["Total Files"] == manifest.archive.file_count
        assert traits["Visibility"] == "PRIVATE"
        assert traits["Endowment (USD)"] == 100.0
        assert traits["Endowment (ETH at time)"] == 0.04
        assert traits["Endowment Rate (USD/ETH)"] == 2500.0

    def test_no_endowment_traits_without_lock(self, manifest: Manifest):
        bare = manifest.model_copy(update={"endowment": None})
        traits = {a["trait_type"] for a in build_token_metadata(bare)["attributes"]}
        assert not any(t.startswith("Endowment") for t in traits)

    def test_filename(self, manifest: Manifest):
        assert token_metadata_filename(manifest) == f"{manifest.archive_id}.PV-ARCH.token-metadata.json"

    @pytest.mark.parametrize(
        "size, text",
        [(0, "0 B"), (512, "512 B"), (1536, "1.50 KB"), (10 * 1024, "10 KB"), (3 * 1024**3, "3.00 GB")],
    )
    def test_format_bytes(self, size: int, text: str):
        assert format_bytes(size) == text


class TestHeritage:
    def test_add_months_clamps_day(self):
        start = datetime(2023, 1, 31, tzinfo=timezone.utc)
        assert add_months(start, 1) == datetime(2023, 2, 28, tzinfo=timezone.utc)
        assert add_months(start, 13) == datetime(2024, 2, 29, tzinfo=timezone.utc)

    def test_custom_heartbeat(self):
        policy = HeritagePolicy(heartbeat_months=6)
        start = datetime(2024, 8, 15, tzinfo=timezone.utc)
        assert policy.next_heartbeat(start) == datetime(2025, 2, 15, tzinfo=timezone.utc)
