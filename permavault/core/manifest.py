"""Manifest assembly, signing and revision.

A manifest is assembled once all of its inputs exist: the collected
files, their archive digest, an accepted pricing quote and, optionally,
an endowment.  Missing inputs are reported together in a single
``ValidationError`` instead of one at a time.

Signatures are Ed25519 over the canonical JSON of every field except
``signature`` itself.  Because manifests are immutable, linking a minted
token produces a new revision whose ``previous_manifest_hash`` is the
content address of the revision it supersedes.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from permavault.bridge.crypto_bridge import ManifestSigner, verify_data
from permavault.core.hasher import ArchiveDigest, canonical_json_bytes, content_address
from permavault.core.pricing import RateSource, lock_endowment, parse_endowment_usd
from permavault.errors import ValidationError
from permavault.models.files import LogicalFile
from permavault.models.manifest import (
    ArchiveSummary,
    HeritagePolicy,
    Manifest,
    ManifestFileEntry,
    Redundancy,
    StoragePolicy,
    TokenDescriptor,
    TokenReference,
    Visibility,
)
from permavault.models.pricing import EndowmentLock, PricingQuote
from permavault.models.sessions import UploadSession

logger = logging.getLogger(__name__)

_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_bytes(size: int) -> str:
    """Human-readable size using 1024-based units."""
    if size <= 0:
        return "0 B"
    value = float(size)
    exponent = 0
    while value >= 1024 and exponent < len(_UNITS) - 1:
        value /= 1024
        exponent += 1
    if exponent == 0 or value >= 10:
        return f"{value:.0f} {_UNITS[exponent]}"
    return f"{value:.2f} {_UNITS[exponent]}"


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


def signing_payload(manifest: Manifest) -> bytes:
    """Canonical bytes covered by the manifest signature."""
    return canonical_json_bytes(manifest.model_dump(mode="json", exclude={"signature"}))


def sign_manifest(manifest: Manifest, signer: ManifestSigner) -> Manifest:
    """Return a copy of *manifest* signed by *signer*."""
    unsigned = manifest.model_copy(
        update={"signer_public_key": signer.public_key, "signature": ""}
    )
    return unsigned.model_copy(update={"signature": signer.sign(signing_payload(unsigned))})


def verify_manifest(manifest: Manifest, *, expected_public_key: str = "") -> bool:
    """Check the manifest signature.

    With *expected_public_key* the embedded signer key must also match it;
    otherwise any self-consistent signature is accepted.
    """
    if expected_public_key and manifest.signer_public_key != expected_public_key:
        return False
    return verify_data(
        signing_payload(manifest), manifest.signature, manifest.signer_public_key
    )


def manifest_hash(manifest: Manifest) -> str:
    """Content address of a full manifest revision, signature included."""
    return content_address(manifest.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


class ManifestAssembler:
    """Builds signed manifests from the outputs of the earlier build stages.

    Parameters
    ----------
    signer:
        Signs every manifest and revision this assembler produces.
    heritage_policy:
        Default heirship terms when ``assemble`` is not given any.
    token_descriptor:
        Default token presentation fields.
    rate_source:
        Used when ``assemble`` receives an endowment as a raw USD amount
        rather than an existing lock.
    endowment_unit:
        Unit label for locks created here.
    """

    def __init__(
        self,
        signer: ManifestSigner,
        *,
        heritage_policy: HeritagePolicy | None = None,
        token_descriptor: TokenDescriptor | None = None,
        rate_source: RateSource | None = None,
        endowment_unit: str = "ETH",
    ) -> None:
        self._signer = signer
        self._heritage_policy = heritage_policy or HeritagePolicy()
        self._token_descriptor = token_descriptor or TokenDescriptor()
        self._rate_source = rate_source
        self._endowment_unit = endowment_unit

    @property
    def signer(self) -> ManifestSigner:
        return self._signer

    def assemble(
        self,
        files: Sequence[LogicalFile],
        digest: ArchiveDigest | None,
        pricing: PricingQuote | None,
        endowment: EndowmentLock | float | str | None = None,
        heritage_policy: HeritagePolicy | None = None,
        token_descriptor: TokenDescriptor | None = None,
        *,
        name: str,
        visibility: Visibility | str | None,
        accepted_pricing: bool,
        statement: str = "",
        owner: str | None = None,
        session: UploadSession | None = None,
        bucket: str = "",
        namespace: str = "",
        redundancy: Redundancy = Redundancy.SINGLE,
        created_at: datetime | None = None,
    ) -> Manifest:
        """Validate the build inputs and produce a signed revision 1.

        Raises
        ------
        ValidationError
            Listing every missing or inconsistent input.
        InvalidInput
            If a raw endowment amount is not a finite non-negative number.
        """
        problems: list[str] = []
        if not name or not name.strip():
            problems.append("name is required")
        resolved_visibility = self._resolve_visibility(visibility, problems)
        if not accepted_pricing:
            problems.append("pricing must be accepted")
        if pricing is None:
            problems.append("a pricing quote is required")
        if not files:
            problems.append("at least one file is required")
        if digest is None:
            problems.append("archive digest is required")
        elif files:
            problems.extend(self._digest_problems(files, digest))
        if pricing is not None and digest is not None and pricing.total_bytes != digest.total_bytes:
            problems.append(
                f"pricing quote covers {pricing.total_bytes} bytes but the archive "
                f"has {digest.total_bytes}"
            )
        if problems or digest is None or pricing is None or resolved_visibility is None:
            raise ValidationError(problems)

        lock = self._resolve_endowment(endowment)
        heritage = heritage_policy or self._heritage_policy
        created = created_at or datetime.now(timezone.utc)

        manifest = Manifest(
            created_at=created,
            name=name.strip(),
            statement=statement,
            visibility=resolved_visibility,
            owner=owner,
            archive=ArchiveSummary(
                algorithm=digest.algorithm,
                digest=digest.digest,
                file_count=digest.file_count,
                total_bytes=digest.total_bytes,
            ),
            files=self._file_entries(files, digest, session),
            storage_policy=StoragePolicy(
                plan=pricing.plan,
                escrow_years=pricing.escrow_years,
                redundancy=redundancy,
                retention_years=heritage.ttl_years,
                bucket=bucket,
                session_id=session.session_id if session else "",
                key_prefix=(
                    f"{namespace}/{session.session_id}/" if session and namespace else ""
                ),
            ),
            heritage_policy=heritage,
            next_heartbeat=heritage.next_heartbeat(created),
            economic_preview=pricing,
            endowment=lock,
            token_descriptor=token_descriptor or self._token_descriptor,
        )
        signed = sign_manifest(manifest, self._signer)
        logger.info(
            "Assembled manifest %s (%d files, %s, signer %s)",
            signed.archive_id,
            signed.archive.file_count,
            signed.archive.digest[:16],
            self._signer.fingerprint,
        )
        return signed

    def attach_token(self, manifest: Manifest, token: TokenReference) -> Manifest:
        """Return the next revision of *manifest* carrying *token*.

        The earlier revision is left untouched.
        """
        if not verify_manifest(manifest):
            raise ValidationError(
                [f"revision {manifest.revision} of {manifest.archive_id} has an invalid signature"]
            )
        data = manifest.model_dump()
        data.update(
            revision=manifest.revision + 1,
            previous_manifest_hash=manifest_hash(manifest),
            token=token,
            signer_public_key="",
            signature="",
        )
        revision = sign_manifest(Manifest.model_validate(data), self._signer)
        logger.info(
            "Manifest %s revision %d links token %s",
            revision.archive_id,
            revision.revision,
            token.token_id[:18],
        )
        return revision

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_visibility(
        visibility: Visibility | str | None, problems: list[str]
    ) -> Visibility | None:
        if visibility is None or visibility == "":
            problems.append("visibility is required")
            return None
        try:
            return Visibility(str(getattr(visibility, "value", visibility)).upper())
        except ValueError:
            problems.append(f"visibility must be PUBLIC or PRIVATE, got {visibility!r}")
            return None

    @staticmethod
    def _digest_problems(files: Sequence[LogicalFile], digest: ArchiveDigest) -> list[str]:
        problems: list[str] = []
        if digest.file_count != len(files):
            problems.append(
                f"archive digest covers {digest.file_count} files but {len(files)} were collected"
            )
        missing = [f.relative_path for f in files if f.relative_path not in digest.file_digests]
        if missing:
            problems.append(f"archive digest is missing files: {', '.join(missing[:5])}")
        return problems

    def _resolve_endowment(
        self, endowment: EndowmentLock | float | str | None
    ) -> EndowmentLock | None:
        if endowment is None or isinstance(endowment, EndowmentLock):
            return endowment
        amount = parse_endowment_usd(endowment)
        if amount is None:
            return None
        if self._rate_source is None:
            raise ValidationError(["an endowment amount needs a conversion rate source"])
        return lock_endowment(amount, self._rate_source, unit=self._endowment_unit)

    @staticmethod
    def _file_entries(
        files: Sequence[LogicalFile],
        digest: ArchiveDigest,
        session: UploadSession | None,
    ) -> tuple[ManifestFileEntry, ...]:
        entries = []
        for file in sorted(files, key=lambda f: f.relative_path):
            grant = session.grant_for(file.relative_path) if session else None
            entries.append(
                ManifestFileEntry(
                    path=file.relative_path,
                    size_bytes=file.size_bytes,
                    sha256=digest.file_digests[file.relative_path],
                    content_type=file.content_type,
                    object_key=grant.object_key if grant else None,
                    storage_uri=grant.storage_uri if grant else None,
                )
            )
        return tuple(entries)


# ---------------------------------------------------------------------------
# Token metadata
# ---------------------------------------------------------------------------


def build_token_metadata(manifest: Manifest) -> dict[str, Any]:
    """ERC-721 style metadata document for the manifest's token."""
    descriptor = manifest.token_descriptor
    policy = manifest.storage_policy
    attributes: list[dict[str, Any]] = [
        {"trait_type": "Archive Size", "value": format_bytes(manifest.archive.total_bytes)},
        {"trait_type": "Hash", "value": manifest.archive.digest[:16] + "…"},
        {"trait_type": "Plan", "value": policy.plan.value},
    ]
    if policy.escrow_years is not None:
        attributes.append({"trait_type": "Escrow Years", "value": policy.escrow_years})
    attributes += [
        {"trait_type": "Heirloom TTL (yrs)", "value": manifest.heritage_policy.ttl_years},
        {"trait_type": "Heartbeat (months)", "value": manifest.heritage_policy.heartbeat_months},
        {"trait_type": "Total Files", "value": manifest.archive.file_count},
        {"trait_type": "Visibility", "value": manifest.visibility.value},
    ]
    if manifest.endowment is not None:
        lock = manifest.endowment
        attributes += [
            {"trait_type": "Endowment (USD)", "value": round(lock.usd, 2)},
            {"trait_type": f"Endowment ({lock.unit} at time)", "value": round(lock.derived_units, 6)},
            {"trait_type": f"Endowment Rate (USD/{lock.unit})", "value": round(lock.usd_per_unit, 2)},
        ]
    return {
        "name": f"{descriptor.name}: {manifest.name}",
        "symbol": descriptor.symbol,
        "description": descriptor.description,
        "external_url": descriptor.external_url,
        "attributes": attributes,
    }


def token_metadata_filename(manifest: Manifest) -> str:
    symbol = manifest.token_descriptor.symbol or "PV-ARCH"
    return f"{manifest.archive_id}.{symbol}.token-metadata.json"

