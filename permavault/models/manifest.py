"""Vault manifest models (immutable).

A ``Manifest`` is written exactly once per successful build.  Attaching a
token produces a new revision that points back at its predecessor through
``previous_manifest_hash``; an existing revision is never edited.
"""

from __future__ import annotations

import calendar
import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from permavault.models.pricing import EndowmentLock, Plan, PricingQuote

MANIFEST_VERSION = "1.0.0"


class Visibility(str, Enum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"


class Redundancy(str, Enum):
    SINGLE = "single"
    DUAL = "dual"


class TokenStandard(str, Enum):
    ERC721 = "ERC721"
    ERC1155 = "ERC1155"
    OTHER = "Other"


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar-aware month arithmetic, clamping the day to the month end."""
    index = moment.month - 1 + months
    year = moment.year + index // 12
    month = index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


class HeritagePolicy(BaseModel):
    """Heirship terms: how long the vault lives and how often the owner
    must check in before heirs may claim it."""

    model_config = ConfigDict(frozen=True)

    ttl_years: int = Field(default=100, ge=1)
    heartbeat_months: int = Field(default=12, ge=1)
    heirs: tuple[str, ...] = ()
    custodial_stewardship: bool = True

    def next_heartbeat(self, since: datetime) -> datetime:
        return add_months(since, self.heartbeat_months)


class StoragePolicy(BaseModel):
    """Where the vault lives and under which plan."""

    model_config = ConfigDict(frozen=True)

    plan: Plan
    escrow_years: int | None = None
    redundancy: Redundancy = Redundancy.SINGLE
    retention_years: int = 100
    bucket: str = ""
    session_id: str = ""
    key_prefix: str = ""


class ArchiveSummary(BaseModel):
    """The archive digest and totals recorded in a manifest."""

    model_config = ConfigDict(frozen=True)

    algorithm: str = "sha256"
    digest: str
    file_count: int = Field(ge=0)
    total_bytes: int = Field(ge=0)


class ManifestFileEntry(BaseModel):
    """One file's descriptor inside the manifest."""

    model_config = ConfigDict(frozen=True)

    path: str
    size_bytes: int = Field(ge=0)
    sha256: str
    content_type: str
    object_key: str | None = None
    storage_uri: str | None = None


class TokenDescriptor(BaseModel):
    """Token presentation fields carried by the manifest and its metadata."""

    model_config = ConfigDict(frozen=True)

    standard: TokenStandard = TokenStandard.ERC721
    name: str = "PermaVault Archive"
    symbol: str = "PV-ARCH"
    description: str = "Token representing a PermaVault archive"
    external_url: str | None = None


class TokenReference(BaseModel):
    """A minted token linked to a manifest revision."""

    model_config = ConfigDict(frozen=True)

    network: str
    contract: str = ""
    token_id: str
    transaction_reference: str
    manifest_ref: str
    destination: str = ""
    minted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Manifest(BaseModel):
    """The terminal record of a vault build.

    ``signature`` is an Ed25519 signature over the canonical JSON of every
    other field; ``signer_public_key`` is the hex verify key.
    """

    model_config = ConfigDict(frozen=True)

    manifest_version: str = MANIFEST_VERSION
    archive_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    revision: int = Field(default=1, ge=1)
    previous_manifest_hash: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    name: str
    statement: str = ""
    visibility: Visibility
    owner: str | None = None

    archive: ArchiveSummary
    files: tuple[ManifestFileEntry, ...]
    storage_policy: StoragePolicy
    heritage_policy: HeritagePolicy
    next_heartbeat: datetime
    economic_preview: PricingQuote
    endowment: EndowmentLock | None = None
    token_descriptor: TokenDescriptor = TokenDescriptor()
    token: TokenReference | None = None

    signer_public_key: str = ""
    signature: str = ""

    @property
    def manifest_filename(self) -> str:
        if self.revision == 1:
            return f"{self.archive_id}.manifest.json"
        return f"{self.archive_id}.r{self.revision}.manifest.json"
