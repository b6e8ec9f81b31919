"""PermaVault data models — all Pydantic v2, all frozen (immutable)."""

from permavault.models.build import VALID_TRANSITIONS, BuildStage, StageTransition
from permavault.models.files import FileInput, FileRequest, LogicalFile
from permavault.models.manifest import (
    ArchiveSummary,
    HeritagePolicy,
    Manifest,
    ManifestFileEntry,
    Redundancy,
    StoragePolicy,
    TokenDescriptor,
    TokenReference,
    TokenStandard,
    Visibility,
)
from permavault.models.pricing import EndowmentLock, Plan, PricingConfig, PricingQuote
from permavault.models.sessions import (
    ItemStatus,
    UploadGrant,
    UploadItemResult,
    UploadProgress,
    UploadResult,
    UploadSession,
)

__all__ = [
    # files
    "FileInput",
    "FileRequest",
    "LogicalFile",
    # sessions
    "UploadGrant",
    "UploadSession",
    "ItemStatus",
    "UploadItemResult",
    "UploadResult",
    "UploadProgress",
    # pricing
    "Plan",
    "PricingConfig",
    "PricingQuote",
    "EndowmentLock",
    # manifest
    "Visibility",
    "Redundancy",
    "TokenStandard",
    "HeritagePolicy",
    "StoragePolicy",
    "ArchiveSummary",
    "ManifestFileEntry",
    "TokenDescriptor",
    "TokenReference",
    "Manifest",
    # build
    "BuildStage",
    "StageTransition",
    "VALID_TRANSITIONS",
]
