"""Upload session, grant, and transfer result models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


class UploadGrant(BaseModel):
    """A time-bounded credential for exactly one object key.

    ``object_key`` is ``<namespace>/<session_id>/<sanitized path>``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    relative_path: str = Field(alias="relPath")
    object_key: str = Field(alias="objectKey")
    storage_uri: str = Field(alias="storageURI")
    upload_url: str = Field(alias="uploadUrl")
    content_type: str = Field(alias="contentType")
    expires_at: AwareDatetime = Field(alias="expiresAt")

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class UploadSession(BaseModel):
    """The full plan returned by the session manager — one grant per file."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    items: tuple[UploadGrant, ...]

    def grant_for(self, relative_path: str) -> UploadGrant | None:
        for item in self.items:
            if item.relative_path == relative_path:
                return item
        return None


class ItemStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class UploadItemResult(BaseModel):
    """Outcome of one planned transfer."""

    model_config = ConfigDict(frozen=True)

    relative_path: str
    object_key: str
    status: ItemStatus = ItemStatus.PENDING
    bytes_sent: int = 0
    http_status: int | None = None
    error: str = ""


class UploadResult(BaseModel):
    """Per-item outcome of an upload batch, in plan order."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    items: tuple[UploadItemResult, ...]
    bytes_sent: int = 0
    total_bytes: int = 0

    def _with_status(self, status: ItemStatus) -> list[UploadItemResult]:
        return [i for i in self.items if i.status == status]

    @property
    def completed(self) -> list[UploadItemResult]:
        return self._with_status(ItemStatus.COMPLETED)

    @property
    def failed(self) -> list[UploadItemResult]:
        return self._with_status(ItemStatus.FAILED)

    @property
    def pending(self) -> list[UploadItemResult]:
        return self._with_status(ItemStatus.PENDING)

    @property
    def skipped(self) -> list[UploadItemResult]:
        return self._with_status(ItemStatus.SKIPPED)

    @property
    def ok(self) -> bool:
        """True when nothing failed and nothing was left unattempted."""
        return not self.failed and not self.pending

    def status_of(self, relative_path: str) -> ItemStatus | None:
        for item in self.items:
            if item.relative_path == relative_path:
                return item.status
        return None


class UploadProgress(BaseModel):
    """Progress snapshot emitted by the upload executor.

    Both counters are monotonically non-decreasing within one batch.
    """

    model_config = ConfigDict(frozen=True)

    completed_items: int
    total_items: int
    bytes_sent: int
    total_bytes: int
    relative_path: str = ""

    @property
    def percent(self) -> int:
        if self.total_bytes > 0:
            return min(100, int(self.bytes_sent * 100 / self.total_bytes))
        if self.total_items > 0:
            return int(self.completed_items * 100 / self.total_items)
        return 100
