"""Logical file models — what a vault is made of."""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class LogicalFile(BaseModel):
    """One file of a vault, addressed by its slash-separated relative path.

    Created by the file collector.  ``relative_path`` is already normalized
    (no leading ``./``, no ``.``/``..`` or empty segments).
    """

    model_config = ConfigDict(frozen=True)

    relative_path: str
    size_bytes: int = Field(ge=0)
    content_type: str = DEFAULT_CONTENT_TYPE
    source: Path

    def open(self) -> BinaryIO:
        """Open the underlying bytes for reading."""
        return self.source.open("rb")

    def to_request(self) -> FileRequest:
        """Describe this file for the upload session manager."""
        return FileRequest(
            rel_path=self.relative_path,
            size=self.size_bytes,
            content_type=self.content_type,
        )


class FileInput(BaseModel):
    """A flat-list entry: a local file plus an optional relative path hint."""

    model_config = ConfigDict(frozen=True)

    path: Path
    relative_path_hint: str | None = None


class FileRequest(BaseModel):
    """Wire descriptor of a file to be granted an upload slot."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    rel_path: str = Field(alias="relPath")
    size: int = Field(default=0, ge=0)
    content_type: str = Field(default=DEFAULT_CONTENT_TYPE, alias="contentType")
