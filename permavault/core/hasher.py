"""Chunked content hashing and canonical JSON helpers.

Vaults may be many gigabytes, so every byte stream is read in fixed-size
chunks and peak memory is bounded by the chunk size regardless of input
size.

The archive digest is SHA-256 over the path-sorted sequence::

    <relative_path> "\\n" <file bytes>   (for each file, by relative_path)

Injecting the path makes the digest a fingerprint of each file's position
as well as its bytes: identical contents under different paths hash
differently.  Sorting makes it independent of traversal and upload order.

Paths are sorted by Unicode code point, not by a locale collation.  A
hasher that orders paths with a locale-aware comparison (the browser's
``localeCompare``, for one) agrees only when both orders coincide, which
mixed-case or accented paths can break.

``iter_archive_digest`` yields a ``HashProgress`` after every chunk.  That
yield is the suspension point: a synchronous caller simply drains it, and
``archive_digest_async`` hands control back to the event loop there.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
from collections.abc import Callable, Generator, Iterable, Iterator
from typing import Any, BinaryIO

from pydantic import BaseModel, ConfigDict

from permavault.errors import InvalidInput
from permavault.models.files import LogicalFile

DEFAULT_CHUNK_SIZE = 8 * 1024 * 1024  # 8 MiB
PATH_DELIMITER = b"\n"


class DigestReadError(OSError):
    """Raised when a stream cannot be fully read while hashing."""


class HashProgress(BaseModel):
    """Emitted after each hashed chunk.  The final event carries ``digest``."""

    model_config = ConfigDict(frozen=True)

    bytes_hashed: int
    total_bytes: int
    path: str = ""
    digest: str | None = None


class ArchiveDigest(BaseModel):
    """Deterministic fingerprint of a vault's full content set."""

    model_config = ConfigDict(frozen=True)

    algorithm: str = "sha256"
    digest: str
    file_count: int
    total_bytes: int
    file_digests: dict[str, str] = {}


# ---------------------------------------------------------------------------
# Canonical JSON
# ---------------------------------------------------------------------------


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes — deterministic, sorted, compact.

    - sorted keys
    - no whitespace separators (",", ":")
    - ensure_ascii=True
    - UTF-8 encoding
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def content_address(obj: Any) -> str:
    """Content-address a JSON-serializable object as ``sha256:<hex>``."""
    return f"sha256:{sha256_hex(canonical_json_bytes(obj))}"


# ---------------------------------------------------------------------------
# Streams
# ---------------------------------------------------------------------------


def iter_chunks(
    stream: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE, *, name: str = ""
) -> Iterator[bytes]:
    """Yield *stream* in chunks of at most *chunk_size* bytes.

    Raises ``DigestReadError`` if the stream fails mid-read.
    """
    if chunk_size <= 0:
        raise InvalidInput(f"chunk_size must be positive, got {chunk_size}")
    while True:
        try:
            chunk = stream.read(chunk_size)
        except OSError as exc:
            raise DigestReadError(f"Failed to read {name or 'stream'}: {exc}") from exc
        if not chunk:
            return
        yield chunk


def digest_streams(
    streams: Iterable[BinaryIO], *, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> str:
    """SHA-256 of the concatenation of *streams*, in the order given."""
    hasher = hashlib.sha256()
    for index, stream in enumerate(streams):
        for chunk in iter_chunks(stream, chunk_size, name=f"stream #{index}"):
            hasher.update(chunk)
    return hasher.hexdigest()


def file_digest(file: LogicalFile, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """SHA-256 of a single file's bytes."""
    try:
        with file.open() as stream:
            return digest_streams([stream], chunk_size=chunk_size)
    except DigestReadError:
        raise
    except OSError as exc:
        raise DigestReadError(f"Failed to open {file.relative_path}: {exc}") from exc


# ---------------------------------------------------------------------------
# Archive digest
# ---------------------------------------------------------------------------


def canonical_order(files: Iterable[LogicalFile]) -> list[LogicalFile]:
    """Sort files by relative path, rejecting duplicate paths."""
    ordered = sorted(files, key=lambda f: f.relative_path)
    for previous, current in zip(ordered, ordered[1:]):
        if previous.relative_path == current.relative_path:
            raise InvalidInput(
                f"Duplicate relative path in archive: {current.relative_path}"
            )
    return ordered


def iter_archive_digest(
    files: Iterable[LogicalFile], *, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> Iterator[HashProgress]:
    """Hash an archive chunk by chunk, yielding progress after each chunk.

    The last ``HashProgress`` has ``digest`` set; use ``archive_digest`` to
    get the full ``ArchiveDigest`` including per-file digests.
    """
    yield from _hash_archive(files, chunk_size=chunk_size)


def _hash_archive(
    files: Iterable[LogicalFile], *, chunk_size: int
) -> Generator[HashProgress, None, ArchiveDigest]:
    """Yield progress events; the generator's return value is the digest."""
    ordered = canonical_order(files)
    total = sum(f.size_bytes for f in ordered)
    archive = hashlib.sha256()
    per_file: dict[str, str] = {}
    done = 0

    for file in ordered:
        archive.update(file.relative_path.encode("utf-8"))
        archive.update(PATH_DELIMITER)
        single = hashlib.sha256()
        try:
            stream = file.open()
        except OSError as exc:
            raise DigestReadError(
                f"Failed to open {file.relative_path}: {exc}"
            ) from exc
        with stream:
            for chunk in iter_chunks(stream, chunk_size, name=file.relative_path):
                archive.update(chunk)
                single.update(chunk)
                done += len(chunk)
                yield HashProgress(
                    bytes_hashed=done, total_bytes=total, path=file.relative_path
                )
        per_file[file.relative_path] = single.hexdigest()

    digest = archive.hexdigest()
    yield HashProgress(bytes_hashed=done, total_bytes=total, digest=digest)
    return ArchiveDigest(
        digest=digest,
        file_count=len(ordered),
        total_bytes=done,
        file_digests=per_file,
    )


def archive_digest(
    files: Iterable[LogicalFile],
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    on_progress: Callable[[HashProgress], None] | None = None,
) -> ArchiveDigest:
    """Compute the archive digest synchronously."""
    events = _hash_archive(files, chunk_size=chunk_size)
    while True:
        try:
            event = next(events)
        except StopIteration as finished:
            return finished.value
        if on_progress is not None:
            on_progress(event)


async def archive_digest_async(
    files: Iterable[LogicalFile],
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    on_progress: Callable[[HashProgress], None] | None = None,
) -> ArchiveDigest:
    """Compute the archive digest, yielding to the event loop after each chunk."""
    events = _hash_archive(files, chunk_size=chunk_size)
    while True:
        try:
            event = next(events)
        except StopIteration as finished:
            return finished.value
        if on_progress is not None:
            on_progress(event)
        await asyncio.sleep(0)
