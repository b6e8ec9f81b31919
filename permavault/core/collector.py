"""File collector — normalize input sources into ``LogicalFile`` records.

Two input shapes are supported:

1. A directory tree, walked depth-first with an explicit stack.  The walk
   is lazy and restartable: iterating a ``DirectorySource`` twice walks the
   tree twice.
2. A flat list of ``FileInput`` entries, each with an optional relative
   path hint (e.g. the browser's ``webkitRelativePath``).  Without a hint
   the bare file name is used.

Duplicate relative paths resolve last-write-wins; the entry keeps the
position of its first occurrence and a warning is logged.
"""

from __future__ import annotations

import logging
import mimetypes
import os
from collections.abc import Iterable, Iterator
from pathlib import Path

from permavault.core.paths import sanitize_relative_path
from permavault.errors import InvalidInput
from permavault.models.files import DEFAULT_CONTENT_TYPE, FileInput, LogicalFile

logger = logging.getLogger(__name__)


def guess_content_type(name: str) -> str:
    content_type, _ = mimetypes.guess_type(name)
    return content_type or DEFAULT_CONTENT_TYPE


def make_logical_file(path: Path, relative_path: str) -> LogicalFile:
    """Build a ``LogicalFile`` for a local file under a normalized path."""
    normalized = sanitize_relative_path(relative_path)
    if not normalized:
        raise InvalidInput(f"Relative path {relative_path!r} for {path} is empty after normalization")
    return LogicalFile(
        relative_path=normalized,
        size_bytes=path.stat().st_size,
        content_type=guess_content_type(path.name),
        source=path,
    )


class DirectorySource:
    """Lazy, restartable depth-first walk of a directory tree.

    Parameters
    ----------
    root:
        Directory to walk.
    include_root:
        Prefix every relative path with the root folder's own name, the
        way a dropped folder keeps its name.
    follow_symlinks:
        Descend into symlinked directories.  Off by default to avoid cycles.
    """

    def __init__(
        self,
        root: Path,
        *,
        include_root: bool = True,
        follow_symlinks: bool = False,
    ) -> None:
        self.root = Path(root)
        self.include_root = include_root
        self.follow_symlinks = follow_symlinks

    def __iter__(self) -> Iterator[LogicalFile]:
        if not self.root.is_dir():
            raise InvalidInput(f"Not a directory: {self.root}")

        prefix = f"{self.root.name}/" if self.include_root else ""
        # Worklist of (directory, path prefix); reversed pushes keep the
        # traversal in sorted order.
        stack: list[tuple[Path, str]] = [(self.root, prefix)]
        while stack:
            directory, dir_prefix = stack.pop()
            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as exc:
                logger.warning("Skipping unreadable directory %s: %s", directory, exc)
                continue

            subdirs: list[tuple[Path, str]] = []
            for entry in entries:
                if entry.is_dir(follow_symlinks=self.follow_symlinks):
                    subdirs.append((Path(entry.path), f"{dir_prefix}{entry.name}/"))
                elif entry.is_file(follow_symlinks=True):
                    yield make_logical_file(Path(entry.path), dir_prefix + entry.name)
            stack.extend(reversed(subdirs))

    def __repr__(self) -> str:
        return f"DirectorySource(root={str(self.root)!r}, include_root={self.include_root})"


def collect_file_list(entries: Iterable[FileInput | Path]) -> Iterator[LogicalFile]:
    """Normalize a flat list of files, honoring relative path hints."""
    for entry in entries:
        if isinstance(entry, Path):
            entry = FileInput(path=entry)
        if not entry.path.is_file():
            raise InvalidInput(f"Not a file: {entry.path}")
        hint = entry.relative_path_hint or entry.path.name
        yield make_logical_file(entry.path, hint)


def collect(*sources: Iterable[LogicalFile]) -> list[LogicalFile]:
    """Merge one or more sources into a single ordered collection.

    Duplicate relative paths: last write wins, first position is kept.
    """
    merged: dict[str, LogicalFile] = {}
    for source in sources:
        for file in source:
            if file.relative_path in merged:
                logger.warning(
                    "Duplicate relative path %s: %s replaces %s",
                    file.relative_path,
                    file.source,
                    merged[file.relative_path].source,
                )
            merged[file.relative_path] = file
    return list(merged.values())


def collect_path(path: Path, *, include_root: bool = True) -> list[LogicalFile]:
    """Collect a directory tree or a single file from a local path."""
    path = Path(path)
    if path.is_dir():
        return collect(DirectorySource(path, include_root=include_root))
    if path.is_file():
        return collect(collect_file_list([path]))
    raise InvalidInput(f"No such file or directory: {path}")
