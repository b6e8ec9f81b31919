"""Relative path normalization shared by the collector and session manager.

Normalized paths are slash-separated, never absolute, and contain no
``.``, ``..`` or empty segments, so a key built as ``<prefix>/<path>``
always stays under ``<prefix>/``.
"""

from __future__ import annotations

import re

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def sanitize_relative_path(raw: str) -> str:
    """Return *raw* with traversal and separator noise stripped.

    Returns an empty string when nothing usable remains; callers decide
    whether that is an error.

    >>> sanitize_relative_path("./photos/../../etc/passwd")
    'photos/etc/passwd'
    >>> sanitize_relative_path("C:\\\\Users\\\\a.txt")
    'C:/Users/a.txt'
    """
    cleaned = _CONTROL_CHARS.sub("", raw).replace("\\", "/")
    segments = [s for s in cleaned.split("/") if s not in ("", ".", "..")]
    return "/".join(segments)


def join_key(*parts: str) -> str:
    """Join key parts with single slashes."""
    return "/".join(p.strip("/") for p in parts if p.strip("/"))
