"""
FileBox Shared Utilities — name and size helpers used across the namespace.
"""

from __future__ import annotations

import math
import mimetypes
from typing import Iterable, Optional, Tuple

SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def split_extension(name: str) -> Tuple[str, Optional[str]]:
    """
    Split a file name into (stem, extension) at the last ".".

    Examples:
        split_extension("report.pdf")      → ("report", "pdf")
        split_extension("archive.tar.gz")  → ("archive.tar", "gz")
        split_extension("README")          → ("README", None)
    """
    if "." not in name:
        return name, None
    stem, _, ext = name.rpartition(".")
    return stem, ext


def with_extension(stem: str, ext: Optional[str]) -> str:
    """Re-attach an extension; None or "" leaves the stem as-is."""
    if not ext:
        return stem
    return f"{stem}.{ext}"


def format_file_size(size_bytes: int) -> str:
    """
    Human-readable size with two decimals, trailing zeros dropped.

    Examples:
        format_file_size(0)     → "0 Bytes"
        format_file_size(1536)  → "1.5 KB"
    """
    if size_bytes <= 0:
        return "0 Bytes"
    i = 0
    while size_bytes >= 1024 ** (i + 1) and i < len(SIZE_UNITS) - 1:
        i += 1
    value = round(size_bytes / math.pow(1024, i), 2)
    return f"{value:g} {SIZE_UNITS[i]}"


def detect_mime_type(filename: str) -> str:
    """Detect MIME type from filename."""
    mime, _ = mimetypes.guess_type(filename)
    return mime or "application/octet-stream"


def mime_type_allowed(mime_type: str, allowed: Iterable[str]) -> bool:
    """
    Check a MIME type against an allow-list.

    Supports exact matches ("application/pdf"), wildcard categories
    ("image/*") and the universal "*/*".
    """
    for pattern in allowed:
        if pattern == "*/*" or pattern == mime_type:
            return True
        if pattern.endswith("/*"):
            category = pattern.split("/")[0]
            if mime_type.startswith(category + "/"):
                return True
    return False
