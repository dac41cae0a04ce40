"""Project identity: stable identifiers and display names derived from paths."""

import hashlib
import re
from collections import OrderedDict
from typing import Iterable

from .core import SessionWithProject

# Hashed as text ahead of the path, never parsed as a UUID.
PROJECT_NAMESPACE = "6ba7b810-9dad-11d1-80b4-00c04fd430c8"

_PLACEHOLDERS = {"unknown", "null", "undefined"}
_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
_DASH_RUNS = re.compile(r"-+")


def normalize_project_path(path: str) -> str:
    """Unify separators, drop trailing slashes and lowercase."""
    return path.replace("\\", "/").rstrip("/").lower()


def project_uuid(path: str) -> str:
    """Deterministic, UUID v5-shaped identifier for a project path.

    Paths that differ only in case, separator style or a trailing separator
    map to the same identifier.
    """
    digest = bytearray(
        hashlib.sha1((PROJECT_NAMESPACE + normalize_project_path(path)).encode("utf-8")).digest()
    )
    digest[6] = (digest[6] & 0x0F) | 0x50
    digest[8] = (digest[8] & 0x3F) | 0x80
    h = digest[:16].hex()
    return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"


def extract_project_name(path: str | None) -> str | None:
    """Slug of the last path segment, or None when the path is unusable."""
    if not path or path in _PLACEHOLDERS:
        return None

    parts = [p for p in re.split(r"[/\\]", path) if p]
    if not parts:
        return None

    name = _INVALID_NAME_CHARS.sub("-", parts[-1])
    name = _DASH_RUNS.sub("-", name).strip("-").lower()
    return name or None


def is_resolvable(path: str | None) -> bool:
    return extract_project_name(path) is not None


def group_by_project(
    sessions: Iterable[SessionWithProject],
) -> "OrderedDict[str, list[SessionWithProject]]":
    """Group sessions by normalized project path, keeping first-seen order."""
    grouped: OrderedDict[str, list[SessionWithProject]] = OrderedDict()
    for swp in sessions:
        grouped.setdefault(normalize_project_path(swp.project_path), []).append(swp)
    return grouped
