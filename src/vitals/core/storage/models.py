"""Data models for the extraction cache layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class ManifestEntry:
    """A processed source file, keyed by its path relative to the data dir."""

    path: str
    hash: str
    domain: str  # 'bloodwork' | 'dexa' | 'activity_folder'
    last_extracted_at: str  # ISO 8601


@dataclass
class CachedPayload:
    """The last trusted extraction result for one document domain.

    ``source_hash`` is the content hash of the file the payload was
    extracted from; it is only trusted while that hash is still current.
    """

    domain: str
    source_path: str
    source_hash: str
    extracted_at: str
    data: dict[str, Any]
