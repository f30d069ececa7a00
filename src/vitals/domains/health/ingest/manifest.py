"""Content-addressable extraction manifest.

A document is re-extracted only when its content hash differs from the hash
recorded the last time it was extracted. The manifest is loaded once per
load cycle, mutated in memory, and handed back to the repository at the end
of the cycle so a cancelled or failed load never leaves it half-written.
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

from vitals.core import fs
from vitals.core.storage.models import ManifestEntry
from vitals.domains.health.models import utc_now_iso

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------

def _digest_file(path: str | Path) -> str:
    sha = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            sha.update(chunk)
    return sha.hexdigest()


def calculate_file_hash(path: str | Path) -> str:
    """SHA-256 hex digest of a file's bytes; empty string when unreadable."""
    return fs.fs_call("hash", path, lambda: _digest_file(path)).unwrap_or("")


def calculate_folder_hash(path: str | Path) -> str:
    """SHA-256 over every file in a folder tree.

    Each file contributes its relative path, size and content hash, visited
    in sorted order, so renames, edits, additions and removals all change
    the digest. Empty string when the folder is unreadable.
    """
    base = Path(path)
    if not fs.is_dir(base):
        return ""

    sha = hashlib.sha256()
    pending = [base]
    files: list[Path] = []
    while pending:
        current = pending.pop()
        for entry in fs.list_dir(current):
            if entry.name.startswith("."):
                continue
            if fs.fs_call("is_dir", entry.path, entry.is_dir).unwrap_or(False):
                pending.append(Path(entry.path))
            else:
                files.append(Path(entry.path))

    for file_path in sorted(files):
        st = fs.stat(file_path)
        relative = file_path.relative_to(base).as_posix()
        sha.update(relative.encode("utf-8"))
        sha.update(str(st.st_size if st is not None else -1).encode("ascii"))
        sha.update(calculate_file_hash(file_path).encode("ascii"))
    return sha.hexdigest()


# ---------------------------------------------------------------------------
# Manifest operations
# ---------------------------------------------------------------------------

def manifest_key(root: str | Path, path: str | Path) -> str:
    """Manifest key for ``path``: POSIX path relative to the data dir."""
    try:
        return Path(os.path.relpath(path, root)).as_posix()
    except ValueError:
        # Different drive on Windows
        return Path(path).as_posix()


def needs_extraction(manifest: dict[str, ManifestEntry], path: str, content_hash: str) -> bool:
    """True when ``path`` was never extracted or its content has changed.

    An empty hash (unreadable file) always requires extraction.
    """
    entry = manifest.get(path)
    if entry is None or not content_hash:
        return True
    return entry.hash != content_hash


def update_manifest_entry(
    manifest: dict[str, ManifestEntry],
    path: str,
    content_hash: str,
    domain: str,
    extracted_at: str | None = None,
) -> ManifestEntry:
    """Record a successful extraction of ``path`` at ``content_hash``."""
    entry = ManifestEntry(
        path=path,
        hash=content_hash,
        domain=domain,
        last_extracted_at=extracted_at or utc_now_iso(),
    )
    manifest[path] = entry
    return entry


class CacheManifest:
    """In-memory manifest for one load cycle with change tracking.

    Usage::

        manifest = CacheManifest(repo.read_manifest())
        if manifest.needs_extraction(key, digest):
            ...
            manifest.update(key, digest, "bloodwork")
        if manifest.changed:
            repo.commit_cycle(manifest.entries, payloads)
    """

    def __init__(self, entries: dict[str, ManifestEntry] | None = None) -> None:
        self.entries: dict[str, ManifestEntry] = dict(entries or {})
        self.changed = False

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, path: object) -> bool:
        return path in self.entries

    def get(self, path: str) -> ManifestEntry | None:
        return self.entries.get(path)

    def needs_extraction(self, path: str, content_hash: str) -> bool:
        return needs_extraction(self.entries, path, content_hash)

    def update(self, path: str, content_hash: str, domain: str) -> ManifestEntry:
        entry = update_manifest_entry(self.entries, path, content_hash, domain)
        self.changed = True
        logger.debug("Manifest updated: %s -> %s", path, content_hash[:12])
        return entry
