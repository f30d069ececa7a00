"""Discover health documents under the data directory and tag their domain.

Two layouts are understood:

Organized::

    data/
    ├── Bloodwork/          lab reports (bloodwork)
    ├── Body Scan/          DEXA reports (dexa)
    └── Activity/
        ├── Whoop/
        ├── Apple Health/
        ├── Oura/
        └── Fitbit/

Legacy flat: every file sits directly in ``data/`` and its domain is guessed
from keywords in the filename.

All filesystem access goes through :mod:`vitals.core.fs`, so a missing or
unreadable path shrinks the result instead of raising.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from vitals.core import fs
from vitals.domains.health.models import DocumentDomain, RawDocument, TrackerType, to_iso

logger = logging.getLogger(__name__)

BLOODWORK_DIR = "Bloodwork"
BODY_SCAN_DIR = "Body Scan"
ACTIVITY_DIR = "Activity"

SUPPORTED_EXTENSIONS = frozenset({".txt", ".csv", ".xlsx", ".pdf", ".xml", ".json", ".zip"})

_BLOODWORK_KEYWORDS = ("blood", "lab", "metabolic")
_DEXA_KEYWORDS = ("dexa", "body", "composition")
_ACTIVITY_KEYWORDS = ("whoop", "activity", "hrv", "sleep")
_ACTIVITY_FOLDER_KEYWORDS = ("whoop", "activity", "fitness")


# ---------------------------------------------------------------------------
# Tracker signatures
# ---------------------------------------------------------------------------

def _names(path: str | Path) -> list[str]:
    return [entry.name.lower() for entry in fs.list_dir(path)]


def is_whoop_folder(path: str | Path) -> bool:
    """A Whoop export holds physiological_cycles.csv and/or sleeps.csv."""
    csv_names = [n for n in _names(path) if n.endswith(".csv")]
    return any("physiological" in n or "sleeps" in n for n in csv_names)


def is_apple_health_folder(path: str | Path) -> bool:
    return any(n in ("export.xml", "export.zip") for n in _names(path))


def is_oura_folder(path: str | Path) -> bool:
    return any(
        "oura" in n or n.startswith(("daily_", "sleep_", "readiness_"))
        for n in _names(path)
    )


def is_fitbit_folder(path: str | Path) -> bool:
    return any(n.startswith(("sleep-", "heart_rate-", "steps-")) for n in _names(path))


# Probe order matters: the first tracker with data wins.
TRACKER_FOLDERS: tuple[tuple[str, TrackerType, Callable[[str | Path], bool], bool], ...] = (
    # (folder name, tracker, signature, signature may match the folder itself)
    ("Whoop", "whoop", is_whoop_folder, False),
    ("Apple Health", "apple", is_apple_health_folder, True),
    ("Oura", "oura", is_oura_folder, True),
    ("Fitbit", "fitbit", is_fitbit_folder, True),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _iso_mtime(st: os.stat_result | None) -> str | None:
    if st is None:
        return None
    return to_iso(datetime.fromtimestamp(st.st_mtime, tz=timezone.utc))


def _entry_is_dir(entry: os.DirEntry) -> bool:
    return fs.fs_call("is_dir", entry.path, entry.is_dir).unwrap_or(False)


def _visible_subdirs(path: str | Path) -> list[os.DirEntry]:
    return [
        entry
        for entry in fs.list_dir(path)
        if not entry.name.startswith(".") and _entry_is_dir(entry)
    ]


def _file_document(
    entry: os.DirEntry,
    domain: DocumentDomain,
    tracker_type: TrackerType | None = None,
) -> RawDocument | None:
    extension = os.path.splitext(entry.name)[1].lower()
    if extension not in SUPPORTED_EXTENSIONS:
        return None
    st = fs.stat(entry.path)
    return RawDocument(
        name=entry.name,
        path=entry.path,
        domain=domain,
        extension=extension,
        size=st.st_size if st is not None else None,
        last_modified=_iso_mtime(st),
        is_folder=False,
        tracker_type=tracker_type,
    )


def _folder_document(path: str, tracker_type: TrackerType) -> RawDocument:
    return RawDocument(
        name=os.path.basename(path),
        path=path,
        domain="activity_folder",
        last_modified=_iso_mtime(fs.stat(path)),
        is_folder=True,
        tracker_type=tracker_type,
    )


def _scan_files(directory: str | Path, domain: DocumentDomain) -> list[RawDocument]:
    """Supported, non-hidden files directly inside ``directory``."""
    documents: list[RawDocument] = []
    for entry in fs.list_dir(directory):
        if entry.name.startswith(".") or _entry_is_dir(entry):
            continue
        document = _file_document(entry, domain)
        if document is not None:
            documents.append(document)
    return documents


# ---------------------------------------------------------------------------
# Organized layout
# ---------------------------------------------------------------------------

def detect_active_tracker(activity_dir: str | Path) -> RawDocument | None:
    """Return the export folder of the first tracker with data, if any."""
    for folder_name, tracker_type, signature, matches_self in TRACKER_FOLDERS:
        tracker_path = os.path.join(str(activity_dir), folder_name)
        if not fs.is_dir(tracker_path):
            continue

        if matches_self and signature(tracker_path):
            return _folder_document(tracker_path, tracker_type)

        for sub in _visible_subdirs(tracker_path):
            if signature(sub.path):
                return _folder_document(sub.path, tracker_type)

    return None


def _scan_organized(root: Path) -> list[RawDocument]:
    documents = _scan_files(root / BLOODWORK_DIR, "bloodwork")
    documents.extend(_scan_files(root / BODY_SCAN_DIR, "dexa"))

    activity_dir = root / ACTIVITY_DIR
    # Loose CSV exports sitting directly in Activity/
    documents.extend(
        doc for doc in _scan_files(activity_dir, "activity") if doc.extension == ".csv"
    )
    tracker = detect_active_tracker(activity_dir)
    if tracker is not None:
        documents.append(tracker)
    return documents


# ---------------------------------------------------------------------------
# Legacy flat layout
# ---------------------------------------------------------------------------

def legacy_file_domain(filename: str) -> DocumentDomain:
    """Guess a document's domain from keywords in its filename."""
    lower = filename.lower()
    if any(k in lower for k in _BLOODWORK_KEYWORDS):
        return "bloodwork"
    if any(k in lower for k in _DEXA_KEYWORDS):
        return "dexa"
    if any(k in lower for k in _ACTIVITY_KEYWORDS):
        return "activity"
    return "unknown"


def _is_legacy_activity_folder(path: str, name: str) -> bool:
    if is_whoop_folder(path):
        return True
    lower = name.lower()
    return any(k in lower for k in _ACTIVITY_FOLDER_KEYWORDS)


def _scan_legacy(root: Path) -> list[RawDocument]:
    documents: list[RawDocument] = []
    for entry in fs.list_dir(root):
        if entry.name.startswith("."):
            continue
        if _entry_is_dir(entry):
            if _is_legacy_activity_folder(entry.path, entry.name):
                documents.append(_folder_document(entry.path, "whoop"))
            continue
        document = _file_document(entry, legacy_file_domain(entry.name))
        if document is not None:
            documents.append(document)
    return documents


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def has_organized_layout(root: str | Path) -> bool:
    base = Path(root)
    return any(fs.exists(base / name) for name in (BLOODWORK_DIR, BODY_SCAN_DIR, ACTIVITY_DIR))


def classify_data_files(root: str | Path) -> list[RawDocument]:
    """Discover and tag every supported document under ``root``.

    Args:
        root: The data directory.

    Returns:
        Documents in discovery order. Empty when ``root`` is missing or
        unreadable.
    """
    base = Path(root)
    if not fs.is_dir(base):
        logger.info("Data directory not found: %s", base)
        return []

    if has_organized_layout(base):
        documents = _scan_organized(base)
    else:
        documents = _scan_legacy(base)

    logger.info(
        "Detected data sources: %s",
        ", ".join(
            f"{d.name} ({d.domain}{', ' + d.tracker_type if d.tracker_type else ''})"
            for d in documents
        )
        or "none",
    )
    return documents
