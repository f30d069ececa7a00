"""Readers that turn source documents into text or activity records.

PDF text comes from pypdf; plain text and CSV come straight off disk. Folder
exports from wearable vendors are handled by :class:`ActivityParser`
implementations registered per tracker type.
"""

from __future__ import annotations

import csv
import io
import logging
import math
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from vitals.core import fs
from vitals.domains.health.models import ActivityRecord

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Text extraction
# ---------------------------------------------------------------------------

@runtime_checkable
class TextExtractor(Protocol):
    """Callable returning the text content of a document (empty on failure)."""

    def __call__(self, path: str) -> str: ...


def extract_pdf_text(path: str) -> str:
    """Concatenate the text of every page of a PDF.

    Returns an empty string when the file is missing, encrypted, or not a
    PDF at all; the caller skips the document in that case.
    """
    from pypdf import PdfReader
    from pypdf.errors import PdfReadError

    try:
        reader = PdfReader(path)
        pages = [page.extract_text() or "" for page in reader.pages]
    except (OSError, PdfReadError, ValueError) as exc:
        logger.warning("Could not read PDF %s: %s", Path(path).name, exc)
        return ""
    return "\n".join(pages).strip()


def extract_text(path: str) -> str:
    """Default :class:`TextExtractor`: pypdf for ``.pdf``, UTF-8 otherwise."""
    if path.lower().endswith(".pdf"):
        return extract_pdf_text(path)
    return fs.read_text(path)


# ---------------------------------------------------------------------------
# Activity CSV
# ---------------------------------------------------------------------------

# CSV column -> (ActivityRecord field, converter)
_ACTIVITY_COLUMNS: dict[str, tuple[str, type]] = {
    "hrv_ms": ("hrv", float),
    "rhr_bpm": ("rhr", float),
    "sleep_hours": ("sleep_hours", float),
    "sleep_score": ("sleep_score", float),
    "sleep_consistency": ("sleep_consistency", float),
    "recovery": ("recovery", float),
    "strain": ("strain", float),
    "steps": ("steps", int),
}


def _to_number(raw: Any, convert: type) -> float | int | None:
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return int(value) if convert is int else value


def activity_record_from_row(row: dict[str, Any]) -> ActivityRecord | None:
    """Map one CSV row (or vendor-parser dict) to an ActivityRecord.

    Rows without a date are dropped. Missing HRV, RHR and sleep hours
    default to 0, the marker for "no signal".
    """
    date = str(row.get("date") or "").strip()
    if not date:
        return None
    record = ActivityRecord(date=date[:10])
    for column, (attr, convert) in _ACTIVITY_COLUMNS.items():
        value = _to_number(row.get(column), convert)
        if value is not None:
            setattr(record, attr, value)
    return record


def read_activity_csv(path: str, source: str = "csv") -> list[ActivityRecord]:
    """Parse an activity CSV with a header row; empty on any read error.

    Every record is tagged with ``source``.
    """
    content = fs.read_text(path)
    if not content:
        return []

    records: list[ActivityRecord] = []
    skipped = 0
    for row in csv.DictReader(io.StringIO(content)):
        record = activity_record_from_row({(k or "").strip(): v for k, v in row.items()})
        if record is None:
            skipped += 1
            continue
        record.source = source
        records.append(record)

    if skipped:
        logger.warning("Skipped %d undated rows in %s", skipped, Path(path).name)
    return records


def collapse_daily(records: list[ActivityRecord]) -> list[ActivityRecord]:
    """One record per calendar day per source (last one wins), sorted by date."""
    by_day: dict[tuple[str, str], ActivityRecord] = {}
    for record in records:
        by_day[(record.date, record.source or "")] = record
    return [by_day[key] for key in sorted(by_day)]


# ---------------------------------------------------------------------------
# Tracker folder parsers
# ---------------------------------------------------------------------------

@runtime_checkable
class ActivityParser(Protocol):
    """Converts a vendor export folder into daily activity records."""

    def parse(self, folder: str) -> list[ActivityRecord]: ...
