"""Reference ranges and biomarker status classification."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from vitals.domains.health.models import BiomarkerStatus

logger = logging.getLogger(__name__)

REFERENCE_RANGES_PATH = Path(__file__).parent / "reference_ranges.yaml"

# Borderline band outside the normal interval, as a fraction of its width
BORDERLINE_MARGIN = 0.10


@dataclass(frozen=True)
class Interval:
    """Closed interval; ``None`` means open-ended on that side."""

    low: float | None = None
    high: float | None = None

    def contains(self, value: float) -> bool:
        if self.low is not None and value < self.low:
            return False
        if self.high is not None and value > self.high:
            return False
        return True

    def margin(self) -> float:
        if self.low is not None and self.high is not None:
            return (self.high - self.low) * BORDERLINE_MARGIN
        bound = self.low if self.low is not None else self.high
        return abs(bound or 0.0) * BORDERLINE_MARGIN

    def widened(self, amount: float) -> Interval:
        return Interval(
            low=self.low - amount if self.low is not None else None,
            high=self.high + amount if self.high is not None else None,
        )


@dataclass(frozen=True)
class ReferenceRange:
    biomarker_id: str
    unit: str
    normal: Interval
    optimal: Interval | None = None


def _interval(raw: Any) -> Interval | None:
    if raw is None:
        return None
    low, high = raw
    return Interval(
        low=float(low) if low is not None else None,
        high=float(high) if high is not None else None,
    )


def load_reference_ranges(path: str | Path = REFERENCE_RANGES_PATH) -> dict[str, ReferenceRange]:
    """Parse the YAML reference table into ReferenceRange objects."""
    with open(path) as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}

    ranges: dict[str, ReferenceRange] = {}
    for biomarker_id, spec in data.items():
        normal = _interval(spec.get("normal")) or _interval(spec.get("optimal"))
        if normal is None:
            logger.warning("Reference range for %s has no interval; skipping", biomarker_id)
            continue
        ranges[biomarker_id] = ReferenceRange(
            biomarker_id=biomarker_id,
            unit=spec.get("unit", ""),
            normal=normal,
            optimal=_interval(spec.get("optimal")),
        )
    return ranges


@lru_cache(maxsize=1)
def default_reference_ranges() -> dict[str, ReferenceRange]:
    return load_reference_ranges()


def get_biomarker_status(
    biomarker_id: str,
    value: float,
    ranges: dict[str, ReferenceRange] | None = None,
) -> BiomarkerStatus:
    """Classify a value against its reference range.

    Inside the optimal interval is ``optimal``; inside the normal interval
    ``normal``; within 10% of the normal interval's width outside it
    ``borderline``; anything further ``out_of_range``. Biomarkers without a
    reference range are ``normal``.
    """
    reference = (ranges if ranges is not None else default_reference_ranges()).get(biomarker_id)
    if reference is None:
        return "normal"
    if reference.optimal is not None and reference.optimal.contains(value):
        return "optimal"
    if reference.normal.contains(value):
        return "normal"
    if reference.normal.widened(reference.normal.margin()).contains(value):
        return "borderline"
    return "out_of_range"
