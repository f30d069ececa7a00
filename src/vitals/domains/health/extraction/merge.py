"""Non-destructive snapshot merging.

``merge(a, b)``: every value B defines wins, every value only A defines is
kept. An absent value never erases a known one, so merging with an empty
snapshot or with itself returns an equal snapshot.
"""

from __future__ import annotations

from dataclasses import fields, replace

from vitals.domains.health.models import Biomarker, BiomarkerSnapshot, BodyCompositionSnapshot


def dedupe_measurements(measurements: list[Biomarker]) -> list[Biomarker]:
    """Keep the first measurement per canonical id, preserving order."""
    seen: set[str] = set()
    unique: list[Biomarker] = []
    for biomarker in measurements:
        if biomarker.id in seen:
            continue
        seen.add(biomarker.id)
        unique.append(biomarker)
    return unique


def merge_measurements(a: list[Biomarker], b: list[Biomarker]) -> list[Biomarker]:
    """Union keyed by (id, unit). B replaces A in place; new B entries append."""
    merged = list(a)
    index = {(m.id, m.unit): i for i, m in enumerate(merged)}
    for biomarker in b:
        key = (biomarker.id, biomarker.unit)
        if key in index:
            merged[index[key]] = biomarker
        else:
            index[key] = len(merged)
            merged.append(biomarker)
    return merged


def merge_biomarkers(a: BiomarkerSnapshot, b: BiomarkerSnapshot) -> BiomarkerSnapshot:
    """Overlay B's defined biomarker values onto A."""
    merged = replace(a, measurements=merge_measurements(a.measurements, b.measurements))
    for name, value in b.scalar_items():
        if value is not None:
            setattr(merged, name, value)
    return merged


def merge_body_comp(
    a: BodyCompositionSnapshot, b: BodyCompositionSnapshot
) -> BodyCompositionSnapshot:
    """Overlay B's defined body composition values onto A."""
    merged = replace(a)
    for f in fields(b):
        value = getattr(b, f.name)
        if value is not None:
            setattr(merged, f.name, value)
    return merged
