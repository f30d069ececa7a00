"""Tests for non-destructive snapshot merging."""

from __future__ import annotations

from vitals.domains.health.extraction.merge import (
    dedupe_measurements,
    merge_biomarkers,
    merge_body_comp,
    merge_measurements,
)
from vitals.domains.health.models import Biomarker, BiomarkerSnapshot, BodyCompositionSnapshot


def _marker(biomarker_id: str, value: float, unit: str = "mg/dL") -> Biomarker:
    return Biomarker(id=biomarker_id, name=biomarker_id.title(), value=value, unit=unit)


def _snapshot(**values) -> BiomarkerSnapshot:
    snapshot = BiomarkerSnapshot(**values)
    snapshot.measurements = [_marker(k, v) for k, v in values.items() if k != "patient_age"]
    return snapshot


class TestBiomarkerMerge:
    def test_b_wins_where_defined(self):
        merged = merge_biomarkers(_snapshot(glucose=90, ldl=120), _snapshot(glucose=95))
        assert merged.glucose == 95
        assert merged.ldl == 120

    def test_absent_never_erases(self):
        a = _snapshot(glucose=90, hdl=60)
        merged = merge_biomarkers(a, BiomarkerSnapshot())
        assert merged == a

    def test_idempotent(self):
        a = _snapshot(glucose=90, hdl=60, patient_age=40)
        assert merge_biomarkers(a, a) == a

    def test_inputs_not_mutated(self):
        a = _snapshot(glucose=90)
        b = _snapshot(glucose=95, hdl=60)
        merge_biomarkers(a, b)
        assert a.glucose == 90
        assert a.hdl is None
        assert len(a.measurements) == 1

    def test_measurements_union_in_order(self):
        merged = merge_biomarkers(_snapshot(glucose=90, ldl=120), _snapshot(hdl=60, glucose=95))
        assert [(m.id, m.value) for m in merged.measurements] == [
            ("glucose", 95),
            ("ldl", 120),
            ("hdl", 60),
        ]


class TestMeasurements:
    def test_different_units_are_distinct(self):
        merged = merge_measurements(
            [_marker("lymphocytes", 1800, "cells/uL")],
            [_marker("lymphocytes", 1.8, "K/uL")],
        )
        assert len(merged) == 2

    def test_dedupe_keeps_first(self):
        unique = dedupe_measurements([_marker("crp", 0.4), _marker("ldl", 100), _marker("crp", 0.9)])
        assert [(m.id, m.value) for m in unique] == [("crp", 0.4), ("ldl", 100)]


class TestBodyCompMerge:
    def test_overlay(self):
        a = BodyCompositionSnapshot(body_fat_percent=22.0, lean_mass=130.0, sex="male")
        b = BodyCompositionSnapshot(body_fat_percent=21.0, vat_mass=0.9)
        merged = merge_body_comp(a, b)
        assert merged.body_fat_percent == 21.0
        assert merged.lean_mass == 130.0
        assert merged.vat_mass == 0.9
        assert merged.sex == "male"

    def test_empty_and_self(self):
        a = BodyCompositionSnapshot(body_fat_percent=22.0, scan_date="2025-03-01")
        assert merge_body_comp(a, BodyCompositionSnapshot()) == a
        assert merge_body_comp(a, a) == a
