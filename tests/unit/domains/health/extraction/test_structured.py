"""Tests for structured (LLM tool-call) extraction."""

from __future__ import annotations

import asyncio

import pytest
from conftest import structured_biomarker_payload, structured_body_comp_payload

from vitals.core.llm.providers.mock import MockProvider
from vitals.domains.health.extraction.structured import (
    BIOMARKER_TOOL,
    BODY_COMP_TOOL,
    StructuredExtractionError,
    StructuredExtractor,
    as_number,
    parse_biomarker_payload,
    parse_body_comp_payload,
)


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestAsNumber:
    @pytest.mark.parametrize(
        "raw, expected",
        [(4.5, 4.5), (90, 90.0), ("12.5", 12.5), (" 35 % ", 35.0), ("0", 0.0)],
    )
    def test_numeric(self, raw, expected):
        assert as_number(raw) == expected

    @pytest.mark.parametrize("raw", [None, True, "high", "", [], {}, float("nan"), "inf"])
    def test_not_numeric(self, raw):
        assert as_number(raw) is None


class TestBiomarkerPayload:
    def test_maps_names_to_canonical_ids(self):
        snapshot = parse_biomarker_payload(structured_biomarker_payload())
        ids = [m.id for m in snapshot.measurements]
        assert ids[:5] == ["albumin", "creatinine", "glucose", "crp", "lymphocyte_percent"]
        assert snapshot.crp == 0.5
        assert snapshot.lymphocyte_percent == 35
        assert snapshot.patient_age == 45

    def test_keeps_unknown_markers(self):
        payload = {
            "biomarkers": [
                {"name": "Omega-3 Index", "value": 8.1, "unit": "%", "category": "Fatty Acids"}
            ]
        }
        (marker,) = parse_biomarker_payload(payload).measurements
        assert marker.id == "omega_3_index"
        assert marker.name == "Omega-3 Index"
        assert marker.category == "Fatty Acids"

    def test_lab_flag_only_from_known_statuses(self):
        payload = {
            "biomarkers": [
                {"name": "LDL", "value": 160, "unit": "mg/dL", "status": "high"},
                {"name": "HDL", "value": 55, "unit": "mg/dL", "status": "borderline"},
            ]
        }
        ldl, hdl = parse_biomarker_payload(payload).measurements
        assert ldl.lab_flag == "high"
        assert hdl.lab_flag is None

    def test_malformed_entries_dropped(self):
        payload = {
            "biomarkers": [
                {"name": "Glucose", "value": "high"},
                {"name": "", "value": 5},
                "Albumin 4.5",
                {"name": "Albumin", "value": "4.5", "unit": "g/dL"},
            ]
        }
        snapshot = parse_biomarker_payload(payload)
        assert [m.id for m in snapshot.measurements] == ["albumin"]
        assert snapshot.albumin == 4.5
        assert snapshot.glucose is None

    def test_duplicates_keep_first(self):
        payload = {
            "biomarkers": [
                {"name": "CRP", "value": 0.4, "unit": "mg/L"},
                {"name": "hs-CRP", "value": 0.9, "unit": "mg/L"},
            ]
        }
        snapshot = parse_biomarker_payload(payload)
        assert len(snapshot.measurements) == 1
        assert snapshot.crp == 0.4

    def test_undeclared_top_level_fields_ignored(self):
        payload = structured_biomarker_payload(count=1)
        payload["ldl"] = 999
        snapshot = parse_biomarker_payload(payload)
        assert snapshot.ldl is None

    @pytest.mark.parametrize("payload", [None, [], "text", {}, {"biomarkers": "none"}])
    def test_invalid_payload_raises(self, payload):
        with pytest.raises(StructuredExtractionError):
            parse_biomarker_payload(payload)


class TestBodyCompPayload:
    def test_declared_fields(self):
        snapshot = parse_body_comp_payload(structured_body_comp_payload())
        assert snapshot.body_fat_percent == 18.5
        assert snapshot.lean_mass == 140.2
        assert snapshot.vat_mass == 0.8
        assert snapshot.visceral_fat == 0.8

    def test_visceral_fat_mirrored_to_vat(self):
        snapshot = parse_body_comp_payload({"visceral_fat": 1.2})
        assert snapshot.vat_mass == 1.2

    def test_rejects_non_numeric_and_unknown(self):
        snapshot = parse_body_comp_payload(
            {"body_fat_percent": "about twenty", "favorite_color": "blue", "sex": "other"}
        )
        assert snapshot.is_empty()

    def test_not_an_object_raises(self):
        with pytest.raises(StructuredExtractionError):
            parse_body_comp_payload(["body_fat_percent", 20])


class TestStructuredExtractor:
    def test_biomarkers_use_forced_tool(self):
        provider = MockProvider(payloads={BIOMARKER_TOOL.name: structured_biomarker_payload()})
        extractor = StructuredExtractor(provider)

        snapshot = _run(extractor.extract_biomarkers("Albumin 4.5"))

        assert provider.calls == [BIOMARKER_TOOL.name]
        assert "Albumin 4.5" in provider.last_user_message
        assert len(snapshot.measurements) == 12

    def test_body_composition(self):
        provider = MockProvider(payloads={BODY_COMP_TOOL.name: structured_body_comp_payload()})
        snapshot = _run(StructuredExtractor(provider).extract_body_composition("DEXA"))
        assert provider.calls == [BODY_COMP_TOOL.name]
        assert snapshot.fat_mass == 32.1

    def test_schema_lists_body_comp_fields(self):
        properties = BODY_COMP_TOOL.input_schema["properties"]
        assert "body_fat_percent" in properties
        assert "vat_mass" in properties
