"""Tests for the primary/fallback extraction orchestrator."""

from __future__ import annotations

import asyncio

from conftest import (
    SAMPLE_DEXA_TEXT,
    SAMPLE_LAB_TEXT,
    structured_biomarker_payload,
)

from vitals.core.llm.provider import ProviderError
from vitals.core.llm.providers.mock import MockProvider
from vitals.domains.health.extraction.orchestrator import ExtractionOrchestrator
from vitals.domains.health.extraction.structured import (
    BIOMARKER_TOOL,
    BODY_COMP_TOOL,
    StructuredExtractor,
)


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _orchestrator(provider: MockProvider, timeout: float = 5.0) -> ExtractionOrchestrator:
    return ExtractionOrchestrator(StructuredExtractor(provider), timeout=timeout)


class TestPrimary:
    def test_sufficient_primary_is_used(self, orchestrator, mock_provider):
        result = _run(orchestrator.extract_document(SAMPLE_LAB_TEXT, "bloodwork"))
        assert result.outcome == "primary"
        assert result.cacheable
        assert mock_provider.call_count == 1
        assert len(result.data.measurements) == 12

    def test_body_comp_primary(self, orchestrator):
        result = _run(orchestrator.extract_document(SAMPLE_DEXA_TEXT, "dexa"))
        assert result.outcome == "primary"
        assert result.data.total_mass == 175.0


class TestFallback:
    def test_provider_error_falls_back(self):
        provider = MockProvider(error=ProviderError("rate limited"))
        result = _run(_orchestrator(provider).extract_document(SAMPLE_LAB_TEXT, "bloodwork"))

        assert result.outcome == "fallback"
        assert not result.cacheable
        assert "ProviderError" in result.reason
        assert result.data.albumin == 4.5
        assert result.data.patient_age == 45

    def test_timeout_falls_back(self):
        provider = MockProvider(
            payloads={BIOMARKER_TOOL.name: structured_biomarker_payload()}, delay=1.0
        )
        result = _run(
            _orchestrator(provider, timeout=0.05).extract_document(SAMPLE_LAB_TEXT, "bloodwork")
        )
        assert result.outcome == "fallback"
        assert "timed out" in result.reason
        assert result.data.glucose == 90

    def test_malformed_payload_falls_back(self):
        provider = MockProvider(payloads={BIOMARKER_TOOL.name: {"biomarkers": "nope"}})
        result = _run(_orchestrator(provider).extract_document(SAMPLE_LAB_TEXT, "bloodwork"))
        assert result.outcome == "fallback"
        assert result.data.crp == 0.5

    def test_insufficient_primary_merged_over_fallback(self):
        payload = {
            "patient_age": 46,
            "biomarkers": [
                {"name": "Glucose", "value": 91, "unit": "mg/dL"},
                {"name": "Ferritin", "value": 120, "unit": "ng/mL"},
            ],
        }
        provider = MockProvider(payloads={BIOMARKER_TOOL.name: payload})
        result = _run(_orchestrator(provider).extract_document(SAMPLE_LAB_TEXT, "bloodwork"))

        assert result.outcome == "fallback"
        assert result.reason == "primary result below sufficiency threshold"
        data = result.data
        # primary values win where both define a field
        assert data.glucose == 91
        assert data.patient_age == 46
        # fallback-only values survive
        assert data.albumin == 4.5
        ids = [m.id for m in data.measurements]
        assert "ferritin" in ids
        assert ids.count("glucose") == 1

    def test_empty_body_comp_primary_is_insufficient(self):
        provider = MockProvider(payloads={BODY_COMP_TOOL.name: {"height": 70}})
        result = _run(_orchestrator(provider).extract_document(SAMPLE_DEXA_TEXT, "dexa"))
        assert result.outcome == "fallback"
        assert result.data.body_fat_percent == 18.5
        assert result.data.height == 70

    def test_primary_disabled_for_document(self, orchestrator, mock_provider):
        result = _run(
            orchestrator.extract_document(SAMPLE_LAB_TEXT, "bloodwork", use_primary=False)
        )
        assert result.outcome == "fallback"
        assert mock_provider.call_count == 0

    def test_no_structured_extractor(self):
        result = _run(ExtractionOrchestrator().extract_document(SAMPLE_LAB_TEXT, "bloodwork"))
        assert result.outcome == "fallback"
        assert result.reason == "no structured extractor configured"


class TestFailed:
    def test_empty_text(self, orchestrator, mock_provider):
        result = _run(orchestrator.extract_document("   \n", "bloodwork"))
        assert result.outcome == "failed"
        assert result.data.is_empty()
        assert mock_provider.call_count == 0

    def test_nothing_extracted(self):
        provider = MockProvider(error=ProviderError("down"))
        result = _run(_orchestrator(provider).extract_document("Page 1 of 1", "dexa"))
        assert result.outcome == "failed"
        assert not result.cacheable
