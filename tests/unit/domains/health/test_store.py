"""Tests for the single-flight health state store."""

from __future__ import annotations

import asyncio

import pytest
from conftest import SAMPLE_DEXA_TEXT, SAMPLE_LAB_TEXT, structured_biomarker_payload

from vitals.core.llm.provider import ProviderError
from vitals.core.llm.providers.mock import MockProvider
from vitals.domains.health.extraction.orchestrator import ExtractionOrchestrator
from vitals.domains.health.extraction.structured import BIOMARKER_TOOL, StructuredExtractor
from vitals.domains.health.ingest.manifest import calculate_folder_hash
from vitals.domains.health.models import ActivityRecord, HealthEventQuery


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _orchestrator(provider: MockProvider) -> ExtractionOrchestrator:
    return ExtractionOrchestrator(StructuredExtractor(provider), timeout=5.0)


@pytest.fixture
def lab_report(data_dir):
    path = data_dir / "Bloodwork" / "labs-2025.pdf"
    path.write_text(SAMPLE_LAB_TEXT)
    return path


@pytest.fixture
def dexa_report(data_dir):
    path = data_dir / "Body Scan" / "dexa.pdf"
    path.write_text(SAMPLE_DEXA_TEXT)
    return path


class FakeOuraParser:
    def __init__(self):
        self.folders = []

    def parse(self, folder):
        self.folders.append(folder)
        return [
            ActivityRecord(date="2025-05-02", hrv=48, rhr=56, sleep_hours=6.8),
            ActivityRecord(date="2025-05-01", hrv=52, rhr=54, sleep_hours=7.4),
        ]


class TestSingleFlight:
    def test_concurrent_readers_share_one_load(self, make_store, mock_provider, lab_report):
        store = make_store()

        async def scenario():
            await asyncio.gather(*(store.init() for _ in range(5)))
            return await asyncio.gather(store.get_biomarkers(), store.get_health_events())

        biomarkers, events = _run(scenario())

        assert store.load_count == 1
        assert mock_provider.call_count == 1
        assert biomarkers.glucose == 90
        assert events

    def test_reader_triggers_load(self, make_store, lab_report):
        store = make_store()
        assert not store.is_loaded()
        _run(store.get_health_summary())
        assert store.is_loaded()

    def test_reload_runs_again(self, make_store):
        store = make_store()

        async def scenario():
            await store.init()
            await store.init()
            await store.reload()

        _run(scenario())
        assert store.load_count == 2

    def test_cancel_persists_nothing(self, make_store, cache_repository, lab_report):
        provider = MockProvider(
            payloads={BIOMARKER_TOOL.name: structured_biomarker_payload()}, delay=30.0
        )
        store = make_store(orchestrator=_orchestrator(provider))

        async def scenario():
            waiter = asyncio.ensure_future(store.init())
            await asyncio.sleep(0.2)
            assert store.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter

        _run(scenario())

        assert not store.is_loaded()
        assert not store.cancel()
        assert cache_repository.read_manifest() == {}
        assert cache_repository.read_payload("bloodwork") is None


class TestEmptyData:
    def test_single_system_event(self, make_store):
        store = make_store()
        events = _run(store.get_health_events())
        assert [e.domain for e in events] == ["system"]
        assert _run(store.get_pheno_age()) is None
        assert _run(store.get_activity_source()) == "unknown"

    def test_missing_data_dir(self, make_store, tmp_path):
        store = make_store(data_dir=tmp_path / "nowhere")
        events = _run(store.get_health_events())
        assert len(events) == 1
        assert "No health data loaded." in _run(store.get_health_summary())


class TestExtractionCache:
    def test_second_store_hits_cache(self, make_store, mock_provider, cache_repository, lab_report):
        first = make_store()
        expected = _run(first.get_biomarkers())
        assert mock_provider.call_count == 1
        assert cache_repository.count_entries() == 1

        second = make_store()
        cached = _run(second.get_biomarkers())

        assert mock_provider.call_count == 1
        assert cached.raw_values() == expected.raw_values()

    def test_changed_file_is_re_extracted(self, make_store, mock_provider, lab_report):
        _run(make_store().init())
        lab_report.write_text(SAMPLE_LAB_TEXT + "\nFerritin 120 ng/mL\n")

        _run(make_store().init())

        assert mock_provider.call_count == 2

    def test_fallback_is_not_cached(self, make_store, cache_repository, lab_report):
        provider = MockProvider(error=ProviderError("unavailable"))
        store = make_store(orchestrator=_orchestrator(provider))

        biomarkers = _run(store.get_biomarkers())

        assert biomarkers.albumin == 4.5
        assert cache_repository.count_entries() == 0
        assert cache_repository.read_payload("bloodwork") is None

    def test_text_reports_skip_primary(self, make_store, mock_provider, data_dir):
        (data_dir / "Bloodwork" / "labs.txt").write_text(SAMPLE_LAB_TEXT)
        biomarkers = _run(make_store().get_biomarkers())
        assert mock_provider.call_count == 0
        assert biomarkers.crp == 0.5

    def test_pdf_without_text_is_skipped(self, make_store, mock_provider, lab_report):
        store = make_store(text_extractor=lambda path: "")
        biomarkers = _run(store.get_biomarkers())
        assert mock_provider.call_count == 0
        assert biomarkers.is_empty()


class TestDerivedState:
    def test_derived_biomarkers_appended(self, make_store, lab_report):
        biomarkers = _run(make_store().get_biomarkers())
        by_id = {m.id: m for m in biomarkers.measurements}

        assert by_id["tg_hdl_ratio"].provenance == "calculated"
        assert by_id["tg_hdl_ratio"].value == 1.33
        assert by_id["glucose"].provenance == "measured"
        ids = [m.id for m in biomarkers.measurements]
        assert len(ids) == len(set(ids))

    def test_pheno_age_from_structured_payload(self, make_store, lab_report):
        store = make_store()
        pheno_age = _run(store.get_pheno_age())

        assert _run(store.get_chronological_age()) == 45
        assert pheno_age is not None
        assert pheno_age.delta == pytest.approx(pheno_age.pheno_age - 45, abs=0.1)
        longevity = _run(store.get_health_events(HealthEventQuery(domains=["longevity"])))
        assert len(longevity) == 1

    def test_body_composition(self, make_store, dexa_report):
        store = make_store()
        body_comp = _run(store.get_body_comp())
        assert body_comp.body_fat_percent == 18.5
        assert _run(store.get_timestamps()).dexa is not None
        assert _run(store.get_timestamps()).bloodwork is None


class TestActivity:
    def test_activity_csv(self, make_store, data_dir):
        (data_dir / "Activity" / "daily.csv").write_text(
            "date,hrv_ms,rhr_bpm,sleep_hours,recovery\n"
            "2025-05-02,55,52,7.1,70\n"
            "2025-05-01,60,50,8.0,85\n"
            "2025-05-02,58,51,7.3,74\n"
        )
        activity = _run(make_store().get_activity())

        assert [r.date for r in activity] == ["2025-05-01", "2025-05-02"]
        assert activity[1].hrv == 58

    def test_tracker_without_parser(self, make_store, data_dir):
        export = data_dir / "Activity" / "Whoop" / "my_whoop_data_2025"
        export.mkdir(parents=True)
        (export / "physiological_cycles.csv").write_text("Cycle start time\n")

        store = make_store()

        assert _run(store.get_activity_source()) == "whoop"
        assert _run(store.get_activity()) == []

    def test_registered_parser(self, make_store, data_dir):
        oura = data_dir / "Activity" / "Oura"
        oura.mkdir()
        (oura / "daily_sleep.json").write_text("[]")
        parser = FakeOuraParser()

        store = make_store(activity_parsers={"oura": parser})
        activity = _run(store.get_activity())

        assert parser.folders == [str(oura)]
        assert [r.date for r in activity] == ["2025-05-01", "2025-05-02"]
        events = _run(store.get_health_events(HealthEventQuery(domains=["activity"])))
        assert {e.source for e in events} == {"oura"}

    def test_tracker_folder_hash_recorded(self, make_store, cache_repository, data_dir):
        oura = data_dir / "Activity" / "Oura"
        oura.mkdir()
        (oura / "daily_sleep.json").write_text("[]")

        _run(make_store(activity_parsers={"oura": FakeOuraParser()}).init())

        entry = cache_repository.read_manifest()["Activity/Oura"]
        assert entry.hash == calculate_folder_hash(oura)
        assert entry.domain == "activity_folder"

    def test_csv_and_tracker_days_kept_apart(self, make_store, data_dir):
        (data_dir / "Activity" / "daily.csv").write_text(
            "date,hrv_ms,rhr_bpm,sleep_hours\n2025-05-02,40,60,6.0\n"
        )
        oura = data_dir / "Activity" / "Oura"
        oura.mkdir()
        (oura / "daily_sleep.json").write_text("[]")

        store = make_store(activity_parsers={"oura": FakeOuraParser()})
        activity = _run(store.get_activity())

        may_2 = [(r.source, r.hrv) for r in activity if r.date == "2025-05-02"]
        assert sorted(may_2) == [("csv", 40), ("oura", 48)]
