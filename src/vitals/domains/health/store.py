"""Health state store: owns the load cycle and serves the merged state.

One ``HealthStateStore`` is constructed by the host and passed by handle.
The first reader triggers the load; concurrent readers await the same
in-flight task, so the pipeline runs once per process unless
:meth:`HealthStateStore.reload` is called.

Load cycle::

    classify -> per document: hash -> manifest check -> cache read
             -> extract (primary, fallback) -> merge
    -> activity -> derived biomarkers -> PhenoAge -> events
    -> one manifest/payload commit when anything changed
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from vitals.core import fs
from vitals.core.storage.models import CachedPayload
from vitals.core.storage.repository import ExtractionCacheRepository, RepositoryError
from vitals.domains.health.calculations.derived import calculate_derived_biomarkers
from vitals.domains.health.calculations.phenoage import calculate_pheno_age
from vitals.domains.health.events.builder import build_health_events, filter_events
from vitals.domains.health.extraction.merge import (
    dedupe_measurements,
    merge_biomarkers,
    merge_body_comp,
)
from vitals.domains.health.extraction.orchestrator import ExtractionOrchestrator, Snapshot
from vitals.domains.health.ingest.classifier import classify_data_files
from vitals.domains.health.ingest.manifest import (
    CacheManifest,
    calculate_file_hash,
    calculate_folder_hash,
    manifest_key,
)
from vitals.domains.health.ingest.readers import (
    ActivityParser,
    TextExtractor,
    collapse_daily,
    extract_text,
    read_activity_csv,
)
from vitals.domains.health.models import (
    ActivityRecord,
    BiomarkerSnapshot,
    BodyCompositionSnapshot,
    DataSourceTimestamps,
    DerivedAgeResult,
    HealthEvent,
    HealthEventQuery,
    HealthState,
    RawDocument,
    TrackerType,
    utc_now_iso,
)
from vitals.domains.health.summary import format_health_summary

logger = logging.getLogger(__name__)


class _LoadCycle:
    """Mutable working set of one load: state, manifest and pending payloads."""

    def __init__(self, manifest: CacheManifest) -> None:
        self.state = HealthState()
        self.manifest = manifest
        self.payloads: dict[str, CachedPayload] = {}
        self.activity: list[ActivityRecord] = []

    def absorb(self, domain: str, data: Snapshot) -> None:
        if domain == "bloodwork" and isinstance(data, BiomarkerSnapshot):
            self.state.biomarkers = merge_biomarkers(self.state.biomarkers, data)
        elif domain == "dexa" and isinstance(data, BodyCompositionSnapshot):
            self.state.body_comp = merge_body_comp(self.state.body_comp, data)

    def touch(self, domain: str, last_modified: str | None) -> None:
        """Track the newest document timestamp per domain."""
        if last_modified is None:
            return
        current = getattr(self.state.timestamps, domain)
        if current is None or last_modified > current:
            setattr(self.state.timestamps, domain, last_modified)


class HealthStateStore:
    """Single-flight loader and async read surface for the health state.

    Usage::

        store = HealthStateStore(data_dir, repository, orchestrator)
        await store.init()
        events = await store.get_health_events(HealthEventQuery(limit=20))
    """

    def __init__(
        self,
        data_dir: str | Path,
        repository: ExtractionCacheRepository,
        orchestrator: ExtractionOrchestrator,
        text_extractor: TextExtractor = extract_text,
        activity_parsers: dict[str, ActivityParser] | None = None,
    ) -> None:
        self.data_dir = Path(data_dir).expanduser()
        self.repository = repository
        self.orchestrator = orchestrator
        self.text_extractor = text_extractor
        self.activity_parsers: dict[str, ActivityParser] = dict(activity_parsers or {})
        self._state: HealthState | None = None
        self._task: asyncio.Task[HealthState] | None = None
        self.load_count = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def is_loaded(self) -> bool:
        return self._state is not None

    async def init(self) -> None:
        """Load once. Concurrent callers share the in-flight load task."""
        if self._state is not None:
            return
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._load())
        task = self._task
        try:
            # A cancelled waiter must not cancel the shared load
            self._state = await asyncio.shield(task)
        finally:
            if task.done() and self._task is task:
                self._task = None

    async def reload(self) -> None:
        """Discard the current state and run a fresh load cycle."""
        self.cancel()
        self._state = None
        await self.init()

    def cancel(self) -> bool:
        """Cancel an in-flight load. Returns True when one was running.

        Nothing is persisted for a cancelled load: the manifest and payloads
        are committed only after every document has been processed.
        """
        task = self._task
        if task is None or task.done():
            return False
        task.cancel()
        self._task = None
        logger.info("Health data load cancelled")
        return True

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    async def _loaded_state(self) -> HealthState:
        await self.init()
        assert self._state is not None
        return self._state

    async def get_biomarkers(self) -> BiomarkerSnapshot:
        return (await self._loaded_state()).biomarkers

    async def get_body_comp(self) -> BodyCompositionSnapshot:
        return (await self._loaded_state()).body_comp

    async def get_activity(self) -> list[ActivityRecord]:
        return (await self._loaded_state()).activity

    async def get_activity_source(self) -> TrackerType:
        return (await self._loaded_state()).activity_source

    async def get_pheno_age(self) -> DerivedAgeResult | None:
        return (await self._loaded_state()).pheno_age

    async def get_chronological_age(self) -> float | None:
        return (await self._loaded_state()).chronological_age

    async def get_timestamps(self) -> DataSourceTimestamps:
        return (await self._loaded_state()).timestamps

    async def get_health_events(self, query: HealthEventQuery | None = None) -> list[HealthEvent]:
        return filter_events((await self._loaded_state()).events, query)

    async def get_health_summary(self) -> str:
        return format_health_summary(await self._loaded_state())

    # ------------------------------------------------------------------
    # Load cycle
    # ------------------------------------------------------------------

    async def _load(self) -> HealthState:
        self.load_count += 1
        logger.info("Loading health data from %s", self.data_dir)

        documents = await asyncio.to_thread(classify_data_files, self.data_dir)
        cycle = _LoadCycle(CacheManifest(self.repository.read_manifest()))

        for document in documents:
            try:
                await self._ingest(document, cycle)
            except Exception:
                logger.exception("Skipping %s after unexpected error", document.name)

        self._finalize(cycle)

        if cycle.manifest.changed:
            try:
                self.repository.commit_cycle(cycle.manifest.entries, list(cycle.payloads.values()))
            except RepositoryError as exc:
                logger.warning("Extraction cache not persisted: %s", exc)

        state = cycle.state
        logger.info(
            "Health data loaded: %d biomarkers, %d body comp fields, %d activity days, %d events",
            len(state.biomarkers.measurements),
            state.body_comp.defined_count(),
            len(state.activity),
            len(state.events),
        )
        return state

    async def _ingest(self, document: RawDocument, cycle: _LoadCycle) -> None:
        if document.domain in ("bloodwork", "dexa"):
            cycle.touch(document.domain, document.last_modified)
            await self._ingest_report(document, cycle)
        elif document.domain == "activity" and document.extension == ".csv":
            cycle.touch("activity", document.last_modified)
            cycle.activity.extend(await asyncio.to_thread(read_activity_csv, document.path))
        elif document.domain == "activity_folder":
            cycle.touch("activity", document.last_modified)
            await self._ingest_tracker_folder(document, cycle)
        else:
            logger.debug("Ignoring %s (%s)", document.name, document.domain)

    async def _ingest_report(self, document: RawDocument, cycle: _LoadCycle) -> None:
        domain = document.domain

        if document.extension == ".txt":
            text = await asyncio.to_thread(fs.read_text, document.path)
            result = await self.orchestrator.extract_document(text, domain, use_primary=False)
            cycle.absorb(domain, result.data)
            return

        if document.extension != ".pdf":
            logger.info("Unsupported %s format for %s; skipping", domain, document.name)
            return

        key = manifest_key(self.data_dir, document.path)
        digest = await asyncio.to_thread(calculate_file_hash, document.path)
        document.content_hash = digest

        if not cycle.manifest.needs_extraction(key, digest):
            cached = self._read_cached(domain, digest)
            if cached is not None:
                logger.info("Loaded %s from extraction cache (%s)", domain, document.name)
                cycle.absorb(domain, cached)
                return
            logger.info("Cache payload for %s is stale or missing; re-extracting", document.name)

        text = await asyncio.to_thread(self.text_extractor, document.path)
        if not text:
            logger.info("No text extracted from %s; skipping", document.name)
            return

        result = await self.orchestrator.extract_document(text, domain)
        cycle.absorb(domain, result.data)
        logger.info("Extracted %s (%s): %s", document.name, domain, result.outcome)

        if result.cacheable:
            cycle.payloads[domain] = CachedPayload(
                domain=domain,
                source_path=key,
                source_hash=digest,
                extracted_at=utc_now_iso(),
                data=result.data.to_dict(),
            )
            cycle.manifest.update(key, digest, domain)

    def _read_cached(self, domain: str, digest: str) -> Snapshot | None:
        payload = self.repository.read_payload(domain)
        if payload is None or payload.source_hash != digest:
            return None
        try:
            if domain == "bloodwork":
                return BiomarkerSnapshot.from_dict(payload.data)
            return BodyCompositionSnapshot.from_dict(payload.data)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Discarding malformed %s cache payload: %s", domain, exc)
            return None

    async def _ingest_tracker_folder(self, document: RawDocument, cycle: _LoadCycle) -> None:
        tracker = document.tracker_type or "unknown"
        cycle.state.activity_source = tracker
        parser = self.activity_parsers.get(tracker)
        if parser is None:
            logger.info("No parser registered for %s export %s; skipping", tracker, document.name)
            return
        key = manifest_key(self.data_dir, document.path)
        digest = await asyncio.to_thread(calculate_folder_hash, document.path)
        document.content_hash = digest
        changed = cycle.manifest.needs_extraction(key, digest)
        if changed:
            logger.info("%s export %s is new or changed", tracker, document.name)

        records = await asyncio.to_thread(parser.parse, document.path)
        for record in records:
            record.source = record.source or tracker
        logger.info("Parsed %d %s activity records from %s", len(records), tracker, document.name)
        cycle.activity.extend(records)
        if changed and digest:
            cycle.manifest.update(key, digest, document.domain)

    def _finalize(self, cycle: _LoadCycle) -> None:
        """Derivations over the merged state; pure and synchronous."""
        state = cycle.state
        state.activity = collapse_daily(cycle.activity)

        biomarkers = state.biomarkers
        measured = dedupe_measurements(biomarkers.measurements)
        measured_ids = {m.id for m in measured}
        raw_values = biomarkers.raw_values()
        derived = [
            b for b in calculate_derived_biomarkers(raw_values) if b.id not in measured_ids
        ]
        biomarkers.measurements = measured + derived

        state.chronological_age = biomarkers.patient_age
        if state.chronological_age is not None:
            state.pheno_age = calculate_pheno_age(raw_values, state.chronological_age)

        state.events = build_health_events(
            biomarkers=biomarkers,
            body_comp=state.body_comp,
            activity=state.activity,
            pheno_age=state.pheno_age,
            chronological_age=state.chronological_age,
            timestamps=state.timestamps,
            activity_source=state.activity_source,
        )
