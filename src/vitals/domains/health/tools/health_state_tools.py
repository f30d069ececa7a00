"""MCP tools over the health state store.

Every tool awaits the store, so the first call of a process triggers the
load cycle and concurrent first calls share it. Results are JSON strings.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from vitals.domains.health.models import EVENT_DOMAINS, EVENT_SEVERITIES, HealthEventQuery

if TYPE_CHECKING:
    from vitals.core.storage.repository import ExtractionCacheRepository
    from vitals.domains.health.store import HealthStateStore

logger = logging.getLogger(__name__)


def _dumps(payload: dict) -> str:
    return json.dumps(payload, indent=2)


def _invalid(field: str, values: list[str], allowed: tuple[str, ...]) -> str | None:
    unknown = sorted(set(values) - set(allowed))
    if not unknown:
        return None
    return f"Unknown {field}: {', '.join(unknown)}. Allowed: {', '.join(allowed)}"


def register_health_state_tools(
    mcp: FastMCP,
    store: HealthStateStore,
    repository: ExtractionCacheRepository | None = None,
) -> None:
    """Register health state tools on the MCP server."""

    @mcp.tool
    async def get_biomarkers(ctx: Context) -> str:
        """Return every biomarker from the loaded lab reports.

        Measured values carry their unit, reference range and lab flag.
        Ratios and indices computed from them (HOMA-IR, TG/HDL, ...) are
        included with provenance ``calculated``.
        """
        snapshot = await store.get_biomarkers()
        return _dumps({
            "status": "ok",
            "count": len(snapshot.measurements),
            "patient_age": snapshot.patient_age,
            "biomarkers": [m.to_dict() for m in snapshot.measurements],
        })

    @mcp.tool
    async def get_body_composition(ctx: Context) -> str:
        """Return body composition from the loaded DEXA reports."""
        body_comp = await store.get_body_comp()
        timestamps = await store.get_timestamps()
        return _dumps({
            "status": "ok" if not body_comp.is_empty() else "no_data",
            "measured_at": timestamps.dexa,
            "body_composition": {k: v for k, v in body_comp.to_dict().items() if v is not None},
        })

    @mcp.tool
    async def get_activity(ctx: Context, days: int = 30) -> str:
        """Return daily recovery and sleep records from the activity tracker.

        Args:
            days: Number of most recent days to return (default: 30).
        """
        records = await store.get_activity()
        source = await store.get_activity_source()
        recent = records[-days:] if days > 0 else []
        return _dumps({
            "status": "ok" if records else "no_data",
            "source": source,
            "days_available": len(records),
            "records": [r.to_dict() for r in recent],
        })

    @mcp.tool
    async def get_biological_age(ctx: Context) -> str:
        """Return Levine PhenoAge and its delta from chronological age.

        Requires all nine PhenoAge blood inputs plus the patient's age from
        the lab report. A negative delta means biologically younger.
        """
        pheno_age = await store.get_pheno_age()
        chronological_age = await store.get_chronological_age()
        if pheno_age is None:
            return _dumps({
                "status": "unavailable",
                "chronological_age": chronological_age,
                "message": (
                    "PhenoAge needs albumin, creatinine, glucose, CRP, lymphocyte %, "
                    "MCV, RDW, alkaline phosphatase, WBC and the patient's age."
                ),
            })
        return _dumps({
            "status": "ok",
            "chronological_age": chronological_age,
            **pheno_age.to_dict(),
        })

    @mcp.tool
    async def get_health_events(
        ctx: Context,
        domains: list[str] | None = None,
        severities: list[str] | None = None,
        limit: int | None = None,
    ) -> str:
        """Return the canonical health event feed, newest first.

        Args:
            domains: Keep only these domains (biomarker, body_comp, activity,
                longevity, system).
            severities: Keep only these severities (info, warning, critical).
            limit: Maximum events to return, clamped to 1-200.
        """
        error = _invalid("domains", domains or [], EVENT_DOMAINS) or _invalid(
            "severities", severities or [], EVENT_SEVERITIES
        )
        if error:
            return _dumps({"status": "error", "message": error})

        events = await store.get_health_events(
            HealthEventQuery(domains=domains, severities=severities, limit=limit)
        )
        return _dumps({
            "status": "ok",
            "count": len(events),
            "events": [e.to_dict() for e in events],
        })

    @mcp.tool
    async def get_health_summary(ctx: Context) -> str:
        """Return a plain-text digest of all loaded health data."""
        return await store.get_health_summary()

    @mcp.tool
    async def reload_health_data(ctx: Context) -> str:
        """Re-scan the data directory and rebuild the health state.

        Unchanged reports are served from the extraction cache; only new or
        modified files are extracted again.
        """
        start_time = time.monotonic()
        await store.reload()
        events = await store.get_health_events()
        elapsed_ms = (time.monotonic() - start_time) * 1000
        logger.info("Health data reloaded in %.0fms", elapsed_ms)
        return _dumps({
            "status": "ok",
            "events": len(events),
            "duration_ms": round(elapsed_ms, 1),
        })

    if repository is not None:

        @mcp.tool
        async def clear_extraction_cache(ctx: Context) -> str:
            """Delete the extraction manifest and cached payloads.

            The next reload extracts every report from scratch.
            """
            removed = repository.clear_all()
            return _dumps({
                "status": "ok",
                "entries_removed": removed,
                "message": "Extraction cache cleared. Call reload_health_data to re-extract.",
            })
