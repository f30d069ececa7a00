"""Canonical health event builder.

Turns the merged health state into a flat, severity-tagged event feed for
UI and alerting. The builder is pure: given the same inputs and the same
``recorded_at`` it returns identical events, including ids, so downstream
consumers can deduplicate deliveries by id.

Event ids are ``{domain}:{key}:{index}:{occurred_at}`` where ``index`` is
the position of the observation in its source list.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Literal

from vitals.domains.health.calculations.reference import get_biomarker_status
from vitals.domains.health.extraction.names import display_name
from vitals.domains.health.models import (
    ActivityRecord,
    BiomarkerSnapshot,
    BiomarkerStatus,
    BodyCompositionSnapshot,
    DataSourceTimestamps,
    DerivedAgeResult,
    EventSeverity,
    HealthEvent,
    HealthEventQuery,
    to_iso,
    utc_now_iso,
)

MAX_EVENT_LIMIT = 200
RECENT_ACTIVITY_DAYS = 14

_TRACKER_SOURCES = frozenset({"whoop", "apple", "oura", "fitbit"})

_STATUS_SEVERITY: dict[str, EventSeverity] = {
    "out_of_range": "critical",
    "borderline": "warning",
    "optimal": "info",
    "normal": "info",
}

_STATUS_TEXT: dict[str, str] = {
    "optimal": "optimal",
    "normal": "in range",
    "borderline": "borderline",
    "out_of_range": "out of range",
}


@dataclass(frozen=True)
class BodyCompThreshold:
    key: str
    label: str
    unit: str
    warning: float
    critical: float
    direction: Literal["higher_is_risk", "lower_is_risk"]

    def severity(self, value: float) -> EventSeverity:
        if self.direction == "higher_is_risk":
            if value >= self.critical:
                return "critical"
            if value >= self.warning:
                return "warning"
        else:
            if value <= self.critical:
                return "critical"
            if value <= self.warning:
                return "warning"
        return "info"


BODY_COMP_THRESHOLDS: tuple[BodyCompThreshold, ...] = (
    BodyCompThreshold("body_fat_percent", "Body Fat", "%", 20, 25, "higher_is_risk"),
    BodyCompThreshold("vat_mass", "Visceral Fat", "lbs", 1.0, 1.5, "higher_is_risk"),
    BodyCompThreshold("lean_mass", "Lean Mass", "lbs", 120, 100, "lower_is_risk"),
    BodyCompThreshold("bone_density_t_score", "Bone Density T-Score", "", -1, -2.5, "lower_is_risk"),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def format_number(value: float) -> str:
    """Render 85.0 as ``85`` and 4.5 as ``4.5``."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def status_to_severity(status: BiomarkerStatus) -> EventSeverity:
    return _STATUS_SEVERITY[status]


def activity_event_source(tracker: str | None) -> str:
    return tracker if tracker in _TRACKER_SOURCES else "activity"


def iso_date_or(value: str, fallback: str) -> str:
    """Midnight UTC of a ``YYYY-MM-DD`` (or ISO datetime) string, else ``fallback``."""
    try:
        if len(value) == 10:
            day = date.fromisoformat(value)
            return to_iso(datetime(day.year, day.month, day.day, tzinfo=timezone.utc))
        return to_iso(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return fallback


def activity_severity(record: ActivityRecord) -> EventSeverity:
    recovery = record.recovery
    if record.hrv < 25 or record.sleep_hours < 5 or (recovery is not None and recovery < 40):
        return "critical"
    if record.hrv < 35 or record.sleep_hours < 6 or (recovery is not None and recovery < 60):
        return "warning"
    return "info"


def longevity_severity(delta: float) -> EventSeverity:
    if delta > 5:
        return "critical"
    if delta > 2:
        return "warning"
    return "info"


# ---------------------------------------------------------------------------
# Per-domain builders
# ---------------------------------------------------------------------------

def _biomarker_events(
    biomarkers: BiomarkerSnapshot, occurred_at: str, recorded_at: str
) -> list[HealthEvent]:
    events: list[HealthEvent] = []

    if biomarkers.measurements:
        for index, marker in enumerate(biomarkers.measurements):
            status = get_biomarker_status(marker.id, marker.value)
            events.append(
                HealthEvent(
                    id=f"biomarker:{marker.id}:{index}:{occurred_at}",
                    domain="biomarker",
                    severity=status_to_severity(status),
                    source="bloodwork",
                    metric=marker.name,
                    summary=(
                        f"{marker.name} is {_STATUS_TEXT[status]} at "
                        f"{format_number(marker.value)} {marker.unit}"
                    ).rstrip(),
                    value=marker.value,
                    unit=marker.unit,
                    status=status,
                    occurred_at=occurred_at,
                    recorded_at=recorded_at,
                    confidence=0.95 if marker.lab_flag else 0.8,
                    metadata={
                        "category": marker.category or "unknown",
                        "lab_flag": marker.lab_flag or "unknown",
                        "provenance": marker.provenance,
                    },
                )
            )
        return events

    # Fixed fields only: no units or lab flags to go on
    for index, (key, value) in enumerate(biomarkers.scalar_items()):
        if value is None or key == "patient_age":
            continue
        status = get_biomarker_status(key, value)
        label = display_name(key)
        events.append(
            HealthEvent(
                id=f"biomarker:{key}:{index}:{occurred_at}",
                domain="biomarker",
                severity=status_to_severity(status),
                source="bloodwork",
                metric=label,
                summary=f"{label} is {_STATUS_TEXT[status]} at {format_number(value)}",
                value=value,
                status=status,
                occurred_at=occurred_at,
                recorded_at=recorded_at,
                confidence=0.75,
            )
        )
    return events


def _body_comp_events(
    body_comp: BodyCompositionSnapshot, occurred_at: str, recorded_at: str
) -> list[HealthEvent]:
    events: list[HealthEvent] = []
    for index, metric in enumerate(BODY_COMP_THRESHOLDS):
        value = getattr(body_comp, metric.key)
        if value is None:
            continue
        unit_suffix = f" {metric.unit}" if metric.unit else ""
        events.append(
            HealthEvent(
                id=f"body_comp:{metric.key}:{index}:{occurred_at}",
                domain="body_comp",
                severity=metric.severity(value),
                source="dexa",
                metric=metric.label,
                summary=f"{metric.label} measured at {format_number(value)}{unit_suffix}",
                value=value,
                unit=metric.unit,
                occurred_at=occurred_at,
                recorded_at=recorded_at,
                confidence=0.9,
            )
        )
    return events


def _activity_events(
    activity: list[ActivityRecord], source: str, fallback_time: str, recorded_at: str
) -> list[HealthEvent]:
    events: list[HealthEvent] = []
    for index, record in enumerate(activity[-RECENT_ACTIVITY_DAYS:]):
        if not record.has_signals():
            continue
        occurred_at = iso_date_or(record.date, fallback_time)
        value = record.recovery if record.recovery is not None else record.sleep_score
        events.append(
            HealthEvent(
                id=f"activity:{record.date}:{index}:{occurred_at}",
                domain="activity",
                severity=activity_severity(record),
                source=record.source if record.source in _TRACKER_SOURCES else source,
                metric="Daily Recovery Snapshot",
                summary=(
                    f"HRV {format_number(record.hrv)} ms, RHR {format_number(record.rhr)} bpm, "
                    f"Sleep {record.sleep_hours:.1f}h"
                ),
                value=value,
                unit="%",
                occurred_at=occurred_at,
                recorded_at=recorded_at,
                confidence=0.88,
                metadata={"strain": record.strain, "steps": record.steps},
            )
        )
    return events


def _longevity_event(
    pheno_age: DerivedAgeResult, chronological_age: float, occurred_at: str, recorded_at: str
) -> HealthEvent:
    delta = pheno_age.delta
    return HealthEvent(
        id=f"longevity:phenoage:0:{occurred_at}",
        domain="longevity",
        severity=longevity_severity(delta),
        source="bloodwork",
        metric="Biological Age Delta",
        summary=(
            f"PhenoAge {pheno_age.pheno_age:.1f}y vs chronological "
            f"{format_number(chronological_age)}y ({delta:+.1f}y)"
        ),
        value=delta,
        unit="years",
        occurred_at=occurred_at,
        recorded_at=recorded_at,
        confidence=0.97,
    )


def no_data_event(recorded_at: str) -> HealthEvent:
    return HealthEvent(
        id=f"system:no_data:0:{recorded_at}",
        domain="system",
        severity="warning",
        source="system",
        metric="Data Ingestion",
        summary="No health data detected yet. Add files or connect a data source.",
        value=None,
        occurred_at=recorded_at,
        recorded_at=recorded_at,
        confidence=1.0,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_health_events(
    biomarkers: BiomarkerSnapshot,
    body_comp: BodyCompositionSnapshot,
    activity: list[ActivityRecord],
    pheno_age: DerivedAgeResult | None = None,
    chronological_age: float | None = None,
    timestamps: DataSourceTimestamps | None = None,
    activity_source: str | None = None,
    recorded_at: str | None = None,
) -> list[HealthEvent]:
    """Build the event feed, newest first.

    Args:
        biomarkers: Merged biomarker snapshot.
        body_comp: Merged body composition snapshot.
        activity: Daily activity records sorted by date.
        pheno_age: PhenoAge result, if computable.
        chronological_age: Age in years, required for the longevity event.
        timestamps: Per-domain document timestamps used as ``occurred_at``.
        activity_source: Active tracker type.
        recorded_at: Build time; defaults to now.

    Returns:
        Events sorted by ``occurred_at`` descending. Never empty: with no
        data a single ``system`` warning is returned.
    """
    recorded_at = recorded_at or utc_now_iso()
    timestamps = timestamps or DataSourceTimestamps()
    bloodwork_time = timestamps.bloodwork or recorded_at
    body_comp_time = timestamps.dexa or recorded_at
    activity_time = timestamps.activity or recorded_at

    events = _biomarker_events(biomarkers, bloodwork_time, recorded_at)
    events.extend(_body_comp_events(body_comp, body_comp_time, recorded_at))
    events.extend(
        _activity_events(activity, activity_event_source(activity_source), activity_time, recorded_at)
    )
    if pheno_age is not None and chronological_age is not None:
        events.append(_longevity_event(pheno_age, chronological_age, bloodwork_time, recorded_at))

    if not events:
        events.append(no_data_event(recorded_at))

    # sorted() is stable, so equal timestamps keep build order
    return sorted(events, key=lambda e: e.occurred_at, reverse=True)


def clamp_limit(limit: int | None, available: int) -> int:
    """Clamp a requested limit to [1, 200]; None means everything available."""
    requested = available if limit is None else limit
    return max(1, min(requested, MAX_EVENT_LIMIT))


def filter_events(events: list[HealthEvent], query: HealthEventQuery | None = None) -> list[HealthEvent]:
    """Apply domain and severity filters, then the clamped limit."""
    query = query or HealthEventQuery()
    selected = list(events)
    if query.domains:
        selected = [e for e in selected if e.domain in query.domains]
    if query.severities:
        selected = [e for e in selected if e.severity in query.severities]
    return selected[: clamp_limit(query.limit, len(selected))]
