"""Canonical health-state models: documents, snapshots, records, events."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Literal


def to_iso(moment: datetime) -> str:
    """UTC ISO 8601 with millisecond precision and a ``Z`` suffix.

    Every timestamp in the health state uses this one shape so plain string
    comparison orders them chronologically.
    """
    utc = moment.astimezone(timezone.utc) if moment.tzinfo else moment.replace(tzinfo=timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))

# ---------------------------------------------------------------------------
# Vocabularies
# ---------------------------------------------------------------------------

DocumentDomain = Literal["bloodwork", "dexa", "activity", "activity_folder", "unknown"]
TrackerType = Literal["whoop", "apple", "oura", "fitbit", "unknown"]
LabFlag = Literal["normal", "high", "low"]
Provenance = Literal["measured", "calculated"]
BiomarkerStatus = Literal["optimal", "normal", "borderline", "out_of_range"]

EventDomain = Literal["biomarker", "body_comp", "activity", "longevity", "system"]
EventSeverity = Literal["info", "warning", "critical"]

EVENT_DOMAINS: tuple[str, ...] = ("biomarker", "body_comp", "activity", "longevity", "system")
EVENT_SEVERITIES: tuple[str, ...] = ("info", "warning", "critical")


# ---------------------------------------------------------------------------
# Source documents
# ---------------------------------------------------------------------------

@dataclass
class RawDocument:
    """A discovered source file or tracker export folder."""

    name: str
    path: str
    domain: DocumentDomain
    extension: str = ""
    size: int | None = None
    last_modified: str | None = None  # ISO 8601
    is_folder: bool = False
    tracker_type: TrackerType | None = None
    content_hash: str = ""


# ---------------------------------------------------------------------------
# Biomarkers
# ---------------------------------------------------------------------------

@dataclass
class Biomarker:
    """One measured or calculated lab value."""

    id: str
    name: str
    value: float
    unit: str = ""
    reference_range: str | None = None
    lab_flag: LabFlag | None = None
    category: str | None = None
    provenance: Provenance = "measured"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Biomarker:
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            value=float(data["value"]),
            unit=str(data.get("unit") or ""),
            reference_range=data.get("reference_range"),
            lab_flag=data.get("lab_flag"),
            category=data.get("category"),
            provenance=data.get("provenance") or "measured",
        )


@dataclass
class BiomarkerSnapshot:
    """Well-known numeric biomarkers plus every measurement for display.

    The fixed fields feed calculations (PhenoAge, derived ratios);
    ``measurements`` keeps every marker the lab reported, in report order.
    """

    # Levine PhenoAge inputs
    albumin: float | None = None
    creatinine: float | None = None
    glucose: float | None = None
    crp: float | None = None
    lymphocyte_percent: float | None = None
    mcv: float | None = None
    rdw: float | None = None
    alkaline_phosphatase: float | None = None
    wbc: float | None = None
    lymphocytes: float | None = None  # absolute count, cells/uL

    # Lipid panel
    ldl: float | None = None
    hdl: float | None = None
    triglycerides: float | None = None
    total_cholesterol: float | None = None
    apo_b: float | None = None

    # Metabolic / kidney
    hba1c: float | None = None
    fasting_insulin: float | None = None
    bun: float | None = None
    globulin: float | None = None
    neutrophils: float | None = None

    # Other markers
    vitamin_d: float | None = None
    homocysteine: float | None = None
    ferritin: float | None = None

    # Thyroid
    tsh: float | None = None
    free_t4: float | None = None
    free_t3: float | None = None

    patient_age: float | None = None

    measurements: list[Biomarker] = field(default_factory=list)

    def known_values(self) -> dict[str, float]:
        """Defined fixed fields (excluding patient age) keyed by canonical id."""
        return {
            name: value
            for name, value in self.scalar_items()
            if value is not None and name != "patient_age"
        }

    def scalar_items(self) -> list[tuple[str, float | None]]:
        return [(f.name, getattr(self, f.name)) for f in fields(self) if f.name != "measurements"]

    def raw_values(self) -> dict[str, float]:
        """Every known numeric value: measurements first, fixed fields on top."""
        values = {m.id: m.value for m in self.measurements}
        values.update(self.known_values())
        return values

    def is_empty(self) -> bool:
        return not self.measurements and all(v is None for _, v in self.scalar_items())

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {name: value for name, value in self.scalar_items() if value is not None}
        data["measurements"] = [m.to_dict() for m in self.measurements]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BiomarkerSnapshot:
        """Rebuild from :meth:`to_dict` output; unknown keys are ignored."""
        snapshot = cls(measurements=[Biomarker.from_dict(m) for m in data.get("measurements") or []])
        for name in SNAPSHOT_FIELDS:
            value = data.get(name)
            if value is not None:
                setattr(snapshot, name, float(value))
        return snapshot


SNAPSHOT_FIELDS: frozenset[str] = frozenset(
    f.name for f in fields(BiomarkerSnapshot) if f.name != "measurements"
)

PHENOAGE_INPUTS: tuple[str, ...] = (
    "albumin",
    "creatinine",
    "glucose",
    "crp",
    "lymphocyte_percent",
    "mcv",
    "rdw",
    "alkaline_phosphatase",
    "wbc",
)


# ---------------------------------------------------------------------------
# Body composition
# ---------------------------------------------------------------------------

@dataclass
class BodyCompositionSnapshot:
    """DEXA (or smart-scale) body composition. Masses in lbs."""

    body_fat_percent: float | None = None
    lean_mass: float | None = None
    fat_mass: float | None = None
    bone_mineral_content: float | None = None
    total_mass: float | None = None
    height: float | None = None  # inches

    arms_fat_percent: float | None = None
    legs_fat_percent: float | None = None
    trunk_fat_percent: float | None = None
    android_fat_percent: float | None = None
    gynoid_fat_percent: float | None = None
    ag_ratio: float | None = None

    arms_fat_mass: float | None = None
    legs_fat_mass: float | None = None
    trunk_fat_mass: float | None = None
    android_fat_mass: float | None = None
    gynoid_fat_mass: float | None = None

    arms_lean_mass: float | None = None
    legs_lean_mass: float | None = None
    trunk_lean_mass: float | None = None

    visceral_fat: float | None = None  # alias of vat_mass
    vat_mass: float | None = None
    vat_volume: float | None = None  # cubic inches

    total_bmd: float | None = None  # g/cm2
    spine_bmd: float | None = None
    hip_bmd: float | None = None
    bone_density_t_score: float | None = None
    bone_density_z_score: float | None = None

    resting_metabolic_rate: float | None = None  # kcal/day
    almi: float | None = None

    right_arm_lean: float | None = None
    left_arm_lean: float | None = None
    right_leg_lean: float | None = None
    left_leg_lean: float | None = None

    sex: Literal["male", "female"] | None = None
    scan_date: str | None = None

    def numeric_items(self) -> list[tuple[str, float | None]]:
        return [(name, getattr(self, name)) for name in BODY_COMP_NUMERIC_FIELDS]

    def defined_count(self) -> int:
        return sum(1 for f in fields(self) if getattr(self, f.name) is not None)

    def is_empty(self) -> bool:
        return self.defined_count() == 0

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BodyCompositionSnapshot:
        snapshot = cls()
        for name in BODY_COMP_NUMERIC_FIELDS:
            value = data.get(name)
            if value is not None:
                setattr(snapshot, name, float(value))
        if data.get("sex") in ("male", "female"):
            snapshot.sex = data["sex"]
        if data.get("scan_date"):
            snapshot.scan_date = str(data["scan_date"])
        return snapshot


BODY_COMP_NUMERIC_FIELDS: tuple[str, ...] = tuple(
    f.name for f in fields(BodyCompositionSnapshot) if f.name not in ("sex", "scan_date")
)


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------

@dataclass
class ActivityRecord:
    """One calendar day of wearable data from a single source."""

    date: str  # YYYY-MM-DD
    hrv: float = 0.0  # ms
    rhr: float = 0.0  # bpm
    sleep_hours: float = 0.0
    sleep_score: float | None = None
    sleep_consistency: float | None = None
    recovery: float | None = None  # %
    strain: float | None = None
    steps: int | None = None
    source: str | None = None  # "csv" or the tracker type

    def has_signals(self) -> bool:
        return self.hrv > 0 or self.rhr > 0 or self.sleep_hours > 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Derived results
# ---------------------------------------------------------------------------

@dataclass
class DerivedAgeResult:
    """Levine PhenoAge and its difference from chronological age."""

    pheno_age: float
    delta: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DataSourceTimestamps:
    """Last-modified time of the newest document seen per domain."""

    bloodwork: str | None = None
    dexa: str | None = None
    activity: str | None = None


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass
class HealthEvent:
    """A normalized, severity-tagged observation."""

    id: str
    domain: EventDomain
    severity: EventSeverity
    source: str
    metric: str
    summary: str
    value: float | str | None
    occurred_at: str
    recorded_at: str
    confidence: float
    unit: str | None = None
    status: str | None = None
    metadata: dict[str, str | float | int | bool | None] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class HealthEventQuery:
    """Filter for :meth:`HealthStateStore.get_health_events`."""

    domains: list[str] | None = None
    severities: list[str] | None = None
    limit: int | None = None


@dataclass
class HealthState:
    """Everything one load cycle produces."""

    biomarkers: BiomarkerSnapshot = field(default_factory=BiomarkerSnapshot)
    body_comp: BodyCompositionSnapshot = field(default_factory=BodyCompositionSnapshot)
    activity: list[ActivityRecord] = field(default_factory=list)
    activity_source: TrackerType = "unknown"
    pheno_age: DerivedAgeResult | None = None
    chronological_age: float | None = None
    timestamps: DataSourceTimestamps = field(default_factory=DataSourceTimestamps)
    events: list[HealthEvent] = field(default_factory=list)
