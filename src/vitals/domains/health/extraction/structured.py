"""Primary extractor: LLM forced tool call returning structured lab data.

The model is asked to fill a JSON schema (one tool per document domain).
Its answer is treated as untrusted input: only declared fields are kept,
non-numeric values for numeric fields are dropped, and a payload that does
not have the declared shape raises :class:`StructuredExtractionError`.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from vitals.core.llm.provider import ExtractionTool, LLMProvider
from vitals.domains.health.extraction.merge import dedupe_measurements
from vitals.domains.health.extraction.names import display_name, normalize_biomarker_name
from vitals.domains.health.models import (
    BODY_COMP_NUMERIC_FIELDS,
    SNAPSHOT_FIELDS,
    Biomarker,
    BiomarkerSnapshot,
    BodyCompositionSnapshot,
)

logger = logging.getLogger(__name__)


class StructuredExtractionError(Exception):
    """Raised when the model's structured output is unusable."""


# ---------------------------------------------------------------------------
# Tool schemas
# ---------------------------------------------------------------------------

BIOMARKER_TOOL = ExtractionTool(
    name="extract_all_biomarkers",
    description="Extract ALL biomarker values from a lab report",
    input_schema={
        "type": "object",
        "properties": {
            "patient_age": {
                "type": "number",
                "description": "Patient age in years (if found)",
            },
            "biomarkers": {
                "type": "array",
                "description": "Array of ALL biomarkers/lab tests found in the report",
                "items": {
                    "type": "object",
                    "properties": {
                        "name": {
                            "type": "string",
                            "description": 'Test name exactly as shown (e.g., "ALBUMIN")',
                        },
                        "value": {"type": "number", "description": "The numeric result value"},
                        "unit": {
                            "type": "string",
                            "description": 'Unit of measurement (e.g., "g/dL", "%", "K/uL")',
                        },
                        "reference_range": {
                            "type": "string",
                            "description": 'Reference range as shown (e.g., "3.5-5.0", "<200")',
                        },
                        "status": {
                            "type": "string",
                            "enum": ["normal", "high", "low"],
                            "description": "High (H) or Low (L) flag, otherwise normal",
                        },
                        "category": {
                            "type": "string",
                            "description": 'Panel if identifiable (e.g., "Lipid Panel")',
                        },
                    },
                    "required": ["name", "value", "unit"],
                },
            },
        },
        "required": ["biomarkers"],
    },
)

BIOMARKER_SYSTEM_PROMPT = """You are a lab result extraction assistant. Extract ALL biomarker/test values from lab reports.

IMPORTANT RULES:
- Extract EVERY test result found in the report - do not skip any
- Use the exact numeric value shown (don't convert units)
- Include the unit exactly as shown
- Include reference range if present
- Mark status as 'high' if flagged with H, 'low' if flagged with L, 'normal' otherwise
- Report white cell differentials twice when both are printed: the % line and the absolute count
- Categorize tests when possible (CBC, Metabolic Panel, Lipid Panel, Thyroid, etc.)
- Extract patient age if found"""

_BODY_COMP_DESCRIPTIONS: dict[str, str] = {
    "body_fat_percent": "Total body fat percentage",
    "lean_mass": "Total lean tissue mass in lbs",
    "fat_mass": "Total fat tissue mass in lbs",
    "bone_mineral_content": "Total bone mineral content (BMC) in lbs",
    "total_mass": "Total body mass/weight in lbs",
    "height": "Height in inches",
    "ag_ratio": "Android/Gynoid (A/G) ratio",
    "visceral_fat": "Visceral fat in lbs (same as vat_mass)",
    "vat_mass": "Visceral adipose tissue (VAT) mass in lbs",
    "vat_volume": "Visceral adipose tissue volume in cubic inches",
    "total_bmd": "Total body bone mineral density (BMD) in g/cm2",
    "spine_bmd": "Spine bone mineral density in g/cm2",
    "hip_bmd": "Hip bone mineral density in g/cm2",
    "bone_density_t_score": "Total body T-Score for bone density",
    "bone_density_z_score": "Total body Z-Score (age-matched) for bone density",
    "resting_metabolic_rate": "Resting metabolic rate (RMR) in calories/day",
    "almi": "Appendicular lean mass index in kg/m2",
}


def _body_comp_description(field: str) -> str:
    if field in _BODY_COMP_DESCRIPTIONS:
        return _BODY_COMP_DESCRIPTIONS[field]
    if field.endswith("_fat_percent"):
        return f"{field.split('_')[0].capitalize()} region fat percentage"
    return f"{field.replace('_', ' ').capitalize()} in lbs"


def _body_comp_schema() -> dict[str, Any]:
    properties: dict[str, Any] = {
        "sex": {"type": "string", "enum": ["male", "female"], "description": "Patient sex"},
        "scan_date": {"type": "string", "description": "Date of scan (YYYY-MM-DD)"},
    }
    for field in BODY_COMP_NUMERIC_FIELDS:
        properties[field] = {"type": "number", "description": _body_comp_description(field)}
    return {"type": "object", "properties": properties, "required": ["body_fat_percent"]}


BODY_COMP_TOOL = ExtractionTool(
    name="extract_body_composition",
    description="Extract body composition data from a DEXA scan report",
    input_schema=_body_comp_schema(),
)

BODY_COMP_SYSTEM_PROMPT = """You are a DEXA scan data extraction assistant. Extract body composition values from DEXA scan reports.

IMPORTANT RULES:
- Extract ALL values that are present in the report
- Use the exact numeric values shown (don't convert units)
- Reports may come from different providers (BodySpec, DexaFit, hospitals) - adapt to the format
- For percentages, extract just the number (e.g., 31.3 not "31.3%")
- Regional data usually sits in tables with Arms, Legs, Trunk, Android, Gynoid rows
- VAT (Visceral Adipose Tissue) is often in a separate section
- If a value is not found, do not include it in the output"""


# ---------------------------------------------------------------------------
# Payload validation
# ---------------------------------------------------------------------------

def as_number(value: Any) -> float | None:
    """Finite float for ints, floats and numeric strings; None otherwise."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().rstrip("%").strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_biomarker_payload(payload: Any) -> BiomarkerSnapshot:
    """Validate an ``extract_all_biomarkers`` payload into a snapshot.

    Raises:
        StructuredExtractionError: If the payload is not an object with a
            ``biomarkers`` list.
    """
    if not isinstance(payload, dict):
        raise StructuredExtractionError("Biomarker payload is not an object")
    entries = payload.get("biomarkers")
    if not isinstance(entries, list):
        raise StructuredExtractionError("Biomarker payload has no 'biomarkers' list")

    measurements: list[Biomarker] = []
    dropped = 0
    for entry in entries:
        if not isinstance(entry, dict):
            dropped += 1
            continue
        name = _optional_str(entry.get("name"))
        value = as_number(entry.get("value"))
        if name is None or value is None:
            dropped += 1
            continue
        unit = _optional_str(entry.get("unit")) or ""
        status = entry.get("status")
        biomarker_id = normalize_biomarker_name(name, unit)
        measurements.append(
            Biomarker(
                id=biomarker_id,
                name=display_name(biomarker_id) if biomarker_id in SNAPSHOT_FIELDS else name,
                value=value,
                unit=unit,
                reference_range=_optional_str(entry.get("reference_range")),
                lab_flag=status if status in ("normal", "high", "low") else None,
                category=_optional_str(entry.get("category")),
            )
        )

    if dropped:
        logger.warning("Dropped %d malformed biomarker entries from structured output", dropped)

    snapshot = BiomarkerSnapshot(measurements=dedupe_measurements(measurements))
    for biomarker in snapshot.measurements:
        if biomarker.id in SNAPSHOT_FIELDS and biomarker.id != "patient_age":
            setattr(snapshot, biomarker.id, biomarker.value)
    snapshot.patient_age = as_number(payload.get("patient_age"))
    return snapshot


def parse_body_comp_payload(payload: Any) -> BodyCompositionSnapshot:
    """Validate an ``extract_body_composition`` payload into a snapshot.

    Raises:
        StructuredExtractionError: If the payload is not an object.
    """
    if not isinstance(payload, dict):
        raise StructuredExtractionError("Body composition payload is not an object")

    snapshot = BodyCompositionSnapshot()
    for field in BODY_COMP_NUMERIC_FIELDS:
        value = as_number(payload.get(field))
        if value is not None:
            setattr(snapshot, field, value)
    if payload.get("sex") in ("male", "female"):
        snapshot.sex = payload["sex"]
    snapshot.scan_date = _optional_str(payload.get("scan_date"))

    if snapshot.vat_mass is not None and snapshot.visceral_fat is None:
        snapshot.visceral_fat = snapshot.vat_mass
    elif snapshot.visceral_fat is not None and snapshot.vat_mass is None:
        snapshot.vat_mass = snapshot.visceral_fat
    return snapshot


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class StructuredExtractor:
    """Runs the forced tool call for each document domain.

    Usage::

        extractor = StructuredExtractor(create_provider("anthropic", api_key=key))
        snapshot = await extractor.extract_biomarkers(report_text)
    """

    def __init__(self, provider: LLMProvider, max_tokens: int = 8192) -> None:
        self.provider = provider
        self.max_tokens = max_tokens

    async def extract_biomarkers(self, text: str) -> BiomarkerSnapshot:
        response = await self.provider.extract(
            system_message=BIOMARKER_SYSTEM_PROMPT,
            user_message=(
                "Extract ALL biomarkers from this lab report. "
                f"Do not skip any test results:\n\n{text}"
            ),
            tool=BIOMARKER_TOOL,
            max_tokens=self.max_tokens,
        )
        snapshot = parse_biomarker_payload(response.payload)
        logger.info(
            "Structured extraction: %d biomarkers, model=%s, tokens=%d+%d, latency=%.0fms",
            len(snapshot.measurements),
            response.model,
            response.input_tokens,
            response.output_tokens,
            response.latency_ms,
        )
        return snapshot

    async def extract_body_composition(self, text: str) -> BodyCompositionSnapshot:
        response = await self.provider.extract(
            system_message=BODY_COMP_SYSTEM_PROMPT,
            user_message=f"Extract all body composition data from this DEXA scan report:\n\n{text}",
            tool=BODY_COMP_TOOL,
            max_tokens=self.max_tokens,
        )
        snapshot = parse_body_comp_payload(response.payload)
        logger.info(
            "Structured extraction: %d body composition fields, model=%s, latency=%.0fms",
            snapshot.defined_count(),
            response.model,
            response.latency_ms,
        )
        return snapshot
