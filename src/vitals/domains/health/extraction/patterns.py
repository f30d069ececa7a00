"""Deterministic pattern-based extraction.

Used when the structured extractor is unavailable, fails, times out or
returns too little. Each field owns an ordered list of named rules; the
first rule that matches wins for that field. The rules cover common US lab
layouts ("ALBUMIN 4.5 g/dL") and the inverted value/unit/name layout of
Thyrocare reports, which :func:`normalize_inverted_layout` rewrites into
"NAME: VALUE" lines before matching.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from vitals.domains.health.extraction.names import display_name
from vitals.domains.health.models import (
    Biomarker,
    BiomarkerSnapshot,
    BodyCompositionSnapshot,
)

logger = logging.getLogger(__name__)

_I = re.IGNORECASE


@dataclass(frozen=True)
class PatternRule:
    """A named regex whose first group captures the numeric value."""

    name: str
    pattern: re.Pattern[str]


@dataclass(frozen=True)
class FieldRules:
    field: str
    rules: tuple[PatternRule, ...]


def _rules(field: str, *rules: tuple[str, str] | tuple[str, str, int]) -> FieldRules:
    compiled = []
    for rule in rules:
        name, regex = rule[0], rule[1]
        flags = rule[2] if len(rule) > 2 else _I
        compiled.append(PatternRule(name, re.compile(regex, flags)))
    return FieldRules(field, tuple(compiled))


# ---------------------------------------------------------------------------
# Biomarker rules
# ---------------------------------------------------------------------------

BIOMARKER_RULES: tuple[FieldRules, ...] = (
    # PhenoAge inputs
    _rules(
        "albumin",
        ("thyrocare_lft", r"ALBUMIN\s*-\s*SERUM[^\n]*gm?/dL\s*([\d.]+)"),
        ("labelled", r"albumin[:\s]+(\d+\.?\d*)"),
    ),
    _rules(
        "creatinine",
        ("thyrocare_kidney", r"CREATININE\s*-\s*SERUM[^\n]*mg/dL\s*([\d.]+)"),
        ("labelled", r"creatinine[:\s]+(\d+\.?\d*)"),
    ),
    _rules(
        "glucose",
        ("thyrocare_inverted", r"PHOTOMETRY\s*\n([\d.]+)\s*\nmg/dL\s*\nFASTING BLOOD SUGAR"),
        ("fasting_blood_sugar", r"fasting blood sugar[^\n:]*?[:\s]+(\d+\.?\d*)"),
        ("glucose_fasting", r"glucose[,\s]*fasting[:\s]+(\d+\.?\d*)"),
        ("fasting_glucose", r"fasting[,\s]*glucose[:\s]+(\d+\.?\d*)"),
        ("labelled", r"glucose[:\s]+(\d+\.?\d*)"),
    ),
    _rules(
        "crp",
        ("hs_crp_spaced", r"hs\s+crp[:\s]+(\d+\.?\d*)"),
        ("c_reactive_protein", r"c-reactive protein[^\n:]*?[:\s]+(\d+\.?\d*)"),
        ("labelled", r"crp[:\s]+(\d+\.?\d*)"),
        ("hs_crp_hyphen", r"hs-crp[:\s]+(\d+\.?\d*)"),
    ),
    _rules(
        "lymphocyte_percent",
        ("percent_line", r"lymphocytes\s+(\d+\.?\d*)\s*%"),
        ("lymphocyte_percent", r"lymphocyte percent[:\s]+(\d+\.?\d*)"),
        ("labelled_percent", r"lymphocytes?[:\s]+(\d+\.?\d*)\s*%"),
        ("thyrocare_dlc", r"%\s*\n\s*([\d.]+)\s*\n20-40\s*\nLymphocytes Percentage"),
    ),
    _rules(
        "mcv",
        (
            "thyrocare_cbc",
            r"fL\s*\n\s*([\d.]+)\s*\n[\d.]+\s*-\s*[\d.]+\s*\nMean Corpuscular Volume",
        ),
        ("mean_cell_volume", r"mean cell volume[^\n:]*?[:\s]+(\d+\.?\d*)"),
        ("mean_corpuscular_volume", r"mean corpuscular volume[^\n:]*?[:\s]+(\d+\.?\d*)"),
        ("labelled", r"mcv[:\s]+(\d+\.?\d*)"),
    ),
    _rules(
        "rdw",
        (
            "thyrocare_cbc",
            r"fL\s*\n\s*([\d.]+)\s*\n[\d.]+\s*-\s*[\d.]+\s*\nRed Cell Distribution Width",
        ),
        ("full_name", r"red cell distribution width[^\n:]*?[:\s]+(\d+\.?\d*)"),
        ("labelled", r"rdw[:\s]+(\d+\.?\d*)"),
    ),
    _rules(
        "alkaline_phosphatase",
        ("full_name", r"alkaline phosphatase[:\s]+(\d+\.?\d*)"),
        ("alk_phos", r"alk phos[:\s]+(\d+\.?\d*)"),
        ("labelled", r"alp[:\s]+(\d+\.?\d*)"),
        ("thyrocare_lft", r"ALKALINE PHOSPHATASE[^\n]*U/L\s*([\d.]+)"),
    ),
    _rules(
        "wbc",
        (
            "thyrocare_cbc",
            r"X 10³ / μL\s*\n\s*([\d.]+)\s*\n[\d.]+\s*-\s*[\d.]+\s*\nTOTAL LEUCOCYTE COUNT",
        ),
        (
            "thyrocare_cbc_caret",
            r"X 10\^3\s*/\s*μL\s*\n\s*([\d.]+)\s*\n[\d.]+\s*-\s*[\d.]+\s*\nTOTAL LEUCOCYTE COUNT",
        ),
        ("full_name", r"white blood cell count[^\n:]*?[:\s]+(\d+\.?\d*)"),
        ("leucocyte_count", r"total leucocyte count[^\n:]*?[:\s]+(\d+\.?\d*)"),
        ("total_wbc", r"total wbc count[^\n:]*?[:\s]+(\d+\.?\d*)"),
        ("labelled", r"wbc[:\s]+(\d+\.?\d*)"),
    ),
    # Lipid panel
    _rules(
        "ldl",
        ("hyphenated", r"ldl-?cholesterol[:\s]+(\d+\.?\d*)"),
        ("spaced", r"ldl cholesterol[:\s]+(\d+\.?\d*)"),
        ("thyrocare", r"LDL CHOLESTEROL[^\n]*mg/dL\s*([\d.]+)"),
        ("labelled", r"ldl[:\s]+(\d+\.?\d*)"),
    ),
    _rules(
        "hdl",
        ("spaced", r"hdl cholesterol[:\s]+(\d+\.?\d*)"),
        ("thyrocare", r"HDL CHOLESTEROL[^\n]*mg/dL\s*([\d.]+)"),
        ("labelled", r"hdl[:\s]+(\d+\.?\d*)"),
    ),
    _rules(
        "triglycerides",
        ("labelled", r"triglycerides[:\s]+(\d+\.?\d*)"),
        ("thyrocare", r"TRIGLYCERIDES[A-Z]*[^\n]*mg/dL\s*([\d.]+)"),
    ),
    _rules(
        "total_cholesterol",
        ("cholesterol_total", r"cholesterol,?\s*total[:\s]+(\d+\.?\d*)"),
        ("total_cholesterol", r"total cholesterol[:\s]+(\d+\.?\d*)"),
        ("line_start", r"^cholesterol[:\s]+(\d+\.?\d*)", _I | re.MULTILINE),
        ("thyrocare", r"TOTAL CHOLESTEROL[A-Z]*[^\n]*mg/dL\s*([\d.]+)"),
    ),
    # Other markers
    _rules(
        "vitamin_d",
        (
            "thyrocare_clia",
            r"C\.L\.I\.A\s*\n([\d.]+)\s*\nBio\. Ref\. Interval\. :-\s*\nng/mL25-OH VITAMIN D",
        ),
        ("quest", r"vitamin\s*d,25-oh[,\w]*\s+(\d+\.?\d*)"),
        ("vitamin_d_25_oh", r"vitamin d[,\s]*25-oh[:\s]+(\d+\.?\d*)"),
        ("oh_vitamin_d", r"25-oh[,\s]*vitamin d[:\s]+(\d+\.?\d*)"),
        ("oh_vitamin_d_loose", r"25-oh vitamin d[^\n:]*?[:\s]+(\d+\.?\d*)"),
        ("labelled", r"vitamin d[:\s]+(\d+\.?\d*)"),
    ),
    _rules(
        "hba1c",
        ("hemoglobin_a1c", r"hemoglobin\s*a1c[:\s]+(\d+\.?\d*)"),
        ("labelled", r"hba1c[:\s]+(\d+\.?\d*)"),
    ),
    _rules(
        "fasting_insulin",
        ("fasting_insulin", r"fasting insulin[:\s]+(\d+\.?\d*)"),
        ("insulin_fasting", r"insulin[,\s]*fasting[:\s]+(\d+\.?\d*)"),
    ),
    _rules("homocysteine", ("labelled", r"homocysteine[:\s]+(\d+\.?\d*)")),
    _rules("ferritin", ("labelled", r"ferritin[:\s]+(\d+\.?\d*)")),
    # Thyroid
    _rules(
        "tsh",
        ("thyrocare_ultrasensitive", r"tsh\s*-\s*ultrasensitive[^\n:]*?[:\s]+(\d+\.?\d*)"),
        ("thyrocare_cmia", r"μIU/mL\s*\n[\d.]+-[\d.]+\s*\n([\d.]+)\s*\nMethod"),
        ("labelled", r"tsh[:\s]+(\d+\.?\d*)"),
    ),
    _rules(
        "free_t4",
        ("free_t4", r"free t4[:\s]+(\d+\.?\d*)"),
        ("ft4", r"ft4[:\s]+(\d+\.?\d*)"),
    ),
    _rules(
        "free_t3",
        ("free_t3", r"free t3[:\s]+(\d+\.?\d*)"),
        ("ft3", r"ft3[:\s]+(\d+\.?\d*)"),
    ),
    # Patient age from the report header
    _rules(
        "patient_age",
        ("thyrocare_header", r"\((\d+)Y/[MF]\)"),
        ("age_years", r"age[:\s]+(\d+)\s*years"),
        ("age", r"age[:\s]+(\d+)"),
    ),
)

DEFAULT_UNITS: dict[str, str] = {
    "albumin": "g/dL",
    "creatinine": "mg/dL",
    "glucose": "mg/dL",
    "crp": "mg/L",
    "lymphocyte_percent": "%",
    "mcv": "fL",
    "rdw": "%",
    "alkaline_phosphatase": "U/L",
    "wbc": "K/uL",
    "ldl": "mg/dL",
    "hdl": "mg/dL",
    "triglycerides": "mg/dL",
    "total_cholesterol": "mg/dL",
    "vitamin_d": "ng/mL",
    "hba1c": "%",
    "fasting_insulin": "uIU/mL",
    "homocysteine": "umol/L",
    "ferritin": "ng/mL",
    "tsh": "uIU/mL",
    "free_t4": "ng/dL",
    "free_t3": "pg/mL",
}


# ---------------------------------------------------------------------------
# Body composition rules
# ---------------------------------------------------------------------------

BODY_COMP_RULES: tuple[FieldRules, ...] = (
    _rules(
        "body_fat_percent",
        ("total_body_fat", r"total body fat[:\s]+(\d+\.?\d*)%?"),
        ("body_fat", r"body fat[:\s]+(\d+\.?\d*)%?"),
    ),
    _rules(
        "lean_mass",
        ("total_lean_mass", r"total lean mass[:\s]+(\d+\.?\d*)\s*lbs?"),
        ("lean_mass", r"lean mass[:\s]+(\d+\.?\d*)\s*lbs?"),
    ),
    _rules(
        "fat_mass",
        ("total_fat_mass", r"total fat mass[:\s]+(\d+\.?\d*)\s*lbs?"),
        ("fat_mass", r"fat mass[:\s]+(\d+\.?\d*)\s*lbs?"),
    ),
    _rules(
        "bone_mineral_content",
        ("full_name", r"bone mineral content[:\s]+(\d+\.?\d*)\s*lbs?"),
        ("bmc", r"bmc[:\s]+(\d+\.?\d*)\s*lbs?"),
    ),
    _rules(
        "visceral_fat",
        ("visceral_adipose_tissue", r"visceral adipose tissue[^\n:]*?[:\s]+(\d+\.?\d*)\s*lbs?"),
        ("vat", r"vat[:\s]+(\d+\.?\d*)\s*lbs?"),
        ("visceral_fat", r"visceral fat[:\s]+(\d+\.?\d*)\s*lbs?"),
    ),
    _rules(
        "bone_density_t_score",
        ("whole_body", r"whole body t-score[:\s]+(-?\d+\.?\d*)"),
        ("t_score", r"t-score[:\s]+(-?\d+\.?\d*)"),
        ("lumbar_spine", r"lumbar spine t-score[:\s]+(-?\d+\.?\d*)"),
    ),
    _rules("almi", ("labelled", r"almi[:\s]+(\d+\.?\d*)")),
)


# ---------------------------------------------------------------------------
# Inverted-layout normalization
# ---------------------------------------------------------------------------

_NUMERIC_LINE = re.compile(r"^\d+\.?\d*$")
_PURE_UNIT = re.compile(
    r"^(mg/dL|ng/mL|pg/mL|μIU/mL|μg/dL|g/dL|fL|pq|%|U/L|IU/L|mmol/L|nmol/L|mL/min.*)$", _I
)
_UNIT_WITH_NAME = re.compile(
    r"^(mg/dL|ng/mL|pg/mL|μIU/mL|μg/dL|g/dL|fL|pq|U/L|IU/L|mmol/L|nmol/L|mL/min)([A-Z].+)$", _I
)
_DATE_LINE = re.compile(r"^\d{2}\s+\w+\s+\d{4}")
_RANGE_LINE = re.compile(r"^\d+\s*-\s*\d+")
_AGE_HEADER = re.compile(r"\((\d+)Y/[MF]\)", _I)


def _looks_like_test_name(line: str) -> bool:
    return (
        len(line) > 2
        and not line.startswith(("Bio.", "Normal", "Page"))
        and not _DATE_LINE.match(line)
        and not line.startswith(("<", ">"))
        and not _RANGE_LINE.match(line)
        and re.search(r"[A-Z]", line) is not None
    )


def normalize_inverted_layout(text: str) -> str:
    """Rewrite "VALUE / UNIT / TEST NAME" runs into "TEST NAME: VALUE" lines.

    Thyrocare reports print the value first, then the unit (sometimes with
    the test name glued on), then the name. The patient age from a header
    such as ``Jane Doe(26Y/F)`` is appended as ``Age: 26 years``.
    """
    lines = [line.strip() for line in text.split("\n")]
    normalized: list[str] = []

    i = 0
    while i < len(lines):
        line = lines[i]
        if not _NUMERIC_LINE.match(line):
            normalized.append(line)
            i += 1
            continue

        value = line
        next_line = lines[i + 1] if i + 1 < len(lines) else ""
        glued = _UNIT_WITH_NAME.match(next_line)
        if glued and len(glued.group(2).strip()) > 2:
            normalized.append(f"{glued.group(2).strip()}: {value}")
            i += 2
            continue

        found = False
        for j in range(i + 1, min(i + 5, len(lines))):
            candidate = lines[j]
            glued = _UNIT_WITH_NAME.match(candidate)
            if glued and len(glued.group(2).strip()) > 2:
                normalized.append(f"{glued.group(2).strip()}: {value}")
                i = j
                found = True
                break
            if _PURE_UNIT.match(candidate):
                for k in range(j + 1, min(j + 4, len(lines))):
                    test_name = lines[k].strip()
                    if _looks_like_test_name(test_name):
                        normalized.append(f"{test_name}: {value}")
                        i = j
                        found = True
                        break
                if found:
                    break
            if _NUMERIC_LINE.match(candidate) or candidate.startswith("Page :"):
                break

        if not found:
            normalized.append(line)
        i += 1

    age = _AGE_HEADER.search(text)
    if age:
        normalized.append(f"Age: {age.group(1)} years")

    return "\n".join(normalized)


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

def match_fields(text: str, field_rules: tuple[FieldRules, ...]) -> dict[str, float]:
    """Apply each field's rules in order; the first numeric match wins."""
    values: dict[str, float] = {}
    for entry in field_rules:
        for rule in entry.rules:
            match = rule.pattern.search(text)
            if not match or not match.group(1):
                continue
            try:
                values[entry.field] = float(match.group(1))
            except ValueError:
                continue
            logger.debug("Pattern %s.%s matched %s", entry.field, rule.name, match.group(1))
            break
    return values


def extract_biomarkers(text: str) -> BiomarkerSnapshot:
    """Fallback biomarker extraction over raw report text."""
    search_text = text + "\n" + normalize_inverted_layout(text)
    values = match_fields(search_text, BIOMARKER_RULES)

    snapshot = BiomarkerSnapshot()
    for name, value in values.items():
        setattr(snapshot, name, value)
        if name == "patient_age":
            continue
        snapshot.measurements.append(
            Biomarker(
                id=name,
                name=display_name(name),
                value=value,
                unit=DEFAULT_UNITS.get(name, ""),
            )
        )
    return snapshot


def extract_body_composition(text: str) -> BodyCompositionSnapshot:
    """Fallback body composition extraction over raw DEXA report text."""
    values = match_fields(text, BODY_COMP_RULES)
    snapshot = BodyCompositionSnapshot()
    for name, value in values.items():
        setattr(snapshot, name, value)
    if snapshot.visceral_fat is not None:
        snapshot.vat_mass = snapshot.visceral_fat
    return snapshot
