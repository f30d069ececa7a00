"""Canonical biomarker ids and the lab-name aliases that map onto them.

Labs print the same test under many names ("HS CRP", "C-Reactive Protein",
"hs-CRP"). Every extractor funnels names through
:func:`normalize_biomarker_name` so a measured quantity has exactly one id
regardless of which alias a report used.
"""

from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# Alias table (lower-cased, whitespace-collapsed lab name -> canonical id)
# ---------------------------------------------------------------------------

NAME_TO_ID: dict[str, str] = {
    # Lipid panel
    "total cholesterol": "total_cholesterol",
    "cholesterol, total": "total_cholesterol",
    "cholesterol": "total_cholesterol",
    "ldl": "ldl",
    "ldl cholesterol": "ldl",
    "ldl-cholesterol": "ldl",
    "ldl-c": "ldl",
    "ldl chol calc": "ldl",
    "hdl": "hdl",
    "hdl cholesterol": "hdl",
    "hdl-c": "hdl",
    "triglycerides": "triglycerides",
    "tg": "triglycerides",
    "apolipoprotein b": "apo_b",
    "apob": "apo_b",
    "apo b": "apo_b",
    "lp(a)": "lpa",
    "lipoprotein(a)": "lpa",
    "lipoprotein a": "lpa",
    "vldl": "vldl",
    "vldl cholesterol": "vldl",
    # Metabolic
    "glucose": "glucose",
    "glucose, fasting": "glucose",
    "fasting glucose": "glucose",
    "glucose, serum": "glucose",
    "hba1c": "hba1c",
    "hemoglobin a1c": "hba1c",
    "glycohemoglobin": "hba1c",
    "a1c": "hba1c",
    "insulin": "fasting_insulin",
    "fasting insulin": "fasting_insulin",
    "c-peptide": "c_peptide",
    "c peptide": "c_peptide",
    "fructosamine": "fructosamine",
    # Liver
    "ast": "ast",
    "sgot": "ast",
    "aspartate aminotransferase": "ast",
    "alt": "alt",
    "sgpt": "alt",
    "alanine aminotransferase": "alt",
    "ggt": "ggt",
    "gamma gt": "ggt",
    "gamma-glutamyl transferase": "ggt",
    "alkaline phosphatase": "alkaline_phosphatase",
    "alp": "alkaline_phosphatase",
    "alk phos": "alkaline_phosphatase",
    "bilirubin": "total_bilirubin",
    "total bilirubin": "total_bilirubin",
    "bilirubin, total": "total_bilirubin",
    "albumin": "albumin",
    "total protein": "total_protein",
    "globulin": "globulin",
    # Kidney
    "creatinine": "creatinine",
    "bun": "bun",
    "blood urea nitrogen": "bun",
    "urea nitrogen": "bun",
    "egfr": "egfr",
    "gfr": "egfr",
    "estimated gfr": "egfr",
    "cystatin c": "cystatin_c",
    "uric acid": "uric_acid",
    # Complete blood count
    "rbc": "rbc",
    "red blood cell count": "rbc",
    "red blood cells": "rbc",
    "wbc": "wbc",
    "white blood cell count": "wbc",
    "white blood cells": "wbc",
    "total leucocyte count": "wbc",
    "hemoglobin": "hemoglobin",
    "hgb": "hemoglobin",
    "hematocrit": "hematocrit",
    "hct": "hematocrit",
    "mcv": "mcv",
    "mean cell volume": "mcv",
    "mean corpuscular volume": "mcv",
    "mch": "mch",
    "mean cell hemoglobin": "mch",
    "mean corpuscular hemoglobin": "mch",
    "mchc": "mchc",
    "mean cell hemoglobin concentration": "mchc",
    "rdw": "rdw",
    "rdw-cv": "rdw",
    "red cell distribution width": "rdw",
    "platelets": "platelets",
    "platelet count": "platelets",
    "mpv": "mpv",
    "mean platelet volume": "mpv",
    # White cell differential (unit decides percent vs absolute)
    "neutrophils": "neutrophils",
    "neutrophil": "neutrophils",
    "neutrophil count": "neutrophils",
    "absolute neutrophils": "neutrophils",
    "anc": "neutrophils",
    "neutrophils %": "neutrophils_percent",
    "neutrophil %": "neutrophils_percent",
    "lymphocytes": "lymphocytes",
    "lymphocyte": "lymphocytes",
    "lymphocyte count": "lymphocytes",
    "absolute lymphocytes": "lymphocytes",
    "alc": "lymphocytes",
    "lymphocyte %": "lymphocyte_percent",
    "lymphocytes %": "lymphocyte_percent",
    "monocytes": "monocytes",
    "absolute monocytes": "monocytes",
    "monocyte %": "monocytes_percent",
    "monocytes %": "monocytes_percent",
    "eosinophils": "eosinophils",
    "eosinophil count": "eosinophils",
    "basophils": "basophils",
    "basophil count": "basophils",
    # Iron
    "ferritin": "ferritin",
    "iron": "serum_iron",
    "serum iron": "serum_iron",
    "tibc": "tibc",
    "total iron binding capacity": "tibc",
    "iron saturation": "iron_saturation",
    "% saturation": "iron_saturation",
    "transferrin": "transferrin",
    # Thyroid
    "tsh": "tsh",
    "thyroid stimulating hormone": "tsh",
    "t4, free": "free_t4",
    "free t4": "free_t4",
    "ft4": "free_t4",
    "t3, free": "free_t3",
    "free t3": "free_t3",
    "ft3": "free_t3",
    "reverse t3": "reverse_t3",
    "rt3": "reverse_t3",
    "tpo antibodies": "tpo_antibodies",
    "thyroid peroxidase ab": "tpo_antibodies",
    # Inflammation
    "crp": "crp",
    "c-reactive protein": "crp",
    "hs crp": "crp",
    "hs-crp": "crp",
    "high sensitivity crp": "crp",
    "esr": "esr",
    "sed rate": "esr",
    "erythrocyte sedimentation rate": "esr",
    "homocysteine": "homocysteine",
    "fibrinogen": "fibrinogen",
    # Vitamins
    "vitamin d": "vitamin_d",
    "vitamin d, 25-oh": "vitamin_d",
    "vitamin d,25-oh,total,ia": "vitamin_d",
    "25-oh vitamin d": "vitamin_d",
    "25-hydroxyvitamin d": "vitamin_d",
    "vitamin b12": "vitamin_b12",
    "b12": "vitamin_b12",
    "folate": "folate",
    "folic acid": "folate",
    "vitamin b6": "vitamin_b6",
    # Minerals
    "magnesium": "magnesium_serum",
    "magnesium, serum": "magnesium_serum",
    "magnesium rbc": "magnesium_rbc",
    "zinc": "zinc",
    "selenium": "selenium",
    "copper": "copper",
    # Electrolytes
    "sodium": "sodium",
    "potassium": "potassium",
    "chloride": "chloride",
    "co2": "co2",
    "carbon dioxide": "co2",
    "bicarbonate": "co2",
    "calcium": "calcium",
    # Hormones
    "testosterone": "total_testosterone",
    "total testosterone": "total_testosterone",
    "free testosterone": "free_testosterone",
    "shbg": "shbg",
    "sex hormone binding globulin": "shbg",
    "estradiol": "estradiol",
    "e2": "estradiol",
    "dhea-s": "dheas",
    "dheas": "dheas",
    "cortisol": "cortisol_am",
    "cortisol, am": "cortisol_am",
    "igf-1": "igf1",
    "igf1": "igf1",
    "prolactin": "prolactin",
    "lh": "lh",
    "luteinizing hormone": "lh",
    "fsh": "fsh",
    "follicle stimulating hormone": "fsh",
    "progesterone": "progesterone",
    "amh": "amh",
    "anti-mullerian hormone": "amh",
    # Cardiovascular
    "lp-pla2": "lp_pla2",
    "mpo": "mpo",
    "myeloperoxidase": "mpo",
    "tmao": "tmao",
    "nt-probnp": "nt_pro_bnp",
    "bnp": "nt_pro_bnp",
}

# Differentials reported both as a percentage and as an absolute count
DIFFERENTIAL_IDS: frozenset[str] = frozenset(
    {"neutrophils", "lymphocytes", "monocytes", "eosinophils", "basophils"}
)

# The percentage variant of lymphocytes is named for the PhenoAge input
_PERCENT_IDS: dict[str, str] = {
    "neutrophils": "neutrophils_percent",
    "lymphocytes": "lymphocyte_percent",
    "monocytes": "monocytes_percent",
    "eosinophils": "eosinophils_percent",
    "basophils": "basophils_percent",
}
_ABSOLUTE_IDS: dict[str, str] = {v: k for k, v in _PERCENT_IDS.items()}

DISPLAY_NAMES: dict[str, str] = {
    "total_cholesterol": "Total Cholesterol",
    "ldl": "LDL Cholesterol",
    "hdl": "HDL Cholesterol",
    "triglycerides": "Triglycerides",
    "apo_b": "Apolipoprotein B",
    "lpa": "Lipoprotein(a)",
    "glucose": "Glucose",
    "hba1c": "Hemoglobin A1c",
    "fasting_insulin": "Fasting Insulin",
    "alkaline_phosphatase": "Alkaline Phosphatase",
    "albumin": "Albumin",
    "globulin": "Globulin",
    "creatinine": "Creatinine",
    "bun": "Blood Urea Nitrogen",
    "egfr": "eGFR",
    "wbc": "White Blood Cell Count",
    "rbc": "Red Blood Cell Count",
    "mcv": "Mean Cell Volume",
    "rdw": "Red Cell Distribution Width",
    "lymphocyte_percent": "Lymphocytes %",
    "lymphocytes": "Absolute Lymphocytes",
    "neutrophils_percent": "Neutrophils %",
    "neutrophils": "Absolute Neutrophils",
    "crp": "C-Reactive Protein",
    "vitamin_d": "Vitamin D, 25-OH",
    "homocysteine": "Homocysteine",
    "ferritin": "Ferritin",
    "tsh": "TSH",
    "free_t4": "Free T4",
    "free_t3": "Free T3",
    "non_hdl_cholesterol": "Non-HDL Cholesterol",
    "tg_hdl_ratio": "Triglyceride/HDL Ratio",
    "ldl_hdl_ratio": "LDL/HDL Ratio",
    "total_cholesterol_hdl_ratio": "Total Cholesterol/HDL Ratio",
    "homa_ir": "HOMA-IR",
    "tyg_index": "TyG Index",
    "bun_creatinine_ratio": "BUN/Creatinine Ratio",
    "albumin_globulin_ratio": "Albumin/Globulin Ratio",
    "neutrophil_lymphocyte_ratio": "Neutrophil/Lymphocyte Ratio",
}

_WHITESPACE = re.compile(r"\s+")
_NON_ID = re.compile(r"[^a-z0-9]+")


def _clean(name: str) -> str:
    return _WHITESPACE.sub(" ", name.strip().lower())


def slugify(name: str) -> str:
    """snake_case id for a lab name that has no alias entry."""
    return _NON_ID.sub("_", name.lower()).strip("_")


def normalize_biomarker_name(name: str, unit: str = "") -> str:
    """Map a lab test name (and its unit) to a canonical id.

    White cell differentials are disambiguated by unit: ``%`` selects the
    ``*_percent`` id, anything else the absolute count. Unknown names are
    slugified so they still get a stable id.
    """
    cleaned = _clean(name)
    canonical = NAME_TO_ID.get(cleaned) or NAME_TO_ID.get(cleaned.rstrip(" %")) or slugify(cleaned)

    is_percent = "%" in unit
    if canonical in DIFFERENTIAL_IDS and is_percent:
        return _PERCENT_IDS[canonical]
    if canonical in _ABSOLUTE_IDS and unit and not is_percent:
        return _ABSOLUTE_IDS[canonical]
    return canonical


def display_name(biomarker_id: str) -> str:
    """Human-readable name for a canonical id."""
    if biomarker_id in DISPLAY_NAMES:
        return DISPLAY_NAMES[biomarker_id]
    return biomarker_id.replace("_", " ").title()
