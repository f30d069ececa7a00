"""Derived biomarkers: fixed formulas over values already measured."""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable

from vitals.domains.health.extraction.names import display_name
from vitals.domains.health.models import Biomarker

CALCULATED_CATEGORY = "Calculated"


def round_half_away(value: float, digits: int) -> float:
    """Round to ``digits`` decimals, ties away from zero.

    Uses the shortest repr of the float so 0.125 rounds to 0.13 rather than
    falling victim to its binary expansion.
    """
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _positive(values: dict[str, float], *keys: str) -> bool:
    return all(values.get(k) is not None and values[k] > 0 for k in keys)


def _present(values: dict[str, float], *keys: str) -> bool:
    return all(values.get(k) is not None for k in keys)


def _nlr(v: dict[str, float]) -> float | None:
    if _positive(v, "neutrophils", "lymphocytes"):
        return v["neutrophils"] / v["lymphocytes"]
    if _positive(v, "neutrophils_percent", "lymphocyte_percent"):
        return v["neutrophils_percent"] / v["lymphocyte_percent"]
    return None


# (id, unit, formula); a formula returns None when its inputs are unusable
_FORMULAS: tuple[tuple[str, str, Callable[[dict[str, float]], float | None]], ...] = (
    (
        "non_hdl_cholesterol",
        "mg/dL",
        lambda v: v["total_cholesterol"] - v["hdl"] if _present(v, "total_cholesterol", "hdl") else None,
    ),
    (
        "tg_hdl_ratio",
        "ratio",
        lambda v: v["triglycerides"] / v["hdl"]
        if _present(v, "triglycerides") and _positive(v, "hdl")
        else None,
    ),
    (
        "ldl_hdl_ratio",
        "ratio",
        lambda v: v["ldl"] / v["hdl"] if _present(v, "ldl") and _positive(v, "hdl") else None,
    ),
    (
        "total_cholesterol_hdl_ratio",
        "ratio",
        lambda v: v["total_cholesterol"] / v["hdl"]
        if _present(v, "total_cholesterol") and _positive(v, "hdl")
        else None,
    ),
    (
        "homa_ir",
        "index",
        lambda v: v["glucose"] * v["fasting_insulin"] / 405
        if _present(v, "glucose", "fasting_insulin")
        else None,
    ),
    (
        "tyg_index",
        "index",
        lambda v: math.log(v["triglycerides"] * v["glucose"] / 2)
        if _positive(v, "triglycerides", "glucose")
        else None,
    ),
    (
        "bun_creatinine_ratio",
        "ratio",
        lambda v: v["bun"] / v["creatinine"] if _present(v, "bun") and _positive(v, "creatinine") else None,
    ),
    (
        "albumin_globulin_ratio",
        "ratio",
        lambda v: v["albumin"] / v["globulin"] if _present(v, "albumin") and _positive(v, "globulin") else None,
    ),
    ("neutrophil_lymphocyte_ratio", "ratio", _nlr),
)

DERIVED_IDS: frozenset[str] = frozenset(biomarker_id for biomarker_id, _, _ in _FORMULAS)


def calculate_derived_biomarkers(raw_values: dict[str, float]) -> list[Biomarker]:
    """Compute every derived biomarker whose inputs are known.

    Args:
        raw_values: Canonical id -> measured value.

    Returns:
        Calculated biomarkers rounded to two decimals, in a fixed order.
    """
    derived: list[Biomarker] = []
    for biomarker_id, unit, formula in _FORMULAS:
        value = formula(raw_values)
        if value is None or not math.isfinite(value):
            continue
        derived.append(
            Biomarker(
                id=biomarker_id,
                name=display_name(biomarker_id),
                value=round_half_away(value, 2),
                unit=unit,
                category=CALCULATED_CATEGORY,
                provenance="calculated",
            )
        )
    return derived
