"""Levine PhenoAge biological age estimate.

Levine et al. (2018), "An epigenetic biomarker of aging for lifespan and
healthspan", Aging 10(4). DOI: 10.18632/aging.101414

Inputs use US lab units (albumin g/dL, creatinine and glucose mg/dL, CRP
mg/L, WBC 10^3/uL); glucose is converted to mmol/L for the published
coefficients.
"""

from __future__ import annotations

import logging
import math
from typing import Mapping

from vitals.domains.health.models import PHENOAGE_INPUTS, DerivedAgeResult

logger = logging.getLogger(__name__)

INTERCEPT = -19.9067
GAMMA = 0.0077
GLUCOSE_MG_PER_MMOL = 18.02
CRP_FLOOR = 0.01
MAX_MORTALITY = 0.9999
PHENO_AGE_BOUNDS = (0.0, 150.0)

COEFFICIENTS: dict[str, float] = {
    "albumin": -0.0336,
    "creatinine": 0.0095,
    "glucose": 0.1953,  # per mmol/L
    "crp": 0.0954,  # per ln(mg/L)
    "lymphocyte_percent": -0.012,
    "mcv": 0.0268,
    "rdw": 0.3306,
    "alkaline_phosphatase": 0.00188,
    "wbc": 0.0554,
}
AGE_COEFFICIENT = 0.0804

# Wide sanity ranges; values outside usually mean a unit mix-up
PLAUSIBLE_RANGES: dict[str, tuple[float, float]] = {
    "albumin": (1, 10),
    "creatinine": (0.1, 15),
    "glucose": (40, 500),
    "crp": (0, 100),
    "lymphocyte_percent": (1, 80),
    "mcv": (50, 150),
    "rdw": (5, 30),
    "alkaline_phosphatase": (10, 500),
    "wbc": (1, 50),
}


def resolve_inputs(values: Mapping[str, float]) -> dict[str, float] | None:
    """Collect the nine inputs, deriving lymphocyte % when only counts exist.

    Returns None when any input is missing.
    """
    inputs = {name: values.get(name) for name in PHENOAGE_INPUTS}

    lymphocytes = values.get("lymphocytes")
    wbc = inputs["wbc"]
    if inputs["lymphocyte_percent"] is None and lymphocytes is not None and wbc is not None and wbc > 0:
        # WBC in 10^3/uL, absolute lymphocytes in cells/uL
        inputs["lymphocyte_percent"] = lymphocytes / (wbc * 1000) * 100
        logger.debug("Derived lymphocyte %% from absolute count: %.1f", inputs["lymphocyte_percent"])

    missing = [name for name, value in inputs.items() if value is None]
    if missing:
        logger.debug("PhenoAge unavailable, missing: %s", ", ".join(missing))
        return None
    return inputs  # type: ignore[return-value]


def _warn_implausible(inputs: dict[str, float]) -> None:
    for name, value in inputs.items():
        low, high = PLAUSIBLE_RANGES[name]
        if value < low or value > high:
            logger.warning(
                "PhenoAge input %s=%s is outside the expected range %s-%s; check units",
                name,
                value,
                low,
                high,
            )


def mortality_score(inputs: dict[str, float], chronological_age: float) -> float:
    """Linear predictor ``xb`` of the Gompertz mortality model."""
    crp = inputs["crp"] if inputs["crp"] > 0 else CRP_FLOOR
    return (
        INTERCEPT
        + COEFFICIENTS["albumin"] * inputs["albumin"]
        + COEFFICIENTS["creatinine"] * inputs["creatinine"]
        + COEFFICIENTS["glucose"] * (inputs["glucose"] / GLUCOSE_MG_PER_MMOL)
        + COEFFICIENTS["crp"] * math.log(crp)
        + COEFFICIENTS["lymphocyte_percent"] * inputs["lymphocyte_percent"]
        + COEFFICIENTS["mcv"] * inputs["mcv"]
        + COEFFICIENTS["rdw"] * inputs["rdw"]
        + COEFFICIENTS["alkaline_phosphatase"] * inputs["alkaline_phosphatase"]
        + COEFFICIENTS["wbc"] * inputs["wbc"]
        + AGE_COEFFICIENT * chronological_age
    )


def mortality_risk(xb: float) -> float:
    """120-month mortality risk for a linear predictor."""
    try:
        exp_xb = math.exp(xb)
    except OverflowError:
        exp_xb = math.inf
    return 1 - math.exp(-exp_xb * (math.exp(120 * GAMMA) - 1) / GAMMA)


def pheno_age_from_risk(m: float) -> float:
    """Invert mortality risk to an age, clamped to [0, 150]."""
    inner = -0.00553 * math.log(1 - min(m, MAX_MORTALITY))
    if inner <= 0:
        # Zero risk maps to -inf before clamping
        return PHENO_AGE_BOUNDS[0]
    age = 141.50225 + math.log(inner) / 0.090165
    return max(PHENO_AGE_BOUNDS[0], min(PHENO_AGE_BOUNDS[1], age))


def round_tenths(value: float) -> float:
    """Round to one decimal with ties toward +inf (-0.25 -> -0.2, 0.25 -> 0.3)."""
    return math.floor(value * 10 + 0.5) / 10


def calculate_pheno_age(
    values: Mapping[str, float],
    chronological_age: float,
) -> DerivedAgeResult | None:
    """Compute PhenoAge and its delta from chronological age.

    Args:
        values: Canonical biomarker id -> value.
        chronological_age: Age in years.

    Returns:
        The result rounded to one decimal, or None when an input is missing.
    """
    inputs = resolve_inputs(values)
    if inputs is None:
        return None

    _warn_implausible(inputs)

    xb = mortality_score(inputs, chronological_age)
    m = mortality_risk(xb)
    pheno_age = round_tenths(pheno_age_from_risk(m))
    delta = round_tenths(pheno_age - chronological_age)

    logger.info("PhenoAge %.1f (chronological %.1f, delta %+.1f)", pheno_age, chronological_age, delta)
    return DerivedAgeResult(pheno_age=pheno_age, delta=delta)
