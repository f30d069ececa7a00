"""Plain-text digest of the health state for LLM context windows."""

from __future__ import annotations

from vitals.domains.health.events.builder import format_number
from vitals.domains.health.models import HealthState

TRACKER_DISPLAY_NAMES: dict[str, str] = {
    "whoop": "Whoop",
    "apple": "Apple Health",
    "oura": "Oura Ring",
    "fitbit": "Fitbit",
    "unknown": "Unknown",
}

RECENT_DAYS = 7


def _mean(values: list[float]) -> float:
    return sum(values) / len(values)


def _biomarker_lines(state: HealthState) -> list[str]:
    measurements = state.biomarkers.measurements
    if measurements:
        lines = ["", "--- Biomarkers ---"]
        for marker in measurements:
            unit = f" {marker.unit}" if marker.unit else ""
            flag = f" [{marker.lab_flag.upper()}]" if marker.lab_flag in ("high", "low") else ""
            tag = " (calculated)" if marker.provenance == "calculated" else ""
            lines.append(f"{marker.name}: {format_number(marker.value)}{unit}{flag}{tag}")
        return lines

    known = state.biomarkers.known_values()
    if not known:
        return []
    lines = ["", "--- Biomarkers ---"]
    lines.extend(
        f"{key.replace('_', ' ').title()}: {format_number(value)}" for key, value in known.items()
    )
    return lines


def _body_comp_lines(state: HealthState) -> list[str]:
    bc = state.body_comp
    if bc.is_empty():
        return []

    lines = ["", "--- Body Composition (DEXA Scan) ---"]
    if bc.scan_date:
        lines.append(f"Scan Date: {bc.scan_date}")
    for label, value, unit in (
        ("Body Fat", bc.body_fat_percent, "%"),
        ("Lean Mass", bc.lean_mass, " lbs"),
        ("Fat Mass", bc.fat_mass, " lbs"),
        ("Total Mass", bc.total_mass, " lbs"),
        ("Bone Mineral Content", bc.bone_mineral_content, " lbs"),
    ):
        if value is not None:
            lines.append(f"{label}: {format_number(value)}{unit}")

    vat = bc.vat_mass if bc.vat_mass is not None else bc.visceral_fat
    if vat is not None:
        lines.append(f"Visceral Fat (VAT): {format_number(vat)} lbs")
    if bc.vat_volume is not None:
        lines.append(f"VAT Volume: {format_number(bc.vat_volume)} in3")

    if bc.android_fat_percent is not None or bc.gynoid_fat_percent is not None:
        lines.append("")
        lines.append("Regional Fat Distribution:")
        for label, value in (
            ("Arms", bc.arms_fat_percent),
            ("Legs", bc.legs_fat_percent),
            ("Trunk", bc.trunk_fat_percent),
            ("Android (abdominal)", bc.android_fat_percent),
            ("Gynoid (hip/thigh)", bc.gynoid_fat_percent),
        ):
            if value is not None:
                lines.append(f"  {label}: {format_number(value)}%")
        if bc.ag_ratio is not None:
            lines.append(f"  A/G Ratio: {format_number(bc.ag_ratio)} (target: < 1.0)")

    if bc.resting_metabolic_rate is not None:
        lines.append("")
        lines.append(f"Resting Metabolic Rate: {format_number(bc.resting_metabolic_rate)} cal/day")

    if bc.bone_density_t_score is not None or bc.bone_density_z_score is not None:
        lines.append("")
        lines.append("Bone Density:")
        if bc.total_bmd is not None:
            lines.append(f"  Total BMD: {format_number(bc.total_bmd)} g/cm2")
        if bc.bone_density_t_score is not None:
            lines.append(f"  T-Score: {format_number(bc.bone_density_t_score)}")
        if bc.bone_density_z_score is not None:
            lines.append(f"  Z-Score: {format_number(bc.bone_density_z_score)}")
    return lines


def _activity_lines(state: HealthState) -> list[str]:
    if not state.activity:
        return []
    recent = state.activity[-RECENT_DAYS:]
    lines = [
        "",
        f"--- Activity ({RECENT_DAYS}-day average) ---",
        f"HRV: {_mean([d.hrv for d in recent]):.1f} ms",
        f"Resting Heart Rate: {_mean([d.rhr for d in recent]):.1f} bpm",
        f"Sleep: {_mean([d.sleep_hours for d in recent]):.1f} hours",
    ]
    recovery = [d.recovery for d in recent if d.recovery is not None]
    if recovery:
        lines.append(f"Recovery: {_mean(recovery):.0f}%")
    strain = [d.strain for d in recent if d.strain is not None]
    if strain:
        lines.append(f"Strain: {_mean(strain):.1f}")
    steps = [float(d.steps) for d in recent if d.steps is not None]
    if steps:
        lines.append(f"Steps: {round(_mean(steps)):,}")
    return lines


def format_health_summary(state: HealthState) -> str:
    """Render the state as sectioned plain text; sections without data are omitted."""
    lines = ["=== HEALTH DATA SUMMARY ==="]

    if state.activity_source != "unknown":
        lines.append("")
        lines.append(f"Activity Data Source: {TRACKER_DISPLAY_NAMES[state.activity_source]}")

    if state.chronological_age is not None:
        lines.append("")
        lines.append(f"Chronological Age: {format_number(state.chronological_age)} years")
        if state.pheno_age is not None:
            lines.append(f"Biological Age (PhenoAge): {state.pheno_age.pheno_age} years")
            lines.append(f"Delta: {state.pheno_age.delta:+.1f} years")

    lines.extend(_biomarker_lines(state))
    lines.extend(_body_comp_lines(state))
    lines.extend(_activity_lines(state))

    if len(lines) == 1:
        lines.append("")
        lines.append("No health data loaded.")
    return "\n".join(lines)
