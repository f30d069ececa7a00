"""Tests for biomarker name normalization."""

from __future__ import annotations

import pytest

from vitals.domains.health.extraction.names import (
    display_name,
    normalize_biomarker_name,
    slugify,
)


class TestAliases:
    @pytest.mark.parametrize(
        "name",
        ["C-Reactive Protein", "hs-CRP", "HS CRP", "crp", "  High   Sensitivity CRP "],
    )
    def test_crp_aliases(self, name):
        assert normalize_biomarker_name(name) == "crp"

    def test_case_and_whitespace_insensitive(self):
        assert normalize_biomarker_name("LDL   CHOLESTEROL") == "ldl"
        assert normalize_biomarker_name("Hemoglobin A1c") == "hba1c"

    def test_unknown_name_is_slugified(self):
        assert normalize_biomarker_name("Omega-3 Index (RBC)") == "omega_3_index_rbc"


class TestDifferentials:
    def test_percent_unit_selects_percent_id(self):
        assert normalize_biomarker_name("Lymphocytes", "%") == "lymphocyte_percent"
        assert normalize_biomarker_name("Neutrophils", "%") == "neutrophils_percent"

    def test_count_unit_selects_absolute_id(self):
        assert normalize_biomarker_name("Lymphocytes", "cells/uL") == "lymphocytes"
        assert normalize_biomarker_name("Lymphocytes %", "cells/uL") == "lymphocytes"

    def test_percent_name_without_unit(self):
        assert normalize_biomarker_name("Lymphocytes %") == "lymphocyte_percent"


class TestDisplay:
    def test_known_id(self):
        assert display_name("homa_ir") == "HOMA-IR"

    def test_unknown_id_titled(self):
        assert display_name("omega_3_index") == "Omega 3 Index"

    def test_slugify(self):
        assert slugify("Vitamin B-12") == "vitamin_b_12"
