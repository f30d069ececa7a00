"""Shared test fixtures for Vitals tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "mock")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("CACHE_DB_PATH", ":memory:")
    monkeypatch.setenv("VITALS_DATA_DIR", str(tmp_path / "data"))

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from vitals.core.llm.providers.mock import MockProvider  # noqa: E402
from vitals.core.storage.codec import PayloadCodec  # noqa: E402
from vitals.core.storage.database import CacheDatabase  # noqa: E402
from vitals.core.storage.repository import ExtractionCacheRepository  # noqa: E402
from vitals.domains.health.extraction.orchestrator import ExtractionOrchestrator  # noqa: E402
from vitals.domains.health.extraction.structured import (  # noqa: E402
    BIOMARKER_TOOL,
    BODY_COMP_TOOL,
    StructuredExtractor,
)
from vitals.domains.health.store import HealthStateStore  # noqa: E402


# ---------------------------------------------------------------------------
# Sample documents
# ---------------------------------------------------------------------------

# Text layer of a typical US lab report (Quest-style "Name Value Unit Range")
SAMPLE_LAB_TEXT = """\
COMPREHENSIVE METABOLIC PANEL
Patient Age: 45 years
Albumin 4.5 g/dL 3.6-5.1
Creatinine 0.9 mg/dL 0.60-1.29
Glucose 90 mg/dL 65-99
BUN 15 mg/dL 7-25
Alkaline Phosphatase 70 U/L 36-130
C-Reactive Protein 0.5 mg/L <3.0
COMPLETE BLOOD COUNT
White Blood Cell Count 6.0 Thousand/uL 3.8-10.8
Lymphocytes 35 %
MCV 88 fL 80-100
RDW 12.5 % 11.0-15.0
LIPID PANEL
Total Cholesterol 180 mg/dL <200
HDL Cholesterol 60 mg/dL >39
LDL Cholesterol 100 mg/dL <100
Triglycerides 80 mg/dL <150
"""

SAMPLE_DEXA_TEXT = """\
DEXA BODY COMPOSITION REPORT
Total Body Fat: 18.5%
Lean Mass: 140.2 lbs
Fat Mass: 32.1 lbs
Total Mass: 175.0 lbs
Visceral Fat: 0.8 lbs
"""


def structured_biomarker_payload(count: int = 12, age: float | None = 45) -> dict[str, Any]:
    """A structured extractor payload with ``count`` plausible markers."""
    markers = [
        ("Albumin", 4.5, "g/dL", "Metabolic"),
        ("Creatinine", 0.9, "mg/dL", "Metabolic"),
        ("Glucose", 90, "mg/dL", "Metabolic"),
        ("C-Reactive Protein", 0.5, "mg/L", "Inflammation"),
        ("Lymphocytes", 35, "%", "CBC"),
        ("MCV", 88, "fL", "CBC"),
        ("RDW", 12.5, "%", "CBC"),
        ("Alkaline Phosphatase", 70, "U/L", "Liver"),
        ("White Blood Cell Count", 6.0, "K/uL", "CBC"),
        ("HDL Cholesterol", 60, "mg/dL", "Lipids"),
        ("Triglycerides", 80, "mg/dL", "Lipids"),
        ("LDL Cholesterol", 100, "mg/dL", "Lipids"),
        ("Total Cholesterol", 180, "mg/dL", "Lipids"),
        ("BUN", 15, "mg/dL", "Metabolic"),
    ]
    return {
        "patient_age": age,
        "biomarkers": [
            {
                "name": name,
                "value": value,
                "unit": unit,
                "reference_range": None,
                "status": "normal",
                "category": category,
            }
            for name, value, unit, category in markers[:count]
        ],
    }


def structured_body_comp_payload() -> dict[str, Any]:
    return {
        "body_fat_percent": 18.5,
        "lean_mass": 140.2,
        "fat_mass": 32.1,
        "total_mass": 175.0,
        "vat_mass": 0.8,
    }


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def cache_db():
    """Create an in-memory CacheDatabase for testing."""
    db = CacheDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def payload_codec() -> PayloadCodec:
    """Create a PayloadCodec with a fresh Fernet key."""
    return PayloadCodec(PayloadCodec.generate_key())


@pytest.fixture
def cache_repository(cache_db, payload_codec) -> ExtractionCacheRepository:
    """Create an ExtractionCacheRepository backed by in-memory SQLite."""
    return ExtractionCacheRepository(cache_db, payload_codec)


# ---------------------------------------------------------------------------
# Extraction fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_provider() -> MockProvider:
    """A MockProvider answering both extraction tools with sufficient data."""
    return MockProvider(
        payloads={
            BIOMARKER_TOOL.name: structured_biomarker_payload(),
            BODY_COMP_TOOL.name: structured_body_comp_payload(),
        }
    )


@pytest.fixture
def orchestrator(mock_provider: MockProvider) -> ExtractionOrchestrator:
    return ExtractionOrchestrator(StructuredExtractor(mock_provider), timeout=5.0)


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """An empty organized data directory."""
    root = tmp_path / "data"
    for name in ("Bloodwork", "Body Scan", "Activity"):
        (root / name).mkdir(parents=True)
    return root


def fake_pdf_text(path: str) -> str:
    """Text extractor for tests: '.pdf' fixtures are plain text on disk."""
    return Path(path).read_text(encoding="utf-8")


@pytest.fixture
def make_store(data_dir: Path, cache_repository: ExtractionCacheRepository, orchestrator):
    """Factory for HealthStateStore instances over the shared fixtures."""

    def _make(**overrides) -> HealthStateStore:
        kwargs = dict(
            data_dir=data_dir,
            repository=cache_repository,
            orchestrator=orchestrator,
            text_extractor=fake_pdf_text,
        )
        kwargs.update(overrides)
        return HealthStateStore(**kwargs)

    return _make
