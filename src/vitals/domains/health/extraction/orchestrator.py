"""Two-stage extraction of one document: structured primary, pattern fallback.

The result is a tagged :class:`ExtractionOutcome` rather than an exception:

- ``primary``: the structured extractor answered in time with enough data.
  Only this outcome may be cached.
- ``fallback``: the primary stage was skipped, failed, timed out or came
  back thin; pattern rules ran and any partial primary data was overlaid
  on their result.
- ``failed``: neither stage produced a single value.

Cancellation of the surrounding task propagates out of the primary await
untouched.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Literal, Union

from vitals.domains.health.extraction import patterns
from vitals.domains.health.extraction.merge import merge_biomarkers, merge_body_comp
from vitals.domains.health.extraction.structured import StructuredExtractor
from vitals.domains.health.models import BiomarkerSnapshot, BodyCompositionSnapshot

logger = logging.getLogger(__name__)

OutcomeKind = Literal["primary", "fallback", "failed"]
ExtractionDomain = Literal["bloodwork", "dexa"]
Snapshot = Union[BiomarkerSnapshot, BodyCompositionSnapshot]

# Any one of these makes a body composition result worth keeping
MEANINGFUL_BODY_COMP_FIELDS: tuple[str, ...] = (
    "body_fat_percent",
    "lean_mass",
    "fat_mass",
    "total_mass",
    "vat_mass",
)


@dataclass
class ExtractionOutcome:
    """Result of extracting one document."""

    outcome: OutcomeKind
    data: Snapshot
    reason: str | None = None

    @property
    def cacheable(self) -> bool:
        return self.outcome == "primary"


def empty_snapshot(domain: ExtractionDomain) -> Snapshot:
    return BiomarkerSnapshot() if domain == "bloodwork" else BodyCompositionSnapshot()


def has_meaningful_body_comp(snapshot: BodyCompositionSnapshot) -> bool:
    return any(getattr(snapshot, name) is not None for name in MEANINGFUL_BODY_COMP_FIELDS)


class ExtractionOrchestrator:
    """Runs primary then (when needed) fallback extraction over document text.

    Usage::

        orchestrator = ExtractionOrchestrator(StructuredExtractor(provider), timeout=60)
        result = await orchestrator.extract_document(text, "bloodwork")
        if result.cacheable:
            ...
    """

    def __init__(
        self,
        structured: StructuredExtractor | None = None,
        timeout: float = 60.0,
        min_biomarker_count: int = 10,
    ) -> None:
        self.structured = structured
        self.timeout = timeout
        self.min_biomarker_count = min_biomarker_count

    # ------------------------------------------------------------------
    # Sufficiency
    # ------------------------------------------------------------------

    def is_sufficient(self, data: Snapshot) -> bool:
        if isinstance(data, BiomarkerSnapshot):
            return len(data.measurements) >= self.min_biomarker_count
        return has_meaningful_body_comp(data)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def run_primary(self, text: str, domain: ExtractionDomain) -> tuple[Snapshot | None, str | None]:
        """Run the structured extractor under the timeout.

        Returns ``(data, None)`` on success or ``(None, reason)`` when the
        call raised or timed out.
        """
        if self.structured is None:
            return None, "no structured extractor configured"
        if domain == "bloodwork":
            call = self.structured.extract_biomarkers(text)
        else:
            call = self.structured.extract_body_composition(text)

        try:
            return await asyncio.wait_for(call, timeout=self.timeout), None
        except asyncio.TimeoutError:
            logger.warning(
                "Structured %s extraction timed out after %.1fs; using pattern fallback",
                domain,
                self.timeout,
            )
            return None, f"timed out after {self.timeout:g}s"
        except Exception as exc:
            logger.warning(
                "Structured %s extraction failed (%s); using pattern fallback",
                domain,
                exc,
            )
            return None, f"{type(exc).__name__}: {exc}"

    @staticmethod
    def run_fallback(text: str, domain: ExtractionDomain) -> Snapshot:
        if domain == "bloodwork":
            return patterns.extract_biomarkers(text)
        return patterns.extract_body_composition(text)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def extract_document(
        self,
        text: str,
        domain: ExtractionDomain,
        use_primary: bool = True,
    ) -> ExtractionOutcome:
        """Extract one document's text.

        Args:
            text: The document's text content.
            domain: ``bloodwork`` or ``dexa``.
            use_primary: False to run the pattern rules only.

        Returns:
            The tagged outcome. Never raises for extractor failures.
        """
        if not text.strip():
            return ExtractionOutcome("failed", empty_snapshot(domain), "document has no text")

        primary: Snapshot | None = None
        if not use_primary:
            reason = "primary extraction not used for this document"
        elif self.structured is None:
            reason = "no structured extractor configured"
        else:
            primary, reason = await self.run_primary(text, domain)
            if primary is not None:
                if self.is_sufficient(primary):
                    return ExtractionOutcome("primary", primary)
                reason = "primary result below sufficiency threshold"
                logger.info("Structured %s extraction insufficient; merging pattern fallback", domain)

        fallback = self.run_fallback(text, domain)
        if primary is None:
            data = fallback
        elif isinstance(primary, BiomarkerSnapshot):
            data = merge_biomarkers(fallback, primary)
        else:
            data = merge_body_comp(fallback, primary)

        if data.is_empty():
            logger.warning("No %s values extracted from document (%s)", domain, reason)
            return ExtractionOutcome("failed", data, reason)
        return ExtractionOutcome("fallback", data, reason)
