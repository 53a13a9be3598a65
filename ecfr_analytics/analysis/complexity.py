"""
Complexity Estimator - a sampled, extrapolated complexity score per agency.

Counting cross-references and obligation terms over every section an agency
owns is too slow for a request/response cycle (large departments hold tens of
thousands of sections). Instead we read a bounded sample, count inside it, and
scale the counts up by total_sections / sample_size.

    raw_score = round_half_up(sections * 0.5 + cross_references * 2 + technical_terms * 0.1)

Volume dominates mildly, cross-references weigh most per occurrence, and
obligation vocabulary weighs least.

The pure functions here take already-fetched samples and are unit-testable
without a database. ComplexityEstimator binds them to a RegulationStore.

Usage:
    estimate = estimate_from_sample(1200, samples)
    print(estimate.raw_score)

    estimator = ComplexityEstimator(store, sample_size=100)
    estimator.estimate(agency_id=42)
"""
from __future__ import annotations

import logging
import math
import re
from typing import TYPE_CHECKING, Iterable, Sequence

from ..models import ComplexityEstimate, SectionSample, TechnicalVocabulary
from ..parsers.citations import count_cross_references

if TYPE_CHECKING:
    from ..graph.store import RegulationStore

logger = logging.getLogger(__name__)


# =============================================================================
# Scoring Policy
# =============================================================================

SECTION_WEIGHT = 0.5
CROSS_REFERENCE_WEIGHT = 2.0
TECHNICAL_TERM_WEIGHT = 0.1

# Samples larger than this are never read for a single estimate
SAMPLING_THRESHOLD = 100

MIN_HIERARCHY_DEPTH = 1
MAX_HIERARCHY_DEPTH = 10

OBLIGATION_TERMS = ("shall", "must", "required", "prohibited", "compliance")
EXTENDED_TERMS = OBLIGATION_TERMS + ("pursuant", "thereunder", "thereof", "hereby", "wherein")

VOCABULARY_TERMS: dict[TechnicalVocabulary, tuple[str, ...]] = {
    TechnicalVocabulary.OBLIGATION: OBLIGATION_TERMS,
    TechnicalVocabulary.EXTENDED: EXTENDED_TERMS,
}

_TERM_PATTERNS: dict[TechnicalVocabulary, re.Pattern[str]] = {
    vocabulary: re.compile(r"\b(" + "|".join(terms) + r")\b", re.IGNORECASE)
    for vocabulary, terms in VOCABULARY_TERMS.items()
}

_DESIGNATOR = re.compile(r"\([a-zA-Z0-9]+\)")


# =============================================================================
# Pure Functions
# =============================================================================


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (0.5 -> 1, 2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def count_technical_terms(
    text: str,
    vocabulary: TechnicalVocabulary = TechnicalVocabulary.OBLIGATION,
) -> int:
    """Count whole-word, case-insensitive occurrences of the vocabulary's terms."""
    if not text:
        return 0
    return len(_TERM_PATTERNS[vocabulary].findall(text))


def compute_raw_score(section_count: int, cross_references: int, technical_terms: int) -> int:
    """
    Combine the three features into a raw score.

    Negative inputs are treated as zero so the score is never negative.
    """
    complexity = (
        max(section_count, 0) * SECTION_WEIGHT
        + max(cross_references, 0) * CROSS_REFERENCE_WEIGHT
        + max(technical_terms, 0) * TECHNICAL_TERM_WEIGHT
    )
    return round_half_up(complexity)


def relative_score(raw_score: float, maximum: float) -> int:
    """Normalize a raw score onto 0-100 against a maximum; 0 when there is no maximum."""
    if maximum <= 0:
        return 0
    scaled = round_half_up(raw_score / maximum * 100)
    return int(min(max(scaled, 0), 100))


def hierarchy_depth(identifiers: Iterable[str]) -> int:
    """
    Estimate how deeply sections nest from their identifiers.

    "1.1.1.1" has depth 4, "1-2" depth 2, and each parenthesised designator
    such as "(a)" adds one. The result is clamped to 1..10.
    """
    depth = 0
    for identifier in identifiers:
        identifier = identifier or ""
        dot_depth = identifier.count(".") + 1
        dash_depth = identifier.count("-") + 1
        paren_depth = len(_DESIGNATOR.findall(identifier))
        depth = max(depth, max(dot_depth, dash_depth) + paren_depth)

    if depth == 0:
        return MIN_HIERARCHY_DEPTH
    return min(max(depth, MIN_HIERARCHY_DEPTH), MAX_HIERARCHY_DEPTH)


def estimate_from_sample(
    section_count: int,
    samples: Sequence[SectionSample],
    vocabulary: TechnicalVocabulary = TechnicalVocabulary.OBLIGATION,
) -> ComplexityEstimate:
    """
    Extrapolate sample statistics to the full section population.

    An agency with no sections (or nothing to sample) has zero complexity;
    that is a valid result, not a failure.
    """
    if section_count <= 0 or not samples:
        return ComplexityEstimate(section_count=max(section_count, 0))

    cross_references_in_sample = 0
    technical_terms_in_sample = 0
    for sample in samples:
        cross_references_in_sample += count_cross_references(sample.text)
        technical_terms_in_sample += count_technical_terms(sample.text, vocabulary)

    scale_factor = section_count / len(samples)
    cross_references = round_half_up(cross_references_in_sample * scale_factor)
    technical_terms = round_half_up(technical_terms_in_sample * scale_factor)

    return ComplexityEstimate(
        raw_score=compute_raw_score(section_count, cross_references, technical_terms),
        section_count=section_count,
        cross_references=cross_references,
        technical_terms=technical_terms,
        sample_size=len(samples),
        hierarchy_depth=hierarchy_depth(s.identifier for s in samples),
    )


# =============================================================================
# Store-Bound Estimator
# =============================================================================


class ComplexityEstimator:
    """
    Computes an agency's raw complexity from the graph store.

    Every call reads fresh data; there is no caching at this level.
    Store failures propagate to the caller.
    """

    def __init__(
        self,
        store: RegulationStore,
        sample_size: int = SAMPLING_THRESHOLD,
        vocabulary: TechnicalVocabulary = TechnicalVocabulary.OBLIGATION,
    ):
        if sample_size <= 0:
            raise ValueError("sample_size must be positive")
        self.store = store
        self.sample_size = min(sample_size, SAMPLING_THRESHOLD)
        self.vocabulary = vocabulary

    def with_sample_size(self, sample_size: int) -> ComplexityEstimator:
        """A sibling estimator sharing store and vocabulary but sampling less."""
        return ComplexityEstimator(self.store, sample_size, self.vocabulary)

    def estimate(self, agency_id: int, section_count: int | None = None) -> ComplexityEstimate:
        """
        Estimate complexity for one agency.

        Args:
            agency_id: The agency to analyse
            section_count: Known total, when the caller already counted (saves a query)
        """
        if section_count is None:
            section_count = self.store.count_sections(agency_id)
        if section_count <= 0:
            return ComplexityEstimate()

        samples = self.store.sample_sections(agency_id, min(section_count, self.sample_size))
        estimate = estimate_from_sample(section_count, samples, self.vocabulary)
        logger.debug(
            f"Agency {agency_id}: {section_count} sections, sampled {estimate.sample_size}, "
            f"raw score {estimate.raw_score}"
        )
        return estimate
