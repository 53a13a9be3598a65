"""
Core data models for the eCFR analytics service.

These Pydantic models define the shapes that flow between the graph store,
the complexity analysis layer, and the API. They're used for:
1. Typed results from the data-access layer
2. Results of complexity estimation and maximum-score resolution
3. API response schemas
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================


class ImpactLevel(str, Enum):
    """How many agencies share a CFR title."""

    HIGH = "HIGH"  # 4 or more agencies
    MEDIUM = "MEDIUM"  # exactly 3
    LOW = "LOW"  # 1 or 2


class TechnicalVocabulary(str, Enum):
    """Which regulatory-obligation vocabulary the estimator counts."""

    OBLIGATION = "obligation"  # must, shall, required, prohibited, compliance
    EXTENDED = "extended"  # obligation terms plus pursuant, thereunder, ...


class ChangeMagnitude(str, Enum):
    """Coarse size of a textual change between two section versions."""

    NONE = "none"
    MINOR = "minor"
    MODERATE = "moderate"
    SUBSTANTIAL = "substantial"
    MAJOR = "major"


# =============================================================================
# Regulatory Entities (owned by the data-access layer)
# =============================================================================


class AgencyRef(BaseModel):
    """A compact reference to an agency."""

    id: int
    name: str
    slug: str


class Agency(BaseModel):
    """
    A federal agency.

    The hierarchy is two-tier in practice: departments are top-level
    (parent_id is None) and sub-agencies point at their department.
    """

    id: int
    name: str
    slug: str
    description: str | None = None
    parent_id: int | None = None
    parent: AgencyRef | None = None
    children: list[AgencyRef] = Field(default_factory=list)

    @property
    def has_children(self) -> bool:
        return bool(self.children)

    @property
    def ref(self) -> AgencyRef:
        return AgencyRef(id=self.id, name=self.name, slug=self.slug)


class Title(BaseModel):
    """
    A CFR title as owned by one agency.

    Codes are composite: "2-agriculture-department" is CFR title 2 as held by
    the Agriculture Department.
    """

    id: int
    code: str
    name: str
    agency: AgencyRef

    @property
    def cfr_number(self) -> str:
        return self.code.split("-")[0]


class Section(BaseModel):
    """The smallest regulatory text unit, within one title version."""

    identifier: str
    label: str | None = None
    text: str = ""
    word_count: int = 0
    checksum: str = ""


class SectionSample(BaseModel):
    """A section's identifier and text, as returned by bounded sampling."""

    identifier: str = ""
    text: str = ""


# =============================================================================
# Complexity Results
# =============================================================================


class ComplexityEstimate(BaseModel):
    """
    Raw complexity of one agency's regulatory text.

    cross_references and technical_terms are already extrapolated from the
    sample to the full section population.
    """

    raw_score: int = 0
    section_count: int = 0
    cross_references: int = 0
    technical_terms: int = 0
    sample_size: int = 0
    hierarchy_depth: int = 1

    @property
    def scale_factor(self) -> float:
        if self.sample_size == 0:
            return 0.0
        return self.section_count / self.sample_size


class ScoreWinner(BaseModel):
    """The agency or agency group holding the maximum score."""

    id: int
    name: str | None = None
    score: int
    agency_count: int = 1  # > 1 for parent+children groups


class MaxScoreResolution(BaseModel):
    """Outcome of one maximum-score sweep."""

    max_value: int = 0
    winner: ScoreWinner | None = None
    analyzed: int = 0  # agencies (or parent groups) considered
    computed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CachedResolution(BaseModel):
    """A maximum-score resolution as served through a memo cell."""

    max_value: int
    winner: ScoreWinner | None = None
    analyzed: int = 0
    computed_fresh: bool
    computed_at: datetime
    expires_at: datetime


# =============================================================================
# Historical Changes
# =============================================================================


class SectionChange(BaseModel):
    """A section present in both versions whose text or word count differs."""

    identifier: str
    label: str | None = None
    old_word_count: int
    new_word_count: int
    similarity: float
    magnitude: ChangeMagnitude


class HistoricalChanges(BaseModel):
    """Differences between an agency's sections on two dates."""

    from_date: date
    to_date: date
    added: list[Section] = Field(default_factory=list)
    removed: list[Section] = Field(default_factory=list)
    changed: list[SectionChange] = Field(default_factory=list)
    word_count_delta: int = 0


# =============================================================================
# Cross-Cutting Analysis
# =============================================================================


class CrossCuttingTitle(BaseModel):
    """A CFR title number with every agency that holds part of it."""

    cfr_number: int
    name: str
    agencies: list[AgencyRef] = Field(default_factory=list)
    impact_level: ImpactLevel

    @property
    def agency_count(self) -> int:
        return len(self.agencies)

    @property
    def is_shared(self) -> bool:
        return self.agency_count > 1
