"""
Citation Parser - Finds cross-references inside CFR section text.

Regulatory text points at other regulatory text constantly. The complexity
estimator counts those pointers, so this module recognizes the two forms that
dominate eCFR section bodies:

CFR citations:
  - 42 CFR 405.201
  - 42 C.F.R. 405.201
  - 42 C.F.R. § 405.201
  - 7 CFR 1.5

Section-mark citations (within the same title):
  - § 405.201
  - §§ 1.5
  - §1.5

Only part.section citations (numeric-dot-numeric) count. Bare part references
such as "42 CFR Part 405" name a whole part, not a cross-reference to a
provision, and are ignored.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator


class CitationType(Enum):
    """Types of cross-references we can parse."""

    CFR = auto()  # Title-qualified citation
    SECTION_MARK = auto()  # § citation within the current title


@dataclass
class ParsedCitation:
    """A cross-reference extracted from text."""

    citation_type: CitationType
    canonical: str  # Normalized form
    original: str  # As found in text
    start: int  # Start position in source text
    end: int  # End position in source text

    title: int | None = None  # CFR title, absent for § citations
    part: int | None = None
    section: str | None = None

    def __hash__(self) -> int:
        return hash(self.canonical)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParsedCitation):
            return False
        return self.canonical == other.canonical


class CitationParser:
    """
    Extracts and normalizes CFR cross-references from text.

    Usage:
        parser = CitationParser()
        citations = parser.parse("See 42 CFR 405.201 and § 405.203.")
        for cite in citations:
            print(f"{cite.citation_type}: {cite.canonical}")

        # Raw occurrence count, duplicates included
        parser.count("See § 1.5, § 1.5 and § 1.6.")  # -> 3
    """

    # ==========================================================================
    # Patterns
    # ==========================================================================

    # "42 CFR 405.201", "42 C.F.R. § 405.201"
    CFR = re.compile(
        r"(\d+)\s*"  # Title
        r"C\.?\s*F\.?\s*R\.?\s*"  # CFR with optional dots
        r"(?:§+\s*)?"  # Optional section mark
        r"(\d+)\.(\d+[a-z]*)"  # part.section
        ,
        re.IGNORECASE,
    )

    # "§ 405.201", "§§ 1.5"
    SECTION_MARK = re.compile(
        r"§+\s*"
        r"(\d+)\.(\d+[a-z]*)"
        ,
        re.IGNORECASE,
    )

    # Either form; a CFR match consumes its own § so nothing is counted twice
    ANY_REFERENCE = re.compile(
        rf"(?:{CFR.pattern})|(?:{SECTION_MARK.pattern})",
        re.IGNORECASE,
    )

    def parse(self, text: str) -> list[ParsedCitation]:
        """
        Extract all cross-references from text.

        Returns deduplicated list of citations, preserving first occurrence position.
        """
        citations: list[ParsedCitation] = []
        seen: set[str] = set()

        for cite in self._iter_citations(text):
            if cite.canonical not in seen:
                citations.append(cite)
                seen.add(cite.canonical)

        return citations

    def count(self, text: str) -> int:
        """Count every cross-reference occurrence, duplicates included."""
        if not text:
            return 0
        return sum(1 for _ in self.ANY_REFERENCE.finditer(text))

    def normalize_cfr(self, title: int, part: int, section: str) -> str:
        """Create canonical CFR citation string."""
        return f"{title} CFR {part}.{section}"

    def normalize_section_mark(self, part: int, section: str) -> str:
        """Create canonical section-mark citation string."""
        return f"§ {part}.{section}"

    # ==========================================================================
    # Internal Parsing Methods
    # ==========================================================================

    def _iter_citations(self, text: str) -> Iterator[ParsedCitation]:
        """Walk the text once, yielding each reference in position order."""
        for match in self.ANY_REFERENCE.finditer(text):
            # Groups 1-3 belong to the CFR alternative, 4-5 to the § alternative
            if match.group(1) is not None:
                title = int(match.group(1))
                part = int(match.group(2))
                section = match.group(3).lower()
                yield ParsedCitation(
                    citation_type=CitationType.CFR,
                    canonical=self.normalize_cfr(title, part, section),
                    original=match.group(0),
                    start=match.start(),
                    end=match.end(),
                    title=title,
                    part=part,
                    section=section,
                )
            else:
                part = int(match.group(4))
                section = match.group(5).lower()
                yield ParsedCitation(
                    citation_type=CitationType.SECTION_MARK,
                    canonical=self.normalize_section_mark(part, section),
                    original=match.group(0),
                    start=match.start(),
                    end=match.end(),
                    part=part,
                    section=section,
                )


# =============================================================================
# Convenience Functions
# =============================================================================

_default_parser = CitationParser()


def extract_citations(text: str) -> list[ParsedCitation]:
    """Extract all cross-references from text. Convenience wrapper around CitationParser."""
    return _default_parser.parse(text)


def count_cross_references(text: str) -> int:
    """Count cross-reference occurrences in text, duplicates included."""
    return _default_parser.count(text)
