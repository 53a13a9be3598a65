"""
Section-level and agency-level text metrics: word counts and checksums.

Each section carries a word count and an MD5 checksum of its text, computed
at load time. An agency's checksum for a date is the SHA-256 of its section
checksums concatenated in identifier order, so any edit, addition or removal
of a section changes it.
"""
from __future__ import annotations

import hashlib
from typing import Sequence

from ..models import Section


def calculate_word_count(text: str) -> int:
    """Whitespace-delimited token count."""
    return len(text.split()) if text else 0


def calculate_section_checksum(text: str) -> str:
    """MD5 hex digest of a section's text."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def build_section(identifier: str, text: str, label: str | None = None) -> Section:
    """A Section with its word count and checksum filled in."""
    return Section(
        identifier=identifier,
        label=label,
        text=text,
        word_count=calculate_word_count(text),
        checksum=calculate_section_checksum(text),
    )


def total_word_count(sections: Sequence[Section]) -> int:
    return sum(s.word_count for s in sections)


def aggregate_checksum(sections: Sequence[Section]) -> str:
    """
    SHA-256 over the concatenated section checksums, ordered by identifier.

    No sections hash the empty string.
    """
    ordered = sorted(sections, key=lambda s: s.identifier)
    concatenated = "".join(s.checksum for s in ordered)
    return hashlib.sha256(concatenated.encode("utf-8")).hexdigest()
