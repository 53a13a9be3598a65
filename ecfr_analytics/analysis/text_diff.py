"""
Text Diff Engine for comparing an agency's sections across two dates.

Sections are matched by identifier:
- in the later version only  -> added
- in the earlier version only -> removed
- in both, with different text or word count -> changed

For changed sections we also measure how much the text moved, using
difflib.SequenceMatcher on whitespace-normalized text, and bucket the result
into a change magnitude.

Usage:
    from ecfr_analytics.analysis.text_diff import compare_versions

    changes = compare_versions(from_sections, to_sections, from_date, to_date)
    print(len(changes.added), changes.word_count_delta)
"""

from __future__ import annotations

import difflib
import re
from datetime import date
from typing import Sequence

from ..models import ChangeMagnitude, HistoricalChanges, Section, SectionChange


class SectionDiff:
    """
    Measure the difference between two versions of one section's text.

    Usage:
        differ = SectionDiff()
        differ.similarity(old_text, new_text)   # 0.0 - 1.0
        differ.magnitude(old_text, new_text)    # ChangeMagnitude
    """

    def similarity(self, old_text: str, new_text: str) -> float:
        """Ratio of matching content, ignoring whitespace and quote/dash styling."""
        if not old_text and not new_text:
            return 1.0
        if not old_text or not new_text:
            return 0.0

        old_normalized = self._normalize_text(old_text)
        new_normalized = self._normalize_text(new_text)
        if old_normalized == new_normalized:
            return 1.0

        return difflib.SequenceMatcher(None, old_normalized, new_normalized).ratio()

    def magnitude(self, old_text: str, new_text: str) -> ChangeMagnitude:
        return self.categorize(self.similarity(old_text, new_text), changed=old_text != new_text)

    @staticmethod
    def categorize(similarity_score: float, changed: bool = True) -> ChangeMagnitude:
        """Categorize the magnitude of changes."""
        if not changed:
            return ChangeMagnitude.NONE
        if similarity_score >= 0.95:
            return ChangeMagnitude.MINOR
        if similarity_score >= 0.80:
            return ChangeMagnitude.MODERATE
        if similarity_score >= 0.50:
            return ChangeMagnitude.SUBSTANTIAL
        return ChangeMagnitude.MAJOR

    def _normalize_text(self, text: str) -> str:
        """Normalize whitespace and formatting for comparison."""
        # Normalize various whitespace
        text = re.sub(r"\s+", " ", text)
        # Normalize quotes
        text = text.replace("“", '"').replace("”", '"')
        text = text.replace("‘", "'").replace("’", "'")
        # Normalize dashes
        text = text.replace("–", "-").replace("—", "-")
        return text.strip()


def compare_versions(
    from_sections: Sequence[Section],
    to_sections: Sequence[Section],
    from_date: date,
    to_date: date,
    differ: SectionDiff | None = None,
) -> HistoricalChanges:
    """
    Diff two snapshots of an agency's sections.

    Identical snapshots (including the same date twice) yield no changes and a
    zero word-count delta.
    """
    differ = differ or SectionDiff()
    old_by_id = {s.identifier: s for s in from_sections}
    new_by_id = {s.identifier: s for s in to_sections}

    added = [s for s in to_sections if s.identifier not in old_by_id]
    removed = [s for s in from_sections if s.identifier not in new_by_id]

    changed: list[SectionChange] = []
    for section in to_sections:
        old = old_by_id.get(section.identifier)
        if old is None:
            continue
        if old.text == section.text and old.word_count == section.word_count:
            continue

        similarity = differ.similarity(old.text, section.text)
        changed.append(
            SectionChange(
                identifier=section.identifier,
                label=section.label,
                old_word_count=old.word_count,
                new_word_count=section.word_count,
                similarity=round(similarity, 4),
                magnitude=SectionDiff.categorize(similarity),
            )
        )

    word_count_delta = sum(s.word_count for s in to_sections) - sum(s.word_count for s in from_sections)

    return HistoricalChanges(
        from_date=from_date,
        to_date=to_date,
        added=added,
        removed=removed,
        changed=changed,
        word_count_delta=word_count_delta,
    )
