"""
Cross-cutting analysis - which CFR titles are shared between agencies.

A CFR title can be split across several agencies; the more agencies share a
title, the more coordination its rules need. Titles are stored per agency with
composite codes ("2-agriculture-department"), so we group by the leading CFR
number and collect the distinct agencies under each.

Impact levels:
    HIGH    4 or more agencies
    MEDIUM  exactly 3
    LOW     1 or 2
"""
from __future__ import annotations

import logging
import re
from typing import Any, Sequence

from .complexity import round_half_up
from ..models import AgencyRef, CrossCuttingTitle, ImpactLevel, Title

logger = logging.getLogger(__name__)

_AGENCY_SUFFIX = re.compile(r" \([^)]+\)$")

SEVERITY_LEVELS = (
    (2, "MINIMAL"),
    (4, "LOW"),
    (6, "MODERATE"),
    (11, "HIGH"),
)
MAX_SEVERITY_SCORE = 30


def classify_impact(agency_count: int) -> ImpactLevel:
    if agency_count >= 4:
        return ImpactLevel.HIGH
    if agency_count >= 3:
        return ImpactLevel.MEDIUM
    return ImpactLevel.LOW


def group_titles(titles: Sequence[Title]) -> list[CrossCuttingTitle]:
    """
    Group per-agency titles by CFR number, largest agency count first.

    The first title seen for a number supplies the display name, minus any
    trailing "(Agency Name)" suffix. Titles whose code does not start with a
    CFR number are left out.
    """
    names: dict[int, str] = {}
    agencies: dict[int, list[AgencyRef]] = {}

    for title in titles:
        if not title.cfr_number.isdecimal():
            logger.warning(f"Skipping title {title.id} with non-numeric code {title.code!r}")
            continue
        number = int(title.cfr_number)
        if number not in names:
            names[number] = _AGENCY_SUFFIX.sub("", title.name)
            agencies[number] = []
        if all(a.id != title.agency.id for a in agencies[number]):
            agencies[number].append(title.agency)

    grouped = [
        CrossCuttingTitle(
            cfr_number=number,
            name=names[number],
            agencies=refs,
            impact_level=classify_impact(len(refs)),
        )
        for number, refs in agencies.items()
    ]
    # Stable sort keeps first-seen order among equal counts
    grouped.sort(key=lambda t: t.agency_count, reverse=True)
    return grouped


def title_to_dict(title: CrossCuttingTitle, agency_id: int | None = None) -> dict[str, Any]:
    data: dict[str, Any] = {
        "cfrNumber": title.cfr_number,
        "name": title.name,
        "agencyCount": title.agency_count,
        "agencies": [a.model_dump() for a in title.agencies],
        "impactLevel": title.impact_level.value,
    }
    if agency_id is not None:
        data["sharedWith"] = [a.model_dump() for a in title.agencies if a.id != agency_id]
        data["isShared"] = title.is_shared
    return data


def summarize_all(grouped: Sequence[CrossCuttingTitle]) -> dict[str, Any]:
    """Corpus-wide summary across every CFR title."""
    relationships = sum(t.agency_count for t in grouped)
    return {
        "totalCfrTitles": len(grouped),
        "highImpact": sum(1 for t in grouped if t.impact_level is ImpactLevel.HIGH),
        "mediumImpact": sum(1 for t in grouped if t.impact_level is ImpactLevel.MEDIUM),
        "lowImpact": sum(1 for t in grouped if t.impact_level is ImpactLevel.LOW),
        "totalTitleAgencyRelationships": relationships,
        "averageAgenciesPerTitle": relationships / len(grouped) if grouped else 0,
    }


def analyze_all(titles: Sequence[Title]) -> dict[str, Any]:
    grouped = group_titles(titles)
    return {
        "summary": summarize_all(grouped),
        "crossCuttingTitles": [title_to_dict(t) for t in grouped],
    }


def analyze_agency(titles: Sequence[Title], agency: AgencyRef) -> dict[str, Any]:
    """
    Cross-cutting view restricted to the titles an agency takes part in.

    `titles` must be every title in the corpus, not just the agency's own,
    so that sharing can be detected.
    """
    relevant = [t for t in group_titles(titles) if any(a.id == agency.id for a in t.agencies)]
    shared = [t for t in relevant if t.is_shared]
    partners = {a.name for t in shared for a in t.agencies if a.id != agency.id}

    summary = {
        "agencyName": agency.name,
        "totalCfrTitles": len(relevant),
        "sharedTitles": len(shared),
        "exclusiveTitles": len(relevant) - len(shared),
        "highImpactShared": sum(1 for t in shared if t.impact_level is ImpactLevel.HIGH),
        "sharedWithAgencies": len(partners),
        "crossCuttingPercentage": len(shared) / len(relevant) * 100 if relevant else 0,
    }
    return {
        "summary": summary,
        "crossCuttingTitles": [title_to_dict(t, agency.id) for t in relevant],
        "selectedAgency": agency.model_dump(),
    }


def cross_cutting_severity(summary: dict[str, Any], titles: Sequence[dict[str, Any]]) -> dict[str, Any]:
    """
    Weighted severity of an agency's cross-cutting exposure, 0-30.

    Combines the impact mix of its titles, how many partner agencies it shares
    with (capped), the share of its titles that are shared, and a bonus for
    several high-impact titles.
    """
    if not titles:
        return {"score": 0, "level": "MINIMAL"}

    weights = {ImpactLevel.HIGH.value: 3, ImpactLevel.MEDIUM.value: 2}
    impact_score = sum(weights.get(t["impactLevel"], 1) for t in titles)
    breadth_score = min(summary["sharedWithAgencies"] * 2, 10)
    total = summary["totalCfrTitles"]
    density_score = summary["sharedTitles"] / total * 10 if total else 0
    high_impact = summary["highImpactShared"]
    high_impact_bonus = high_impact * 1.5 if high_impact > 1 else 0

    raw = impact_score * 0.4 + breadth_score * 0.3 + density_score * 0.2 + high_impact_bonus * 0.1
    score = min(raw, MAX_SEVERITY_SCORE)

    level = "CRITICAL"
    for threshold, name in SEVERITY_LEVELS:
        if score < threshold:
            level = name
            break

    return {"score": round_half_up(score), "level": level}
