"""
Analysis API endpoints - complexity, word counts, checksums, changes over
time and cross-cutting titles.

Every handler reads through the injected RegulationStore; the maximum-score
endpoints go through the process-wide ComplexityCacheService so that memo
cells survive between requests.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ..analysis.cache import ComplexityCacheService
from ..analysis.complexity import (
    CROSS_REFERENCE_WEIGHT,
    SECTION_WEIGHT,
    TECHNICAL_TERM_WEIGHT,
    relative_score,
)
from ..analysis.cross_cutting import analyze_agency, analyze_all, cross_cutting_severity
from ..analysis.metrics import aggregate_checksum, total_word_count
from ..analysis.text_diff import compare_versions
from ..exceptions import AgencyNotFoundError, InvalidRequestError, StoreUnavailableError
from ..graph.store import RegulationStore
from ..models import CachedResolution, Section
from .dependencies import get_complexity_service, get_store, parse_date

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analysis", tags=["analysis"])


# =============================================================================
# Helper Functions
# =============================================================================


def _failure(message: str, error: Exception) -> HTTPException:
    """A 500 carrying the failure message and the underlying cause."""
    logger.error(f"{message}: {error}")
    return HTTPException(status_code=500, detail={"error": message, "details": str(error)})


def _sections_on(store: RegulationStore, agency_id: int, on_date: date | None) -> list[Section]:
    """Sections on the given date, or in the newest version that has any."""
    if on_date is None:
        on_date = store.latest_version_date(agency_id)
        if on_date is None:
            return []
    return store.list_sections(agency_id, on_date)


def _section_to_dict(section: Section) -> dict[str, Any]:
    return {
        "identifier": section.identifier,
        "label": section.label,
        "wordCount": section.word_count,
    }


def _winner_to_dict(resolution: CachedResolution) -> dict[str, Any] | None:
    return resolution.winner.model_dump() if resolution.winner else None


# =============================================================================
# Complexity
# =============================================================================


@router.get("/complexity_score/agency/{agency_id}")
async def get_agency_complexity(
    agency_id: int,
    store: RegulationStore = Depends(get_store),
    service: ComplexityCacheService = Depends(get_complexity_service),
):
    """
    Sampled complexity of one agency, with a 0-100 score relative to the
    cached top-agencies maximum.

    Unknown agencies and agencies without sections score zero.
    """
    try:
        section_count = store.count_sections(agency_id)
        estimate = service.estimator.estimate(agency_id, section_count=section_count)

        # Nothing to normalise; skip the maximum sweep
        max_score = 0
        if section_count > 0:
            max_score = service.top_agencies.get().max_value
    except StoreUnavailableError as e:
        raise _failure("Failed to calculate complexity score", e)

    return {
        "agencyId": agency_id,
        "complexity_score": estimate.raw_score,
        "relative_complexity_score": relative_score(estimate.raw_score, max_score),
        "hierarchy_depth": estimate.hierarchy_depth,
        "cross_references": estimate.cross_references,
        "technical_terms": estimate.technical_terms,
        "calculation_details": {
            "total_sections": estimate.section_count,
            "sample_size": estimate.sample_size,
            "scale_factor": round(estimate.scale_factor, 4),
            "max_complexity_score": max_score,
            "weights": {
                "sections": SECTION_WEIGHT,
                "cross_references": CROSS_REFERENCE_WEIGHT,
                "technical_terms": TECHNICAL_TERM_WEIGHT,
            },
            "vocabulary": service.estimator.vocabulary.value,
        },
    }


@router.get("/complexity_score/max")
async def get_max_complexity(service: ComplexityCacheService = Depends(get_complexity_service)):
    """Authoritative maximum over every agency. Always sweeps."""
    try:
        resolution = service.exhaustive.resolve(force_refresh=True)
    except StoreUnavailableError as e:
        raise _failure("Failed to calculate max complexity score", e)

    return {
        "max_complexity_score": resolution.max_value,
        "max_agency": _winner_to_dict(resolution),
        "total_agencies_analyzed": resolution.analyzed,
        "computed_at": resolution.computed_at.isoformat(),
    }


@router.get("/complexity_score/max-cached")
async def get_max_complexity_cached(service: ComplexityCacheService = Depends(get_complexity_service)):
    """Maximum over the agencies with the most sections, memoized for the cache TTL."""
    try:
        resolution = service.top_agencies.get()
    except StoreUnavailableError as e:
        raise _failure("Failed to calculate max complexity score", e)

    return {
        "max_complexity_score": resolution.max_value,
        "max_agency": _winner_to_dict(resolution),
        "agencies_analyzed": resolution.analyzed,
        "cached": not resolution.computed_fresh,
        "computed_at": resolution.computed_at.isoformat(),
        "cache_expires": resolution.expires_at.isoformat(),
    }


@router.get("/complexity_score/max-aggregated")
async def get_max_aggregated_complexity(
    refresh: bool = Query(default=False, description="Bypass the cached value"),
    service: ComplexityCacheService = Depends(get_complexity_service),
):
    """Largest parent+children group sum, memoized unless refresh=true."""
    try:
        resolution = service.aggregated.resolve(force_refresh=refresh)
    except StoreUnavailableError as e:
        raise _failure("Failed to calculate max aggregated complexity score", e)

    return {
        "max_aggregated_complexity_score": resolution.max_value,
        "max_agency_group": _winner_to_dict(resolution),
        "parent_agencies_analyzed": resolution.analyzed,
        "cached": not resolution.computed_fresh,
        "computed_at": resolution.computed_at.isoformat(),
        "cache_expires": resolution.expires_at.isoformat(),
    }


@router.post("/complexity_score/max-aggregated/clear-cache")
async def clear_max_aggregated_cache(service: ComplexityCacheService = Depends(get_complexity_service)):
    """Drop the aggregated maximum and recompute it immediately."""
    try:
        resolution = service.aggregated.invalidate()
    except StoreUnavailableError as e:
        raise _failure("Failed to clear cache", e)

    logger.info(f"Aggregated maximum recalculated: {resolution.max_value}")
    return {
        "success": True,
        "message": "Max aggregated complexity cache cleared and recalculated",
        "new_max_score": resolution.max_value,
    }


# =============================================================================
# Word Count, Checksum, Historical Changes
# =============================================================================


@router.get("/word_count/agency/{agency_id}")
async def get_agency_word_count(
    agency_id: int,
    requested_date: str | None = Query(
        default=None, alias="date", description="YYYY-MM-DD; latest version when omitted"
    ),
    store: RegulationStore = Depends(get_store),
):
    on_date = parse_date(requested_date)
    try:
        sections = _sections_on(store, agency_id, on_date)
    except StoreUnavailableError as e:
        raise _failure("Failed to fetch word count", e)

    return {"agencyId": agency_id, "date": requested_date, "wordCount": total_word_count(sections)}


@router.get("/checksum/agency/{agency_id}")
async def get_agency_checksum(
    agency_id: int,
    requested_date: str | None = Query(
        default=None, alias="date", description="YYYY-MM-DD; latest version when omitted"
    ),
    store: RegulationStore = Depends(get_store),
):
    """SHA-256 over the agency's section checksums in identifier order."""
    on_date = parse_date(requested_date)
    try:
        sections = _sections_on(store, agency_id, on_date)
    except StoreUnavailableError as e:
        raise _failure("Failed to calculate checksum", e)

    return {"agencyId": agency_id, "date": requested_date, "checksum": aggregate_checksum(sections)}


@router.get("/historical_changes/agency/{agency_id}")
async def get_historical_changes(
    agency_id: int,
    from_date: str | None = Query(default=None, alias="from", description="YYYY-MM-DD"),
    to_date: str | None = Query(default=None, alias="to", description="YYYY-MM-DD"),
    store: RegulationStore = Depends(get_store),
):
    """
    Sections added, removed and changed between two dates.

    Examples:
    - /analysis/historical_changes/agency/12?from=2024-01-01&to=2025-01-01
    """
    if not from_date or not to_date:
        raise InvalidRequestError("Both from and to dates are required")
    start = parse_date(from_date, "from")
    end = parse_date(to_date, "to")

    try:
        changes = compare_versions(
            store.list_sections(agency_id, start),
            store.list_sections(agency_id, end),
            start,
            end,
        )
    except StoreUnavailableError as e:
        raise _failure("Failed to fetch historical changes", e)

    return {
        "agencyId": agency_id,
        "from": from_date,
        "to": to_date,
        "changes": {
            "added": len(changes.added),
            "removed": len(changes.removed),
            "changed": len(changes.changed),
            "wordCountDelta": changes.word_count_delta,
        },
        "details": {
            "added": [_section_to_dict(s) for s in changes.added],
            "removed": [_section_to_dict(s) for s in changes.removed],
            "changed": [
                {
                    "identifier": c.identifier,
                    "label": c.label,
                    "oldWordCount": c.old_word_count,
                    "newWordCount": c.new_word_count,
                    "similarity": c.similarity,
                    "magnitude": c.magnitude.value,
                }
                for c in changes.changed
            ],
        },
    }


# =============================================================================
# Cross-Cutting Titles
# =============================================================================


@router.get("/cross-cutting")
async def get_cross_cutting(store: RegulationStore = Depends(get_store)):
    """Every CFR title number with the agencies that share it."""
    try:
        titles = store.list_titles()
    except StoreUnavailableError as e:
        raise _failure("Failed to fetch cross-cutting analysis", e)
    return analyze_all(titles)


@router.get("/cross-cutting/agency/{agency_id}")
async def get_agency_cross_cutting(agency_id: int, store: RegulationStore = Depends(get_store)):
    """Titles one agency takes part in, with who it shares them with."""
    try:
        agency = store.get_agency(agency_id)
        if agency is None:
            raise AgencyNotFoundError(agency_id)
        titles = store.list_titles()
    except StoreUnavailableError as e:
        raise _failure("Failed to fetch cross-cutting analysis", e)

    result = analyze_agency(titles, agency.ref)
    result["severity"] = cross_cutting_severity(result["summary"], result["crossCuttingTitles"])
    return result
