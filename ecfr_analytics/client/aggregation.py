"""
Aggregation Coordinator - client-side rollups for a parent agency and its
sub-agencies.

The server answers per-agency questions only. To show a department as a whole,
the client fans out one request per constituent agency and combines the
answers:

- word count: summed
- complexity: raw scores summed, then normalised against the largest
  parent+children group (max-aggregated endpoint)
- checksum: the parent's own checksum stands in for the group

Requests go out in batches of 5 with a 100ms pause between batches. A failed
request for one agency is logged and left out of the sums.

Every rollup carries the selection generation it was started for. Selecting
another agency bumps the generation, and results for an older generation are
discarded instead of stored.

Usage:
    async with httpx.AsyncClient(base_url="http://localhost:8000") as client:
        coordinator = await AggregationCoordinator.from_api(client)
        analysis = await coordinator.aggregate(parent_id=12)
        print(analysis.word_count, analysis.complexity.relative_score)
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import httpx

from ..analysis.complexity import relative_score, round_half_up
from ..models import Agency, AgencyRef

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5
DEFAULT_BATCH_DELAY = 0.1  # seconds
MAX_AGGREGATED_PATH = "/analysis/complexity_score/max-aggregated"


# =============================================================================
# Results
# =============================================================================


@dataclass
class AggregatedComplexity:
    """Summed complexity for an agency group."""

    raw_score: int
    relative_score: int
    total_sections: int
    total_words: int
    avg_words_per_section: int
    hierarchy_depth: int
    max_aggregated_score: int | None = None  # None when the fallback was used
    used_fallback: bool = False
    agencies_included: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "complexityScore": self.raw_score,
            "relativeComplexityScore": self.relative_score,
            "maxAggregatedScore": self.max_aggregated_score,
            "usedFallback": self.used_fallback,
            "agenciesIncluded": self.agencies_included,
            "metrics": {
                "totalSections": self.total_sections,
                "totalWords": self.total_words,
                "avgWordsPerSection": self.avg_words_per_section,
                "hierarchyDepth": self.hierarchy_depth,
            },
        }


@dataclass
class AggregatedAnalysis:
    """Everything the dashboard shows for one selected parent agency."""

    parent_id: int
    agency_ids: list[int]
    generation: int
    word_count: int | None = None
    complexity: AggregatedComplexity | None = None
    checksum: str | None = None
    failed_agency_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "parentId": self.parent_id,
            "agencyIds": self.agency_ids,
            "wordCount": self.word_count,
            "complexity": self.complexity.to_dict() if self.complexity else None,
            "checksum": self.checksum,
            "failedAgencyIds": self.failed_agency_ids,
        }


# =============================================================================
# Coordinator
# =============================================================================


class AggregationCoordinator:
    """
    Fans out per-agency requests and folds them into group totals.

    The agency list (with children) is loaded once up front so that resolving
    a parent's constituents needs no extra request.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        agencies: Sequence[Agency],
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        bypass_max_cache: bool = True,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.client = client
        self.agencies = {a.id: a for a in agencies}
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.bypass_max_cache = bypass_max_cache

        self.generation = 0
        self.selected_agency_id: int | None = None
        self.current: AggregatedAnalysis | None = None

    @classmethod
    async def from_api(cls, client: httpx.AsyncClient, **kwargs) -> AggregationCoordinator:
        """Build a coordinator from the server's /data/agencies listing."""
        response = await client.get("/data/agencies")
        response.raise_for_status()
        agencies = [_agency_from_json(item) for item in response.json()["agencies"]]
        return cls(client, agencies, **kwargs)

    # =========================================================================
    # Selection
    # =========================================================================

    def select_agency(self, agency_id: int) -> int:
        """Make `agency_id` the current selection and return the new generation."""
        self.generation += 1
        self.selected_agency_id = agency_id
        return self.generation

    def is_current(self, generation: int | None) -> bool:
        return generation is None or generation == self.generation

    def constituent_ids(self, parent_id: int) -> list[int]:
        """The parent followed by its children, from the preloaded agency list."""
        agency = self.agencies.get(parent_id)
        children = [c.id for c in agency.children] if agency else []
        return [parent_id] + children

    # =========================================================================
    # Rollups
    # =========================================================================

    async def aggregate(self, parent_id: int) -> AggregatedAnalysis | None:
        """
        Select `parent_id` and compute its rollup.

        Complexity runs after word count because its metrics reuse the
        aggregated word count. Returns None, and leaves `current` alone, if
        another agency was selected before the rollup finished.
        """
        generation = self.select_agency(parent_id)
        analysis = AggregatedAnalysis(
            parent_id=parent_id,
            agency_ids=self.constituent_ids(parent_id),
            generation=generation,
        )

        analysis.word_count = await self.aggregate_word_count(parent_id, generation, analysis.failed_agency_ids)
        if not self.is_current(generation):
            return self._discard(parent_id, generation)

        analysis.complexity = await self.aggregate_complexity(
            parent_id, analysis.word_count, generation, analysis.failed_agency_ids
        )
        if not self.is_current(generation):
            return self._discard(parent_id, generation)

        analysis.checksum = await self.aggregate_checksum(parent_id, generation)
        if not self.is_current(generation):
            return self._discard(parent_id, generation)

        self.current = analysis
        return analysis

    async def aggregate_word_count(
        self,
        parent_id: int,
        generation: int | None = None,
        failed: list[int] | None = None,
    ) -> int | None:
        """Sum of word counts over the constituents that answered; None if none did."""
        results = await self._fetch_batched(
            self.constituent_ids(parent_id), "/analysis/word_count/agency/{}", failed
        )
        if not self.is_current(generation) or not results:
            return None
        return sum(int(r.get("wordCount") or 0) for r in results.values())

    async def aggregate_complexity(
        self,
        parent_id: int,
        word_count: int | None = None,
        generation: int | None = None,
        failed: list[int] | None = None,
    ) -> AggregatedComplexity | None:
        """Summed raw complexity, normalised against the largest agency group."""
        agency_ids = self.constituent_ids(parent_id)
        results = await self._fetch_batched(agency_ids, "/analysis/complexity_score/agency/{}", failed)
        if not self.is_current(generation) or not results:
            return None

        scores = list(results.values())
        raw_score = sum(int(r.get("complexity_score") or 0) for r in scores)
        total_sections = sum(
            int((r.get("calculation_details") or {}).get("total_sections") or 0) for r in scores
        )
        total_words = word_count or 0
        hierarchy = max(int(r.get("hierarchy_depth") or 1) for r in scores)

        if len(agency_ids) == 1:
            # No children: the server already normalised this agency
            relative = int(scores[0].get("relative_complexity_score") or 0)
            max_score = None
            used_fallback = False
        else:
            max_score = await self._fetch_max_aggregated()
            if max_score is None:
                relative = max(int(r.get("relative_complexity_score") or 0) for r in scores)
                used_fallback = True
            else:
                relative = relative_score(raw_score, max_score)
                used_fallback = False

        if not self.is_current(generation):
            return None

        return AggregatedComplexity(
            raw_score=raw_score,
            relative_score=relative,
            total_sections=total_sections,
            total_words=total_words,
            avg_words_per_section=round_half_up(total_words / total_sections) if total_sections and total_words else 0,
            hierarchy_depth=hierarchy,
            max_aggregated_score=max_score,
            used_fallback=used_fallback,
            agencies_included=len(scores),
        )

    async def aggregate_checksum(self, parent_id: int, generation: int | None = None) -> str | None:
        """The parent's own checksum; children's checksums are not combined."""
        try:
            data = await self._get_json(f"/analysis/checksum/agency/{parent_id}")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"[checksum] Failed to fetch agency {parent_id}: {e}")
            return None
        if not self.is_current(generation):
            return None
        return data.get("checksum")

    # =========================================================================
    # HTTP Helpers
    # =========================================================================

    async def _get_json(self, path: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        response = await self.client.get(path, params=params)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object from {path}, got {type(data).__name__}")
        return data

    async def _fetch_batched(
        self,
        agency_ids: Sequence[int],
        path_template: str,
        failed: list[int] | None = None,
    ) -> dict[int, dict[str, Any]]:
        """
        GET `path_template` for every agency, a batch at a time.

        Returns the successful responses keyed by agency id.
        """
        results: dict[int, dict[str, Any]] = {}
        for start in range(0, len(agency_ids), self.batch_size):
            batch = agency_ids[start : start + self.batch_size]
            responses = await asyncio.gather(
                *(self._get_json(path_template.format(agency_id)) for agency_id in batch),
                return_exceptions=True,
            )
            for agency_id, response in zip(batch, responses):
                if isinstance(response, (httpx.HTTPError, ValueError)):
                    logger.warning(f"[{path_template}] Failed to fetch agency {agency_id}: {response}")
                    if failed is not None and agency_id not in failed:
                        failed.append(agency_id)
                    continue
                if isinstance(response, BaseException):
                    raise response
                results[agency_id] = response

            # Pause between batches, not after the last one
            if start + self.batch_size < len(agency_ids):
                await asyncio.sleep(self.batch_delay)

        return results

    async def _fetch_max_aggregated(self) -> int | None:
        """The largest group score, or None when it cannot be fetched."""
        params = {"refresh": "true"} if self.bypass_max_cache else None
        try:
            data = await self._get_json(MAX_AGGREGATED_PATH, params=params)
            return int(data.get("max_aggregated_complexity_score") or 0)
        except (httpx.HTTPError, ValueError, TypeError) as e:
            logger.warning(f"Could not fetch max aggregated score, using constituent maximum: {e}")
            return None

    def _discard(self, parent_id: int, generation: int) -> None:
        logger.info(
            f"Discarding rollup for agency {parent_id} (generation {generation}, "
            f"current {self.generation})"
        )
        return None


def _agency_from_json(item: dict[str, Any]) -> Agency:
    """Rebuild an Agency from the /data/agencies payload."""
    parent = item.get("parent")
    return Agency(
        id=item["id"],
        name=item.get("name") or "",
        slug=item.get("slug") or "",
        description=item.get("description"),
        parent_id=item.get("parentId"),
        parent=AgencyRef(**parent) if parent else None,
        children=[AgencyRef(**c) for c in item.get("children") or []],
    )
