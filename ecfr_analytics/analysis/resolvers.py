"""
Maximum-score resolvers.

A relative complexity score only means something against a maximum. Three
strategies answer "what is the highest raw score, and who holds it":

- ExhaustiveMaxResolver: every agency. Authoritative, slow.
- TopAgenciesMaxResolver: only the N agencies with the most sections. Bounded
  cost; misses the true maximum only if a low-volume agency is unusually dense
  in cross-references.
- AggregatedGroupMaxResolver: parent agencies only, scoring each parent plus
  all its children as one summed group. Normalizes rolled-up department
  scores.

Running maxima use a strict comparison, so the first agency or group in
listing order wins ties. Store failures abort the sweep.
"""
from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Protocol

from ..models import MaxScoreResolution, ScoreWinner
from .complexity import ComplexityEstimator

if TYPE_CHECKING:
    from ..graph.store import RegulationStore

logger = logging.getLogger(__name__)


class MaxScoreResolver(Protocol):
    """Anything that can run a full maximum-score sweep."""

    name: str

    def compute(self) -> MaxScoreResolution:
        ...


class ExhaustiveMaxResolver:
    """Scores every agency in the store."""

    name = "exhaustive"

    def __init__(self, store: RegulationStore, estimator: ComplexityEstimator):
        self.store = store
        self.estimator = estimator

    def compute(self) -> MaxScoreResolution:
        started = time.perf_counter()
        agencies = self.store.list_agencies()

        max_score = 0
        winner: ScoreWinner | None = None
        for agency in agencies:
            score = self.estimator.estimate(agency.id).raw_score
            if score > max_score:
                max_score = score
                winner = ScoreWinner(id=agency.id, name=agency.name, score=score)

        _log_summary(self.name, max_score, winner, started)
        return MaxScoreResolution(max_value=max_score, winner=winner, analyzed=len(agencies))


class TopAgenciesMaxResolver:
    """Scores only the agencies with the most sections."""

    name = "top_agencies"

    def __init__(
        self,
        store: RegulationStore,
        estimator: ComplexityEstimator,
        limit: int = 10,
    ):
        self.store = store
        self.estimator = estimator
        self.limit = limit

    def compute(self) -> MaxScoreResolution:
        started = time.perf_counter()
        candidates = self.store.top_agencies_by_section_count(self.limit)
        logger.debug(f"[{self.name}] Analyzing top {len(candidates)} agencies by section count")

        max_score = 0
        winner: ScoreWinner | None = None
        for agency_id, section_count in candidates:
            if section_count == 0:
                continue
            score = self.estimator.estimate(agency_id, section_count=section_count).raw_score
            if score > max_score:
                max_score = score
                winner = ScoreWinner(id=agency_id, score=score)

        _log_summary(self.name, max_score, winner, started)
        return MaxScoreResolution(max_value=max_score, winner=winner, analyzed=len(candidates))


class AggregatedGroupMaxResolver:
    """Scores each parent agency together with its children and keeps the largest sum."""

    name = "aggregated"

    def __init__(self, store: RegulationStore, estimator: ComplexityEstimator):
        self.store = store
        self.estimator = estimator

    def compute(self) -> MaxScoreResolution:
        started = time.perf_counter()
        parents = self.store.list_agencies(parents_only=True)
        logger.debug(f"[{self.name}] Analyzing {len(parents)} parent agencies with sub-agencies")

        max_score = 0
        winner: ScoreWinner | None = None
        for parent in parents:
            group_ids = [parent.id] + [child.id for child in parent.children]
            # Agencies without sections estimate to zero and add nothing
            group_score = sum(self.estimator.estimate(agency_id).raw_score for agency_id in group_ids)
            logger.debug(f"[{self.name}] {parent.name}: {group_score} ({len(group_ids)} agencies)")

            if group_score > max_score:
                max_score = group_score
                winner = ScoreWinner(
                    id=parent.id,
                    name=parent.name,
                    score=group_score,
                    agency_count=len(group_ids),
                )

        _log_summary(self.name, max_score, winner, started)
        return MaxScoreResolution(max_value=max_score, winner=winner, analyzed=len(parents))


def _log_summary(name: str, max_score: int, winner: ScoreWinner | None, started: float) -> None:
    elapsed_ms = (time.perf_counter() - started) * 1000
    holder = winner.id if winner else None
    logger.info(f"[{name}] Maximum score {max_score} held by {holder} ({elapsed_ms:.0f}ms)")
