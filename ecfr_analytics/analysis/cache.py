"""
Memo cells for maximum-score resolution.

Each resolver gets exactly one slot (there is only one "the maximum"), with
time-based expiry and explicit invalidation. A cached zero is treated as "not
yet computed": a sweep that found nothing must not masquerade as an
authoritative zero for an hour.

There is no locking. Concurrent requests that both find the cell stale both
sweep, and the last writer wins; sweeps are idempotent reads of the store, so
this only costs time.

Usage:
    service = ComplexityCacheService(store, settings)

    service.top_agencies.get()          # cached within the TTL
    service.aggregated.invalidate()     # re-sweep now
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

from ..config import Settings
from ..models import CachedResolution, MaxScoreResolution
from .complexity import ComplexityEstimator
from .resolvers import (
    AggregatedGroupMaxResolver,
    ExhaustiveMaxResolver,
    MaxScoreResolver,
    TopAgenciesMaxResolver,
)

if TYPE_CHECKING:
    from ..graph.store import RegulationStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60  # 1 hour


class MaxScoreCache:
    """A single time-expiring memo slot wrapped around one resolver."""

    def __init__(
        self,
        resolver: MaxScoreResolver,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.resolver = resolver
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._resolution: MaxScoreResolution | None = None
        self._expires: float = 0.0

    @property
    def name(self) -> str:
        return self.resolver.name

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self._expires, tz=timezone.utc)

    def is_fresh(self) -> bool:
        """True when the slot holds a non-zero value that has not expired."""
        return (
            self._resolution is not None
            and self._resolution.max_value > 0
            and self._clock() < self._expires
        )

    def resolve(self, force_refresh: bool = False) -> CachedResolution:
        """
        Serve the memoized maximum, sweeping when stale, empty, zero or forced.

        A sweep that raises leaves the slot untouched.
        """
        if not force_refresh and self.is_fresh():
            logger.debug(f"[{self.name}] Returning cached maximum {self._resolution.max_value}")
            return self._serve(computed_fresh=False)

        resolution = self.resolver.compute()
        now = self._clock()
        self._resolution = resolution.model_copy(
            update={"computed_at": datetime.fromtimestamp(now, tz=timezone.utc)}
        )
        self._expires = now + self.ttl_seconds
        return self._serve(computed_fresh=True)

    def get(self) -> CachedResolution:
        return self.resolve(force_refresh=False)

    def invalidate(self) -> CachedResolution:
        """Discard the memoized value and immediately repopulate it."""
        return self.resolve(force_refresh=True)

    def peek(self) -> MaxScoreResolution | None:
        """The stored resolution, fresh or not, without sweeping."""
        return self._resolution

    def _serve(self, computed_fresh: bool) -> CachedResolution:
        resolution = self._resolution
        assert resolution is not None
        return CachedResolution(
            max_value=resolution.max_value,
            winner=resolution.winner,
            analyzed=resolution.analyzed,
            computed_fresh=computed_fresh,
            computed_at=resolution.computed_at,
            expires_at=self.expires_at,
        )


class ComplexityCacheService:
    """
    The complexity estimator plus the three independent maximum memo cells.

    Built once per process (in the API lifespan) and handed to request
    handlers. The cells are not unified and may disagree.
    """

    def __init__(
        self,
        store: RegulationStore,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.time,
    ):
        settings = settings or Settings()
        self.store = store
        self.settings = settings

        self.estimator = ComplexityEstimator(
            store,
            sample_size=settings.complexity_sample_size,
            vocabulary=settings.vocabulary,
        )

        ttl = settings.cache_ttl_seconds
        self.exhaustive = MaxScoreCache(
            ExhaustiveMaxResolver(store, self.estimator),
            ttl_seconds=ttl,
            clock=clock,
        )
        self.top_agencies = MaxScoreCache(
            TopAgenciesMaxResolver(
                store,
                self.estimator.with_sample_size(settings.top_agencies_sample_size),
                limit=settings.top_agencies_limit,
            ),
            ttl_seconds=ttl,
            clock=clock,
        )
        self.aggregated = MaxScoreCache(
            AggregatedGroupMaxResolver(
                store,
                self.estimator.with_sample_size(settings.aggregated_sample_size),
            ),
            ttl_seconds=ttl,
            clock=clock,
        )
