"""
Analysis tools for regulatory complexity and change.

This module provides the sampled complexity estimator, the three
maximum-score resolvers and their memo cells, section diffs across dates,
checksums and word counts, and cross-cutting title analysis.
"""

from .cache import ComplexityCacheService, MaxScoreCache
from .complexity import (
    ComplexityEstimator,
    compute_raw_score,
    count_technical_terms,
    estimate_from_sample,
    hierarchy_depth,
    relative_score,
    round_half_up,
)
from .resolvers import AggregatedGroupMaxResolver, ExhaustiveMaxResolver, TopAgenciesMaxResolver
from .text_diff import SectionDiff, compare_versions

__all__ = [
    # Complexity estimation
    "ComplexityEstimator",
    "compute_raw_score",
    "count_technical_terms",
    "estimate_from_sample",
    "hierarchy_depth",
    "relative_score",
    "round_half_up",
    # Maximum resolution and caching
    "ExhaustiveMaxResolver",
    "TopAgenciesMaxResolver",
    "AggregatedGroupMaxResolver",
    "MaxScoreCache",
    "ComplexityCacheService",
    # Changes over time
    "SectionDiff",
    "compare_versions",
]
