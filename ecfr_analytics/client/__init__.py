"""Client-side helpers that combine per-agency API answers into group rollups."""

from .aggregation import AggregatedAnalysis, AggregatedComplexity, AggregationCoordinator

__all__ = ["AggregationCoordinator", "AggregatedAnalysis", "AggregatedComplexity"]
