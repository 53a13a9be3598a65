"""Cross-reference parsing for CFR section text."""

from .citations import CitationParser, CitationType, count_cross_references

__all__ = ["CitationParser", "CitationType", "count_cross_references"]
