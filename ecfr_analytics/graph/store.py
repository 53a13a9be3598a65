"""
The data-access interface consumed by the analysis layer.

Anything that answers these queries can back the service: the Neo4j store in
production, an in-memory fake in tests.
"""
from __future__ import annotations

from datetime import date
from typing import Protocol, runtime_checkable

from ..models import Agency, Section, SectionSample, Title


@runtime_checkable
class RegulationStore(Protocol):
    """Read queries over agencies, titles, versions and sections."""

    def get_agency(self, agency_id: int) -> Agency | None:
        """One agency with its parent reference and children, or None."""
        ...

    def list_agencies(self, parents_only: bool = False) -> list[Agency]:
        """All agencies, top-level first then by name; optionally only those with children."""
        ...

    def count_sections(self, agency_id: int) -> int:
        """Number of sections owned by the agency across its titles."""
        ...

    def sample_sections(self, agency_id: int, limit: int) -> list[SectionSample]:
        """At most `limit` sections of the agency, in a stable order."""
        ...

    def top_agencies_by_section_count(self, limit: int) -> list[tuple[int, int]]:
        """(agency_id, section_count) pairs, largest first."""
        ...

    def latest_version_date(self, agency_id: int) -> date | None:
        """Newest version date that has at least one section."""
        ...

    def list_sections(self, agency_id: int, on_date: date) -> list[Section]:
        """The agency's sections in versions dated `on_date`, ordered by identifier."""
        ...

    def list_titles(self, agency_id: int | None = None) -> list[Title]:
        """Titles with their owning agency, optionally for one agency."""
        ...

    def ping(self) -> None:
        """Raise StoreUnavailableError if the store cannot answer queries."""
        ...
