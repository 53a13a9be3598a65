"""
Shared fixtures: an in-memory RegulationStore and a small populated corpus.

The corpus (all sections dated 2024-01-01):

    Agriculture Department (1)        2 sections, raw score 7
      Forest Service (2)              1 section,  raw score 1
      Food Safety Service (3)         1 section,  raw score 5
    Commerce Department (4)           1 section,  raw score 9
    Empty Agency (5)                  no sections

so the exhaustive and top-agencies maxima are 9 (Commerce) and the
aggregated maximum is 7 + 1 + 5 = 13 (Agriculture and its children).
"""
from __future__ import annotations

from collections import Counter
from datetime import date

import pytest
from fastapi.testclient import TestClient

from ecfr_analytics.analysis.cache import ComplexityCacheService
from ecfr_analytics.analysis.metrics import build_section
from ecfr_analytics.api.dependencies import get_complexity_service, get_store
from ecfr_analytics.api.main import app
from ecfr_analytics.config import Settings
from ecfr_analytics.exceptions import StoreUnavailableError
from ecfr_analytics.models import Agency, AgencyRef, Section, SectionSample, Title

SNAPSHOT_DATE = date(2024, 1, 1)


class InMemoryStore:
    """RegulationStore backed by dicts, with per-method call counts."""

    def __init__(self):
        self._agencies: dict[int, Agency] = {}
        self._sections: dict[int, dict[date, list[Section]]] = {}
        self._titles: list[Title] = []
        self.calls: Counter[str] = Counter()
        self.failing: set[str] = set()

    # Fixture building ------------------------------------------------------

    def add_agency(self, agency_id: int, name: str, parent_id: int | None = None) -> Agency:
        agency = Agency(
            id=agency_id,
            name=name,
            slug=name.lower().replace(" ", "-"),
            parent_id=parent_id,
        )
        self._agencies[agency_id] = agency
        return agency

    def add_sections(self, agency_id: int, on_date: date, sections: list[Section]) -> None:
        self._sections.setdefault(agency_id, {}).setdefault(on_date, []).extend(sections)

    def add_title(self, title_id: int, code: str, name: str, agency_id: int) -> None:
        owner = self._agencies[agency_id]
        self._titles.append(Title(id=title_id, code=code, name=name, agency=owner.ref))

    def fail(self, *methods: str) -> None:
        """Make the named methods raise StoreUnavailableError."""
        self.failing.update(methods)

    def _record(self, method: str) -> None:
        self.calls[method] += 1
        if method in self.failing:
            raise StoreUnavailableError(f"{method} failed")

    def _ref(self, agency_id: int) -> AgencyRef:
        return self._agencies[agency_id].ref

    def _with_relations(self, agency: Agency) -> Agency:
        children = sorted(
            (a for a in self._agencies.values() if a.parent_id == agency.id),
            key=lambda a: a.name,
        )
        return agency.model_copy(
            update={
                "parent": self._ref(agency.parent_id) if agency.parent_id is not None else None,
                "children": [c.ref for c in children],
            }
        )

    # RegulationStore -------------------------------------------------------

    def get_agency(self, agency_id: int) -> Agency | None:
        self._record("get_agency")
        agency = self._agencies.get(agency_id)
        return self._with_relations(agency) if agency else None

    def list_agencies(self, parents_only: bool = False) -> list[Agency]:
        self._record("list_agencies")
        agencies = [self._with_relations(a) for a in self._agencies.values()]
        if parents_only:
            agencies = [a for a in agencies if a.has_children]
        return sorted(agencies, key=lambda a: (a.parent_id is not None, a.parent_id or 0, a.name))

    def count_sections(self, agency_id: int) -> int:
        self._record("count_sections")
        return sum(len(s) for s in self._sections.get(agency_id, {}).values())

    def sample_sections(self, agency_id: int, limit: int) -> list[SectionSample]:
        self._record("sample_sections")
        by_date = self._sections.get(agency_id, {})
        ordered = [
            s
            for on_date in sorted(by_date, reverse=True)
            for s in sorted(by_date[on_date], key=lambda s: s.identifier)
        ]
        return [SectionSample(identifier=s.identifier, text=s.text) for s in ordered[:limit]]

    def top_agencies_by_section_count(self, limit: int) -> list[tuple[int, int]]:
        self._record("top_agencies_by_section_count")
        counts = [
            (agency_id, sum(len(s) for s in by_date.values()))
            for agency_id, by_date in sorted(self._sections.items())
        ]
        counts = [c for c in counts if c[1] > 0]
        counts.sort(key=lambda c: c[1], reverse=True)
        return counts[:limit]

    def latest_version_date(self, agency_id: int) -> date | None:
        self._record("latest_version_date")
        dates = [d for d, sections in self._sections.get(agency_id, {}).items() if sections]
        return max(dates) if dates else None

    def list_sections(self, agency_id: int, on_date: date) -> list[Section]:
        self._record("list_sections")
        sections = self._sections.get(agency_id, {}).get(on_date, [])
        return sorted(sections, key=lambda s: s.identifier)

    def list_titles(self, agency_id: int | None = None) -> list[Title]:
        self._record("list_titles")
        if agency_id is None:
            return list(self._titles)
        return [t for t in self._titles if t.agency.id == agency_id]

    def ping(self) -> None:
        self._record("ping")


class FakeClock:
    """A controllable replacement for time.time."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def populated_store():
    store = InMemoryStore()
    store.add_agency(1, "Agriculture Department")
    store.add_agency(2, "Forest Service", parent_id=1)
    store.add_agency(3, "Food Safety Service", parent_id=1)
    store.add_agency(4, "Commerce Department")
    store.add_agency(5, "Empty Agency")

    store.add_sections(1, SNAPSHOT_DATE, [
        build_section("1.1", "Applicants must file under 7 CFR 1.5.", "Filing"),
        build_section("1.2", "See § 1.1 and § 1.3. Compliance is required.", "Scope"),
    ])
    store.add_sections(2, SNAPSHOT_DATE, [
        build_section("2.1", "The operator shall keep records.", "Records"),
    ])
    store.add_sections(3, SNAPSHOT_DATE, [
        build_section("3.1", "Prohibited acts are listed in 9 CFR 3.2 and 9 CFR 3.3.", "Acts"),
    ])
    store.add_sections(4, SNAPSHOT_DATE, [
        build_section("15.1", "Exporters must comply with § 15.2, § 15.3, § 15.4 and § 15.5.", "Exports"),
    ])

    store.add_title(10, "7-agriculture-department", "Agriculture (Agriculture Department)", 1)
    store.add_title(11, "36-forest-service", "Parks, Forests, and Public Property", 2)
    store.add_title(12, "7-forest-service", "Agriculture (Forest Service)", 2)
    store.add_title(13, "9-food-safety-service", "Animals and Animal Products", 3)
    store.add_title(14, "15-commerce-department", "Commerce and Foreign Trade", 4)
    store.add_title(15, "7-food-safety-service", "Agriculture", 3)
    return store


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def service(populated_store, settings, clock):
    return ComplexityCacheService(populated_store, settings, clock=clock)


@pytest.fixture
def client(populated_store, service):
    """TestClient with the store and cache service injected; no Neo4j lifespan."""
    app.dependency_overrides[get_store] = lambda: populated_store
    app.dependency_overrides[get_complexity_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()
