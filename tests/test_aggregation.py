"""
Tests for the client-side aggregation coordinator.

The API is simulated with httpx.MockTransport; coroutines are driven with
asyncio.run.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from ecfr_analytics.client.aggregation import AggregationCoordinator
from ecfr_analytics.models import Agency, AgencyRef

MAX_PATH = "/analysis/complexity_score/max-aggregated"


def agency(agency_id: int, children: list[int] = (), parent_id: int | None = None) -> Agency:
    return Agency(
        id=agency_id,
        name=f"Agency {agency_id}",
        slug=f"agency-{agency_id}",
        parent_id=parent_id,
        children=[AgencyRef(id=c, name=f"Agency {c}", slug=f"agency-{c}") for c in children],
    )


class FakeApi:
    """Answers the per-agency endpoints from dicts and records every request."""

    def __init__(
        self,
        word_counts: dict[int, int] | None = None,
        complexity: dict[int, tuple[int, int]] | None = None,
        failing: set[int] = frozenset(),
        max_score: int = 140,
        max_status: int = 200,
    ):
        self.word_counts = word_counts or {}
        self.complexity = complexity or {}  # agency id -> (raw, relative)
        self.failing = failing
        self.max_score = max_score
        self.max_status = max_status
        self.requests: list[httpx.Request] = []
        self.on_request = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.on_request:
            self.on_request(request)

        path = request.url.path
        if path == MAX_PATH:
            if self.max_status != 200:
                return httpx.Response(self.max_status, json={"error": "unavailable"})
            return httpx.Response(200, json={"max_aggregated_complexity_score": self.max_score})

        kind = path.split("/")[2]
        agency_id = int(path.rsplit("/", 1)[1])
        if agency_id in self.failing:
            return httpx.Response(500, json={"error": "boom"})

        if kind == "word_count":
            return httpx.Response(200, json={"agencyId": agency_id, "wordCount": self.word_counts.get(agency_id, 0)})
        if kind == "complexity_score":
            raw, relative = self.complexity.get(agency_id, (0, 0))
            return httpx.Response(200, json={
                "agencyId": agency_id,
                "complexity_score": raw,
                "relative_complexity_score": relative,
                "hierarchy_depth": 2,
                "calculation_details": {"total_sections": 10},
            })
        if kind == "checksum":
            return httpx.Response(200, json={"agencyId": agency_id, "checksum": f"sum-{agency_id}"})
        return httpx.Response(404, json={"error": "not found"})

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


def run(api, agencies, action, batch_delay=0, **kwargs):
    """Run `action(coordinator)` against the fake API."""

    async def main():
        transport = httpx.MockTransport(api)
        async with httpx.AsyncClient(base_url="http://testserver", transport=transport) as client:
            coordinator = AggregationCoordinator(client, agencies, batch_delay=batch_delay, **kwargs)
            return await action(coordinator), coordinator

    return asyncio.run(main())


@pytest.fixture
def department():
    return [agency(1, children=[2, 3]), agency(2, parent_id=1), agency(3, parent_id=1)]


# =============================================================================
# Word Count
# =============================================================================


class TestWordCount:

    def test_sums_parent_and_children(self, department):
        api = FakeApi(word_counts={1: 100, 2: 50, 3: 30})
        total, _ = run(api, department, lambda c: c.aggregate_word_count(1))
        assert total == 180

    def test_failed_child_is_excluded(self, department):
        api = FakeApi(word_counts={1: 100, 2: 50, 3: 30}, failing={3})
        failed: list[int] = []
        total, _ = run(api, department, lambda c: c.aggregate_word_count(1, failed=failed))
        assert total == 150
        assert failed == [3]

    def test_everything_failed(self, department):
        api = FakeApi(failing={1, 2, 3})
        total, _ = run(api, department, lambda c: c.aggregate_word_count(1))
        assert total is None

    def test_transport_error_is_tolerated(self, department):
        api = FakeApi(word_counts={1: 100, 2: 50, 3: 30})

        def drop_child(request):
            if request.url.path.endswith("/2"):
                raise httpx.ConnectError("connection refused", request=request)

        api.on_request = drop_child
        total, _ = run(api, department, lambda c: c.aggregate_word_count(1))
        assert total == 130

    def test_non_object_body_is_a_failure(self, department):
        api = FakeApi(word_counts={1: 100, 2: 50, 3: 30})

        def handler(request):
            if request.url.path.endswith("/3"):
                return httpx.Response(200, json=[30])
            return api(request)

        failed: list[int] = []
        total, _ = run(handler, department, lambda c: c.aggregate_word_count(1, failed=failed))
        assert total == 150
        assert failed == [3]


# =============================================================================
# Complexity
# =============================================================================


class TestComplexity:

    def test_sum_normalised_against_group_maximum(self, department):
        api = FakeApi(complexity={1: (40, 60), 2: (20, 30), 3: (10, 15)}, max_score=140)
        result, _ = run(api, department, lambda c: c.aggregate_complexity(1, word_count=180))

        assert result.raw_score == 70
        assert result.relative_score == 50
        assert result.max_aggregated_score == 140
        assert not result.used_fallback
        assert result.total_sections == 30
        assert result.total_words == 180
        assert result.avg_words_per_section == 6
        assert result.agencies_included == 3

    def test_maximum_fetch_bypasses_cache(self, department):
        api = FakeApi(complexity={1: (40, 60)})
        run(api, department, lambda c: c.aggregate_complexity(1))
        max_request = next(r for r in api.requests if r.url.path == MAX_PATH)
        assert max_request.url.params["refresh"] == "true"

    def test_relative_score_capped(self, department):
        api = FakeApi(complexity={1: (400, 90)}, max_score=140)
        result, _ = run(api, department, lambda c: c.aggregate_complexity(1))
        assert result.relative_score == 100

    def test_fallback_when_maximum_unavailable(self, department):
        api = FakeApi(complexity={1: (40, 30), 2: (20, 80), 3: (10, 15)}, max_status=503)
        result, _ = run(api, department, lambda c: c.aggregate_complexity(1))
        assert result.relative_score == 80
        assert result.used_fallback
        assert result.max_aggregated_score is None

    def test_fallback_when_maximum_is_not_an_object(self, department):
        api = FakeApi(complexity={1: (40, 30), 2: (20, 80), 3: (10, 15)})

        def handler(request):
            if request.url.path == MAX_PATH:
                return httpx.Response(200, json="140")
            return api(request)

        result, _ = run(handler, department, lambda c: c.aggregate_complexity(1))
        assert result.used_fallback
        assert result.relative_score == 80

    def test_agency_without_children_uses_own_score(self):
        api = FakeApi(complexity={4: (25, 42)})
        result, _ = run(api, [agency(4)], lambda c: c.aggregate_complexity(4))
        assert result.raw_score == 25
        assert result.relative_score == 42
        assert MAX_PATH not in api.paths()


# =============================================================================
# Checksum and Full Rollup
# =============================================================================


class TestRollup:

    def test_checksum_is_parent_only(self, department):
        api = FakeApi()
        checksum, _ = run(api, department, lambda c: c.aggregate_checksum(1))
        assert checksum == "sum-1"
        assert api.paths() == ["/analysis/checksum/agency/1"]

    def test_aggregate(self, department):
        api = FakeApi(
            word_counts={1: 100, 2: 50, 3: 30},
            complexity={1: (40, 60), 2: (20, 30), 3: (10, 15)},
        )
        analysis, coordinator = run(api, department, lambda c: c.aggregate(1))

        assert analysis.agency_ids == [1, 2, 3]
        assert analysis.word_count == 180
        assert analysis.complexity.raw_score == 70
        assert analysis.complexity.total_words == 180
        assert analysis.checksum == "sum-1"
        assert coordinator.current is analysis
        assert analysis.to_dict()["complexity"]["metrics"]["totalWords"] == 180

    def test_word_count_runs_before_complexity(self, department):
        api = FakeApi(word_counts={1: 1}, complexity={1: (1, 1)})
        run(api, department, lambda c: c.aggregate(1))
        paths = api.paths()
        last_word_count = max(i for i, p in enumerate(paths) if "/word_count/" in p)
        first_complexity = min(i for i, p in enumerate(paths) if "/complexity_score/agency/" in p)
        assert last_word_count < first_complexity


# =============================================================================
# Batching and Generations
# =============================================================================


class TestBatching:

    def test_at_most_five_in_flight(self):
        agencies = [agency(1, children=list(range(2, 14)))]
        peak = {"now": 0, "max": 0}

        async def handler(request):
            peak["now"] += 1
            peak["max"] = max(peak["max"], peak["now"])
            await asyncio.sleep(0.001)
            peak["now"] -= 1
            return httpx.Response(200, json={"wordCount": 1})

        total, _ = run(handler, agencies, lambda c: c.aggregate_word_count(1))
        assert total == 13
        assert peak["max"] == 5

    def test_delay_between_batches_only(self):
        agencies = [agency(1, children=list(range(2, 14)))]
        api = FakeApi(word_counts={i: 1 for i in range(1, 14)})

        with patch("ecfr_analytics.client.aggregation.asyncio.sleep", new=AsyncMock()) as sleep:
            run(api, agencies, lambda c: c.aggregate_word_count(1), batch_delay=0.05)

        # 13 agencies -> batches of 5, 5, 3 -> two pauses
        pauses = [call.args[0] for call in sleep.await_args_list]
        assert pauses.count(0.05) == 2


class TestGenerationGuard:

    def test_superseded_rollup_is_discarded(self, department):
        api = FakeApi(word_counts={1: 100, 2: 50, 3: 30})
        holder = {}

        def reselect(request):
            if request.url.path == "/analysis/word_count/agency/1":
                holder["coordinator"].select_agency(99)

        api.on_request = reselect

        async def action(coordinator):
            holder["coordinator"] = coordinator
            return await coordinator.aggregate(1)

        analysis, coordinator = run(api, department, action)
        assert analysis is None
        assert coordinator.current is None
        assert coordinator.selected_agency_id == 99
        # Nothing after the superseded word count was requested
        assert not any("/complexity_score/" in p for p in api.paths())

    def test_generations_increase(self, department):
        async def action(coordinator):
            return coordinator.select_agency(1), coordinator.select_agency(2)

        (first, second), _ = run(FakeApi(), department, action)
        assert second == first + 1

    def test_constituents_from_preloaded_agencies(self, department):
        async def action(coordinator):
            return coordinator.constituent_ids(1), coordinator.constituent_ids(42)

        (known, unknown), _ = run(FakeApi(), department, action)
        assert known == [1, 2, 3]
        assert unknown == [42]


class TestFromApi:

    def test_builds_agencies(self):
        payload = {
            "agencies": [
                {
                    "id": 1, "name": "Agriculture Department", "slug": "agriculture-department",
                    "description": None, "parentId": None, "parent": None,
                    "children": [{"id": 2, "name": "Forest Service", "slug": "forest-service"}],
                },
                {
                    "id": 2, "name": "Forest Service", "slug": "forest-service", "description": None,
                    "parentId": 1,
                    "parent": {"id": 1, "name": "Agriculture Department", "slug": "agriculture-department"},
                    "children": [],
                },
            ]
        }

        def handler(request):
            return httpx.Response(200, json=payload)

        async def main():
            transport = httpx.MockTransport(handler)
            async with httpx.AsyncClient(base_url="http://testserver", transport=transport) as client:
                coordinator = await AggregationCoordinator.from_api(client)
                return coordinator.constituent_ids(1)

        assert asyncio.run(main()) == [1, 2]
