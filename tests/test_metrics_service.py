"""
Unit tests for MetricsService.

The work item service is mocked; these tests check dataset loading, the
once-per-load relations fetch and the shapes served to the MCP tools.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from ado_insights.constants import LinkTypes
from ado_insights.metrics import BugRatioMethod
from ado_insights.services.metrics_service import MetricsService
from ado_insights.sprints import SprintConfig

NOW = datetime(2024, 1, 10, tzinfo=timezone.utc)

RECORDS = [
    {"ID": 1, "Work Item Type": "User Story", "State": "Done", "Assigned To": "Ada",
     "Story Points": 5, "Iteration Path": "Apollo\\Sprint 1"},
    {"ID": 2, "Work Item Type": "User Story", "State": "Active", "Assigned To": "Ada",
     "Story Points": 3, "Iteration Path": "Apollo\\Sprint 2"},
    {"ID": 3, "Work Item Type": "Bug", "State": "Active", "Assigned To": "Lin",
     "Iteration Path": "Apollo\\Sprint 2"},
    {"ID": 4, "Work Item Type": "Task", "State": "New", "Assigned To": None},
]

RELATIONS = [
    {"id": 1, "fields": {}, "relations": [
        {"rel": LinkTypes.HIERARCHY_FORWARD, "url": "https://x/_apis/wit/workItems/3"}
    ]},
    {"id": 2, "fields": {}, "relations": []},
]


@pytest.fixture
def workitem_service():
    service = Mock()
    service.load_work_items = AsyncMock(return_value=RECORDS)
    service.fetch_relations_batch = AsyncMock(return_value=RELATIONS)
    return service


@pytest.fixture
def metrics_service(workitem_service):
    return MetricsService(
        workitem_service,
        sprint_config=SprintConfig(length_weeks=2, start_date="2024-01-01"),
        relations_batch_delay=0
    )


class TestLoading:
    """Test snapshot loading and relation caching."""

    @pytest.mark.asyncio
    async def test_load_binds_cache(self, metrics_service, workitem_service):
        dataset = await metrics_service.load("Web")

        workitem_service.load_work_items.assert_awaited_once_with("Web")
        assert metrics_service.is_loaded
        assert len(dataset) == 4
        assert metrics_service.relation_cache.dataset_key == dataset.version

    @pytest.mark.asyncio
    async def test_lazy_load_on_first_query(self, metrics_service, workitem_service):
        await metrics_service.team_metrics(NOW)
        workitem_service.load_work_items.assert_awaited_once_with(None)

    @pytest.mark.asyncio
    async def test_relations_fetched_once_per_load(self, metrics_service, workitem_service):
        await metrics_service.load()
        await metrics_service.team_metrics(NOW)
        await metrics_service.sprint_metrics(now=NOW)
        await metrics_service.team_overview(NOW)

        assert workitem_service.fetch_relations_batch.await_count == 1

    @pytest.mark.asyncio
    async def test_reload_refetches_relations(self, metrics_service, workitem_service):
        await metrics_service.load()
        await metrics_service.relations()
        await metrics_service.load()
        await metrics_service.relations()

        assert workitem_service.fetch_relations_batch.await_count == 2

    @pytest.mark.asyncio
    async def test_only_user_stories_looked_up(self, metrics_service, workitem_service):
        await metrics_service.load()
        await metrics_service.relations()

        ids = workitem_service.fetch_relations_batch.await_args.args[0]
        assert sorted(ids) == [1, 2]

    def test_set_records(self, metrics_service):
        first = metrics_service.set_records(RECORDS)
        second = metrics_service.set_records(RECORDS[:1])

        assert second.version != first.version
        assert metrics_service.dataset is second
        assert metrics_service.get_statistics()["work_items"] == 1


class TestTeamMetrics:
    """Test per-member output."""

    @pytest.mark.asyncio
    async def test_bug_ratio_from_relations(self, metrics_service):
        await metrics_service.load()
        members = await metrics_service.team_metrics(NOW)

        ada = next(m for m in members if m["assignee"] == "Ada")
        assert ada["bug_ratio_method"] == BugRatioMethod.RELATIONS
        assert ada["child_bugs_count"] == 1
        assert ada["completed_story_points"] == 5

    @pytest.mark.asyncio
    async def test_unassigned_excluded(self, metrics_service):
        await metrics_service.load()
        members = await metrics_service.team_metrics(NOW)

        assert [m["assignee"] for m in members] == ["Ada", "Lin"]

    @pytest.mark.asyncio
    async def test_fallback_when_fetch_fails(self, metrics_service, workitem_service):
        workitem_service.fetch_relations_batch.side_effect = RuntimeError("HTTP 400")
        await metrics_service.load()
        members = await metrics_service.team_metrics(NOW)

        ada = next(m for m in members if m["assignee"] == "Ada")
        assert ada["bug_ratio_method"] == BugRatioMethod.DIRECT_ASSIGNMENT
        assert ada["bug_ratio_explanation"].startswith("Fallback:")
        # full request then simplified request
        assert workitem_service.fetch_relations_batch.await_count == 2

    @pytest.mark.asyncio
    async def test_failed_fetch_not_retried_for_same_load(self, metrics_service, workitem_service):
        workitem_service.fetch_relations_batch.side_effect = RuntimeError("HTTP 500")
        await metrics_service.load()
        await metrics_service.team_metrics(NOW)
        await metrics_service.team_metrics(NOW)

        assert workitem_service.fetch_relations_batch.await_count == 2


class TestSprintOutputs:
    """Test sprint and overview output."""

    @pytest.mark.asyncio
    async def test_sprint_metrics_newest_first(self, metrics_service):
        await metrics_service.load()
        sprints = await metrics_service.sprint_metrics(now=NOW)

        names = [s["name"] for s in sprints]
        assert names.index("Sprint 2") < names.index("Sprint 1")
        sprint_2 = sprints[names.index("Sprint 2")]
        assert sorted(sprint_2["member_ids"]) == [2, 3]
        assert "members" not in sprint_2

    @pytest.mark.asyncio
    async def test_sprint_metrics_with_items(self, metrics_service):
        await metrics_service.load()
        sprints = await metrics_service.sprint_metrics(include_items=True, now=NOW)

        sprint_1 = next(s for s in sprints if s["name"] == "Sprint 1")
        assert [m["ID"] for m in sprint_1["members"]] == [1]

    @pytest.mark.asyncio
    async def test_team_overview(self, metrics_service):
        await metrics_service.load()
        overview = await metrics_service.team_overview(NOW)

        assert overview["total_members"] == 2
        assert overview["total_work_items"] == 4
        assert overview["completed_items"] == 1

    @pytest.mark.asyncio
    async def test_current_sprint(self, metrics_service):
        await metrics_service.load()
        data = await metrics_service.current_sprint(NOW)

        assert data["current_sprint"] == 1
        assert data["days_remaining"] == 5
        assert data["sprint_length_weeks"] == 2
        assert data["start_date"].startswith("2024-01-01")
        assert data["total_sprints"] >= 2

    @pytest.mark.asyncio
    async def test_current_sprint_unconfigured(self, workitem_service):
        service = MetricsService(workitem_service, relations_batch_delay=0)
        await service.load()
        data = await service.current_sprint(NOW)

        assert data["current_sprint"] == 0
        assert data["start_date"] is None


class TestConcurrency:
    """Test concurrent tool calls on one snapshot."""

    @pytest.mark.asyncio
    async def test_concurrent_calls_agree_on_bug_ratio_method(self, metrics_service, workitem_service):
        async def slow_fetch(ids, simplified):
            await asyncio.sleep(0.01)
            return RELATIONS

        workitem_service.fetch_relations_batch.side_effect = slow_fetch
        await metrics_service.load()

        first, second = await asyncio.gather(
            metrics_service.team_metrics(NOW),
            metrics_service.team_metrics(NOW)
        )

        assert [m["bug_ratio_method"] for m in first] == [m["bug_ratio_method"] for m in second]
        assert first[0]["bug_ratio_method"] == BugRatioMethod.RELATIONS
        assert workitem_service.fetch_relations_batch.await_count == 1

    @pytest.mark.asyncio
    async def test_overview_uses_one_snapshot_across_reload(self, metrics_service, workitem_service):
        """Test that a reload during aggregation does not mix two snapshots."""
        release = asyncio.Event()

        async def slow_fetch(ids, simplified):
            await release.wait()
            return RELATIONS

        workitem_service.fetch_relations_batch.side_effect = slow_fetch
        await metrics_service.load()

        overview_task = asyncio.create_task(metrics_service.team_overview(NOW))
        await asyncio.sleep(0)
        metrics_service.set_records(RECORDS[:1])
        release.set()
        overview = await overview_task

        assert overview["total_work_items"] == 4
        assert overview["total_members"] == 2
