"""
Unit tests for relationship resolution.

Tests payload parsing, batching with simplified retry, partial results, the
once-per-dataset fetch guarantee and discarding of superseded fetches.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from ado_insights.cache import DatasetCache
from ado_insights.constants import LinkTypes
from ado_insights.models import WorkItemDataset
from ado_insights.relations import (
    RelationSet,
    RelationshipResolver,
    parse_relation_payload,
    related_id_from_url,
)

WI_URL = "https://dev.azure.com/org/_apis/wit/workItems/{}"


def story(work_item_id):
    return {"ID": work_item_id, "Work Item Type": "User Story"}


def payload(parent_id, *child_ids):
    return {
        "id": parent_id,
        "relations": [
            {"rel": LinkTypes.HIERARCHY_FORWARD, "url": WI_URL.format(c)} for c in child_ids
        ]
    }


class TestParsing:
    """Test relation payload parsing."""

    def test_related_id_from_url(self):
        assert related_id_from_url(WI_URL.format(42)) == 42
        assert related_id_from_url(WI_URL.format(42) + "/") == 42
        assert related_id_from_url("https://x/_apis/wit/attachments/abc") is None
        assert related_id_from_url(None) is None

    def test_parse_payload(self):
        items = [
            payload(1, 10, 11),
            {"id": 2, "relations": [
                {"rel": LinkTypes.RELATED, "url": WI_URL.format(12)},
                {"rel": "AttachedFile", "url": "https://x/_apis/wit/attachments/f00"},
            ]},
            {"id": 3, "relations": None},
            {"relations": [{"rel": LinkTypes.HIERARCHY_FORWARD, "url": WI_URL.format(99)}]},
        ]
        edges = parse_relation_payload(items)
        assert [(e.source_id, e.target_id) for e in edges] == [(1, 10), (1, 11), (2, 12)]
        assert edges[0].is_hierarchy_child
        assert not edges[2].is_hierarchy_child

    def test_children_of_only_follows_forward_links(self):
        relations = RelationSet.from_payload([
            payload(1, 10),
            {"id": 2, "relations": [{"rel": LinkTypes.HIERARCHY_REVERSE, "url": WI_URL.format(1)}]},
        ])
        assert relations.children_of(1) == [10]
        assert relations.children_of(2) == []
        assert relations.fetched_ids == frozenset({1, 2})


class TestRelationshipResolver:
    """Test RelationshipResolver fetch behavior."""

    @pytest.fixture
    def dataset(self):
        return WorkItemDataset.from_records(
            [story(1), story(2), story(3), {"ID": 4, "Work Item Type": "Bug"}]
        )

    @pytest.mark.asyncio
    async def test_only_stories_are_requested(self, dataset):
        fetch = AsyncMock(return_value=[payload(1, 4)])
        resolver = RelationshipResolver(fetch, batch_delay=0)

        relations = await resolver.resolve(dataset)

        fetch.assert_awaited_once_with([1, 2, 3], False)
        assert relations.children_of(1) == [4]

    @pytest.mark.asyncio
    async def test_batches_are_sequential_with_delay(self, dataset):
        """Test batch size and the delay inserted between batches."""
        fetch = AsyncMock(side_effect=[[payload(1)], [payload(3)]])
        resolver = RelationshipResolver(fetch, batch_size=2, batch_delay=0.25)

        with patch("ado_insights.relations.asyncio.sleep", new_callable=AsyncMock) as sleep:
            relations = await resolver.resolve(dataset)

        assert [c.args[0] for c in fetch.await_args_list] == [[1, 2], [3]]
        sleep.assert_awaited_once_with(0.25)
        assert relations.fetched_ids == frozenset({1, 3})

    @pytest.mark.asyncio
    async def test_simplified_retry_on_failure(self, dataset):
        fetch = AsyncMock(side_effect=[Exception("400 Bad Request"), [payload(2, 4)]])
        resolver = RelationshipResolver(fetch, batch_delay=0)

        relations = await resolver.resolve(dataset)

        assert fetch.await_args_list[0].args == ([1, 2, 3], False)
        assert fetch.await_args_list[1].args == ([1, 2, 3], True)
        assert relations.children_of(2) == [4]

    @pytest.mark.asyncio
    async def test_failed_batch_skipped_partial_results_kept(self, dataset):
        """Test that one failed batch does not discard the others."""
        fetch = AsyncMock(side_effect=[
            Exception("boom"), Exception("still boom"),
            [payload(3, 4)],
        ])
        resolver = RelationshipResolver(fetch, batch_size=2, batch_delay=0)

        relations = await resolver.resolve(dataset)

        assert fetch.await_count == 3
        assert relations is not None
        assert relations.children_of(3) == [4]

    @pytest.mark.asyncio
    async def test_total_failure_is_unavailable(self, dataset):
        fetch = AsyncMock(side_effect=Exception("down"))
        resolver = RelationshipResolver(fetch, batch_delay=0)

        assert await resolver.resolve(dataset) is None

    @pytest.mark.asyncio
    async def test_fetch_attempted_once_per_dataset(self, dataset):
        """Test that a failed fetch is not retried for the same dataset."""
        fetch = AsyncMock(side_effect=Exception("down"))
        resolver = RelationshipResolver(fetch, batch_delay=0)

        assert await resolver.resolve(dataset) is None
        calls = fetch.await_count
        assert await resolver.resolve(dataset) is None
        assert fetch.await_count == calls

    @pytest.mark.asyncio
    async def test_cached_result_reused(self, dataset):
        fetch = AsyncMock(return_value=[payload(1, 4)])
        resolver = RelationshipResolver(fetch, batch_delay=0)

        first = await resolver.resolve(dataset)
        second = await resolver.resolve(dataset)

        assert first is second
        fetch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_new_dataset_fetches_again(self, dataset):
        cache = DatasetCache("relations")
        fetch = AsyncMock(return_value=[payload(1, 4)])
        resolver = RelationshipResolver(fetch, cache=cache, batch_delay=0)

        await resolver.resolve(dataset)
        reloaded = WorkItemDataset.from_records(dataset.records)
        cache.bind(reloaded.version)
        await resolver.resolve(reloaded)

        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_superseded_fetch_not_cached(self, dataset):
        """Test that a fetch finishing after a reload does not populate the cache."""
        cache = DatasetCache("relations")
        release = asyncio.Event()

        async def slow_fetch(ids, simplified):
            await release.wait()
            return [payload(1, 4)]

        resolver = RelationshipResolver(slow_fetch, cache=cache, batch_delay=0)
        cache.bind(dataset.version)

        task = asyncio.create_task(resolver.resolve(dataset))
        await asyncio.sleep(0)

        reloaded = WorkItemDataset.from_records([story(9)])
        cache.bind(reloaded.version)
        release.set()
        stale = await task

        assert stale is not None
        assert cache.get(reloaded.version) is None
        assert cache.get(dataset.version) is None
        assert cache.get_stats()["stale_writes"] == 1

    @pytest.mark.asyncio
    async def test_no_candidates(self):
        fetch = AsyncMock()
        resolver = RelationshipResolver(fetch, batch_delay=0)

        dataset = WorkItemDataset.from_records([{"ID": 1, "Work Item Type": "Bug"}])
        assert await resolver.resolve(dataset) is None
        fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_fetch(self, dataset):
        """Test that a caller arriving mid-fetch waits for it instead of getting None."""
        release = asyncio.Event()
        calls = []

        async def slow_fetch(ids, simplified):
            calls.append(ids)
            await release.wait()
            return [payload(1, 4)]

        resolver = RelationshipResolver(slow_fetch, batch_delay=0)

        first = asyncio.create_task(resolver.resolve(dataset))
        second = asyncio.create_task(resolver.resolve(dataset))
        await asyncio.sleep(0)
        release.set()

        results = await asyncio.gather(first, second)
        assert results[0] is not None
        assert results[0] is results[1]
        assert len(calls) == 1
