"""
Parent/child relationship resolution for loaded work items.

Relations are fetched once per loaded dataset, in sequential batches, and
cached against the dataset identity. Failures never propagate: when no
relation data can be obtained the resolver returns None and the aggregator
falls back to its direct-assignment heuristics.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, Hashable, Iterable, List, Optional, Sequence

from .cache import DatasetCache
from .constants import QueryLimits, WorkItemTypes
from .fields import get_id, is_type
from .models import RelationEdge, WorkItemDataset

logger = logging.getLogger(__name__)

# fetch_batch(ids, simplified) -> [{"id": int, "relations": [{"rel": str, "url": str}]}]
BatchFetcher = Callable[[List[int], bool], Awaitable[List[Dict[str, Any]]]]


def related_id_from_url(url: Optional[str]) -> Optional[int]:
    """The related work item ID encoded as the last path segment of a link URL."""
    if not url:
        return None
    try:
        return int(url.rstrip('/').split('/')[-1])
    except ValueError:
        return None


def parse_relation_payload(items: Iterable[Dict[str, Any]]) -> List[RelationEdge]:
    """
    Convert work-items-with-relations payloads into edges.

    Links whose URL does not end in a work item ID (attachments, hyperlinks)
    are skipped.
    """
    edges = []
    for item in items or []:
        source_id = get_id(item)
        if source_id is None:
            continue
        for relation in item.get('relations') or []:
            target_id = related_id_from_url(relation.get('url'))
            if target_id is None:
                continue
            edges.append(RelationEdge(
                source_id=source_id,
                target_id=target_id,
                link_type=relation.get('rel') or ''
            ))
    return edges


class RelationSet:
    """
    Read-only relation data for one dataset.

    Attributes:
        edges: All parsed edges
        fetched_ids: IDs of the work items the service returned
    """

    def __init__(self, edges: Sequence[RelationEdge], fetched_ids: Iterable[int] = ()):
        self.edges = tuple(edges)
        self.fetched_ids = frozenset(fetched_ids)
        self._children: Dict[int, List[int]] = defaultdict(list)
        for edge in self.edges:
            if edge.is_hierarchy_child:
                self._children[edge.source_id].append(edge.target_id)

    @classmethod
    def from_payload(cls, items: List[Dict[str, Any]]) -> "RelationSet":
        fetched_ids = [i for i in (get_id(item) for item in items) if i is not None]
        return cls(parse_relation_payload(items), fetched_ids)

    def children_of(self, work_item_id: int) -> List[int]:
        """IDs of hierarchical children of a work item."""
        return list(self._children.get(work_item_id, ()))

    def __len__(self) -> int:
        return len(self.fetched_ids)

    def __repr__(self) -> str:
        return f"RelationSet(items={len(self.fetched_ids)}, edges={len(self.edges)})"


class RelationshipResolver:
    """
    Fetches and caches relation data for a dataset.

    Only work items of relation-bearing types are queried, to bound the
    request volume. Batches are issued one at a time with a fixed delay; a
    failed batch gets one simplified retry and is otherwise skipped.

    Example:
        resolver = RelationshipResolver(workitem_service.fetch_relations_batch)
        relations = await resolver.resolve(dataset)
        if relations is None:
            ...  # relation data unavailable
    """

    def __init__(
        self,
        fetch_batch: BatchFetcher,
        cache: Optional[DatasetCache] = None,
        batch_size: int = QueryLimits.BATCH_SIZE,
        batch_delay: float = QueryLimits.RELATION_BATCH_DELAY_SECONDS,
        parent_types: Sequence[str] = WorkItemTypes.RELATION_PARENT_TYPES
    ):
        self.fetch_batch = fetch_batch
        self.cache = cache if cache is not None else DatasetCache("relations")
        self.batch_size = max(int(batch_size), 1)
        self.batch_delay = batch_delay
        self.parent_types = tuple(parent_types)
        self._in_flight: Dict[Hashable, "asyncio.Future[Optional[RelationSet]]"] = {}

    def candidate_ids(self, dataset: WorkItemDataset) -> List[int]:
        """IDs of the records whose relations are worth fetching."""
        ids = []
        for record in dataset.records:
            if not is_type(record, *self.parent_types):
                continue
            work_item_id = get_id(record)
            if work_item_id is not None:
                ids.append(work_item_id)
        return ids

    def invalidate(self):
        self.cache.invalidate()
        self._in_flight.clear()

    async def resolve(self, dataset: WorkItemDataset) -> Optional[RelationSet]:
        """
        Relation data for a dataset.

        Binds the cache to the dataset, serves cached data when present and
        attempts at most one fetch per dataset. Callers arriving while that
        fetch runs wait for it and get the same result.

        Returns:
            RelationSet, or None when relation data is unavailable
        """
        key = dataset.version
        if self.cache.dataset_key is None:
            self.cache.bind(key)

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Using cached relations for dataset {key} ({cached!r})")
            return cached

        pending = self._in_flight.get(key)
        if pending is not None:
            logger.debug(f"Waiting for relations fetch in progress for dataset {key}")
            return await asyncio.shield(pending)

        if self.cache.was_attempted(key):
            logger.debug(f"Relations fetch already attempted for dataset {key}")
            return None

        if key == self.cache.dataset_key:
            self.cache.mark_attempted(key)

        task = asyncio.ensure_future(self._fetch_for_dataset(dataset))
        self._in_flight[key] = task
        task.add_done_callback(lambda done: self._forget(key, done))
        return await asyncio.shield(task)

    def _forget(self, key: Hashable, task: asyncio.Future):
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _fetch_for_dataset(self, dataset: WorkItemDataset) -> Optional[RelationSet]:
        key = dataset.version
        ids = self.candidate_ids(dataset)
        if not ids:
            logger.info("No work items eligible for relation lookup")
            return None

        items = await self._fetch_all(ids)
        if not items:
            logger.warning(
                f"Relations unavailable for dataset {key}; "
                "bug ratio falls back to directly assigned bugs"
            )
            return None

        relations = RelationSet.from_payload(items)
        self.cache.set(key, relations)
        logger.info(f"Resolved relations for dataset {key}: {relations!r}")
        return relations

    async def _fetch_all(self, ids: List[int]) -> List[Dict[str, Any]]:
        """Fetch all batches sequentially; failed batches are skipped."""
        all_items: List[Dict[str, Any]] = []
        batch_count = (len(ids) + self.batch_size - 1) // self.batch_size

        logger.info(f"Fetching relations for {len(ids)} work items in {batch_count} batches")

        for index, start in enumerate(range(0, len(ids), self.batch_size)):
            if index > 0 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

            batch = ids[start:start + self.batch_size]
            items = await self._fetch_batch_with_fallback(batch, index + 1, batch_count)
            if items:
                all_items.extend(items)

        return all_items

    async def _fetch_batch_with_fallback(
        self,
        batch: List[int],
        number: int,
        batch_count: int
    ) -> Optional[List[Dict[str, Any]]]:
        try:
            return await self.fetch_batch(batch, False)
        except Exception as e:
            logger.warning(
                f"Relations batch {number}/{batch_count} failed: {e}. "
                "Retrying with simplified request"
            )

        try:
            return await self.fetch_batch(batch, True)
        except Exception as e:
            logger.warning(
                f"Simplified relations batch {number}/{batch_count} also failed: {e}. "
                "Skipping batch"
            )
            return None
