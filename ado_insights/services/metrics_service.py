"""
Metrics service: holds the loaded work item snapshot and serves team and
sprint metrics computed from it.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..cache import DatasetCache
from ..classifier import DEFAULT_REWORK_RULES, DEFAULT_TAXONOMY, ReworkRule, Taxonomy
from ..constants import QueryLimits
from ..decorators import PerformanceMonitor
from ..fields import Record
from ..metrics import aggregate, summarize_sprints, summarize_team
from ..models import AggregateResult, WorkItemDataset
from ..relations import RelationSet, RelationshipResolver
from ..sprints import SprintConfig, current_sprint

logger = logging.getLogger(__name__)


class MetricsService:
    """
    Team and sprint analytics over one project's work items.

    Each load replaces the snapshot wholesale. The relation cache is bound
    to the snapshot version, so relations are fetched at most once per load
    and a fetch still running for an older snapshot cannot populate it.

    Example:
        service = MetricsService(workitem_service, SprintConfig(2, "2024-01-08"))
        await service.load()
        members = await service.team_metrics()
    """

    def __init__(
        self,
        workitem_service,
        sprint_config: Optional[SprintConfig] = None,
        taxonomy: Taxonomy = DEFAULT_TAXONOMY,
        rework_rules: Sequence[ReworkRule] = DEFAULT_REWORK_RULES,
        relations_batch_size: int = QueryLimits.BATCH_SIZE,
        relations_batch_delay: float = QueryLimits.RELATION_BATCH_DELAY_SECONDS
    ):
        self.workitem_service = workitem_service
        self.sprint_config = sprint_config or SprintConfig()
        self.taxonomy = taxonomy
        self.rework_rules = list(rework_rules)
        self.relation_cache = DatasetCache("relations")
        self.resolver = RelationshipResolver(
            workitem_service.fetch_relations_batch,
            cache=self.relation_cache,
            batch_size=relations_batch_size,
            batch_delay=relations_batch_delay
        )
        self._dataset: Optional[WorkItemDataset] = None

    @classmethod
    def from_config(cls, workitem_service, config) -> "MetricsService":
        """Build from an InsightsConfig."""
        return cls(
            workitem_service,
            sprint_config=config.sprint_config,
            relations_batch_size=config.relations_batch_size,
            relations_batch_delay=config.relations_batch_delay
        )

    @property
    def dataset(self) -> Optional[WorkItemDataset]:
        return self._dataset

    @property
    def is_loaded(self) -> bool:
        return self._dataset is not None

    async def load(self, area_path: Optional[str] = None) -> WorkItemDataset:
        """Load a fresh snapshot from Azure DevOps."""
        records = await self.workitem_service.load_work_items(area_path)
        return self.set_records(records)

    def set_records(self, records: Iterable[Record]) -> WorkItemDataset:
        """Replace the snapshot and invalidate everything derived from it."""
        dataset = WorkItemDataset.from_records(records)
        self._dataset = dataset
        self.relation_cache.bind(dataset.version)
        logger.info(f"Loaded dataset {dataset.version} with {len(dataset)} work items")
        return dataset

    async def _require_dataset(self) -> WorkItemDataset:
        if self._dataset is None:
            await self.load()
        return self._dataset

    async def relations(self) -> Optional[RelationSet]:
        """Relation data for the current snapshot, or None when unavailable."""
        dataset = await self._require_dataset()
        return await self.resolver.resolve(dataset)

    async def aggregate(self, now: Optional[datetime] = None) -> AggregateResult:
        _, result = await self._aggregate_snapshot(now)
        return result

    async def _aggregate_snapshot(
        self,
        now: Optional[datetime] = None
    ) -> Tuple[WorkItemDataset, AggregateResult]:
        """Aggregate the current snapshot and return it alongside the result."""
        dataset = await self._require_dataset()
        relations = await self.resolver.resolve(dataset)

        async with PerformanceMonitor("aggregate", warn_threshold_ms=2000):
            result = aggregate(
                dataset.records,
                relations,
                self.sprint_config,
                taxonomy=self.taxonomy,
                rework_rules=self.rework_rules,
                now=now
            )
        return dataset, result

    async def team_metrics(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Per-member metrics, highest completed story points first."""
        result = await self.aggregate(now)
        return [member.to_dict() for member in result.by_member]

    async def sprint_metrics(
        self,
        include_items: bool = False,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Per-sprint metrics, newest sprint first."""
        result = await self.aggregate(now)
        return [bucket.to_dict(include_items=include_items) for bucket in result.by_sprint]

    async def team_overview(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        dataset, result = await self._aggregate_snapshot(now)
        overview = summarize_team(dataset.records, result.by_member, self.taxonomy)
        return overview.to_dict()

    async def current_sprint(self, today: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Current sprint position plus averages across sprints.

        The sprint number comes from the configured cadence; without a
        configured start date it is 0.
        """
        result = await self.aggregate(today)
        current = current_sprint(self.sprint_config, today)
        summary = summarize_sprints(result.by_sprint, current)

        data = summary.to_dict()
        data['start_date'] = current.start_date.isoformat() if current.start_date else None
        data['end_date'] = current.end_date.isoformat() if current.end_date else None
        data['sprint_length_weeks'] = self.sprint_config.length_weeks
        return data

    def get_statistics(self) -> Dict[str, Any]:
        return {
            'dataset_version': self._dataset.version if self._dataset else None,
            'work_items': len(self._dataset) if self._dataset else 0,
            'relation_cache': self.relation_cache.get_stats()
        }
