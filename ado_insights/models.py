"""
Data models for Azure DevOps team and sprint insights
"""
import itertools
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .constants import LinkTypes
from .fields import get_id

_dataset_versions = itertools.count(1)


@dataclass(frozen=True)
class WorkItemDataset:
    """
    A loaded snapshot of work item records.

    The version is unique per snapshot and serves as the dataset identity
    for anything cached from it.
    """
    records: Tuple[Dict[str, Any], ...]
    version: int = field(default_factory=lambda: next(_dataset_versions))

    @classmethod
    def from_records(cls, records) -> "WorkItemDataset":
        return cls(records=tuple(records or ()))

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class RelationEdge:
    """A link between two work items"""
    source_id: int
    target_id: int
    link_type: str

    @property
    def is_hierarchy_child(self) -> bool:
        """True for parent -> child links"""
        return self.link_type == LinkTypes.HIERARCHY_FORWARD


@dataclass
class MemberMetrics:
    """Per-assignee performance metrics"""
    assignee: str
    total_items: int = 0
    velocity_eligible_items: int = 0
    completed_items: int = 0
    active_items: int = 0
    blocked_items: int = 0
    total_story_points: float = 0
    completed_story_points: float = 0
    active_story_points: float = 0
    avg_cycle_time: float = 0
    median_cycle_time: float = 0
    avg_lead_time: float = 0
    throughput: int = 0
    velocity: float = 0
    completion_rate: float = 0
    efficiency: float = 0
    bug_ratio: float = 0
    bug_ratio_method: str = ""
    bug_ratio_explanation: str = ""
    user_stories_count: int = 0
    direct_bugs_count: int = 0
    child_bugs_count: int = 0
    performance_level: str = "medium"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SprintBucket:
    """Work items grouped into one sprint, with sprint-level metrics"""
    name: str
    number: int
    method: str
    members: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    completed: int = 0
    active: int = 0
    blocked: int = 0
    story_points: float = 0
    completed_story_points: float = 0
    active_story_points: float = 0
    user_stories: int = 0
    completed_user_stories: int = 0
    bugs: int = 0
    completed_bugs: int = 0
    linked_bugs: int = 0
    rework_items: int = 0
    backward_transitions: int = 0
    completion_rate: float = 0
    bug_ratio: float = 0
    rework_rate: float = 0
    scope_change: float = 0

    def to_dict(self, include_items: bool = False) -> Dict[str, Any]:
        data = asdict(self)
        if include_items:
            return data
        data.pop('members')
        data['member_ids'] = [get_id(item) for item in self.members]
        return data


@dataclass
class AggregateResult:
    """Output of a full aggregation pass"""
    by_member: List[MemberMetrics] = field(default_factory=list)
    by_sprint: List[SprintBucket] = field(default_factory=list)

    def member(self, assignee: str) -> Optional[MemberMetrics]:
        for metrics in self.by_member:
            if metrics.assignee == assignee:
                return metrics
        return None

    def sprint(self, name: str) -> Optional[SprintBucket]:
        for bucket in self.by_sprint:
            if bucket.name == name:
                return bucket
        return None


@dataclass
class TeamOverview:
    """Team-wide summary"""
    total_members: int
    active_members: int
    total_work_items: int
    completed_items: int
    total_story_points: float
    avg_completion_rate: float
    cycle_time_percentiles: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SprintSummary:
    """Summary across all sprint buckets"""
    total_sprints: int
    current_sprint: int
    days_remaining: int
    avg_velocity: float
    avg_completion_rate: float
    scope_change_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
