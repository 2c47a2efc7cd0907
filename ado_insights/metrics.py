"""
Team and sprint metrics aggregation.

Turns a snapshot of work item records (plus optional relation data) into
per-member and per-sprint metrics. Everything here is a pure function of its
inputs: a malformed record degrades to defaults, it never stops the pass.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set

from .classifier import (
    DEFAULT_REWORK_RULES,
    DEFAULT_TAXONOMY,
    Classification,
    ReworkMethod,
    ReworkRule,
    Taxonomy,
    classify,
    detect_rework,
)
from .constants import CanonicalField, SprintDefaults, WorkItemTypes
from .fields import (
    Record,
    get_assignee,
    get_id,
    get_story_points,
    is_type,
    resolve_date,
)
from .models import AggregateResult, MemberMetrics, SprintBucket, SprintSummary, TeamOverview
from .relations import RelationSet
from .sprints import CurrentSprint, SprintAssignment, SprintConfig, resolve_sprint, total_sprint_count
from .stats import average, ceil_days, median, percentage, percentile_summary

logger = logging.getLogger(__name__)


class BugRatioMethod:
    RELATIONS = "relations"
    DIRECT_ASSIGNMENT = "direct_assignment"


class PerformanceLevel:
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class _Item:
    """A record with its derived attributes computed once per pass."""
    record: Record
    id: Optional[int]
    assignee: str
    story_points: float
    classification: Classification
    sprint: SprintAssignment
    is_story: bool
    is_bug: bool
    is_velocity_type: bool
    rework_method: Optional[str]
    is_backward_transition: bool

    @property
    def is_velocity_eligible(self) -> bool:
        return self.is_velocity_type and self.story_points > 0


def _prepare(
    records: Iterable[Record],
    sprint_config: SprintConfig,
    taxonomy: Taxonomy,
    rework_rules: Sequence[ReworkRule]
) -> List[_Item]:
    regression_rules = [r for r in rework_rules if r.method == ReworkMethod.STATE_REGRESSION]
    items = []
    for record in records:
        if not isinstance(record, dict):
            continue
        items.append(_Item(
            record=record,
            id=get_id(record),
            assignee=get_assignee(record),
            story_points=get_story_points(record),
            classification=classify(record, taxonomy),
            sprint=resolve_sprint(record, sprint_config),
            is_story=is_type(record, WorkItemTypes.USER_STORY),
            is_bug=is_type(record, WorkItemTypes.BUG),
            is_velocity_type=is_type(record, *WorkItemTypes.VELOCITY_TYPES),
            rework_method=detect_rework(record, rework_rules),
            is_backward_transition=any(rule.matches(record) for rule in regression_rules)
        ))
    return items


def cycle_time_days(record: Record) -> Optional[int]:
    """Days from activation to resolution, rounded up; None without both dates."""
    return ceil_days(
        resolve_date(record, CanonicalField.ACTIVATED_DATE),
        resolve_date(record, CanonicalField.RESOLVED_DATE)
    )


def lead_time_days(record: Record) -> Optional[int]:
    """Days from creation to closure (or resolution), rounded up."""
    finished = (
        resolve_date(record, CanonicalField.CLOSED_DATE)
        or resolve_date(record, CanonicalField.RESOLVED_DATE)
    )
    return ceil_days(resolve_date(record, CanonicalField.CREATED_DATE), finished)


def performance_level(completion_rate: float, efficiency: float, bug_ratio: float) -> str:
    if completion_rate >= 80 and efficiency >= 80 and bug_ratio <= 15:
        return PerformanceLevel.HIGH
    if completion_rate < 60 or efficiency < 60 or bug_ratio > 30:
        return PerformanceLevel.LOW
    return PerformanceLevel.MEDIUM


def _child_bug_ids(story_ids: Iterable[int], relations: RelationSet, bug_ids: Set[int]) -> Set[int]:
    children = set()
    for story_id in story_ids:
        children.update(relations.children_of(story_id))
    return children & bug_ids


def _member_metrics(
    assignee: str,
    items: List[_Item],
    relations: Optional[RelationSet],
    bug_ids: Set[int],
    sprint_count: int
) -> MemberMetrics:
    eligible = [i for i in items if i.is_velocity_eligible]
    completed = [i for i in eligible if i.classification.is_completed]

    total_points = sum(i.story_points for i in eligible)
    completed_points = sum(i.story_points for i in completed)
    active_points = sum(i.story_points for i in eligible if i.classification.is_active)

    cycle_times = [d for d in (cycle_time_days(i.record) for i in completed) if d is not None]
    lead_times = [d for d in (lead_time_days(i.record) for i in completed) if d is not None]

    stories = [i for i in items if i.is_story]
    direct_bugs = [i for i in items if i.is_bug]

    if relations is not None and stories:
        child_bugs = _child_bug_ids(
            (i.id for i in stories if i.id is not None), relations, bug_ids
        )
        bug_ratio = percentage(len(child_bugs), len(stories), cap=100)
        method = BugRatioMethod.RELATIONS
        explanation = (
            f"{len(child_bugs)} bugs found as children of {len(stories)} "
            f"user stories assigned to developer ({bug_ratio}%)"
        )
        child_bugs_count = len(child_bugs)
    else:
        bug_ratio = percentage(len(direct_bugs), len(items), cap=100)
        method = BugRatioMethod.DIRECT_ASSIGNMENT
        explanation = (
            f"Fallback: {len(direct_bugs)} bugs directly assigned out of "
            f"{len(items)} total items ({bug_ratio}%)"
        )
        child_bugs_count = 0

    completion_rate = percentage(len(completed), len(eligible), cap=100)
    efficiency = percentage(completed_points, total_points, cap=100)

    return MemberMetrics(
        assignee=assignee,
        total_items=len(items),
        velocity_eligible_items=len(eligible),
        completed_items=len(completed),
        active_items=sum(1 for i in items if i.classification.is_active),
        blocked_items=sum(1 for i in items if i.classification.is_blocked),
        total_story_points=total_points,
        completed_story_points=completed_points,
        active_story_points=active_points,
        avg_cycle_time=round(average(cycle_times), 1),
        median_cycle_time=median(cycle_times),
        avg_lead_time=round(average(lead_times), 1),
        throughput=len(completed),
        velocity=round(completed_points / max(sprint_count, 1), 1),
        completion_rate=completion_rate,
        efficiency=efficiency,
        bug_ratio=bug_ratio,
        bug_ratio_method=method,
        bug_ratio_explanation=explanation,
        user_stories_count=len(stories),
        direct_bugs_count=len(direct_bugs),
        child_bugs_count=child_bugs_count,
        performance_level=performance_level(completion_rate, efficiency, bug_ratio)
    )


def _linked_bug_ids(items: List[_Item], relations: Optional[RelationSet]) -> Set[int]:
    """IDs of bugs that are hierarchical children of any story in the dataset."""
    if relations is None:
        return set()
    bug_ids = {i.id for i in items if i.is_bug and i.id is not None}
    story_ids = [i.id for i in items if i.is_story and i.id is not None]
    return _child_bug_ids(story_ids, relations, bug_ids)


def _sprint_bucket(name: str, items: List[_Item], linked_bugs: Set[int]) -> SprintBucket:
    first = items[0].sprint
    total = len(items)
    completed = [i for i in items if i.classification.is_completed]
    bugs = [i for i in items if i.is_bug]
    rework = [i for i in items if i.rework_method is not None]

    return SprintBucket(
        name=name,
        number=first.bucket_number,
        method=first.method,
        members=[i.record for i in items],
        total=total,
        completed=len(completed),
        active=sum(1 for i in items if i.classification.is_active),
        blocked=sum(1 for i in items if i.classification.is_blocked),
        story_points=sum(i.story_points for i in items),
        completed_story_points=sum(i.story_points for i in completed),
        active_story_points=sum(i.story_points for i in items if i.classification.is_active),
        user_stories=sum(1 for i in items if i.is_story),
        completed_user_stories=sum(1 for i in completed if i.is_story),
        bugs=len(bugs),
        completed_bugs=sum(1 for i in completed if i.is_bug),
        linked_bugs=sum(1 for i in bugs if i.id in linked_bugs),
        rework_items=len(rework),
        backward_transitions=sum(1 for i in items if i.is_backward_transition),
        completion_rate=percentage(len(completed), total, cap=100),
        bug_ratio=percentage(len(bugs), total, cap=100),
        rework_rate=percentage(len(rework), total, cap=100)
    )


def sprint_sort_key(bucket: SprintBucket):
    """Numbered sprints first, newest first; then named buckets by name."""
    return (bucket.number <= 0, -bucket.number, bucket.name)


def apply_scope_change(buckets: List[SprintBucket]):
    """
    Set scope_change on buckets already ordered newest first.

    Each numbered sprint is compared with the next older numbered sprint,
    even when a named bucket such as Backlog or Pre-Sprint sorts between
    them. Named buckets are never compared and never serve as the baseline;
    they keep 0, as does the oldest numbered sprint.
    """
    numbered = [b for b in buckets if b.number > 0]
    for current, previous in zip(numbered, numbered[1:]):
        if previous.story_points > 0:
            current.scope_change = round(
                abs(current.story_points - previous.story_points) / previous.story_points * 100, 1
            )
        else:
            current.scope_change = 0


def aggregate(
    records: Optional[Iterable[Record]],
    relations: Optional[RelationSet] = None,
    sprint_config: Optional[SprintConfig] = None,
    *,
    taxonomy: Taxonomy = DEFAULT_TAXONOMY,
    rework_rules: Sequence[ReworkRule] = DEFAULT_REWORK_RULES,
    now: Optional[datetime] = None
) -> AggregateResult:
    """
    Compute per-member and per-sprint metrics for a snapshot of work items.

    Args:
        records: Work item records (row, Analytics or REST field names)
        relations: Relation data, or None when unavailable
        sprint_config: Sprint cadence for date bucketing and sprint count
        taxonomy: State vocabulary for classification
        rework_rules: Ordered rework detection rules
        now: Reference time for the elapsed sprint count

    Returns:
        AggregateResult with members ordered by completed story points and
        sprints ordered newest first
    """
    sprint_config = sprint_config or SprintConfig()
    items = _prepare(records or (), sprint_config, taxonomy, rework_rules)
    if not items:
        return AggregateResult(by_member=[], by_sprint=[])

    sprint_count = total_sprint_count((i.record for i in items), sprint_config, now)
    bug_ids = {i.id for i in items if i.is_bug and i.id is not None}

    by_assignee: Dict[str, List[_Item]] = OrderedDict()
    by_sprint: Dict[str, List[_Item]] = OrderedDict()
    for item in items:
        if item.assignee != SprintDefaults.UNASSIGNED:
            by_assignee.setdefault(item.assignee, []).append(item)
        by_sprint.setdefault(item.sprint.bucket_name, []).append(item)

    members = [
        _member_metrics(assignee, member_items, relations, bug_ids, sprint_count)
        for assignee, member_items in by_assignee.items()
    ]
    members.sort(key=lambda m: (-m.completed_story_points, m.assignee))

    linked_bugs = _linked_bug_ids(items, relations)
    sprints = [_sprint_bucket(name, sprint_items, linked_bugs) for name, sprint_items in by_sprint.items()]
    sprints.sort(key=sprint_sort_key)
    apply_scope_change(sprints)

    logger.info(
        f"Aggregated {len(items)} work items into {len(members)} members and "
        f"{len(sprints)} sprints (sprint count {sprint_count}, "
        f"relations {'available' if relations is not None else 'unavailable'})"
    )
    return AggregateResult(by_member=members, by_sprint=sprints)


def summarize_team(
    records: Optional[Iterable[Record]],
    by_member: Sequence[MemberMetrics],
    taxonomy: Taxonomy = DEFAULT_TAXONOMY
) -> TeamOverview:
    """Team-wide totals and the cycle time distribution of completed work."""
    records = [r for r in (records or ()) if isinstance(r, dict)]
    completed = [r for r in records if classify(r, taxonomy).is_completed]
    cycle_times = [d for d in (cycle_time_days(r) for r in completed) if d is not None]

    return TeamOverview(
        total_members=len(by_member),
        active_members=sum(1 for m in by_member if m.active_items > 0),
        total_work_items=len(records),
        completed_items=len(completed),
        total_story_points=sum(get_story_points(r) for r in records),
        avg_completion_rate=round(average(m.completion_rate for m in by_member), 1),
        cycle_time_percentiles=percentile_summary(cycle_times)
    )


def summarize_sprints(
    by_sprint: Sequence[SprintBucket],
    current: Optional[CurrentSprint] = None
) -> SprintSummary:
    """
    Averages across numbered sprints.

    Named buckets (Backlog, Pre-Sprint and other non-numbered iterations)
    are excluded from total_sprints and from every average. Scope change is
    averaged over the numbered sprints that have an older sprint to compare
    against.
    """
    numbered = [b for b in by_sprint if b.number > 0]
    current = current or CurrentSprint(number=0, days_remaining=0)

    return SprintSummary(
        total_sprints=len(numbered),
        current_sprint=current.number,
        days_remaining=current.days_remaining,
        avg_velocity=round(average(b.completed_story_points for b in numbered), 1),
        avg_completion_rate=round(average(b.completion_rate for b in numbered), 1),
        scope_change_rate=round(average(b.scope_change for b in numbered[:-1]), 1)
    )
