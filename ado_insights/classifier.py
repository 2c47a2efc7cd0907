"""
Work item classification and rework detection.

State categories and rework heuristics are driven by configuration
(a Taxonomy and an ordered list of rework rules) so a different process
template can be supported without touching the aggregation code.
"""

from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Iterable, List, Optional, Sequence

from .constants import WorkItemStates
from .fields import (
    Record,
    get_board_column,
    get_reason,
    get_state,
    get_tags,
    is_flagged_blocked,
)


class Category:
    """Effective category of a work item."""

    COMPLETED = "Completed"
    ACTIVE = "Active"
    BLOCKED = "Blocked"
    OTHER = "Other"


def _normalized(values: Iterable[str]) -> FrozenSet[str]:
    return frozenset(v.strip().lower() for v in values)


@dataclass(frozen=True)
class Taxonomy:
    """
    State vocabulary used by the classifier.

    All comparisons are case-insensitive.

    Attributes:
        closed_states: States that mean the work is finished
        done_columns: Board columns that mean the work is finished
        active_states: States or board columns that mean work is in progress
        blocked_tag: Substring of the tags field that flags an item blocked
        blocked_state: State value that flags an item blocked
    """

    closed_states: FrozenSet[str] = field(
        default_factory=lambda: _normalized(WorkItemStates.COMPLETED_STATES)
    )
    done_columns: FrozenSet[str] = field(
        default_factory=lambda: _normalized(WorkItemStates.DONE_COLUMNS)
    )
    active_states: FrozenSet[str] = field(
        default_factory=lambda: _normalized(WorkItemStates.IN_PROGRESS_STATES)
    )
    blocked_tag: str = "blocked"
    blocked_state: str = WorkItemStates.BLOCKED

    @classmethod
    def from_lists(
        cls,
        closed_states: Iterable[str],
        active_states: Iterable[str],
        done_columns: Iterable[str] = (),
        blocked_tag: str = "blocked",
        blocked_state: str = WorkItemStates.BLOCKED
    ) -> "Taxonomy":
        """Build a taxonomy from plain lists of names."""
        return cls(
            closed_states=_normalized(closed_states),
            done_columns=_normalized(done_columns),
            active_states=_normalized(active_states),
            blocked_tag=blocked_tag.lower(),
            blocked_state=blocked_state
        )


DEFAULT_TAXONOMY = Taxonomy()


@dataclass(frozen=True)
class Classification:
    """Completed/Active axis plus the independent Blocked flag."""

    is_completed: bool
    is_active: bool
    is_blocked: bool

    @property
    def category(self) -> str:
        if self.is_completed:
            return Category.COMPLETED
        if self.is_blocked:
            return Category.BLOCKED
        if self.is_active:
            return Category.ACTIVE
        return Category.OTHER


def classify(record: Optional[Record], taxonomy: Taxonomy = DEFAULT_TAXONOMY) -> Classification:
    """
    Classify a work item record.

    Never raises; a record with no usable fields classifies as Other.
    """
    state = get_state(record).lower()
    column = get_board_column(record).lower()

    is_completed = state in taxonomy.closed_states or column in taxonomy.done_columns
    is_active = not is_completed and (
        state in taxonomy.active_states or column in taxonomy.active_states
    )
    is_blocked = (
        is_flagged_blocked(record)
        or taxonomy.blocked_tag in get_tags(record).lower()
        or state == taxonomy.blocked_state.lower()
    )

    return Classification(
        is_completed=is_completed,
        is_active=is_active,
        is_blocked=is_blocked
    )


# ============================================================================
# Rework detection
# ============================================================================

class ReworkMethod:
    PATTERN_MATCH = "pattern_match"
    STATE_REGRESSION = "state_regression"


@dataclass(frozen=True)
class ReworkRule:
    """A named predicate over a work item record."""

    method: str
    predicate: Callable[[Record], bool]

    def matches(self, record: Record) -> bool:
        return self.predicate(record)


DEFAULT_REWORK_KEYWORDS = (
    # Explicit rework reasons
    'moved to rework', 'returned for rework', 'rejected', 'failed review',
    'needs rework', 'rework required', 'back to development', 'reopened',

    # Board column. Plain 'development', 'in progress' and 'active' columns
    # do not count as rework.
    'rework',

    # State transitions
    'moved from done', 'moved from completed', 'moved from resolved',
    'reactivated', 'regression',
)

DONE_LIKE_WORDS = ('done', 'completed', 'resolved', 'closed')

CURRENTLY_ACTIVE_STATES = ('active', 'in progress', 'development', 'new')


def keyword_rule(keywords: Sequence[str] = DEFAULT_REWORK_KEYWORDS) -> ReworkRule:
    """Match any keyword in the reason or board column text."""
    lowered = tuple(k.lower() for k in keywords)

    def predicate(record: Record) -> bool:
        reason = get_reason(record).lower()
        column = get_board_column(record).lower()
        return any(k in reason or k in column for k in lowered)

    return ReworkRule(method=ReworkMethod.PATTERN_MATCH, predicate=predicate)


def state_regression_rule(
    done_words: Sequence[str] = DONE_LIKE_WORDS,
    active_states: Sequence[str] = CURRENTLY_ACTIVE_STATES
) -> ReworkRule:
    """Match items whose reason says they left a done-like state and are active again."""
    active = _normalized(active_states)

    def predicate(record: Record) -> bool:
        reason = get_reason(record).lower()
        if 'moved from' not in reason:
            return False
        if not any(word in reason for word in done_words):
            return False
        return get_state(record).lower() in active

    return ReworkRule(method=ReworkMethod.STATE_REGRESSION, predicate=predicate)


# detect_rework reports the first matching rule, so an item matched by both
# rules is reported as PATTERN_MATCH. The sprint backward_transitions count
# checks the STATE_REGRESSION rule on its own and includes such items.
DEFAULT_REWORK_RULES: List[ReworkRule] = [
    keyword_rule(),
    state_regression_rule(),
]


def detect_rework(
    record: Optional[Record],
    rules: Sequence[ReworkRule] = DEFAULT_REWORK_RULES
) -> Optional[str]:
    """
    Return the method of the first rework rule that matches, or None.
    """
    if not record:
        return None
    for rule in rules:
        if rule.matches(record):
            return rule.method
    return None
