"""
Sprint resolution for work items.

A work item's sprint is taken from its iteration path when one is set. Items
without an iteration path are bucketed by creation date relative to the
configured first sprint, so that no item is silently dropped.
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from .constants import CanonicalField, SprintDefaults
from .fields import Record, get_iteration_path, parse_date, resolve_date

SPRINT_PATTERN = re.compile(r'Sprint\s*(\d+)', re.IGNORECASE)


class AssignmentMethod:
    ITERATION_PATH = "iteration_path"
    ITERATION_PATH_DIRECT = "iteration_path_direct"
    CREATION_DATE = "creation_date"
    PRE_SPRINT = "pre_sprint"


@dataclass(frozen=True)
class SprintConfig:
    """
    Sprint cadence.

    Attributes:
        length_weeks: Sprint length in weeks
        start_date: Start of sprint 1 (aware UTC datetime), or None
    """

    length_weeks: int = SprintDefaults.LENGTH_WEEKS
    start_date: Optional[datetime] = None

    def __post_init__(self):
        # Accept ISO strings, dates and naive datetimes
        object.__setattr__(self, 'start_date', parse_date(self.start_date))

    @classmethod
    def from_settings(cls, length_weeks: int, start_date: Optional[str]) -> "SprintConfig":
        """Build from settings values; an unparsable start date is ignored."""
        return cls(
            length_weeks=max(int(length_weeks), 1),
            start_date=start_date
        )

    @property
    def sprint_length(self) -> timedelta:
        return timedelta(weeks=max(self.length_weeks, 1))

    @property
    def is_configured(self) -> bool:
        return self.start_date is not None


@dataclass(frozen=True)
class SprintAssignment:
    """Which sprint bucket a record belongs to and how that was decided."""

    bucket_name: str
    bucket_number: int
    method: str


@dataclass(frozen=True)
class CurrentSprint:
    number: int
    days_remaining: int
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


def last_path_segment(iteration_path: str) -> str:
    return iteration_path.rstrip('\\').split('\\')[-1].strip()


def sprint_number_from_path(iteration_path: Optional[str]) -> Optional[int]:
    """Sprint number from the last segment of an iteration path, if any."""
    if not iteration_path:
        return None
    match = SPRINT_PATTERN.search(last_path_segment(iteration_path))
    if not match:
        return None
    return int(match.group(1))


def resolve_sprint(record: Optional[Record], config: SprintConfig) -> SprintAssignment:
    """
    Resolve the sprint bucket of a record.

    Rules, first match wins:
    1. Iteration path ending in "Sprint <N>" -> "Sprint N"
    2. Any other iteration path -> its last segment, number 0
    3. Created on/after the configured start -> date-derived sprint number
    4. Otherwise -> "Pre-Sprint", number 0
    """
    iteration_path = get_iteration_path(record)

    if iteration_path:
        number = sprint_number_from_path(iteration_path)
        if number is not None:
            return SprintAssignment(
                bucket_name=f"Sprint {number}",
                bucket_number=number,
                method=AssignmentMethod.ITERATION_PATH
            )

        return SprintAssignment(
            bucket_name=last_path_segment(iteration_path) or iteration_path,
            bucket_number=0,
            method=AssignmentMethod.ITERATION_PATH_DIRECT
        )

    created = resolve_date(record, CanonicalField.CREATED_DATE)
    if created is not None and config.start_date is not None and created >= config.start_date:
        number = (created - config.start_date) // config.sprint_length + 1
        return SprintAssignment(
            bucket_name=f"Sprint {number}",
            bucket_number=number,
            method=AssignmentMethod.CREATION_DATE
        )

    return SprintAssignment(
        bucket_name=SprintDefaults.PRE_SPRINT_NAME,
        bucket_number=0,
        method=AssignmentMethod.PRE_SPRINT
    )


def total_sprint_count(
    records: Iterable[Record],
    config: Optional[SprintConfig] = None,
    now: Optional[datetime] = None
) -> int:
    """
    Number of sprints elapsed, used as the velocity denominator.

    Priority:
    1. Configured start date and length vs. now
    2. Highest sprint number found in any iteration path
    3. Age of the oldest record, assuming two-week sprints
    4. 1
    """
    now = parse_date(now) or datetime.now(timezone.utc)
    records = list(records)

    if config is not None and config.start_date is not None:
        elapsed = now - config.start_date
        if elapsed > timedelta(0):
            return math.ceil(elapsed / config.sprint_length)

    numbers = [
        n for n in (sprint_number_from_path(get_iteration_path(r)) for r in records)
        if n is not None
    ]
    if numbers:
        return max(numbers)

    created_dates = [
        d for d in (resolve_date(r, CanonicalField.CREATED_DATE) for r in records)
        if d is not None
    ]
    if created_dates:
        elapsed = now - min(created_dates)
        fallback_length = timedelta(weeks=SprintDefaults.FALLBACK_LENGTH_WEEKS)
        return max(1, math.ceil(elapsed / fallback_length))

    return 1


def current_sprint(config: SprintConfig, today: Optional[datetime] = None) -> CurrentSprint:
    """
    Current sprint number and days remaining for a configured cadence.

    Returns sprint 0 with no dates before the first sprint starts or when no
    start date is configured.
    """
    if config.start_date is None:
        return CurrentSprint(number=0, days_remaining=0)

    today = parse_date(today) or datetime.now(timezone.utc)
    midnight = today.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = midnight - config.start_date
    if elapsed < timedelta(0):
        return CurrentSprint(number=0, days_remaining=0)

    number = elapsed // config.sprint_length + 1
    start = config.start_date + (number - 1) * config.sprint_length
    end = start + config.sprint_length
    days_remaining = math.ceil((end - midnight) / timedelta(days=1))

    return CurrentSprint(
        number=number,
        days_remaining=days_remaining,
        start_date=start,
        end_date=end - timedelta(microseconds=1)
    )
