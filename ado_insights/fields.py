"""
Field access for loosely-typed work item records.

Work item records arrive as plain dicts keyed by whichever schema produced
them (WIQL rows, Analytics columns or REST reference names). Everything in
the analytics core reads records through these helpers so that a missing or
malformed field degrades to a default instead of raising.
"""

import math
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Optional, Union

from dateutil import parser as date_parser

from .constants import FIELD_ALIASES, CanonicalField, SprintDefaults

Record = Dict[str, Any]
FieldSpec = Union[CanonicalField, Iterable[str]]


def _aliases(field: FieldSpec) -> Iterable[str]:
    if isinstance(field, CanonicalField):
        return FIELD_ALIASES[field]
    return field


def resolve(record: Optional[Record], field: FieldSpec) -> Any:
    """
    Return the first defined value for a field.

    Args:
        record: Work item record (may be None)
        field: A CanonicalField, or an ordered list of acceptable keys

    Returns:
        The value under the first alias present with a non-None value,
        otherwise None
    """
    if not record:
        return None

    for key in _aliases(field):
        value = record.get(key)
        if value is not None:
            return value
    return None


def resolve_text(record: Optional[Record], field: FieldSpec, default: str = '') -> str:
    """Resolve a field as a stripped string, flattening identity values."""
    value = resolve(record, field)
    if value is None:
        return default

    if isinstance(value, dict):
        value = value.get('displayName') or value.get('uniqueName')
        if not value:
            return default

    text = str(value).strip()
    return text or default


def resolve_number(record: Optional[Record], field: FieldSpec) -> float:
    """
    Resolve a numeric field with best-effort coercion.

    Returns 0 for missing, unparsable, negative-infinite or NaN values.
    """
    value = resolve(record, field)
    if value is None or isinstance(value, bool):
        return 0

    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0

    if math.isnan(number) or math.isinf(number):
        return 0
    return number


def resolve_date(record: Optional[Record], field: FieldSpec) -> Optional[datetime]:
    """Resolve a timestamp field; malformed values are treated as absent."""
    return parse_date(resolve(record, field))


_ISO_DATE = re.compile(r"^\d{4}-?\d{2}-?\d{2}")

# Two defaults that differ in every date component
_COMPLETENESS_DEFAULTS = (datetime(2000, 1, 1), datetime(2004, 2, 2))


def _parse_date_string(value: str) -> Optional[datetime]:
    """
    ISO 8601 first, then other formats that spell out a full date
    (e.g. RFC 1123 "Mon, 01 Jan 2024 12:00:45 GMT").

    Fragments such as "12", "March" or "5 pm" return None rather than
    borrowing the missing year, month or day from a default.
    """
    if _ISO_DATE.match(value):
        try:
            return date_parser.isoparse(value)
        except (ValueError, OverflowError):
            pass

    try:
        first, second = (date_parser.parse(value, default=d) for d in _COMPLETENESS_DEFAULTS)
    except (ValueError, OverflowError):
        return None
    if first.date() != second.date():
        return None
    return first


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp into an aware UTC datetime.

    Naive values are assumed to be UTC. Anything that cannot be parsed
    returns None.
    """
    if value is None or value == '':
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        parsed = _parse_date_string(value.strip())
        if parsed is None:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def get_id(record: Optional[Record]) -> Optional[int]:
    """Work item ID as an int, or None."""
    value = resolve(record, CanonicalField.ID)
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def get_type(record: Optional[Record]) -> str:
    return resolve_text(record, CanonicalField.TYPE, default='Unknown')


def get_state(record: Optional[Record]) -> str:
    return resolve_text(record, CanonicalField.STATE)


def get_board_column(record: Optional[Record]) -> str:
    return resolve_text(record, CanonicalField.BOARD_COLUMN)


def get_assignee(record: Optional[Record]) -> str:
    return resolve_text(record, CanonicalField.ASSIGNEE, default=SprintDefaults.UNASSIGNED)


def get_story_points(record: Optional[Record]) -> float:
    """Story points, never negative."""
    return max(resolve_number(record, CanonicalField.STORY_POINTS), 0)


def get_iteration_path(record: Optional[Record]) -> str:
    return resolve_text(record, CanonicalField.ITERATION_PATH)


def get_tags(record: Optional[Record]) -> str:
    return resolve_text(record, CanonicalField.TAGS)


def get_reason(record: Optional[Record]) -> str:
    return resolve_text(record, CanonicalField.REASON)


def is_flagged_blocked(record: Optional[Record]) -> bool:
    """True when the explicit blocked flag is set (bool True or "Yes"/"True")."""
    value = resolve(record, CanonicalField.BLOCKED)
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ('yes', 'true')
    return False


def is_type(record: Optional[Record], *types: str) -> bool:
    """Case-insensitive work item type membership."""
    item_type = get_type(record).lower()
    return any(item_type == t.lower() for t in types)
