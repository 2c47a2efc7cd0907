"""
Input validation for configuration values and WIQL query construction.

Area paths are interpolated into WIQL, so they are checked and their string
literals escaped before use.
"""

from datetime import datetime
from typing import Any, Optional

from .fields import parse_date


class ValidationError(Exception):
    """Raised when input validation fails."""
    pass


class WiqlValidator:
    """Validator for WIQL (Work Item Query Language) queries."""

    MAX_QUERY_LENGTH = 32000  # 32KB limit per Azure DevOps documentation

    @staticmethod
    def validate(query: str) -> str:
        """
        Validate WIQL query structure.

        Raises:
            ValidationError: If query is empty, too long or malformed
        """
        if not query:
            raise ValidationError("WIQL query cannot be empty")

        if len(query) > WiqlValidator.MAX_QUERY_LENGTH:
            raise ValidationError(
                f"WIQL query exceeds maximum length of {WiqlValidator.MAX_QUERY_LENGTH} characters "
                f"(current length: {len(query)})"
            )

        query_upper = query.upper()
        if 'SELECT' not in query_upper:
            raise ValidationError("WIQL query must contain SELECT clause")
        if 'FROM' not in query_upper or 'WORKITEMS' not in query_upper:
            raise ValidationError("WIQL query must select FROM WorkItems")

        if not WiqlValidator._check_balanced_brackets(query):
            raise ValidationError("WIQL query has unbalanced square brackets")

        return query

    @staticmethod
    def _check_balanced_brackets(query: str) -> bool:
        count = 0
        for char in query:
            if char == '[':
                count += 1
            elif char == ']':
                count -= 1
            if count < 0:
                return False
        return count == 0

    @staticmethod
    def sanitize_string_literal(value: Optional[str]) -> Optional[str]:
        """Escape single quotes for use inside a WIQL string literal."""
        if value is None:
            return None
        return value.replace("'", "''")


class AreaPathValidator:
    """Validator for area paths used to scope the work item query."""

    MAX_LENGTH = 4000

    @staticmethod
    def validate(area_path: str, project: Optional[str] = None) -> str:
        """
        Validate and normalize an area path.

        Trailing separators are stripped and the project prefix is added when
        missing.

        Raises:
            ValidationError: If the path is empty, too long or contains
                traversal sequences
        """
        if not area_path or not area_path.strip():
            raise ValidationError("Area path cannot be empty")

        area_path = area_path.strip().rstrip('\\')

        if len(area_path) > AreaPathValidator.MAX_LENGTH:
            raise ValidationError(
                f"Area path exceeds maximum length of {AreaPathValidator.MAX_LENGTH} characters"
            )

        if '..' in area_path or '//' in area_path or '\\\\' in area_path:
            raise ValidationError(
                f"Invalid area path: '{area_path}'. "
                "Path traversal characters not allowed."
            )

        if project and area_path != project and not area_path.startswith(f'{project}\\'):
            area_path = f'{project}\\{area_path}'

        return area_path


class SprintSettingsValidator:
    """Validator for sprint cadence settings."""

    MIN_LENGTH_WEEKS = 1
    MAX_LENGTH_WEEKS = 8

    @staticmethod
    def validate_length(length_weeks: Any) -> int:
        """
        Validate sprint length in weeks.

        Raises:
            ValidationError: If not an integer between 1 and 8
        """
        try:
            weeks = int(str(length_weeks).strip())
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid sprint length: '{length_weeks}'. Must be a whole number of weeks.")

        if not SprintSettingsValidator.MIN_LENGTH_WEEKS <= weeks <= SprintSettingsValidator.MAX_LENGTH_WEEKS:
            raise ValidationError(
                f"Invalid sprint length: {weeks}. "
                f"Must be between {SprintSettingsValidator.MIN_LENGTH_WEEKS} and "
                f"{SprintSettingsValidator.MAX_LENGTH_WEEKS} weeks."
            )
        return weeks

    @staticmethod
    def validate_start_date(start_date: Any) -> datetime:
        """
        Validate the first sprint's start date.

        Raises:
            ValidationError: If the value is not a parsable date
        """
        parsed = parse_date(start_date)
        if parsed is None:
            raise ValidationError(
                f"Invalid sprint start date: '{start_date}'. Use an ISO date such as 2024-01-08."
            )
        return parsed


class BatchSettingsValidator:
    """Validator for relation batching settings."""

    MAX_BATCH_SIZE = 200  # Azure DevOps work items batch limit

    @staticmethod
    def validate_batch_size(batch_size: Any) -> int:
        try:
            size = int(str(batch_size).strip())
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid batch size: '{batch_size}'")

        if not 1 <= size <= BatchSettingsValidator.MAX_BATCH_SIZE:
            raise ValidationError(
                f"Invalid batch size: {size}. "
                f"Must be between 1 and {BatchSettingsValidator.MAX_BATCH_SIZE}."
            )
        return size

    @staticmethod
    def validate_batch_delay(delay: Any) -> float:
        try:
            seconds = float(str(delay).strip())
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid batch delay: '{delay}'")

        if seconds < 0 or seconds != seconds:
            raise ValidationError(f"Invalid batch delay: {delay}. Must be zero or positive.")
        return seconds


# Convenience functions

def validate_wiql(query: str) -> str:
    """Validate WIQL query."""
    return WiqlValidator.validate(query)


def sanitize_wiql_string(value: str) -> str:
    """Sanitize a string value for use in WIQL queries."""
    return WiqlValidator.sanitize_string_literal(value)


def validate_area_path(area_path: Optional[str], project: Optional[str] = None) -> Optional[str]:
    """Validate and normalize area path if provided."""
    return AreaPathValidator.validate(area_path, project) if area_path else None


def validate_sprint_length(length_weeks: Any) -> int:
    return SprintSettingsValidator.validate_length(length_weeks)


def validate_start_date(start_date: Optional[str]) -> Optional[datetime]:
    """Validate sprint start date if provided."""
    return SprintSettingsValidator.validate_start_date(start_date) if start_date else None


def validate_batch_size(batch_size: Any) -> int:
    return BatchSettingsValidator.validate_batch_size(batch_size)


def validate_batch_delay(delay: Any) -> float:
    return BatchSettingsValidator.validate_batch_delay(delay)
