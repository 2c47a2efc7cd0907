"""
Exception classes for Azure DevOps calls made while loading analytics data.

Only the service boundary raises these. The analytics core converts missing
or malformed data into defaults instead.
"""

import inspect
from typing import Any, Dict, Optional, Type


class AzureDevOpsError(Exception):
    """
    Base exception for Azure DevOps API errors.

    Subclasses set ``status`` and ``default_message``; the constructor only
    needs the values that vary per failure.

    Attributes:
        status_code: HTTP status code from the API response, if any
        message: Human-readable error message
        original_error: The SDK exception this error wraps
        details: Extra context for the caller
    """

    status: Optional[int] = None
    default_message = "Azure DevOps API error"

    def __init__(
        self,
        status_code: Optional[int] = None,
        message: Optional[str] = None,
        original_error: Optional[Exception] = None,
        details: Optional[Any] = None
    ):
        self.status_code = status_code if status_code is not None else self.status
        self.message = message or self.default_message
        self.original_error = original_error
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.status_code:
            return f"[{self.status_code}] {self.message}"
        return self.message

    def to_dict(self) -> dict:
        return {
            'error': type(self).__name__,
            'status_code': self.status_code,
            'message': self.message,
            'details': str(self.details) if self.details else None
        }


class BadRequestError(AzureDevOpsError):
    """
    HTTP 400. Typically invalid WIQL, an unknown field in the field list,
    or a fields/expand combination the batch endpoint rejects.
    """

    status = 400
    default_message = "Bad request. Please check the query and field names."


class AuthenticationError(AzureDevOpsError):
    """HTTP 401: expired or revoked token, or no access to the organization."""

    status = 401
    default_message = "Authentication failed. Your token may have expired. Please refresh credentials."


class PermissionDeniedError(AzureDevOpsError):
    """HTTP 403: the credential cannot read work items."""

    status = 403
    default_message = "Permission denied. Reading work items requires the 'vso.work' scope."

    def __init__(
        self,
        operation: Optional[str] = None,
        required_scope: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        message = None
        if operation:
            message = f"Permission denied for {operation}."
            if required_scope:
                message += f" The credential needs the '{required_scope}' scope."
            else:
                message += " Please check your project permissions."

        super().__init__(
            message=message,
            original_error=original_error,
            details={'operation': operation, 'required_scope': required_scope}
        )


class ProjectNotFoundError(AzureDevOpsError):
    """HTTP 404: the project, area path or requested resource does not exist."""

    status = 404
    default_message = "Resource not found. Please verify the project and area path."

    def __init__(self, project: Optional[str] = None, original_error: Optional[Exception] = None):
        super().__init__(
            message=f"Project '{project}' not found. Please verify the name and your access." if project else None,
            original_error=original_error,
            details={'project': project} if project else None
        )


class TimeoutError(AzureDevOpsError):
    """HTTP 408, also raised when a call exceeds its local timeout."""

    status = 408

    def __init__(self, timeout_seconds: float = 30, original_error: Optional[Exception] = None):
        super().__init__(
            message=f"No response from Azure DevOps within {timeout_seconds} seconds.",
            original_error=original_error,
            details={'timeout_seconds': timeout_seconds}
        )


class QueryTooLargeError(AzureDevOpsError):
    """HTTP 413, or a snapshot query matching more items than can be loaded."""

    status = 413

    def __init__(
        self,
        result_count: Optional[int] = None,
        max_results: int = 20000,
        original_error: Optional[Exception] = None
    ):
        if result_count:
            message = f"Query matched {result_count} work items; at most {max_results} can be loaded."
        else:
            message = f"Query result too large (max {max_results} work items)."

        super().__init__(
            message=f"{message} Please narrow the area path.",
            original_error=original_error,
            details={'result_count': result_count, 'max_results': max_results}
        )


class RateLimitError(AzureDevOpsError):
    """HTTP 429. Carries the Retry-After value when the service sent one."""

    status = 429

    def __init__(self, retry_after: Optional[int] = None, original_error: Optional[Exception] = None):
        wait = f"{retry_after} seconds" if retry_after else "a brief delay"
        super().__init__(
            message=f"Rate limit exceeded. Please retry after {wait}.",
            original_error=original_error,
            details={'retry_after': retry_after}
        )
        self.retry_after = retry_after


class TransientError(AzureDevOpsError):
    """HTTP 500, 502, 503 or 504; retried automatically."""

    def __init__(self, status_code: int, original_error: Optional[Exception] = None):
        super().__init__(
            status_code=status_code,
            message=f"Azure DevOps service temporarily unavailable (HTTP {status_code}).",
            original_error=original_error
        )


TRANSIENT_STATUS_CODES = (500, 502, 503, 504)

# Errors built from keyword arguments only; transient errors also need the status
_ERRORS_BY_STATUS: Dict[int, Type[AzureDevOpsError]] = {
    cls.status: cls
    for cls in (
        BadRequestError,
        AuthenticationError,
        PermissionDeniedError,
        ProjectNotFoundError,
        TimeoutError,
        QueryTooLargeError,
        RateLimitError,
    )
}


def map_status_code_to_error(
    status_code: int,
    original_error: Optional[Exception] = None,
    **kwargs
) -> AzureDevOpsError:
    """
    Build the error for an HTTP status code.

    Keyword arguments the target class does not take are dropped, so callers
    can pass whatever they extracted from the response (e.g. ``retry_after``).
    """
    if status_code in TRANSIENT_STATUS_CODES:
        return TransientError(status_code=status_code, original_error=original_error)

    error_class = _ERRORS_BY_STATUS.get(status_code)
    if error_class is None:
        return AzureDevOpsError(
            status_code=status_code,
            message=f"Azure DevOps API error: HTTP {status_code}",
            original_error=original_error
        )

    accepted = inspect.signature(error_class).parameters
    return error_class(
        original_error=original_error,
        **{k: v for k, v in kwargs.items() if k in accepted}
    )
