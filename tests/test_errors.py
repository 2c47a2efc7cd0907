"""
Unit tests for error module.

Tests the exception classes and HTTP status code mapping.
"""

import pytest

from ado_insights.errors import (
    AuthenticationError,
    AzureDevOpsError,
    BadRequestError,
    PermissionDeniedError,
    ProjectNotFoundError,
    QueryTooLargeError,
    RateLimitError,
    TimeoutError as ADOTimeoutError,
    TransientError,
    map_status_code_to_error,
)


class TestAzureDevOpsError:
    """Test base AzureDevOpsError class."""

    def test_base_error_creation(self):
        error = AzureDevOpsError(message="Test error message")
        assert str(error) == "Test error message"
        assert error.status_code is None

    def test_base_error_with_status_code(self):
        error = AzureDevOpsError(status_code=500, message="Test error")
        assert "[500]" in str(error)

    def test_to_dict(self):
        error = ProjectNotFoundError(project="Apollo")
        data = error.to_dict()
        assert data["error"] == "ProjectNotFoundError"
        assert data["status_code"] == 404
        assert "Apollo" in data["message"]
        assert "Apollo" in data["details"]


class TestSpecificErrors:
    """Test the individual error classes."""

    def test_project_not_found(self):
        assert "not found" in str(ProjectNotFoundError()).lower()
        assert "Apollo" in str(ProjectNotFoundError(project="Apollo"))

    def test_authentication_error(self):
        error = AuthenticationError()
        assert error.status_code == 401
        assert "expired" in str(error)

    def test_permission_denied_default_mentions_scope(self):
        error = PermissionDeniedError()
        assert error.status_code == 403
        assert "vso.work" in str(error)

    def test_permission_denied_with_operation(self):
        error = PermissionDeniedError(operation="load work items", required_scope="vso.work")
        assert "load work items" in str(error)
        assert error.details["required_scope"] == "vso.work"

    def test_rate_limit_retry_after(self):
        error = RateLimitError(retry_after=30)
        assert error.retry_after == 30
        assert "30 seconds" in str(error)

    def test_transient_error(self):
        error = TransientError(status_code=503)
        assert error.status_code == 503
        assert "temporarily unavailable" in str(error)

    def test_query_too_large(self):
        error = QueryTooLargeError(result_count=25000, max_results=20000)
        assert error.status_code == 413
        assert "25000" in str(error)
        assert "area path" in str(error)

    def test_timeout(self):
        error = ADOTimeoutError(timeout_seconds=60)
        assert error.details == {"timeout_seconds": 60}


class TestStatusCodeMapping:
    """Test map_status_code_to_error."""

    @pytest.mark.parametrize("status_code,error_class", [
        (400, BadRequestError),
        (401, AuthenticationError),
        (403, PermissionDeniedError),
        (404, ProjectNotFoundError),
        (408, ADOTimeoutError),
        (413, QueryTooLargeError),
        (429, RateLimitError),
        (500, TransientError),
        (502, TransientError),
        (503, TransientError),
        (504, TransientError),
    ])
    def test_mapping(self, status_code, error_class):
        error = map_status_code_to_error(status_code)
        assert isinstance(error, error_class)
        assert isinstance(error, AzureDevOpsError)

    def test_unmapped_status_code(self):
        error = map_status_code_to_error(418)
        assert type(error) is AzureDevOpsError
        assert error.status_code == 418

    def test_original_error_preserved(self):
        original = ValueError("boom")
        assert map_status_code_to_error(503, original_error=original).original_error is original

    def test_rate_limit_kwargs(self):
        assert map_status_code_to_error(429, retry_after=12).retry_after == 12
