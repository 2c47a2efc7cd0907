"""
Decorators for Azure DevOps calls: error mapping, retry and timeouts.

Every service method that talks to the SDK is wrapped with
azure_devops_operation so callers only ever see AzureDevOpsError subclasses.
"""

import asyncio
import logging
from datetime import datetime, timezone
from functools import wraps
from typing import Callable, TypeVar, Any, Optional

from .errors import (
    AzureDevOpsError,
    map_status_code_to_error,
    RateLimitError,
    TransientError,
    TimeoutError as ADOTimeoutError
)
from .fields import parse_date

T = TypeVar('T')

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 60


def _status_code_of(error: Exception) -> Optional[int]:
    """HTTP status code carried by an SDK exception, if any."""
    status_code = getattr(error, 'status_code', None)
    if status_code:
        return status_code
    response = getattr(error, 'response', None)
    if response is not None:
        return getattr(response, 'status_code', None)
    return None


def parse_retry_after(value: Any, now: Optional[datetime] = None) -> Optional[int]:
    """
    Seconds to wait from a Retry-After header value.

    The header is either a number of seconds or an HTTP date.
    """
    if value is None or value == '':
        return None
    try:
        return max(int(value), 0)
    except (ValueError, TypeError):
        pass

    retry_at = parse_date(value)
    if retry_at is None:
        logger.warning(f"Could not parse Retry-After header: {value}")
        return DEFAULT_RETRY_AFTER_SECONDS
    now = now or datetime.now(timezone.utc)
    return max(int((retry_at - now).total_seconds()), 0)


def _retry_after_of(error: Exception) -> Optional[int]:
    response = getattr(error, 'response', None)
    headers = getattr(response, 'headers', None) if response is not None else None
    if not headers:
        return None
    return parse_retry_after(headers.get('Retry-After') or headers.get('retry-after'))


def handle_ado_error(func: Callable[..., T]) -> Callable[..., T]:
    """
    Map SDK exceptions raised by an async call onto AzureDevOpsError subclasses.

    Example:
        @handle_ado_error
        async def query_ids(self, wiql: str):
            return self.wit_client.query_by_wiql(Wiql(query=wiql))
    """
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except AzureDevOpsError:
            raise
        except Exception as e:
            status_code = _status_code_of(e)

            if status_code:
                extra = {}
                if status_code == 429:
                    extra['retry_after'] = _retry_after_of(e)
                error = map_status_code_to_error(status_code, original_error=e, **extra)
                logger.error(
                    f"Azure DevOps API error in {func.__name__}: {error}",
                    exc_info=True
                )
                raise error

            logger.error(
                f"Unexpected error in {func.__name__}: {str(e)}",
                exc_info=True
            )
            raise AzureDevOpsError(
                message=f"Unexpected error in {func.__name__}: {str(e)}",
                original_error=e
            )

    return wrapper


def retry_on_transient_error(
    max_retries: int = 3,
    base_delay: float = 1.0,
    exponential_base: float = 2.0,
    max_delay: float = 60.0
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry on rate limiting (429) and server errors (5xx) with exponential backoff.

    A Retry-After value on a RateLimitError takes precedence over the
    computed delay. Any other error is raised immediately.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay in seconds
        exponential_base: Base for exponential backoff
        max_delay: Maximum delay between retries
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except (RateLimitError, TransientError) as e:
                    if attempt >= max_retries:
                        logger.error(
                            f"Max retries ({max_retries}) exceeded for {func.__name__}"
                        )
                        raise

                    if isinstance(e, RateLimitError) and e.retry_after:
                        delay = min(e.retry_after, max_delay)
                    else:
                        delay = min(base_delay * (exponential_base ** attempt), max_delay)

                    attempt += 1
                    logger.warning(
                        f"Transient error in {func.__name__} (attempt {attempt}/{max_retries}): "
                        f"{e}. Retrying in {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)

        return wrapper
    return decorator


def with_timeout(timeout_seconds: int = 30) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Raise ado_insights.errors.TimeoutError when the call exceeds timeout_seconds."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await asyncio.wait_for(
                    func(*args, **kwargs),
                    timeout=timeout_seconds
                )
            except asyncio.TimeoutError as e:
                logger.error(
                    f"Timeout after {timeout_seconds}s in {func.__name__}"
                )
                raise ADOTimeoutError(
                    timeout_seconds=timeout_seconds,
                    original_error=e
                )

        return wrapper
    return decorator


def azure_devops_operation(
    timeout_seconds: int = 30,
    max_retries: int = 3,
    base_delay: float = 1.0
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Timeout (outermost), retry on transient errors, then error mapping (innermost).

    Example:
        @azure_devops_operation(timeout_seconds=60, max_retries=3)
        async def load_work_items(self, area_path=None):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        decorated = handle_ado_error(func)
        decorated = retry_on_transient_error(
            max_retries=max_retries,
            base_delay=base_delay
        )(decorated)
        return with_timeout(timeout_seconds)(decorated)

    return decorator


class PerformanceMonitor:
    """
    Async context manager that logs how long an operation took.

    Operations slower than warn_threshold_ms are logged as warnings.

    Example:
        async with PerformanceMonitor("aggregate", warn_threshold_ms=500):
            result = aggregate(records)
    """

    def __init__(self, operation_name: str, warn_threshold_ms: float = 1000.0):
        self.operation_name = operation_name
        self.warn_threshold_ms = warn_threshold_ms
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    async def __aenter__(self):
        self.start_time = asyncio.get_running_loop().time()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (asyncio.get_running_loop().time() - self.start_time) * 1000

        if self.duration_ms > self.warn_threshold_ms:
            logger.warning(
                f"Slow operation: {self.operation_name} took {self.duration_ms:.1f}ms "
                f"(threshold: {self.warn_threshold_ms:.1f}ms)"
            )
        else:
            logger.debug(
                f"Operation {self.operation_name} completed in {self.duration_ms:.1f}ms"
            )
