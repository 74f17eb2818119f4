"""
Resilience utilities for the portal calendar.

Provides:
- Error types for the event-source merge
- Retry logic for transient source failures
- User-facing status messages for degraded sources
"""
import functools
import logging
import time
from typing import Callable, TypeVar, Optional, Any
from dataclasses import dataclass

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    retryable_exceptions: tuple = (Exception,)


DEFAULT_RETRY_CONFIG = RetryConfig()


class SourceFetchError(Exception):
    """Raised when one event source cannot be fetched (network, auth, quota)."""

    def __init__(self, source: str, message: str, status_code: Optional[int] = None):
        self.source = source
        self.message = message
        self.status_code = status_code
        super().__init__(f"{source}: {message}")


class MalformedEventError(ValueError):
    """A source record that cannot become a canonical event."""

    def __init__(self, reason: str, record_id: Any = None):
        self.reason = reason
        self.record_id = record_id
        super().__init__(f"{reason} (id={record_id!r})")


class TransientSourceError(SourceFetchError):
    """A source failure worth retrying (5xx, 429, timeouts)."""


def retry_sync(
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    sleep: Optional[Callable[[float], None]] = None,
):
    """
    Decorator for sync functions with retry logic.

    Args:
        config: Retry configuration
        on_retry: Optional callback on each retry (retry_num, exception)
        sleep: Sleep function; defaults to time.sleep looked up per retry
    """
    cfg = config or DEFAULT_RETRY_CONFIG

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            last_exception = None

            for attempt in range(cfg.max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except cfg.retryable_exceptions as e:
                    last_exception = e

                    if attempt < cfg.max_retries:
                        delay = min(
                            cfg.base_delay * (cfg.exponential_base ** attempt),
                            cfg.max_delay
                        )
                        logger.warning(
                            f"Retry {attempt + 1}/{cfg.max_retries} for {func.__name__}: {e}. "
                            f"Waiting {delay:.1f}s..."
                        )

                        if on_retry:
                            on_retry(attempt + 1, e)

                        (sleep or time.sleep)(delay)
                    else:
                        logger.error(
                            f"All {cfg.max_retries} retries exhausted for {func.__name__}: {e}"
                        )

            raise last_exception

        return wrapper
    return decorator


def is_retryable_status(status_code: int) -> bool:
    """
    Check if HTTP status code is retryable.

    Args:
        status_code: HTTP status code

    Returns:
        True if the error is transient and retryable
    """
    # 5xx server errors (except 501 Not Implemented)
    if status_code >= 500 and status_code != 501:
        return True

    # 429 Too Many Requests
    if status_code == 429:
        return True

    # 408 Request Timeout
    if status_code == 408:
        return True

    return False


def source_status_message(error: Exception) -> str:
    """
    Convert a source failure into the quiet status line shown in the widget.

    Args:
        error: The exception raised while fetching a source

    Returns:
        Short, non-blocking message for the presentation layer
    """
    status_code = getattr(error, "status_code", None)
    error_str = str(error).lower()

    if status_code in (401, 403) or "unauthorized" in error_str or "invalid_grant" in error_str:
        return "Calendar connection expired. Reconnect to see these events."

    if status_code == 429 or "rate limit" in error_str or "quota" in error_str:
        return "Calendar is busy. Events will refresh shortly."

    if "timeout" in error_str or "timed out" in error_str:
        return "Calendar took too long to respond."

    if "connection" in error_str or "network" in error_str:
        return "Unable to reach calendar. Showing other events."

    return "Some events could not be loaded."


# Pre-configured retry configs for the two event sources
GOOGLE_API_RETRY = RetryConfig(
    max_retries=3,
    base_delay=1.0,
    max_delay=10.0,
    retryable_exceptions=(
        ConnectionError,
        TimeoutError,
        TransientSourceError,
    ),
)

BACKEND_RETRY = RetryConfig(
    max_retries=2,
    base_delay=0.5,
    max_delay=5.0,
    retryable_exceptions=(
        ConnectionError,
        TimeoutError,
        TransientSourceError,
    ),
)
