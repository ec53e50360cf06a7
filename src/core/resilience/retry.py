"""
Retry utilities with exception-aware handling.

Uses the exception hierarchy to make intelligent retry decisions:
- Transient errors: retry with exponential backoff
- Auth errors: refresh credentials, then retry
- Permanent errors: fail immediately (no retry)
"""

import asyncio
import inspect
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import wraps

from core.errors.exceptions import (
    ClientError,
    ThrottlingError,
    classify_exception,
    wrap_exception,
)
from core.types import ErrorCategory

logger = logging.getLogger(__name__)


def _extract_error_category(wrapped: Exception) -> str:
    """Return a string error category from a wrapped exception."""
    if isinstance(wrapped, ClientError):
        cat = wrapped.category
    else:
        cat = classify_exception(wrapped)
    return cat.value if hasattr(cat, "value") else str(cat)


def _log_retry_failure(
    func_name: str,
    wrapped: Exception,
    e: Exception,
    error_category: str,
    config: "RetryConfig",
) -> None:
    """Log permanent-error or max-retries-exhausted."""
    error_type = type(wrapped).__name__
    if isinstance(wrapped, ClientError) and not wrapped.is_retryable:
        logger.debug(
            "Permanent error for %s, not retrying: %s",
            func_name,
            str(e)[:200],
            extra={
                "operation": func_name,
                "error_type": error_type,
                "error_category": error_category,
            },
        )
        return

    logger.error(
        "Max retries exhausted for %s: %s",
        func_name,
        str(e)[:200],
        extra={
            "operation": func_name,
            "error_type": error_type,
            "error_category": error_category,
            "max_attempts": config.max_attempts,
            "error_message": str(e)[:200],
        },
    )


def _log_retry_attempt(
    func_name: str,
    attempt: int,
    config: "RetryConfig",
    error_category: str,
    delay: float,
    e: Exception,
    wrapped: Exception,
) -> None:
    """Build log extras and emit the retry-attempt warning."""
    log_extras: dict[str, object] = {
        "operation": func_name,
        "attempt": attempt + 1,
        "max_attempts": config.max_attempts,
        "error_category": error_category,
        "delay_seconds": round(delay, 2),
        "error_message": str(e)[:200],
    }

    using_server_delay = (
        config.respect_retry_after
        and isinstance(wrapped, ThrottlingError)
        and wrapped.retry_after is not None
    )

    if using_server_delay:
        log_extras["server_retry_after"] = wrapped.retry_after
        log_extras["delay_source"] = "server"
        log_message = "Retryable error for %s, will retry (using server-provided delay)"
    else:
        log_extras["delay_source"] = "exponential_backoff"
        log_message = "Retryable error for %s, will retry"

    logger.warning(log_message, func_name, extra=log_extras)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0

    # If True, don't retry permanent errors even if max_attempts > 0
    respect_permanent: bool = True

    # If True, use retry_after from ThrottlingError when available
    respect_retry_after: bool = True

    # Optional set of exception types to never retry (overrides classification)
    never_retry: set[type[Exception]] = field(default_factory=set)

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.max_attempts = int(self.max_attempts)
        self.base_delay = float(self.base_delay)
        self.max_delay = float(self.max_delay)
        self.exponential_base = float(self.exponential_base)
        # bool('false') would be True, so only coerce non-bool values
        self.respect_permanent = (
            self.respect_permanent
            if isinstance(self.respect_permanent, bool)
            else str(self.respect_permanent).lower() in ("1", "true", "yes")
        )
        self.respect_retry_after = (
            self.respect_retry_after
            if isinstance(self.respect_retry_after, bool)
            else str(self.respect_retry_after).lower() in ("1", "true", "yes")
        )

    def get_delay(self, attempt: int, error: Exception | None = None) -> float:
        """
        Calculate delay with equal jitter to prevent thundering herd.

        Args:
            attempt: 0-indexed attempt number
            error: Optional exception to check for retry_after

        Returns:
            Delay in seconds
        """
        if (
            self.respect_retry_after
            and isinstance(error, ThrottlingError)
            and error.retry_after
        ):
            return min(error.retry_after, self.max_delay)

        base_delay = self.base_delay * (self.exponential_base**attempt)

        # Equal jitter: half fixed, half random
        jitter = random.uniform(0, base_delay / 2)
        delay = (base_delay / 2) + jitter

        return min(delay, self.max_delay)

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """
        Determine if error should be retried.

        Args:
            error: The exception that occurred
            attempt: 0-indexed current attempt

        Returns:
            True if should retry
        """
        if attempt >= self.max_attempts - 1:
            return False

        if self.never_retry and isinstance(error, tuple(self.never_retry)):
            return False

        if isinstance(error, ClientError):
            if self.respect_permanent and not error.is_retryable:
                return False
            return error.is_retryable

        category = classify_exception(error)
        if self.respect_permanent and category == ErrorCategory.PERMANENT:
            return False

        return category in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.AUTH,
            ErrorCategory.UNKNOWN,
        )


# Default configurations
DEFAULT_RETRY = RetryConfig(max_attempts=3, base_delay=1.0)
VAULT_RETRY = RetryConfig(max_attempts=4, base_delay=0.8, max_delay=60.0)


def with_retry_async(
    config: RetryConfig | None = None,
    on_auth_error: Callable[[], None] | Callable[[], Awaitable[None]] | None = None,
    wrap_errors: bool = True,
):
    """
    Decorator for retrying async functions with intelligent backoff.

    Args:
        config: Retry configuration (defaults to DEFAULT_RETRY)
        on_auth_error: Callback when auth error detected (e.g., clear token cache)
        wrap_errors: If True, wrap unknown exceptions in ClientError

    Usage:
        @with_retry_async(config=VAULT_RETRY)
        async def fetch_secret():
            ...
    """
    if config is None:
        config = DEFAULT_RETRY

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            last_error: Exception | None = None

            for attempt in range(config.max_attempts):
                try:
                    result = await func(*args, **kwargs)

                    if attempt > 0:
                        logger.info(
                            "Retry succeeded for %s after %d attempts",
                            func.__name__,
                            attempt + 1,
                            extra={
                                "operation": func.__name__,
                                "attempt": attempt + 1,
                                "total_attempts": config.max_attempts,
                            },
                        )

                    return result

                except Exception as e:
                    last_error = e
                    wrapped = (
                        wrap_exception(e)
                        if wrap_errors and not isinstance(e, ClientError)
                        else e
                    )
                    error_category = _extract_error_category(wrapped)

                    # Handle auth errors - refresh before retry decision
                    if isinstance(wrapped, ClientError) and wrapped.should_refresh_auth:
                        logger.info(
                            "Auth error detected for %s, refreshing credentials",
                            func.__name__,
                            extra={
                                "operation": func.__name__,
                                "error_category": error_category,
                            },
                        )
                        if on_auth_error:
                            outcome = on_auth_error()
                            if inspect.isawaitable(outcome):
                                await outcome

                    if not config.should_retry(wrapped, attempt):
                        _log_retry_failure(func.__name__, wrapped, e, error_category, config)
                        if wrap_errors and wrapped is not e:
                            raise wrapped from e
                        raise

                    delay = config.get_delay(attempt, wrapped)
                    _log_retry_attempt(
                        func.__name__, attempt, config, error_category,
                        delay, e, wrapped,
                    )

                    await asyncio.sleep(delay)

            if last_error:
                raise last_error

        return wrapper

    return decorator


__all__ = [
    "RetryConfig",
    "with_retry_async",
    "DEFAULT_RETRY",
    "VAULT_RETRY",
]
