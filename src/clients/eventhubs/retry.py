"""
Retry options and policies for Event Hubs operations.

The clients never retry on their own: every service operation receives the
client's ``EventHubsRetryPolicy`` and asks it, after each failure, whether and
how long to wait before trying again. A policy returning ``None`` ends the
operation with the last exception.
"""

import asyncio
import logging
import random
import socket
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

from clients.eventhubs.errors import EventHubsError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MINIMUM_DELAY = 0.001
MAXIMUM_DELAY = 300.0
MAXIMUM_RETRIES = 100
MAXIMUM_TRY_TIMEOUT = 3600.0

JITTER_FACTOR = 0.08


class EventHubsRetryMode(Enum):
    """The approach used when calculating retry delays."""

    FIXED = "fixed"
    EXPONENTIAL = "exponential"


class EventHubsRetryOptions:
    """
    Settings that govern retries of Event Hubs operations.

    Durations are in seconds. All setters validate their value and raise
    ``ValueError`` when it is out of range.
    """

    def __init__(
        self,
        mode: EventHubsRetryMode = EventHubsRetryMode.EXPONENTIAL,
        maximum_retries: int = 3,
        delay: float = 0.8,
        maximum_delay: float = 60.0,
        try_timeout: float = 60.0,
        custom_retry_policy: "EventHubsRetryPolicy | None" = None,
    ):
        self.mode = mode
        self.maximum_retries = maximum_retries
        self.delay = delay
        self.maximum_delay = maximum_delay
        self.try_timeout = try_timeout
        self.custom_retry_policy = custom_retry_policy

    @property
    def mode(self) -> EventHubsRetryMode:
        return self._mode

    @mode.setter
    def mode(self, value: EventHubsRetryMode) -> None:
        if not isinstance(value, EventHubsRetryMode):
            raise ValueError(f"The retry mode must be an EventHubsRetryMode, got {value!r}.")
        self._mode = value

    @property
    def maximum_retries(self) -> int:
        return self._maximum_retries

    @maximum_retries.setter
    def maximum_retries(self, value: int) -> None:
        if not 0 <= value <= MAXIMUM_RETRIES:
            raise ValueError(f"maximum_retries must be between 0 and {MAXIMUM_RETRIES}, got {value}.")
        self._maximum_retries = value

    @property
    def delay(self) -> float:
        return self._delay

    @delay.setter
    def delay(self, value: float) -> None:
        if not MINIMUM_DELAY <= value <= MAXIMUM_DELAY:
            raise ValueError(
                f"delay must be between {MINIMUM_DELAY} and {MAXIMUM_DELAY} seconds, got {value}."
            )
        self._delay = value

    @property
    def maximum_delay(self) -> float:
        return self._maximum_delay

    @maximum_delay.setter
    def maximum_delay(self, value: float) -> None:
        if value < 0:
            raise ValueError(f"maximum_delay must not be negative, got {value}.")
        self._maximum_delay = value

    @property
    def try_timeout(self) -> float:
        return self._try_timeout

    @try_timeout.setter
    def try_timeout(self, value: float) -> None:
        if not 0 < value <= MAXIMUM_TRY_TIMEOUT:
            raise ValueError(
                f"try_timeout must be positive and at most {MAXIMUM_TRY_TIMEOUT} seconds, got {value}."
            )
        self._try_timeout = value

    def clone(self) -> "EventHubsRetryOptions":
        return EventHubsRetryOptions(
            mode=self.mode,
            maximum_retries=self.maximum_retries,
            delay=self.delay,
            maximum_delay=self.maximum_delay,
            try_timeout=self.try_timeout,
            custom_retry_policy=self.custom_retry_policy,
        )

    def is_equivalent_to(self, other: "EventHubsRetryOptions | None") -> bool:
        if other is None:
            return False
        if other is self:
            return True
        return (
            self.mode == other.mode
            and self.maximum_retries == other.maximum_retries
            and self.delay == other.delay
            and self.maximum_delay == other.maximum_delay
            and self.try_timeout == other.try_timeout
            and self.custom_retry_policy is other.custom_retry_policy
        )

    def __deepcopy__(self, memo):
        # The custom policy is shared, never copied
        return self.clone()

    def __repr__(self) -> str:
        return (
            f"EventHubsRetryOptions(mode={self.mode.value}, maximum_retries={self.maximum_retries}, "
            f"delay={self.delay}, maximum_delay={self.maximum_delay}, try_timeout={self.try_timeout})"
        )


class EventHubsRetryPolicy(ABC):
    """
    Decides whether a failed Event Hubs operation should be retried.

    Subclass this and pass an instance as
    ``EventHubsRetryOptions.custom_retry_policy`` to replace the default.
    """

    @abstractmethod
    def calculate_try_timeout(self, attempt_count: int) -> float:
        """The timeout, in seconds, for attempt number ``attempt_count`` (1-based)."""

    @abstractmethod
    def calculate_retry_delay(self, last_exception: BaseException, attempt_count: int) -> float | None:
        """
        The delay, in seconds, before the next attempt, or None to stop retrying.

        Args:
            last_exception: The failure of the most recent attempt
            attempt_count: Number of attempts made so far (1-based)
        """


def is_retriable_exception(error: BaseException | None) -> bool:
    """Whether an exception represents a failure worth retrying."""
    if error is None:
        return False

    if isinstance(error, EventHubsError):
        return error.is_transient

    if isinstance(error, (TimeoutError, asyncio.TimeoutError, ConnectionError, socket.gaierror)):
        return True

    # A cancellation caused by a retriable failure is judged by that failure
    if isinstance(error, asyncio.CancelledError):
        inner = error.__cause__ or error.__context__
        return inner is not None and inner is not error and is_retriable_exception(inner)

    return False


class BasicRetryPolicy(EventHubsRetryPolicy):
    """
    The default retry policy, driven by ``EventHubsRetryOptions``.

    Delays grow linearly (FIXED) or as ``2 ** attempt * delay`` (EXPONENTIAL),
    with up to 8% of ``delay`` added as jitter, capped at ``maximum_delay``.
    """

    def __init__(self, retry_options: EventHubsRetryOptions):
        if retry_options is None:
            raise ValueError("The retry options must be provided.")
        self.options = retry_options
        self.jitter_factor = JITTER_FACTOR
        self._random = random.Random()

    def calculate_try_timeout(self, attempt_count: int) -> float:
        return self.options.try_timeout

    def calculate_retry_delay(self, last_exception: BaseException, attempt_count: int) -> float | None:
        options = self.options
        if (
            options.maximum_retries <= 0
            or options.delay == 0
            or options.maximum_delay == 0
            or attempt_count > options.maximum_retries
            or not is_retriable_exception(last_exception)
        ):
            return None

        base_jitter = options.delay * self.jitter_factor
        if options.mode == EventHubsRetryMode.FIXED:
            delay = options.delay + self._random.random() * base_jitter
        else:
            delay = (2 ** attempt_count) * options.delay + self._random.random() * base_jitter

        return min(delay, options.maximum_delay)

    def __repr__(self) -> str:
        return f"BasicRetryPolicy({self.options!r})"


def build_retry_policy(retry_options: EventHubsRetryOptions) -> EventHubsRetryPolicy:
    """The custom policy from the options, or a ``BasicRetryPolicy`` built from them."""
    return retry_options.custom_retry_policy or BasicRetryPolicy(retry_options)


async def run_with_retry(
    operation: Callable[[float], Awaitable[T]],
    retry_policy: EventHubsRetryPolicy,
    name: str,
    resource_name: str | None = None,
) -> T:
    """
    Run ``operation`` until it succeeds or the policy stops retrying.

    ``operation`` is called with the try timeout for the attempt and must
    return a fresh awaitable each time. Each attempt is bounded by that
    timeout; a timed out attempt surfaces as ``TimeoutError`` to the policy.
    """
    attempt = 0
    while True:
        attempt += 1
        try_timeout = retry_policy.calculate_try_timeout(attempt)
        try:
            return await asyncio.wait_for(operation(try_timeout), timeout=try_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            delay = retry_policy.calculate_retry_delay(e, attempt)
            if delay is None:
                logger.debug(
                    "Not retrying %s after %d attempt(s): %s",
                    name,
                    attempt,
                    type(e).__name__,
                    extra={"attempt": attempt, "entity": resource_name, "error_type": type(e).__name__},
                )
                raise

            logger.warning(
                "Retryable error for %s, will retry",
                name,
                extra={
                    "attempt": attempt,
                    "entity": resource_name,
                    "delay_seconds": round(delay, 3),
                    "error_type": type(e).__name__,
                    "error_message": str(e)[:200],
                },
            )
            await asyncio.sleep(delay)


__all__ = [
    "EventHubsRetryMode",
    "EventHubsRetryOptions",
    "EventHubsRetryPolicy",
    "BasicRetryPolicy",
    "build_retry_policy",
    "is_retriable_exception",
    "run_with_retry",
]
