"""Tests for Event Hubs retry options and policies."""

import asyncio
import copy
from unittest.mock import AsyncMock, patch

import pytest

from clients.eventhubs.errors import EventHubsError, FailureReason
from clients.eventhubs.retry import (
    BasicRetryPolicy,
    EventHubsRetryMode,
    EventHubsRetryOptions,
    EventHubsRetryPolicy,
    build_retry_policy,
    is_retriable_exception,
    run_with_retry,
)

BUSY = EventHubsError("busy", FailureReason.SERVICE_BUSY)
NOT_FOUND = EventHubsError("gone", FailureReason.RESOURCE_NOT_FOUND)


class NeverRetry(EventHubsRetryPolicy):
    def calculate_try_timeout(self, attempt_count):
        return 1.0

    def calculate_retry_delay(self, last_exception, attempt_count):
        return None


class TestEventHubsRetryOptions:
    def test_defaults(self):
        options = EventHubsRetryOptions()
        assert options.mode == EventHubsRetryMode.EXPONENTIAL
        assert options.maximum_retries == 3
        assert options.delay == 0.8
        assert options.maximum_delay == 60.0
        assert options.try_timeout == 60.0
        assert options.custom_retry_policy is None

    @pytest.mark.parametrize(
        "field,value",
        [
            ("mode", "fixed"),
            ("maximum_retries", -1),
            ("maximum_retries", 101),
            ("delay", 0),
            ("delay", 301),
            ("maximum_delay", -1),
            ("try_timeout", 0),
            ("try_timeout", 3601),
        ],
    )
    def test_setters_validate(self, field, value):
        options = EventHubsRetryOptions()
        with pytest.raises(ValueError):
            setattr(options, field, value)

    def test_clone_shares_custom_policy(self):
        policy = NeverRetry()
        options = EventHubsRetryOptions(maximum_retries=5, custom_retry_policy=policy)

        for clone in (options.clone(), copy.deepcopy(options)):
            assert clone is not options
            assert clone.maximum_retries == 5
            assert clone.custom_retry_policy is policy
            assert clone.is_equivalent_to(options)

    def test_is_equivalent_to(self):
        options = EventHubsRetryOptions()
        assert options.is_equivalent_to(options)
        assert not options.is_equivalent_to(None)
        assert not options.is_equivalent_to(EventHubsRetryOptions(delay=1.0))


class TestIsRetriableException:
    def test_classification(self):
        assert is_retriable_exception(BUSY)
        assert not is_retriable_exception(NOT_FOUND)
        assert is_retriable_exception(TimeoutError())
        assert is_retriable_exception(ConnectionResetError())
        assert not is_retriable_exception(ValueError())
        assert not is_retriable_exception(None)

    def test_cancellation_judged_by_cause(self):
        cancelled = asyncio.CancelledError()
        assert not is_retriable_exception(cancelled)
        cancelled.__cause__ = TimeoutError()
        assert is_retriable_exception(cancelled)


class TestBasicRetryPolicy:
    def test_fixed_delay_with_jitter(self):
        policy = BasicRetryPolicy(EventHubsRetryOptions(mode=EventHubsRetryMode.FIXED, delay=1.0))
        for attempt in (1, 2, 3):
            assert 1.0 <= policy.calculate_retry_delay(BUSY, attempt) <= 1.08

    def test_exponential_delay(self):
        policy = BasicRetryPolicy(EventHubsRetryOptions(delay=1.0, maximum_delay=60.0))
        assert 2.0 <= policy.calculate_retry_delay(BUSY, 1) <= 2.08
        assert 4.0 <= policy.calculate_retry_delay(BUSY, 2) <= 4.08
        assert 8.0 <= policy.calculate_retry_delay(BUSY, 3) <= 8.08

    def test_capped_at_maximum_delay(self):
        policy = BasicRetryPolicy(
            EventHubsRetryOptions(delay=10.0, maximum_delay=15.0, maximum_retries=10)
        )
        assert policy.calculate_retry_delay(BUSY, 5) == 15.0

    def test_stops_after_maximum_retries(self):
        policy = BasicRetryPolicy(EventHubsRetryOptions(maximum_retries=2))
        assert policy.calculate_retry_delay(BUSY, 2) is not None
        assert policy.calculate_retry_delay(BUSY, 3) is None

    def test_no_retry_when_disabled(self):
        assert BasicRetryPolicy(EventHubsRetryOptions(maximum_retries=0)).calculate_retry_delay(BUSY, 1) is None
        assert BasicRetryPolicy(EventHubsRetryOptions(maximum_delay=0)).calculate_retry_delay(BUSY, 1) is None

    def test_non_retriable_not_retried(self):
        assert BasicRetryPolicy(EventHubsRetryOptions()).calculate_retry_delay(NOT_FOUND, 1) is None

    def test_try_timeout(self):
        assert BasicRetryPolicy(EventHubsRetryOptions(try_timeout=12)).calculate_try_timeout(3) == 12

    def test_requires_options(self):
        with pytest.raises(ValueError):
            BasicRetryPolicy(None)

    def test_build_retry_policy(self):
        custom = NeverRetry()
        assert build_retry_policy(EventHubsRetryOptions(custom_retry_policy=custom)) is custom
        assert isinstance(build_retry_policy(EventHubsRetryOptions()), BasicRetryPolicy)


@pytest.fixture
def no_sleep():
    with patch("clients.eventhubs.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


class TestRunWithRetry:
    async def test_retries_then_succeeds(self, no_sleep):
        policy = BasicRetryPolicy(EventHubsRetryOptions(mode=EventHubsRetryMode.FIXED, delay=0.5))
        operation = AsyncMock(side_effect=[BUSY, BUSY, "props"])

        result = await run_with_retry(operation, policy, "get_properties", "orders")

        assert result == "props"
        assert operation.await_count == 3
        operation.assert_awaited_with(60.0)
        assert no_sleep.await_count == 2

    async def test_non_retriable_raised(self, no_sleep):
        policy = BasicRetryPolicy(EventHubsRetryOptions())
        operation = AsyncMock(side_effect=NOT_FOUND)

        with pytest.raises(EventHubsError):
            await run_with_retry(operation, policy, "send")
        assert operation.await_count == 1
        no_sleep.assert_not_awaited()

    async def test_exhausted_raises_last_error(self, no_sleep):
        policy = BasicRetryPolicy(EventHubsRetryOptions(maximum_retries=2))
        operation = AsyncMock(side_effect=BUSY)

        with pytest.raises(EventHubsError):
            await run_with_retry(operation, policy, "send")
        assert operation.await_count == 3

    async def test_attempt_bounded_by_try_timeout(self):
        class QuickTimeout(NeverRetry):
            def calculate_try_timeout(self, attempt_count):
                return 0.01

        async def slow(try_timeout):
            await asyncio.sleep(1)

        with pytest.raises(TimeoutError):
            await run_with_retry(slow, QuickTimeout(), "slow")

    async def test_custom_policy_consulted(self, no_sleep):
        class CountingPolicy(NeverRetry):
            def __init__(self):
                self.calls = []

            def calculate_retry_delay(self, last_exception, attempt_count):
                self.calls.append(attempt_count)
                return 0.1 if attempt_count < 2 else None

        policy = CountingPolicy()
        with pytest.raises(ValueError):
            await run_with_retry(AsyncMock(side_effect=ValueError("bad")), policy, "op")
        assert policy.calls == [1, 2]
