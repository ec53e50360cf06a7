"""Tests for Event Hubs exceptions and SDK error translation."""

from azure.eventhub import exceptions as sdk_errors

from clients.eventhubs.errors import (
    EventHubsClientClosedError,
    EventHubsError,
    FailureReason,
    translate_error,
)
from core.types import ErrorCategory


class TestEventHubsError:
    def test_transient_reasons(self):
        assert EventHubsError("busy", FailureReason.SERVICE_BUSY).is_transient
        assert EventHubsError("slow", FailureReason.SERVICE_TIMEOUT).is_transient
        assert not EventHubsError("gone", FailureReason.RESOURCE_NOT_FOUND).is_transient

    def test_explicit_transient_flag_wins(self):
        assert EventHubsError("x", FailureReason.GENERAL_ERROR, is_transient=True).is_transient

    def test_category_follows_transience(self):
        assert EventHubsError("busy", FailureReason.SERVICE_BUSY).category == ErrorCategory.TRANSIENT
        assert EventHubsError("x").category == ErrorCategory.PERMANENT

    def test_context_and_str(self):
        error = EventHubsError("gone", FailureReason.RESOURCE_NOT_FOUND, resource_name="orders")
        assert error.context == {"failure_reason": "resource_not_found", "entity": "orders"}
        assert str(error) == "gone (orders)"

    def test_client_closed(self):
        error = EventHubsClientClosedError("closed", "orders")
        assert error.reason == FailureReason.CLIENT_CLOSED
        assert not error.is_transient


class TestTranslateError:
    def test_non_sdk_errors_unchanged(self):
        error = TimeoutError()
        assert translate_error(error) is error
        ours = EventHubsError("x")
        assert translate_error(ours) is ours

    def test_connection_lost_is_transient(self):
        translated = translate_error(sdk_errors.ConnectionLostError("link detached"), "orders")
        assert isinstance(translated, EventHubsError)
        assert translated.reason == FailureReason.SERVICE_COMMUNICATION_PROBLEM
        assert translated.is_transient
        assert translated.resource_name == "orders"
        assert isinstance(translated.__cause__, sdk_errors.ConnectionLostError)

    def test_timeout(self):
        translated = translate_error(sdk_errors.OperationTimeoutError("timed out"))
        assert translated.reason == FailureReason.SERVICE_TIMEOUT

    def test_authentication_is_permanent(self):
        translated = translate_error(sdk_errors.AuthenticationError("denied"))
        assert not translated.is_transient

    def test_client_closed(self):
        translated = translate_error(sdk_errors.ClientClosedError("closed"))
        assert isinstance(translated, EventHubsClientClosedError)

    def test_ownership_lost(self):
        translated = translate_error(sdk_errors.OwnershipLostError("stolen"))
        assert translated.reason == FailureReason.CONSUMER_DISCONNECTED

    def test_reason_from_message(self):
        translated = translate_error(sdk_errors.EventHubError("The messaging entity could not be found"))
        assert translated.reason == FailureReason.RESOURCE_NOT_FOUND
        busy = translate_error(sdk_errors.EventHubError("Server busy, retry later"))
        assert busy.reason == FailureReason.SERVICE_BUSY
        assert busy.is_transient
