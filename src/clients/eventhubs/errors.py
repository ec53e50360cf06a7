"""
Event Hubs exceptions.

``EventHubsError`` carries a ``FailureReason`` and a transient flag that the
retry policy consults. Exceptions raised by ``azure-eventhub`` are translated
at the transport boundary with ``translate_error`` so that callers only ever
see this hierarchy.
"""

from enum import Enum

from azure.eventhub import exceptions as sdk_errors

from core.errors.exceptions import ClientError
from core.types import ErrorCategory


class FailureReason(Enum):
    """The set of well-known reasons for an Event Hubs operation failure."""

    GENERAL_ERROR = "general_error"
    CLIENT_CLOSED = "client_closed"
    CONSUMER_DISCONNECTED = "consumer_disconnected"
    RESOURCE_NOT_FOUND = "resource_not_found"
    MESSAGE_SIZE_EXCEEDED = "message_size_exceeded"
    QUOTA_EXCEEDED = "quota_exceeded"
    SERVICE_BUSY = "service_busy"
    SERVICE_TIMEOUT = "service_timeout"
    SERVICE_COMMUNICATION_PROBLEM = "service_communication_problem"


_TRANSIENT_REASONS = frozenset(
    {
        FailureReason.SERVICE_BUSY,
        FailureReason.SERVICE_TIMEOUT,
        FailureReason.SERVICE_COMMUNICATION_PROBLEM,
    }
)


class EventHubsError(ClientError):
    """
    Base exception for Event Hubs client failures.

    Attributes:
        reason: Well-known failure reason
        is_transient: Whether the operation may succeed if retried
        resource_name: Event hub (or other entity) the failure relates to
    """

    def __init__(
        self,
        message: str,
        reason: FailureReason = FailureReason.GENERAL_ERROR,
        is_transient: bool | None = None,
        resource_name: str | None = None,
        cause: Exception | None = None,
    ):
        self.reason = reason
        self.is_transient = reason in _TRANSIENT_REASONS if is_transient is None else is_transient
        self.resource_name = resource_name
        context = {"failure_reason": reason.value}
        if resource_name:
            context["entity"] = resource_name
        super().__init__(message, cause=cause, context=context)

    @property
    def category(self) -> ErrorCategory:
        return ErrorCategory.TRANSIENT if self.is_transient else ErrorCategory.PERMANENT

    def __str__(self) -> str:
        text = super().__str__()
        if self.resource_name:
            return f"{text} ({self.resource_name})"
        return text


class EventHubsClientClosedError(EventHubsError):
    """Raised when an operation is attempted on a closed client or connection."""

    def __init__(self, message: str, resource_name: str | None = None):
        super().__init__(
            message,
            reason=FailureReason.CLIENT_CLOSED,
            is_transient=False,
            resource_name=resource_name,
        )


_MESSAGE_MARKERS = (
    (("could not be found", "not found", "amqp:not-found"), FailureReason.RESOURCE_NOT_FOUND),
    (("epoch", "owner level", "receiver disconnected", "consumer disconnected"), FailureReason.CONSUMER_DISCONNECTED),
    (("message size", "exceeds the maximum", "too large"), FailureReason.MESSAGE_SIZE_EXCEEDED),
    (("quota", "resource-limit-exceeded"), FailureReason.QUOTA_EXCEEDED),
    (("server busy", "serverbusy", "service busy"), FailureReason.SERVICE_BUSY),
)


def _reason_from_message(message: str) -> FailureReason | None:
    lowered = message.lower()
    for markers, reason in _MESSAGE_MARKERS:
        if any(marker in lowered for marker in markers):
            return reason
    return None


def translate_error(error: BaseException, resource_name: str | None = None) -> BaseException:
    """
    Translate an ``azure-eventhub`` exception into an ``EventHubsError``.

    Exceptions that do not come from the SDK (cancellation, timeouts, our own
    errors) are returned unchanged.
    """
    if isinstance(error, EventHubsError) or not isinstance(
        error, (sdk_errors.EventHubError, sdk_errors.OwnershipLostError)
    ):
        return error

    message = getattr(error, "message", None) or str(error)

    if isinstance(error, sdk_errors.ClientClosedError):
        translated: EventHubsError = EventHubsClientClosedError(message, resource_name)
    elif isinstance(error, sdk_errors.AuthenticationError):
        translated = EventHubsError(message, FailureReason.GENERAL_ERROR, False, resource_name, error)
    elif isinstance(error, sdk_errors.OperationTimeoutError):
        translated = EventHubsError(message, FailureReason.SERVICE_TIMEOUT, None, resource_name, error)
    elif isinstance(error, (sdk_errors.ConnectionLostError, sdk_errors.ConnectError)):
        translated = EventHubsError(
            message, FailureReason.SERVICE_COMMUNICATION_PROBLEM, None, resource_name, error
        )
    elif isinstance(error, sdk_errors.OwnershipLostError):
        translated = EventHubsError(
            message, FailureReason.CONSUMER_DISCONNECTED, None, resource_name, error
        )
    else:
        reason = _reason_from_message(message) or FailureReason.GENERAL_ERROR
        translated = EventHubsError(message, reason, None, resource_name, error)

    translated.__cause__ = error
    return translated


__all__ = [
    "FailureReason",
    "EventHubsError",
    "EventHubsClientClosedError",
    "translate_error",
]
