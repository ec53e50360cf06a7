"""
Vault errors.

Every failed vault request surfaces as an ``HttpResponseError`` carrying the
HTTP status and the service's ``error.code`` / ``error.message``. The status
decides the subclass and the retry category.
"""

from typing import Any

from core.errors.exceptions import ClientError, ThrottlingError, classify_http_status
from core.types import ErrorCategory


class HttpResponseError(ClientError):
    """
    A vault request failed.

    Attributes:
        status_code: HTTP status of the response (None for transport failures)
        error_code: The service's ``error.code``, e.g. ``SecretNotFound``
        retry_after: Seconds from a ``Retry-After`` header, if any
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
        retry_after: float | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause=cause, context=context)
        self.status_code = status_code
        self.error_code = error_code
        self.retry_after = retry_after

    @property
    def category(self) -> ErrorCategory:
        if self.status_code is None:
            return ErrorCategory.TRANSIENT
        return classify_http_status(self.status_code)


class ResourceNotFoundError(HttpResponseError):
    """The item does not exist (404)."""


class ResourceExistsError(HttpResponseError):
    """The item conflicts with an existing one (409), e.g. a deleted item not yet purged."""


class ClientAuthenticationError(HttpResponseError):
    """The request was not authenticated (401)."""


class ServiceThrottledError(HttpResponseError, ThrottlingError):
    """The vault asked the client to slow down (429, or 503 with ``Retry-After``)."""


# Status code -> exception class for statuses with a dedicated type
_STATUS_MAP: dict[int, type[HttpResponseError]] = {
    401: ClientAuthenticationError,
    404: ResourceNotFoundError,
    409: ResourceExistsError,
    429: ServiceThrottledError,
}


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def map_error(
    status: int,
    body: Any,
    url: str,
    headers: Any = None,
) -> HttpResponseError:
    """
    Build the exception for a failed vault response.

    Args:
        status: HTTP status code
        body: Parsed JSON body, or raw text when the body was not JSON
        url: Request URL, used in the message
        headers: Response headers (for ``Retry-After`` and request ids)
    """
    error_code = None
    error_message = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error_code = body["error"].get("code")
        error_message = body["error"].get("message")
    elif isinstance(body, str) and body:
        error_message = body[:500]

    headers = headers or {}
    retry_after = _parse_retry_after(headers.get("Retry-After"))

    error_class = _STATUS_MAP.get(status, HttpResponseError)
    if status == 503 and retry_after is not None:
        error_class = ServiceThrottledError

    message = f"({error_code or status}) {error_message or 'Operation returned an invalid status'}"
    return error_class(
        message,
        status_code=status,
        error_code=error_code,
        retry_after=retry_after,
        context={
            "http_url": url,
            "request_id": headers.get("x-ms-request-id"),
        },
    )


__all__ = [
    "HttpResponseError",
    "ResourceNotFoundError",
    "ResourceExistsError",
    "ClientAuthenticationError",
    "ServiceThrottledError",
    "map_error",
]
