import pytest

from clients.keyvault.errors import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
    ServiceThrottledError,
    map_error,
)
from core.errors.exceptions import ThrottlingError
from core.types import ErrorCategory

URL = "https://myvault.vault.azure.net/secrets/a/"


class TestMapError:
    @pytest.mark.parametrize(
        "status,error_class",
        [
            (401, ClientAuthenticationError),
            (404, ResourceNotFoundError),
            (409, ResourceExistsError),
            (429, ServiceThrottledError),
            (400, HttpResponseError),
            (500, HttpResponseError),
        ],
    )
    def test_status_selects_class(self, status, error_class):
        assert type(map_error(status, None, URL)) is error_class

    def test_service_error_body(self):
        error = map_error(
            409,
            {"error": {"code": "Conflict", "message": "Secret a is currently in a deleted but recoverable state"}},
            URL,
            {"x-ms-request-id": "req-1"},
        )

        assert error.error_code == "Conflict"
        assert error.status_code == 409
        assert str(error).startswith("(Conflict) Secret a is currently")
        assert error.context == {"http_url": URL, "request_id": "req-1"}

    def test_text_body(self):
        error = map_error(502, "Bad Gateway", URL)
        assert error.error_code is None
        assert "(502) Bad Gateway" in str(error)

    def test_empty_body(self):
        assert "invalid status" in str(map_error(500, None, URL))

    def test_unavailable_with_retry_after_is_throttling(self):
        error = map_error(503, None, URL, {"Retry-After": "12"})

        assert isinstance(error, ServiceThrottledError)
        assert isinstance(error, ThrottlingError)
        assert error.retry_after == 12.0

    @pytest.mark.parametrize("value", ["soon", "", None])
    def test_unparseable_retry_after(self, value):
        assert map_error(429, None, URL, {"Retry-After": value}).retry_after is None


class TestCategory:
    @pytest.mark.parametrize(
        "status,category",
        [
            (401, ErrorCategory.AUTH),
            (403, ErrorCategory.PERMANENT),
            (404, ErrorCategory.PERMANENT),
            (408, ErrorCategory.TRANSIENT),
            (429, ErrorCategory.TRANSIENT),
            (503, ErrorCategory.TRANSIENT),
        ],
    )
    def test_category_from_status(self, status, category):
        assert map_error(status, None, URL).category == category

    def test_no_status_is_transient(self):
        assert HttpResponseError("no response").category == ErrorCategory.TRANSIENT

    def test_auth_error_refreshes(self):
        error = map_error(401, None, URL)
        assert error.should_refresh_auth
        assert error.is_retryable

    def test_not_found_not_retryable(self):
        assert not map_error(404, None, URL).is_retryable
