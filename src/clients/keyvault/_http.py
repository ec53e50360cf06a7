"""
Async HTTP client for the vault REST API.

Handles bearer authentication (with challenge-based scope discovery), error
classification, retry with backoff and ``nextLink`` paging. The item clients
(secrets, keys, certificates) build requests and parse responses on top of it.
"""

import asyncio
import inspect
import logging
import re
import time
from collections.abc import AsyncIterator
from typing import Any

import aiohttp
from azure.core.credentials import AccessToken

from clients.keyvault.errors import map_error
from clients.metrics import record_vault_request
from core.auth.credentials import VAULT_SCOPE
from core.auth.token_cache import AccessTokenCache
from core.errors.exceptions import TransientError
from core.logging.context import get_log_context
from core.resilience.retry import VAULT_RETRY, RetryConfig, with_retry_async
from core.types import TokenCredential

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "7.1"

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')

_SUCCESS_STATUSES = frozenset({200, 201, 202, 204})


def parse_challenge(header: str) -> dict[str, str]:
    """
    Parse a ``WWW-Authenticate: Bearer ...`` header into its parameters.

    Example:
        >>> parse_challenge('Bearer authorization="https://login.microsoftonline.com/t1", resource="https://vault.azure.net"')
        {'authorization': 'https://login.microsoftonline.com/t1', 'resource': 'https://vault.azure.net'}
    """
    if not header or not header.strip().lower().startswith("bearer"):
        return {}
    return {key.lower(): value for key, value in _CHALLENGE_PARAM.findall(header)}


def _scope_from_challenge(params: dict[str, str]) -> str | None:
    if params.get("scope"):
        return params["scope"]
    resource = params.get("resource")
    if resource:
        return resource.rstrip("/") + "/.default"
    return None


def _tenant_from_challenge(params: dict[str, str]) -> str | None:
    authority = params.get("authorization") or params.get("authorization_uri")
    if not authority:
        return None
    tenant = authority.rstrip("/").rsplit("/", 1)[-1]
    return tenant or None


class VaultHttpClient:
    """
    Async client for one vault.

    Args:
        vault_url: Vault base URL, e.g. ``https://myvault.vault.azure.net``
        credential: Azure credential; sync or async ``get_token`` both work
        api_version: Vault REST API version sent with every request
        session: Existing ``aiohttp.ClientSession`` to use. A session passed
            in is not closed by ``close()``.
        timeout_seconds: Total timeout per HTTP request
        retry_config: Retry policy for throttled, failed and timed-out requests
    """

    def __init__(
        self,
        vault_url: str,
        credential: TokenCredential,
        api_version: str = DEFAULT_API_VERSION,
        session: aiohttp.ClientSession | None = None,
        timeout_seconds: float = 30.0,
        retry_config: RetryConfig | None = None,
        token_cache: AccessTokenCache | None = None,
    ):
        self.vault_url = vault_url.rstrip("/") if vault_url else ""
        if not self.vault_url:
            raise ValueError(
                "A vault URL is required. Set AZURE_KEYVAULT_URL or configure keyvault.vault_url."
            )
        if not self.vault_url.startswith(("https://", "http://")):
            raise ValueError(
                f"The vault URL must start with https://, got: {self.vault_url!r}."
            )
        if credential is None:
            raise ValueError("credential must be provided.")
        if not api_version:
            raise ValueError("api_version must be provided.")

        self.credential = credential
        self.api_version = api_version
        self.timeout_seconds = timeout_seconds
        self.retry_config = retry_config or VAULT_RETRY
        self._token_cache = token_cache or AccessTokenCache()
        self._scope = VAULT_SCOPE
        self._tenant_id: str | None = None

        self._session = session
        self._owns_session = session is None
        self._closed = False

        self._send_with_retry = with_retry_async(
            config=self.retry_config,
            on_auth_error=self._on_auth_error,
            wrap_errors=False,
        )(self._request)

    @property
    def scope(self) -> str:
        return self._scope

    async def __aenter__(self) -> "VaultHttpClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> None:
        if self._closed:
            raise RuntimeError("VaultHttpClient is closed, cannot create new session")
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )
            self._owns_session = True

    async def close(self) -> None:
        self._closed = True
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            await asyncio.sleep(0)
        self._session = None

    # =========================================================================
    # Authentication
    # =========================================================================

    async def _get_token(self) -> str:
        cached = self._token_cache.get(self._scope)
        if cached is not None:
            return cached.token

        kwargs = {"tenant_id": self._tenant_id} if self._tenant_id else {}
        token = self.credential.get_token(self._scope, **kwargs)
        if inspect.isawaitable(token):
            token = await token
        if not isinstance(token, AccessToken):
            token = AccessToken(token.token, int(token.expires_on))

        self._token_cache.set(self._scope, token)
        logger.debug(
            "Acquired vault access token",
            extra={"scope": self._scope, "expires_on": int(token.expires_on)},
        )
        return token.token

    def _on_auth_error(self) -> None:
        self._token_cache.clear(self._scope)

    def _apply_challenge(self, header: str | None) -> bool:
        """Adopt the scope and tenant a 401 challenge names. True if anything changed."""
        params = parse_challenge(header or "")
        scope = _scope_from_challenge(params)
        tenant = _tenant_from_challenge(params)
        changed = False
        if scope and scope != self._scope:
            self._scope = scope
            changed = True
        if tenant and tenant != self._tenant_id:
            self._tenant_id = tenant
            changed = True
        if changed:
            self._token_cache.clear(self._scope)
            logger.info(
                "Vault authentication challenge received",
                extra={"vault_url": self.vault_url, "scope": self._scope},
            )
        return changed

    # =========================================================================
    # Requests
    # =========================================================================

    def _build_url(self, path_or_url: str) -> str:
        if path_or_url.startswith(("https://", "http://")):
            return path_or_url
        return f"{self.vault_url}/{path_or_url.lstrip('/')}"

    async def _read_body(self, response) -> Any:
        text = await response.text()
        if not text:
            return None
        try:
            return await response.json(content_type=None)
        except ValueError:
            return text

    async def _request(
        self,
        method: str,
        path_or_url: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        _challenge_retry: bool = False,
    ) -> Any:
        await self._ensure_session()

        url = self._build_url(path_or_url)
        query = dict(params or {})
        if "api-version=" not in url:
            query.setdefault("api-version", self.api_version)

        ctx = {k: v for k, v in get_log_context().items() if v}
        headers = {"Authorization": f"Bearer {await self._get_token()}"}
        if json is not None:
            headers["Content-Type"] = "application/json"

        start_time = time.perf_counter()
        try:
            async with self._session.request(
                method,
                url,
                params=query,
                json=json,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                duration = time.perf_counter() - start_time
                record_vault_request(method, response.status, duration)

                if (
                    response.status == 401
                    and not _challenge_retry
                    and self._apply_challenge(response.headers.get("WWW-Authenticate"))
                ):
                    return await self._request(
                        method, path_or_url, params, json, _challenge_retry=True
                    )

                body = await self._read_body(response)

                if response.status not in _SUCCESS_STATUSES:
                    error = map_error(response.status, body, url, response.headers)
                    log_level = logging.DEBUG if response.status == 404 else logging.WARNING
                    logger.log(
                        log_level,
                        "Vault request failed",
                        extra={
                            **ctx,
                            "http_method": method,
                            "http_url": url,
                            "http_status": response.status,
                            "error_code": error.error_code,
                            "error_category": error.category.value,
                            "request_id": response.headers.get("x-ms-request-id"),
                            "duration_ms": round(duration * 1000, 2),
                        },
                    )
                    raise error

                logger.debug(
                    "Vault request succeeded",
                    extra={
                        **ctx,
                        "http_method": method,
                        "http_url": url,
                        "http_status": response.status,
                        "duration_ms": round(duration * 1000, 2),
                    },
                )
                return body

        except TimeoutError as e:
            logger.warning(
                "Vault request timeout",
                extra={**ctx, "http_method": method, "http_url": url},
            )
            raise TransientError(f"Timeout after {self.timeout_seconds}s: {url}", cause=e) from e

        except aiohttp.ClientError as e:
            logger.warning(
                "Vault connection error",
                extra={
                    **ctx,
                    "http_method": method,
                    "http_url": url,
                    "error_type": type(e).__name__,
                    "error_message": str(e)[:200],
                },
            )
            raise TransientError(f"Connection error: {e}", cause=e) from e

    async def send(
        self,
        method: str,
        path_or_url: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """
        Send a request and return the parsed JSON body (None when empty).

        Raises:
            HttpResponseError: (or a subclass) for a non-success status once
                retries are exhausted or the status is not retryable
            TransientError: for timeouts and connection failures once retries
                are exhausted
        """
        return await self._send_with_retry(method, path_or_url, params, json)

    async def paginate(
        self,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield the items of a list operation, following ``nextLink`` across pages."""
        next_url: str | None = path
        page_params = params
        while next_url:
            page = await self.send("GET", next_url, params=page_params)
            page_params = None
            if not page:
                return
            for item in page.get("value") or []:
                yield item
            next_url = page.get("nextLink")


__all__ = [
    "DEFAULT_API_VERSION",
    "VaultHttpClient",
    "parse_challenge",
]
