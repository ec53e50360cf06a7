"""
Thread-safe access token cache with expiration tracking.

Tokens are cached per scope together with the expiry the identity provider
reported. A token is served from cache until it comes within the refresh
buffer of its expiry, so requests never carry a token that may lapse in
flight.

Thread Safety:
    All cache operations are protected by a lock. The vault clients share one
    cache between concurrent requests.

Example:
    >>> cache = AccessTokenCache()
    >>> cache.set("https://vault.azure.net/.default", access_token)
    >>> token = cache.get("https://vault.azure.net/.default")
    >>> if token is None:
    ...     # Expired or not cached, fetch a new one
"""

import threading
import time

from azure.core.credentials import AccessToken

# Refresh tokens this many seconds before they expire
TOKEN_REFRESH_BUFFER_SECONDS = 300


class AccessTokenCache:
    """
    Thread-safe cache of ``AccessToken`` objects keyed by scope.

    Attributes:
        refresh_buffer: Seconds before expiry at which a cached token is
            treated as expired.
    """

    def __init__(self, refresh_buffer: float = TOKEN_REFRESH_BUFFER_SECONDS):
        self.refresh_buffer = refresh_buffer
        self._tokens: dict[str, AccessToken] = {}
        self._lock = threading.Lock()

    def _is_valid(self, token: AccessToken) -> bool:
        return token.expires_on - self.refresh_buffer > time.time()

    def get(self, scope: str) -> AccessToken | None:
        """
        Get cached token if still valid.

        Args:
            scope: Scope the token was acquired for

        Returns:
            The cached token, or None if expired or missing.
        """
        with self._lock:
            cached = self._tokens.get(scope)
            if cached and self._is_valid(cached):
                return cached
            return None

    def set(self, scope: str, token: AccessToken) -> None:
        """Cache a token for a scope, replacing any previous one."""
        with self._lock:
            self._tokens[scope] = token

    def clear(self, scope: str | None = None) -> None:
        """
        Clear one or all cached tokens.

        Args:
            scope: Specific scope to clear. If None, clears all tokens.
        """
        with self._lock:
            if scope:
                self._tokens.pop(scope, None)
            else:
                self._tokens.clear()

    def seconds_until_expiry(self, scope: str) -> float | None:
        """Remaining lifetime of a cached token for diagnostics, or None."""
        with self._lock:
            cached = self._tokens.get(scope)
            if cached:
                return cached.expires_on - time.time()
            return None


__all__ = ["AccessTokenCache", "TOKEN_REFRESH_BUFFER_SECONDS"]
