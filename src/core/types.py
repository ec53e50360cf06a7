"""
Core types and protocols used across modules.

This module provides base types, enums, and protocol definitions that are
shared across the client libraries to ensure consistency and type safety.
"""

from enum import Enum
from typing import Any, Awaitable, Protocol, Union

from azure.core.credentials import AccessToken


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that should retry with backoff
                   (e.g., network timeouts, 429/503 errors, busy service)
        AUTH: Authentication failures requiring credential refresh
              (e.g., 401 errors, expired tokens)
        PERMANENT: Non-retriable failures that won't succeed on retry
                   (e.g., 404, validation errors, closed clients)
        UNKNOWN: Unclassified errors, may retry conservatively
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class TokenCredential(Protocol):
    """
    Protocol for credentials accepted by the clients.

    Matches both the synchronous and asynchronous azure-identity credentials:
    ``get_token`` returns an ``AccessToken`` or an awaitable resolving to one.
    """

    def get_token(
        self, *scopes: str, **kwargs: Any
    ) -> Union[AccessToken, Awaitable[AccessToken]]:
        ...


__all__ = [
    "AccessToken",
    "ErrorCategory",
    "TokenCredential",
]
