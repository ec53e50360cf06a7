"""
Authentication module.

Components:
    - AccessTokenCache: Thread-safe token caching with expiry buffer
    - get_default_credential: async azure-identity credential (SPN or default chain)
"""

from .credentials import (
    EVENTHUB_SCOPE,
    STORAGE_SCOPE,
    VAULT_SCOPE,
    AzureAuthError,
    get_default_credential,
    has_spn_credentials,
)
from .token_cache import TOKEN_REFRESH_BUFFER_SECONDS, AccessTokenCache

__all__ = [
    "AccessTokenCache",
    "TOKEN_REFRESH_BUFFER_SECONDS",
    "AzureAuthError",
    "get_default_credential",
    "has_spn_credentials",
    "VAULT_SCOPE",
    "EVENTHUB_SCOPE",
    "STORAGE_SCOPE",
]
