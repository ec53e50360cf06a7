"""Shared construction and lifecycle of the vault item clients."""

import logging
from typing import Any

import aiohttp

from clients.keyvault._http import DEFAULT_API_VERSION, VaultHttpClient
from core.resilience.retry import RetryConfig

logger = logging.getLogger(__name__)


class KeyVaultClientBase:
    """
    Owns a ``VaultHttpClient`` for one vault.

    The credential is not closed with the client; callers that built it close it.
    """

    def __init__(
        self,
        vault_url: str,
        credential: Any,
        *,
        api_version: str = DEFAULT_API_VERSION,
        session: aiohttp.ClientSession | None = None,
        timeout_seconds: float = 30.0,
        retry_config: RetryConfig | None = None,
    ):
        self._client = VaultHttpClient(
            vault_url,
            credential,
            api_version=api_version,
            session=session,
            timeout_seconds=timeout_seconds,
            retry_config=retry_config,
        )
        logger.info(
            "%s initialized",
            type(self).__name__,
            extra={"vault_url": self._client.vault_url},
        )

    @classmethod
    def from_settings(cls, settings, credential: Any, **kwargs):
        """Build a client from ``config.KeyVaultSettings``."""
        return cls(
            settings.vault_url,
            credential,
            api_version=settings.api_version,
            timeout_seconds=settings.request_timeout_seconds,
            retry_config=settings.to_retry_config(),
            **kwargs,
        )

    @property
    def vault_url(self) -> str:
        return self._client.vault_url

    async def close(self) -> None:
        await self._client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
