"""
Long-running operation pollers for soft-delete and recovery.

Deleting or recovering an item returns at once, but the vault finishes the
work in the background. A poller holds the item the first request returned
and checks the vault until the work is visible.
"""

import asyncio
import logging
from typing import Generic, TypeVar

from clients.keyvault._http import VaultHttpClient
from clients.keyvault.errors import HttpResponseError, ResourceNotFoundError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_POLLING_INTERVAL = 2.0


class KeyVaultOperation(Generic[T]):
    """
    Base poller: ``value`` is the item returned when the operation started.

    ``update_status`` makes one status request; ``wait_for_completion`` polls
    until the operation is done and returns ``value``.
    """

    def __init__(
        self,
        client: VaultHttpClient,
        value: T,
        status_path: str,
        completed: bool = False,
        polling_interval: float = DEFAULT_POLLING_INTERVAL,
    ):
        self._client = client
        self._value = value
        self._status_path = status_path
        self._completed = completed
        self.polling_interval = polling_interval

    @property
    def value(self) -> T:
        return self._value

    @property
    def has_completed(self) -> bool:
        return self._completed

    async def update_status(self) -> bool:
        """
        Check the vault once.

        A 200 or 403 response completes the operation (403 means the caller
        may not read the item but the vault has processed it). A 404 keeps it
        pending. Other errors propagate.

        Returns:
            True if the operation has completed.
        """
        if self._completed:
            return True
        try:
            await self._client.send("GET", self._status_path)
            self._completed = True
        except ResourceNotFoundError:
            pass
        except HttpResponseError as e:
            if e.status_code != 403:
                raise
            self._completed = True

        logger.debug(
            "Polled vault operation (completed=%s)",
            self._completed,
            extra={"vault_url": self._client.vault_url, "http_url": self._status_path},
        )
        return self._completed

    async def wait_for_completion(self, polling_interval: float | None = None) -> T:
        interval = self.polling_interval if polling_interval is None else polling_interval
        while not await self.update_status():
            await asyncio.sleep(interval)
        return self._value


class DeleteResourceOperation(KeyVaultOperation[T]):
    """
    Deletion of a secret or key.

    Completes immediately when the deleted item has no recovery id: such an
    item is not soft-delete recoverable and is gone at once.
    """

    def __init__(
        self,
        client: VaultHttpClient,
        deleted_item: T,
        deleted_item_path: str,
        polling_interval: float = DEFAULT_POLLING_INTERVAL,
    ):
        super().__init__(
            client,
            deleted_item,
            deleted_item_path,
            completed=getattr(deleted_item, "recovery_id", None) is None,
            polling_interval=polling_interval,
        )


class RecoverDeletedResourceOperation(KeyVaultOperation[T]):
    """Recovery of a deleted secret or key; completes when the item is readable again."""


class DeleteSecretOperation(DeleteResourceOperation[T]):
    pass


class DeleteKeyOperation(DeleteResourceOperation[T]):
    pass


class RecoverDeletedSecretOperation(RecoverDeletedResourceOperation[T]):
    pass


class RecoverDeletedKeyOperation(RecoverDeletedResourceOperation[T]):
    pass


__all__ = [
    "KeyVaultOperation",
    "DeleteResourceOperation",
    "RecoverDeletedResourceOperation",
    "DeleteSecretOperation",
    "DeleteKeyOperation",
    "RecoverDeletedSecretOperation",
    "RecoverDeletedKeyOperation",
]
