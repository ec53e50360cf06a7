"""
Vault secrets.

``SecretClient`` stores, reads, versions, deletes, recovers, backs up and
restores secrets. Deletion and recovery return pollers (see ``_polling``).
"""

import logging
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from clients.decorators import set_log_context_for_operation
from clients.keyvault._client_base import KeyVaultClientBase
from clients.keyvault._polling import DeleteSecretOperation, RecoverDeletedSecretOperation
from clients.keyvault._shared import base64url_decode, base64url_encode, require_name
from clients.keyvault._wire import BackupBlob, ItemAttributes, SecretBundle
from clients.keyvault.identifier import KeyVaultResourceId

logger = logging.getLogger(__name__)


class SecretProperties:
    """A secret's metadata, without its value."""

    def __init__(
        self,
        id: str | None = None,
        *,
        content_type: str | None = None,
        enabled: bool | None = None,
        not_before: datetime | None = None,
        expires_on: datetime | None = None,
        created_on: datetime | None = None,
        updated_on: datetime | None = None,
        recovery_level: str | None = None,
        tags: dict[str, str] | None = None,
        managed: bool | None = None,
        key_id: str | None = None,
    ):
        self.id = id
        self._resource_id = KeyVaultResourceId.parse(id, "secrets") if id else None
        self.content_type = content_type
        self.enabled = enabled
        self.not_before = not_before
        self.expires_on = expires_on
        self.created_on = created_on
        self.updated_on = updated_on
        self.recovery_level = recovery_level
        self.tags = tags
        self.managed = managed
        self.key_id = key_id

    @classmethod
    def _from_bundle(cls, bundle: SecretBundle) -> "SecretProperties":
        attributes = bundle.attributes
        return cls(
            bundle.id,
            content_type=bundle.content_type,
            enabled=attributes.enabled,
            not_before=attributes.not_before,
            expires_on=attributes.expires_on,
            created_on=attributes.created_on,
            updated_on=attributes.updated_on,
            recovery_level=attributes.recovery_level,
            tags=bundle.tags,
            managed=bundle.managed,
            key_id=bundle.kid,
        )

    @property
    def vault_url(self) -> str | None:
        return self._resource_id.vault_url if self._resource_id else None

    @property
    def name(self) -> str | None:
        return self._resource_id.name if self._resource_id else None

    @property
    def version(self) -> str | None:
        return self._resource_id.version if self._resource_id else None

    def _attributes(self) -> dict[str, Any]:
        return ItemAttributes(
            enabled=self.enabled,
            not_before=self.not_before,
            expires_on=self.expires_on,
        ).to_request()

    def __repr__(self) -> str:
        return f"<SecretProperties [{self.id}]>"


class KeyVaultSecret:
    """A secret: its value and its properties."""

    def __init__(self, properties: SecretProperties, value: str | None):
        self.properties = properties
        self.value = value

    @classmethod
    def _from_bundle(cls, bundle: SecretBundle) -> "KeyVaultSecret":
        return cls(SecretProperties._from_bundle(bundle), bundle.value)

    @property
    def id(self) -> str | None:
        return self.properties.id

    @property
    def name(self) -> str | None:
        return self.properties.name

    def __repr__(self) -> str:
        # Never include the value
        return f"<KeyVaultSecret [{self.id}]>"


class DeletedSecret(KeyVaultSecret):
    """A soft-deleted secret, recoverable until ``scheduled_purge_date``."""

    def __init__(
        self,
        properties: SecretProperties,
        value: str | None = None,
        recovery_id: str | None = None,
        deleted_on: datetime | None = None,
        scheduled_purge_date: datetime | None = None,
    ):
        super().__init__(properties, value)
        self.recovery_id = recovery_id
        self.deleted_on = deleted_on
        self.scheduled_purge_date = scheduled_purge_date

    @classmethod
    def _from_bundle(cls, bundle: SecretBundle) -> "DeletedSecret":
        return cls(
            SecretProperties._from_bundle(bundle),
            bundle.value,
            recovery_id=bundle.recovery_id,
            deleted_on=bundle.deleted_on,
            scheduled_purge_date=bundle.scheduled_purge_date,
        )

    def __repr__(self) -> str:
        return f"<DeletedSecret [{self.id}]>"


class SecretClient(KeyVaultClientBase):
    """
    Async client for the secrets of one vault.

    Example:
        >>> async with SecretClient(vault_url, credential) as client:
        ...     await client.set_secret("db-password", "s3cr3t")
        ...     secret = await client.get_secret("db-password")
    """

    @set_log_context_for_operation("SecretClient", "vault_url")
    async def set_secret(
        self,
        name: str,
        value: str,
        *,
        content_type: str | None = None,
        enabled: bool | None = None,
        not_before: datetime | None = None,
        expires_on: datetime | None = None,
        tags: dict[str, str] | None = None,
    ) -> KeyVaultSecret:
        """Set a secret's value, creating it or adding a new version."""
        require_name(name, "name")
        if value is None:
            raise ValueError("value must be provided.")

        body: dict[str, Any] = {"value": value}
        if content_type is not None:
            body["contentType"] = content_type
        attributes = ItemAttributes(
            enabled=enabled, not_before=not_before, expires_on=expires_on
        ).to_request()
        if attributes:
            body["attributes"] = attributes
        if tags is not None:
            body["tags"] = tags

        data = await self._client.send("PUT", f"/secrets/{name}", json=body)
        logger.info("Secret set", extra={"vault_url": self.vault_url, "item_name": name})
        return KeyVaultSecret._from_bundle(SecretBundle.model_validate(data))

    @set_log_context_for_operation("SecretClient", "vault_url")
    async def get_secret(self, name: str, version: str | None = None) -> KeyVaultSecret:
        """Get a secret; the latest version unless ``version`` is given."""
        require_name(name, "name")
        data = await self._client.send("GET", f"/secrets/{name}/{version or ''}")
        return KeyVaultSecret._from_bundle(SecretBundle.model_validate(data))

    @set_log_context_for_operation("SecretClient", "vault_url")
    async def update_secret_properties(self, properties: SecretProperties) -> SecretProperties:
        """
        Update a secret version's content type, attributes and tags.

        The secret's value cannot be changed this way; use ``set_secret``.
        """
        if properties is None or not properties.name:
            raise ValueError("properties must identify a secret.")

        body: dict[str, Any] = {}
        if properties.content_type is not None:
            body["contentType"] = properties.content_type
        attributes = properties._attributes()
        if attributes:
            body["attributes"] = attributes
        if properties.tags is not None:
            body["tags"] = properties.tags

        data = await self._client.send(
            "PATCH", f"/secrets/{properties.name}/{properties.version or ''}", json=body
        )
        return SecretProperties._from_bundle(SecretBundle.model_validate(data))

    @set_log_context_for_operation("SecretClient", "vault_url")
    async def list_properties_of_secrets(self) -> AsyncIterator[SecretProperties]:
        async for item in self._client.paginate("/secrets"):
            yield SecretProperties._from_bundle(SecretBundle.model_validate(item))

    @set_log_context_for_operation("SecretClient", "vault_url")
    async def list_properties_of_secret_versions(self, name: str) -> AsyncIterator[SecretProperties]:
        require_name(name, "name")
        async for item in self._client.paginate(f"/secrets/{name}/versions"):
            yield SecretProperties._from_bundle(SecretBundle.model_validate(item))

    @set_log_context_for_operation("SecretClient", "vault_url")
    async def start_delete_secret(self, name: str) -> DeleteSecretOperation[DeletedSecret]:
        """
        Delete all versions of a secret.

        Returns a poller; the deleted secret is its ``value``. In a vault with
        soft-delete the secret stays recoverable until purged.
        """
        require_name(name, "name")
        data = await self._client.send("DELETE", f"/secrets/{name}")
        deleted = DeletedSecret._from_bundle(SecretBundle.model_validate(data))
        logger.info("Secret deleted", extra={"vault_url": self.vault_url, "item_name": name})
        return DeleteSecretOperation(self._client, deleted, f"/deletedsecrets/{name}")

    @set_log_context_for_operation("SecretClient", "vault_url")
    async def get_deleted_secret(self, name: str) -> DeletedSecret:
        require_name(name, "name")
        data = await self._client.send("GET", f"/deletedsecrets/{name}")
        return DeletedSecret._from_bundle(SecretBundle.model_validate(data))

    @set_log_context_for_operation("SecretClient", "vault_url")
    async def list_deleted_secrets(self) -> AsyncIterator[DeletedSecret]:
        async for item in self._client.paginate("/deletedsecrets"):
            yield DeletedSecret._from_bundle(SecretBundle.model_validate(item))

    @set_log_context_for_operation("SecretClient", "vault_url")
    async def purge_deleted_secret(self, name: str) -> None:
        """Permanently delete a soft-deleted secret."""
        require_name(name, "name")
        await self._client.send("DELETE", f"/deletedsecrets/{name}")
        logger.info("Deleted secret purged", extra={"vault_url": self.vault_url, "item_name": name})

    @set_log_context_for_operation("SecretClient", "vault_url")
    async def start_recover_deleted_secret(
        self, name: str
    ) -> RecoverDeletedSecretOperation[SecretProperties]:
        """Recover a soft-deleted secret to its latest version."""
        require_name(name, "name")
        data = await self._client.send("POST", f"/deletedsecrets/{name}/recover")
        properties = SecretProperties._from_bundle(SecretBundle.model_validate(data))
        logger.info("Deleted secret recovery started", extra={"vault_url": self.vault_url, "item_name": name})
        return RecoverDeletedSecretOperation(self._client, properties, f"/secrets/{name}/")

    @set_log_context_for_operation("SecretClient", "vault_url")
    async def backup_secret(self, name: str) -> bytes:
        """Back up all versions of a secret into a protected blob."""
        require_name(name, "name")
        data = await self._client.send("POST", f"/secrets/{name}/backup")
        return base64url_decode(BackupBlob.model_validate(data).value)

    @set_log_context_for_operation("SecretClient", "vault_url")
    async def restore_secret_backup(self, backup: bytes) -> SecretProperties:
        """Restore a backed-up secret (all its versions) into this vault."""
        if not backup:
            raise ValueError("backup must be provided.")
        data = await self._client.send(
            "POST", "/secrets/restore", json={"value": base64url_encode(backup)}
        )
        return SecretProperties._from_bundle(SecretBundle.model_validate(data))


__all__ = [
    "SecretProperties",
    "KeyVaultSecret",
    "DeletedSecret",
    "SecretClient",
]
