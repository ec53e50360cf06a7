"""
Vault keys.

``KeyClient`` creates, reads, versions, deletes, recovers, backs up and
restores keys. Cryptographic operations with a key go through
``CryptographyClient`` (see ``crypto``).
"""

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from clients.decorators import set_log_context_for_operation
from clients.keyvault._client_base import KeyVaultClientBase
from clients.keyvault._polling import DeleteKeyOperation, RecoverDeletedKeyOperation
from clients.keyvault._shared import base64url_decode, base64url_encode, require_name
from clients.keyvault._wire import BackupBlob, ItemAttributes, JsonWebKeyModel, KeyBundle
from clients.keyvault.identifier import KeyVaultResourceId

logger = logging.getLogger(__name__)


class KeyType(str, Enum):
    """JSON web key types; ``-HSM`` types are hardware protected."""

    EC = "EC"
    EC_HSM = "EC-HSM"
    RSA = "RSA"
    RSA_HSM = "RSA-HSM"
    OCT = "oct"


class KeyCurveName(str, Enum):
    P_256 = "P-256"
    P_256K = "P-256K"
    P_384 = "P-384"
    P_521 = "P-521"


class KeyOperation(str, Enum):
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"
    SIGN = "sign"
    VERIFY = "verify"
    WRAP_KEY = "wrapKey"
    UNWRAP_KEY = "unwrapKey"
    IMPORT = "import"


def _enum_or_str(enum_class: type[Enum], value: str | None):
    """Map a wire value onto a known enum member, keeping values newer than this client as strings."""
    if value is None:
        return None
    try:
        return enum_class(value)
    except ValueError:
        return value


def _wire_value(value) -> str:
    return value.value if isinstance(value, Enum) else str(value)


_BINARY_MEMBERS = ("n", "e", "d", "dp", "dq", "qi", "p", "q", "k", "t", "x", "y")


class JsonWebKey:
    """
    A JSON web key as returned by the vault.

    Binary members (``n``, ``e``, ``x``, ``y``, ...) are bytes; private
    members are never returned for keys stored in the vault.
    """

    def __init__(self, kid: str | None = None, kty=None, key_ops=None, crv=None, **members: bytes | None):
        unknown = set(members) - set(_BINARY_MEMBERS)
        if unknown:
            raise ValueError(f"Unknown JSON web key members: {sorted(unknown)}")
        self.kid = kid
        self.kty = kty
        self.key_ops = key_ops
        self.crv = crv
        for name in _BINARY_MEMBERS:
            setattr(self, name, members.get(name))

    @classmethod
    def _from_wire(cls, model: JsonWebKeyModel) -> "JsonWebKey":
        members = {
            name: base64url_decode(getattr(model, name))
            for name in _BINARY_MEMBERS
            if getattr(model, name)
        }
        return cls(
            kid=model.kid,
            kty=_enum_or_str(KeyType, model.kty),
            key_ops=[_enum_or_str(KeyOperation, op) for op in model.key_ops] if model.key_ops else model.key_ops,
            crv=_enum_or_str(KeyCurveName, model.crv),
            **members,
        )


class KeyProperties:
    """A key's metadata, without its key material."""

    def __init__(
        self,
        id: str | None = None,
        *,
        enabled: bool | None = None,
        not_before: datetime | None = None,
        expires_on: datetime | None = None,
        created_on: datetime | None = None,
        updated_on: datetime | None = None,
        recovery_level: str | None = None,
        tags: dict[str, str] | None = None,
        managed: bool | None = None,
    ):
        self.id = id
        self._resource_id = KeyVaultResourceId.parse(id, "keys") if id else None
        self.enabled = enabled
        self.not_before = not_before
        self.expires_on = expires_on
        self.created_on = created_on
        self.updated_on = updated_on
        self.recovery_level = recovery_level
        self.tags = tags
        self.managed = managed

    @classmethod
    def _from_bundle(cls, bundle: KeyBundle) -> "KeyProperties":
        attributes = bundle.attributes
        return cls(
            bundle.key_id,
            enabled=attributes.enabled,
            not_before=attributes.not_before,
            expires_on=attributes.expires_on,
            created_on=attributes.created_on,
            updated_on=attributes.updated_on,
            recovery_level=attributes.recovery_level,
            tags=bundle.tags,
            managed=bundle.managed,
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

    def __repr__(self) -> str:
        return f"<KeyProperties [{self.id}]>"


class KeyVaultKey:
    """A key: its public key material and its properties."""

    def __init__(self, properties: KeyProperties, key: JsonWebKey | None):
        self.properties = properties
        self.key = key

    @classmethod
    def _from_bundle(cls, bundle: KeyBundle) -> "KeyVaultKey":
        key = JsonWebKey._from_wire(bundle.key) if bundle.key is not None else None
        return cls(KeyProperties._from_bundle(bundle), key)

    @property
    def id(self) -> str | None:
        return self.properties.id

    @property
    def name(self) -> str | None:
        return self.properties.name

    @property
    def key_type(self):
        return self.key.kty if self.key else None

    @property
    def key_operations(self):
        return self.key.key_ops if self.key else None

    def __repr__(self) -> str:
        return f"<KeyVaultKey [{self.id}]>"


class DeletedKey(KeyVaultKey):
    """A soft-deleted key, recoverable until ``scheduled_purge_date``."""

    def __init__(
        self,
        properties: KeyProperties,
        key: JsonWebKey | None = None,
        recovery_id: str | None = None,
        deleted_on: datetime | None = None,
        scheduled_purge_date: datetime | None = None,
    ):
        super().__init__(properties, key)
        self.recovery_id = recovery_id
        self.deleted_on = deleted_on
        self.scheduled_purge_date = scheduled_purge_date

    @classmethod
    def _from_bundle(cls, bundle: KeyBundle) -> "DeletedKey":
        key = JsonWebKey._from_wire(bundle.key) if bundle.key is not None else None
        return cls(
            KeyProperties._from_bundle(bundle),
            key,
            recovery_id=bundle.recovery_id,
            deleted_on=bundle.deleted_on,
            scheduled_purge_date=bundle.scheduled_purge_date,
        )

    def __repr__(self) -> str:
        return f"<DeletedKey [{self.id}]>"


# =============================================================================
# Create options
# =============================================================================


@dataclass(kw_only=True)
class CreateKeyOptions:
    """Attributes and tags for a new key."""

    key_operations: list[KeyOperation | str] | None = None
    enabled: bool | None = None
    not_before: datetime | None = None
    expires_on: datetime | None = None
    tags: dict[str, str] | None = None

    def _request_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if self.key_operations is not None:
            body["key_ops"] = [_wire_value(op) for op in self.key_operations]
        attributes = ItemAttributes(
            enabled=self.enabled, not_before=self.not_before, expires_on=self.expires_on
        ).to_request()
        if attributes:
            body["attributes"] = attributes
        if self.tags is not None:
            body["tags"] = self.tags
        return body


@dataclass
class CreateRsaKeyOptions(CreateKeyOptions):
    """An RSA key; ``hardware_protected`` selects ``RSA-HSM``."""

    name: str
    hardware_protected: bool = False
    key_size: int | None = None

    def __post_init__(self):
        require_name(self.name, "name")
        if self.key_size is not None and int(self.key_size) <= 0:
            raise ValueError("key_size must be positive.")

    @property
    def key_type(self) -> KeyType:
        return KeyType.RSA_HSM if self.hardware_protected else KeyType.RSA


@dataclass
class CreateEcKeyOptions(CreateKeyOptions):
    """An elliptic curve key; ``hardware_protected`` selects ``EC-HSM``."""

    name: str
    hardware_protected: bool = False
    curve_name: KeyCurveName | str | None = None

    def __post_init__(self):
        require_name(self.name, "name")

    @property
    def key_type(self) -> KeyType:
        return KeyType.EC_HSM if self.hardware_protected else KeyType.EC


# =============================================================================
# Client
# =============================================================================


class KeyClient(KeyVaultClientBase):
    """
    Async client for the keys of one vault.

    Example:
        >>> async with KeyClient(vault_url, credential) as client:
        ...     key = await client.create_rsa_key(CreateRsaKeyOptions(name="signing", key_size=2048))
    """

    @set_log_context_for_operation("KeyClient", "vault_url")
    async def create_key(
        self,
        name: str,
        key_type: KeyType | str,
        *,
        size: int | None = None,
        curve: KeyCurveName | str | None = None,
        options: CreateKeyOptions | None = None,
    ) -> KeyVaultKey:
        """Create a key, or a new version of an existing key."""
        require_name(name, "name")
        if key_type is None:
            raise ValueError("key_type must be provided.")

        body: dict[str, Any] = {"kty": _wire_value(key_type)}
        if size is not None:
            body["key_size"] = int(size)
        if curve is not None:
            body["crv"] = _wire_value(curve)
        if options is not None:
            body.update(options._request_body())

        data = await self._client.send("POST", f"/keys/{name}/create", json=body)
        logger.info(
            "Key created",
            extra={"vault_url": self.vault_url, "item_name": name},
        )
        return KeyVaultKey._from_bundle(KeyBundle.model_validate(data))

    @set_log_context_for_operation("KeyClient", "vault_url")
    async def create_rsa_key(self, options: CreateRsaKeyOptions) -> KeyVaultKey:
        if options is None:
            raise ValueError("options must be provided.")
        return await self.create_key(
            options.name, options.key_type, size=options.key_size, options=options
        )

    @set_log_context_for_operation("KeyClient", "vault_url")
    async def create_ec_key(self, options: CreateEcKeyOptions) -> KeyVaultKey:
        if options is None:
            raise ValueError("options must be provided.")
        return await self.create_key(
            options.name, options.key_type, curve=options.curve_name, options=options
        )

    @set_log_context_for_operation("KeyClient", "vault_url")
    async def get_key(self, name: str, version: str | None = None) -> KeyVaultKey:
        require_name(name, "name")
        data = await self._client.send("GET", f"/keys/{name}/{version or ''}")
        return KeyVaultKey._from_bundle(KeyBundle.model_validate(data))

    @set_log_context_for_operation("KeyClient", "vault_url")
    async def update_key_properties(
        self,
        properties: KeyProperties,
        key_operations: list[KeyOperation | str] | None = None,
    ) -> KeyVaultKey:
        """Update a key version's permitted operations, attributes and tags."""
        if properties is None or not properties.name:
            raise ValueError("properties must identify a key.")

        body: dict[str, Any] = {}
        if key_operations is not None:
            body["key_ops"] = [_wire_value(op) for op in key_operations]
        attributes = ItemAttributes(
            enabled=properties.enabled,
            not_before=properties.not_before,
            expires_on=properties.expires_on,
        ).to_request()
        if attributes:
            body["attributes"] = attributes
        if properties.tags is not None:
            body["tags"] = properties.tags

        data = await self._client.send(
            "PATCH", f"/keys/{properties.name}/{properties.version or ''}", json=body
        )
        return KeyVaultKey._from_bundle(KeyBundle.model_validate(data))

    @set_log_context_for_operation("KeyClient", "vault_url")
    async def list_properties_of_keys(self) -> AsyncIterator[KeyProperties]:
        async for item in self._client.paginate("/keys"):
            yield KeyProperties._from_bundle(KeyBundle.model_validate(item))

    @set_log_context_for_operation("KeyClient", "vault_url")
    async def list_properties_of_key_versions(self, name: str) -> AsyncIterator[KeyProperties]:
        require_name(name, "name")
        async for item in self._client.paginate(f"/keys/{name}/versions"):
            yield KeyProperties._from_bundle(KeyBundle.model_validate(item))

    @set_log_context_for_operation("KeyClient", "vault_url")
    async def start_delete_key(self, name: str) -> DeleteKeyOperation[DeletedKey]:
        """Delete all versions of a key; returns a poller whose ``value`` is the deleted key."""
        require_name(name, "name")
        data = await self._client.send("DELETE", f"/keys/{name}")
        deleted = DeletedKey._from_bundle(KeyBundle.model_validate(data))
        logger.info("Key deleted", extra={"vault_url": self.vault_url, "item_name": name})
        return DeleteKeyOperation(self._client, deleted, f"/deletedkeys/{name}")

    @set_log_context_for_operation("KeyClient", "vault_url")
    async def get_deleted_key(self, name: str) -> DeletedKey:
        require_name(name, "name")
        data = await self._client.send("GET", f"/deletedkeys/{name}")
        return DeletedKey._from_bundle(KeyBundle.model_validate(data))

    @set_log_context_for_operation("KeyClient", "vault_url")
    async def list_deleted_keys(self) -> AsyncIterator[DeletedKey]:
        async for item in self._client.paginate("/deletedkeys"):
            yield DeletedKey._from_bundle(KeyBundle.model_validate(item))

    @set_log_context_for_operation("KeyClient", "vault_url")
    async def purge_deleted_key(self, name: str) -> None:
        require_name(name, "name")
        await self._client.send("DELETE", f"/deletedkeys/{name}")
        logger.info("Deleted key purged", extra={"vault_url": self.vault_url, "item_name": name})

    @set_log_context_for_operation("KeyClient", "vault_url")
    async def start_recover_deleted_key(self, name: str) -> RecoverDeletedKeyOperation[KeyVaultKey]:
        require_name(name, "name")
        data = await self._client.send("POST", f"/deletedkeys/{name}/recover")
        key = KeyVaultKey._from_bundle(KeyBundle.model_validate(data))
        logger.info("Deleted key recovery started", extra={"vault_url": self.vault_url, "item_name": name})
        return RecoverDeletedKeyOperation(self._client, key, f"/keys/{name}/")

    @set_log_context_for_operation("KeyClient", "vault_url")
    async def backup_key(self, name: str) -> bytes:
        require_name(name, "name")
        data = await self._client.send("POST", f"/keys/{name}/backup")
        return base64url_decode(BackupBlob.model_validate(data).value)

    @set_log_context_for_operation("KeyClient", "vault_url")
    async def restore_key_backup(self, backup: bytes) -> KeyVaultKey:
        if not backup:
            raise ValueError("backup must be provided.")
        data = await self._client.send(
            "POST", "/keys/restore", json={"value": base64url_encode(backup)}
        )
        return KeyVaultKey._from_bundle(KeyBundle.model_validate(data))


__all__ = [
    "KeyType",
    "KeyCurveName",
    "KeyOperation",
    "JsonWebKey",
    "KeyProperties",
    "KeyVaultKey",
    "DeletedKey",
    "CreateKeyOptions",
    "CreateRsaKeyOptions",
    "CreateEcKeyOptions",
    "KeyClient",
]
