"""
Pydantic models of vault REST payloads.

These mirror the JSON the vault returns (camelCase and abbreviated names are
mapped through aliases). Unix timestamps parse straight into aware datetimes.
The public models in ``secrets``, ``keys`` and ``certificates`` are built
from them.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from clients.keyvault._shared import to_unix_time


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ItemAttributes(_WireModel):
    """The ``attributes`` object shared by secrets, keys and certificates."""

    enabled: bool | None = None
    not_before: datetime | None = Field(default=None, alias="nbf")
    expires_on: datetime | None = Field(default=None, alias="exp")
    created_on: datetime | None = Field(default=None, alias="created")
    updated_on: datetime | None = Field(default=None, alias="updated")
    recovery_level: str | None = Field(default=None, alias="recoveryLevel")
    recoverable_days: int | None = Field(default=None, alias="recoverableDays")

    def to_request(self) -> dict[str, Any]:
        """Only the writable attributes that are set."""
        body: dict[str, Any] = {}
        if self.enabled is not None:
            body["enabled"] = self.enabled
        if self.not_before is not None:
            body["nbf"] = to_unix_time(self.not_before)
        if self.expires_on is not None:
            body["exp"] = to_unix_time(self.expires_on)
        return body


class _DeletedFields(_WireModel):
    recovery_id: str | None = Field(default=None, alias="recoveryId")
    deleted_on: datetime | None = Field(default=None, alias="deletedDate")
    scheduled_purge_date: datetime | None = Field(default=None, alias="scheduledPurgeDate")


class SecretBundle(_DeletedFields):
    """A secret, a secret list item or a deleted secret."""

    id: str
    value: str | None = None
    content_type: str | None = Field(default=None, alias="contentType")
    attributes: ItemAttributes = Field(default_factory=ItemAttributes)
    tags: dict[str, str] | None = None
    kid: str | None = None
    managed: bool | None = None


class JsonWebKeyModel(_WireModel):
    """A JSON web key; binary members are base64url strings."""

    kid: str | None = None
    kty: str | None = None
    key_ops: list[str] | None = None
    n: str | None = None
    e: str | None = None
    d: str | None = None
    dp: str | None = None
    dq: str | None = None
    qi: str | None = None
    p: str | None = None
    q: str | None = None
    k: str | None = None
    t: str | None = Field(default=None, alias="key_hsm")
    crv: str | None = None
    x: str | None = None
    y: str | None = None


class KeyBundle(_DeletedFields):
    """A key (with ``key``) or a key list item (with ``kid``)."""

    key: JsonWebKeyModel | None = None
    kid: str | None = None
    attributes: ItemAttributes = Field(default_factory=ItemAttributes)
    tags: dict[str, str] | None = None
    managed: bool | None = None

    @property
    def key_id(self) -> str:
        if self.key is not None and self.key.kid:
            return self.key.kid
        if self.kid:
            return self.kid
        raise ValueError("The key payload carries no identifier.")


class KeyOperationResult(_WireModel):
    kid: str | None = None
    value: str


class KeyVerifyResult(_WireModel):
    value: bool


class BackupBlob(_WireModel):
    value: str


class IssuerParameters(_WireModel):
    name: str | None = None
    cty: str | None = None
    cert_transparency: bool | None = None


class CertificateOperationBundle(_WireModel):
    """The pending operation of a certificate being created."""

    id: str
    issuer: IssuerParameters | None = None
    csr: str | None = None
    cancellation_requested: bool | None = None
    status: str | None = None
    status_details: str | None = None
    error: dict[str, Any] | None = None
    target: str | None = None
    request_id: str | None = None
