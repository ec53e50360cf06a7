"""
Vault certificates: management policies and certificate creation.

``CertificatePolicy`` maps to and from the vault's policy JSON. Serialisation
writes only the values that are set, in the vault's section order, so a
policy read from the vault and written back carries no server-only fields.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from clients.decorators import set_log_context_for_operation
from clients.keyvault._client_base import KeyVaultClientBase
from clients.keyvault._polling import DEFAULT_POLLING_INTERVAL, KeyVaultOperation
from clients.keyvault._shared import from_unix_time, require_name
from clients.keyvault._wire import CertificateOperationBundle
from clients.keyvault.identifier import KeyVaultResourceId

logger = logging.getLogger(__name__)


class CertificateKeyType(str, Enum):
    EC = "EC"
    EC_HSM = "EC-HSM"
    RSA = "RSA"
    RSA_HSM = "RSA-HSM"


class CertificateKeyCurveName(str, Enum):
    P_256 = "P-256"
    P_256K = "P-256K"
    P_384 = "P-384"
    P_521 = "P-521"


class CertificateContentType(str, Enum):
    PKCS12 = "application/x-pkcs12"
    PEM = "application/x-pem-file"


class CertificateKeyUsage(str, Enum):
    DIGITAL_SIGNATURE = "digitalSignature"
    NON_REPUDIATION = "nonRepudiation"
    KEY_ENCIPHERMENT = "keyEncipherment"
    DATA_ENCIPHERMENT = "dataEncipherment"
    KEY_AGREEMENT = "keyAgreement"
    KEY_CERT_SIGN = "keyCertSign"
    CRL_SIGN = "cRLSign"
    ENCIPHER_ONLY = "encipherOnly"
    DECIPHER_ONLY = "decipherOnly"


class CertificatePolicyAction(str, Enum):
    AUTO_RENEW = "AutoRenew"
    EMAIL_CONTACTS = "EmailContacts"


def _enum_or_str(enum_class: type[Enum], value: Any):
    if value is None:
        return None
    try:
        return enum_class(value)
    except ValueError:
        return value


def _wire_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


@dataclass
class LifetimeAction:
    """
    An action the vault takes during a certificate's lifetime, triggered at a
    percentage of its lifetime or a number of days before it expires.
    """

    action: CertificatePolicyAction | str
    lifetime_percentage: int | None = None
    days_before_expiry: int | None = None

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "LifetimeAction":
        trigger = data.get("trigger") or {}
        action = (data.get("action") or {}).get("action_type")
        return cls(
            action=_enum_or_str(CertificatePolicyAction, action),
            lifetime_percentage=trigger.get("lifetime_percentage"),
            days_before_expiry=trigger.get("days_before_expiry"),
        )

    def _to_dict(self) -> dict[str, Any]:
        trigger: dict[str, Any] = {}
        if self.lifetime_percentage is not None:
            trigger["lifetime_percentage"] = self.lifetime_percentage
        if self.days_before_expiry is not None:
            trigger["days_before_expiry"] = self.days_before_expiry
        return {"trigger": trigger, "action": {"action_type": _wire_value(self.action)}}


@dataclass
class SubjectAlternativeNames:
    emails: list[str] | None = None
    dns_names: list[str] | None = None
    user_principal_names: list[str] | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.emails or self.dns_names or self.user_principal_names)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "SubjectAlternativeNames":
        return cls(
            emails=data.get("emails"),
            dns_names=data.get("dns_names"),
            user_principal_names=data.get("upns"),
        )

    def _to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if self.emails:
            body["emails"] = list(self.emails)
        if self.dns_names:
            body["dns_names"] = list(self.dns_names)
        if self.user_principal_names:
            body["upns"] = list(self.user_principal_names)
        return body


class CertificatePolicy:
    """
    How the vault creates and renews a certificate.

    A policy for a new certificate needs a subject or subject alternative
    names, plus an issuer name (``"Self"`` for self-signed). The
    no-argument form builds an empty policy, to be filled in or read from
    the vault.

    Raises:
        ValueError: if ``subject`` or ``subject_alternative_names`` is given
            but empty, or either is given without an ``issuer_name``, or an
            issuer name is given alone
    """

    def __init__(
        self,
        subject: str | None = None,
        issuer_name: str | None = None,
        subject_alternative_names: SubjectAlternativeNames | None = None,
    ):
        if subject is not None:
            require_name(subject, "subject")
            require_name(issuer_name, "issuer_name")
        elif subject_alternative_names is not None:
            if subject_alternative_names.is_empty:
                raise ValueError("subject_alternative_names must not be empty.")
            require_name(issuer_name, "issuer_name")
        elif issuer_name is not None:
            raise ValueError("subject or subject_alternative_names must be provided with issuer_name.")

        self.id: str | None = None
        self.subject = subject
        self.subject_alternative_names = subject_alternative_names
        self.issuer_name = issuer_name

        # key_props
        self.key_type: CertificateKeyType | str | None = None
        self.reuse_key: bool | None = None
        self.exportable: bool | None = None
        self.key_curve_name: CertificateKeyCurveName | str | None = None
        self.key_size: int | None = None

        # secret_props
        self.content_type: CertificateContentType | str | None = None

        # x509_props
        self.key_usage: list[CertificateKeyUsage | str] = []
        self.enhanced_key_usage: list[str] = []
        self.validity_in_months: int | None = None

        # issuer
        self.certificate_type: str | None = None
        self.certificate_transparency: bool | None = None

        # attributes
        self.enabled: bool | None = None
        self.created_on: datetime | None = None
        self.updated_on: datetime | None = None

        self.lifetime_actions: list[LifetimeAction] = []

    @classmethod
    def default(cls) -> "CertificatePolicy":
        """A self-signed policy with subject ``CN=DefaultPolicy``."""
        return cls("CN=DefaultPolicy", "Self")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CertificatePolicy":
        """Build a policy from the vault's policy JSON."""
        policy = cls()
        policy.id = data.get("id")

        key_props = data.get("key_props") or {}
        policy.key_type = _enum_or_str(CertificateKeyType, key_props.get("kty"))
        policy.reuse_key = key_props.get("reuse_key")
        policy.exportable = key_props.get("exportable")
        policy.key_curve_name = _enum_or_str(CertificateKeyCurveName, key_props.get("crv"))
        policy.key_size = key_props.get("key_size")

        secret_props = data.get("secret_props") or {}
        policy.content_type = _enum_or_str(CertificateContentType, secret_props.get("contentType"))

        x509_props = data.get("x509_props") or {}
        policy.subject = x509_props.get("subject")
        if x509_props.get("sans"):
            policy.subject_alternative_names = SubjectAlternativeNames._from_dict(x509_props["sans"])
        policy.key_usage = [
            _enum_or_str(CertificateKeyUsage, usage) for usage in x509_props.get("key_usage") or []
        ]
        policy.enhanced_key_usage = list(x509_props.get("ekus") or [])
        policy.validity_in_months = x509_props.get("validity_months")

        issuer = data.get("issuer") or {}
        policy.issuer_name = issuer.get("name")
        policy.certificate_type = issuer.get("cty")
        policy.certificate_transparency = issuer.get("cert_transparency")

        attributes = data.get("attributes") or {}
        policy.enabled = attributes.get("enabled")
        policy.created_on = from_unix_time(attributes.get("created"))
        policy.updated_on = from_unix_time(attributes.get("updated"))

        policy.lifetime_actions = [
            LifetimeAction._from_dict(action) for action in data.get("lifetime_actions") or []
        ]
        return policy

    def to_dict(self) -> dict[str, Any]:
        """
        The policy JSON to send to the vault.

        Sections appear in the order ``key_props``, ``secret_props``,
        ``x509_props``, ``issuer``, ``attributes``, ``lifetime_actions``;
        only set values are written and an empty policy is ``{}``.
        """
        body: dict[str, Any] = {}

        key_props: dict[str, Any] = {}
        if self.key_type is not None:
            key_props["kty"] = _wire_value(self.key_type)
        if self.reuse_key is not None:
            key_props["reuse_key"] = self.reuse_key
        if self.exportable is not None:
            key_props["exportable"] = self.exportable
        if self.key_curve_name is not None:
            key_props["crv"] = _wire_value(self.key_curve_name)
        if self.key_size is not None:
            key_props["key_size"] = self.key_size
        if key_props:
            body["key_props"] = key_props

        if self.content_type is not None:
            body["secret_props"] = {"contentType": _wire_value(self.content_type)}

        x509_props: dict[str, Any] = {}
        if self.subject is not None:
            x509_props["subject"] = self.subject
        if self.subject_alternative_names is not None and not self.subject_alternative_names.is_empty:
            x509_props["sans"] = self.subject_alternative_names._to_dict()
        if self.key_usage:
            x509_props["key_usage"] = [_wire_value(usage) for usage in self.key_usage]
        if self.enhanced_key_usage:
            x509_props["ekus"] = list(self.enhanced_key_usage)
        if self.validity_in_months is not None:
            x509_props["validity_months"] = self.validity_in_months
        if x509_props:
            body["x509_props"] = x509_props

        issuer: dict[str, Any] = {}
        if self.issuer_name is not None:
            issuer["name"] = self.issuer_name
        if self.certificate_type is not None:
            issuer["cty"] = self.certificate_type
        if self.certificate_transparency is not None:
            issuer["cert_transparency"] = self.certificate_transparency
        if issuer:
            body["issuer"] = issuer

        # created/updated are server-assigned
        if self.enabled is not None:
            body["attributes"] = {"enabled": self.enabled}

        if self.lifetime_actions:
            body["lifetime_actions"] = [action._to_dict() for action in self.lifetime_actions]

        return body

    def __repr__(self) -> str:
        return f"<CertificatePolicy subject={self.subject!r} issuer_name={self.issuer_name!r}>"


class CertificateOperation:
    """The state of a certificate being created, as reported by the vault."""

    IN_PROGRESS = "inprogress"

    def __init__(
        self,
        id: str | None = None,
        *,
        status: str | None = None,
        status_details: str | None = None,
        error: dict[str, Any] | None = None,
        csr: bytes | None = None,
        cancellation_requested: bool | None = None,
        issuer_name: str | None = None,
        certificate_type: str | None = None,
        certificate_transparency: bool | None = None,
        target: str | None = None,
        request_id: str | None = None,
    ):
        self.id = id
        self._resource_id = KeyVaultResourceId.parse(id, "certificates") if id else None
        self.status = status
        self.status_details = status_details
        self.error = error
        self.csr = csr
        self.cancellation_requested = cancellation_requested
        self.issuer_name = issuer_name
        self.certificate_type = certificate_type
        self.certificate_transparency = certificate_transparency
        self.target = target
        self.request_id = request_id

    @classmethod
    def _from_bundle(cls, bundle: CertificateOperationBundle) -> "CertificateOperation":
        issuer = bundle.issuer
        return cls(
            bundle.id,
            status=bundle.status,
            status_details=bundle.status_details,
            error=bundle.error,
            csr=bundle.csr.encode("ascii") if bundle.csr else None,
            cancellation_requested=bundle.cancellation_requested,
            issuer_name=issuer.name if issuer else None,
            certificate_type=issuer.cty if issuer else None,
            certificate_transparency=issuer.cert_transparency if issuer else None,
            target=bundle.target,
            request_id=bundle.request_id,
        )

    @property
    def name(self) -> str | None:
        return self._resource_id.name if self._resource_id else None

    @property
    def vault_url(self) -> str | None:
        return self._resource_id.vault_url if self._resource_id else None

    @property
    def is_in_progress(self) -> bool:
        return (self.status or "").lower() == self.IN_PROGRESS

    def __repr__(self) -> str:
        return f"<CertificateOperation [{self.id}] status={self.status!r}>"


class CertificateOperationPoller(KeyVaultOperation[CertificateOperation]):
    """
    Polls a certificate's pending operation until it leaves ``inProgress``.

    ``value`` is refreshed on every poll; a completed operation may have
    succeeded (``completed``) or not (e.g. ``failed``, ``cancelled``).
    """

    def __init__(
        self,
        client,
        operation: CertificateOperation,
        certificate_name: str,
        polling_interval: float = DEFAULT_POLLING_INTERVAL,
    ):
        super().__init__(
            client,
            operation,
            f"/certificates/{certificate_name}/pending",
            completed=not operation.is_in_progress,
            polling_interval=polling_interval,
        )

    async def update_status(self) -> bool:
        if self._completed:
            return True
        data = await self._client.send("GET", self._status_path)
        self._value = CertificateOperation._from_bundle(
            CertificateOperationBundle.model_validate(data)
        )
        self._completed = not self._value.is_in_progress
        if self._completed:
            logger.info(
                "Certificate operation finished with status %s",
                self._value.status,
                extra={"vault_url": self._client.vault_url, "item_name": self._value.name},
            )
        return self._completed


class CertificateClient(KeyVaultClientBase):
    """Async client for certificate policies and certificate creation."""

    @set_log_context_for_operation("CertificateClient", "vault_url")
    async def get_certificate_policy(self, certificate_name: str) -> CertificatePolicy:
        require_name(certificate_name, "certificate_name")
        data = await self._client.send("GET", f"/certificates/{certificate_name}/policy")
        return CertificatePolicy.from_dict(data or {})

    @set_log_context_for_operation("CertificateClient", "vault_url")
    async def update_certificate_policy(
        self, certificate_name: str, policy: CertificatePolicy
    ) -> CertificatePolicy:
        require_name(certificate_name, "certificate_name")
        if policy is None:
            raise ValueError("policy must be provided.")
        data = await self._client.send(
            "PATCH", f"/certificates/{certificate_name}/policy", json=policy.to_dict()
        )
        return CertificatePolicy.from_dict(data or {})

    @set_log_context_for_operation("CertificateClient", "vault_url")
    async def start_create_certificate(
        self,
        certificate_name: str,
        policy: CertificatePolicy,
        *,
        enabled: bool | None = None,
        tags: dict[str, str] | None = None,
    ) -> CertificateOperationPoller:
        """
        Start creating a certificate (or a new version of one).

        Returns a poller over the certificate's pending operation.
        """
        require_name(certificate_name, "certificate_name")
        if policy is None:
            raise ValueError("policy must be provided.")

        body: dict[str, Any] = {"policy": policy.to_dict()}
        if enabled is not None:
            body["attributes"] = {"enabled": enabled}
        if tags is not None:
            body["tags"] = tags

        data = await self._client.send("POST", f"/certificates/{certificate_name}/create", json=body)
        operation = CertificateOperation._from_bundle(CertificateOperationBundle.model_validate(data))
        logger.info(
            "Certificate creation started",
            extra={"vault_url": self.vault_url, "item_name": certificate_name},
        )
        return CertificateOperationPoller(self._client, operation, certificate_name)

    @set_log_context_for_operation("CertificateClient", "vault_url")
    async def get_certificate_operation(self, certificate_name: str) -> CertificateOperation:
        require_name(certificate_name, "certificate_name")
        data = await self._client.send("GET", f"/certificates/{certificate_name}/pending")
        return CertificateOperation._from_bundle(CertificateOperationBundle.model_validate(data))


__all__ = [
    "CertificateKeyType",
    "CertificateKeyCurveName",
    "CertificateContentType",
    "CertificateKeyUsage",
    "CertificatePolicyAction",
    "LifetimeAction",
    "SubjectAlternativeNames",
    "CertificatePolicy",
    "CertificateOperation",
    "CertificateOperationPoller",
    "CertificateClient",
]
