"""
Shared access signature (SAS) authorization for Event Hubs.

A shared access signature is a time-limited token signed with a shared key::

    SharedAccessSignature sr=<url-encoded resource>&sig=<url-encoded signature>
        &se=<unix expiry>&skn=<url-encoded key name>

where the signature is ``base64(HMAC-SHA256(key, urlenc(resource) + "\\n" + expiry))``.

``SharedAccessSignatureCredential`` hands out tokens from a signature and
extends the signature before it expires, so long-lived connections keep
authenticating without the caller regenerating anything.
"""

import base64
import hashlib
import hmac
import logging
import threading
import time
from urllib.parse import parse_qsl, quote_plus

from azure.core.credentials import AccessToken

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "SharedAccessSignature"
MAXIMUM_KEY_NAME_LENGTH = 256
MAXIMUM_KEY_LENGTH = 256
DEFAULT_SIGNATURE_VALIDITY_SECONDS = 30 * 60

# Signatures expiring within the buffer are extended by the extension duration
SIGNATURE_REFRESH_BUFFER_SECONDS = 5 * 60
SIGNATURE_EXTENSION_SECONDS = 30 * 60


def _compute_signature(key: str, encoded_resource: str, expiry: int) -> str:
    message = f"{encoded_resource}\n{expiry}".encode("utf-8")
    digest = hmac.new(key.encode("utf-8"), message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


class SharedAccessSignature:
    """
    A shared access signature for an Event Hubs resource.

    Create one from a shared key with ``SharedAccessSignature(resource,
    key_name, key)``, or wrap an existing token with ``parse()``. Only
    signatures that know their shared key can be extended.
    """

    def __init__(
        self,
        resource: str,
        shared_access_key_name: str,
        shared_access_key: str | None,
        validity_seconds: float = DEFAULT_SIGNATURE_VALIDITY_SECONDS,
        *,
        value: str | None = None,
        expires_on: int | None = None,
    ):
        if not resource or not resource.strip():
            raise ValueError("The resource must be provided.")
        if not shared_access_key_name or not shared_access_key_name.strip():
            raise ValueError("The shared access key name must be provided.")
        if len(shared_access_key_name) > MAXIMUM_KEY_NAME_LENGTH:
            raise ValueError(
                f"The shared access key name may not exceed {MAXIMUM_KEY_NAME_LENGTH} characters."
            )
        if shared_access_key is not None and len(shared_access_key) > MAXIMUM_KEY_LENGTH:
            raise ValueError(
                f"The shared access key may not exceed {MAXIMUM_KEY_LENGTH} characters."
            )

        self.resource = resource
        self.shared_access_key_name = shared_access_key_name
        self._shared_access_key = shared_access_key
        self._lock = threading.Lock()

        if value is not None:
            self.value = value
            self.expires_on = int(expires_on or 0)
            return

        if not shared_access_key:
            raise ValueError("The shared access key must be provided.")
        if validity_seconds <= 0:
            raise ValueError("The signature validity must be a positive duration.")
        self.value, self.expires_on = self._build(validity_seconds)

    @classmethod
    def parse(cls, signature: str, shared_access_key: str | None = None) -> "SharedAccessSignature":
        """
        Wrap an existing signature string.

        Raises:
            ValueError: if the value is not a shared access signature or lacks
                the resource, signature, expiry or key name
        """
        if not signature or not signature.strip():
            raise ValueError("The shared access signature must be provided.")

        value = signature.strip()
        if not value.startswith(SIGNATURE_PREFIX + " "):
            raise ValueError(f"The signature must start with '{SIGNATURE_PREFIX} '.")

        fields = dict(parse_qsl(value[len(SIGNATURE_PREFIX) + 1:], keep_blank_values=True))
        missing = [name for name in ("sr", "sig", "se", "skn") if not fields.get(name)]
        if missing:
            raise ValueError(f"The shared access signature is missing: {', '.join(missing)}")

        try:
            expires_on = int(fields["se"])
        except ValueError as e:
            raise ValueError(f"The signature expiry is not a unix timestamp: '{fields['se']}'") from e

        return cls(
            fields["sr"],
            fields["skn"],
            shared_access_key,
            value=value,
            expires_on=expires_on,
        )

    def _build(self, validity_seconds: float) -> tuple[str, int]:
        expiry = int(time.time() + validity_seconds)
        encoded_resource = quote_plus(self.resource)
        signature = _compute_signature(self._shared_access_key, encoded_resource, expiry)
        value = (
            f"{SIGNATURE_PREFIX} sr={encoded_resource}"
            f"&sig={quote_plus(signature)}"
            f"&se={expiry}"
            f"&skn={quote_plus(self.shared_access_key_name)}"
        )
        return value, expiry

    @property
    def can_extend(self) -> bool:
        return bool(self._shared_access_key)

    def extend_expiration(self, duration_seconds: float) -> None:
        """
        Regenerate the signature so that it expires ``duration_seconds`` from now.

        Raises:
            ValueError: for a non-positive duration, or when the signature was
                parsed without its shared key
        """
        if duration_seconds <= 0:
            raise ValueError("The extension duration must be a positive duration.")
        if not self.can_extend:
            raise ValueError(
                "The shared access signature cannot be extended without its shared access key."
            )
        with self._lock:
            self.value, self.expires_on = self._build(duration_seconds)

    def clone(self) -> "SharedAccessSignature":
        return SharedAccessSignature(
            self.resource,
            self.shared_access_key_name,
            self._shared_access_key,
            value=self.value,
            expires_on=self.expires_on,
        )

    def __repr__(self) -> str:
        return (
            f"SharedAccessSignature(resource={self.resource!r}, "
            f"key_name={self.shared_access_key_name!r}, expires_on={self.expires_on})"
        )


class SharedAccessSignatureCredential:
    """
    Token credential backed by a shared access signature.

    ``get_token`` extends the signature by 30 minutes whenever it would
    expire within the next 5 minutes and its shared key is known, then
    returns it as an ``AccessToken``.
    Scopes are ignored: a signature is bound to its resource.
    """

    def __init__(self, signature: SharedAccessSignature):
        if signature is None:
            raise ValueError("The signature must be provided.")
        self.signature = signature

    def get_token(self, *scopes: str, **kwargs) -> AccessToken:
        signature = self.signature
        if signature.expires_on <= time.time() + SIGNATURE_REFRESH_BUFFER_SECONDS:
            if signature.can_extend:
                logger.debug(
                    "Extending shared access signature",
                    extra={"expires_on": signature.expires_on},
                )
                signature.extend_expiration(SIGNATURE_EXTENSION_SECONDS)
            else:
                logger.warning(
                    "Shared access signature is near expiry and has no key to extend it",
                    extra={"expires_on": signature.expires_on},
                )
        return AccessToken(signature.value, signature.expires_on)

    async def close(self) -> None:
        return None


class EventHubSharedKeyCredential:
    """
    A shared access key name and key that can sign for any Event Hubs resource.

    Pass it to ``EventHubConnection`` with a namespace and event hub name; the
    connection asks for a signature scoped to its own resource.
    """

    def __init__(self, shared_access_key_name: str, shared_access_key: str):
        if not shared_access_key_name or not shared_access_key_name.strip():
            raise ValueError("The shared access key name must be provided.")
        if not shared_access_key or not shared_access_key.strip():
            raise ValueError("The shared access key must be provided.")
        self.shared_access_key_name = shared_access_key_name
        self.shared_access_key = shared_access_key

    def as_sas_credential(
        self,
        resource: str,
        validity_seconds: float = DEFAULT_SIGNATURE_VALIDITY_SECONDS,
    ) -> SharedAccessSignatureCredential:
        signature = SharedAccessSignature(
            resource,
            self.shared_access_key_name,
            self.shared_access_key,
            validity_seconds,
        )
        return SharedAccessSignatureCredential(signature)


def build_resource(fully_qualified_namespace: str, event_hub_name: str) -> str:
    """The resource a signature is scoped to: ``amqps://{namespace}/{event_hub}`` lowercased."""
    return f"amqps://{fully_qualified_namespace}/{event_hub_name}".lower()
