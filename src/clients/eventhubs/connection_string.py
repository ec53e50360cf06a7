"""Event Hubs connection string parsing.

A connection string is a set of ``Key=Value`` tokens separated by ``;``::

    Endpoint=sb://contoso.servicebus.windows.net/;SharedAccessKeyName=send;
    SharedAccessKey=<key>;EntityPath=telemetry

Keys are matched case-insensitively and surrounding whitespace is ignored.
"""

from dataclasses import dataclass
from urllib.parse import urlparse

_ENDPOINT = "endpoint"
_KEY_NAME = "sharedaccesskeyname"
_KEY = "sharedaccesskey"
_SIGNATURE = "sharedaccesssignature"
_ENTITY_PATH = "entitypath"


@dataclass(frozen=True)
class ConnectionStringProperties:
    """The parsed components of an Event Hubs connection string."""

    endpoint: str
    fully_qualified_namespace: str
    event_hub_name: str | None = None
    shared_access_key_name: str | None = None
    shared_access_key: str | None = None
    shared_access_signature: str | None = None

    def __repr__(self) -> str:
        # Never render key material
        return (
            f"ConnectionStringProperties(endpoint={self.endpoint!r}, "
            f"event_hub_name={self.event_hub_name!r}, "
            f"shared_access_key_name={self.shared_access_key_name!r})"
        )


def _tokenize(conn_str: str) -> dict[str, str]:
    tokens: dict[str, str] = {}
    for part in conn_str.split(";"):
        if not part.strip():
            continue
        key, sep, value = part.partition("=")
        if not sep:
            raise ValueError(f"Connection string token is not a Key=Value pair: '{key.strip()}'")
        tokens[key.strip().lower()] = value.strip()
    return tokens


def parse_connection_string(conn_str: str) -> ConnectionStringProperties:
    """Parse and validate an Event Hubs connection string.

    Raises:
        ValueError: if the string is empty, has no usable ``Endpoint``, or
            carries neither a key name and key nor a shared access signature
    """
    if not conn_str or not conn_str.strip():
        raise ValueError("The connection string must be provided.")

    tokens = _tokenize(conn_str)

    endpoint = tokens.get(_ENDPOINT)
    if not endpoint:
        raise ValueError("The connection string is missing the 'Endpoint' token.")

    parsed = urlparse(endpoint if "://" in endpoint else f"sb://{endpoint}")
    host = parsed.hostname
    if not host:
        raise ValueError(f"The connection string endpoint is not a valid URI: '{endpoint}'")

    key_name = tokens.get(_KEY_NAME) or None
    key = tokens.get(_KEY) or None
    signature = tokens.get(_SIGNATURE) or None

    if signature is None and not (key_name and key):
        raise ValueError(
            "The connection string must contain either a SharedAccessKeyName and "
            "SharedAccessKey, or a SharedAccessSignature."
        )
    if signature is not None and (key_name and key):
        raise ValueError(
            "The connection string may contain a shared key or a shared access "
            "signature, but not both."
        )

    return ConnectionStringProperties(
        endpoint=f"sb://{host}/",
        fully_qualified_namespace=host,
        event_hub_name=tokens.get(_ENTITY_PATH) or None,
        shared_access_key_name=key_name,
        shared_access_key=key,
        shared_access_signature=signature,
    )
