"""
Account shared access signatures (SAS).

``AccountSasBuilder`` collects the permissions, services, resource types and
validity of an account SAS and signs them with a ``StorageSharedKeyCredential``
into ``SasQueryParameters``, whose ``str()`` is the query string to append to
a storage URL.
"""

import ipaddress
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum, Flag
from urllib.parse import parse_qsl, quote

from clients.storage.credentials import StorageSharedKeyCredential

logger = logging.getLogger(__name__)

DEFAULT_SAS_VERSION = "2019-02-02"

SAS_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Formats the service accepts for st/se, tried in order when parsing
_SAS_TIME_FORMATS = (
    SAS_TIME_FORMAT,
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%dT%H:%MZ",
    "%Y-%m-%d",
)


def format_sas_time(value: datetime | None) -> str:
    """Format a time for a SAS; naive datetimes are taken as UTC."""
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(SAS_TIME_FORMAT)


def parse_sas_time(value: str) -> datetime:
    for time_format in _SAS_TIME_FORMATS:
        try:
            return datetime.strptime(value, time_format).replace(tzinfo=UTC)
        except ValueError:
            continue
    raise ValueError(f"'{value}' is not a valid SAS time.")


# =============================================================================
# Flags
# =============================================================================


class _SasFlag(Flag):
    """A flag set with a one-letter code per member, written in a fixed order."""

    @classmethod
    def _codes(cls) -> tuple[tuple["_SasFlag", str], ...]:
        raise NotImplementedError

    def to_sas_string(self) -> str:
        return "".join(code for member, code in self._codes() if member in self)

    @classmethod
    def parse(cls, value: str) -> "_SasFlag":
        """
        Parse a SAS code string such as ``"rwl"``; letters may come in any order.

        Raises:
            ValueError: on a letter that is not a code of this flag set
        """
        by_code = {code: member for member, code in cls._codes()}
        result = cls(0)
        for char in value or "":
            if char not in by_code:
                raise ValueError(f"Invalid {cls.__name__} code {char!r} in {value!r}.")
            result |= by_code[char]
        return result

    def __str__(self) -> str:
        return self.to_sas_string()


class AccountSasPermissions(_SasFlag):
    READ = 1
    WRITE = 2
    DELETE = 4
    LIST = 8
    ADD = 16
    CREATE = 32
    UPDATE = 64
    PROCESS = 128
    ALL = READ | WRITE | DELETE | LIST | ADD | CREATE | UPDATE | PROCESS

    @classmethod
    def _codes(cls):
        return (
            (cls.READ, "r"),
            (cls.WRITE, "w"),
            (cls.DELETE, "d"),
            (cls.LIST, "l"),
            (cls.ADD, "a"),
            (cls.CREATE, "c"),
            (cls.UPDATE, "u"),
            (cls.PROCESS, "p"),
        )


class AccountSasResourceTypes(_SasFlag):
    SERVICE = 1
    CONTAINER = 2
    OBJECT = 4
    ALL = SERVICE | CONTAINER | OBJECT

    @classmethod
    def _codes(cls):
        return ((cls.SERVICE, "s"), (cls.CONTAINER, "c"), (cls.OBJECT, "o"))


class AccountSasServices(_SasFlag):
    BLOBS = 1
    QUEUES = 2
    FILES = 4
    ALL = BLOBS | QUEUES | FILES

    @classmethod
    def _codes(cls):
        return ((cls.BLOBS, "b"), (cls.QUEUES, "q"), (cls.FILES, "f"))


class SasProtocol(Enum):
    """Protocols a SAS may be used over; NONE leaves the choice to the service."""

    NONE = ""
    HTTPS_AND_HTTP = "https,http"
    HTTPS = "https"

    @classmethod
    def parse(cls, value: str | None) -> "SasProtocol":
        normalized = (value or "").replace(" ", "").lower()
        if normalized == "http,https":
            normalized = cls.HTTPS_AND_HTTP.value
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Invalid SAS protocol {value!r}.") from None

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SasIPRange:
    """An IP address, or an inclusive range of addresses, a SAS may be used from."""

    start: str | None = None
    end: str | None = None

    def __post_init__(self):
        for value in (self.start, self.end):
            if value:
                ipaddress.ip_address(value)
        if self.end and not self.start:
            raise ValueError("An IP range with an end must have a start.")

    @classmethod
    def parse(cls, value: str | None) -> "SasIPRange":
        """Parse ``"a"`` or ``"a-b"``; an empty value is the empty range."""
        if not value:
            return cls()
        start, _, end = value.partition("-")
        return cls(start.strip(), end.strip() or None)

    def __str__(self) -> str:
        if not self.start:
            return ""
        if not self.end:
            return self.start
        return f"{self.start}-{self.end}"


# =============================================================================
# Query parameters
# =============================================================================


class SasQueryParameters:
    """
    The signed query parameters of a SAS.

    ``str()`` writes the non-empty parameters, URL-encoded, in the order
    ``sv ss srt spr st se sip si sr sp sig rscc rscd rsce rscl rsct``.
    """

    DEFAULT_SAS_VERSION = DEFAULT_SAS_VERSION

    def __init__(
        self,
        version: str | None = None,
        services: AccountSasServices | None = None,
        resource_types: AccountSasResourceTypes | None = None,
        protocol: SasProtocol = SasProtocol.NONE,
        starts_on: datetime | None = None,
        expires_on: datetime | None = None,
        ip_range: SasIPRange | None = None,
        identifier: str | None = None,
        resource: str | None = None,
        permissions: str | None = None,
        signature: str | None = None,
        cache_control: str | None = None,
        content_disposition: str | None = None,
        content_encoding: str | None = None,
        content_language: str | None = None,
        content_type: str | None = None,
    ):
        self.version = version
        self.services = services
        self.resource_types = resource_types
        self.protocol = protocol
        self.starts_on = starts_on
        self.expires_on = expires_on
        self.ip_range = ip_range or SasIPRange()
        self.identifier = identifier
        self.resource = resource
        self.permissions = permissions
        self.signature = signature
        self.cache_control = cache_control
        self.content_disposition = content_disposition
        self.content_encoding = content_encoding
        self.content_language = content_language
        self.content_type = content_type

    @classmethod
    def empty(cls) -> "SasQueryParameters":
        return cls()

    @classmethod
    def parse(cls, query: str) -> "SasQueryParameters":
        """
        Read SAS parameters from a query string (with or without the leading ``?``).

        Parameter names are case-insensitive; unknown parameters are ignored.

        Raises:
            ValueError: if a SAS parameter has an invalid value
        """
        values = {
            key.lower(): value
            for key, value in parse_qsl((query or "").lstrip("?"), keep_blank_values=True)
        }
        return cls(
            version=values.get("sv") or None,
            services=AccountSasServices.parse(values["ss"]) if values.get("ss") else None,
            resource_types=AccountSasResourceTypes.parse(values["srt"]) if values.get("srt") else None,
            protocol=SasProtocol.parse(values.get("spr")),
            starts_on=parse_sas_time(values["st"]) if values.get("st") else None,
            expires_on=parse_sas_time(values["se"]) if values.get("se") else None,
            ip_range=SasIPRange.parse(values.get("sip")),
            identifier=values.get("si") or None,
            resource=values.get("sr") or None,
            permissions=values.get("sp") or None,
            signature=values.get("sig") or None,
            cache_control=values.get("rscc") or None,
            content_disposition=values.get("rscd") or None,
            content_encoding=values.get("rsce") or None,
            content_language=values.get("rscl") or None,
            content_type=values.get("rsct") or None,
        )

    def _items(self) -> list[tuple[str, str]]:
        return [
            ("sv", self.version or ""),
            ("ss", self.services.to_sas_string() if self.services is not None else ""),
            ("srt", self.resource_types.to_sas_string() if self.resource_types is not None else ""),
            ("spr", self.protocol.value),
            ("st", format_sas_time(self.starts_on)),
            ("se", format_sas_time(self.expires_on)),
            ("sip", str(self.ip_range)),
            ("si", self.identifier or ""),
            ("sr", self.resource or ""),
            ("sp", self.permissions or ""),
            ("sig", self.signature or ""),
            ("rscc", self.cache_control or ""),
            ("rscd", self.content_disposition or ""),
            ("rsce", self.content_encoding or ""),
            ("rscl", self.content_language or ""),
            ("rsct", self.content_type or ""),
        ]

    def __str__(self) -> str:
        return "&".join(f"{key}={quote(value, safe='')}" for key, value in self._items() if value)

    def __repr__(self) -> str:
        return (
            f"SasQueryParameters(version={self.version!r}, permissions={self.permissions!r}, "
            f"expires_on={self.expires_on!r})"
        )


# =============================================================================
# Builder
# =============================================================================


class AccountSasBuilder:
    """
    Builds an account SAS.

    Expiry, permissions, services and resource types are required to sign.

    Example:
        >>> builder = AccountSasBuilder(
        ...     expires_on=datetime.now(UTC) + timedelta(hours=1),
        ...     services=AccountSasServices.BLOBS,
        ...     resource_types=AccountSasResourceTypes.CONTAINER | AccountSasResourceTypes.OBJECT,
        ... )
        >>> builder.set_permissions(AccountSasPermissions.READ | AccountSasPermissions.LIST)
        >>> query = str(builder.to_sas_query_parameters(credential))
    """

    def __init__(
        self,
        *,
        expires_on: datetime | None = None,
        starts_on: datetime | None = None,
        services: AccountSasServices | None = None,
        resource_types: AccountSasResourceTypes | None = None,
        ip_range: SasIPRange | None = None,
        protocol: SasProtocol = SasProtocol.NONE,
        version: str = DEFAULT_SAS_VERSION,
    ):
        self.expires_on = expires_on
        self.starts_on = starts_on
        self.services = services
        self.resource_types = resource_types
        self.ip_range = ip_range or SasIPRange()
        self.protocol = protocol
        self.version = version
        self._permissions: str | None = None

    @property
    def permissions(self) -> str | None:
        return self._permissions

    def set_permissions(self, permissions: AccountSasPermissions | str) -> None:
        """
        Set the permissions from flags or a raw permission string.

        A raw string is validated and rewritten in canonical ``rwdlacup`` order.
        """
        if permissions is None:
            raise ValueError("permissions must be provided.")
        if isinstance(permissions, str):
            permissions = AccountSasPermissions.parse(permissions)
        self._permissions = permissions.to_sas_string()

    def string_to_sign(self, account_name: str) -> str:
        return "\n".join(
            [
                account_name,
                self._permissions or "",
                self.services.to_sas_string() if self.services is not None else "",
                self.resource_types.to_sas_string() if self.resource_types is not None else "",
                format_sas_time(self.starts_on),
                format_sas_time(self.expires_on),
                str(self.ip_range),
                self.protocol.value,
                self.version or DEFAULT_SAS_VERSION,
                "",
            ]
        )

    def to_sas_query_parameters(self, credential: StorageSharedKeyCredential) -> SasQueryParameters:
        """
        Sign the SAS with the account key.

        Raises:
            ValueError: if the credential, expiry, permissions, services or
                resource types are missing
        """
        if credential is None:
            raise ValueError("credential must be provided.")
        missing = [
            name
            for name, value in (
                ("expires_on", self.expires_on),
                ("permissions", self._permissions),
                ("services", self.services),
                ("resource_types", self.resource_types),
            )
            if not value
        ]
        if missing:
            raise ValueError(
                f"Account SAS is missing required values: {', '.join(missing)}."
            )

        version = self.version or DEFAULT_SAS_VERSION
        signature = credential.compute_hmac_sha256(self.string_to_sign(credential.account_name))

        logger.debug(
            "Account SAS signed",
            extra={"account_name": credential.account_name},
        )
        return SasQueryParameters(
            version=version,
            services=self.services,
            resource_types=self.resource_types,
            protocol=self.protocol,
            starts_on=self.starts_on,
            expires_on=self.expires_on,
            ip_range=self.ip_range,
            permissions=self._permissions,
            signature=signature,
        )

    def __repr__(self) -> str:
        return (
            f"AccountSasBuilder(permissions={self._permissions!r}, services={self.services}, "
            f"resource_types={self.resource_types}, expires_on={self.expires_on!r})"
        )


__all__ = [
    "DEFAULT_SAS_VERSION",
    "AccountSasPermissions",
    "AccountSasResourceTypes",
    "AccountSasServices",
    "SasProtocol",
    "SasIPRange",
    "SasQueryParameters",
    "AccountSasBuilder",
    "format_sas_time",
    "parse_sas_time",
]
