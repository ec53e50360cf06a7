"""
Expiration checking for SAS URLs.

Detects expired or nearly expired shared access signatures before a request
is made with them, so callers can mint a fresh SAS instead of failing with
an authorization error from the service.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from urllib.parse import urlparse

from clients.storage.sas import SasQueryParameters


@dataclass
class SasUrlInfo:
    """Expiration info for a URL that may carry a SAS."""

    url: str
    is_sas: bool
    is_expired: bool
    starts_on: datetime | None = None
    expires_on: datetime | None = None
    version: str | None = None
    permissions: str | None = None
    parse_error: str | None = None

    @property
    def time_remaining(self) -> timedelta | None:
        """Time until expiration. Negative if expired."""
        if not self.expires_on:
            return None
        return self.expires_on - datetime.now(UTC)

    @property
    def seconds_remaining(self) -> int | None:
        remaining = self.time_remaining
        if remaining is None:
            return None
        return int(remaining.total_seconds())

    @property
    def is_not_yet_valid(self) -> bool:
        return bool(self.starts_on and datetime.now(UTC) < self.starts_on)

    def expires_within(self, seconds: int) -> bool:
        """Check if the SAS expires within N seconds (for buffer logic)."""
        if not self.expires_on:
            return False
        return datetime.now(UTC) + timedelta(seconds=seconds) >= self.expires_on


def check_sas_url(url: str) -> SasUrlInfo:
    """
    Parse a URL's SAS parameters and extract expiration info.

    URLs without a ``sig`` parameter pass through as non-SAS. A SAS whose
    parameters cannot be parsed is reported with ``parse_error`` set and is
    not treated as expired.
    """
    if not url:
        return SasUrlInfo(url=url or "", is_sas=False, is_expired=False, parse_error="Empty URL")

    query = urlparse(url).query
    if "sig=" not in query.lower():
        return SasUrlInfo(url=url, is_sas=False, is_expired=False)

    try:
        params = SasQueryParameters.parse(query)
    except ValueError as e:
        return SasUrlInfo(url=url, is_sas=True, is_expired=False, parse_error=f"Parse error: {e}")

    if params.expires_on is None:
        # Expiry may live in a stored access policy (si) on the service side
        return SasUrlInfo(
            url=url,
            is_sas=True,
            is_expired=False,
            starts_on=params.starts_on,
            version=params.version,
            permissions=params.permissions,
            parse_error="Missing se",
        )

    return SasUrlInfo(
        url=url,
        is_sas=True,
        is_expired=datetime.now(UTC) >= params.expires_on,
        starts_on=params.starts_on,
        expires_on=params.expires_on,
        version=params.version,
        permissions=params.permissions,
    )


__all__ = ["SasUrlInfo", "check_sas_url"]
