"""Encoding and time helpers for the vault wire format."""

import base64
from datetime import UTC, datetime


def base64url_encode(data: bytes) -> str:
    """Encode bytes as unpadded base64url, the form the vault uses for binary fields."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def base64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def to_unix_time(value: datetime | None) -> int | None:
    """Seconds since the epoch; naive datetimes are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp())


def from_unix_time(value: int | float | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=UTC)


def require_name(value: str | None, name: str) -> str:
    if value is None or not str(value).strip():
        raise ValueError(f"{name} must be provided and not blank.")
    return value


__all__ = [
    "base64url_encode",
    "base64url_decode",
    "to_unix_time",
    "from_unix_time",
    "require_name",
]
