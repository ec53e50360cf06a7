"""Shared JSON serialization utilities for type-safe JSON encoding."""

import base64
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel


def _serialize_known_type(obj: Any) -> tuple[bool, Any]:
    """Try to serialize by known type. Returns (handled, result)."""
    if isinstance(obj, (datetime, date)):
        return True, obj.isoformat()
    if isinstance(obj, Decimal):
        return True, float(obj)
    if isinstance(obj, Path):
        return True, str(obj)
    if isinstance(obj, Enum):
        return True, obj.value
    if isinstance(obj, (bytes, bytearray)):
        return True, base64.b64encode(bytes(obj)).decode("ascii")
    if isinstance(obj, BaseModel):
        return True, obj.model_dump(mode="json", by_alias=True, exclude_none=True)
    return False, None


def json_serializer(obj: Any) -> Any:
    """
    Type-safe JSON serializer for log records and event payloads.

    - datetime/date → ISO 8601 string
    - Decimal → float
    - Path → string
    - Enum → value
    - bytes → base64 string
    - pydantic models → JSON-mode dict
    - Everything else → string (fallback)

    Args:
        obj: Object to serialize

    Returns:
        JSON-serializable representation with proper types
    """
    handled, result = _serialize_known_type(obj)
    if handled:
        return result
    if hasattr(obj, "__dict__"):
        return obj.__dict__
    return str(obj)


__all__ = ["json_serializer"]
