"""Log formatters for JSON and console output."""

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any

from core.logging.context import get_log_context
from core.utils.json_serializers import json_serializer

# Secrets that may end up in messages: SAS signatures, connection string keys
# and bearer tokens
_SECRET_PATTERNS = (
    (re.compile(r"([?&]|\b)(sig|secret|token|password)=[^&\s;]*", re.IGNORECASE), r"\1\2=[REDACTED]"),
    (re.compile(r"(SharedAccessKey|SharedAccessSignature)=[^;\s]*", re.IGNORECASE), r"\1=[REDACTED]"),
    (re.compile(r"(Bearer\s+)[A-Za-z0-9\-_.~+/]+=*", re.IGNORECASE), r"\1[REDACTED]"),
)


def sanitize_secrets(text: str) -> str:
    """Redact SAS signatures, shared access keys and bearer tokens from text."""
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    Sanitizes messages and URL fields to remove credentials before logging.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        # Correlation and tracing
        "trace_id",
        "duration_ms",
        # HTTP
        "http_status",
        "http_method",
        "http_url",
        "request_id",
        # Errors
        "error_category",
        "error_message",
        "error_code",
        "error_type",
        "failure_reason",
        "is_transient",
        # Resilience
        "attempt",
        "max_attempts",
        "total_attempts",
        "delay_seconds",
        "delay_source",
        "server_retry_after",
        # Event Hubs
        "namespace",
        "eventhub",
        "entity",
        "consumer_group",
        "partition_id",
        "partition_key",
        "event_count",
        "batch_size",
        "owner_level",
        # Vault and storage
        "vault_url",
        "item_name",
        "item_version",
        "account_name",
        # Auth
        "auth_mode",
        "scope",
        "expires_on",
    ]

    NUMERIC_FIELDS = {
        "duration_ms": float,
        "delay_seconds": float,
        "server_retry_after": float,
        "http_status": int,
        "attempt": int,
        "max_attempts": int,
        "total_attempts": int,
        "event_count": int,
        "batch_size": int,
        "owner_level": int,
        "expires_on": int,
    }

    # Fields that contain URLs and should be sanitized
    URL_FIELDS = ["http_url", "vault_url"]

    def _sanitize_value(self, key: str, value: Any) -> Any:
        if key in self.URL_FIELDS and isinstance(value, str):
            return sanitize_secrets(value)
        return value

    def _ensure_type(self, field: str, value: Any) -> Any:
        """
        Ensure numeric fields keep their numeric type.

        Returns None when the value cannot be converted.
        """
        if field not in self.NUMERIC_FIELDS or value is None:
            return value

        expected_type = self.NUMERIC_FIELDS[field]
        try:
            return expected_type(value)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _base_log_entry(record: logging.LogRecord) -> dict[str, Any]:
        return {
            "ts": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": sanitize_secrets(record.getMessage()),
        }

    @staticmethod
    def _inject_context(log_entry: dict[str, Any], log_context: dict[str, Any]) -> None:
        for field, value in log_context.items():
            if value:
                log_entry[field] = value

    @staticmethod
    def _should_include_source_location(record: logging.LogRecord) -> bool:
        return record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL)

    def _inject_extra_fields(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                typed_value = self._ensure_type(field, value)
                log_entry[field] = self._sanitize_value(field, typed_value)

    def _inject_exception(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        if not record.exc_info:
            return

        exc_type, exc_value, _ = record.exc_info
        log_entry["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": sanitize_secrets(str(exc_value)) if exc_value else None,
            "stacktrace": self.formatException(record.exc_info),
        }

    def format(self, record: logging.LogRecord) -> str:
        log_entry = self._base_log_entry(record)

        self._inject_context(log_entry, get_log_context())

        if self._should_include_source_location(record):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        # Type validation happens before sanitization
        self._inject_extra_fields(log_entry, record)
        self._inject_exception(log_entry, record)

        return json.dumps(log_entry, default=json_serializer, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter with color-coded log levels.

    Colors are auto-disabled when output is not a TTY (pipes, files).
    """

    # ANSI color codes
    COLORS = {
        logging.DEBUG: "\033[36m",  # Cyan
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colors = sys.stdout.isatty()

    def _format_level_name(self, record: logging.LogRecord) -> str:
        level_name = record.levelname
        if not self._use_colors:
            return level_name

        color = self.COLORS.get(record.levelno, "")
        if not color:
            return level_name

        return f"{color}{level_name}{self.RESET}"

    @staticmethod
    def _build_prefix(level_name: str, record: logging.LogRecord, log_context: dict[str, Any]) -> str:
        parts = [
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            level_name,
            record.name,
        ]

        if log_context["client"]:
            parts.append(f"[{log_context['client']}]")
        if log_context["operation"]:
            parts.append(f"[{log_context['operation']}]")

        return " - ".join(parts)

    @staticmethod
    def _build_tags(record: logging.LogRecord, log_context: dict[str, Any]) -> list[str]:
        trace_id = getattr(record, "trace_id", None) or log_context.get("trace_id")
        partition_id = getattr(record, "partition_id", None)

        tags = []
        if trace_id:
            tags.append(f"[{trace_id[:8]}]")
        if partition_id is not None:
            tags.append(f"[p:{partition_id}]")
        return tags

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output with optional color coding."""
        log_context = get_log_context()

        level_name = self._format_level_name(record)
        prefix = self._build_prefix(level_name, record, log_context)
        tags = self._build_tags(record, log_context)
        message = sanitize_secrets(record.getMessage())

        if tags:
            return f"{prefix} - {' '.join(tags)} {message}"

        return f"{prefix} - {message}"
