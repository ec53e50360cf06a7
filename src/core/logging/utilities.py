"""Logging utility functions."""

import logging
from typing import Any

from core.logging.formatters import sanitize_secrets

# Reserved LogRecord attribute names that cannot be used in extra dict
_RESERVED_LOG_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "asctime",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "message",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


def log_with_context(
    logger: logging.Logger,
    level: int,
    msg: str,
    **kwargs: Any,
) -> None:
    """
    Log with structured context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Additional context fields (partition_id, duration_ms, etc.)
                  Note: exc_info=True is supported and handled specially.

    Example:
        log_with_context(
            logger, logging.INFO, "Batch sent",
            eventhub=hub_name,
            event_count=len(batch),
        )
    """
    exc_info = kwargs.pop("exc_info", None)

    # Filter out reserved keys to prevent LogRecord conflicts
    extra = {k: v for k, v in kwargs.items() if k not in _RESERVED_LOG_KEYS}

    logger.log(level, msg, exc_info=exc_info, extra=extra)


def log_exception(
    logger: logging.Logger,
    exc: BaseException,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log exception with context and optional traceback.

    Extracts error_category from ClientError subclasses and redacts
    credentials from the error message.

    Example:
        try:
            await client.get_secret(name)
        except Exception as e:
            log_exception(logger, e, "Secret lookup failed", item_name=name)
    """
    error_category = kwargs.get("error_category")
    if error_category is None and hasattr(exc, "category"):
        cat = exc.category
        error_category = cat.value if hasattr(cat, "value") else str(cat)
        kwargs["error_category"] = error_category

    error_msg = sanitize_secrets(str(exc))
    if len(error_msg) > 500:
        error_msg = error_msg[:500] + "..."
    kwargs["error_message"] = error_msg
    kwargs["error_type"] = type(exc).__name__

    extra = {k: v for k, v in kwargs.items() if k not in _RESERVED_LOG_KEYS}
    if include_traceback:
        logger.log(level, msg, exc_info=exc, extra=extra)
    else:
        logger.log(level, msg, extra=extra)


def mask_connection_string(conn_str: str) -> str:
    """
    Mask the shared access key (or signature) in a connection string for logging.

    Example:
        >>> mask_connection_string("Endpoint=sb://ns/;SharedAccessKeyName=k;SharedAccessKey=abc")
        'Endpoint=sb://ns/;SharedAccessKeyName=k;SharedAccessKey=***'
    """
    if not conn_str:
        return conn_str

    parts = []
    for token in conn_str.split(";"):
        key, sep, _ = token.partition("=")
        if sep and key.strip().lower() in ("sharedaccesskey", "sharedaccesssignature"):
            parts.append(f"{key}=***")
        else:
            parts.append(token)
    return ";".join(parts)
