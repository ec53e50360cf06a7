"""
Structured logging for the service clients.

Components:
    - Context variables (trace_id, client, operation, resource)
    - JSONFormatter / ConsoleFormatter with credential redaction
    - setup_logging(): root handler configuration
    - log_with_context / log_exception helpers
"""

from core.logging.context import clear_log_context, get_log_context, set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter, sanitize_secrets
from core.logging.setup import NOISY_LOGGERS, setup_logging
from core.logging.utilities import log_exception, log_with_context, mask_connection_string

__all__ = [
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    "JSONFormatter",
    "ConsoleFormatter",
    "sanitize_secrets",
    "setup_logging",
    "NOISY_LOGGERS",
    "log_with_context",
    "log_exception",
    "mask_connection_string",
]
