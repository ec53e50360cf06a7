"""Logging setup and configuration."""

import logging
import sys
from pathlib import Path

from core.logging.formatters import ConsoleFormatter, JSONFormatter

DEFAULT_CONSOLE_LEVEL = logging.INFO

# Noisy loggers to suppress
NOISY_LOGGERS = [
    "azure.core.pipeline.policies.http_logging_policy",
    "azure.identity",
    "azure.eventhub",
    "azure.eventhub._pyamqp",
    "uamqp",
    "aiohttp",
    "urllib3",
]


def _parse_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def setup_logging(
    level: int | str = DEFAULT_CONSOLE_LEVEL,
    json_format: bool = False,
    log_file: Path | str | None = None,
    suppress_noisy: bool = True,
) -> logging.Logger:
    """
    Configure root logging with a console handler and an optional file handler.

    Args:
        level: Log level name or number for the console handler
        json_format: Use JSON format on the console (default: human readable)
        log_file: Optional file path; file logs are always JSON at DEBUG level
        suppress_noisy: Quiet down Azure SDK, AMQP and HTTP client loggers

    Returns:
        The ``clients`` package logger
    """
    console_level = _parse_level(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(JSONFormatter() if json_format else ConsoleFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)
    else:
        root_logger.setLevel(console_level)

    if suppress_noisy:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger("clients")
    logger.debug(
        "Logging initialized: file=%s, json=%s",
        log_file,
        json_format,
    )
    return logger
