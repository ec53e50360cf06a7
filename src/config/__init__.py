"""Configuration loading for the service clients.

Configuration is read from ``config/config.yaml`` (optional), a ``.env`` file
and environment variables.

Usage Examples
--------------

    >>> from config import get_config
    >>> config = get_config()
    >>> config.eventhub.consumer_group
    '$Default'

Configuration Priority
---------------------

1. Explicit overrides passed to load_config()
2. Environment variables (EVENTHUB_CONNECTION_STRING, AZURE_KEYVAULT_URL, ...)
3. YAML configuration file
4. Dataclass defaults
"""

from config.config import (
    ClientConfig,
    EventHubSettings,
    KeyVaultSettings,
    LoggingSettings,
    StorageSettings,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    "load_config",
    "get_config",
    "set_config",
    "reset_config",
    "ClientConfig",
    "EventHubSettings",
    "KeyVaultSettings",
    "StorageSettings",
    "LoggingSettings",
]
