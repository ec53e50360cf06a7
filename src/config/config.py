"""Client configuration from YAML file, .env and environment variables.

Loads from config/config.yaml with one section per service:
- eventhub: connection, consumer group, retry and read settings
- keyvault: vault URL, API version and HTTP retry settings
- storage: account credentials for SAS generation
- logging: level, format and optional log file

Environment variables ARE supported using ${VAR_NAME} and ${VAR_NAME:-default}
syntax in YAML files. Selected variables also override YAML values directly.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _as_bool(value: Any) -> bool:
    # bool('false') would be True
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# Default config file: config/config.yaml in src/ directory
DEFAULT_CONFIG_FILE = Path(__file__).parent / "config.yaml"

# Environment variables that override YAML values: (section, key) per variable
ENV_OVERRIDES: Dict[str, tuple] = {
    "EVENTHUB_CONNECTION_STRING": ("eventhub", "connection_string"),
    "EVENTHUB_NAMESPACE": ("eventhub", "fully_qualified_namespace"),
    "EVENTHUB_NAME": ("eventhub", "eventhub_name"),
    "EVENTHUB_CONSUMER_GROUP": ("eventhub", "consumer_group"),
    "AZURE_KEYVAULT_URL": ("keyvault", "vault_url"),
    "AZURE_STORAGE_ACCOUNT_NAME": ("storage", "account_name"),
    "AZURE_STORAGE_ACCOUNT_KEY": ("storage", "account_key"),
    "LOG_LEVEL": ("logging", "level"),
}


@dataclass
class EventHubSettings:
    """Event Hubs connection, retry and read settings.

    Durations are in seconds.
    """

    connection_string: str = ""
    fully_qualified_namespace: str = ""
    eventhub_name: str = ""
    consumer_group: str = "$Default"
    transport_type: str = "amqp_tcp"

    retry_mode: str = "exponential"
    maximum_retries: int = 3
    retry_delay_seconds: float = 0.8
    maximum_retry_delay_seconds: float = 60.0
    try_timeout_seconds: float = 60.0

    maximum_wait_time_seconds: Optional[float] = None
    cache_event_count: int = 100
    prefetch_count: int = 300
    track_last_enqueued_event_properties: bool = True

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.consumer_group = str(self.consumer_group)
        self.maximum_retries = int(self.maximum_retries)
        self.retry_delay_seconds = float(self.retry_delay_seconds)
        self.maximum_retry_delay_seconds = float(self.maximum_retry_delay_seconds)
        self.try_timeout_seconds = float(self.try_timeout_seconds)
        if self.maximum_wait_time_seconds in ("", None):
            self.maximum_wait_time_seconds = None
        else:
            self.maximum_wait_time_seconds = float(self.maximum_wait_time_seconds)
        self.cache_event_count = int(self.cache_event_count)
        self.prefetch_count = int(self.prefetch_count)
        self.track_last_enqueued_event_properties = _as_bool(
            self.track_last_enqueued_event_properties
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.connection_string or self.fully_qualified_namespace)

    def to_retry_options(self):
        """Build ``EventHubsRetryOptions`` from these settings."""
        from clients.eventhubs.retry import EventHubsRetryMode, EventHubsRetryOptions

        return EventHubsRetryOptions(
            mode=EventHubsRetryMode(self.retry_mode.lower()),
            maximum_retries=self.maximum_retries,
            delay=self.retry_delay_seconds,
            maximum_delay=self.maximum_retry_delay_seconds,
            try_timeout=self.try_timeout_seconds,
        )

    def to_connection_options(self):
        """Build ``EventHubConnectionOptions`` from these settings."""
        from clients.eventhubs.options import EventHubConnectionOptions, TransportType

        return EventHubConnectionOptions(
            transport_type=TransportType(self.transport_type.lower()),
        )

    def to_read_options(self):
        """Build ``ReadEventOptions`` from these settings."""
        from clients.eventhubs.options import ReadEventOptions

        return ReadEventOptions(
            maximum_wait_time=self.maximum_wait_time_seconds,
            cache_event_count=self.cache_event_count,
            prefetch_count=self.prefetch_count,
            track_last_enqueued_event_properties=self.track_last_enqueued_event_properties,
        )


@dataclass
class KeyVaultSettings:
    """Key Vault endpoint and HTTP retry settings."""

    vault_url: str = ""
    api_version: str = "7.1"
    request_timeout_seconds: float = 30.0
    max_attempts: int = 4
    base_delay: float = 0.8
    max_delay: float = 60.0

    def __post_init__(self):
        self.api_version = str(self.api_version)
        self.request_timeout_seconds = float(self.request_timeout_seconds)
        self.max_attempts = int(self.max_attempts)
        self.base_delay = float(self.base_delay)
        self.max_delay = float(self.max_delay)

    def to_retry_config(self):
        """Build the ``RetryConfig`` used by the vault HTTP client."""
        from core.resilience.retry import RetryConfig

        return RetryConfig(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
        )


@dataclass
class StorageSettings:
    """Storage account settings for SAS generation."""

    account_name: str = ""
    account_key: str = ""
    sas_version: str = "2019-02-02"

    def __post_init__(self):
        self.sas_version = str(self.sas_version)


@dataclass
class LoggingSettings:
    level: str = "INFO"
    json_format: bool = False
    log_file: Optional[str] = None

    def __post_init__(self):
        self.level = str(self.level).upper()
        self.json_format = _as_bool(self.json_format)
        self.log_file = self.log_file or None


@dataclass
class ClientConfig:
    """Configuration for the service clients.

    Configuration structure:
        eventhub: {...}    # EventHubSettings fields
        keyvault: {...}    # KeyVaultSettings fields
        storage: {...}     # StorageSettings fields
        logging: {...}     # LoggingSettings fields
    """

    eventhub: EventHubSettings = field(default_factory=EventHubSettings)
    keyvault: KeyVaultSettings = field(default_factory=KeyVaultSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def validate(self) -> None:
        """Validate configuration for correctness and constraints.

        Raises:
            ValueError: listing every problem found
        """
        problems: List[str] = []

        eh = self.eventhub
        if eh.fully_qualified_namespace and not eh.eventhub_name:
            problems.append("eventhub.eventhub_name is required with fully_qualified_namespace")
        if not eh.consumer_group.strip():
            problems.append("eventhub.consumer_group must not be empty")
        if eh.retry_mode.lower() not in ("fixed", "exponential"):
            problems.append(
                f"eventhub.retry_mode must be one of ['fixed', 'exponential'], got '{eh.retry_mode}'"
            )
        if eh.transport_type.lower() not in ("amqp_tcp", "amqp_websockets"):
            problems.append(
                "eventhub.transport_type must be one of ['amqp_tcp', 'amqp_websockets'], "
                f"got '{eh.transport_type}'"
            )
        if not 0 <= eh.maximum_retries <= 100:
            problems.append(
                f"eventhub.maximum_retries must be between 0 and 100, got {eh.maximum_retries}"
            )
        if eh.cache_event_count < 1:
            problems.append(f"eventhub.cache_event_count must be >= 1, got {eh.cache_event_count}")
        if eh.prefetch_count < 0:
            problems.append(f"eventhub.prefetch_count must be >= 0, got {eh.prefetch_count}")
        if eh.maximum_wait_time_seconds is not None and eh.maximum_wait_time_seconds <= 0:
            problems.append(
                f"eventhub.maximum_wait_time_seconds must be > 0, got {eh.maximum_wait_time_seconds}"
            )

        kv = self.keyvault
        if kv.vault_url and not kv.vault_url.startswith("https://"):
            problems.append(f"keyvault.vault_url must be an https URL, got '{kv.vault_url}'")
        if kv.max_attempts < 1:
            problems.append(f"keyvault.max_attempts must be >= 1, got {kv.max_attempts}")

        st = self.storage
        if st.account_key and not st.account_name:
            problems.append("storage.account_name is required with storage.account_key")

        if not isinstance(logging.getLevelName(self.logging.level), int):
            problems.append(f"logging.level is not a valid level: '{self.logging.level}'")

        if problems:
            raise ValueError("Invalid configuration:\n  - " + "\n  - ".join(problems))


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    result = {section: dict(data.get(section) or {}) for section in ("eventhub", "keyvault", "storage", "logging")}
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            result[section][key] = value
    return result


def _section(cls, data: Dict[str, Any], name: str):
    known = set(cls.__dataclass_fields__)
    unknown = sorted(set(data) - known)
    if unknown:
        logger.warning(
            "Ignoring unknown keys in '%s' section: %s",
            name,
            unknown,
        )
    return cls(**{k: v for k, v in data.items() if k in known})


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
    env_file: Optional[Path] = None,
) -> ClientConfig:
    """Load client configuration.

    Merge priority (highest to lowest):
    1. ``overrides``
    2. Environment variables listed in ENV_OVERRIDES (after loading ``.env``)
    3. YAML file (with ${VAR} expansion)
    4. Dataclass defaults

    Raises:
        FileNotFoundError: if an explicit config_path does not exist
        ValueError: if the merged configuration is invalid
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    if config_path is not None and not Path(config_path).exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_FILE
    logger.debug("Loading configuration from file: %s", path)
    yaml_data = _expand_env_vars(load_yaml(path))

    data = _apply_env_overrides(yaml_data)
    if overrides:
        logger.debug("Applying overrides: %s", list(overrides.keys()))
        data = _deep_merge(data, overrides)

    config = ClientConfig(
        eventhub=_section(EventHubSettings, data["eventhub"], "eventhub"),
        keyvault=_section(KeyVaultSettings, data["keyvault"], "keyvault"),
        storage=_section(StorageSettings, data["storage"], "storage"),
        logging=_section(LoggingSettings, data["logging"], "logging"),
    )

    config.validate()
    logger.debug(
        "Configuration loaded",
        extra={
            "eventhub": config.eventhub.eventhub_name or None,
            "vault_url": config.keyvault.vault_url or None,
            "account_name": config.storage.account_name or None,
        },
    )
    return config


_client_config: Optional[ClientConfig] = None


def get_config() -> ClientConfig:
    """Get or load the singleton client config instance."""
    global _client_config
    if _client_config is None:
        _client_config = load_config()
    return _client_config


def set_config(config: ClientConfig) -> None:
    """Set the singleton client config instance (useful for testing)."""
    global _client_config
    _client_config = config


def reset_config() -> None:
    """Reset the singleton config instance (forces reload on next get_config() call)."""
    global _client_config
    _client_config = None
