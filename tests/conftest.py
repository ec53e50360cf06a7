"""
pytest configuration for the client library tests.

Adds src directory to Python path for imports and isolates environment
variables that the configuration loader reads.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

_CONFIG_ENV_VARS = (
    "EVENTHUB_CONNECTION_STRING",
    "EVENTHUB_NAMESPACE",
    "EVENTHUB_NAME",
    "EVENTHUB_CONSUMER_GROUP",
    "AZURE_KEYVAULT_URL",
    "AZURE_STORAGE_ACCOUNT_NAME",
    "AZURE_STORAGE_ACCOUNT_KEY",
    "LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove configuration environment variables for the duration of a test."""
    for name in _CONFIG_ENV_VARS:
        # setenv first so teardown restores the original state even if a
        # test loads a .env file that sets the variable
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch
