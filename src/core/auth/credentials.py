"""
Azure credential construction for the service clients.

Supported Authentication Methods:
    - Service Principal (Secret): AZURE_CLIENT_ID / AZURE_CLIENT_SECRET /
      AZURE_TENANT_ID are all set
    - Default Azure Credential: azure-identity's credential chain
      (managed identity, environment, Azure CLI, VS Code, ...)

The returned credentials are the asynchronous azure-identity flavour and
must be closed by the caller (``await credential.close()``).

Example:
    >>> credential = get_default_credential()
    >>> client = SecretClient(vault_url, credential)
"""

import logging
import os

from azure.identity.aio import ClientSecretCredential, DefaultAzureCredential

logger = logging.getLogger(__name__)

# Azure resource scopes
VAULT_SCOPE = "https://vault.azure.net/.default"
EVENTHUB_SCOPE = "https://eventhubs.azure.net/.default"
STORAGE_SCOPE = "https://storage.azure.com/.default"


class AzureAuthError(Exception):
    """
    Raised when an Azure credential cannot be built.

    Carries an actionable message naming the missing configuration.
    """


def has_spn_credentials() -> bool:
    """True when all service principal environment variables are set."""
    return all(
        os.getenv(name)
        for name in ("AZURE_CLIENT_ID", "AZURE_CLIENT_SECRET", "AZURE_TENANT_ID")
    )


def get_default_credential(
    client_id: str | None = None,
    client_secret: str | None = None,
    tenant_id: str | None = None,
):
    """
    Build an async Azure credential.

    Explicit service principal arguments win over the environment. When no
    service principal is configured, ``DefaultAzureCredential`` is used.

    Raises:
        AzureAuthError: If service principal settings are only partially given
    """
    client_id = client_id or os.getenv("AZURE_CLIENT_ID")
    client_secret = client_secret or os.getenv("AZURE_CLIENT_SECRET")
    tenant_id = tenant_id or os.getenv("AZURE_TENANT_ID")

    if client_secret and not (client_id and tenant_id):
        raise AzureAuthError(
            "Service principal secret provided without client ID and tenant ID.\n"
            "Set AZURE_CLIENT_ID and AZURE_TENANT_ID, or unset AZURE_CLIENT_SECRET "
            "to use DefaultAzureCredential."
        )

    if client_id and client_secret and tenant_id:
        logger.debug(
            "Using service principal credential",
            extra={"auth_mode": "spn_secret", "client_id": client_id[:8] + "..."},
        )
        return ClientSecretCredential(
            tenant_id=tenant_id,
            client_id=client_id,
            client_secret=client_secret,
        )

    logger.debug("Using DefaultAzureCredential", extra={"auth_mode": "default"})
    return DefaultAzureCredential()


__all__ = [
    "AzureAuthError",
    "get_default_credential",
    "has_spn_credentials",
    "VAULT_SCOPE",
    "EVENTHUB_SCOPE",
    "STORAGE_SCOPE",
]
