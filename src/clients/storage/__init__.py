"""Storage account credentials, transfer options and account SAS generation."""

from clients.storage.credentials import StorageSharedKeyCredential
from clients.storage.options import StorageTransferOptions
from clients.storage.sas import (
    DEFAULT_SAS_VERSION,
    AccountSasBuilder,
    AccountSasPermissions,
    AccountSasResourceTypes,
    AccountSasServices,
    SasIPRange,
    SasProtocol,
    SasQueryParameters,
)
from clients.storage.sas_expiry import SasUrlInfo, check_sas_url

__all__ = [
    "StorageSharedKeyCredential",
    "StorageTransferOptions",
    "DEFAULT_SAS_VERSION",
    "AccountSasBuilder",
    "AccountSasPermissions",
    "AccountSasResourceTypes",
    "AccountSasServices",
    "SasIPRange",
    "SasProtocol",
    "SasQueryParameters",
    "SasUrlInfo",
    "check_sas_url",
]
