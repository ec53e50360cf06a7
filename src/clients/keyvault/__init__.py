"""
Vault clients for secrets, keys and certificates.

All clients share ``VaultHttpClient``: bearer authentication with an Azure
credential, retry of throttled and failed requests, and error mapping to
``HttpResponseError`` subclasses.
"""

from clients.keyvault._http import DEFAULT_API_VERSION, VaultHttpClient
from clients.keyvault._polling import (
    DeleteKeyOperation,
    DeleteResourceOperation,
    DeleteSecretOperation,
    KeyVaultOperation,
    RecoverDeletedKeyOperation,
    RecoverDeletedSecretOperation,
)
from clients.keyvault.certificates import (
    CertificateClient,
    CertificateContentType,
    CertificateKeyCurveName,
    CertificateKeyType,
    CertificateKeyUsage,
    CertificateOperation,
    CertificateOperationPoller,
    CertificatePolicy,
    CertificatePolicyAction,
    LifetimeAction,
    SubjectAlternativeNames,
)
from clients.keyvault.crypto import (
    CryptographyClient,
    DecryptResult,
    EncryptionAlgorithm,
    EncryptResult,
    SignatureAlgorithm,
    SignResult,
    VerifyResult,
)
from clients.keyvault.errors import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
    ServiceThrottledError,
)
from clients.keyvault.identifier import KeyVaultResourceId
from clients.keyvault.keys import (
    CreateEcKeyOptions,
    CreateKeyOptions,
    CreateRsaKeyOptions,
    DeletedKey,
    JsonWebKey,
    KeyClient,
    KeyCurveName,
    KeyOperation,
    KeyProperties,
    KeyType,
    KeyVaultKey,
)
from clients.keyvault.secrets import DeletedSecret, KeyVaultSecret, SecretClient, SecretProperties

__all__ = [
    # Plumbing
    "DEFAULT_API_VERSION",
    "VaultHttpClient",
    "KeyVaultResourceId",
    "KeyVaultOperation",
    "DeleteResourceOperation",
    "DeleteSecretOperation",
    "DeleteKeyOperation",
    "RecoverDeletedSecretOperation",
    "RecoverDeletedKeyOperation",
    # Errors
    "HttpResponseError",
    "ResourceNotFoundError",
    "ResourceExistsError",
    "ClientAuthenticationError",
    "ServiceThrottledError",
    # Secrets
    "SecretClient",
    "SecretProperties",
    "KeyVaultSecret",
    "DeletedSecret",
    # Keys
    "KeyClient",
    "KeyType",
    "KeyCurveName",
    "KeyOperation",
    "JsonWebKey",
    "KeyProperties",
    "KeyVaultKey",
    "DeletedKey",
    "CreateKeyOptions",
    "CreateRsaKeyOptions",
    "CreateEcKeyOptions",
    # Cryptography
    "CryptographyClient",
    "EncryptionAlgorithm",
    "SignatureAlgorithm",
    "EncryptResult",
    "DecryptResult",
    "SignResult",
    "VerifyResult",
    # Certificates
    "CertificateClient",
    "CertificatePolicy",
    "CertificateOperation",
    "CertificateOperationPoller",
    "CertificateKeyType",
    "CertificateKeyCurveName",
    "CertificateContentType",
    "CertificateKeyUsage",
    "CertificatePolicyAction",
    "LifetimeAction",
    "SubjectAlternativeNames",
]
