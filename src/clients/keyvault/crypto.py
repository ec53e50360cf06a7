"""
Remote cryptographic operations with a vault key.

The key never leaves the vault: ``CryptographyClient`` sends the data to the
key's ``encrypt``, ``decrypt``, ``sign`` and ``verify`` endpoints.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import aiohttp

from clients.decorators import set_log_context_for_operation
from clients.keyvault._http import DEFAULT_API_VERSION, VaultHttpClient
from clients.keyvault._shared import base64url_decode, base64url_encode
from clients.keyvault._wire import KeyOperationResult, KeyVerifyResult
from clients.keyvault.identifier import KeyVaultResourceId
from core.resilience.retry import RetryConfig

logger = logging.getLogger(__name__)


class EncryptionAlgorithm(str, Enum):
    RSA_OAEP = "RSA-OAEP"
    RSA_OAEP_256 = "RSA-OAEP-256"
    RSA1_5 = "RSA1_5"


class SignatureAlgorithm(str, Enum):
    PS256 = "PS256"
    PS384 = "PS384"
    PS512 = "PS512"
    RS256 = "RS256"
    RS384 = "RS384"
    RS512 = "RS512"
    ES256 = "ES256"
    ES256K = "ES256K"
    ES384 = "ES384"
    ES512 = "ES512"


@dataclass(frozen=True)
class EncryptResult:
    key_id: str | None
    algorithm: EncryptionAlgorithm
    ciphertext: bytes


@dataclass(frozen=True)
class DecryptResult:
    key_id: str | None
    algorithm: EncryptionAlgorithm
    plaintext: bytes


@dataclass(frozen=True)
class SignResult:
    key_id: str | None
    algorithm: SignatureAlgorithm
    signature: bytes


@dataclass(frozen=True)
class VerifyResult:
    key_id: str | None
    algorithm: SignatureAlgorithm
    is_valid: bool


class CryptographyClient:
    """
    Performs cryptographic operations with one vault key.

    Args:
        key_id: Full key identifier; without a version, the latest version is used
        credential: Azure credential with access to the key
    """

    def __init__(
        self,
        key_id: str,
        credential: Any,
        *,
        api_version: str = DEFAULT_API_VERSION,
        session: aiohttp.ClientSession | None = None,
        timeout_seconds: float = 30.0,
        retry_config: RetryConfig | None = None,
    ):
        self._key_id = KeyVaultResourceId.parse(key_id, "keys")
        self._client = VaultHttpClient(
            self._key_id.vault_url,
            credential,
            api_version=api_version,
            session=session,
            timeout_seconds=timeout_seconds,
            retry_config=retry_config,
        )

    @property
    def key_id(self) -> str:
        return self._key_id.source_id

    def _path(self, operation: str) -> str:
        segments = ["keys", self._key_id.name]
        if self._key_id.version:
            segments.append(self._key_id.version)
        segments.append(operation)
        return "/" + "/".join(segments)

    async def _operate(self, operation: str, algorithm: Enum, **values: bytes) -> Any:
        if algorithm is None:
            raise ValueError("algorithm must be provided.")
        body = {"alg": algorithm.value if isinstance(algorithm, Enum) else str(algorithm)}
        for name, value in values.items():
            if value is None:
                raise ValueError(f"{name} must be provided.")
            body[name] = base64url_encode(value)

        logger.debug(
            "Key operation requested",
            extra={"item_name": self._key_id.name, "operation": operation},
        )
        return await self._client.send("POST", self._path(operation), json=body)

    @set_log_context_for_operation("CryptographyClient", "key_id")
    async def encrypt(self, algorithm: EncryptionAlgorithm, plaintext: bytes) -> EncryptResult:
        data = await self._operate("encrypt", algorithm, value=plaintext)
        result = KeyOperationResult.model_validate(data)
        return EncryptResult(result.kid, algorithm, base64url_decode(result.value))

    @set_log_context_for_operation("CryptographyClient", "key_id")
    async def decrypt(self, algorithm: EncryptionAlgorithm, ciphertext: bytes) -> DecryptResult:
        data = await self._operate("decrypt", algorithm, value=ciphertext)
        result = KeyOperationResult.model_validate(data)
        return DecryptResult(result.kid, algorithm, base64url_decode(result.value))

    @set_log_context_for_operation("CryptographyClient", "key_id")
    async def sign(self, algorithm: SignatureAlgorithm, digest: bytes) -> SignResult:
        """Sign a precomputed digest; the digest must match the algorithm's hash."""
        data = await self._operate("sign", algorithm, value=digest)
        result = KeyOperationResult.model_validate(data)
        return SignResult(result.kid, algorithm, base64url_decode(result.value))

    @set_log_context_for_operation("CryptographyClient", "key_id")
    async def verify(
        self, algorithm: SignatureAlgorithm, digest: bytes, signature: bytes
    ) -> VerifyResult:
        data = await self._operate("verify", algorithm, digest=digest, value=signature)
        result = KeyVerifyResult.model_validate(data)
        return VerifyResult(self.key_id, algorithm, result.value)

    async def close(self) -> None:
        await self._client.close()

    async def __aenter__(self) -> "CryptographyClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


__all__ = [
    "CryptographyClient",
    "EncryptionAlgorithm",
    "SignatureAlgorithm",
    "EncryptResult",
    "DecryptResult",
    "SignResult",
    "VerifyResult",
]
