"""Shared key credential for storage accounts."""

import base64
import binascii
import hashlib
import hmac


class StorageSharedKeyCredential:
    """
    A storage account name and account key, used to sign shared access signatures.

    The key is the base64 string shown for the account; it is decoded once
    and kept only in binary form.
    """

    def __init__(self, account_name: str, account_key: str):
        if account_name is None or not account_name.strip():
            raise ValueError("account_name must be provided and not blank.")
        self.account_name = account_name
        self._account_key: bytes = b""
        self.set_account_key(account_key)

    def set_account_key(self, account_key: str) -> None:
        """Replace the account key, e.g. after the key has been rotated."""
        if account_key is None or not account_key.strip():
            raise ValueError("account_key must be provided and not blank.")
        try:
            self._account_key = base64.b64decode(account_key, validate=True)
        except binascii.Error as e:
            raise ValueError("account_key must be a base64-encoded string.") from e

    def compute_hmac_sha256(self, message: str) -> str:
        """Base64 HMAC-SHA256 of ``message`` (UTF-8) under the account key."""
        digest = hmac.new(self._account_key, message.encode("utf-8"), hashlib.sha256).digest()
        return base64.b64encode(digest).decode("ascii")

    def __repr__(self) -> str:
        return f"StorageSharedKeyCredential(account_name={self.account_name!r})"
