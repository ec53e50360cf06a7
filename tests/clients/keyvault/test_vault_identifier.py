import pytest

from clients.keyvault.identifier import KeyVaultResourceId


class TestParse:
    def test_versioned(self):
        rid = KeyVaultResourceId.parse("https://myvault.vault.azure.net/keys/signing/0a1b2c")

        assert rid.vault_url == "https://myvault.vault.azure.net"
        assert rid.collection == "keys"
        assert rid.name == "signing"
        assert rid.version == "0a1b2c"
        assert rid.source_id == "https://myvault.vault.azure.net/keys/signing/0a1b2c"

    def test_without_version(self):
        rid = KeyVaultResourceId.parse("https://myvault.vault.azure.net/secrets/db-password/")
        assert rid.name == "db-password"
        assert rid.version is None

    def test_port_kept_in_vault_url(self):
        rid = KeyVaultResourceId.parse("https://localhost:8443/secrets/a/1")
        assert rid.vault_url == "https://localhost:8443"

    def test_collection_checked(self):
        with pytest.raises(ValueError, match="'keys' identifier"):
            KeyVaultResourceId.parse("https://myvault.vault.azure.net/secrets/a/1", "keys")

    @pytest.mark.parametrize(
        "source_id",
        [
            "",
            "myvault/keys/a",
            "https://myvault.vault.azure.net/keys",
            "https://myvault.vault.azure.net/keys/a/1/extra",
        ],
    )
    def test_invalid(self, source_id):
        with pytest.raises(ValueError):
            KeyVaultResourceId.parse(source_id)
