"""Parsing of vault item identifiers."""

from dataclasses import dataclass
from urllib.parse import urlparse


@dataclass(frozen=True)
class KeyVaultResourceId:
    """
    The parts of a vault item identifier such as
    ``https://myvault.vault.azure.net/keys/my-key/0a1b2c``.

    ``version`` is None for identifiers without a version segment.
    """

    source_id: str
    vault_url: str
    collection: str
    name: str
    version: str | None = None

    @classmethod
    def parse(cls, source_id: str, collection: str | None = None) -> "KeyVaultResourceId":
        """
        Split an identifier into its parts.

        Raises:
            ValueError: if the identifier is not an absolute URL of the form
                ``{vault}/{collection}/{name}[/{version}]``, or its collection
                differs from ``collection``
        """
        if not source_id:
            raise ValueError("source_id must be provided.")

        parsed = urlparse(source_id)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"'{source_id}' is not a valid vault identifier.")

        segments = [segment for segment in parsed.path.split("/") if segment]
        if len(segments) not in (2, 3):
            raise ValueError(
                f"'{source_id}' is not a valid vault identifier: expected "
                "{collection}/{name}[/{version}]."
            )
        if collection is not None and segments[0] != collection:
            raise ValueError(
                f"'{source_id}' is not a valid '{collection}' identifier."
            )

        return cls(
            source_id=source_id,
            vault_url=f"{parsed.scheme}://{parsed.netloc}",
            collection=segments[0],
            name=segments[1],
            version=segments[2] if len(segments) == 3 else None,
        )
