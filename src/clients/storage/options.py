"""Transfer tuning options for storage uploads and downloads."""

from dataclasses import dataclass


@dataclass(frozen=True)
class StorageTransferOptions:
    """
    Limits for parallel transfers.

    Attributes:
        maximum_concurrency: Most sub-transfers in flight at once
        maximum_transfer_length: Largest size in bytes of one sub-transfer
    """

    maximum_concurrency: int | None = None
    maximum_transfer_length: int | None = None

    def __post_init__(self):
        for name in ("maximum_concurrency", "maximum_transfer_length"):
            value = getattr(self, name)
            if value is not None and int(value) <= 0:
                raise ValueError(f"{name} must be positive when set, got {value}.")
