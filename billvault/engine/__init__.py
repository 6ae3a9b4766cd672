"""BillVault Engine — configuration, errors, logging, security, runtime."""

from billvault.engine.errors import (  # noqa: F401
    BillVaultConfigError,
    BillVaultError,
    BillVaultNotFoundError,
    BillVaultStorageError,
    BillVaultValidationError,
)

__all__ = [
    "BillVaultError",
    "BillVaultValidationError",
    "BillVaultNotFoundError",
    "BillVaultStorageError",
    "BillVaultConfigError",
]
