"""
BillVault Error Hierarchy — Structured exceptions for document persistence.

Every error carries a message plus free-form context and serializes to
JSON so it can be written to the structured audit log unchanged.

Hierarchy:
    BillVaultError
    ├── BillVaultValidationError — Bad/duplicate/reserved name, weak password
    ├── BillVaultNotFoundError   — Document not present in the store
    ├── BillVaultStorageError    — Underlying storage medium failed
    └── BillVaultConfigError     — Invalid billvault.yaml or preference value
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple


class BillVaultError(Exception):
    """
    Base error for all BillVault failures.

    Keys named in ``promoted`` are lifted out of the context onto the error
    itself and to the top level of ``to_dict()``. Everything else stays in
    ``context`` and is stringified on serialization.
    """

    promoted: Tuple[str, ...] = ("document_name", "operation")
    document_name: Optional[str]
    operation: Optional[str]

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context
        self.error_type: str = type(self).__name__
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        for key in self.promoted:
            setattr(self, key, self._promote(key, context.get(key)))

    def _promote(self, key: str, value: Any) -> Any:
        return value

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "error_type": self.error_type,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        d.update((key, getattr(self, key)) for key in self.promoted)
        d["context"] = {k: str(v) for k, v in self.context.items() if k not in self.promoted}
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        extras = [f"{k}={getattr(self, k)}" for k in ("document_name", "operation") if getattr(self, k)]
        return " | ".join([f"{self.error_type}: {self.message}", *extras])


class BillVaultValidationError(BillVaultError):
    """
    A name or password was rejected. Nothing was written.
    ``reason`` is a stable machine-readable code, ``message`` is user-facing.
    """

    promoted = BillVaultError.promoted + ("reason",)
    reason: Optional[str]


class BillVaultNotFoundError(BillVaultError):
    """Requested document is absent from the store."""


class BillVaultStorageError(BillVaultError):
    """
    The storage medium failed (quota, serialization, database error).
    Always surfaced to the user since it can mean data loss.
    """

    promoted = BillVaultError.promoted + ("cause",)
    cause: Optional[str]

    def _promote(self, key: str, value: Any) -> Any:
        if key == "cause" and value is not None:
            return str(value)
        return value


class BillVaultConfigError(BillVaultError):
    """Invalid billvault.yaml or preference value."""
