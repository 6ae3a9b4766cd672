"""
Document name rules for every path that creates a new record.

Rules run in a fixed order and the first failure wins, so the same bad
name always produces the same message.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from billvault.documents.models import RESERVED_NAMES
from billvault.engine.errors import BillVaultValidationError

MAX_NAME_LENGTH = 30
_NAME_PATTERN = re.compile(r"^[A-Za-z0-9\- ]*$")

RESERVED = "reserved name"
EMPTY = "empty"
TOO_LONG = "too long"
INVALID_CHARACTERS = "invalid characters"
DUPLICATE = "duplicate"

NAME_MESSAGES = {
    RESERVED: "Cannot update default file!",
    EMPTY: "Filename cannot be empty",
    TOO_LONG: "Filename too long",
    INVALID_CHARACTERS: "Special Characters cannot be used",
    DUPLICATE: "Filename already exists",
}


@dataclass(frozen=True)
class NameCheck:
    """Outcome of ``validate_name``. ``name`` is always the trimmed candidate."""
    name: str
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.reason is None

    @property
    def message(self) -> Optional[str]:
        return NAME_MESSAGES.get(self.reason) if self.reason else None


def validate_name(candidate: Optional[str], existing_names: Iterable[str]) -> NameCheck:
    name = (candidate or "").strip()

    if name in RESERVED_NAMES:
        return NameCheck(name, RESERVED)
    if not name:
        return NameCheck(name, EMPTY)
    if len(name) > MAX_NAME_LENGTH:
        return NameCheck(name, TOO_LONG)
    if not _NAME_PATTERN.match(name):
        return NameCheck(name, INVALID_CHARACTERS)
    if name in set(existing_names):
        return NameCheck(name, DUPLICATE)
    return NameCheck(name)


def require_valid_name(candidate: Optional[str], existing_names: Iterable[str]) -> str:
    """Like ``validate_name`` but raises; returns the trimmed name."""
    check = validate_name(candidate, existing_names)
    if not check.ok:
        raise BillVaultValidationError(
            check.message,
            reason=check.reason,
            document_name=check.name,
        )
    return check.name
