"""
BillVault Security — Password hashing and protected-save password rules.

Protected documents keep only a bcrypt hash; the clear-text password never
reaches the store or the logs.
"""

from __future__ import annotations

import logging
from typing import Optional

import bcrypt

from billvault.engine.errors import BillVaultValidationError

logger = logging.getLogger("billvault.engine.security")

DEFAULT_PASSWORD_MIN_LENGTH = 4

# Rejection reasons for the protected save dialog
MISSING_FIELDS = "missing fields"
PASSWORD_MISMATCH = "passwords do not match"
PASSWORD_TOO_SHORT = "password too short"
PASSWORD_REQUIRED = "password required"
INCORRECT_PASSWORD = "incorrect password"

PASSWORD_MESSAGES = {
    MISSING_FIELDS: "All fields are required",
    PASSWORD_MISMATCH: "Passwords do not match",
    PASSWORD_TOO_SHORT: "Password must be at least {min_length} characters long",
    PASSWORD_REQUIRED: "Password required to open '{name}'",
    INCORRECT_PASSWORD: "Incorrect password for '{name}'",
}


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in storage
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def check_new_password(
    name: Optional[str],
    password: Optional[str],
    confirm_password: Optional[str],
    min_length: int = DEFAULT_PASSWORD_MIN_LENGTH,
) -> str:
    """
    Validate the fields of a password-protected save.

    Checks, in order: all three fields present, passwords equal,
    minimum length. Returns the accepted password.

    Raises:
        BillVaultValidationError: with ``reason`` set to the failed rule.
    """
    if not name or not password or not confirm_password:
        raise BillVaultValidationError(
            PASSWORD_MESSAGES[MISSING_FIELDS], reason=MISSING_FIELDS, document_name=name
        )
    if password != confirm_password:
        raise BillVaultValidationError(
            PASSWORD_MESSAGES[PASSWORD_MISMATCH], reason=PASSWORD_MISMATCH, document_name=name
        )
    if len(password) < min_length:
        raise BillVaultValidationError(
            PASSWORD_MESSAGES[PASSWORD_TOO_SHORT].format(min_length=min_length),
            reason=PASSWORD_TOO_SHORT,
            document_name=name,
        )
    return password
