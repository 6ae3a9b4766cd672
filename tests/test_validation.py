"""Unit tests for billvault.documents.validation — document name rules."""

import pytest

from billvault.documents.validation import (
    DUPLICATE,
    EMPTY,
    INVALID_CHARACTERS,
    MAX_NAME_LENGTH,
    RESERVED,
    TOO_LONG,
    require_valid_name,
    validate_name,
)
from billvault.engine.errors import BillVaultValidationError


class TestValidateName:
    def test_accepts_plain_name(self):
        check = validate_name("Invoice 1", [])
        assert check.ok
        assert check.name == "Invoice 1"
        assert check.message is None

    def test_trims(self):
        assert validate_name("  Invoice-2  ", []).name == "Invoice-2"

    @pytest.mark.parametrize("name", ["default", "Untitled", "  default "])
    def test_reserved(self, name):
        check = validate_name(name, [])
        assert check.reason == RESERVED
        assert check.message == "Cannot update default file!"

    def test_reserved_is_case_sensitive(self):
        assert validate_name("Default", []).ok

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_empty(self, name):
        check = validate_name(name, [])
        assert check.reason == EMPTY
        assert check.message == "Filename cannot be empty"

    def test_max_length_accepted(self):
        assert validate_name("a" * MAX_NAME_LENGTH, []).ok

    def test_too_long(self):
        check = validate_name("a" * (MAX_NAME_LENGTH + 1), [])
        assert check.reason == TOO_LONG
        assert check.message == "Filename too long"

    @pytest.mark.parametrize("name", ["bill/1", "bill_1", "bill.1", "bíll", "a\tb"])
    def test_invalid_characters(self, name):
        check = validate_name(name, [])
        assert check.reason == INVALID_CHARACTERS
        assert check.message == "Special Characters cannot be used"

    def test_duplicate(self):
        check = validate_name("Invoice 1", ["Invoice 1", "Other"])
        assert check.reason == DUPLICATE
        assert check.message == "Filename already exists"

    def test_duplicate_after_trim(self):
        assert validate_name(" Invoice 1 ", ["Invoice 1"]).reason == DUPLICATE

    def test_first_failure_wins(self):
        # Too long and invalid: length is checked first
        assert validate_name("!" * 40, []).reason == TOO_LONG


class TestRequireValidName:
    def test_returns_trimmed(self):
        assert require_valid_name(" Q3 ", set()) == "Q3"

    def test_raises_with_reason(self):
        with pytest.raises(BillVaultValidationError) as exc:
            require_valid_name("a/b", set())
        assert exc.value.reason == INVALID_CHARACTERS
        assert exc.value.document_name == "a/b"
