"""Unit tests for billvault.documents.models — DocumentRecord and DocumentSummary."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from billvault.documents.models import (
    RESERVED_NAMES,
    DocumentRecord,
    DocumentSummary,
)

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class TestDocumentRecord:
    def test_create_sets_equal_timestamps(self):
        rec = DocumentRecord.create("Invoice 1", "A1%3D1", 2, now=T0)
        assert rec.created_at == rec.modified_at == T0
        assert rec.bill_type == 2
        assert rec.password is None
        assert not rec.is_protected

    def test_frozen(self):
        rec = DocumentRecord.create("Invoice 1", "x", now=T0)
        with pytest.raises(ValidationError):
            rec.content = "y"

    def test_modified_before_created_rejected(self):
        with pytest.raises(ValidationError):
            DocumentRecord(name="x", created_at=T0, modified_at=T0 - timedelta(seconds=1))

    def test_bill_type_positive(self):
        with pytest.raises(ValidationError):
            DocumentRecord.create("x", "", 0, now=T0)

    def test_name_length(self):
        with pytest.raises(ValidationError):
            DocumentRecord.create("a" * 31, "", now=T0)

    def test_naive_timestamps_become_utc(self):
        rec = DocumentRecord(name="x", created_at=datetime(2026, 1, 1), modified_at=datetime(2026, 1, 1))
        assert rec.created_at.tzinfo == timezone.utc

    def test_password_hidden_from_repr(self):
        rec = DocumentRecord.create("Secret", "", password="$2b$04$hash", now=T0)
        assert "$2b$04$hash" not in repr(rec)
        assert rec.is_protected

    def test_reserved_names(self):
        assert RESERVED_NAMES == {"default", "Untitled"}


class TestTouched:
    def test_keeps_created_and_password(self):
        rec = DocumentRecord.create("Secret", "old", 1, password="$2b$04$hash", now=T0)
        later = T0 + timedelta(minutes=5)
        new = rec.touched("new", 3, now=later)
        assert new.created_at == T0
        assert new.modified_at == later
        assert new.content == "new"
        assert new.bill_type == 3
        assert new.password == "$2b$04$hash"
        assert rec.content == "old"

    def test_none_bill_type_keeps_current(self):
        rec = DocumentRecord.create("x", "", 4, now=T0)
        assert rec.touched("y", None, now=T0).bill_type == 4

    def test_clock_behind_created_is_clamped(self):
        rec = DocumentRecord.create("x", "", now=T0)
        new = rec.touched("y", now=T0 - timedelta(hours=1))
        assert new.modified_at == T0


class TestStorageLayout:
    def test_keys(self):
        rec = DocumentRecord.create("Invoice 1", "A1%3D1", 2, now=T0)
        assert set(rec.to_storage_dict()) == {
            "name", "createdAt", "modifiedAt", "content", "billType", "password",
        }

    def test_round_trip(self):
        rec = DocumentRecord.create("Invoice 1", "A1%3D1", 2, password="$2b$04$h", now=T0)
        assert DocumentRecord.from_storage_dict(rec.to_storage_dict()) == rec

    def test_missing_optional_fields(self):
        rec = DocumentRecord.from_storage_dict({
            "name": "Old",
            "createdAt": "2025-01-01T00:00:00+00:00",
            "modifiedAt": "2025-01-02T00:00:00+00:00",
        })
        assert rec.content == ""
        assert rec.bill_type == 1
        assert rec.password is None


class TestDocumentSummary:
    def test_from_record(self):
        rec = DocumentRecord.create("Secret", "x", 2, password="$2b$04$h", now=T0)
        summary = DocumentSummary.from_record(rec)
        assert summary.name == "Secret"
        assert summary.bill_type == 2
        assert summary.protected is True
        assert not hasattr(summary, "password")
