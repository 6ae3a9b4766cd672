"""
BillVault Document Model.

DocumentRecord is the persisted unit: a named bill with its timestamps,
opaque percent-encoded content, bill-type tag and optional password hash.

Persisted layout (see ``to_storage_dict``):
    name, createdAt, modifiedAt, content, billType, password
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_NAME = "default"
UNTITLED_NAME = "Untitled"
RESERVED_NAMES = frozenset({DEFAULT_NAME, UNTITLED_NAME})

DEFAULT_BILL_TYPE = 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentRecord(BaseModel):
    """
    One saved bill.

    Records are immutable; saving produces a new record via ``touched()``
    or ``model_copy(update=...)`` and the store replaces the old one whole.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, max_length=30)
    created_at: datetime
    modified_at: datetime
    content: str = ""
    bill_type: int = Field(default=DEFAULT_BILL_TYPE, ge=1)
    password: Optional[str] = Field(default=None, repr=False, description="bcrypt hash")

    @field_validator("created_at", "modified_at")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def check_timestamps(self) -> "DocumentRecord":
        if self.modified_at < self.created_at:
            raise ValueError("modified_at must not be earlier than created_at")
        return self

    @property
    def is_protected(self) -> bool:
        return bool(self.password)

    @classmethod
    def create(
        cls,
        name: str,
        content: str,
        bill_type: int = DEFAULT_BILL_TYPE,
        password: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "DocumentRecord":
        """Fresh record: created_at and modified_at share one instant."""
        now = now or utcnow()
        return cls(
            name=name,
            created_at=now,
            modified_at=now,
            content=content,
            bill_type=bill_type,
            password=password,
        )

    def touched(
        self,
        content: str,
        bill_type: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> "DocumentRecord":
        """
        Copy with new content and modified_at, keeping created_at and the
        password. ``bill_type`` of None keeps the current one.
        """
        now = now or utcnow()
        # Guard against a clock running behind created_at
        if now < self.created_at:
            now = self.created_at
        return DocumentRecord(
            name=self.name,
            created_at=self.created_at,
            modified_at=now,
            content=content,
            bill_type=self.bill_type if bill_type is None else bill_type,
            password=self.password,
        )

    # ---- persisted layout ----

    def to_storage_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "createdAt": self.created_at.isoformat(),
            "modifiedAt": self.modified_at.isoformat(),
            "content": self.content,
            "billType": self.bill_type,
            "password": self.password,
        }

    @classmethod
    def from_storage_dict(cls, data: Dict[str, Any]) -> "DocumentRecord":
        return cls(
            name=data["name"],
            created_at=datetime.fromisoformat(data["createdAt"]),
            modified_at=datetime.fromisoformat(data["modifiedAt"]),
            content=data.get("content", ""),
            bill_type=data.get("billType", DEFAULT_BILL_TYPE),
            password=data.get("password"),
        )


class DocumentSummary(BaseModel):
    """Row of the file manager list."""

    name: str
    modified_at: datetime
    bill_type: int
    protected: bool

    @classmethod
    def from_record(cls, record: DocumentRecord) -> "DocumentSummary":
        return cls(
            name=record.name,
            modified_at=record.modified_at,
            bill_type=record.bill_type,
            protected=record.is_protected,
        )
