"""
BillVault Tables.

1. documents   — one row per saved bill, keyed by name
2. preferences — user settings persisted across sessions (JSON values)

Timestamps are stored as ISO-8601 strings so the persisted layout matches
the record's storage dict exactly.
"""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Column, Integer, String, Text

from billvault.db.base import Base


class DocumentRow(Base):
    __tablename__ = "documents"

    name = Column(String(30), primary_key=True)
    created_at = Column(String(40), nullable=False)
    modified_at = Column(String(40), nullable=False)
    content = Column(Text, nullable=False, default="")
    bill_type = Column(Integer, nullable=False, default=1)
    password = Column(String(255), nullable=True)

    __table_args__ = (
        CheckConstraint("bill_type >= 1", name="ck_documents_bill_type"),
    )

    def __repr__(self) -> str:
        return f"<DocumentRow name={self.name!r} modified_at={self.modified_at!r}>"


class PreferenceRow(Base):
    __tablename__ = "preferences"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
