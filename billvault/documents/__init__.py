"""
BillVault Documents — records, stores, name rules and file operations.

The service lives in ``billvault.documents.service``; it depends on the
editor bridge, which in turn depends on the models exported here.
"""

from billvault.documents.models import DocumentRecord, DocumentSummary
from billvault.documents.store import DocumentStore, MemoryDocumentStore, SqlDocumentStore

__all__ = [
    "DocumentRecord",
    "DocumentSummary",
    "DocumentStore",
    "MemoryDocumentStore",
    "SqlDocumentStore",
]
