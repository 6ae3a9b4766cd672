"""
BillVault Document Store — durable key-value persistence of DocumentRecords.

Backends:
    MemoryDocumentStore — dict of immutable records (tests, scratch sessions)
    SqlDocumentStore    — SQLAlchemy table ``documents``, one row per name

Every method is a coroutine. The SQL backend runs its blocking work in a
worker thread so a slow medium suspends only the caller, never the event
loop the auto-save timer runs on.

Each ``put`` fully replaces the record or fails; readers never observe a
half-written record.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from billvault.db.models import DocumentRow
from billvault.db.session import session_scope, upsert
from billvault.documents.models import DocumentRecord
from billvault.engine.errors import BillVaultNotFoundError, BillVaultStorageError

logger = logging.getLogger("billvault.documents.store")

T = TypeVar("T")


def _not_found(name: str, operation: str) -> BillVaultNotFoundError:
    return BillVaultNotFoundError(
        f"Document '{name}' not found", document_name=name, operation=operation
    )


class DocumentStore(ABC):
    """Async contract shared by every backend."""

    @abstractmethod
    async def list_all(self) -> Dict[str, DocumentRecord]:
        """Every persisted record keyed by name. Order is not significant."""

    @abstractmethod
    async def get(self, name: str) -> DocumentRecord:
        """Raises BillVaultNotFoundError if the name is absent."""

    @abstractmethod
    async def exists(self, name: str) -> bool:
        ...

    @abstractmethod
    async def put(self, record: DocumentRecord) -> None:
        """Create or fully replace the record at ``record.name``."""

    @abstractmethod
    async def delete(self, name: str) -> None:
        """Raises BillVaultNotFoundError if the name is absent."""

    async def list_names(self, search: Optional[str] = None) -> List[str]:
        return filter_names(await self.list_all(), search)


def filter_names(names: Iterable[str], search: Optional[str] = None) -> List[str]:
    """Names sorted case-insensitively, keeping those containing ``search``."""
    names = list(names)
    if search:
        needle = search.lower()
        names = [n for n in names if needle in n.lower()]
    return sorted(names, key=str.lower)


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------

class MemoryDocumentStore(DocumentStore):
    """
    Records live in a dict. DocumentRecord is frozen, so handing out the
    stored instance is safe and a put is a single reference swap.
    """

    def __init__(self, records: Optional[Dict[str, DocumentRecord]] = None):
        self._records: Dict[str, DocumentRecord] = dict(records or {})
        self._lock = threading.Lock()

    async def list_all(self) -> Dict[str, DocumentRecord]:
        with self._lock:
            return dict(self._records)

    async def get(self, name: str) -> DocumentRecord:
        with self._lock:
            record = self._records.get(name)
        if record is None:
            raise _not_found(name, "get")
        return record

    async def exists(self, name: str) -> bool:
        with self._lock:
            return name in self._records

    async def put(self, record: DocumentRecord) -> None:
        with self._lock:
            self._records[record.name] = record

    async def delete(self, name: str) -> None:
        with self._lock:
            if name not in self._records:
                raise _not_found(name, "delete")
            del self._records[name]

    def __len__(self) -> int:
        return len(self._records)


# ---------------------------------------------------------------------------
# SQLAlchemy backend
# ---------------------------------------------------------------------------

def _row_to_record(row: DocumentRow) -> DocumentRecord:
    return DocumentRecord.from_storage_dict({
        "name": row.name,
        "createdAt": row.created_at,
        "modifiedAt": row.modified_at,
        "content": row.content,
        "billType": row.bill_type,
        "password": row.password,
    })


class SqlDocumentStore(DocumentStore):
    """
    Documents in the ``documents`` table. Each operation runs in its own
    transaction; database errors surface as BillVaultStorageError.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def _run(self, operation: str, fn: Callable[[], T], name: Optional[str] = None) -> T:
        try:
            return await asyncio.to_thread(fn)
        except SQLAlchemyError as e:
            logger.error(f"Storage failure during {operation} ({name or '*'}): {e}")
            raise BillVaultStorageError(
                f"Storage failure during {operation}: {e.__class__.__name__}",
                document_name=name,
                operation=operation,
                cause=e,
            ) from e
        except ValueError as e:
            # A stored row no longer validates as a DocumentRecord
            raise BillVaultStorageError(
                f"Corrupt record during {operation}: {e}",
                document_name=name,
                operation=operation,
                cause=e,
            ) from e

    async def list_all(self) -> Dict[str, DocumentRecord]:
        def _list() -> Dict[str, DocumentRecord]:
            with session_scope(self._session_factory) as session:
                rows = session.execute(select(DocumentRow)).scalars().all()
                return {row.name: _row_to_record(row) for row in rows}

        return await self._run("list_all", _list)

    async def get(self, name: str) -> DocumentRecord:
        def _get() -> Optional[DocumentRecord]:
            with session_scope(self._session_factory) as session:
                row = session.get(DocumentRow, name)
                return _row_to_record(row) if row is not None else None

        record = await self._run("get", _get, name)
        if record is None:
            raise _not_found(name, "get")
        return record

    async def exists(self, name: str) -> bool:
        def _exists() -> bool:
            with session_scope(self._session_factory) as session:
                return session.get(DocumentRow, name) is not None

        return await self._run("exists", _exists, name)

    async def put(self, record: DocumentRecord) -> None:
        data = record.to_storage_dict()
        values = {
            "name": record.name,
            "created_at": data["createdAt"],
            "modified_at": data["modifiedAt"],
            "content": data["content"],
            "bill_type": data["billType"],
            "password": data["password"],
        }

        def _put() -> None:
            with session_scope(self._session_factory) as session:
                upsert(session, DocumentRow, values)

        await self._run("put", _put, record.name)

    async def delete(self, name: str) -> None:
        def _delete() -> bool:
            with session_scope(self._session_factory) as session:
                row = session.get(DocumentRow, name)
                if row is None:
                    return False
                session.delete(row)
                return True

        if not await self._run("delete", _delete, name):
            raise _not_found(name, "delete")
