"""
BillVault Document Service — the user-initiated file operations.

Handles:
- Save to the open document (never the built-in template)
- Save As / Save As Password-Protected with name and password rules
- Open (with password gate for protected documents) and Delete
- Loading the built-in default template
- File manager listing with search

Every write holds the document's lock from the shared NameLocks, the same
locks the auto-save scheduler takes, so a user save and an auto-save tick
to one document never interleave. The later writer wins.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, List, Optional

from billvault.documents.locks import NameLocks
from billvault.documents.models import (
    DEFAULT_BILL_TYPE,
    DEFAULT_NAME,
    DocumentRecord,
    DocumentSummary,
    utcnow,
)
from billvault.documents.store import DocumentStore, filter_names
from billvault.documents.validation import require_valid_name
from billvault.editor.bridge import EditorBridge, encode_content
from billvault.engine.errors import BillVaultError, BillVaultValidationError
from billvault.engine.logging import log, log_document_operation, log_security_event
from billvault.engine.security import (
    DEFAULT_PASSWORD_MIN_LENGTH,
    INCORRECT_PASSWORD,
    PASSWORD_MESSAGES,
    PASSWORD_REQUIRED,
    check_new_password,
    hash_password,
    verify_password,
)

logger = logging.getLogger("billvault.documents.service")

CANNOT_SAVE_DEFAULT = "cannot save default"


class DocumentService:
    """
    Foreground document operations for one editing session.

    ``active_name`` is the document currently open in the editor; it starts
    as the built-in ``default`` template.
    """

    def __init__(
        self,
        store: DocumentStore,
        editor: EditorBridge,
        *,
        locks: Optional[NameLocks] = None,
        clock: Callable[[], datetime] = utcnow,
        default_template: str = "",
        password_min_length: int = DEFAULT_PASSWORD_MIN_LENGTH,
        bcrypt_rounds: int = 12,
    ):
        self._store = store
        self._editor = editor
        self._locks = locks or NameLocks()
        self._clock = clock
        self._default_template = default_template
        self._password_min_length = password_min_length
        self._bcrypt_rounds = bcrypt_rounds
        self.active_name: str = DEFAULT_NAME

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def editor(self) -> EditorBridge:
        return self._editor

    @property
    def locks(self) -> NameLocks:
        return self._locks

    @property
    def is_default(self) -> bool:
        return self.active_name == DEFAULT_NAME

    def _current_bill_type(self) -> int:
        return self._editor.get_active_bill_type() or DEFAULT_BILL_TYPE

    # -------------------------------------------------------------------
    # Save
    # -------------------------------------------------------------------

    async def save(self) -> DocumentRecord:
        """
        Overwrite the open document with the editor's content.

        Raises:
            BillVaultValidationError: the built-in template is open.
            BillVaultNotFoundError: the open document no longer exists.
            BillVaultStorageError: the write failed.
        """
        name = self.active_name
        if name == DEFAULT_NAME:
            raise BillVaultValidationError(
                f"Cannot update {name} file!",
                reason=CANNOT_SAVE_DEFAULT,
                document_name=name,
                operation="save",
            )

        started = time.monotonic()
        content = self._editor.get_serialized_content()
        bill_type = self._current_bill_type()
        try:
            async with self._locks.hold(name):
                existing = await self._store.get(name)
                record = existing.touched(content, bill_type, now=self._clock())
                await self._store.put(record)
        except BillVaultError as e:
            log(log_document_operation("save", name, success=False, error=e.message))
            raise

        self._log_success("save", record, started)
        return record

    async def save_as(self, name: str) -> DocumentRecord:
        """Create a new document from the editor's content and open it."""
        return await self._create(name, password=None, operation="save_as")

    async def save_as_protected(
        self,
        name: str,
        password: Optional[str],
        confirm_password: Optional[str],
    ) -> DocumentRecord:
        """
        Save As with a password. Password rules are checked before the name
        rules; any violation raises BillVaultValidationError and nothing is
        written.
        """
        check_new_password(name, password, confirm_password, self._password_min_length)
        return await self._create(name, password=password, operation="save_as_protected")

    async def _create(self, name: str, password: Optional[str], operation: str) -> DocumentRecord:
        started = time.monotonic()
        candidate = (name or "").strip()
        content = self._editor.get_serialized_content()
        bill_type = self._current_bill_type()
        password_hash = None
        if password:
            # bcrypt runs in a worker thread, off the event loop
            password_hash = await asyncio.to_thread(
                hash_password, password, rounds=self._bcrypt_rounds
            )

        async with self._locks.hold(candidate):
            existing = {candidate} if candidate and await self._store.exists(candidate) else set()
            accepted = require_valid_name(name, existing)
            record = DocumentRecord.create(
                accepted, content, bill_type, password=password_hash, now=self._clock()
            )
            try:
                await self._store.put(record)
            except BillVaultError as e:
                log(log_document_operation(operation, accepted, success=False, error=e.message))
                raise

        self.active_name = accepted
        self._log_success(operation, record, started)
        return record

    # -------------------------------------------------------------------
    # Open / Delete / Default
    # -------------------------------------------------------------------

    async def open(self, name: str, password: Optional[str] = None) -> DocumentRecord:
        """
        Load a saved document into the editor and make it the open document.

        Protected documents require the password they were saved with.
        """
        record = await self._store.get(name)
        if record.is_protected:
            if not password:
                raise BillVaultValidationError(
                    PASSWORD_MESSAGES[PASSWORD_REQUIRED].format(name=name),
                    reason=PASSWORD_REQUIRED,
                    document_name=name,
                    operation="open",
                )
            if not await asyncio.to_thread(verify_password, password, record.password):
                log(log_security_event("document_unlock_failed", name))
                raise BillVaultValidationError(
                    PASSWORD_MESSAGES[INCORRECT_PASSWORD].format(name=name),
                    reason=INCORRECT_PASSWORD,
                    document_name=name,
                    operation="open",
                )

        self._editor.load_content(record.content)
        self._editor.activate_footer(record.bill_type)
        self.active_name = record.name
        log(log_document_operation("open", name, success=True, bill_type=record.bill_type))
        return record

    async def delete(self, name: str) -> None:
        """Remove a document, then fall back to the built-in template."""
        async with self._locks.hold(name):
            await self._store.delete(name)
        logger.info(f"Deleted document '{name}'")
        log(log_document_operation("delete", name, success=True))
        self.load_default()

    def load_default(self) -> None:
        """Load the built-in template. It is never persisted."""
        self._editor.load_content(encode_content(self._default_template))
        self.active_name = DEFAULT_NAME

    def set_bill_type(self, bill_type: int) -> None:
        if bill_type < 1:
            raise BillVaultValidationError(
                f"Invalid bill type {bill_type}", reason="invalid bill type"
            )
        self._editor.activate_footer(bill_type)

    # -------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------

    async def list_documents(self, search: Optional[str] = None) -> List[DocumentSummary]:
        """File manager rows, sorted by name, filtered by substring."""
        records = await self._store.list_all()
        return [DocumentSummary.from_record(records[n]) for n in filter_names(records, search)]

    # -------------------------------------------------------------------
    # Auto-save wiring
    # -------------------------------------------------------------------

    def create_autosave_scheduler(self, **kwargs: Any):
        """Scheduler writing the open document through this service's store and locks."""
        from billvault.process.scheduler import AutoSaveScheduler

        kwargs.setdefault("clock", self._clock)
        return AutoSaveScheduler(
            self._store,
            self._editor,
            lambda: self.active_name,
            locks=self._locks,
            **kwargs,
        )

    # -------------------------------------------------------------------

    def _log_success(self, operation: str, record: DocumentRecord, started: float) -> None:
        duration_ms = (time.monotonic() - started) * 1000
        logger.info(f"{operation} '{record.name}' ({len(record.content)} chars)")
        log(log_document_operation(
            operation,
            record.name,
            success=True,
            bill_type=record.bill_type,
            content_length=len(record.content),
            protected=record.is_protected,
            duration_ms=duration_ms,
        ))
