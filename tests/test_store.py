"""Unit tests for billvault.documents.store — memory and SQLAlchemy backends."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from billvault.db.models import DocumentRow
from billvault.db.session import session_scope
from billvault.documents.models import DocumentRecord
from billvault.documents.store import (
    MemoryDocumentStore,
    SqlDocumentStore,
    filter_names,
)
from billvault.engine.errors import BillVaultNotFoundError, BillVaultStorageError

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sql"])
def any_store(request):
    """Each contract test runs against both backends."""
    if request.param == "memory":
        yield MemoryDocumentStore()
        return
    factory = request.getfixturevalue("session_factory")
    yield SqlDocumentStore(factory)


def _record(name, content="x", bill_type=1, password=None, at=T0):
    return DocumentRecord.create(name, content, bill_type, password=password, now=at)


class TestFilterNames:
    def test_sorted_case_insensitive(self):
        assert filter_names(["beta", "Alpha", "gamma"]) == ["Alpha", "beta", "gamma"]

    def test_search(self):
        assert filter_names(["Invoice 1", "Receipt", "invoice 2"], "INVOICE") == ["Invoice 1", "invoice 2"]

    def test_empty_search_keeps_all(self):
        assert filter_names(["b", "a"], "") == ["a", "b"]


class TestStoreContract:
    @pytest.mark.asyncio
    async def test_put_then_get(self, any_store):
        rec = _record("Invoice 1", "A1%3D1", 2)
        await any_store.put(rec)
        assert await any_store.get("Invoice 1") == rec

    @pytest.mark.asyncio
    async def test_get_missing(self, any_store):
        with pytest.raises(BillVaultNotFoundError) as exc:
            await any_store.get("nope")
        assert exc.value.document_name == "nope"

    @pytest.mark.asyncio
    async def test_exists(self, any_store):
        assert await any_store.exists("Invoice 1") is False
        await any_store.put(_record("Invoice 1"))
        assert await any_store.exists("Invoice 1") is True

    @pytest.mark.asyncio
    async def test_put_replaces_whole_record(self, any_store):
        await any_store.put(_record("Invoice 1", "old", 1, password="$2b$04$h"))
        newer = _record("Invoice 1", "new", 3, at=T0 + timedelta(minutes=1))
        await any_store.put(newer)
        got = await any_store.get("Invoice 1")
        assert got == newer
        assert got.password is None

    @pytest.mark.asyncio
    async def test_list_all(self, any_store):
        await any_store.put(_record("a"))
        await any_store.put(_record("b", password="$2b$04$h"))
        records = await any_store.list_all()
        assert set(records) == {"a", "b"}
        assert records["b"].is_protected

    @pytest.mark.asyncio
    async def test_list_names(self, any_store):
        for name in ("Receipt", "invoice 2", "Invoice 1"):
            await any_store.put(_record(name))
        assert await any_store.list_names() == ["Invoice 1", "invoice 2", "Receipt"]
        assert await any_store.list_names("rec") == ["Receipt"]

    @pytest.mark.asyncio
    async def test_delete(self, any_store):
        await any_store.put(_record("Invoice 1"))
        await any_store.delete("Invoice 1")
        assert await any_store.exists("Invoice 1") is False
        with pytest.raises(BillVaultNotFoundError):
            await any_store.get("Invoice 1")

    @pytest.mark.asyncio
    async def test_delete_missing(self, any_store):
        with pytest.raises(BillVaultNotFoundError):
            await any_store.delete("nope")

    @pytest.mark.asyncio
    async def test_timestamps_preserved(self, any_store):
        rec = DocumentRecord(
            name="x", created_at=T0, modified_at=T0 + timedelta(seconds=90, microseconds=5),
        )
        await any_store.put(rec)
        got = await any_store.get("x")
        assert got.created_at == T0
        assert got.modified_at == rec.modified_at


class TestMemoryStore:
    def test_len(self):
        store = MemoryDocumentStore({"a": _record("a")})
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_list_all_is_a_copy(self):
        store = MemoryDocumentStore()
        await store.put(_record("a"))
        snapshot = await store.list_all()
        snapshot.clear()
        assert await store.exists("a")


class TestSqlStore:
    @pytest.mark.asyncio
    async def test_storage_layout(self, session_factory):
        store = SqlDocumentStore(session_factory)
        await store.put(_record("Invoice 1", "A1%3D1", 2))
        with session_scope(session_factory) as session:
            row = session.get(DocumentRow, "Invoice 1")
            assert row.content == "A1%3D1"
            assert row.bill_type == 2
            assert row.created_at == T0.isoformat()
            assert row.password is None

    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_path):
        from billvault.db.session import dispose, init_database

        url = f"sqlite:///{tmp_path / 'docs.db'}"
        factory = init_database(url)
        await SqlDocumentStore(factory).put(_record("Invoice 1", "abc"))
        dispose(factory)

        factory = init_database(url)
        try:
            assert (await SqlDocumentStore(factory).get("Invoice 1")).content == "abc"
        finally:
            dispose(factory)

    @pytest.mark.asyncio
    async def test_in_memory_database(self, memory_session_factory):
        store = SqlDocumentStore(memory_session_factory)
        await store.put(_record("a"))
        assert await store.list_names() == ["a"]

    @pytest.mark.asyncio
    async def test_database_error_becomes_storage_error(self):
        factory = MagicMock(side_effect=OperationalError("INSERT", {}, Exception("disk I/O error")))
        store = SqlDocumentStore(factory)
        with pytest.raises(BillVaultStorageError) as exc:
            await store.put(_record("Invoice 1"))
        assert exc.value.operation == "put"
        assert exc.value.document_name == "Invoice 1"
        assert "OperationalError" in exc.value.message

    @pytest.mark.asyncio
    async def test_corrupt_row(self, session_factory):
        with session_scope(session_factory) as session:
            session.add(DocumentRow(
                name="bad", created_at="not-a-date", modified_at="not-a-date",
                content="", bill_type=1,
            ))
        with pytest.raises(BillVaultStorageError, match="Corrupt"):
            await SqlDocumentStore(session_factory).get("bad")

    @pytest.mark.asyncio
    async def test_concurrent_puts_of_new_name(self, session_factory):
        store = SqlDocumentStore(session_factory)
        for i in range(10):
            name = f"Invoice {i}"
            first = _record(name, "A1%3D10", 1)
            second = _record(name, "A1%3D20", 2, password="$2b$04$h")
            await asyncio.gather(store.put(first), store.put(second))
            assert await store.get(name) in (first, second)
        assert len(await store.list_names()) == 10

    @pytest.mark.asyncio
    async def test_put_overwrites_every_column(self, session_factory):
        store = SqlDocumentStore(session_factory)
        await store.put(_record("Invoice 1", "old", 1, password="$2b$04$h"))
        newer = _record("Invoice 1", "new", 3, at=T0 + timedelta(hours=1))
        await store.put(newer)
        with session_scope(session_factory) as session:
            row = session.get(DocumentRow, "Invoice 1")
            assert (row.content, row.bill_type, row.password) == ("new", 3, None)
            assert row.modified_at == newer.modified_at.isoformat()
