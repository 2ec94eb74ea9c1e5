# =============================================================================
# Unit Tests — Record Stores & Status State Machine
# =============================================================================
#
# The SQLAlchemy store runs against a throwaway SQLite file (aiosqlite), the
# same ORM model and queries as PostgreSQL in production.
# =============================================================================

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.db.engine import create_tables
from app.db.models import Document, DocumentStatus
from app.db.repository import (
    InMemoryRecordStore,
    SqlAlchemyRecordStore,
    get_record_store,
)
from app.exceptions import InvalidStatusTransitionError


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Test: State Machine
# ---------------------------------------------------------------------------


class TestStatusTransitions:
    """Allowed and forbidden status changes."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (DocumentStatus.PENDING, DocumentStatus.QUEUED),
            (DocumentStatus.QUEUED, DocumentStatus.QUEUED),
            (DocumentStatus.QUEUED, DocumentStatus.PROCESSING),
            (DocumentStatus.PROCESSING, DocumentStatus.PROCESSED),
            (DocumentStatus.PROCESSING, DocumentStatus.FAILED),
            (DocumentStatus.PROCESSING, DocumentStatus.QUEUED),
            (DocumentStatus.FAILED, DocumentStatus.QUEUED),
            (DocumentStatus.PROCESSED, DocumentStatus.QUEUED),
        ],
    )
    def test_allowed(self, current, target):
        document = Document(file_name="a", storage_path="a", status=current)
        document.transition_to(target)
        assert document.status == target

    @pytest.mark.parametrize(
        "current,target",
        [
            (DocumentStatus.PENDING, DocumentStatus.PROCESSING),
            (DocumentStatus.QUEUED, DocumentStatus.PROCESSED),
            (DocumentStatus.FAILED, DocumentStatus.PROCESSED),
            (DocumentStatus.PROCESSED, DocumentStatus.FAILED),
        ],
    )
    def test_forbidden(self, current, target):
        document = Document(file_name="a", storage_path="a", status=current)
        with pytest.raises(InvalidStatusTransitionError):
            document.transition_to(target)
        assert document.status == current

    def test_terminal_statuses(self):
        assert DocumentStatus.PROCESSED.is_terminal
        assert DocumentStatus.FAILED.is_terminal
        assert not DocumentStatus.PROCESSING.is_terminal


# ---------------------------------------------------------------------------
# Test: In-Memory Store
# ---------------------------------------------------------------------------


class TestInMemoryRecordStore:
    """Defaults, updates and status listing."""

    def test_add_assigns_id_and_defaults(self):
        async def scenario():
            store = InMemoryRecordStore()
            return await store.add(Document(file_name="a.txt", storage_path="a.txt"))

        document = _run(scenario())
        assert document.id == 1
        assert document.status == DocumentStatus.PENDING
        assert document.retry_count == 0
        assert document.created_at is not None

    def test_update_stamps_updated_at(self):
        async def scenario():
            store = InMemoryRecordStore()
            document = await store.add(Document(file_name="a.txt", storage_path="a.txt"))
            before = document.updated_at
            await asyncio.sleep(0.001)
            document.summary = "done"
            await store.update(document)
            stored = await store.get(document.id)
            return before, stored

        before, stored = _run(scenario())
        assert stored.summary == "done"
        assert stored.updated_at > before

    def test_update_unknown_raises(self):
        async def scenario():
            store = InMemoryRecordStore()
            await store.update(Document(id=99, file_name="x", storage_path="x"))

        with pytest.raises(KeyError):
            _run(scenario())

    def test_list_by_status_newest_first(self):
        async def scenario():
            store = InMemoryRecordStore()
            first = await store.add(Document(file_name="1", storage_path="1"))
            second = await store.add(
                Document(
                    file_name="2",
                    storage_path="2",
                    created_at=first.created_at + timedelta(seconds=1),
                )
            )
            await store.add(
                Document(file_name="3", storage_path="3", status=DocumentStatus.FAILED)
            )
            pending = await store.list_by_status(DocumentStatus.PENDING)
            return [d.id for d in pending], second.id, first.id

        ids, second_id, first_id = _run(scenario())
        assert ids == [second_id, first_id]

    def test_factory_selects_memory_backend(self):
        assert isinstance(get_record_store("memory"), InMemoryRecordStore)


# ---------------------------------------------------------------------------
# Test: SQLAlchemy Store
# ---------------------------------------------------------------------------


class TestSqlAlchemyRecordStore:
    """Round trips through a real async session."""

    def _store(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'records.db'}")
        factory = async_sessionmaker(engine, expire_on_commit=False)
        return engine, SqlAlchemyRecordStore(session_factory=factory)

    def test_add_get_update(self, tmp_path):
        async def scenario():
            engine, store = self._store(tmp_path)
            await create_tables(engine)
            document = await store.add(
                Document(file_name="invoice.pdf", storage_path="2024/invoice.pdf", file_size=10)
            )

            loaded = await store.get(document.id)
            loaded.transition_to(DocumentStatus.QUEUED)
            await store.update(loaded)

            reloaded = await store.get(document.id)
            missing = await store.get(12345)
            await engine.dispose()
            return document, reloaded, missing

        document, reloaded, missing = _run(scenario())
        assert document.id is not None
        assert document.status == DocumentStatus.PENDING
        assert reloaded.status == DocumentStatus.QUEUED
        assert reloaded.retry_count == 0
        assert missing is None

    def test_list_by_status(self, tmp_path):
        async def scenario():
            engine, store = self._store(tmp_path)
            await create_tables(engine)
            for name, status in [
                ("a", DocumentStatus.FAILED),
                ("b", DocumentStatus.PROCESSED),
                ("c", DocumentStatus.FAILED),
            ]:
                await store.add(Document(file_name=name, storage_path=name, status=status))
            failed = await store.list_by_status(DocumentStatus.FAILED)
            await engine.dispose()
            return [d.file_name for d in failed]

        assert sorted(_run(scenario())) == ["a", "c"]

    def test_failed_update_persists_error_fields(self, tmp_path):
        async def scenario():
            engine, store = self._store(tmp_path)
            await create_tables(engine)
            document = await store.add(
                Document(file_name="x", storage_path="x", status=DocumentStatus.PROCESSING)
            )
            document.transition_to(DocumentStatus.FAILED)
            document.error_message = "Not found: x"
            document.retry_count += 1
            await store.update(document)
            stored = await store.get(document.id)
            await engine.dispose()
            return stored

        stored = _run(scenario())
        assert stored.status == DocumentStatus.FAILED
        assert stored.error_message == "Not found: x"
        assert stored.retry_count == 1
