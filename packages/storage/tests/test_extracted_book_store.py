"""Tests for ExtractedBookStore - extracted books, recount and publish.

Tests cover:
- add: processing status, duplicate PDF per job
- update_status: counter recount in the same transaction, unknown fields
- publish: catalog copy, status change, audit log
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import asyncpg
import pytest

from libris_common import DuplicateRecordError, NotFoundError, PersistenceError
from libris_contracts import ExtractedBookStatus
from libris_storage.extracted_book_store import ExtractedBookStore

pytestmark = pytest.mark.unit


def _make_conn():
    """Connection mock whose transaction() is an async context manager."""
    conn = AsyncMock()
    tx = AsyncMock()
    tx.__aenter__ = AsyncMock(return_value=None)
    tx.__aexit__ = AsyncMock(return_value=False)
    conn.transaction = MagicMock(return_value=tx)
    return conn


def _make_mock_pool(conn_mock):
    """Create a mock connection pool wrapping the given connection mock."""
    pool = MagicMock()
    ctx = AsyncMock()
    ctx.__aenter__ = AsyncMock(return_value=conn_mock)
    ctx.__aexit__ = AsyncMock(return_value=False)
    pool.acquire.return_value = ctx
    return pool


def _book_row(job_id, **overrides) -> dict:
    row = {
        "id": uuid4(),
        "job_id": job_id,
        "title": "Republic",
        "author": None,
        "description": None,
        "synopsis": None,
        "category_id": None,
        "cover_url": None,
        "pdf_url": None,
        "source_pdf_url": "https://example.com/files/republic.pdf",
        "status": "processing",
        "error_message": None,
        "extracted_at": datetime.now(timezone.utc),
        "published_at": None,
    }
    row.update(overrides)
    return row


class TestAdd:
    """Tests for ExtractedBookStore.add()."""

    async def test_add_processing(self):
        """New books start in processing."""
        job_id = uuid4()
        conn = AsyncMock()
        conn.fetchrow = AsyncMock(return_value=_book_row(job_id))
        store = ExtractedBookStore(_make_mock_pool(conn))

        book = await store.add(job_id, "Republic", "https://example.com/files/republic.pdf")

        assert book.status == ExtractedBookStatus.PROCESSING
        assert "'processing'" in conn.fetchrow.call_args[0][0]

    async def test_duplicate_pdf(self):
        """The same PDF URL twice in one job is a duplicate."""
        conn = AsyncMock()
        conn.fetchrow = AsyncMock(side_effect=asyncpg.UniqueViolationError("duplicate key"))
        store = ExtractedBookStore(_make_mock_pool(conn))

        with pytest.raises(DuplicateRecordError):
            await store.add(uuid4(), "Republic", "https://example.com/files/republic.pdf")


class TestUpdateStatus:
    """Tests for ExtractedBookStore.update_status()."""

    async def test_recount_after_completion(self):
        """Completion recounts books_extracted inside the transaction."""
        job_id = uuid4()
        conn = _make_conn()
        row = _book_row(job_id, status="completed", pdf_url="https://storage/books/x.pdf")
        conn.fetchrow = AsyncMock(return_value=row)
        conn.fetchval = AsyncMock(return_value=3)
        store = ExtractedBookStore(_make_mock_pool(conn))

        book, count = await store.update_status(
            row["id"], ExtractedBookStatus.COMPLETED, pdf_url="https://storage/books/x.pdf"
        )

        assert book.status == ExtractedBookStatus.COMPLETED
        assert count == 3
        assert conn.fetchval.call_args[0][1] == job_id
        assert "status IN ('completed', 'published')" in conn.fetchval.call_args[0][0]
        assert "pdf_url = $3" in conn.fetchrow.call_args[0][0]
        conn.transaction.assert_called_once()

    async def test_failure_keeps_counter_consistent(self):
        """Failing a book also recounts, so the counter cannot drift."""
        job_id = uuid4()
        conn = _make_conn()
        row = _book_row(job_id, status="failed", error_message="Invalid PDF")
        conn.fetchrow = AsyncMock(return_value=row)
        conn.fetchval = AsyncMock(return_value=0)
        store = ExtractedBookStore(_make_mock_pool(conn))

        _, count = await store.update_status(row["id"], ExtractedBookStatus.FAILED, error_message="Invalid PDF")

        assert count == 0
        conn.fetchval.assert_called_once()

    async def test_missing_book(self):
        """Unknown book id raises NotFoundError."""
        conn = _make_conn()
        conn.fetchrow = AsyncMock(return_value=None)
        store = ExtractedBookStore(_make_mock_pool(conn))

        with pytest.raises(NotFoundError):
            await store.update_status(uuid4(), ExtractedBookStatus.COMPLETED)

    async def test_unknown_field(self):
        """Only known columns can be updated."""
        store = ExtractedBookStore(_make_mock_pool(_make_conn()))

        with pytest.raises(PersistenceError, match="Unknown"):
            await store.update_status(uuid4(), ExtractedBookStatus.COMPLETED, isbn="123")


class TestPublish:
    """Tests for ExtractedBookStore.publish()."""

    async def test_publish_completed_books(self):
        """Each completed book is copied into the catalog and marked published."""
        job_id = uuid4()
        rows = [
            _book_row(job_id, status="completed", pdf_url="https://storage/a.pdf"),
            _book_row(job_id, status="completed", pdf_url="https://storage/b.pdf", author="Plato"),
        ]
        conn = _make_conn()
        conn.fetch = AsyncMock(return_value=rows)
        conn.fetchval = AsyncMock(return_value=2)
        store = ExtractedBookStore(_make_mock_pool(conn))

        published = await store.publish(job_id)

        assert published == 2
        statements = [c[0][0] for c in conn.execute.call_args_list]
        assert sum("INSERT INTO books" in s for s in statements) == 2
        assert sum("status = 'published'" in s for s in statements) == 2
        log_call = conn.execute.call_args_list[-1][0]
        assert log_call[2] == "Published 2 books to catalog"
        # author falls back for unknown authors
        assert conn.execute.call_args_list[0][0][2] == "Unknown"

    async def test_publish_nothing(self):
        """A job with no completed books publishes zero."""
        conn = _make_conn()
        conn.fetch = AsyncMock(return_value=[])
        conn.fetchval = AsyncMock(return_value=0)
        store = ExtractedBookStore(_make_mock_pool(conn))

        assert await store.publish(uuid4()) == 0
