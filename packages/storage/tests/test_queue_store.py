"""Tests for QueueStore - manual ingestion queue operations.

Tests cover:
- add: insert, re-queue of finished entries, active duplicates
- claim_pending: ordering by priority then queue time
- update_status: processed_at and retry_count handling, missing rows
- get_stats: zero-filled counts plus total
- delete_finished: status groups, DELETE result parsing
- retry_failed: reset under max retries
- Error propagation as PersistenceError
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from libris_common import DuplicateRecordError, NotFoundError, PersistenceError
from libris_contracts import QueueStatus
from libris_storage.queue_store import QueueStore

pytestmark = pytest.mark.unit


def _make_mock_pool(conn_mock):
    """Create a mock connection pool wrapping the given connection mock."""
    pool = MagicMock()
    ctx = AsyncMock()
    ctx.__aenter__ = AsyncMock(return_value=conn_mock)
    ctx.__aexit__ = AsyncMock(return_value=False)
    pool.acquire.return_value = ctx
    return pool


def _entry_row(**overrides) -> dict:
    row = {
        "id": uuid4(),
        "identifier": "meditations00marc",
        "source": "internet_archive",
        "status": "pending",
        "priority": 0,
        "metadata": {"title": "Meditations"},
        "error_message": None,
        "book_id": None,
        "added_by": "admin",
        "retry_count": 0,
        "queued_at": datetime.now(timezone.utc),
        "processed_at": None,
    }
    row.update(overrides)
    return row


# ============================================================================
# add
# ============================================================================


class TestAdd:
    """Tests for QueueStore.add()."""

    async def test_add_returns_entry(self):
        """A new pair is inserted as pending."""
        conn = AsyncMock()
        conn.fetchrow = AsyncMock(return_value=_entry_row(priority=10))
        store = QueueStore(_make_mock_pool(conn))

        entry = await store.add("meditations00marc", "internet_archive", {"title": "Meditations"}, 10, "admin")

        assert entry.status == QueueStatus.PENDING
        assert entry.priority == 10
        args = conn.fetchrow.call_args[0]
        assert args[1:] == ("meditations00marc", "internet_archive", 10, {"title": "Meditations"}, "admin")

    async def test_metadata_defaults_to_empty(self):
        """Missing metadata is stored as an empty object."""
        conn = AsyncMock()
        conn.fetchrow = AsyncMock(return_value=_entry_row(metadata={}))
        store = QueueStore(_make_mock_pool(conn))

        await store.add("x", "manual")

        assert conn.fetchrow.call_args[0][4] == {}

    async def test_active_duplicate(self):
        """Conflict with a pending/processing row updates nothing."""
        conn = AsyncMock()
        conn.fetchrow = AsyncMock(return_value=None)
        store = QueueStore(_make_mock_pool(conn))

        with pytest.raises(DuplicateRecordError, match="Already in queue"):
            await store.add("meditations00marc", "internet_archive")

    async def test_requeue_clause_present(self):
        """Finished entries are re-queued through the upsert."""
        conn = AsyncMock()
        conn.fetchrow = AsyncMock(return_value=_entry_row())
        store = QueueStore(_make_mock_pool(conn))

        await store.add("x", "manual")

        sql = conn.fetchrow.call_args[0][0]
        assert "ON CONFLICT (identifier, source) DO UPDATE" in sql
        assert "NOT IN ('pending', 'processing')" in sql

    async def test_db_error_wrapped(self):
        """Driver errors become PersistenceError."""
        conn = AsyncMock()
        conn.fetchrow = AsyncMock(side_effect=RuntimeError("connection reset"))
        store = QueueStore(_make_mock_pool(conn))

        with pytest.raises(PersistenceError, match="connection reset"):
            await store.add("x", "manual")


# ============================================================================
# claim_pending
# ============================================================================


class TestClaimPending:
    """Tests for QueueStore.claim_pending()."""

    async def test_ordering(self):
        """Higher priority first, then older entries first."""
        now = datetime.now(timezone.utc)
        rows = [
            _entry_row(identifier="late-low", priority=0, queued_at=now),
            _entry_row(identifier="early-low", priority=0, queued_at=now - timedelta(hours=1)),
            _entry_row(identifier="high", priority=5, queued_at=now),
        ]
        conn = AsyncMock()
        conn.fetch = AsyncMock(return_value=rows)
        store = QueueStore(_make_mock_pool(conn))

        entries = await store.claim_pending(limit=3)

        assert [e.identifier for e in entries] == ["high", "early-low", "late-low"]
        sql, limit = conn.fetch.call_args[0]
        assert "SKIP LOCKED" in sql
        assert limit == 3

    async def test_empty_queue(self):
        """No pending rows yields an empty list."""
        conn = AsyncMock()
        conn.fetch = AsyncMock(return_value=[])
        store = QueueStore(_make_mock_pool(conn))

        assert await store.claim_pending() == []


# ============================================================================
# update_status
# ============================================================================


class TestUpdateStatus:
    """Tests for QueueStore.update_status()."""

    async def test_completed_sets_processed_at_and_book(self):
        """Completion stamps processed_at and links the book."""
        conn = AsyncMock()
        conn.execute = AsyncMock(return_value="UPDATE 1")
        store = QueueStore(_make_mock_pool(conn))
        book_id = uuid4()

        await store.update_status(uuid4(), QueueStatus.COMPLETED, book_id=book_id)

        sql = conn.execute.call_args[0][0]
        assert "processed_at = NOW()" in sql
        assert "book_id = $3" in sql
        assert "retry_count" not in sql
        assert conn.execute.call_args[0][3] == book_id

    async def test_failed_increments_retry_count(self):
        """Failures bump retry_count and keep the message."""
        conn = AsyncMock()
        conn.execute = AsyncMock(return_value="UPDATE 1")
        store = QueueStore(_make_mock_pool(conn))

        await store.update_status(uuid4(), QueueStatus.FAILED, error_message="No PDF available")

        sql = conn.execute.call_args[0][0]
        assert "retry_count = retry_count + 1" in sql
        assert conn.execute.call_args[0][2] == "No PDF available"

    async def test_processing_leaves_processed_at(self):
        """Non-terminal statuses do not stamp processed_at."""
        conn = AsyncMock()
        conn.execute = AsyncMock(return_value="UPDATE 1")
        store = QueueStore(_make_mock_pool(conn))

        await store.update_status(uuid4(), QueueStatus.PROCESSING)

        assert "processed_at" not in conn.execute.call_args[0][0]

    async def test_missing_item(self):
        """UPDATE 0 raises NotFoundError."""
        conn = AsyncMock()
        conn.execute = AsyncMock(return_value="UPDATE 0")
        store = QueueStore(_make_mock_pool(conn))

        with pytest.raises(NotFoundError):
            await store.update_status(uuid4(), QueueStatus.COMPLETED)


# ============================================================================
# get_stats / delete_finished / retry_failed
# ============================================================================


class TestStats:
    """Tests for QueueStore.get_stats()."""

    async def test_zero_filled(self):
        """Missing statuses count as zero and total sums everything."""
        conn = AsyncMock()
        conn.fetch = AsyncMock(
            return_value=[{"status": "pending", "count": 4}, {"status": "failed", "count": 1}]
        )
        store = QueueStore(_make_mock_pool(conn))

        stats = await store.get_stats()

        assert stats == {"pending": 4, "processing": 0, "completed": 0, "failed": 1, "total": 5}


class TestDeleteFinished:
    """Tests for QueueStore.delete_finished()."""

    @pytest.mark.parametrize(
        "status,expected",
        [
            ("completed", ["completed"]),
            ("failed", ["failed"]),
            ("all", ["completed", "failed"]),
        ],
    )
    async def test_status_groups(self, status, expected):
        """Each clear mode targets only finished statuses."""
        conn = AsyncMock()
        conn.execute = AsyncMock(return_value="DELETE 3")
        store = QueueStore(_make_mock_pool(conn))

        deleted = await store.delete_finished(status, older_than_days=7)

        assert deleted == 3
        assert conn.execute.call_args[0][1] == expected
        assert conn.execute.call_args[0][2] == 7

    async def test_invalid_status(self):
        """Active statuses cannot be cleared."""
        store = QueueStore(_make_mock_pool(AsyncMock()))

        with pytest.raises(ValueError):
            await store.delete_finished("pending")


class TestRetryFailed:
    """Tests for QueueStore.retry_failed()."""

    async def test_reset_count(self):
        """Returns the number of rows reset."""
        conn = AsyncMock()
        conn.execute = AsyncMock(return_value="UPDATE 2")
        store = QueueStore(_make_mock_pool(conn))

        assert await store.retry_failed(max_retries=3) == 2
        assert conn.execute.call_args[0][1] == 3

    async def test_error_wrapped(self):
        """Driver errors become PersistenceError."""
        conn = AsyncMock()
        conn.execute = AsyncMock(side_effect=RuntimeError("boom"))
        store = QueueStore(_make_mock_pool(conn))

        with pytest.raises(PersistenceError):
            await store.retry_failed()
