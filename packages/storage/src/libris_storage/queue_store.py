"""QueueStore - CRUD operations for the manual ``ingestion_queue`` table.

Admin-selected books wait here until ``process_queue`` picks them up.
Supports status tracking, priority ordering, age-based cleanup and retry.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

import asyncpg
from libris_common import DuplicateRecordError, NotFoundError, PersistenceError, get_logger
from libris_contracts import QueueEntry, QueueStatus

logger = get_logger(__name__)

ACTIVE_STATUSES = (QueueStatus.PENDING.value, QueueStatus.PROCESSING.value)
CLEARABLE_STATUSES = {
    "completed": [QueueStatus.COMPLETED.value],
    "failed": [QueueStatus.FAILED.value],
    "all": [QueueStatus.COMPLETED.value, QueueStatus.FAILED.value],
}


def _row_to_entry(row: asyncpg.Record) -> QueueEntry:
    data = dict(row)
    data.pop("retry_count", None)
    return QueueEntry(**data)


class QueueStore:
    """Storage operations for the ingestion queue."""

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def add(
        self,
        identifier: str,
        source: str,
        metadata: Optional[dict[str, Any]] = None,
        priority: int = 0,
        added_by: Optional[str] = None,
    ) -> QueueEntry:
        """Add a book to the queue as ``pending``.

        A finished (completed/failed) entry for the same pair is re-queued in
        place; an active one is a duplicate.

        Args:
            identifier: Source-specific identifier
            source: Catalog source key
            metadata: Metadata captured at selection time
            priority: Processing priority (higher = first)
            added_by: Admin who queued the book

        Returns:
            Created or re-queued entry

        Raises:
            DuplicateRecordError: If the pair is already pending/processing
            PersistenceError: If the insert fails

        Example:
            >>> entry = await store.add("meditations00marc", "internet_archive", priority=10)
        """
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO ingestion_queue (
                        identifier, source, status, priority, metadata, added_by
                    ) VALUES ($1, $2, 'pending', $3, $4, $5)
                    ON CONFLICT (identifier, source) DO UPDATE
                    SET status = 'pending', priority = EXCLUDED.priority,
                        metadata = EXCLUDED.metadata, added_by = EXCLUDED.added_by,
                        error_message = NULL, processed_at = NULL, queued_at = NOW()
                    WHERE ingestion_queue.status NOT IN ('pending', 'processing')
                    RETURNING *
                    """,
                    identifier,
                    source,
                    priority,
                    metadata or {},
                    added_by,
                )

        except asyncpg.UniqueViolationError as e:
            raise DuplicateRecordError(f"Already in queue: {identifier}") from e
        except Exception as e:
            logger.error("queue_add_failed", identifier=identifier, error=str(e))
            raise PersistenceError(f"Failed to add to queue: {e}") from e

        if row is None:
            logger.warning("queue_item_duplicate", identifier=identifier, source=source)
            raise DuplicateRecordError(f"Already in queue: {identifier}")

        logger.info(
            "queue_item_added",
            queue_id=str(row["id"]),
            identifier=identifier,
            source=source,
        )
        return _row_to_entry(row)

    async def find_active(self, identifier: str, source: str) -> Optional[QueueEntry]:
        """Pending or processing entry for the pair, if any."""
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT * FROM ingestion_queue
                    WHERE identifier = $1 AND source = $2 AND status = ANY($3::text[])
                    """,
                    identifier,
                    source,
                    list(ACTIVE_STATUSES),
                )
                return _row_to_entry(row) if row else None
        except Exception as e:
            logger.error("queue_lookup_failed", identifier=identifier, error=str(e))
            raise PersistenceError(f"Failed to look up queue item: {e}") from e

    async def claim_pending(self, limit: int = 10) -> list[QueueEntry]:
        """Move up to ``limit`` pending entries to ``processing`` and return them.

        Entries are taken by priority (desc) then queue time (asc). Rows locked
        by another worker are skipped.
        """
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    UPDATE ingestion_queue q
                    SET status = 'processing'
                    FROM (
                        SELECT id FROM ingestion_queue
                        WHERE status = 'pending'
                        ORDER BY priority DESC, queued_at ASC
                        LIMIT $1
                        FOR UPDATE SKIP LOCKED
                    ) picked
                    WHERE q.id = picked.id
                    RETURNING q.*
                    """,
                    limit,
                )
        except Exception as e:
            logger.error("queue_claim_failed", error=str(e))
            raise PersistenceError(f"Failed to get pending items: {e}") from e

        entries = [_row_to_entry(row) for row in rows]
        entries.sort(key=lambda e: (-e.priority, e.queued_at.timestamp() if e.queued_at else 0.0))
        return entries

    async def update_status(
        self,
        queue_id: UUID,
        status: QueueStatus,
        error_message: Optional[str] = None,
        book_id: Optional[UUID] = None,
    ) -> None:
        """Update queue item status.

        Terminal statuses stamp ``processed_at``; failures bump ``retry_count``.

        Raises:
            NotFoundError: If the item does not exist
        """
        set_clauses = ["status = $1", "error_message = $2"]
        params: list[Any] = [status.value, error_message]

        if book_id is not None:
            params.append(book_id)
            set_clauses.append(f"book_id = ${len(params)}")

        if status in (QueueStatus.COMPLETED, QueueStatus.FAILED):
            set_clauses.append("processed_at = NOW()")

        if status == QueueStatus.FAILED:
            set_clauses.append("retry_count = retry_count + 1")

        params.append(queue_id)

        try:
            async with self._pool.acquire() as conn:
                result = await conn.execute(
                    f"""
                    UPDATE ingestion_queue
                    SET {', '.join(set_clauses)}
                    WHERE id = ${len(params)}
                    """,
                    *params,
                )

                if result == "UPDATE 0":
                    raise NotFoundError(f"Queue item not found: {queue_id}")

                logger.info("queue_status_updated", queue_id=str(queue_id), status=status.value)

        except NotFoundError:
            raise
        except Exception as e:
            logger.error("queue_update_failed", queue_id=str(queue_id), error=str(e))
            raise PersistenceError(f"Failed to update queue status: {e}") from e

    async def list_entries(
        self,
        status: Optional[QueueStatus] = None,
        limit: int = 50,
    ) -> list[QueueEntry]:
        """Entries in processing order, optionally filtered by status."""
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT * FROM ingestion_queue
                    WHERE $1::text IS NULL OR status = $1
                    ORDER BY priority DESC, queued_at ASC
                    LIMIT $2
                    """,
                    status.value if status else None,
                    limit,
                )
                return [_row_to_entry(row) for row in rows]
        except Exception as e:
            logger.error("queue_list_failed", error=str(e))
            raise PersistenceError(f"Failed to list queue: {e}") from e

    async def get_stats(self) -> dict[str, int]:
        """Counts by status plus a total.

        Example:
            >>> stats = await store.get_stats()
            >>> print(f"Pending: {stats['pending']}")
        """
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT status, COUNT(*) AS count FROM ingestion_queue GROUP BY status"
                )
        except Exception as e:
            logger.error("queue_stats_failed", error=str(e))
            raise PersistenceError(f"Failed to get queue stats: {e}") from e

        stats = {s.value: 0 for s in QueueStatus}
        for row in rows:
            stats[row["status"]] = row["count"]
        stats["total"] = sum(stats.values())
        return stats

    async def delete_finished(self, status: str = "completed", older_than_days: int = 7) -> int:
        """Delete finished items older than ``older_than_days``.

        Args:
            status: "completed", "failed" or "all" (both); active items are never cleared
            older_than_days: Age threshold based on ``processed_at``

        Returns:
            Number of items deleted
        """
        if status not in CLEARABLE_STATUSES:
            raise ValueError(f"Invalid status to clear: {status}")

        try:
            async with self._pool.acquire() as conn:
                result = await conn.execute(
                    """
                    DELETE FROM ingestion_queue
                    WHERE status = ANY($1::text[])
                    AND COALESCE(processed_at, queued_at) < NOW() - make_interval(days => $2)
                    """,
                    CLEARABLE_STATUSES[status],
                    older_than_days,
                )

                # Parse "DELETE N" result
                deleted = int(result.split()[-1]) if result else 0

                if deleted > 0:
                    logger.info("queue_cleanup", deleted=deleted, status=status, older_than_days=older_than_days)

                return deleted

        except Exception as e:
            logger.error("queue_cleanup_failed", error=str(e))
            raise PersistenceError(f"Failed to cleanup queue: {e}") from e

    async def retry_failed(self, max_retries: int = 3) -> int:
        """Reset failed items under ``max_retries`` back to pending.

        Returns:
            Number of items reset
        """
        try:
            async with self._pool.acquire() as conn:
                result = await conn.execute(
                    """
                    UPDATE ingestion_queue
                    SET status = 'pending', error_message = NULL, processed_at = NULL
                    WHERE status = 'failed' AND retry_count < $1
                    """,
                    max_retries,
                )

                reset = int(result.split()[-1]) if result else 0

                if reset > 0:
                    logger.info("queue_retry_reset", reset=reset)

                return reset

        except Exception as e:
            logger.error("queue_retry_failed", error=str(e))
            raise PersistenceError(f"Failed to retry failed items: {e}") from e
