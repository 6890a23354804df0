"""JobStore - extraction job rows, status transitions and job logs.

Status changes go through ``transition``: the legality check and the
mutation are a single conditional UPDATE, so two concurrent callers can
never both succeed from the same pre-state.
"""

from typing import Any, Iterable, Optional
from uuid import UUID

import asyncpg
from libris_common import NotFoundError, PersistenceError, StateTransitionError, get_logger
from libris_contracts import ExtractionJob, ExtractionLog, JobStatus, LogLevel

logger = get_logger(__name__)

MAX_LOG_LIMIT = 500


def _row_to_job(row: asyncpg.Record) -> ExtractionJob:
    data = dict(row)
    data.pop("previous_status", None)
    return ExtractionJob(**data)


def _row_to_log(row: asyncpg.Record) -> ExtractionLog:
    return ExtractionLog(**dict(row))


async def _insert_log(
    conn: asyncpg.Connection,
    job_id: UUID,
    level: LogLevel,
    message: str,
    details: Optional[dict[str, Any]] = None,
) -> asyncpg.Record:
    row = await conn.fetchrow(
        """
        INSERT INTO extraction_logs (job_id, level, message, details)
        VALUES ($1, $2, $3, $4)
        RETURNING *
        """,
        job_id,
        level.value,
        message,
        details,
    )
    if level == LogLevel.ERROR:
        await conn.execute(
            "UPDATE extraction_jobs SET error_count = error_count + 1 WHERE id = $1",
            job_id,
        )
    return row


class JobStore:
    """Storage operations for ``extraction_jobs`` and ``extraction_logs``."""

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def create(
        self,
        source_url: str,
        max_time_minutes: int,
        max_books: int,
        created_by: Optional[str] = None,
    ) -> ExtractionJob:
        """Create a ``pending`` job and log its creation.

        Raises:
            PersistenceError: If the insert fails
        """
        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        """
                        INSERT INTO extraction_jobs (
                            source_url, status, max_time_minutes, max_books, created_by
                        ) VALUES ($1, 'pending', $2, $3, $4)
                        RETURNING *
                        """,
                        source_url,
                        max_time_minutes,
                        max_books,
                        created_by,
                    )
                    await _insert_log(
                        conn,
                        row["id"],
                        LogLevel.INFO,
                        "Extraction job created",
                        {
                            "source_url": source_url,
                            "max_time_minutes": max_time_minutes,
                            "max_books": max_books,
                        },
                    )

                logger.info("extraction_job_created", job_id=str(row["id"]), source_url=source_url)
                return _row_to_job(row)

        except Exception as e:
            logger.error("extraction_job_create_failed", source_url=source_url, error=str(e))
            raise PersistenceError(f"Failed to create extraction job: {e}") from e

    async def get(self, job_id: UUID) -> Optional[ExtractionJob]:
        """Return a job, or None if it does not exist."""
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow("SELECT * FROM extraction_jobs WHERE id = $1", job_id)
                return _row_to_job(row) if row else None
        except Exception as e:
            logger.error("extraction_job_get_failed", job_id=str(job_id), error=str(e))
            raise PersistenceError(f"Failed to get extraction job: {e}") from e

    async def list_jobs(self, created_by: Optional[str] = None, limit: int = 50) -> list[ExtractionJob]:
        """Job history, newest first, optionally for one admin."""
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT * FROM extraction_jobs
                    WHERE $1::text IS NULL OR created_by = $1
                    ORDER BY created_at DESC
                    LIMIT $2
                    """,
                    created_by,
                    limit,
                )
                return [_row_to_job(row) for row in rows]
        except Exception as e:
            logger.error("extraction_job_list_failed", error=str(e))
            raise PersistenceError(f"Failed to list extraction jobs: {e}") from e

    async def transition(
        self,
        job_id: UUID,
        to_status: JobStatus,
        allowed_from: Iterable[JobStatus],
    ) -> ExtractionJob:
        """Atomically move a job to ``to_status`` if its current status allows it.

        ``started_at`` is set on the first move to running and never reset;
        ``completed_at`` is set on entering a terminal state. Time spent in
        ``paused`` is accumulated in ``paused_seconds``.

        Args:
            job_id: Job UUID
            to_status: Requested status
            allowed_from: Statuses from which ``to_status`` is legal

        Returns:
            Updated job

        Raises:
            StateTransitionError: If the current status does not allow the move
            NotFoundError: If the job does not exist
            PersistenceError: If the query fails
        """
        from_values = [s.value for s in allowed_from]

        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        """
                        UPDATE extraction_jobs j
                        SET status = $2::text,
                            started_at = CASE
                                WHEN $2::text = 'running' AND j.started_at IS NULL THEN NOW()
                                ELSE j.started_at
                            END,
                            completed_at = CASE
                                WHEN $2::text IN ('completed', 'stopped', 'failed') THEN NOW()
                                ELSE j.completed_at
                            END,
                            paused_seconds = CASE
                                WHEN old.status = 'paused' AND j.paused_at IS NOT NULL
                                    THEN j.paused_seconds + EXTRACT(EPOCH FROM (NOW() - j.paused_at))
                                ELSE j.paused_seconds
                            END,
                            paused_at = CASE WHEN $2::text = 'paused' THEN NOW() ELSE NULL END
                        FROM (
                            SELECT id, status FROM extraction_jobs WHERE id = $1 FOR UPDATE
                        ) old
                        WHERE j.id = old.id AND old.status = ANY($3::text[])
                        RETURNING j.*, old.status AS previous_status
                        """,
                        job_id,
                        to_status.value,
                        from_values,
                    )

                    if row is None:
                        current = await conn.fetchval(
                            "SELECT status FROM extraction_jobs WHERE id = $1", job_id
                        )
                        if current is None:
                            raise NotFoundError(f"Job not found: {job_id}")
                        raise StateTransitionError(str(job_id), current, to_status.value)

                    previous = row["previous_status"]
                    await _insert_log(
                        conn,
                        job_id,
                        LogLevel.INFO,
                        f"Job status changed from {previous} to {to_status.value}",
                        {"previous_status": previous, "new_status": to_status.value},
                    )

                logger.info(
                    "extraction_job_transition",
                    job_id=str(job_id),
                    previous_status=previous,
                    new_status=to_status.value,
                )
                return _row_to_job(row)

        except (StateTransitionError, NotFoundError):
            raise
        except Exception as e:
            logger.error("extraction_job_transition_failed", job_id=str(job_id), error=str(e))
            raise PersistenceError(f"Failed to update job status: {e}") from e

    async def set_books_queued(self, job_id: UUID, books_queued: int) -> None:
        """Record how many PDFs the crawl discovered so far."""
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(
                    "UPDATE extraction_jobs SET books_queued = $2 WHERE id = $1",
                    job_id,
                    books_queued,
                )
        except Exception as e:
            logger.error("extraction_job_queue_update_failed", job_id=str(job_id), error=str(e))
            raise PersistenceError(f"Failed to update queued count: {e}") from e

    async def delete(self, job_id: UUID) -> bool:
        """Delete a job that is not running; books and logs cascade.

        Returns:
            True if deleted, False if the job does not exist

        Raises:
            StateTransitionError: If the job is currently running
        """
        try:
            async with self._pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM extraction_jobs WHERE id = $1 AND status <> 'running'",
                    job_id,
                )
                deleted = int(result.split()[-1]) if result else 0
                if deleted:
                    logger.info("extraction_job_deleted", job_id=str(job_id))
                    return True

                current = await conn.fetchval("SELECT status FROM extraction_jobs WHERE id = $1", job_id)
                if current is not None:
                    raise StateTransitionError(str(job_id), current, "deleted")
                return False

        except StateTransitionError:
            raise
        except Exception as e:
            logger.error("extraction_job_delete_failed", job_id=str(job_id), error=str(e))
            raise PersistenceError(f"Failed to delete extraction job: {e}") from e

    async def add_log(
        self,
        job_id: UUID,
        level: LogLevel,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> ExtractionLog:
        """Append a job log entry; error entries bump ``error_count``."""
        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    row = await _insert_log(conn, job_id, level, message, details)
                return _row_to_log(row)
        except Exception as e:
            logger.error("extraction_log_failed", job_id=str(job_id), error=str(e))
            raise PersistenceError(f"Failed to write job log: {e}") from e

    async def get_logs(self, job_id: UUID, limit: int = 100) -> list[ExtractionLog]:
        """Most recent log entries for a job, newest first."""
        limit = max(1, min(limit, MAX_LOG_LIMIT))
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT * FROM extraction_logs
                    WHERE job_id = $1
                    ORDER BY created_at DESC
                    LIMIT $2
                    """,
                    job_id,
                    limit,
                )
                return [_row_to_log(row) for row in rows]
        except Exception as e:
            logger.error("extraction_log_list_failed", job_id=str(job_id), error=str(e))
            raise PersistenceError(f"Failed to get job logs: {e}") from e
