"""Run history and filter audit trail for scheduled ingestion.

Provides:
- ``ingestion_logs``: one row per run, opened at start and closed with counts
- ``ingestion_filter_stats``: one row per filter decision
"""

from typing import Any, Optional
from uuid import UUID

import asyncpg
from libris_common import PersistenceError, get_logger
from libris_contracts import Candidate, FilterDecision, IngestionResult

logger = get_logger(__name__)


class IngestionLogStore:
    """Storage operations for ``ingestion_logs`` and ``ingestion_filter_stats``."""

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def open_run(self, source: str, job_type: str = "scheduled", dry_run: bool = False) -> UUID:
        """Create a ``running`` log row for a new run.

        Returns:
            Log row id, used as the run's job id
        """
        try:
            async with self._pool.acquire() as conn:
                job_id = await conn.fetchval(
                    """
                    INSERT INTO ingestion_logs (job_type, source, status, dry_run)
                    VALUES ($1, $2, 'running', $3)
                    RETURNING id
                    """,
                    job_type,
                    source,
                    dry_run,
                )
                logger.info("ingestion_log_opened", job_id=str(job_id), source=source)
                return job_id
        except Exception as e:
            logger.error("ingestion_log_open_failed", source=source, error=str(e))
            raise PersistenceError(f"Failed to create ingestion log: {e}") from e

    async def close_run(self, job_id: UUID, result: IngestionResult) -> None:
        """Write the final counts and error list of a run."""
        errors = [e.model_dump(mode="json") for e in result.errors] or None

        try:
            async with self._pool.acquire() as conn:
                status = await conn.execute(
                    """
                    UPDATE ingestion_logs
                    SET status = $2, completed_at = NOW(),
                        books_processed = $3, books_added = $4,
                        books_skipped = $5, books_failed = $6,
                        error_details = $7
                    WHERE id = $1
                    """,
                    job_id,
                    result.status.value,
                    result.processed,
                    result.added,
                    result.skipped,
                    result.failed,
                    errors,
                )
                if status == "UPDATE 0":
                    raise PersistenceError(f"Ingestion log not found: {job_id}")
        except PersistenceError:
            raise
        except Exception as e:
            logger.error("ingestion_log_close_failed", job_id=str(job_id), error=str(e))
            raise PersistenceError(f"Failed to log job result: {e}") from e

    async def recent_runs(self, limit: int = 10) -> list[dict[str, Any]]:
        """Most recent runs, newest first."""
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT * FROM ingestion_logs ORDER BY started_at DESC LIMIT $1",
                    limit,
                )
                return [dict(row) for row in rows]
        except Exception as e:
            logger.error("ingestion_log_list_failed", error=str(e))
            raise PersistenceError(f"Failed to list ingestion logs: {e}") from e

    async def record_filter_decision(
        self,
        job_id: Optional[UUID],
        candidate: Candidate,
        decision: FilterDecision,
    ) -> None:
        """Store one filter decision for auditing."""
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO ingestion_filter_stats (
                        job_id, book_identifier, book_title, book_author,
                        book_genres, filter_result, filter_reason
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                    """,
                    job_id,
                    candidate.identifier,
                    candidate.title,
                    candidate.author,
                    candidate.genres,
                    decision.result_type.value,
                    decision.reason,
                )
        except Exception as e:
            logger.error("filter_decision_log_failed", identifier=candidate.identifier, error=str(e))
            raise PersistenceError(f"Failed to record filter decision: {e}") from e

    async def filter_stats(self, job_id: Optional[UUID] = None) -> dict[str, int]:
        """Counts of filter outcomes, optionally for one run.

        Returns:
            Dict with ``passed``, ``filtered_genre``, ``filtered_author`` and ``total``
        """
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT filter_result, COUNT(*) AS count
                    FROM ingestion_filter_stats
                    WHERE $1::uuid IS NULL OR job_id = $1
                    GROUP BY filter_result
                    """,
                    job_id,
                )
        except Exception as e:
            logger.error("filter_stats_failed", error=str(e))
            raise PersistenceError(f"Failed to get filter stats: {e}") from e

        stats = {"passed": 0, "filtered_genre": 0, "filtered_author": 0}
        for row in rows:
            stats[row["filter_result"]] = row["count"]
        stats["total"] = sum(stats.values())
        return stats
