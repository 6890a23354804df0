"""IngestionStateStore - resumable cursor rows for scheduled ingestion.

One row per catalog source. Rows are created on first use and never deleted.

Overlapping scheduled invocations are serialized by ``claim_run``: a single
conditional UPDATE flips the row to ``running`` only if no live run holds it,
so two invocations can never both advance the cursor from the same page.
"""

from datetime import datetime
from typing import Optional

import asyncpg
from libris_common import PersistenceError, get_logger
from libris_contracts import IngestionState, RunStatus

logger = get_logger(__name__)

DEFAULT_STALE_AFTER_SECONDS = 600


def _row_to_state(row: asyncpg.Record) -> IngestionState:
    return IngestionState(**dict(row))


class IngestionStateStore:
    """Storage operations for the ``ingestion_state`` table."""

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def get_or_create(self, source: str) -> IngestionState:
        """Return the state row for ``source``, creating the default row if missing.

        Raises:
            PersistenceError: If the query fails
        """
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO ingestion_state (source) VALUES ($1)
                    ON CONFLICT (source) DO UPDATE SET source = EXCLUDED.source
                    RETURNING *
                    """,
                    source,
                )
                return _row_to_state(row)
        except Exception as e:
            logger.error("ingestion_state_read_failed", source=source, error=str(e))
            raise PersistenceError(f"Failed to read ingestion state: {e}") from e

    async def claim_run(
        self,
        source: str,
        stale_after_seconds: int = DEFAULT_STALE_AFTER_SECONDS,
    ) -> Optional[IngestionState]:
        """Atomically mark ``source`` as running.

        A run marked ``running`` longer than ``stale_after_seconds`` ago is
        considered dead and may be taken over.

        Args:
            source: Catalog source key
            stale_after_seconds: Age after which a running claim is reclaimable

        Returns:
            Claimed state (``last_run_at`` is the claim token), or None if the
            source is paused or another live run holds it

        Raises:
            PersistenceError: If the query fails
        """
        await self.get_or_create(source)

        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    UPDATE ingestion_state
                    SET last_run_status = 'running',
                        last_run_at = clock_timestamp(),
                        updated_at = NOW()
                    WHERE source = $1
                      AND NOT is_paused
                      AND (
                          last_run_status <> 'running'
                          OR last_run_at IS NULL
                          OR last_run_at < NOW() - make_interval(secs => $2)
                      )
                    RETURNING *
                    """,
                    source,
                    float(stale_after_seconds),
                )
        except Exception as e:
            logger.error("ingestion_claim_failed", source=source, error=str(e))
            raise PersistenceError(f"Failed to claim ingestion run: {e}") from e

        if row is None:
            logger.warning("ingestion_claim_rejected", source=source)
            return None

        state = _row_to_state(row)
        logger.info("ingestion_run_claimed", source=source, last_page=state.last_page)
        return state

    async def complete_run(
        self,
        source: str,
        claimed_at: datetime,
        status: RunStatus,
        next_page: int,
        last_cursor: Optional[str],
        added: int,
        skipped: int,
        failed: int,
    ) -> Optional[IngestionState]:
        """Persist a run's outcome and release the claim.

        The update only applies while this run still holds the claim
        (matching ``last_run_at``).

        Returns:
            Updated state, or None if the claim was lost to another run

        Raises:
            PersistenceError: If the query fails
        """
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    UPDATE ingestion_state
                    SET last_page = $3,
                        last_cursor = $4,
                        total_ingested = total_ingested + $5,
                        last_run_status = $6,
                        last_run_added = $5,
                        last_run_skipped = $7,
                        last_run_failed = $8,
                        updated_at = NOW()
                    WHERE source = $1
                      AND last_run_at = $2
                      AND last_run_status = 'running'
                    RETURNING *
                    """,
                    source,
                    claimed_at,
                    max(1, next_page),
                    last_cursor,
                    added,
                    status.value,
                    skipped,
                    failed,
                )
        except Exception as e:
            logger.error("ingestion_state_update_failed", source=source, error=str(e))
            raise PersistenceError(f"Failed to persist ingestion state: {e}") from e

        if row is None:
            logger.warning("ingestion_claim_lost", source=source)
            return None

        logger.info(
            "ingestion_state_updated",
            source=source,
            status=status.value,
            next_page=next_page,
            added=added,
        )
        return _row_to_state(row)

    async def reset(self, source: str) -> IngestionState:
        """Reset the cursor to page 1 and clear the run status."""
        await self.get_or_create(source)

        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    UPDATE ingestion_state
                    SET last_page = 1, last_cursor = NULL,
                        last_run_status = 'idle', updated_at = NOW()
                    WHERE source = $1
                    RETURNING *
                    """,
                    source,
                )
                logger.info("ingestion_state_reset", source=source)
                return _row_to_state(row)
        except Exception as e:
            logger.error("ingestion_state_reset_failed", source=source, error=str(e))
            raise PersistenceError(f"Failed to reset ingestion state: {e}") from e

    async def set_paused(
        self,
        source: str,
        paused: bool,
        paused_by: Optional[str] = None,
    ) -> IngestionState:
        """Pause or resume scheduled ingestion for ``source``."""
        await self.get_or_create(source)

        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    UPDATE ingestion_state
                    SET is_paused = $2::boolean,
                        paused_at = CASE WHEN $2::boolean THEN NOW() ELSE NULL END,
                        paused_by = CASE WHEN $2::boolean THEN $3::text ELSE NULL END,
                        updated_at = NOW()
                    WHERE source = $1
                    RETURNING *
                    """,
                    source,
                    paused,
                    paused_by,
                )
                logger.info(
                    "ingestion_paused" if paused else "ingestion_resumed",
                    source=source,
                    by=paused_by,
                )
                return _row_to_state(row)
        except Exception as e:
            logger.error("ingestion_pause_update_failed", source=source, error=str(e))
            raise PersistenceError(f"Failed to update pause state: {e}") from e
