"""Per-source ingestion cursor and run claims.

The State Manager is the only writer of ``ingestion_state``. A run claims
its source before fetching anything and releases it with the outcome; two
overlapping runs can never both advance the cursor.
"""

from typing import Optional

from libris_common import RunAlreadyInProgressError, SourcePausedError, get_logger
from libris_contracts import IngestionResult, IngestionState
from libris_storage import DEFAULT_STALE_AFTER_SECONDS, IngestionStateStore

logger = get_logger(__name__)


class StateManager:
    """Resumable cursor management for scheduled ingestion."""

    def __init__(
        self,
        store: IngestionStateStore,
        stale_after_seconds: int = DEFAULT_STALE_AFTER_SECONDS,
    ):
        self._store = store
        self.stale_after_seconds = stale_after_seconds

    async def get_state(self, source: str) -> IngestionState:
        """Current state, created with page 1 on first use."""
        return await self._store.get_or_create(source)

    async def claim_run(self, source: str) -> IngestionState:
        """Take the source for one run.

        Returns:
            Claimed state; its ``last_run_at`` identifies this run

        Raises:
            SourcePausedError: If an operator paused the source
            RunAlreadyInProgressError: If another live run holds the claim
        """
        claimed = await self._store.claim_run(source, self.stale_after_seconds)
        if claimed is not None:
            return claimed

        state = await self._store.get_or_create(source)
        if state.is_paused:
            raise SourcePausedError(f"Ingestion is paused for {source}")
        raise RunAlreadyInProgressError(f"An ingestion run is already in progress for {source}")

    async def complete_run(
        self,
        claim: IngestionState,
        result: IngestionResult,
    ) -> Optional[IngestionState]:
        """Persist a run's outcome and release the claim.

        Returns:
            Updated state, or None if the claim was taken over meanwhile
        """
        return await self._store.complete_run(
            claim.source,
            claim.last_run_at,
            result.status,
            result.next_page,
            result.last_cursor,
            result.added,
            result.skipped,
            result.failed,
        )

    async def reset_state(self, source: str) -> IngestionState:
        return await self._store.reset(source)

    async def pause(self, source: str, paused_by: Optional[str] = None) -> IngestionState:
        return await self._store.set_paused(source, True, paused_by)

    async def resume(self, source: str) -> IngestionState:
        return await self._store.set_paused(source, False)

    async def is_paused(self, source: str) -> bool:
        return (await self._store.get_or_create(source)).is_paused
