"""Scheduled ingestion orchestrator.

One run claims its source, resumes from the stored page, and walks catalog
pages within a time budget:

    fetch page -> filter_new -> for each new candidate:
        classify -> filter -> validate PDF -> upload -> insert

The budget is checked before each page and each book. Per-book failures are
recorded and never abort the batch. The outcome is persisted to the source's
state and to the run's log row whatever happens.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from libris_catalog import InternetArchiveFetcher
from libris_common import (
    PersistenceError,
    SourcePausedError,
    get_logger,
    sanitize_error_message,
)
from libris_contracts import (
    Candidate,
    CatalogSource,
    FilterConfig,
    IngestionOptions,
    IngestionResult,
    IngestionState,
    RunError,
    RunStatus,
)

from libris_pipeline.book_processor import BookOutcome, ingest_candidate
from libris_pipeline.context import PipelineContext
from libris_pipeline.dedup import DeduplicationEngine
from libris_pipeline.ingestion_filter import filter_summary, has_active_filters, load_filter_config
from libris_pipeline.state_manager import StateManager

logger = get_logger(__name__)

MAX_RECORDED_ERRORS = 50
JOB_ERROR_IDENTIFIER = "job"

Clock = Callable[[], float]


def record_error(result: IngestionResult, identifier: str, error: object) -> None:
    """Append a sanitized error, keeping at most ``MAX_RECORDED_ERRORS``."""
    if len(result.errors) >= MAX_RECORDED_ERRORS:
        return
    result.errors.append(
        RunError(
            identifier=identifier,
            error=sanitize_error_message(error),
            timestamp=datetime.now(timezone.utc),
        )
    )


def overall_status(result: IngestionResult, aborted: bool = False) -> RunStatus:
    """Run status from the counters.

    - failed: aborted before any book, or failures with nothing added
    - partial: failures with some added, a timeout, or a later abort
    - completed: otherwise
    """
    if aborted and result.processed == 0:
        return RunStatus.FAILED
    if result.failed > 0 and result.added == 0:
        return RunStatus.FAILED
    if result.failed > 0 or result.timed_out or aborted:
        return RunStatus.PARTIAL
    return RunStatus.COMPLETED


class _Budget:
    def __init__(self, seconds: float, clock: Clock):
        self._clock = clock
        self._started = clock()
        self._seconds = seconds

    @property
    def elapsed(self) -> float:
        return self._clock() - self._started

    def exhausted(self) -> bool:
        return self.elapsed >= self._seconds


def _batch_fetcher(ctx: PipelineContext, source: str) -> InternetArchiveFetcher:
    fetcher = ctx.fetcher(CatalogSource(source))
    if not isinstance(fetcher, InternetArchiveFetcher):
        raise ValueError(f"Scheduled ingestion is not supported for source: {source}")
    return fetcher


async def run_ingestion_job(
    ctx: PipelineContext,
    options: Optional[IngestionOptions] = None,
    clock: Clock = time.monotonic,
) -> IngestionResult:
    """Run one scheduled ingestion pass.

    Args:
        ctx: Pipeline context
        options: Batch size, limits, dry run and start page
        clock: Monotonic clock used for the time budget

    Returns:
        Aggregate IngestionResult. A paused source yields ``completed`` with
        zero counts and a note.

    Raises:
        RunAlreadyInProgressError: If another run holds the source
        ValueError: If the source has no page-based fetcher

    Example:
        >>> result = await run_ingestion_job(ctx, IngestionOptions(batch_size=10, dry_run=True))
        >>> print(result.status, result.added, result.skipped)
    """
    options = options or IngestionOptions()
    budget = _Budget(options.time_budget_seconds, clock)
    source = options.source
    fetcher = _batch_fetcher(ctx, source)
    state_manager = StateManager(ctx.states)

    claim: Optional[IngestionState] = None
    if options.dry_run:
        state = await state_manager.get_state(source)
    else:
        try:
            claim = await state_manager.claim_run(source)
        except SourcePausedError as e:
            logger.info("ingestion_skipped_paused", source=source)
            return IngestionResult(status=RunStatus.COMPLETED, note=str(e))
        state = claim

    result = IngestionResult(dry_run=options.dry_run)
    page = options.start_page or state.last_page
    result.next_page = page
    aborted = False

    logger.info(
        "ingestion_started",
        source=source,
        page=page,
        batch_size=options.batch_size,
        dry_run=options.dry_run,
    )

    try:
        result.job_id = await ctx.ingestion_logs.open_run(source, "scheduled", options.dry_run)

        filter_config = load_filter_config(ctx.settings)
        if has_active_filters(filter_config):
            logger.info("ingestion_filters_active", summary=filter_summary(filter_config))

        aborted = await _process_pages(ctx, fetcher, options, filter_config, budget, page, result)

    except Exception as e:
        logger.error("ingestion_failed", source=source, error=str(e))
        record_error(result, JOB_ERROR_IDENTIFIER, e)
        aborted = True

    result.status = overall_status(result, aborted)
    result.duration_seconds = round(budget.elapsed, 3)

    await _persist_outcome(ctx, state_manager, claim, result)

    logger.info(
        "ingestion_complete",
        source=source,
        status=result.status.value,
        processed=result.processed,
        added=result.added,
        skipped=result.skipped,
        failed=result.failed,
        filtered=result.filtered,
        next_page=result.next_page,
        timed_out=result.timed_out,
        duration_seconds=result.duration_seconds,
    )
    return result


async def _process_pages(
    ctx: PipelineContext,
    fetcher: InternetArchiveFetcher,
    options: IngestionOptions,
    filter_config: FilterConfig,
    budget: _Budget,
    page: int,
    result: IngestionResult,
) -> bool:
    """Walk pages until the budget, the book limit or the catalog runs out.

    Returns:
        True if a page fetch failed after books were processed
    """
    dedup = DeduplicationEngine(ctx.books)
    delay = options.delay_between_books_ms / 1000

    while True:
        if budget.exhausted():
            result.timed_out = True
            logger.warning("ingestion_time_budget_exhausted", page=page)
            return False
        if options.max_books is not None and result.processed >= options.max_books:
            return False

        try:
            catalog_page = await fetcher.fetch_batch(page=page, batch_size=options.batch_size)
        except Exception as e:
            if result.processed == 0:
                raise
            logger.error("ingestion_page_failed", page=page, error=str(e))
            record_error(result, JOB_ERROR_IDENTIFIER, e)
            return True

        batch = catalog_page.candidates
        new = await dedup.filter_new(batch)
        result.skipped += len(batch) - len(new)

        finished_page = True
        for index, candidate in enumerate(new):
            if budget.exhausted():
                result.timed_out = True
                finished_page = False
                logger.warning("ingestion_time_budget_exhausted", page=page)
                break
            if options.max_books is not None and result.processed >= options.max_books:
                finished_page = False
                break

            result.processed += 1
            result.last_cursor = candidate.identifier
            if options.dry_run:
                result.added += 1
                continue

            await _process_one(ctx, candidate, filter_config, result)

            if delay > 0 and index < len(new) - 1:
                await asyncio.sleep(delay)

        if not finished_page:
            result.next_page = page
            return False

        if catalog_page.fetched < options.batch_size:
            logger.info("ingestion_catalog_exhausted", page=page, fetched=catalog_page.fetched)
            result.next_page = 1
            return False

        page += 1
        result.next_page = page


async def _process_one(
    ctx: PipelineContext,
    candidate: Candidate,
    filter_config: FilterConfig,
    result: IngestionResult,
) -> None:
    try:
        processed = await ingest_candidate(ctx, candidate, filter_config, result.job_id)
    except Exception as e:
        result.failed += 1
        record_error(result, candidate.identifier, e)
        logger.warning("ingestion_book_failed", identifier=candidate.identifier, error=str(e))
        return

    if processed.outcome == BookOutcome.ADDED:
        result.added += 1
    elif processed.outcome == BookOutcome.FILTERED:
        result.filtered += 1
    else:
        result.skipped += 1


async def _persist_outcome(
    ctx: PipelineContext,
    state_manager: StateManager,
    claim: Optional[IngestionState],
    result: IngestionResult,
) -> None:
    """Release the claim and close the run log; a failed write is recorded on the result."""
    if claim is not None:
        try:
            updated = await state_manager.complete_run(claim, result)
        except PersistenceError as e:
            logger.error("ingestion_state_not_saved", source=claim.source, error=str(e))
            record_error(result, JOB_ERROR_IDENTIFIER, e)
        else:
            if updated is None:
                logger.warning("ingestion_claim_lost", source=claim.source)

    if result.job_id is not None:
        try:
            await ctx.ingestion_logs.close_run(result.job_id, result)
        except PersistenceError as e:
            logger.error("ingestion_log_not_saved", job_id=str(result.job_id), error=str(e))
            record_error(result, JOB_ERROR_IDENTIFIER, e)
