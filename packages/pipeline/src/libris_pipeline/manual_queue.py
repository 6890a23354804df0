"""Manual ingestion queue.

Admins queue specific books; ``process_queue`` ingests them one at a time:

    re-check duplicate -> fetch metadata -> classify -> describe ->
    validate + upload PDF -> insert

An entry that fails is marked ``failed`` with its error and never halts the
batch. A status write the store rejects is reported as a failed result too.
"""

import asyncio
from typing import Any, Iterable, Optional

from libris_catalog import InternetArchiveFetcher
from libris_common import (
    DuplicateRecordError,
    IngestionError,
    PersistenceError,
    get_logger,
    sanitize_error_message,
)
from libris_contracts import (
    Candidate,
    CatalogSource,
    QueueEntry,
    QueueResult,
    QueueRunSummary,
    QueueStatus,
)

from libris_pipeline.book_processor import classify_candidate, store_candidate
from libris_pipeline.context import PipelineContext

logger = get_logger(__name__)

VALID_SOURCES = frozenset(
    {
        CatalogSource.INTERNET_ARCHIVE.value,
        CatalogSource.OPEN_LIBRARY.value,
        CatalogSource.GOOGLE_BOOKS.value,
        CatalogSource.MANUAL.value,
    }
)
CLEAR_STATUSES = ("completed", "failed", "all")

DEFAULT_PROCESS_LIMIT = 10
MAX_PROCESS_LIMIT = 50
MAX_STATUS_LIMIT = 100
DELAY_BETWEEN_ITEMS_SECONDS = 0.5


class QueueItemError(IngestionError):
    """An entry cannot be ingested; the message is stored on the entry."""


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


async def enqueue(
    ctx: PipelineContext,
    identifier: str,
    source: str,
    metadata: Optional[dict[str, Any]] = None,
    priority: int = 0,
    added_by: Optional[str] = None,
) -> QueueResult:
    """Queue one book, rejecting catalog and queue duplicates.

    Returns:
        QueueResult; ``success=False`` carries the reason

    Raises:
        PersistenceError: If a lookup or the insert fails
    """
    identifier = (identifier or "").strip()
    if not identifier:
        return QueueResult(success=False, identifier=identifier, reason="Identifier is required")
    if source not in VALID_SOURCES:
        return QueueResult(success=False, identifier=identifier, reason=f"Invalid source: {source}")

    if await ctx.books.exists_by_identifier(identifier):
        return QueueResult(
            success=False, identifier=identifier, reason="Book already exists in library", duplicate=True
        )

    if await ctx.queue.find_active(identifier, source) is not None:
        return QueueResult(success=False, identifier=identifier, reason="Already in queue", duplicate=True)

    try:
        entry = await ctx.queue.add(identifier, source, metadata, priority, added_by)
    except DuplicateRecordError:
        return QueueResult(success=False, identifier=identifier, reason="Already in queue", duplicate=True)

    return QueueResult(success=True, identifier=identifier, queue_id=entry.id)


async def enqueue_many(
    ctx: PipelineContext,
    items: Iterable[dict[str, Any]],
    added_by: Optional[str] = None,
) -> list[QueueResult]:
    """Queue several books; each item has identifier, source, and optional metadata/priority."""
    results = []
    for item in items:
        results.append(
            await enqueue(
                ctx,
                item.get("identifier", ""),
                item.get("source", CatalogSource.INTERNET_ARCHIVE.value),
                metadata=item.get("metadata"),
                priority=int(item.get("priority", 0)),
                added_by=added_by,
            )
        )
    return results


async def fetch_entry_metadata(ctx: PipelineContext, entry: QueueEntry) -> Candidate:
    """Candidate for a queue entry.

    Internet Archive entries are looked up; metadata captured at queue time
    overrides the lookup. Other sources rely on the captured metadata.

    Raises:
        QueueItemError: If no title can be found
        TransientSourceError: If the metadata lookup fails
    """
    captured = entry.metadata or {}
    fields: dict[str, Any] = {}

    if entry.source == CatalogSource.INTERNET_ARCHIVE:
        fetcher = ctx.fetcher(CatalogSource.INTERNET_ARCHIVE)
        if isinstance(fetcher, InternetArchiveFetcher):
            fetched = await fetcher.fetch_metadata(entry.identifier)
            if fetched is not None:
                fields = fetched.model_dump()

    for key in ("title", "author", "description", "language", "cover_url", "pdf_url", "publisher"):
        if captured.get(key):
            fields[key] = captured[key]
    if captured.get("year") is not None:
        fields["year"] = captured["year"]

    if not fields.get("title"):
        raise QueueItemError("Could not fetch book metadata")

    fields.update(identifier=entry.identifier, source=entry.source)
    return Candidate(**fields)


async def _record_status(ctx: PipelineContext, entry: QueueEntry, *args: Any, **kwargs: Any) -> Optional[str]:
    """Write the entry's status; returns the sanitized error if the store rejects it."""
    try:
        await ctx.queue.update_status(entry.id, *args, **kwargs)
    except PersistenceError as e:
        message = sanitize_error_message(e)
        logger.error("queue_status_not_saved", identifier=entry.identifier, error=message)
        return message
    return None


def _unsaved(entry: QueueEntry, error: str, book_id: Any = None) -> QueueResult:
    return QueueResult(
        success=False,
        identifier=entry.identifier,
        queue_id=entry.id,
        book_id=book_id,
        reason=f"Status not saved: {error}",
    )


async def process_entry(ctx: PipelineContext, entry: QueueEntry) -> QueueResult:
    """Ingest one claimed entry and record its final status."""
    try:
        if await ctx.books.exists_by_identifier(entry.identifier):
            error = await _record_status(ctx, entry, QueueStatus.COMPLETED, "Already exists in library")
            if error:
                return _unsaved(entry, error)
            return QueueResult(
                success=True,
                identifier=entry.identifier,
                queue_id=entry.id,
                reason="Already exists",
                duplicate=True,
            )

        candidate = await fetch_entry_metadata(ctx, entry)
        candidate = await classify_candidate(ctx, candidate)
        description = await ctx.describer.generate(
            candidate.title, candidate.author, candidate.year, candidate.description
        )
        book_id = await store_candidate(ctx, candidate, description=description)

    except Exception as e:
        message = sanitize_error_message(e)
        logger.warning("queue_item_failed", identifier=entry.identifier, error=message)
        await _record_status(ctx, entry, QueueStatus.FAILED, message)
        return QueueResult(success=False, identifier=entry.identifier, queue_id=entry.id, reason=message)

    error = await _record_status(ctx, entry, QueueStatus.COMPLETED, book_id=book_id)
    if error:
        return _unsaved(entry, error, book_id)
    logger.info("queue_item_completed", identifier=entry.identifier, book_id=str(book_id))
    return QueueResult(success=True, identifier=entry.identifier, queue_id=entry.id, book_id=book_id)


async def process_queue(
    ctx: PipelineContext,
    limit: int = DEFAULT_PROCESS_LIMIT,
    delay_seconds: float = DELAY_BETWEEN_ITEMS_SECONDS,
) -> QueueRunSummary:
    """Claim up to ``limit`` (1..50) pending entries and ingest them in order.

    Example:
        >>> summary = await process_queue(ctx, limit=5)
        >>> print(f"{summary.succeeded}/{summary.processed} ingested")
    """
    entries = await ctx.queue.claim_pending(_clamp(limit, 1, MAX_PROCESS_LIMIT))
    summary = QueueRunSummary()

    for index, entry in enumerate(entries):
        result = await process_entry(ctx, entry)
        summary.results.append(result)
        summary.processed += 1
        if result.success:
            summary.succeeded += 1
        else:
            summary.failed += 1

        if delay_seconds > 0 and index < len(entries) - 1:
            await asyncio.sleep(delay_seconds)

    logger.info(
        "queue_processed",
        processed=summary.processed,
        succeeded=summary.succeeded,
        failed=summary.failed,
    )
    return summary


async def get_queue_status(
    ctx: PipelineContext,
    status: Optional[QueueStatus] = None,
    limit: int = 50,
) -> dict[str, Any]:
    """Entries (optionally by status, limit 1..100) plus counts by status."""
    entries = await ctx.queue.list_entries(status, _clamp(limit, 1, MAX_STATUS_LIMIT))
    stats = await ctx.queue.get_stats()
    return {"entries": entries, "stats": stats}


async def clear_queue(ctx: PipelineContext, status: str = "completed", older_than_days: int = 7) -> int:
    """Delete finished entries; ``all`` means completed and failed, never active ones.

    Raises:
        ValueError: If ``status`` is not completed, failed or all
    """
    if status not in CLEAR_STATUSES:
        raise ValueError(f"Invalid status to clear: {status}")
    return await ctx.queue.delete_finished(status, older_than_days)


async def retry_failed(ctx: PipelineContext, max_retries: int = 3) -> int:
    """Put failed entries under the retry limit back to pending."""
    return await ctx.queue.retry_failed(max_retries)
