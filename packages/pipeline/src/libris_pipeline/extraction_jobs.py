"""Extraction job lifecycle and processing loop.

States and legal moves:

    pending -> running
    running -> paused | completed | stopped | failed
    paused  -> running | stopped

The check and the mutation happen in one statement in ``JobStore``; the
helpers here are the pure rules the manager and its callers share.

A job crawls its source URL and processes every discovered PDF in turn
(validate, classify, describe, upload, record) until the crawl is exhausted,
a limit is reached, or an operator pauses or stops it. Extracted books stay
private until ``publish_extracted_books`` promotes them.
"""

import re
from contextlib import aclosing
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional
from urllib.parse import urlparse
from uuid import UUID

from libris_catalog import CancellationToken, PdfLink
from libris_common import (
    CrawlAbortedError,
    CrawlError,
    DuplicateRecordError,
    LibrisError,
    NotFoundError,
    PersistenceError,
    StateTransitionError,
    get_logger,
    sanitize_error_message,
)
from libris_contracts import (
    Candidate,
    CatalogSource,
    ExtractedBook,
    ExtractedBookStatus,
    ExtractionJob,
    ExtractionLog,
    JobProgress,
    JobStatus,
    LogLevel,
)
from libris_pdf import sanitize_filename

from libris_pipeline.context import PipelineContext

logger = get_logger(__name__)

DEFAULT_MAX_TIME_MINUTES = 60
DEFAULT_MAX_BOOKS = 100

VALID_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: frozenset(
        {JobStatus.PAUSED, JobStatus.COMPLETED, JobStatus.STOPPED, JobStatus.FAILED}
    ),
    JobStatus.PAUSED: frozenset({JobStatus.RUNNING, JobStatus.STOPPED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.STOPPED: frozenset(),
}

COUNTED_BOOK_STATUSES = (ExtractedBookStatus.COMPLETED, ExtractedBookStatus.PUBLISHED)

Now = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Pure rules
# =============================================================================


def is_valid_transition(from_status: JobStatus, to_status: JobStatus) -> bool:
    return to_status in VALID_TRANSITIONS.get(from_status, frozenset())


def apply_default_limits(
    max_time_minutes: Optional[int] = None,
    max_books: Optional[int] = None,
) -> tuple[int, int]:
    """Fill unspecified limits with the defaults (60 minutes, 100 books)."""
    return (
        DEFAULT_MAX_TIME_MINUTES if max_time_minutes is None else max_time_minutes,
        DEFAULT_MAX_BOOKS if max_books is None else max_books,
    )


def elapsed_seconds(
    job: ExtractionJob,
    now: Optional[datetime] = None,
    count_paused_time: bool = True,
) -> float:
    """Seconds since the job first started; 0 if it never started.

    A finished job is measured up to ``completed_at``. With
    ``count_paused_time=False`` accumulated and ongoing pauses are subtracted.
    """
    if job.started_at is None:
        return 0.0

    end = job.completed_at or now or _utcnow()
    elapsed = (end - job.started_at).total_seconds()

    if not count_paused_time:
        elapsed -= job.paused_seconds
        if job.status == JobStatus.PAUSED and job.paused_at is not None:
            elapsed -= (end - job.paused_at).total_seconds()

    return max(0.0, elapsed)


def has_reached_time_limit(
    job: ExtractionJob,
    now: Optional[datetime] = None,
    count_paused_time: bool = True,
) -> bool:
    if job.started_at is None:
        return False
    return elapsed_seconds(job, now, count_paused_time) >= job.max_time_minutes * 60


def has_reached_book_limit(job: ExtractionJob) -> bool:
    return job.books_extracted >= job.max_books


def should_stop(
    job: ExtractionJob,
    now: Optional[datetime] = None,
    count_paused_time: bool = True,
) -> bool:
    """True as soon as either limit is reached."""
    return has_reached_time_limit(job, now, count_paused_time) or has_reached_book_limit(job)


def calculate_expected_books_extracted(books: Iterable[ExtractedBook]) -> int:
    """Number of books that count towards ``books_extracted``."""
    return sum(1 for book in books if book.status in COUNTED_BOOK_STATUSES)


def is_progress_counter_accurate(job: ExtractionJob, books: Iterable[ExtractedBook]) -> bool:
    return job.books_extracted == calculate_expected_books_extracted(books)


def estimate_remaining_seconds(job: ExtractionJob, elapsed: float) -> int:
    """Lower of the time left and the rate-based estimate for the remaining books."""
    if job.status.is_terminal:
        return 0

    remaining = max(0.0, job.max_time_minutes * 60 - elapsed)
    if job.books_extracted > 0:
        books_left = max(0, job.max_books - job.books_extracted)
        remaining = min(remaining, books_left * elapsed / job.books_extracted)
    return int(remaining)


def title_from_filename(filename: str) -> str:
    """Readable title from a PDF filename ("the_republic-book1.pdf" -> "the republic book1")."""
    stem = re.sub(r"\.pdf$", "", filename, flags=re.IGNORECASE)
    title = re.sub(r"[_\-.]+", " ", stem).strip()
    return title or "Untitled"


def validate_source_url(url: str) -> str:
    """Stripped http(s) URL.

    Raises:
        ValueError: If the URL is not an absolute http(s) URL
    """
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid source URL: {url!r}")
    return url


# =============================================================================
# Manager
# =============================================================================


class ExtractionJobManager:
    """Job lifecycle, queries and the crawl/processing loop.

    Example:
        >>> manager = ExtractionJobManager(ctx)
        >>> job = await manager.create_job("https://example.org/library", created_by="admin")
        >>> job = await manager.run_job(job.id)
        >>> print(job.status, job.books_extracted)
    """

    def __init__(
        self,
        ctx: PipelineContext,
        count_paused_time: bool = True,
        now: Now = _utcnow,
    ):
        self._ctx = ctx
        self.count_paused_time = count_paused_time
        self._now = now

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def create_job(
        self,
        source_url: str,
        created_by: Optional[str] = None,
        max_time_minutes: Optional[int] = None,
        max_books: Optional[int] = None,
    ) -> ExtractionJob:
        """Create a pending job with default limits where none are given.

        Raises:
            ValueError: If the URL or a limit is invalid
            PersistenceError: If the insert fails
        """
        url = validate_source_url(source_url)
        max_time_minutes, max_books = apply_default_limits(max_time_minutes, max_books)
        if max_time_minutes < 1 or max_books < 1:
            raise ValueError("Job limits must be positive")
        return await self._ctx.jobs.create(url, max_time_minutes, max_books, created_by)

    async def _transition(
        self,
        job_id: UUID,
        to_status: JobStatus,
        allowed_from: Iterable[JobStatus],
    ) -> ExtractionJob:
        allowed = [s for s in allowed_from if is_valid_transition(s, to_status)]
        return await self._ctx.jobs.transition(job_id, to_status, allowed)

    async def start_job(self, job_id: UUID) -> ExtractionJob:
        return await self._transition(job_id, JobStatus.RUNNING, [JobStatus.PENDING])

    async def pause_job(self, job_id: UUID) -> ExtractionJob:
        return await self._transition(job_id, JobStatus.PAUSED, [JobStatus.RUNNING])

    async def resume_job(self, job_id: UUID) -> ExtractionJob:
        return await self._transition(job_id, JobStatus.RUNNING, [JobStatus.PAUSED])

    async def stop_job(self, job_id: UUID) -> ExtractionJob:
        """Stop a running or paused job; extracted books are kept."""
        return await self._transition(job_id, JobStatus.STOPPED, [JobStatus.RUNNING, JobStatus.PAUSED])

    async def _complete_job(self, job_id: UUID) -> ExtractionJob:
        return await self._transition(job_id, JobStatus.COMPLETED, [JobStatus.RUNNING])

    async def _fail_job(self, job_id: UUID) -> ExtractionJob:
        return await self._transition(job_id, JobStatus.FAILED, [JobStatus.RUNNING])

    async def delete_job(self, job_id: UUID) -> bool:
        """Delete a job and its books and logs.

        Raises:
            StateTransitionError: If the job is running
        """
        return await self._ctx.jobs.delete(job_id)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_job(self, job_id: UUID) -> Optional[ExtractionJob]:
        return await self._ctx.jobs.get(job_id)

    async def _require_job(self, job_id: UUID) -> ExtractionJob:
        job = await self._ctx.jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job not found: {job_id}")
        return job

    async def get_job_progress(self, job_id: UUID) -> JobProgress:
        """Counters plus elapsed and estimated remaining seconds.

        Raises:
            NotFoundError: If the job does not exist
        """
        job = await self._require_job(job_id)
        elapsed = elapsed_seconds(job, self._now(), self.count_paused_time)
        return JobProgress(
            job_id=job.id,
            status=job.status,
            books_extracted=job.books_extracted,
            books_queued=job.books_queued,
            error_count=job.error_count,
            elapsed_seconds=int(elapsed),
            estimated_remaining_seconds=estimate_remaining_seconds(job, elapsed),
            max_time_minutes=job.max_time_minutes,
            max_books=job.max_books,
        )

    async def get_job_history(self, created_by: Optional[str] = None, limit: int = 50) -> list[ExtractionJob]:
        return await self._ctx.jobs.list_jobs(created_by=created_by, limit=limit)

    async def get_extracted_books(self, job_id: UUID) -> list[ExtractedBook]:
        return await self._ctx.extracted_books.list_for_job(job_id)

    async def get_job_logs(self, job_id: UUID, limit: int = 100) -> list[ExtractionLog]:
        return await self._ctx.jobs.get_logs(job_id, limit)

    async def publish_extracted_books(self, job_id: UUID) -> int:
        """Promote the job's completed books into the catalog.

        The store writes the audit log entry in the same transaction.

        Raises:
            NotFoundError: If the job does not exist
        """
        await self._require_job(job_id)
        published = await self._ctx.extracted_books.publish(job_id)
        logger.info("extraction_job_published", job_id=str(job_id), published=published)
        return published

    async def list_published_books(self, limit: int = 100) -> list[ExtractedBook]:
        """Books visible outside their job; unpublished books are never listed."""
        return await self._ctx.extracted_books.list_published(limit)

    # -------------------------------------------------------------------------
    # Processing loop
    # -------------------------------------------------------------------------

    async def run_job(self, job_id: UUID, token: Optional[CancellationToken] = None) -> ExtractionJob:
        """Crawl the job's source URL and process each discovered PDF.

        A pending job is started and a paused one resumed. The loop re-reads
        the job before every PDF; a pause or stop from elsewhere ends it and
        leaves that status in place. Reaching a limit or exhausting the crawl
        completes the job. A failed crawl, or any other error escaping the
        loop, fails it so the job is never left running. Cancelling ``token``
        stops the loop without changing the status.

        Args:
            job_id: Job to run
            token: Cancellation token shared with the crawler

        Returns:
            The job as persisted when the loop ended

        Raises:
            NotFoundError: If the job does not exist
            StateTransitionError: If the job is already finished
        """
        token = token or CancellationToken()
        job = await self._require_job(job_id)

        if job.status == JobStatus.PENDING:
            job = await self.start_job(job_id)
        elif job.status == JobStatus.PAUSED:
            job = await self.resume_job(job_id)
        elif job.status != JobStatus.RUNNING:
            raise StateTransitionError(str(job_id), job.status.value, JobStatus.RUNNING.value)

        logger.info("extraction_job_started", job_id=str(job_id), source_url=job.source_url)
        queued = job.books_queued
        session = self._ctx.crawler.crawl(job.source_url, token)

        try:
            async with aclosing(session.links()) as links:
                async for link in links:
                    job = await self._require_job(job_id)
                    if job.status != JobStatus.RUNNING:
                        logger.info(
                            "extraction_job_interrupted", job_id=str(job_id), status=job.status.value
                        )
                        return job
                    if should_stop(job, self._now(), self.count_paused_time):
                        await self._log(job_id, LogLevel.INFO, "Job limit reached", _limit_details(job))
                        break

                    queued += 1
                    await self._ctx.jobs.set_books_queued(job_id, queued)
                    await self._process_link(job_id, link)

        except CrawlAbortedError:
            logger.info("extraction_job_cancelled", job_id=str(job_id))
            return await self._require_job(job_id)

        except CrawlError as e:
            await self._log(job_id, LogLevel.ERROR, sanitize_error_message(e))
            return await self._finish(job_id, failed=True)

        except Exception as e:
            logger.error("extraction_job_crashed", job_id=str(job_id), error=str(e))
            await self._record_crash(job_id, sanitize_error_message(e))
            return await self._finish(job_id, failed=True)

        return await self._finish(job_id)

    async def _finish(self, job_id: UUID, failed: bool = False) -> ExtractionJob:
        try:
            if failed:
                return await self._fail_job(job_id)
            return await self._complete_job(job_id)
        except StateTransitionError as e:
            # Paused or stopped while the last book was processed
            logger.info("extraction_job_finish_skipped", job_id=str(job_id), reason=str(e))
            return await self._require_job(job_id)

    async def _record_crash(self, job_id: UUID, message: str) -> None:
        """Log the error and fail books left mid-processing; best-effort."""
        try:
            await self._log(job_id, LogLevel.ERROR, f"Job failed: {message}")
            for book in await self._ctx.extracted_books.list_for_job(job_id):
                if book.status == ExtractedBookStatus.PROCESSING:
                    await self._ctx.extracted_books.update_status(
                        book.id, ExtractedBookStatus.FAILED, error_message=message
                    )
        except PersistenceError as e:
            logger.warning("extraction_crash_not_recorded", job_id=str(job_id), error=str(e))

    async def _log(
        self,
        job_id: UUID,
        level: LogLevel,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        await self._ctx.jobs.add_log(job_id, level, message, details)

    async def _process_link(self, job_id: UUID, link: PdfLink) -> None:
        """Process one discovered PDF; failures are recorded on the book."""
        ctx = self._ctx
        title = title_from_filename(link.filename)

        try:
            book = await ctx.extracted_books.add(job_id, title, link.url)
        except DuplicateRecordError:
            logger.info("extraction_pdf_already_seen", job_id=str(job_id), url=link.url)
            return

        validated = await ctx.validate_pdf(link.url)
        if validated is None:
            await self._fail_book(job_id, book, "PDF download or validation failed")
            return

        try:
            candidate = Candidate(identifier=sanitize_filename(title), title=title, source=CatalogSource.CRAWL)
            classification = await ctx.classifier.classify(candidate)
            description = await ctx.describer.generate(title, None, None, None)
            synopsis = await ctx.describer.synopsis(title, None, description)

            public_url = await ctx.uploader.upload_pdf(
                validated.content, sanitize_filename(f"{title}-{book.id.hex[:8]}")
            )
            category_id = await ctx.books.find_category_id(
                classification.genres[0] if classification else None
            )

            _, books_extracted = await ctx.extracted_books.update_status(
                book.id,
                ExtractedBookStatus.COMPLETED,
                description=description,
                synopsis=synopsis,
                category_id=category_id,
                pdf_url=public_url,
            )
        except LibrisError as e:
            await self._fail_book(job_id, book, e)
            return

        logger.info(
            "extraction_book_completed",
            job_id=str(job_id),
            book_id=str(book.id),
            title=title,
            books_extracted=books_extracted,
        )

    async def _fail_book(self, job_id: UUID, book: ExtractedBook, error: object) -> None:
        message = sanitize_error_message(error)
        await self._ctx.extracted_books.update_status(
            book.id, ExtractedBookStatus.FAILED, error_message=message
        )
        await self._log(
            job_id,
            LogLevel.ERROR,
            f"Failed to extract {book.title}: {message}",
            {"book_id": str(book.id), "source_pdf_url": book.source_pdf_url},
        )


def _limit_details(job: ExtractionJob) -> dict:
    return {
        "books_extracted": job.books_extracted,
        "max_books": job.max_books,
        "max_time_minutes": job.max_time_minutes,
    }
