"""Custom error types for the libris pipeline.

All errors follow the "fail fast" principle with explicit messages.
Per-book errors are caught at the batch boundary; everything else propagates.
"""

from typing import Optional


class LibrisError(Exception):
    """Base exception for all libris errors."""

    pass


class TransientSourceError(LibrisError):
    """Network, timeout or protocol error from a catalog or AI service.

    Fetchers convert this into an empty result on the interactive path.
    """

    pass


class RateLimitedError(TransientSourceError):
    """Source answered HTTP 429 after the single permitted retry."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class SourceTimeoutError(TransientSourceError):
    """Request to an external service exceeded its timeout."""

    pass


class PdfValidationError(LibrisError):
    """Downloaded file is not an acceptable PDF (status, size, signature)."""

    pass


class StorageError(LibrisError):
    """Error during object storage operations."""

    pass


class PersistenceError(LibrisError):
    """Error during database operations."""

    pass


class DuplicateRecordError(PersistenceError):
    """Insert rejected by a unique constraint."""

    pass


class NotFoundError(PersistenceError):
    """Referenced row does not exist."""

    pass


class ClassificationFailure(LibrisError):
    """AI classification could not produce a usable result.

    Never escapes the classifier: it resolves to "no classification".
    """

    pass


class StateTransitionError(LibrisError):
    """Requested extraction job status change is not legal.

    The persisted status is left unchanged.
    """

    def __init__(self, job_id: str, from_status: Optional[str], to_status: str):
        self.job_id = job_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid status transition from {from_status} to {to_status}")


class IngestionError(LibrisError):
    """Error during the scheduled ingestion run."""

    pass


class RunAlreadyInProgressError(IngestionError):
    """Another invocation currently holds the source's ingestion claim."""

    pass


class SourcePausedError(IngestionError):
    """Ingestion for the source has been paused by an operator."""

    pass


class CrawlError(LibrisError):
    """Error discovering PDF links from a page."""

    pass


class CrawlAbortedError(CrawlError):
    """Crawl was cancelled through its cancellation token."""

    pass
