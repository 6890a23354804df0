"""Libris Contracts - Pure Pydantic schemas.

This package contains ONLY Pydantic schemas with no business logic.
Dependencies: pydantic only (no logging, no DB drivers, no HTTP).
"""

from libris_contracts.models import (
    # Enums
    AccessType,
    CatalogSource,
    ExtractedBookStatus,
    FilterResultType,
    JobStatus,
    LogLevel,
    QueueStatus,
    RunStatus,
    # Catalog
    BookRecord,
    Candidate,
    Classification,
    SearchCriteria,
    SearchResult,
    # Scheduled ingestion
    FilterConfig,
    FilterDecision,
    IngestionOptions,
    IngestionResult,
    IngestionState,
    RunError,
    # Extraction jobs
    ExtractedBook,
    ExtractionJob,
    ExtractionLog,
    JobProgress,
    # Manual queue
    QueueEntry,
    QueueResult,
    QueueRunSummary,
)

__version__ = "1.0.0"

__all__ = [
    # Enums
    "AccessType",
    "CatalogSource",
    "ExtractedBookStatus",
    "FilterResultType",
    "JobStatus",
    "LogLevel",
    "QueueStatus",
    "RunStatus",
    # Catalog
    "BookRecord",
    "Candidate",
    "Classification",
    "SearchCriteria",
    "SearchResult",
    # Scheduled ingestion
    "FilterConfig",
    "FilterDecision",
    "IngestionOptions",
    "IngestionResult",
    "IngestionState",
    "RunError",
    # Extraction jobs
    "ExtractedBook",
    "ExtractionJob",
    "ExtractionLog",
    "JobProgress",
    # Manual queue
    "QueueEntry",
    "QueueResult",
    "QueueRunSummary",
]
