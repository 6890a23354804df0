"""Pydantic schemas shared across libris packages.

No business logic lives here: only field definitions, enums and light
validation.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class CatalogSource(str, Enum):
    """External catalog a candidate came from."""

    INTERNET_ARCHIVE = "internet_archive"
    OPEN_LIBRARY = "open_library"
    GOOGLE_BOOKS = "google_books"
    MANUAL = "manual"
    CRAWL = "crawl"


class AccessType(str, Enum):
    """Rights heuristic derived from publication year and source."""

    PUBLIC_DOMAIN = "public_domain"
    OPEN_ACCESS = "open_access"
    UNKNOWN = "unknown"


class RunStatus(str, Enum):
    """Outcome of a scheduled ingestion run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class JobStatus(str, Enum):
    """Extraction job lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.STOPPED)


class ExtractedBookStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PUBLISHED = "published"


class QueueStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class LogLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class FilterResultType(str, Enum):
    PASSED = "passed"
    FILTERED_GENRE = "filtered_genre"
    FILTERED_AUTHOR = "filtered_author"


# ---------------------------------------------------------------------------
# Catalog candidates
# ---------------------------------------------------------------------------


class Candidate(BaseModel):
    """Fetched-but-not-yet-ingested book metadata.

    Produced by fetchers and the crawler, consumed within one pipeline pass.
    Never persisted directly.
    """

    identifier: str
    title: str
    author: Optional[str] = None
    year: Optional[int] = None
    description: Optional[str] = None
    language: Optional[str] = None
    source: CatalogSource
    completeness_score: int = Field(default=0, ge=0, le=100)

    cover_url: Optional[str] = None
    isbn: Optional[str] = None
    subjects: list[str] = Field(default_factory=list)
    publisher: Optional[str] = None
    page_count: Optional[int] = None
    pdf_url: Optional[str] = None
    access_type: AccessType = AccessType.UNKNOWN

    # Set by classification; reused instead of reclassifying
    genres: list[str] = Field(default_factory=list)
    subgenre: Optional[str] = None

    # Set by cross-source merge / interactive search
    other_sources: list[CatalogSource] = Field(default_factory=list)
    relevance_score: float = 0.0


class SearchResult(BaseModel):
    """Result of a single catalog search."""

    candidates: list[Candidate] = Field(default_factory=list)
    count: int = 0
    source: Optional[CatalogSource] = None


class SearchCriteria(BaseModel):
    """Interactive search criteria, shared by all sources."""

    query: Optional[str] = None
    author: Optional[str] = None
    genre: Optional[str] = None
    year_from: Optional[int] = None
    year_to: Optional[int] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class Classification(BaseModel):
    """Genre classification constrained to the taxonomy."""

    genres: list[str] = Field(min_length=1, max_length=3)
    subgenre: Optional[str] = None


# ---------------------------------------------------------------------------
# Catalog books
# ---------------------------------------------------------------------------


class BookRecord(BaseModel):
    """Row of the user-facing ``books`` catalog."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[UUID] = None
    title: str
    author: str
    source: CatalogSource = CatalogSource.INTERNET_ARCHIVE
    source_identifier: Optional[str] = None
    pdf_url: Optional[str] = None
    cover_url: Optional[str] = None
    description: Optional[str] = None
    published_year: Optional[int] = None
    language: Optional[str] = None
    genres: list[str] = Field(default_factory=list)
    subgenre: Optional[str] = None
    category_id: Optional[UUID] = None
    access_type: AccessType = AccessType.UNKNOWN
    total_copies: int = 1
    copies_available: int = 1
    created_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Scheduled ingestion
# ---------------------------------------------------------------------------


class IngestionState(BaseModel):
    """Resumable cursor for one catalog source (one row per source)."""

    source: str
    last_page: int = 1
    last_cursor: Optional[str] = None
    total_ingested: int = 0
    last_run_at: Optional[datetime] = None
    last_run_status: RunStatus = RunStatus.IDLE
    last_run_added: int = 0
    last_run_skipped: int = 0
    last_run_failed: int = 0
    is_paused: bool = False
    paused_at: Optional[datetime] = None
    paused_by: Optional[str] = None
    updated_at: Optional[datetime] = None


class FilterConfig(BaseModel):
    """Genre/author allow-lists, loaded fresh per run."""

    allowed_genres: list[str] = Field(default_factory=list)
    allowed_authors: list[str] = Field(default_factory=list)
    enable_genre_filter: bool = False
    enable_author_filter: bool = False


class FilterDecision(BaseModel):
    passed: bool
    reason: str
    result_type: FilterResultType


class RunError(BaseModel):
    """Bounded error entry surfaced in run summaries."""

    identifier: str
    error: str
    timestamp: datetime


class IngestionOptions(BaseModel):
    """Options for one scheduled ingestion run."""

    batch_size: int = Field(default=30, ge=1, le=100)
    max_books: Optional[int] = Field(default=None, ge=1)
    dry_run: bool = False
    start_page: Optional[int] = Field(default=None, ge=1)
    delay_between_books_ms: int = Field(default=1000, ge=0)
    time_budget_seconds: float = Field(default=55.0, gt=0)
    source: str = CatalogSource.INTERNET_ARCHIVE.value


class IngestionResult(BaseModel):
    """Aggregate outcome of a scheduled ingestion run."""

    job_id: Optional[UUID] = None
    status: RunStatus = RunStatus.COMPLETED
    processed: int = 0
    added: int = 0
    skipped: int = 0
    failed: int = 0
    filtered: int = 0
    errors: list[RunError] = Field(default_factory=list)
    next_page: int = 1
    # Identifier of the last book the run reached
    last_cursor: Optional[str] = None
    dry_run: bool = False
    timed_out: bool = False
    duration_seconds: float = 0.0
    note: Optional[str] = None


# ---------------------------------------------------------------------------
# Extraction jobs
# ---------------------------------------------------------------------------


class ExtractionJob(BaseModel):
    """Admin-triggered crawl-and-extract job."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    source_url: str
    status: JobStatus = JobStatus.PENDING
    max_time_minutes: int = 60
    max_books: int = 100
    books_extracted: int = 0
    books_queued: int = 0
    error_count: int = 0
    paused_seconds: float = 0.0
    paused_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None


class ExtractedBook(BaseModel):
    """Book produced by an extraction job; published explicitly."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    job_id: UUID
    title: str
    author: Optional[str] = None
    description: Optional[str] = None
    synopsis: Optional[str] = None
    category_id: Optional[UUID] = None
    cover_url: Optional[str] = None
    pdf_url: Optional[str] = None
    source_pdf_url: str
    status: ExtractedBookStatus = ExtractedBookStatus.PROCESSING
    error_message: Optional[str] = None
    extracted_at: Optional[datetime] = None
    published_at: Optional[datetime] = None


class ExtractionLog(BaseModel):
    id: UUID
    job_id: UUID
    level: LogLevel
    message: str
    details: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None


class JobProgress(BaseModel):
    job_id: UUID
    status: JobStatus
    books_extracted: int
    books_queued: int
    error_count: int
    elapsed_seconds: int
    estimated_remaining_seconds: int
    max_time_minutes: int
    max_books: int


# ---------------------------------------------------------------------------
# Manual ingestion queue
# ---------------------------------------------------------------------------


class QueueEntry(BaseModel):
    """Admin-selected book awaiting ingestion."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    identifier: str
    source: CatalogSource
    status: QueueStatus = QueueStatus.PENDING
    priority: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    book_id: Optional[UUID] = None
    added_by: Optional[str] = None
    queued_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None


class QueueResult(BaseModel):
    """Outcome of an enqueue or a single queue item's processing."""

    success: bool
    identifier: str
    queue_id: Optional[UUID] = None
    book_id: Optional[UUID] = None
    reason: Optional[str] = None
    duplicate: bool = False


class QueueRunSummary(BaseModel):
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    results: list[QueueResult] = Field(default_factory=list)
