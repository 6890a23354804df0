"""Libris Pipeline - scheduled ingestion, extraction jobs and the manual queue.

Every entry point receives a ``PipelineContext`` holding the stores, HTTP
client, fetchers and AI clients it needs.
"""

from libris_pipeline.book_processor import (
    BookOutcome,
    ProcessedBook,
    classify_candidate,
    ingest_candidate,
    store_candidate,
)
from libris_pipeline.context import PipelineContext, open_context
from libris_pipeline.dedup import DeduplicationEngine, merge_and_deduplicate
from libris_pipeline.extraction_jobs import (
    DEFAULT_MAX_BOOKS,
    DEFAULT_MAX_TIME_MINUTES,
    VALID_TRANSITIONS,
    ExtractionJobManager,
    apply_default_limits,
    calculate_expected_books_extracted,
    has_reached_book_limit,
    has_reached_time_limit,
    is_progress_counter_accurate,
    is_valid_transition,
    should_stop,
)
from libris_pipeline.ingestion_filter import (
    apply_filters,
    filter_summary,
    has_active_filters,
    load_filter_config,
)
from libris_pipeline.manual_queue import (
    VALID_SOURCES,
    clear_queue,
    enqueue,
    enqueue_many,
    get_queue_status,
    process_queue,
    retry_failed,
)
from libris_pipeline.orchestrator import run_ingestion_job
from libris_pipeline.state_manager import StateManager

__all__ = [
    # Context
    "PipelineContext",
    "open_context",
    # Ingestion
    "DeduplicationEngine",
    "merge_and_deduplicate",
    "apply_filters",
    "filter_summary",
    "has_active_filters",
    "load_filter_config",
    "StateManager",
    "run_ingestion_job",
    "BookOutcome",
    "ProcessedBook",
    "classify_candidate",
    "ingest_candidate",
    "store_candidate",
    # Extraction jobs
    "ExtractionJobManager",
    "DEFAULT_MAX_BOOKS",
    "DEFAULT_MAX_TIME_MINUTES",
    "VALID_TRANSITIONS",
    "apply_default_limits",
    "calculate_expected_books_extracted",
    "has_reached_book_limit",
    "has_reached_time_limit",
    "is_progress_counter_accurate",
    "is_valid_transition",
    "should_stop",
    # Manual queue
    "VALID_SOURCES",
    "enqueue",
    "enqueue_many",
    "process_queue",
    "get_queue_status",
    "clear_queue",
    "retry_failed",
]
