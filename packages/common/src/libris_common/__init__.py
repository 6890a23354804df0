"""Libris Common - shared errors, logging, configuration and helpers."""

from libris_common.config import Settings, get_settings
from libris_common.errors import (
    ClassificationFailure,
    CrawlAbortedError,
    CrawlError,
    DuplicateRecordError,
    IngestionError,
    LibrisError,
    NotFoundError,
    PdfValidationError,
    PersistenceError,
    RateLimitedError,
    RunAlreadyInProgressError,
    SourcePausedError,
    SourceTimeoutError,
    StateTransitionError,
    StorageError,
    TransientSourceError,
)
from libris_common.logging_config import configure_logging, get_logger
from libris_common.retry import retry_on_exception
from libris_common.sanitize import sanitize_error_message

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Errors
    "LibrisError",
    "TransientSourceError",
    "RateLimitedError",
    "SourceTimeoutError",
    "PdfValidationError",
    "StorageError",
    "PersistenceError",
    "DuplicateRecordError",
    "NotFoundError",
    "ClassificationFailure",
    "StateTransitionError",
    "IngestionError",
    "RunAlreadyInProgressError",
    "SourcePausedError",
    "CrawlError",
    "CrawlAbortedError",
    # Logging
    "configure_logging",
    "get_logger",
    # Helpers
    "retry_on_exception",
    "sanitize_error_message",
]
