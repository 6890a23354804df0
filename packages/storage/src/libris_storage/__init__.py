"""Libris Storage - PostgreSQL storage layer.

This package provides:
- Database connection management (asyncpg pooling, schema installation)
- BookStore (catalog lookups and inserts)
- IngestionStateStore (resumable per-source cursor with run claims)
- IngestionLogStore (run history and filter audit trail)
- JobStore (extraction jobs, atomic status transitions, job logs)
- ExtractedBookStore (extracted books, counter recount, publishing)
- QueueStore (manual ingestion queue)

Exclusive DB ownership - no shared database access from other packages.
Every store receives its pool explicitly.
"""

from libris_storage.book_store import DEFAULT_COVER_URL, BookStore
from libris_storage.connection import (
    DatabaseConfig,
    apply_schema,
    check_connection_health,
    close_connection_pool,
    create_connection_pool,
    load_schema_sql,
)
from libris_storage.extracted_book_store import ExtractedBookStore
from libris_storage.ingestion_log_store import IngestionLogStore
from libris_storage.ingestion_state_store import DEFAULT_STALE_AFTER_SECONDS, IngestionStateStore
from libris_storage.job_store import JobStore
from libris_storage.queue_store import QueueStore

__all__ = [
    # Connection
    "DatabaseConfig",
    "apply_schema",
    "check_connection_health",
    "close_connection_pool",
    "create_connection_pool",
    "load_schema_sql",
    # Stores
    "BookStore",
    "DEFAULT_COVER_URL",
    "ExtractedBookStore",
    "IngestionLogStore",
    "IngestionStateStore",
    "DEFAULT_STALE_AFTER_SECONDS",
    "JobStore",
    "QueueStore",
]
