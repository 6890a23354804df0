"""Explicit dependency bundle for the pipelines.

Every coordinator receives a ``PipelineContext`` instead of reaching for
module-level clients. ``open_context`` builds one from settings and owns the
pool and HTTP client for its lifetime.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import asyncpg
import httpx
from libris_catalog import (
    CatalogFetcher,
    GoogleBooksFetcher,
    InternetArchiveFetcher,
    OpenLibraryFetcher,
    PdfCrawler,
)
from libris_common import Settings, get_logger, get_settings
from libris_contracts import CatalogSource
from libris_extraction import (
    DescriptionGenerator,
    GenreClassifier,
    create_description_generator,
    create_genre_classifier,
)
from libris_pdf import StorageUploader, ValidatedPdf, download_and_validate
from libris_storage import (
    BookStore,
    DatabaseConfig,
    ExtractedBookStore,
    IngestionLogStore,
    IngestionStateStore,
    JobStore,
    QueueStore,
    close_connection_pool,
    create_connection_pool,
)

logger = get_logger(__name__)


@dataclass
class PipelineContext:
    """Stores, clients and settings shared by one pipeline invocation."""

    settings: Settings
    http: httpx.AsyncClient
    books: BookStore
    states: IngestionStateStore
    ingestion_logs: IngestionLogStore
    jobs: JobStore
    extracted_books: ExtractedBookStore
    queue: QueueStore
    fetchers: dict[CatalogSource, CatalogFetcher]
    classifier: GenreClassifier
    describer: DescriptionGenerator
    uploader: StorageUploader
    crawler: PdfCrawler

    def fetcher(self, source: CatalogSource) -> CatalogFetcher:
        """Fetcher for a catalog source.

        Raises:
            ValueError: If no fetcher is configured for ``source``
        """
        try:
            return self.fetchers[source]
        except KeyError:
            raise ValueError(f"No fetcher configured for source: {source.value}") from None

    async def validate_pdf(self, url: str) -> Optional[ValidatedPdf]:
        """Download and validate a PDF with the configured limits."""
        return await download_and_validate(
            self.http,
            url,
            max_size_bytes=self.settings.pdf_max_size_bytes,
            timeout=self.settings.pdf_timeout_seconds,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        pool: asyncpg.Pool,
        http: httpx.AsyncClient,
    ) -> "PipelineContext":
        """Wire every component from settings, an open pool and an HTTP client."""
        user_agent = settings.http_user_agent
        fetchers: dict[CatalogSource, CatalogFetcher] = {
            CatalogSource.INTERNET_ARCHIVE: InternetArchiveFetcher(http, user_agent=user_agent),
            CatalogSource.OPEN_LIBRARY: OpenLibraryFetcher(http, user_agent=user_agent),
            CatalogSource.GOOGLE_BOOKS: GoogleBooksFetcher(
                http, api_key=settings.google_books_api_key, user_agent=user_agent
            ),
        }
        return cls(
            settings=settings,
            http=http,
            books=BookStore(pool),
            states=IngestionStateStore(pool),
            ingestion_logs=IngestionLogStore(pool),
            jobs=JobStore(pool),
            extracted_books=ExtractedBookStore(pool),
            queue=QueueStore(pool),
            fetchers=fetchers,
            classifier=create_genre_classifier(settings, http),
            describer=create_description_generator(settings, http),
            uploader=StorageUploader(
                http,
                settings.storage_url,
                settings.storage_service_key,
                bucket=settings.storage_bucket,
            ),
            crawler=PdfCrawler(http),
        )


@asynccontextmanager
async def open_context(settings: Optional[Settings] = None) -> AsyncIterator[PipelineContext]:
    """Open a pool and HTTP client, yield a context, and close both.

    Example:
        >>> async with open_context() as ctx:
        ...     result = await run_ingestion_job(ctx, IngestionOptions(dry_run=True))
    """
    settings = settings or get_settings()
    pool = await create_connection_pool(DatabaseConfig(dsn=settings.database_url))
    try:
        async with httpx.AsyncClient() as http:
            yield PipelineContext.from_settings(settings, pool, http)
    finally:
        await close_connection_pool(pool)
