"""Pytest fixtures for pipeline tests.

``ctx`` is a PipelineContext whose stores and clients are mocks; tests
override the return values they care about.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from libris_catalog import CatalogPage, InternetArchiveFetcher
from libris_common import Settings
from libris_contracts import CatalogSource, IngestionState, RunStatus
from libris_pdf import ValidatedPdf
from libris_pipeline.context import PipelineContext

PDF_BYTES = b"%PDF-1.4\n" + b"0" * 256


@pytest.fixture
def settings():
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, classifier_mock_mode=True)


@pytest.fixture
def claimed_state():
    return IngestionState(
        source="internet_archive",
        last_page=3,
        last_run_at=datetime.now(timezone.utc),
        last_run_status=RunStatus.RUNNING,
    )


@pytest.fixture
def ctx(settings, claimed_state):
    """Context with mocked stores, fetchers, AI clients and uploader."""
    books = MagicMock()
    books.exists_by_identifier = AsyncMock(return_value=False)
    books.existing_identifiers = AsyncMock(return_value=set())
    books.insert = AsyncMock(side_effect=lambda record: uuid4())
    books.find_category_id = AsyncMock(return_value=None)

    states = MagicMock()
    states.get_or_create = AsyncMock(return_value=claimed_state)
    states.claim_run = AsyncMock(return_value=claimed_state)
    states.complete_run = AsyncMock(return_value=claimed_state)
    states.reset = AsyncMock(return_value=claimed_state)
    states.set_paused = AsyncMock(return_value=claimed_state)

    ingestion_logs = MagicMock()
    ingestion_logs.open_run = AsyncMock(return_value=uuid4())
    ingestion_logs.close_run = AsyncMock()
    ingestion_logs.record_filter_decision = AsyncMock()

    queue = MagicMock()
    queue.find_active = AsyncMock(return_value=None)
    queue.claim_pending = AsyncMock(return_value=[])
    queue.update_status = AsyncMock()
    queue.list_entries = AsyncMock(return_value=[])
    queue.get_stats = AsyncMock(return_value={"pending": 0, "total": 0})
    queue.delete_finished = AsyncMock(return_value=0)
    queue.retry_failed = AsyncMock(return_value=0)

    ia_fetcher = MagicMock(spec=InternetArchiveFetcher)
    ia_fetcher.source = CatalogSource.INTERNET_ARCHIVE
    ia_fetcher.fetch_batch = AsyncMock(return_value=CatalogPage(candidates=[], fetched=0))
    ia_fetcher.fetch_metadata = AsyncMock(return_value=None)

    classifier = MagicMock()
    classifier.classify = AsyncMock(return_value=None)

    describer = MagicMock()
    describer.generate = AsyncMock(return_value=None)
    describer.synopsis = AsyncMock(return_value=None)

    uploader = MagicMock()
    uploader.upload_pdf = AsyncMock(
        side_effect=lambda content, filename: f"https://storage.test/public/books/{filename}.pdf"
    )

    context = PipelineContext(
        settings=settings,
        http=MagicMock(),
        books=books,
        states=states,
        ingestion_logs=ingestion_logs,
        jobs=MagicMock(),
        extracted_books=MagicMock(),
        queue=queue,
        fetchers={CatalogSource.INTERNET_ARCHIVE: ia_fetcher},
        classifier=classifier,
        describer=describer,
        uploader=uploader,
        crawler=MagicMock(),
    )
    context.validate_pdf = AsyncMock(return_value=ValidatedPdf(content=PDF_BYTES, size=len(PDF_BYTES)))
    return context
