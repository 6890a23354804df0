"""Per-book steps shared by scheduled ingestion and the manual queue.

Classification is best-effort and never fails a book. PDF validation,
upload and insert failures are fatal to the book and raise.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from uuid import UUID

from libris_catalog import cover_url_for, pdf_url_for
from libris_common import DuplicateRecordError, PdfValidationError, get_logger
from libris_contracts import BookRecord, Candidate, CatalogSource, FilterConfig
from libris_pdf import sanitize_filename

from libris_pipeline.context import PipelineContext
from libris_pipeline.ingestion_filter import apply_filters, has_active_filters, record_decision

logger = get_logger(__name__)

UNKNOWN_AUTHOR = "Unknown Author"


class BookOutcome(str, Enum):
    ADDED = "added"
    FILTERED = "filtered"
    DUPLICATE = "duplicate"


@dataclass
class ProcessedBook:
    """Outcome of one candidate that did not raise."""

    outcome: BookOutcome
    book_id: Optional[UUID] = None
    reason: Optional[str] = None


def resolve_pdf_url(candidate: Candidate) -> Optional[str]:
    """The candidate's PDF URL, or the archive.org download URL for IA items."""
    if candidate.pdf_url:
        return candidate.pdf_url
    if candidate.source == CatalogSource.INTERNET_ARCHIVE and candidate.identifier:
        return pdf_url_for(candidate.identifier)
    return None


def resolve_cover_url(candidate: Candidate) -> Optional[str]:
    if candidate.cover_url:
        return candidate.cover_url
    if candidate.source == CatalogSource.INTERNET_ARCHIVE and candidate.identifier:
        return cover_url_for(candidate.identifier)
    return None


async def classify_candidate(ctx: PipelineContext, candidate: Candidate) -> Candidate:
    """Candidate with genres and subgenre filled in when classification succeeds."""
    classification = await ctx.classifier.classify(candidate)
    if classification is None:
        return candidate
    return candidate.model_copy(
        update={"genres": classification.genres, "subgenre": classification.subgenre}
    )


async def store_candidate(
    ctx: PipelineContext,
    candidate: Candidate,
    description: Optional[str] = None,
) -> UUID:
    """Validate and upload the candidate's PDF, then insert the book.

    Args:
        ctx: Pipeline context
        candidate: Classified candidate
        description: Generated description overriding the catalog one

    Returns:
        New book UUID

    Raises:
        PdfValidationError: If there is no PDF or it fails validation
        StorageError: If the upload fails
        DuplicateRecordError: If the identifier was stored concurrently
        PersistenceError: If the insert fails
    """
    pdf_url = resolve_pdf_url(candidate)
    if not pdf_url:
        raise PdfValidationError("No PDF available")

    validated = await ctx.validate_pdf(pdf_url)
    if validated is None:
        raise PdfValidationError("PDF download or validation failed")

    public_url = await ctx.uploader.upload_pdf(
        validated.content, sanitize_filename(candidate.identifier)
    )

    category_id = await ctx.books.find_category_id(candidate.genres[0] if candidate.genres else None)

    record = BookRecord(
        title=candidate.title,
        author=candidate.author or UNKNOWN_AUTHOR,
        source=candidate.source,
        source_identifier=candidate.identifier,
        pdf_url=public_url,
        cover_url=resolve_cover_url(candidate),
        description=description or candidate.description,
        published_year=candidate.year,
        language=candidate.language,
        genres=candidate.genres,
        subgenre=candidate.subgenre,
        category_id=category_id,
        access_type=candidate.access_type,
    )
    book_id = await ctx.books.insert(record)

    logger.info(
        "book_stored",
        identifier=candidate.identifier,
        book_id=str(book_id),
        size=validated.size,
        genres=candidate.genres,
    )
    return book_id


async def ingest_candidate(
    ctx: PipelineContext,
    candidate: Candidate,
    filter_config: FilterConfig,
    run_id: Optional[UUID] = None,
) -> ProcessedBook:
    """Classify, filter and store one scheduled-ingestion candidate.

    Raises:
        PdfValidationError, StorageError, PersistenceError: Fatal to this book
    """
    classified = await classify_candidate(ctx, candidate)

    if has_active_filters(filter_config):
        decision = apply_filters(classified, filter_config)
        await record_decision(ctx.ingestion_logs, run_id, classified, decision)
        if not decision.passed:
            return ProcessedBook(outcome=BookOutcome.FILTERED, reason=decision.reason)

    try:
        book_id = await store_candidate(ctx, classified)
    except DuplicateRecordError as e:
        logger.info("book_already_stored", identifier=candidate.identifier)
        return ProcessedBook(outcome=BookOutcome.DUPLICATE, reason=str(e))

    return ProcessedBook(outcome=BookOutcome.ADDED, book_id=book_id)
