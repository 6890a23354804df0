"""ExtractedBookStore - books produced by extraction jobs.

Every status change of a book recounts its job's ``books_extracted`` in the
same transaction, so the counter always equals the number of the job's
books in ``completed`` or ``published``.

Extracted books are invisible to readers until ``publish`` promotes them.
"""

from typing import Any, Optional
from uuid import UUID

import asyncpg
from libris_common import DuplicateRecordError, NotFoundError, PersistenceError, get_logger
from libris_contracts import ExtractedBook, ExtractedBookStatus

from libris_storage.book_store import DEFAULT_COVER_URL

logger = get_logger(__name__)

_RECOUNT_SQL = """
    UPDATE extraction_jobs
    SET books_extracted = (
        SELECT COUNT(*) FROM extracted_books
        WHERE job_id = $1 AND status IN ('completed', 'published')
    )
    WHERE id = $1
    RETURNING books_extracted
"""

_UPDATABLE_FIELDS = (
    "title",
    "author",
    "description",
    "synopsis",
    "category_id",
    "cover_url",
    "pdf_url",
    "error_message",
)


def _row_to_book(row: asyncpg.Record) -> ExtractedBook:
    return ExtractedBook(**dict(row))


class ExtractedBookStore:
    """Storage operations for ``extracted_books``."""

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def add(
        self,
        job_id: UUID,
        title: str,
        source_pdf_url: str,
        author: Optional[str] = None,
    ) -> ExtractedBook:
        """Register a discovered PDF as a ``processing`` book.

        Raises:
            DuplicateRecordError: If the job already holds this PDF URL
            PersistenceError: If the insert fails
        """
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO extracted_books (job_id, title, author, source_pdf_url, status)
                    VALUES ($1, $2, $3, $4, 'processing')
                    RETURNING *
                    """,
                    job_id,
                    title,
                    author,
                    source_pdf_url,
                )
                return _row_to_book(row)
        except asyncpg.UniqueViolationError as e:
            raise DuplicateRecordError(f"PDF already extracted for this job: {source_pdf_url}") from e
        except Exception as e:
            logger.error("extracted_book_add_failed", job_id=str(job_id), error=str(e))
            raise PersistenceError(f"Failed to add extracted book: {e}") from e

    async def update_status(
        self,
        book_id: UUID,
        status: ExtractedBookStatus,
        **fields: Any,
    ) -> tuple[ExtractedBook, int]:
        """Change a book's status (and optional fields), then recount its job.

        Args:
            book_id: Extracted book UUID
            status: New status
            **fields: Any of title, author, description, synopsis,
                category_id, cover_url, pdf_url, error_message

        Returns:
            Tuple of (updated book, job's books_extracted after the change)

        Raises:
            NotFoundError: If the book does not exist
            PersistenceError: If the update fails
        """
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise PersistenceError(f"Unknown extracted book fields: {sorted(unknown)}")

        set_clauses = ["status = $2"]
        params: list[Any] = [book_id, status.value]
        for name in _UPDATABLE_FIELDS:
            if name in fields:
                params.append(fields[name])
                set_clauses.append(f"{name} = ${len(params)}")

        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        f"""
                        UPDATE extracted_books
                        SET {', '.join(set_clauses)}
                        WHERE id = $1
                        RETURNING *
                        """,
                        *params,
                    )
                    if row is None:
                        raise NotFoundError(f"Extracted book not found: {book_id}")

                    books_extracted = await conn.fetchval(_RECOUNT_SQL, row["job_id"])

                logger.info(
                    "extracted_book_status",
                    book_id=str(book_id),
                    status=status.value,
                    books_extracted=books_extracted,
                )
                return _row_to_book(row), books_extracted

        except NotFoundError:
            raise
        except Exception as e:
            logger.error("extracted_book_update_failed", book_id=str(book_id), error=str(e))
            raise PersistenceError(f"Failed to update extracted book: {e}") from e

    async def list_for_job(self, job_id: UUID) -> list[ExtractedBook]:
        """All books of a job, oldest first."""
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT * FROM extracted_books WHERE job_id = $1 ORDER BY extracted_at ASC",
                    job_id,
                )
                return [_row_to_book(row) for row in rows]
        except Exception as e:
            logger.error("extracted_book_list_failed", job_id=str(job_id), error=str(e))
            raise PersistenceError(f"Failed to list extracted books: {e}") from e

    async def list_published(self, limit: int = 100) -> list[ExtractedBook]:
        """Reader-visible extracted books (``published`` only)."""
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT * FROM extracted_books
                    WHERE status = 'published'
                    ORDER BY published_at DESC
                    LIMIT $1
                    """,
                    limit,
                )
                return [_row_to_book(row) for row in rows]
        except Exception as e:
            logger.error("extracted_book_published_list_failed", error=str(e))
            raise PersistenceError(f"Failed to list published books: {e}") from e

    async def publish(self, job_id: UUID) -> int:
        """Promote a job's ``completed`` books into the catalog.

        Each book is copied into ``books`` and marked ``published``. The
        job's counter is recounted (unchanged, both states count).

        Returns:
            Number of books published
        """
        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    rows = await conn.fetch(
                        """
                        SELECT * FROM extracted_books
                        WHERE job_id = $1 AND status = 'completed'
                        FOR UPDATE
                        """,
                        job_id,
                    )

                    for row in rows:
                        await conn.execute(
                            """
                            INSERT INTO books (
                                title, author, source, pdf_url, cover_url,
                                description, category_id, total_copies, copies_available
                            ) VALUES ($1, $2, 'crawl', $3, $4, $5, $6, 1, 1)
                            """,
                            row["title"],
                            row["author"] or "Unknown",
                            row["pdf_url"],
                            row["cover_url"] or DEFAULT_COVER_URL,
                            row["description"],
                            row["category_id"],
                        )
                        await conn.execute(
                            """
                            UPDATE extracted_books
                            SET status = 'published', published_at = NOW()
                            WHERE id = $1
                            """,
                            row["id"],
                        )

                    await conn.fetchval(_RECOUNT_SQL, job_id)
                    await conn.execute(
                        """
                        INSERT INTO extraction_logs (job_id, level, message, details)
                        VALUES ($1, 'info', $2, $3)
                        """,
                        job_id,
                        f"Published {len(rows)} books to catalog",
                        {"published_count": len(rows)},
                    )

                logger.info("extracted_books_published", job_id=str(job_id), count=len(rows))
                return len(rows)

        except Exception as e:
            logger.error("extracted_book_publish_failed", job_id=str(job_id), error=str(e))
            raise PersistenceError(f"Failed to publish extracted books: {e}") from e
