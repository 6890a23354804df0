"""BookStore - operations on the user-facing ``books`` catalog.

Provides:
- Point and batched existence lookups by source identifier
- Title/author duplicate lookup for records without identifiers
- Insert with unique-constraint protection
- Category lookup by name
"""

from typing import Optional
from uuid import UUID

import asyncpg
from libris_common import DuplicateRecordError, PersistenceError, get_logger
from libris_contracts import BookRecord

logger = get_logger(__name__)

DEFAULT_COVER_URL = "https://picsum.photos/seed/book/400/600"


class BookStore:
    """Storage operations for catalog books.

    Example:
        >>> store = BookStore(pool)
        >>> await store.exists_by_identifier("meditations00marc")
        False
    """

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def exists_by_identifier(self, identifier: Optional[str]) -> bool:
        """Check whether a book with this source identifier is already stored.

        Blank identifiers never match.

        Raises:
            PersistenceError: If the lookup fails
        """
        if not identifier or not identifier.strip():
            return False

        try:
            async with self._pool.acquire() as conn:
                found = await conn.fetchval(
                    "SELECT EXISTS(SELECT 1 FROM books WHERE source_identifier = $1)",
                    identifier,
                )
                return bool(found)
        except Exception as e:
            logger.error("book_exists_check_failed", identifier=identifier, error=str(e))
            raise PersistenceError(f"Failed to check book existence: {e}") from e

    async def existing_identifiers(self, identifiers: list[str]) -> set[str]:
        """Return the subset of ``identifiers`` already present, in one query.

        Args:
            identifiers: Source identifiers to look up

        Returns:
            Set of identifiers that exist in ``books``

        Raises:
            PersistenceError: If the lookup fails
        """
        wanted = [i for i in identifiers if i]
        if not wanted:
            return set()

        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT source_identifier FROM books WHERE source_identifier = ANY($1::text[])",
                    wanted,
                )
                return {row["source_identifier"] for row in rows}
        except Exception as e:
            logger.error("book_batch_lookup_failed", count=len(wanted), error=str(e))
            raise PersistenceError(f"Failed to look up existing books: {e}") from e

    async def insert(self, book: BookRecord) -> UUID:
        """Insert a catalog book.

        Args:
            book: Book to insert. ``title``, ``author`` and ``pdf_url`` are required.

        Returns:
            UUID of the new row

        Raises:
            PersistenceError: If required fields are missing or the insert fails
            DuplicateRecordError: If ``source_identifier`` already exists
        """
        if not book.title.strip():
            raise PersistenceError("Invalid book data: title is required")
        if not book.author.strip():
            raise PersistenceError("Invalid book data: author is required")
        if not book.pdf_url:
            raise PersistenceError("Invalid book data: pdf_url is required")

        try:
            async with self._pool.acquire() as conn:
                book_id = await conn.fetchval(
                    """
                    INSERT INTO books (
                        title, author, source, source_identifier, pdf_url, cover_url,
                        description, published_year, language, genres, subgenre,
                        category_id, access_type, total_copies, copies_available
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15)
                    RETURNING id
                    """,
                    book.title.strip(),
                    book.author.strip(),
                    book.source.value,
                    book.source_identifier,
                    book.pdf_url,
                    book.cover_url or DEFAULT_COVER_URL,
                    book.description,
                    book.published_year,
                    book.language,
                    book.genres,
                    book.subgenre,
                    book.category_id,
                    book.access_type.value,
                    book.total_copies,
                    book.copies_available,
                )

                logger.info(
                    "book_inserted",
                    book_id=str(book_id),
                    identifier=book.source_identifier,
                    title=book.title[:50],
                )
                return book_id

        except asyncpg.UniqueViolationError as e:
            logger.warning("book_insert_duplicate", identifier=book.source_identifier)
            raise DuplicateRecordError(
                f"Book already exists (duplicate source_identifier): {book.source_identifier}"
            ) from e
        except Exception as e:
            logger.error("book_insert_failed", identifier=book.source_identifier, error=str(e))
            raise PersistenceError(f"Failed to insert book: {e}") from e

    async def find_category_id(self, name: Optional[str]) -> Optional[UUID]:
        """Resolve a category name (case-insensitive) to its id."""
        if not name:
            return None

        try:
            async with self._pool.acquire() as conn:
                return await conn.fetchval(
                    "SELECT id FROM categories WHERE lower(name) = lower($1)",
                    name,
                )
        except Exception as e:
            logger.error("category_lookup_failed", name=name, error=str(e))
            raise PersistenceError(f"Failed to look up category: {e}") from e
