"""Deduplication against the catalog.

Scheduled ingestion drops candidates whose identifier is already stored,
using one batched lookup per page. Cross-source duplicates in interactive
search are merged by ``merge_and_deduplicate`` instead.
"""

from typing import Optional

from libris_catalog import merge_and_deduplicate, merge_key
from libris_common import get_logger
from libris_contracts import Candidate
from libris_storage import BookStore

logger = get_logger(__name__)

__all__ = ["DeduplicationEngine", "merge_and_deduplicate", "merge_key"]


class DeduplicationEngine:
    """Identifier-based duplicate checks backed by ``BookStore``."""

    def __init__(self, books: BookStore):
        self._books = books

    async def exists_by_identifier(self, identifier: Optional[str]) -> bool:
        """True if a book with this identifier is stored; blank ids are never found."""
        if not identifier or not identifier.strip():
            return False
        return await self._books.exists_by_identifier(identifier)

    async def filter_new(self, candidates: list[Candidate]) -> list[Candidate]:
        """Candidates whose identifier is not yet stored, in input order.

        Candidates without an identifier are dropped. Running the result
        through again returns it unchanged.

        Raises:
            PersistenceError: If the batched lookup fails
        """
        with_ids = [c for c in candidates if c.identifier and c.identifier.strip()]
        if not with_ids:
            return []

        existing = await self._books.existing_identifiers([c.identifier for c in with_ids])
        new = [c for c in with_ids if c.identifier not in existing]

        logger.info(
            "dedup_filtered",
            total=len(candidates),
            existing=len(existing),
            new=len(new),
        )
        return new
