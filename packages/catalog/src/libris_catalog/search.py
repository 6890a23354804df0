"""Multi-source interactive search.

Queries every enabled fetcher concurrently, joins the results, collapses
cross-source duplicates and ranks by relevance, then completeness.
"""

import asyncio
import math
from typing import Iterable, Optional, Sequence

from libris_common import get_logger
from libris_contracts import CatalogSource, SearchCriteria, SearchResult

from libris_catalog.base import CatalogFetcher
from libris_catalog.scoring import merge_and_deduplicate, rank_by_relevance

logger = get_logger(__name__)

# Over-fetch per source so the merged list can still fill the page
OVERFETCH_FACTOR = 1.5


class MultiSourceSearch:
    """Concurrent search across several catalog fetchers.

    Example:
        >>> search = MultiSourceSearch([ia, open_library, google_books])
        >>> result = await search.search(SearchCriteria(query="meditations", limit=20))
        >>> for c in result.candidates:
        ...     print(c.title, c.source, c.other_sources)
    """

    def __init__(self, fetchers: Sequence[CatalogFetcher]):
        self._fetchers = {f.source: f for f in fetchers}

    @property
    def sources(self) -> list[CatalogSource]:
        return list(self._fetchers)

    async def search(
        self,
        criteria: SearchCriteria,
        sources: Optional[Iterable[CatalogSource]] = None,
    ) -> SearchResult:
        """Search the selected sources (default: all) and merge the results.

        A failing source contributes nothing, including one whose
        ``search`` raises unexpectedly.

        Args:
            criteria: Shared search criteria
            sources: Subset of sources to query

        Returns:
            Merged, ranked SearchResult truncated to ``criteria.limit``
        """
        selected = [self._fetchers[s] for s in (sources or self._fetchers) if s in self._fetchers]
        if not selected:
            return SearchResult(candidates=[], count=0)

        per_source = criteria.model_copy(
            update={"limit": min(100, math.ceil(criteria.limit * OVERFETCH_FACTOR))}
        )
        gathered = await asyncio.gather(*(f.search(per_source) for f in selected), return_exceptions=True)
        results = []
        for fetcher, outcome in zip(selected, gathered):
            if isinstance(outcome, Exception):
                logger.warning("source_search_crashed", source=fetcher.name, error=str(outcome))
                outcome = SearchResult(candidates=[], count=0, source=fetcher.source)
            results.append(outcome)

        breakdown = {f.name: len(r.candidates) for f, r in zip(selected, results)}
        combined = [c for r in results for c in r.candidates]
        merged = merge_and_deduplicate(combined)
        ranked = rank_by_relevance(criteria.query, merged)[: criteria.limit]

        logger.info(
            "multi_source_search_complete",
            query=criteria.query,
            breakdown=breakdown,
            raw=len(combined),
            merged=len(merged),
            returned=len(ranked),
        )
        return SearchResult(candidates=ranked, count=len(ranked))
