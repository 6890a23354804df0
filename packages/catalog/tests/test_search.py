"""Tests for MultiSourceSearch - concurrent fan-out, merge and ranking."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from libris_catalog import MultiSourceSearch
from libris_contracts import Candidate, CatalogSource, SearchCriteria, SearchResult

pytestmark = pytest.mark.unit


def _fetcher(source: CatalogSource, candidates: list[Candidate]) -> MagicMock:
    fetcher = MagicMock()
    fetcher.source = source
    fetcher.name = source.value
    fetcher.search = AsyncMock(return_value=SearchResult(candidates=candidates, count=len(candidates), source=source))
    return fetcher


def _candidate(title: str, source: CatalogSource, score: int = 50) -> Candidate:
    return Candidate(identifier=f"{source.value}:{title}", title=title, author="Plato", source=source, completeness_score=score)


class TestMultiSourceSearch:
    """Tests for MultiSourceSearch.search()."""

    async def test_merges_across_sources(self):
        """Duplicates across sources collapse into the most complete record."""
        ia = _fetcher(CatalogSource.INTERNET_ARCHIVE, [_candidate("Republic", CatalogSource.INTERNET_ARCHIVE, 60)])
        ol = _fetcher(
            CatalogSource.OPEN_LIBRARY,
            [_candidate("Republic", CatalogSource.OPEN_LIBRARY, 90), _candidate("Laws", CatalogSource.OPEN_LIBRARY)],
        )

        result = await MultiSourceSearch([ia, ol]).search(SearchCriteria(query="republic", limit=10))

        assert result.count == 2
        top = result.candidates[0]
        assert top.title == "Republic"
        assert top.source == CatalogSource.OPEN_LIBRARY
        assert top.other_sources == [CatalogSource.INTERNET_ARCHIVE]

    async def test_overfetches_per_source(self):
        """Each source is asked for 1.5x the requested limit."""
        ia = _fetcher(CatalogSource.INTERNET_ARCHIVE, [])

        await MultiSourceSearch([ia]).search(SearchCriteria(query="x", limit=20))

        assert ia.search.call_args[0][0].limit == 30

    async def test_source_subset(self):
        """Only the selected sources are queried."""
        ia = _fetcher(CatalogSource.INTERNET_ARCHIVE, [])
        gb = _fetcher(CatalogSource.GOOGLE_BOOKS, [])

        await MultiSourceSearch([ia, gb]).search(SearchCriteria(query="x"), sources=[CatalogSource.GOOGLE_BOOKS])

        ia.search.assert_not_called()
        gb.search.assert_awaited_once()

    async def test_empty_source_contributes_nothing(self):
        """A source returning nothing does not affect the others."""
        ia = _fetcher(CatalogSource.INTERNET_ARCHIVE, [])
        ol = _fetcher(CatalogSource.OPEN_LIBRARY, [_candidate("Laws", CatalogSource.OPEN_LIBRARY)])

        result = await MultiSourceSearch([ia, ol]).search(SearchCriteria(query="laws"))

        assert [c.title for c in result.candidates] == ["Laws"]

    async def test_truncates_to_limit(self):
        """The merged list is cut to the requested limit."""
        books = [_candidate(f"Book {i}", CatalogSource.OPEN_LIBRARY) for i in range(5)]
        ol = _fetcher(CatalogSource.OPEN_LIBRARY, books)

        result = await MultiSourceSearch([ol]).search(SearchCriteria(query="book", limit=3))

        assert len(result.candidates) == 3

    async def test_crashing_source_contributes_nothing(self):
        """An exception from one source does not abort the others."""
        ia = _fetcher(CatalogSource.INTERNET_ARCHIVE, [])
        ia.search = AsyncMock(side_effect=RuntimeError("boom"))
        ol = _fetcher(CatalogSource.OPEN_LIBRARY, [_candidate("Laws", CatalogSource.OPEN_LIBRARY)])

        result = await MultiSourceSearch([ia, ol]).search(SearchCriteria(query="laws"))

        assert [c.title for c in result.candidates] == ["Laws"]
