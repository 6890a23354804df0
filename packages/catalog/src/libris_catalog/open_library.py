"""Open Library fetcher (``search.json``)."""

from typing import Any, Optional

from libris_common import get_logger
from libris_contracts import Candidate, CatalogSource, SearchCriteria, SearchResult

from libris_catalog.base import CatalogFetcher, as_dict, dict_entries
from libris_catalog.scoring import (
    access_type_for,
    first_value,
    joined_value,
    list_value,
    open_library_completeness,
    parse_year,
)

logger = get_logger(__name__)

SEARCH_URL = "https://openlibrary.org/search.json"
COVER_BY_ID_URL = "https://covers.openlibrary.org/b/id/{cover_id}-M.jpg"
COVER_BY_ISBN_URL = "https://covers.openlibrary.org/b/isbn/{isbn}-M.jpg"


def build_query(criteria: SearchCriteria) -> str:
    """Free-text query with ``author:`` and ``first_publish_year:`` clauses."""
    parts: list[str] = []
    if criteria.query:
        parts.append(criteria.query)
    if criteria.author:
        parts.append(f"author:{criteria.author}")
    if criteria.genre:
        parts.append(f"subject:{criteria.genre}")
    if criteria.year_from is not None or criteria.year_to is not None:
        start = criteria.year_from if criteria.year_from is not None else "*"
        end = criteria.year_to if criteria.year_to is not None else "*"
        parts.append(f"first_publish_year:[{start} TO {end}]")
    return " ".join(parts)


def cover_url(doc: dict[str, Any]) -> Optional[str]:
    """Cover by cover id, else by first ISBN."""
    if doc.get("cover_i"):
        return COVER_BY_ID_URL.format(cover_id=doc["cover_i"])
    isbns = doc.get("isbn") or []
    if isbns:
        return COVER_BY_ISBN_URL.format(isbn=isbns[0])
    return None


def normalize_document(doc: dict[str, Any]) -> Candidate:
    """Map a ``search.json`` document to a Candidate; the work key is the identifier."""
    year = parse_year(doc.get("first_publish_year"))
    pages = doc.get("number_of_pages_median")
    return Candidate(
        identifier=str(doc["key"]).replace("/works/", ""),
        title=doc.get("title") or "Unknown Title",
        author=joined_value(doc.get("author_name")) or "Unknown Author",
        year=year,
        description=first_value(doc.get("first_sentence")),
        language=first_value(doc.get("language")),
        source=CatalogSource.OPEN_LIBRARY,
        completeness_score=open_library_completeness(doc),
        cover_url=cover_url(doc),
        isbn=first_value(doc.get("isbn")),
        subjects=list_value(doc.get("subject")),
        publisher=first_value(doc.get("publisher")),
        page_count=int(pages) if pages else None,
        access_type=access_type_for(year, CatalogSource.OPEN_LIBRARY),
    )


class OpenLibraryFetcher(CatalogFetcher):
    """Open Library search client."""

    source = CatalogSource.OPEN_LIBRARY
    request_delay = 0.5

    async def _search(self, criteria: SearchCriteria) -> SearchResult:
        params = {
            "q": build_query(criteria),
            "limit": criteria.limit,
            "offset": (criteria.page - 1) * criteria.limit,
        }
        data = await self._get_json(SEARCH_URL, params)

        payload = as_dict(data)
        docs = dict_entries(payload.get("docs"))
        if docs is None:
            logger.info("open_library_no_documents")
            return SearchResult(candidates=[], count=0, source=self.source)

        candidates = [normalize_document(doc) for doc in docs if doc.get("key")]
        return SearchResult(
            candidates=candidates,
            count=int(payload.get("numFound") or 0),
            source=self.source,
        )
