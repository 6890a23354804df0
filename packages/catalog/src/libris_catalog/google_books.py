"""Google Books fetcher (``volumes`` endpoint).

Google caps ``maxResults`` at 40. The year range is not supported by the
API and is applied as a post-filter.
"""

from typing import Any, Optional

import httpx
from libris_common import get_logger
from libris_contracts import Candidate, CatalogSource, SearchCriteria, SearchResult

from libris_catalog.base import DEFAULT_TIMEOUT_SECONDS, DEFAULT_USER_AGENT, CatalogFetcher, as_dict, dict_entries
from libris_catalog.scoring import access_type_for, google_books_completeness, joined_value, list_value, parse_year

logger = get_logger(__name__)

VOLUMES_URL = "https://www.googleapis.com/books/v1/volumes"
MAX_RESULTS = 40


def build_query(criteria: SearchCriteria) -> str:
    """Query with ``inauthor:`` and ``subject:`` qualifiers joined by ``+``."""
    parts: list[str] = []
    if criteria.query:
        parts.append(criteria.query)
    if criteria.author:
        parts.append(f"inauthor:{criteria.author}")
    if criteria.genre:
        parts.append(f"subject:{criteria.genre}")
    return "+".join(parts)


def isbn_of(volume_info: dict[str, Any]) -> Optional[str]:
    """ISBN-13 if present, else ISBN-10."""
    identifiers = volume_info.get("industryIdentifiers") or []
    for kind in ("ISBN_13", "ISBN_10"):
        for entry in dict_entries(identifiers) or []:
            if entry.get("type") == kind and entry.get("identifier"):
                return entry["identifier"]
    return None


def normalize_item(item: dict[str, Any]) -> Candidate:
    """Map a ``volumes`` item to a Candidate."""
    info = as_dict(item.get("volumeInfo"))
    images = as_dict(info.get("imageLinks"))
    year = parse_year(info.get("publishedDate"))
    return Candidate(
        identifier=str(item["id"]),
        title=info.get("title") or "Unknown Title",
        author=joined_value(info.get("authors")) or "Unknown Author",
        year=year,
        description=info.get("description"),
        language=info.get("language"),
        source=CatalogSource.GOOGLE_BOOKS,
        completeness_score=google_books_completeness(info),
        cover_url=images.get("thumbnail") or images.get("smallThumbnail"),
        isbn=isbn_of(info),
        subjects=list_value(info.get("categories")),
        publisher=info.get("publisher"),
        page_count=info.get("pageCount"),
        access_type=access_type_for(year, CatalogSource.GOOGLE_BOOKS),
    )


def within_years(candidate: Candidate, year_from: Optional[int], year_to: Optional[int]) -> bool:
    """Year post-filter; candidates without a year only pass an open range."""
    if year_from is None and year_to is None:
        return True
    if candidate.year is None:
        return False
    if year_from is not None and candidate.year < year_from:
        return False
    if year_to is not None and candidate.year > year_to:
        return False
    return True


class GoogleBooksFetcher(CatalogFetcher):
    """Google Books search client; the API key is optional."""

    source = CatalogSource.GOOGLE_BOOKS
    request_delay = 0.3

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: Optional[str] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        request_delay: Optional[float] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(client, user_agent=user_agent, request_delay=request_delay, timeout=timeout)
        self._api_key = api_key

    async def _search(self, criteria: SearchCriteria) -> SearchResult:
        limit = min(criteria.limit, MAX_RESULTS)
        params: dict[str, Any] = {
            "q": build_query(criteria),
            "maxResults": limit,
            "startIndex": (criteria.page - 1) * limit,
        }
        if self._api_key:
            params["key"] = self._api_key

        data = await self._get_json(VOLUMES_URL, params)

        payload = as_dict(data)
        items = dict_entries(payload.get("items"))
        if items is None:
            logger.info("google_books_no_items")
            return SearchResult(candidates=[], count=0, source=self.source)

        candidates = [
            c
            for c in (normalize_item(item) for item in items if item.get("id"))
            if within_years(c, criteria.year_from, criteria.year_to)
        ]
        return SearchResult(
            candidates=candidates,
            count=int(payload.get("totalItems") or 0),
            source=self.source,
        )
