"""Internet Archive fetcher.

Uses the Advanced Search API for catalog pages and the item metadata API for
single identifiers. The scheduled pipeline pages through public-domain texts
with a PDF format, sorted by downloads.
"""

from dataclasses import dataclass
from typing import Any, Optional

from libris_common import get_logger
from libris_contracts import Candidate, CatalogSource, SearchCriteria, SearchResult

from libris_catalog.base import CatalogFetcher, as_dict, dict_entries
from libris_catalog.scoring import (
    PUBLIC_DOMAIN_CUTOFF_YEAR,
    access_type_for,
    first_value,
    ia_completeness,
    joined_value,
    list_value,
    parse_year,
)

logger = get_logger(__name__)

SEARCH_URL = "https://archive.org/advancedsearch.php"
METADATA_URL = "https://archive.org/metadata/{identifier}"
DOWNLOAD_URL = "https://archive.org/download/{identifier}/{identifier}.pdf"
COVER_URL = "https://archive.org/services/img/{identifier}"

BASE_QUERY = "mediatype:texts AND format:pdf"
PUBLIC_DOMAIN_CLAUSE = f"date:[* TO {PUBLIC_DOMAIN_CUTOFF_YEAR - 1}]"
SEARCH_FIELDS = ("identifier", "title", "creator", "date", "language", "description")

DEFAULT_BATCH_SIZE = 30


@dataclass(frozen=True)
class CatalogPage:
    """One Advanced Search page.

    ``fetched`` is the raw document count, which decides whether the catalog
    is exhausted even when some documents were unusable.
    """

    candidates: list[Candidate]
    fetched: int


def pdf_url_for(identifier: str) -> str:
    """Direct PDF download URL for an item.

    Raises:
        ValueError: If the identifier is blank
    """
    if not identifier or not identifier.strip():
        raise ValueError("Invalid identifier: must be a non-empty string")
    return DOWNLOAD_URL.format(identifier=identifier)


def cover_url_for(identifier: str) -> str:
    return COVER_URL.format(identifier=identifier)


def build_query(criteria: Optional[SearchCriteria] = None) -> str:
    """Advanced Search query string.

    Without a year range the public-domain bound (``date:[* TO 1927]``) applies.
    """
    parts = [BASE_QUERY]
    if criteria is not None:
        if criteria.query:
            parts.append(f"(title:({criteria.query}) OR description:({criteria.query}))")
        if criteria.author:
            parts.append(f"creator:({criteria.author})")
        if criteria.genre:
            parts.append(f"subject:({criteria.genre})")
        if criteria.year_from is not None or criteria.year_to is not None:
            start = criteria.year_from if criteria.year_from is not None else "*"
            end = criteria.year_to if criteria.year_to is not None else "*"
            parts.append(f"date:[{start} TO {end}]")
            return " AND ".join(parts)

    parts.append(PUBLIC_DOMAIN_CLAUSE)
    return " AND ".join(parts)


def build_search_params(query: str, page: int, rows: int) -> list[tuple[str, Any]]:
    """Query parameters for one Advanced Search page (``fl[]`` repeats)."""
    params: list[tuple[str, Any]] = [("q", query)]
    params.extend(("fl[]", field) for field in SEARCH_FIELDS)
    params.extend(
        [
            ("sort[]", "downloads desc"),
            ("rows", rows),
            ("page", page),
            ("output", "json"),
        ]
    )
    return params


def normalize_document(doc: dict[str, Any]) -> Candidate:
    """Map an Advanced Search document to a Candidate."""
    identifier = str(doc["identifier"])
    year = parse_year(doc.get("date"))
    return Candidate(
        identifier=identifier,
        title=first_value(doc.get("title")) or "Unknown Title",
        author=joined_value(doc.get("creator")) or "Unknown Author",
        year=year,
        description=joined_value(doc.get("description"), separator=" "),
        language=first_value(doc.get("language")),
        source=CatalogSource.INTERNET_ARCHIVE,
        completeness_score=ia_completeness(doc),
        cover_url=cover_url_for(identifier),
        subjects=list_value(doc.get("subject")),
        pdf_url=pdf_url_for(identifier),
        access_type=access_type_for(year, CatalogSource.INTERNET_ARCHIVE),
    )


class InternetArchiveFetcher(CatalogFetcher):
    """Internet Archive Advanced Search and metadata client.

    Example:
        >>> async with httpx.AsyncClient() as client:
        ...     fetcher = InternetArchiveFetcher(client)
        ...     page = await fetcher.fetch_batch(page=1, batch_size=30)
        ...     print(page.fetched, len(page.candidates))
    """

    source = CatalogSource.INTERNET_ARCHIVE
    request_delay = 1.5

    async def fetch_batch(self, page: int = 1, batch_size: int = DEFAULT_BATCH_SIZE) -> CatalogPage:
        """Fetch one page of public-domain PDF texts for the scheduled pipeline.

        Documents without an identifier are dropped from ``candidates`` but
        still counted in ``fetched``. Unlike ``search`` this raises, so the
        caller can fail the run.

        Raises:
            TransientSourceError: On rate limit, timeout, transport or status errors
        """
        params = build_search_params(build_query(), page, batch_size)
        data = await self._get_json(SEARCH_URL, params)

        docs = as_dict(as_dict(data).get("response")).get("docs")
        if not isinstance(docs, list):
            logger.info("ia_no_documents", page=page)
            return CatalogPage(candidates=[], fetched=0)

        candidates = [normalize_document(doc) for doc in dict_entries(docs) if doc.get("identifier")]
        logger.info(
            "ia_batch_fetched",
            page=page,
            batch_size=batch_size,
            fetched=len(docs),
            usable=len(candidates),
        )
        return CatalogPage(candidates=candidates, fetched=len(docs))

    async def _search(self, criteria: SearchCriteria) -> SearchResult:
        params = build_search_params(build_query(criteria), criteria.page, criteria.limit)
        data = await self._get_json(SEARCH_URL, params)

        response = as_dict(as_dict(data).get("response"))
        docs = dict_entries(response.get("docs"))
        if docs is None:
            return SearchResult(candidates=[], count=0, source=self.source)

        candidates = [normalize_document(doc) for doc in docs if doc.get("identifier")]
        return SearchResult(
            candidates=candidates,
            count=int(response.get("numFound") or len(candidates)),
            source=self.source,
        )

    async def fetch_metadata(self, identifier: str) -> Optional[Candidate]:
        """Fetch a single item's metadata.

        Returns:
            Candidate, or None if the item has no metadata block

        Raises:
            TransientSourceError: On rate limit, timeout, transport or status errors
        """
        data = await self._get_json(METADATA_URL.format(identifier=identifier))
        meta = as_dict(data).get("metadata")
        if not isinstance(meta, dict) or not meta:
            logger.warning("ia_metadata_missing", identifier=identifier)
            return None

        year = parse_year(meta.get("date"))
        return Candidate(
            identifier=identifier,
            title=first_value(meta.get("title")) or "Unknown Title",
            author=joined_value(meta.get("creator")) or "Unknown Author",
            year=year,
            description=joined_value(meta.get("description"), separator=" "),
            language=first_value(meta.get("language")),
            source=CatalogSource.INTERNET_ARCHIVE,
            completeness_score=ia_completeness({**meta, "identifier": identifier}),
            cover_url=cover_url_for(identifier),
            subjects=list_value(meta.get("subject")),
            publisher=first_value(meta.get("publisher")),
            pdf_url=pdf_url_for(identifier),
            access_type=access_type_for(year, CatalogSource.INTERNET_ARCHIVE),
        )
