"""Pure scoring and merge helpers shared by the catalog fetchers.

Provides:
- Completeness scores per source (weighted presence of metadata fields)
- Access-type heuristic from publication year and source
- Keyword relevance scoring for interactive search
- Cross-source merge keyed by normalized title/author
"""

import re
from typing import Any, Iterable, Optional

from libris_contracts import AccessType, Candidate, CatalogSource

PUBLIC_DOMAIN_CUTOFF_YEAR = 1928

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_YEAR = re.compile(r"\d{4}")

# Field weights per source; each table sums to 100
IA_WEIGHTS = {
    "title": 20,
    "creator": 20,
    "date": 15,
    "description": 20,
    "language": 10,
    "identifier": 15,
}

OPEN_LIBRARY_WEIGHTS = {
    "title": 15,
    "author_name": 15,
    "first_publish_year": 10,
    "first_sentence": 15,
    "cover_i": 10,
    "isbn": 10,
    "subject": 10,
    "language": 5,
    "publisher": 5,
    "number_of_pages_median": 5,
}

GOOGLE_BOOKS_WEIGHTS = {
    "title": 15,
    "authors": 15,
    "publishedDate": 10,
    "description": 15,
    "imageLinks": 10,
    "industryIdentifiers": 10,
    "categories": 10,
    "language": 5,
    "publisher": 5,
    "pageCount": 5,
}


def _weighted_presence(doc: dict[str, Any], weights: dict[str, int]) -> int:
    # Empty strings and empty lists do not count as present
    return min(100, sum(weight for field, weight in weights.items() if doc.get(field)))


def ia_completeness(doc: dict[str, Any]) -> int:
    """Completeness score (0-100) of an Internet Archive search document."""
    return _weighted_presence(doc, IA_WEIGHTS)


def open_library_completeness(doc: dict[str, Any]) -> int:
    """Completeness score (0-100) of an Open Library search document."""
    return _weighted_presence(doc, OPEN_LIBRARY_WEIGHTS)


def google_books_completeness(volume_info: dict[str, Any]) -> int:
    """Completeness score (0-100) of a Google Books ``volumeInfo`` object."""
    return _weighted_presence(volume_info, GOOGLE_BOOKS_WEIGHTS)


def parse_year(value: Any) -> Optional[int]:
    """Extract a four-digit year from an int or a date-like string.

    Example:
        >>> parse_year("1887-01-01")
        1887
        >>> parse_year("n.d.") is None
        True
    """
    if isinstance(value, int):
        return value
    if isinstance(value, list):
        value = value[0] if value else None
    if not isinstance(value, str):
        return None
    match = _YEAR.search(value)
    return int(match.group(0)) if match else None


def first_value(value: Any) -> Optional[str]:
    """First element of a list-valued field, or the scalar itself."""
    if isinstance(value, list):
        return str(value[0]) if value else None
    return str(value) if value else None


def joined_value(value: Any, separator: str = ", ") -> Optional[str]:
    """Join list-valued fields (creators, descriptions) into one string."""
    if isinstance(value, list):
        joined = separator.join(str(v) for v in value if v)
        return joined or None
    return str(value) if value else None


def access_type_for(year: Optional[int], source: CatalogSource) -> AccessType:
    """Rights heuristic: pre-1928 is public domain, IA content otherwise open access."""
    if year is not None and year < PUBLIC_DOMAIN_CUTOFF_YEAR:
        return AccessType.PUBLIC_DOMAIN
    if source == CatalogSource.INTERNET_ARCHIVE:
        return AccessType.OPEN_ACCESS
    return AccessType.UNKNOWN


def normalize_key_part(value: Optional[str]) -> str:
    """Lowercase and strip everything outside ``[a-z0-9]``."""
    return _NON_ALNUM.sub("", (value or "").lower())


def merge_key(candidate: Candidate) -> str:
    """Cross-source identity key: normalized title plus the author's first 20 chars."""
    return f"{normalize_key_part(candidate.title)}-{normalize_key_part(candidate.author)[:20]}"


def merge_and_deduplicate(candidates: Iterable[Candidate]) -> list[Candidate]:
    """Collapse cross-source duplicates, keeping the most complete record.

    Candidates sharing a ``merge_key`` are merged: the one with the highest
    completeness score wins (first seen on ties) and the other sources are
    recorded in ``other_sources``. Input order of first occurrence is kept.

    Args:
        candidates: Candidates from any mix of sources

    Returns:
        One candidate per key
    """
    merged: dict[str, Candidate] = {}

    for candidate in candidates:
        key = merge_key(candidate)
        existing = merged.get(key)

        if existing is None:
            merged[key] = candidate
        elif candidate.completeness_score > existing.completeness_score:
            merged[key] = candidate.model_copy(
                update={
                    "other_sources": [
                        *existing.other_sources,
                        existing.source,
                        *candidate.other_sources,
                    ]
                }
            )
        else:
            merged[key] = existing.model_copy(
                update={"other_sources": [*existing.other_sources, candidate.source]}
            )

    return list(merged.values())


def relevance_score(query: str, candidate: Candidate) -> float:
    """Keyword relevance of a candidate to a free-text query (0-100).

    Base 50, plus exact/substring title matches, per-word title, author and
    description hits, and a tenth of the completeness score.
    """
    query_lower = query.strip().lower()
    words = [w for w in query_lower.split() if len(w) > 2]
    title = (candidate.title or "").lower()
    author = (candidate.author or "").lower()
    description = (candidate.description or "").lower()

    score = 50
    if query_lower and title == query_lower:
        score += 40
    elif query_lower and query_lower in title:
        score += 25

    score += sum(5 for w in words if w in title)
    if query_lower and query_lower in author:
        score += 20
    score += sum(3 for w in words if w in author)
    score += sum(2 for w in words if w in description)
    score += candidate.completeness_score // 10

    return float(min(100, score))


def rank_by_relevance(query: Optional[str], candidates: list[Candidate]) -> list[Candidate]:
    """Score and sort candidates by relevance, then completeness (both descending)."""
    if query:
        candidates = [
            c.model_copy(update={"relevance_score": relevance_score(query, c)}) for c in candidates
        ]
    return sorted(
        candidates,
        key=lambda c: (c.relevance_score, c.completeness_score),
        reverse=True,
    )


def list_value(value: Any, limit: int = 10) -> list[str]:
    """Normalize a list or ``;``-separated string field to at most ``limit`` strings."""
    if isinstance(value, str):
        items = [s.strip() for s in value.split(";")]
    elif isinstance(value, list):
        items = [str(s).strip() for s in value]
    else:
        return []
    return [s for s in items if s][:limit]
