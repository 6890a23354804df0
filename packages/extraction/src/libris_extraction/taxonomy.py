"""Controlled genre vocabulary.

Classification, the ingestion filter and the CLI all validate against these
lists. Matching is case-insensitive; the canonical spelling is returned.
"""

from typing import Iterable, Optional

from libris_common import get_logger

logger = get_logger(__name__)

MAX_GENRES = 3

PRIMARY_GENRES = (
    "Philosophy",
    "Religion",
    "Theology",
    "Sacred Texts",
    "History",
    "Biography",
    "Science",
    "Mathematics",
    "Medicine",
    "Law",
    "Politics",
    "Economics",
    "Literature",
    "Poetry",
    "Drama",
    "Mythology",
    "Military & Strategy",
    "Education",
    "Linguistics",
    "Ethics",
    "Anthropology",
    "Sociology",
    "Psychology",
    "Geography",
    "Astronomy",
    "Alchemy & Esoterica",
    "Art & Architecture",
)

SUB_GENRES = (
    "Ancient",
    "Medieval",
    "Classical",
    "Early Modern",
    "Commentary",
    "Translation",
    "Manuscript",
    "Legal Code",
    "Canonical Text",
)

_PRIMARY_LOOKUP = {g.lower(): g for g in PRIMARY_GENRES}
_SUB_LOOKUP = {g.lower(): g for g in SUB_GENRES}


def validate_genre(genre: object) -> Optional[str]:
    """Canonical genre name, or None if it is not in the taxonomy."""
    if not isinstance(genre, str):
        return None
    return _PRIMARY_LOOKUP.get(genre.strip().lower())


def validate_subgenre(subgenre: object) -> Optional[str]:
    """Canonical sub-genre name, or None if it is not in the taxonomy."""
    if not isinstance(subgenre, str):
        return None
    return _SUB_LOOKUP.get(subgenre.strip().lower())


def validate_genres(genres: object) -> list[str]:
    """Keep valid genres in order, deduplicated, at most three.

    Example:
        >>> validate_genres(["philosophy", "Cooking", "ETHICS", "Philosophy"])
        ['Philosophy', 'Ethics']
    """
    if not isinstance(genres, list):
        return []

    valid: list[str] = []
    for genre in genres:
        canonical = validate_genre(genre)
        if canonical and canonical not in valid:
            valid.append(canonical)
            if len(valid) >= MAX_GENRES:
                break
    return valid


def is_valid_genre(genre: object) -> bool:
    return validate_genre(genre) is not None


def is_valid_subgenre(subgenre: object) -> bool:
    return validate_subgenre(subgenre) is not None


def validate_genre_names(names: Iterable[str]) -> list[str]:
    """Normalize configured genre names, logging and dropping unknown ones.

    Unlike ``validate_genres`` there is no cap: filter allow-lists may name
    any number of genres.
    """
    valid: list[str] = []
    for name in names:
        canonical = validate_genre(name)
        if canonical is None:
            logger.warning("unknown_genre_ignored", genre=name)
            continue
        if canonical not in valid:
            valid.append(canonical)
    return valid
