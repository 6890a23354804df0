"""Genre and author allow-list filtering.

Both gates must pass. A gate that is disabled or has an empty list always
passes. Every decision is logged, and can be recorded for auditing.
"""

from typing import Optional
from uuid import UUID

from libris_common import PersistenceError, Settings, get_logger
from libris_contracts import Candidate, FilterConfig, FilterDecision, FilterResultType
from libris_extraction import validate_genre_names
from libris_storage import IngestionLogStore

logger = get_logger(__name__)


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


def load_filter_config(settings: Settings) -> FilterConfig:
    """Read the allow-lists and toggles from settings.

    Unknown genre names are logged and dropped.
    """
    return FilterConfig(
        allowed_genres=validate_genre_names(_split_list(settings.ingest_allowed_genres)),
        allowed_authors=_split_list(settings.ingest_allowed_authors),
        enable_genre_filter=settings.enable_genre_filter,
        enable_author_filter=settings.enable_author_filter,
    )


def has_active_filters(config: FilterConfig) -> bool:
    """True if at least one gate can reject a candidate."""
    return (config.enable_genre_filter and bool(config.allowed_genres)) or (
        config.enable_author_filter and bool(config.allowed_authors)
    )


def filter_summary(config: FilterConfig) -> str:
    """One-line description of the active gates."""
    parts = []
    if config.enable_genre_filter and config.allowed_genres:
        parts.append(f"genres: {', '.join(config.allowed_genres)}")
    if config.enable_author_filter and config.allowed_authors:
        parts.append(f"authors: {', '.join(config.allowed_authors)}")
    return "; ".join(parts) if parts else "no filters active"


def check_genre_filter(genres: list[str], config: FilterConfig) -> tuple[bool, str]:
    if not config.enable_genre_filter or not config.allowed_genres:
        return True, "Genre filter disabled"
    if not genres:
        return False, "Genre filter failed: book has no genres"

    allowed = {g.lower() for g in config.allowed_genres}
    matched = [g for g in genres if g.lower() in allowed]
    if matched:
        return True, f"Genre filter passed: {', '.join(matched)}"
    return False, f"Genre filter failed: {', '.join(genres)} not in allowed list"


def check_author_filter(author: Optional[str], config: FilterConfig) -> tuple[bool, str]:
    if not config.enable_author_filter or not config.allowed_authors:
        return True, "Author filter disabled"
    if not author or not author.strip():
        return False, "Author filter failed: book has no author"

    normalized = author.strip().lower()
    for allowed in config.allowed_authors:
        if allowed.strip().lower() in normalized:
            return True, f"Author filter passed: matches {allowed}"
    return False, f"Author filter failed: {author} not in allowed list"


def apply_filters(candidate: Candidate, config: FilterConfig) -> FilterDecision:
    """Run both gates against a classified candidate.

    Example:
        >>> config = FilterConfig(allowed_authors=["plato"], enable_author_filter=True)
        >>> apply_filters(candidate, config).passed
        True
    """
    genre_ok, genre_reason = check_genre_filter(candidate.genres, config)
    if not genre_ok:
        decision = FilterDecision(
            passed=False, reason=genre_reason, result_type=FilterResultType.FILTERED_GENRE
        )
    else:
        author_ok, author_reason = check_author_filter(candidate.author, config)
        if not author_ok:
            decision = FilterDecision(
                passed=False, reason=author_reason, result_type=FilterResultType.FILTERED_AUTHOR
            )
        else:
            decision = FilterDecision(
                passed=True,
                reason=f"{genre_reason}; {author_reason}",
                result_type=FilterResultType.PASSED,
            )

    logger.info(
        "filter_decision",
        identifier=candidate.identifier,
        title=candidate.title,
        passed=decision.passed,
        result=decision.result_type.value,
        reason=decision.reason,
    )
    return decision


async def record_decision(
    log_store: IngestionLogStore,
    run_id: Optional[UUID],
    candidate: Candidate,
    decision: FilterDecision,
) -> None:
    """Store a decision for auditing; a failed write is only logged."""
    try:
        await log_store.record_filter_decision(run_id, candidate, decision)
    except PersistenceError as e:
        logger.warning("filter_decision_not_recorded", identifier=candidate.identifier, error=str(e))
