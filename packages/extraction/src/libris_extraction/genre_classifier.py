"""Taxonomy-constrained genre classification.

Classification is best-effort: every failure mode (transport, status,
unparsable reply, no valid genre) ends in ``None`` and ingestion carries on
without genres. Transient failures and unparsable replies are retried with
a linear backoff.
"""

import json
import re
from typing import Optional

from libris_common import ClassificationFailure, TransientSourceError, get_logger
from libris_contracts import Candidate, Classification
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from libris_extraction.base_client import CompletionClient
from libris_extraction.prompts import build_classification_prompt
from libris_extraction.taxonomy import validate_genres, validate_subgenre

logger = get_logger(__name__)

MAX_ATTEMPTS = 2
RETRY_DELAY_SECONDS = 1.0
CLASSIFY_MAX_TOKENS = 150
CLASSIFY_TEMPERATURE = 0.3

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def parse_classification(text: Optional[str]) -> Optional[Classification]:
    """Extract a Classification from a model reply.

    The first ``{...}`` block must parse as an object with a ``genres``
    list. Genres outside the taxonomy are dropped one by one; the reply is
    rejected only if none survive.

    Example:
        >>> parse_classification('Sure! {"genres": ["philosophy", "Cooking"], "subgenre": "ancient"}')
        Classification(genres=['Philosophy'], subgenre='Ancient')
    """
    if not text or not text.strip():
        return None

    match = _JSON_OBJECT.search(text)
    candidate = match.group(0) if match else text.strip()
    try:
        parsed = json.loads(candidate)
    except ValueError:
        logger.debug("classification_unparsable", response=text[:200])
        return None

    if not isinstance(parsed, dict) or not isinstance(parsed.get("genres"), list):
        return None

    genres = validate_genres(parsed["genres"])
    if not genres:
        return None
    return Classification(genres=genres, subgenre=validate_subgenre(parsed.get("subgenre")))


class GenreClassifier:
    """Classify candidates into 1-3 taxonomy genres and an optional sub-genre.

    Example:
        >>> classifier = GenreClassifier(OpenRouterClient(api_key=key))
        >>> result = await classifier.classify(candidate)
        >>> result.genres if result else []
        ['Philosophy', 'Ethics']
    """

    def __init__(
        self,
        client: Optional[CompletionClient],
        enabled: bool = True,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ):
        self._client = client
        self._enabled = enabled
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    @property
    def enabled(self) -> bool:
        return self._enabled and self._client is not None

    async def _attempt(self, prompt: str) -> Classification:
        text = await self._client.complete(
            prompt, max_tokens=CLASSIFY_MAX_TOKENS, temperature=CLASSIFY_TEMPERATURE
        )
        result = parse_classification(text)
        if result is None:
            raise ClassificationFailure("No valid genres in response")
        return result

    async def classify(self, candidate: Candidate) -> Optional[Classification]:
        """Classify a candidate, reusing genres it already carries.

        Returns:
            Classification, or None if disabled or every attempt failed
        """
        if candidate.genres:
            existing = validate_genres(candidate.genres)
            if existing:
                return Classification(genres=existing, subgenre=validate_subgenre(candidate.subgenre))

        if not candidate.title:
            logger.warning("classification_skipped", reason="missing_title")
            return None
        if not self.enabled:
            return None

        prompt = build_classification_prompt(
            candidate.title,
            candidate.author,
            candidate.year,
            candidate.description,
            source=candidate.source.value.replace("_", " ").title(),
        )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.retry_delay, increment=self.retry_delay),
            retry=retry_if_exception_type((TransientSourceError, ClassificationFailure)),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    result = await self._attempt(prompt)
        except RetryError as e:
            last = e.last_attempt.exception()
            logger.warning(
                "classification_failed",
                title=candidate.title,
                attempts=self.max_attempts,
                error=str(last),
            )
            return None

        logger.info(
            "classification_complete",
            title=candidate.title,
            genres=result.genres,
            subgenre=result.subgenre,
        )
        return result
