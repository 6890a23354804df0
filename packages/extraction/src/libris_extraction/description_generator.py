"""Best-effort catalog descriptions and synopses."""

from typing import Optional

from libris_common import TransientSourceError, get_logger

from libris_extraction.base_client import CompletionClient
from libris_extraction.prompts import build_description_prompt, build_synopsis_prompt

logger = get_logger(__name__)

MIN_DESCRIPTION_CHARS = 50
MIN_SYNOPSIS_CHARS = 20
DESCRIPTION_MAX_TOKENS = 500
SYNOPSIS_MAX_TOKENS = 120


class DescriptionGenerator:
    """Generate descriptions with a completion client; failures yield None."""

    def __init__(self, client: Optional[CompletionClient]):
        self._client = client

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def _generate(self, prompt: str, max_tokens: int, min_chars: int, title: Optional[str]) -> Optional[str]:
        if self._client is None:
            return None
        try:
            text = (await self._client.complete(prompt, max_tokens=max_tokens)).strip()
        except TransientSourceError as e:
            logger.warning("description_generation_failed", title=title, error=str(e))
            return None

        if len(text) <= min_chars:
            logger.warning("description_too_short", title=title, length=len(text))
            return None
        return text

    async def generate(
        self,
        title: Optional[str],
        author: Optional[str] = None,
        year: Optional[int] = None,
        description: Optional[str] = None,
    ) -> Optional[str]:
        """Catalog description longer than 50 characters, or None."""
        text = await self._generate(
            build_description_prompt(title, author, year, description),
            DESCRIPTION_MAX_TOKENS,
            MIN_DESCRIPTION_CHARS,
            title,
        )
        if text:
            logger.info("description_generated", title=title, length=len(text))
        return text

    async def synopsis(self, title: Optional[str], author: Optional[str], description: Optional[str]) -> Optional[str]:
        """Two-sentence synopsis derived from a description, or None."""
        if not description:
            return None
        return await self._generate(
            build_synopsis_prompt(title, author, description),
            SYNOPSIS_MAX_TOKENS,
            MIN_SYNOPSIS_CHARS,
            title,
        )
