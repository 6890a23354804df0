"""Base class for catalog fetchers.

Every fetcher sleeps a fixed, source-specific delay before each request and
retries exactly once on HTTP 429 after honouring ``Retry-After``. A second
429 is reported as ``RateLimitedError``.

``search`` is the interactive entry point and never raises: any network,
timeout or parse error becomes an empty ``SearchResult``.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Optional, Union

import httpx
from libris_common import (
    RateLimitedError,
    SourceTimeoutError,
    TransientSourceError,
    get_logger,
)
from libris_contracts import CatalogSource, SearchCriteria, SearchResult

logger = get_logger(__name__)

DEFAULT_USER_AGENT = "LibrisDigitalLibrary/1.0 (Educational Project)"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_RETRY_AFTER_SECONDS = 60.0

# One request plus one retry after a 429
MAX_ATTEMPTS = 2

QueryParams = Union[dict[str, Any], list[tuple[str, Any]]]


def as_dict(value: Any) -> dict[str, Any]:
    """The value if it is a JSON object, else an empty dict."""
    return value if isinstance(value, dict) else {}


def dict_entries(value: Any) -> Optional[list[dict[str, Any]]]:
    """JSON objects in a list, or None if the value is not a list."""
    if not isinstance(value, list):
        return None
    return [entry for entry in value if isinstance(entry, dict)]


def parse_retry_after(value: Optional[str], default: float = DEFAULT_RETRY_AFTER_SECONDS) -> float:
    """Seconds to wait from a ``Retry-After`` header value.

    Only the delta-seconds form is understood; anything else uses ``default``.
    """
    if value is None:
        return default
    try:
        seconds = float(value.strip())
    except ValueError:
        return default
    return seconds if seconds >= 0 else default


class CatalogFetcher(ABC):
    """Rate-limited search adapter for one external catalog.

    Subclasses set ``source`` and ``request_delay`` and implement ``_search``.
    The HTTP client is injected and owned by the caller.
    """

    source: CatalogSource
    request_delay: float = 0.0

    def __init__(
        self,
        client: httpx.AsyncClient,
        user_agent: str = DEFAULT_USER_AGENT,
        request_delay: Optional[float] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self._client = client
        self.user_agent = user_agent
        self.timeout = timeout
        if request_delay is not None:
            self.request_delay = request_delay

    @property
    def name(self) -> str:
        return self.source.value

    async def _get_json(self, url: str, params: Optional[QueryParams] = None) -> Any:
        """GET a JSON document with the pre-request delay and bounded 429 retry.

        Raises:
            RateLimitedError: If the source answers 429 twice
            SourceTimeoutError: If the request times out
            TransientSourceError: On transport errors, non-2xx status or invalid JSON
        """
        headers = {"User-Agent": self.user_agent, "Accept": "application/json"}

        for attempt in range(1, MAX_ATTEMPTS + 1):
            if self.request_delay > 0:
                await asyncio.sleep(self.request_delay)

            try:
                response = await self._client.get(
                    url, params=params, headers=headers, timeout=self.timeout
                )
            except httpx.TimeoutException as e:
                raise SourceTimeoutError(f"{self.name} request timed out: {url}") from e
            except httpx.HTTPError as e:
                raise TransientSourceError(f"{self.name} request failed: {e}") from e

            if response.status_code == 429:
                retry_after = parse_retry_after(response.headers.get("Retry-After"))
                if attempt >= MAX_ATTEMPTS:
                    raise RateLimitedError(
                        f"{self.name} rate limit persisted after retry",
                        retry_after=retry_after,
                    )
                logger.warning(
                    "source_rate_limited",
                    source=self.name,
                    retry_after=retry_after,
                    attempt=attempt,
                )
                await asyncio.sleep(retry_after)
                continue

            if response.is_error:
                raise TransientSourceError(
                    f"{self.name} API error: {response.status_code} {response.reason_phrase}"
                )

            try:
                return response.json()
            except ValueError as e:
                raise TransientSourceError(f"{self.name} returned invalid JSON: {e}") from e

        raise RateLimitedError(f"{self.name} rate limit persisted after retry")

    @abstractmethod
    async def _search(self, criteria: SearchCriteria) -> SearchResult:
        """Source-specific search; may raise."""

    async def search(self, criteria: SearchCriteria) -> SearchResult:
        """Search the catalog, degrading to an empty result on any failure.

        Args:
            criteria: Query, author, genre, year range and paging

        Returns:
            SearchResult with normalized candidates (empty on failure)

        Example:
            >>> result = await fetcher.search(SearchCriteria(query="stoicism", limit=10))
            >>> print(result.count, [c.title for c in result.candidates])
        """
        try:
            result = await self._search(criteria)
        except RateLimitedError as e:
            logger.warning("source_search_failed", source=self.name, error_kind="rate_limited", error=str(e))
        except SourceTimeoutError as e:
            logger.warning("source_search_failed", source=self.name, error_kind="timeout", error=str(e))
        except TransientSourceError as e:
            logger.warning("source_search_failed", source=self.name, error_kind="network", error=str(e))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("source_search_failed", source=self.name, error_kind="parse", error=str(e))
        else:
            logger.info("source_search_complete", source=self.name, found=len(result.candidates))
            return result

        return SearchResult(candidates=[], count=0, source=self.source)
