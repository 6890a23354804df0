"""PDF link crawler for extraction jobs.

Discovers PDF links on a single page. Discoveries flow through a bounded
``asyncio.Queue`` from a producer task to the consumer, so a slow consumer
applies back-pressure to the crawl.

Cancellation is explicit: a ``CancellationToken`` is checked before and
after every network call and before each discovery is yielded. A cancelled
crawl raises ``CrawlAbortedError``.
"""

import asyncio
import re
import time
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Union
from urllib.parse import unquote, urljoin, urlparse

import httpx
from libris_common import CrawlAbortedError, CrawlError, get_logger

logger = get_logger(__name__)

CRAWLER_USER_AGENT = "Libris-Library-Crawler/1.0"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CHANNEL_SIZE = 16

_ANCHOR_RE = re.compile(r"""<a\s+[^>]*href\s*=\s*["']([^"']+)["'][^>]*>""", re.IGNORECASE)
_HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


@dataclass(frozen=True)
class PdfLink:
    """A discovered PDF link."""

    url: str
    filename: str
    page_source: str


class CancellationToken:
    """Cooperative cancellation flag shared between a job and its crawl."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CrawlAbortedError("Crawl operation was aborted")


def is_pdf_url(url: str, content_type: Optional[str] = None) -> bool:
    """True if the content type is ``application/pdf`` or the path ends in ``.pdf``."""
    if content_type and "application/pdf" in content_type.lower():
        return True
    try:
        path = urlparse(url).path
    except ValueError:
        path = url
    return path.lower().endswith(".pdf")


def to_absolute_url(href: str, base_url: str) -> str:
    """Resolve a (possibly relative or protocol-relative) href against the page URL."""
    if href.startswith(("http://", "https://")):
        return href
    try:
        return urljoin(base_url, href)
    except ValueError:
        return href


def extract_links(html: str, base_url: str) -> list[str]:
    """All anchor hrefs in the page, resolved to absolute URLs, in page order."""
    return [
        to_absolute_url(href.strip(), base_url)
        for href in _ANCHOR_RE.findall(html)
        if href.strip()
    ]


def extract_filename(url: str) -> str:
    """Decoded last path segment, forced to a ``.pdf`` suffix.

    Falls back to ``document-{epoch_ms}.pdf`` when the URL has no usable name.
    """
    try:
        segment = unquote(urlparse(url).path.rsplit("/", 1)[-1])
    except ValueError:
        segment = ""

    if not segment:
        return f"document-{int(time.time() * 1000)}.pdf"
    if not segment.lower().endswith(".pdf"):
        return f"{segment}.pdf"
    return segment


class _Done:
    pass


_DONE = _Done()
_ChannelItem = Union[PdfLink, BaseException, _Done]


class CrawlSession:
    """One crawl of one start URL; iterate ``links()`` to consume discoveries."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        token: CancellationToken,
        user_agent: str,
        timeout: float,
        channel_size: int,
    ):
        self._client = client
        self.url = url
        self.token = token
        self._user_agent = user_agent
        self._timeout = timeout
        self._channel: asyncio.Queue[_ChannelItem] = asyncio.Queue(maxsize=channel_size)
        self.discovered = 0

    async def links(self) -> AsyncIterator[PdfLink]:
        """Yield discovered PDF links until the page is exhausted.

        Raises:
            CrawlAbortedError: If the token is cancelled
            CrawlError: If the page cannot be fetched ("Crawl failed for {url}: ...")
        """
        producer = asyncio.create_task(self._produce())
        try:
            while True:
                item = await self._channel.get()
                if isinstance(item, _Done):
                    return
                if isinstance(item, BaseException):
                    raise item
                self.token.raise_if_cancelled()
                self.discovered += 1
                yield item
        finally:
            if not producer.done():
                producer.cancel()
            try:
                await producer
            except asyncio.CancelledError:
                pass

    async def _produce(self) -> None:
        try:
            await self._discover()
        except CrawlAbortedError as e:
            await self._channel.put(e)
        except Exception as e:
            logger.warning("crawl_failed", url=self.url, error=str(e))
            error = CrawlError(f"Crawl failed for {self.url}: {e}")
            error.__cause__ = e
            await self._channel.put(error)
        else:
            await self._channel.put(_DONE)

    async def _discover(self) -> None:
        self.token.raise_if_cancelled()

        headers = {"User-Agent": self._user_agent, "Accept": _HTML_ACCEPT}
        async with self._client.stream("GET", self.url, headers=headers, timeout=self._timeout) as response:
            self.token.raise_if_cancelled()

            if response.is_error:
                raise CrawlError(f"Failed to fetch URL: {response.status_code} {response.reason_phrase}")

            if is_pdf_url(self.url, response.headers.get("content-type", "")):
                await self._emit(self.url)
                return

            await response.aread()
            html = response.text

        self.token.raise_if_cancelled()

        visited: set[str] = set()
        for link in extract_links(html, self.url):
            if not is_pdf_url(link) or link in visited:
                continue
            visited.add(link)
            await self._emit(link)

        logger.info("crawl_complete", url=self.url, pdf_links=len(visited))

    async def _emit(self, link: str) -> None:
        self.token.raise_if_cancelled()
        await self._channel.put(PdfLink(url=link, filename=extract_filename(link), page_source=self.url))


class PdfCrawler:
    """Factory for crawl sessions plus the HEAD-based PDF URL check.

    Example:
        >>> token = CancellationToken()
        >>> session = PdfCrawler(client).crawl("https://example.org/library", token)
        >>> async for link in session.links():
        ...     print(link.filename)
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        user_agent: str = CRAWLER_USER_AGENT,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        channel_size: int = DEFAULT_CHANNEL_SIZE,
    ):
        self._client = client
        self._user_agent = user_agent
        self._timeout = timeout
        self._channel_size = channel_size

    def crawl(self, url: str, token: Optional[CancellationToken] = None) -> CrawlSession:
        return CrawlSession(
            self._client,
            url,
            token or CancellationToken(),
            self._user_agent,
            self._timeout,
            self._channel_size,
        )

    async def validate_pdf_url(self, url: str, token: Optional[CancellationToken] = None) -> bool:
        """HEAD the URL and check it serves a PDF; any failure is False.

        Raises:
            CrawlAbortedError: If the token is cancelled
        """
        if token is not None:
            token.raise_if_cancelled()
        try:
            response = await self._client.head(
                url,
                headers={"User-Agent": self._user_agent},
                timeout=self._timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            logger.debug("pdf_url_head_failed", url=url, error=str(e))
            return False
        if token is not None:
            token.raise_if_cancelled()

        if response.is_error:
            return False
        return is_pdf_url(url, response.headers.get("content-type", ""))
