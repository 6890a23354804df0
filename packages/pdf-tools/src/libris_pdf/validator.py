"""PDF download and validation.

Downloads are streamed so an oversized body is abandoned as soon as it
passes the size ceiling. A file is accepted only if the response is 2xx,
the body is non-empty and within the ceiling, and it starts with ``%PDF``.
Every rejection is logged and returns None; one bad file never fails a run.
"""

import re
from dataclasses import dataclass
from typing import Optional

import httpx
from libris_common import get_logger

logger = get_logger(__name__)

PDF_MAGIC_BYTES = b"%PDF"
MAX_FILENAME_LENGTH = 200
DEFAULT_MAX_SIZE_BYTES = 100 * 1024 * 1024
DEFAULT_TIMEOUT_SECONDS = 30.0
DOWNLOAD_USER_AGENT = "LibrisDigitalLibrary/1.0 (Educational Library System)"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
_REPEATED_UNDERSCORES = re.compile(r"_+")
_SAFE_FILENAME = re.compile(r"^[a-zA-Z0-9_-]+$")


@dataclass
class ValidatedPdf:
    """A downloaded file that passed validation."""

    content: bytes
    size: int


def sanitize_filename(identifier: Optional[str]) -> str:
    """Turn a catalog identifier into a storage-safe filename.

    Unsafe characters become ``_``, runs of ``_`` collapse, leading and
    trailing ``_`` are stripped and the result is capped at 200 characters.
    Applying it twice gives the same result.

    Args:
        identifier: Source identifier

    Returns:
        Non-empty filename without extension

    Example:
        >>> sanitize_filename("meditations (1887) vol.1")
        'meditations_1887_vol_1'
    """
    sanitized = _UNSAFE_CHARS.sub("_", identifier or "")
    sanitized = _REPEATED_UNDERSCORES.sub("_", sanitized).strip("_")
    sanitized = sanitized[:MAX_FILENAME_LENGTH].rstrip("_")
    return sanitized or "unnamed"


def is_valid_filename(filename: Optional[str]) -> bool:
    """True if the name is 1-200 safe characters with no path components."""
    if not filename or len(filename) > MAX_FILENAME_LENGTH:
        return False
    if ".." in filename or "/" in filename or "\\" in filename:
        return False
    return bool(_SAFE_FILENAME.match(filename))


def validate_pdf_buffer(content: Optional[bytes]) -> bool:
    """True if the buffer starts with the ``%PDF`` signature."""
    return bool(content) and content[: len(PDF_MAGIC_BYTES)] == PDF_MAGIC_BYTES


async def download_and_validate(
    client: httpx.AsyncClient,
    url: str,
    max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> Optional[ValidatedPdf]:
    """Download a PDF and check it before upload.

    Args:
        client: Shared HTTP client
        url: PDF download URL
        max_size_bytes: Size ceiling, checked against Content-Length and the
            streamed body
        timeout: Request timeout in seconds

    Returns:
        ValidatedPdf, or None if the file was rejected or could not be fetched
    """
    if not url:
        logger.warning("pdf_invalid_url")
        return None

    logger.info("pdf_download_started", url=url)
    try:
        async with client.stream(
            "GET",
            url,
            headers={"User-Agent": DOWNLOAD_USER_AGENT},
            timeout=timeout,
            follow_redirects=True,
        ) as response:
            if not response.is_success:
                logger.warning(
                    "pdf_rejected",
                    url=url,
                    reason="http_error",
                    status=response.status_code,
                )
                return None

            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > max_size_bytes:
                logger.warning(
                    "pdf_rejected",
                    url=url,
                    reason="too_large",
                    size=int(declared),
                    max_size=max_size_bytes,
                )
                return None

            buffer = bytearray()
            async for chunk in response.aiter_bytes():
                buffer.extend(chunk)
                if len(buffer) > max_size_bytes:
                    logger.warning(
                        "pdf_rejected",
                        url=url,
                        reason="too_large",
                        size=len(buffer),
                        max_size=max_size_bytes,
                    )
                    return None

    except httpx.TimeoutException:
        logger.warning("pdf_download_timeout", url=url, timeout_seconds=timeout)
        return None
    except httpx.HTTPError as e:
        logger.warning("pdf_download_failed", url=url, error=str(e))
        return None

    if not buffer:
        logger.warning("pdf_rejected", url=url, reason="empty")
        return None

    content = bytes(buffer)
    if not validate_pdf_buffer(content):
        logger.warning("pdf_rejected", url=url, reason="missing_pdf_header")
        return None

    logger.info("pdf_validated", url=url, size=len(content))
    return ValidatedPdf(content=content, size=len(content))
