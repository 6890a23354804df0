"""Libris Catalog - external catalog fetchers, multi-source search and PDF crawler.

Fetchers are rate-limited (fixed pre-request delay, one retry on HTTP 429)
and normalize each source's schema into ``Candidate``.
"""

from libris_catalog.base import CatalogFetcher, parse_retry_after
from libris_catalog.crawler import (
    CancellationToken,
    CrawlSession,
    PdfCrawler,
    PdfLink,
    extract_filename,
    extract_links,
    is_pdf_url,
)
from libris_catalog.google_books import GoogleBooksFetcher
from libris_catalog.internet_archive import CatalogPage, InternetArchiveFetcher, cover_url_for, pdf_url_for
from libris_catalog.open_library import OpenLibraryFetcher
from libris_catalog.scoring import (
    access_type_for,
    merge_and_deduplicate,
    merge_key,
    rank_by_relevance,
    relevance_score,
)
from libris_catalog.search import MultiSourceSearch

__all__ = [
    # Fetchers
    "CatalogFetcher",
    "InternetArchiveFetcher",
    "CatalogPage",
    "OpenLibraryFetcher",
    "GoogleBooksFetcher",
    "MultiSourceSearch",
    "parse_retry_after",
    "pdf_url_for",
    "cover_url_for",
    # Scoring
    "access_type_for",
    "merge_and_deduplicate",
    "merge_key",
    "rank_by_relevance",
    "relevance_score",
    # Crawler
    "CancellationToken",
    "CrawlSession",
    "PdfCrawler",
    "PdfLink",
    "extract_filename",
    "extract_links",
    "is_pdf_url",
]
