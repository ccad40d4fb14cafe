"""Base types shared by the sitemap crawler and the content fetcher."""

from dataclasses import dataclass
from typing import Dict, Optional


class CrawlError(Exception):
    """Raised when a sitemap cannot be crawled.

    Attributes:
        message: Error description message
        sitemap_url: The sitemap that failed
    """

    def __init__(self, message: str, sitemap_url: Optional[str] = None):
        self.message = message
        self.sitemap_url = sitemap_url
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.sitemap_url:
            return f"Failed to crawl sitemap at '{self.sitemap_url}': {self.message}"
        return f"Sitemap crawl error: {self.message}"


class SitemapUnreachableError(CrawlError):
    """The sitemap could not be retrieved (transport failure, timeout or non-200)."""


class SitemapParseError(CrawlError):
    """The sitemap was retrieved but is not well-formed XML."""


class FetchError(Exception):
    """Raised when a page cannot be fetched."""

    def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None):
        self.message = message
        self.url = url
        self.status = status
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        status = f" (HTTP {self.status})" if self.status is not None else ""
        if self.url:
            return f"Failed to fetch '{self.url}'{status}: {self.message}"
        return f"Fetch error{status}: {self.message}"


@dataclass(frozen=True)
class SitemapEntry:
    """One <url> block of a sitemap.

    ``last_modified`` is kept exactly as written in <lastmod>.
    """

    url: str
    last_modified: Optional[str] = None


@dataclass(frozen=True)
class ExtractedContent:
    """Title and primary text extracted from a fetched page."""

    url: str
    title: str
    text: str

    def to_document(self, last_modified: Optional[str]) -> Dict[str, Optional[str]]:
        """Document body written to the search index."""
        return {
            "title": self.title,
            "text": self.text,
            "url": self.url,
            "lastmod": last_modified,
        }


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace into single spaces."""
    if not text:
        return ""
    return " ".join(text.split())
