"""Streaming sitemap.xml crawler.

The response body is fed to an event-based XML parser chunk by chunk, so a
large sitemap is never buffered whole. Each <url> element becomes a
SitemapEntry as soon as its closing tag is read.
"""

import asyncio
import logging
from typing import Dict, List, Optional
from xml.etree import ElementTree as ET

import aiohttp

from docsite_indexer.core.config import HostCredentials, find_host_credentials, settings

from .base import CrawlError, SitemapEntry, SitemapParseError, SitemapUnreachableError

logger = logging.getLogger(__name__)


def _local_name(tag: str) -> str:
    """Strip the XML namespace from a tag: '{ns}url' -> 'url'."""
    return tag.rsplit("}", 1)[-1]


class SitemapStreamParser:
    """Incremental parser for sitemap and sitemap index documents.

    Only direct <loc>/<lastmod> children of <url> are read, so nested
    extension elements such as <image:loc> are ignored. For a sitemap index,
    the <loc> of each <sitemap> is collected in ``child_sitemaps``.
    """

    def __init__(self, sitemap_url: Optional[str] = None):
        self.sitemap_url = sitemap_url
        self.child_sitemaps: List[str] = []
        self.dropped = 0
        self._parser = ET.XMLPullParser(events=("start", "end"))
        self._root: Optional[ET.Element] = None
        self._path: List[str] = []
        self._loc: Optional[str] = None
        self._lastmod: Optional[str] = None

    def feed(self, data: bytes) -> List[SitemapEntry]:
        """Feed a chunk of the document and return the entries it completed."""
        try:
            self._parser.feed(data)
            return self._drain()
        except ET.ParseError as e:
            raise SitemapParseError(f"malformed XML: {e}", self.sitemap_url) from e

    def close(self) -> List[SitemapEntry]:
        """Signal end of input; fails if the document is incomplete."""
        try:
            self._parser.close()
            return self._drain()
        except ET.ParseError as e:
            raise SitemapParseError(f"malformed XML: {e}", self.sitemap_url) from e

    def _reset(self) -> None:
        self._loc = None
        self._lastmod = None

    def _release(self, elem: ET.Element) -> None:
        # Finished blocks are detached from the root so memory stays flat
        if self._root is not None and self._root is not elem:
            self._root.clear()
        else:
            elem.clear()

    def _drain(self) -> List[SitemapEntry]:
        entries: List[SitemapEntry] = []

        for event, elem in self._parser.read_events():
            name = _local_name(elem.tag)

            if event == "start":
                if self._root is None:
                    self._root = elem
                self._path.append(name)
                if name in ("url", "sitemap"):
                    self._reset()
                continue

            parent = self._path[-2] if len(self._path) > 1 else None

            if name == "loc" and parent in ("url", "sitemap"):
                if not self._loc:
                    self._loc = (elem.text or "").strip()
            elif name == "lastmod" and parent == "url":
                if self._lastmod is None:
                    self._lastmod = (elem.text or "").strip() or None
            elif name == "url":
                if self._loc:
                    entries.append(SitemapEntry(url=self._loc, last_modified=self._lastmod))
                else:
                    self.dropped += 1
                    logger.warning(f"Dropping <url> without <loc> in {self.sitemap_url}")
                self._reset()
                self._release(elem)
            elif name == "sitemap" and parent == "sitemapindex":
                if self._loc:
                    self.child_sitemaps.append(self._loc)
                self._reset()
                self._release(elem)

            self._path.pop()

        return entries


class SitemapCrawler:
    """Fetches sitemaps over HTTP, attaching Basic auth for private hosts."""

    def __init__(
        self,
        private_hosts: Optional[Dict[str, HostCredentials]] = None,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        max_depth: Optional[int] = None,
        chunk_size: int = 64 * 1024,
    ):
        self.private_hosts = settings.private_hosts if private_hosts is None else private_hosts
        self.timeout = timeout or settings.sitemap_timeout
        self.user_agent = user_agent or settings.user_agent
        self.max_depth = settings.max_sitemap_depth if max_depth is None else max_depth
        self.chunk_size = chunk_size

    def client_timeout(self) -> aiohttp.ClientTimeout:
        """Bound connecting and each read, not the whole transfer of a large sitemap."""
        return aiohttp.ClientTimeout(total=None, sock_connect=self.timeout, sock_read=self.timeout)

    def create_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=self.client_timeout(),
            headers={"User-Agent": self.user_agent},
        )

    def auth_for(self, url: str) -> Optional[aiohttp.BasicAuth]:
        """Basic auth for the URL's host, or None for anonymous access."""
        credentials = find_host_credentials(url, self.private_hosts)
        if credentials is None:
            return None
        return aiohttp.BasicAuth(credentials.username, credentials.password.get_secret_value())

    async def crawl(
        self, sitemap_url: str, session: Optional[aiohttp.ClientSession] = None
    ) -> List[SitemapEntry]:
        """Return one entry per <url> block of the sitemap (order not significant).

        Raises:
            SitemapUnreachableError: The sitemap could not be retrieved.
            SitemapParseError: The sitemap is not well-formed XML.
        """
        if session is None:
            async with self.create_session() as own_session:
                entries = await self._crawl_sitemap(sitemap_url, own_session, depth=0)
        else:
            entries = await self._crawl_sitemap(sitemap_url, session, depth=0)

        logger.info(f"Crawled {sitemap_url}: {len(entries)} entries")
        return entries

    async def _crawl_sitemap(
        self, sitemap_url: str, session: aiohttp.ClientSession, depth: int
    ) -> List[SitemapEntry]:
        """Entries of one sitemap and the children it lists.

        Nothing is returned unless the whole document parsed, so a sitemap
        that breaks mid-stream contributes no entries at all.
        """
        parser = SitemapStreamParser(sitemap_url)
        entries: List[SitemapEntry] = []

        try:
            async with session.get(sitemap_url, auth=self.auth_for(sitemap_url)) as response:
                if response.status != 200:
                    raise SitemapUnreachableError(f"HTTP {response.status}", sitemap_url)

                async for chunk in response.content.iter_chunked(self.chunk_size):
                    entries.extend(parser.feed(chunk))

            entries.extend(parser.close())
        except CrawlError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SitemapUnreachableError(str(e) or type(e).__name__, sitemap_url) from e

        for entry in entries:
            logger.debug(f"{entry.url}, {entry.last_modified}")

        for child_url in parser.child_sitemaps:
            if depth >= self.max_depth:
                logger.warning(
                    f"Not following {child_url}: sitemap index depth limit {self.max_depth} reached"
                )
                continue
            try:
                child_entries = await self._crawl_sitemap(child_url, session, depth + 1)
            except CrawlError as e:
                logger.error(f"Skipping child sitemap of {sitemap_url}: {e}")
                continue
            entries.extend(child_entries)

        return entries
