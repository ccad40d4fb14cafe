"""Page retrieval and content extraction."""

import asyncio
import logging
from typing import Dict, List, Optional

import aiohttp
from bs4 import BeautifulSoup

from docsite_indexer.core.config import HostCredentials, find_host_credentials, settings

from .base import ExtractedContent, FetchError, normalize_whitespace

logger = logging.getLogger(__name__)

# Elements whose text is never visible
NON_VISIBLE_TAGS = ["script", "style", "noscript", "template"]


class ContentFetcher:
    """Fetches documentation pages with browser-like headers and extracts their text."""

    def __init__(
        self,
        content_selectors: Optional[List[str]] = None,
        private_hosts: Optional[Dict[str, HostCredentials]] = None,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.content_selectors = (
            settings.content_selectors if content_selectors is None else content_selectors
        )
        self.private_hosts = settings.private_hosts if private_hosts is None else private_hosts
        self.timeout = timeout or settings.fetch_timeout
        self.headers = headers or self.default_headers()

    @staticmethod
    def default_headers() -> Dict[str, str]:
        headers = {
            "User-Agent": settings.user_agent,
            "Accept": settings.accept,
            "Accept-Language": settings.accept_language,
        }
        if settings.referrer:
            headers["Referer"] = settings.referrer
        return headers

    def create_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers=self.headers,
        )

    async def fetch(
        self, url: str, session: Optional[aiohttp.ClientSession] = None
    ) -> ExtractedContent:
        """Fetch a page and extract its title and main text.

        Raises:
            FetchError: On a non-200 response or a transport failure.
        """
        if session is None:
            async with self.create_session() as own_session:
                html = await self._get_html(url, own_session)
        else:
            html = await self._get_html(url, session)

        return self.extract(html, url)

    async def _get_html(self, url: str, session: aiohttp.ClientSession) -> str:
        credentials = find_host_credentials(url, self.private_hosts)
        auth = (
            aiohttp.BasicAuth(credentials.username, credentials.password.get_secret_value())
            if credentials
            else None
        )

        try:
            async with session.get(url, auth=auth, allow_redirects=True) as response:
                if response.status != 200:
                    raise FetchError("unexpected status", url=url, status=response.status)
                return await response.text(errors="replace")
        except FetchError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchError(str(e) or type(e).__name__, url=url) from e

    def extract(self, html: str, url: str) -> ExtractedContent:
        """Extract title and text from HTML.

        The text comes from the first configured content container that has
        any text; pages without one fall back to the visible text of <body>.
        """
        soup = BeautifulSoup(html, "html.parser")

        title = soup.title.get_text().strip() if soup.title else ""

        for tag in soup(NON_VISIBLE_TAGS):
            tag.decompose()

        text = ""
        for selector in self.content_selectors:
            container = soup.select_one(selector)
            if container is not None:
                text = normalize_whitespace(container.get_text(" "))
                if text:
                    break

        if not text:
            logger.debug(f"No content container found in {url}, using full body text")
            body = soup.body or soup
            text = normalize_whitespace(body.get_text(" "))

        return ExtractedContent(url=url, title=title, text=text)
