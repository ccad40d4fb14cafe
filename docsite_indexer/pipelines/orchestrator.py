"""Pipeline orchestrator: crawl sitemaps, decide what changed, fetch and index pages."""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp

from ..core.config import settings
from ..core.keys import IndexKeys
from ..core.redis import AnalyzerProfile, SearchIndexClient, SearchIndexError
from ..core.site_config import SiteIndexConfig
from .ingestion.guard import IncrementalGuard
from .ingestion.window import ChangeWindowFilter
from .scraper.base import CrawlError, FetchError, SitemapEntry
from .scraper.content import ContentFetcher
from .scraper.sitemap import SitemapCrawler

logger = logging.getLogger(__name__)


class RunMode(str, Enum):
    """Whether every discovered page is indexed or only recently changed ones."""

    FULL = "full"
    INCREMENTAL = "incremental"


class EntryState(str, Enum):
    """Lifecycle of one sitemap entry within a run."""

    DISCOVERED = "discovered"
    SKIPPED = "skipped"
    FETCHING = "fetching"
    INDEXED = "indexed"
    FAILED = "failed"


class IndexingPipeline:
    """Runs sources in configuration order and their entries one at a time.

    A failed sitemap only loses that source, and a failed page only loses that
    page. A fixed delay precedes every page fetch to throttle requests against
    the documentation server.
    """

    def __init__(
        self,
        crawler: Optional[SitemapCrawler] = None,
        fetcher: Optional[ContentFetcher] = None,
        index_client: Optional[SearchIndexClient] = None,
        guard: Optional[IncrementalGuard] = None,
        request_delay: Optional[float] = None,
        source_concurrency: Optional[int] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.crawler = crawler or SitemapCrawler()
        self.fetcher = fetcher or ContentFetcher()
        self.index_client = index_client or SearchIndexClient()
        self.guard = guard or IncrementalGuard(self.index_client)
        self.request_delay = settings.request_delay if request_delay is None else request_delay
        self.source_concurrency = max(1, source_concurrency or settings.source_concurrency)
        self._sleep = sleep or asyncio.sleep

    async def run_full(self, config: SiteIndexConfig, **kwargs) -> Dict[str, Any]:
        """Fetch and index every page listed by every configured sitemap."""
        return await self.run(config, mode=RunMode.FULL, **kwargs)

    async def run_incremental(
        self, config: SiteIndexConfig, days: Optional[int] = None, **kwargs
    ) -> Dict[str, Any]:
        """Index only pages whose lastmod falls within the last ``days`` days."""
        return await self.run(config, mode=RunMode.INCREMENTAL, days=days, **kwargs)

    async def run(
        self,
        config: SiteIndexConfig,
        mode: RunMode = RunMode.FULL,
        days: Optional[int] = None,
        index_name: Optional[str] = None,
        create_index: bool = False,
        profile: Optional[AnalyzerProfile] = None,
    ) -> Dict[str, Any]:
        """Run the pipeline over all sources of a site config."""
        target_index = index_name or config.index_name
        window: Optional[ChangeWindowFilter] = None
        if mode == RunMode.INCREMENTAL:
            window = ChangeWindowFilter(settings.update_window_days if days is None else days)

        logger.info(
            f"Starting {mode.value} indexing run into {target_index}: "
            f"{len(config.sitemap_urls)} source(s)"
            + (f", window={window.days} day(s)" if window else "")
        )

        results: Dict[str, Any] = {
            "mode": mode.value,
            "index_name": target_index,
            "window_days": window.days if window else None,
            "started_at": datetime.now(timezone.utc).isoformat(),
            "sources": [],
            "discovered": 0,
            "filtered": 0,
            "skipped": 0,
            "indexed": 0,
            "failed": 0,
            "errors": [],
        }

        if create_index:
            await self._ensure_index(target_index, profile, results)

        if self.source_concurrency > 1 and len(config.sitemap_urls) > 1:
            semaphore = asyncio.Semaphore(self.source_concurrency)

            async def _bounded(sitemap_url: str) -> Dict[str, Any]:
                async with semaphore:
                    return await self.index_source(sitemap_url, target_index, window)

            source_results = await asyncio.gather(
                *(_bounded(url) for url in config.sitemap_urls)
            )
        else:
            source_results = []
            for sitemap_url in config.sitemap_urls:
                source_results.append(await self.index_source(sitemap_url, target_index, window))

        for source_stats in source_results:
            results["sources"].append(source_stats)
            for counter in ("discovered", "filtered", "skipped", "indexed", "failed"):
                results[counter] += source_stats[counter]
            results["errors"].extend(source_stats["errors"])

        results["completed_at"] = datetime.now(timezone.utc).isoformat()
        logger.info(
            f"Indexing run completed for {target_index}: "
            f"{results['indexed']} indexed, {results['skipped']} skipped, "
            f"{results['failed']} failed, {results['filtered']} outside window"
        )
        return results

    async def _ensure_index(
        self, index_name: str, profile: Optional[AnalyzerProfile], results: Dict[str, Any]
    ) -> None:
        try:
            if not await self.index_client.exists(index_name):
                await self.index_client.create_index(index_name, profile)
        except SearchIndexError as e:
            logger.error(f"Could not prepare index {index_name}: {e}")
            results["errors"].append({"index": index_name, "error": str(e)})

    async def index_source(
        self,
        sitemap_url: str,
        index_name: str,
        window: Optional[ChangeWindowFilter] = None,
    ) -> Dict[str, Any]:
        """Crawl one sitemap and process its entries sequentially."""
        logger.info(f"Processing source: {sitemap_url}")

        stats: Dict[str, Any] = {
            "source": sitemap_url,
            "discovered": 0,
            "filtered": 0,
            "skipped": 0,
            "indexed": 0,
            "failed": 0,
            "errors": [],
        }

        try:
            entries = await self.crawler.crawl(sitemap_url)
        except CrawlError as e:
            logger.error(f"Skipping source {sitemap_url} for index {index_name}: {e}")
            stats["error"] = str(e)
            stats["errors"].append({"source": sitemap_url, "index": index_name, "error": str(e)})
            return stats

        stats["discovered"] = len(entries)

        if window is not None:
            candidates = self.filter_entries(entries, window)
            stats["filtered"] = len(entries) - len(candidates)
        else:
            candidates = entries

        async with self.fetcher.create_session() as session:
            for entry in candidates:
                state = await self.process_entry(
                    entry, index_name, sitemap_url, stats, session, incremental=window is not None
                )
                stats[state.value] += 1

        logger.info(
            f"Source {sitemap_url} done: {stats['indexed']} indexed, "
            f"{stats['skipped']} skipped, {stats['failed']} failed"
        )
        return stats

    @staticmethod
    def filter_entries(
        entries: List[SitemapEntry], window: ChangeWindowFilter
    ) -> List[SitemapEntry]:
        """Entries with a lastmod inside the window; entries without lastmod are dropped."""
        return [
            entry
            for entry in entries
            if entry.last_modified is not None and window(entry.last_modified)
        ]

    async def process_entry(
        self,
        entry: SitemapEntry,
        index_name: str,
        source: str,
        stats: Dict[str, Any],
        session: aiohttp.ClientSession,
        incremental: bool = False,
    ) -> EntryState:
        """Move one entry from DISCOVERED to SKIPPED, INDEXED or FAILED."""
        if incremental and await self.guard.should_skip(
            entry.url, entry.last_modified, index_name
        ):
            logger.info(f"Unchanged, skipping: {entry.url}, {entry.last_modified}")
            return EntryState.SKIPPED

        await self._sleep(self.request_delay)

        logger.info(f"{entry.url}, {entry.last_modified}")
        try:
            content = await self.fetcher.fetch(entry.url, session)
        except FetchError as e:
            logger.warning(f"Fetch failed for {entry.url} (source {source}, index {index_name}): {e}")
            stats["errors"].append(
                {"source": source, "url": entry.url, "index": index_name, "error": str(e)}
            )
            return EntryState.FAILED

        document_id = IndexKeys.document_id(entry.url)
        try:
            await self.index_client.upsert(
                index_name, document_id, content.to_document(entry.last_modified)
            )
        except SearchIndexError as e:
            logger.warning(f"Index write failed for {entry.url} (source {source}): {e}")
            stats["errors"].append(
                {"source": source, "url": entry.url, "index": index_name, "error": str(e)}
            )
            return EntryState.FAILED

        return EntryState.INDEXED
