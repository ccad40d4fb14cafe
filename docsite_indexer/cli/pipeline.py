"""CLI commands for crawling sitemaps and indexing pages."""

import asyncio
import json
import sys
from typing import Any, Dict, Optional

import click

from ..core.config import settings
from ..core.redis import get_analyzer_profile
from ..core.site_config import ConfigError, SiteIndexConfig
from ..pipelines.orchestrator import IndexingPipeline, RunMode
from ..pipelines.scraper.base import CrawlError
from ..pipelines.scraper.sitemap import SitemapCrawler


def _load_site_config(conf: str) -> SiteIndexConfig:
    try:
        return SiteIndexConfig.read(conf, default_index_name=settings.default_index_name)
    except ConfigError as e:
        click.echo(f"❌ {e}")
        sys.exit(1)


def _echo_results(results: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(results, indent=2))
        return

    click.echo(f"✅ {results['mode'].capitalize()} indexing completed!")
    click.echo(f"   Index: {results['index_name']}")
    if results.get("window_days") is not None:
        click.echo(f"   Window: last {results['window_days']} day(s)")
    click.echo(f"   Discovered: {results['discovered']}")
    if results["mode"] == RunMode.INCREMENTAL.value:
        click.echo(f"   Outside window: {results['filtered']}")
        click.echo(f"   Unchanged (skipped): {results['skipped']}")
    click.echo(f"   Indexed: {results['indexed']}")
    click.echo(f"   Failed: {results['failed']}")

    for source in results["sources"]:
        if "error" in source:
            click.echo(f"   ❌ {source['source']}: {source['error']}")
        else:
            click.echo(
                f"   ✅ {source['source']}: {source['indexed']} indexed, "
                f"{source['failed']} failed"
            )


def _run(
    conf: str,
    mode: RunMode,
    days: Optional[int],
    index_name: Optional[str],
    delay: Optional[float],
    create_index: bool,
    analyzer: Optional[str],
    as_json: bool,
) -> Dict[str, Any]:
    site_config = _load_site_config(conf)

    try:
        profile = get_analyzer_profile(analyzer)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--analyzer")

    if not site_config.sitemap_urls and not as_json:
        click.echo(f"⚠️  No sitemap URLs configured in {conf}; nothing to index")

    async def run_pipeline():
        indexing = IndexingPipeline(request_delay=delay)
        return await indexing.run(
            site_config,
            mode=mode,
            days=days,
            index_name=index_name,
            create_index=create_index,
            profile=profile,
        )

    results = asyncio.run(run_pipeline())
    _echo_results(results, as_json)
    return results


def _common_options(func):
    func = click.option("--json", "as_json", is_flag=True, help="Output JSON summary")(func)
    func = click.option(
        "--analyzer", help="Analyzer profile used if the index has to be created"
    )(func)
    func = click.option(
        "--create-index/--no-create-index",
        default=True,
        help="Create the index first if it does not exist",
    )(func)
    func = click.option(
        "--delay", type=float, help="Seconds to wait before each page fetch"
    )(func)
    func = click.option("--index-name", help="Override the index named in the config")(func)
    func = click.option(
        "--conf",
        "-c",
        required=True,
        type=click.Path(dir_okay=False),
        help="Site index configuration file",
    )(func)
    return func


@click.group()
def pipeline():
    """Sitemap crawling and indexing commands."""
    pass


@pipeline.command()
@_common_options
def full(
    conf: str,
    index_name: Optional[str],
    delay: Optional[float],
    create_index: bool,
    analyzer: Optional[str],
    as_json: bool,
):
    """Fetch and index every page listed in the configured sitemaps."""
    if not as_json:
        click.echo("🚀 Starting full indexing...")
    _run(conf, RunMode.FULL, None, index_name, delay, create_index, analyzer, as_json)


@pipeline.command()
@_common_options
@click.option(
    "--days",
    "-d",
    type=click.IntRange(min=0),
    default=None,
    help="Only pages modified within this many days (defaults to UPDATE_WINDOW_DAYS)",
)
def update(
    conf: str,
    index_name: Optional[str],
    delay: Optional[float],
    create_index: bool,
    analyzer: Optional[str],
    as_json: bool,
    days: Optional[int],
):
    """Re-index pages whose sitemap lastmod changed recently."""
    if not as_json:
        click.echo("🔄 Starting incremental indexing...")
    _run(conf, RunMode.INCREMENTAL, days, index_name, delay, create_index, analyzer, as_json)


@pipeline.command()
@click.argument("sitemap_url")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
def sitemap(sitemap_url: str, as_json: bool):
    """List the entries a sitemap yields."""

    async def crawl():
        return await SitemapCrawler().crawl(sitemap_url)

    try:
        entries = asyncio.run(crawl())
    except CrawlError as e:
        click.echo(f"❌ {e}")
        sys.exit(1)

    if as_json:
        click.echo(
            json.dumps(
                [{"url": e.url, "lastmod": e.last_modified} for e in entries], indent=2
            )
        )
        return

    for entry in entries:
        click.echo(f"{entry.url}, {entry.last_modified}")
    click.echo(f"📋 {len(entries)} entries")
