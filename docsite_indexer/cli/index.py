"""Index management CLI commands."""

from __future__ import annotations

import asyncio
import json as _json
import sys

import click
from rich.console import Console
from rich.table import Table

from docsite_indexer.core.config import settings


def _resolve_index_name(index_name: str | None, conf: str | None) -> str:
    if index_name:
        return index_name
    if conf:
        from docsite_indexer.core.site_config import ConfigError, SiteIndexConfig

        try:
            return SiteIndexConfig.read(conf, settings.default_index_name).index_name
        except ConfigError as e:
            click.echo(f"❌ {e}")
            sys.exit(1)
    return settings.default_index_name


def _resolve_profile(analyzer: str | None):
    from docsite_indexer.core.redis import get_analyzer_profile

    try:
        return get_analyzer_profile(analyzer)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--analyzer")


def _index_options(func):
    func = click.option(
        "--conf", "-c", type=click.Path(dir_okay=False), help="Take the index name from a site config"
    )(func)
    func = click.option("--index-name", help="Index name (defaults to DEFAULT_INDEX_NAME)")(func)
    return func


@click.group()
def index():
    """RediSearch index management commands."""
    pass


@index.command("create")
@_index_options
@click.option("--analyzer", help="Analyzer profile (cjk, english, ...)")
def index_create(index_name: str | None, conf: str | None, analyzer: str | None):
    """Create the index with the page mapping if it does not exist."""

    async def _run():
        from docsite_indexer.core.redis import SearchIndexClient, SearchIndexError

        name = _resolve_index_name(index_name, conf)
        profile = _resolve_profile(analyzer)
        try:
            created = await SearchIndexClient().create_index(name, profile)
        except SearchIndexError as e:
            click.echo(f"❌ {e}")
            sys.exit(1)

        if created:
            click.echo(f"✅ Created index {name} (analyzer: {profile.name})")
        else:
            click.echo(f"ℹ️  Index {name} already exists")

    asyncio.run(_run())


@index.command("delete")
@_index_options
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation prompt")
def index_delete(index_name: str | None, conf: str | None, yes: bool):
    """Drop the index and every document in it."""

    async def _run():
        from docsite_indexer.core.redis import SearchIndexClient, SearchIndexError

        name = _resolve_index_name(index_name, conf)
        if not yes and not click.confirm(f"Delete index {name} and all its documents?"):
            click.echo("Aborted.")
            return

        try:
            deleted = await SearchIndexClient().delete_index_if_exists(name)
        except SearchIndexError as e:
            click.echo(f"❌ {e}")
            sys.exit(1)

        if deleted:
            click.echo(f"🗑️  Deleted index {name}")
        else:
            click.echo(f"ℹ️  Index {name} does not exist")

    asyncio.run(_run())


@index.command("recreate")
@_index_options
@click.option("--analyzer", help="Analyzer profile (cjk, english, ...)")
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation prompt")
def index_recreate(index_name: str | None, conf: str | None, analyzer: str | None, yes: bool):
    """Drop and recreate the index.

    Useful when the mapping or analyzer has changed. All documents are
    removed and have to be indexed again with `pipeline full`.
    """

    async def _run():
        from docsite_indexer.core.redis import SearchIndexClient, SearchIndexError

        console = Console()
        name = _resolve_index_name(index_name, conf)
        profile = _resolve_profile(analyzer)

        if not yes:
            console.print(
                "[yellow]Warning:[/yellow] This will drop the index and its documents. "
                "Pages will need to be re-indexed."
            )
            if not click.confirm("Continue?"):
                console.print("Aborted.")
                return

        try:
            await SearchIndexClient().recreate_index(name, profile)
        except SearchIndexError as e:
            console.print(f"[red]❌ Failed to recreate index: {e}[/red]")
            sys.exit(1)

        console.print(f"[green]✅ Recreated index {name} (analyzer: {profile.name})[/green]")

    asyncio.run(_run())


@index.command("status")
@_index_options
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
def index_status(index_name: str | None, conf: str | None, as_json: bool):
    """Show whether the index exists and how many documents it holds."""

    async def _run():
        from docsite_indexer.core.redis import (
            SearchIndexClient,
            SearchIndexError,
            check_redis_connection,
        )

        name = _resolve_index_name(index_name, conf)
        if not await check_redis_connection():
            info = {"index_name": name, "exists": False, "error": "Redis is unreachable"}
        else:
            try:
                info = await SearchIndexClient().info(name)
            except SearchIndexError as e:
                info = {"index_name": name, "exists": False, "error": str(e)}

        if as_json:
            print(_json.dumps(info, indent=2))
            return

        table = Table(title="RediSearch Index")
        table.add_column("Index Name", no_wrap=True)
        table.add_column("Exists", no_wrap=True)
        table.add_column("Documents", no_wrap=True)

        exists_str = "✅" if info["exists"] else "❌"
        docs = str(info.get("num_docs", 0)) if info["exists"] else "-"
        if info.get("error"):
            docs = f"Error: {info['error']}"
        table.add_row(info["index_name"], exists_str, docs)

        Console().print(table)

    asyncio.run(_run())


@index.command("mapping")
@_index_options
@click.option("--analyzer", help="Analyzer profile (cjk, english, ...)")
def index_mapping(index_name: str | None, conf: str | None, analyzer: str | None):
    """Print the mapping the index is created with, as JSON."""
    from docsite_indexer.core.redis import SearchIndexClient

    name = _resolve_index_name(index_name, conf)
    profile = _resolve_profile(analyzer)
    print(_json.dumps(SearchIndexClient().mapping(name, profile), indent=2))
