"""CLI interface for Docsite Indexer."""

import importlib
import logging

import click

from docsite_indexer.core.config import settings

# Map command names to their module:attribute for lazy import
_COMMANDS = {
    "pipeline": "docsite_indexer.cli.pipeline:pipeline",
    "index": "docsite_indexer.cli.index:index",
}


class LazyGroup(click.Group):
    """
    Lazy loading of CLI commands to avoid hard dependencies at top level.

    This allows us to split up Click commands into separate files
    without having to import all dependencies at the top level.
    """

    def list_commands(self, ctx):
        # Keep stable ordering for help output
        return list(_COMMANDS.keys())

    def get_command(self, ctx, name):
        target = _COMMANDS.get(name)
        if not target:
            return None
        module_path, attr = target.split(":", 1)
        mod = importlib.import_module(module_path)
        return getattr(mod, attr)


@click.command(cls=LazyGroup)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging level (defaults to LOG_LEVEL setting)",
)
def main(log_level):
    """Docsite Indexer CLI."""
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )


if __name__ == "__main__":
    main()
