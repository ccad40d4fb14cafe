"""Docsite Indexer - sitemap-driven full-text indexing of documentation sites."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("docsite-indexer")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"  # Fallback for development without install
