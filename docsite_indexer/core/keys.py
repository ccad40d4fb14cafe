"""
Redis key construction utilities.

Centralizes document identity and key naming so that every writer and reader
addresses the same document for the same page URL.
"""

import hashlib


class IndexKeys:
    """Utility class for constructing document IDs and Redis keys."""

    KEY_SEPARATOR = ":"

    @staticmethod
    def document_id(url: str) -> str:
        """Deterministic document ID for a page URL (MD5 hex digest).

        The URL is used literally: no trailing-slash or query normalization.
        """
        return hashlib.md5(url.encode("utf-8")).hexdigest()

    @staticmethod
    def index_prefix(index_name: str) -> str:
        """Key prefix covered by an index."""
        return f"{index_name}{IndexKeys.KEY_SEPARATOR}"

    @staticmethod
    def document_key(index_name: str, document_id: str) -> str:
        """Hash key holding one indexed document."""
        return f"{IndexKeys.index_prefix(index_name)}{document_id}"
