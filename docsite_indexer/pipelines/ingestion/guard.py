"""
Skip decision for incremental runs: is the indexed copy of a page already current?
"""

import logging
from typing import Optional

from docsite_indexer.core.keys import IndexKeys
from docsite_indexer.core.redis import SearchIndexClient

logger = logging.getLogger(__name__)


class IncrementalGuard:
    """Compares a sitemap entry against the stored document with the same ID."""

    def __init__(self, index_client: SearchIndexClient):
        self.index_client = index_client

    async def should_skip(
        self, page_url: str, last_modified: Optional[str], index_name: str
    ) -> bool:
        """True only if the page is indexed with exactly the same lastmod string.

        Dates are compared as opaque strings, so a site that changes its date
        format gets every page re-indexed once. Lookup failures are logged and
        answered with False so that the page is refreshed rather than missed.
        """
        if last_modified is None:
            return False

        document_id = IndexKeys.document_id(page_url)
        try:
            existing = await self.index_client.get(index_name, document_id)
        except Exception as e:
            logger.warning(
                f"Lookup failed for {page_url} in {index_name}, assuming stale: {e}"
            )
            return False

        if not existing:
            # Document doesn't exist, always ingest
            return False

        stored = existing.get("lastmod")
        if stored is not None and stored == last_modified:
            logger.debug(f"Document {document_id} unchanged ({stored}), skipping")
            return True

        logger.info(f"Document {document_id} changed: {stored} -> {last_modified}")
        return False
