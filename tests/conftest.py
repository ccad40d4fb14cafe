"""
Test configuration and fixtures for Docsite Indexer.
"""

import os
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

# Keep tests independent of a developer's .env and of a running Redis
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

FIXTURES_DIR = Path(__file__).parent / "fixtures"


class MockAsyncContextManager:
    """Mock async context manager for aiohttp responses and sessions."""

    def __init__(self, mock_response):
        self.mock_response = mock_response

    async def __aenter__(self):
        return self.mock_response

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None


def _chunk_iterator(chunks: List[bytes]):
    def iter_chunked(n):
        async def _gen():
            for chunk in chunks:
                yield chunk

        return _gen()

    return iter_chunked


@pytest.fixture
def fixtures_dir() -> Path:
    """Directory holding sample sitemaps, configs and pages."""
    return FIXTURES_DIR


@pytest.fixture
def sample_sitemap_bytes() -> bytes:
    return (FIXTURES_DIR / "test_sitemap.xml").read_bytes()


@pytest.fixture
def make_response():
    """Factory for mocked aiohttp responses.

    ``body`` is served through ``content.iter_chunked`` split into
    ``chunk_size`` pieces, and through ``text()`` as a decoded string.
    """

    def _make(status: int = 200, body: bytes = b"", chunk_size: Optional[int] = None):
        response = Mock()
        response.status = status
        size = chunk_size or max(len(body), 1)
        chunks = [body[i : i + size] for i in range(0, len(body), size)]
        response.content = Mock()
        response.content.iter_chunked = _chunk_iterator(chunks)
        response.text = AsyncMock(return_value=body.decode("utf-8", errors="replace"))
        return response

    return _make


@pytest.fixture
def make_session():
    """Factory for a mocked aiohttp session whose get() serves responses by URL."""

    def _make(responses: Dict[str, Mock]):
        session = Mock()

        def _get(url, **kwargs):
            if url not in responses:
                raise AssertionError(f"Unexpected request: {url}")
            response = responses[url]
            if isinstance(response, Exception):
                raise response
            return MockAsyncContextManager(response)

        session.get = Mock(side_effect=_get)
        return session

    return _make


@pytest.fixture
def mock_index_client():
    """SearchIndexClient double with every coroutine mocked."""
    client = Mock()
    client.exists = AsyncMock(return_value=True)
    client.create_index = AsyncMock(return_value=True)
    client.delete_index_if_exists = AsyncMock(return_value=True)
    client.recreate_index = AsyncMock(return_value=True)
    client.get = AsyncMock(return_value=None)
    client.upsert = AsyncMock(side_effect=lambda name, doc_id, doc: f"{name}:{doc_id}")
    client.info = AsyncMock(
        return_value={"index_name": "docusaurus_ja", "exists": True, "num_docs": 0}
    )
    return client
