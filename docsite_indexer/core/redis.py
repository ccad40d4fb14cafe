"""Redis connection management and full-text index lifecycle.

Every operation opens a fresh connection and closes it before returning, so no
connection is held while the pipeline sleeps between page fetches.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional

from redis.asyncio import Redis
from redisvl.index.index import AsyncSearchIndex
from redisvl.schema import IndexSchema

from docsite_indexer.core.config import settings
from docsite_indexer.core.keys import IndexKeys

logger = logging.getLogger(__name__)


class SearchIndexError(Exception):
    """Raised when the search engine is unreachable or rejects an operation."""

    def __init__(self, message: str, index_name: Optional[str] = None):
        self.message = message
        self.index_name = index_name
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.index_name:
            return f"Search index '{self.index_name}': {self.message}"
        return f"Search index error: {self.message}"


@dataclass(frozen=True)
class AnalyzerProfile:
    """Language handling applied to the analyzed text fields of an index.

    ``language`` is passed to FT.CREATE as the default document language and
    selects the RediSearch tokenizer/stemmer.
    """

    name: str
    language: str
    no_stem: bool = False
    phonetic_matcher: Optional[str] = None

    def text_field_attrs(self) -> Dict[str, Any]:
        attrs: Dict[str, Any] = {"no_stem": self.no_stem}
        if self.phonetic_matcher:
            attrs["phonetic_matcher"] = self.phonetic_matcher
        return attrs

    def settings(self) -> Dict[str, Any]:
        """Analyzer settings block describing this profile."""
        analyzer: Dict[str, Any] = {"language": self.language, "no_stem": self.no_stem}
        if self.phonetic_matcher:
            analyzer["phonetic_matcher"] = self.phonetic_matcher
        return {"analysis": {"analyzer": {self.name: analyzer}}}


# "chinese" enables the Friso tokenizer, which segments CJK text
CJK_PROFILE = AnalyzerProfile(name="cjk", language="chinese")
ENGLISH_PROFILE = AnalyzerProfile(name="english", language="english")

ANALYZER_PROFILES: Dict[str, AnalyzerProfile] = {
    "cjk": CJK_PROFILE,
    "english": ENGLISH_PROFILE,
    "german": AnalyzerProfile(name="german", language="german"),
    "french": AnalyzerProfile(name="french", language="french"),
    "spanish": AnalyzerProfile(name="spanish", language="spanish"),
}


def get_analyzer_profile(name: Optional[str] = None) -> AnalyzerProfile:
    """Look up an analyzer profile by name (defaults to settings.analyzer_profile)."""
    profile_name = (name or settings.analyzer_profile).lower()
    try:
        return ANALYZER_PROFILES[profile_name]
    except KeyError:
        raise ValueError(
            f"Unknown analyzer profile '{profile_name}'. "
            f"Available: {', '.join(sorted(ANALYZER_PROFILES))}"
        ) from None


# Unit separator: never valid in a URL or a date, so each value stays one tag
TAG_SEPARATOR = "\x1f"


def build_document_schema(index_name: str, profile: AnalyzerProfile) -> Dict[str, Any]:
    """Schema definition for an index of crawled pages."""
    text_attrs = profile.text_field_attrs()
    return {
        "index": {
            "name": index_name,
            "prefix": IndexKeys.index_prefix(index_name),
            "storage_type": "hash",
        },
        "fields": [
            {
                "name": "title",
                "type": "text",
                "attrs": {"weight": 2.0, **text_attrs},
            },
            {
                "name": "text",
                "type": "text",
                "attrs": dict(text_attrs),
            },
            {
                "name": "url",
                "type": "tag",
                "attrs": {"case_sensitive": True, "separator": TAG_SEPARATOR},
            },
            {
                "name": "lastmod",
                "type": "tag",
                "attrs": {"case_sensitive": True, "separator": TAG_SEPARATOR},
            },
        ],
    }


def get_redis_client(url: Optional[str] = None) -> Redis:
    """Get Redis client (creates fresh client to avoid event loop issues)."""
    redis_url = url or settings.redis_url.get_secret_value()
    redis_password = settings.redis_password.get_secret_value() if settings.redis_password else None
    return Redis.from_url(
        url=redis_url,
        password=redis_password,
        decode_responses=False,  # Keep as bytes for RedisVL compatibility
    )


def _decode(value: Any) -> Any:
    return value.decode("utf-8") if isinstance(value, bytes) else value


def _parse_ft_info(raw_info: List[Any]) -> Dict[str, Any]:
    """Turn FT.INFO's flat key/value reply into a dict."""
    info: Dict[str, Any] = {}
    for i in range(0, len(raw_info) - 1, 2):
        info[_decode(raw_info[i])] = raw_info[i + 1]
    return info


class SearchIndexClient:
    """Index lifecycle and document writes against RediSearch."""

    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[Redis]:
        client = get_redis_client(self.redis_url)
        try:
            yield client
        finally:
            try:
                await client.aclose()
            except Exception as e:
                logger.warning(f"Failed to close Redis connection: {e}")

    def _search_index(self, client: Redis, index_name: str, profile: AnalyzerProfile):
        schema = IndexSchema.from_dict(build_document_schema(index_name, profile))
        return AsyncSearchIndex(schema=schema, redis_client=client)

    def mapping(self, index_name: str, profile: Optional[AnalyzerProfile] = None) -> Dict[str, Any]:
        """Describe the fields and analyzer an index is created with."""
        profile = profile or get_analyzer_profile()
        schema = build_document_schema(index_name, profile)

        properties: Dict[str, Any] = {}
        for field in schema["fields"]:
            if field["type"] == "text":
                properties[field["name"]] = {"type": "text", "analyzer": profile.name}
            else:
                properties[field["name"]] = {"type": "keyword"}

        return {
            "settings": profile.settings(),
            "mappings": {"properties": properties},
            "storage": {
                "type": schema["index"]["storage_type"],
                "prefix": schema["index"]["prefix"],
            },
        }

    async def exists(self, index_name: str) -> bool:
        """Check whether an index exists."""
        try:
            async with self._connection() as client:
                return await self._search_index(client, index_name, CJK_PROFILE).exists()
        except Exception as e:
            raise SearchIndexError(f"existence check failed: {e}", index_name) from e

    async def create_index(
        self, index_name: str, profile: Optional[AnalyzerProfile] = None
    ) -> bool:
        """Create an index with the document mapping.

        Returns:
            True if the index was created, False if it already existed.
        """
        profile = profile or get_analyzer_profile()
        try:
            async with self._connection() as client:
                search_index = self._search_index(client, index_name, profile)
                if await search_index.exists():
                    logger.info(f"Index already exists: {index_name}")
                    return False

                args: List[Any] = [
                    "FT.CREATE",
                    index_name,
                    "ON",
                    "HASH",
                    "PREFIX",
                    1,
                    IndexKeys.index_prefix(index_name),
                    "LANGUAGE",
                    profile.language,
                    "SCHEMA",
                ]
                for redis_field in search_index.schema.redis_fields:
                    args.extend(redis_field.redis_args())

                await client.execute_command(*args)
                logger.info(f"Created index: {index_name} (analyzer={profile.name})")
                return True
        except Exception as e:
            raise SearchIndexError(f"create failed: {e}", index_name) from e

    async def delete_index_if_exists(self, index_name: str) -> bool:
        """Drop an index together with its documents.

        Returns:
            True if an index was dropped, False if there was none.
        """
        try:
            async with self._connection() as client:
                search_index = self._search_index(client, index_name, CJK_PROFILE)
                if not await search_index.exists():
                    logger.info(f"Index does not exist, nothing to delete: {index_name}")
                    return False

                await client.execute_command("FT.DROPINDEX", index_name, "DD")
                logger.info(f"Dropped index: {index_name}")
                return True
        except Exception as e:
            raise SearchIndexError(f"delete failed: {e}", index_name) from e

    async def recreate_index(
        self, index_name: str, profile: Optional[AnalyzerProfile] = None
    ) -> bool:
        """Drop (if present) and create an index."""
        await self.delete_index_if_exists(index_name)
        return await self.create_index(index_name, profile)

    async def get(self, index_name: str, document_id: str) -> Optional[Dict[str, str]]:
        """Fetch a stored document by ID, or None if it is not indexed."""
        key = IndexKeys.document_key(index_name, document_id)
        try:
            async with self._connection() as client:
                raw = await client.hgetall(key)
        except Exception as e:
            raise SearchIndexError(f"lookup of {document_id} failed: {e}", index_name) from e

        if not raw:
            return None
        return {_decode(k): _decode(v) for k, v in raw.items()}

    async def upsert(
        self, index_name: str, document_id: str, document: Mapping[str, Optional[str]]
    ) -> str:
        """Create or fully replace a document under a caller-supplied ID.

        The old hash is deleted and the new one written in a single transaction,
        so no field of a previous version survives. ``None`` values are omitted.

        Returns:
            The Redis key the document was written to.
        """
        key = IndexKeys.document_key(index_name, document_id)
        mapping = {k: v for k, v in document.items() if v is not None}
        if not mapping:
            raise SearchIndexError(f"refusing to write empty document {document_id}", index_name)

        try:
            async with self._connection() as client:
                pipe = client.pipeline(transaction=True)
                pipe.delete(key)
                pipe.hset(key, mapping=mapping)
                await pipe.execute()
        except Exception as e:
            raise SearchIndexError(f"write of {document_id} failed: {e}", index_name) from e

        logger.debug(f"Upserted {key}")
        return key

    async def info(self, index_name: str) -> Dict[str, Any]:
        """Summary of an index: existence and number of documents."""
        try:
            async with self._connection() as client:
                search_index = self._search_index(client, index_name, CJK_PROFILE)
                if not await search_index.exists():
                    return {"index_name": index_name, "exists": False, "num_docs": 0}

                raw_info = await client.execute_command("FT.INFO", index_name)
        except Exception as e:
            raise SearchIndexError(f"info failed: {e}", index_name) from e

        info = _parse_ft_info(raw_info)
        num_docs = _decode(info.get("num_docs", 0))
        return {"index_name": index_name, "exists": True, "num_docs": int(num_docs)}


async def check_redis_connection(url: Optional[str] = None) -> bool:
    """Check Redis connection health.

    Args:
        url: Optional Redis URL to check. If not provided, uses default from settings.

    Returns:
        True if connection successful, False otherwise.
    """
    client = get_redis_client(url=url)
    try:
        await client.ping()
        return True
    except Exception as e:
        logger.error(f"Redis connection check failed: {e}")
        return False
    finally:
        try:
            await client.aclose()
        except Exception as e:
            logger.warning(f"Failed to close Redis connection: {e}")
