"""Unit tests for the RediSearch index client."""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from redisvl.schema import IndexSchema

from docsite_indexer.core.redis import (
    ANALYZER_PROFILES,
    CJK_PROFILE,
    ENGLISH_PROFILE,
    SearchIndexClient,
    SearchIndexError,
    TAG_SEPARATOR,
    build_document_schema,
    check_redis_connection,
    get_analyzer_profile,
)


@pytest.fixture
def redis_client():
    client = Mock()
    client.aclose = AsyncMock()
    client.hgetall = AsyncMock(return_value={})
    client.execute_command = AsyncMock(return_value=b"OK")
    client.ping = AsyncMock(return_value=True)

    pipe = Mock()
    pipe.execute = AsyncMock(return_value=[1, 4])
    client.pipeline = Mock(return_value=pipe)
    return client


@pytest.fixture
def search_index():
    index = Mock()
    index.exists = AsyncMock(return_value=False)
    title = Mock()
    title.redis_args = Mock(return_value=["title", "TEXT", "WEIGHT", 2.0])
    url = Mock()
    url.redis_args = Mock(return_value=["url", "TAG", "CASESENSITIVE"])
    index.schema.redis_fields = [title, url]
    return index


@pytest.fixture
def client(redis_client, search_index):
    with patch(
        "docsite_indexer.core.redis.get_redis_client", return_value=redis_client
    ), patch.object(SearchIndexClient, "_search_index", return_value=search_index):
        yield SearchIndexClient()


class TestAnalyzerProfiles:
    def test_default_profile_is_cjk(self):
        assert get_analyzer_profile() is CJK_PROFILE
        assert CJK_PROFILE.language == "chinese"

    def test_lookup_is_case_insensitive(self):
        assert get_analyzer_profile("English") is ENGLISH_PROFILE

    def test_unknown_profile(self):
        with pytest.raises(ValueError, match="Unknown analyzer profile"):
            get_analyzer_profile("klingon")

    def test_settings_block(self):
        assert CJK_PROFILE.settings() == {
            "analysis": {"analyzer": {"cjk": {"language": "chinese", "no_stem": False}}}
        }

    def test_all_profiles_named_after_key(self):
        for key, profile in ANALYZER_PROFILES.items():
            assert profile.name == key


class TestDocumentSchema:
    def test_fields(self):
        schema = build_document_schema("docusaurus_ja", CJK_PROFILE)

        assert schema["index"] == {
            "name": "docusaurus_ja",
            "prefix": "docusaurus_ja:",
            "storage_type": "hash",
        }
        fields = {f["name"]: f for f in schema["fields"]}
        assert set(fields) == {"title", "text", "url", "lastmod"}
        assert fields["title"]["type"] == "text"
        assert fields["text"]["type"] == "text"
        assert fields["url"]["type"] == "tag"
        assert fields["lastmod"]["type"] == "tag"

    def test_mapping(self):
        mapping = SearchIndexClient().mapping("docusaurus_ja", CJK_PROFILE)

        props = mapping["mappings"]["properties"]
        assert props["title"] == {"type": "text", "analyzer": "cjk"}
        assert props["text"] == {"type": "text", "analyzer": "cjk"}
        assert props["url"] == {"type": "keyword"}
        assert props["lastmod"] == {"type": "keyword"}
        assert mapping["settings"] == CJK_PROFILE.settings()
        assert mapping["storage"] == {"type": "hash", "prefix": "docusaurus_ja:"}

    def test_tag_fields_use_unit_separator(self):
        schema = IndexSchema.from_dict(build_document_schema("docusaurus_ja", CJK_PROFILE))

        tag_args = [f.redis_args() for f in schema.redis_fields if "TAG" in f.redis_args()]

        assert [args[0] for args in tag_args] == ["url", "lastmod"]
        for args in tag_args:
            assert args[args.index("SEPARATOR") + 1] == "\x1f"
            assert "CASESENSITIVE" in args


class TestSearchIndexClient:
    @pytest.mark.asyncio
    async def test_create_index_issues_ft_create(self, client, redis_client):
        created = await client.create_index("docusaurus_ja", CJK_PROFILE)

        assert created is True
        redis_client.execute_command.assert_awaited_once_with(
            "FT.CREATE",
            "docusaurus_ja",
            "ON",
            "HASH",
            "PREFIX",
            1,
            "docusaurus_ja:",
            "LANGUAGE",
            "chinese",
            "SCHEMA",
            "title",
            "TEXT",
            "WEIGHT",
            2.0,
            "url",
            "TAG",
            "CASESENSITIVE",
        )
        redis_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_create_index_keeps_urls_whole(self, client, redis_client, search_index):
        search_index.schema = IndexSchema.from_dict(
            build_document_schema("docusaurus_ja", CJK_PROFILE)
        )

        await client.create_index("docusaurus_ja", CJK_PROFILE)

        args = list(redis_client.execute_command.await_args.args)
        url_args = args[args.index("url") : args.index("url") + 4]
        assert url_args == ["url", "TAG", "SEPARATOR", TAG_SEPARATOR]
        lastmod_args = args[args.index("lastmod") : args.index("lastmod") + 4]
        assert lastmod_args == ["lastmod", "TAG", "SEPARATOR", TAG_SEPARATOR]

    @pytest.mark.asyncio
    async def test_create_index_existing(self, client, redis_client, search_index):
        search_index.exists.return_value = True

        assert await client.create_index("docusaurus_ja") is False
        redis_client.execute_command.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_index_failure_wrapped(self, client, redis_client):
        redis_client.execute_command.side_effect = ConnectionError("refused")

        with pytest.raises(SearchIndexError) as exc_info:
            await client.create_index("docusaurus_ja")

        assert exc_info.value.index_name == "docusaurus_ja"
        assert "refused" in str(exc_info.value)
        redis_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delete_index_missing(self, client, redis_client):
        assert await client.delete_index_if_exists("docusaurus_ja") is False
        redis_client.execute_command.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_index_drops_documents(self, client, redis_client, search_index):
        search_index.exists.return_value = True

        assert await client.delete_index_if_exists("docusaurus_ja") is True
        redis_client.execute_command.assert_awaited_once_with(
            "FT.DROPINDEX", "docusaurus_ja", "DD"
        )

    @pytest.mark.asyncio
    async def test_upsert_replaces_whole_document(self, client, redis_client):
        key = await client.upsert(
            "docusaurus_ja",
            "abc",
            {"title": "T", "text": "body", "url": "https://a.example/", "lastmod": None},
        )

        assert key == "docusaurus_ja:abc"
        redis_client.pipeline.assert_called_once_with(transaction=True)
        pipe = redis_client.pipeline.return_value
        pipe.delete.assert_called_once_with("docusaurus_ja:abc")
        pipe.hset.assert_called_once_with(
            "docusaurus_ja:abc",
            mapping={"title": "T", "text": "body", "url": "https://a.example/"},
        )
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_upsert_failure_wrapped(self, client, redis_client):
        redis_client.pipeline.return_value.execute.side_effect = ConnectionError("down")

        with pytest.raises(SearchIndexError):
            await client.upsert("docusaurus_ja", "abc", {"url": "https://a.example/"})

    @pytest.mark.asyncio
    async def test_upsert_empty_document_rejected(self, client):
        with pytest.raises(SearchIndexError):
            await client.upsert("docusaurus_ja", "abc", {"lastmod": None})

    @pytest.mark.asyncio
    async def test_get_missing(self, client, redis_client):
        assert await client.get("docusaurus_ja", "abc") is None
        redis_client.hgetall.assert_awaited_once_with("docusaurus_ja:abc")

    @pytest.mark.asyncio
    async def test_get_decodes(self, client, redis_client):
        redis_client.hgetall.return_value = {b"url": b"https://a.example/", b"lastmod": b"2024-01-07"}

        doc = await client.get("docusaurus_ja", "abc")

        assert doc == {"url": "https://a.example/", "lastmod": "2024-01-07"}

    @pytest.mark.asyncio
    async def test_get_failure_wrapped(self, client, redis_client):
        redis_client.hgetall.side_effect = ConnectionError("down")

        with pytest.raises(SearchIndexError):
            await client.get("docusaurus_ja", "abc")

    @pytest.mark.asyncio
    async def test_info(self, client, redis_client, search_index):
        search_index.exists.return_value = True
        redis_client.execute_command.return_value = [b"index_name", b"docusaurus_ja", b"num_docs", b"42"]

        info = await client.info("docusaurus_ja")

        assert info == {"index_name": "docusaurus_ja", "exists": True, "num_docs": 42}

    @pytest.mark.asyncio
    async def test_info_missing_index(self, client):
        info = await client.info("docusaurus_ja")
        assert info == {"index_name": "docusaurus_ja", "exists": False, "num_docs": 0}

    @pytest.mark.asyncio
    async def test_recreate(self, client, redis_client, search_index):
        search_index.exists.side_effect = [True, False]

        assert await client.recreate_index("docusaurus_ja", ENGLISH_PROFILE) is True
        commands = [call.args[0] for call in redis_client.execute_command.await_args_list]
        assert commands == ["FT.DROPINDEX", "FT.CREATE"]


class TestCheckRedisConnection:
    @pytest.mark.asyncio
    async def test_success(self, redis_client):
        with patch("docsite_indexer.core.redis.get_redis_client", return_value=redis_client):
            assert await check_redis_connection() is True
        redis_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure(self, redis_client):
        redis_client.ping.side_effect = ConnectionError("refused")
        with patch("docsite_indexer.core.redis.get_redis_client", return_value=redis_client):
            assert await check_redis_connection() is False
        redis_client.aclose.assert_awaited_once()
