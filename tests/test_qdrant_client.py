"""Tests for the Qdrant index client."""

from types import SimpleNamespace

import pytest
from qdrant_client import models

from libs.common.config import RetrievalConfig
from libs.vector_store.base import IndexUnavailable
from libs.vector_store.factory import IndexClientFactory, IndexClientType, create_index_client_from_env
from libs.vector_store.filters import Filter, MatchAny, MatchText, MatchValue, Range
from libs.vector_store.qdrant import QdrantIndexClient, to_qdrant_filter


class StubQdrant:
    """Records calls made to the async Qdrant client."""

    def __init__(self, error=None):
        self.calls = []
        self.error = error

    async def query_points(self, **kwargs):
        self.calls.append(("query_points", kwargs))
        if self.error:
            raise self.error
        return SimpleNamespace(points=[
            SimpleNamespace(id="a", payload={"chunk_text": "Radverkehr"}, score=0.9, vector=None),
        ])

    async def scroll(self, **kwargs):
        self.calls.append(("scroll", kwargs))
        if self.error:
            raise self.error
        return [SimpleNamespace(id=1, payload={"document_id": "d1"})], 2

    async def count(self, **kwargs):
        self.calls.append(("count", kwargs))
        return SimpleNamespace(count=7)

    async def get_collections(self):
        if self.error:
            raise self.error
        return SimpleNamespace(collections=[])

    async def close(self):
        self.calls.append(("close", {}))


def test_filter_conversion():
    flt = Filter(
        must=(MatchValue("user_id", "u1"), Range("chunk_index", gte=1, lte=3)),
        must_not=(MatchAny("status", ("deleted",)),),
        should=(MatchText("chunk_text", "wasser"),),
    )

    converted = to_qdrant_filter(flt)

    assert converted.must == [
        models.FieldCondition(key="user_id", match=models.MatchValue(value="u1")),
        models.FieldCondition(key="chunk_index", range=models.Range(gte=1, lte=3)),
    ]
    assert converted.must_not == [
        models.FieldCondition(key="status", match=models.MatchAny(any=["deleted"])),
    ]
    assert converted.should == [
        models.FieldCondition(key="chunk_text", match=models.MatchText(text="wasser")),
    ]


def test_empty_filter_converts_to_none():
    assert to_qdrant_filter(Filter()) is None
    assert to_qdrant_filter(None) is None


@pytest.mark.asyncio
async def test_search_uses_query_points():
    stub = StubQdrant()
    client = QdrantIndexClient(client=stub)

    points = await client.search(
        "docs", [0.1, 0.2], Filter(must=(MatchValue("user_id", "u1"),)), limit=5, score_threshold=0.3, ef=128
    )

    assert [(p.id, p.score) for p in points] == [("a", 0.9)]
    assert points[0].payload == {"chunk_text": "Radverkehr"}
    _, kwargs = stub.calls[0]
    assert kwargs["collection_name"] == "docs"
    assert kwargs["limit"] == 5
    assert kwargs["score_threshold"] == 0.3
    assert kwargs["search_params"] == models.SearchParams(hnsw_ef=128)
    assert kwargs["query_filter"].must[0].key == "user_id"


@pytest.mark.asyncio
async def test_scroll_and_count():
    stub = StubQdrant()
    client = QdrantIndexClient(client=stub)

    page = await client.scroll("docs", limit=1)
    total = await client.count("docs", exact=False)

    assert [p.id for p in page.points] == [1]
    assert page.next_page_offset == 2
    assert page.points[0].score is None
    assert total == 7
    assert stub.calls[1][1]["exact"] is False


@pytest.mark.asyncio
async def test_backend_errors_become_index_unavailable():
    client = QdrantIndexClient(client=StubQdrant(error=ConnectionError("refused")))

    with pytest.raises(IndexUnavailable) as exc_info:
        await client.search("docs", [0.1])
    assert isinstance(exc_info.value.__cause__, ConnectionError)

    with pytest.raises(IndexUnavailable):
        await client.scroll("docs")

    assert await client.health_check() is False


@pytest.mark.asyncio
async def test_health_check_and_close():
    stub = StubQdrant()
    client = QdrantIndexClient(client=stub)

    assert await client.health_check() is True
    await client.close()
    assert stub.calls[-1][0] == "close"


def test_factory():
    client = IndexClientFactory.create(IndexClientType.QDRANT, {"url": "http://qdrant:6333"})
    assert isinstance(client, QdrantIndexClient)

    with pytest.raises(ValueError):
        IndexClientFactory.create(IndexClientType.QDRANT, {})
    with pytest.raises(ValueError):
        IndexClientFactory.create_from_config({"type": "pgvector", "url": "x"})

    from_env = create_index_client_from_env(RetrievalConfig(qdrant_url="http://qdrant:6333"))
    assert from_env.url == "http://qdrant:6333"
