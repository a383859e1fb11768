"""Qdrant implementation of the ``IndexClient`` interface.

Wraps ``qdrant_client.AsyncQdrantClient`` and translates the engine's
``Filter`` model into Qdrant's ``models.Filter``. Every backend failure is
re-raised as ``IndexUnavailable`` so callers deal with a single error type.
"""

from typing import Any, Dict, List, Optional, Sequence

import structlog
from qdrant_client import AsyncQdrantClient, models

from .base import IndexClient, IndexPoint, IndexUnavailable, PointId, ScrollPage
from .filters import Clause, Filter, MatchAny, MatchText, MatchValue, Range, as_query_filter

logger = structlog.get_logger("vector_store.qdrant")


def clause_to_condition(clause: Clause) -> models.FieldCondition:
    """Convert one clause into a Qdrant field condition."""
    if isinstance(clause, MatchValue):
        return models.FieldCondition(key=clause.key, match=models.MatchValue(value=clause.value))
    if isinstance(clause, MatchAny):
        return models.FieldCondition(key=clause.key, match=models.MatchAny(any=list(clause.values)))
    if isinstance(clause, MatchText):
        return models.FieldCondition(key=clause.key, match=models.MatchText(text=clause.text))
    if isinstance(clause, Range):
        return models.FieldCondition(
            key=clause.key,
            range=models.Range(gte=clause.gte, lte=clause.lte, gt=clause.gt, lt=clause.lt)
        )
    raise TypeError(f"Unsupported clause type: {type(clause).__name__}")


def to_qdrant_filter(flt: Optional[Filter]) -> Optional[models.Filter]:
    """Convert a ``Filter``; the empty filter becomes ``None``."""
    flt = as_query_filter(flt)
    if flt is None:
        return None
    return models.Filter(
        must=[clause_to_condition(c) for c in flt.must] or None,
        must_not=[clause_to_condition(c) for c in flt.must_not] or None,
        should=[clause_to_condition(c) for c in flt.should] or None,
    )


def _to_point(record: Any) -> IndexPoint:
    vector = getattr(record, "vector", None)
    return IndexPoint(
        id=record.id,
        payload=dict(record.payload or {}),
        score=getattr(record, "score", None),
        vector=list(vector) if isinstance(vector, list) else None,
    )


class QdrantIndexClient(IndexClient):
    """Qdrant-backed index client."""

    def __init__(
        self,
        url: str = "http://localhost:6333",
        api_key: Optional[str] = None,
        timeout: int = 30,
        client: Optional[AsyncQdrantClient] = None
    ):
        self.url = url
        self.client = client or AsyncQdrantClient(url=url, api_key=api_key, timeout=timeout)

    async def search(
        self,
        collection: str,
        vector: Sequence[float],
        filter: Optional[Filter] = None,
        limit: int = 10,
        score_threshold: Optional[float] = None,
        with_payload: bool = True,
        with_vector: bool = False,
        ef: Optional[int] = None
    ) -> List[IndexPoint]:
        """Similarity search via ``query_points``."""
        try:
            response = await self.client.query_points(
                collection_name=collection,
                query=list(vector),
                query_filter=to_qdrant_filter(filter),
                limit=limit,
                score_threshold=score_threshold,
                with_payload=with_payload,
                with_vectors=with_vector,
                search_params=models.SearchParams(hnsw_ef=ef) if ef else None,
            )
        except Exception as e:
            logger.error("Qdrant search failed", collection=collection, error=str(e))
            raise IndexUnavailable(str(e)) from e

        return [_to_point(p) for p in response.points]

    async def scroll(
        self,
        collection: str,
        filter: Optional[Filter] = None,
        limit: int = 10,
        offset: Optional[PointId] = None,
        with_payload: bool = True,
        with_vector: bool = False
    ) -> ScrollPage:
        """Filtered scroll."""
        try:
            records, next_offset = await self.client.scroll(
                collection_name=collection,
                scroll_filter=to_qdrant_filter(filter),
                limit=limit,
                offset=offset,
                with_payload=with_payload,
                with_vectors=with_vector,
            )
        except Exception as e:
            logger.error("Qdrant scroll failed", collection=collection, error=str(e))
            raise IndexUnavailable(str(e)) from e

        return ScrollPage(points=[_to_point(r) for r in records], next_page_offset=next_offset)

    async def count(
        self,
        collection: str,
        filter: Optional[Filter] = None,
        exact: bool = True
    ) -> int:
        try:
            result = await self.client.count(
                collection_name=collection,
                count_filter=to_qdrant_filter(filter),
                exact=exact,
            )
        except Exception as e:
            logger.error("Qdrant count failed", collection=collection, error=str(e))
            raise IndexUnavailable(str(e)) from e

        return result.count

    async def retrieve(
        self,
        collection: str,
        ids: Sequence[PointId],
        with_payload: bool = True,
        with_vector: bool = False
    ) -> List[IndexPoint]:
        try:
            records = await self.client.retrieve(
                collection_name=collection,
                ids=list(ids),
                with_payload=with_payload,
                with_vectors=with_vector,
            )
        except Exception as e:
            logger.error("Qdrant retrieve failed", collection=collection, error=str(e))
            raise IndexUnavailable(str(e)) from e

        return [_to_point(r) for r in records]

    async def collection_info(self, collection: str) -> Dict[str, Any]:
        try:
            info = await self.client.get_collection(collection_name=collection)
        except Exception as e:
            logger.error("Qdrant collection info failed", collection=collection, error=str(e))
            raise IndexUnavailable(str(e)) from e

        return {
            "name": collection,
            "points_count": info.points_count,
            "indexed_vectors_count": info.indexed_vectors_count,
            "status": str(info.status.value if hasattr(info.status, "value") else info.status),
        }

    async def health_check(self) -> bool:
        """Check if Qdrant answers a collection listing."""
        try:
            await self.client.get_collections()
            return True
        except Exception as e:
            logger.error("Qdrant health check failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close the underlying client."""
        try:
            await self.client.close()
            logger.info("Qdrant client closed", url=self.url)
        except Exception as e:
            logger.error("Error closing Qdrant client", error=str(e))
