"""Shared fixtures: an in-memory ``IndexClient``."""

from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pytest

from libs.vector_store.base import IndexClient, IndexPoint, IndexUnavailable, PointId, ScrollPage
from libs.vector_store.filters import Filter, MatchAny, MatchText, MatchValue, Range
from search_service.runtime.metrics import MetricsCollector


def _clause_matches(clause, payload: Dict[str, Any]) -> bool:
    value = payload.get(clause.key)
    if isinstance(clause, MatchValue):
        return value == clause.value
    if isinstance(clause, MatchAny):
        return value in clause.values
    if isinstance(clause, MatchText):
        return isinstance(value, str) and clause.text.lower() in value.lower()
    if isinstance(clause, Range):
        if not isinstance(value, (int, float)):
            return False
        return (
            (clause.gte is None or value >= clause.gte)
            and (clause.lte is None or value <= clause.lte)
            and (clause.gt is None or value > clause.gt)
            and (clause.lt is None or value < clause.lt)
        )
    raise TypeError(clause)


def filter_matches(flt: Optional[Filter], payload: Dict[str, Any]) -> bool:
    if flt is None:
        return True
    if not all(_clause_matches(c, payload) for c in flt.must):
        return False
    if any(_clause_matches(c, payload) for c in flt.must_not):
        return False
    if flt.should and not any(_clause_matches(c, payload) for c in flt.should):
        return False
    return True


class FakeIndexClient(IndexClient):
    """In-memory index.

    ``search`` scores points with the fixed ``vector_scores`` mapping when
    given, else by cosine similarity against each point's vector.
    ``MatchText`` is a case-insensitive substring match. Failures are
    injected through ``search_error``, ``scroll_error`` and
    ``failing_texts`` (scrolls whose ``MatchText`` text is listed raise).
    """

    def __init__(
        self,
        points: Optional[List[IndexPoint]] = None,
        vector_scores: Optional[Dict[PointId, float]] = None
    ):
        self.points = list(points or [])
        self.vector_scores = vector_scores
        self.search_calls: List[Dict[str, Any]] = []
        self.scroll_calls: List[Dict[str, Any]] = []
        self.search_error: Optional[Exception] = None
        self.scroll_error: Optional[Exception] = None
        self.failing_texts: set = set()
        self.healthy = True
        self.closed = False

    def _score(self, point: IndexPoint, vector: Sequence[float]) -> Optional[float]:
        if self.vector_scores is not None:
            return self.vector_scores.get(point.id)
        if point.vector is None:
            return None
        a = np.asarray(vector, dtype=float)
        b = np.asarray(point.vector, dtype=float)
        return float(np.dot(a, b) / (np.linalg.norm(a) * np.linalg.norm(b)))

    async def search(
        self,
        collection,
        vector,
        filter=None,
        limit=10,
        score_threshold=None,
        with_payload=True,
        with_vector=False,
        ef=None
    ):
        self.search_calls.append({
            "collection": collection,
            "vector": list(vector),
            "filter": filter,
            "limit": limit,
            "score_threshold": score_threshold,
            "ef": ef,
        })
        if self.search_error is not None:
            raise self.search_error

        hits = []
        for point in self.points:
            if not filter_matches(filter, point.payload):
                continue
            score = self._score(point, vector)
            if score is None:
                continue
            if score_threshold is not None and score < score_threshold:
                continue
            hits.append(IndexPoint(
                id=point.id,
                payload=dict(point.payload) if with_payload else {},
                score=score,
                vector=point.vector if with_vector else None,
            ))
        hits.sort(key=lambda p: p.score, reverse=True)
        return hits[:limit]

    async def scroll(
        self,
        collection,
        filter=None,
        limit=10,
        offset=None,
        with_payload=True,
        with_vector=False
    ):
        self.scroll_calls.append({
            "collection": collection,
            "filter": filter,
            "limit": limit,
            "offset": offset,
        })
        if self.scroll_error is not None:
            raise self.scroll_error
        if filter is not None:
            for clause in filter.must:
                if isinstance(clause, MatchText) and clause.text in self.failing_texts:
                    raise IndexUnavailable(f"text query failed: {clause.text}")

        matching = [p for p in self.points if filter_matches(filter, p.payload)]
        start = 0
        if offset is not None:
            ids = [p.id for p in matching]
            start = ids.index(offset) if offset in ids else len(matching)
        page = matching[start:start + limit]
        rest = matching[start + limit:]
        return ScrollPage(
            points=[
                IndexPoint(id=p.id, payload=dict(p.payload) if with_payload else {})
                for p in page
            ],
            next_page_offset=rest[0].id if rest else None,
        )

    async def count(self, collection, filter=None, exact=True):
        return sum(1 for p in self.points if filter_matches(filter, p.payload))

    async def retrieve(self, collection, ids, with_payload=True, with_vector=False):
        wanted = set(ids)
        return [
            IndexPoint(id=p.id, payload=dict(p.payload) if with_payload else {})
            for p in self.points
            if p.id in wanted
        ]

    async def collection_info(self, collection):
        if self.search_error is not None:
            raise self.search_error
        return {"name": collection, "points_count": len(self.points), "status": "green"}

    async def health_check(self):
        if isinstance(self.healthy, Exception):
            raise self.healthy
        return self.healthy

    async def close(self):
        self.closed = True


def make_point(point_id, text=None, score_vector=None, **payload) -> IndexPoint:
    if text is not None:
        payload["chunk_text"] = text
    return IndexPoint(id=point_id, payload=payload, vector=score_vector)


@pytest.fixture
def metrics():
    return MetricsCollector("test-service")
