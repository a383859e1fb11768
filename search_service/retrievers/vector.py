"""Dense vector retrieval.

Three layers, each wrapping the previous one:

- ``vector_search``: a single nearest-neighbour query with filter and score
  threshold
- ``search_with_quality``: drops low-quality chunks and rescales scores by
  the payload ``quality_score``
- ``search_with_intent``: merges an intent-derived filter into the base
  filter, degrading to the base filter when translation fails
"""

from typing import List, Optional, Sequence, Union

import numpy as np
import structlog

from libs.common.config import QualityConfig
from libs.vector_store.base import IndexClient, IndexPoint
from libs.vector_store.filters import (
    Filter,
    as_query_filter,
    coerce_filter,
    merge_filters,
    strip_soft_should_clauses,
)
from ..errors import VectorSearchFailed
from ..intelligence.intent import IntentFilterTranslator, QueryIntent
from ..models import Payload, ScoredHit, VectorSearchOptions

logger = structlog.get_logger("search_service.vector")

QueryVector = Union[Sequence[float], np.ndarray]


def to_scored_hit(point: IndexPoint) -> ScoredHit:
    return ScoredHit(
        id=point.id,
        score=float(point.score or 0.0),
        payload=Payload.from_dict(point.payload),
        vector=point.vector,
    )


def rescore_by_quality(hits: List[ScoredHit], boost_factor: float) -> List[ScoredHit]:
    """Scale scores by ``1 + (quality - 0.5) * (boost_factor - 1)``.

    Hits without a quality score count as quality 1.0. Returns a new list
    sorted by the rescaled score.
    """
    rescored = []
    for hit in hits:
        quality = hit.payload.quality_score
        if quality is None:
            quality = 1.0
        rescored.append(hit.with_score(hit.score * (1 + (quality - 0.5) * (boost_factor - 1))))
    rescored.sort(key=lambda h: h.score, reverse=True)
    return rescored


class VectorRetriever:
    """Runs vector queries against an ``IndexClient``.

    Parameters
    - index_client: Backend client
    - quality_config: Quality filter/boost tunables
    - intent_translator: Optional intent-to-filter collaborator
    """

    def __init__(
        self,
        index_client: IndexClient,
        quality_config: Optional[QualityConfig] = None,
        intent_translator: Optional[IntentFilterTranslator] = None
    ):
        self.index_client = index_client
        self.quality_config = quality_config or QualityConfig()
        self.intent_translator = intent_translator

    async def vector_search(
        self,
        collection: str,
        query_vector: QueryVector,
        filter: Union[Filter, dict, None] = None,
        options: Optional[VectorSearchOptions] = None
    ) -> List[ScoredHit]:
        """Single nearest-neighbour query.

        Returns up to ``options.limit`` hits with ``score >= options.threshold``
        in descending score order. Index failures raise ``VectorSearchFailed``.
        """
        options = options or VectorSearchOptions()
        try:
            vector = np.asarray(query_vector, dtype=float).ravel().tolist()
            if not vector:
                raise ValueError("query vector is empty")

            flt, stripped = strip_soft_should_clauses(coerce_filter(filter))
            if stripped:
                logger.debug(
                    "Dropped soft-preference should clauses",
                    collection=collection,
                    fields=sorted({c.key for c in stripped}),
                )
            query_filter = as_query_filter(flt)

            points = await self.index_client.search(
                collection,
                vector,
                filter=query_filter,
                limit=options.limit,
                score_threshold=options.threshold,
                with_payload=options.with_payload,
                with_vector=options.with_vector,
                ef=options.ef if options.ef and options.ef > 0 else None,
            )
        except Exception as e:
            logger.error("Vector search failed", collection=collection, error=str(e))
            raise VectorSearchFailed(str(e)) from e

        hits = [to_scored_hit(p) for p in points]

        logger.info(
            "Vector search completed",
            collection=collection,
            results_count=len(hits),
            top_score=round(hits[0].score, 3) if hits else None,
        )

        if not hits:
            await self._diagnose_empty_result(collection, vector, query_filter, options)

        return hits

    async def _diagnose_empty_result(
        self,
        collection: str,
        vector: List[float],
        query_filter: Optional[Filter],
        options: VectorSearchOptions
    ) -> None:
        """Re-run an empty query without threshold and log what it finds.

        Distinguishes a too-strict threshold from missing content. Never
        changes the caller's result.
        """
        try:
            probe = await self.index_client.search(
                collection,
                vector,
                filter=query_filter,
                limit=options.limit,
                score_threshold=0.0,
                with_payload=False,
                with_vector=False,
            )
        except Exception as e:
            logger.warning("Unthresholded diagnostic query failed", collection=collection, error=str(e))
            return

        if probe:
            logger.warning(
                "Vector search empty due to threshold",
                collection=collection,
                threshold=options.threshold,
                unthresholded_hits=len(probe),
                best_unthresholded_score=round(float(probe[0].score or 0.0), 3),
            )
        else:
            logger.warning(
                "Vector search empty without threshold",
                collection=collection,
                has_filter=query_filter is not None,
            )

    async def search_with_quality(
        self,
        collection: str,
        query_vector: QueryVector,
        filter: Union[Filter, dict, None] = None,
        options: Optional[VectorSearchOptions] = None
    ) -> List[ScoredHit]:
        """Vector search with quality filtering and boosting.

        Truncation to ``limit`` happens after rescoring, so quality can change
        which hits survive, not only their order.
        """
        options = options or VectorSearchOptions()
        hits = await self.vector_search(collection, query_vector, filter, options)

        cfg = self.quality_config
        if cfg.enable_quality_filter:
            before = len(hits)
            hits = [
                h for h in hits
                if h.payload.quality_score is None or h.payload.quality_score >= cfg.min_retrieval_quality
            ]
            if len(hits) < before:
                logger.debug(
                    "Quality filter removed hits",
                    removed=before - len(hits),
                    min_quality=cfg.min_retrieval_quality,
                )

        return rescore_by_quality(hits, cfg.quality_boost_factor)[: options.limit]

    async def search_with_intent(
        self,
        collection: str,
        query_vector: QueryVector,
        intent: Optional[QueryIntent],
        base_filter: Union[Filter, dict, None] = None,
        options: Optional[VectorSearchOptions] = None
    ) -> List[ScoredHit]:
        """Quality-aware search with an intent-derived filter.

        If the intent cannot be translated, the request is served with the
        base filter alone instead of failing.
        """
        base = coerce_filter(base_filter)

        if intent is None:
            return await self.search_with_quality(collection, query_vector, base, options)

        if intent.filter is not None:
            merged = merge_filters(base, intent.filter)
            return await self.search_with_quality(collection, query_vector, merged, options)

        try:
            if self.intent_translator is None:
                raise RuntimeError("no intent translator configured")
            intent_filter = self.intent_translator.generate_search_filters(intent)
            merged = merge_filters(base, coerce_filter(intent_filter))
        except Exception as e:
            logger.warning(
                "Intent filter translation failed, using base filter",
                collection=collection,
                intent_type=intent.type,
                error=str(e),
            )
            return await self.search_with_quality(collection, query_vector, base, options)

        return await self.search_with_quality(collection, query_vector, merged, options)
