"""Search manager for hybrid semantic and lexical search.

Combines dense vector similarity (semantic) with multi-variant keyword
matching (lexical) over a single vector index and merges the two rankings.
The fusion strategy is picked per request from the text results actually
found, so a weak keyword signal cannot drag good vector hits down.
"""

import math
import time
from typing import Any, Dict, List, Optional, Union

import structlog

from libs.common.config import HybridConfig, QualityConfig, RetrievalConfig
from libs.common.logging import configure_logging, log_performance
from libs.vector_store.base import IndexClient, IndexPoint, PointId
from libs.vector_store.factory import create_index_client_from_env
from libs.vector_store.filters import Filter, MatchValue, Range, coerce_filter
from ..errors import HybridSearchFailed
from ..intelligence.intent import IntentFilterTranslator, QueryIntent
from ..intelligence.query_variants import QueryVariantGenerator
from ..models import (
    ChunkContext,
    FusionMethod,
    HybridSearchMetadata,
    HybridSearchOptions,
    HybridSearchResponse,
    ScoredHit,
    TextHit,
    VectorSearchOptions,
)
from ..ranking.fusion import create_fusion_algorithm
from ..ranking.selection import apply_quality_gate, calculate_dynamic_threshold, select_fusion_strategy
from ..retrievers.text import TextRetriever
from ..retrievers.vector import QueryVector, VectorRetriever, to_scored_hit
from ..runtime.metrics import MetricsCollector, get_metrics_collector

logger = structlog.get_logger("search_service.search_manager")

FilterLike = Union[Filter, Dict[str, Any], None]


class HybridSearchManager:
    """Manages hybrid search operations.

    Responsibilities
    - Run keyword and vector retrieval against one ``IndexClient``
    - Choose the fusion strategy from the realized text results
    - Fuse, gate and return ranked results with request metadata
    - Expose the single-signal searches and document helpers (context
      windows, scrolling, counting, stats)
    """

    def __init__(
        self,
        index_client: IndexClient,
        hybrid_config: Optional[HybridConfig] = None,
        quality_config: Optional[QualityConfig] = None,
        variant_generator: Optional[QueryVariantGenerator] = None,
        intent_translator: Optional[IntentFilterTranslator] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        """Construct a search manager.

        Parameters
        - index_client: Backend client shared by both retrievers
        - hybrid_config: Fusion/threshold/gate tunables (defaults if omitted)
        - quality_config: Quality-aware vector search tunables
        - variant_generator: Query variant collaborator for keyword search
        - intent_translator: Optional intent-to-filter collaborator
        - metrics: Metrics collector; the shared ``search_service`` collector
          is used when omitted
        """
        self.index_client = index_client
        self.hybrid_config = hybrid_config or HybridConfig()
        self.vector_retriever = VectorRetriever(
            index_client,
            quality_config=quality_config,
            intent_translator=intent_translator,
        )
        self.text_retriever = TextRetriever(index_client, variant_generator=variant_generator)
        self.metrics = metrics or get_metrics_collector("search_service")

    @classmethod
    def from_config(cls, config: Optional[RetrievalConfig] = None, **kwargs) -> "HybridSearchManager":
        """Build a manager and its index client from ``RetrievalConfig``.

        Also configures structured logging from the config's ``ML_LOG_*``
        settings, binding the service name and environment to every line.
        """
        config = config or RetrievalConfig()
        configure_logging("search_service", config.ml_log_level, config.ml_log_format, env=config.ml_env)
        return cls(
            create_index_client_from_env(config),
            hybrid_config=config.hybrid_config(),
            quality_config=config.quality_config(),
            **kwargs
        )

    async def hybrid_search(
        self,
        collection: str,
        query_vector: QueryVector,
        query_text: str,
        filter: FilterLike = None,
        options: Optional[HybridSearchOptions] = None
    ) -> HybridSearchResponse:
        """Perform hybrid search.

        Keyword search runs first; whether it found anything decides the
        vector score floor. The fused list holds at most ``options.limit``
        hits. Any failure is raised as ``HybridSearchFailed``.
        """
        options = options or HybridSearchOptions()
        cfg = self.hybrid_config
        start_time = time.time()

        try:
            recall_base = options.recall_limit or options.limit * 4
            recall_text = max(options.limit, recall_base)
            text_results = await self.text_retriever.perform_text_search(
                collection, query_text, filter, recall_text
            )
            has_text_matches = len(text_results) > 0

            dynamic_threshold = calculate_dynamic_threshold(options.threshold, has_text_matches, cfg)
            logger.debug(
                "Using dynamic threshold",
                threshold=dynamic_threshold,
                text_matches=len(text_results),
            )

            # half-up rounding
            recall_vec = max(options.limit, math.floor(recall_base * 1.5 + 0.5))
            vector_results = await self.vector_retriever.vector_search(
                collection,
                query_vector,
                filter,
                VectorSearchOptions(
                    limit=recall_vec,
                    threshold=dynamic_threshold,
                    with_payload=True,
                    ef=max(100, recall_vec * 2),
                ),
            )

            logger.info(
                "Hybrid retrieval completed",
                collection=collection,
                vector_results=len(vector_results),
                text_results=len(text_results),
            )

            decision = select_fusion_strategy(
                text_results, options.use_rrf, options.vector_weight, options.text_weight
            )

            if decision.method == FusionMethod.RRF:
                fusion = create_fusion_algorithm(FusionMethod.RRF, k=options.rrf_k, hybrid_config=cfg)
            else:
                fusion = create_fusion_algorithm(
                    FusionMethod.WEIGHTED,
                    vector_weight=decision.vector_weight,
                    text_weight=decision.text_weight,
                )
            fused = fusion.fuse_results(vector_results, text_results, options.limit)

            if cfg.enable_quality_gate:
                gated = apply_quality_gate(fused, has_text_matches, cfg)
                self.metrics.record_quality_gate(len(fused) - len(gated))
                fused = gated

            match_types = self._distinct_match_types(text_results)
            metadata = HybridSearchMetadata(
                vector_results=len(vector_results),
                text_results=len(text_results),
                fusion_method=decision.method,
                vector_weight=decision.vector_weight,
                text_weight=decision.text_weight,
                dynamic_threshold=dynamic_threshold,
                quality_filtered=cfg.enable_quality_gate,
                auto_switched_from_rrf=decision.auto_switched_from_rrf,
                has_real_text_matches=decision.has_real_text_matches,
                text_match_types=match_types,
            )

        except Exception as e:
            logger.error("Hybrid search failed", collection=collection, error=str(e))
            self.metrics.record_search("hybrid", "error", time.time() - start_time)
            raise HybridSearchFailed(str(e)) from e

        duration = time.time() - start_time
        self.metrics.record_search("hybrid", "success", duration)
        self.metrics.record_fusion(decision.method.value, decision.auto_switched_from_rrf)
        for match_type in match_types:
            self.metrics.record_text_match(match_type)

        log_performance(
            "hybrid_search",
            duration * 1000,
            collection=collection,
            fusion_method=decision.method.value,
            results_count=len(fused),
        )

        return HybridSearchResponse(success=True, results=fused, metadata=metadata)

    @staticmethod
    def _distinct_match_types(text_results: List[TextHit]) -> List[str]:
        seen: List[str] = []
        for hit in text_results:
            if hit.match_type and hit.match_type.value not in seen:
                seen.append(hit.match_type.value)
        return seen

    async def vector_search(
        self,
        collection: str,
        query_vector: QueryVector,
        filter: FilterLike = None,
        options: Optional[VectorSearchOptions] = None
    ) -> List[ScoredHit]:
        """Plain vector search; see ``VectorRetriever.vector_search``."""
        start_time = time.time()
        try:
            hits = await self.vector_retriever.vector_search(collection, query_vector, filter, options)
        except Exception:
            self.metrics.record_search("vector", "error", time.time() - start_time)
            raise
        self.metrics.record_search("vector", "success", time.time() - start_time)
        return hits

    async def search_with_quality(
        self,
        collection: str,
        query_vector: QueryVector,
        filter: FilterLike = None,
        options: Optional[VectorSearchOptions] = None
    ) -> List[ScoredHit]:
        return await self.vector_retriever.search_with_quality(collection, query_vector, filter, options)

    async def search_with_intent(
        self,
        collection: str,
        query_vector: QueryVector,
        intent: Optional[QueryIntent],
        base_filter: FilterLike = None,
        options: Optional[VectorSearchOptions] = None
    ) -> List[ScoredHit]:
        return await self.vector_retriever.search_with_intent(
            collection, query_vector, intent, base_filter, options
        )

    async def perform_text_search(
        self,
        collection: str,
        search_term: str,
        base_filter: FilterLike = None,
        limit: int = 10
    ) -> List[TextHit]:
        """Keyword-only search; never raises."""
        start_time = time.time()
        hits = await self.text_retriever.perform_text_search(collection, search_term, base_filter, limit)
        self.metrics.record_search("text", "success", time.time() - start_time)
        return hits

    async def get_chunk_with_context(
        self,
        collection: str,
        point_or_id: Union[PointId, ScoredHit, IndexPoint],
        window: int = 1
    ) -> ChunkContext:
        """Fetch a chunk and the chunks around it in the same document.

        ``context`` holds every chunk with ``chunk_index`` within ``window``
        of the centre (the centre included), ordered by ``chunk_index``.
        """
        if isinstance(point_or_id, ScoredHit):
            center = point_or_id
        elif isinstance(point_or_id, IndexPoint):
            center = to_scored_hit(point_or_id)
        else:
            points = await self.index_client.retrieve(collection, [point_or_id], with_payload=True)
            if not points or not points[0].payload:
                logger.debug("Chunk not found", collection=collection, point_id=point_or_id)
                return ChunkContext(center=None, context=[])
            center = to_scored_hit(points[0])

        document_id = center.payload.document_id
        chunk_index = center.payload.chunk_index
        if document_id is None or chunk_index is None:
            logger.debug("Chunk has no document position", collection=collection, point_id=center.id)
            return ChunkContext(center=center, context=[])

        window = max(0, window)
        lower = max(0, chunk_index - window)
        upper = chunk_index + window
        page = await self.index_client.scroll(
            collection,
            filter=Filter(must=(
                MatchValue("document_id", document_id),
                Range("chunk_index", gte=lower, lte=upper),
            )),
            limit=upper - lower + 1,
            with_payload=True,
        )

        context = [to_scored_hit(p) for p in page.points]
        context.sort(key=lambda h: h.payload.chunk_index if h.payload.chunk_index is not None else 0)
        return ChunkContext(center=center, context=context)

    async def scroll_documents(
        self,
        collection: str,
        filter: FilterLike = None,
        limit: int = 100,
        offset: Optional[PointId] = None
    ) -> List[IndexPoint]:
        """Return one page of points matching ``filter``."""
        if limit <= 0:
            logger.warning("Scroll requested with non-positive limit", collection=collection, limit=limit)
            return []

        flt = coerce_filter(filter)
        page = await self.index_client.scroll(
            collection,
            filter=None if flt.is_empty() else flt,
            limit=limit,
            offset=offset,
            with_payload=True,
        )
        return page.points

    async def count_documents(
        self,
        collection: str,
        filter: FilterLike = None,
        exact: bool = True
    ) -> int:
        flt = coerce_filter(filter)
        return await self.index_client.count(collection, None if flt.is_empty() else flt, exact)

    async def health_check(self) -> bool:
        """Check if the index is reachable. Never raises."""
        try:
            return bool(await self.index_client.health_check())
        except Exception as e:
            logger.warning("Index health check failed", error=str(e))
            return False

    async def get_collection_stats(self, collection: str) -> Dict[str, Any]:
        """Collection statistics, or ``{"error": message}`` on failure."""
        try:
            return await self.index_client.collection_info(collection)
        except Exception as e:
            logger.error("Failed to get collection stats", collection=collection, error=str(e))
            return {"error": str(e)}

    async def close(self) -> None:
        """Release the index client."""
        await self.index_client.close()
        logger.info("Search manager closed")
