"""Result fusion algorithms for hybrid search.

Both strategies take the vector and text result lists, each already sorted by
its own score, and return ``FusedHit`` lists sorted by the fused score. Hits
are keyed by point id; the vector hit's payload wins when both lists carry
the same id.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

import structlog

from libs.common.config import HybridConfig
from libs.vector_store.base import PointId
from ..models import FusedHit, FusionMethod, Payload, ScoredHit, SearchMethod, TextHit

logger = structlog.get_logger("search_fusion")


@dataclass
class _Accumulator:
    payload: Payload
    search_method: SearchMethod
    score: float = 0.0
    original_vector_score: Optional[float] = None
    original_text_score: Optional[float] = None


class RankFusionAlgorithm:
    """Base class for rank fusion algorithms."""

    name = "base"

    def fuse_results(
        self,
        vector_results: Sequence[ScoredHit],
        text_results: Sequence[TextHit],
        limit: int = 10
    ) -> List[FusedHit]:
        """Fuse vector and text search results."""
        raise NotImplementedError


class ReciprocalRankFusion(RankFusionAlgorithm):
    """Reciprocal Rank Fusion (RRF).

    Each list contributes ``1 / (k + rank + 1)`` for a 0-based ``rank``;
    contributions for the same id are added, so a hit found by both
    retrievers always outranks its single-list score. With confidence
    weighting enabled, hybrid hits are multiplied by ``confidence_boost`` and
    vector-only hits by ``confidence_penalty``.
    """

    name = "rrf"

    def __init__(self, k: float = 60.0, hybrid_config: Optional[HybridConfig] = None):
        self.k = k  # RRF parameter
        self.hybrid_config = hybrid_config or HybridConfig()

    def _confidence(self, method: SearchMethod) -> float:
        cfg = self.hybrid_config
        if not cfg.enable_confidence_weighting:
            return 1.0
        if method == SearchMethod.HYBRID:
            return cfg.confidence_boost
        if method == SearchMethod.VECTOR:
            return cfg.confidence_penalty
        return 1.0

    def fuse_results(
        self,
        vector_results: Sequence[ScoredHit],
        text_results: Sequence[TextHit],
        limit: int = 10
    ) -> List[FusedHit]:
        """Fuse results using RRF."""
        scores: "OrderedDict[PointId, _Accumulator]" = OrderedDict()

        for rank, hit in enumerate(vector_results):
            scores[hit.id] = _Accumulator(
                payload=hit.payload,
                search_method=SearchMethod.VECTOR,
                score=1.0 / (self.k + rank + 1),
                original_vector_score=hit.score,
            )

        for rank, hit in enumerate(text_results):
            contribution = 1.0 / (self.k + rank + 1)
            existing = scores.get(hit.id)
            if existing is not None:
                existing.score += contribution
                existing.original_text_score = hit.score
                existing.search_method = SearchMethod.HYBRID
            else:
                scores[hit.id] = _Accumulator(
                    payload=hit.payload,
                    search_method=SearchMethod.TEXT,
                    score=contribution,
                    original_text_score=hit.score,
                )

        fused = []
        for point_id, acc in scores.items():
            confidence = self._confidence(acc.search_method)
            fused.append(FusedHit(
                id=point_id,
                score=acc.score * confidence,
                payload=acc.payload,
                search_method=acc.search_method,
                original_vector_score=acc.original_vector_score,
                original_text_score=acc.original_text_score,
                confidence=confidence,
                raw_rrf_score=acc.score,
            ))

        fused.sort(key=lambda r: r.score, reverse=True)

        logger.info(
            "RRF fusion completed",
            vector_count=len(vector_results),
            text_count=len(text_results),
            fused_count=len(fused),
            k_parameter=self.k,
        )

        return fused[:limit]


class WeightedScoreFusion(RankFusionAlgorithm):
    """Weighted linear combination of raw scores.

    Weights are normalized to sum to one. No confidence multiplier applies.
    """

    name = "weighted"

    def __init__(self, vector_weight: float = 0.7, text_weight: float = 0.3):
        total_weight = vector_weight + text_weight
        if total_weight <= 0:
            raise ValueError("vector_weight + text_weight must be positive")

        self.vector_weight = vector_weight / total_weight
        self.text_weight = text_weight / total_weight

    def fuse_results(
        self,
        vector_results: Sequence[ScoredHit],
        text_results: Sequence[TextHit],
        limit: int = 10
    ) -> List[FusedHit]:
        """Fuse results using weighted scores."""
        scores: Dict[PointId, _Accumulator] = OrderedDict()

        for hit in vector_results:
            scores[hit.id] = _Accumulator(
                payload=hit.payload,
                search_method=SearchMethod.VECTOR,
                score=hit.score * self.vector_weight,
                original_vector_score=hit.score,
            )

        for hit in text_results:
            contribution = hit.score * self.text_weight
            existing = scores.get(hit.id)
            if existing is not None:
                existing.score += contribution
                existing.original_text_score = hit.score
                existing.search_method = SearchMethod.HYBRID
            else:
                scores[hit.id] = _Accumulator(
                    payload=hit.payload,
                    search_method=SearchMethod.TEXT,
                    score=contribution,
                    original_text_score=hit.score,
                )

        fused = [
            FusedHit(
                id=point_id,
                score=acc.score,
                payload=acc.payload,
                search_method=acc.search_method,
                original_vector_score=acc.original_vector_score,
                original_text_score=acc.original_text_score,
            )
            for point_id, acc in scores.items()
        ]
        fused.sort(key=lambda r: r.score, reverse=True)

        logger.info(
            "Weighted score fusion completed",
            vector_count=len(vector_results),
            text_count=len(text_results),
            fused_count=len(fused),
            vector_weight=self.vector_weight,
            text_weight=self.text_weight,
        )

        return fused[:limit]


def create_fusion_algorithm(
    algorithm: Union[str, FusionMethod] = "rrf",
    **params
) -> RankFusionAlgorithm:
    """Create a fusion algorithm instance.

    ``algorithm`` is ``rrf`` or ``weighted`` (case-insensitive; a
    ``FusionMethod`` is accepted too).
    """
    name = getattr(algorithm, "value", algorithm).lower()

    if name == "rrf":
        return ReciprocalRankFusion(
            k=params.get("k", 60.0),
            hybrid_config=params.get("hybrid_config"),
        )

    elif name == "weighted":
        return WeightedScoreFusion(
            vector_weight=params.get("vector_weight", 0.7),
            text_weight=params.get("text_weight", 0.3),
        )

    else:
        raise ValueError(f"Unknown fusion algorithm: {algorithm}")
