"""Adaptive ranking decisions around fusion.

- ``calculate_dynamic_threshold`` raises the vector score floor when no text
  match corroborates the query.
- ``select_fusion_strategy`` demotes RRF to a vector-heavy weighted blend
  when the text ranking is too shallow or too weak for rank fusion.
- ``apply_quality_gate`` drops low-scoring results after fusion.
"""

from dataclasses import dataclass
from typing import List, Sequence

import structlog

from libs.common.config import HybridConfig
from ..models import FusedHit, FusionMethod, MatchType, SearchMethod, TextHit

logger = structlog.get_logger("search_service.selection")

# RRF needs at least this many text hits to be more than a tie-breaker.
MIN_TEXT_RESULTS_FOR_RRF = 3

VECTOR_HEAVY_WEIGHTS = (0.85, 0.15)
BALANCED_WEIGHTS = (0.5, 0.5)


@dataclass(frozen=True)
class FusionDecision:
    """Outcome of strategy selection for one request."""
    method: FusionMethod
    vector_weight: float
    text_weight: float
    auto_switched_from_rrf: bool
    has_real_text_matches: bool
    reason: str


def has_real_text_matches(text_results: Sequence[TextHit]) -> bool:
    """True if any text hit came from a phrase/variant match, not token fallback."""
    return any(
        r.match_type and r.match_type != MatchType.TOKEN_FALLBACK
        for r in text_results
    )


def select_fusion_strategy(
    text_results: Sequence[TextHit],
    use_rrf: bool,
    vector_weight: float,
    text_weight: float
) -> FusionDecision:
    """Pick the fusion strategy and weights from the realized text results.

    Rules are evaluated in order; the first match wins.
    """
    count = len(text_results)
    real = has_real_text_matches(text_results)

    def weighted(weights, reason):
        return FusionDecision(
            method=FusionMethod.WEIGHTED,
            vector_weight=weights[0],
            text_weight=weights[1],
            auto_switched_from_rrf=use_rrf,
            has_real_text_matches=real,
            reason=reason,
        )

    if use_rrf:
        if count > 0 and not real:
            decision = weighted(VECTOR_HEAVY_WEIGHTS, "only_token_fallback_matches")
        elif count == 0:
            decision = weighted(VECTOR_HEAVY_WEIGHTS, "no_text_results")
        elif count < MIN_TEXT_RESULTS_FOR_RRF:
            decision = weighted(VECTOR_HEAVY_WEIGHTS, "too_few_text_results")
        else:
            decision = FusionDecision(
                method=FusionMethod.RRF,
                vector_weight=vector_weight,
                text_weight=text_weight,
                auto_switched_from_rrf=False,
                has_real_text_matches=real,
                reason="rrf_requested",
            )
    elif count == 0 or not real:
        decision = weighted(VECTOR_HEAVY_WEIGHTS, "weak_text_signal")
    else:
        decision = weighted(BALANCED_WEIGHTS, "balanced_text_signal")

    logger.debug(
        "Fusion strategy selected",
        method=decision.method.value,
        vector_weight=decision.vector_weight,
        text_weight=decision.text_weight,
        reason=decision.reason,
        text_results=count,
    )
    return decision


def calculate_dynamic_threshold(
    base_threshold: float,
    has_text_matches: bool,
    hybrid_config: HybridConfig
) -> float:
    """Vector score floor for this request."""
    if not hybrid_config.enable_dynamic_thresholds:
        return base_threshold

    if has_text_matches:
        return max(base_threshold, hybrid_config.min_vector_with_text_threshold)
    return max(base_threshold, hybrid_config.min_vector_only_threshold)


def apply_quality_gate(
    results: List[FusedHit],
    has_text_matches: bool,
    hybrid_config: HybridConfig
) -> List[FusedHit]:
    """Drop fused results below the configured score floors.

    Every hit must reach ``min_final_score``; when the request produced no
    text match at all, vector-only hits must also reach
    ``min_vector_only_final_score``. Applying the gate twice is the same as
    applying it once.
    """
    if not hybrid_config.enable_quality_gate or not results:
        return results

    scores = [r.score for r in results]
    logger.debug(
        "Quality gate score distribution",
        count=len(results),
        has_text_matches=has_text_matches,
        min_score=round(min(scores), 6),
        max_score=round(max(scores), 6),
        avg_score=round(sum(scores) / len(scores), 6),
    )

    kept = []
    for result in results:
        if result.score < hybrid_config.min_final_score:
            continue
        if (
            result.search_method == SearchMethod.VECTOR
            and not has_text_matches
            and result.score < hybrid_config.min_vector_only_final_score
        ):
            continue
        kept.append(result)

    logger.debug("Quality gate applied", kept=len(kept), removed=len(results) - len(kept))
    return kept
