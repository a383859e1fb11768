"""Keyword retrieval using the index's full-text payload match.

Text search is a best-effort augmentation of vector search: a failing
variant or token query contributes zero hits, and a total failure returns an
empty list instead of raising.
"""

import asyncio
import math
import unicodedata
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

import structlog

from libs.vector_store.base import IndexClient, IndexPoint, PointId
from libs.vector_store.filters import Filter, MatchText, coerce_filter
from ..intelligence.query_variants import GermanQueryVariants, QueryVariantGenerator
from ..models import MatchType, Payload, TextHit

logger = structlog.get_logger("search_service.text")

TEXT_FIELD = "chunk_text"
MIN_FALLBACK_TOKEN_LENGTH = 4


def calculate_text_search_score(search_term: str, text: Optional[str], position: int) -> float:
    """Score a text hit by term frequency, merge position and term length.

    ``min(count * 0.1, 0.8) * max(0.1, 1 - position * 0.1) * min(1, len/10)``
    clamped to ``[0.1, 1.0]``; ``count`` is the number of non-overlapping,
    case-insensitive occurrences of the literal term.
    """
    if not isinstance(text, str) or not text or not search_term:
        return 0.1

    occurrences = text.lower().count(search_term.lower())
    score = min(occurrences * 0.1, 0.8)
    score *= max(0.1, 1 - position * 0.1)
    score *= min(1.0, len(search_term) / 10)
    return min(1.0, max(0.1, score))


@dataclass
class _BranchResult:
    label: str
    match_type: MatchType
    points: List[IndexPoint] = field(default_factory=list)


class TextRetriever:
    """Multi-variant keyword search with token OR fallback.

    Parameters
    - index_client: Backend client used for filtered scrolls
    - variant_generator: Query variant collaborator; defaults to
      ``GermanQueryVariants``
    - text_field: Payload field holding the chunk text
    """

    def __init__(
        self,
        index_client: IndexClient,
        variant_generator: Optional[QueryVariantGenerator] = None,
        text_field: str = TEXT_FIELD
    ):
        self.index_client = index_client
        self.variant_generator = variant_generator or GermanQueryVariants()
        self.text_field = text_field

    async def perform_text_search(
        self,
        collection: str,
        search_term: str,
        base_filter: Union[Filter, dict, None] = None,
        limit: int = 10
    ) -> List[TextHit]:
        """Keyword search returning up to ``limit`` hits ranked by score."""
        try:
            base = coerce_filter(base_filter)
            variants = self.variant_generator.generate_query_variants(search_term)
            logger.debug("Text search started", collection=collection, term=search_term, variants=variants)

            merged, match_type = await self._search_variants(collection, search_term, variants, base, limit)

            if not merged:
                merged, match_type = await self._token_fallback(collection, search_term, base, limit)

            results = [
                TextHit(
                    id=point.id,
                    score=calculate_text_search_score(search_term, point.payload.get(self.text_field), rank),
                    payload=Payload.from_dict(point.payload),
                    search_term=search_term,
                    matched_variant=variant,
                    match_type=match_type,
                )
                for rank, (point, variant) in enumerate(merged.values())
            ]
        except Exception as e:
            logger.warning("Text search failed", collection=collection, term=search_term, error=str(e))
            return []

        results.sort(key=lambda r: r.score, reverse=True)
        limited = results[:limit]

        logger.debug(
            "Text search completed",
            collection=collection,
            term=search_term,
            match_type=match_type.value,
            merged_count=len(merged),
            results_count=len(limited),
        )
        return limited

    async def _search_variants(
        self,
        collection: str,
        search_term: str,
        variants: List[str],
        base: Filter,
        limit: int
    ) -> Tuple["OrderedDict[PointId, Tuple[IndexPoint, str]]", MatchType]:
        if not variants:
            return OrderedDict(), MatchType.NONE

        lowered = unicodedata.normalize("NFC", search_term).strip().lower()
        per_variant_limit = math.ceil(limit / len(variants)) + 5
        branches = await asyncio.gather(*[
            self._scroll_branch(
                collection,
                base,
                variant,
                per_variant_limit,
                MatchType.EXACT if variant == lowered else MatchType.VARIANT,
            )
            for variant in variants
        ])

        merged: "OrderedDict[PointId, Tuple[IndexPoint, str]]" = OrderedDict()
        best = MatchType.VARIANT
        for branch in branches:
            if branch.points and branch.match_type == MatchType.EXACT:
                best = MatchType.EXACT
            for point in branch.points:
                if point.id not in merged:
                    merged[point.id] = (point, branch.label)

        logger.debug("Variant search merged", unique_points=len(merged), variants=len(variants))
        return merged, (best if merged else MatchType.NONE)

    async def _token_fallback(
        self,
        collection: str,
        search_term: str,
        base: Filter,
        limit: int
    ) -> Tuple["OrderedDict[PointId, Tuple[IndexPoint, str]]", MatchType]:
        """OR-search individual long tokens when no variant matched."""
        normalized = self.variant_generator.normalize_query(search_term)
        tokens = [
            t for t in self.variant_generator.tokenize_query(normalized or search_term)
            if len(t) >= MIN_FALLBACK_TOKEN_LENGTH
        ]
        if len(tokens) < 2:
            return OrderedDict(), MatchType.NONE

        logger.debug("Token fallback", collection=collection, tokens=tokens)
        per_token_limit = math.ceil(limit / len(tokens)) + 3
        branches = await asyncio.gather(*[
            self._scroll_branch(collection, base, token, per_token_limit, MatchType.TOKEN_FALLBACK)
            for token in tokens
        ])

        merged: "OrderedDict[PointId, Tuple[IndexPoint, str]]" = OrderedDict()
        for branch in branches:
            for point in branch.points:
                if point.id not in merged:
                    merged[point.id] = (point, "token")

        logger.debug("Token fallback merged", unique_points=len(merged))
        return merged, (MatchType.TOKEN_FALLBACK if merged else MatchType.NONE)

    async def _scroll_branch(
        self,
        collection: str,
        base: Filter,
        text: str,
        limit: int,
        match_type: MatchType
    ) -> _BranchResult:
        """One substring query under the base filter's hard constraints.

        Failures yield an empty ``error`` branch.
        """
        branch_filter = base.without_should().with_must(MatchText(self.text_field, text))
        try:
            page = await self.index_client.scroll(
                collection,
                filter=branch_filter,
                limit=limit,
                with_payload=True,
                with_vector=False,
            )
        except Exception as e:
            logger.warning("Text query failed", collection=collection, text=text, error=str(e))
            return _BranchResult(text, MatchType.ERROR)

        return _BranchResult(text, match_type, list(page.points or []))
