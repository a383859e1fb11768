"""Data model for retrieval results.

Hits are plain dataclasses passed by value through the pipeline stages:
vector search produces ``ScoredHit``, text search produces ``TextHit`` and the
fusion strategies produce ``FusedHit``. None of them outlives a single search
call.
"""

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from libs.vector_store.base import PointId


class MatchType(str, Enum):
    """How a text hit was found. Strategy selection branches on this."""
    EXACT = "exact"
    VARIANT = "variant"
    TOKEN_FALLBACK = "token_fallback"
    ERROR = "error"
    NONE = "none"


class SearchMethod(str, Enum):
    """Provenance of a hit."""
    VECTOR = "vector"
    TEXT = "text"
    HYBRID = "hybrid"


class FusionMethod(str, Enum):
    RRF = "RRF"
    WEIGHTED = "weighted"


_KNOWN_PAYLOAD_KEYS = (
    "quality_score",
    "content_type",
    "lang",
    "chunk_text",
    "document_id",
    "chunk_index",
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class Payload:
    """Typed view over a point payload.

    The fields the engine reasons about are lifted out; everything else is
    kept verbatim in ``extra``. A non-numeric ``quality_score`` counts as
    absent and stays in ``extra``.
    """
    quality_score: Optional[float] = None
    content_type: Optional[str] = None
    lang: Optional[str] = None
    chunk_text: Optional[str] = None
    document_id: Optional[str] = None
    chunk_index: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "Payload":
        raw = dict(raw or {})
        quality = raw.get("quality_score")
        known = {}
        for key in _KNOWN_PAYLOAD_KEYS:
            if key == "quality_score" and not _is_number(quality):
                continue
            if key in raw:
                known[key] = raw.pop(key)
        return cls(extra=raw, **known)

    def get(self, key: str, default: Any = None) -> Any:
        if key in _KNOWN_PAYLOAD_KEYS and getattr(self, key) is not None:
            return getattr(self, key)
        return self.extra.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        out = dict(self.extra)
        for key in _KNOWN_PAYLOAD_KEYS:
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out


@dataclass(frozen=True)
class ScoredHit:
    """A vector search hit."""
    id: PointId
    score: float
    payload: Payload = field(default_factory=Payload)
    vector: Optional[List[float]] = None

    def with_score(self, score: float) -> "ScoredHit":
        return replace(self, score=score)


@dataclass(frozen=True)
class TextHit:
    """A keyword search hit."""
    id: PointId
    score: float
    payload: Payload
    search_term: str
    matched_variant: str
    match_type: MatchType
    search_method: SearchMethod = SearchMethod.TEXT


@dataclass(frozen=True)
class FusedHit:
    """A hit after score fusion.

    ``confidence`` and ``raw_rrf_score`` are only set by reciprocal rank fusion.
    """
    id: PointId
    score: float
    payload: Payload
    search_method: SearchMethod
    original_vector_score: Optional[float] = None
    original_text_score: Optional[float] = None
    confidence: Optional[float] = None
    raw_rrf_score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["payload"] = self.payload.to_dict()
        out["search_method"] = self.search_method.value
        return out


@dataclass
class HybridSearchMetadata:
    """What the orchestrator did for one request."""
    vector_results: int
    text_results: int
    fusion_method: FusionMethod
    vector_weight: float
    text_weight: float
    dynamic_threshold: float
    quality_filtered: bool
    auto_switched_from_rrf: bool
    has_real_text_matches: bool
    text_match_types: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["fusion_method"] = self.fusion_method.value
        return out


@dataclass
class HybridSearchResponse:
    """Result envelope of ``hybrid_search``.

    ``success=True`` with no results means nothing matched. Failures are
    raised by the engine; ``failure()`` lets callers build the structured
    failure object they hand to their own clients.
    """
    success: bool
    results: List[FusedHit] = field(default_factory=list)
    metadata: Optional[HybridSearchMetadata] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, message: str) -> "HybridSearchResponse":
        return cls(success=False, results=[], metadata=None, error=message)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": self.success,
            "results": [r.to_dict() for r in self.results],
        }
        if self.metadata is not None:
            out["metadata"] = self.metadata.to_dict()
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class ChunkContext:
    """A chunk plus its neighbours from the same document."""
    center: Optional[ScoredHit]
    context: List[ScoredHit] = field(default_factory=list)


@dataclass(frozen=True)
class VectorSearchOptions:
    limit: int = 10
    threshold: float = 0.3
    with_payload: bool = True
    with_vector: bool = False
    ef: Optional[int] = None


@dataclass(frozen=True)
class HybridSearchOptions:
    limit: int = 10
    threshold: float = 0.3
    vector_weight: float = 0.7
    text_weight: float = 0.3
    use_rrf: bool = True
    rrf_k: float = 60
    recall_limit: Optional[int] = None
