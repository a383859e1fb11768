"""Query variant generation for keyword search.

Text search expands a raw term into several spellings before querying the
index. The engine only depends on the ``QueryVariantGenerator`` protocol; the
``GermanQueryVariants`` default covers the cases that matter for German
content (case, umlaut folding, hyphenated compounds) and accepts an optional
synonym table.
"""

import re
import unicodedata
from typing import Dict, Iterable, List, Optional, Protocol

import structlog

logger = structlog.get_logger("query_variants")

_UMLAUT_FOLDS = {
    "ä": "ae",
    "ö": "oe",
    "ü": "ue",
    "ß": "ss",
}

_TOKEN_RE = re.compile(r"[\w]+", re.UNICODE)
_WHITESPACE_RE = re.compile(r"\s+")
_PUNCTUATION_RE = re.compile(r"[^\w\s-]", re.UNICODE)


class QueryVariantGenerator(Protocol):
    """Contract for the text-variant collaborator."""

    def generate_query_variants(self, term: str) -> List[str]:
        """Ordered, de-duplicated spellings of ``term`` to search for."""
        ...

    def normalize_query(self, term: str) -> str:
        ...

    def tokenize_query(self, text: str) -> List[str]:
        ...


def fold_umlauts(text: str) -> str:
    """Replace German umlauts and sharp s with their ASCII transcription."""
    return "".join(_UMLAUT_FOLDS.get(ch, ch) for ch in text)


def _unique(items: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            out.append(item)
    return out


class GermanQueryVariants:
    """Default variant generator.

    Parameters
    - synonyms: Optional mapping of lower-cased term to alternative terms
    - max_variants: Upper bound on generated variants (the first one is
      always the lower-cased original)
    """

    def __init__(self, synonyms: Optional[Dict[str, List[str]]] = None, max_variants: int = 6):
        self.synonyms = {k.lower(): list(v) for k, v in (synonyms or {}).items()}
        self.max_variants = max_variants

    def normalize_query(self, term: str) -> str:
        """Lower-case, strip punctuation and collapse whitespace.

        Umlauts are kept; folding is a variant, not a normalization.
        """
        text = unicodedata.normalize("NFC", term or "").lower()
        text = _PUNCTUATION_RE.sub(" ", text)
        return _WHITESPACE_RE.sub(" ", text).strip()

    def tokenize_query(self, text: str) -> List[str]:
        return _TOKEN_RE.findall((text or "").lower())

    def generate_query_variants(self, term: str) -> List[str]:
        base = unicodedata.normalize("NFC", term or "").strip().lower()
        if not base:
            return []

        normalized = self.normalize_query(base)
        candidates = [base, normalized, fold_umlauts(normalized)]

        if "-" in normalized:
            candidates.append(normalized.replace("-", " "))
            candidates.append(normalized.replace("-", ""))

        candidates.extend(s.lower() for s in self.synonyms.get(normalized, []))

        variants = _unique(candidates)[: self.max_variants]
        logger.debug("Query variants generated", term=term, variants=variants)
        return variants
