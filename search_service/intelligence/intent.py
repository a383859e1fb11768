"""Query intent and its translation into metadata filters.

The intent layer guesses *what kind* of content a query is after (content
type, language). Those guesses are soft preferences, so the default
translator emits them as ``should`` clauses; vector search strips such
clauses when they are the only ``should`` content.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

import structlog

from libs.vector_store.filters import Clause, Filter, MatchAny, MatchValue

logger = structlog.get_logger("query_intent")


@dataclass(frozen=True)
class QueryIntent:
    """Intent descriptor.

    ``filter`` is set when the caller already built the filter; otherwise the
    translator derives one from ``type`` and ``language``.
    """
    type: Optional[str] = None
    language: Optional[str] = None
    confidence: float = 0.0
    filter: Optional[Filter] = None


class IntentFilterTranslator(Protocol):
    """Contract for the intent-to-filter collaborator."""

    def generate_search_filters(self, intent: QueryIntent) -> Filter:
        ...


class MetadataIntentTranslator:
    """Translate an intent into soft-preference clauses.

    Parameters
    - content_types: Optional mapping of intent type to the ``content_type``
      payload values it covers; unmapped types match themselves
    """

    def __init__(self, content_types: Optional[Dict[str, List[str]]] = None):
        self.content_types = content_types or {}

    def generate_search_filters(self, intent: QueryIntent) -> Filter:
        should: List[Clause] = []

        if intent.type:
            values = self.content_types.get(intent.type, [intent.type])
            if len(values) == 1:
                should.append(MatchValue("content_type", values[0]))
            elif values:
                should.append(MatchAny("content_type", tuple(values)))

        if intent.language:
            should.append(MatchValue("lang", intent.language))

        logger.debug(
            "Intent translated to filter",
            intent_type=intent.type,
            language=intent.language,
            clauses=len(should),
        )
        return Filter(should=tuple(should))
