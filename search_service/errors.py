"""Errors raised by the search layers.

Index-level errors (``IndexUnavailable``, ``InvalidFilter``) live with the
index client in ``libs.vector_store.base`` and are re-exported here.
"""

from libs.vector_store.base import IndexUnavailable, InvalidFilter, RetrievalError

__all__ = [
    "RetrievalError",
    "IndexUnavailable",
    "InvalidFilter",
    "VectorSearchFailed",
    "HybridSearchFailed",
]


class VectorSearchFailed(RetrievalError):
    """A vector query failed; wraps the index-layer cause."""

    def __init__(self, message: str):
        super().__init__(f"Vector search failed: {message}")
        self.original_message = message


class HybridSearchFailed(RetrievalError):
    """Some stage of the hybrid pipeline failed; wraps the cause."""

    def __init__(self, message: str):
        super().__init__(f"Hybrid search failed: {message}")
        self.original_message = message
