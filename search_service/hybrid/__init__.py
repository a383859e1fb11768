"""Hybrid search components for semantic + lexical ranking.

Includes the ``HybridSearchManager`` which coordinates vector similarity
(semantic) and keyword (lexical) signals and merges results.
"""
