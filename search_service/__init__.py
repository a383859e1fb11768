"""Hybrid retrieval and ranking engine.

Subpackages:
- ``retrievers``: vector and keyword retrieval against an ``IndexClient``
- ``ranking``: fusion strategies and the adaptive decisions around them
- ``intelligence``: query variants and intent-to-filter translation
- ``hybrid``: the ``HybridSearchManager`` orchestrating a full request
"""
