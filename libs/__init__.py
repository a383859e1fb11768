"""Shared libraries for the retrieval engine.

Subpackages:
- ``libs.common``: configuration, logging, and metrics.
- ``libs.vector_store``: the index client abstraction, filter model and the
  Qdrant backend.

Notes:
- Avoid search-specific logic here; keep modules cohesive and broadly useful.
"""
