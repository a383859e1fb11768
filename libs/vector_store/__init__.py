"""Vector index adapters and utilities.

Primary components:
- ``base``: abstract ``IndexClient`` interface and the error taxonomy.
- ``filters``: the ``Filter`` model, merging and soft-preference stripping.
- ``qdrant``: Qdrant implementation of the interface.
- ``factory``: helpers to construct a client from typed config or env.

Guidance:
- Prefer constructing via ``factory.create_index_client_from_env`` so search
  code stays decoupled from specific backends.
"""
