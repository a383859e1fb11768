"""Query understanding collaborators.

- ``query_variants``: spelling variants, normalization and tokenization used
  by keyword search.
- ``intent``: intent descriptors and their translation into filters.
"""
