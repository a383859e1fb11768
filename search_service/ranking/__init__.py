"""Search ranking and result fusion components.

This package contains the fusion strategies that combine vector and text
rankings, and the adaptive decisions made around them.

Contents
- ``fusion``: reciprocal rank fusion and weighted score fusion
- ``selection``: strategy selection, dynamic threshold, quality gate
"""
