"""Search retrievers for lexical and semantic workflows.

Retrievers encapsulate how candidates are fetched from the index before
ranking. Splitting retrieval from ranking keeps pipelines modular and
testable.
"""
