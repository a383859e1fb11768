"""Tests for the hybrid retrieval engine.

Everything runs against the in-memory ``FakeIndexClient`` from
``conftest.py``; the Qdrant adapter is exercised with a stubbed client.
"""
