"""Common utilities shared across the retrieval engine.

Includes:
- ``config``: Pydantic-based configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers.

Import pattern:
- from libs.common.config import RetrievalConfig
- from libs.common.logging import configure_logging
"""
