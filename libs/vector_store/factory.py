"""Index client factory.

Centralizes creation of concrete ``IndexClient`` backends so the search layers
don't depend on implementation details. New backends can be added without
changing call sites.
"""

from enum import Enum
from typing import Any, Dict, Optional

import structlog

from libs.common.config import RetrievalConfig
from .base import IndexClient
from .qdrant import QdrantIndexClient

logger = structlog.get_logger("vector_store.factory")


class IndexClientType(Enum):
    """Supported index backends."""
    QDRANT = "qdrant"


class IndexClientFactory:
    """Factory for creating index client instances."""

    @staticmethod
    def create(client_type: IndexClientType, config: Dict[str, Any]) -> IndexClient:
        """Create an index client.

        Parameters
        - client_type: An ``IndexClientType`` enum value
        - config: Backend-specific parameters (e.g. ``url`` for Qdrant)
        """
        if client_type == IndexClientType.QDRANT:
            url = config.get("url")
            if not url:
                raise ValueError("Qdrant requires 'url' in config")

            return QdrantIndexClient(
                url=url,
                api_key=config.get("api_key"),
                timeout=int(config.get("timeout", 30)),
            )

        raise ValueError(f"Unsupported index client type: {client_type}")

    @staticmethod
    def create_from_config(config: Dict[str, Any]) -> IndexClient:
        """Create an index client from a dictionary with a ``type`` key."""
        client_type_str = config.get("type", "qdrant")

        try:
            client_type = IndexClientType(client_type_str)
        except ValueError:
            raise ValueError(f"Unsupported index client type: {client_type_str}")

        return IndexClientFactory.create(client_type, config)


def create_index_client_from_env(config: Optional[RetrievalConfig] = None) -> IndexClient:
    """Create an index client from environment-driven configuration.

    Parameters
    - config: Pre-loaded ``RetrievalConfig``; loaded from the environment
      when omitted

    Returns
    - An ``IndexClient`` talking to the configured backend
    """
    config = config or RetrievalConfig()
    client = IndexClientFactory.create_from_config({
        "type": config.ml_index_backend,
        "url": config.qdrant_url,
        "api_key": config.qdrant_api_key,
        "timeout": config.qdrant_timeout,
    })
    logger.info("Index client created", backend=config.ml_index_backend, url=config.qdrant_url)
    return client
