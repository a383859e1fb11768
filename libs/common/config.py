"""Configuration management for the retrieval engine.

This module centralizes environment-driven configuration for the hybrid
retrieval engine. It builds on ``pydantic_settings.BaseSettings`` so values
can be provided via environment variables, ``.env`` files, or defaults.

Highlights
- Strongly-typed settings with sensible defaults
- Env names kept compatible with existing deployments (``HYBRID_*``,
  ``QUALITY_*``)
- Frozen snapshots (``HybridConfig``, ``QualityConfig``) handed to the engine
  so tunables stay read-only while requests are in flight

Usage
- Load once at startup: ``config = RetrievalConfig()``
- Pass ``config.hybrid_config()`` to the search manager
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger("config")


@dataclass(frozen=True)
class HybridConfig:
    """Read-only tunables for fusion, dynamic thresholds and the quality gate."""
    min_vector_only_threshold: float = 0.55
    min_vector_with_text_threshold: float = 0.35
    min_final_score: float = 0.008
    min_vector_only_final_score: float = 0.010
    confidence_boost: float = 1.2
    confidence_penalty: float = 0.7
    enable_dynamic_thresholds: bool = True
    enable_confidence_weighting: bool = True
    enable_quality_gate: bool = True


@dataclass(frozen=True)
class QualityConfig:
    """Read-only tunables for quality-aware vector search."""
    enable_quality_filter: bool = True
    min_retrieval_quality: float = 0.4
    quality_boost_factor: float = 1.2


class BaseConfig(BaseSettings):
    """Base configuration shared by every entrypoint.

    Parameters are read from the process environment (case-insensitive).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    ml_env: str = Field(default="local", alias="ML_ENV")

    # Logging
    ml_log_level: str = Field(default="INFO", alias="ML_LOG_LEVEL")
    ml_log_format: str = Field(default="json", alias="ML_LOG_FORMAT")


class RetrievalConfig(BaseConfig):
    """Configuration for the hybrid retrieval engine.

    Groups the index connection with the hybrid and quality tunables. Use
    ``hybrid_config()`` / ``quality_config()`` to obtain the frozen views the
    engine consumes.
    """

    # Index connection
    ml_index_backend: str = Field(default="qdrant", alias="ML_INDEX_BACKEND")
    qdrant_url: str = Field(default="http://localhost:6333", alias="QDRANT_URL")
    qdrant_api_key: Optional[str] = Field(default=None, alias="QDRANT_API_KEY")
    qdrant_timeout: int = Field(default=30, alias="QDRANT_TIMEOUT")

    # Hybrid search
    hybrid_min_vector_only_threshold: float = Field(default=0.55, alias="HYBRID_MIN_VECTOR_ONLY_THRESHOLD")
    hybrid_min_vector_with_text_threshold: float = Field(default=0.35, alias="HYBRID_MIN_VECTOR_WITH_TEXT_THRESHOLD")
    hybrid_min_final_score: float = Field(default=0.008, alias="HYBRID_MIN_FINAL_SCORE")
    hybrid_min_vector_only_final_score: float = Field(default=0.010, alias="HYBRID_MIN_VECTOR_ONLY_FINAL_SCORE")
    hybrid_confidence_boost: float = Field(default=1.2, alias="HYBRID_CONFIDENCE_BOOST")
    hybrid_confidence_penalty: float = Field(default=0.7, alias="HYBRID_CONFIDENCE_PENALTY")
    hybrid_enable_dynamic_thresholds: bool = Field(default=True, alias="HYBRID_ENABLE_DYNAMIC_THRESHOLDS")
    hybrid_enable_confidence_weighting: bool = Field(default=True, alias="HYBRID_ENABLE_CONFIDENCE_WEIGHTING")
    hybrid_enable_quality_gate: bool = Field(default=True, alias="HYBRID_ENABLE_QUALITY_GATE")

    # Quality-aware retrieval
    quality_filter_enabled: bool = Field(default=True, alias="QUALITY_FILTER_ENABLED")
    quality_min_retrieval: float = Field(default=0.4, alias="QUALITY_MIN_RETRIEVAL")
    quality_boost_factor: float = Field(default=1.2, alias="QUALITY_BOOST_FACTOR")

    @field_validator(
        "hybrid_min_vector_only_threshold",
        "hybrid_min_vector_with_text_threshold",
        "quality_min_retrieval",
    )
    @classmethod
    def _unit_interval(cls, value: float) -> float:
        if value < 0 or value > 1:
            raise ValueError("threshold must be between 0 and 1")
        return value

    @model_validator(mode="after")
    def _warn_inconsistent_floors(self) -> "RetrievalConfig":
        if self.hybrid_min_vector_only_threshold < self.hybrid_min_vector_with_text_threshold:
            logger.warning(
                "Vector-only threshold below vector-with-text threshold",
                min_vector_only_threshold=self.hybrid_min_vector_only_threshold,
                min_vector_with_text_threshold=self.hybrid_min_vector_with_text_threshold,
            )
        return self

    def hybrid_config(self) -> HybridConfig:
        """Snapshot of the hybrid tunables."""
        return HybridConfig(
            min_vector_only_threshold=self.hybrid_min_vector_only_threshold,
            min_vector_with_text_threshold=self.hybrid_min_vector_with_text_threshold,
            min_final_score=self.hybrid_min_final_score,
            min_vector_only_final_score=self.hybrid_min_vector_only_final_score,
            confidence_boost=self.hybrid_confidence_boost,
            confidence_penalty=self.hybrid_confidence_penalty,
            enable_dynamic_thresholds=self.hybrid_enable_dynamic_thresholds,
            enable_confidence_weighting=self.hybrid_enable_confidence_weighting,
            enable_quality_gate=self.hybrid_enable_quality_gate,
        )

    def quality_config(self) -> QualityConfig:
        """Snapshot of the quality-aware retrieval tunables."""
        return QualityConfig(
            enable_quality_filter=self.quality_filter_enabled,
            min_retrieval_quality=self.quality_min_retrieval,
            quality_boost_factor=self.quality_boost_factor,
        )


def get_config(service_name: str) -> BaseConfig:
    """Get configuration for a named entrypoint.

    Parameters
    - service_name: ``retrieval`` (alias ``search``); anything else yields
      ``BaseConfig``.
    """
    config_map = {
        "retrieval": RetrievalConfig,
        "search": RetrievalConfig,
    }

    # Default to ``BaseConfig`` to avoid surprising crashes for unknown names.
    config_class = config_map.get(service_name, BaseConfig)
    return config_class()
