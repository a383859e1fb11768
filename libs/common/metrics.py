"""Metrics collection for the retrieval engine.

Provides a thin convenience wrapper around ``prometheus_client`` so the search
layers record request outcomes, latencies and ranking decisions with a
consistent label set.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
  (collection names are deliberately not used as labels)
- Each collector owns its ``CollectorRegistry`` so tests can create fresh
  instances without duplicate-registration errors
"""

from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
import structlog

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Centralized metrics collection for retrieval operations.

    Parameters
    - service_name: Logical name of the retrieval service
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.search_requests = Counter(
            'retrieval_search_requests_total',
            'Total search requests',
            ['operation', 'status'],
            registry=self.registry
        )

        self.search_duration = Histogram(
            'retrieval_search_duration_seconds',
            'Search duration',
            ['operation'],
            registry=self.registry
        )

        self.fusion_decisions = Counter(
            'retrieval_fusion_decisions_total',
            'Fusion strategy chosen per hybrid search',
            ['fusion_method', 'auto_switched'],
            registry=self.registry
        )

        self.text_match_types = Counter(
            'retrieval_text_match_type_total',
            'Text search outcomes by match type',
            ['match_type'],
            registry=self.registry
        )

        self.quality_gate_removed = Counter(
            'retrieval_quality_gate_removed_total',
            'Results removed by the post-fusion quality gate',
            registry=self.registry
        )

    def record_search(self, operation: str, status: str, duration: float) -> None:
        """Record one search call.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.search_requests.labels(operation=operation, status=status).inc()
        self.search_duration.labels(operation=operation).observe(duration)

    def record_fusion(self, fusion_method: str, auto_switched: bool) -> None:
        """Record which fusion strategy a hybrid search ended up using."""
        self.fusion_decisions.labels(
            fusion_method=fusion_method,
            auto_switched=str(auto_switched).lower()
        ).inc()

    def record_text_match(self, match_type: str) -> None:
        """Record the overall match type of a text search."""
        self.text_match_types.labels(match_type=match_type).inc()

    def record_quality_gate(self, removed: int) -> None:
        """Record how many fused results the quality gate dropped."""
        if removed > 0:
            self.quality_gate_removed.inc(removed)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


_metrics_collectors: Dict[str, MetricsCollector] = {}


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get or create the metrics collector for a service.

    Returns one collector per service name for the lifetime of the process.
    """
    collector = _metrics_collectors.get(service_name)
    if collector is None:
        collector = MetricsCollector(service_name)
        _metrics_collectors[service_name] = collector
        logger.debug("Metrics collector created", service=service_name)
    return collector
