"""
Shared metrics for the Storefront Access Layer.
"""

from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info, generate_latest
from prometheus_client import CONTENT_TYPE_LATEST

_BREAKER_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


class StorefrontMetrics:
    """Prometheus metrics for GraphQL operations and the application cache.

    Each instance owns its registry so several apps (and tests) can coexist
    in one process.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, service_name: str = "storefront", registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up metrics for the service."""
        self._metrics["service_info"] = Info(
            "service",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        self._metrics["graphql_operations_total"] = Counter(
            "graphql_operations_total",
            "Total outbound GraphQL operations",
            ["operation", "outcome"],
            registry=self.registry
        )

        self._metrics["graphql_operation_duration_seconds"] = Histogram(
            "graphql_operation_duration_seconds",
            "Outbound GraphQL operation duration in seconds",
            ["operation"],
            registry=self.registry
        )

        self._metrics["cache_events_total"] = Counter(
            "cache_events_total",
            "Application cache events",
            ["event"],
            registry=self.registry
        )

        self._metrics["circuit_breaker_state"] = Gauge(
            "circuit_breaker_state",
            "Circuit breaker state (0=closed, 1=half_open, 2=open)",
            ["circuit"],
            registry=self.registry
        )

    def record_graphql_operation(self, operation: str, outcome: str, duration_seconds: float) -> None:
        self._metrics["graphql_operations_total"].labels(operation=operation, outcome=outcome).inc()
        self._metrics["graphql_operation_duration_seconds"].labels(operation=operation).observe(duration_seconds)

    def record_cache_event(self, event: str) -> None:
        self._metrics["cache_events_total"].labels(event=event).inc()

    def set_circuit_state(self, circuit: str, state: str) -> None:
        self._metrics["circuit_breaker_state"].labels(circuit=circuit).set(_BREAKER_STATE_VALUES.get(state, 0))

    def get_sample(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Read one sample value, mostly for health output and tests."""
        return self.registry.get_sample_value(name, labels or {})

    def render(self) -> bytes:
        """Render all metrics in the Prometheus text format."""
        return generate_latest(self.registry)
