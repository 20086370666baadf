"""
Cache Metrics Collector

Prometheus counters describing how the user cache behaves: lookup
hits, misses and errors, and the outcome of background mirror writes.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, generate_latest

LOOKUP_HIT = "hit"
LOOKUP_MISS = "miss"
LOOKUP_ERROR = "error"

MIRROR_SUCCESS = "success"
MIRROR_FAILURE = "failure"


class CacheMetricsCollector:
    """Prometheus counters for cache lookups and mirror writes."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.prom_cache_lookups = Counter(
            "user_service_cache_lookups_total",
            "User cache lookups by operation and result (hit, miss, error)",
            ["operation", "result"],
            registry=self.registry,
        )

        self.prom_cache_mirror = Counter(
            "user_service_cache_mirror_total",
            "Background cache writes by operation and outcome (success, failure)",
            ["operation", "outcome"],
            registry=self.registry,
        )

    def record_lookup(self, operation: str, result: str) -> None:
        self.prom_cache_lookups.labels(operation=operation, result=result).inc()

    def record_mirror(self, operation: str, outcome: str) -> None:
        self.prom_cache_mirror.labels(operation=operation, outcome=outcome).inc()

    def lookup_count(self, operation: str, result: str) -> float:
        """Current value of a lookup counter, zero if never incremented."""
        value = self.registry.get_sample_value(
            "user_service_cache_lookups_total",
            {"operation": operation, "result": result},
        )
        return value or 0.0

    def mirror_count(self, operation: str, outcome: str) -> float:
        """Current value of a mirror counter, zero if never incremented."""
        value = self.registry.get_sample_value(
            "user_service_cache_mirror_total",
            {"operation": operation, "outcome": outcome},
        )
        return value or 0.0

    def export(self) -> bytes:
        """Render the registry in the Prometheus text exposition format."""
        return generate_latest(self.registry)


# Process-wide collector used by the application
cache_metrics = CacheMetricsCollector()
