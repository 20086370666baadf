"""
User Service Monitoring Module

Prometheus metrics for the user cache.
"""

from .cache_metrics import CacheMetricsCollector, cache_metrics

__all__ = [
    "CacheMetricsCollector",
    "cache_metrics",
]
