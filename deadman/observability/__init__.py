"""
Observability: logging setup, request IDs, metrics.

Usage:
    from deadman.observability import configure_logging, REGISTRY

    configure_logging(level="INFO", log_file=Path("~/.config/deadman/deadman.log"))
    print(REGISTRY.to_prometheus())
"""

from .context import RequestContext, get_request_id
from .logging import CorrelationIdMiddleware, HumanFormatter, JSONFormatter, configure_logging
from .metrics import REGISTRY, Counter, Gauge, Histogram, MetricsRegistry

__all__ = [
    # Logging
    "configure_logging",
    "JSONFormatter",
    "HumanFormatter",
    "CorrelationIdMiddleware",
    # Context
    "RequestContext",
    "get_request_id",
    # Metrics
    "REGISTRY",
    "MetricsRegistry",
    "Counter",
    "Gauge",
    "Histogram",
]
