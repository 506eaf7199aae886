"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from pgque.observability.logging import (
    bind_context,
    clear_context,
    setup_logging,
)
from pgque.observability.metrics import (
    MetricsCollector,
    get_metrics,
    serve_metrics,
    setup_metrics,
)
from pgque.observability.tracing import get_tracer, instrument_sqlalchemy, setup_tracing

__all__ = [
    "setup_logging",
    "bind_context",
    "clear_context",
    "setup_metrics",
    "get_metrics",
    "serve_metrics",
    "MetricsCollector",
    "setup_tracing",
    "get_tracer",
    "instrument_sqlalchemy",
]
