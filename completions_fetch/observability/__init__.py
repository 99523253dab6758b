"""
Observability Package

- Structured JSON logging bound to the current fetch
- Prometheus metrics
"""

from completions_fetch.observability.logging import (
    configure_logging,
    fetch_context,
    get_logger,
)
from completions_fetch.observability.metrics import (
    reason_label,
    record_breaker_cleared,
    record_breaker_engaged,
    record_fetch_outcome,
    record_finish_reason,
)

__all__ = [
    # Logging
    "configure_logging",
    "fetch_context",
    "get_logger",
    # Metrics
    "reason_label",
    "record_breaker_cleared",
    "record_breaker_engaged",
    "record_fetch_outcome",
    "record_finish_reason",
]
