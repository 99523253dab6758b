"""
Resilience patterns for the completions fetch engine.

- CompletionsCircuitBreaker: disabled-reason breaker fed by 402 and 429
"""

from completions_fetch.resilience.circuit_breaker import (
    REASON_QUOTA_EXHAUSTED,
    REASON_RATE_LIMITED,
    CompletionsCircuitBreaker,
)

__all__ = [
    "CompletionsCircuitBreaker",
    "REASON_QUOTA_EXHAUSTED",
    "REASON_RATE_LIMITED",
]
