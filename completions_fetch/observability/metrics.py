"""
Completions Fetch Metrics

Prometheus counters for the fetch engine.

Metrics Provided:
- Fetch outcomes by type and reason (counter)
- Completion finish reasons as seen by the stream decoder (counter)
- Circuit breaker engagements and clears (counter)

Metric names are module constants. Label values come from fixed sets;
free text such as a server response body stays in the logs.
"""

from prometheus_client import Counter

# =============================================================================
# Constants
# =============================================================================

METRIC_FETCH_OUTCOMES = "completions_fetch_outcomes_total"
METRIC_FINISH_REASONS = "completions_fetch_finish_reasons_total"
METRIC_BREAKER_ENGAGEMENTS = "completions_fetch_breaker_engagements_total"
METRIC_BREAKER_CLEARS = "completions_fetch_breaker_clears_total"


# =============================================================================
# Fetch Outcome Metrics
# =============================================================================

FETCH_OUTCOMES = Counter(
    name=METRIC_FETCH_OUTCOMES,
    documentation="Total number of completion fetches by outcome",
    labelnames=["outcome", "reason"],
)


def reason_label(reason: str) -> str:
    """
    Reduce an outcome reason to its fixed prefix.

    Reasons such as "unhandled status from server: 500 <body>" carry
    response details after the first colon; only the part before it is
    used as a label value.

    Example:
        >>> reason_label("client not supported: upgrade required")
        'client not supported'
    """
    return reason.split(":", 1)[0].strip()


def record_fetch_outcome(outcome: str, reason: str = "") -> None:
    """
    Record the outcome of a completion fetch.

    Args:
        outcome: success, failed or canceled
        reason: Outcome reason (empty for success), reduced with reason_label
    """
    FETCH_OUTCOMES.labels(outcome=outcome, reason=reason_label(reason)).inc()


FINISH_REASONS = Counter(
    name=METRIC_FINISH_REASONS,
    documentation="Total number of finished completion choices by finish reason",
    labelnames=["reason", "model"],
)


def record_finish_reason(reason: str, model: str = "") -> None:
    """
    Record why a completion choice finished.

    Args:
        reason: Finish reason (server reason, client-trimmed, iteration done)
        model: Model name reported by the server, if any
    """
    FINISH_REASONS.labels(reason=reason, model=model).inc()


# =============================================================================
# Circuit Breaker Metrics
# =============================================================================

BREAKER_ENGAGEMENTS = Counter(
    name=METRIC_BREAKER_ENGAGEMENTS,
    documentation="Total number of completions circuit breaker engagements",
    labelnames=["reason"],
)

BREAKER_CLEARS = Counter(
    name=METRIC_BREAKER_CLEARS,
    documentation="Total number of completions circuit breaker clears",
    labelnames=["reason"],
)


def record_breaker_engaged(reason: str) -> None:
    """Record that a breaker was engaged with `reason`."""
    BREAKER_ENGAGEMENTS.labels(reason=reason).inc()


def record_breaker_cleared(reason: str) -> None:
    """Record that a breaker engaged with `reason` was cleared."""
    BREAKER_CLEARS.labels(reason=reason).inc()
