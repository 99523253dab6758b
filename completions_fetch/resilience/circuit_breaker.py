"""
Completions Circuit Breaker

While engaged, every fetch short-circuits to `canceled(<reason>)` without
touching the network.

State Machine:
    CLEAR: requests pass through
    ENGAGED(reason): requests fail fast with the reason

Producers:
    402 -> "monthly free code completions exhausted", cleared by a token
           refresh that reports the quota restored
    429 -> "rate limited", cleared by a timer after the cooldown

engage() and clear() are idempotent and synchronous. A clear may name the
reason it was armed for; it is then a no-op when another reason is engaged.
"""

import asyncio
import logging
from typing import Optional

from completions_fetch.observability.metrics import record_breaker_cleared, record_breaker_engaged

logger = logging.getLogger(__name__)


REASON_QUOTA_EXHAUSTED = "monthly free code completions exhausted"
REASON_RATE_LIMITED = "rate limited"


class CompletionsCircuitBreaker:
    """
    Disabled-reason state owned by one fetcher instance.

    Example:
        >>> breaker = CompletionsCircuitBreaker()
        >>> breaker.engage(REASON_RATE_LIMITED, clear_after_seconds=10)
        >>> breaker.disabled_reason
        'rate limited'
    """

    def __init__(self) -> None:
        self._disabled_reason: Optional[str] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def disabled_reason(self) -> Optional[str]:
        """The reason fetches are short-circuited, None when clear."""
        return self._disabled_reason

    @property
    def is_engaged(self) -> bool:
        return self._disabled_reason is not None

    def engage(self, reason: str, clear_after_seconds: Optional[float] = None) -> None:
        """
        Engage the breaker with `reason`.

        Engaging replaces any previous reason and its pending timer. With
        `clear_after_seconds`, a timer clears this reason once it expires;
        requires a running event loop.
        """
        self._cancel_timer()
        if self._disabled_reason != reason:
            logger.warning("Completions disabled: %s", reason)
            record_breaker_engaged(reason)
        self._disabled_reason = reason

        if clear_after_seconds is not None:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(clear_after_seconds, self._on_timer, reason)

    def clear(self, reason: Optional[str] = None) -> bool:
        """
        Clear the breaker.

        Args:
            reason: Only clear when the breaker is engaged with this reason;
                None clears whatever is set.

        Returns:
            True when the breaker was engaged and is now clear.
        """
        if self._disabled_reason is None:
            return False
        if reason is not None and reason != self._disabled_reason:
            return False

        cleared = self._disabled_reason
        self._disabled_reason = None
        self._cancel_timer()
        logger.info("Completions re-enabled after: %s", cleared)
        record_breaker_cleared(cleared)
        return True

    def _on_timer(self, reason: str) -> None:
        self._timer = None
        self.clear(reason)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
