"""
Cooperative cancellation handle.

A CancellationToken is passed down from the caller into the fetcher, the
transport and the stream decoder. Each of them checks it at its suspension
points; the transport also awaits it to abort a request still waiting for
response headers.
"""

import asyncio


class CancellationToken:
    """
    Cancellation flag shared by one completion request.

    Setting the token is idempotent.

    Example:
        >>> token = CancellationToken()
        >>> token.cancel()
        >>> token.is_cancellation_requested
        True
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event: asyncio.Event | None = None

    @property
    def is_cancellation_requested(self) -> bool:
        """Whether cancel() has been called."""
        return self._cancelled

    def cancel(self) -> None:
        """Request cancellation and wake any wait() callers (no-op when already set)."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()
