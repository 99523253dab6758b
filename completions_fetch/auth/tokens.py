"""
Auth token contract.

The fetcher needs very little from the credential layer: a cached token (or a
way to fetch one), a way to invalidate it after a 401/403, and a notification
when a new token arrives so a quota-exhausted breaker can be cleared.

Credential acquisition itself lives outside this package; StaticTokenManager
is a minimal in-memory implementation for local use and tests.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from completions_fetch.core.exceptions import TokenError

logger = logging.getLogger(__name__)


class CopilotToken(BaseModel):
    """
    A session token for the completions proxy.

    Attributes:
        token: Bearer token sent with every request
        endpoints: Endpoint base URLs advertised with the token, e.g. {"proxy": ...}
        completions_quota_exceeded: Whether the account is out of completions quota
    """

    model_config = ConfigDict(frozen=True)

    token: str = Field(..., description="Bearer token")
    endpoints: dict[str, str] = Field(default_factory=dict, description="Endpoint base URLs")
    completions_quota_exceeded: bool = Field(default=False, description="Completions quota exhausted")


TokenListener = Callable[[CopilotToken], None]


class Subscription:
    """Handle returned by TokenNotifier.on_token(); dispose() unsubscribes."""

    def __init__(self, notifier: "TokenNotifier", listener: TokenListener) -> None:
        self._notifier = notifier
        self._listener = listener
        self.disposed = False

    def dispose(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        self._notifier._remove(self._listener)


class TokenNotifier:
    """
    Broadcasts newly acquired tokens.

    Listeners run synchronously in registration order. A failing listener is
    logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._listeners: list[TokenListener] = []

    def on_token(self, listener: TokenListener) -> Subscription:
        self._listeners.append(listener)
        return Subscription(self, listener)

    def notify(self, token: CopilotToken) -> None:
        for listener in list(self._listeners):
            try:
                listener(token)
            except Exception:
                logger.exception("Token listener failed")

    def _remove(self, listener: TokenListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)


class TokenManager(ABC):
    """Source of proxy tokens."""

    @property
    @abstractmethod
    def token(self) -> Optional[CopilotToken]:
        """The cached token, or None when a fetch is needed."""

    @abstractmethod
    async def get_token(self) -> CopilotToken:
        """Return a valid token, fetching one if needed."""

    @abstractmethod
    def reset_token(self, http_error: Optional[int] = None) -> None:
        """Drop the cached token after the proxy rejected it."""


class StaticTokenManager(TokenManager):
    """
    Token manager backed by a token factory.

    The factory is called whenever no token is cached; each new token is
    announced through the notifier.

    Example:
        >>> notifier = TokenNotifier()
        >>> manager = StaticTokenManager(lambda: CopilotToken(token="t"), notifier)
        >>> token = await manager.get_token()
    """

    def __init__(
        self,
        factory: Callable[[], CopilotToken],
        notifier: Optional[TokenNotifier] = None,
    ) -> None:
        self._factory = factory
        self._notifier = notifier
        self._token: Optional[CopilotToken] = None
        self.reset_count = 0

    @property
    def token(self) -> Optional[CopilotToken]:
        return self._token

    async def get_token(self) -> CopilotToken:
        if self._token is None:
            try:
                token = self._factory()
            except Exception as e:
                raise TokenError(f"Unable to obtain token: {e}") from e
            self._token = token
            if self._notifier is not None:
                self._notifier.notify(token)
        return self._token

    def reset_token(self, http_error: Optional[int] = None) -> None:
        logger.info("Resetting token after HTTP status %s", http_error)
        self.reset_count += 1
        self._token = None
