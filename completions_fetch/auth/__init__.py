"""Auth token contract for the completions proxy."""

from completions_fetch.auth.tokens import (
    CopilotToken,
    StaticTokenManager,
    Subscription,
    TokenManager,
    TokenNotifier,
)

__all__ = [
    "CopilotToken",
    "StaticTokenManager",
    "Subscription",
    "TokenManager",
    "TokenNotifier",
]
