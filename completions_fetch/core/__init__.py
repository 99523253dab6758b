"""
Core module for the completions fetch engine.

This module contains configuration, exceptions and the cancellation handle.
"""

from completions_fetch.core.cancellation import CancellationToken
from completions_fetch.core.config import Settings, get_settings
from completions_fetch.core.exceptions import (
    CompletionsFetchError,
    ErrorCode,
    RequestAbortedError,
    StreamDecodeError,
    TokenError,
    TransportError,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Cancellation
    "CancellationToken",
    # Exceptions
    "ErrorCode",
    "CompletionsFetchError",
    "TransportError",
    "RequestAbortedError",
    "StreamDecodeError",
    "TokenError",
]
