"""
Custom exceptions for the completions fetch engine.

This module provides a hierarchy of custom exceptions. All exceptions inherit
from CompletionsFetchError and include error codes for consistent error
handling and logging.

Only transport-level problems are raised. Expected proxy outcomes (auth
failures, quota, rate limiting) are returned as CompletionError values by the
fetcher, never raised.
"""

from enum import Enum
from typing import Any


# =============================================================================
# Error Codes Enum
# =============================================================================


class ErrorCode(str, Enum):
    """
    Error codes for completions fetch exceptions.

    These codes provide a consistent way to identify error types in logging.
    """

    FETCH_ERROR = "FETCH_ERROR"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    REQUEST_ABORTED = "REQUEST_ABORTED"
    STREAM_ERROR = "STREAM_ERROR"
    TOKEN_ERROR = "TOKEN_ERROR"


# =============================================================================
# Base Exception
# =============================================================================


class CompletionsFetchError(Exception):
    """
    Base exception for all completions fetch errors.

    Attributes:
        message: Human-readable error message.
        error_code: Machine-readable error code from ErrorCode enum.
    """

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCode.FETCH_ERROR,
        **kwargs: Any,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            error_code: Machine-readable error code.
            **kwargs: Additional attributes to set on the exception.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code

        for key, value in kwargs.items():
            setattr(self, key, value)


# =============================================================================
# Transport Errors
# =============================================================================


class TransportError(CompletionsFetchError):
    """
    Exception for genuine network failures (DNS, TLS, connect, read timeouts).

    Attributes:
        url: URL of the request that failed.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        error_code: str = ErrorCode.TRANSPORT_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.url = url


class RequestAbortedError(CompletionsFetchError):
    """
    Raised when the cancellation handle aborts a request in flight.

    Kept separate from TransportError so callers can tell a deliberate abort
    from a network failure.
    """

    def __init__(
        self,
        message: str = "Request aborted by cancellation",
        url: str | None = None,
        error_code: str = ErrorCode.REQUEST_ABORTED,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.url = url


# =============================================================================
# Stream / Token Errors
# =============================================================================


class StreamDecodeError(CompletionsFetchError):
    """Exception raised when a response cannot be decoded as a stream at all."""

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCode.STREAM_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)


class TokenError(CompletionsFetchError):
    """Exception raised when no auth token can be obtained."""

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCode.TOKEN_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
