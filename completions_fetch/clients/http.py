"""
HTTP Client Module

This module provides the HTTP client factory used by the transport, with
connection pooling and timeouts.

Pattern: Factory pattern for creating configured HTTP clients
"""

from typing import Optional

import httpx


# =============================================================================
# Default Configuration Constants
# =============================================================================


DEFAULT_TIMEOUT_SECONDS: float = 30.0
"""Default timeout for HTTP requests in seconds."""

DEFAULT_MAX_CONNECTIONS: int = 100
"""Maximum number of connections in the pool."""

DEFAULT_MAX_KEEPALIVE: int = 20
"""Maximum number of keepalive connections."""

USER_AGENT = "completions-fetch/0.1"


# =============================================================================
# HTTP Client Factory
# =============================================================================


def create_http_client(
    timeout_seconds: Optional[float] = None,
    max_connections: Optional[int] = None,
    max_keepalive: Optional[int] = None,
    headers: Optional[dict[str, str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Create a configured HTTP client with connection pooling and timeouts.

    Completion requests are never retried at the transport level: a retried
    POST would produce a second, unrelated set of completions.

    Args:
        timeout_seconds: Request timeout in seconds (default: 30.0)
        max_connections: Maximum connections in pool (default: 100)
        max_keepalive: Maximum keepalive connections (default: 20)
        headers: Additional headers to include in all requests
        transport: Transport override (e.g. httpx.MockTransport in tests)

    Returns:
        httpx.AsyncClient: Configured async HTTP client

    Example:
        >>> client = create_http_client(timeout_seconds=60.0)
        >>> async with client:
        ...     response = await client.post(url, json=body)
    """
    timeout = timeout_seconds if timeout_seconds is not None else DEFAULT_TIMEOUT_SECONDS
    max_conn = max_connections if max_connections is not None else DEFAULT_MAX_CONNECTIONS
    max_keep = max_keepalive if max_keepalive is not None else DEFAULT_MAX_KEEPALIVE

    limits = httpx.Limits(
        max_connections=max_conn,
        max_keepalive_connections=max_keep,
    )

    timeout_config = httpx.Timeout(
        connect=timeout,
        read=timeout,
        write=timeout,
        pool=timeout,
    )

    default_headers = {
        "User-Agent": USER_AGENT,
    }
    if headers:
        default_headers.update(headers)

    if transport is None:
        transport = httpx.AsyncHTTPTransport(limits=limits)

    return httpx.AsyncClient(
        timeout=timeout_config,
        headers=default_headers,
        transport=transport,
    )
