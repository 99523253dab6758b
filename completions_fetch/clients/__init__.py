"""
HTTP clients for the completions proxy.

- create_http_client: pooled httpx.AsyncClient factory
- TransportClient: streaming POST with cancellation
"""

from completions_fetch.clients.http import create_http_client
from completions_fetch.clients.transport import NOT_SENT, TransportClient, TransportResponse

__all__ = [
    "create_http_client",
    "NOT_SENT",
    "TransportClient",
    "TransportResponse",
]
